"""Syzygy tablebase probing, bitboard move generation and a stopwatch."""

__version__ = "0.1.0"

__all__ = [
    "attacks",
    "encoding",
    "position",
    "prober",
    "results",
    "tablefile",
    "timer",
]