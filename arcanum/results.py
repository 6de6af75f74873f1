"""Tablebase probe results, their packed 32-bit form and root move records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

MAX_MOVES = 256
MAX_CAPTURES = 64
MAX_PLY = 256


class Wdl(IntEnum):
    """Win/draw/loss outcome from the point of view of the side to move."""

    LOSS = 0
    BLESSED_LOSS = 1  # loss, but drawn under the 50-move rule
    DRAW = 2
    CURSED_WIN = 3  # win, but drawn under the 50-move rule
    WIN = 4


_WDL_MASK = 0x0000000F
_TO_MASK = 0x000003F0
_FROM_MASK = 0x0000FC00
_PROMOTES_MASK = 0x00070000
_EP_MASK = 0x00080000
_DTZ_MASK = 0xFFF00000

_WDL_SHIFT = 0
_TO_SHIFT = 4
_FROM_SHIFT = 10
_PROMOTES_SHIFT = 16
_EP_SHIFT = 19
_DTZ_SHIFT = 20

RESULT_FAILED = 0xFFFFFFFF


def _set_field(packed: int, value: int, mask: int, shift: int) -> int:
    return (packed & ~mask) | ((value << shift) & mask)


def _get_field(packed: int, mask: int, shift: int) -> int:
    return (packed & mask) >> shift


@dataclass(frozen=True)
class ProbeResult:
    """A decoded root probe result: outcome, suggested move and DTZ."""

    wdl: Wdl
    from_square: int = 0
    to_square: int = 0
    promotes: int = 0
    ep: bool = False
    dtz: int = 0

    def pack(self) -> int:
        """Pack the result into its 32-bit integer form."""
        packed = 0
        packed = _set_field(packed, int(self.wdl), _WDL_MASK, _WDL_SHIFT)
        packed = _set_field(packed, self.dtz, _DTZ_MASK, _DTZ_SHIFT)
        packed = _set_field(packed, self.from_square, _FROM_MASK, _FROM_SHIFT)
        packed = _set_field(packed, self.to_square, _TO_MASK, _TO_SHIFT)
        packed = _set_field(packed, self.promotes, _PROMOTES_MASK, _PROMOTES_SHIFT)
        packed = _set_field(packed, int(bool(self.ep)), _EP_MASK, _EP_SHIFT)
        return packed & 0xFFFFFFFF

    @classmethod
    def unpack(cls, value: int) -> ProbeResult:
        """Decode a packed 32-bit result; a failed probe raises ValueError."""
        if value == RESULT_FAILED:
            raise ValueError("the packed value marks a failed probe")
        raw_wdl = _get_field(value, _WDL_MASK, _WDL_SHIFT)
        try:
            wdl = Wdl(raw_wdl)
        except ValueError:
            raise ValueError(f"invalid WDL field {raw_wdl}") from None
        return cls(
            wdl=wdl,
            from_square=_get_field(value, _FROM_MASK, _FROM_SHIFT),
            to_square=_get_field(value, _TO_MASK, _TO_SHIFT),
            promotes=_get_field(value, _PROMOTES_MASK, _PROMOTES_SHIFT),
            ep=bool(_get_field(value, _EP_MASK, _EP_SHIFT)),
            dtz=_get_field(value, _DTZ_MASK, _DTZ_SHIFT),
        )


RESULT_CHECKMATE = ProbeResult(Wdl.WIN).pack()
RESULT_STALEMATE = ProbeResult(Wdl.DRAW).pack()


@dataclass
class RootMove:
    """A root move ranked and scored by the tablebase."""

    move: int
    pv: list[int] = field(default_factory=list)
    tb_score: int = 0
    tb_rank: int = 0


def dtz_to_wdl(cnt50: int, dtz: int) -> Wdl:
    """Turn a DTZ value and a 50-move counter into a WDL outcome."""
    if dtz > 0:
        return Wdl.WIN if dtz + cnt50 <= 100 else Wdl.CURSED_WIN
    if dtz < 0:
        return Wdl.LOSS if -dtz + cnt50 <= 100 else Wdl.BLESSED_LOSS
    return Wdl.DRAW