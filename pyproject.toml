[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "arcanum"
version = "0.1.0"
description = "Pure-Python Syzygy endgame tablebase prober with a small bitboard move generator"
requires-python = ">=3.10"
dependencies = []
keywords = ["chess", "syzygy", "tablebase", "endgame", "bitboard", "wdl", "dtz"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Games/Entertainment :: Board Games",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["arcanum"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
