"""Read, write, analyse and convert TM-25 and Zemax binary ray files."""

__version__ = "0.1.0"

__all__ = [
    "binwriter",
    "cli",
    "linalg3",
    "rayset",
    "tm25header",
    "translate_zemax",
    "zemax",
]