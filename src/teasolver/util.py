from __future__ import annotations

from math import log2

from .tea_util import MASK32


def fmt_bits(value: int, width: int=32) -> str:
    """binary, most significant bit first"""
    return format(value & ((1 << width) - 1), f'0{width}b')

def fmt_log2(number: float, width: int=0) -> str:
    if number == 0:
        num_str = "0"
    else:
        num_str = f"2^{log2(number):.2f}"

    return num_str.rjust(width)

def parse_word(s: str) -> int:
    """parse a 32-bit word given in hex, with or without 0x prefix"""
    value = int(s, 16)
    if not 0 <= value <= MASK32:
        raise ValueError(f'{s!r} is not a 32-bit word')
    return value
