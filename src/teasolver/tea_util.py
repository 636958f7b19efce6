"""
utility functions for the half-round of the TEA variant

    b_prime = b - ((a << 4) + (key2 ^ a) + ((a >> 5) ^ sum) + key3)

all arithmetic is modulo 2**32.
"""
from __future__ import annotations

from typing import Any

import numpy as np

import sys

MASK32 = 0xFFFFFFFF
MSB = 0x80000000

# bit 31 of key2 cannot be resolved differentially
NUM_SOLVABLE_BITS = 31
SOLVABLE_MASK = (1 << NUM_SOLVABLE_BITS) - 1

DELTA = 0x9E3779B9

U32Array = np.ndarray[Any, np.dtype[np.uint32]]


def check_word(name: str, value: int) -> int:
    value = int(value)
    if not 0 <= value <= MASK32:
        raise ValueError(f"{name} is not a 32-bit word: {value:#x}")
    return value

def bit(value: int, n: int) -> int:
    return (value >> n) & 1


if sys.version_info >= (3, 10):
    def hamming_weight(value: int) -> int:
        return value.bit_count()
else:
    def hamming_weight(value: int) -> int:
        return bin(value).count('1')


def half_round(a: int, b: int, sum: int, key2: int, key3: int) -> int:
    return (b - ((a << 4) + (key2 ^ a) + ((a >> 5) ^ sum) + key3)) & MASK32

def diff_term(a: int, b: int, sum: int, b_prime: int) -> int:
    """
    (key2 ^ a) + key3, isolated from a single half-round without knowing either key
    """
    return (b - b_prime - (a << 4) - ((a >> 5) ^ sum)) & MASK32


def half_round_np(a: U32Array, b: U32Array, sum: U32Array, key2: int, key3: int) -> U32Array:
    a = np.asarray(a, dtype=np.uint32)
    b = np.asarray(b, dtype=np.uint32)
    sum = np.asarray(sum, dtype=np.uint32)
    k2 = np.uint32(key2)
    k3 = np.uint32(key3)

    shl = np.left_shift(a, np.uint32(4), dtype=np.uint32)
    shr = np.right_shift(a, np.uint32(5), dtype=np.uint32)
    mixed = shl + (k2 ^ a) + (shr ^ sum) + k3
    return np.array(b - mixed, dtype=np.uint32)

def diff_term_np(a: U32Array, b: U32Array, sum: U32Array, b_prime: U32Array) -> U32Array:
    a = np.asarray(a, dtype=np.uint32)
    b = np.asarray(b, dtype=np.uint32)
    sum = np.asarray(sum, dtype=np.uint32)
    b_prime = np.asarray(b_prime, dtype=np.uint32)

    shl = np.left_shift(a, np.uint32(4), dtype=np.uint32)
    shr = np.right_shift(a, np.uint32(5), dtype=np.uint32)
    return np.array(b - b_prime - shl - (shr ^ sum), dtype=np.uint32)
