"""
closed-form recovery of key2 bits from pairs of observations
"""
from __future__ import annotations

from dataclasses import dataclass
import logging

from .differential_index import DifferentialIndex
from .observation import ObservationTrace
from .tea_util import MASK32, NUM_SOLVABLE_BITS, bit, hamming_weight


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartialKey:
    key2: int
    solvable_bits: int

    @property
    def unknown_mask(self) -> int:
        return ~self.solvable_bits & MASK32

    @property
    def known_bits(self) -> int:
        return self.key2 & self.solvable_bits

    @property
    def num_unknown_bits(self) -> int:
        return hamming_weight(self.unknown_mask)

    def __repr__(self):
        return f'PartialKey(key2={self.key2:#010x}, solvable_bits={self.solvable_bits:#010x})'


def solve_key2_bit(trace: ObservationTrace, index: DifferentialIndex, n: int) -> int:
    """
    recover bit n of key2 from the reference pair stored for bit n.

    c = diff_term0 - diff_term1 = (key2 ^ a0) - (key2 ^ a1)

    a0[n] = 0 and a1[n] = 1, so the borrow out of bit n is ~key2[n] no matter
    what happened below. Hence

    c[n+1] = a0[n+1] ^ a1[n+1] ^ ~key2[n]
    key2[n] = ~(a0[n+1] ^ a1[n+1] ^ c[n+1])
    """
    pair = index[n]
    zero_obs = trace[pair.zero]
    one_obs = trace[pair.one]

    c = (zero_obs.compute_diff_term() - one_obs.compute_diff_term()) & MASK32

    a0_np1 = bit(zero_obs.a, n + 1)
    a1_np1 = bit(one_obs.a, n + 1)
    c_np1 = bit(c, n + 1)

    return ~(a0_np1 ^ a1_np1 ^ c_np1) & 1


def solve_partial_key2(trace: ObservationTrace, index: DifferentialIndex) -> PartialKey:
    solvable_bits = index.solvable_bits()
    key2 = 0

    for n in range(NUM_SOLVABLE_BITS):
        if not (solvable_bits >> n) & 1:
            continue
        key2 |= solve_key2_bit(trace, index, n) << n

    partial = PartialKey(key2=key2, solvable_bits=solvable_bits)
    log.debug(f'fast solver: {partial!r}, {partial.num_unknown_bits} bits left for brute force')
    return partial
