"""
selection of observation pairs for differential solving of key2
"""
from __future__ import annotations

from typing import Any, NamedTuple
import logging

import numpy as np

from .observation import ObservationTrace
from .tea_util import NUM_SOLVABLE_BITS, SOLVABLE_MASK


log = logging.getLogger(__name__)

UNSET = -1


class BitPair(NamedTuple):
    one: int
    zero: int


class DifferentialIndex:
    """
    For every bit position 0..30, remembers the first observation whose `a`
    has a 1 there and the first one whose `a` has a 0 there.

    References are indices into the trace the index was built from. `refs` has
    shape (31, 2) and is indexed by (bit, value of a at that bit); unset slots
    hold -1.
    """
    ones_mask: int
    zeros_mask: int
    refs: np.ndarray[Any, np.dtype[np.int32]]

    def __init__(self, trace: ObservationTrace):
        self.ones_mask = 0
        self.zeros_mask = 0
        refs = np.full((NUM_SOLVABLE_BITS, 2), UNSET, dtype=np.int32)

        for idx, obs in enumerate(trace):
            a = obs.a
            for bit in range(NUM_SOLVABLE_BITS):
                value = (a >> bit) & 1
                mask = self.ones_mask if value else self.zeros_mask

                if (mask >> bit) & 1:
                    continue

                refs[bit, value] = idx
                if value:
                    self.ones_mask |= 1 << bit
                else:
                    self.zeros_mask |= 1 << bit

                # needed by the fast solver, cache it on the shared observation now
                obs.compute_diff_term()

            if self.solvable_bits() == SOLVABLE_MASK:
                log.debug(f'all {NUM_SOLVABLE_BITS} bits covered after {idx + 1} of {len(trace)} observations')
                break

        refs.flags.writeable = False
        self.refs = refs

    def solvable_bits(self) -> int:
        """bit mask of key2 bits recoverable by the fast solver"""
        return self.ones_mask & self.zeros_mask

    def __getitem__(self, bit: int) -> BitPair:
        """
        reference pair for `bit`. Only meaningful if `bit` is set in
        solvable_bits(), the caller has to check that first.
        """
        return BitPair(one=int(self.refs[bit, 1]), zero=int(self.refs[bit, 0]))

    def to_array(self) -> np.ndarray[Any, np.dtype[np.int32]]:
        return self.refs.copy()

    def __repr__(self):
        return f'{self.__class__.__name__}(solvable_bits={self.solvable_bits():#010x})'
