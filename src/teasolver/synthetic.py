"""
generate traces for known keys
"""
from __future__ import annotations

import logging

import numpy as np

from .observation import Observation, ObservationTrace
from .tea_util import DELTA, MASK32, check_word, half_round


log = logging.getLogger(__name__)

# sum after 32 rounds of TEA, where decryption starts
START_SUM = (32 * DELTA) & MASK32


def generate_trace(key2: int, key3: int, num_observations: int, *, seed: int|None=None, chained: bool=True, start_sum: int=START_SUM) -> ObservationTrace:
    """
    Observe `num_observations` half-rounds under (key2, key3).

    `a` is drawn uniformly, `sum` steps down by DELTA every half-round like in
    TEA decryption and, if `chained`, every half-round consumes the previous
    b_prime as its b.
    """
    key2 = check_word('key2', key2)
    key3 = check_word('key3', key3)
    if num_observations < 0:
        raise ValueError(f'num_observations must not be negative, got {num_observations}')

    rng = np.random.default_rng(seed)
    a_values = rng.integers(0, 1 << 32, size=num_observations, dtype=np.uint64)
    b_values = rng.integers(0, 1 << 32, size=num_observations, dtype=np.uint64)

    observations = []
    b = int(b_values[0]) if num_observations else 0
    sum = check_word('start_sum', start_sum)
    for i in range(num_observations):
        a = int(a_values[i])
        if not chained:
            b = int(b_values[i])
        b_prime = half_round(a, b, sum, key2, key3)
        observations.append(Observation(a, b, sum, b_prime))

        b = b_prime
        sum = (sum - DELTA) & MASK32

    log.debug(f'generated {num_observations} observations for key2={key2:08x}, key3={key3:08x}, {seed=}')
    return ObservationTrace(observations)
