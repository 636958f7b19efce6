"""
brute force over the key2 bits the fast solver could not determine
"""
from __future__ import annotations

TYPE_CHECKING=False
if TYPE_CHECKING:
    from typing import Iterator

from dataclasses import dataclass
from itertools import islice
from typing import Union
import logging

from tqdm import tqdm

from .fast_solver import PartialKey
from .observation import ObservationTrace
from .tea_util import MASK32, hamming_weight
from .types import InsufficientObservationsError, SearchMode


log = logging.getLogger(__name__)


class Submasks:
    """
    all subsets of `mask` in decreasing numeric order, ending with the empty
    subset. Iterating again starts over.
    """
    mask: int

    def __init__(self, mask: int):
        self.mask = mask & MASK32

    def __iter__(self) -> Iterator[int]:
        mask = self.mask
        submask = mask
        while submask != 0:
            yield submask
            submask = (submask - 1) & mask

        # (0 - 1) & mask is mask again, so the empty subset has to be emitted on its own
        yield 0

    def __len__(self) -> int:
        return 1 << hamming_weight(self.mask)

    def __repr__(self):
        return f'Submasks({self.mask:#010x})'


@dataclass(frozen=True)
class Found:
    key2: int
    key3: int

    def __bool__(self):
        return True

    def __repr__(self):
        return f'Found(key2={self.key2:#010x}, key3={self.key3:#010x})'


@dataclass(frozen=True)
class NotFound:
    def __bool__(self):
        return False


SearchResult = Union[Found, NotFound]


class CandidateSearch:
    """
    Enumerates every key2 that agrees with the known bits of `partial_key`,
    derives key3 from the first observation and accepts the candidate if every
    other observation derives the same key3.
    """
    trace: ObservationTrace
    partial_key: PartialKey
    candidates_tried: int

    def __init__(self, trace: ObservationTrace, partial_key: PartialKey):
        if len(trace) == 0:
            raise InsufficientObservationsError('cannot search for keys without observations')
        self.trace = trace
        self.partial_key = partial_key
        self.candidates_tried = 0

    def candidates(self) -> Iterator[int]:
        known_bits = self.partial_key.known_bits
        for submask in Submasks(self.partial_key.unknown_mask):
            yield submask | known_bits

    def num_candidates(self) -> int:
        return len(Submasks(self.partial_key.unknown_mask))

    def check_candidate(self, key2: int) -> Found|None:
        key3 = self.trace[0].key3_from_key2(key2)
        for obs in islice(self.trace, 1, None):
            if obs.key3_from_key2(key2) != key3:
                return None
        return Found(key2, key3)

    def _matches(self, progress: bool) -> Iterator[Found]:
        self.candidates_tried = 0
        total = self.num_candidates()
        for key2 in tqdm(self.candidates(), total=total, desc='testing key2 candidates', unit='key', disable=not progress):
            self.candidates_tried += 1
            found = self.check_candidate(key2)
            if found is not None:
                log.debug(f'{found!r} after {self.candidates_tried}/{total} candidates')
                yield found

    def run(self, *, progress: bool=False) -> SearchResult:
        """first verified key pair, or NotFound once all candidates are exhausted"""
        matches = self._matches(progress)
        try:
            for found in matches:
                return found
        finally:
            matches.close()
        return NotFound()

    def run_all(self, *, progress: bool=False) -> list[Found]:
        return list(self._matches(progress))

    def search(self, mode: SearchMode=SearchMode.first_match, *, progress: bool=False) -> SearchResult|list[Found]:
        if mode == SearchMode.first_match:
            return self.run(progress=progress)
        elif mode == SearchMode.all_matches:
            return self.run_all(progress=progress)
        else:
            raise ValueError(f'unknown search mode {mode}')
