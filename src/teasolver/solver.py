"""
key recovery pipeline: observations -> differential index -> fast solver -> candidate search
"""
from __future__ import annotations

import logging
import os
import platform
import shutil
import subprocess as sp
import sys
import time

from . import version
from .differential_index import DifferentialIndex
from .fast_solver import PartialKey, solve_partial_key2
from .observation import ObservationTrace
from .search import CandidateSearch, Found, NotFound, SearchResult
from .types import InsufficientObservationsError, SearchMode
from .util import fmt_bits, fmt_log2


log = logging.getLogger(__name__)


class Timer:
    start: float
    end: float
    def __enter__(self) -> Timer:
        self.start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.end = time.perf_counter()

    def __str__(self) -> str:
        return f'{self.end - self.start:.3f} seconds'

    def elapsed(self) -> float:
        return self.end - self.start


def git_info() -> tuple[str|None, list[str]|None]:
    git_cmd = shutil.which('git')
    if not git_cmd:
        return None, None
    try:
        git_commit = sp.check_output([git_cmd, 'rev-parse', 'HEAD'], stderr=sp.DEVNULL).decode().strip()
        git_changed_files = sp.check_output([git_cmd, 'status', '--porcelain', '-uno', '-z'], stderr=sp.DEVNULL).decode().strip('\0').split('\0')
    except sp.CalledProcessError:
        return None, None
    return git_commit, git_changed_files


class KeySolver:
    """
    Recovers key2 and key3 of the half-round

        b_prime = b - ((a << 4) + (key2 ^ a) + ((a >> 5) ^ sum) + key3)

    from a trace of observed half-rounds.

    The differential index and the fast solver run on construction, the
    (usually tiny) brute force over the remaining key2 bits runs in solve().
    At least two observations are needed for any cross-checking, with a single
    one every candidate verifies trivially. Pass allow_single=True to accept
    that anyway.
    """
    trace: ObservationTrace
    index: DifferentialIndex
    partial_key: PartialKey
    candidates_tried: int

    def __init__(self, trace: ObservationTrace, *, allow_single: bool=False):
        if len(trace) == 0:
            raise InsufficientObservationsError('need at least one observation')
        if len(trace) < 2:
            if not allow_single:
                raise InsufficientObservationsError('need at least 2 observations for any cross-verification to be meaningful')
            log.warning('only a single observation given, the first candidate will be accepted without cross-checking')

        if not trace.is_chained():
            log.info('observations are not chained (b != previous b_prime)')

        self.trace = trace
        self.candidates_tried = 0

        with Timer() as timer:
            self.index = DifferentialIndex(trace)
            self.partial_key = solve_partial_key2(trace, self.index)

        log.info(f'key2 bits determinable using fast solver: {fmt_bits(self.solvable_bits)} ({timer})')

    @property
    def solvable_bits(self) -> int:
        return self.partial_key.solvable_bits

    def log_result(self, **kwargs):
        """log results in machine readable json"""
        git_commit, git_changed_files = git_info()

        context = {
            'cwd': os.getcwd(),
            'hostname': platform.node(),
            'trace': {
                'file_path': str(self.trace.file_path) if self.trace.file_path else None,
                'num_observations': len(self.trace),
                'chained': self.trace.is_chained(),
            },
            'solvable_bits': f'{self.solvable_bits:08x}',
            'num_unknown_bits': self.partial_key.num_unknown_bits,
            'argv': sys.argv,
            'git': {
                'commit': git_commit,
                'changed_files': git_changed_files,
            },
            'version': version,
        }

        extra = {
            'context': context,
            **kwargs,
        }

        log.debug('RESULT', extra=extra)

    def _search(self, mode: SearchMode, progress: bool) -> tuple[list[Found], float]:
        search = CandidateSearch(self.trace, self.partial_key)
        log.info(f'testing up to {fmt_log2(search.num_candidates())} key2 candidates')
        with Timer() as timer:
            if mode == SearchMode.first_match:
                result = search.run(progress=progress)
                matches = [result] if isinstance(result, Found) else []
            else:
                matches = search.run_all(progress=progress)
        self.candidates_tried = search.candidates_tried
        return matches, timer.elapsed()

    def solve(self, *, progress: bool=False) -> SearchResult:
        matches, elapsed = self._search(SearchMode.first_match, progress)
        if not matches:
            self.log_result(solve_result={'status': 'NOT_FOUND', 'candidates_tried': self.candidates_tried, 'time': elapsed})
            log.info(f'RESULT valid key not found after {self.candidates_tried} candidates')
            return NotFound()

        found, = matches
        self.log_result(solve_result={
            'status': 'FOUND',
            'key2': f'{found.key2:08x}',
            'key3': f'{found.key3:08x}',
            'candidates_tried': self.candidates_tried,
            'time': elapsed,
        })
        log.info(f'RESULT key2={found.key2:08x}, key3={found.key3:08x}')
        return found

    def solve_all(self, *, progress: bool=False) -> list[Found]:
        """
        every key pair consistent with the trace. Each key2 bit the fast solver
        could not determine (always including bit 31) can be changed with a
        matching change of key3, so a consistent trace has at least two.
        """
        matches, elapsed = self._search(SearchMode.all_matches, progress)
        self.log_result(solve_result={
            'status': 'FOUND' if matches else 'NOT_FOUND',
            'keys': [[f'{m.key2:08x}', f'{m.key3:08x}'] for m in matches],
            'candidates_tried': self.candidates_tried,
            'time': elapsed,
        })
        for m in matches:
            log.info(f'RESULT key2={m.key2:08x}, key3={m.key3:08x}')
        log.info(f'RESULT {len(matches)} valid key pairs')
        return matches
