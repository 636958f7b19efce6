"""
Observed half-rounds and traces of them
"""
from __future__ import annotations

TYPE_CHECKING=False
if TYPE_CHECKING:
    from typing import Any, Iterable, Iterator, Self

from dataclasses import dataclass, field
from pathlib import Path
import logging

import numpy as np
import numpy.typing as npt

from .tea_util import MASK32, U32Array, check_word, diff_term, diff_term_np, half_round, half_round_np
from .types import TraceFormatError


log = logging.getLogger(__name__)


@dataclass(eq=False, frozen=True)
class Observation:
    """
    a single half-round collected from tracing the cipher.

    The four observed words are read-only. `diff_term` holds (key2 ^ a) + key3
    once `diff_term_valid` is set. It is filled in on first use and never
    changes afterwards.
    """
    a: int
    b: int
    sum: int
    b_prime: int
    diff_term: int = field(default=0, init=False)
    diff_term_valid: bool = field(default=False, init=False)

    def __post_init__(self):
        for name in ('a', 'b', 'sum', 'b_prime'):
            object.__setattr__(self, name, check_word(name, getattr(self, name)))

    def compute_diff_term(self) -> int:
        if not self.diff_term_valid:
            object.__setattr__(self, 'diff_term', diff_term(self.a, self.b, self.sum, self.b_prime))
            object.__setattr__(self, 'diff_term_valid', True)
        return self.diff_term

    def key3_from_key2(self, key2: int) -> int:
        """key3 = ((key2 ^ a) + key3) - (key2 ^ a)"""
        self.compute_diff_term()
        return (self.diff_term - (key2 ^ self.a)) & MASK32

    def verify(self, key2: int, key3: int) -> bool:
        return half_round(self.a, self.b, self.sum, key2, key3) == self.b_prime

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.a, self.b, self.sum, self.b_prime)

    def __repr__(self):
        return f'Observation(a={self.a:#010x}, b={self.b:#010x}, sum={self.sum:#010x}, b_prime={self.b_prime:#010x})'


class ObservationTrace:
    """
    ordered sequence of observations. This is the only owner of the
    Observation objects, everything else refers to them by index.
    """
    observations: list[Observation]
    file_path: Path|None

    def __init__(self, observations: Iterable[Observation], file_path: Path|None=None):
        self.observations = list(observations)
        self.file_path = file_path

    @classmethod
    def from_tuples(cls, tuples: Iterable[tuple[int, int, int, int]], file_path: Path|None=None) -> Self:
        return cls((Observation(*t) for t in tuples), file_path=file_path)

    @classmethod
    def from_array(cls, arr: npt.ArrayLike, file_path: Path|None=None) -> Self:
        arr = np.array(arr, dtype=np.int64)
        if arr.size == 0:
            arr = arr.reshape(0, 4)
        if arr.ndim != 2 or arr.shape[1] != 4:
            raise TraceFormatError(f'expected an array of shape (n, 4), got {arr.shape}')
        try:
            return cls.from_tuples((tuple(int(x) for x in row) for row in arr), file_path=file_path)
        except ValueError as e:
            where = f'{file_path}: ' if file_path else ''
            raise TraceFormatError(f'{where}{e}') from e

    @classmethod
    def load(cls, trace_path: Path) -> Self:
        trace_path = Path(trace_path)
        if trace_path.suffix == '.npz':
            return cls.load_npz(trace_path)
        return cls.load_txt(trace_path)

    @classmethod
    def load_txt(cls, trace_path: Path) -> Self:
        rows = []
        with open(trace_path, 'r', encoding='utf-8') as f:
            try:
                numbered = list(enumerate(f, start=1))
            except UnicodeDecodeError as e:
                log.error(f'{trace_path}: {e}')
                raise TraceFormatError(f'{trace_path}: not a text file ({e})') from e

            for lineno, line in numbered:
                line = line.split('#', 1)[0].strip()
                if not line:
                    continue
                words = line.replace(',', ' ').split()
                if len(words) != 4:
                    log.error(f'{trace_path}:{lineno}: expected 4 words, got {len(words)}')
                    raise TraceFormatError(f'{trace_path}:{lineno}: expected 4 words (a, b, sum, b_prime), got {len(words)}')
                try:
                    row = tuple(int(w, 16) for w in words)
                    rows.append(Observation(*row))
                except ValueError as e:
                    log.error(f'{trace_path}:{lineno}: {e}')
                    raise TraceFormatError(f'{trace_path}:{lineno}: {e}') from e

        return cls(rows, file_path=Path(trace_path))

    @classmethod
    def load_npz(cls, trace_path: Path) -> Self:
        with np.load(trace_path) as f:
            try:
                columns = [np.array(f[name], dtype=np.int64) for name in ('a', 'b', 'sum', 'b_prime')]
            except KeyError as e:
                raise TraceFormatError(f'{trace_path}: missing array {e}') from e

        lengths = {len(c) for c in columns}
        if len(lengths) > 1:
            raise TraceFormatError(f'{trace_path}: arrays a, b, sum, b_prime must have the same length')

        return cls.from_array(np.stack(columns, axis=-1), file_path=Path(trace_path))

    def save_txt(self, trace_path: Path):
        with open(trace_path, 'w') as f:
            f.write('# a b sum b_prime\n')
            for obs in self.observations:
                f.write(' '.join(f'{x:08x}' for x in obs.as_tuple()) + '\n')

    def save_npz(self, trace_path: Path):
        arr = self.as_array()
        np.savez(trace_path, a=arr[:, 0], b=arr[:, 1], sum=arr[:, 2], b_prime=arr[:, 3])

    def as_array(self) -> U32Array:
        if not self.observations:
            return np.zeros((0, 4), dtype=np.uint32)
        return np.array([obs.as_tuple() for obs in self.observations], dtype=np.uint32)

    def diff_terms(self) -> U32Array:
        arr = self.as_array()
        return diff_term_np(arr[:, 0], arr[:, 1], arr[:, 2], arr[:, 3])

    def verify_all(self, key2: int, key3: int) -> np.ndarray[Any, np.dtype[np.bool_]]:
        """
        check a key pair against every observation at once by evaluating the
        half-round forward.
        """
        arr = self.as_array()
        b_prime = half_round_np(arr[:, 0], arr[:, 1], arr[:, 2], key2, key3)
        return b_prime == arr[:, 3]

    def is_chained(self) -> bool:
        """true if each observation consumes the previous observation's output"""
        return all(prev.b_prime == cur.b for prev, cur in zip(self.observations, self.observations[1:]))

    def __len__(self) -> int:
        return len(self.observations)

    def __getitem__(self, idx: int) -> Observation:
        return self.observations[idx]

    def __iter__(self) -> Iterator[Observation]:
        return iter(self.observations)

    def __repr__(self):
        return f'{self.__class__.__name__}(<{len(self)} observations>, file_path={self.file_path!r})'
