from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pytest

from teasolver.observation import Observation, ObservationTrace
from teasolver.search import Found, NotFound
from teasolver.solver import KeySolver
from teasolver.synthetic import generate_trace
from teasolver.tea_util import MASK32, MSB, SOLVABLE_MASK
from teasolver.types import InsufficientObservationsError

REFERENCE_TRACE = Path(__file__).resolve().parent.parent / 'traces' / 'reference.txt'


def test_reference_trace():
    trace = ObservationTrace.load(REFERENCE_TRACE)
    solver = KeySolver(trace)
    result = solver.solve()

    assert isinstance(result, Found)
    assert all(obs.verify(result.key2, result.key3) for obs in trace)
    assert np.all(trace.verify_all(result.key2, result.key3))
    assert not solver.solvable_bits & MSB
    assert solver.solvable_bits != 0


def test_reference_trace_deterministic():
    results = []
    for _ in range(2):
        solver = KeySolver(ObservationTrace.load(REFERENCE_TRACE))
        results.append((solver.solvable_bits, solver.solve()))
    assert results[0] == results[1]


def test_reference_trace_all_matches():
    trace = ObservationTrace.load(REFERENCE_TRACE)
    solver = KeySolver(trace)
    first = solver.solve()
    matches = KeySolver(trace).solve_all()

    assert first in matches
    assert len(matches) >= 2
    assert len(matches) == 1 << solver.partial_key.num_unknown_bits
    for m in matches:
        assert np.all(trace.verify_all(m.key2, m.key3))


def test_reference_trace_corrupted():
    trace = ObservationTrace.load(REFERENCE_TRACE)
    last = trace[-1]
    trace.observations[-1] = Observation(last.a, last.b, last.sum, last.b_prime ^ 0x01)

    solver = KeySolver(trace)
    result = solver.solve()
    assert result == NotFound()
    assert solver.candidates_tried == 1 << solver.partial_key.num_unknown_bits


@pytest.mark.parametrize("key2, key3", [
    (0x00000000, 0xffffffff),
    (0x7fffffff, 0x00000000),
    (0xc0ffee00, 0x00c0ffee),
])
def test_synthetic_trace(key2: int, key3: int):
    trace = generate_trace(key2, key3, 64, seed=1234)
    solver = KeySolver(trace)

    assert solver.solvable_bits == SOLVABLE_MASK
    assert solver.partial_key.key2 == key2 & SOLVABLE_MASK

    result = solver.solve()
    assert isinstance(result, Found)
    assert result.key2 & SOLVABLE_MASK == key2 & SOLVABLE_MASK
    assert (result.key2, result.key3) in {(key2, key3), (key2 ^ MSB, key3 ^ MSB)}


def test_needs_two_observations():
    trace = generate_trace(0x01234567, 0x89abcdef, 1, seed=0)
    with pytest.raises(InsufficientObservationsError):
        KeySolver(trace)

    with pytest.raises(InsufficientObservationsError):
        KeySolver(ObservationTrace([]), allow_single=True)


def test_single_observation_allowed(caplog):
    trace = generate_trace(0x01234567, 0x89abcdef, 1, seed=0)
    with caplog.at_level(logging.WARNING):
        solver = KeySolver(trace, allow_single=True)
    assert any(r.levelno == logging.WARNING for r in caplog.records)

    assert solver.solvable_bits == 0
    result = solver.solve()
    # without a second observation the very first candidate is accepted
    assert result.key2 == MASK32
    assert trace[0].verify(result.key2, result.key3)
    assert solver.candidates_tried == 1


def test_result_is_logged(caplog):
    caplog.set_level(logging.DEBUG)
    solver = KeySolver(ObservationTrace.load(REFERENCE_TRACE))
    found = solver.solve()

    records = [r for r in caplog.records if hasattr(r, 'solve_result')]
    assert len(records) == 1
    solve_result = records[0].solve_result
    assert solve_result['status'] == 'FOUND'
    assert solve_result['key2'] == f'{found.key2:08x}'
    assert solve_result['key3'] == f'{found.key3:08x}'
    assert records[0].context['trace']['num_observations'] == 7
