from __future__ import annotations

import pytest

from teasolver.differential_index import DifferentialIndex
from teasolver.fast_solver import PartialKey, solve_partial_key2
from teasolver.observation import Observation, ObservationTrace
from teasolver.search import CandidateSearch, Found, NotFound, Submasks
from teasolver.synthetic import generate_trace
from teasolver.tea_util import MASK32, MSB
from teasolver.types import InsufficientObservationsError, SearchMode


@pytest.mark.parametrize("mask", [
    0x00000000,
    0x00000001,
    0x80000000,
    0x80000005,
    0x0000f0f0,
    0x80001001,
    0xc0000003,
])
def test_submasks_complete(mask: int):
    submasks = list(Submasks(mask))

    assert len(submasks) == 1 << bin(mask).count('1')
    assert len(submasks) == len(Submasks(mask))
    assert len(set(submasks)) == len(submasks)
    assert all(s & ~mask == 0 for s in submasks)
    assert submasks == sorted(submasks, reverse=True)
    assert submasks[0] == mask
    assert submasks[-1] == 0


def test_submasks_restartable():
    submasks = Submasks(0x80000003)
    assert list(submasks) == list(submasks) == [0x80000003, 0x80000002, 0x80000001, 0x80000000, 3, 2, 1, 0]


def key_pair_set(matches: list[Found]) -> set[tuple[int, int]]:
    return {(m.key2, m.key3) for m in matches}


@pytest.mark.parametrize("key2, key3", [
    (0x00000000, 0x00000000),
    (0x80000000, 0x00000001),
    (0x3c6ef372, 0xa54ff53a),
    (0xdeadbeef, 0x0badf00d),
])
def test_search_recovers_key(key2: int, key3: int):
    trace = generate_trace(key2, key3, 64, seed=key3)
    partial = solve_partial_key2(trace, DifferentialIndex(trace))
    search = CandidateSearch(trace, partial)

    # flipping the MSB of both keys leaves every half-round unchanged
    equivalent = {(key2, key3), (key2 ^ MSB, key3 ^ MSB)}

    result = search.run()
    assert isinstance(result, Found)
    assert (result.key2, result.key3) in equivalent
    assert result.key2 & MSB
    assert search.candidates_tried == 1

    matches = search.run_all()
    assert key_pair_set(matches) == equivalent
    assert search.candidates_tried == 2


def test_search_explicit_empty_submask():
    key2, key3 = 0x89abcdef, 0x01234567
    trace = generate_trace(key2, key3, 4, seed=1)
    search = CandidateSearch(trace, PartialKey(key2=key2, solvable_bits=MASK32))

    assert list(search.candidates()) == [key2]
    result = search.run()
    assert result == Found(key2, key3)
    assert search.candidates_tried == 1


def test_search_not_found_tries_everything():
    trace = generate_trace(0x3c6ef372, 0xa54ff53a, 64, seed=5)
    partial = solve_partial_key2(trace, DifferentialIndex(trace))

    last = trace[-1]
    trace.observations[-1] = Observation(last.a, last.b, last.sum, last.b_prime ^ 1)

    search = CandidateSearch(trace, partial)
    result = search.run()
    assert isinstance(result, NotFound)
    assert not result
    assert search.candidates_tried == 2
    assert search.run_all() == []


def test_check_candidate():
    key2, key3 = 0x0f1e2d3c, 0x4b5a6978
    trace = generate_trace(key2, key3, 64, seed=2)
    search = CandidateSearch(trace, PartialKey(key2=0, solvable_bits=0))

    assert search.check_candidate(key2) == Found(key2, key3)
    assert search.check_candidate(key2 ^ MSB) == Found(key2 ^ MSB, key3 ^ MSB)
    assert search.check_candidate(key2 ^ 1) is None


def test_search_mode():
    key2, key3 = 0x11223344, 0x55667788
    trace = generate_trace(key2, key3, 64, seed=9)
    search = CandidateSearch(trace, solve_partial_key2(trace, DifferentialIndex(trace)))

    assert isinstance(search.search(SearchMode.first_match), Found)
    assert len(search.search(SearchMode.all_matches)) == 2


def test_found_results_verify():
    trace = generate_trace(0x9e3779b9, 0x7f4a7c15, 64, seed=4)
    search = CandidateSearch(trace, solve_partial_key2(trace, DifferentialIndex(trace)))
    for found in search.run_all():
        assert all(obs.verify(found.key2, found.key3) for obs in trace)


def test_search_needs_observations():
    with pytest.raises(InsufficientObservationsError):
        CandidateSearch(ObservationTrace([]), PartialKey(key2=0, solvable_bits=0))
