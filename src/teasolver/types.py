from __future__ import annotations

from enum import Enum, unique

@unique
class SearchMode(Enum):
    first_match = 'first-match'
    all_matches = 'all-matches'


class InsufficientObservationsError(ValueError):
    pass


class TraceFormatError(ValueError):
    pass
