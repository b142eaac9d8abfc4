from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class StreakSummary:
    current: int
    longest: int


def distinct_dates(dates: Iterable[date]) -> List[date]:
    """Unique dates, ascending. Duplicate completions on one day count once."""
    return sorted(set(dates))


def current_streak(dates: Iterable[date], today: date) -> int:
    """
    Consecutive completed days ending at the most recent completion.

    The streak stays alive while the last completion is today or yesterday;
    any older last completion means the streak is broken.
    """
    unique = distinct_dates(dates)
    if not unique:
        return 0
    last = unique[-1]
    if (today - last).days not in (0, 1):
        return 0

    streak = 1
    expected = last
    for d in reversed(unique[:-1]):
        expected -= timedelta(days=1)
        if d != expected:
            break
        streak += 1
    return streak


def longest_streak(dates: Iterable[date]) -> int:
    unique = distinct_dates(dates)
    if not unique:
        return 0
    longest = current = 1
    for prev, curr in zip(unique, unique[1:]):
        if (curr - prev).days == 1:
            current += 1
            longest = max(longest, current)
        else:
            current = 1
    return longest


def summarize(dates: Iterable[date], today: date) -> StreakSummary:
    dates = list(dates)
    return StreakSummary(current=current_streak(dates, today), longest=longest_streak(dates))


def days_since(dates: Iterable[date], today: date) -> Tuple[Optional[date], Optional[int]]:
    unique = distinct_dates(dates)
    if not unique:
        return None, None
    return unique[-1], (today - unique[-1]).days
