"""Contribution heatmap over UTC calendar days."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import date, timedelta

MIN_WEEKS = 1
MAX_WEEKS = 52


@dataclass(frozen=True)
class ContributionDay:
    date: date
    count: int

    @property
    def key(self) -> str:
        return self.date.isoformat()


@dataclass(frozen=True)
class ContributionSummary:
    total_contributions: int
    current_streak: int
    longest_streak: int
    active_days: int


class ContributionGraph:
    """The trailing ``weeks * 7`` days ending ``today``, oldest first.

    Days are produced on demand from ``counts`` and every iteration starts
    over, so one graph can be rendered several times. Days without activity
    are yielded with a zero count.
    """

    def __init__(self, counts: Mapping[date, int], today: date, weeks: int):
        if not MIN_WEEKS <= weeks <= MAX_WEEKS:
            raise ValueError(f"weeks must be between {MIN_WEEKS} and {MAX_WEEKS}")
        self._counts = dict(counts)
        self.today = today
        self.weeks = weeks

    @property
    def start(self) -> date:
        return self.today - timedelta(days=len(self) - 1)

    def __len__(self) -> int:
        return self.weeks * 7

    def __iter__(self) -> Iterator[ContributionDay]:
        start = self.start
        for offset in range(len(self)):
            day = start + timedelta(days=offset)
            yield ContributionDay(date=day, count=self._counts.get(day, 0))

    def as_dict(self) -> dict[str, int]:
        return {day.key: day.count for day in self}

    def weeks_grid(self) -> Iterator[list[ContributionDay]]:
        """Seven-day columns for the heatmap, oldest column first."""
        column: list[ContributionDay] = []
        for day in self:
            column.append(day)
            if len(column) == 7:
                yield column
                column = []

    def summary(self) -> ContributionSummary:
        counts = [day.count for day in self]
        longest = run = 0
        for count in counts:
            run = run + 1 if count > 0 else 0
            longest = max(longest, run)

        # A streak survives a quiet today as long as yesterday was active.
        trailing = counts if counts[-1] > 0 else counts[:-1]
        current = 0
        for count in reversed(trailing):
            if count == 0:
                break
            current += 1

        return ContributionSummary(
            total_contributions=sum(counts),
            current_streak=current,
            longest_streak=longest,
            active_days=sum(1 for c in counts if c > 0),
        )
