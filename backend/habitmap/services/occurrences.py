"""Occurrence value types and the merge policy for colliding dates."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

LABEL_SEPARATOR = " | "

EMPTY_MAPPING: Mapping[date, "ExpandedOccurrence"] = MappingProxyType({})


@dataclass(frozen=True)
class StepDisplay:
    text: str
    clock_time: Optional[str] = None
    weekday: Optional[str] = None
    day_of_month: Optional[int] = None


@dataclass(frozen=True)
class ReminderDisplay:
    time: Optional[str] = None
    message: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.time or "", self.message or "")


@dataclass(frozen=True)
class ExpandedOccurrence:
    date: date
    title: str = ""
    description: str = ""
    steps: Tuple[StepDisplay, ...] = field(default_factory=tuple)
    reminders: Tuple[ReminderDisplay, ...] = field(default_factory=tuple)


def join_labels(labels: Iterable[str]) -> str:
    return LABEL_SEPARATOR.join(label for label in labels if label)


def dedupe_reminders(reminders: Iterable[ReminderDisplay]) -> Tuple[ReminderDisplay, ...]:
    """Drop repeated (time, message) pairs, keeping first-seen order."""
    seen: set[Tuple[str, str]] = set()
    unique = []
    for reminder in reminders:
        if reminder.key in seen:
            continue
        seen.add(reminder.key)
        unique.append(reminder)
    return tuple(unique)


def merge_occurrences(parts: Sequence[ExpandedOccurrence], *, title: Optional[str] = None) -> ExpandedOccurrence:
    """Fold occurrences for the same date into one.

    Steps are concatenated as-is (identical text from two sources stays twice),
    reminders are concatenated and deduplicated, and titles/descriptions are
    joined with " | " skipping empty ones. `title` overrides the joined title.
    """
    if not parts:
        raise ValueError("merge_occurrences() needs at least one occurrence")
    if len(parts) == 1 and title is None:
        return parts[0]
    return ExpandedOccurrence(
        date=parts[0].date,
        title=title if title is not None else join_labels(part.title for part in parts),
        description=join_labels(part.description for part in parts),
        steps=tuple(step for part in parts for step in part.steps),
        reminders=dedupe_reminders(reminder for part in parts for reminder in part.reminders),
    )


def put_occurrence(accumulator: Dict[date, ExpandedOccurrence], occurrence: ExpandedOccurrence) -> None:
    """Insert into a private accumulator, merging with any occurrence already on that date."""
    existing = accumulator.get(occurrence.date)
    if existing is None:
        accumulator[occurrence.date] = occurrence
    else:
        accumulator[occurrence.date] = merge_occurrences([existing, occurrence])


def freeze(accumulator: Mapping[date, ExpandedOccurrence]) -> Mapping[date, ExpandedOccurrence]:
    """Return a read-only, date-ordered copy of an accumulator."""
    if not accumulator:
        return EMPTY_MAPPING
    return MappingProxyType({day: accumulator[day] for day in sorted(accumulator)})
