"""Record types and the record-type selection carried by access requests.

A selection is either every type (``AllTypes``) or an explicit set
(``SpecificTypes``). Coverage is decided by :meth:`covers` only; callers never
inspect the stored ``"all"`` marker themselves.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Union

ALL_TYPES_MARKER = "all"


class RecordType(StrEnum):
    prescription = "prescription"
    lab_report = "lab_report"
    xray = "xray"
    discharge_summary = "discharge_summary"
    vaccination = "vaccination"
    imaging = "imaging"
    other = "other"


@dataclass(frozen=True)
class AllTypes:
    def covers(self, record_type: RecordType | str) -> bool:
        return True

    def to_list(self) -> list[str]:
        return [ALL_TYPES_MARKER]

    def serialize(self) -> str:
        return ALL_TYPES_MARKER


@dataclass(frozen=True)
class SpecificTypes:
    types: frozenset[RecordType]

    def covers(self, record_type: RecordType | str) -> bool:
        try:
            return RecordType(record_type) in self.types
        except ValueError:
            return False

    def to_list(self) -> list[str]:
        return sorted(t.value for t in self.types)

    def serialize(self) -> str:
        return ",".join(self.to_list())


RecordTypeSelection = Union[AllTypes, SpecificTypes]


def select_record_types(values: Iterable[str]) -> RecordTypeSelection:
    """Build a normalised selection from user input.

    ``"all"`` anywhere, or a list naming every concrete type, collapses to
    ``AllTypes``. Raises ``ValueError`` for an empty list or an unknown type.
    """
    raw = [v.strip() for v in values if v and v.strip()]
    if not raw:
        raise ValueError("Select at least one record type")
    if ALL_TYPES_MARKER in raw:
        return AllTypes()
    try:
        picked = frozenset(RecordType(v) for v in raw)
    except ValueError as exc:
        raise ValueError(f"Unknown record type: {exc}") from None
    if picked == frozenset(RecordType):
        return AllTypes()
    return SpecificTypes(picked)


def parse_record_types(stored: str) -> RecordTypeSelection:
    """Inverse of ``serialize`` for values read back from storage."""
    return select_record_types(stored.split(","))
