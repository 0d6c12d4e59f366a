"""
Practitioner directory.

A read-only registry of authors, created once and passed explicitly to
the assembler.
"""
import logging
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from .models import AuthorRecord

logger = logging.getLogger(__name__)

_DEFAULT_PRACTITIONERS = (
    {
        "id": "prac-1",
        "name": "Dr. A. Verma",
        "qualification": "MBBS, MD",
        "phone": "+919000011111",
        "email": "verma@example.org",
        "registration": {"system": "https://nmc.org.in", "value": "NMC-123"},
    },
    {
        "id": "prac-2",
        "name": "Dr. B. Rao",
        "qualification": "MBBS, MS",
        "phone": "+919000022222",
        "email": "rao@example.org",
        "registration": {"system": "https://nmc.org.in", "value": "NMC-456"},
    },
)


class PractitionerDirectory:
    """Immutable, index-addressed list of AuthorRecords."""

    def __init__(self, records: Iterable[AuthorRecord]):
        self._records: Tuple[AuthorRecord, ...] = tuple(records)

    @classmethod
    def default(cls) -> "PractitionerDirectory":
        """Directory with the built-in sample practitioners."""
        return cls.from_records(_DEFAULT_PRACTITIONERS)

    @classmethod
    def from_records(cls, records: Iterable[Union[AuthorRecord, Dict[str, Any]]]) -> "PractitionerDirectory":
        """Accept AuthorRecords, flattened dicts or FHIR Practitioner dicts."""
        return cls(
            r if isinstance(r, AuthorRecord) else AuthorRecord.from_practitioner(r)
            for r in records
        )

    @property
    def records(self) -> Tuple[AuthorRecord, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def select(self, index: int) -> Optional[AuthorRecord]:
        """
        Author at ``index``.

        Out-of-range indexes fall back to the first entry; an empty
        directory yields None.
        """
        if not self._records:
            return None
        if 0 <= index < len(self._records):
            return self._records[index]
        logger.warning("Author index %d out of range, using %s", index, self._records[0].name)
        return self._records[0]
