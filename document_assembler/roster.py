"""
Patient roster.

The roster is fetched once per session (from a JSON file or an HTTP
endpoint) and is never mutated afterwards.
"""
import json
import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .addresses import subject_addresses
from .models import ExternalAddress, SubjectRecord

logger = logging.getLogger(__name__)


class PatientRoster:
    """Read-only list of SubjectRecords selected by index."""

    def __init__(self, records: List[SubjectRecord]):
        self._records: Tuple[SubjectRecord, ...] = tuple(records)

    @classmethod
    def from_json(cls, payload: Any) -> "PatientRoster":
        """Build a roster from decoded JSON (a list of patient objects)."""
        if not isinstance(payload, list):
            logger.warning("Roster payload is not a list (%s), using empty roster", type(payload).__name__)
            return cls([])
        records = []
        for item in payload:
            if isinstance(item, dict):
                records.append(SubjectRecord.model_validate(item))
            else:
                logger.warning("Skipping roster entry of type %s", type(item).__name__)
        return cls(records)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PatientRoster":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_json(json.load(f))

    @classmethod
    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        reraise=True,
    )
    async def fetch(cls, url: str, timeout: float = 10.0) -> "PatientRoster":
        """
        Download the roster from ``url``.

        Connection failures are retried; HTTP error statuses are not.

        Raises:
            httpx.HTTPError: on transport errors or non-2xx responses
        """
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url)
            response.raise_for_status()
            roster = cls.from_json(response.json())
        logger.info("Fetched %d patient(s) from %s", len(roster), url)
        return roster

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> Tuple[SubjectRecord, ...]:
        return self._records

    def select(self, index: int) -> Optional[SubjectRecord]:
        """Record at ``index``, or None when nothing is selected."""
        if 0 <= index < len(self._records):
            return self._records[index]
        return None

    def addresses_for(self, index: int) -> List[ExternalAddress]:
        """Normalized external addresses of the selected record."""
        return subject_addresses(self.select(index))
