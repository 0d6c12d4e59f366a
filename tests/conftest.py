"""Shared fixtures: pinned clock, deterministic ids and sample records."""
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from document_assembler.directory import PractitionerDirectory
from document_assembler.fhir.mappers import BuildContext
from document_assembler.models import (
    DocumentRequest,
    ImmunizationEntry,
    SubjectRecord,
)
from document_assembler.temporal import format_timestamp

IST = timezone(timedelta(hours=5, minutes=30))
FIXED_NOW = datetime(2024, 3, 10, 14, 30, 15, tzinfo=IST)
FIXED_NOW_TEXT = "2024-03-10T14:30:15+05:30"


def sequential_ids(start: int = 1) -> Callable[[], str]:
    """Id factory producing predictable UUID-shaped ids."""
    counter = iter(range(start, 10**9))

    def _next() -> str:
        return f"00000000-0000-4000-8000-{next(counter):012d}"

    return _next


SAMPLE_SUBJECT = {
    "id": "pt-001",
    "name": "Asha Singh",
    "dob": "15-06-1990",
    "gender": "F",
    "mobile": "9876543210",
    "email": "asha@example.org",
    "abha_ref": "91-1234-5678-9012",
    "additional_attributes": {
        "abha_addresses": [
            "asha.s@abdm",
            {"address": "asha@abdm", "isPrimary": True},
        ]
    },
}


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def id_factory():
    return sequential_ids()


@pytest.fixture
def subject():
    return SubjectRecord.model_validate(SAMPLE_SUBJECT)


@pytest.fixture
def directory():
    return PractitionerDirectory.default()


@pytest.fixture
def ctx():
    """Build context with fixed ids for mapper tests."""
    return BuildContext(
        ids={"patient": "patient-1", "author": "author-1"},
        now=FIXED_NOW,
        authored=format_timestamp(FIXED_NOW),
        language="en-IN",
        subject_name="Asha Singh",
        author_name="Dr. A. Verma",
    )


@pytest.fixture
def immunization_request(subject):
    """The minimal buildable immunization record request."""
    return DocumentRequest(
        subject=subject,
        author_index=0,
        title="Immunization Record",
        status="final",
        entries=[ImmunizationEntry(vaccine_text="BCG", status="completed")],
    )
