"""
Pre-build validation.

Checks the minimum-content rules before anything is built and reports
every violation at once.
"""
from typing import List, Optional

from ..errors import ValidationError
from ..models import AuthorRecord, DocumentRequest

MISSING_SUBJECT = "Select a patient (required)."
MISSING_AUTHOR = "Select an author (required)."
MISSING_STATUS = "Status is required."
MISSING_TITLE = "Title is required."
MISSING_CONTENT = (
    "Add at least one clinical entry, or a recommendation, "
    "or upload at least one document."
)


def has_linkable_content(request: DocumentRequest) -> bool:
    """True when the section would reference at least one real item."""
    has_entries = any(entry.key_text and entry.key_text.strip() for entry in request.entries)
    has_docs = len(request.attachments) > 0
    return has_entries or request.has_recommendation() or has_docs


def collect_errors(request: DocumentRequest, author: Optional[AuthorRecord] = None) -> List[str]:
    """
    Collect all pre-build violations.

    Args:
        request: Form state to check
        author: Author resolved from the directory (None if none available)

    Returns:
        List of user-facing messages (empty when the request is buildable)
    """
    errors = []
    if request.subject is None:
        errors.append(MISSING_SUBJECT)
    if author is None:
        errors.append(MISSING_AUTHOR)
    if not request.status:
        errors.append(MISSING_STATUS)
    if not request.title or not request.title.strip():
        errors.append(MISSING_TITLE)
    if not has_linkable_content(request):
        errors.append(MISSING_CONTENT)
    return errors


def validate_request(request: DocumentRequest, author: Optional[AuthorRecord] = None) -> None:
    """
    Raises:
        ValidationError: listing every violation found
    """
    errors = collect_errors(request, author)
    if errors:
        raise ValidationError(errors)
