"""
Exceptions raised while assembling a clinical document.

Every failure aborts the whole invocation: callers never receive a
partially assembled bundle.
"""
from typing import List, Optional


class DocumentAssemblyError(Exception):
    """Base class for all assembler errors."""


class ValidationError(DocumentAssemblyError):
    """
    Pre-build checks failed.

    All violations are collected before raising so the caller can show
    them together.
    """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Please fix:\n" + "\n".join(self.errors))


class DecodeError(DocumentAssemblyError):
    """An attachment's binary content could not be read."""

    def __init__(self, title: str, reason: str):
        self.title = title
        self.reason = reason
        super().__init__(f"Could not read attachment '{title}': {reason}")


class FormatError(DocumentAssemblyError, ValueError):
    """An unparseable date, timestamp or address shape."""


class ResourceBuildError(DocumentAssemblyError):
    """A built resource or the composed document is structurally invalid."""

    def __init__(self, message: str, resource_type: Optional[str] = None):
        self.resource_type = resource_type
        super().__init__(message)


class AssemblerBusyError(DocumentAssemblyError):
    """A build was requested while another one is still running."""
