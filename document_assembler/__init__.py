"""
Clinical Document Assembler

Builds self-contained FHIR R4 document Bundles from form-captured
clinical data (patient, author, clinical entries, attachments).
"""
from .directory import PractitionerDirectory
from .errors import (
    AssemblerBusyError,
    DecodeError,
    DocumentAssemblyError,
    FormatError,
    ResourceBuildError,
    ValidationError,
)
from .fhir import AssemblyResult, DocumentAssembler
from .roster import PatientRoster

__all__ = [
    "AssemblerBusyError",
    "AssemblyResult",
    "DecodeError",
    "DocumentAssembler",
    "DocumentAssemblyError",
    "FormatError",
    "PatientRoster",
    "PractitionerDirectory",
    "ResourceBuildError",
    "ValidationError",
]
