"""
FHIR Document Module

Converts captured form state into a FHIR R4 document Bundle. Resource
payloads are checked with the fhir.resources library.

Components:
- mappers: Individual resource mappers (Patient, Immunization, etc.)
- bundler: Composition and document Bundle assembly
- attachments: Concurrent attachment decoding
- validator: Pre-build checks
- converter: Main assembly service
"""
from .converter import AssemblyResult, DocumentAssembler
from .bundler import FHIRBundler, DocumentComposer

__all__ = [
    "AssemblyResult",
    "DocumentAssembler",
    "FHIRBundler",
    "DocumentComposer",
]
