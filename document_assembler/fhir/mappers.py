"""
FHIR Resource Mappers

Maps normalized form state to FHIR R4 resources. Each mapper is a pure
function of its inputs: it receives the resource id to use and a
BuildContext holding the ids of the resources it references, and
returns the resource as a JSON-ready dict. Every payload is checked
against the fhir.resources (R4B) model before it is returned.

Mappings:
- SubjectRecord → Patient
- AuthorRecord → Practitioner
- encounter text → Encounter
- custodian name → Organization
- ImmunizationEntry → Immunization
- Recommendation → ImmunizationRecommendation
- DiagnosticEntry → DiagnosticReport
- ResultEntry → Observation
- SpecimenEntry → Specimen
- DecodedAttachment → Binary + DocumentReference
- section entries → Composition
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from fhir.resources.R4B.binary import Binary
from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.composition import Composition
from fhir.resources.R4B.diagnosticreport import DiagnosticReport
from fhir.resources.R4B.documentreference import DocumentReference
from fhir.resources.R4B.encounter import Encounter
from fhir.resources.R4B.immunization import Immunization
from fhir.resources.R4B.immunizationrecommendation import ImmunizationRecommendation
from fhir.resources.R4B.observation import Observation
from fhir.resources.R4B.organization import Organization
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.practitioner import Practitioner
from fhir.resources.R4B.specimen import Specimen

from ..errors import ResourceBuildError
from ..models import (
    AuthorRecord,
    DecodedAttachment,
    DiagnosticCategory,
    DiagnosticEntry,
    DocumentKind,
    Gender,
    ImmunizationEntry,
    Recommendation,
    ResultEntry,
    SpecimenEntry,
    SubjectRecord,
)
from ..temporal import format_timestamp, normalize_date, normalize_timestamp
from .identifiers import urn
from .narrative import build_narrative, empty_section_narrative

logger = logging.getLogger(__name__)

SNOMED = "http://snomed.info/sct"
LOINC = "http://loinc.org"
PROFILE_BASE = "http://hl7.org/fhir/StructureDefinition/"
BINARY_PROFILE = "https://nrces.in/ndhm/fhir/r4/StructureDefinition/Binary"


@dataclass(frozen=True)
class DocumentType:
    """Document-level coding and labels for one DocumentKind."""
    coding: Dict[str, str]
    section_title: str
    pointer_text: str
    bundle_prefix: str
    empty_message: str


DOCUMENT_TYPES: Dict[DocumentKind, DocumentType] = {
    DocumentKind.IMMUNIZATION_RECORD: DocumentType(
        coding={"system": SNOMED, "code": "41000179103", "display": "Immunization record"},
        section_title="Immunization section",
        pointer_text="Immunization document",
        bundle_prefix="ImmunizationBundle",
        empty_message="No immunization entries",
    ),
    DocumentKind.DIAGNOSTIC_REPORT: DocumentType(
        coding={"system": LOINC, "code": "11502-2", "display": "Laboratory report"},
        section_title="Laboratory report",
        pointer_text="Laboratory report",
        bundle_prefix="DiagnosticReportBundle",
        empty_message="No diagnostic entries",
    ),
}

_DIAGNOSTIC_CATEGORIES = {
    DiagnosticCategory.LAB: {"system": "http://terminology.hl7.org/CodeSystem/v2-0074", "code": "LAB", "display": "Laboratory"},
    DiagnosticCategory.IMG: {"system": "http://terminology.hl7.org/CodeSystem/v2-0074", "code": "RAD", "display": "Imaging"},
}

_MODELS = {
    "Binary": Binary,
    "Bundle": Bundle,
    "Composition": Composition,
    "DiagnosticReport": DiagnosticReport,
    "DocumentReference": DocumentReference,
    "Encounter": Encounter,
    "Immunization": Immunization,
    "ImmunizationRecommendation": ImmunizationRecommendation,
    "Observation": Observation,
    "Organization": Organization,
    "Patient": Patient,
    "Practitioner": Practitioner,
    "Specimen": Specimen,
}


@dataclass(frozen=True)
class BuildContext:
    """
    Shared, read-only inputs for one assembly invocation.

    Attributes:
        ids: Resource ids by role ("patient", "author", "encounter", "custodian")
        now: The single build instant used for every "now" timestamp
        authored: Canonical authoring timestamp of the document
        language: Language tag for resources and narratives
        kind: Document kind (selects codings)
        subject_name: Display text for subject references
        author_name: Display text for author references
    """
    ids: Mapping[str, str]
    now: datetime
    authored: str
    language: str
    kind: DocumentKind = DocumentKind.IMMUNIZATION_RECORD
    subject_name: str = ""
    author_name: str = ""

    @property
    def build_time(self) -> str:
        return format_timestamp(self.now)

    @property
    def document_type(self) -> DocumentType:
        return DOCUMENT_TYPES[self.kind]

    def ref(self, role: str, display: Optional[str] = None) -> Dict[str, str]:
        """Reference to the resource playing ``role``."""
        reference = {"reference": urn(self.ids[role])}
        if display:
            reference["display"] = display
        return reference

    def subject_ref(self) -> Dict[str, str]:
        return self.ref("patient", self.subject_name or None)

    def author_ref(self) -> Dict[str, str]:
        return self.ref("author", self.author_name or None)


def map_gender(value: Optional[str]) -> Optional[str]:
    """
    Classify free-text sex/gender by first letter (case-insensitive).

    Returns None when no value was captured, "unknown" when the value
    does not start with m, f or o.
    """
    if value is None or not str(value).strip():
        return None
    first = str(value).strip().lower()[0]
    if first == "m":
        return Gender.MALE.value
    if first == "f":
        return Gender.FEMALE.value
    if first == "o":
        return Gender.OTHER.value
    return Gender.UNKNOWN.value


def codeable(text: str, code: Optional[str] = None, system: str = SNOMED) -> Dict[str, Any]:
    """Text-only CodeableConcept, or coded-plus-text when a code is given."""
    code = (code or "").strip()
    if not code:
        return {"text": text}
    return {"coding": [{"system": system, "code": code, "display": text}], "text": text}


def _compact(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None values and empty lists (FHIR forbids empty arrays)."""
    return {k: v for k, v in payload.items() if v is not None and v != []}


def _base(resource_type: str, resource_id: str, ctx: BuildContext, title: str, lines: List[Optional[str]]) -> Dict[str, Any]:
    return {
        "resourceType": resource_type,
        "id": resource_id,
        "language": ctx.language,
        "meta": {"profile": [f"{PROFILE_BASE}{resource_type}"]},
        "text": build_narrative(title, lines, ctx.language),
    }


def validated(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check a payload against its fhir.resources model.

    Raises:
        ResourceBuildError: if the model rejects the payload
    """
    resource_type = payload["resourceType"]
    try:
        _MODELS[resource_type].model_validate(payload)
    except PydanticValidationError as e:
        raise ResourceBuildError(
            f"Invalid {resource_type} resource: {e.error_count()} error(s)",
            resource_type=resource_type,
        ) from e
    logger.debug("Built %s/%s", resource_type, payload["id"])
    return payload


class PatientMapper:
    """Maps a roster SubjectRecord to FHIR Patient resource."""

    @staticmethod
    def map(
        subject: SubjectRecord,
        resource_id: str,
        ctx: BuildContext,
        selected_address: Optional[str] = None,
        identifier_system: str = "https://healthid.ndhm.gov.in",
        secondary_system: str = "https://abdm.gov.in/abha",
        address_scheme: str = "abha",
        country_code: str = "",
    ) -> Dict[str, Any]:
        """
        Convert a roster entry to a FHIR Patient resource.

        Args:
            subject: Raw roster entry
            resource_id: Id to give the resource
            ctx: Build context
            selected_address: External address chosen for the url telecom
            identifier_system: System of the primary identifier
            secondary_system: System of the secondary (abha_ref) identifier
            address_scheme: URL scheme of the external-address telecom
            country_code: Prefix for phone numbers without one

        Returns:
            Patient resource as a dict
        """
        identifiers = []
        if subject.primary_identifier:
            identifiers.append({"system": identifier_system, "value": subject.primary_identifier})
        if subject.abha_ref:
            identifiers.append({"system": secondary_system, "value": subject.abha_ref})

        telecom = []
        phone = subject.contact_phone(country_code)
        if phone:
            telecom.append({"system": "phone", "value": phone})
        if subject.email:
            telecom.append({"system": "email", "value": subject.email})
        if selected_address:
            telecom.append({"system": "url", "value": f"{address_scheme}://{selected_address}"})

        gender = map_gender(subject.gender)
        birth_date = normalize_date(subject.raw_birth_date)

        patient = _base(
            "Patient", resource_id, ctx, "Patient",
            [subject.name, " ".join(filter(None, [gender, birth_date]))],
        )
        patient.update(_compact({
            "identifier": identifiers,
            "name": [{"text": subject.name}] if subject.name else None,
            "telecom": telecom,
            "gender": gender,
            "birthDate": birth_date,
            "address": [{"text": subject.address}] if subject.address else None,
        }))
        return validated(patient)


class PractitionerMapper:
    """Maps a directory AuthorRecord to FHIR Practitioner resource."""

    @staticmethod
    def map(author: AuthorRecord, resource_id: str, ctx: BuildContext) -> Dict[str, Any]:
        registration = author.registration
        identifiers = []
        if registration and registration.system and registration.value:
            identifiers.append({"system": registration.system, "value": registration.value})

        telecom = []
        if author.phone:
            telecom.append({"system": "phone", "value": author.phone})
        if author.email:
            telecom.append({"system": "email", "value": author.email})

        practitioner = _base("Practitioner", resource_id, ctx, "Practitioner", [author.name, author.qualification])
        practitioner.update(_compact({
            "identifier": identifiers,
            "name": [{"text": author.name}],
            "telecom": telecom,
            "qualification": [{"code": {"text": author.qualification}}] if author.qualification else None,
        }))
        return validated(practitioner)


class EncounterMapper:
    """Maps the free-text encounter field to an ambulatory FHIR Encounter."""

    @staticmethod
    def map(encounter_text: str, resource_id: str, ctx: BuildContext) -> Dict[str, Any]:
        start = ctx.build_time
        encounter = _base("Encounter", resource_id, ctx, "Encounter", [encounter_text])
        encounter.update({
            "status": "finished",
            "class": {
                "system": "http://terminology.hl7.org/CodeSystem/v3-ActCode",
                "code": "AMB",
                "display": "ambulatory",
            },
            "type": [{"text": encounter_text}],
            "subject": ctx.subject_ref(),
            "period": {"start": start, "end": start},
        })
        return validated(encounter)


class OrganizationMapper:
    """Maps the custodian name to FHIR Organization."""

    @staticmethod
    def map(name: str, resource_id: str, ctx: BuildContext) -> Dict[str, Any]:
        organization = _base("Organization", resource_id, ctx, "Organization", [name])
        organization["name"] = name
        return validated(organization)


class ImmunizationMapper:
    """Maps an ImmunizationEntry to FHIR Immunization resource."""

    @staticmethod
    def map(entry: ImmunizationEntry, resource_id: str, ctx: BuildContext) -> Dict[str, Any]:
        """
        Convert one vaccine event to a FHIR Immunization.

        The occurrence falls back to the build time when it is missing
        or unparseable.
        """
        vaccine = entry.vaccine_text.strip()
        occurrence = normalize_timestamp(entry.occurrence, ctx.now)

        immunization = _base(
            "Immunization", resource_id, ctx, "Immunization",
            [f"Vaccine: {vaccine or 'Unknown'}", f"Date: {occurrence}"],
        )
        immunization.update(_compact({
            "status": entry.status.value,
            "vaccineCode": codeable(vaccine or "Unknown vaccine", entry.vaccine_code, entry.vaccine_system),
            "patient": ctx.subject_ref(),
            "occurrenceDateTime": occurrence,
            "lotNumber": entry.lot_number or None,
            "performer": [{"actor": ctx.author_ref()}],
        }))
        return validated(immunization)


class ImmunizationRecommendationMapper:
    """Maps the optional recommendation to FHIR ImmunizationRecommendation."""

    @staticmethod
    def map(recommendation: Recommendation, resource_id: str, ctx: BuildContext) -> Dict[str, Any]:
        text = recommendation.text.strip()
        date = normalize_timestamp(recommendation.date, ctx.now) if recommendation.date else ctx.authored

        resource = _base(
            "ImmunizationRecommendation", resource_id, ctx, "Immunization recommendation",
            [text, f"Date: {date}"],
        )
        resource.update({
            "patient": ctx.subject_ref(),
            "date": date,
            "recommendation": [{
                "vaccineCode": [{"text": text}],
                "forecastStatus": {"text": "Recommended"},
            }],
        })
        return validated(resource)


class DiagnosticReportMapper:
    """Maps a DiagnosticEntry to FHIR DiagnosticReport resource."""

    @staticmethod
    def map(
        entry: DiagnosticEntry,
        resource_id: str,
        ctx: BuildContext,
        result_ids: List[str],
        specimen_ids: List[str],
    ) -> Dict[str, Any]:
        """
        Convert a diagnostic test to a FHIR DiagnosticReport.

        Args:
            entry: Diagnostic entry from the form
            resource_id: Id to give the report
            ctx: Build context
            result_ids: Ids of the Observations built from entry.results
            specimen_ids: Ids of the Specimens built from entry.specimens

        Returns:
            DiagnosticReport resource as a dict
        """
        category = _DIAGNOSTIC_CATEGORIES[entry.category]
        code_text = entry.code_text.strip() or "Unknown test"
        issued = normalize_timestamp(entry.issued, ctx.now)

        report = _base(
            "DiagnosticReport", resource_id, ctx, "DiagnosticReport",
            [f"{code_text} ({entry.category.value})", f"Issued: {issued}"],
        )
        report.update(_compact({
            "status": entry.status.value,
            "category": [{"coding": [category], "text": category["display"]}],
            "code": codeable(code_text, entry.code),
            "subject": ctx.subject_ref(),
            "effectiveDateTime": normalize_timestamp(entry.effective, ctx.now) if entry.effective else None,
            "issued": issued,
            "performer": [ctx.author_ref()],
            "result": [{"reference": urn(i)} for i in result_ids],
            "specimen": [{"reference": urn(i)} for i in specimen_ids],
        }))
        return validated(report)

    @staticmethod
    def shared_timestamps(entry: DiagnosticEntry, now: datetime) -> Dict[str, str]:
        """Issued and effective instants inherited by results and specimens."""
        issued = normalize_timestamp(entry.issued, now)
        effective = normalize_timestamp(entry.effective, now) if entry.effective else issued
        return {"issued": issued, "effective": effective}


class ObservationMapper:
    """Maps a ResultEntry to FHIR Observation resource."""

    @staticmethod
    def map(result: ResultEntry, resource_id: str, ctx: BuildContext, effective: str) -> Dict[str, Any]:
        name = result.name.strip() or "Unknown result"
        observation = _base(
            "Observation", resource_id, ctx, "Result",
            [f"{name}: {result.value}" if result.value else name],
        )
        observation.update(_compact({
            "status": "final",
            "code": codeable(name, result.code),
            "subject": ctx.subject_ref(),
            "performer": [ctx.author_ref()],
            "effectiveDateTime": effective,
            "valueString": result.value or None,
        }))
        return validated(observation)


class SpecimenMapper:
    """Maps a SpecimenEntry to FHIR Specimen resource."""

    @staticmethod
    def map(specimen: SpecimenEntry, resource_id: str, ctx: BuildContext, received: str) -> Dict[str, Any]:
        type_text = specimen.type_text.strip()
        resource = _base("Specimen", resource_id, ctx, "Specimen", [type_text or "Specimen"])
        resource.update(_compact({
            "subject": ctx.subject_ref(),
            "type": {"text": type_text} if type_text else None,
            "receivedTime": received,
        }))
        return validated(resource)


class AttachmentMapper:
    """Maps a decoded attachment to a Binary + DocumentReference pair."""

    @staticmethod
    def map_binary(attachment: DecodedAttachment, resource_id: str, ctx: BuildContext) -> Dict[str, Any]:
        # Binary is not a DomainResource: no narrative
        return validated({
            "resourceType": "Binary",
            "id": resource_id,
            "language": ctx.language,
            "meta": {"profile": [BINARY_PROFILE]},
            "contentType": attachment.media_type,
            "data": attachment.data,
        })

    @staticmethod
    def map_pointer(
        attachment: DecodedAttachment,
        resource_id: str,
        binary_id: str,
        ctx: BuildContext,
    ) -> Dict[str, Any]:
        document_type = ctx.document_type
        pointer = _base("DocumentReference", resource_id, ctx, "DocumentReference", [attachment.title])
        pointer.update({
            "status": "current",
            "type": {"coding": [dict(document_type.coding)], "text": document_type.pointer_text},
            "subject": ctx.subject_ref(),
            "date": ctx.authored,
            "author": [ctx.author_ref()],
            "content": [{
                "attachment": {
                    "contentType": attachment.media_type,
                    "title": attachment.title,
                    "url": urn(binary_id),
                }
            }],
        })
        return validated(pointer)


class CompositionMapper:
    """Builds the root Composition of the document."""

    @staticmethod
    def map(
        title: str,
        status: str,
        section_entries: List[Dict[str, str]],
        resource_id: str,
        ctx: BuildContext,
    ) -> Dict[str, Any]:
        """
        Convert document metadata and section references to a Composition.

        Args:
            title: Document title
            status: Composition status code
            section_entries: References ({reference, type}) in section order
            resource_id: Id to give the composition
            ctx: Build context (encounter/custodian included when their ids exist)

        Returns:
            Composition resource as a dict
        """
        document_type = ctx.document_type
        section: Dict[str, Any] = {
            "title": document_type.section_title,
            "code": {"coding": [dict(document_type.coding)], "text": document_type.coding["display"]},
        }
        if section_entries:
            section["entry"] = section_entries
        else:
            section["text"] = empty_section_narrative(document_type.empty_message, ctx.language)

        composition = _base(
            "Composition", resource_id, ctx, "Composition",
            [title, f"Author: {ctx.author_name}" if ctx.author_name else None],
        )
        composition.update(_compact({
            "status": status,
            "type": {"coding": [dict(document_type.coding)], "text": document_type.coding["display"]},
            "subject": ctx.subject_ref(),
            "encounter": ctx.ref("encounter") if "encounter" in ctx.ids else None,
            "date": ctx.authored,
            "author": [ctx.author_ref()],
            "title": title,
            "custodian": ctx.ref("custodian") if "custodian" in ctx.ids else None,
            "section": [section],
        }))
        return validated(composition)
