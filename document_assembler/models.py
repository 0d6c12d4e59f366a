"""
Pydantic models for the session form state fed into the assembler.

These models describe the input side only:
- SubjectRecord → FHIR Patient
- AuthorRecord → FHIR Practitioner
- ImmunizationEntry → FHIR Immunization
- DiagnosticEntry (+ results, specimens) → FHIR DiagnosticReport, Observation, Specimen
- Recommendation → FHIR ImmunizationRecommendation
- AttachmentSource → FHIR Binary + DocumentReference
"""
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class DocumentKind(str, Enum):
    """Kind of document being assembled; selects the document coding"""
    IMMUNIZATION_RECORD = "immunization-record"
    DIAGNOSTIC_REPORT = "diagnostic-report"


class CompositionStatus(str, Enum):
    """Composition status aligned with FHIR composition-status"""
    PRELIMINARY = "preliminary"
    FINAL = "final"
    AMENDED = "amended"
    ENTERED_IN_ERROR = "entered-in-error"


class ImmunizationStatus(str, Enum):
    """Immunization status aligned with FHIR immunization-status"""
    COMPLETED = "completed"
    ENTERED_IN_ERROR = "entered-in-error"
    NOT_DONE = "not-done"


class DiagnosticStatus(str, Enum):
    """DiagnosticReport status aligned with FHIR diagnostic-report-status"""
    REGISTERED = "registered"
    PARTIAL = "partial"
    PRELIMINARY = "preliminary"
    FINAL = "final"
    AMENDED = "amended"


class DiagnosticCategory(str, Enum):
    """Diagnostic service section (HL7 v2-0074)"""
    LAB = "LAB"
    IMG = "IMG"


class Gender(str, Enum):
    """Patient gender aligned with FHIR administrative-gender"""
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


# ============================================================================
# External records (roster and practitioner directory)
# ============================================================================

class SubjectRecord(BaseModel):
    """
    Raw patient roster entry.

    Upstream rosters are inconsistent, so unknown keys are kept and
    most fields are optional. Records are read-only once fetched.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    id: Optional[Union[int, str]] = None
    name: Optional[str] = None
    dob: Optional[str] = None
    birthDate: Optional[str] = None
    gender: Optional[str] = None
    mobile: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    mrn: Optional[str] = None
    user_ref_id: Optional[str] = None
    abha_ref: Optional[str] = None
    user_id: Optional[Union[int, str]] = None
    abha_addresses: Optional[List[Any]] = None
    additional_attributes: Optional[Dict[str, Any]] = None

    @property
    def primary_identifier(self) -> Optional[str]:
        """First usable local identifier (MRN, then fallbacks)."""
        for candidate in (self.mrn, self.user_ref_id, self.abha_ref, self.id, self.user_id):
            if candidate not in (None, ""):
                return str(candidate)
        return None

    @property
    def raw_birth_date(self) -> Optional[str]:
        return self.dob or self.birthDate

    def contact_phone(self, country_code: str = "") -> Optional[str]:
        """Phone number with the country code prefixed when missing."""
        raw = self.mobile or self.phone
        if not raw:
            return None
        raw = str(raw).strip()
        if raw.startswith("+") or not country_code:
            return raw
        return f"{country_code}{raw}"


class Registration(BaseModel):
    """Practitioner registration (licence) identifier"""
    system: Optional[str] = None
    value: Optional[str] = None


class AuthorRecord(BaseModel):
    """Practitioner directory entry"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    qualification: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    registration: Optional[Registration] = None

    @classmethod
    def from_practitioner(cls, obj: Dict[str, Any]) -> "AuthorRecord":
        """
        Build an AuthorRecord from either a flattened practitioner
        ({id, name, license}) or a FHIR Practitioner-shaped dict.
        """
        if isinstance(obj.get("name"), str):
            registration = obj.get("registration")
            if registration is None and obj.get("license"):
                registration = {"value": obj["license"]}
            return cls(
                id=str(obj.get("id") or ""),
                name=obj["name"],
                qualification=obj.get("qualification"),
                phone=obj.get("phone"),
                email=obj.get("email"),
                registration=registration,
            )

        names = obj.get("name") or []
        name = names[0].get("text") if names and isinstance(names[0], dict) else None
        identifiers = obj.get("identifier") or []
        registration = None
        if identifiers and isinstance(identifiers[0], dict):
            registration = {
                "system": identifiers[0].get("system"),
                "value": identifiers[0].get("value"),
            }
        telecom = {t.get("system"): t.get("value") for t in obj.get("telecom") or [] if isinstance(t, dict)}
        qualifications = obj.get("qualification") or []
        qualification = None
        if qualifications and isinstance(qualifications[0], dict):
            qualification = (qualifications[0].get("code") or {}).get("text")
        return cls(
            id=str(obj.get("id") or ""),
            name=name or "",
            qualification=qualification,
            phone=telecom.get("phone"),
            email=telecom.get("email"),
            registration=registration,
        )


class ExternalAddress(BaseModel):
    """Normalized external-identifier address of a subject"""
    model_config = ConfigDict(frozen=True)

    value: str
    label: str
    primary: bool = False


# ============================================================================
# Clinical entries
# ============================================================================

class ImmunizationEntry(BaseModel):
    """One vaccine administration event"""
    kind: Literal["immunization"] = "immunization"
    vaccine_text: str = ""
    vaccine_code: Optional[str] = Field(None, description="Standard code (SNOMED CT) if known")
    vaccine_system: str = "http://snomed.info/sct"
    occurrence: Optional[str] = Field(None, description="Date or local datetime text")
    status: ImmunizationStatus = ImmunizationStatus.COMPLETED
    lot_number: Optional[str] = None

    @property
    def key_text(self) -> str:
        return self.vaccine_text


class ResultEntry(BaseModel):
    """One result line of a diagnostic report"""
    name: str = ""
    code: Optional[str] = None
    value: Optional[str] = None


class SpecimenEntry(BaseModel):
    """One specimen of a diagnostic report"""
    type_text: str = ""


class DiagnosticEntry(BaseModel):
    """One diagnostic test/report with its results and specimens"""
    kind: Literal["diagnostic"] = "diagnostic"
    code_text: str = ""
    code: Optional[str] = Field(None, description="Standard code (SNOMED CT) if known")
    category: DiagnosticCategory = DiagnosticCategory.LAB
    status: DiagnosticStatus = DiagnosticStatus.FINAL
    issued: Optional[str] = None
    effective: Optional[str] = None
    results: List[ResultEntry] = Field(default_factory=list)
    specimens: List[SpecimenEntry] = Field(default_factory=list)

    @property
    def key_text(self) -> str:
        return self.code_text


ClinicalEntry = Annotated[Union[ImmunizationEntry, DiagnosticEntry], Field(discriminator="kind")]


class Recommendation(BaseModel):
    """Optional follow-up recommendation (e.g. next vaccine due)"""
    text: str = ""
    date: Optional[str] = None


# ============================================================================
# Attachments
# ============================================================================

class AttachmentSource(BaseModel):
    """A user-picked file, not yet decoded"""
    title: str = ""
    media_type: Optional[str] = None
    content: Optional[bytes] = None
    path: Optional[Path] = None

    @property
    def display_title(self) -> str:
        """Title as given, else the file name."""
        if self.title:
            return self.title
        return self.path.name if self.path else "attachment"


class DecodedAttachment(BaseModel):
    """An attachment whose content is already base64 text"""
    model_config = ConfigDict(frozen=True)

    title: str
    media_type: str
    data: str


# ============================================================================
# Whole request
# ============================================================================

class DocumentRequest(BaseModel):
    """Everything the form captured for one document build"""
    kind: DocumentKind = DocumentKind.IMMUNIZATION_RECORD
    subject: Optional[SubjectRecord] = None
    author_index: int = 0
    selected_address: Optional[str] = None
    title: str = ""
    status: Optional[CompositionStatus] = CompositionStatus.FINAL
    authored: Optional[str] = Field(None, description="Local datetime of authoring; defaults to now")
    encounter_text: str = ""
    custodian_name: str = ""
    entries: List[ClinicalEntry] = Field(default_factory=list)
    recommendation: Optional[Recommendation] = None
    attachments: List[AttachmentSource] = Field(default_factory=list)

    def has_recommendation(self) -> bool:
        return bool(self.recommendation and self.recommendation.text.strip())
