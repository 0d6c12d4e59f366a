"""
Document Assembler Service

Main service for turning captured form state into a FHIR document
Bundle.

Orchestrates:
1. Pre-build validation (all violations reported together)
2. Attachment decoding (concurrent, order-preserving, all-or-nothing)
3. Patient, Practitioner, Encounter and Organization resources
4. Clinical-fact resources (Immunization, DiagnosticReport) and their
   Observations and Specimens
5. ImmunizationRecommendation resource
6. Binary + DocumentReference pairs (a placeholder pair when no file)
7. Composition and Bundle assembly
"""
import asyncio
import json
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..addresses import subject_addresses
from ..config import Settings, settings as default_settings
from ..directory import PractitionerDirectory
from ..errors import AssemblerBusyError
from ..models import (
    AuthorRecord,
    DecodedAttachment,
    DiagnosticEntry,
    DocumentRequest,
    ImmunizationEntry,
)
from ..temporal import Clock, normalize_timestamp, system_clock
from .attachments import decode_attachments
from .bundler import DocumentComposer, DocumentParts
from .identifiers import IdFactory, generate_id
from .mappers import (
    AttachmentMapper,
    BuildContext,
    DiagnosticReportMapper,
    EncounterMapper,
    ImmunizationMapper,
    ImmunizationRecommendationMapper,
    ObservationMapper,
    OrganizationMapper,
    PatientMapper,
    PractitionerMapper,
    SpecimenMapper,
)
from .validator import validate_request

logger = logging.getLogger(__name__)


@dataclass
class AssemblyResult:
    """Result of a successful document assembly."""
    bundle: Dict[str, Any]
    resource_counts: Dict[str, int]

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.bundle, indent=indent, ensure_ascii=False)


class DocumentAssembler:
    """
    Converts a DocumentRequest to a FHIR document Bundle.

    Usage:
        assembler = DocumentAssembler(PractitionerDirectory.default())
        result = await assembler.assemble(request)
        print(result.to_json())

    One assembler serves one session: a second call made while a build
    is still decoding attachments is rejected with AssemblerBusyError.
    """

    def __init__(
        self,
        directory: PractitionerDirectory,
        settings: Settings = default_settings,
        clock: Clock = system_clock,
        id_factory: IdFactory = generate_id,
    ):
        self.directory = directory
        self.settings = settings
        self.clock = clock
        self.id_factory = id_factory
        self._busy = False

    @property
    def busy(self) -> bool:
        """True while an assembly is in progress."""
        return self._busy

    async def assemble(self, request: DocumentRequest) -> AssemblyResult:
        """
        Validate, decode attachments, build and compose.

        Raises:
            AssemblerBusyError: another assembly is still running
            ValidationError: pre-build checks failed
            DecodeError: an attachment could not be read
            ResourceBuildError: a resource or the document is invalid
        """
        if self._busy:
            raise AssemblerBusyError("A document build is already in progress")
        self._busy = True
        try:
            author = self.directory.select(request.author_index)
            validate_request(request, author)

            decoded = await decode_attachments(
                request.attachments,
                self.settings.allowed_attachment_types,
                self.settings.default_attachment_type,
            )
            if not decoded:
                decoded = [self._placeholder()]

            # Sampled after decoding so every timestamp reflects the build instant
            now = self.clock()
            logger.info("Assembling %s document for %s", request.kind.value, request.subject.name or "patient")
            return self._build(request, author, decoded, now)
        finally:
            self._busy = False

    def assemble_sync(self, request: DocumentRequest) -> AssemblyResult:
        """Run assemble() to completion from synchronous code."""
        return asyncio.run(self.assemble(request))

    def _placeholder(self) -> DecodedAttachment:
        return DecodedAttachment(
            title=self.settings.placeholder_attachment_title,
            media_type=self.settings.default_attachment_type,
            data=self.settings.placeholder_attachment_data,
        )

    def _build(
        self,
        request: DocumentRequest,
        author: AuthorRecord,
        attachments: List[DecodedAttachment],
        now: datetime,
    ) -> AssemblyResult:
        new_id = self.id_factory
        subject = request.subject

        ids = {"composition": new_id(), "patient": new_id(), "author": new_id()}
        encounter_text = request.encounter_text.strip()
        custodian_name = request.custodian_name.strip()
        if encounter_text:
            ids["encounter"] = new_id()
        if custodian_name:
            ids["custodian"] = new_id()

        ctx = BuildContext(
            ids=ids,
            now=now,
            authored=normalize_timestamp(request.authored, now),
            language=self.settings.narrative_language,
            kind=request.kind,
            subject_name=subject.name or "",
            author_name=author.name,
        )

        addresses = subject_addresses(subject)
        selected_address = request.selected_address or (addresses[0].value if addresses else None)

        parts = DocumentParts(
            patient=PatientMapper.map(
                subject,
                ids["patient"],
                ctx,
                selected_address=selected_address,
                identifier_system=self.settings.patient_identifier_system,
                secondary_system=self.settings.secondary_identifier_system,
                address_scheme=self.settings.external_address_scheme,
                country_code=self.settings.default_phone_country_code,
            ),
            practitioner=PractitionerMapper.map(author, ids["author"], ctx),
        )
        if encounter_text:
            parts.encounter = EncounterMapper.map(encounter_text, ids["encounter"], ctx)
        if custodian_name:
            parts.custodian = OrganizationMapper.map(custodian_name, ids["custodian"], ctx)

        for entry in request.entries:
            if isinstance(entry, ImmunizationEntry):
                parts.clinical_facts.append(ImmunizationMapper.map(entry, new_id(), ctx))
            elif isinstance(entry, DiagnosticEntry):
                self._build_diagnostic(entry, parts, ctx)

        if request.has_recommendation():
            parts.recommendation = ImmunizationRecommendationMapper.map(request.recommendation, new_id(), ctx)

        for attachment in attachments:
            binary_id, pointer_id = new_id(), new_id()
            parts.binaries.append(AttachmentMapper.map_binary(attachment, binary_id, ctx))
            parts.pointers.append(AttachmentMapper.map_pointer(attachment, pointer_id, binary_id, ctx))

        bundle = DocumentComposer(self.id_factory).compose(
            parts,
            request.title.strip(),
            request.status.value,
            ctx,
            composition_id=ids["composition"],
        )
        counts = Counter(entry["resource"]["resourceType"] for entry in bundle["entry"])
        return AssemblyResult(bundle=bundle, resource_counts=dict(counts))

    def _build_diagnostic(self, entry: DiagnosticEntry, parts: DocumentParts, ctx: BuildContext) -> None:
        """Build a DiagnosticReport with its Observations and Specimens."""
        report_id = self.id_factory()
        result_ids = [self.id_factory() for _ in entry.results]
        specimen_ids = [self.id_factory() for _ in entry.specimens]
        shared = DiagnosticReportMapper.shared_timestamps(entry, ctx.now)

        parts.clinical_facts.append(
            DiagnosticReportMapper.map(entry, report_id, ctx, result_ids, specimen_ids)
        )
        parts.results.extend(
            ObservationMapper.map(result, rid, ctx, shared["effective"])
            for result, rid in zip(entry.results, result_ids)
        )
        parts.specimens.extend(
            SpecimenMapper.map(specimen, sid, ctx, shared["issued"])
            for specimen, sid in zip(entry.specimens, specimen_ids)
        )
