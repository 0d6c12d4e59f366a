"""
Document bundle composition tests
"""
import pytest

from document_assembler.errors import ResourceBuildError
from document_assembler.fhir.bundler import (
    DocumentComposer,
    DocumentParts,
    FHIRBundler,
    check_references,
)
from document_assembler.fhir.mappers import (
    AttachmentMapper,
    ImmunizationMapper,
    PatientMapper,
    PractitionerMapper,
)
from document_assembler.models import DecodedAttachment, ImmunizationEntry

from conftest import FIXED_NOW_TEXT, sequential_ids


@pytest.fixture
def parts(subject, directory, ctx):
    return DocumentParts(
        patient=PatientMapper.map(subject, "patient-1", ctx),
        practitioner=PractitionerMapper.map(directory.select(0), "author-1", ctx),
    )


def _attachment_pair(ctx, binary_id="bin-1", pointer_id="doc-1"):
    attachment = DecodedAttachment(title="card.pdf", media_type="application/pdf", data="AAAA")
    return (
        AttachmentMapper.map_binary(attachment, binary_id, ctx),
        AttachmentMapper.map_pointer(attachment, pointer_id, binary_id, ctx),
    )


class TestFHIRBundler:
    """Test the low-level bundler."""

    def test_add_and_build(self, parts):
        bundler = FHIRBundler()
        bundler.add_resources([parts.patient, parts.practitioner])

        bundle = bundler.build("Bundle-1", "ident-1", FIXED_NOW_TEXT)

        assert bundler.resource_count == 2
        assert bundle["type"] == "document"
        assert bundle["timestamp"] == FIXED_NOW_TEXT
        assert bundle["meta"]["lastUpdated"] == FIXED_NOW_TEXT
        assert bundle["identifier"] == {"system": "urn:ietf:rfc:3986", "value": "urn:uuid:ident-1"}
        assert bundle["entry"][0]["fullUrl"] == "urn:uuid:patient-1"

    def test_duplicate_id_rejected(self, parts):
        bundler = FHIRBundler()
        bundler.add_resource(parts.patient)

        with pytest.raises(ResourceBuildError):
            bundler.add_resource(parts.patient)


class TestCheckReferences:
    """Referential closure."""

    def test_closed_bundle(self, parts, ctx):
        binary, pointer = _attachment_pair(ctx)
        bundler = FHIRBundler()
        bundler.add_resources([parts.patient, parts.practitioner, pointer, binary])

        assert check_references(bundler.build("b", "i", FIXED_NOW_TEXT)) == []

    def test_dangling_reference_reported(self, parts, ctx):
        _, pointer = _attachment_pair(ctx)
        bundler = FHIRBundler()
        bundler.add_resources([parts.patient, parts.practitioner, pointer])

        assert check_references(bundler.build("b", "i", FIXED_NOW_TEXT)) == ["urn:uuid:bin-1"]

    def test_non_urn_urls_ignored(self):
        bundle = {"entry": [{
            "fullUrl": "urn:uuid:x",
            "resource": {"resourceType": "Patient", "id": "x", "telecom": [{"system": "url", "url": "abha://a@abdm"}]},
        }]}
        assert check_references(bundle) == []


class TestDocumentComposer:
    """Test composition and bundle assembly."""

    def test_entry_order(self, parts, ctx):
        binary, pointer = _attachment_pair(ctx)
        parts.clinical_facts.append(ImmunizationMapper.map(ImmunizationEntry(vaccine_text="BCG"), "imm-1", ctx))
        parts.pointers.append(pointer)
        parts.binaries.append(binary)

        bundle = DocumentComposer(sequential_ids()).compose(parts, "Immunization Record", "final", ctx, "comp-1")

        types = [e["resource"]["resourceType"] for e in bundle["entry"]]
        assert types == [
            "Composition", "Patient", "Practitioner", "Immunization", "DocumentReference", "Binary",
        ]
        section = bundle["entry"][0]["resource"]["section"][0]
        assert section["entry"] == [
            {"reference": "urn:uuid:imm-1", "type": "Immunization"},
            {"reference": "urn:uuid:doc-1", "type": "DocumentReference"},
        ]

    def test_bundle_identity(self, parts, ctx):
        bundle = DocumentComposer(sequential_ids()).compose(parts, "Immunization Record", "final", ctx, "comp-1")

        assert bundle["id"] == "ImmunizationBundle-00000000-0000-4000-8000-000000000001"
        assert bundle["identifier"]["value"] == "urn:uuid:00000000-0000-4000-8000-000000000002"
        assert bundle["timestamp"] == FIXED_NOW_TEXT

    def test_empty_section_gets_narrative(self, parts, ctx):
        bundle = DocumentComposer(sequential_ids()).compose(parts, "Immunization Record", "final", ctx, "comp-1")

        section = bundle["entry"][0]["resource"]["section"][0]
        assert "entry" not in section
        assert "No immunization entries" in section["text"]["div"]

    def test_composition_fields(self, parts, ctx):
        bundle = DocumentComposer(sequential_ids()).compose(parts, "Immunization Record", "final", ctx, "comp-1")

        composition = bundle["entry"][0]["resource"]
        assert composition["title"] == "Immunization Record"
        assert composition["status"] == "final"
        assert composition["date"] == ctx.authored
        assert composition["subject"]["reference"] == "urn:uuid:patient-1"
        assert composition["author"] == [{"reference": "urn:uuid:author-1", "display": "Dr. A. Verma"}]
        assert composition["type"]["coding"][0]["code"] == "41000179103"
        assert "encounter" not in composition
        assert "custodian" not in composition

    def test_dangling_reference_aborts(self, parts, ctx):
        _, pointer = _attachment_pair(ctx)
        parts.pointers.append(pointer)

        with pytest.raises(ResourceBuildError, match="urn:uuid:bin-1"):
            DocumentComposer(sequential_ids()).compose(parts, "Immunization Record", "final", ctx, "comp-1")

    def test_container_checked_against_bundle_model(self, parts, ctx, monkeypatch):
        real_build = FHIRBundler.build

        def build_with_bad_timestamp(self, bundle_id, identifier, timestamp):
            return real_build(self, bundle_id, identifier, "not a timestamp")

        monkeypatch.setattr(FHIRBundler, "build", build_with_bad_timestamp)

        with pytest.raises(ResourceBuildError) as exc_info:
            DocumentComposer(sequential_ids()).compose(parts, "Immunization Record", "final", ctx, "comp-1")
        assert exc_info.value.resource_type == "Bundle"
