"""
FHIR Document Bundle Assembler

Creates a FHIR Bundle (document type) whose first entry is the root
Composition. Entries are emitted in a fixed order and every reference
inside the document must resolve to an entry of the same bundle.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from ..errors import ResourceBuildError
from .identifiers import IdFactory, generate_id, urn
from .mappers import BuildContext, CompositionMapper, validated

logger = logging.getLogger(__name__)

BUNDLE_PROFILE = "http://hl7.org/fhir/StructureDefinition/Bundle"
URN_PREFIX = "urn:uuid:"


@dataclass
class DocumentParts:
    """Resources built for one document, grouped by their role."""
    patient: Dict[str, Any]
    practitioner: Dict[str, Any]
    encounter: Optional[Dict[str, Any]] = None
    custodian: Optional[Dict[str, Any]] = None
    clinical_facts: List[Dict[str, Any]] = field(default_factory=list)
    recommendation: Optional[Dict[str, Any]] = None
    results: List[Dict[str, Any]] = field(default_factory=list)
    specimens: List[Dict[str, Any]] = field(default_factory=list)
    pointers: List[Dict[str, Any]] = field(default_factory=list)
    binaries: List[Dict[str, Any]] = field(default_factory=list)

    def section_resources(self) -> List[Dict[str, Any]]:
        """Resources the composition section links to, in insertion order."""
        linked = list(self.clinical_facts)
        if self.recommendation:
            linked.append(self.recommendation)
        linked.extend(self.pointers)
        return linked

    def ordered(self) -> List[Dict[str, Any]]:
        """Everything except the composition, in bundle entry order."""
        out = [self.patient, self.practitioner]
        if self.encounter:
            out.append(self.encounter)
        if self.custodian:
            out.append(self.custodian)
        out.extend(self.clinical_facts)
        if self.recommendation:
            out.append(self.recommendation)
        out.extend(self.results)
        out.extend(self.specimens)
        out.extend(self.pointers)
        out.extend(self.binaries)
        return out


def _walk_references(node: Any) -> Iterator[str]:
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "reference" and isinstance(value, str):
                yield value
            elif key == "url" and isinstance(value, str) and value.startswith(URN_PREFIX):
                yield value
            else:
                yield from _walk_references(value)
    elif isinstance(node, list):
        for item in node:
            yield from _walk_references(item)


def check_references(bundle: Dict[str, Any]) -> List[str]:
    """
    Find references that do not resolve inside the bundle.

    Returns:
        Dangling reference strings, in document order (empty when closed)
    """
    locators = {entry["fullUrl"] for entry in bundle.get("entry", [])}
    dangling = []
    for entry in bundle.get("entry", []):
        for reference in _walk_references(entry["resource"]):
            if reference not in locators:
                dangling.append(reference)
    return dangling


class FHIRBundler:
    """
    Assembles FHIR resources into a document Bundle.

    Keeps a mapping of resource id → resource next to the ordered entry
    list so a resource can never be added twice.
    """

    def __init__(self):
        """Initialize the bundler."""
        self.resources: Dict[str, Dict[str, Any]] = {}
        self.entries: List[Dict[str, Any]] = []

    def add_resource(self, resource: Dict[str, Any]) -> None:
        """
        Add a resource to the bundle.

        Args:
            resource: FHIR resource (dict) to add

        Raises:
            ResourceBuildError: if a resource with the same id was already added
        """
        resource_id = resource["id"]
        if resource_id in self.resources:
            raise ResourceBuildError(
                f"Duplicate resource id {resource_id}",
                resource_type=resource.get("resourceType"),
            )
        self.resources[resource_id] = resource
        self.entries.append({"fullUrl": urn(resource_id), "resource": resource})

    def add_resources(self, resources: List[Dict[str, Any]]) -> None:
        """
        Add multiple resources to the bundle.

        Args:
            resources: List of FHIR resources to add
        """
        for resource in resources:
            self.add_resource(resource)

    def build(self, bundle_id: str, identifier: str, timestamp: str) -> Dict[str, Any]:
        """
        Build the final document Bundle.

        Args:
            bundle_id: Logical id of the bundle
            identifier: Fresh identifier value (without the urn prefix)
            timestamp: Canonical build timestamp

        Returns:
            Bundle as a dictionary (JSON-serializable)
        """
        return {
            "resourceType": "Bundle",
            "id": bundle_id,
            "meta": {"profile": [BUNDLE_PROFILE], "lastUpdated": timestamp},
            "identifier": {"system": "urn:ietf:rfc:3986", "value": urn(identifier)},
            "type": "document",
            "timestamp": timestamp,
            "entry": list(self.entries),
        }

    @property
    def resource_count(self) -> int:
        """Number of resources in the bundle."""
        return len(self.entries)


class DocumentComposer:
    """
    Builds the root Composition and the surrounding document Bundle.

    Usage:
        composer = DocumentComposer()
        bundle = composer.compose(parts, title, status, ctx)
    """

    def __init__(self, id_factory: IdFactory = generate_id):
        self.id_factory = id_factory

    def compose(
        self,
        parts: DocumentParts,
        title: str,
        status: str,
        ctx: BuildContext,
        composition_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Compose the document bundle.

        Args:
            parts: Every resource built for this document
            title: Document title
            status: Composition status code
            ctx: Build context (the composition references its ids)
            composition_id: Id of the root composition (generated if not provided)

        Returns:
            Bundle as a dictionary

        Raises:
            ResourceBuildError: on duplicate ids, dangling references or a
                container the Bundle model rejects
        """
        section_entries = [
            {"reference": urn(r["id"]), "type": r["resourceType"]}
            for r in parts.section_resources()
        ]
        composition = CompositionMapper.map(
            title,
            status,
            section_entries,
            composition_id or self.id_factory(),
            ctx,
        )

        bundler = FHIRBundler()
        bundler.add_resource(composition)
        bundler.add_resources(parts.ordered())

        bundle = bundler.build(
            bundle_id=f"{ctx.document_type.bundle_prefix}-{self.id_factory()}",
            identifier=self.id_factory(),
            timestamp=ctx.build_time,
        )

        dangling = check_references(bundle)
        if dangling:
            raise ResourceBuildError(f"Dangling references: {', '.join(dangling)}")
        validated(bundle)

        logger.info(
            "Composed %s with %d entries",
            bundle["id"],
            bundler.resource_count,
        )
        return bundle
