"""
External-identifier address normalization.

Roster entries carry alternate identities (ABHA addresses) in several
shapes. Each raw element is classified once into a closed set of
variants and then rendered as an ``ExternalAddress``:

- BareText: a plain string
- TaggedAddress: an object with an address field and a primary flag
- Opaque: any other non-empty object, kept as its JSON text
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Union

from .models import ExternalAddress, SubjectRecord

logger = logging.getLogger(__name__)

PRIMARY_SUFFIX = " (primary)"
_ADDRESS_KEYS = ("address", "value")
_PRIMARY_KEYS = ("isPrimary", "primary")


@dataclass(frozen=True)
class BareText:
    text: str

    def to_address(self) -> ExternalAddress:
        return ExternalAddress(value=self.text, label=self.text, primary=False)


@dataclass(frozen=True)
class TaggedAddress:
    address: str
    primary: bool

    def to_address(self) -> ExternalAddress:
        label = f"{self.address}{PRIMARY_SUFFIX}" if self.primary else self.address
        return ExternalAddress(value=self.address, label=label, primary=self.primary)


@dataclass(frozen=True)
class Opaque:
    payload: str
    primary: bool

    def to_address(self) -> ExternalAddress:
        return ExternalAddress(value=self.payload, label=self.payload, primary=self.primary)


AddressVariant = Union[BareText, TaggedAddress, Opaque]


def _primary_flag(item: dict) -> bool:
    return any(bool(item.get(key)) for key in _PRIMARY_KEYS)


def classify_address(item: Any) -> Optional[AddressVariant]:
    """
    Resolve one raw roster element to an address variant.

    Returns None for empty or unrecognized elements.
    """
    if isinstance(item, ExternalAddress):
        item = item.model_dump()

    if isinstance(item, str):
        text = item.strip()
        return BareText(text) if text else None

    if isinstance(item, dict) and item:
        for key in _ADDRESS_KEYS:
            address = item.get(key)
            if address not in (None, ""):
                return TaggedAddress(str(address), _primary_flag(item))
        try:
            payload = json.dumps(item, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            return None
        return Opaque(payload, _primary_flag(item))

    return None


def raw_address_list(subject: Union[SubjectRecord, dict, None]) -> List[Any]:
    """Pick the raw address list from the nested field, then the legacy one."""
    if subject is None:
        return []
    if isinstance(subject, SubjectRecord):
        subject = subject.model_dump()

    nested = (subject.get("additional_attributes") or {}).get("abha_addresses")
    if isinstance(nested, list):
        return nested
    legacy = subject.get("abha_addresses")
    if isinstance(legacy, list):
        return legacy
    return []


def normalize_addresses(items: Iterable[Any]) -> List[ExternalAddress]:
    """
    Classify, deduplicate and sort raw address elements.

    Primary entries come first, then the rest by value. When the same
    value appears more than once the primary occurrence is kept.
    """
    resolved = []
    for item in items:
        variant = classify_address(item)
        if variant is None:
            logger.warning("Dropping unrecognized external address entry of type %s", type(item).__name__)
            continue
        resolved.append(variant.to_address())

    resolved.sort(key=lambda a: (not a.primary, a.value))

    seen = set()
    out = []
    for address in resolved:
        if address.value in seen:
            continue
        seen.add(address.value)
        out.append(address)
    return out


def subject_addresses(subject: Union[SubjectRecord, dict, None]) -> List[ExternalAddress]:
    """Normalized external addresses of a subject, recomputed on every call."""
    return normalize_addresses(raw_address_list(subject))
