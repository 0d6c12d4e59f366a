"""Resource identifier generation."""
import uuid
from typing import Callable

IdFactory = Callable[[], str]


def generate_id() -> str:
    """Generate a unique resource ID (random UUID, version 4)."""
    return str(uuid.uuid4())


def urn(resource_id: str) -> str:
    """Bundle-local locator for a resource id."""
    return f"urn:uuid:{resource_id}"
