"""
Narrative synthesis.

Every DomainResource in the document carries a short generated XHTML
summary so format-level completeness checks pass. User-entered text is
escaped before it is embedded.
"""
from html import escape
from typing import Dict, Iterable, Optional

XHTML_NS = "http://www.w3.org/1999/xhtml"


def _div(inner: str, language: str) -> str:
    return f'<div xmlns="{XHTML_NS}" lang="{language}" xml:lang="{language}">{inner}</div>'


def paragraphs(lines: Iterable[Optional[str]]) -> str:
    """Escape each non-empty line and wrap it in <p>."""
    return "".join(f"<p>{escape(str(line))}</p>" for line in lines if line)


def build_narrative(title: str, lines: Iterable[Optional[str]], language: str) -> Dict[str, str]:
    """
    Build a FHIR Narrative element.

    Args:
        title: Heading shown above the summary
        lines: Salient fields, one paragraph each (empty ones skipped)
        language: Language tag written to lang and xml:lang

    Returns:
        Narrative dict with status "generated" and the XHTML div
    """
    inner = f"<h3>{escape(title)}</h3>{paragraphs(lines)}"
    return {"status": "generated", "div": _div(inner, language)}


def empty_section_narrative(message: str, language: str) -> Dict[str, str]:
    """Narrative for a section that has no entries."""
    return {"status": "generated", "div": _div(paragraphs([message]), language)}
