#!/usr/bin/env python3
"""
Build a FHIR document Bundle from a roster file and a request file

The request file holds the form state as JSON (see DocumentRequest);
instead of an inline "subject" it may give "patient_index" to pick a
roster entry. Attachments are given as {"title", "media_type", "path"}.

Usage:
    python scripts/build_bundle.py --roster patients.json --request request.json [--out bundle.json]
    ROSTER_URL=https://host/patients python scripts/build_bundle.py --request request.json
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add parent directory to path to import document_assembler
sys.path.append(str(Path(__file__).parent.parent))

from document_assembler import DocumentAssembler, DocumentAssemblyError, PatientRoster, PractitionerDirectory
from document_assembler.config import settings
from document_assembler.logging_config import configure_logging
from document_assembler.models import DocumentRequest


def load_request(path: Path, roster: PatientRoster) -> DocumentRequest:
    """Read the request JSON and resolve the patient selection"""
    with open(path, 'r', encoding='utf-8') as f:
        payload = json.load(f)

    index = payload.pop("patient_index", None)
    if index is not None and "subject" not in payload:
        subject = roster.select(int(index))
        payload["subject"] = subject.model_dump() if subject else None

    return DocumentRequest.model_validate(payload)


def main() -> int:
    parser = argparse.ArgumentParser(description="Build a FHIR document Bundle")
    parser.add_argument("--roster", type=Path, help="Patient roster JSON file (defaults to ROSTER_URL)")
    parser.add_argument("--request", type=Path, required=True, help="Form state JSON file")
    parser.add_argument("--out", type=Path, help="Write the bundle here instead of stdout")
    args = parser.parse_args()

    configure_logging(settings.log_level)

    if args.roster:
        roster = PatientRoster.from_file(args.roster)
        source = args.roster
    elif settings.roster_url:
        roster = asyncio.run(PatientRoster.fetch(settings.roster_url, settings.roster_timeout))
        source = settings.roster_url
    else:
        parser.error("--roster is required when ROSTER_URL is not set")
    print(f"📋 Loaded {len(roster)} patient(s) from {source}", file=sys.stderr)

    request = load_request(args.request, roster)
    assembler = DocumentAssembler(PractitionerDirectory.default())

    try:
        result = assembler.assemble_sync(request)
    except DocumentAssemblyError as e:
        print(f"\n❌ {e}", file=sys.stderr)
        return 1

    output = result.to_json()
    if args.out:
        args.out.write_text(output, encoding='utf-8')
        print(f"✓ Bundle written to {args.out}", file=sys.stderr)
    else:
        print(output)

    for resource_type, count in sorted(result.resource_counts.items()):
        print(f"   {resource_type}: {count}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
