from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from labcert.certificate import build_certificate
from labcert.certificate_pdf_report import CertificatePdfReportBuilder
from labcert.schema import project_from_payload, sample_from_payload, standard_from_payload
from labcert.settings import CertificateSettings
from labcert.standards_catalog import load_standards_catalog


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render a laboratory test certificate (PDF and/or JSON view model) from a sample JSON file.",
    )
    parser.add_argument("--sample", type=Path, required=True, help="Path to the sample JSON payload.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--standard", type=Path, help="Path to a standard JSON payload.")
    source.add_argument("--standard-id", help="Id of a standard in the bundled catalog.")
    parser.add_argument("--project", type=Path, help="Optional project JSON payload.")
    parser.add_argument("--template-id", help="Certificate template id from the catalog.")
    parser.add_argument("--output", type=Path, help="Where to write the PDF.")
    parser.add_argument("--json", type=Path, dest="json_output", help="Where to write the assembled view model.")
    return parser


def _read(path: Path) -> dict:
    if not path.exists():
        raise SystemExit(f"Input payload not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def main() -> int:
    args = _parser().parse_args()
    settings = CertificateSettings.from_env()
    catalog = load_standards_catalog(settings.catalog_dir)

    if args.standard is not None:
        standard = standard_from_payload(_read(args.standard))
    else:
        standard = catalog.get_standard(args.standard_id)
        if standard is None:
            raise SystemExit(f"Unknown standard id: {args.standard_id}")

    template = catalog.default_template
    if args.template_id:
        template = catalog.get_template(args.template_id)
        if template is None:
            raise SystemExit(f"Unknown template id: {args.template_id}")

    certificate = build_certificate(
        standard,
        sample_from_payload(_read(args.sample)),
        project=project_from_payload(_read(args.project)) if args.project else None,
        template=template,
        settings=settings,
    )

    summary = {
        "code": certificate["header"]["code"],
        "compliant": certificate["compliant"],
        "specimens": certificate["specimen_count"],
        "chart": certificate["chart"]["kind"] if certificate["chart"] else None,
        "signature": certificate["signature"]["signature"],
    }
    if args.json_output:
        args.json_output.parent.mkdir(parents=True, exist_ok=True)
        args.json_output.write_text(json.dumps(certificate, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        summary["json_output"] = str(args.json_output)
    if args.output:
        CertificatePdfReportBuilder().build_pdf(certificate=certificate, output_path=args.output)
        summary["pdf_output"] = str(args.output)

    print(json.dumps(summary, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
