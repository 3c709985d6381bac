"""Command-line entry point: generate a history and its documents to disk.

Usage:
    # Default sample company, newsletters and journal entries
    sme-history

    # Company profile from a file, every document type
    sme-history --company-file company.yaml --types BS,PL,CF,JE,NEWS

    # Send a raw prompt file to the model and save the response
    sme-history --prompt-file prompt.txt --save-prompt
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from datetime import date
from pathlib import Path
from typing import Any

import structlog
import yaml  # type: ignore[import-untyped]

from sme_history.artifacts import DirectoryArtifactSink, sanitize_prefix
from sme_history.batch import batch_generate
from sme_history.clients.base import LLMClient
from sme_history.clients.factory import create_client
from sme_history.config import configure_logging, get_settings
from sme_history.documents import DocumentType, GeneratedDocument
from sme_history.errors import SMEHistoryError
from sme_history.history import generate_company_history
from sme_history.models import CompanyInput

logger = structlog.get_logger(__name__)

DEFAULT_SAVE_DIR = Path("debug") / "repro_output"
DEFAULT_TYPES = [DocumentType.NEWSLETTER, DocumentType.JE]

TYPE_ALIASES: dict[str, DocumentType] = {
    "NEWSLETTER": DocumentType.NEWSLETTER,
    "NEWS": DocumentType.NEWSLETTER,
    "N": DocumentType.NEWSLETTER,
    "JE": DocumentType.JE,
    "JOURNAL": DocumentType.JE,
    "J": DocumentType.JE,
    "BS": DocumentType.BS,
    "PL": DocumentType.PL,
    "CF": DocumentType.CF,
}


def parse_types(value: str | None) -> list[DocumentType]:
    """Map a comma-separated list of type names and aliases; unknown names are ignored."""
    if not value:
        return list(DEFAULT_TYPES)
    types: list[DocumentType] = []
    for name in value.split(","):
        doc_type = TYPE_ALIASES.get(name.strip().upper())
        if doc_type is None:
            logger.warning("unknown_document_type", name=name.strip())
            continue
        if doc_type not in types:
            types.append(doc_type)
    return types


def load_company_file(path: Path) -> dict[str, Any]:
    """Read a company profile from JSON or YAML (chosen by extension)."""
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(raw) or {}
    else:
        data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a company object")
    return data


def default_company(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "name": args.company_name or "株式会社CLI再現",
        "industry": "製造業",
        "foundedYear": args.from_year or 2000,
        "currentYear": args.to_year or date.today().year,
        "initialEmployees": 5,
        "currentEmployees": 50,
        "persona": "保守的だが粘り強い創業者",
        "keyEvents": "サンプル企業。CLI再現用",
        "ceoHistory": [{"name": "代表取締役", "resignationYear": ""}],
    }


def build_company(args: argparse.Namespace) -> CompanyInput:
    if args.company_file:
        data = load_company_file(Path(args.company_file))
        if args.company_name:
            data["name"] = args.company_name
        if args.from_year:
            data["foundedYear"] = args.from_year
        if args.to_year:
            data["currentYear"] = args.to_year
    else:
        data = default_company(args)
    return CompanyInput.from_dict(data)


def write_documents(documents: Sequence[GeneratedDocument], save_dir: Path) -> list[Path]:
    """Write newsletters as Markdown and every other document as JSON."""
    save_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for doc in documents:
        stem = sanitize_prefix(doc.id)
        if doc.type == DocumentType.NEWSLETTER:
            path = save_dir / f"{stem}.md"
            content = doc.content if isinstance(doc.content, str) else json.dumps(
                doc.to_dict()["content"], ensure_ascii=False, indent=2
            )
            path.write_text(f"# {doc.title}\n\n{content}\n", encoding="utf-8")
        else:
            path = save_dir / f"{stem}.json"
            path.write_text(
                json.dumps(doc.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8"
            )
        written.append(path)
    return written


async def send_prompt_file(
    client: LLMClient,
    prompt_file: Path,
    save_dir: Path,
    save_prompt: bool,
) -> Path:
    """Send a prompt file verbatim and write the raw response."""
    prompt = prompt_file.read_text(encoding="utf-8")
    response = await client.generate_content(contents=prompt)
    save_dir.mkdir(parents=True, exist_ok=True)
    out_path = save_dir / "prompt_response.txt"
    out_path.write_text(response.text or "", encoding="utf-8")
    if save_prompt:
        (save_dir / "sent_prompt.txt").write_text(prompt, encoding="utf-8")
    return out_path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sme-history",
        description="Synthesize a Japanese SME's financial history and documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Types:
  BS, PL, CF           Rendered locally from the generated figures
  JE (JOURNAL, J)      Monthly summary journal entries (LLM)
  NEWSLETTER (NEWS, N) Internal newsletter from the CEO (LLM)

Examples:
  %(prog)s --company-name 株式会社サンプル --from-year 2005 --to-year 2024
  %(prog)s --company-file company.json --types BS,PL,JE
        """,
    )
    parser.add_argument("--company-file", help="Company profile as JSON or YAML")
    parser.add_argument("--company-name", help="Company name (overrides the file)")
    parser.add_argument("--from-year", type=int, help="Founding year (default: 2000)")
    parser.add_argument("--to-year", type=int, help="Last simulated year (default: this year)")
    parser.add_argument(
        "--types",
        help="Comma-separated document types (default: NEWSLETTER,JE)",
    )
    parser.add_argument(
        "--save-dir",
        default=str(DEFAULT_SAVE_DIR),
        help=f"Output directory (default: {DEFAULT_SAVE_DIR})",
    )
    parser.add_argument("--prompt-file", help="Send this prompt verbatim and exit")
    parser.add_argument(
        "--save-prompt",
        action="store_true",
        help="Also persist every prompt sent to the model",
    )
    parser.add_argument(
        "--provider",
        choices=["gemini", "claude", "openai"],
        help="LLM provider (default: LLM_PROVIDER)",
    )
    return parser


async def run(args: argparse.Namespace) -> int:
    save_dir = Path(args.save_dir)
    if args.save_prompt:
        # Picked up by every generator built after this point
        get_settings().save_prompt = True

    client = create_client(args.provider)

    if args.prompt_file:
        out_path = await send_prompt_file(
            client, Path(args.prompt_file), save_dir, args.save_prompt
        )
        logger.info("prompt_response_written", path=str(out_path))
        return 0

    company = build_company(args)
    types = parse_types(args.types)

    logger.info("history_generation_started", company=company.name)
    history = await generate_company_history(company, client)
    logger.info("history_generation_finished", years=len(history))

    def on_progress(completed: int, label: str) -> None:
        print(f"progress: {completed} {label}", flush=True)

    documents = await batch_generate(
        company,
        history,
        types,
        on_progress=on_progress,
        client=client,
        artifact_sink=DirectoryArtifactSink(),
    )
    written = write_documents(documents, save_dir)
    logger.info("documents_written", count=len(written), save_dir=str(save_dir))
    for path in written:
        print(f" - {path.name}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("generation_interrupted")
        return 130
    except SMEHistoryError as e:
        logger.error("generation_failed", error=str(e), details=e.details)
        return 2
    except Exception as e:
        logger.exception("generation_error", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
