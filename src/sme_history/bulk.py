"""Chunked generation of heavy documents (journal entries, newsletters).

A multi-year history is split into chunks of consecutive years and each
chunk is one LLM request. Every response goes through the same path:

    raw text -> extract_json -> normalizer -> (ensure_year_months) -> schema

Anything that does not survive that path becomes a placeholder for the
affected years only; the other chunks are unaffected. When every chunk
fails at the request level the generator raises BulkGenerationError so the
caller can fall back to one request per year.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import BaseModel

from sme_history.artifacts import ArtifactSink, DirectoryArtifactSink
from sme_history.clients.base import GenerationConfig, LLMClient
from sme_history.config import get_settings
from sme_history.documents import (
    DocumentType,
    GeneratedDocument,
    document_id,
    journal_document,
    journal_placeholder,
    newsletter_document,
    newsletter_placeholder,
)
from sme_history.errors import BulkGenerationError, DocumentGenerationError
from sme_history.models import CompanyInput, YearlyData
from sme_history.normalize import (
    ensure_year_months,
    normalize_journal_entries,
    normalize_newsletters,
)
from sme_history.outcome import Fidelity, Outcome
from sme_history.parsing import extract_json
from sme_history.progress import EventCallback, ProgressEvent, ProgressStage, notify
from sme_history.prompts import (
    JOURNAL_BULK_SCHEMA,
    JOURNAL_SINGLE_SCHEMA,
    NEWSLETTER_BULK_SCHEMA,
    journal_bulk_prompt,
    journal_single_prompt,
    newsletter_bulk_prompt,
    newsletter_single_prompt,
)
from sme_history.ratelimit import RateLimiter
from sme_history.schemas import JournalYearSchema, NewsletterSchema, validate_payload

logger = structlog.get_logger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================


@dataclass(frozen=True)
class _HeavyKind:
    """How one heavy document type is requested and rebuilt."""

    schema: dict[str, Any]
    prompt: Callable[[CompanyInput, Sequence[YearlyData]], str]
    normalize: Callable[..., Outcome]
    key: str
    entry_schema: type[BaseModel]


_HEAVY_KINDS: dict[DocumentType, _HeavyKind] = {
    DocumentType.JE: _HeavyKind(
        schema=JOURNAL_BULK_SCHEMA,
        prompt=journal_bulk_prompt,
        normalize=normalize_journal_entries,
        key="years",
        entry_schema=JournalYearSchema,
    ),
    DocumentType.NEWSLETTER: _HeavyKind(
        schema=NEWSLETTER_BULK_SCHEMA,
        prompt=newsletter_bulk_prompt,
        normalize=normalize_newsletters,
        key="newsletters",
        entry_schema=NewsletterSchema,
    ),
}


@dataclass
class ChunkResult:
    """What one chunk produced."""

    index: int
    years: list[int]
    documents: list[GeneratedDocument] = field(default_factory=list)
    request_failed: bool = False
    reason: str = ""
    artifact: str = ""

    @property
    def placeholders(self) -> int:
        return sum(1 for doc in self.documents if doc.is_placeholder)

    @property
    def stage(self) -> ProgressStage:
        if self.request_failed or self.placeholders == len(self.documents):
            return ProgressStage.CHUNK_FAILED
        if self.placeholders or any(d.fidelity != Fidelity.OK for d in self.documents):
            return ProgressStage.CHUNK_DEGRADED
        return ProgressStage.CHUNK_COMPLETED


def chunk_years(years: Sequence[YearlyData], size: int) -> list[list[YearlyData]]:
    """Split ``years`` into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(years[i : i + size]) for i in range(0, len(years), size)]


def chunk_label(doc_type: DocumentType, years: Sequence[int]) -> str:
    """``JE-2020`` for one year, ``JE-2020..2021`` for a range."""
    if not years:
        return doc_type.value
    if len(years) == 1:
        return document_id(doc_type, years[0])
    return f"{document_id(doc_type, years[0])}..{years[-1]}"


def placeholder_for(
    doc_type: DocumentType,
    year_data: YearlyData,
    reason: str = "",
) -> GeneratedDocument:
    """Synthetic stand-in for a heavy document that could not be generated."""
    if doc_type == DocumentType.JE:
        return journal_placeholder(year_data.year, year_data.revenue)
    if doc_type == DocumentType.NEWSLETTER:
        return newsletter_placeholder(year_data.year, reason)
    raise ValueError(f"{doc_type.value} has no placeholder")


def _document_from_entry(
    doc_type: DocumentType,
    entry: BaseModel,
    fidelity: Fidelity,
) -> GeneratedDocument | None:
    if isinstance(entry, JournalYearSchema):
        months = [month.model_dump() for month in entry.months]
        if not any(month["items"] for month in months):
            return None
        return journal_document(entry.year, months, fidelity)
    if isinstance(entry, NewsletterSchema):
        return newsletter_document(entry.year, entry.content.strip(), fidelity)
    raise ValueError(f"unexpected entry for {doc_type.value}")


# =============================================================================
# BULK GENERATOR
# =============================================================================


class BulkGenerator:
    """Generates one heavy document type for many years, chunk by chunk."""

    def __init__(
        self,
        client: LLMClient,
        artifact_sink: ArtifactSink | None = None,
        rate_limiter: RateLimiter | None = None,
        chunk_size: int | None = None,
        model: str | None = None,
    ):
        settings = get_settings()
        self._client = client
        self._sink = artifact_sink or DirectoryArtifactSink()
        self._limiter = rate_limiter or RateLimiter(
            interval=settings.bulk_chunk_delay_seconds, name="bulk"
        )
        self._chunk_size = chunk_size or settings.bulk_chunk_size
        if self._chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self._model = model
        self._save_prompt = settings.save_prompt

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    async def generate(
        self,
        company: CompanyInput,
        years: Sequence[YearlyData],
        doc_type: DocumentType,
        on_event: EventCallback | None = None,
    ) -> list[GeneratedDocument]:
        """Generate ``doc_type`` for every year, in chunk order.

        Returns one document per input year; years whose chunk failed carry
        placeholders.

        Raises:
            BulkGenerationError: Every chunk's request failed.
            ValueError: ``doc_type`` is not a heavy type.
        """
        if doc_type not in _HEAVY_KINDS:
            raise ValueError(f"{doc_type.value} is not generated in bulk")

        chunks = chunk_years(years, self._chunk_size)
        log = logger.bind(doc_type=doc_type.value, chunks=len(chunks))
        log.info("bulk_started", years=len(years), chunk_size=self._chunk_size)

        documents: list[GeneratedDocument] = []
        results: list[ChunkResult] = []
        for index, chunk in enumerate(chunks, start=1):
            years_in_chunk = [y.year for y in chunk]
            label = chunk_label(doc_type, years_in_chunk)
            notify(on_event, ProgressEvent(index, len(chunks), label, ProgressStage.CHUNK_STARTED))

            result = await self._run_chunk(company, chunk, doc_type, index)
            results.append(result)
            documents.extend(result.documents)

            notify(
                on_event,
                ProgressEvent(
                    index,
                    len(chunks),
                    label,
                    result.stage,
                    data={
                        "years": years_in_chunk,
                        "docIds": [doc.id for doc in result.documents],
                        "placeholders": result.placeholders,
                        "reason": result.reason,
                    },
                ),
            )

        if results and all(r.request_failed for r in results):
            log.error("bulk_failed", reason=results[-1].reason)
            raise BulkGenerationError(
                f"All {len(results)} {doc_type.value} chunks failed",
                details={"reasons": [r.reason for r in results]},
            )

        log.info(
            "bulk_completed",
            documents=len(documents),
            placeholders=sum(r.placeholders for r in results),
        )
        return documents

    async def _run_chunk(
        self,
        company: CompanyInput,
        chunk: list[YearlyData],
        doc_type: DocumentType,
        index: int,
    ) -> ChunkResult:
        kind = _HEAVY_KINDS[doc_type]
        request_id = uuid.uuid4().hex
        years = [y.year for y in chunk]
        log = logger.bind(doc_type=doc_type.value, chunk=index, request_id=request_id)
        result = ChunkResult(index=index, years=years)

        prompt = kind.prompt(company, chunk)
        if self._save_prompt:
            self._sink.persist(f"prompt-{doc_type.value}-{request_id}", prompt)

        await self._limiter.acquire()
        try:
            response = await self._client.generate_content(
                contents=prompt,
                model=self._model,
                config=GenerationConfig.json(kind.schema),
            )
        except Exception as e:
            log.error("chunk_request_failed", error=str(e), years=years)
            result.request_failed = True
            result.reason = f"request failed: {e}"
            result.documents = [placeholder_for(doc_type, y, result.reason) for y in chunk]
            return result

        raw_text = response.text or ""
        by_year, reason = self._rebuild(raw_text, years, doc_type)
        result.reason = reason

        missing = [y for y in chunk if y.year not in by_year]
        for year_data in chunk:
            doc = by_year.get(year_data.year)
            result.documents.append(doc or placeholder_for(doc_type, year_data, reason))

        if missing:
            result.artifact = self._sink.persist(
                f"{doc_type.value}-chunk{index}-{request_id}", raw_text
            )
            log.warning(
                "chunk_degraded",
                missing_years=[y.year for y in missing],
                reason=reason,
                artifact=result.artifact,
            )
        else:
            log.info("chunk_completed", years=years, reason=reason or None)
        return result

    def _rebuild(
        self,
        raw_text: str,
        years: list[int],
        doc_type: DocumentType,
    ) -> tuple[dict[int, GeneratedDocument], str]:
        """Turn one raw response into documents keyed by year."""
        kind = _HEAVY_KINDS[doc_type]
        extracted = extract_json(raw_text)
        normalized = kind.normalize(extracted.value, expected_years=years, raw_text=raw_text)
        reasons = [r for r in (extracted.reason, normalized.reason) if r]
        if not normalized.usable:
            return {}, "; ".join(reasons) or "unusable response"

        payload = normalized.value
        if doc_type == DocumentType.JE:
            payload = ensure_year_months(payload)

        trusted = extracted.status == Fidelity.OK and normalized.status == Fidelity.OK
        fidelity = Fidelity.OK if trusted else Fidelity.DEGRADED
        wanted = set(years)
        documents: dict[int, GeneratedDocument] = {}
        for raw_entry in payload.get(kind.key, []):
            entry, error = validate_payload(kind.entry_schema, raw_entry)
            if entry is None:
                reasons.append(f"invalid entry: {error}")
                continue
            year = entry.year
            if year not in wanted or year in documents:
                continue
            doc = _document_from_entry(doc_type, entry, fidelity)
            if doc is None:
                reasons.append(f"empty entry for {year}")
                continue
            documents[year] = doc
        return documents, "; ".join(reasons)


# =============================================================================
# SINGLE-DOCUMENT GENERATOR (per-year fallback)
# =============================================================================


class SingleDocumentGenerator:
    """Generates one heavy document for one year."""

    def __init__(
        self,
        client: LLMClient,
        artifact_sink: ArtifactSink | None = None,
        model: str | None = None,
    ):
        self._client = client
        self._sink = artifact_sink or DirectoryArtifactSink()
        self._model = model

    async def generate(
        self,
        company: CompanyInput,
        year_data: YearlyData,
        doc_type: DocumentType,
    ) -> GeneratedDocument:
        """Generate ``doc_type`` for ``year_data.year``.

        Raises:
            DocumentGenerationError: The request failed or the response was unusable.
        """
        if doc_type == DocumentType.JE:
            prompt = journal_single_prompt(company, year_data)
            config = GenerationConfig.json(JOURNAL_SINGLE_SCHEMA)
        elif doc_type == DocumentType.NEWSLETTER:
            prompt = newsletter_single_prompt(company, year_data)
            config = GenerationConfig()
        else:
            raise ValueError(f"{doc_type.value} is not generated by the model")

        doc_id = document_id(doc_type, year_data.year)
        log = logger.bind(doc_id=doc_id)
        try:
            response = await self._client.generate_content(
                contents=prompt, model=self._model, config=config
            )
        except Exception as e:
            log.error("single_request_failed", error=str(e))
            raise DocumentGenerationError(f"Request for {doc_id} failed: {e}") from e

        raw_text = response.text or ""
        if doc_type == DocumentType.JE:
            doc = self._journal(raw_text, year_data.year)
        else:
            doc = self._newsletter(raw_text, year_data.year)

        if doc is None:
            path = self._sink.persist(f"{doc_id}-{uuid.uuid4().hex}", raw_text)
            log.warning("single_response_unusable", artifact=path)
            raise DocumentGenerationError(
                f"Response for {doc_id} was unusable", details={"artifact": path}
            )
        log.info("single_generated", fidelity=doc.fidelity.value)
        return doc

    def _journal(self, raw_text: str, year: int) -> GeneratedDocument | None:
        extracted = extract_json(raw_text)
        normalized = normalize_journal_entries(
            extracted.value, expected_years=[year], raw_text=raw_text
        )
        if not normalized.usable:
            return None
        # {"months": [...]} is the requested single-year shape, so only a
        # salvaged parse lowers fidelity here
        fidelity = Fidelity.OK if extracted.status == Fidelity.OK else Fidelity.DEGRADED
        for raw_entry in ensure_year_months(normalized.value)["years"]:
            entry, _ = validate_payload(JournalYearSchema, raw_entry)
            if entry is None or entry.year != year:
                continue
            return _document_from_entry(DocumentType.JE, entry, fidelity)
        return None

    def _newsletter(self, raw_text: str, year: int) -> GeneratedDocument | None:
        text = raw_text.strip()
        if text.startswith("{") or text.startswith("["):
            normalized = normalize_newsletters(
                extract_json(text).value, expected_years=[year], raw_text=text
            )
            entries = normalized.value.get("newsletters", []) if normalized.usable else []
            for raw_entry in entries:
                entry, _ = validate_payload(NewsletterSchema, raw_entry)
                if entry is not None and entry.year == year:
                    return newsletter_document(year, entry.content.strip(), Fidelity.DEGRADED)
            return None
        if not text:
            return None
        return newsletter_document(year, text)
