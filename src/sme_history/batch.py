"""Top-level batch orchestration.

Local types (BS/PL/CF) are rendered first from the figures already in the
history, with no LLM call and no suspension. Heavy types (JE, newsletters)
then go one type at a time through the bulk generator; if the bulk path
raises, the type falls back to one request per year. A batch never aborts
on a partial failure: it returns every document it could produce.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import structlog

from sme_history.artifacts import ArtifactSink, DirectoryArtifactSink
from sme_history.bulk import BulkGenerator, SingleDocumentGenerator
from sme_history.clients.base import LLMClient
from sme_history.clients.factory import create_client
from sme_history.config import get_settings
from sme_history.documents import DOC_TYPE_LABELS, DocumentType, GeneratedDocument, document_id
from sme_history.errors import MissingFinancialsError
from sme_history.models import CompanyInput, YearlyData
from sme_history.progress import (
    EventCallback,
    ProgressCallback,
    ProgressEvent,
    ProgressStage,
    notify,
)
from sme_history.ratelimit import RateLimiter
from sme_history.statements import render_statement

logger = structlog.get_logger(__name__)

DONE_LABEL = "完了"

_CHUNK_TERMINAL = (
    ProgressStage.CHUNK_COMPLETED,
    ProgressStage.CHUNK_DEGRADED,
    ProgressStage.CHUNK_FAILED,
)


def _ordered_types(types: Iterable[DocumentType | str]) -> list[DocumentType]:
    seen: list[DocumentType] = []
    for raw in types:
        doc_type = raw if isinstance(raw, DocumentType) else DocumentType(str(raw).upper())
        if doc_type not in seen:
            seen.append(doc_type)
    return seen


class _Progress:
    """Completed-unit counter owned by one batch_generate call."""

    def __init__(self, on_progress: ProgressCallback | None):
        self._on_progress = on_progress
        self.completed = 0

    def advance(self, label: str) -> None:
        self.completed += 1
        notify(self._on_progress, self.completed, label)


class BatchController:
    """Routes each requested document type to the local or heavy path."""

    def __init__(
        self,
        bulk: BulkGenerator,
        single: SingleDocumentGenerator,
        rate_limiter: RateLimiter | None = None,
    ):
        self._bulk = bulk
        self._single = single
        self._limiter = rate_limiter or RateLimiter(
            interval=get_settings().single_doc_delay_seconds, name="single"
        )

    async def batch_generate(
        self,
        company: CompanyInput,
        history: Sequence[YearlyData],
        types: Iterable[DocumentType | str],
        on_progress: ProgressCallback | None = None,
        on_event: EventCallback | None = None,
    ) -> list[GeneratedDocument]:
        """Generate every requested (type, year) document.

        ``on_progress(completed, label)`` is called after each local
        document, bulk chunk and per-year fallback call (skipped and failed
        units included), then once more with the final count and "完了".
        The count belongs to this call alone.
        """
        requested = _ordered_types(types)
        local = [t for t in requested if t.is_local]
        heavy = [t for t in requested if not t.is_local]
        log = logger.bind(company=company.name, years=len(history))
        log.info(
            "batch_started",
            local=[t.value for t in local],
            heavy=[t.value for t in heavy],
        )

        progress = _Progress(on_progress)
        documents = self._render_local(history, local, progress, on_event)
        for doc_type in heavy:
            documents.extend(
                await self._generate_heavy(company, history, doc_type, progress, on_event)
            )

        notify(on_progress, progress.completed, DONE_LABEL)
        notify(
            on_event,
            ProgressEvent(
                progress.completed,
                progress.completed,
                "",
                ProgressStage.BATCH_COMPLETED,
                data={"documents": len(documents)},
            ),
        )
        log.info(
            "batch_completed",
            documents=len(documents),
            placeholders=sum(1 for d in documents if d.is_placeholder),
        )
        return documents

    def _render_local(
        self,
        history: Sequence[YearlyData],
        types: Sequence[DocumentType],
        progress: _Progress,
        on_event: EventCallback | None,
    ) -> list[GeneratedDocument]:
        documents: list[GeneratedDocument] = []
        total = len(history) * len(types)
        index = 0
        for year_data in history:
            for doc_type in types:
                index += 1
                doc_id = document_id(doc_type, year_data.year)
                try:
                    doc = render_statement(year_data, doc_type)
                except MissingFinancialsError as e:
                    logger.warning("local_render_skipped", doc_id=doc_id, error=str(e))
                    progress.advance(f"{DOC_TYPE_LABELS[doc_type]} {doc_id}（スキップ）")
                    skipped = ProgressEvent(index, total, doc_id, ProgressStage.LOCAL_SKIPPED)
                    notify(on_event, skipped)
                    continue
                documents.append(doc)
                progress.advance(doc.title)
                notify(on_event, ProgressEvent(index, total, doc_id, ProgressStage.LOCAL_RENDERED))
        return documents

    async def _generate_heavy(
        self,
        company: CompanyInput,
        history: Sequence[YearlyData],
        doc_type: DocumentType,
        progress: _Progress,
        on_event: EventCallback | None,
    ) -> list[GeneratedDocument]:
        def on_chunk(event: ProgressEvent) -> None:
            if event.stage in _CHUNK_TERMINAL:
                progress.advance(f"{DOC_TYPE_LABELS[doc_type]} {event.doc_id}")
            notify(on_event, event)

        try:
            return await self._bulk.generate(company, history, doc_type, on_event=on_chunk)
        except Exception as e:
            logger.warning("bulk_fallback", doc_type=doc_type.value, error=str(e))
        return await self._fallback(company, history, doc_type, progress, on_event)

    async def _fallback(
        self,
        company: CompanyInput,
        history: Sequence[YearlyData],
        doc_type: DocumentType,
        progress: _Progress,
        on_event: EventCallback | None,
    ) -> list[GeneratedDocument]:
        documents: list[GeneratedDocument] = []
        for index, year_data in enumerate(history, start=1):
            doc_id = document_id(doc_type, year_data.year)
            await self._limiter.acquire()
            try:
                doc = await self._single.generate(company, year_data, doc_type)
            except Exception as e:
                logger.error("fallback_failed", doc_id=doc_id, error=str(e))
                progress.advance(f"{DOC_TYPE_LABELS[doc_type]} {doc_id}（失敗）")
                notify(
                    on_event,
                    ProgressEvent(
                        index,
                        len(history),
                        doc_id,
                        ProgressStage.FALLBACK_FAILED,
                        data={"error": str(e)},
                    ),
                )
                continue
            documents.append(doc)
            progress.advance(doc.title)
            notify(
                on_event,
                ProgressEvent(index, len(history), doc_id, ProgressStage.FALLBACK_COMPLETED),
            )
        return documents


async def batch_generate(
    company: CompanyInput,
    history: Sequence[YearlyData],
    types: Iterable[DocumentType | str],
    on_progress: ProgressCallback | None = None,
    on_event: EventCallback | None = None,
    client: LLMClient | None = None,
    artifact_sink: ArtifactSink | None = None,
    model: str | None = None,
) -> list[GeneratedDocument]:
    """Run one batch with generators and limiters built from settings."""
    requested = _ordered_types(types)
    if client is None and any(not t.is_local for t in requested):
        client = create_client()
    sink = artifact_sink or DirectoryArtifactSink()
    controller = BatchController(
        bulk=BulkGenerator(client, artifact_sink=sink, model=model),
        single=SingleDocumentGenerator(client, artifact_sink=sink, model=model),
    )
    return await controller.batch_generate(company, history, requested, on_progress, on_event)
