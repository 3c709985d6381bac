"""Tests for the batch controller."""

import asyncio
import re
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import journal_response, newsletter_response

from sme_history.batch import DONE_LABEL, BatchController, batch_generate
from sme_history.bulk import BulkGenerator, SingleDocumentGenerator
from sme_history.clients.base import LLMResponse
from sme_history.documents import DocumentType, journal_placeholder
from sme_history.errors import BulkGenerationError
from sme_history.models import YearlyData
from sme_history.progress import ProgressStage
from sme_history.ratelimit import RateLimiter

LOCAL = [DocumentType.BS, DocumentType.PL, DocumentType.CF]


def make_controller(client, sink, chunk_size=2):
    bulk_limiter = RateLimiter(interval=0, name="bulk")
    single_limiter = RateLimiter(interval=0, name="single")
    controller = BatchController(
        bulk=BulkGenerator(
            client, artifact_sink=sink, rate_limiter=bulk_limiter, chunk_size=chunk_size
        ),
        single=SingleDocumentGenerator(client, artifact_sink=sink),
        rate_limiter=single_limiter,
    )
    return controller, bulk_limiter, single_limiter


class TestLocalTypes:
    """Tests for the local rendering path."""

    @pytest.mark.asyncio
    async def test_local_types_make_no_llm_calls(
        self, company, history, scripted_client, null_sink
    ):
        """Test BS/PL/CF issue zero requests and acquire no permits."""
        client = scripted_client()
        controller, bulk_limiter, single_limiter = make_controller(client, null_sink)
        progress = []

        docs = await controller.batch_generate(
            company, history, LOCAL, on_progress=lambda n, label: progress.append((n, label))
        )

        assert len(docs) == 9
        client.generate_content.assert_not_awaited()
        assert bulk_limiter.acquired == 0
        assert single_limiter.acquired == 0
        assert [n for n, _ in progress] == list(range(1, 10)) + [9]
        assert progress[-1] == (9, DONE_LABEL)

    @pytest.mark.asyncio
    async def test_local_rendering_does_not_suspend(self, company, history, null_sink):
        """Test the local path never awaits a sleep."""
        sleep = AsyncMock()
        limiter = RateLimiter(interval=5.0, sleep=sleep)
        controller = BatchController(
            bulk=BulkGenerator(MagicMock(), artifact_sink=null_sink, rate_limiter=limiter),
            single=SingleDocumentGenerator(MagicMock(), artifact_sink=null_sink),
            rate_limiter=limiter,
        )

        await controller.batch_generate(company, history, LOCAL)

        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_financials_skipped(self, company, history, scripted_client, null_sink):
        """Test a year without financials is skipped, not fatal."""
        controller, _, _ = make_controller(scripted_client(), null_sink)
        years = [history[0], YearlyData(year=2021)]
        events = []
        progress = []

        docs = await controller.batch_generate(
            company,
            years,
            [DocumentType.BS],
            on_progress=lambda n, label: progress.append((n, label)),
            on_event=events.append,
        )

        assert [d.id for d in docs] == ["BS-2020"]
        assert ProgressStage.LOCAL_SKIPPED in [e.stage for e in events]
        # the skipped year still counts as a finished unit
        assert [n for n, _ in progress] == [1, 2, 2]
        assert "BS-2021" in progress[1][1]


class TestHeavyTypes:
    """Tests for the heavy path and its fallback."""

    @pytest.mark.asyncio
    async def test_locals_first_then_heavy_in_order(
        self, company, history, scripted_client, null_sink
    ):
        """Test local documents come first and heavy types follow in request order."""
        client = scripted_client(
            journal_response(2020, 2021),
            journal_response(2022),
            newsletter_response(2020, 2021),
            newsletter_response(2022),
        )
        controller, bulk_limiter, _ = make_controller(client, null_sink)
        progress = []

        docs = await controller.batch_generate(
            company,
            history,
            [DocumentType.JE, DocumentType.BS, DocumentType.NEWSLETTER],
            on_progress=lambda n, label: progress.append((n, label)),
        )

        assert [d.id for d in docs] == [
            "BS-2020",
            "BS-2021",
            "BS-2022",
            "JE-2020",
            "JE-2021",
            "JE-2022",
            "NEWSLETTER-2020",
            "NEWSLETTER-2021",
            "NEWSLETTER-2022",
        ]
        assert bulk_limiter.acquired == 4
        # three local documents, two chunks per heavy type, then the final call
        assert len(progress) == 3 + 2 + 2 + 1
        assert "JE-2020..2021" in progress[3][1]
        assert progress[-1] == (7, DONE_LABEL)

    @pytest.mark.asyncio
    async def test_bulk_failure_falls_back_per_year(
        self, company, history, scripted_client, null_sink
    ):
        """Test total bulk failure falls back to one rate-limited request per year."""
        client = scripted_client(
            RuntimeError("down"),
            RuntimeError("down"),
            LLMResponse(text="2020年の社内報"),
            ConnectionError("reset"),
            LLMResponse(text="2022年の社内報"),
        )
        controller, _, single_limiter = make_controller(client, null_sink)
        events = []

        docs = await controller.batch_generate(
            company, history, [DocumentType.NEWSLETTER], on_event=events.append
        )

        assert [d.id for d in docs] == ["NEWSLETTER-2020", "NEWSLETTER-2022"]
        assert single_limiter.acquired == 3
        stages = [e.stage for e in events]
        assert stages.count(ProgressStage.FALLBACK_COMPLETED) == 2
        assert stages.count(ProgressStage.FALLBACK_FAILED) == 1
        assert stages[-1] == ProgressStage.BATCH_COMPLETED

    @pytest.mark.asyncio
    async def test_unexpected_bulk_error_falls_back(self, company, history, null_sink):
        """Test any exception from the bulk path triggers the per-year fallback."""
        bulk = MagicMock()
        bulk.generate = AsyncMock(side_effect=BulkGenerationError("boom"))
        single = MagicMock()
        single.generate = AsyncMock(
            side_effect=lambda c, y, t: journal_placeholder(y.year, y.revenue)
        )
        controller = BatchController(bulk, single, RateLimiter(interval=0))

        docs = await controller.batch_generate(company, history, [DocumentType.JE])

        assert single.generate.await_count == 3
        assert len(docs) == 3

    @pytest.mark.asyncio
    async def test_failing_progress_callback_does_not_abort(
        self, company, history, scripted_client, null_sink
    ):
        """Test a raising progress callback is logged and ignored."""
        controller, _, _ = make_controller(scripted_client(), null_sink)

        def broken(completed, label):
            raise RuntimeError("ui gone")

        docs = await controller.batch_generate(company, history, LOCAL, on_progress=broken)

        assert len(docs) == 9


class TestConcurrentBatches:
    """Tests for batches sharing one controller."""

    @pytest.mark.asyncio
    async def test_progress_counts_are_per_call(self, company, history, null_sink):
        """Test two interleaved batches each count only their own units."""

        async def respond(contents, model=None, config=None):
            await asyncio.sleep(0)
            years = [int(y) for y in re.findall(r"- Year: (\d{4})", contents)]
            return newsletter_response(*years)

        client = MagicMock()
        client.generate_content = AsyncMock(side_effect=respond)
        controller, _, _ = make_controller(client, null_sink, chunk_size=1)
        first, second = [], []

        docs_a, docs_b = await asyncio.gather(
            controller.batch_generate(
                company,
                history,
                [DocumentType.NEWSLETTER],
                on_progress=lambda n, label: first.append(n),
            ),
            controller.batch_generate(
                company,
                history,
                [DocumentType.NEWSLETTER],
                on_progress=lambda n, label: second.append(n),
            ),
        )

        assert first == [1, 2, 3, 3]
        assert second == [1, 2, 3, 3]
        assert len(docs_a) == len(docs_b) == 3
        assert client.generate_content.await_count == 6


class TestBatchGenerateFunction:
    """Tests for the module-level convenience function."""

    @pytest.mark.asyncio
    async def test_local_only_needs_no_client(self, company, history, null_sink):
        """Test a local-only batch never builds an LLM client."""
        with patch("sme_history.batch.create_client") as create:
            docs = await batch_generate(company, history, ["BS", "pl"], artifact_sink=null_sink)

        create.assert_not_called()
        assert {d.type for d in docs} == {DocumentType.BS, DocumentType.PL}

    @pytest.mark.asyncio
    async def test_builds_client_for_heavy_types(self, company, history, null_sink):
        """Test a heavy batch builds the configured client."""
        client = MagicMock()
        client.generate_content = AsyncMock(
            side_effect=[newsletter_response(2020, 2021, 2022)]
        )
        with patch("sme_history.batch.create_client", return_value=client) as create:
            docs = await batch_generate(
                company, history, [DocumentType.NEWSLETTER], artifact_sink=null_sink
            )

        create.assert_called_once()
        assert len(docs) == 3
