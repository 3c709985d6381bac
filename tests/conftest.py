"""Pytest configuration and fixtures."""

import json
import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("BULK_CHUNK_DELAY_SECONDS", "0")
os.environ.setdefault("SINGLE_DOC_DELAY_SECONDS", "0")

from sme_history.artifacts import NullArtifactSink  # noqa: E402
from sme_history.clients.base import LLMResponse  # noqa: E402
from sme_history.documents import FISCAL_MONTH_LABELS  # noqa: E402
from sme_history.models import CeoRecord, CompanyInput, YearlyData  # noqa: E402
from sme_history.ratelimit import RateLimiter  # noqa: E402
from sme_history.reconcile import reconcile_yearly  # noqa: E402


def sample_financials(sales: float = 500) -> dict:
    """Model-shaped (camelCase) financials with deliberately wrong totals."""
    return {
        "sales": sales,
        "cogs": sales * 0.7,
        "grossProfit": 1,
        "sga": sales * 0.25,
        "operatingProfit": 2,
        "nonOperatingIncome": 3,
        "nonOperatingExpenses": 5,
        "extraordinaryIncome": 0,
        "extraordinaryLoss": 0,
        "tax": "",
        "currentAssets": {"cash": 80, "accountsReceivable": 60, "inventory": 20},
        "fixedAssets": {"tangible": 120, "intangible": 5, "investments": 15},
        "totalAssets": 9999,
        "currentLiabilities": {"accountsPayable": 40, "shortTermDebt": 30},
        "fixedLiabilities": {"longTermDebt": 100},
        "netAssets": {"capitalStock": 10, "retainedEarnings": 0},
        "operatingCF": 20,
        "investingCF": -10,
        "financingCF": -5,
        "cashAtBeginning": 75,
        "cashAtEnd": 0,
    }


def journal_year(year: int, lines_per_month: int = 2) -> dict:
    """A canonical bulk journal entry for one year."""
    return {
        "year": year,
        "months": [
            {
                "title": title,
                "items": [
                    {
                        "date": "4/30",
                        "account": "売掛金" if i % 2 == 0 else "売上高",
                        "debit": 1000 if i % 2 == 0 else None,
                        "credit": None if i % 2 == 0 else 1000,
                        "label": "売上計上",
                    }
                    for i in range(lines_per_month)
                ],
            }
            for title in FISCAL_MONTH_LABELS
        ],
    }


def journal_response(*years: int) -> LLMResponse:
    return LLMResponse(text=json.dumps({"years": [journal_year(y) for y in years]}))


def newsletter_response(*years: int) -> LLMResponse:
    payload = {
        "newsletters": [
            {"year": y, "content": f"{y}年度も皆さんお疲れさまでした。"} for y in years
        ]
    }
    return LLMResponse(text=json.dumps(payload, ensure_ascii=False))


@pytest.fixture
def company():
    """A small manufacturing company with one CEO change."""
    return CompanyInput(
        name="株式会社テスト製作所",
        industry="製造業",
        founded_year=2020,
        current_year=2022,
        initial_employees=5,
        current_employees=12,
        persona="堅実な二代目",
        key_events="2021年に工場移転",
        ceo_history=[
            CeoRecord(name="山田太郎", resignation_year=2020),
            CeoRecord(name="山田花子"),
        ],
    )


@pytest.fixture
def history():
    """Three reconciled years, 2020-2022."""
    years = []
    for offset, year in enumerate((2020, 2021, 2022)):
        sales = 500 + offset * 20
        year_data = YearlyData(
            year=year,
            revenue=sales,
            operating_profit=25,
            cash_flow=20,
            employees=10 + offset,
            market_context="コロナ禍" if year == 2020 else "",
            company_event="工場移転" if year == 2021 else "",
        )
        years.append(reconcile_yearly(year_data, sample_financials(sales)))
    return years


@pytest.fixture
def null_sink():
    return NullArtifactSink()


@pytest.fixture
def recording_sink():
    """Sink that remembers what it was asked to persist."""
    sink = MagicMock()
    sink.persist = MagicMock(side_effect=lambda name, data: f"mem://{name}")
    return sink


@pytest.fixture
def free_limiter():
    """Limiter that never waits but still counts permits."""
    return RateLimiter(interval=0)


@pytest.fixture
def scripted_client():
    """Factory for a fake LLM client replaying responses (or raising) in order."""

    def _make(*responses):
        client = MagicMock()
        client.generate_content = AsyncMock(side_effect=list(responses))
        return client

    return _make
