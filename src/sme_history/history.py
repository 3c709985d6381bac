"""Company history generation, profile autocompletion and user edits."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from typing import Any

import structlog

from sme_history.clients.base import GenerationConfig, LLMClient
from sme_history.errors import HistoryGenerationError
from sme_history.models import CompanyInput, YearlyData
from sme_history.parsing import extract_json
from sme_history.prompts import (
    AUTOCOMPLETE_SCHEMA,
    HISTORY_SCHEMA,
    autocomplete_prompt,
    history_prompt,
)
from sme_history.reconcile import (
    TaxPolicy,
    reconcile_financials,
    reconcile_yearly,
    tax_policy_from_settings,
    to_number,
)

logger = structlog.get_logger(__name__)

_HISTORY_WRAPPERS = ("history", "years", "data", "yearlyData")


def _history_items(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, dict):
        for key in _HISTORY_WRAPPERS:
            if isinstance(value.get(key), list):
                value = value[key]
                break
        else:
            value = [value] if "year" in value else []
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


async def generate_company_history(
    company: CompanyInput,
    client: LLMClient,
    model: str | None = None,
    tax_policy: TaxPolicy | None = None,
) -> list[YearlyData]:
    """Ask the model for a year-by-year history and reconcile every year.

    Raises:
        HistoryGenerationError: The response holds no usable yearly record.
    """
    policy = tax_policy or tax_policy_from_settings()
    log = logger.bind(company=company.name)
    log.info("history_requested", from_year=company.founded_year, to_year=company.current_year)

    response = await client.generate_content(
        contents=history_prompt(company),
        model=model,
        config=GenerationConfig.json(HISTORY_SCHEMA),
    )
    outcome = extract_json(response.text)
    items = _history_items(outcome.value) if outcome.usable else []

    history: list[YearlyData] = []
    for item in items:
        year_data = YearlyData.from_dict(item)
        if not year_data.year:
            log.warning("history_year_dropped", reason="missing year")
            continue
        raw = item.get("financials")
        history.append(
            reconcile_yearly(year_data, raw if isinstance(raw, dict) else None, policy)
        )

    if not history:
        raise HistoryGenerationError(
            "Model returned no usable yearly history",
            details={"reason": outcome.reason, "chars": len(response.text or "")},
        )

    history.sort(key=lambda y: y.year)
    log.info(
        "history_generated",
        years=len(history),
        fidelity=outcome.status.value,
        missing_financials=sum(1 for y in history if y.financials is None),
    )
    return history


async def autocomplete_company(
    partial: dict[str, Any],
    client: LLMClient,
    model: str | None = None,
) -> dict[str, Any]:
    """Fill blank company fields from the model.

    Values the user already entered always win. Any failure returns the
    input unchanged.
    """
    try:
        response = await client.generate_content(
            contents=autocomplete_prompt(partial),
            model=model,
            config=GenerationConfig.json(AUTOCOMPLETE_SCHEMA),
        )
    except Exception as e:
        logger.warning("autocomplete_failed", error=str(e))
        return dict(partial)

    outcome = extract_json(response.text)
    suggested = outcome.value
    if not outcome.usable or not isinstance(suggested, dict):
        logger.warning("autocomplete_unparseable", reason=outcome.reason)
        return dict(partial)

    merged = dict(partial)
    filled = []
    for key, value in suggested.items():
        if merged.get(key) in (None, "", [], 0):
            merged[key] = value
            filled.append(key)
    logger.info("autocomplete_applied", fields=filled)
    return merged


def apply_edit(
    history: Sequence[YearlyData],
    index: int,
    field: str,
    value: Any,
) -> list[YearlyData]:
    """Apply a user edit of a headline figure and propagate it into financials.

    ``field`` is one of ``revenue``, ``operatingProfit``, ``cashFlow`` (or
    their snake_case names) or any other YearlyData attribute, which is set
    as-is. Returns a new list; ``history`` is not modified.
    """
    if not 0 <= index < len(history):
        raise IndexError(f"history index {index} out of range")

    updated = list(history)
    current = updated[index]
    number = to_number(value)
    financials = current.financials

    if field in ("revenue", "operatingProfit", "operating_profit", "cashFlow", "cash_flow"):
        if number is None:
            raise ValueError(f"{field} must be numeric, got {value!r}")

    if field == "revenue":
        current = replace(current, revenue=number)
        if financials is not None:
            gross = number - financials.cogs
            financials = replace(
                financials,
                sales=number,
                gross_profit=gross,
                operating_profit=gross - financials.sga,
            )
    elif field in ("operatingProfit", "operating_profit"):
        current = replace(current, operating_profit=number)
        if financials is not None:
            financials = replace(
                financials,
                operating_profit=number,
                sga=financials.gross_profit - number,
            )
    elif field in ("cashFlow", "cash_flow"):
        current = replace(current, cash_flow=number)
        if financials is not None:
            financials = replace(financials, operating_cf=number)
    else:
        current = replace(current, **{field: value})

    if financials is not current.financials and financials is not None:
        # Downstream figures (ordinary profit, net profit, ending cash) follow
        financials = reconcile_financials(financials, tax_policy_from_settings())
    updated[index] = replace(current, financials=financials)
    return updated
