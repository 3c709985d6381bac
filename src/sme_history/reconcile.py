"""Deterministic reconciliation of model-produced financial records.

The model gets the shape of a financial record right far more often than
the arithmetic. This pass recomputes every derived figure from its inputs
so that the P&L chain, the cash roll-forward and the balance-sheet
identity (assets = liabilities + net assets) hold regardless of what was
returned. Retained earnings is the balancing plug.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, fields, replace
from typing import Any

import structlog

from sme_history.config import get_settings
from sme_history.models import DetailedFinancials, YearlyData, to_snake

logger = structlog.get_logger(__name__)

Number = float | int


@dataclass(frozen=True)
class TaxPolicy:
    """Estimate for corporate tax when the model did not supply one.

    A flat rate on positive pre-tax profit. This is a business heuristic,
    not a statutory calculation.
    """

    rate: float = 0.30

    def estimate(self, pre_tax_profit: Number) -> Number:
        if pre_tax_profit > 0:
            return pre_tax_profit * self.rate
        return 0


DEFAULT_TAX_POLICY = TaxPolicy()


def tax_policy_from_settings() -> TaxPolicy:
    """Build the TaxPolicy configured by RECONCILE_TAX_RATE."""
    return TaxPolicy(rate=get_settings().reconcile_tax_rate)


def to_number(value: Any) -> Number | None:
    """Coerce a raw field to a number.

    Blank strings and None count as zero. Returns None for values that are
    not numeric at all (prose, NaN, nested structures).
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) or math.isinf(value) else value
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return 0
        try:
            number = float(text)
        except ValueError:
            return None
        if math.isnan(number) or math.isinf(number):
            return None
        return int(number) if number.is_integer() and "." not in text else number
    return None


def _coerce(value: Any) -> Number:
    number = to_number(value)
    return 0 if number is None else number


def _is_absent(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return to_number(value) is None


def _derive(inputs: tuple[Any, ...], formula: Any, supplied: Any) -> Number:
    """Apply ``formula`` to numeric inputs, else fall back to ``supplied``."""
    numbers = [to_number(v) for v in inputs]
    if any(n is None for n in numbers):
        return _coerce(supplied)
    return formula(*numbers)


def _normalize_keys(raw: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in raw.items():
        out[to_snake(str(key))] = value
    return out


def _build_group(group_cls: type, raw: Any) -> Any:
    data = _normalize_keys(raw) if isinstance(raw, Mapping) else {}
    values = {f.name: _coerce(data.get(f.name)) for f in fields(group_cls)}
    return group_cls(**values)


def reconcile_financials(
    raw: Mapping[str, Any] | DetailedFinancials | None,
    tax_policy: TaxPolicy = DEFAULT_TAX_POLICY,
) -> DetailedFinancials:
    """Return a DetailedFinancials whose derived figures match their inputs.

    Args:
        raw: Model output for one year (camelCase or snake_case keys), or an
            existing DetailedFinancials to re-reconcile after edits.
        tax_policy: Estimate used when tax is absent or not a number.

    Returns:
        A new, internally consistent DetailedFinancials.
    """
    if isinstance(raw, DetailedFinancials):
        raw = raw.to_dict()
    data = _normalize_keys(raw) if isinstance(raw, Mapping) else {}

    groups = {
        name: _build_group(group_cls, data.get(name))
        for name, group_cls in DetailedFinancials.GROUPS.items()
    }

    sales = _coerce(data.get("sales"))
    cogs = _coerce(data.get("cogs"))
    sga = _coerce(data.get("sga"))

    # P&L chain
    gross_profit = _derive(
        (data.get("sales"), data.get("cogs")),
        lambda s, c: s - c,
        data.get("gross_profit"),
    )
    operating_profit = _derive(
        (gross_profit, data.get("sga")),
        lambda g, s: g - s,
        data.get("operating_profit"),
    )
    ordinary_profit = _derive(
        (
            operating_profit,
            data.get("non_operating_income"),
            data.get("non_operating_expenses"),
        ),
        lambda o, i, e: o + i - e,
        data.get("ordinary_profit"),
    )
    pre_tax_profit = _derive(
        (ordinary_profit, data.get("extraordinary_income"), data.get("extraordinary_loss")),
        lambda o, i, loss: o + i - loss,
        data.get("pre_tax_profit"),
    )
    if _is_absent(data.get("tax")):
        tax = tax_policy.estimate(pre_tax_profit)
    else:
        tax = _coerce(data.get("tax"))
    net_profit = pre_tax_profit - tax

    # Balance sheet
    total_assets = groups["current_assets"].total() + groups["fixed_assets"].total()
    total_liabilities = (
        groups["current_liabilities"].total() + groups["fixed_liabilities"].total()
    )
    total_net_assets = total_assets - total_liabilities
    net_assets = groups["net_assets"]
    groups["net_assets"] = replace(
        net_assets,
        retained_earnings=total_net_assets - net_assets.capital_stock - net_assets.other,
    )

    # Cash roll-forward
    cash_at_end = _derive(
        (
            data.get("cash_at_beginning"),
            data.get("operating_cf"),
            data.get("investing_cf"),
            data.get("financing_cf"),
        ),
        lambda b, o, i, f: b + o + i + f,
        data.get("cash_at_end"),
    )

    return DetailedFinancials(
        sales=sales,
        cogs=cogs,
        gross_profit=gross_profit,
        sga=sga,
        operating_profit=operating_profit,
        non_operating_income=_coerce(data.get("non_operating_income")),
        non_operating_expenses=_coerce(data.get("non_operating_expenses")),
        ordinary_profit=ordinary_profit,
        extraordinary_income=_coerce(data.get("extraordinary_income")),
        extraordinary_loss=_coerce(data.get("extraordinary_loss")),
        pre_tax_profit=pre_tax_profit,
        tax=tax,
        net_profit=net_profit,
        current_assets=groups["current_assets"],
        fixed_assets=groups["fixed_assets"],
        total_assets=total_assets,
        current_liabilities=groups["current_liabilities"],
        fixed_liabilities=groups["fixed_liabilities"],
        total_liabilities=total_liabilities,
        net_assets=groups["net_assets"],
        total_net_assets=total_net_assets,
        operating_cf=_coerce(data.get("operating_cf")),
        investing_cf=_coerce(data.get("investing_cf")),
        financing_cf=_coerce(data.get("financing_cf")),
        cash_at_beginning=_coerce(data.get("cash_at_beginning")),
        cash_at_end=cash_at_end,
    )


def reconcile_yearly(
    year_data: YearlyData,
    raw_financials: Mapping[str, Any] | None = None,
    tax_policy: TaxPolicy = DEFAULT_TAX_POLICY,
) -> YearlyData:
    """Return a copy of ``year_data`` with reconciled financials.

    ``raw_financials`` takes precedence over ``year_data.financials``. Years
    with neither are returned unchanged.
    """
    source: Mapping[str, Any] | DetailedFinancials | None = raw_financials
    if source is None:
        source = year_data.financials
    if source is None:
        return replace(year_data)
    return replace(year_data, financials=reconcile_financials(source, tax_policy))


def reconcile_history(
    history: Iterable[YearlyData],
    tax_policy: TaxPolicy | None = None,
) -> list[YearlyData]:
    """Reconcile every year of a history."""
    policy = tax_policy or tax_policy_from_settings()
    reconciled = [reconcile_yearly(item, tax_policy=policy) for item in history]
    logger.debug("history_reconciled", years=len(reconciled), tax_rate=policy.rate)
    return reconciled
