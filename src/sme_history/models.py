"""Company, yearly history and detailed financial records.

Headline figures and every financial field are in millions of yen. The
wire form (``to_dict`` / ``from_dict``) uses the camelCase keys the model
is prompted with; attributes are snake_case.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

# Cash-flow keys keep their acronym on the wire
_CAMEL_OVERRIDES = {
    "operating_cf": "operatingCF",
    "investing_cf": "investingCF",
    "financing_cf": "financingCF",
}


def to_snake(key: str) -> str:
    """Convert a camelCase key to snake_case (``cashAtEnd`` -> ``cash_at_end``)."""
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def to_camel(key: str) -> str:
    """Convert a snake_case key to camelCase (``cash_at_end`` -> ``cashAtEnd``)."""
    if key in _CAMEL_OVERRIDES:
        return _CAMEL_OVERRIDES[key]
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _snake_keys(raw: dict[str, Any]) -> dict[str, Any]:
    return {to_snake(str(k)): v for k, v in raw.items()}


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_number(value: Any) -> float | int:
    """Keep integers as integers so sums stay exact."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = _as_float(value)
    return int(number) if number.is_integer() else number


# =============================================================================
# COMPANY
# =============================================================================


@dataclass
class CeoRecord:
    """One CEO tenure; ``resignation_year`` None means incumbent."""

    name: str
    resignation_year: int | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> CeoRecord:
        data = _snake_keys(raw)
        resignation = data.get("resignation_year")
        if resignation in (None, ""):
            year = None
        else:
            year = _as_int(resignation, default=0) or None
        return cls(name=str(data.get("name") or ""), resignation_year=year)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "resignationYear": "" if self.resignation_year is None else self.resignation_year,
        }


@dataclass
class CompanyInput:
    """Company profile that seeds the simulation."""

    name: str
    industry: str
    founded_year: int
    current_year: int
    initial_employees: int = 0
    current_employees: int = 0
    persona: str = ""
    key_events: str = ""
    ceo_history: list[CeoRecord] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.ceo_history:
            raise ValueError("CompanyInput requires at least one CEO record")

    def active_ceo(self, year: int) -> CeoRecord:
        """Return the CEO in office during ``year``."""
        for ceo in self.ceo_history:
            if ceo.resignation_year is None or ceo.resignation_year >= year:
                return ceo
        return self.ceo_history[-1]

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> CompanyInput:
        data = _snake_keys(raw)
        ceos = [
            CeoRecord.from_dict(item)
            for item in data.get("ceo_history") or []
            if isinstance(item, dict)
        ]
        if not ceos:
            ceos = [CeoRecord(name="代表取締役")]
        founded = _as_int(data.get("founded_year"), default=2000)
        return cls(
            name=str(data.get("name") or ""),
            industry=str(data.get("industry") or ""),
            founded_year=founded,
            current_year=_as_int(data.get("current_year"), default=founded),
            initial_employees=_as_int(data.get("initial_employees")),
            current_employees=_as_int(data.get("current_employees")),
            persona=str(data.get("persona") or ""),
            key_events=str(data.get("key_events") or ""),
            ceo_history=ceos,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "industry": self.industry,
            "foundedYear": self.founded_year,
            "currentYear": self.current_year,
            "initialEmployees": self.initial_employees,
            "currentEmployees": self.current_employees,
            "persona": self.persona,
            "keyEvents": self.key_events,
            "ceoHistory": [ceo.to_dict() for ceo in self.ceo_history],
        }


# =============================================================================
# DETAILED FINANCIALS
# =============================================================================


@dataclass
class _Group:
    """A balance-sheet group whose total is the literal sum of its fields."""

    def total(self) -> float | int:
        return sum(getattr(self, f.name) for f in fields(self))

    def to_dict(self) -> dict[str, Any]:
        return {to_camel(f.name): getattr(self, f.name) for f in fields(self)}


@dataclass
class CurrentAssets(_Group):
    cash: float | int = 0
    notes_receivable: float | int = 0  # 受取手形
    accounts_receivable: float | int = 0  # 売掛金
    inventory: float | int = 0
    other: float | int = 0


@dataclass
class FixedAssets(_Group):
    tangible: float | int = 0  # 有形
    intangible: float | int = 0  # 無形
    investments: float | int = 0  # 投資等


@dataclass
class CurrentLiabilities(_Group):
    notes_payable: float | int = 0  # 支払手形
    accounts_payable: float | int = 0  # 買掛金
    short_term_debt: float | int = 0
    other: float | int = 0


@dataclass
class FixedLiabilities(_Group):
    long_term_debt: float | int = 0
    other: float | int = 0


@dataclass
class NetAssets(_Group):
    capital_stock: float | int = 0  # 資本金
    retained_earnings: float | int = 0  # 利益剰余金
    other: float | int = 0


@dataclass
class DetailedFinancials:
    """Double-entry consistent snapshot for one fiscal year."""

    GROUPS: ClassVar[dict[str, type[_Group]]] = {
        "current_assets": CurrentAssets,
        "fixed_assets": FixedAssets,
        "current_liabilities": CurrentLiabilities,
        "fixed_liabilities": FixedLiabilities,
        "net_assets": NetAssets,
    }

    # P&L
    sales: float | int = 0
    cogs: float | int = 0
    gross_profit: float | int = 0
    sga: float | int = 0
    operating_profit: float | int = 0
    non_operating_income: float | int = 0
    non_operating_expenses: float | int = 0
    ordinary_profit: float | int = 0
    extraordinary_income: float | int = 0
    extraordinary_loss: float | int = 0
    pre_tax_profit: float | int = 0
    tax: float | int = 0
    net_profit: float | int = 0

    # BS
    current_assets: CurrentAssets = field(default_factory=CurrentAssets)
    fixed_assets: FixedAssets = field(default_factory=FixedAssets)
    total_assets: float | int = 0
    current_liabilities: CurrentLiabilities = field(default_factory=CurrentLiabilities)
    fixed_liabilities: FixedLiabilities = field(default_factory=FixedLiabilities)
    total_liabilities: float | int = 0
    net_assets: NetAssets = field(default_factory=NetAssets)
    total_net_assets: float | int = 0

    # CF
    operating_cf: float | int = 0
    investing_cf: float | int = 0
    financing_cf: float | int = 0
    cash_at_beginning: float | int = 0
    cash_at_end: float | int = 0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[to_camel(f.name)] = value.to_dict() if isinstance(value, _Group) else value
        return out


# =============================================================================
# YEARLY HISTORY
# =============================================================================


@dataclass
class YearlyData:
    """Headline figures and narrative for one simulated fiscal year."""

    year: int
    revenue: float | int = 0
    operating_profit: float | int = 0
    cash_flow: float | int = 0
    employees: int = 0
    market_context: str = ""
    company_event: str = ""
    financials: DetailedFinancials | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> YearlyData:
        """Coerce a model-produced yearly record; financials stay unset here."""
        data = _snake_keys(raw)
        return cls(
            year=_as_int(data.get("year")),
            revenue=_as_number(data.get("revenue")),
            operating_profit=_as_number(data.get("operating_profit")),
            cash_flow=_as_number(data.get("cash_flow")),
            employees=_as_int(data.get("employees")),
            market_context=str(data.get("market_context") or ""),
            company_event=str(data.get("company_event") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "year": self.year,
            "revenue": self.revenue,
            "operatingProfit": self.operating_profit,
            "cashFlow": self.cash_flow,
            "employees": self.employees,
            "marketContext": self.market_context,
            "companyEvent": self.company_event,
        }
        if self.financials is not None:
            out["financials"] = self.financials.to_dict()
        return out
