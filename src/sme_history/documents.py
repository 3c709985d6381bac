"""Generated document types and the builders shared by every generation path.

A GeneratedDocument is the sole contract handed to the exporter: its
content is either a Markdown string (newsletters) or a list of
FinancialSections (statements and journals).
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sme_history.outcome import Fidelity


class DocumentType(str, Enum):
    """Kinds of documents the pipeline produces."""

    BS = "BS"  # Balance sheet
    PL = "PL"  # Profit & loss
    CF = "CF"  # Cash flow
    JE = "JE"  # Monthly summary journal entries
    NEWSLETTER = "NEWSLETTER"

    @property
    def is_local(self) -> bool:
        """True when the document is computed from known figures, without an LLM."""
        return self in LOCAL_TYPES

    @property
    def label(self) -> str:
        return DOC_TYPE_LABELS[self]


LOCAL_TYPES = frozenset({DocumentType.BS, DocumentType.PL, DocumentType.CF})
HEAVY_TYPES = frozenset({DocumentType.JE, DocumentType.NEWSLETTER})

DOC_TYPE_LABELS: dict[DocumentType, str] = {
    DocumentType.BS: "貸借対照表",
    DocumentType.PL: "損益計算書",
    DocumentType.CF: "キャッシュ・フロー計算書",
    DocumentType.JE: "仕訳帳",
    DocumentType.NEWSLETTER: "社内報",
}

# Japanese fiscal year: April through March
FISCAL_MONTHS: tuple[int, ...] = (4, 5, 6, 7, 8, 9, 10, 11, 12, 1, 2, 3)
FISCAL_MONTH_LABELS: tuple[str, ...] = tuple(f"{m}月" for m in FISCAL_MONTHS)

JOURNAL_HEADERS = ["日付", "勘定科目", "借方", "貸方", "摘要"]

FAILURE_MARKER = "（生成失敗）"


def document_id(doc_type: DocumentType, year: int) -> str:
    return f"{doc_type.value}-{year}"


# =============================================================================
# CONTENT
# =============================================================================


@dataclass
class LabeledValue:
    """A statement row: label and amount (or "" for a caption)."""

    label: str
    value: float | int | str = ""
    is_total: bool = False
    indent: int = 0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"label": self.label, "value": self.value}
        if self.is_total:
            out["isTotal"] = True
        if self.indent:
            out["indent"] = self.indent
        return out


@dataclass
class JournalLine:
    """One side of a journal entry; the unused amount column is ""."""

    date: str
    account: str
    debit: float | int | str = ""
    credit: float | int | str = ""
    label: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "account": self.account,
            "debit": self.debit,
            "credit": self.credit,
            "label": self.label,
        }


@dataclass
class FinancialSection:
    """An ordered block of rows, optionally titled and paginated."""

    items: list[LabeledValue | JournalLine] = field(default_factory=list)
    title: str | None = None
    headers: list[str] | None = None
    break_page: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"items": [item.to_dict() for item in self.items]}
        if self.title is not None:
            out["title"] = self.title
        if self.headers is not None:
            out["headers"] = list(self.headers)
        if self.break_page:
            out["breakPage"] = True
        return out


@dataclass
class GeneratedDocument:
    """A finished document for one (type, year) pair."""

    id: str
    type: DocumentType
    year: int
    title: str
    content: str | list[FinancialSection]
    fidelity: Fidelity = Fidelity.OK

    @property
    def sections(self) -> list[FinancialSection]:
        return [] if isinstance(self.content, str) else self.content

    @property
    def is_placeholder(self) -> bool:
        return self.fidelity == Fidelity.PLACEHOLDER

    def to_dict(self) -> dict[str, Any]:
        content: Any
        if isinstance(self.content, str):
            content = self.content
        else:
            content = {"sections": [section.to_dict() for section in self.content]}
        return {
            "id": self.id,
            "type": self.type.value,
            "year": self.year,
            "title": self.title,
            "content": content,
            "fidelity": self.fidelity.value,
        }


# =============================================================================
# BUILDERS
# =============================================================================


def month_end(fiscal_year: int, month: int) -> str:
    """Month-end date label ("4/30") for a month of fiscal year ending March."""
    calendar_year = fiscal_year - 1 if month >= 4 else fiscal_year
    last_day = calendar.monthrange(calendar_year, month)[1]
    return f"{month}/{last_day}"


def _journal_line(raw: Any, default_date: str) -> JournalLine | None:
    if isinstance(raw, JournalLine):
        return raw
    if not isinstance(raw, dict):
        return None
    account = raw.get("account") or raw.get("debitAccount") or raw.get("creditAccount")
    label = raw.get("label") or raw.get("description") or raw.get("memo") or ""
    return JournalLine(
        date=str(raw.get("date") or default_date),
        account=str(account or ""),
        debit=_amount(raw.get("debit")),
        credit=_amount(raw.get("credit")),
        label=str(label),
    )


def _amount(value: Any) -> float | int | str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip().replace(",", "").replace("¥", "").replace("円", "")
    if not text:
        return ""
    try:
        number = float(text)
    except ValueError:
        return str(value)
    return int(number) if number.is_integer() else number


def journal_document(
    year: int,
    months: list[dict[str, Any]],
    fidelity: Fidelity = Fidelity.OK,
) -> GeneratedDocument:
    """Build a JE document from twelve ``{title, items}`` month buckets."""
    sections: list[FinancialSection] = []
    for index, month in enumerate(months):
        fiscal_month = FISCAL_MONTHS[index % len(FISCAL_MONTHS)]
        default_date = month_end(year, fiscal_month)
        lines = [
            line
            for line in (_journal_line(item, default_date) for item in month.get("items", []))
            if line is not None
        ]
        sections.append(
            FinancialSection(
                title=str(month.get("title") or FISCAL_MONTH_LABELS[index % 12]),
                headers=list(JOURNAL_HEADERS),
                break_page=True,
                items=list(lines),
            )
        )
    return GeneratedDocument(
        id=document_id(DocumentType.JE, year),
        type=DocumentType.JE,
        year=year,
        title=f"仕訳帳 {year}年3月期",
        content=sections,
        fidelity=fidelity,
    )


def newsletter_document(
    year: int,
    content: str,
    fidelity: Fidelity = Fidelity.OK,
) -> GeneratedDocument:
    return GeneratedDocument(
        id=document_id(DocumentType.NEWSLETTER, year),
        type=DocumentType.NEWSLETTER,
        year=year,
        title=f"社内報 {year}年",
        content=content,
        fidelity=fidelity,
    )


def journal_placeholder(year: int, revenue: float | int) -> GeneratedDocument:
    """Synthetic JE document: one monthly sales accrual of revenue / 12.

    Revenue is in millions of yen; journal amounts are in yen.
    """
    monthly = round(float(revenue or 0) * 1_000_000 / 12)
    months = []
    for fiscal_month, title in zip(FISCAL_MONTHS, FISCAL_MONTH_LABELS):
        date = month_end(year, fiscal_month)
        months.append({
            "title": title,
            "items": [
                JournalLine(date=date, account="売掛金", debit=monthly, label="月次売上計上"),
                JournalLine(date=date, account="売上高", credit=monthly, label="月次売上計上"),
            ],
        })
    doc = journal_document(year, months, fidelity=Fidelity.PLACEHOLDER)
    doc.title = f"{doc.title}{FAILURE_MARKER}"
    return doc


def newsletter_placeholder(year: int, reason: str = "") -> GeneratedDocument:
    """Synthetic newsletter carrying a failure notice."""
    notice = f"{year}年度の社内報は自動生成に失敗しました。内容を確認のうえ再生成してください。"
    if reason:
        notice = f"{notice}\n\n(理由: {reason})"
    doc = newsletter_document(year, notice, fidelity=Fidelity.PLACEHOLDER)
    doc.title = f"{doc.title}{FAILURE_MARKER}"
    return doc
