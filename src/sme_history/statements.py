"""Local rendering of BS / PL / CF from already reconciled figures.

No I/O and no LLM call: a statement is a pure function of one year's
DetailedFinancials. Interior totals are summed from sub-fields here rather
than read from the record, so user edits to a sub-field show up in the
totals even before the history is reconciled again.
"""

from collections.abc import Iterable, Sequence

import structlog

from sme_history.documents import (
    DOC_TYPE_LABELS,
    DocumentType,
    FinancialSection,
    GeneratedDocument,
    LabeledValue,
    document_id,
)
from sme_history.errors import MissingFinancialsError
from sme_history.models import DetailedFinancials, YearlyData

logger = structlog.get_logger(__name__)


def _balance_sheet(f: DetailedFinancials) -> list[FinancialSection]:
    ca, fa = f.current_assets, f.fixed_assets
    cl, fl = f.current_liabilities, f.fixed_liabilities
    na = f.net_assets
    total_assets = ca.total() + fa.total()
    total_liabilities = cl.total() + fl.total()
    total_net_assets = na.total()

    return [
        FinancialSection(
            title="資産の部",
            items=[
                LabeledValue("流動資産", "", is_total=True),
                LabeledValue("現金及び預金", ca.cash, indent=1),
                LabeledValue("受取手形", ca.notes_receivable, indent=1),
                LabeledValue("売掛金", ca.accounts_receivable, indent=1),
                LabeledValue("棚卸資産", ca.inventory, indent=1),
                LabeledValue("その他", ca.other, indent=1),
                LabeledValue("流動資産合計", ca.total(), is_total=True, indent=1),
                LabeledValue("固定資産", "", is_total=True),
                LabeledValue("有形固定資産", fa.tangible, indent=1),
                LabeledValue("無形固定資産", fa.intangible, indent=1),
                LabeledValue("投資その他の資産", fa.investments, indent=1),
                LabeledValue("固定資産合計", fa.total(), is_total=True, indent=1),
                LabeledValue("資産合計", total_assets, is_total=True),
            ],
        ),
        FinancialSection(
            title="負債の部",
            items=[
                LabeledValue("流動負債", "", is_total=True),
                LabeledValue("支払手形", cl.notes_payable, indent=1),
                LabeledValue("買掛金", cl.accounts_payable, indent=1),
                LabeledValue("短期借入金", cl.short_term_debt, indent=1),
                LabeledValue("その他", cl.other, indent=1),
                LabeledValue("流動負債合計", cl.total(), is_total=True, indent=1),
                LabeledValue("固定負債", "", is_total=True),
                LabeledValue("長期借入金", fl.long_term_debt, indent=1),
                LabeledValue("その他", fl.other, indent=1),
                LabeledValue("固定負債合計", fl.total(), is_total=True, indent=1),
                LabeledValue("負債合計", total_liabilities, is_total=True),
            ],
        ),
        FinancialSection(
            title="純資産の部",
            items=[
                LabeledValue("株主資本", "", is_total=True),
                LabeledValue("資本金", na.capital_stock, indent=1),
                LabeledValue("利益剰余金", na.retained_earnings, indent=1),
                LabeledValue("その他の純資産", na.other, indent=1),
                LabeledValue("純資産合計", total_net_assets, is_total=True),
                LabeledValue("負債純資産合計", total_liabilities + total_net_assets, is_total=True),
            ],
        ),
    ]


def _profit_and_loss(f: DetailedFinancials) -> list[FinancialSection]:
    return [
        FinancialSection(
            title="損益計算書",
            items=[
                LabeledValue("売上高", f.sales),
                LabeledValue("売上原価", f.cogs),
                LabeledValue("売上総利益", f.gross_profit, is_total=True),
                LabeledValue("販売費及び一般管理費", f.sga),
                LabeledValue("営業利益", f.operating_profit, is_total=True),
                LabeledValue("営業外収益", f.non_operating_income),
                LabeledValue("営業外費用", f.non_operating_expenses),
                LabeledValue("経常利益", f.ordinary_profit, is_total=True),
                LabeledValue("特別利益", f.extraordinary_income),
                LabeledValue("特別損失", f.extraordinary_loss),
                LabeledValue("税引前当期純利益", f.pre_tax_profit, is_total=True),
                LabeledValue("法人税、住民税及び事業税", f.tax),
                LabeledValue("当期純利益", f.net_profit, is_total=True),
            ],
        )
    ]


def _cash_flow(f: DetailedFinancials) -> list[FinancialSection]:
    return [
        FinancialSection(
            title="キャッシュ・フロー計算書",
            items=[
                LabeledValue("営業活動によるキャッシュ・フロー", f.operating_cf, is_total=True),
                LabeledValue("投資活動によるキャッシュ・フロー", f.investing_cf, is_total=True),
                LabeledValue("財務活動によるキャッシュ・フロー", f.financing_cf, is_total=True),
                LabeledValue(
                    "現金及び現金同等物の増減額",
                    f.operating_cf + f.investing_cf + f.financing_cf,
                    is_total=True,
                ),
                LabeledValue("現金及び現金同等物の期首残高", f.cash_at_beginning),
                LabeledValue("現金及び現金同等物の期末残高", f.cash_at_end, is_total=True),
            ],
        )
    ]


_RENDERERS = {
    DocumentType.BS: _balance_sheet,
    DocumentType.PL: _profit_and_loss,
    DocumentType.CF: _cash_flow,
}


def render_statement(year_data: YearlyData, doc_type: DocumentType) -> GeneratedDocument:
    """Render one local statement for one year.

    Raises:
        MissingFinancialsError: ``year_data`` has no detailed financials.
        ValueError: ``doc_type`` is not a local type.
    """
    renderer = _RENDERERS.get(doc_type)
    if renderer is None:
        raise ValueError(f"{doc_type.value} is not rendered locally")
    if year_data.financials is None:
        raise MissingFinancialsError(year_data.year)

    return GeneratedDocument(
        id=document_id(doc_type, year_data.year),
        type=doc_type,
        year=year_data.year,
        title=f"{DOC_TYPE_LABELS[doc_type]} {year_data.year}年3月期",
        content=renderer(year_data.financials),
    )


def render_local_documents(
    history: Iterable[YearlyData],
    types: Sequence[DocumentType],
) -> list[GeneratedDocument]:
    """Render every (year, local type) pair; years without financials are skipped."""
    documents: list[GeneratedDocument] = []
    local_types = [t for t in types if t.is_local]
    for year_data in history:
        for doc_type in local_types:
            try:
                documents.append(render_statement(year_data, doc_type))
            except MissingFinancialsError:
                logger.warning("financials_missing", year=year_data.year, doc_type=doc_type.value)
    return documents
