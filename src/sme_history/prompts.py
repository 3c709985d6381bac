"""Prompt builders and response schemas for every LLM request.

Prompts are written in Japanese because the generated documents are; the
structural instructions name keys in English so the normalizers can find
them.
"""

from collections.abc import Sequence
from typing import Any

from sme_history.documents import FISCAL_MONTH_LABELS
from sme_history.models import CompanyInput, YearlyData

# =============================================================================
# RESPONSE SCHEMAS (JSON Schema; converted per provider)
# =============================================================================

_NUMBER = {"type": "number"}

FINANCIALS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        **{
            key: _NUMBER
            for key in (
                "sales", "cogs", "grossProfit", "sga", "operatingProfit",
                "nonOperatingIncome", "nonOperatingExpenses", "ordinaryProfit",
                "extraordinaryIncome", "extraordinaryLoss", "preTaxProfit", "tax",
                "netProfit", "totalAssets", "totalLiabilities", "totalNetAssets",
                "operatingCF", "investingCF", "financingCF", "cashAtBeginning",
                "cashAtEnd",
            )
        },
        "currentAssets": {
            "type": "object",
            "properties": {
                k: _NUMBER
                for k in ("cash", "notesReceivable", "accountsReceivable", "inventory", "other")
            },
        },
        "fixedAssets": {
            "type": "object",
            "properties": {k: _NUMBER for k in ("tangible", "intangible", "investments")},
        },
        "currentLiabilities": {
            "type": "object",
            "properties": {
                k: _NUMBER
                for k in ("notesPayable", "accountsPayable", "shortTermDebt", "other")
            },
        },
        "fixedLiabilities": {
            "type": "object",
            "properties": {k: _NUMBER for k in ("longTermDebt", "other")},
        },
        "netAssets": {
            "type": "object",
            "properties": {k: _NUMBER for k in ("capitalStock", "retainedEarnings", "other")},
        },
    },
}

HISTORY_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "year": {"type": "integer"},
            "revenue": _NUMBER,
            "operatingProfit": _NUMBER,
            "cashFlow": _NUMBER,
            "employees": {"type": "integer"},
            "marketContext": {"type": "string"},
            "companyEvent": {"type": "string"},
            "financials": FINANCIALS_SCHEMA,
        },
        "required": ["year", "revenue", "operatingProfit", "cashFlow", "employees"],
    },
}

JOURNAL_LINE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "date": {"type": "string"},
        "account": {"type": "string"},
        "debit": {"type": ["number", "null"]},
        "credit": {"type": ["number", "null"]},
        "label": {"type": "string"},
    },
    "required": ["date", "account"],
}

MONTH_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string", "enum": list(FISCAL_MONTH_LABELS)},
        "items": {"type": "array", "items": JOURNAL_LINE_SCHEMA},
    },
    "required": ["title", "items"],
}

JOURNAL_BULK_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "years": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "year": {"type": "integer"},
                    "months": {"type": "array", "items": MONTH_SCHEMA},
                },
                "required": ["year", "months"],
            },
        }
    },
    "required": ["years"],
}

JOURNAL_SINGLE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"months": {"type": "array", "items": MONTH_SCHEMA}},
    "required": ["months"],
}

NEWSLETTER_BULK_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "newsletters": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "year": {"type": "integer"},
                    "content": {"type": "string"},
                },
                "required": ["year", "content"],
            },
        }
    },
    "required": ["newsletters"],
}

AUTOCOMPLETE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "industry": {"type": "string"},
        "foundedYear": {"type": "integer"},
        "initialEmployees": {"type": "integer"},
        "currentEmployees": {"type": "integer"},
        "persona": {"type": "string"},
        "keyEvents": {"type": "string"},
        "ceoHistory": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "resignationYear": {"type": "string"},
                },
            },
        },
    },
}


# =============================================================================
# PROMPTS
# =============================================================================


def _tone(year_data: YearlyData) -> str:
    if year_data.operating_profit < 0:
        return "深刻。謝罪を含みつつも希望を示す"
    return "慎重な楽観"


def year_context_line(company: CompanyInput, year_data: YearlyData) -> str:
    """Compact one-line context for a single year."""
    ceo = company.active_ceo(year_data.year)
    event = year_data.company_event or "特になし"
    return (
        f"- Year: {year_data.year} | 社長: {ceo.name} | 売上: {year_data.revenue}百万円 | "
        f"営業利益: {year_data.operating_profit}百万円 | 出来事: {event}"
    )


def history_prompt(company: CompanyInput) -> str:
    start_year = company.founded_year
    end_year = company.current_year
    return f"""
あなたは日本のSME（中小企業）に精通した経営コンサルタントです。
以下の企業の、**非常にシビアでリアルな**財務・経営の歴史を作成してください。

対象企業: {company.name} ({start_year}年設立, {company.industry})
社員数: 設立時 {company.initial_employees}名 → 現在 {company.current_employees}名
ペルソナ: {company.persona}
特記事項: {company.key_events}

【絶対的な制約】
1. デフォルトは「苦境」: 売上は横ばいか微減、利益率は1-2%のカツカツの状態。
2. 危機を必ず反映:
   - 2008 リーマン: 売上20%減、赤字転落。
   - 2011 震災: サプライチェーン混乱。
   - 2020 コロナ: 業種によるが基本は大打撃。
   - 2022-24 インフレ・円安: 売上は価格転嫁で増えても、粗利・営業利益は激減。
3. 数字の整合性:
   - PL: 売上 - 原価 = 粗利。粗利 - 販管費 = 営業利益。
   - BS: 資産 = 負債 + 純資産。
   - CF: 期首現金 + 営業CF + 投資CF + 財務CF = 期末現金。

出力: {start_year}年から{end_year}年までの各年を要素とするJSON配列のみ。
単位は全て「百万円」。キー名は英語のcamelCase（year, revenue, operatingProfit,
cashFlow, employees, marketContext, companyEvent, financials）。
""".strip()


def autocomplete_prompt(partial: dict[str, Any]) -> str:
    return f"""
以下の企業情報の空欄部分を、整合性が取れるようにリアルに埋めてください。
これは中小企業シミュレーション用です。
日本の中小企業は常に苦境（人手不足、後継者難、価格競争）にあります。

現在の入力:
会社名: {partial.get('name', '')}
業界: {partial.get('industry', '')}
設立年: {partial.get('foundedYear', '')}
初期社員数: {partial.get('initialEmployees', '')}
社長ペルソナ: {partial.get('persona', '')}
重要イベント: {partial.get('keyEvents', '')}

出力はJSONのみ。ceoHistoryは設立が古い場合は必ず世代交代させ、
resignationYearが空文字なら現職とします。
""".strip()


def journal_bulk_prompt(company: CompanyInput, years: Sequence[YearlyData]) -> str:
    context = "\n".join(year_context_line(company, y) for y in years)
    months = "、".join(FISCAL_MONTH_LABELS)
    return f"""
会社: {company.name}（{company.industry}）
以下の各年度について「月次合計仕訳」（月次の主要仕訳のサマリー）を作成してください。

{context}

要件:
- 各年度は前年4月から当年3月までの12か月（{months}）。
- 1か月あたり5件程度の仕訳行。借方行と貸方行は金額が一致すること。
- 金額の単位は「円」。売上規模に整合させること。
- 出力はJSONのみ: {{"years": [{{"year": 2020, "months": [{{"title": "4月",
  "items": [{{"date": "4/30", "account": "売掛金", "debit": 1000000, "credit": null,
  "label": "4月分売上"}}]}}]}}]}}
""".strip()


def newsletter_bulk_prompt(company: CompanyInput, years: Sequence[YearlyData]) -> str:
    context = "\n".join(
        f"{year_context_line(company, y)} | トーン: {_tone(y)}" for y in years
    )
    return f"""
会社: {company.name}（{company.industry}）
以下の各年度について、社長から社員への社内報メッセージを書いてください。

{context}

要件:
- 各年度400〜800字程度のMarkdown。段落の間には空行を入れる。
- その年の業績と出来事に触れ、指定のトーンを守ること。
- 出力はJSONのみ: {{"newsletters": [{{"year": 2020, "content": "..."}}]}}
""".strip()


def journal_single_prompt(company: CompanyInput, year_data: YearlyData) -> str:
    return f"""
{year_context_line(company, year_data)}
会社: {company.name}
{year_data.year - 1}年4月から{year_data.year}年3月までの「月次合計仕訳」を作成してください。
12か月分（4月〜3月）、1か月あたり5件程度。金額の単位は円。
出力はJSONのみ: {{"months": [{{"title": "4月", "items": [{{"date": "4/30",
"account": "...", "debit": 100, "credit": null, "label": "..."}}]}}]}}
""".strip()


def newsletter_single_prompt(company: CompanyInput, year_data: YearlyData) -> str:
    return f"""
{year_context_line(company, year_data)}
会社: {company.name}
社長から社員への社内報メッセージ（日本語）を書いてください。
トーン: {_tone(year_data)}。
形式: Markdown。段落の間には空行を入れる。
""".strip()
