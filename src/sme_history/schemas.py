"""Pydantic schemas that normalized bulk responses must satisfy.

Normalization decides the shape; validation decides whether the content
inside that shape is usable. A chunk whose payload fails here is treated
exactly like a parse failure.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from sme_history.documents import FISCAL_MONTH_LABELS


class JournalLineSchema(BaseModel):
    """One journal line as returned by the model (amounts in yen)."""

    model_config = ConfigDict(extra="allow")

    date: str | int | None = None
    account: str | None = None
    debit: float | int | str | None = None
    credit: float | int | str | None = None
    label: str | None = None
    description: str | None = None


class MonthSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str
    items: list[JournalLineSchema]


class JournalYearSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    year: int = Field(ge=1900, le=2100)
    months: list[MonthSchema]

    @field_validator("months")
    @classmethod
    def _twelve_fiscal_months(cls, months: list[MonthSchema]) -> list[MonthSchema]:
        titles = tuple(month.title for month in months)
        if titles != FISCAL_MONTH_LABELS:
            raise ValueError("months must be the twelve buckets April through March")
        return months


class NewsletterSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    year: int = Field(ge=1900, le=2100)
    content: str = Field(min_length=1)

    @field_validator("content")
    @classmethod
    def _not_blank(cls, content: str) -> str:
        if not content.strip():
            raise ValueError("newsletter content is blank")
        return content


def validate_payload(model: type[BaseModel], payload: Any) -> tuple[BaseModel | None, str]:
    """Validate ``payload``; return ``(model, "")`` or ``(None, error summary)``."""
    try:
        return model.model_validate(payload), ""
    except ValidationError as exc:
        errors = exc.errors()
        summary = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in errors[:5]
        )
        if len(errors) > 5:
            summary += f" (+{len(errors) - 5} more)"
        return None, summary
