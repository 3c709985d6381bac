"""Exception hierarchy for the SME history synthesizer."""

from typing import Any


class SMEHistoryError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class MissingCredentialError(SMEHistoryError):
    """No API key could be resolved for an LLM client."""

    pass


class MissingFinancialsError(SMEHistoryError):
    """A local statement was requested for a year without detailed financials."""

    def __init__(self, year: int):
        super().__init__(f"Detailed financials missing for {year}", details={"year": year})
        self.year = year


class HistoryGenerationError(SMEHistoryError):
    """The model did not return a usable yearly history."""

    pass


class BulkGenerationError(SMEHistoryError):
    """Every chunk of a bulk run failed at the request level."""

    pass


class DocumentGenerationError(SMEHistoryError):
    """A single heavy document could not be generated."""

    pass
