"""SME History - resilient LLM generation of a Japanese SME's financial history."""

__version__ = "0.1.0"

from sme_history.artifacts import ArtifactSink, DirectoryArtifactSink, NullArtifactSink
from sme_history.batch import BatchController, batch_generate
from sme_history.bulk import BulkGenerator, SingleDocumentGenerator
from sme_history.clients import ClaudeClient, GeminiClient, OpenAIClient, create_client
from sme_history.config import configure_logging, get_settings
from sme_history.documents import DocumentType, FinancialSection, GeneratedDocument
from sme_history.history import apply_edit, autocomplete_company, generate_company_history
from sme_history.models import CompanyInput, DetailedFinancials, YearlyData
from sme_history.outcome import Fidelity, Outcome
from sme_history.parsing import extract_json, parse_loose
from sme_history.ratelimit import RateLimiter
from sme_history.reconcile import TaxPolicy, reconcile_financials, reconcile_history
from sme_history.statements import render_local_documents, render_statement

__all__ = [
    # Version
    "__version__",
    # Models
    "CompanyInput",
    "YearlyData",
    "DetailedFinancials",
    "DocumentType",
    "FinancialSection",
    "GeneratedDocument",
    "Fidelity",
    "Outcome",
    # Pipeline
    "extract_json",
    "parse_loose",
    "reconcile_financials",
    "reconcile_history",
    "TaxPolicy",
    "render_statement",
    "render_local_documents",
    "BulkGenerator",
    "SingleDocumentGenerator",
    "BatchController",
    "batch_generate",
    "generate_company_history",
    "autocomplete_company",
    "apply_edit",
    # Infrastructure
    "ArtifactSink",
    "DirectoryArtifactSink",
    "NullArtifactSink",
    "RateLimiter",
    # LLM Clients
    "ClaudeClient",
    "GeminiClient",
    "OpenAIClient",
    "create_client",
    # Config
    "get_settings",
    "configure_logging",
]
