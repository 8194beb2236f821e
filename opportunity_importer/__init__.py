"""Bulk opportunity import with rate-limited outreach for sales pipelines."""

from . import models  # noqa: F401
from .config import ImporterSettings  # noqa: F401
from .models import (
    ImportResults,
    Notice,
    OutreachBatch,
    OutreachResult,
    OutreachSummary,
    Pipeline,
    ProcessingStatus,
    Stage,
    ValidatedRecord,
    WizardStep,
)
from .orchestrator import ImportWizard, WizardSession  # noqa: F401
from .validation import validate_record  # noqa: F401

__all__ = [
    "ImportResults",
    "ImporterSettings",
    "ImportWizard",
    "Notice",
    "OutreachBatch",
    "OutreachResult",
    "OutreachSummary",
    "Pipeline",
    "ProcessingStatus",
    "Stage",
    "ValidatedRecord",
    "WizardSession",
    "WizardStep",
    "validate_record",
    "ingestion",
    "orchestrator",
    "providers",
]
