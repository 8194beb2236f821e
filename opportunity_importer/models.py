"""Data models shared by the import wizard, its executors, and the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Mapping, Optional, Tuple


# --- Wizard Steps ---

class WizardStep(IntEnum):
    """The four screens of the bulk import wizard."""

    UPLOAD = 1
    REVIEW = 2
    PROCESSING = 3
    RESULTS = 4


# --- Pipeline Configuration ---

@dataclass(frozen=True, slots=True)
class Stage:
    """A named step of a pipeline that imported opportunities are placed in."""

    id: str
    stage_name: str
    opening_message: bool = False


@dataclass(frozen=True, slots=True)
class Pipeline:
    """Pipeline that receives imported opportunities."""

    id: str
    pipeline_name: str = ""
    connector_account_id: Optional[str] = None
    stages: Tuple[Stage, ...] = ()

    def find_stage(self, stage_id: str) -> Optional[Stage]:
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        return None


# --- Uploaded Records ---

@dataclass(frozen=True, slots=True)
class ValidatedRecord:
    """One uploaded row after trimming and validation."""

    client_name: str
    phone: str
    preferred_language: str
    preferred_dialect: str
    email: str = ""
    source: str = ""
    notes: str = ""
    errors: Tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


# --- Import Progress & Results ---

PROCESSING = "processing"
COMPLETED = "completed"
ERROR = "error"


@dataclass(frozen=True, slots=True)
class ProcessingStatus:
    """Snapshot reported by the import executor after each record."""

    current: int = 0
    total: int = 0
    current_client: str = ""
    current_phone: str = ""
    status: str = PROCESSING
    message: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ImportResults:
    """Final counts of an import run."""

    successful: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    opportunity_ids: Tuple[str, ...] = ()
    aborted: bool = False


# --- Outreach ---

SUCCESS = "success"
FAILED = "failed"
PENDING = "pending"
SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class OutreachBatch:
    """Handle for a batch of outreach messages submitted to the provider."""

    batch_id: str
    opportunity_ids: Tuple[str, ...]
    delay_ms: int
    pipeline_id: str


@dataclass(slots=True)
class OutreachResult:
    """Delivery outcome of one outreach message."""

    id: str
    opportunity_id: str
    opportunity_name: str = ""
    client_name: str = ""
    client_phone: str = ""
    response_status: str = PENDING
    timestamp: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "OutreachResult":
        """Build a result from a provider payload, tolerating missing fields."""

        def text(key: str) -> str:
            value = data.get(key)
            return "" if value is None else str(value)

        status = text("response_status").strip().lower() or PENDING
        return cls(
            id=text("id"),
            opportunity_id=text("opportunity_id"),
            opportunity_name=text("opportunity_name"),
            client_name=text("client_name"),
            client_phone=text("client_phone"),
            response_status=status,
            timestamp=text("timestamp"),
        )

    @property
    def is_terminal(self) -> bool:
        return self.response_status != PENDING

    def as_row(self) -> Dict[str, str]:
        """Return the export representation of the result."""
        return {
            "response_status": self.response_status,
            "opportunity_name": self.opportunity_name,
            "client_name": self.client_name,
            "client_phone": self.client_phone,
            "timestamp": self.timestamp,
        }


@dataclass
class OutreachSummary:
    """Results of a batch partitioned by delivery status."""

    successful: List[OutreachResult] = field(default_factory=list)
    failed: List[OutreachResult] = field(default_factory=list)
    pending: List[OutreachResult] = field(default_factory=list)
    skipped: List[OutreachResult] = field(default_factory=list)

    @property
    def pending_count(self) -> int:
        return len(self.pending)

    @property
    def has_pending(self) -> bool:
        return bool(self.pending)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed) + len(self.pending) + len(self.skipped)


# --- Notifications ---

@dataclass(frozen=True, slots=True)
class Notice:
    """User-facing notification raised by the wizard."""

    title: str
    description: str
    variant: str = "default"

    @property
    def is_error(self) -> bool:
        return self.variant == "destructive"


__all__ = [
    "WizardStep",
    "Stage",
    "Pipeline",
    "ValidatedRecord",
    "ProcessingStatus",
    "ImportResults",
    "OutreachBatch",
    "OutreachResult",
    "OutreachSummary",
    "Notice",
    "PROCESSING",
    "COMPLETED",
    "ERROR",
    "SUCCESS",
    "FAILED",
    "PENDING",
    "SKIPPED",
]
