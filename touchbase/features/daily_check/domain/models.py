"""
Domain models for the daily check feature.

Plain dataclasses shared by the repository, pipeline, and job layers. They
mirror rows in the contacts, interactions, reminders, and
contact_processing_logs tables; the store owns the data, these are snapshots.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import StrEnum

from touchbase.config import Settings
from touchbase.utils.dates import ensure_aware

# Ledger ceiling across runs on the same calendar day. Independent of
# BatchConfig.retry_attempts, which bounds immediate retries inside one run.
MAX_RETRY_ATTEMPTS = 3

DEFAULT_CONTACT_METHOD = "message"

UPSELL_SUGGESTION = (
    '<div class="bg-yellow-50 p-3 rounded-lg"><strong>Important:</strong> '
    "Upgrade to premium to get advanced AI suggestions!</div>"
)


class ContactFrequency(StrEnum):
    EVERY_THREE_DAYS = "every_three_days"
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class ProcessingStatus(StrEnum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"


class OutcomeStatus(StrEnum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(slots=True)
class Interaction:
    """Read-only log entry created by the user-facing logging flow."""

    type: str
    date: datetime
    sentiment: str | None = None


@dataclass(slots=True)
class Contact:
    id: str
    user_id: str
    name: str
    relationship_level: int
    contact_frequency: str | None
    missed_interactions: int
    next_contact_due: datetime | None
    last_contacted: datetime | None = None
    preferred_contact_method: str | None = None
    notes: str | None = None
    ai_last_suggestion: str | None = None
    ai_last_suggestion_date: datetime | None = None


@dataclass(slots=True)
class Reminder:
    contact_id: str
    user_id: str
    due_date: datetime
    type: str
    description: str | None = None


@dataclass(slots=True)
class ProcessingLogEntry:
    """One contact_processing_logs row, keyed by (contact_id, processing_date)."""

    contact_id: str
    processing_date: date
    status: ProcessingStatus
    retry_count: int = 0
    batch_id: str | None = None
    last_error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (ProcessingStatus.SUCCESS, ProcessingStatus.MAX_RETRIES_EXCEEDED)


@dataclass(slots=True)
class UserContext:
    """Per-user gates consulted before calling the model."""

    user_id: str
    ai_suggestions_enabled: bool = True
    timezone: str = "UTC"
    plan_id: str | None = None
    valid_until: datetime | None = None
    trial_end_date: datetime | None = None

    def is_eligible(self, now: datetime) -> bool:
        """Premium with a future valid_until, or inside an active trial."""
        now = ensure_aware(now)
        if self.plan_id == "premium" and self.valid_until and ensure_aware(self.valid_until) > now:
            return True
        return bool(self.trial_end_date and ensure_aware(self.trial_end_date) > now)


@dataclass(frozen=True, slots=True)
class BatchConfig:
    """Immutable run parameters. Delays are milliseconds."""

    batch_size: int = 20
    delay_between_batches_ms: int = 5000
    delay_between_contacts_ms: int = 1000
    max_contacts_per_run: int = 100
    retry_attempts: int = 3
    retry_delay_ms: int = 2000
    max_retry_delay_ms: int = 30000
    backoff_multiplier: float = 2.0
    rate_limit_status_codes: frozenset[int] = frozenset({429, 503})

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.max_contacts_per_run < 0:
            raise ValueError("max_contacts_per_run must not be negative")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        for name in (
            "delay_between_batches_ms",
            "delay_between_contacts_ms",
            "retry_delay_ms",
            "max_retry_delay_ms",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")

    @classmethod
    def from_settings(cls, settings: Settings) -> "BatchConfig":
        return cls(
            batch_size=settings.BATCH_SIZE,
            delay_between_batches_ms=settings.DELAY_BETWEEN_BATCHES,
            delay_between_contacts_ms=settings.DELAY_BETWEEN_CONTACTS,
            max_contacts_per_run=settings.MAX_CONTACTS_PER_RUN,
            retry_attempts=settings.RETRY_ATTEMPTS,
            retry_delay_ms=settings.RETRY_DELAY,
            max_retry_delay_ms=settings.MAX_RETRY_DELAY,
            backoff_multiplier=settings.BACKOFF_MULTIPLIER,
            rate_limit_status_codes=settings.rate_limit_status_codes(),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["rate_limit_status_codes"] = sorted(self.rate_limit_status_codes)
        return data


@dataclass(slots=True)
class ContactOutcome:
    """Typed per-contact result aggregated into a BatchResult."""

    contact_id: str
    status: OutcomeStatus
    error: str | None = None
    rate_limited: bool = False
    attempts: int = 0
    suggestion_written: bool = False


@dataclass(slots=True)
class BatchError:
    contact_id: str
    error: str


@dataclass(slots=True)
class BatchResult:
    batch_id: str
    processed_count: int = 0
    success_count: int = 0
    error_count: int = 0
    errors: list[BatchError] = field(default_factory=list)
    rate_limited: bool = False

    @classmethod
    def from_outcomes(cls, batch_id: str, outcomes: list[ContactOutcome]) -> "BatchResult":
        failed = [o for o in outcomes if o.status == OutcomeStatus.ERROR]
        return cls(
            batch_id=batch_id,
            processed_count=len(outcomes),
            success_count=len(outcomes) - len(failed),
            error_count=len(failed),
            errors=[BatchError(o.contact_id, o.error or "Unknown error") for o in failed],
            rate_limited=any(o.rate_limited for o in outcomes),
        )

    @classmethod
    def batch_failure(cls, batch_id: str, error: str, rate_limited: bool = False) -> "BatchResult":
        """Synthetic result for a batch that failed before producing per-contact outcomes."""
        return cls(
            batch_id=batch_id,
            processed_count=0,
            success_count=0,
            error_count=1,
            errors=[BatchError("batch", error)],
            rate_limited=rate_limited,
        )

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "processed_count": self.processed_count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "errors": [{"contact_id": e.contact_id, "error": e.error} for e in self.errors],
        }
