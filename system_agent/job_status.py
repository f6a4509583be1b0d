"""Job status value type.

A status is a base status plus an optional free-text reason. It is stored as a
single string, ``"<base>"`` or ``"<base> - <reason>"``, so the jobs table keeps
one narrow ``status`` column while operators still get a readable explanation
(``"failed - Unknown task type: foo"``, ``"waiting - webhook gate"``).

Parsing never validates the base against the known vocabulary. Status strings
written by newer task handlers load verbatim and simply satisfy none of the
predicates.
"""

from dataclasses import dataclass
from typing import ClassVar, FrozenSet, Optional

SEPARATOR = " - "


@dataclass(frozen=True)
class JobStatus:
    """Immutable job status with an optional reason."""

    base_status: str
    reason: Optional[str] = None

    PENDING = "pending"
    PROCESSING = "processing"
    WAITING = "waiting"
    COMPLETED = "completed"
    COMPLETED_NO_ITEMS = "completed_no_items"
    AGENT_SKIPPED = "agent_skipped"
    FAILED = "failed"

    SUCCESS_STATUSES: ClassVar[FrozenSet[str]] = frozenset({COMPLETED, COMPLETED_NO_ITEMS, AGENT_SKIPPED})
    FAILURE_STATUSES: ClassVar[FrozenSet[str]] = frozenset({FAILED})
    FINAL_STATUSES: ClassVar[FrozenSet[str]] = SUCCESS_STATUSES | FAILURE_STATUSES

    # Factories

    @classmethod
    def pending(cls) -> "JobStatus":
        return cls(cls.PENDING)

    @classmethod
    def processing(cls) -> "JobStatus":
        return cls(cls.PROCESSING)

    @classmethod
    def waiting(cls, reason: Optional[str] = None) -> "JobStatus":
        """Job is parked until an external event resumes it."""
        return cls(cls.WAITING, reason or None)

    @classmethod
    def completed(cls) -> "JobStatus":
        return cls(cls.COMPLETED)

    @classmethod
    def completed_no_items(cls, reason: Optional[str] = None) -> "JobStatus":
        return cls(cls.COMPLETED_NO_ITEMS, reason or None)

    @classmethod
    def agent_skipped(cls, reason: Optional[str] = None) -> "JobStatus":
        return cls(cls.AGENT_SKIPPED, reason or None)

    @classmethod
    def failed(cls, reason: Optional[str] = None) -> "JobStatus":
        return cls(cls.FAILED, reason or None)

    # Serialization

    @classmethod
    def from_string(cls, raw: str) -> "JobStatus":
        """
        Parse a stored status string.

        Splits on the first ``" - "``; everything after it is the reason.

        Args:
            raw: Stored status, e.g. ``"failed - Missing prediction_id"``

        Returns:
            Parsed JobStatus
        """
        base, sep, reason = (raw or "").partition(SEPARATOR)
        if not sep:
            return cls(base.strip())
        return cls(base.strip(), reason.strip() or None)

    def to_string(self) -> str:
        if self.reason:
            return f"{self.base_status}{SEPARATOR}{self.reason}"
        return self.base_status

    def __str__(self) -> str:
        return self.to_string()

    # Predicates

    def is_final(self) -> bool:
        return self.base_status in self.FINAL_STATUSES

    def is_success(self) -> bool:
        return self.base_status in self.SUCCESS_STATUSES

    def is_failure(self) -> bool:
        return self.base_status in self.FAILURE_STATUSES

    def is_waiting(self) -> bool:
        return self.base_status == self.WAITING

    # Helpers over raw status strings

    @staticmethod
    def parse_base_status(raw: str) -> str:
        return JobStatus.from_string(raw).base_status

    @staticmethod
    def is_status_final(raw: str) -> bool:
        return JobStatus.from_string(raw).is_final()

    @staticmethod
    def is_status_success(raw: str) -> bool:
        return JobStatus.from_string(raw).is_success()

    @staticmethod
    def is_status_failure(raw: str) -> bool:
        return JobStatus.from_string(raw).is_failure()

    @staticmethod
    def is_status_waiting(raw: str) -> bool:
        return JobStatus.from_string(raw).is_waiting()
