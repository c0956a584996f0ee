import enum
import re
from typing import Optional


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    STAFF = "staff"
    MECHANIC = "mechanic"


class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class JobStatus(str, enum.Enum):
    WAITING_ASSESSMENT = "waiting_assessment"
    IN_PROGRESS = "in_progress"
    PARTS_ORDERED = "parts_ordered"
    READY_FOR_PICKUP = "ready_for_pickup"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title().replace(" For ", " for ")


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "TaskStatus":
        """Map a canonical value or a legacy spelling onto a TaskStatus.

        Raises ValueError for anything unknown.
        """
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str):
            raise ValueError(f"Unsupported task status: {raw!r}")
        normalized = re.sub(r"[\s\-]+", "_", raw.strip().lower())
        try:
            return cls(normalized)
        except ValueError:
            pass
        alias = TASK_STATUS_ALIASES.get(normalized)
        if alias is None:
            raise ValueError(f"Unsupported task status: {raw!r}")
        return alias


TASK_STATUS_ALIASES = {
    "todo": TaskStatus.PENDING,
    "to_do": TaskStatus.PENDING,
    "backlog": TaskStatus.PENDING,
    "inprogress": TaskStatus.IN_PROGRESS,
    "in_review": TaskStatus.REVIEW,
    "reviewing": TaskStatus.REVIEW,
    "review_pending": TaskStatus.REVIEW,
    "done": TaskStatus.COMPLETED,
    "complete": TaskStatus.COMPLETED,
    "finished": TaskStatus.COMPLETED,
}

OPEN_TASK_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.REVIEW})


class CallbackStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    DELETED = "deleted"


class OrderStatus(str, enum.Enum):
    NOT_ORDERED = "not_ordered"
    ORDERED = "ordered"
    ARRIVED = "arrived"
    COMPLETED = "completed"


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
