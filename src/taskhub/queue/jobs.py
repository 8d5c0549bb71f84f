"""Queue job envelope."""

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from taskhub.utils.time import utc_now


class Job(BaseModel):
    """A unit of queued work, delivered at least once."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    data: dict[str, Any] = Field(default_factory=dict)

    # Delivery policy
    attempts_made: int = 0
    max_attempts: int = 5
    backoff_seconds: float = 10.0

    last_error: Optional[str] = None
    enqueued_at: datetime = Field(default_factory=utc_now)
    failed_at: Optional[datetime] = None

    def next_backoff(self) -> float:
        """Exponential delay before redelivery after the latest failure."""
        return self.backoff_seconds * (2 ** max(self.attempts_made - 1, 0))

    @property
    def exhausted(self) -> bool:
        return self.attempts_made >= self.max_attempts
