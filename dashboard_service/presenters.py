"""
Outward-facing collaborators of the fetch cycle: the renderer that receives
each SeriesModel and the notifier that decides how loudly to surface a
failed cycle.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from core.state import SeriesModel

logger = logging.getLogger(__name__)

BLOCKING_ALERT_THRESHOLD = 3  # Consecutive failures before alerts become blocking again


@runtime_checkable
class SeriesRenderer(Protocol):
    """Receives only the derived SeriesModel, never rows or file paths."""

    def render(self, series: SeriesModel) -> None:
        ...


class LoggingRenderer:
    """Default renderer: logs a summary and keeps the last model."""

    def __init__(self):
        self.last: Optional[SeriesModel] = None
        self.render_count = 0

    def render(self, series: SeriesModel) -> None:
        self.last = series
        self.render_count += 1
        logger.info(
            f"Rendered series: {len(series.labels)} labels, "
            f"{len(series.datasets)} dataset(s) "
            f"[{', '.join(d.column for d in series.datasets)}]"
        )


class AlertLevel(str, Enum):
    BLOCKING = "blocking"
    PASSIVE = "passive"


@dataclass
class FailureNotice:
    level: AlertLevel
    message: str
    consecutive_failures: int
    raised_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "message": self.message,
            "consecutive_failures": self.consecutive_failures,
            "raised_at": self.raised_at.isoformat(),
        }


class FailureNotifier:
    """
    Tracks cycle failures and picks an alert level.

    The first failure of a session and any streak of `threshold` or more
    consecutive failures are blocking; anything in between is passive.
    A successful cycle resets the streak.
    """

    def __init__(
        self,
        threshold: int = BLOCKING_ALERT_THRESHOLD,
        on_notice: Optional[Callable[[FailureNotice], None]] = None,
    ):
        self.threshold = threshold
        self.on_notice = on_notice
        self.consecutive_failures = 0
        self.session_failures = 0
        self.last_notice: Optional[FailureNotice] = None

    def record_failure(self, error: BaseException) -> FailureNotice:
        self.consecutive_failures += 1
        self.session_failures += 1

        blocking = self.session_failures == 1 or self.consecutive_failures >= self.threshold
        notice = FailureNotice(
            level=AlertLevel.BLOCKING if blocking else AlertLevel.PASSIVE,
            message=str(error),
            consecutive_failures=self.consecutive_failures,
        )
        self.last_notice = notice

        if blocking:
            logger.error(f"Fetch failed ({self.consecutive_failures} in a row): {error}")
        else:
            logger.warning(f"Fetch failed ({self.consecutive_failures} in a row), status only: {error}")

        if self.on_notice is not None:
            try:
                self.on_notice(notice)
            except Exception as e:
                logger.warning(f"Failure notice callback raised: {e}")
        return notice

    def record_success(self) -> None:
        if self.consecutive_failures:
            logger.info(f"Fetch recovered after {self.consecutive_failures} failure(s)")
        self.consecutive_failures = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consecutive_failures": self.consecutive_failures,
            "session_failures": self.session_failures,
            "last_notice": self.last_notice.to_dict() if self.last_notice else None,
        }
