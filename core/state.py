"""
Pipeline state and record types.

Holds the endpoint configuration (validated with pydantic, immutable per
transfer attempt) and the plain dataclass records that flow between the
transfer client, parser, series builder and log queue.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class ConnectionStatus(str, Enum):
    """Connection lifecycle state of a transfer client."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class EndpointConfig(BaseModel):
    """
    Remote file server endpoint.

    Frozen: a new instance is adopted through TransferClient.update_config,
    never mutated in place.
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="ftp.example.com", min_length=1)
    port: int = Field(default=21, ge=1, le=65535)
    username: str = Field(default="anonymous")
    password: str = Field(default="")
    target_filename: str = Field(default="data.xls", min_length=1)

    @property
    def target_extension(self) -> str:
        """Suffix of the target filename without the dot, defaulting to xlsx."""
        name = self.target_filename.rsplit("/", 1)[-1]
        if "." not in name:
            return "xlsx"
        ext = name.rsplit(".", 1)[-1].strip().lower()
        return ext or "xlsx"

    def redacted(self) -> Dict[str, Any]:
        """Loggable view without the password."""
        return {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "target_filename": self.target_filename,
        }


@dataclass(frozen=True)
class TransferMetric:
    """One recorded transfer attempt. Never mutated after creation."""
    operation: str
    duration_ms: float
    byte_size: int
    succeeded: bool
    error_detail: Optional[str] = None
    synthetic: bool = False
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["recorded_at"] = self.recorded_at.isoformat()
        return data


@dataclass(frozen=True)
class RowGrid:
    """
    Uniform header + data rows produced by the parser.

    rows[0] is the header; the remaining rows are data. Cells keep the raw
    value the decoder produced (str for delimited text, native types for
    spreadsheets).
    """
    rows: Tuple[Tuple[Any, ...], ...]
    source_format: str = "unknown"

    @property
    def header(self) -> Tuple[Any, ...]:
        return self.rows[0] if self.rows else ()

    @property
    def data_rows(self) -> Tuple[Tuple[Any, ...], ...]:
        return self.rows[1:]

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class Dataset:
    """A single numeric series, one value per label."""
    values: Tuple[float, ...]
    column: str = ""


@dataclass(frozen=True)
class ProportionalEntry:
    """Pie-style slice; value is always >= 1."""
    label: str
    value: float


@dataclass(frozen=True)
class SeriesModel:
    """Render-ready output of the series builder."""
    labels: Tuple[str, ...]
    datasets: Tuple[Dataset, ...]
    proportional: Tuple[ProportionalEntry, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "labels": list(self.labels),
            "datasets": [
                {"column": d.column, "data": list(d.values)} for d in self.datasets
            ],
            "proportional": [
                {"name": p.label, "value": p.value} for p in self.proportional
            ],
        }


class LogSeverity(str, Enum):
    """Ordered log severities; comparison follows declaration order."""
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def at_least(self, other: "LogSeverity") -> bool:
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: Union[str, "LogSeverity"]) -> "LogSeverity":
        if isinstance(value, LogSeverity):
            return value
        normalized = str(value).strip().lower()
        if normalized == "warning":
            normalized = "warn"
        if normalized == "critical":
            normalized = "error"
        return cls(normalized)


_SEVERITY_ORDER = [LogSeverity.DEBUG, LogSeverity.INFO, LogSeverity.WARN, LogSeverity.ERROR]


@dataclass(frozen=True)
class LogEvent:
    """Structured event buffered by the log queue."""
    timestamp: str
    severity: LogSeverity
    message: str
    payload: Optional[Dict[str, Any]] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "level": self.severity.value,
            "message": self.message,
            "data": self.payload,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEvent":
        return cls(
            timestamp=data["timestamp"],
            severity=LogSeverity.parse(data.get("level", "info")),
            message=data.get("message", ""),
            payload=data.get("data"),
            source=data.get("source"),
        )


# ============================================================================
# DOWNLOAD OUTCOMES
# ============================================================================

@dataclass(frozen=True)
class RealDownload:
    """The configured file was transferred and validated."""
    path: str
    size: int
    synthetic: bool = False


@dataclass(frozen=True)
class SyntheticDownload:
    """Real transfer was unavailable; placeholder data was generated."""
    path: str
    reason: str
    synthetic: bool = True


@dataclass(frozen=True)
class FailedDownload:
    """No usable artifact was produced."""
    error: Exception
    synthetic: bool = False


DownloadOutcome = Union[RealDownload, SyntheticDownload, FailedDownload]


@dataclass
class CycleResult:
    """Summary of one completed fetch cycle."""
    series: SeriesModel
    synthetic: bool
    source_path: str
    row_count: int
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    stage_durations_ms: Dict[str, float] = field(default_factory=dict)
    synthetic_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "synthetic": self.synthetic,
            "synthetic_reason": self.synthetic_reason,
            "source_path": self.source_path,
            "row_count": self.row_count,
            "completed_at": self.completed_at.isoformat(),
            "stage_durations_ms": dict(self.stage_durations_ms),
        }


__all__: List[str] = [
    "ConnectionStatus",
    "EndpointConfig",
    "TransferMetric",
    "RowGrid",
    "Dataset",
    "ProportionalEntry",
    "SeriesModel",
    "LogSeverity",
    "LogEvent",
    "RealDownload",
    "SyntheticDownload",
    "FailedDownload",
    "DownloadOutcome",
    "CycleResult",
]
