"""Node transitions and run results.

Every node executor returns exactly one Transition:
- Advance: continue at another node
- Done: halt; the run's final insight has been set
- Suppressed / Deferred: halt early with a reason code, no insight

The engine turns the terminal transition (or a fatal error) into a RunResult.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class Advance:
    next_id: str


@dataclass(frozen=True)
class Done:
    pass


@dataclass(frozen=True)
class Suppressed:
    reason: str


@dataclass(frozen=True)
class Deferred:
    reason: str


Transition = Union[Advance, Done, Suppressed, Deferred]


class RunStatus(str, Enum):
    """Terminal status of a run."""
    SUCCESS = "success"
    SUPPRESSED = "suppressed"
    DEFERRED = "deferred"
    ERROR = "error"


class ErrorType(str, Enum):
    """Category of a failed run."""
    WORKFLOW_VALIDATION = "workflow_validation_error"
    EXECUTION = "execution_error"
    DATA_FETCH = "data_fetch_error"


@dataclass
class RunResult:
    """Terminal result of one workflow run."""
    status: RunStatus
    insight: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    error_type: Optional[ErrorType] = None
    message: Optional[str] = None
    tenant_id: Optional[str] = None
    metric: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    steps: int = 0

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCESS

    @classmethod
    def error(cls, error_type: ErrorType, message: str, **kwargs: Any) -> "RunResult":
        return cls(status=RunStatus.ERROR, error_type=error_type, message=message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise for the transport boundary."""
        if self.status == RunStatus.ERROR:
            return {
                "status": self.status.value,
                "type": self.error_type.value if self.error_type else None,
                "message": self.message,
            }

        payload: Dict[str, Any] = {"status": self.status.value}
        if self.status == RunStatus.SUCCESS and self.insight:
            payload.update({k: v for k, v in self.insight.items() if k != "status"})
        else:
            payload["reason"] = self.reason
        payload["tenant_id"] = self.tenant_id
        payload["metric"] = self.metric
        payload["metadata"] = dict(self.metadata)
        return payload
