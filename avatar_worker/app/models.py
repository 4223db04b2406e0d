from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol


class WorkKind(str, Enum):
    THUMBNAIL_COUNT = "thumbnail-count"
    SERVE_TIME = "serve-time"


@dataclass(frozen=True)
class WorkUnit:
    """One pending job claimed from the store.

    ``unit_id`` identifies this claim; effects are idempotent per unit_id.
    """
    subject_id: str
    kind: WorkKind
    unit_id: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ApplyResult:
    success: bool
    message: str
    result_value: Any = None


@dataclass
class DetailEntry:
    subject_id: str
    success: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subjectId": self.subject_id,
            "success": self.success,
            "message": self.message,
        }


@dataclass
class RunReport:
    processed_count: int = 0
    failed_count: int = 0
    details: List[DetailEntry] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def run_failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "processedCount": self.processed_count,
            "failedCount": self.failed_count,
            "details": [d.to_dict() for d in self.details],
        }
        if self.error is not None:
            data["error"] = self.error
        return data


class SourceKind(str, Enum):
    TYPED = "typed"
    TRANSCRIBED = "transcribed"


@dataclass(frozen=True)
class ConversationEntry:
    source_kind: SourceKind
    text: str
    participant: Optional[str] = None
    sequence_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.source_kind.value,
            "text": self.text,
            "participant": self.participant,
            "index": self.sequence_index,
        }


class WorkUnitStore(Protocol):
    """Contract consumed by the drain loop.

    ``claim_next`` returns None when the queue is empty and raises
    StoreError when the store itself fails. ``apply_effect`` must be
    idempotent per unit. ``release_claim`` puts a claimed unit back so a
    later run claims it again.
    """

    async def claim_next(self, kind: WorkKind) -> Optional[WorkUnit]: ...

    async def apply_effect(self, unit: WorkUnit) -> ApplyResult: ...

    async def mark_applied(self, unit: WorkUnit) -> None: ...

    async def release_claim(self, unit: WorkUnit) -> None: ...
