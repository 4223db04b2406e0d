from typing import List, Optional
from avatar_worker.app.models import DetailEntry, RunReport


class ResultAggregator:
    """Accumulates per-item outcomes for a single drain run.

    Not thread safe: every drain invocation owns its own instance.
    """

    def __init__(self):
        self._processed = 0
        self._failed = 0
        self._details: List[DetailEntry] = []
        self._error: Optional[str] = None

    def record(self, subject_id: str, success: bool, message: str) -> None:
        if success:
            self._processed += 1
        else:
            self._failed += 1
        self._details.append(DetailEntry(subject_id=subject_id, success=success, message=message))

    def fail_run(self, message: str) -> None:
        """Mark the whole run as failed. Only the first error is kept."""
        if self._error is None:
            self._error = message

    def snapshot(self) -> RunReport:
        return RunReport(
            processed_count=self._processed,
            failed_count=self._failed,
            details=list(self._details),
            error=self._error,
        )
