"""
Ordered delivery of live-session messages.

Typed messages and transcribed voice fragments share one transport. Typed
messages are always appended in arrival order. Transcribed fragments carry a
per-session index and pass a monotonic gate: anything at or below the
highest index applied so far is a duplicate or a stale reordering and is
dropped.
"""
import threading
from typing import Callable, Dict, List, Optional
from avatar_worker.app.models import ConversationEntry, SourceKind
from avatar_worker.errors import SessionAlreadyActiveError
from avatar_worker.utils import get_logger

logger = get_logger(__name__)

EntryListener = Callable[[ConversationEntry], None]


class ConversationSequencer:
    def __init__(self, participant: Optional[str] = None, listener: Optional[EntryListener] = None):
        self.participant = participant
        self.listener = listener
        self._lock = threading.Lock()
        self._log: List[ConversationEntry] = []
        self._high_water_mark: Optional[int] = None

    @property
    def high_water_mark(self) -> Optional[int]:
        return self._high_water_mark

    def submit_typed(self, text: str) -> None:
        entry = ConversationEntry(
            source_kind=SourceKind.TYPED,
            text=text,
            participant=self.participant,
        )
        with self._lock:
            self._append(entry)

    def submit_transcribed(self, index: int, text: str) -> bool:
        """Apply a transcribed fragment if its index is new.

        Returns:
            True if the fragment was appended, False if it was dropped.
        """
        with self._lock:
            if self._high_water_mark is not None and index <= self._high_water_mark:
                logger.debug(
                    f"Dropping transcription {index} (high-water mark {self._high_water_mark})"
                )
                return False

            self._high_water_mark = index
            self._append(ConversationEntry(
                source_kind=SourceKind.TRANSCRIBED,
                text=text,
                participant=self.participant,
                sequence_index=index,
            ))
            return True

    def reset_session(self) -> None:
        """Forget the high-water mark. Called once when a live session ends."""
        with self._lock:
            self._high_water_mark = None

    def entries(self) -> List[ConversationEntry]:
        with self._lock:
            return list(self._log)

    def _append(self, entry: ConversationEntry) -> None:
        # caller holds self._lock
        self._log.append(entry)
        if self.listener is not None:
            self.listener(entry)


class SessionRegistry:
    """Tracks the live session of each participant.

    Transcription indices carry no session id, so two overlapping sessions
    for one participant would compare indices against each other. The
    registry refuses to open a second session until the first is closed.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, ConversationSequencer] = {}

    def open(self, participant: str, listener: Optional[EntryListener] = None) -> ConversationSequencer:
        with self._lock:
            if participant in self._sessions:
                raise SessionAlreadyActiveError(participant)
            sequencer = ConversationSequencer(participant=participant, listener=listener)
            self._sessions[participant] = sequencer
        logger.info(f"Live session opened for {participant}")
        return sequencer

    def get(self, participant: str) -> Optional[ConversationSequencer]:
        with self._lock:
            return self._sessions.get(participant)

    def close(self, participant: str) -> None:
        with self._lock:
            sequencer = self._sessions.pop(participant, None)
        if sequencer is None:
            return
        sequencer.reset_session()
        logger.info(f"Live session closed for {participant}")
