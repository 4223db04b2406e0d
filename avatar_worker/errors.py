class AvatarWorkerError(Exception):
    """Base class for errors raised by the avatar worker."""


class StoreError(AvatarWorkerError):
    """The work unit store could not be reached or refused an operation.

    Raised by claim / mark-applied; ends a drain run.
    """


class SessionAlreadyActiveError(AvatarWorkerError):
    """A live session is already open for this participant."""

    def __init__(self, participant: str):
        super().__init__(f"Live session already active for participant {participant}")
        self.participant = participant
