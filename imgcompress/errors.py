"""Custom exception classes for imgcompress."""


class ImgCompressError(Exception):
    """Base exception for all application errors."""

    pass


class EncoderError(ImgCompressError):
    """The encoder could not produce an output for a job."""

    pass


class EncodeCancelled(EncoderError):
    """Encoding was abandoned because outstanding work was cancelled.

    Not a genuine failure: callers must not log it as an error.
    """

    def __init__(self, message: str = "Cancelled") -> None:
        super().__init__(message)


class PersistenceError(ImgCompressError):
    """A job store operation failed."""

    pass


class InvalidStateTransitionError(ImgCompressError):
    """A job was asked to move along an edge the state machine does not have."""

    def __init__(self, job_id: str, from_status: str, to_status: str) -> None:
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Job {job_id}: illegal transition {from_status} -> {to_status}"
        )
