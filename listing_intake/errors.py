"""Error taxonomy for the intake pipeline.

Only unexpected failures travel through exceptions. Input that simply does not
match what a state expects is reported with ``Result.rejected`` instead, see
``listing_intake.services.result``.
"""

from typing import Optional


class IntakeError(Exception):
    """Base class for every error raised by the intake pipeline."""


class DuplicateEvent(IntakeError):
    """Inbound event was already processed; not a failure."""

    def __init__(self, phone: str, message_id: str):
        self.phone = phone
        self.message_id = message_id
        super().__init__(f"Duplicate event {message_id} for {phone}")


class TransientExternalFailure(IntakeError):
    """An external collaborator (dedup store, upload step, messenger) failed."""


class DedupStoreUnavailable(TransientExternalFailure):
    pass


class MessengerError(TransientExternalFailure):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class MediaDownloadError(TransientExternalFailure):
    pass


class CommerceAPIError(TransientExternalFailure):
    pass


class ExtractionError(TransientExternalFailure):
    pass


class UploadError(TransientExternalFailure):
    """A staged-upload attempt failed; retrying must restart at step 1."""

    step = "upload"

    def __init__(self, message: str, filename: Optional[str] = None):
        self.filename = filename
        super().__init__(message)


class StagedTargetError(UploadError):
    step = "staged"


class TransferError(UploadError):
    step = "transfer"

    def __init__(self, message: str, filename: Optional[str] = None, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message, filename)


class RegistrationError(UploadError):
    step = "register"


class FileProcessingFailed(UploadError):
    """The backend reported the registered file as FAILED."""

    step = "poll"

    def __init__(self, file_id: str, filename: Optional[str] = None):
        self.file_id = file_id
        super().__init__(f"File {file_id} failed processing", filename)


class ProtocolTimeout(UploadError):
    """Readiness polling exceeded its attempt bound."""

    step = "poll"

    def __init__(self, file_id: str, attempts: int, filename: Optional[str] = None):
        self.file_id = file_id
        self.attempts = attempts
        super().__init__(f"File {file_id} not ready after {attempts} polls", filename)


class FatalConfiguration(IntakeError):
    """Required credentials or ids are missing; the service must not start."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(f"Missing required configuration: {', '.join(self.missing)}")
