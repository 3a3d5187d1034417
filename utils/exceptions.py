"""Custom exception classes used across the service."""


class ServiceError(RuntimeError):
    """Base class for domain-specific exceptions."""


class InputValidationError(ServiceError):
    """Raised when a job reference is missing or malformed."""


class ConfigurationError(ServiceError):
    """Raised when configuration is missing or invalid."""


class ProcessingError(ServiceError):
    """Base class for pipeline stage failures."""


class ResolutionError(ProcessingError):
    """Raised when a manifest cannot be fetched, parsed or yields no segments."""


class EmptyManifestError(ResolutionError):
    """Raised when a manifest document parses to zero entries."""


class FetchError(ProcessingError):
    """Raised when any segment download fails."""


class AssemblyError(ProcessingError):
    """Raised when segment concatenation fails or produces no output."""


class TranscodeError(ProcessingError):
    """Raised when audio conversion fails or produces an empty file."""


class TranscriptionError(ProcessingError):
    """Raised when audio transcription fails."""


class JobCancelledError(ProcessingError):
    """Raised when a job is abandoned through its cancellation token."""


class NotFoundError(ServiceError):
    """Raised when a job or artifact is unknown."""


class WorkspaceExpiredError(ServiceError):
    """Raised when a job's artifacts are requested after its TTL."""
