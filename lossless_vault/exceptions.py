"""
Custom exception hierarchy for LosslessVault.

The matching core raises only programmer-error types (index misuse, phase
ordering) and the cooperative cancellation signal. Everything else belongs
to the collaborators that feed it records or act on its groups.
"""


class VaultError(Exception):
    """Base exception for all LosslessVault errors."""
    pass


# --- Matching core ---

class IndexInconsistencyError(VaultError):
    """Raised when the metric index is modified after queries have started."""
    pass


class PipelineStateError(VaultError):
    """Raised when grouping phases are run out of order."""
    pass


class PipelineCancelled(VaultError):
    """Raised between phases when the caller asks to abandon a run."""
    pass


# --- Collaborators ---

class FileHashError(VaultError):
    """Raised when content hashing fails."""
    pass


class DatabaseError(VaultError):
    """Raised when catalog operations fail."""
    pass


class SourceError(VaultError):
    """Raised when a source directory cannot be registered."""
    pass


class GroupNotFoundError(VaultError):
    """Raised when a duplicate group label does not exist in the current run."""
    pass


class VaultNotConfiguredError(VaultError):
    """Raised when a vault or export path is required but not set."""
    pass


class FileOperationError(VaultError):
    """Raised when file copy/move operations fail."""
    pass


class RendererUnavailableError(VaultError):
    """Raised when the HEIC renderer is not installed on this system."""
    pass


class ConversionError(VaultError):
    """Raised when the renderer fails to convert a photo."""

    def __init__(self, path, message: str):
        super().__init__(f"Conversion failed for {path}: {message}")
        self.path = path
        self.message = message
