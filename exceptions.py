# Custom exceptions for Recrop

class RecropError(Exception):
    """Base exception for Recrop errors."""
    pass

class DurationProbeError(RecropError):
    """Raised when the duration of the input media cannot be resolved."""
    pass

class AlreadyRunningError(RecropError):
    """Raised when a job is started while another one occupies the runner."""
    pass

class StoragePermissionError(RecropError):
    """Raised when the videos directory is not writable."""
    pass

class AssetError(RecropError):
    """Raised when the bundled sample cannot be materialized."""
    pass

class VideoLoadError(RecropError):
    """Raised when a video file cannot be handed to a player."""
    pass
