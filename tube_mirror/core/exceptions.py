"""
Exception classes for tube-mirror.

This module defines all custom exceptions used throughout the application.
Each exception carries a human-readable message plus an optional details
dictionary, and the hierarchy separates the failure modes the run loop
treats differently.

Exception Hierarchy:
    MirrorError (base)
        ConfigError - Configuration file issues (setup, fatal)
        CatalogError - stats.json issues (setup or persistence, fatal)
        InstanceLockError - Lock rendezvous unusable (setup, fatal)
        ResourceError - One playlist/channel could not be processed
        DownloaderError - yt-dlp invocation issues
            NonZeroReturnCodeError
            DownloaderTimeoutError
            InvalidJsonError
        ProbeError - ffprobe failed for a downloaded file
        ConsistencyError - Catalog and filesystem disagree
"""


class MirrorError(Exception):
    """
    Base exception for all tube-mirror errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (video id, paths).

    Example:
        try:
            engine.process_url(url)
        except MirrorError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description shown to the user.
            details: Optional dictionary containing additional context.
                     Common keys include:
                     - 'video_id': Video involved in the error
                     - 'url': Resource URL that caused the error
                     - 'path': Filesystem path involved
                     - 'original_error': The wrapped exception, as a string
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(MirrorError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that stops program execution before the
    instance lock is taken.

    Common causes:
        - config.yaml not found
        - config.yaml has invalid YAML syntax
        - output.directory missing
        - Invalid field values (e.g., negative timeout)
    """
    pass


class CatalogError(MirrorError):
    """
    Raised when stats.json cannot be opened, parsed or written.

    This is a CRITICAL error. A failed write invalidates the guarantee that
    the run can crash between any two steps without losing more than the
    in-flight operation, so it is never swallowed.

    Example:
        raise CatalogError(
            "Catalog file corrupted: invalid JSON syntax",
            details={'path': '/data/stats.json', 'original_error': str(e)}
        )
    """
    pass


class InstanceLockError(MirrorError):
    """
    Raised when the single-instance rendezvous cannot be probed or bound
    for a reason other than "nobody holds it".

    Lock contention itself is not an exception: InstanceLock.acquire()
    returns False in that case.
    """
    pass


class ResourceError(MirrorError):
    """
    Raised when a single playlist or channel cannot be processed.

    This is a NON-CRITICAL error: the resource is skipped and the run
    continues with the next URL.

    Common causes:
        - URL shape not recognised
        - Snapshot kind does not match the URL kind
        - Snapshot JSON lacks required fields
    """
    pass


class DownloaderError(MirrorError):
    """
    Raised when the external downloader cannot be run or returns an
    unusable result.

    For metadata queries this surfaces as a per-resource failure. Full video
    downloads never raise on a non-zero exit; they return the exit code and
    the captured stderr so the failure can be classified.
    """
    pass


class NonZeroReturnCodeError(DownloaderError):
    """Raised when a child process exits with a non-zero status."""

    def __init__(self, code: int, details: dict | None = None) -> None:
        super().__init__(f"Return code was {code}", details)
        self.code = code


class DownloaderTimeoutError(DownloaderError):
    """Raised when a metadata query exceeds its timeout and the child is killed."""

    def __init__(self, seconds: float, details: dict | None = None) -> None:
        super().__init__(f"Timeout of {seconds}s reached", details)
        self.seconds = seconds


class InvalidJsonError(DownloaderError):
    """Raised when a child process was expected to print JSON and did not."""

    def __init__(self, original_message: str, details: dict | None = None) -> None:
        super().__init__(f"Invalid JSON received: {original_message}", details)


class ProbeError(MirrorError):
    """
    Raised when the media prober fails on a freshly downloaded file.

    This is a hard error for that video's fetch: the video is neither
    recorded as known nor tombstoned, so it is retried on the next run.
    """
    pass


class ConsistencyError(MirrorError):
    """
    Raised when the catalog and the filesystem have diverged.

    Example:
        A video listed for deletion has no symlink in any view root.
    """
    pass
