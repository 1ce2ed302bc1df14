"""
Defines custom exceptions for the player core to allow for more specific error handling.
"""


class StrataError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(StrataError):
    """Raised for issues related to configuration loading or validation."""


class PlaybackError(StrataError):
    """Raised for playback commands the media resource cannot carry out."""


class UnsupportedSourceError(StrataError):
    """Raised when a source cannot be handled by the requested operation."""


class SubtitleLoadError(StrataError):
    """Raised when a subtitle track could not be fetched or parsed."""


class DownloadError(StrataError):
    """Raised when a download fails for a reason other than cancellation."""


class UnsupportedContentError(DownloadError):
    """
    Raised for content that can never be downloaded, such as encrypted HLS segments.
    These errors are fatal and must not be retried.
    """


class DownloadCancelledError(StrataError):
    """
    Raised when the user cancels a download. This is not a failure and must never
    produce an error notification.
    """


class FetchError(StrataError):
    """Raised when a network request fails after all retry attempts."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result
