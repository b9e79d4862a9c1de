"""Error taxonomy for reel export.

Every failure that reaches the HTTP layer is an ExportError and is rendered as
``{"error": ..., "details": ...}`` with the class's status code.
"""

from __future__ import annotations

from typing import Any


class ExportError(Exception):
    """Base class for errors reported to callers as structured JSON."""

    status_code = 500

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class BadRequest(ExportError):
    """Malformed or missing request fields."""

    status_code = 400


class InputNotFound(ExportError):
    """Referenced source file is absent or unreadable."""

    status_code = 400


class LaunchError(ExportError):
    """An external executable could not be started."""

    status_code = 500


class EngineError(ExportError):
    """The transcoding engine ran and exited nonzero."""

    status_code = 500

    def __init__(self, exit_code: int, diagnostic_tail: str):
        super().__init__(f"Transcoding engine failed with exit code {exit_code}", diagnostic_tail or None)
        self.exit_code = exit_code
        self.diagnostic_tail = diagnostic_tail


class EngineReportedSuccessButNoOutput(ExportError):
    """The engine exited 0 but the output artifact is missing or empty."""

    status_code = 500


class JobCancelled(ExportError):
    """The job was aborted by a timeout or by the caller."""

    status_code = 504


class UpstreamStoreError(ExportError):
    """The remote store rejected the artifact."""

    status_code = 502


class MediaFetchError(ExportError):
    """The media downloader failed to produce a file."""

    status_code = 502


class AudioTooLarge(ExportError):
    """Extracted audio exceeds the upstream size ceiling."""

    status_code = 413
