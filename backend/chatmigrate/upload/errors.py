"""Upload failure taxonomy.

TransientNetworkError is the only class that does not end an upload: the
request may have reached the destination before the response was lost, so
the orchestrator polls for the result instead of reporting failure.
"""

BYTES_PER_MB = 1024 * 1024


class UploadError(Exception):
    """Base class for failures while sending an import to the destination."""


class FileTooLargeError(UploadError):
    """The file exceeds the destination's advertised maximum import size."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"File is too large. Maximum import size is {limit / BYTES_PER_MB:.2f} MB"
        )


class UnsupportedImportTypeError(UploadError):
    """The destination rejected the file content as an unsupported import type."""


class TransientNetworkError(UploadError):
    """Timeout, reset connection or other failure that does not prove non-delivery."""


class UploadRejectedError(UploadError):
    """The destination answered with a non-success status."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Upload rejected ({status_code}): {detail}")


class ChunkUploadError(UploadError):
    """A chunk failed; the chunks after it were not sent."""

    def __init__(self, index: int, total: int, cause: Exception) -> None:
        self.index = index
        self.total = total
        self.cause = cause
        super().__init__(f"Chunk {index} of {total} failed: {cause}")


def check_file_size(size: int, limit: int | None) -> None:
    """Raise FileTooLargeError when a limit is configured and size exceeds it."""
    if limit and size > limit:
        raise FileTooLargeError(size, limit)
