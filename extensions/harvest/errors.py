"""
Error taxonomy for the harvest pipeline.

Errors local to one file or one repository never abort the whole run;
the pipeline decides per error type whether to skip a file or a repository.
"""


class HarvestError(Exception):
    """Base class for harvest errors."""
    pass


class InvalidRepositoryUrl(HarvestError):
    """Repository URL could not be parsed into owner and name."""
    pass


class NetworkError(HarvestError):
    """Transport-level failure talking to the listing API."""
    pass


class DecodeError(HarvestError):
    """Listing API response was not a JSON array of entries."""
    pass


class InaccessibleRepository(HarvestError):
    """Listing API answered with a status code >= 400."""

    def __init__(self, url: str, status: int):
        super().__init__(f"{url} returned HTTP {status}")
        self.url = url
        self.status = status


class CloneError(HarvestError):
    """Repository could not be cloned into the workspace."""
    pass


class ExtractionError(HarvestError):
    """`forge inspect` failed for a single source file."""

    def __init__(self, file_name: str, exit_status: int | None, stderr: str):
        message = f"bytecode extraction failed for {file_name}"
        if exit_status is not None:
            message += f" (exit {exit_status})"
        if stderr:
            message += f": {stderr.strip()[:200]}"
        super().__init__(message)
        self.file_name = file_name
        self.exit_status = exit_status
        self.stderr = stderr


class ProcessTimeoutError(HarvestError):
    """An external process did not finish within its timeout."""

    def __init__(self, command: list[str], timeout: float):
        super().__init__(f"{' '.join(command)} timed out after {timeout}s")
        self.command = command
        self.timeout = timeout


class CleanupError(HarvestError):
    """Workspace directory could not be removed."""
    pass
