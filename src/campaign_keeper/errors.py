"""Turn-level failure taxonomy."""

from __future__ import annotations


class CampaignError(Exception):
    """Base class for failures that abort a single turn."""

    notice = "The turn could not be completed."

    def __init__(self, message: str, *, notice: str | None = None) -> None:
        super().__init__(message)
        if notice is not None:
            self.notice = notice


class StorageError(CampaignError):
    """State or usage document could not be read or written."""

    notice = "Campaign storage is unavailable. Nothing was changed."


class ProviderError(CampaignError):
    """The completion provider failed or returned a non-success status."""

    notice = "The Dungeon Master could not be reached. Nothing was changed."

    def __init__(self, message: str, *, status_code: int | None = None, detail: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class MalformedOutputError(CampaignError):
    """The provider answered, but not with the expected JSON object."""

    notice = "The Dungeon Master replied with something unreadable. Nothing was changed."

    def __init__(self, message: str, *, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw
