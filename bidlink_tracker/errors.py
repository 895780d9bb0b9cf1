from __future__ import annotations


class BidLinkError(Exception):
    """Base class for errors raised by this package."""


class ConfigError(BidLinkError):
    """Configuration could not be loaded or validated."""


class SourceUnavailableError(BidLinkError):
    """The spreadsheet as a whole cannot be read (credentials, id, access)."""


class NoPartitionsError(SourceUnavailableError):
    """The spreadsheet exists but holds no tabs to read from."""

    def __init__(self, source_key: str) -> None:
        super().__init__(
            f"No tabs found in spreadsheet '{source_key}'. "
            "Please check the spreadsheet ID and permissions."
        )
        self.source_key = source_key


class ProtectedCellError(BidLinkError):
    """Storage refused a write because the target cells are protected."""

    def __init__(self, message: str, cell_ref: str | None = None) -> None:
        super().__init__(message)
        self.cell_ref = cell_ref
