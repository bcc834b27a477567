"""Error types raised by the catalog, reconciliation and recommendation layers."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for application-specific errors."""


class NotFound(CatalogError, KeyError):
    """An unknown movie, series or notification id was requested."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} not found with id: {entity_id}")

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0])


class MissingExternalReference(CatalogError):
    """A series has neither a stored TMDB id nor a parsable TMDB link."""

    def __init__(self, series_id: str, link: str | None = None):
        self.series_id = series_id
        self.link = link
        super().__init__(
            f"Series {series_id} requires a valid TMDB link or ID to refresh seasons"
        )


class ExternalProviderError(CatalogError):
    """The metadata provider could not be reached or returned an error."""

    def __init__(
        self,
        message: str,
        *,
        external_id: int | None = None,
        status_code: int | None = None,
        series_id: str | None = None,
    ):
        self.external_id = external_id
        self.status_code = status_code
        self.series_id = series_id
        super().__init__(message)

    def __str__(self) -> str:
        details: list[str] = []
        if self.series_id:
            details.append(f"series={self.series_id}")
        if self.external_id is not None:
            details.append(f"tmdb={self.external_id}")
        if self.status_code is not None:
            details.append(f"status={self.status_code}")
        message = str(self.args[0]) if self.args else "External provider error"
        if not details:
            return message
        return f"{message} ({', '.join(details)})"


class NoUnwatchedContent(CatalogError):
    """There is nothing left to recommend."""

    def __init__(self, message: str = "No unwatched content available for recommendation"):
        super().__init__(message)


class InvalidSeasonOperation(CatalogError, ValueError):
    """A season edit would break the series invariants."""
