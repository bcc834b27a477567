"""Season metadata lookups against The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import Settings
from ..exceptions import ExternalProviderError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SeriesSeasonInfo:
    """Season count and lifecycle status reported for a TMDB series."""

    available_seasons: int | None
    status: str | None
    name: str | None = None


class TMDBClient:
    """Client responsible for reading series season data from TMDB."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    async def get_series_season_info(self, tmdb_id: int) -> SeriesSeasonInfo:
        """Return the current season count and status for ``tmdb_id``."""

        logger.info("Fetching series details from TMDB for ID: %s", tmdb_id)
        params = {
            "api_key": self._settings.tmdb_api_key,
            "language": self._settings.tmdb_language,
        }
        try:
            response = await self._client.get(f"/tv/{tmdb_id}", params=params)
        except httpx.HTTPError as exc:
            logger.warning("TMDB request for series %s failed: %s", tmdb_id, exc)
            raise ExternalProviderError(
                f"Failed to reach TMDB: {exc}", external_id=tmdb_id
            ) from exc

        if response.status_code >= 400:
            logger.warning(
                "TMDB API error fetching series %s: %s - %s",
                tmdb_id,
                response.status_code,
                response.text,
            )
            message = (
                f"Series not found with TMDB ID: {tmdb_id}"
                if response.status_code == 404
                else "TMDB rejected the series details request"
            )
            raise ExternalProviderError(
                message, external_id=tmdb_id, status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalProviderError(
                "TMDB returned an unreadable payload",
                external_id=tmdb_id,
                status_code=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise ExternalProviderError(
                "TMDB returned an unexpected payload",
                external_id=tmdb_id,
                status_code=response.status_code,
            )

        info = SeriesSeasonInfo(
            available_seasons=self._coerce_int(payload.get("number_of_seasons")),
            status=self._coerce_text(payload.get("status")),
            name=self._coerce_text(payload.get("name")),
        )
        logger.info(
            "Fetched series details: %s (%s seasons, status %s)",
            info.name or tmdb_id,
            info.available_seasons,
            info.status,
        )
        return info

    @staticmethod
    def _coerce_int(value: Any) -> int | None:
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                return None
        return None

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        value = value.strip()
        return value or None
