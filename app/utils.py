"""Utility helpers for the MovieCat service."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone


logger = logging.getLogger(__name__)

TMDB_TV_ID_RE = re.compile(r"/tv/(\d+)")
TMDB_MOVIE_ID_RE = re.compile(r"/movie/(\d+)")
TMDB_SITE_URL = "https://www.themoviedb.org"


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime, as stored in the database."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_entity_id() -> str:
    return uuid.uuid4().hex


def _parse_id(pattern: re.Pattern[str], link: str | None) -> int | None:
    if not link:
        return None
    match = pattern.search(link)
    if not match:
        return None
    try:
        return int(match.group(1))
    except ValueError:  # pragma: no cover - the pattern only matches digits
        logger.warning("Failed to parse TMDB ID from link: %s", link)
        return None


def parse_tmdb_tv_id(link: str | None) -> int | None:
    """Extract the TMDB series id from links such as ``.../tv/1396-breaking-bad``."""

    return _parse_id(TMDB_TV_ID_RE, link)


def parse_tmdb_movie_id(link: str | None) -> int | None:
    """Extract the TMDB movie id from links such as ``.../movie/603``."""

    return _parse_id(TMDB_MOVIE_ID_RE, link)


def build_tmdb_link(tmdb_id: int | None, *, is_movie: bool) -> str | None:
    """Return the canonical TMDB page for an id."""

    if tmdb_id is None:
        return None
    kind = "movie" if is_movie else "tv"
    return f"{TMDB_SITE_URL}/{kind}/{tmdb_id}"
