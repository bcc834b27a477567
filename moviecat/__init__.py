"""MovieCat: movie and series catalog with season tracking."""

from __future__ import annotations

__version__ = "1.0.0"
