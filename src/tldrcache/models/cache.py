from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel


class LanguageUpdate(BaseModel):
    """Result of re-extracting one language archive."""

    language: str
    pages: int
    new_pages: int  # Negative when upstream removed pages


class UpdateSummary(BaseModel):
    """Outcome of one update batch."""

    updated: list[LanguageUpdate] = []
    up_to_date: list[str] = []
    unsupported: list[str] = []  # Requested but absent from the remote manifest

    @property
    def total_pages(self) -> int:
        return sum(item.pages for item in self.updated)

    @property
    def total_new(self) -> int:
        return sum(item.new_pages for item in self.updated)


class CacheInfo(BaseModel):
    """Page counts per installed language plus the cache age."""

    root: Path
    age: timedelta
    languages: dict[str, int]  # language code -> page count, sorted by code

    @property
    def total(self) -> int:
        return sum(self.languages.values())
