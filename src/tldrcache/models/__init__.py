from __future__ import annotations

from tldrcache.models.cache import CacheInfo, LanguageUpdate, UpdateSummary

__all__ = [
    "CacheInfo",
    "LanguageUpdate",
    "UpdateSummary",
]
