"""Line code alias resolution with a TTL cache.

Alias maps are built per project from LineCodeAlias rows (project rows
first, then global rows, each ordered by priority desc; first alias for a
code wins) and topped up with a static fallback table for codes the
database does not cover.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, Dict, Optional
from uuid import UUID

from sqlalchemy import select, or_, case
from sqlalchemy.orm import Session

from config import get_settings
from models.interchange import LineCodeAlias
from .normalizer import normalize_line_code

logger = logging.getLogger(__name__)


# Common aftermarket abbreviations -> canonical brand
STATIC_BRAND_ALIASES: Dict[str, str] = {
    "GAT": "GATES",
    "GATE": "GATES",
    "ACD": "ACDELCO",
    "AC": "ACDELCO",
    "ACDEL": "ACDELCO",
    "WAG": "WAGNER",
    "MC": "MOTORCRAFT",
    "MTCR": "MOTORCRAFT",
    "CHA": "CHAMPION",
    "CHAMP": "CHAMPION",
    "STD": "STANDARD",
    "SMP": "STANDARD",
    "DOR": "DORMAN",
    "DORM": "DORMAN",
    "MG": "MOOG",
    "RAY": "RAYBESTOS",
    "RB": "RAYBESTOS",
    "TIM": "TIMKEN",
    "TMK": "TIMKEN",
    "FM": "FEDERAL MOGUL",
    "FED": "FEDERAL MOGUL",
    "BA": "BECK ARNLEY",
    "BECK": "BECK ARNLEY",
    "CONT": "CONTINENTAL",
    "CTI": "CONTINENTAL",
    "DAY": "DAYCO",
    "DUR": "DURALAST",
    "DL": "DURALAST",
}


def load_alias_map(db: Session, project_id: Optional[UUID]) -> Dict[str, str]:
    """Build the merged alias map for a project.

    Args:
        db: Database session
        project_id: Project scope (None loads only global aliases)

    Returns:
        Dict mapping canonical line code -> canonical brand
    """
    scope_filter = LineCodeAlias.project_id.is_(None)
    if project_id is not None:
        scope_filter = or_(LineCodeAlias.project_id == project_id, scope_filter)

    project_first = case((LineCodeAlias.project_id.is_(None), 1), else_=0)
    rows = db.execute(
        select(LineCodeAlias.line_code, LineCodeAlias.brand)
        .where(LineCodeAlias.active.is_(True), scope_filter)
        .order_by(project_first, LineCodeAlias.priority.desc())
    ).all()

    aliases: Dict[str, str] = {}
    for line_code, brand in rows:
        key = normalize_line_code(line_code)
        if key and key not in aliases:
            aliases[key] = brand.strip().upper()

    for code, brand in STATIC_BRAND_ALIASES.items():
        aliases.setdefault(code, brand)

    return aliases


@dataclass
class _CacheEntry:
    aliases: Dict[str, str]
    loaded_at: float


@dataclass
class AliasCache:
    """Per-project alias maps with a fixed time-to-live.

    Entries are refreshed on access once older than ttl_seconds. Writers of
    LineCodeAlias rows must call invalidate() so changes are visible
    immediately instead of after the TTL.
    """
    ttl_seconds: float = 300.0
    clock: Callable[[], float] = time.monotonic
    _entries: Dict[Optional[UUID], _CacheEntry] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def get(self, db: Session, project_id: Optional[UUID]) -> Dict[str, str]:
        now = self.clock()
        with self._lock:
            entry = self._entries.get(project_id)
            if entry is not None and now - entry.loaded_at < self.ttl_seconds:
                return entry.aliases

        aliases = load_alias_map(db, project_id)
        with self._lock:
            self._entries[project_id] = _CacheEntry(aliases=aliases, loaded_at=now)
        logger.debug(
            "Alias map loaded",
            extra={"project_id": project_id, "alias_count": len(aliases)},
        )
        return aliases

    def invalidate(self, project_id: Optional[UUID] = None) -> None:
        """Drop cached maps. Without a project_id every entry is dropped."""
        with self._lock:
            if project_id is None:
                self._entries.clear()
            else:
                self._entries.pop(project_id, None)
                # Global rows feed every project map
                self._entries.pop(None, None)


@lru_cache()
def get_alias_cache() -> AliasCache:
    """Process-wide alias cache, configured from settings."""
    return AliasCache(ttl_seconds=get_settings().ALIAS_CACHE_TTL_SECONDS)


class AliasResolver:
    """Resolves raw line codes to canonical brands for one project.

    Usage:
        resolver = AliasResolver(db, project_id)
        resolver.resolve_line_code("gat")  # -> "GATES"
        resolver.resolve_line_code("XBO")  # -> "XBO" (unknown, passed through)
    """

    def __init__(self, db: Session, project_id: Optional[UUID], cache: Optional[AliasCache] = None):
        self.db = db
        self.project_id = project_id
        self.cache = cache or get_alias_cache()

    def resolve_line_code(self, line_code: Optional[str]) -> Optional[str]:
        code = normalize_line_code(line_code)
        if not code:
            return None
        aliases = self.cache.get(self.db, self.project_id)
        return aliases.get(code, code)

    def resolve_brand(self, brand: Optional[str]) -> Optional[str]:
        """Resolve a free-text brand, trying the alias map before plain uppercasing."""
        if not brand:
            return None
        aliases = self.cache.get(self.db, self.project_id)
        code = normalize_line_code(brand)
        return aliases.get(code, brand.strip().upper())

    def same_brand(self, a: Optional[str], b: Optional[str]) -> Optional[bool]:
        """Compare two line codes after resolution. None when either side is missing."""
        resolved_a = self.resolve_line_code(a)
        resolved_b = self.resolve_line_code(b)
        if not resolved_a or not resolved_b:
            return None
        return resolved_a == resolved_b
