"""
Course badge catalog and the rules for badges derived from course data.

Manual badges (bestseller, hot, limited) are set by instructors; derived
badges (sale, certified, new, featured) are recalculated from the course row.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional


@dataclass(frozen=True)
class BadgeConfig:
    icon: str
    tooltip: str
    color: str
    priority: int


BADGE_CATALOG: Dict[str, BadgeConfig] = {
    "bestseller": BadgeConfig(icon="🏆", tooltip="Bestseller", color="#f39c12", priority=3),
    "hot": BadgeConfig(icon="🔥", tooltip="Trending", color="#e74c3c", priority=2),
    "new": BadgeConfig(icon="✨", tooltip="New course", color="#3498db", priority=6),
    "featured": BadgeConfig(icon="⭐", tooltip="Featured", color="#9b59b6", priority=4),
    "limited": BadgeConfig(icon="🎯", tooltip="Closing soon", color="#e67e22", priority=2),
    "sale": BadgeConfig(icon="💰", tooltip="On sale", color="#27ae60", priority=1),
    "certified": BadgeConfig(icon="🎓", tooltip="Certificate included", color="#2c3e50", priority=5),
}

DERIVED_BADGES = ("sale", "certified", "new", "featured")
NEW_COURSE_WINDOW = timedelta(days=30)


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        try:
            ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def is_expired(value: Any, now: Optional[datetime] = None) -> bool:
    ts = _parse_ts(value)
    return ts is not None and ts <= (now or datetime.now(timezone.utc))


def enrich(rows: Iterable[Mapping[str, Any]], now: Optional[datetime] = None) -> List[dict]:
    """Attach catalog config, drop expired or unknown badges, sort by priority."""
    out = []
    for row in rows:
        config = BADGE_CATALOG.get(row.get("badge_type") or "")
        if config is None or is_expired(row.get("expires_at"), now):
            continue
        out.append({**row, **asdict(config), "type": row["badge_type"]})
    out.sort(key=lambda b: (b["priority"], b["type"]))
    return out


def derived_badges(course: Mapping[str, Any], now: Optional[datetime] = None) -> Dict[str, bool]:
    """Return, per derived badge type, whether the course should carry it.

    `course` is a storage row; `course_settings` may be a one-element list.
    """
    now = now or datetime.now(timezone.utc)
    settings = course.get("course_settings") or []
    if isinstance(settings, (list, tuple)):
        settings = settings[0] if settings else {}
    created = _parse_ts(course.get("created_at"))
    discount = course.get("discounted_price")
    return {
        "sale": bool(discount) and float(discount) < float(course.get("regular_price") or 0),
        "certified": bool(settings.get("certificate_enabled")),
        "new": created is not None and now - created <= NEW_COURSE_WINDOW,
        "featured": bool(course.get("is_featured")) and not is_expired(course.get("featured_until"), now),
    }


__all__ = ["BADGE_CATALOG", "BadgeConfig", "DERIVED_BADGES", "derived_badges", "enrich", "is_expired"]
