"""Category expression parsing and event-record normalization.

Hosts hand us events as plain dicts or as objects with public attributes,
and the category field is not consistently named. `CalendarEvent` pins that
down to one typed shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any, Iterable, List, Mapping, Optional, Tuple

# Checked in this order; the first field that yields a candidate wins.
CATEGORY_FIELD_ALIASES: Tuple[str, ...] = (
    'categories',
    'category',
    'CATEGORIES',
    'CATEGORY',
    'event_category',
    'cal_category',
)


def normalize_category(category) -> str:
    """Comparison key for a category: trimmed and lower-cased."""
    if category is None:
        return ''
    return str(category).strip().lower()


def split_category_expression(raw) -> List[str]:
    """Turn ``"A, B,,C"`` (or ``["A", "B, C"]``) into ``["A", "B", "C"]``.

    Order and duplicates are preserved; empty parts are dropped.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        parts: Iterable = raw.split(',')
    elif isinstance(raw, (list, tuple)):
        parts = []
        for item in raw:
            if item is None:
                continue
            parts.extend(str(item).split(','))
    else:
        parts = str(raw).split(',')
    return [part.strip() for part in parts if part and part.strip()]


def _aware_start(value) -> Optional[datetime]:
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value
    return None


def _parse_start_date(value) -> Optional[date]:
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.strptime(text[:8], '%Y%m%d').date()
    except ValueError:
        return None


def _as_mapping(event: Any) -> Mapping[str, Any]:
    if isinstance(event, Mapping):
        return event
    if event is None:
        return {}
    try:
        data = vars(event)
    except TypeError:
        data = {}
    if data:
        return data
    # Slotted objects and properties.
    names = list(CATEGORY_FIELD_ALIASES) + ['dtstart_date', 'summary', 'uid']
    return {name: getattr(event, name) for name in names if hasattr(event, name)}


@dataclass(frozen=True)
class CalendarEvent:
    """The parts of a host event record the injector cares about."""

    categories: Tuple[str, ...] = ()
    start_date: Optional[date] = None
    # Set only for timezone-aware starts.
    start_at: Optional[datetime] = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def category_expression(self) -> str:
        return ', '.join(self.categories)

    def local_start_date(self, tz: tzinfo) -> Optional[date]:
        """Start day as seen in ``tz``; naive values are already local."""
        if self.start_at is not None:
            return self.start_at.astimezone(tz).date()
        return self.start_date

    @classmethod
    def from_host(cls, event: Any) -> 'CalendarEvent':
        data = _as_mapping(event)
        categories: List[str] = []
        for name in CATEGORY_FIELD_ALIASES:
            value = data.get(name)
            if not value:
                continue
            categories = split_category_expression(value)
            if categories:
                break
        return cls(
            categories=tuple(categories),
            start_date=_parse_start_date(data.get('dtstart_date')),
            start_at=_aware_start(data.get('dtstart_date')),
            raw=data,
        )
