"""Server-side injection of category icons and colors into calendar markup.

`EventDisplay` holds no per-event state: every callback resolves the event
against the current snapshot and returns new markup, so it is safe to call
once per rendered event.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from markupsafe import Markup

from calendar_enhanced.domain.categories import CalendarEvent
from calendar_enhanced.domain.colors import hex_to_rgba
from calendar_enhanced.services.appearance import (
    CATEGORY_IMAGE_CLASS,
    EVENT_IMAGE_CLASS,
    EVENT_WRAPPER_CLASS,
    AppearanceService,
    image_tag,
)

logger = logging.getLogger(__name__)

EVENT_ICON_SIZE = 'thumbnail'
LEGEND_OPACITY = 0.15

_LOCATION_DIV = '<div class="location">'
_HTML_CLASS_RE = re.compile(r'[^A-Za-z0-9_-]')


def _ngettext(singular: str, plural: str, n: int) -> str:
    return singular if n == 1 else plural


def sanitize_html_class(value: str) -> str:
    return _HTML_CLASS_RE.sub('', value or '')


def _is_event_record(event: Any) -> bool:
    if isinstance(event, Mapping):
        return True
    if event is None or isinstance(event, (str, bytes, int, float, bool, list, tuple)):
        return False
    return hasattr(event, '__dict__') or hasattr(event, '__slots__')


class EventDisplay:

    def __init__(
        self,
        appearance: AppearanceService,
        *,
        timezone: str = 'UTC',
        show_countdown: Optional[Callable[[], bool]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.appearance = appearance
        try:
            self.tz = ZoneInfo(timezone or 'UTC')
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning('Unknown CALENDAR_TIMEZONE %r, using UTC', timezone)
            self.tz = ZoneInfo('UTC')
        self._show_countdown = show_countdown or appearance.mapper.show_countdown_subline
        self._clock = clock or (lambda: datetime.now(self.tz))

    def today(self) -> date:
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(self.tz)
        return now.date()

    def event_subtitle_text(self, event: CalendarEvent) -> str:
        """Countdown line: '' for past events, 'Takes place today', 'In N days'."""
        start = event.local_start_date(self.tz)
        if start is None:
            return ''
        days = (start - self.today()).days
        if days < 0:
            return ''
        if days == 0:
            return 'Takes place today'
        return _ngettext('In %d day', 'In %d days', days) % days

    @staticmethod
    def _label_category(event: CalendarEvent, matched: Optional[str]) -> str:
        if matched:
            return matched
        return event.categories[0] if event.categories else ''

    def filter_event_label_html(self, title_content: str, args: Mapping[str, Any], event: Any, classes: Optional[Sequence[str]] = None) -> str:
        """Wrap the rendered title with an optional icon and countdown line.

        ``title_content`` is the host's already-rendered fragment and is
        passed through untouched. With neither icon nor subtitle the
        fragment comes back unmodified, without a wrapper.
        """
        if not _is_event_record(event):
            return title_content

        record = CalendarEvent.from_host(event)
        resolved = self.appearance.resolve(record.categories, EVENT_ICON_SIZE)

        image_html = Markup('')
        if resolved.image_url:
            category = self._label_category(record, resolved.matched_category)
            image_html = image_tag(resolved.image_url, {
                'alt': f'Icon for category: {category}',
                'class': EVENT_IMAGE_CLASS,
            })

        subtitle_html = Markup('')
        if self._show_countdown():
            subtitle = self.event_subtitle_text(record)
            if subtitle:
                subtitle_html = Markup('<span class="ics-enhanced-event-subtitle">%s</span>') % subtitle

        if not image_html and not subtitle_html:
            return title_content

        media_html = Markup('<span class="ics-enhanced-event-media">%s</span>') % image_html if image_html else Markup('')
        # title_content may carry the host's own links/spans; keep it as-is.
        return (
            f'<span class="{EVENT_WRAPPER_CLASS}">'
            f'{media_html}'
            '<span class="ics-enhanced-event-text">'
            f'<span class="ics-enhanced-event-title">{title_content}</span>'
            f'{subtitle_html}'
            '</span>'
            '</span>'
        )

    def filter_event_item(self, event_item: Mapping[str, Any], event: Any, args: Mapping[str, Any]) -> Dict[str, Any]:
        """Add ``category_image_url``, ``category_image_html`` and ``category``."""
        record = CalendarEvent.from_host(event)
        full = self.appearance.resolve(record.categories, 'full')
        thumb = self.appearance.resolve(record.categories, EVENT_ICON_SIZE)
        category = self._label_category(record, full.matched_category)

        enriched = dict(event_item)
        enriched['category_image_url'] = full.image_url or ''
        enriched['category_image_html'] = (
            image_tag(thumb.image_url, {'alt': f'Icon for category: {category}', 'class': EVENT_IMAGE_CLASS})
            if thumb.image_url else Markup('')
        )
        enriched['category'] = category
        return enriched

    def render_color_legend(self, view: str, args: Mapping[str, Any], ics_data: Any) -> Markup:
        """Legend of every colored category, in admin table order."""
        snapshot = self.appearance.snapshot(EVENT_ICON_SIZE)
        if not snapshot.colors:
            return Markup('')

        items = []
        for category, color in snapshot.colors.items():
            style = f'border-color: {color};'
            background = hex_to_rgba(color, LEGEND_OPACITY)
            if background:
                style += f' background-color: {background};'
            icon_url = snapshot.image_for(category)
            icon_html = image_tag(icon_url, {
                'alt': f'Icon for category: {category}',
                'class': 'ics-enhanced-legend-icon',
            }) if icon_url else Markup('')
            items.append(
                Markup(
                    '<li class="ics-enhanced-legend-item">'
                    '<span class="ics-enhanced-legend-color" style="%s">%s</span>'
                    '<span class="ics-enhanced-legend-label">%s</span>'
                    '</li>'
                ) % (style, icon_html, category)
            )

        return (
            Markup('<div class="ics-enhanced-color-legend">'
                   '<span class="ics-enhanced-legend-title">Legend</span>'
                   '<ul class="ics-enhanced-legend-list">')
            + Markup('').join(items)
            + Markup('</ul></div>')
        )

    def filter_event_description_location_prefix(self, descloc_content: str, args: Mapping[str, Any], event: Any, classes: Any = None, has_desc: bool = False) -> str:
        prefix = '<span class="ics-enhanced-location-prefix">Location: </span>'
        return descloc_content.replace(_LOCATION_DIV, _LOCATION_DIV + prefix)

    def shortcode_category_image(self, atts: Mapping[str, Any]) -> Markup:
        """``category`` / ``size`` / ``class`` / ``alt`` → icon markup."""
        category = str(atts.get('category') or '').strip()
        if not category:
            return Markup('')
        size = str(atts.get('size') or 'full').strip() or 'full'
        extra_class = sanitize_html_class(str(atts.get('class') or ''))
        attrs: Dict[str, Any] = {
            'class': f'{CATEGORY_IMAGE_CLASS} ics-enhanced-shortcode-image' + (f' {extra_class}' if extra_class else ''),
        }
        alt = str(atts.get('alt') or '').strip()
        if alt:
            attrs['alt'] = alt
        return self.appearance.category_image_html(category, size, attrs)
