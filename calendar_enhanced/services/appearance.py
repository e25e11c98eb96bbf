"""Resolved category appearance for the current mapping table.

Builds `CategorySnapshot`s from the mapping store and the media helpers,
caches them per image size, and renders the icon markup every consumer
(render hooks, legend, template helper) shares.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional

from markupsafe import Markup, escape

from calendar_enhanced.domain.resolver import (
    CategorySnapshot,
    ImageUrlResolver,
    ResolvedAppearance,
    build_snapshot,
    resolve_appearance,
)
from calendar_enhanced.services.category_mapper import CategoryMapper
from calendar_enhanced.utils.ttl_cache import TTLCache

CATEGORY_IMAGE_CLASS = 'ics-enhanced-category-image'
EVENT_IMAGE_CLASS = 'ics-enhanced-event-category-image'
EVENT_WRAPPER_CLASS = 'ics-enhanced-event-wrapper'

DEFAULT_SELECTORS = {
    'eventTitle': '.r34ics .title, .ics-calendar .title, .r34ics_event .title',
    'eventItem': '.r34ics .event, .ics-calendar .event, .r34ics_event',
    'eventDate': '.ics-calendar-date',
    'eventWrapper': '.event[data-categories]',
}


def image_tag(url: str, attrs: Mapping[str, Any]) -> Markup:
    """``<img>`` with every attribute escaped; ``src`` always first."""
    parts = [f'src="{escape(url)}"']
    for name, value in attrs.items():
        if name == 'src' or value is None:
            continue
        parts.append(f'{escape(name)}="{escape(value)}"')
    return Markup(f"<img {' '.join(parts)} />")


class AppearanceService:

    def __init__(
        self,
        mapper: CategoryMapper,
        image_url: ImageUrlResolver,
        default_image_url: Callable[[], str],
        *,
        ttl_seconds: float = 30,
        client_settings: Optional[Dict[str, Any]] = None,
    ):
        self.mapper = mapper
        self._image_url = image_url
        self._default_image_url = default_image_url
        self._cache: TTLCache[str, CategorySnapshot] = TTLCache(ttl_seconds=ttl_seconds)
        self.client_settings = dict(client_settings or {})
        mapper.on_change(self.invalidate)

    def invalidate(self) -> None:
        self._cache.clear()

    def snapshot(self, size: str = 'full') -> CategorySnapshot:
        return self._cache.get_or_set(size, lambda: self._build(size))

    def _build(self, size: str) -> CategorySnapshot:
        return build_snapshot(
            self.mapper.get_mappings(),
            self.mapper.get_general_fallback(),
            image_url=self._image_url,
            default_image_url=self._default_image_url(),
            size=size,
        )

    def resolve(self, raw, size: str = 'full') -> ResolvedAppearance:
        return resolve_appearance(raw, self.snapshot(size))

    def category_image(self, category: str, size: str = 'full') -> str:
        """Image URL through the full fallback chain (never empty when the
        bundled default is configured)."""
        return self.resolve(category or '', size).image_url or ''

    def category_image_html(self, category: str, size: str = 'full', attrs: Optional[Mapping[str, Any]] = None) -> Markup:
        """Self-contained icon markup for ``category`` (manual placement).

        ``attrs`` override the defaults (``alt``, ``class``, ...). Returns
        empty markup when nothing resolves.
        """
        url = self.category_image(category, size)
        if not url:
            return Markup('')
        merged: Dict[str, Any] = {
            'alt': f'Icon for category: {category}',
            'class': CATEGORY_IMAGE_CLASS,
        }
        merged.update(attrs or {})
        return image_tag(url, merged)

    def client_payload(self, size: str = 'thumbnail') -> Dict[str, Any]:
        """Configuration handed to the browser runtime once per page."""
        payload = self.snapshot(size).to_payload()
        payload.update({
            'imageClass': EVENT_IMAGE_CLASS,
            'wrapperClass': EVENT_WRAPPER_CLASS,
            'selectors': dict(self.client_settings.get('selectors') or DEFAULT_SELECTORS),
            'colorSettings': {
                'borderWidth': self.client_settings.get('border_width', '3px'),
                'backgroundOpacity': self.client_settings.get('background_opacity', 0.15),
            },
            'debug': bool(self.client_settings.get('debug', False)),
        })
        return payload
