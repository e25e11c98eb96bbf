"""Category expression → icon URL + accent color.

The same rules run in three places: the server-side render hooks, the
server-side DOM pass and the browser runtime. All three work from a
`CategorySnapshot`, which is exactly what the browser payload carries, so
a page that is partly rendered server-side and corrected in the browser
never disagrees with itself.

Image and color are resolved independently:

- image: first candidate with an image, then the general fallback, then the
  bundled default (never empty);
- color: the color of the first candidate with *any* mapping, possibly none.

For ``"A,B"`` where A only has a color and B only has an image, the result
is A's color, B's image and ``matched_category == "A"``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from calendar_enhanced.domain.categories import normalize_category, split_category_expression
from calendar_enhanced.domain.colors import sanitize_hex_color
from calendar_enhanced.domain.mapping import MappingTable, normalize_image_ref

ImageUrlResolver = Callable[[str, str], str]


class ImageTier(str, enum.Enum):
    SPECIFIC = 'specific'
    GENERAL_FALLBACK = 'general_fallback'
    BUNDLED_DEFAULT = 'bundled_default'
    NONE = 'none'


@dataclass(frozen=True)
class ResolvedAppearance:
    image_url: Optional[str] = None
    color: Optional[str] = None
    matched_category: Optional[str] = None
    image_category: Optional[str] = None
    image_tier: ImageTier = ImageTier.NONE


def _lookup(mapping: Mapping[str, str], category: str) -> str:
    """Exact key first, then trim/lower-case comparison."""
    value = mapping.get(category)
    if value:
        return value
    wanted = normalize_category(category)
    if not wanted:
        return ''
    for key, candidate in mapping.items():
        if normalize_category(key) == wanted and candidate:
            return candidate
    return ''


@dataclass(frozen=True)
class CategorySnapshot:
    """Immutable, client-visible view of the mapping table for one size."""

    images: Mapping[str, str] = field(default_factory=dict)
    colors: Mapping[str, str] = field(default_factory=dict)
    mapped: Tuple[str, ...] = ()
    fallback_image_url: str = ''
    default_image_url: str = ''
    general_fallback_url: str = ''

    def image_for(self, category: str) -> str:
        return _lookup(self.images, category) if category else ''

    def color_for(self, category: str) -> str:
        return _lookup(self.colors, category) if category else ''

    def has_mapping(self, category: str) -> bool:
        if not category:
            return False
        wanted = normalize_category(category)
        return any(normalize_category(name) == wanted for name in self.mapped)

    def to_payload(self) -> Dict[str, Any]:
        return {
            'fallbackImage': self.fallback_image_url,
            'defaultImage': self.default_image_url,
            'categoryImages': dict(self.images),
            'categoryColors': dict(self.colors),
            'mappedCategories': list(self.mapped),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> 'CategorySnapshot':
        images = payload.get('categoryImages') or {}
        colors = payload.get('categoryColors') or {}
        if not isinstance(images, Mapping):
            images = {}
        if not isinstance(colors, Mapping):
            colors = {}
        mapped = payload.get('mappedCategories')
        if not isinstance(mapped, (list, tuple)):
            # Older payloads: anything with an image or a color is mapped.
            mapped = list(dict.fromkeys(list(images) + list(colors)))
        default = str(payload.get('defaultImage') or '')
        fallback = str(payload.get('fallbackImage') or default)
        default = default or fallback
        return cls(
            images={str(k): str(v) for k, v in images.items() if v},
            colors={str(k): str(v) for k, v in colors.items() if v},
            mapped=tuple(str(name) for name in mapped),
            fallback_image_url=fallback,
            default_image_url=default,
            general_fallback_url=fallback if fallback != default else '',
        )


def build_snapshot(
    table: MappingTable,
    fallback_ref: Any,
    *,
    image_url: ImageUrlResolver,
    default_image_url: str,
    size: str = 'full',
) -> CategorySnapshot:
    """Resolve every stored reference once for ``size``.

    A reference that resolves to an empty URL (deleted asset) is left out of
    ``images``; the category still counts as mapped when it has a stored
    reference or a color.
    """

    def _url(ref: str) -> str:
        if not ref:
            return ''
        try:
            return image_url(ref, size) or ''
        except Exception:
            return ''

    images: Dict[str, str] = {}
    colors: Dict[str, str] = {}
    mapped = []
    for entry in table:
        if entry.is_empty:
            continue
        mapped.append(entry.category)
        url = _url(entry.image_ref)
        if url:
            images[entry.category] = url
        color = sanitize_hex_color(entry.color)
        if color:
            colors[entry.category] = color

    general_url = _url(normalize_image_ref(fallback_ref))
    return CategorySnapshot(
        images=images,
        colors=colors,
        mapped=tuple(mapped),
        fallback_image_url=general_url or default_image_url,
        default_image_url=default_image_url,
        general_fallback_url=general_url,
    )


def first_mapped_category(candidates: Sequence[str], snapshot: CategorySnapshot) -> Optional[str]:
    for candidate in candidates:
        if snapshot.has_mapping(candidate):
            return candidate
    return None


def resolve_image(candidates: Iterable[str], snapshot: CategorySnapshot) -> Tuple[str, Optional[str], ImageTier]:
    """Three-tier image chain: specific → general fallback → bundled default."""
    for candidate in candidates:
        url = snapshot.image_for(candidate)
        if url:
            return url, candidate, ImageTier.SPECIFIC
    if snapshot.general_fallback_url:
        return snapshot.general_fallback_url, None, ImageTier.GENERAL_FALLBACK
    if snapshot.default_image_url:
        return snapshot.default_image_url, None, ImageTier.BUNDLED_DEFAULT
    if snapshot.fallback_image_url:
        return snapshot.fallback_image_url, None, ImageTier.GENERAL_FALLBACK
    return '', None, ImageTier.NONE


def resolve_appearance(raw, snapshot: CategorySnapshot) -> ResolvedAppearance:
    candidates = split_category_expression(raw)
    image_url, image_category, tier = resolve_image(candidates, snapshot)

    matched = first_mapped_category(candidates, snapshot)
    color = snapshot.color_for(matched) if matched else ''

    return ResolvedAppearance(
        image_url=image_url or None,
        color=color or None,
        matched_category=matched,
        image_category=image_category,
        image_tier=tier,
    )


def resolve_category_expression(
    raw,
    table: MappingTable,
    fallback_ref: Any = '',
    *,
    image_url: ImageUrlResolver,
    default_image_url: str,
    size: str = 'full',
) -> ResolvedAppearance:
    """One-shot resolution straight from a table; see `resolve_appearance`."""
    snapshot = build_snapshot(
        table,
        fallback_ref,
        image_url=image_url,
        default_image_url=default_image_url,
        size=size,
    )
    return resolve_appearance(raw, snapshot)
