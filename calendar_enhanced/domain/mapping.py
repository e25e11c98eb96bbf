"""Category → (image, color) mapping table.

Stored values come in two shapes:

- legacy (data version 1): ``{"Meeting": 42}``: a bare image reference
- structured (data version 2): ``{"Meeting": {"image_ref": "42", "color": "#f00"}}``

`decode_mapping_value` accepts both on every read, so the table is usable
whether or not the one-time upgrade has been written back yet.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from calendar_enhanced.domain.categories import normalize_category
from calendar_enhanced.domain.colors import sanitize_color, sanitize_hex_color

DATA_VERSION = 2


def normalize_image_ref(value: Any) -> str:
    """Opaque image reference as a string; ``''`` means "no image".

    Legacy references were positive integers, so ``0`` / ``"0"`` and
    negative numbers are treated as empty.
    """
    if value is None or isinstance(value, bool):
        return ''
    if isinstance(value, float) and not math.isfinite(value):
        return ''
    if isinstance(value, (int, float)):
        return str(int(value)) if int(value) > 0 else ''
    text = str(value).strip()
    if not text or text == '0':
        return ''
    if text.lstrip('-').isdigit() and int(text) <= 0:
        return ''
    return text


@dataclass(frozen=True)
class MappingEntry:
    category: str
    image_ref: str = ''
    color: str = ''

    @property
    def key(self) -> str:
        return normalize_category(self.category)

    @property
    def has_image(self) -> bool:
        return bool(self.image_ref)

    @property
    def has_color(self) -> bool:
        return bool(self.color)

    @property
    def is_empty(self) -> bool:
        return not self.image_ref and not self.color

    def to_stored(self) -> Dict[str, str]:
        return {'image_ref': self.image_ref, 'color': self.color}


def decode_mapping_value(category: str, value: Any) -> MappingEntry:
    """Decode one stored value, upgrading the legacy bare-reference shape."""
    if isinstance(value, Mapping):
        ref = value.get('image_ref', value.get('image_id'))
        return MappingEntry(
            category=category,
            image_ref=normalize_image_ref(ref),
            color=sanitize_hex_color(value.get('color') or ''),
        )
    return MappingEntry(category=category, image_ref=normalize_image_ref(value), color='')


def is_legacy_value(value: Any) -> bool:
    return not (isinstance(value, Mapping) and 'image_ref' in value)


class MappingTable:
    """Ordered table keyed by normalized category.

    Insertion order is the display order (admin table and legend). Writing a
    category whose normalized key already exists replaces that entry in
    place: the slot of the first write, the value and casing of the last.
    """

    def __init__(self, entries: Iterable[MappingEntry] = ()):
        self._entries: Dict[str, MappingEntry] = {}
        for entry in entries:
            self.set(entry)

    def set(self, entry: MappingEntry) -> None:
        self._entries[entry.key] = entry

    def remove(self, category: str) -> bool:
        return self._entries.pop(normalize_category(category), None) is not None

    def get(self, category: str) -> Optional[MappingEntry]:
        """Exact category first, then the case/whitespace-insensitive key."""
        if category is None:
            return None
        for entry in self._entries.values():
            if entry.category == category:
                return entry
        return self._entries.get(normalize_category(category))

    def __contains__(self, category: object) -> bool:
        return isinstance(category, str) and self.get(category) is not None

    def __iter__(self) -> Iterator[MappingEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MappingTable):
            return NotImplemented
        return list(self) == list(other)

    def __repr__(self) -> str:
        return f'MappingTable({list(self)!r})'

    def entries(self) -> List[MappingEntry]:
        return list(self._entries.values())

    def image_refs(self) -> Dict[str, str]:
        return {e.category: e.image_ref for e in self._entries.values() if e.image_ref}

    def colors(self) -> Dict[str, str]:
        return {e.category: e.color for e in self._entries.values() if e.color}

    def to_stored(self) -> Dict[str, Dict[str, str]]:
        return {e.category: e.to_stored() for e in self._entries.values()}

    @classmethod
    def from_stored(cls, raw: Any) -> 'MappingTable':
        """Read the stored option; junk yields an empty table."""
        if not isinstance(raw, Mapping):
            return cls()
        table = cls()
        for category, value in raw.items():
            category = str(category).strip()
            if not category:
                continue
            entry = decode_mapping_value(category, value)
            if not entry.is_empty:
                table.set(entry)
        return table


MappingInput = Union[MappingTable, Mapping[str, Any], Iterable[MappingEntry], Iterable[Tuple[str, Any]]]


def _iter_input(rows: MappingInput) -> Iterator[Tuple[str, Any]]:
    if isinstance(rows, MappingTable):
        for entry in rows:
            yield entry.category, entry.to_stored()
        return
    if isinstance(rows, Mapping):
        yield from rows.items()
        return
    for row in rows:
        if isinstance(row, MappingEntry):
            yield row.category, row.to_stored()
        else:
            category, value = row
            yield category, value


def sanitize_mappings(rows: MappingInput) -> Tuple[MappingTable, int]:
    """Validate a whole-table submission.

    Returns the sanitized table and the number of rows dropped (empty
    category, or neither image nor color). Bad rows never fail the rest.
    """
    table = MappingTable()
    dropped = 0
    for category, value in _iter_input(rows):
        category = '' if category is None else str(category).strip()
        if isinstance(value, Mapping):
            ref = normalize_image_ref(value.get('image_ref', value.get('image_id')))
            color = sanitize_color(value.get('color') or '')
        else:
            ref = normalize_image_ref(value)
            color = ''
        if not category or (not ref and not color):
            dropped += 1
            continue
        table.set(MappingEntry(category=category, image_ref=ref, color=color))
    return table, dropped
