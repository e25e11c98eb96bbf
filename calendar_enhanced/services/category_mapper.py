"""Category mapping store.

Owns the category → {image_ref, color} table, the general fallback image
and the stored data version. The admin form replaces the whole table at
once; concurrent saves are not arbitrated (last save wins).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from calendar_enhanced.domain.colors import sanitize_color
from calendar_enhanced.domain.mapping import (
    DATA_VERSION,
    MappingEntry,
    MappingInput,
    MappingTable,
    is_legacy_value,
    normalize_image_ref,
    sanitize_mappings,
)
from calendar_enhanced.services.settings_store import SettingsStore

logger = logging.getLogger(__name__)

OPTION_MAPPINGS = 'category_mappings'
OPTION_GENERAL_FALLBACK = 'general_fallback'
OPTION_DATA_VERSION = 'data_version'
OPTION_SHOW_COUNTDOWN_SUBLINE = 'show_countdown_subline'


@dataclass(frozen=True)
class SaveResult:
    """Outcome of a whole-table save; truthy when the table was persisted."""

    saved: bool
    dropped: int = 0

    def __bool__(self) -> bool:
        return self.saved


class CategoryMapper:

    def __init__(self, store: SettingsStore):
        self.store = store
        self._listeners: List[Callable[[], None]] = []
        self._upgrade_checked = False

    def on_change(self, callback: Callable[[], None]) -> None:
        """Register ``callback`` to run after every successful save."""
        self._listeners.append(callback)

    def _changed(self) -> None:
        for callback in self._listeners:
            callback()

    # -- mappings --------------------------------------------------------

    def get_mappings(self) -> MappingTable:
        """Current table, normalized on every read.

        Legacy bare references come back as ``{image_ref, color: ''}`` even
        if `maybe_upgrade_data` has never run.
        """
        if not self._upgrade_checked:
            self._upgrade_checked = True
            self.maybe_upgrade_data()
        return MappingTable.from_stored(self.store.get(OPTION_MAPPINGS, {}))

    def get_image_mappings(self) -> Dict[str, str]:
        return self.get_mappings().image_refs()

    def get_color_mappings(self) -> Dict[str, str]:
        return self.get_mappings().colors()

    def save_mappings(self, rows: MappingInput) -> SaveResult:
        """Sanitize and persist a whole table.

        Rows with an empty category or with neither image nor color are
        dropped and counted in the result; the rest is saved.
        """
        table, dropped = sanitize_mappings(rows)
        if dropped:
            logger.info('Dropped %d invalid category mapping row(s) on save', dropped)
        saved = self.store.set(OPTION_MAPPINGS, table.to_stored())
        if saved:
            self.store.set(OPTION_DATA_VERSION, DATA_VERSION)
            self._changed()
        return SaveResult(saved=bool(saved), dropped=dropped)

    def add_mapping(self, category: str, image_ref='', color: str = '') -> bool:
        category = (category or '').strip()
        ref = normalize_image_ref(image_ref)
        color = sanitize_color(color or '')
        if not category or (not ref and not color):
            return False
        table = self.get_mappings()
        table.set(MappingEntry(category=category, image_ref=ref, color=color))
        return bool(self.save_mappings(table))

    def remove_mapping(self, category: str) -> bool:
        table = self.get_mappings()
        if not table.remove(category or ''):
            return False
        return bool(self.save_mappings(table))

    def get_image_for_category(self, category: str) -> Optional[str]:
        entry = self.get_mappings().get(category)
        return entry.image_ref if entry and entry.image_ref else None

    def get_color_for_category(self, category: str) -> str:
        entry = self.get_mappings().get(category)
        return entry.color if entry else ''

    def has_mapping(self, category: str) -> bool:
        entry = self.get_mappings().get(category)
        return bool(entry and not entry.is_empty)

    # -- general fallback ------------------------------------------------

    def get_general_fallback(self) -> str:
        return normalize_image_ref(self.store.get(OPTION_GENERAL_FALLBACK, ''))

    def save_general_fallback(self, image_ref) -> bool:
        saved = self.store.set(OPTION_GENERAL_FALLBACK, normalize_image_ref(image_ref))
        if saved:
            self._changed()
        return saved

    # -- display options -------------------------------------------------

    def show_countdown_subline(self) -> bool:
        return bool(self.store.get(OPTION_SHOW_COUNTDOWN_SUBLINE, True))

    def save_show_countdown_subline(self, enabled: bool) -> bool:
        saved = self.store.set(OPTION_SHOW_COUNTDOWN_SUBLINE, bool(enabled))
        if saved:
            self._changed()
        return saved

    # -- stored format ---------------------------------------------------

    def get_data_version(self) -> int:
        try:
            return int(self.store.get(OPTION_DATA_VERSION, 1) or 1)
        except (TypeError, ValueError):
            return 1

    def maybe_upgrade_data(self) -> bool:
        """Rewrite version-1 (bare reference) mappings in the structured shape.

        Returns True when something was written. Reads do not depend on
        this having run.
        """
        if self.get_data_version() >= DATA_VERSION:
            return False
        raw = self.store.get(OPTION_MAPPINGS, {})
        if isinstance(raw, dict) and any(is_legacy_value(v) for v in raw.values()):
            table = MappingTable.from_stored(raw)
            if not self.store.set(OPTION_MAPPINGS, table.to_stored()):
                return False
            logger.info('Upgraded %d category mapping(s) to data version %d', len(table), DATA_VERSION)
        self.store.set(OPTION_DATA_VERSION, DATA_VERSION)
        return True
