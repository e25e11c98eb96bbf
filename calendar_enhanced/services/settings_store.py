"""Key-value settings persistence.

The mapping table, the general fallback and the data version are plain
JSON values under fixed keys; nothing else about storage is assumed.
Reads never raise into rendering: a failing database read is logged, the
session is rolled back and the default is returned.
"""

from __future__ import annotations

import copy
from threading import RLock
from typing import Any, Dict

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from calendar_enhanced.extensions import db
from calendar_enhanced.models import Setting

EXTENSION_KEY = 'calendar_enhanced.settings'


class SettingsStore:
    """Interface: ``get`` / ``set`` / ``delete`` on JSON values."""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError


class MemorySettingsStore(SettingsStore):
    """Process-local store. Values are deep-copied in and out so callers
    cannot mutate what is "persisted"."""

    def __init__(self, initial: Dict[str, Any] | None = None):
        self._data: Dict[str, Any] = copy.deepcopy(dict(initial or {}))
        self._lock = RLock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> bool:
        with self._lock:
            self._data[key] = copy.deepcopy(value)
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None


class DatabaseSettingsStore(SettingsStore):
    """`Setting` rows through Flask-SQLAlchemy. Needs an app context."""

    def get(self, key: str, default: Any = None) -> Any:
        try:
            row = db.session.get(Setting, key)
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error('Settings read failed for %s: %s', key, exc, exc_info=True)
            return default
        if row is None:
            return default
        return copy.deepcopy(row.value)

    def set(self, key: str, value: Any) -> bool:
        try:
            row = db.session.get(Setting, key)
            if row is None:
                row = Setting(key=key)
                db.session.add(row)
            # New object so the JSON column is always flagged dirty.
            row.value = copy.deepcopy(value)
            db.session.commit()
            return True
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error('Settings write failed for %s: %s', key, exc, exc_info=True)
            return False

    def delete(self, key: str) -> bool:
        try:
            row = db.session.get(Setting, key)
            if row is None:
                return False
            db.session.delete(row)
            db.session.commit()
            return True
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error('Settings delete failed for %s: %s', key, exc, exc_info=True)
            return False


def init_settings_store(app) -> SettingsStore:
    backend = (app.config.get('SETTINGS_BACKEND') or 'database').lower()
    if backend == 'memory':
        store: SettingsStore = MemorySettingsStore()
    elif backend == 'database':
        store = DatabaseSettingsStore()
    else:
        raise RuntimeError(f'Unknown SETTINGS_BACKEND: {backend!r}')
    app.extensions[EXTENSION_KEY] = store
    return store


def get_settings_store() -> SettingsStore:
    return current_app.extensions[EXTENSION_KEY]
