"""
Database Models for Calendar Enhanced

A single key-value table backs every persisted option (category mappings,
general fallback image, data version, countdown toggle).
"""

from datetime import datetime

from calendar_enhanced.extensions import db


class Setting(db.Model):
    """One persisted option. ``value`` holds any JSON-serialisable payload."""

    __tablename__ = 'settings'

    key = db.Column(db.String(120), primary_key=True)
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Setting {self.key}>'
