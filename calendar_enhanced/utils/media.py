"""Media URL helpers.

Image references in the category table may be either:
- a path relative to the static folder (e.g. ``uploads/icons/meeting.png``)
- a full https URL (cloud storage)

Size hints map to pre-generated variants under ``uploads/variants/`` when
they exist; resizing itself is not done here.
"""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import urlparse

from flask import current_app, has_request_context, url_for

FULL_SIZE = 'full'


def is_absolute_url(value: str | None) -> bool:
    if not value:
        return False
    try:
        parsed = urlparse(value)
    except Exception:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _normalize_rel(value: str) -> str:
    rel = str(value).strip().lstrip('/\\')
    rel = rel.replace('\\', '/')
    if rel.lower().startswith('static/'):
        rel = rel[7:]
    return rel


def _static_file_exists(rel: str) -> bool:
    static_folder = getattr(current_app, 'static_folder', None)
    if not static_folder:
        return False
    static_root = os.path.normpath(static_folder)
    candidate = os.path.normpath(os.path.join(static_root, rel))
    try:
        if os.path.commonpath([static_root, candidate]) != static_root:
            return False
    except ValueError:
        return False
    return os.path.isfile(candidate)


def _static_url(rel: str) -> str:
    # CLI commands and background scans run without a request.
    if has_request_context():
        return url_for('static', filename=rel)
    return f"{current_app.static_url_path}/{rel}"


def variant_relpath(original_rel: str, size: str) -> str:
    p = Path(original_rel)
    filename = f"{p.stem}__{size}{p.suffix}"
    return str(Path("uploads") / "variants" / p.parent.name / filename).replace('\\', '/')


def image_url(ref: str | None, size: str = FULL_SIZE) -> str:
    """URL for an image reference, or ``''`` when the asset is gone.

    An empty result lets the caller move on to the next fallback tier
    instead of rendering a broken image.
    """
    if not ref:
        return ''
    if is_absolute_url(ref):
        return ref

    rel = _normalize_rel(ref)
    if not rel or rel.isdigit():
        return ''

    if size and size != FULL_SIZE:
        variant = variant_relpath(rel, size)
        if _static_file_exists(variant):
            return _static_url(variant)

    if not _static_file_exists(rel):
        return ''
    return _static_url(rel)


def bundled_default_image_url() -> str:
    rel = current_app.config.get('CALENDAR_BUNDLED_DEFAULT_IMAGE', 'images/default-fallback.svg')
    return _static_url(rel)
