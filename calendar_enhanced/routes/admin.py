"""
Admin Blueprint - Category appearance settings

One screen: the category → (image, color) table, the general fallback
image and the countdown subline toggle. Access is HTTP basic auth against
ADMIN_USERNAME / ADMIN_PASSWORD.
"""

import hmac
from functools import wraps

from flask import Blueprint, Response, current_app, flash, redirect, render_template, request, url_for
from werkzeug.security import check_password_hash

from calendar_enhanced.forms import CategoryMappingsForm
from calendar_enhanced.services.category_mapper import CategoryMapper

admin_bp = Blueprint('admin', __name__)

_HASH_PREFIXES = ('pbkdf2:', 'scrypt:')


def _password_matches(stored: str, given: str) -> bool:
    if stored.startswith(_HASH_PREFIXES):
        return check_password_hash(stored, given)
    return hmac.compare_digest(stored.encode('utf-8'), given.encode('utf-8'))


def _credentials_ok(auth) -> bool:
    username = current_app.config.get('ADMIN_USERNAME') or ''
    password = current_app.config.get('ADMIN_PASSWORD') or ''
    if not auth or not username or not password:
        return False
    if not hmac.compare_digest((auth.username or '').encode('utf-8'), username.encode('utf-8')):
        return False
    return _password_matches(password, auth.password or '')


def admin_required(f):
    """Decorator for routes that require admin credentials"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_app.config.get('ADMIN_PASSWORD'):
            current_app.logger.warning('Admin access attempted but ADMIN_PASSWORD is not configured')
            return render_template('errors/403.html'), 403
        if not _credentials_ok(request.authorization):
            return Response(
                'Administrator login required.',
                401,
                {'WWW-Authenticate': 'Basic realm="Calendar Enhanced"'},
            )
        return f(*args, **kwargs)

    return decorated_function


def _mapper() -> CategoryMapper:
    return current_app.extensions['calendar_enhanced.mapper']


@admin_bp.route('/calendar-enhanced', methods=['GET', 'POST'])
@admin_required
def settings():
    """Edit the category mapping table"""
    mapper = _mapper()
    form = CategoryMappingsForm()

    if form.validate_on_submit():
        # The trailing blank row the form always offers is not a dropped row.
        rows = [e for e in form.entries() if e.category or e.image_ref or e.color]
        result = mapper.save_mappings(rows)
        saved = bool(result)
        saved = mapper.save_general_fallback(form.general_fallback.data) and saved
        saved = mapper.save_show_countdown_subline(form.show_countdown_subline.data) and saved

        if not saved:
            flash('Unable to save settings. Please try again.', 'danger')
            return render_template('admin/settings.html', form=form), 500

        if result.dropped:
            flash(
                f'{result.dropped} row(s) were skipped: a category name and an image or color are required.',
                'info',
            )
        flash('Settings saved.', 'success')
        current_app.logger.info('Category mappings saved (%d rows)', len(rows) - result.dropped)
        return redirect(url_for('admin.settings'))

    if request.method == 'POST':
        flash('Please correct the errors below.', 'danger')
    else:
        form.load(mapper.get_mappings(), mapper.get_general_fallback(), mapper.show_countdown_subline())

    appearance = current_app.extensions['calendar_enhanced.appearance']
    return render_template('admin/settings.html', form=form, snapshot=appearance.snapshot('thumbnail'))
