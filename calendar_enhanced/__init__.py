"""
Flask Application Factory

Builds the application around the category appearance services: the
settings store, the mapping store, the appearance (snapshot) service, the
render-time display hooks and the optional server-side DOM pass.
"""

import json
import os
from typing import Any, Mapping, Optional, Union

from flask import Flask, render_template
from markupsafe import Markup

from calendar_enhanced.config import config
from calendar_enhanced.extensions import csrf, db

MAPPER_KEY = 'calendar_enhanced.mapper'
APPEARANCE_KEY = 'calendar_enhanced.appearance'
DISPLAY_KEY = 'calendar_enhanced.display'
HOOKS_KEY = 'calendar_enhanced.hooks'

# Responses containing any of these get the server-side DOM pass.
_CALENDAR_MARKERS = ('r34ics', 'ics-calendar')


def _safe_log(app, level: str, message: str, *args, **kwargs) -> None:
    """Log without risking startup due to logger misconfiguration."""
    try:
        logger = getattr(app.logger, level)
        logger(message, *args, **kwargs)
    except Exception:
        import sys

        print(f"[{level.upper()}] {message % args if args else message}", file=sys.stderr)


def create_app(config_name: Union[str, Mapping[str, Any], None] = 'default', overrides: Optional[Mapping[str, Any]] = None):
    """
    Application factory function

    Args:
        config_name: Configuration name ('development', 'production',
            'testing') or a mapping of overrides applied on top of the
            default configuration.
        overrides: Extra config values applied last.

    Returns:
        Flask: Configured Flask application instance
    """
    if isinstance(config_name, Mapping):
        overrides = {**config_name, **(overrides or {})}
        config_name = 'default'
    config_name = (config_name or 'default').lower()

    app = Flask(__name__)

    # Instantiate so @property values (ProductionConfig) are evaluated.
    cfg = config.get(config_name) or config['default']
    app.config.from_object(cfg() if isinstance(cfg, type) else cfg)
    if overrides:
        app.config.update(overrides)

    if config_name == 'production':
        if not app.config.get('SECRET_KEY'):
            app.logger.error('Production requires SECRET_KEY to be set via environment variable')
            raise RuntimeError('Missing SECRET_KEY in production')
        if app.config.get('SETTINGS_BACKEND', 'database') == 'database' and not app.config.get('SQLALCHEMY_DATABASE_URI'):
            app.logger.error('Production requires DATABASE_URL (SQLALCHEMY_DATABASE_URI) to be set')
            raise RuntimeError('Missing DATABASE_URL in production')
    elif not app.config.get('SECRET_KEY'):
        app.config['SECRET_KEY'] = os.urandom(32)
        app.logger.warning('SECRET_KEY was missing; generated an ephemeral key for this process.')

    db.init_app(app)
    csrf.init_app(app)

    init_calendar_services(app)

    if config_name != 'production' and app.config.get('SETTINGS_BACKEND', 'database') == 'database':
        _create_tables(app)

    register_blueprints(app)
    register_error_handlers(app)
    register_template_processors(app)
    register_shell_context(app)
    register_request_hooks(app)

    from calendar_enhanced.cli import register_cli_commands
    register_cli_commands(app)

    return app


def _create_tables(app) -> None:
    """Non-destructive: creates the settings table when it is missing."""
    with app.app_context():
        try:
            db.create_all()
            _safe_log(app, 'info', '✓ Settings table present')
        except Exception as exc:
            db.session.rollback()
            _safe_log(app, 'error', '✗ Could not create tables (continuing): %s', exc, exc_info=True)


def init_calendar_services(app) -> None:
    """Wire store → mapper → appearance → display → hooks into app.extensions."""
    from calendar_enhanced.hooks import HookRegistry, register_calendar_hooks
    from calendar_enhanced.services.appearance import AppearanceService
    from calendar_enhanced.services.category_mapper import CategoryMapper
    from calendar_enhanced.services.render_injector import EventDisplay
    from calendar_enhanced.services.settings_store import init_settings_store
    from calendar_enhanced.utils.media import bundled_default_image_url, image_url

    store = init_settings_store(app)
    mapper = CategoryMapper(store)
    appearance = AppearanceService(
        mapper,
        image_url,
        bundled_default_image_url,
        ttl_seconds=app.config.get('CALENDAR_SNAPSHOT_TTL_SECONDS', 30),
        client_settings={
            'border_width': app.config.get('CALENDAR_BORDER_WIDTH', '3px'),
            'background_opacity': app.config.get('CALENDAR_BACKGROUND_OPACITY', 0.15),
            'debug': app.config.get('CALENDAR_CLIENT_DEBUG', False),
        },
    )
    display = EventDisplay(appearance, timezone=app.config.get('CALENDAR_TIMEZONE', 'UTC'))
    hooks = register_calendar_hooks(HookRegistry(), display)

    app.extensions[MAPPER_KEY] = mapper
    app.extensions[APPEARANCE_KEY] = appearance
    app.extensions[DISPLAY_KEY] = display
    app.extensions[HOOKS_KEY] = hooks
    _safe_log(app, 'debug', 'Calendar services initialised (%s settings backend)', app.config.get('SETTINGS_BACKEND'))


def register_blueprints(app):
    """Register Flask blueprints"""
    from calendar_enhanced.routes.admin import admin_bp
    from calendar_enhanced.routes.health import health_bp
    from calendar_enhanced.routes.main import main_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(admin_bp, url_prefix='/admin')
    app.register_blueprint(health_bp)  # No prefix - accessible at /health


def register_error_handlers(app):
    """Register error handlers for common HTTP errors"""

    @app.errorhandler(404)
    def not_found_error(error):
        return render_template('errors/404.html'), 404

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception('Unhandled exception (500): %s', error)
        db.session.rollback()
        return render_template('errors/500.html'), 500

    @app.errorhandler(403)
    def forbidden_error(error):
        return render_template('errors/403.html'), 403


def register_template_processors(app):
    """Register Jinja globals for calendar templates"""

    def category_image(category, size='full', **attrs):
        if 'class_' in attrs:
            attrs['class'] = attrs.pop('class_')
        return app.extensions[APPEARANCE_KEY].category_image_html(category, size, attrs)

    def calendar_enhanced_assets():
        payload = app.extensions[APPEARANCE_KEY].client_payload()
        return Markup(render_template(
            'calendar_enhanced/assets.html',
            payload_json=Markup(json.dumps(payload).replace('</', '<\\/')),
        ))

    def calendar_legend(view='', args=None, ics_data=None):
        return app.extensions[DISPLAY_KEY].render_color_legend(view, args or {}, ics_data)

    app.jinja_env.globals.update(
        category_image=category_image,
        calendar_enhanced_assets=calendar_enhanced_assets,
        calendar_legend=calendar_legend,
    )

    @app.context_processor
    def inject_site_config():
        return {'site_name': app.config.get('SITE_NAME', 'Calendar Enhanced')}


def register_shell_context(app):
    """Register shell context for Flask CLI"""

    @app.shell_context_processor
    def make_shell_context():
        from calendar_enhanced.models import Setting
        return {
            'db': db,
            'Setting': Setting,
            'mapper': app.extensions[MAPPER_KEY],
            'appearance': app.extensions[APPEARANCE_KEY],
            'hooks': app.extensions[HOOKS_KEY],
        }


def register_request_hooks(app):
    """Register request lifecycle hooks"""

    @app.after_request
    def _server_dom_pass(response):
        if not app.config.get('CALENDAR_SERVER_DOM_PASS'):
            return response
        if response.mimetype != 'text/html' or response.direct_passthrough or response.is_streamed:
            return response
        try:
            html = response.get_data(as_text=True)
            if not any(marker in html for marker in _CALENDAR_MARKERS):
                return response
            from calendar_enhanced.services.dom_fallback import apply_dom_fallback

            updated = apply_dom_fallback(html, app.extensions[APPEARANCE_KEY].client_payload())
            if updated != html:
                response.set_data(updated)
        except Exception:
            # The page is still usable without the pass; the browser runtime retries.
            app.logger.error('Server-side DOM pass failed', exc_info=True)
        return response

    @app.teardown_appcontext
    def _cleanup_appcontext(exc):
        """Ensure scoped sessions are removed when the app context ends."""
        try:
            db.session.remove()
        except Exception as remove_exc:
            app.logger.error('Session remove during appcontext teardown failed: %s', remove_exc, exc_info=True)
        return None
