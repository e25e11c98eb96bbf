"""
Health check endpoints for monitoring the application and its settings store.
"""

from datetime import datetime, timezone
import os

from flask import Blueprint, current_app, jsonify
from sqlalchemy import inspect, text

from calendar_enhanced.extensions import db
from calendar_enhanced.services.settings_store import DatabaseSettingsStore, get_settings_store

health_bp = Blueprint('health', __name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@health_bp.route('/health')
def health_check():
    """
    Lightweight health check for load balancer probes.

    Does NOT touch the database to keep response time low.
    """
    return jsonify({
        'status': 'healthy',
        'timestamp': _now(),
        'service': 'calendar-enhanced',
    }), 200


@health_bp.route('/health/ready')
def readiness_check():
    """
    Readiness check: the settings store is reachable and, for the
    database backend, the settings table exists.
    """
    checks = {
        'application': 'healthy',
        'settings_backend': current_app.config.get('SETTINGS_BACKEND', 'database'),
        'database': 'unknown',
        'timestamp': _now(),
    }
    status_code = 200

    if not isinstance(get_settings_store(), DatabaseSettingsStore):
        checks['database'] = 'not used'
        checks['overall'] = 'healthy'
        return jsonify(checks), status_code

    try:
        db.session.execute(text('SELECT 1'))
        db.session.commit()
        checks['database'] = 'healthy'
    except Exception as exc:
        checks['database'] = 'unhealthy'
        checks['database_error'] = str(exc)
        status_code = 503
        current_app.logger.error('Database health check failed: %s', exc, exc_info=True)
        db.session.rollback()

    if checks['database'] == 'healthy':
        try:
            tables = set(inspect(db.engine).get_table_names())
            if 'settings' in tables:
                checks['schema'] = 'complete'
            else:
                checks['schema'] = 'incomplete'
                checks['missing_tables'] = ['settings']
                status_code = 503
        except Exception as exc:
            checks['schema'] = 'unknown'
            checks['schema_error'] = str(exc)
            current_app.logger.error('Schema health check failed: %s', exc, exc_info=True)

    checks['overall'] = 'healthy' if status_code == 200 else 'unhealthy'
    return jsonify(checks), status_code


@health_bp.route('/health/live')
def liveness_check():
    """Liveness probe: the process is alive."""
    return jsonify({
        'status': 'alive',
        'pid': os.getpid(),
        'timestamp': _now(),
    }), 200
