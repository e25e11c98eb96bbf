"""
Main Blueprint - Public routes

Serves the browser runtime configuration for pages that load the script
without the inline payload (e.g. calendars injected by another site).
"""

from flask import Blueprint, current_app, jsonify

main_bp = Blueprint('main', __name__)


@main_bp.route('/calendar-enhanced/config.json')
def client_config():
    appearance = current_app.extensions['calendar_enhanced.appearance']
    response = jsonify(appearance.client_payload())
    response.headers['Cache-Control'] = 'no-cache'
    return response
