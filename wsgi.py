"""
WSGI Entry Point for the Calendar Enhanced Application

This module serves as the entry point for WSGI servers (like Gunicorn)
to run the Flask application in production environments.
"""

import os
import sys

# Load .env ONLY for local development. In production, environment
# variables must be provided by the platform.
if os.environ.get('FLASK_ENV', '').lower() != 'production' and os.environ.get('FLASK_CONFIG', '').lower() != 'production':
    from dotenv import load_dotenv

    load_dotenv(override=False)

from calendar_enhanced import create_app

config_name = (os.getenv('FLASK_CONFIG') or os.getenv('FLASK_ENV') or 'development').lower()

print(f'🚀 Initializing Flask application with config: {config_name}', file=sys.stderr)

if config_name == 'production':
    required_vars = {
        'SECRET_KEY': 'Required for session encryption and CSRF protection',
        'DATABASE_URL': 'Required for the settings database',
        'ADMIN_PASSWORD': 'Required for the admin settings screen',
    }
    missing_vars = [
        f"  ❌ {var_name}: {description}"
        for var_name, description in required_vars.items()
        if not os.getenv(var_name)
    ]
    if missing_vars:
        print(
            "\n" + "=" * 70 + "\n"
            "❌ DEPLOYMENT FAILED: Missing required environment variables\n"
            + "=" * 70 + "\n\n"
            + "\n".join(missing_vars)
            + "\n" + "=" * 70 + "\n",
            file=sys.stderr,
        )
        raise RuntimeError('Missing required environment variables in production')
    print('✓ All required environment variables present', file=sys.stderr)

try:
    app = create_app(config_name)
    print('✓ Flask application created successfully', file=sys.stderr)
except Exception as exc:
    print(f'\n{"=" * 70}', file=sys.stderr)
    print('❌ FATAL: Application initialization failed', file=sys.stderr)
    print(f'\nError: {exc}', file=sys.stderr)
    print('\nCommon causes:', file=sys.stderr)
    print('  1. Database connection failure (check DATABASE_URL)', file=sys.stderr)
    print('  2. Missing settings table (run: flask init-db)', file=sys.stderr)
    print('  3. Invalid environment variable values', file=sys.stderr)
    print(f'\n{"=" * 70}\n', file=sys.stderr)
    raise
