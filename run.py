"""Development server.

Creates the settings table if it is missing (non-destructive), then runs
the Flask development server.
"""

import os

from wsgi import app
from calendar_enhanced.extensions import db


if __name__ == '__main__':
    with app.app_context():
        db.create_all()

    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', 5000))
    app.run(host=host, port=port)
