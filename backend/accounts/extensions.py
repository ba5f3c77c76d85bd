"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy, marshmallow and the rate limiter as module-level
objects so they can be imported anywhere without creating circular
dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in accounts/__init__.py.
    3. Import `db`, `ma` or `limiter` from here wherever needed.

    from backend.accounts.extensions import db, limiter
"""

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

from backend.accounts.throttle import default_limit

db = SQLAlchemy()

# Request schemas (accounts/schemas/) inherit from marshmallow.Schema directly,
# NOT from ma.Schema: ma.Schema requires an active Flask application context
# and the unit tests instantiate schemas without one.
ma = Marshmallow()

# Storage backend comes from RATELIMIT_STORAGE_URI in config.
limiter = Limiter(key_func=get_remote_address, default_limits=[default_limit])
