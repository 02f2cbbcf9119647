"""
commissions/extensions.py

Extension singletons shared by models, services and blueprints.

They are created unbound here and bound to an application in create_app(),
so the commission engine can import `db` without importing the app factory.
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()

# `flask db migrate/upgrade` for schema changes
migrate = Migrate()

# Session login; unauthenticated API calls get a JSON 401 (see create_app)
login_manager = LoginManager()

# Mutating requests carry X-CSRFToken (from GET /auth/csrf-token)
csrf = CSRFProtect()
