"""
Analytics blueprint package.

This file just exposes the Blueprint object to be imported in commissions.__init__.
The actual routes and logic are in routes.py.
"""

from .routes import analytics_bp  # noqa: F401
