"""Canonical API version constant.

Kept apart from ``main.py`` so the middleware and health check can
report it without importing the application factory.
"""

API_VERSION = "0.1.0"
