"""
Root pytest configuration for the Django project.

Only points pytest-django at the settings module. Test overrides and
marker assignment live in app/conftest.py.
"""

import os

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
