"""
HTTP surface: ``POST /match`` and ``POST /analyze``.
"""

from .handlers import ApiResponse, ApiService
from .wsgi import create_app

__all__ = ["ApiResponse", "ApiService", "create_app"]
