"""
SDK for stray_match.

Provides the usage-recording wrapper around the vision model.
"""

from .openai_client import GuardedVisionClient

__all__ = ["GuardedVisionClient"]
