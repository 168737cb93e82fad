"""
Core modules for stray_match.

This package contains the matching pipeline: rate limiting, candidate
search, pre-filtering, vision analysis and orchestration.
"""
