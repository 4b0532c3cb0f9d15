"""Routes package for FastAPI endpoints.

This package contains all API route modules for the survey intake server.
"""

from survey_intake.routes import health, uploads

__all__ = ["health", "uploads"]
