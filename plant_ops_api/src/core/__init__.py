"""
Core application utilities for settings, logging, security and FastAPI dependencies.

This package provides:
- Application-level settings (separate from DB settings)
- Structured logging with request correlation ids
- Dependency helpers (DB session, current user, role gating)
"""
