"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for each domain area. Soft-deleted
rows (record_status = 0) are never returned by list/get helpers.
"""
