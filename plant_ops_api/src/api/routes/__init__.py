"""
API route modules.

This package contains subrouters for:
- Auth: first-user registration, login, logout, refresh, and current user
- Users / Roles: administration, role assignment and screen permissions
- Master Data: units, raw material types, raw materials, products and BOMs
- Inventory: raw material stock ledger
- Production: BOM suggestions, issuances, production entries, reconciliations
- Reports: production reconciliation report and export

Routers are included from src.api.main (under the /api/v1 prefix).
"""
