"""
Guest Users Module

Walk-in guests identified by mobile number. A guest registers once at the
kiosk and reuses the same record for every ticket they take.

API Endpoints:
- POST /guest-users - Find or create a guest by mobile number
- GET /guest-users/{id} - Get a guest
"""

from .router import router

__all__ = ["router"]
