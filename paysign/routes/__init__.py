"""
Routers de la API.
"""

from paysign.routes.notifications import router as notifications_router

__all__ = ["notifications_router"]
