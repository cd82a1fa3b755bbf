"""
Servicios de negocio.
"""

from paysign.services.notification_service import NotificationService

__all__ = ["NotificationService"]
