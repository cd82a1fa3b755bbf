"""
Servicio de notificaciones asíncronas.
Verifica notificaciones entrantes, deduplica reenvíos y ejecuta el callback
de negocio.
"""

from typing import Any, Awaitable, Callable

import structlog

from paysign.adapters.base import (
    GatewayClient,
    NotificationReply,
    NotifyHandler,
    RefundNotifyHandler,
)
from paysign.utils.exceptions import PaymentGatewayError
from paysign.utils.idempotency import (
    IdempotencyManager,
    InMemoryIdempotencyManager,
    notification_key,
)


logger = structlog.get_logger(__name__)

REPLY_IN_PROGRESS = "notification in progress"


class NotificationService:
    """
    Servicio para procesar notificaciones de pasarelas.

    - Parsea y verifica la firma del cuerpo crudo
    - Descarta reenvíos ya procesados devolviendo la respuesta cacheada
    - Ejecuta el callback de negocio y traduce el resultado a la
      respuesta que la pasarela espera
    """

    def __init__(
        self,
        gateway: GatewayClient,
        idempotency: IdempotencyManager | InMemoryIdempotencyManager,
    ):
        self.gateway = gateway
        self.idempotency = idempotency

    async def process_payment_notification(
        self,
        payload: bytes,
        handler: NotifyHandler,
    ) -> NotificationReply:
        """
        Procesa una notificación de pago.

        Args:
            payload: Cuerpo crudo del request
            handler: Callback de negocio

        Returns:
            Respuesta para la pasarela (fallo = la pasarela reintenta)
        """
        plat = self.gateway.provider_name.value
        try:
            result = self.gateway.parse_notification(payload)
        except PaymentGatewayError as e:
            logger.warning(
                "Notification rejected",
                plat=plat,
                error_code=e.code,
                error=e.message,
            )
            return self.gateway.notification_reply(False, e.message)

        key = notification_key(plat, result.notification_id or result.merchant_order_no)
        return await self._dispatch(key, handler, result)

    async def process_refund_notification(
        self,
        payload: bytes,
        handler: RefundNotifyHandler,
    ) -> NotificationReply:
        """Procesa una notificación de reembolso."""
        plat = self.gateway.provider_name.value
        try:
            result = self.gateway.decrypt_notification(payload)
        except PaymentGatewayError as e:
            logger.warning(
                "Refund notification rejected",
                plat=plat,
                error_code=e.code,
                error=e.message,
            )
            return self.gateway.notification_reply(False, e.message)

        key = notification_key(plat, f"refund:{result.merchant_refund_no or result.refund_id}")
        return await self._dispatch(key, handler, result)

    async def _dispatch(
        self,
        key: str,
        handler: Callable[[Any], Awaitable[None]],
        result: Any,
    ) -> NotificationReply:
        cached = await self.idempotency.get_cached_response(key)
        if cached:
            return NotificationReply(
                body=cached["body"].encode("utf-8"),
                media_type=cached["media_type"],
                success=cached["success"],
            )

        if await self.idempotency.is_processing(key):
            logger.warning("Notification already being processed", notification_key=key)
            return self.gateway.notification_reply(False, REPLY_IN_PROGRESS)

        try:
            try:
                await handler(result)
            except Exception as e:
                logger.error(
                    "Notification handler failed",
                    notification_key=key,
                    error=str(e),
                )
                return self.gateway.notification_reply(False, str(e))

            reply = self.gateway.notification_reply(True)
            await self.idempotency.cache_response(
                key,
                {
                    "body": reply.body.decode("utf-8"),
                    "media_type": reply.media_type,
                    "success": reply.success,
                },
            )
        finally:
            await self.idempotency.release_lock(key)

        logger.info("Notification processed", notification_key=key)
        return reply
