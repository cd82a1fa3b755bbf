"""
Endpoints para notificaciones asíncronas de pasarelas.
"""

from typing import Callable

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from paysign.adapters.base import (
    NotificationReply,
    NotifyHandler,
    NotifyResult,
    PayPlat,
    RefundNotifyHandler,
    RefundNotifyResult,
)
from paysign.adapters.factory import resolve_gateway
from paysign.services import NotificationService
from paysign.utils.exceptions import ConfigurationError, ProviderNotFoundError
from paysign.utils.idempotency import (
    IdempotencyManager,
    InMemoryIdempotencyManager,
    get_idempotency_manager_with_fallback,
)


logger = structlog.get_logger(__name__)

router = APIRouter()


# ============================================
# Callbacks de negocio (sobrescribir con dependency_overrides)
# ============================================

async def _log_payment(result: NotifyResult) -> None:
    logger.info(
        "Payment notification accepted",
        plat=result.plat.value,
        merchant_order_no=result.merchant_order_no,
        transaction_id=result.transaction_id,
        total_amount=result.total_amount,
        currency=result.currency,
    )


async def _log_refund(result: RefundNotifyResult) -> None:
    logger.info(
        "Refund notification accepted",
        plat=result.plat.value,
        merchant_order_no=result.merchant_order_no,
        merchant_refund_no=result.merchant_refund_no,
        refund_amount=result.refund_amount,
        is_success=result.is_success,
    )


def get_notify_handler() -> NotifyHandler:
    """Dependency con el callback de pagos completados."""
    return _log_payment


def get_refund_notify_handler() -> RefundNotifyHandler:
    """Dependency con el callback de reembolsos."""
    return _log_refund


# ============================================
# Servicios por plataforma
# ============================================

async def get_idempotency() -> IdempotencyManager | InMemoryIdempotencyManager:
    """Dependency para obtener el gestor de idempotencia."""
    return await get_idempotency_manager_with_fallback()


def _service_dependency(plat: PayPlat) -> Callable:
    async def dependency(
        idempotency: IdempotencyManager | InMemoryIdempotencyManager = Depends(get_idempotency),
    ) -> NotificationService:
        try:
            gateway = resolve_gateway(plat)
        except ProviderNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
        except ConfigurationError as e:
            logger.error("Gateway not configured", plat=plat.value, error=e.message)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Gateway {plat.value} not configured",
            )
        return NotificationService(gateway, idempotency)

    return dependency


get_alipay_service = _service_dependency(PayPlat.ALIPAY)
get_wechat_service = _service_dependency(PayPlat.WECHAT)


def _to_response(reply: NotificationReply) -> Response:
    return Response(content=reply.body, media_type=reply.media_type)


# ============================================
# Endpoints
# ============================================

@router.post(
    "/alipay",
    status_code=status.HTTP_200_OK,
    summary="Notificación de Alipay",
    description="""
    Recibe la notificación asíncrona de pago de Alipay (form-urlencoded).

    - Verifica la firma RSA2 con la clave pública de la pasarela
    - Ignora reenvíos ya procesados
    - Responde `success` o `fail` en texto plano; con `fail` Alipay reintenta
    """,
)
async def alipay_notification(
    request: Request,
    service: NotificationService = Depends(get_alipay_service),
    handler: NotifyHandler = Depends(get_notify_handler),
):
    """Procesa una notificación de Alipay."""
    payload = await request.body()
    reply = await service.process_payment_notification(payload, handler)
    return _to_response(reply)


@router.post(
    "/wechat",
    status_code=status.HTTP_200_OK,
    summary="Notificación de WeChat Pay",
    description="""
    Recibe la notificación asíncrona de pago de WeChat Pay (XML).

    - Verifica la firma MD5 con el secreto compartido
    - Responde `<xml><return_code>SUCCESS|FAIL</return_code>...</xml>`
    """,
)
async def wechat_notification(
    request: Request,
    service: NotificationService = Depends(get_wechat_service),
    handler: NotifyHandler = Depends(get_notify_handler),
):
    """Procesa una notificación de WeChat Pay."""
    payload = await request.body()
    reply = await service.process_payment_notification(payload, handler)
    return _to_response(reply)


@router.post(
    "/wechat/refund",
    status_code=status.HTTP_200_OK,
    summary="Notificación de reembolso de WeChat Pay",
    description="""
    Recibe la notificación de reembolso de WeChat Pay.

    El detalle viaja cifrado en `req_info` (AES-256-ECB con la clave
    derivada del secreto compartido).
    """,
)
async def wechat_refund_notification(
    request: Request,
    service: NotificationService = Depends(get_wechat_service),
    handler: RefundNotifyHandler = Depends(get_refund_notify_handler),
):
    """Procesa una notificación de reembolso de WeChat Pay."""
    payload = await request.body()
    reply = await service.process_refund_notification(payload, handler)
    return _to_response(reply)
