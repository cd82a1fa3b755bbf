"""
Registro de clientes de pasarela.
Implementa el patrón Factory para instanciar adapters desde la configuración.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Callable

import structlog

from paysign.adapters.alipay_adapter import AlipayClient
from paysign.adapters.base import GatewayClient, PayPlat
from paysign.adapters.wechat_adapter import WechatClient
from paysign.config import Settings, get_settings
from paysign.engine.keys import RSAKeyPair
from paysign.utils.exceptions import ConfigurationError, ProviderNotFoundError


logger = structlog.get_logger(__name__)


# Clientes registrados en el proceso
_registry: dict[PayPlat, GatewayClient] = {}


def _build_alipay(settings: Settings) -> AlipayClient:
    if not settings.ALIPAY_APP_ID or not settings.ALIPAY_PRIVATE_KEY:
        raise ConfigurationError("ALIPAY_APP_ID and ALIPAY_PRIVATE_KEY are required")
    keys = RSAKeyPair.from_pem(
        settings.ALIPAY_PRIVATE_KEY,
        settings.ALIPAY_PUBLIC_KEY or None,
    )
    return AlipayClient(
        app_id=settings.ALIPAY_APP_ID,
        partner_id=settings.ALIPAY_PARTNER_ID,
        keys=keys,
        notify_url=settings.ALIPAY_NOTIFY_URL,
        sandbox=settings.ALIPAY_SANDBOX,
    )


def _build_wechat(settings: Settings) -> WechatClient:
    if not settings.WECHAT_APP_ID or not settings.WECHAT_API_KEY:
        raise ConfigurationError("WECHAT_APP_ID and WECHAT_API_KEY are required")
    return WechatClient(
        app_id=settings.WECHAT_APP_ID,
        secret=settings.WECHAT_API_KEY,
        merchant_id=settings.WECHAT_MERCHANT_ID,
        notify_url=settings.WECHAT_NOTIFY_URL,
        fee_type=settings.WECHAT_FEE_TYPE,
        order_timeout=timedelta(minutes=settings.WECHAT_ORDER_TIMEOUT_MINUTES),
        limit_pay=settings.WECHAT_LIMIT_PAY,
    )


# Constructores disponibles por plataforma
BUILDERS: dict[PayPlat, Callable[[Settings], GatewayClient]] = {
    PayPlat.ALIPAY: _build_alipay,
    PayPlat.WECHAT: _build_wechat,
}


def register(plat: PayPlat | str, client: GatewayClient) -> None:
    """Registra (o reemplaza) el cliente de una plataforma."""
    plat = PayPlat(plat)
    _registry[plat] = client
    logger.info("Gateway client registered", plat=plat.value)


def unregister(plat: PayPlat | str) -> None:
    _registry.pop(PayPlat(plat), None)


def get_gateway(plat: PayPlat | str) -> GatewayClient:
    """
    Obtiene el cliente registrado para una plataforma.

    Raises:
        ProviderNotFoundError: Si no hay cliente registrado
    """
    try:
        plat = PayPlat(plat)
    except ValueError:
        raise ProviderNotFoundError(str(plat))

    client = _registry.get(plat)
    if client is None:
        raise ProviderNotFoundError(plat.value)
    return client


@lru_cache()
def build_gateway(plat: PayPlat | str) -> GatewayClient:
    """
    Construye el cliente de una plataforma a partir de los settings.
    La instancia es cacheada para reutilización.

    Raises:
        ProviderNotFoundError: Si la plataforma no está soportada
        ConfigurationError: Si faltan credenciales o claves
    """
    try:
        plat = PayPlat(plat)
    except ValueError:
        raise ProviderNotFoundError(str(plat))

    client = BUILDERS[plat](get_settings())
    logger.info("Gateway client built from settings", plat=plat.value)
    return client


def resolve_gateway(plat: PayPlat | str) -> GatewayClient:
    """Cliente registrado o, si no lo hay, construido desde settings."""
    try:
        return get_gateway(plat)
    except ProviderNotFoundError:
        client = build_gateway(plat)
        register(plat, client)
        return client
