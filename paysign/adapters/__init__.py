"""
Adapters de pasarelas de pago.
"""

from paysign.adapters.base import (
    GatewayClient,
    NotificationReply,
    NotifyResult,
    OrderRequest,
    PayPlat,
    PaySource,
    ProductDetail,
    RefundNotifyResult,
    RefundRequest,
)
from paysign.adapters.alipay_adapter import AlipayClient
from paysign.adapters.wechat_adapter import WechatClient
from paysign.adapters.factory import build_gateway, get_gateway, register, resolve_gateway

__all__ = [
    "GatewayClient",
    "NotificationReply",
    "NotifyResult",
    "OrderRequest",
    "PayPlat",
    "PaySource",
    "ProductDetail",
    "RefundNotifyResult",
    "RefundRequest",
    "AlipayClient",
    "WechatClient",
    "build_gateway",
    "get_gateway",
    "register",
    "resolve_gateway",
]
