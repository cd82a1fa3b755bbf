"""
Schemas de las pasarelas.
"""

from paysign.schemas.alipay import (
    AppPayNotification,
    AppPayRequest,
    CommonReply,
    ExtendParams,
    TradeRefundReply,
    TradeRefundRequest,
)
from paysign.schemas.wechat import (
    WXAppPayArgs,
    WXJSAPIPayArgs,
    WXNotifyReply,
    WXNotifyResult,
    WXOrderReply,
    WXOrderRequest,
    WXProductDetail,
    WXProductDetails,
    WXRefundNotifyInfo,
    WXRefundNotifyResult,
)

__all__ = [
    # Alipay
    "AppPayNotification",
    "AppPayRequest",
    "CommonReply",
    "ExtendParams",
    "TradeRefundReply",
    "TradeRefundRequest",
    # WeChat
    "WXAppPayArgs",
    "WXJSAPIPayArgs",
    "WXNotifyReply",
    "WXNotifyResult",
    "WXOrderReply",
    "WXOrderRequest",
    "WXProductDetail",
    "WXProductDetails",
    "WXRefundNotifyInfo",
    "WXRefundNotifyResult",
]
