"""
Schemas de WeChat Pay.

Todos los documentos son XML planos; cada registro declara qué campos
participan en la firma MD5.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar

from pydantic import BaseModel, Field

from paysign.engine.mapper import WECHAT_TIME_FORMAT, FieldKind, ParamField


RETURN_SUCCESS = "SUCCESS"
RETURN_FAIL = "FAIL"

# err_code con los que la capa de negocio puede reintentar
TRANSIENT_ERR_CODES = frozenset({"SYSTEMERROR", "BIZERR_NEED_RETRY", "FREQUENCY_LIMITED"})

# err_code_des que reporta un out_trade_no repetido
DOUBLE_SUBMIT_DESC = "201 商户订单号重复"


# ============================================
# Pedido unificado
# ============================================

class WXProductDetail(BaseModel):
    goods_id: str
    wxpay_goods_id: str | None = None
    goods_name: str
    goods_num: int
    price: int  # en céntimos
    goods_category: str = ""
    body: str | None = None


class WXProductDetails(BaseModel):
    """Documento JSON que viaja en el campo ``detail``."""

    goods_detail: list[WXProductDetail] = Field(default_factory=list)


@dataclass
class WXOrderRequest:
    """Request de ``pay/unifiedorder``."""

    appid: str = ""
    mch_id: str = ""
    device_info: str = ""
    nonce_str: str = ""
    sign: str = ""
    body: str = ""
    detail: WXProductDetails | None = None
    attach: str = ""
    out_trade_no: str = ""
    fee_type: str = ""
    total_fee: int = 0
    spbill_create_ip: str = ""
    time_start: datetime | None = None
    time_expire: datetime | None = None
    goods_tag: str = ""
    notify_url: str = ""
    trade_type: str = ""
    product_id: str = ""  # obligatorio con trade_type=NATIVE
    limit_pay: str = ""
    openid: str = ""

    PARAM_FIELDS: ClassVar[tuple[ParamField, ...]] = (
        ParamField("appid"),
        ParamField("mch_id"),
        ParamField("device_info"),
        ParamField("nonce_str"),
        ParamField("sign", signed=False),
        ParamField("body"),
        ParamField("detail", FieldKind.JSON, model=WXProductDetails),
        ParamField("attach"),
        ParamField("out_trade_no"),
        ParamField("fee_type"),
        ParamField("total_fee", FieldKind.INT),
        ParamField("spbill_create_ip"),
        ParamField("time_start", FieldKind.TIMESTAMP, fmt=WECHAT_TIME_FORMAT),
        ParamField("time_expire", FieldKind.TIMESTAMP, fmt=WECHAT_TIME_FORMAT),
        ParamField("goods_tag"),
        ParamField("notify_url"),
        ParamField("trade_type"),
        ParamField("product_id"),
        ParamField("limit_pay"),
        ParamField("openid"),
    )


@dataclass
class WXOrderReply:
    """Respuesta de ``pay/unifiedorder``."""

    return_code: str = ""
    return_msg: str = ""
    appid: str = ""
    mch_id: str = ""
    device_info: str = ""
    nonce_str: str = ""
    result_code: str = ""
    err_code: str = ""
    err_code_des: str = ""
    trade_type: str = ""
    prepay_id: str = ""
    code_url: str = ""

    PARAM_FIELDS: ClassVar[tuple[ParamField, ...]] = (
        ParamField("return_code"),
        ParamField("return_msg"),
        ParamField("appid"),
        ParamField("mch_id"),
        ParamField("device_info"),
        ParamField("nonce_str"),
        ParamField("result_code"),
        ParamField("err_code"),
        ParamField("err_code_des"),
        ParamField("trade_type"),
        ParamField("prepay_id"),
        ParamField("code_url"),
    )


# ============================================
# Parámetros para invocar el pago en el cliente
# ============================================

@dataclass
class WXAppPayArgs:
    """Objeto de pago para el SDK de apps."""

    appid: str = ""
    partnerid: str = ""
    prepayid: str = ""
    package: str = "Sign=WXPay"
    noncestr: str = ""
    timestamp: int = 0
    sign: str = ""

    PARAM_FIELDS: ClassVar[tuple[ParamField, ...]] = (
        ParamField("appid"),
        ParamField("partnerid"),
        ParamField("prepayid"),
        ParamField("package"),
        ParamField("noncestr"),
        ParamField("timestamp", FieldKind.INT),
        ParamField("sign", signed=False),
    )


@dataclass
class WXJSAPIPayArgs:
    """Objeto de pago para JSAPI (las claves van en camelCase)."""

    app_id: str = ""
    nonce_str: str = ""
    package: str = ""
    sign_type: str = "MD5"
    timestamp: int = 0
    pay_sign: str = ""

    PARAM_FIELDS: ClassVar[tuple[ParamField, ...]] = (
        ParamField("app_id", name="appId"),
        ParamField("nonce_str", name="nonceStr"),
        ParamField("package"),
        ParamField("sign_type", name="signType"),
        ParamField("timestamp", FieldKind.INT, name="timeStamp"),
        ParamField("pay_sign", name="paySign", signed=False),
    )


# ============================================
# Notificaciones asíncronas
# ============================================

@dataclass
class WXNotifyResult:
    """Notificación de pago completado."""

    return_code: str = ""
    return_msg: str = ""
    appid: str = ""
    mch_id: str = ""
    device_info: str = ""
    nonce_str: str = ""
    result_code: str = ""
    err_code: str = ""
    err_code_des: str = ""
    trade_type: str = ""
    openid: str = ""
    is_subscribe: str = ""
    bank_type: str = ""
    total_fee: int = 0
    settlement_total_fee: int = 0
    fee_type: str = ""
    cash_fee: int = 0
    cash_fee_type: str = ""
    coupon_fee: int = 0
    coupon_count: int = 0
    transaction_id: str = ""
    out_trade_no: str = ""
    attach: str = ""
    time_end: datetime | None = None

    PARAM_FIELDS: ClassVar[tuple[ParamField, ...]] = (
        ParamField("return_code"),
        ParamField("return_msg"),
        ParamField("appid"),
        ParamField("mch_id"),
        ParamField("device_info"),
        ParamField("nonce_str"),
        ParamField("result_code"),
        ParamField("err_code"),
        ParamField("err_code_des"),
        ParamField("trade_type"),
        ParamField("openid"),
        ParamField("is_subscribe"),
        ParamField("bank_type"),
        ParamField("total_fee", FieldKind.INT),
        ParamField("settlement_total_fee", FieldKind.INT),
        ParamField("fee_type"),
        ParamField("cash_fee", FieldKind.INT),
        ParamField("cash_fee_type"),
        ParamField("coupon_fee", FieldKind.INT),
        ParamField("coupon_count", FieldKind.INT, bits=32),
        ParamField("transaction_id"),
        ParamField("out_trade_no"),
        ParamField("attach"),
        ParamField("time_end", FieldKind.TIMESTAMP, fmt=WECHAT_TIME_FORMAT),
    )


@dataclass
class WXRefundNotifyResult:
    """Sobre de la notificación de reembolso; ``req_info`` va cifrado."""

    return_code: str = ""
    return_msg: str = ""
    appid: str = ""
    mch_id: str = ""
    nonce_str: str = ""
    req_info: str = ""

    PARAM_FIELDS: ClassVar[tuple[ParamField, ...]] = (
        ParamField("return_code"),
        ParamField("return_msg"),
        ParamField("appid"),
        ParamField("mch_id"),
        ParamField("nonce_str"),
        ParamField("req_info"),
    )


@dataclass
class WXRefundNotifyInfo:
    """Contenido descifrado de ``req_info``."""

    transaction_id: str = ""
    out_trade_no: str = ""
    refund_id: str = ""
    out_refund_no: str = ""
    total_fee: int = 0
    refund_fee: int = 0
    settlement_refund_fee: int = 0
    refund_status: str = ""
    success_time: datetime | None = None
    refund_recv_accout: str = ""  # cuenta que recibe el reembolso
    refund_account: str = ""
    refund_request_source: str = ""

    PARAM_FIELDS: ClassVar[tuple[ParamField, ...]] = (
        ParamField("transaction_id"),
        ParamField("out_trade_no"),
        ParamField("refund_id"),
        ParamField("out_refund_no"),
        ParamField("total_fee", FieldKind.INT, bits=32),
        ParamField("refund_fee", FieldKind.INT, bits=32),
        ParamField("settlement_refund_fee", FieldKind.INT, bits=32),
        ParamField("refund_status"),
        ParamField("success_time", FieldKind.TIMESTAMP, fmt=WECHAT_TIME_FORMAT),
        ParamField("refund_recv_accout"),
        ParamField("refund_account"),
        ParamField("refund_request_source"),
    )


@dataclass
class WXNotifyReply:
    """Respuesta que se devuelve a la pasarela."""

    return_code: str = RETURN_SUCCESS
    return_msg: str = "OK"

    def to_params(self) -> dict[str, str]:
        return {"return_code": self.return_code, "return_msg": self.return_msg}
