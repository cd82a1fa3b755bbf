"""
Schemas de Alipay.

Payloads de negocio (``biz_content``) como modelos pydantic y registros de
notificación con tabla explícita de campos para el mapper.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from paysign.engine.mapper import ALIPAY_TIME_FORMAT, FieldKind, ParamField, parse_timestamp
from paysign.utils.exceptions import BusinessError, TransientGatewayError


# Código de éxito de la API
SUCCESS_CODE = "10000"

# Códigos que la capa de negocio puede reintentar
TRANSIENT_CODES = frozenset({"20000"})
TRANSIENT_SUB_CODES = frozenset({"ACQ.SYSTEM_ERROR", "isp.unknow-error"})


class BizContent(BaseModel):
    """Base de los payloads de negocio."""

    model_config = ConfigDict(populate_by_name=True)


# ============================================
# Requests
# ============================================

class ExtendParams(BizContent):
    service_provider_id: str | None = Field(None, alias="sys_service_provider_id")
    # T: pedir verificación de nombre real, F: no
    need_real_name: str | None = Field(None, alias="needBuyerRealnamed")
    remark: str | None = Field(None, alias="TRANS_MEMO")


class AppPayRequest(BizContent):
    """Payload de ``alipay.trade.app.pay`` / ``alipay.trade.wap.pay``."""

    body: str | None = None
    subject: str | None = None
    out_trade_no: str | None = None
    timeout: str | None = Field(None, alias="timeout_express")
    total_amount: str | None = None  # en yuanes
    seller_id: str | None = None
    product_code: str | None = None
    goods_type: str | None = None  # 0: virtual, 1: físico
    passback_params: str | None = None
    promo_params: str | None = None
    extend_params: ExtendParams | None = None
    enable_pay_channels: str | None = None
    disable_pay_channels: str | None = None
    store_id: str | None = None


class TradeRefundRequest(BizContent):
    """Payload de ``alipay.trade.refund``."""

    out_trade_no: str
    trade_no: str | None = None
    refund_amount: Decimal
    refund_reason: str | None = None
    out_request_no: str
    operator_id: str | None = None
    store_id: str | None = None
    terminal_id: str | None = None


# ============================================
# Replies síncronos
# ============================================

class CommonReply(BaseModel):
    """Estado común de toda respuesta de la API."""

    model_config = ConfigDict(extra="allow")

    code: str = ""
    msg: str = ""
    sub_code: str = ""
    sub_msg: str = ""

    @property
    def is_success(self) -> bool:
        return self.code == SUCCESS_CODE and not self.sub_code

    def check(self) -> None:
        """
        Valida el estado: éxito solo si ``code`` es el centinela Y no hay
        ``sub_code``. Ambas condiciones se comprueban por separado.

        Raises:
            TransientGatewayError: Errores temporales reintentables
            BusinessError: Cualquier otro error reportado
        """
        if self.code != SUCCESS_CODE or self.sub_code:
            error_cls = BusinessError
            if self.code in TRANSIENT_CODES or self.sub_code in TRANSIENT_SUB_CODES:
                error_cls = TransientGatewayError
            raise error_cls(self.code, self.msg, self.sub_code, self.sub_msg)


class RefundDetailItem(BaseModel):
    fund_channel: str = ""
    amount: Decimal | None = None
    real_amount: Decimal | None = None
    fund_type: str = ""


class TradeRefundReply(CommonReply):
    trade_no: str = ""
    out_trade_no: str = ""
    buyer_logon_id: str = ""
    fund_change: str = ""
    refund_fee: Decimal = Decimal("0")
    gmt_refund_pay: datetime | None = None
    refund_detail_item_list: list[RefundDetailItem] = Field(default_factory=list)
    store_name: str = ""
    buyer_user_id: str = ""

    @field_validator("gmt_refund_pay", mode="before")
    @classmethod
    def _parse_alipay_time(cls, value: Any) -> Any:
        if isinstance(value, str):
            if not value:
                return None
            return parse_timestamp(value, ALIPAY_TIME_FORMAT)
        return value


# ============================================
# Notificaciones asíncronas
# ============================================

@dataclass
class AppPayNotification:
    """Notificación asíncrona de pago (form-urlencoded)."""

    notify_time: datetime | None = None
    notify_type: str = ""
    notify_id: str = ""
    app_id: str = ""
    charset: str = ""
    version: str = ""
    trade_no: str = ""
    out_trade_no: str = ""
    out_biz_no: str = ""
    buyer_id: str = ""
    buyer_logon_id: str = ""
    seller_id: str = ""
    seller_email: str = ""
    trade_status: str = ""
    total_amount: Decimal = Decimal("0")
    receipt_amount: Decimal = Decimal("0")
    invoice_amount: Decimal = Decimal("0")
    buyer_pay_amount: Decimal = Decimal("0")
    point_amount: Decimal = Decimal("0")
    refund_fee: Decimal = Decimal("0")
    subject: str = ""
    body: str = ""
    gmt_create: datetime | None = None
    gmt_payment: datetime | None = None
    gmt_refund: datetime | None = None
    gmt_close: datetime | None = None
    fund_bill_list: Any = None
    passback_params: str = ""
    voucher_detail_list: Any = None

    PARAM_FIELDS: ClassVar[tuple[ParamField, ...]] = (
        ParamField("notify_time", FieldKind.TIMESTAMP, fmt=ALIPAY_TIME_FORMAT),
        ParamField("notify_type"),
        ParamField("notify_id"),
        ParamField("app_id"),
        ParamField("charset"),
        ParamField("version"),
        ParamField("trade_no"),
        ParamField("out_trade_no"),
        ParamField("out_biz_no"),
        ParamField("buyer_id"),
        ParamField("buyer_logon_id"),
        ParamField("seller_id"),
        ParamField("seller_email"),
        ParamField("trade_status"),
        ParamField("total_amount", FieldKind.DECIMAL),
        ParamField("receipt_amount", FieldKind.DECIMAL),
        ParamField("invoice_amount", FieldKind.DECIMAL),
        ParamField("buyer_pay_amount", FieldKind.DECIMAL),
        ParamField("point_amount", FieldKind.DECIMAL),
        ParamField("refund_fee", FieldKind.DECIMAL),
        ParamField("subject"),
        ParamField("body"),
        ParamField("gmt_create", FieldKind.TIMESTAMP, fmt=ALIPAY_TIME_FORMAT),
        ParamField("gmt_payment", FieldKind.TIMESTAMP, fmt=ALIPAY_TIME_FORMAT),
        ParamField("gmt_refund", FieldKind.TIMESTAMP, fmt=ALIPAY_TIME_FORMAT),
        ParamField("gmt_close", FieldKind.TIMESTAMP, fmt=ALIPAY_TIME_FORMAT),
        ParamField("fund_bill_list", FieldKind.JSON),
        ParamField("passback_params"),
        ParamField("voucher_detail_list", FieldKind.JSON),
    )
