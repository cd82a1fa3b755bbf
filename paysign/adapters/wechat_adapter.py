"""
Cliente de WeChat Pay.
Documentos XML planos firmados con MD5 y secreto compartido.
"""

import secrets
import string
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

import structlog

from paysign.adapters.base import (
    GatewayClient,
    NotificationReply,
    NotifyResult,
    OrderRequest,
    PayPlat,
    PaySource,
    RefundNotifyResult,
)
from paysign.engine.keys import SharedSecret
from paysign.engine.mapper import params_to_record, record_to_params
from paysign.engine.schemes import Signer, SigningScheme
from paysign.engine.verifier import SIGN_FIELD, NotificationVerifier, parse_markup, render_markup
from paysign.schemas.wechat import (
    DOUBLE_SUBMIT_DESC,
    RETURN_FAIL,
    RETURN_SUCCESS,
    TRANSIENT_ERR_CODES,
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
from paysign.utils.exceptions import (
    BusinessError,
    DoubleSubmitError,
    TransientGatewayError,
)


logger = structlog.get_logger(__name__)

UNIFIED_ORDER_URL = "https://api.mch.weixin.qq.com/pay/unifiedorder"

TRADE_TYPE_APP = "APP"
TRADE_TYPE_JSAPI = "JSAPI"
DEVICE_WEB = "WEB"

REFUND_STATUS_SUCCESS = "SUCCESS"

ORDER_NONCE_LENGTH = 32
PAY_ARGS_NONCE_LENGTH = 24

_NONCE_ALPHABET = string.digits + string.ascii_lowercase + string.ascii_uppercase


def check_reply(
    return_code: str,
    return_msg: str = "",
    result_code: str = "",
    err_code: str = "",
    err_desc: str = "",
) -> None:
    """
    Interpreta el estado de un reply.

    Raises:
        BusinessError: ``return_code`` distinto de SUCCESS o fallo de negocio
        TransientGatewayError: Fallo reintentable
        DoubleSubmitError: Número de pedido repetido
    """
    if return_code != RETURN_SUCCESS:
        raise BusinessError(return_code, return_msg)

    if result_code != RETURN_SUCCESS:
        if err_desc == DOUBLE_SUBMIT_DESC:
            raise DoubleSubmitError(err_code, err_desc)
        if err_code in TRANSIENT_ERR_CODES:
            raise TransientGatewayError(err_code, err_desc)
        raise BusinessError(err_code or result_code, err_desc)


class WechatClient(GatewayClient):
    """
    Cliente de WeChat Pay.

    El mismo secreto sirve para el trailer ``key=`` de las firmas MD5 y,
    derivado, como clave AES de ``req_info`` en los reembolsos.
    """

    def __init__(
        self,
        app_id: str,
        secret: str,
        merchant_id: str,
        notify_url: str = "",
        fee_type: str = "CNY",
        order_timeout: timedelta = timedelta(minutes=5),
        limit_pay: str = "",
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._app_id = app_id
        self._merchant_id = merchant_id
        self._notify_url = notify_url
        self._fee_type = fee_type
        self._order_timeout = order_timeout
        self._limit_pay = limit_pay
        self._clock = clock
        self._secret = SharedSecret(secret)
        self._signer = Signer(secret=self._secret)
        self._verifier = NotificationVerifier(self._signer)

        logger.info(
            "WechatClient initialized",
            app_id=app_id,
            merchant_id=merchant_id,
        )

    @property
    def provider_name(self) -> PayPlat:
        return PayPlat.WECHAT

    @staticmethod
    def nonce(length: int) -> str:
        """Cadena aleatoria alfanumérica."""
        return "".join(secrets.choice(_NONCE_ALPHABET) for _ in range(length))

    def _signature(self, record: Any) -> str:
        return self._signer.sign(SigningScheme.MD5, record_to_params(record))

    def sign(self, record: Any, scheme: "str | SigningScheme | None" = None) -> dict[str, str]:
        """Registro -> parámetros con ``sign`` incluido."""
        if hasattr(type(record), "PARAM_FIELDS"):
            params = record_to_params(record)
        else:
            params = {k: v for k, v in dict(record).items() if k != SIGN_FIELD}
        params[SIGN_FIELD] = self._signer.sign(scheme or SigningScheme.MD5, params)
        return params

    # ============================================
    # Pedido unificado
    # ============================================

    def build_order(self, order: OrderRequest) -> bytes:
        """
        Documento XML firmado para ``pay/unifiedorder``.

        Returns:
            Cuerpo XML listo para enviar a ``UNIFIED_ORDER_URL``
        """
        details = None
        if order.details:
            details = WXProductDetails(
                goods_detail=[
                    WXProductDetail(
                        goods_id=d.goods_id,
                        wxpay_goods_id=d.wx_goods_id or None,
                        goods_name=d.goods_name,
                        goods_num=d.num,
                        price=d.price,
                        goods_category=d.category,
                        body=d.body or None,
                    )
                    for d in order.details
                ]
            )

        now = self._clock()
        request = WXOrderRequest(
            appid=self._app_id,
            mch_id=self._merchant_id,
            nonce_str=self.nonce(ORDER_NONCE_LENGTH),
            body=order.desc,
            detail=details,
            attach=order.attach,
            out_trade_no=order.merchant_order_no,
            fee_type=self._fee_type,
            total_fee=order.amount,
            spbill_create_ip=order.client_ip,
            time_start=now,
            time_expire=now + self._order_timeout,
            goods_tag=order.tag,
            notify_url=self._notify_url,
            trade_type=order.trade_type,
            product_id=order.product_id,
            limit_pay=self._limit_pay,
            openid=order.open_id,
        )
        if order.source == PaySource.APP:
            request.trade_type = TRADE_TYPE_APP
        else:
            request.device_info = DEVICE_WEB
            request.trade_type = TRADE_TYPE_JSAPI

        params = self.sign(request)
        request.sign = params[SIGN_FIELD]

        logger.info(
            "WeChat order built",
            out_trade_no=order.merchant_order_no,
            trade_type=request.trade_type,
        )
        return render_markup(params)

    def verify_reply(self, payload: bytes) -> WXOrderReply:
        """
        Verifica la respuesta de ``pay/unifiedorder``.

        Un ``return_code`` distinto de SUCCESS llega sin firma y se reporta
        directamente.

        Raises:
            NotificationParseError: XML inválido
            SignatureVerificationError: Firma ausente o inválida
            BusinessError: Estado distinto de éxito (o subclases)
        """
        params = parse_markup(payload)
        return_code = params.get("return_code", "")
        if return_code != RETURN_SUCCESS:
            check_reply(return_code, params.get("return_msg", ""))

        remaining = self._verifier.verify(params, default_scheme=SigningScheme.MD5)
        reply = self._verifier.materialize(WXOrderReply, remaining)
        check_reply(
            reply.return_code,
            reply.return_msg,
            reply.result_code,
            reply.err_code,
            reply.err_code_des,
        )
        return reply

    check_reply = staticmethod(check_reply)

    # ============================================
    # Parámetros de pago en el cliente
    # ============================================

    def app_pay_args(self, prepay_id: str) -> WXAppPayArgs:
        args = WXAppPayArgs(
            appid=self._app_id,
            partnerid=self._merchant_id,
            prepayid=prepay_id,
            noncestr=self.nonce(PAY_ARGS_NONCE_LENGTH),
            timestamp=int(time.time()),
        )
        args.sign = self._signature(args)
        return args

    def jsapi_pay_args(self, prepay_id: str) -> WXJSAPIPayArgs:
        args = WXJSAPIPayArgs(
            app_id=self._app_id,
            nonce_str=self.nonce(PAY_ARGS_NONCE_LENGTH),
            package=f"prepay_id={prepay_id}",
            timestamp=int(time.time()),
        )
        args.pay_sign = self._signature(args)
        return args

    # ============================================
    # Notificaciones
    # ============================================

    def verify(self, parameters: Mapping[str, str]) -> WXNotifyResult:
        remaining = self._verifier.verify(parameters, default_scheme=SigningScheme.MD5)
        return self._verifier.materialize(WXNotifyResult, remaining)

    def parse_notification(self, payload: bytes) -> NotifyResult:
        notification = self.verify(parse_markup(payload))

        logger.info(
            "WeChat notification verified",
            out_trade_no=notification.out_trade_no,
            transaction_id=notification.transaction_id,
            result_code=notification.result_code,
        )

        return NotifyResult(
            plat=PayPlat.WECHAT,
            merchant_order_no=notification.out_trade_no,
            transaction_id=notification.transaction_id,
            completed_time=notification.time_end,
            total_amount=notification.total_fee,
            currency=notification.fee_type,
            attach=notification.attach,
            notification_id=notification.transaction_id,
            extra={
                "open_id": notification.openid,
                "result_code": notification.result_code,
            },
        )

    def decrypt_notification(self, payload: bytes) -> RefundNotifyResult:
        """
        Notificación de reembolso: el sobre no va firmado y el detalle viaja
        cifrado en ``req_info`` (AES-256-ECB con la clave derivada).

        Raises:
            NotificationParseError: XML o base64 inválido
            BusinessError: ``return_code`` distinto de SUCCESS
            ChunkingError: Cifrado no alineado a bloque
            FieldConversionError: Campo del detalle no convertible
        """
        envelope = params_to_record(WXRefundNotifyResult, parse_markup(payload))
        if envelope.return_code != RETURN_SUCCESS:
            raise BusinessError(envelope.return_code, envelope.return_msg)

        info_params = self._verifier.decrypt_embedded(envelope.req_info, self._secret.derived_key)
        info = self._verifier.materialize(WXRefundNotifyInfo, info_params)

        logger.info(
            "WeChat refund notification decrypted",
            out_trade_no=info.out_trade_no,
            out_refund_no=info.out_refund_no,
            refund_status=info.refund_status,
        )

        return RefundNotifyResult(
            plat=PayPlat.WECHAT,
            merchant_order_no=info.out_trade_no,
            merchant_refund_no=info.out_refund_no,
            refund_id=info.refund_id,
            refund_amount=info.settlement_refund_fee,
            total_amount=info.total_fee,
            completed_time=info.success_time,
            is_success=info.refund_status == REFUND_STATUS_SUCCESS,
        )

    def notification_reply(self, success: bool, message: str = "") -> NotificationReply:
        if success:
            reply = WXNotifyReply()
        else:
            reply = WXNotifyReply(return_code=RETURN_FAIL, return_msg=message)
        return NotificationReply(
            body=render_markup(reply.to_params()),
            media_type="application/xml",
            success=success,
        )
