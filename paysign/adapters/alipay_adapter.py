"""
Cliente de Alipay.
Construye requests firmados (RSA2) y verifica respuestas y notificaciones.
"""

import json
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

import structlog

from paysign.adapters.base import (
    GatewayClient,
    NotificationReply,
    NotifyResult,
    OrderRequest,
    PayPlat,
    PaySource,
    RefundRequest,
)
from paysign.engine.builder import RequestBuilder, encode_form
from paysign.engine.keys import RSAKeyPair
from paysign.engine.mapper import record_to_params
from paysign.engine.schemes import Signer, SigningScheme
from paysign.engine.verifier import SIGN_FIELD, SIGN_TYPE_FIELD, NotificationVerifier, parse_form
from paysign.schemas.alipay import (
    AppPayNotification,
    AppPayRequest,
    CommonReply,
    TradeRefundRequest,
)
from paysign.utils.exceptions import (
    EncodingError,
    InvalidRequestError,
    SignatureVerificationError,
)


logger = structlog.get_logger(__name__)

GATEWAY_URL = "https://openapi.alipay.com/gateway.do"
SANDBOX_GATEWAY_URL = "https://openapi.alipaydev.com/gateway.do"

METHOD_APP_PAY = "alipay.trade.app.pay"
METHOD_WAP_PAY = "alipay.trade.wap.pay"
METHOD_REFUND = "alipay.trade.refund"

PRODUCT_CODE_APP = "QUICK_MSECURITY_PAY"
PRODUCT_CODE_WAP = "QUICK_WAP_WAY"

ORDER_TIMEOUT = "1d"
GOODS_TYPE_VIRTUAL = "0"
CURRENCY = "CNY"

REPLY_SUCCESS = b"success"
REPLY_FAIL = b"fail"

_CENT = Decimal("0.01")


def cents_to_yuan(amount: int) -> str:
    """Céntimos -> yuanes con dos decimales."""
    return str((Decimal(amount) / 100).quantize(_CENT, rounding=ROUND_HALF_UP))


def yuan_to_cents(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def extract_raw_json(body: str, key: str) -> str:
    """
    Extrae el texto JSON crudo bajo ``key`` tal como viene en el cuerpo.

    La firma de la pasarela cubre esos bytes exactos; re-serializar el
    objeto cambiaría espacios y orden de claves.

    Raises:
        EncodingError: Si la clave no existe o su valor no es JSON válido
    """
    decoder = json.JSONDecoder()
    marker = json.dumps(key)
    position = body.find(marker)
    while position != -1:
        cursor = position + len(marker)
        while cursor < len(body) and body[cursor].isspace():
            cursor += 1
        if cursor < len(body) and body[cursor] == ":":
            cursor += 1
            while cursor < len(body) and body[cursor].isspace():
                cursor += 1
            try:
                _, end = decoder.raw_decode(body, cursor)
            except json.JSONDecodeError as e:
                raise EncodingError(f"invalid JSON under {key}: {e}") from e
            return body[cursor:end]
        position = body.find(marker, position + 1)

    raise EncodingError(f"response key {key} not found")


class AlipayClient(GatewayClient):
    """
    Cliente de Alipay.

    Todas las llamadas salientes se firman con RSA2 usando la clave privada
    del comercio; las respuestas y notificaciones se verifican con la clave
    pública de la pasarela.
    """

    def __init__(
        self,
        app_id: str,
        partner_id: str,
        keys: RSAKeyPair,
        notify_url: str = "",
        sandbox: bool = False,
        signer: Signer | None = None,
    ):
        self._app_id = app_id
        self._partner_id = partner_id
        self._notify_url = notify_url
        self._signer = signer or Signer(rsa_keys=keys)
        self._builder = RequestBuilder(app_id, self._signer)
        self._verifier = NotificationVerifier(self._signer)
        self.gateway_url = SANDBOX_GATEWAY_URL if sandbox else GATEWAY_URL

        logger.info(
            "AlipayClient initialized",
            app_id=app_id,
            sandbox=sandbox,
        )

    @property
    def provider_name(self) -> PayPlat:
        return PayPlat.ALIPAY

    # ============================================
    # Firma genérica
    # ============================================

    def sign(self, record: Any, scheme: "str | SigningScheme | None" = None) -> dict[str, str]:
        """
        Registro -> parámetros con ``sign`` y ``sign_type`` incluidos.

        ``sign_type`` se añade después de firmar: no forma parte de la
        cadena canónica.
        """
        scheme = SigningScheme.parse(scheme or SigningScheme.RSA2)
        if hasattr(type(record), "PARAM_FIELDS"):
            params = record_to_params(record)
        else:
            params = {
                k: v for k, v in dict(record).items()
                if k not in (SIGN_FIELD, SIGN_TYPE_FIELD)
            }
        params[SIGN_FIELD] = self._signer.sign(scheme, params)
        params[SIGN_TYPE_FIELD] = scheme.value
        return params

    # ============================================
    # Pagos
    # ============================================

    def trade_app_pay(self, request: AppPayRequest) -> str:
        """
        Orden para el SDK de apps.

        Returns:
            Cadena form-urlencoded firmada que la app entrega al SDK
        """
        params = self._builder.build(
            METHOD_APP_PAY,
            request,
            scheme=SigningScheme.RSA2,
            extra={"notify_url": self._notify_url},
        )
        logger.info("Alipay app pay built", out_trade_no=request.out_trade_no)
        return encode_form(params)

    def trade_wap_pay(self, request: AppPayRequest, return_url: str = "") -> dict[str, str]:
        """
        Orden para web móvil.

        Returns:
            ParameterSet firmado; se envía a ``gateway_url``
        """
        params = self._builder.build(
            METHOD_WAP_PAY,
            request,
            scheme=SigningScheme.RSA2,
            extra={"notify_url": self._notify_url, "return_url": return_url},
        )
        logger.info("Alipay wap pay built", out_trade_no=request.out_trade_no)
        return params

    def order(self, order: OrderRequest) -> str | dict[str, str]:
        """
        Traduce un pedido genérico a la llamada de app o web móvil.

        Raises:
            InvalidRequestError: Si el canal no está soportado
        """
        request = AppPayRequest(
            body=order.desc or None,
            subject=order.subject or None,
            out_trade_no=order.merchant_order_no,
            timeout=ORDER_TIMEOUT,
            total_amount=cents_to_yuan(order.amount),
            goods_type=GOODS_TYPE_VIRTUAL,
            passback_params=order.attach or None,
            seller_id=self._partner_id or None,
        )

        if order.source == PaySource.APP:
            request.product_code = PRODUCT_CODE_APP
            return self.trade_app_pay(request)

        if order.source == PaySource.WAP:
            request.product_code = PRODUCT_CODE_WAP
            return self.trade_wap_pay(request, order.return_url)

        raise InvalidRequestError(f"pay source {order.source.name} not supported by alipay")

    # ============================================
    # Reembolsos
    # ============================================

    def build_refund(self, refund: RefundRequest) -> dict[str, str]:
        """
        Construye el request firmado de ``alipay.trade.refund``.

        Raises:
            InvalidRequestError: Si faltan datos obligatorios
        """
        if not refund.merchant_order_no:
            raise InvalidRequestError("missing merchant order no")
        if refund.refund_fee <= 0:
            raise InvalidRequestError("refund fee must be greater than 0")
        if not refund.merchant_refund_no:
            raise InvalidRequestError("missing merchant refund no")

        biz = TradeRefundRequest(
            out_trade_no=refund.merchant_order_no,
            refund_amount=Decimal(cents_to_yuan(refund.refund_fee)),
            refund_reason=refund.reason or None,
            out_request_no=refund.merchant_refund_no,
        )
        params = self._builder.build(METHOD_REFUND, biz, scheme=SigningScheme.RSA2)

        logger.info(
            "Alipay refund built",
            out_trade_no=refund.merchant_order_no,
            out_request_no=refund.merchant_refund_no,
        )
        return params

    def verify_response(
        self,
        body: bytes | str,
        response_key: str,
        reply_cls: type[CommonReply] = CommonReply,
    ) -> CommonReply:
        """
        Verifica una respuesta síncrona de la API.

        La firma RSA2 se comprueba sobre el texto crudo bajo
        ``response_key``; solo después se interpreta el estado.

        Raises:
            EncodingError: Cuerpo no JSON o sin ``response_key``
            SignatureVerificationError: Firma ausente o inválida
            BusinessError: Estado distinto de éxito
        """
        if isinstance(body, bytes):
            try:
                body = body.decode("utf-8")
            except UnicodeDecodeError as e:
                raise EncodingError(f"response is not UTF-8: {e}") from e

        try:
            document = json.loads(body)
        except json.JSONDecodeError as e:
            raise EncodingError(f"invalid response body: {e}") from e
        if not isinstance(document, dict):
            raise EncodingError("response body is not a JSON object")

        signature = document.get(SIGN_FIELD) or ""
        if not signature:
            raise SignatureVerificationError("missing signature")

        raw = extract_raw_json(body, response_key)
        self._signer.verify_bytes(SigningScheme.RSA2, raw.encode("utf-8"), signature)

        reply = reply_cls.model_validate_json(raw)
        reply.check()
        return reply

    # ============================================
    # Notificaciones
    # ============================================

    def verify(self, parameters: Mapping[str, str]) -> AppPayNotification:
        remaining = self._verifier.verify(parameters, default_scheme=SigningScheme.RSA2)
        return self._verifier.materialize(AppPayNotification, remaining)

    def parse_notification(self, payload: bytes) -> NotifyResult:
        notification = self.verify(parse_form(payload))

        logger.info(
            "Alipay notification verified",
            out_trade_no=notification.out_trade_no,
            trade_no=notification.trade_no,
            trade_status=notification.trade_status,
        )

        return NotifyResult(
            plat=PayPlat.ALIPAY,
            merchant_order_no=notification.out_trade_no,
            transaction_id=notification.trade_no,
            completed_time=notification.gmt_payment,
            total_amount=yuan_to_cents(notification.total_amount),
            currency=CURRENCY,
            attach=notification.passback_params,
            notification_id=notification.notify_id,
            extra={
                "buyer_id": notification.buyer_id,
                "buyer_login_id": notification.buyer_logon_id,
                "notify_id": notification.notify_id,
                "trade_status": notification.trade_status,
            },
        )

    def notification_reply(self, success: bool, message: str = "") -> NotificationReply:
        return NotificationReply(
            body=REPLY_SUCCESS if success else REPLY_FAIL,
            media_type="text/plain",
            success=success,
        )
