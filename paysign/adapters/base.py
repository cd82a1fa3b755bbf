"""
Interfaz base abstracta para clientes de pasarela.
Define el contrato que todos los adapters deben implementar.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable, Mapping

from paysign.engine.schemes import SigningScheme
from paysign.utils.exceptions import InvalidRequestError


class PayPlat(str, Enum):
    """Plataformas de pago soportadas."""

    WECHAT = "wechat"
    ALIPAY = "alipay"


class PaySource(IntEnum):
    """Canal desde el que se inicia el pago."""

    APP = 1
    WAP = 2   # web móvil
    PAGE = 3  # web de escritorio


@dataclass
class ProductDetail:
    goods_id: str
    goods_name: str
    num: int
    price: int  # precio unitario en céntimos
    wx_goods_id: str = ""
    category: str = ""
    body: str = ""


@dataclass
class OrderRequest:
    """Pedido genérico; cada adapter lo traduce a su protocolo."""

    merchant_order_no: str
    amount: int  # en céntimos
    source: PaySource
    subject: str = ""
    desc: str = ""
    attach: str = ""
    client_ip: str = ""
    tag: str = ""
    trade_type: str = ""
    product_id: str = ""
    open_id: str = ""
    return_url: str = ""
    details: list[ProductDetail] = field(default_factory=list)


@dataclass
class RefundRequest:
    merchant_order_no: str
    merchant_refund_no: str
    total_fee: int   # en céntimos
    refund_fee: int  # en céntimos
    reason: str = ""


@dataclass
class NotifyResult:
    """
    Resultado normalizado de una notificación de pago.
    Es lo que recibe el callback de negocio.
    """

    plat: PayPlat
    merchant_order_no: str
    transaction_id: str
    completed_time: datetime | None
    total_amount: int  # en céntimos
    currency: str
    attach: str = ""
    notification_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)  # datos propios de la plataforma


@dataclass
class RefundNotifyResult:
    """Resultado normalizado de una notificación de reembolso."""

    plat: PayPlat
    merchant_order_no: str
    merchant_refund_no: str
    refund_id: str
    refund_amount: int
    total_amount: int
    completed_time: datetime | None
    is_success: bool


@dataclass
class NotificationReply:
    """Cuerpo que se devuelve a la pasarela tras procesar una notificación."""

    body: bytes
    media_type: str
    success: bool


NotifyHandler = Callable[[NotifyResult], Awaitable[None]]
RefundNotifyHandler = Callable[[RefundNotifyResult], Awaitable[None]]


class GatewayClient(ABC):
    """
    Interfaz abstracta para clientes de pasarela.

    Todos los adapters (Alipay, WeChat, ...) exponen la misma superficie
    hacia la capa de negocio: firmar registros, verificar parámetros
    recibidos y traducir notificaciones a resultados normalizados.
    """

    @property
    @abstractmethod
    def provider_name(self) -> PayPlat:
        """Plataforma del cliente."""
        pass

    @abstractmethod
    def sign(self, record: Any, scheme: "str | SigningScheme | None" = None) -> dict[str, str]:
        """
        Firma un registro y retorna el ParameterSet listo para transporte.

        Raises:
            UnsupportedSchemeError: Si el esquema no es conocido
            EncodingError: Si el registro no es serializable
        """
        pass

    @abstractmethod
    def verify(self, parameters: Mapping[str, str]) -> Any:
        """
        Verifica un ParameterSet recibido y lo materializa.

        Raises:
            SignatureError: Si la firma no es válida
            FieldConversionError: Si algún valor no se puede convertir
        """
        pass

    @abstractmethod
    def parse_notification(self, payload: bytes) -> NotifyResult:
        """
        Parsea, verifica y normaliza una notificación de pago.

        Args:
            payload: Cuerpo crudo del request

        Returns:
            NotifyResult normalizado

        Raises:
            PaymentGatewayError: En cualquier etapa fallida
        """
        pass

    def decrypt_notification(self, payload: bytes) -> RefundNotifyResult:
        """
        Parsea y descifra una notificación de reembolso.

        Raises:
            InvalidRequestError: Si la plataforma no envía notificaciones de reembolso
        """
        raise InvalidRequestError(
            f"refund notifications not supported by {self.provider_name.value}"
        )

    @abstractmethod
    def notification_reply(self, success: bool, message: str = "") -> NotificationReply:
        """Respuesta que la pasarela espera (éxito o fallo para reintentar)."""
        pass
