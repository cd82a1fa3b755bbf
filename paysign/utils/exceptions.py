"""
Excepciones personalizadas del servicio de firmas.
"""


class PaymentGatewayError(Exception):
    """Error base del servicio de firmas de pasarelas."""

    def __init__(self, message: str, code: str = "GATEWAY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ConfigurationError(PaymentGatewayError):
    """Material de claves o secretos mal configurados. Fatal en el arranque."""

    def __init__(self, message: str):
        super().__init__(
            message=f"Invalid configuration: {message}",
            code="CONFIGURATION_ERROR",
        )


class ProviderNotFoundError(PaymentGatewayError):
    """No hay cliente registrado para la plataforma."""

    def __init__(self, plat: str):
        super().__init__(
            message=f"Not found provider {plat}",
            code="PROVIDER_NOT_FOUND",
        )
        self.plat = plat


class InvalidRequestError(PaymentGatewayError):
    """Datos de pedido o reembolso incompletos o no soportados."""

    def __init__(self, message: str):
        super().__init__(message=message, code="INVALID_REQUEST")


# ============================================
# Codificación
# ============================================

class EncodingError(PaymentGatewayError):
    """Fallo al serializar o deserializar un payload (JSON / XML / form)."""

    def __init__(self, message: str, code: str = "ENCODING_ERROR"):
        super().__init__(message=message, code=code)


class NotificationParseError(EncodingError):
    """El cuerpo de una notificación no se pudo interpretar."""

    def __init__(self, message: str):
        super().__init__(
            message=f"Failed to parse notification: {message}",
            code="NOTIFICATION_PARSE_ERROR",
        )


class ChunkingError(EncodingError):
    """La entrada no está alineada al tamaño de bloque requerido."""

    def __init__(self, message: str):
        super().__init__(message=message, code="CHUNKING_ERROR")


# ============================================
# Firmas
# ============================================

class SignatureError(PaymentGatewayError):
    """Error base de firma / verificación."""

    def __init__(self, message: str, code: str = "SIGNATURE_ERROR"):
        super().__init__(message=message, code=code)


class UnsupportedSchemeError(SignatureError):
    """Esquema de firma desconocido."""

    def __init__(self, scheme: str):
        super().__init__(
            message=f"Unsupported signing scheme: {scheme!r}",
            code="UNSUPPORTED_SCHEME",
        )
        self.scheme = scheme


class UnsupportedVerificationError(SignatureError):
    """El esquema solo firma; no tiene camino de verificación."""

    def __init__(self, scheme: str):
        super().__init__(
            message=f"Unsupported verification for scheme {scheme}",
            code="UNSUPPORTED_VERIFICATION",
        )
        self.scheme = scheme


class SignatureVerificationError(SignatureError):
    """La firma recibida no coincide."""

    def __init__(self, reason: str | None = None):
        message = "signature verification failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message=message, code="SIGNATURE_VERIFICATION_FAILED")
        self.reason = reason


# ============================================
# Mapeo de campos
# ============================================

class FieldConversionError(PaymentGatewayError):
    """Un parámetro presente no se pudo convertir al tipo del campo."""

    def __init__(self, field: str, raw_value: str, reason: str | None = None):
        message = f"Cant convert value {raw_value!r} to field {field}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message=message, code="FIELD_CONVERSION_ERROR")
        self.field = field
        self.raw_value = raw_value


# ============================================
# Errores reportados por la pasarela
# ============================================

class BusinessError(PaymentGatewayError):
    """Error de negocio devuelto por la pasarela tras verificar la firma."""

    def __init__(
        self,
        code: str,
        message: str = "",
        sub_code: str = "",
        sub_message: str = "",
    ):
        text = f"code:{code},error:{message}"
        if sub_code:
            text = f"{text},sub_code:{sub_code},sub_error:{sub_message}"
        super().__init__(message=text, code="BUSINESS_ERROR")
        self.gateway_code = code
        self.gateway_message = message
        self.sub_code = sub_code
        self.sub_message = sub_message


class TransientGatewayError(BusinessError):
    """Error temporal de la pasarela; la capa de negocio puede reintentar."""


class DoubleSubmitError(BusinessError):
    """La pasarela reporta número de pedido duplicado."""
