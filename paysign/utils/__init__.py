"""
Utilidades del servicio de firmas.
"""

from paysign.utils.exceptions import (
    BusinessError,
    ChunkingError,
    ConfigurationError,
    DoubleSubmitError,
    EncodingError,
    FieldConversionError,
    InvalidRequestError,
    NotificationParseError,
    PaymentGatewayError,
    ProviderNotFoundError,
    SignatureError,
    SignatureVerificationError,
    TransientGatewayError,
    UnsupportedSchemeError,
    UnsupportedVerificationError,
)

__all__ = [
    "BusinessError",
    "ChunkingError",
    "ConfigurationError",
    "DoubleSubmitError",
    "EncodingError",
    "FieldConversionError",
    "InvalidRequestError",
    "NotificationParseError",
    "PaymentGatewayError",
    "ProviderNotFoundError",
    "SignatureError",
    "SignatureVerificationError",
    "TransientGatewayError",
    "UnsupportedSchemeError",
    "UnsupportedVerificationError",
]
