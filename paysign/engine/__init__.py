"""
Motor de firma y verificación.
Canonicalización, esquemas de firma, cifrado por bloques y mapeo de
registros compartidos por todos los clientes de pasarela.
"""

from paysign.engine.builder import RequestBuilder, encode_biz_content, encode_form
from paysign.engine.canonical import BufferPool, CanonicalEncoder, ParameterSet
from paysign.engine.ciphers import ECBMode, RSAChunkCipher, aes_ecb, chunk, pkcs5_pad, pkcs5_unpad
from paysign.engine.keys import RSAKeyPair, SharedSecret
from paysign.engine.mapper import (
    ALIPAY_TIME_FORMAT,
    WECHAT_TIME_FORMAT,
    FieldKind,
    ParamField,
    params_to_record,
    record_to_params,
)
from paysign.engine.schemes import Signer, SigningScheme
from paysign.engine.verifier import NotificationVerifier, parse_form, parse_markup, render_markup

__all__ = [
    # Canonicalización
    "BufferPool",
    "CanonicalEncoder",
    "ParameterSet",
    # Cifrado
    "ECBMode",
    "RSAChunkCipher",
    "aes_ecb",
    "chunk",
    "pkcs5_pad",
    "pkcs5_unpad",
    # Claves y firmas
    "RSAKeyPair",
    "SharedSecret",
    "Signer",
    "SigningScheme",
    # Mapeo
    "ALIPAY_TIME_FORMAT",
    "WECHAT_TIME_FORMAT",
    "FieldKind",
    "ParamField",
    "params_to_record",
    "record_to_params",
    # Requests y notificaciones
    "RequestBuilder",
    "encode_biz_content",
    "encode_form",
    "NotificationVerifier",
    "parse_form",
    "parse_markup",
    "render_markup",
]
