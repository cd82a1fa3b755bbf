"""
Verificador de notificaciones asíncronas.

Tres etapas lineales, terminales ante el primer fallo:

1. Parseo del cuerpo (form-urlencoded o documento XML) a ParameterSet.
2. (Opcional) Descifrado de un sub-documento cifrado embebido.
3. Verificación de firma sobre el resto de parámetros y materialización
   en un registro tipado.
"""

import base64
import binascii
from typing import Mapping, TypeVar
from urllib.parse import parse_qsl

import structlog
from lxml import etree

from paysign.engine.ciphers import aes_ecb, pkcs5_unpad
from paysign.engine.mapper import params_to_record
from paysign.engine.schemes import Signer, SigningScheme
from paysign.utils.exceptions import NotificationParseError, SignatureVerificationError


logger = structlog.get_logger(__name__)

SIGN_FIELD = "sign"
SIGN_TYPE_FIELD = "sign_type"

R = TypeVar("R")


def _markup_parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        remove_comments=True,
    )


def parse_form(raw: bytes) -> dict[str, str]:
    """
    Decodifica un cuerpo form-urlencoded.

    Ante claves repetidas se conserva la primera aparición.

    Raises:
        NotificationParseError: Si el cuerpo no es UTF-8 o form válido
    """
    try:
        text = raw.decode("utf-8").strip().strip("&")
        pairs = parse_qsl(text, keep_blank_values=True, strict_parsing=bool(text))
    except (UnicodeDecodeError, ValueError) as e:
        raise NotificationParseError(str(e)) from e

    params: dict[str, str] = {}
    for key, value in pairs:
        params.setdefault(key, value)
    return params


def parse_markup(raw: bytes) -> dict[str, str]:
    """
    Decodifica un documento XML plano: cada hijo directo de la raíz es un
    parámetro (el texto CDATA se toma tal cual).

    Raises:
        NotificationParseError: Si el documento no es XML bien formado
    """
    try:
        root = etree.fromstring(raw, parser=_markup_parser())
    except (etree.XMLSyntaxError, ValueError) as e:
        raise NotificationParseError(f"invalid XML document: {e}") from e

    params: dict[str, str] = {}
    for child in root:
        if not isinstance(child.tag, str):
            continue
        params.setdefault(child.tag, child.text or "")
    return params


def render_markup(params: Mapping[str, str], root: str = "xml") -> bytes:
    """Serializa un ParameterSet como documento XML plano."""
    element = etree.Element(root)
    for key, value in params.items():
        etree.SubElement(element, key).text = value
    return etree.tostring(element, encoding="utf-8")


class NotificationVerifier:
    """Orquesta parseo, descifrado y verificación de notificaciones."""

    def __init__(self, signer: Signer):
        self._signer = signer

    parse_form = staticmethod(parse_form)
    parse_markup = staticmethod(parse_markup)

    def decrypt_embedded(self, encoded: str, key: bytes) -> dict[str, str]:
        """
        Descifra un sub-documento embebido (base64 de AES-ECB), quita el
        padding y lo re-envuelve como ``<xml>...</xml>`` para parsearlo.

        Raises:
            NotificationParseError: Base64 o documento interno inválido
            ChunkingError: Cifrado no alineado a bloque o padding imposible
        """
        try:
            ciphertext = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise NotificationParseError(f"base64 decode error: {e}") from e

        plaintext = pkcs5_unpad(aes_ecb(key).decrypt(ciphertext))
        return parse_markup(b"<xml>" + plaintext + b"</xml>")

    def verify(
        self,
        params: Mapping[str, str],
        scheme: "str | SigningScheme | None" = None,
        default_scheme: "str | SigningScheme | None" = None,
    ) -> dict[str, str]:
        """
        Extrae ``sign`` / ``sign_type``, recalcula la cadena canónica y
        verifica. No modifica ``params``.

        Args:
            params: ParameterSet recibido
            scheme: Fuerza el esquema (ignora ``sign_type``)
            default_scheme: Esquema si la notificación no declara ``sign_type``

        Returns:
            Copia de los parámetros sin firma ni indicador de esquema

        Raises:
            SignatureVerificationError: Si la firma falta o no coincide
            UnsupportedVerificationError: Si el esquema no verifica
        """
        remaining = dict(params)
        signature = remaining.pop(SIGN_FIELD, "")
        declared = remaining.pop(SIGN_TYPE_FIELD, "")

        if not signature:
            raise SignatureVerificationError("missing signature")

        effective = scheme or declared or default_scheme
        if not effective:
            raise SignatureVerificationError("missing signing scheme")

        self._signer.verify(effective, remaining, signature)
        return remaining

    def materialize(self, record_cls: type[R], params: Mapping[str, str]) -> R:
        return params_to_record(record_cls, params)

    def verify_form(self, raw: bytes, record_cls: type[R]) -> R:
        """Etapas 1 y 3 para notificaciones form-urlencoded."""
        params = parse_form(raw)
        remaining = self.verify(params)
        return self.materialize(record_cls, remaining)

    def verify_markup(
        self,
        raw: bytes,
        record_cls: type[R],
        default_scheme: "str | SigningScheme" = SigningScheme.MD5,
    ) -> R:
        """Etapas 1 y 3 para notificaciones XML."""
        params = parse_markup(raw)
        remaining = self.verify(params, default_scheme=default_scheme)
        return self.materialize(record_cls, remaining)
