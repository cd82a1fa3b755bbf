"""
Constructor de requests firmados.

Arma el sobre del protocolo (app_id, method, metadatos fijos, timestamp,
parámetros auxiliares y ``biz_content``), firma todo lo reunido y agrega
``sign`` al final.
"""

import json
from datetime import datetime
from typing import Any, Callable, Mapping
from urllib.parse import urlencode

import structlog
from pydantic import BaseModel

from paysign.engine.mapper import ALIPAY_TIME_FORMAT, format_timestamp
from paysign.engine.schemes import Signer, SigningScheme
from paysign.utils.exceptions import EncodingError


logger = structlog.get_logger(__name__)

# Metadatos fijos del sobre
ENVELOPE_FORMAT = "JSON"
ENVELOPE_CHARSET = "utf-8"
ENVELOPE_VERSION = "1.0"


def encode_biz_content(data: BaseModel | Mapping[str, Any] | None) -> str:
    """
    Serializa el payload de negocio como JSON compacto.

    Raises:
        EncodingError: Si el payload no es serializable
    """
    try:
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json", by_alias=True, exclude_none=True)
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise EncodingError(f"failed to marshal biz_content: {e}") from e


def encode_form(params: Mapping[str, str]) -> str:
    """Cuerpo ``application/x-www-form-urlencoded`` con claves ordenadas."""
    return urlencode(sorted(params.items()))


class RequestBuilder:
    """Construye el ParameterSet completo listo para el transporte."""

    def __init__(
        self,
        app_id: str,
        signer: Signer,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._app_id = app_id
        self._signer = signer
        # Hora local del punto de llamada, no UTC
        self._clock = clock

    def build(
        self,
        method: str,
        biz_content: BaseModel | Mapping[str, Any] | None,
        scheme: "str | SigningScheme" = SigningScheme.RSA2,
        extra: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """
        Arma y firma un request.

        Args:
            method: Nombre del método de la API
            biz_content: Payload de negocio
            scheme: Esquema de firma
            extra: Parámetros auxiliares (notify_url, return_url)

        Returns:
            ParameterSet con ``sign`` incluido

        Raises:
            UnsupportedSchemeError: Si el esquema no es conocido
            EncodingError: Si el payload no es serializable
        """
        scheme = SigningScheme.parse(scheme)

        params: dict[str, str] = {
            "app_id": self._app_id,
            "method": method,
            "format": ENVELOPE_FORMAT,
            "charset": ENVELOPE_CHARSET,
            "sign_type": scheme.value,
            "timestamp": format_timestamp(self._clock(), ALIPAY_TIME_FORMAT),
            "version": ENVELOPE_VERSION,
        }
        for key, value in (extra or {}).items():
            if value:
                params[key] = value
        params["biz_content"] = encode_biz_content(biz_content)

        params["sign"] = self._signer.sign(scheme, params)

        logger.debug("Request built", method=method, scheme=scheme.value)
        return params
