"""
Mapeo bidireccional registro <-> parámetros.

Cada tipo de registro declara una tabla explícita de descriptores
(``PARAM_FIELDS``) con el atributo, el nombre canónico del parámetro, el
tipo y, opcionalmente, el formato de timestamp. No hay lógica de esquemas
de firma aquí.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Mapping, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from paysign.utils.exceptions import FieldConversionError


# Formatos fijos de timestamp por pasarela
ALIPAY_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
WECHAT_TIME_FORMAT = "%Y%m%d%H%M%S"

_INT_RE = re.compile(r"[+-]?[0-9]+")
_UINT_RE = re.compile(r"[0-9]+")
_FLOAT_RE = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

_TRUE_LITERALS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_LITERALS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class FieldKind(str, Enum):
    """Tipo destino de un campo."""

    TEXT = "text"
    INT = "int"
    UINT = "uint"
    FLOAT = "float"
    DECIMAL = "decimal"
    BOOL = "bool"
    TIMESTAMP = "timestamp"
    JSON = "json"


@dataclass(frozen=True)
class ParamField:
    """
    Descriptor de un campo de registro.

    Attributes:
        attr: Nombre del atributo en el registro
        kind: Tipo destino
        name: Nombre canónico del parámetro (por defecto ``attr``)
        fmt: Formato fijo para TIMESTAMP
        bits: Ancho para INT/UINT
        signed: Si participa en la cadena firmada (registro -> parámetros)
        model: Modelo pydantic para documentos JSON embebidos
    """

    attr: str
    kind: FieldKind = FieldKind.TEXT
    name: str | None = None
    fmt: str | None = None
    bits: int = 64
    signed: bool = True
    model: type[BaseModel] | None = None

    @property
    def param_name(self) -> str:
        return self.name or self.attr


class ParamRecord(Protocol):
    PARAM_FIELDS: ClassVar[tuple[ParamField, ...]]


R = TypeVar("R")


def format_timestamp(value: datetime, fmt: str) -> str:
    return value.strftime(fmt)


def parse_timestamp(raw: str, fmt: str) -> datetime:
    """Parsea con el formato fijo; sin fallback a otros formatos."""
    return datetime.strptime(raw, fmt)


# ============================================
# Registro -> Parámetros
# ============================================

def _render(descriptor: ParamField, value: Any) -> str | None:
    if value is None:
        return None

    if descriptor.kind in (FieldKind.INT, FieldKind.UINT):
        # Un entero a cero se considera ausente
        if int(value) == 0:
            return None
        return str(int(value))

    if descriptor.kind == FieldKind.BOOL:
        return "true" if value else "false"

    if descriptor.kind == FieldKind.TIMESTAMP and isinstance(value, datetime):
        return format_timestamp(value, descriptor.fmt or ALIPAY_TIME_FORMAT)

    if descriptor.kind == FieldKind.JSON and not isinstance(value, str):
        if isinstance(value, BaseModel):
            return value.model_dump_json(by_alias=True, exclude_none=True)
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))

    return str(value)


def record_to_params(record: ParamRecord) -> dict[str, str]:
    """
    Convierte un registro en parámetros para firmar.

    Solo incluye los descriptores con ``signed=True``. Los enteros a cero y
    los valores ``None`` se omiten.
    """
    params: dict[str, str] = {}
    for descriptor in type(record).PARAM_FIELDS:
        if not descriptor.signed:
            continue
        rendered = _render(descriptor, getattr(record, descriptor.attr))
        if rendered is not None:
            params[descriptor.param_name] = rendered
    return params


# ============================================
# Parámetros -> Registro
# ============================================

def _convert(descriptor: ParamField, raw: str) -> Any:
    kind = descriptor.kind

    if kind == FieldKind.TEXT:
        return raw

    if kind in (FieldKind.INT, FieldKind.UINT):
        pattern = _UINT_RE if kind == FieldKind.UINT else _INT_RE
        if not pattern.fullmatch(raw):
            raise FieldConversionError(descriptor.param_name, raw, "not a decimal integer")
        value = int(raw, 10)
        if kind == FieldKind.UINT:
            low, high = 0, (1 << descriptor.bits) - 1
        else:
            low, high = -(1 << (descriptor.bits - 1)), (1 << (descriptor.bits - 1)) - 1
        if not low <= value <= high:
            raise FieldConversionError(descriptor.param_name, raw, f"out of range for {descriptor.bits} bits")
        return value

    if kind == FieldKind.FLOAT:
        if not _FLOAT_RE.fullmatch(raw):
            raise FieldConversionError(descriptor.param_name, raw, "not a decimal number")
        return float(raw)

    if kind == FieldKind.DECIMAL:
        try:
            value = Decimal(raw)
        except InvalidOperation as e:
            raise FieldConversionError(descriptor.param_name, raw, "invalid decimal") from e
        if not value.is_finite():
            raise FieldConversionError(descriptor.param_name, raw, "invalid decimal")
        return value

    if kind == FieldKind.BOOL:
        if raw in _TRUE_LITERALS:
            return True
        if raw in _FALSE_LITERALS:
            return False
        raise FieldConversionError(descriptor.param_name, raw, "invalid boolean literal")

    if kind == FieldKind.TIMESTAMP:
        fmt = descriptor.fmt or ALIPAY_TIME_FORMAT
        try:
            return parse_timestamp(raw, fmt)
        except ValueError as e:
            raise FieldConversionError(descriptor.param_name, raw, f"expected format {fmt}") from e

    if kind == FieldKind.JSON:
        try:
            if descriptor.model is not None:
                return descriptor.model.model_validate_json(raw)
            return json.loads(raw)
        except (ValueError, ValidationError) as e:
            raise FieldConversionError(descriptor.param_name, raw, "invalid JSON document") from e

    raise FieldConversionError(descriptor.param_name, raw, f"unsupported kind {kind}")


def params_to_record(record_cls: type[R], params: Mapping[str, str]) -> R:
    """
    Construye un registro a partir de parámetros.

    Los parámetros ausentes o vacíos dejan el valor por defecto. El registro
    se construye una sola vez al final: un fallo de conversión no deja
    registros a medio poblar.

    Raises:
        FieldConversionError: Con el nombre canónico y el valor crudo
    """
    kwargs: dict[str, Any] = {}
    for descriptor in record_cls.PARAM_FIELDS:
        raw = params.get(descriptor.param_name, "")
        if raw == "":
            continue
        kwargs[descriptor.attr] = _convert(descriptor, raw)
    return record_cls(**kwargs)
