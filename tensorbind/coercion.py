"""Pairwise conversion rules between element kinds.

Every ``(from_kind, to_kind)`` pair has an entry in one dense table of
vectorised converters; the table is checked for completeness at import.
Converters take a 1-D numpy array in the source kind's storage dtype (text
as an object array of ``str``/``bytes``) and return one in the target's
storage dtype (text as ``str``).

Rules:

- bool -> number gives 1/0; number -> bool is ``value != 0``, so negatives
  and NaN are true and ``-0.0`` is false.
- integer narrowing wraps modulo ``2**bits``.
- float -> integer truncates toward zero then wraps; NaN and +/-inf raise.
- uint8 holds 0..255. Scalars handed in as uint8 may use the signed byte
  pattern (-128..-1), which is read as 128..255, never sign-extended.
- numbers render as plain decimal, floats as their shortest round-trip
  form (``1.0``, ``1e+20``, ``nan``); text parses back with the same
  grammar.
"""

import logging
import re
from typing import Any, Callable, Dict, Tuple

import numpy as np

from .errors import CoercionError
from .kinds import ElementKind, KindLike, as_kind

logger = logging.getLogger(__name__)

Converter = Callable[[np.ndarray, ElementKind, ElementKind], np.ndarray]

_INT_RE = re.compile(r"[+-]?[0-9]+")
_FLOAT_RE = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf|infinity|nan)",
    re.IGNORECASE,
)

_INT_RANGES: Dict[ElementKind, Tuple[int, int]] = {
    ElementKind.INT8: (-(2**7), 2**7 - 1),
    ElementKind.UINT8: (0, 2**8 - 1),
    ElementKind.INT32: (-(2**31), 2**31 - 1),
    ElementKind.INT64: (-(2**63), 2**63 - 1),
}

_BOOL_KINDS = (ElementKind.BOOL,)
_INT_KINDS = (ElementKind.INT8, ElementKind.UINT8, ElementKind.INT32, ElementKind.INT64)
_FLOAT_KINDS = (ElementKind.FLOAT32, ElementKind.FLOAT64)
_TEXT_KINDS = (ElementKind.TEXT,)


def wrap_int(value: int, kind: ElementKind) -> int:
    """Reduce an unbounded integer to ``kind``'s width, two's complement."""
    bits = kind.bits
    value %= 2**bits
    if kind is not ElementKind.UINT8 and value >= 2 ** (bits - 1):
        value -= 2**bits
    return value


def _object_array(items) -> np.ndarray:
    out = np.empty(len(items), dtype=object)
    out[:] = items
    return out


def _text(value: Any, src: ElementKind, dst: ElementKind) -> str:
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CoercionError(src, dst, value, "invalid UTF-8") from exc
    if isinstance(value, str):
        return value
    raise CoercionError(src, dst, value, "not a text value")


# -- converters ---------------------------------------------------------------
def _identity(values: np.ndarray, src: ElementKind, dst: ElementKind) -> np.ndarray:
    return values


def _cast(values: np.ndarray, src: ElementKind, dst: ElementKind) -> np.ndarray:
    with np.errstate(over="ignore"):
        return values.astype(dst.numpy_dtype)


def _nonzero(values: np.ndarray, src: ElementKind, dst: ElementKind) -> np.ndarray:
    return values != 0


def _float_to_int(values: np.ndarray, src: ElementKind, dst: ElementKind) -> np.ndarray:
    finite = np.isfinite(values)
    if not finite.all():
        bad = values[~finite][0]
        raise CoercionError(src, dst, float(bad), "no integer value")
    truncated = np.trunc(values)
    if truncated.size == 0 or np.abs(truncated).max() < 2.0**63:
        return truncated.astype(np.int64).astype(dst.numpy_dtype)
    wrapped = [wrap_int(int(v), dst) for v in truncated.tolist()]
    return np.array(wrapped, dtype=dst.numpy_dtype)


def _to_text(values: np.ndarray, src: ElementKind, dst: ElementKind) -> np.ndarray:
    if src is ElementKind.BOOL:
        rendered = ["true" if v else "false" for v in values.tolist()]
    elif src.is_integer:
        rendered = [str(v) for v in values.tolist()]
    elif src is ElementKind.FLOAT32:
        rendered = [str(v) for v in values]
    else:
        rendered = [repr(v) for v in values.tolist()]
    return _object_array(rendered)


def _parse_bool(text: str, src: ElementKind, dst: ElementKind) -> bool:
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise CoercionError(src, dst, text, "expected 'true' or 'false'")


def _parse_int(text: str, src: ElementKind, dst: ElementKind) -> int:
    if not _INT_RE.fullmatch(text):
        raise CoercionError(src, dst, text, "not a decimal integer")
    value = int(text)
    lo, hi = _INT_RANGES[dst]
    if not lo <= value <= hi:
        raise CoercionError(src, dst, text, f"out of range [{lo}, {hi}]")
    return value


def _parse_float(text: str, src: ElementKind, dst: ElementKind) -> float:
    if not _FLOAT_RE.fullmatch(text):
        raise CoercionError(src, dst, text, "not a decimal number")
    return float(text)


def _from_text(values: np.ndarray, src: ElementKind, dst: ElementKind) -> np.ndarray:
    texts = [_text(v, src, dst) for v in values.tolist()]
    if dst is ElementKind.BOOL:
        parsed = [_parse_bool(t, src, dst) for t in texts]
    elif dst.is_integer:
        parsed = [_parse_int(t, src, dst) for t in texts]
    else:
        parsed = [_parse_float(t, src, dst) for t in texts]
    with np.errstate(over="ignore"):
        return np.array(parsed, dtype=dst.numpy_dtype)


_TABLE: Dict[Tuple[ElementKind, ElementKind], Converter] = {}


def _register(sources, targets, fn: Converter) -> None:
    for src in sources:
        for dst in targets:
            if src is not dst:
                _TABLE[(src, dst)] = fn


for _kind in ElementKind:
    _TABLE[(_kind, _kind)] = _identity
_register(_BOOL_KINDS, _INT_KINDS + _FLOAT_KINDS, _cast)
_register(_INT_KINDS, _INT_KINDS + _FLOAT_KINDS, _cast)
_register(_FLOAT_KINDS, _FLOAT_KINDS, _cast)
_register(_INT_KINDS + _FLOAT_KINDS, _BOOL_KINDS, _nonzero)
_register(_FLOAT_KINDS, _INT_KINDS, _float_to_int)
_register(_BOOL_KINDS + _INT_KINDS + _FLOAT_KINDS, _TEXT_KINDS, _to_text)
_register(_TEXT_KINDS, _BOOL_KINDS + _INT_KINDS + _FLOAT_KINDS, _from_text)


def _check_table() -> None:
    missing = [
        (str(src), str(dst))
        for src in ElementKind
        for dst in ElementKind
        if (src, dst) not in _TABLE
    ]
    if missing:
        raise RuntimeError(f"Coercion table is missing pairs: {missing}")


_check_table()


# -- public API ---------------------------------------------------------------
def converter(from_kind: KindLike, to_kind: KindLike) -> Converter:
    return _TABLE[(as_kind(from_kind), as_kind(to_kind))]


def coerce_array(values: np.ndarray, from_kind: KindLike, to_kind: KindLike) -> np.ndarray:
    """Convert a 1-D storage array from one kind to another."""
    src, dst = as_kind(from_kind), as_kind(to_kind)
    if src is not dst:
        logger.debug("Coercing %d value(s) from %s to %s", values.size, src, dst)
    return _TABLE[(src, dst)](values, src, dst)


def _load_scalar(value: Any, kind: ElementKind, dst: ElementKind) -> np.ndarray:
    if kind is ElementKind.TEXT:
        return _object_array([_text(value, kind, dst)])
    if kind is ElementKind.BOOL:
        if not isinstance(value, (bool, np.bool_)):
            raise CoercionError(kind, dst, value, "not a boolean")
        return np.array([bool(value)], dtype=np.bool_)
    if kind.is_integer:
        if isinstance(value, (float, np.floating)) or not isinstance(value, (int, np.integer)):
            raise CoercionError(kind, dst, value, "not an integer")
        value = int(value)
        lo, hi = _INT_RANGES[kind]
        if kind is ElementKind.UINT8 and -128 <= value < 0:
            # signed byte pattern of an unsigned value
            value += 256
        if not lo <= value <= hi:
            raise CoercionError(kind, dst, value, f"out of range [{lo}, {hi}]")
        return np.array([value], dtype=kind.numpy_dtype)
    if isinstance(value, (bool, np.bool_)) or not isinstance(
        value, (int, float, np.integer, np.floating)
    ):
        raise CoercionError(kind, dst, value, "not a real number")
    with np.errstate(over="ignore"):
        return np.array([value], dtype=kind.numpy_dtype)


def coerce(value: Any, from_kind: KindLike, to_kind: KindLike) -> Any:
    """Convert one Python scalar of ``from_kind`` to a Python scalar of ``to_kind``."""
    src, dst = as_kind(from_kind), as_kind(to_kind)
    loaded = _load_scalar(value, src, dst)
    out = _TABLE[(src, dst)](loaded, src, dst)
    if dst is ElementKind.TEXT:
        return _text(out[0], src, dst)
    return out.tolist()[0]


def byte_unsigned(value: int) -> int:
    """Read a signed 8-bit pattern as its unsigned value (-1 -> 255)."""
    return coerce(value, ElementKind.UINT8, ElementKind.INT32)


__all__ = [
    "Converter",
    "byte_unsigned",
    "coerce",
    "coerce_array",
    "converter",
    "wrap_int",
]
