"""Flat, shape-tagged buffers and the conversions to and from nested arrays.

A :class:`FlatBuffer` is what crosses the boundary with a backend: one
element kind, a shape and a 1-D row-major numpy array whose length is the
product of the shape. Text elements are stored as UTF-8 ``bytes``, so a
text buffer has one implicit dimension (the bytes of each string) beyond
its shape.
"""

import logging
import math
from typing import Any, List, Optional, Sequence

import numpy as np
import torch

from .coercion import byte_unsigned, coerce, coerce_array
from .errors import CoercionError, StructuralError
from .kinds import ElementKind, KindLike, as_kind, kind_from_numpy
from .shapes import Shape, as_scalar_value, children, inspect, is_container, iter_leaves, scalar_kind

logger = logging.getLogger(__name__)


def _encode(value: Any) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raise CoercionError(ElementKind.TEXT, ElementKind.TEXT, value, "not a text value")


def _decode(value: bytes) -> str:
    return coerce(value, ElementKind.TEXT, ElementKind.TEXT)


def _text_storage(values: Sequence[Any]) -> np.ndarray:
    out = np.empty(len(values), dtype=object)
    out[:] = [_encode(v) for v in values]
    return out


def _numeric_storage(values: Sequence[Any], kind: ElementKind) -> np.ndarray:
    try:
        with np.errstate(over="ignore"):
            return np.array(values, dtype=kind.numpy_dtype).reshape(-1)
    except OverflowError as exc:
        bad = next((v for v in values if _overflows(v, kind)), values)
        raise CoercionError(scalar_kind(bad), kind, bad, "out of range") from exc


def _storage(values: Sequence[Any], kind: ElementKind) -> np.ndarray:
    if kind is ElementKind.TEXT:
        out = np.empty(len(values), dtype=object)
        out[:] = list(values)
        return out
    return _numeric_storage(values, kind)


def _leaf_storage(values: Sequence[Any], kind: ElementKind) -> np.ndarray:
    """Convert Python leaves of any kind to ``kind``'s storage via the coercion table."""
    kinds = {scalar_kind(v) for v in values}
    if len(kinds) == 1:
        src = kinds.pop()
        return coerce_array(_storage(values, src), src, kind)
    return _storage([coerce(v, scalar_kind(v), kind) for v in values], kind)


def _overflows(value: Any, kind: ElementKind) -> bool:
    try:
        np.array([value], dtype=kind.numpy_dtype)
    except OverflowError:
        return True
    return False


class FlatBuffer:
    """Contiguous row-major elements of one kind, tagged with a shape.

    ``data`` may be any sequence, numpy array or tensor; it is copied,
    converted to the kind's storage dtype through the coercion rules (so
    ``[-1]`` as uint8 is 255, exactly as with :func:`to_buffer`) and made
    read-only.
    """

    __slots__ = ("_kind", "_shape", "_data")

    def __init__(self, kind: KindLike, shape: Sequence[int], data: Any):
        kind = as_kind(kind)
        shape = tuple(int(d) for d in shape)
        if any(d < 0 for d in shape):
            raise StructuralError(f"Negative extent in shape {list(shape)}")
        if isinstance(data, torch.Tensor):
            data = data.detach().cpu().numpy()
        if kind is ElementKind.TEXT:
            storage = _text_storage(list(np.asarray(data, dtype=object).reshape(-1)))
        elif isinstance(data, np.ndarray) and data.dtype != object:
            storage = coerce_array(data.reshape(-1), kind_from_numpy(data.dtype), kind).copy()
        else:
            storage = _leaf_storage(
                [as_scalar_value(v) for v in np.asarray(data, dtype=object).reshape(-1)], kind
            )
        expected = math.prod(shape)
        if storage.size != expected:
            raise StructuralError(
                f"Buffer holds {storage.size} element(s) but shape {list(shape)} "
                f"requires {expected}"
            )
        storage.flags.writeable = False
        self._kind = kind
        self._shape = shape
        self._data = storage

    @classmethod
    def scalar(cls, value: Any, kind: Optional[KindLike] = None) -> "FlatBuffer":
        return to_buffer(value, kind)

    @property
    def kind(self) -> ElementKind:
        return self._kind

    @property
    def shape(self) -> Shape:
        return self._shape

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def rank(self) -> int:
        return len(self._shape)

    @property
    def physical_rank(self) -> int:
        """Rank including the byte dimension of text elements."""
        return self.rank + 1 if self._kind is ElementKind.TEXT else self.rank

    @property
    def size(self) -> int:
        return int(self._data.size)

    def __len__(self) -> int:
        return self.size

    def astype(self, kind: KindLike) -> "FlatBuffer":
        kind = as_kind(kind)
        if kind is self._kind:
            return self
        return FlatBuffer(kind, self._shape, coerce_array(self._data, self._kind, kind))

    def to_numpy(self, kind: Optional[KindLike] = None) -> np.ndarray:
        return coerced_values(self, kind).reshape(self._shape).copy()

    def tolist(self) -> Any:
        return from_buffer(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FlatBuffer):
            return NotImplemented
        return (
            self._kind is other._kind
            and self._shape == other._shape
            and np.array_equal(self._data, other._data)
        )

    __hash__ = None

    def __repr__(self) -> str:
        return f"FlatBuffer(kind={self._kind}, shape={list(self._shape)}, size={self.size})"


# -- nested array -> buffer -------------------------------------------------------
def _native_array(array: Any) -> Optional[np.ndarray]:
    if isinstance(array, torch.Tensor):
        return array.detach().cpu().numpy()
    if isinstance(array, np.ndarray) and array.dtype != object:
        return array
    return None


def to_buffer(array: Any, kind: Optional[KindLike] = None) -> FlatBuffer:
    """Flatten ``array`` row-major into a :class:`FlatBuffer` of ``kind``.

    Without ``kind`` the element kind is inferred from the leaves. With it,
    each leaf is coerced from its own kind when the two differ, and empty
    arrays are accepted.
    """
    if isinstance(array, FlatBuffer):
        return array if kind is None else array.astype(kind)

    native = _native_array(array)
    if native is not None:
        src = kind_from_numpy(native.dtype)
        target = src if kind is None else as_kind(kind)
        flat = native.reshape(-1)
        if src is ElementKind.TEXT:
            flat = _storage(flat.tolist(), src)
        values = coerce_array(flat, src, target)
        logger.debug("Marshalled %s array %s as %s", src, list(native.shape), target)
        return FlatBuffer(target, native.shape, values)

    shape, target = inspect(array, kind)
    values = _leaf_storage(list(iter_leaves(array)), target)
    logger.debug("Marshalled nested array %s as %s", list(shape), target)
    return FlatBuffer(target, shape, values)


# -- buffer -> nested array -------------------------------------------------------
def coerced_values(buffer: FlatBuffer, kind: Optional[KindLike] = None) -> np.ndarray:
    """Return the row-major elements of ``buffer`` as ``kind``, text decoded to ``str``."""
    target = buffer.kind if kind is None else as_kind(kind)
    values = coerce_array(buffer.data, buffer.kind, target)
    if target is ElementKind.TEXT:
        values = _storage([_decode(v) for v in values.tolist()], target)
    return values


def from_buffer(buffer: FlatBuffer, kind: Optional[KindLike] = None) -> Any:
    """Rebuild nested lists of ``buffer``'s shape, optionally coerced to ``kind``.

    Rank 0 yields a bare scalar. Text comes back as ``str``.
    """
    return coerced_values(buffer, kind).reshape(buffer.shape).tolist()


# -- text <-> byte dimension -----------------------------------------------------
def encode_text(array: Any) -> Any:
    """Replace every ``str`` leaf with its UTF-8 ``bytes``.

    Viewing each ``bytes`` as a sequence of byte values, the result has one
    more dimension than the input.
    """
    if isinstance(array, (str, bytes, bytearray)):
        return _encode(array)
    if is_container(array):
        return [encode_text(child) for child in children(array)]
    raise TypeError(f"Unsupported element type: {type(array)}")


def _is_byte_sequence(node: Any) -> bool:
    if isinstance(node, (bytes, bytearray)):
        return True
    if isinstance(node, np.ndarray):
        return node.ndim == 1 and node.dtype.kind in ("i", "u")
    if isinstance(node, (list, tuple)) and node:
        return all(
            isinstance(v, (int, np.integer)) and not isinstance(v, (bool, np.bool_))
            for v in node
        )
    return False


def _byte_values(node: Any) -> bytes:
    if isinstance(node, (bytes, bytearray)):
        return bytes(node)
    values = [int(v) for v in node]
    bad = next((v for v in values if not -128 <= v <= 255), None)
    if bad is not None:
        raise StructuralError(f"Byte value {bad} is outside -128..255")
    return bytes(byte_unsigned(v) if v < 0 else v for v in values)


def decode_text(array: Any, rank: Optional[int] = None) -> Any:
    """Inverse of :func:`encode_text`.

    Leaves may be ``bytes`` or sequences of byte values (signed bytes are
    read unsigned). ``rank`` is the rank of the resulting string array; it
    is needed only when a byte sequence may be an empty list.
    """
    return _decode_text(array, rank, 0)


def _decode_text(node: Any, rank: Optional[int], depth: int) -> Any:
    at_leaf = depth == rank if rank is not None else _is_byte_sequence(node)
    if at_leaf:
        if isinstance(node, str):
            return node
        return _decode(_byte_values(node))
    if isinstance(node, str):
        raise StructuralError("Text found above the byte dimension")
    if not is_container(node):
        raise StructuralError(f"Expected a byte sequence, found {type(node).__name__}")
    return [_decode_text(child, rank, depth + 1) for child in children(node)]


def stack(arrays: Sequence[Any], kind: Optional[KindLike] = None) -> List[Any]:
    """Combine same-shaped arrays along a new leading dimension."""
    if not arrays:
        raise StructuralError("stack requires at least one array")
    buffers = [to_buffer(a, kind) for a in arrays]
    target = buffers[0].kind if kind is None else as_kind(kind)
    first = buffers[0].shape
    for i, buf in enumerate(buffers):
        if buf.shape != first:
            raise StructuralError(
                f"Cannot stack shape {list(buf.shape)} onto {list(first)}", [i]
            )
    return [from_buffer(buf, target) for buf in buffers]


__all__ = [
    "FlatBuffer",
    "coerced_values",
    "decode_text",
    "encode_text",
    "from_buffer",
    "stack",
    "to_buffer",
]
