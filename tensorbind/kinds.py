"""Element kinds understood by the marshalling engine and their dtype tables."""

from enum import Enum
from typing import Any, Dict, Optional, Union

import numpy as np
import torch


class ElementKind(Enum):
    BOOL = "bool"
    INT8 = "int8"
    UINT8 = "uint8"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    TEXT = "string"

    @property
    def is_integer(self) -> bool:
        return self in _INTEGER_BITS

    @property
    def is_float(self) -> bool:
        return self in (ElementKind.FLOAT32, ElementKind.FLOAT64)

    @property
    def is_numeric(self) -> bool:
        return self.is_integer or self.is_float

    @property
    def bits(self) -> Optional[int]:
        return _INTEGER_BITS.get(self)

    @property
    def numpy_dtype(self) -> np.dtype:
        return _NUMPY_DTYPES[self]

    @property
    def torch_dtype(self) -> Optional[torch.dtype]:
        return _TORCH_DTYPES.get(self)

    def __str__(self) -> str:
        return self.value


KindLike = Union[ElementKind, str, np.dtype, torch.dtype, type]

_INTEGER_BITS: Dict[ElementKind, int] = {
    ElementKind.INT8: 8,
    ElementKind.UINT8: 8,
    ElementKind.INT32: 32,
    ElementKind.INT64: 64,
}

_NUMPY_DTYPES: Dict[ElementKind, np.dtype] = {
    ElementKind.BOOL: np.dtype(np.bool_),
    ElementKind.INT8: np.dtype(np.int8),
    ElementKind.UINT8: np.dtype(np.uint8),
    ElementKind.INT32: np.dtype(np.int32),
    ElementKind.INT64: np.dtype(np.int64),
    ElementKind.FLOAT32: np.dtype(np.float32),
    ElementKind.FLOAT64: np.dtype(np.float64),
    ElementKind.TEXT: np.dtype(object),
}

_TORCH_DTYPES: Dict[ElementKind, torch.dtype] = {
    ElementKind.BOOL: torch.bool,
    ElementKind.INT8: torch.int8,
    ElementKind.UINT8: torch.uint8,
    ElementKind.INT32: torch.int32,
    ElementKind.INT64: torch.int64,
    ElementKind.FLOAT32: torch.float32,
    ElementKind.FLOAT64: torch.float64,
}

# Aliases accepted when a kind is given by name.
_NAME_ALIASES: Dict[str, ElementKind] = {
    "bool": ElementKind.BOOL,
    "boolean": ElementKind.BOOL,
    "int8": ElementKind.INT8,
    "uint8": ElementKind.UINT8,
    "int32": ElementKind.INT32,
    "int64": ElementKind.INT64,
    "float32": ElementKind.FLOAT32,
    "float64": ElementKind.FLOAT64,
    "string": ElementKind.TEXT,
    "text": ElementKind.TEXT,
    "str": ElementKind.TEXT,
}


def kind_from_str(dt: str) -> ElementKind:
    key = dt.lower()
    if key not in _NAME_ALIASES:
        raise ValueError(f"Unsupported dataType '{dt}'")
    return _NAME_ALIASES[key]


def kind_from_numpy(dtype: Any) -> ElementKind:
    dt = np.dtype(dtype)
    if dt.kind in ("U", "S"):
        return ElementKind.TEXT
    for kind, candidate in _NUMPY_DTYPES.items():
        if candidate == dt and kind is not ElementKind.TEXT:
            return kind
    raise TypeError(f"Unsupported numpy dtype: {dt}")


def kind_from_torch(dtype: torch.dtype) -> ElementKind:
    for kind, candidate in _TORCH_DTYPES.items():
        if candidate == dtype:
            return kind
    raise TypeError(f"Unsupported torch dtype: {dtype}")


def as_kind(kind: KindLike) -> ElementKind:
    """Normalise any accepted kind spelling to an :class:`ElementKind`."""
    if isinstance(kind, ElementKind):
        return kind
    if isinstance(kind, str):
        return kind_from_str(kind)
    if isinstance(kind, torch.dtype):
        return kind_from_torch(kind)
    if kind is bool:
        return ElementKind.BOOL
    if kind is int:
        return ElementKind.INT64
    if kind is float:
        return ElementKind.FLOAT64
    if kind in (str, bytes):
        return ElementKind.TEXT
    return kind_from_numpy(kind)


__all__ = [
    "ElementKind",
    "KindLike",
    "as_kind",
    "kind_from_numpy",
    "kind_from_str",
    "kind_from_torch",
]
