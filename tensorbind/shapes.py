"""Shape and element-kind discovery for arbitrarily nested arrays.

A nested array is a Python scalar, a list/tuple of nested arrays, a numpy
array or a torch tensor. Rank and extents are found by following the first
child at each level; every node is then visited to reject jagged input.
"""

import logging
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import torch

from .errors import EmptyArrayError, StructuralError
from .kinds import ElementKind, KindLike, as_kind, kind_from_numpy, kind_from_torch

logger = logging.getLogger(__name__)

Shape = Tuple[int, ...]


def scalar_kind(value: Any) -> ElementKind:
    """Return the element kind of a single non-container value."""
    if isinstance(value, (bool, np.bool_)):
        return ElementKind.BOOL
    if isinstance(value, np.generic):
        return kind_from_numpy(value.dtype)
    if isinstance(value, int):
        return ElementKind.INT64
    if isinstance(value, float):
        return ElementKind.FLOAT64
    if isinstance(value, (str, bytes, bytearray)):
        return ElementKind.TEXT
    raise TypeError(f"Unsupported element type: {type(value)}")


def is_container(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return True
    if isinstance(value, np.ndarray):
        return value.ndim > 0
    if isinstance(value, torch.Tensor):
        return value.dim() > 0
    return False


def children(value: Any) -> Sequence[Any]:
    if isinstance(value, torch.Tensor):
        return list(value.detach().cpu().numpy())
    if isinstance(value, np.ndarray):
        return list(value)
    return value


def as_scalar_value(value: Any) -> Any:
    """Unwrap 0-d numpy arrays and tensors; other scalars pass through."""
    if isinstance(value, torch.Tensor):
        value = value.detach().cpu().numpy()
    if isinstance(value, np.ndarray):
        return value[()]
    return value


def _native_shape(array: Any) -> Optional[Shape]:
    if isinstance(array, torch.Tensor):
        return tuple(int(d) for d in array.shape)
    if isinstance(array, np.ndarray) and array.dtype != object:
        return tuple(int(d) for d in array.shape)
    return None


def _native_kind(array: Any) -> Optional[ElementKind]:
    if isinstance(array, torch.Tensor):
        return kind_from_torch(array.dtype)
    if isinstance(array, np.ndarray) and array.dtype != object:
        return kind_from_numpy(array.dtype)
    return None


def _probe(array: Any) -> Tuple[List[int], Any]:
    dims: List[int] = []
    node = array
    while is_container(node):
        items = children(node)
        dims.append(len(items))
        if not items:
            return dims, None
        node = items[0]
    return dims, as_scalar_value(node)


def _verify(
    node: Any,
    dims: Sequence[int],
    depth: int,
    path: List[int],
    expected_kind: Optional[ElementKind],
) -> None:
    if depth == len(dims):
        if is_container(node):
            raise StructuralError("Found a nested array where a scalar was expected", path)
        if expected_kind is not None:
            actual = scalar_kind(as_scalar_value(node))
            if actual is not expected_kind:
                raise StructuralError(
                    f"Mixed element kinds: expected '{expected_kind}', found '{actual}'",
                    path,
                )
        return
    if not is_container(node):
        raise StructuralError("Found a scalar where a nested array was expected", path)
    items = children(node)
    if len(items) != dims[depth]:
        raise StructuralError(
            f"Jagged array: expected length {dims[depth]} at depth {depth}, "
            f"found {len(items)}",
            path,
        )
    for i, child in enumerate(items):
        path.append(i)
        _verify(child, dims, depth + 1, path, expected_kind)
        path.pop()


def inspect(array: Any, kind: Optional[KindLike] = None) -> Tuple[Shape, ElementKind]:
    """Return ``(shape, kind)`` of ``array``.

    When ``kind`` is given it is returned as-is and leaves may be of any kind
    (they are coerced individually during marshalling); empty arrays are then
    valid. Otherwise the kind is the first leaf's and every leaf must agree.
    """
    target = as_kind(kind) if kind is not None else None
    native = _native_shape(array)
    if native is not None:
        return native, target or _native_kind(array)

    dims, first = _probe(array)
    empty = any(d == 0 for d in dims)
    if target is None:
        if empty:
            raise EmptyArrayError(tuple(dims))
        inferred = scalar_kind(first)
    else:
        inferred = None
    _verify(array, dims, 0, [], inferred)
    shape = tuple(dims)
    logger.debug("Inspected nested array: shape=%s kind=%s", list(shape), target or inferred)
    return shape, target or inferred


def infer_shape(array: Any) -> Shape:
    native = _native_shape(array)
    if native is not None:
        return native
    dims, _ = _probe(array)
    _verify(array, dims, 0, [], None)
    return tuple(dims)


def infer_kind(array: Any) -> ElementKind:
    return inspect(array)[1]


def iter_leaves(array: Any) -> Iterator[Any]:
    """Yield the scalars of an already-verified nested array in row-major order."""
    if is_container(array):
        for child in children(array):
            yield from iter_leaves(child)
    else:
        yield as_scalar_value(array)


def first_element(array: Any) -> Any:
    if array is None:
        return None
    dims, first = _probe(array)
    if any(d == 0 for d in dims):
        raise EmptyArrayError(tuple(dims))
    return first


def first_dimension_values(array: Any) -> List[Any]:
    """For each entry along dimension 0, the first scalar found beneath it."""
    if not is_container(array):
        raise StructuralError("first_dimension_values requires an array of rank >= 1")
    return [first_element(child) for child in children(array)]


__all__ = [
    "Shape",
    "children",
    "first_dimension_values",
    "first_element",
    "infer_kind",
    "infer_shape",
    "inspect",
    "is_container",
    "iter_leaves",
    "scalar_kind",
]
