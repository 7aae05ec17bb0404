"""Typed, read-only access to the buffers a backend returned."""

from types import MappingProxyType
from typing import Any, Iterator, List, Mapping, Optional, Union

import numpy as np
import torch

from .buffers import FlatBuffer, coerced_values, from_buffer
from .errors import CoercionError, ShapeMismatchError, UnknownBindingError
from .kinds import ElementKind, KindLike, as_kind
from .shapes import Shape


class ResultView:
    """Accessors over one output buffer.

    Every call converts from the buffer's own kind to the requested one, so
    the same output can be read as ``int32`` and as ``float64``.
    """

    def __init__(self, name: str, buffer: FlatBuffer):
        self.name = name
        self.buffer = buffer

    @property
    def kind(self) -> ElementKind:
        return self.buffer.kind

    @property
    def shape(self) -> Shape:
        return self.buffer.shape

    def as_scalar(self, kind: Optional[KindLike] = None) -> Any:
        # A single element of any rank is accepted: [], [1], [1, 1], ...
        if self.buffer.size != 1:
            raise ShapeMismatchError(
                f"Output '{self.name}' with shape {list(self.shape)} holds "
                f"{self.buffer.size} elements, not a scalar",
                expected=[],
                actual=list(self.shape),
            )
        return coerced_values(self.buffer, kind).tolist()[0]

    def as_array(self, kind: Optional[KindLike] = None) -> List[Any]:
        if self.buffer.rank != 1:
            raise ShapeMismatchError(
                f"Output '{self.name}' has rank {self.buffer.rank}; as_array needs rank 1",
                expected=1,
                actual=list(self.shape),
            )
        return from_buffer(self.buffer, kind)

    def as_multidimensional(self, kind: Optional[KindLike] = None) -> Any:
        return from_buffer(self.buffer, kind)

    def as_numpy(self, kind: Optional[KindLike] = None) -> np.ndarray:
        return self.buffer.to_numpy(kind)

    def as_tensor(
        self,
        kind: Optional[KindLike] = None,
        device: Optional[Union[str, torch.device]] = None,
    ) -> torch.Tensor:
        target = self.kind if kind is None else as_kind(kind)
        if target.torch_dtype is None:
            raise CoercionError(self.kind, target, self.name, "torch has no text tensors")
        t = torch.from_numpy(self.buffer.to_numpy(target))
        if device is not None:
            t = t.to(device)
        return t

    def argmax(self) -> Union[int, List[int]]:
        """Index of the largest element (rank 1) or of each row (rank 2)."""
        if self.kind is ElementKind.TEXT:
            raise CoercionError(self.kind, ElementKind.FLOAT64, self.name, "argmax needs numbers")
        values = self.buffer.to_numpy()
        if values.ndim == 1 and values.size:
            return int(np.argmax(values))
        if values.ndim == 2 and values.shape[1]:
            return [int(i) for i in np.argmax(values, axis=1)]
        raise ShapeMismatchError(
            f"argmax needs a non-empty rank 1 or rank 2 output, '{self.name}' "
            f"has shape {list(self.shape)}",
            actual=list(self.shape),
        )

    def __repr__(self) -> str:
        return f"ResultView(name={self.name!r}, kind={self.kind}, shape={list(self.shape)})"


class ExecutionResult(Mapping):
    """Immutable mapping of output name to :class:`FlatBuffer`."""

    def __init__(self, buffers: Mapping[str, FlatBuffer], signature_id: Optional[str] = None):
        self._buffers = MappingProxyType(dict(buffers))
        self.signature_id = signature_id

    def __getitem__(self, name: str) -> FlatBuffer:
        if name not in self._buffers:
            raise UnknownBindingError(
                f"Output '{name}' was not requested; available: {list(self._buffers)}",
                [name],
            )
        return self._buffers[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._buffers)

    def __len__(self) -> int:
        return len(self._buffers)

    def view(self, name: str) -> ResultView:
        return ResultView(name, self[name])

    def as_scalar(self, name: str, kind: Optional[KindLike] = None) -> Any:
        return self.view(name).as_scalar(kind)

    def as_array(self, name: str, kind: Optional[KindLike] = None) -> List[Any]:
        return self.view(name).as_array(kind)

    def as_multidimensional(self, name: str, kind: Optional[KindLike] = None) -> Any:
        return self.view(name).as_multidimensional(kind)

    def __repr__(self) -> str:
        outputs = {name: buf.kind.value for name, buf in self._buffers.items()}
        return f"ExecutionResult(signature={self.signature_id!r}, outputs={outputs})"


__all__ = ["ExecutionResult", "ResultView"]
