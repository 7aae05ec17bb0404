"""
tensorbind: marshal nested arrays to flat buffers and bind them to named
computations.

The engine has three stateless layers and one stateful protocol object:

- ``shapes``: rank, extents and element kind of an arbitrarily nested array
  (lists, tuples, numpy arrays, torch tensors), rejecting jagged input.
- ``coercion``: a dense pairwise conversion table between element kinds
  (bool, int8, uint8, int32, int64, float32, float64, text).
- ``buffers``: ``FlatBuffer`` (kind + shape + row-major data) and the
  ``to_buffer`` / ``from_buffer`` pair, including the text byte dimension.
- ``request``: ``RequestBuilder``, a single-use fluent request that binds
  named inputs, requests named outputs and submits them to a backend.

Results come back as an ``ExecutionResult`` whose ``ResultView`` accessors
coerce lazily on each call.

Usage
-----
>>> from tensorbind import ElementKind, Model, TorchBackend
>>> backend = TorchBackend(device="cpu")
>>> backend.register(
...     "serving_default",
...     lambda a, b: a + b,
...     inputs={"a": "string", "b": "string"},
...     outputs={"concat": "string"},
... )
>>> result = Model(backend).request().bind_input("a", "foo").bind_input("b", "bar") \\
...     .request_output("concat").submit()
>>> result.as_scalar("concat", ElementKind.TEXT)
'foobar'
"""

from .buffers import FlatBuffer, coerced_values, decode_text, encode_text, from_buffer, stack, to_buffer
from .coercion import byte_unsigned, coerce, coerce_array, converter
from .errors import (
    BackendExecutionError,
    CoercionError,
    DuplicateBindingError,
    EmptyArrayError,
    InvalidStateError,
    ShapeMismatchError,
    StructuralError,
    TensorBindError,
    UnknownBindingError,
)
from .kinds import ElementKind, as_kind
from .request import DEFAULT_SIGNATURE, Backend, Model, RequestBuilder, RequestState, Signature, TensorSpec
from .results import ExecutionResult, ResultView
from .shapes import first_dimension_values, first_element, infer_kind, infer_shape, inspect
from .torch_backend import TorchBackend

__version__ = "0.1.0"

__all__ = [
    "Backend",
    "BackendExecutionError",
    "CoercionError",
    "DEFAULT_SIGNATURE",
    "DuplicateBindingError",
    "ElementKind",
    "EmptyArrayError",
    "ExecutionResult",
    "FlatBuffer",
    "InvalidStateError",
    "Model",
    "RequestBuilder",
    "RequestState",
    "ResultView",
    "ShapeMismatchError",
    "Signature",
    "StructuralError",
    "TensorBindError",
    "TensorSpec",
    "TorchBackend",
    "UnknownBindingError",
    "as_kind",
    "byte_unsigned",
    "coerce",
    "coerce_array",
    "coerced_values",
    "converter",
    "decode_text",
    "encode_text",
    "first_dimension_values",
    "first_element",
    "from_buffer",
    "infer_kind",
    "infer_shape",
    "inspect",
    "stack",
    "to_buffer",
]
