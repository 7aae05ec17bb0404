"""Typed failures raised by the marshalling engine and the binding protocol.

Each error also derives from the builtin it specialises, so code that
catches ``ValueError``/``KeyError``/``RuntimeError`` keeps working.
"""

from typing import Any, Iterable, Optional, Sequence, Tuple


class TensorBindError(Exception):
    """Base class for every error raised by tensorbind."""


class StructuralError(TensorBindError, ValueError):
    """A nested array is jagged, or a buffer disagrees with its shape."""

    def __init__(self, message: str, path: Optional[Sequence[int]] = None):
        if path:
            message = f"{message} (at index {list(path)})"
        super().__init__(message)
        self.path = tuple(path) if path else ()


class EmptyArrayError(TensorBindError, ValueError):
    """The element kind of an array cannot be inferred because it is empty."""

    def __init__(self, shape: Tuple[int, ...]):
        super().__init__(
            f"Cannot infer element kind of empty array with shape {list(shape)}; "
            "pass the kind explicitly"
        )
        self.shape = shape


class CoercionError(TensorBindError, ValueError):
    def __init__(self, from_kind: Any, to_kind: Any, value: Any, reason: str = ""):
        message = f"Cannot convert {value!r} from '{from_kind}' to '{to_kind}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.from_kind = from_kind
        self.to_kind = to_kind
        self.value = value


class ShapeMismatchError(TensorBindError, ValueError):
    def __init__(self, message: str, expected: Any = None, actual: Any = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class DuplicateBindingError(TensorBindError, ValueError):
    def __init__(self, name: str):
        super().__init__(f"Input '{name}' is already bound in this request")
        self.name = name


class UnknownBindingError(TensorBindError, KeyError):
    def __init__(self, message: str, names: Iterable[str] = ()):
        super().__init__(message)
        self.message = message
        self.names = tuple(names)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message.
        return self.message


class InvalidStateError(TensorBindError, RuntimeError):
    def __init__(self, message: str, state: Any = None):
        super().__init__(message)
        self.state = state


class BackendExecutionError(TensorBindError, RuntimeError):
    """Raised from the backend's own exception, kept as ``__cause__``."""

    def __init__(self, message: str, signature_id: Optional[str] = None):
        super().__init__(message)
        self.signature_id = signature_id


__all__ = [
    "BackendExecutionError",
    "CoercionError",
    "DuplicateBindingError",
    "EmptyArrayError",
    "InvalidStateError",
    "ShapeMismatchError",
    "StructuralError",
    "TensorBindError",
    "UnknownBindingError",
]
