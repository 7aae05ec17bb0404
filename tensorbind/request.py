"""Fluent request protocol: bind named inputs, request outputs, submit once.

>>> result = (
...     RequestBuilder(backend)
...     .bind_input("x", [1, 2], kind="int32")
...     .bind_input("y", [3, 4], kind="int32")
...     .request_output("sum")
...     .submit()
... )
>>> result.as_array("sum", "float64")
[4.0, 6.0]

A builder is single-use and must stay on one thread from construction
until ``submit()`` returns; nothing here takes a lock.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from .buffers import FlatBuffer, to_buffer
from .errors import (
    BackendExecutionError,
    DuplicateBindingError,
    InvalidStateError,
    ShapeMismatchError,
    TensorBindError,
    UnknownBindingError,
)
from .kinds import ElementKind, KindLike, as_kind
from .results import ExecutionResult

logger = logging.getLogger(__name__)

DEFAULT_SIGNATURE = "serving_default"

DeclaredShape = Optional[Tuple[Optional[int], ...]]


@dataclass
class TensorSpec:
    """Declared kind and shape of one signature input or output.

    ``shape`` is ``None`` when unknown; ``None`` or negative entries are
    dynamic extents.
    """

    kind: ElementKind
    shape: DeclaredShape = None

    def __post_init__(self):
        self.kind = as_kind(self.kind)
        if self.shape is not None:
            self.shape = tuple(
                None if d is None or int(d) < 0 else int(d) for d in self.shape
            )


SpecLike = Union[TensorSpec, KindLike, Tuple[KindLike, Optional[Sequence[Optional[int]]]]]


def _spec_from(value: SpecLike) -> TensorSpec:
    if isinstance(value, TensorSpec):
        return value
    if isinstance(value, tuple):
        kind, shape = value
        return TensorSpec(as_kind(kind), tuple(shape) if shape is not None else None)
    return TensorSpec(as_kind(value))


@dataclass
class Signature:
    id: str
    inputs: Dict[str, TensorSpec] = field(default_factory=dict)
    outputs: Dict[str, TensorSpec] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        signature_id: str,
        inputs: Mapping[str, SpecLike],
        outputs: Mapping[str, SpecLike],
    ) -> "Signature":
        return cls(
            signature_id,
            {name: _spec_from(v) for name, v in inputs.items()},
            {name: _spec_from(v) for name, v in outputs.items()},
        )

    @property
    def input_names(self) -> List[str]:
        return list(self.inputs)

    @property
    def output_names(self) -> List[str]:
        return list(self.outputs)

    def _spec(self, name: str) -> TensorSpec:
        if name in self.inputs:
            return self.inputs[name]
        if name in self.outputs:
            return self.outputs[name]
        raise UnknownBindingError(f"'{name}' is not declared by signature '{self.id}'", [name])

    def declared_kind(self, name: str) -> ElementKind:
        return self._spec(name).kind

    def declared_shape(self, name: str) -> DeclaredShape:
        return self._spec(name).shape


class Backend(Protocol):
    """What the engine needs from a computation backend."""

    def signature(self, signature_id: str) -> Signature:
        ...

    def execute(
        self,
        signature_id: str,
        inputs: Mapping[str, FlatBuffer],
        requested_outputs: Sequence[str],
    ) -> Mapping[str, Any]:
        ...


class RequestState(Enum):
    BUILDING = "building"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class _Binding:
    name: str
    value: Any
    kind: Optional[ElementKind]


def resolve_signature_id(backend: Backend, signature_id: Optional[str] = None) -> str:
    """Return ``signature_id``, else the backend's ``default_signature``, else ``DEFAULT_SIGNATURE``."""
    if signature_id is not None:
        return signature_id
    return getattr(backend, "default_signature", None) or DEFAULT_SIGNATURE


def _check_shape(name: str, actual: Tuple[int, ...], declared: DeclaredShape) -> None:
    if declared is None:
        return
    if len(declared) != len(actual) or any(
        d is not None and d != a for d, a in zip(declared, actual)
    ):
        raise ShapeMismatchError(
            f"Input '{name}' has shape {list(actual)}, signature declares {list(declared)}",
            expected=list(declared),
            actual=list(actual),
        )


class RequestBuilder:
    def __init__(self, backend: Backend, signature: Optional[str] = None):
        self._backend = backend
        self._signature_id = signature
        self._bindings: Dict[str, _Binding] = {}
        self._outputs: List[str] = []
        self._state = RequestState.BUILDING
        self.result: Optional[ExecutionResult] = None
        self.error: Optional[BaseException] = None

    @property
    def state(self) -> RequestState:
        return self._state

    @property
    def signature_id(self) -> str:
        return resolve_signature_id(self._backend, self._signature_id)

    @property
    def input_names(self) -> List[str]:
        return list(self._bindings)

    @property
    def output_names(self) -> List[str]:
        return list(self._outputs)

    def _require_building(self, action: str) -> None:
        if self._state is not RequestState.BUILDING:
            raise InvalidStateError(
                f"Cannot {action}: request is already {self._state.value}", self._state
            )

    # -- building ---------------------------------------------------------------
    def bind_input(
        self, name: str, value: Any, kind: Optional[KindLike] = None
    ) -> "RequestBuilder":
        self._require_building(f"bind input '{name}'")
        if name in self._bindings:
            raise DuplicateBindingError(name)
        self._bindings[name] = _Binding(name, value, as_kind(kind) if kind is not None else None)
        return self

    def request_output(self, name: str) -> "RequestBuilder":
        self._require_building(f"request output '{name}'")
        if name not in self._outputs:
            self._outputs.append(name)
        return self

    def select_signature(self, identifier: str) -> "RequestBuilder":
        self._require_building(f"select signature '{identifier}'")
        self._signature_id = identifier
        return self

    # -- submission -------------------------------------------------------------
    def submit(self) -> ExecutionResult:
        self._require_building("submit")
        self._state = RequestState.SUBMITTED
        signature_id = self.signature_id
        try:
            signature = self._call_backend(signature_id, self._backend.signature, signature_id)
            outputs = self._validate(signature)
            feeds = self._marshal(signature)
            logger.info(
                "Submitting '%s': inputs=%s outputs=%s", signature_id, list(feeds), outputs
            )
            raw = self._call_backend(
                signature_id, self._backend.execute, signature_id, feeds, outputs
            )
            result = ExecutionResult(self._collect(signature, outputs, raw), signature_id)
        except Exception as exc:
            self._state = RequestState.FAILED
            if self.error is None:
                self.error = exc
            raise
        self._state = RequestState.COMPLETED
        self.result = result
        logger.info("Completed '%s' with outputs %s", signature_id, list(result))
        return result

    def _call_backend(self, signature_id: str, fn, *args):
        try:
            return fn(*args)
        except TensorBindError:
            raise
        except Exception as exc:
            self.error = exc
            raise BackendExecutionError(
                f"Backend failed while running '{signature_id}': {exc}", signature_id
            ) from exc

    def _validate(self, signature: Signature) -> List[str]:
        unknown = [n for n in self._bindings if n not in signature.inputs]
        if unknown:
            raise UnknownBindingError(
                f"Signature '{signature.id}' has no input(s) {unknown}; "
                f"declared: {signature.input_names}",
                unknown,
            )
        unknown = [n for n in self._outputs if n not in signature.outputs]
        if unknown:
            raise UnknownBindingError(
                f"Signature '{signature.id}' has no output(s) {unknown}; "
                f"declared: {signature.output_names}",
                unknown,
            )
        missing = [n for n in signature.inputs if n not in self._bindings]
        if missing:
            raise UnknownBindingError(
                f"Missing required input(s) {missing} for signature '{signature.id}'",
                missing,
            )
        if not self._outputs:
            logger.info("No outputs requested; fetching all of %s", signature.output_names)
            return signature.output_names
        return list(self._outputs)

    def _marshal(self, signature: Signature) -> Dict[str, FlatBuffer]:
        feeds: Dict[str, FlatBuffer] = {}
        for name, binding in self._bindings.items():
            declared = signature.inputs[name]
            # The declared kind stands in for inference unless the caller named one.
            buffer = to_buffer(binding.value, binding.kind or declared.kind)
            if buffer.kind is not declared.kind:
                logger.debug("Input '%s': %s -> %s", name, buffer.kind, declared.kind)
                buffer = buffer.astype(declared.kind)
            _check_shape(name, buffer.shape, declared.shape)
            feeds[name] = buffer
        return feeds

    def _collect(
        self, signature: Signature, outputs: Sequence[str], raw: Mapping[str, Any]
    ) -> Dict[str, FlatBuffer]:
        missing = [n for n in outputs if n not in raw]
        if missing:
            raise BackendExecutionError(
                f"Backend returned no value for output(s) {missing}", signature.id
            )
        extra = [n for n in raw if n not in outputs]
        if extra:
            logger.warning("Dropping unrequested output(s) %s from '%s'", extra, signature.id)
        collected: Dict[str, FlatBuffer] = {}
        for name in outputs:
            value = raw[name]
            if not isinstance(value, FlatBuffer):
                value = to_buffer(value, signature.outputs[name].kind)
            collected[name] = value
        return collected

    def __repr__(self) -> str:
        return (
            f"RequestBuilder(signature={self.signature_id!r}, state={self._state.value}, "
            f"inputs={self.input_names}, outputs={self.output_names})"
        )


class Model:
    """A backend plus a signature: the host-facing entry point.

    >>> model = Model(backend).with_signature("serving_default")
    >>> model.run({"a": "foo", "b": "bar"}, ["concat"]).as_scalar("concat")
    'foobar'
    """

    def __init__(self, backend: Backend, signature: Optional[str] = None):
        self._backend = backend
        self._signature_id = signature

    @property
    def backend(self) -> Backend:
        return self._backend

    def with_signature(self, signature_id: str) -> "Model":
        return Model(self._backend, signature_id)

    def signature_info(self) -> Signature:
        return self._backend.signature(resolve_signature_id(self._backend, self._signature_id))

    def request(self) -> RequestBuilder:
        return RequestBuilder(self._backend, self._signature_id)

    def run(
        self,
        inputs: Mapping[str, Any],
        outputs: Optional[Sequence[str]] = None,
    ) -> ExecutionResult:
        builder = self.request()
        for name, value in inputs.items():
            builder.bind_input(name, value)
        for name in outputs or ():
            builder.request_output(name)
        return builder.submit()

    def __repr__(self) -> str:
        return f"Model(backend={type(self._backend).__name__}, signature={self._signature_id!r})"


__all__ = [
    "Backend",
    "DEFAULT_SIGNATURE",
    "Model",
    "RequestBuilder",
    "RequestState",
    "Signature",
    "TensorSpec",
    "resolve_signature_id",
]
