"""A small in-process backend that runs Python callables over torch tensors.

It implements the :class:`~tensorbind.request.Backend` protocol so requests
can be exercised without an external engine:

>>> from tensorbind import Model, TorchBackend
>>> backend = TorchBackend(device="cpu")
>>> backend.register(
...     "serving_default",
...     lambda x, y: {"sum": x + y},
...     inputs={"x": "int32", "y": "int32"},
...     outputs={"sum": "int32"},
... )
>>> Model(backend).run({"x": [1, 2], "y": [3, 4]}, ["sum"]).as_array("sum")
[4, 6]

Numeric inputs reach the callable as tensors on the backend's device;
text inputs arrive as numpy object arrays of ``str`` since torch has no
string tensors.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

import torch

from .buffers import FlatBuffer, to_buffer
from .kinds import ElementKind
from .request import DEFAULT_SIGNATURE, Signature, SpecLike

logger = logging.getLogger(__name__)

DEVICE_ENV_VAR = "TENSORBIND_DEVICE"


# Probed in order; the first available one wins.
_ACCELERATORS = ("cuda", "xpu", "npu", "mps")


def _accelerator_available(name: str) -> bool:
    # mps lives under torch.backends, the others directly on torch.
    owner = torch.backends if name == "mps" else torch
    module = getattr(owner, name, None)
    if module is None:
        return False
    try:
        available = module.is_available()
        if name == "mps":
            available = available and module.is_built()
    except Exception:
        # a broken driver reads as unavailable
        return False
    return bool(available)


def _auto_select_device() -> torch.device:
    """Return the first available accelerator, otherwise CPU."""
    for name in _ACCELERATORS:
        if _accelerator_available(name):
            logger.debug("Auto-selected device '%s'", name)
            return torch.device(name)
    return torch.device("cpu")


def _resolve_device(device_like: Optional[Union[str, torch.device]]) -> torch.device:
    if device_like is None:
        device_like = os.environ.get(DEVICE_ENV_VAR) or None
    if device_like is None:
        return _auto_select_device()
    if isinstance(device_like, torch.device):
        return device_like
    return torch.device(device_like)


def _buffer_to_input(buffer: FlatBuffer, device: torch.device) -> Any:
    if buffer.kind is ElementKind.TEXT:
        return buffer.to_numpy()
    return torch.from_numpy(buffer.to_numpy()).to(device)


def _output_to_buffer(value: Any, kind: ElementKind) -> FlatBuffer:
    if isinstance(value, torch.Tensor):
        value = value.detach().cpu().numpy()
    return to_buffer(value, kind)


@dataclass
class _Computation:
    signature: Signature
    fn: Callable[..., Any]


class TorchBackend:
    """Registry of named computations executed eagerly with torch."""

    def __init__(
        self,
        device: Optional[Union[str, torch.device]] = None,
        default_signature: str = DEFAULT_SIGNATURE,
    ):
        self._device = _resolve_device(device)
        self.default_signature = default_signature
        self._computations: Dict[str, _Computation] = {}

    @property
    def device(self) -> torch.device:
        return self._device

    def register(
        self,
        signature_id: str,
        fn: Callable[..., Any],
        inputs: Mapping[str, SpecLike],
        outputs: Mapping[str, SpecLike],
    ) -> Signature:
        if not outputs:
            raise ValueError(f"Signature '{signature_id}' must declare at least one output")
        signature = Signature.build(signature_id, inputs, outputs)
        self._computations[signature_id] = _Computation(signature, fn)
        logger.debug(
            "Registered '%s': inputs=%s outputs=%s",
            signature_id,
            signature.input_names,
            signature.output_names,
        )
        return signature

    def _computation(self, signature_id: str) -> _Computation:
        if signature_id not in self._computations:
            raise KeyError(
                f"Unknown signature '{signature_id}'; registered: {list(self._computations)}"
            )
        return self._computations[signature_id]

    def signature(self, signature_id: str) -> Signature:
        return self._computation(signature_id).signature

    def execute(
        self,
        signature_id: str,
        inputs: Mapping[str, FlatBuffer],
        requested_outputs: Sequence[str],
    ) -> Dict[str, FlatBuffer]:
        comp = self._computation(signature_id)
        feeds = {name: _buffer_to_input(buf, self._device) for name, buf in inputs.items()}
        with torch.no_grad():
            produced = comp.fn(**feeds)
        if not isinstance(produced, Mapping):
            if len(comp.signature.outputs) != 1:
                raise TypeError(
                    f"Computation '{signature_id}' declares {comp.signature.output_names}; "
                    "it must return a dict of outputs"
                )
            produced = {comp.signature.output_names[0]: produced}
        results: Dict[str, FlatBuffer] = {}
        for name in requested_outputs:
            if name not in produced:
                raise KeyError(f"Computation '{signature_id}' did not produce output '{name}'")
            results[name] = _output_to_buffer(produced[name], comp.signature.outputs[name].kind)
        return results

    def __repr__(self) -> str:
        return f"TorchBackend(device={self._device}, signatures={list(self._computations)})"


__all__ = ["DEVICE_ENV_VAR", "TorchBackend"]
