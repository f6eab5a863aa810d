"""In-process message links and the model exchange carried over them."""

from __future__ import annotations

import queue
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

import numpy as np

TERMINATION_SIGNAL = -1
_TERMINATION_PADDING = 0


def _empty_weights() -> np.ndarray:
    return np.zeros(0, dtype=np.float32)


@dataclass
class LogisticModel:
    """A binary logistic model: one weight per feature and a bias."""

    weights: np.ndarray = field(default_factory=_empty_weights)
    bias: float = 0.0

    def __post_init__(self) -> None:
        self.weights = np.asarray(self.weights, dtype=np.float32).reshape(-1)
        self.bias = float(np.float32(self.bias))


class Endpoint:
    """One end of a two-way link; messages arrive in the order they were sent."""

    def __init__(self, inbox: "queue.Queue[Any]", outbox: "queue.Queue[Any]") -> None:
        self._inbox = inbox
        self._outbox = outbox

    def send(self, message: Any) -> None:
        """Deliver ``message`` to the other end; arrays are copied, as on a wire."""
        if isinstance(message, np.ndarray):
            message = message.copy()
        self._outbox.put(message)

    def receive(self, timeout: Optional[float] = None) -> Any:
        """Wait for the next message; raise TimeoutError if none comes in time."""
        try:
            return self._inbox.get(timeout=timeout)
        except queue.Empty as exc:
            raise TimeoutError("no message received before the timeout") from exc


def make_link() -> Tuple[Endpoint, Endpoint]:
    """Create two endpoints connected to each other."""
    forward: "queue.Queue[Any]" = queue.Queue()
    backward: "queue.Queue[Any]" = queue.Queue()
    return Endpoint(backward, forward), Endpoint(forward, backward)


def send_model(endpoint: Endpoint, model: LogisticModel) -> None:
    """Send the weight count, the weights and then the bias."""
    weights = np.asarray(model.weights, dtype=np.float32).reshape(-1)
    endpoint.send(int(weights.size))
    endpoint.send(weights)
    endpoint.send(float(np.float32(model.bias)))


def receive_model(endpoint: Endpoint) -> LogisticModel:
    """Receive a model sent by ``send_model``.

    Raises EOFError when the peer sent a termination signal instead.
    """
    dim = int(endpoint.receive())
    if dim == TERMINATION_SIGNAL:
        endpoint.receive()
        raise EOFError("termination signal received")
    if dim < 0:
        raise ValueError(f"invalid weight count {dim}")
    weights = np.asarray(endpoint.receive(), dtype=np.float32).reshape(-1)
    if weights.size != dim:
        raise ValueError(f"expected {dim} weights, got {weights.size}")
    bias = endpoint.receive()
    return LogisticModel(weights=weights, bias=bias)


def average_models(models: Sequence[LogisticModel]) -> LogisticModel:
    """Element-wise mean of the models' weights and biases."""
    if not models:
        return LogisticModel()
    dim = models[0].weights.size
    if any(model.weights.size != dim for model in models):
        raise ValueError("all models must have the same number of weights")
    count = np.float32(len(models))
    total = np.zeros(dim, dtype=np.float32)
    bias = np.float32(0.0)
    for model in models:
        total += model.weights
        bias += np.float32(model.bias)
    return LogisticModel(weights=total / count, bias=bias / count)


def send_termination_signal(endpoint: Endpoint) -> None:
    """Tell the peer to stop: the signal followed by a padding value."""
    endpoint.send(TERMINATION_SIGNAL)
    endpoint.send(_TERMINATION_PADDING)