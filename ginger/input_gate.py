from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

ACTIVATION_KEY = "space"


class InputKind(str, Enum):
    KEY = "key"
    POINTER = "pointer"


@dataclass(slots=True)
class ActivationEvent:
    """A raw participant input delivered by the UI layer.

    ``timestamp_ms`` is on the same monotonic clock as the engine; when None
    the engine reads its clock at handling time. The pygame shell stamps events
    when the frame polls them, so times are quantized to one frame
    (1000 / TARGET_FPS ms).
    """

    kind: InputKind
    key: str | None = None
    timestamp_ms: float | None = None
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


class InputGate:
    """Routes participant input to exactly one place.

    Between timed stages the gate holds at most one armed continuation ("go to
    the next screen"). While a stage runs it forwards the first accepted input
    of each step to ``on_response`` and ignores the rest until ``begin_step()``.
    """

    def __init__(
        self,
        *,
        is_running: Callable[[], bool],
        on_response: Callable[[ActivationEvent], None],
        activation_key: str = ACTIVATION_KEY,
    ) -> None:
        self._is_running = is_running
        self._on_response = on_response
        self._activation_key = activation_key
        self._continuation: Callable[[], None] | None = None
        self._interacted = False

    @property
    def armed(self) -> bool:
        return self._continuation is not None

    @property
    def interacted(self) -> bool:
        return self._interacted

    def arm(self, continuation: Callable[[], None]) -> None:
        # Overwrites any previous continuation.
        self._continuation = continuation

    def disarm(self) -> None:
        self._continuation = None

    def begin_step(self) -> None:
        self._interacted = False

    def accepts(self, event: ActivationEvent) -> bool:
        if event.kind is InputKind.POINTER:
            return True
        return event.kind is InputKind.KEY and event.key == self._activation_key

    def handle(self, event: ActivationEvent) -> bool:
        """Process one input event. Returns True if it was consumed."""

        if not self.accepts(event):
            return False
        if event.kind is InputKind.KEY:
            # Space would otherwise scroll or activate focused widgets.
            event.prevent_default()

        running = self._is_running()
        if not running and self._continuation is not None:
            callback = self._continuation
            self._continuation = None
            callback()
            return True

        if running and not self._interacted:
            self._interacted = True
            self._on_response(event)
            return True

        logger.debug("input ignored (running=%s, interacted=%s)", running, self._interacted)
        return False
