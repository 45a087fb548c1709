from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from .errors import ConfigError


class StepType(str, Enum):
    GO = "GO"
    NOGO = "NOGO"
    BLOCK = "BLOCK"


_TYPE_BY_PREFIX = {
    "G": StepType.GO,
    "N": StepType.NOGO,
    "B": StepType.BLOCK,
}
_PREFIX_BY_TYPE = {v: k for k, v in _TYPE_BY_PREFIX.items()}


@dataclass(frozen=True, slots=True)
class ParsedStep:
    step_type: StepType
    duration_ms: int
    original_token: str

    @property
    def token(self) -> str:
        return f"{_PREFIX_BY_TYPE[self.step_type]}{self.duration_ms}"

    @property
    def is_response_eligible(self) -> bool:
        return self.step_type is not StepType.BLOCK


def parse_step(token: str) -> ParsedStep:
    """Decode a compact step token such as ``G500``, ``N750`` or ``B1000``."""

    if not isinstance(token, str) or token == "":
        raise ConfigError(f"invalid step token: {token!r}")

    step_type = _TYPE_BY_PREFIX.get(token[0])
    if step_type is None:
        raise ConfigError(f"invalid step type in token {token!r}")

    digits = token[1:]
    # str.isdigit() also accepts superscripts and other unicode digits.
    if digits == "" or not (digits.isascii() and digits.isdigit()):
        raise ConfigError(f"invalid step duration in token {token!r}")
    duration_ms = int(digits)
    if duration_ms <= 0:
        raise ConfigError(f"step duration must be > 0 in token {token!r}")

    return ParsedStep(step_type=step_type, duration_ms=duration_ms, original_token=token)


def parse_steps(tokens: Iterable[str]) -> tuple[ParsedStep, ...]:
    return tuple(parse_step(t) for t in tokens)
