"""Task configuration: data model, validation and the shareable link format.

A task is described by a JSON object (camelCase keys)::

    {
      "lang": "en",
      "welcomeText": "...",
      "go":   {"type": "image", "src": "https://..."},
      "nogo": {"type": "image", "src": "data:image/png;base64,..."},
      "stages": [
        {"name": "trial", "welcomeText": "...", "steps": ["G500", "B250", "N500"]},
        {"name": "main", "welcomeText": "...", "totalTimeMs": 60000, "steps": ["G500", "N500"]}
      ]
    }

and is shared as ``<page url>#v1/<base64 of the JSON>``.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from .errors import ConfigError
from .steps import ParsedStep
from .strings import Locale

LINK_PREFIX = "v1/"

_CSS_COLOR_RE = re.compile(r"^#?[a-zA-Z0-9().,%\s]+$")
_BASE64_IMAGE_RE = re.compile(r"^data:image/(png|jpeg|jpg|svg\+xml);base64,")
_STEP_TOKEN_RE = re.compile(r"^[GNB][1-9][0-9]*$")
_ALLOWED_URL_SCHEMES = ("http", "https")


@dataclass(slots=True)
class Resource:
    source: str
    kind: str = "image"
    # Set by the engine after preloading; owned by the engine for the run.
    loaded_handle: object | None = field(default=None, compare=False, repr=False)


@dataclass(slots=True)
class StageConfig:
    name: str
    welcome_text: str
    step_tokens: tuple[str, ...]
    total_time_ms: int | None = None  # None or 0 runs the step list once
    parsed_steps: tuple[ParsedStep, ...] | None = field(default=None, compare=False)

    @property
    def is_practice(self) -> bool:
        return self.name.lower() == "trial"


@dataclass(slots=True)
class TaskConfig:
    locale: Locale
    welcome_text: str
    go: Resource
    nogo: Resource
    stages: tuple[StageConfig, ...]
    text_color: str | None = None
    background_color: str | None = None
    text_size: float | None = None


def parse_config(data: object) -> TaskConfig:
    """Validate a decoded JSON object and build a TaskConfig."""

    root = _require_mapping(data, "config")

    try:
        locale = Locale(root.get("lang"))
    except ValueError:
        raise ConfigError(f"lang: invalid locale {root.get('lang')!r}") from None

    raw_stages = root.get("stages")
    if not isinstance(raw_stages, list) or not raw_stages:
        raise ConfigError("stages: must be a non-empty list")

    return TaskConfig(
        locale=locale,
        welcome_text=_require_str(root, "welcomeText", "welcomeText"),
        go=_parse_resource(root.get("go"), "go"),
        nogo=_parse_resource(root.get("nogo"), "nogo"),
        stages=tuple(_parse_stage(s, f"stages[{i}]") for i, s in enumerate(raw_stages)),
        text_color=_optional_color(root, "textColor"),
        background_color=_optional_color(root, "backgroundColor"),
        text_size=_optional_positive_number(root, "textSize"),
    )


def config_to_dict(config: TaskConfig) -> dict[str, Any]:
    out: dict[str, Any] = {"lang": config.locale.value}
    if config.text_color is not None:
        out["textColor"] = config.text_color
    if config.background_color is not None:
        out["backgroundColor"] = config.background_color
    if config.text_size is not None:
        out["textSize"] = config.text_size
    out["welcomeText"] = config.welcome_text
    out["go"] = {"type": config.go.kind, "src": config.go.source}
    out["nogo"] = {"type": config.nogo.kind, "src": config.nogo.source}
    stages = []
    for stage in config.stages:
        item: dict[str, Any] = {"name": stage.name, "welcomeText": stage.welcome_text}
        if stage.total_time_ms is not None:
            item["totalTimeMs"] = stage.total_time_ms
        item["steps"] = list(stage.step_tokens)
        stages.append(item)
    out["stages"] = stages
    return out


def load_config(path: Path) -> TaskConfig:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: invalid JSON: {exc}") from exc
    return parse_config(payload)


def decode_config_link(link: str) -> TaskConfig:
    """Accept a full URL, a ``#v1/...`` fragment or a bare ``v1/...`` payload."""

    text = link.strip()
    if "#" in text:
        text = text.split("#", 1)[1]
    if not text.startswith(LINK_PREFIX):
        raise ConfigError("config link: invalid prefix")
    try:
        decoded = base64.b64decode(text[len(LINK_PREFIX):], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ConfigError(f"config link: invalid base64 payload: {exc}") from exc
    try:
        payload = json.loads(decoded)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"config link: invalid JSON: {exc}") from exc
    return parse_config(payload)


def encode_config_link(config_json: str, base_url: str) -> str:
    encoded = base64.b64encode(config_json.encode("utf-8")).decode("ascii")
    base = base_url.split("#", 1)[0]
    return f"{base}#{LINK_PREFIX}{encoded}"


def _parse_stage(data: object, where: str) -> StageConfig:
    stage = _require_mapping(data, where)

    name = _require_str(stage, "name", f"{where}.name")
    if name == "":
        raise ConfigError(f"{where}.name: must not be empty")

    total = stage.get("totalTimeMs")
    if total is not None and (not _is_int(total) or total < 0):
        raise ConfigError(f"{where}.totalTimeMs: must be an integer >= 0")

    steps = stage.get("steps")
    if not isinstance(steps, list):
        raise ConfigError(f"{where}.steps: must be a list")
    for i, token in enumerate(steps):
        if not isinstance(token, str) or not _STEP_TOKEN_RE.match(token):
            raise ConfigError(f"{where}.steps[{i}]: invalid step {token!r}")

    return StageConfig(
        name=name,
        welcome_text=_require_str(stage, "welcomeText", f"{where}.welcomeText"),
        step_tokens=tuple(steps),
        total_time_ms=total,
    )


def _parse_resource(data: object, where: str) -> Resource:
    res = _require_mapping(data, where)
    if res.get("type") != "image":
        raise ConfigError(f"{where}.type: must be 'image'")
    src = _require_str(res, "src", f"{where}.src")
    if not _BASE64_IMAGE_RE.match(src):
        parts = urlsplit(src)
        if parts.scheme not in _ALLOWED_URL_SCHEMES or not parts.netloc:
            raise ConfigError(f"{where}.src: must be an http(s) URL or base64 image data")
    return Resource(source=src)


def _optional_color(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not _CSS_COLOR_RE.match(value):
        raise ConfigError(f"{key}: invalid color {value!r}")
    return value


def _optional_positive_number(data: Mapping[str, Any], key: str) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{key}: must be a positive number")
    return float(value)


def _require_mapping(data: object, where: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ConfigError(f"{where}: must be an object")
    return data


def _require_str(data: Mapping[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ConfigError(f"{where}: must be a string")
    return value


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
