"""Pygame UI shell for the Ginger Go/No-Go task.

Deterministic timing/scoring/state lives in ginger/engine.py. This module only
draws what the engine asks for, loads the stimulus images and turns pygame
events into ActivationEvents.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import os
import urllib.error
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import pygame

from .clock import Clock, RealClock, now_ms
from .config import Resource, TaskConfig
from .engine import AssetLoader, EnginePhase, GingerEngine, build_ginger_engine
from .errors import AssetLoadError
from .input_gate import ActivationEvent, InputKind
from .results import ReportArtifacts
from .strings import Strings, strings_for

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 540)
TARGET_FPS = 120
REPORTS_DIR_ENV = "GINGER_REPORTS_DIR"
URL_TIMEOUT_S = 15.0

DEFAULT_TEXT_COLOR = (255, 255, 255)
DEFAULT_BACKGROUND_COLOR = (0, 0, 0)
DEFAULT_TEXT_SIZE = 32.0


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


class App:
    def __init__(self, surface: pygame.Surface) -> None:
        self._surface = surface
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


def parse_color(value: str | None, fallback: tuple[int, int, int]) -> pygame.Color:
    if value is None:
        return pygame.Color(fallback)
    text = value.strip()
    try:
        return pygame.Color(text)
    except ValueError:
        pass
    if not text.startswith("#"):
        try:
            return pygame.Color(f"#{text}")
        except ValueError:
            pass
    logger.warning("unsupported color %r, using default", value)
    return pygame.Color(fallback)


class PygameRenderer:
    """Retained text + image state, drawn centred once per frame."""

    def __init__(self, *, config: TaskConfig, screen_height: int) -> None:
        self._text_color = parse_color(config.text_color, DEFAULT_TEXT_COLOR)
        self._background = parse_color(config.background_color, DEFAULT_BACKGROUND_COLOR)
        size = config.text_size if config.text_size is not None else DEFAULT_TEXT_SIZE
        # Text size is specified for a 1080p screen.
        self._font_px = max(8, int(round(size * screen_height / 1080.0)))
        self._font = pygame.font.Font(None, self._font_px)

        self._text: str | None = None
        self._image: Resource | None = None
        self._scaled_cache: dict[tuple[int, tuple[int, int]], pygame.Surface] = {}

    @property
    def text(self) -> str | None:
        return self._text

    @property
    def image(self) -> Resource | None:
        return self._image

    @property
    def background(self) -> pygame.Color:
        return self._background

    def show_text(self, text: str) -> None:
        self._text = text

    def hide_text(self) -> None:
        self._text = None

    def show_image(self, resource: Resource) -> None:
        self._image = resource

    def hide_image(self) -> None:
        self._image = None

    def draw(self, surface: pygame.Surface) -> None:
        surface.fill(self._background)
        w, h = surface.get_size()

        lines = [] if self._text is None else self._wrap(self._text, int(w * 0.9))
        line_h = self._font.get_linesize()
        text_h = len(lines) * line_h
        gap = self._font_px if lines else 0

        img = self._scaled_image(max_w=w, max_h=max(1, h - text_h - gap))
        img_h = 0 if img is None else img.get_height()

        y = (h - (text_h + gap + img_h)) // 2
        for line in lines:
            rendered = self._font.render(line, True, self._text_color)
            surface.blit(rendered, ((w - rendered.get_width()) // 2, y))
            y += line_h
        y += gap
        if img is not None:
            surface.blit(img, ((w - img.get_width()) // 2, y))

    def _wrap(self, text: str, max_w: int) -> list[str]:
        out: list[str] = []
        for paragraph in text.split("\n"):
            words = paragraph.split()
            cur = ""
            for word in words:
                trial = word if cur == "" else f"{cur} {word}"
                if self._font.size(trial)[0] <= max_w:
                    cur = trial
                    continue
                if cur:
                    out.append(cur)
                cur = word
            out.append(cur)
        return out

    def _scaled_image(self, *, max_w: int, max_h: int) -> pygame.Surface | None:
        if self._image is None or not isinstance(self._image.loaded_handle, pygame.Surface):
            return None
        src = self._image.loaded_handle
        sw, sh = src.get_size()
        # Never upscale; shrink to fit.
        scale = min(1.0, max_w / max(1, sw), max_h / max(1, sh))
        size = (max(1, int(sw * scale)), max(1, int(sh * scale)))
        if size == (sw, sh):
            return src
        key = (id(src), size)
        cached = self._scaled_cache.get(key)
        if cached is None:
            if src.get_bitsize() >= 24:
                cached = pygame.transform.smoothscale(src, size)
            else:
                cached = pygame.transform.scale(src, size)
            self._scaled_cache[key] = cached
        return cached


class PygameAssetLoader:
    """Loads ``data:image/...;base64,`` URIs and http(s) URLs into Surfaces."""

    def __init__(self, *, fetch: Callable[[str], bytes] | None = None) -> None:
        self._fetch = fetch if fetch is not None else _fetch_url

    def load(self, resource: Resource) -> pygame.Surface:
        src = resource.source
        try:
            if src.startswith("data:"):
                header, _, payload = src.partition(",")
                data = base64.b64decode(payload, validate=True)
                namehint = "image." + header.split("/", 1)[1].split(";", 1)[0].replace("svg+xml", "svg")
            else:
                data = self._fetch(src)
                namehint = src.rsplit("/", 1)[-1].split("?", 1)[0]
            surface = pygame.image.load(io.BytesIO(data), namehint)
        except (OSError, ValueError, IndexError, binascii.Error, pygame.error) as exc:
            raise AssetLoadError(src, exc) from exc

        if pygame.display.get_surface() is not None:
            surface = surface.convert_alpha()
        logger.info("loaded image %s (%dx%d)", namehint, *surface.get_size())
        return surface


def _fetch_url(url: str) -> bytes:
    try:
        with urllib.request.urlopen(url, timeout=URL_TIMEOUT_S) as resp:
            return resp.read()
    except urllib.error.URLError as exc:
        raise OSError(f"GET {url} failed: {exc.reason}") from exc


def event_from_pygame(event: pygame.event.Event, *, clock: Clock) -> ActivationEvent | None:
    # pygame events carry no input timestamp; stamp at poll time.
    if event.type == pygame.KEYDOWN:
        return ActivationEvent(
            kind=InputKind.KEY,
            key=pygame.key.name(event.key),
            timestamp_ms=now_ms(clock),
        )
    if event.type == pygame.MOUSEBUTTONDOWN:
        return ActivationEvent(kind=InputKind.POINTER, timestamp_ms=now_ms(clock))
    return None


@dataclass(slots=True)
class _ReportPanel:
    title: str
    file_key: str
    content: str
    expanded: bool = False


class ResultsPanel:
    """Shows the three reports; number keys toggle them, S saves all to disk."""

    def __init__(self, *, strings: Strings, reports_dir: Path) -> None:
        self._strings = strings
        self._reports_dir = reports_dir
        self._reports: ReportArtifacts | None = None
        self._panels: list[_ReportPanel] = []
        self._status = ""
        self._font = pygame.font.Font(None, 26)
        self._mono = pygame.font.SysFont("monospace", 14)

    @property
    def reports(self) -> ReportArtifacts | None:
        return self._reports

    @property
    def status(self) -> str:
        return self._status

    def show_reports(self, reports: ReportArtifacts) -> None:
        self._reports = reports
        self._panels = [
            _ReportPanel(self._strings.raw_results, "raw", reports.raw),
            _ReportPanel(self._strings.results_numbers, "numbers", reports.numbers),
            _ReportPanel(self._strings.results_times, "times", reports.times),
        ]

    def toggle(self, index: int) -> None:
        if 0 <= index < len(self._panels):
            self._panels[index].expanded = not self._panels[index].expanded

    def save(self) -> list[Path]:
        if self._reports is None:
            return []
        try:
            written = self._reports.save(self._reports_dir)
        except OSError as exc:
            logger.error("saving reports failed: %s", exc)
            self._status = f"{self._strings.btn_save}: {exc}"
            return []
        self._status = f"{self._strings.btn_save}: {self._reports_dir}"
        return written

    def draw(self, surface: pygame.Surface, *, top: int, color: pygame.Color) -> None:
        x = 40
        y = top
        w = surface.get_width() - 2 * x
        for i, panel in enumerate(self._panels):
            action = self._strings.btn_hide if panel.expanded else self._strings.btn_show
            header = f"[{i + 1}] {panel.title}   ({i + 1}: {action}, S: {self._strings.btn_save})"
            surface.blit(self._font.render(header, True, color), (x, y))
            y += self._font.get_linesize() + 4
            if panel.expanded:
                for line in panel.content.splitlines()[:12]:
                    surface.blit(self._mono.render(line, True, color), (x + 16, y))
                    y += self._mono.get_linesize()
                y += 6
            pygame.draw.line(surface, (51, 51, 51), (x, y), (x + w, y))
            y += 8
        if self._status:
            surface.blit(self._font.render(self._status, True, color), (x, y + 4))


class TaskScreen:
    def __init__(
        self,
        app: App,
        *,
        engine_factory: Callable[[PygameRenderer, ResultsPanel], GingerEngine],
        renderer: PygameRenderer,
        results: ResultsPanel,
        clock: Clock,
    ) -> None:
        self._app = app
        self._renderer = renderer
        self._results = results
        self._clock = clock
        self._engine = engine_factory(renderer, results)
        self._engine.init()

    @property
    def engine(self) -> GingerEngine:
        return self._engine

    def handle_event(self, event: pygame.event.Event) -> None:
        phase = self._engine.phase
        if event.type == pygame.KEYDOWN and phase in (EnginePhase.SHOW_RESULTS, EnginePhase.ERROR):
            if event.key == pygame.K_ESCAPE:
                self._app.quit()
                return
            if phase is EnginePhase.SHOW_RESULTS:
                if event.key == pygame.K_s:
                    self._results.save()
                    return
                if pygame.K_1 <= event.key <= pygame.K_3:
                    self._results.toggle(event.key - pygame.K_1)
                    return

        activation = event_from_pygame(event, clock=self._clock)
        if activation is not None:
            self._engine.handle_input(activation)

    def render(self, surface: pygame.Surface) -> None:
        self._engine.update()
        self._renderer.draw(surface)
        if self._engine.phase is EnginePhase.SHOW_RESULTS:
            self._results.draw(surface, top=surface.get_height() // 3, color=pygame.Color(DEFAULT_TEXT_COLOR))


def reports_dir_from_env() -> Path:
    explicit = os.environ.get(REPORTS_DIR_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.cwd()


def run(
    config: TaskConfig,
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    loader: AssetLoader | None = None,
    fullscreen: bool = False,
) -> int:
    pygame.init()

    pygame.display.set_caption("Ginger Go/No-Go")
    flags = pygame.FULLSCREEN if fullscreen else pygame.RESIZABLE
    surface = pygame.display.set_mode((0, 0) if fullscreen else WINDOW_SIZE, flags)

    frame_clock = pygame.time.Clock()
    real_clock = RealClock()
    app = App(surface=surface)

    renderer = PygameRenderer(config=config, screen_height=surface.get_height())

    def make_engine(r: PygameRenderer, sink: ResultsPanel) -> GingerEngine:
        return build_ginger_engine(
            config=config,
            clock=real_clock,
            renderer=r,
            loader=loader if loader is not None else PygameAssetLoader(),
            results_sink=sink,
        )

    results = ResultsPanel(strings=strings_for(config.locale), reports_dir=reports_dir_from_env())
    app.push(
        TaskScreen(
            app,
            engine_factory=make_engine,
            renderer=renderer,
            results=results,
            clock=real_clock,
        )
    )

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            frame_clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0
