"""Stage/step state machine for the Go/No-Go task.

Flow::

    LOADING -> INTRO_WELCOME -> INTRO_SHOW_GO -> INTRO_SHOW_NOGO
            -> (STAGE_WELCOME -> STAGE_RUNNING) per stage
            -> FINISHED_WAIT -> SHOW_RESULTS

Gated screens advance through the InputGate. A running stage advances itself
through one-shot timers whose delays are computed from the *expected* start
of the next step, so scheduling jitter never accumulates across a stage.

Time is entirely via the injected Clock and TimerQueue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from .clock import Clock, now_ms
from .config import Resource, TaskConfig
from .errors import AssetLoadError
from .input_gate import ActivationEvent, InputGate
from .outcomes import StepOutcome, Trigger, classify, response_time_ms
from .results import ReportArtifacts, build_reports
from .steps import ParsedStep, StepType, parse_steps
from .strings import Strings, strings_for
from .timers import TimerQueue

logger = logging.getLogger(__name__)

FINISH_DELAY_MS = 5000.0


class Renderer(Protocol):
    def show_text(self, text: str) -> None: ...
    def show_image(self, resource: Resource) -> None: ...
    def hide_image(self) -> None: ...
    def hide_text(self) -> None: ...


class AssetLoader(Protocol):
    def load(self, resource: Resource) -> object:
        """Return a ready-to-display handle or raise AssetLoadError."""
        ...


class ResultsSink(Protocol):
    def show_reports(self, reports: ReportArtifacts) -> None: ...


class EnginePhase(str, Enum):
    LOADING = "loading"
    INTRO_WELCOME = "intro_welcome"
    INTRO_SHOW_GO = "intro_show_go"
    INTRO_SHOW_NOGO = "intro_show_nogo"
    STAGE_WELCOME = "stage_welcome"
    STAGE_RUNNING = "stage_running"
    FINISHED_WAIT = "finished_wait"
    SHOW_RESULTS = "show_results"
    ERROR = "error"


@dataclass(slots=True)
class EngineState:
    current_stage_index: int = -1  # -1 means intro
    current_step_index: int = 0
    stage_start_time_ms: float = 0.0
    stage_start_times_ms: list[float] = field(default_factory=list)
    results: list[StepOutcome] = field(default_factory=list)
    is_running: bool = False


class StepAction(str, Enum):
    PRESENT = "present"
    FINISH_STAGE = "finish_stage"


@dataclass(frozen=True, slots=True)
class StepPlan:
    action: StepAction
    step_index: int


def plan_step(*, step_index: int, step_count: int, total_time_ms: int | None, elapsed_ms: float) -> StepPlan:
    """Decide what the top of a step cycle does.

    Without a time budget the list runs once. With one, the list wraps around
    until ``elapsed_ms`` reaches the budget; the step that is due at that
    moment is not presented.
    """

    budget = total_time_ms or 0
    if step_count == 0:
        return StepPlan(StepAction.FINISH_STAGE, step_index)
    if budget > 0:
        if elapsed_ms >= budget:
            return StepPlan(StepAction.FINISH_STAGE, step_index)
        return StepPlan(StepAction.PRESENT, 0 if step_index >= step_count else step_index)
    if step_index >= step_count:
        return StepPlan(StepAction.FINISH_STAGE, step_index)
    return StepPlan(StepAction.PRESENT, step_index)


class GingerEngine:
    def __init__(
        self,
        *,
        config: TaskConfig,
        clock: Clock,
        renderer: Renderer,
        loader: AssetLoader,
        results_sink: ResultsSink,
        timers: TimerQueue | None = None,
        strings: Strings | None = None,
        finish_delay_ms: float = FINISH_DELAY_MS,
    ) -> None:
        if finish_delay_ms < 0.0:
            raise ValueError("finish_delay_ms must be >= 0")

        self._config = config
        self._clock = clock
        self._renderer = renderer
        self._loader = loader
        self._sink = results_sink
        self._timers = timers if timers is not None else TimerQueue(clock=clock)
        self._strings = strings if strings is not None else strings_for(config.locale)
        self._finish_delay_ms = float(finish_delay_ms)

        # Raises ConfigError before anything is shown.
        for stage in config.stages:
            if stage.parsed_steps is None:
                stage.parsed_steps = parse_steps(stage.step_tokens)

        self._state = EngineState()
        self._phase = EnginePhase.LOADING
        self._gate = InputGate(is_running=lambda: self._state.is_running, on_response=self._on_response)

        self._step_start_ms = 0.0
        self._step_serial = 0
        self._recorded_serial = 0
        self._reports: ReportArtifacts | None = None

    @property
    def phase(self) -> EnginePhase:
        return self._phase

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def results(self) -> tuple[StepOutcome, ...]:
        return tuple(self._state.results)

    @property
    def step_start_ms(self) -> float:
        """Scheduled (not observed) start of the step on screen."""
        return self._step_start_ms

    @property
    def reports(self) -> ReportArtifacts | None:
        return self._reports

    @property
    def strings(self) -> Strings:
        return self._strings

    @property
    def config(self) -> TaskConfig:
        return self._config

    @property
    def timers(self) -> TimerQueue:
        return self._timers

    def init(self) -> bool:
        """Preload both stimuli and show the first intro screen.

        Returns False if loading failed; the run is then halted on an error
        message.
        """

        self._renderer.show_text(self._strings.loading_assets)
        try:
            for res in (self._config.go, self._config.nogo):
                res.loaded_handle = self._loader.load(res)
        except AssetLoadError as exc:
            logger.error("asset preload failed: %s", exc)
            self._halt(self._strings.error_loading_images)
            return False

        self._start_intro()
        return True

    def update(self) -> None:
        self._timers.update()

    def handle_input(self, event: ActivationEvent) -> bool:
        # Steps that ended before the event was stamped resolve first.
        self._timers.update(until_ms=event.timestamp_ms)
        if self._phase in (EnginePhase.LOADING, EnginePhase.ERROR):
            return False
        return self._gate.handle(event)

    # --- gated screens -------------------------------------------------

    def _start_intro(self) -> None:
        self._phase = EnginePhase.INTRO_WELCOME
        self._render_screen(self._config.welcome_text, None)
        self._gate.arm(self._show_go_intro)

    def _show_go_intro(self) -> None:
        self._phase = EnginePhase.INTRO_SHOW_GO
        self._render_screen(self._strings.this_is_go, self._config.go)
        self._gate.arm(self._show_nogo_intro)

    def _show_nogo_intro(self) -> None:
        self._phase = EnginePhase.INTRO_SHOW_NOGO
        self._render_screen(self._strings.this_is_nogo, self._config.nogo)
        self._gate.arm(self._start_next_stage)

    def _start_next_stage(self) -> None:
        self._state.current_stage_index += 1
        if self._state.current_stage_index >= len(self._config.stages):
            self._finish()
            return

        stage = self._config.stages[self._state.current_stage_index]
        self._phase = EnginePhase.STAGE_WELCOME
        self._render_screen(stage.welcome_text, None)
        self._gate.arm(self._begin_stage)

    def _begin_stage(self) -> None:
        start = now_ms(self._clock)
        self._state.current_step_index = 0
        self._state.stage_start_time_ms = start
        self._state.stage_start_times_ms.append(start)
        self._state.is_running = True
        self._phase = EnginePhase.STAGE_RUNNING

        stage = self._config.stages[self._state.current_stage_index]
        logger.info(
            "stage %d (%s) started: %d steps, total_time_ms=%s",
            self._state.current_stage_index,
            stage.name,
            len(stage.step_tokens),
            stage.total_time_ms,
        )
        self._run_step(start)

    # --- timed steps ---------------------------------------------------

    def _run_step(self, expected_start_ms: float) -> None:
        if not self._state.is_running:
            return

        stage = self._config.stages[self._state.current_stage_index]
        steps = stage.parsed_steps
        assert steps is not None

        plan = plan_step(
            step_index=self._state.current_step_index,
            step_count=len(steps),
            total_time_ms=stage.total_time_ms,
            elapsed_ms=now_ms(self._clock) - self._state.stage_start_time_ms,
        )
        if plan.action is StepAction.FINISH_STAGE:
            logger.info("stage %d finished", self._state.current_stage_index)
            self._state.is_running = False
            self._start_next_stage()
            return

        self._state.current_step_index = plan.step_index
        step = steps[plan.step_index]
        self._step_serial += 1
        self._gate.begin_step()
        self._render_step(step)

        self._step_start_ms = expected_start_ms
        next_expected_ms = expected_start_ms + step.duration_ms
        delay_ms = max(0.0, next_expected_ms - now_ms(self._clock))
        self._timers.call_later(delay_ms, lambda: self._on_step_timeout(step, next_expected_ms))

    def _on_step_timeout(self, step: ParsedStep, next_expected_ms: float) -> None:
        if not self._state.is_running:
            return
        self._record(step, Trigger.TIMEOUT, now_ms(self._clock))
        self._state.current_step_index += 1
        self._run_step(next_expected_ms)

    def _on_response(self, event: ActivationEvent) -> None:
        stage = self._config.stages[self._state.current_stage_index]
        assert stage.parsed_steps is not None
        step = stage.parsed_steps[self._state.current_step_index]
        timestamp_ms = event.timestamp_ms if event.timestamp_ms is not None else now_ms(self._clock)
        self._record(step, Trigger.INPUT, timestamp_ms)

    def _record(self, step: ParsedStep, trigger: Trigger, timestamp_ms: float) -> None:
        # The most recent outcome already belongs to this presentation
        # (input first, then its own timeout).
        if self._recorded_serial == self._step_serial:
            return

        stage = self._config.stages[self._state.current_stage_index]
        if stage.is_practice:
            return

        outcome = classify(step.step_type, trigger)
        if outcome is None or not step.is_response_eligible:
            return

        rt = response_time_ms(timestamp_ms, self._step_start_ms) if trigger is Trigger.INPUT else None
        self._recorded_serial = self._step_serial
        self._state.results.append(
            StepOutcome(
                stage_index=self._state.current_stage_index,
                step_index=self._state.current_step_index,
                step_type=step.step_type,
                outcome=outcome,
                response_time_ms=rt,
                timestamp_ms=timestamp_ms,
            )
        )
        logger.debug("step %s | result %s | rt=%s", step.token, outcome.value, rt)

    # --- completion ----------------------------------------------------

    def _finish(self) -> None:
        self._phase = EnginePhase.FINISHED_WAIT
        self._state.is_running = False
        self._renderer.hide_image()
        self._renderer.show_text(self._strings.done_thanks)
        logger.info("all stages finished: %d outcomes recorded", len(self._state.results))
        self._timers.call_later(self._finish_delay_ms, self._offer_results)

    def _offer_results(self) -> None:
        self._renderer.show_text(f"{self._strings.done_thanks}\n\n{self._strings.done_over_to_examiner}")
        self._gate.arm(self._show_results)

    def _show_results(self) -> None:
        self._phase = EnginePhase.SHOW_RESULTS
        self._renderer.hide_image()
        self._renderer.show_text(self._strings.done_here_are_results)
        self._reports = build_reports(
            results=self._state.results,
            stages=self._config.stages,
            stage_start_times_ms=self._state.stage_start_times_ms,
        )
        self._sink.show_reports(self._reports)

    # --- rendering -----------------------------------------------------

    def _render_screen(self, text: str, image: Resource | None) -> None:
        self._renderer.show_text(text)
        if image is not None:
            self._renderer.show_image(image)
        else:
            self._renderer.hide_image()

    def _render_step(self, step: ParsedStep) -> None:
        self._renderer.hide_text()
        if step.step_type is StepType.GO:
            self._renderer.show_image(self._config.go)
        elif step.step_type is StepType.NOGO:
            self._renderer.show_image(self._config.nogo)
        else:
            self._renderer.hide_image()

    def _halt(self, message: str) -> None:
        self._phase = EnginePhase.ERROR
        self._state.is_running = False
        self._gate.disarm()
        self._timers.clear()
        self._renderer.hide_image()
        self._renderer.show_text(message)


def build_ginger_engine(
    *,
    config: TaskConfig,
    clock: Clock,
    renderer: Renderer,
    loader: AssetLoader,
    results_sink: ResultsSink,
    timers: TimerQueue | None = None,
) -> GingerEngine:
    return GingerEngine(
        config=config,
        clock=clock,
        renderer=renderer,
        loader=loader,
        results_sink=results_sink,
        timers=timers,
        strings=strings_for(config.locale),
        finish_delay_ms=FINISH_DELAY_MS,
    )
