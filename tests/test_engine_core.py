from __future__ import annotations

from dataclasses import dataclass

import pytest

from ginger.config import Resource, StageConfig, TaskConfig
from ginger.engine import EnginePhase, GingerEngine, StepAction, StepPlan, plan_step
from ginger.errors import AssetLoadError, ConfigError
from ginger.input_gate import ActivationEvent, InputKind
from ginger.outcomes import Outcome
from ginger.results import ReportArtifacts
from ginger.steps import StepType
from ginger.strings import Locale


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


class RecordingRenderer:
    def __init__(self) -> None:
        self.text: str | None = None
        self.image: Resource | None = None

    def show_text(self, text: str) -> None:
        self.text = text

    def hide_text(self) -> None:
        self.text = None

    def show_image(self, resource: Resource) -> None:
        self.image = resource

    def hide_image(self) -> None:
        self.image = None


class FakeLoader:
    def __init__(self, *, fail: bool = False) -> None:
        self._fail = fail

    def load(self, resource: Resource) -> object:
        if self._fail:
            raise AssetLoadError(resource.source, "404")
        return f"handle:{resource.source}"


class FakeSink:
    def __init__(self) -> None:
        self.reports: ReportArtifacts | None = None

    def show_reports(self, reports: ReportArtifacts) -> None:
        self.reports = reports


def _stage(name: str, tokens: list[str], total: int | None = None) -> StageConfig:
    return StageConfig(name=name, welcome_text=f"{name} welcome", step_tokens=tuple(tokens), total_time_ms=total)


def _engine(
    stages: list[StageConfig],
    clock: FakeClock,
    *,
    loader: FakeLoader | None = None,
) -> tuple[GingerEngine, RecordingRenderer, FakeSink]:
    config = TaskConfig(
        locale=Locale.EN,
        welcome_text="Welcome",
        go=Resource("https://example.org/go.png"),
        nogo=Resource("https://example.org/nogo.png"),
        stages=tuple(stages),
    )
    renderer = RecordingRenderer()
    sink = FakeSink()
    engine = GingerEngine(
        config=config,
        clock=clock,
        renderer=renderer,
        loader=loader if loader is not None else FakeLoader(),
        results_sink=sink,
    )
    return engine, renderer, sink


def _press(engine: GingerEngine, timestamp_ms: float | None = None) -> bool:
    return engine.handle_input(ActivationEvent(kind=InputKind.KEY, key="space", timestamp_ms=timestamp_ms))


def _start_first_stage(engine: GingerEngine) -> None:
    assert engine.init() is True
    for _ in range(4):
        assert _press(engine) is True
    assert engine.phase is EnginePhase.STAGE_RUNNING


def _advance_ms(clock: FakeClock, engine: GingerEngine, ms: float) -> None:
    clock.advance(ms / 1000.0)
    engine.update()


def test_plan_step_run_once_and_looping() -> None:
    assert plan_step(step_index=2, step_count=3, total_time_ms=None, elapsed_ms=99999) == StepPlan(StepAction.PRESENT, 2)
    assert plan_step(step_index=3, step_count=3, total_time_ms=0, elapsed_ms=0).action is StepAction.FINISH_STAGE
    assert plan_step(step_index=2, step_count=2, total_time_ms=5000, elapsed_ms=4999) == StepPlan(StepAction.PRESENT, 0)
    assert plan_step(step_index=1, step_count=2, total_time_ms=5000, elapsed_ms=5000).action is StepAction.FINISH_STAGE
    assert plan_step(step_index=0, step_count=0, total_time_ms=5000, elapsed_ms=0).action is StepAction.FINISH_STAGE


def test_steps_are_parsed_once_when_the_engine_is_built() -> None:
    stage = _stage("main", ["G500", "B250", "N500"])
    _engine([stage], FakeClock())
    assert stage.parsed_steps is not None
    assert [s.step_type for s in stage.parsed_steps] == [StepType.GO, StepType.BLOCK, StepType.NOGO]


def test_malformed_token_fails_before_anything_is_shown() -> None:
    with pytest.raises(ConfigError):
        _engine([_stage("main", ["G500", "X100"])], FakeClock())


def test_intro_screens_show_welcome_then_go_then_nogo() -> None:
    clock = FakeClock()
    engine, renderer, _ = _engine([_stage("main", ["G1000"])], clock)

    assert engine.phase is EnginePhase.LOADING
    engine.init()
    assert engine.config.go.loaded_handle == "handle:https://example.org/go.png"
    assert (engine.phase, renderer.text, renderer.image) == (EnginePhase.INTRO_WELCOME, "Welcome", None)

    _press(engine)
    assert engine.phase is EnginePhase.INTRO_SHOW_GO
    assert renderer.text == engine.strings.this_is_go
    assert renderer.image is engine.config.go

    _press(engine)
    assert engine.phase is EnginePhase.INTRO_SHOW_NOGO
    assert renderer.image is engine.config.nogo

    _press(engine)
    assert (engine.phase, renderer.text, renderer.image) == (EnginePhase.STAGE_WELCOME, "main welcome", None)
    assert engine.state.current_stage_index == 0

    _press(engine)
    assert engine.phase is EnginePhase.STAGE_RUNNING
    assert renderer.text is None
    assert renderer.image is engine.config.go


def test_fixed_stage_ends_after_exactly_its_step_count() -> None:
    clock = FakeClock()
    engine, renderer, _ = _engine([_stage("main", ["G1000", "N1000", "B1000"])], clock)
    _start_first_stage(engine)

    _advance_ms(clock, engine, 1000)
    assert renderer.image is engine.config.nogo
    _advance_ms(clock, engine, 1000)
    assert renderer.image is None  # BLOCK
    assert engine.phase is EnginePhase.STAGE_RUNNING

    _advance_ms(clock, engine, 1000)
    assert engine.phase is EnginePhase.FINISHED_WAIT
    assert [r.outcome for r in engine.results] == [Outcome.MISS, Outcome.CORRECT_REJECTION]


def test_fixed_stage_length_does_not_depend_on_input() -> None:
    clock = FakeClock()
    engine, _, _ = _engine([_stage("main", ["G1000", "N1000", "G1000"])], clock)
    _start_first_stage(engine)

    for _ in range(3):
        assert engine.phase is EnginePhase.STAGE_RUNNING
        _advance_ms(clock, engine, 250)
        _press(engine)
        _press(engine)
        _advance_ms(clock, engine, 750)

    assert engine.phase is EnginePhase.FINISHED_WAIT
    assert [r.outcome for r in engine.results] == [Outcome.HIT, Outcome.FALSE_ALARM, Outcome.HIT]
    assert [r.response_time_ms for r in engine.results] == [250.0, 250.0, 250.0]


def test_looping_stage_stops_once_total_time_is_reached() -> None:
    clock = FakeClock()
    engine, _, _ = _engine([_stage("loop", ["G1000", "N1000"], total=5000)], clock)
    _start_first_stage(engine)

    for _ in range(4):
        _advance_ms(clock, engine, 1000)
    assert engine.phase is EnginePhase.STAGE_RUNNING

    _advance_ms(clock, engine, 1000)
    assert engine.phase is EnginePhase.FINISHED_WAIT
    assert [r.step_index for r in engine.results] == [0, 1, 0, 1, 0]
    assert [r.outcome for r in engine.results] == [
        Outcome.MISS,
        Outcome.CORRECT_REJECTION,
        Outcome.MISS,
        Outcome.CORRECT_REJECTION,
        Outcome.MISS,
    ]


def test_input_then_timeout_records_one_outcome() -> None:
    clock = FakeClock()
    engine, _, _ = _engine([_stage("main", ["G1000", "G1000"])], clock)
    _start_first_stage(engine)

    _advance_ms(clock, engine, 250)
    assert _press(engine, timestamp_ms=212.5) is True
    assert _press(engine) is False
    _advance_ms(clock, engine, 750)

    assert len(engine.results) == 1
    hit = engine.results[0]
    assert (hit.stage_index, hit.step_index, hit.outcome) == (0, 0, Outcome.HIT)
    assert hit.response_time_ms == 212.5
    assert hit.timestamp_ms == 212.5

    _advance_ms(clock, engine, 1000)
    assert [(r.step_index, r.outcome) for r in engine.results] == [(0, Outcome.HIT), (1, Outcome.MISS)]


def test_press_after_a_step_ended_goes_to_the_next_step() -> None:
    clock = FakeClock()
    engine, renderer, _ = _engine([_stage("main", ["G1000", "N1000"])], clock)
    _start_first_stage(engine)

    # The frame has not called update() yet when the press arrives.
    clock.advance(1.25)
    assert _press(engine) is True
    assert renderer.image is engine.config.nogo
    _advance_ms(clock, engine, 750)

    assert [(r.step_index, r.outcome, r.response_time_ms) for r in engine.results] == [
        (0, Outcome.MISS, None),
        (1, Outcome.FALSE_ALARM, 250.0),
    ]


def test_single_step_stages_each_record_their_step() -> None:
    clock = FakeClock()
    engine, _, _ = _engine([_stage("a", ["G1000"]), _stage("b", ["G1000"])], clock)
    _start_first_stage(engine)

    _press(engine)
    _advance_ms(clock, engine, 1000)
    assert engine.phase is EnginePhase.STAGE_WELCOME
    _press(engine)
    _advance_ms(clock, engine, 250)
    _press(engine)
    _advance_ms(clock, engine, 750)

    assert [(r.stage_index, r.step_index, r.outcome) for r in engine.results] == [
        (0, 0, Outcome.HIT),
        (1, 0, Outcome.HIT),
    ]


def test_practice_stage_never_records() -> None:
    clock = FakeClock()
    engine, _, _ = _engine([_stage("TriAL", ["G500", "N500"]), _stage("main", ["N500"])], clock)
    _start_first_stage(engine)

    _press(engine)
    _advance_ms(clock, engine, 500)
    _press(engine)
    _advance_ms(clock, engine, 500)
    assert engine.results == ()
    assert engine.phase is EnginePhase.STAGE_WELCOME

    _press(engine)
    _advance_ms(clock, engine, 500)
    assert [(r.stage_index, r.outcome) for r in engine.results] == [(1, Outcome.CORRECT_REJECTION)]


def test_block_steps_never_record_even_with_input() -> None:
    clock = FakeClock()
    engine, _, _ = _engine([_stage("main", ["B500", "G500", "B500"])], clock)
    _start_first_stage(engine)

    assert _press(engine) is True  # consumes the step's input slot
    assert _press(engine) is False
    _advance_ms(clock, engine, 500)
    _advance_ms(clock, engine, 500)
    _advance_ms(clock, engine, 500)

    assert [(r.step_index, r.step_type, r.outcome) for r in engine.results] == [(1, StepType.GO, Outcome.MISS)]


def test_stalled_clock_does_not_shift_later_steps() -> None:
    clock = FakeClock()
    engine, _, _ = _engine([_stage("main", ["G1000", "G1000", "G1000"])], clock)
    _start_first_stage(engine)
    assert engine.step_start_ms == 0.0
    assert engine.timers.next_due_ms() == pytest.approx(1000.0)

    # Timer fires 40 ms late.
    _advance_ms(clock, engine, 1040)
    assert engine.state.current_step_index == 1
    assert engine.step_start_ms == 1000.0
    assert engine.timers.next_due_ms() == pytest.approx(2000.0)

    _advance_ms(clock, engine, 1000)
    assert engine.state.current_step_index == 2
    assert engine.step_start_ms == 2000.0
    assert engine.timers.next_due_ms() == pytest.approx(3000.0)

    # Response time is measured from the scheduled start.
    _press(engine, timestamp_ms=2250.0)
    assert engine.results[-1].response_time_ms == 250.0


def test_stale_timer_is_a_no_op() -> None:
    clock = FakeClock()
    engine, _, _ = _engine([_stage("main", ["G1000", "G1000"])], clock)
    _start_first_stage(engine)

    engine.state.is_running = False
    _advance_ms(clock, engine, 1000)

    assert engine.results == ()
    assert engine.state.current_step_index == 0
    assert len(engine.timers) == 0


def test_asset_failure_halts_with_a_message() -> None:
    clock = FakeClock()
    engine, renderer, _ = _engine([_stage("main", ["G1000"])], clock, loader=FakeLoader(fail=True))

    assert engine.init() is False
    assert engine.phase is EnginePhase.ERROR
    assert renderer.text == engine.strings.error_loading_images
    assert engine.config.go.loaded_handle is None
    assert _press(engine) is False
    assert engine.phase is EnginePhase.ERROR


def test_results_are_offered_after_the_finish_delay() -> None:
    clock = FakeClock()
    engine, renderer, sink = _engine([_stage("main", ["G1000"])], clock)
    _start_first_stage(engine)
    _advance_ms(clock, engine, 1000)

    assert engine.phase is EnginePhase.FINISHED_WAIT
    assert renderer.text == engine.strings.done_thanks
    assert _press(engine) is False

    _advance_ms(clock, engine, 4500)
    assert _press(engine) is False
    _advance_ms(clock, engine, 500)
    assert renderer.text is not None and renderer.text.endswith(engine.strings.done_over_to_examiner)

    assert _press(engine) is True
    assert engine.phase is EnginePhase.SHOW_RESULTS
    assert renderer.text == engine.strings.done_here_are_results
    assert sink.reports is engine.reports
    assert sink.reports is not None
    assert sink.reports.numbers.splitlines()[2] == "100,1,MISS"
