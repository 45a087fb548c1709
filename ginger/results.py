from __future__ import annotations

import json
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .config import StageConfig
from .outcomes import Outcome, StepOutcome, percent
from .steps import StepType

logger = logging.getLogger(__name__)

NUMBERS_HEADER = "%,number,type"
TIMES_HEADER = "time_ms,stage_idx,step_idx"
NO_RESPONSE = "NONE"


@dataclass(frozen=True, slots=True)
class ReportArtifacts:
    """The three exports produced at the end of a run.

    ``raw`` is JSON, ``numbers`` and ``times`` are CSV. All are plain strings so
    the display/export side can show, copy or save them as it likes.
    """

    raw: str
    numbers: str
    times: str

    def file_names(self, when: time.struct_time | None = None) -> dict[str, str]:
        stamp = time.strftime("%Y%m%d-%H%M", when if when is not None else time.localtime())
        return {
            "raw": f"ginger-raw-{stamp}.json",
            "numbers": f"ginger-numbers-{stamp}.csv",
            "times": f"ginger-times-{stamp}.csv",
        }

    def save(self, directory: Path, *, when: time.struct_time | None = None) -> list[Path]:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        written = []
        for key, name in self.file_names(when).items():
            path = directory / name
            path.write_text(getattr(self, key), encoding="utf-8")
            written.append(path)
        logger.info("reports saved to %s", directory)
        return written


def build_reports(
    *,
    results: Sequence[StepOutcome],
    stages: Sequence[StageConfig],
    stage_start_times_ms: Sequence[float],
) -> ReportArtifacts:
    return ReportArtifacts(
        raw=report_raw(results=results, stage_start_times_ms=stage_start_times_ms),
        numbers=report_numbers(results=results, stages=stages),
        times=report_times(results),
    )


def report_raw(*, results: Sequence[StepOutcome], stage_start_times_ms: Sequence[float]) -> str:
    payload = {
        "stageStartTimes": [_json_number(t) for t in stage_start_times_ms],
        "results": [
            {
                "stageIndex": r.stage_index,
                "stepIndex": r.step_index,
                "type": r.step_type.value,
                "outcome": r.outcome.value,
                "responseTimeMs": None if r.response_time_ms is None else _json_number(r.response_time_ms),
                "timestamp": _json_number(r.timestamp_ms),
            }
            for r in results
        ],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def report_numbers(*, results: Sequence[StepOutcome], stages: Sequence[StageConfig]) -> str:
    """Counts and percentages per outcome, plus configured GO/NOGO totals.

    TOTAL_GO and TOTAL_NOGO count the steps configured in non-practice stages
    (a looping stage counts its list once) but take their percentage against
    the number of recorded outcomes.
    """

    total = len(results)
    counts = {o: 0 for o in Outcome}
    for r in results:
        counts[r.outcome] += 1

    lines = [NUMBERS_HEADER]
    for outcome, n in counts.items():
        lines.append(f"{percent(n, total)},{n},{outcome.value}")
    lines.append(f"100,{total},TOTAL")

    cnt_go = 0
    cnt_nogo = 0
    for stage in stages:
        if stage.is_practice:
            continue
        assert stage.parsed_steps is not None, "stage steps are parsed when the engine is built"
        for step in stage.parsed_steps:
            if step.step_type is StepType.GO:
                cnt_go += 1
            elif step.step_type is StepType.NOGO:
                cnt_nogo += 1

    lines.append(f"{percent(cnt_go, total)},{cnt_go},TOTAL_GO")
    lines.append(f"{percent(cnt_nogo, total)},{cnt_nogo},TOTAL_NOGO")
    return "\n".join(lines) + "\n"


def report_times(results: Sequence[StepOutcome]) -> str:
    lines = [TIMES_HEADER]
    for r in results:
        rt = NO_RESPONSE if r.response_time_ms is None else format_ms(r.response_time_ms)
        lines.append(f"{rt},{r.stage_index},{r.step_index}")
    return "\n".join(lines) + "\n"


def format_ms(value: float) -> str:
    """``300.0`` -> ``"300"``, ``312.5`` -> ``"312.5"``."""

    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _json_number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value
