"""Localized UI strings.

There is no process-wide "current locale": callers build a ``Strings`` object
with ``strings_for(locale)`` and pass it to whatever needs text.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum

from .errors import ConfigError


class Locale(str, Enum):
    EN = "en"
    HE = "he"


@dataclass(frozen=True, slots=True)
class Strings:
    not_translated: str
    loading_assets: str
    error_loading_images: str
    this_is_go: str
    this_is_nogo: str
    done_here_are_results: str
    done_thanks: str
    done_over_to_examiner: str
    raw_results: str
    results_numbers: str
    results_times: str
    btn_show: str
    btn_hide: str
    btn_save: str


EN = Strings(
    not_translated="[not translated]",
    loading_assets="Loading assets...",
    error_loading_images="Error loading images.",
    this_is_go="Here is the GO signal. Click or press Space when you see this.",
    this_is_nogo="Here is the NO-GO signal. Do NOT do anything when you see this.",
    done_here_are_results="Done! Here are the results:",
    done_thanks="Thank you for participating in the study!",
    done_over_to_examiner="Examiner can now press Space to view the results.",
    raw_results="Raw results:",
    results_numbers="Results (numbers and percentages):",
    results_times="Results (times for each step):",
    btn_show="Show",
    btn_hide="Hide",
    btn_save="Save",
)

# Partial table; missing keys fall back to English plus a marker.
_HE: dict[str, str] = {
    "not_translated": "[התרגום אינו זמין]",
    "this_is_go": ".על המסך, עליכם להקיש על מקש הרווח במקלדת X כאשר תראו את הסימן",
    "this_is_nogo": ".על המסך, עליכם לא לעשות כלום Y כאשר תראו את הסימן",
    "done_here_are_results": ":זהו! זה התוצאות",
    "done_thanks": "!זה הו סיום! תודה על השתתפותך במחקר",
    "done_over_to_examiner": ".הבוחן יכול להקיש על רווח כדי לצפות בתוצאות",
    "raw_results": ":תוצאות גולמיות",
    "results_numbers": ":תוצאות (מספר ואחוז)",
    "results_times": ":תוצאות (זמן לכל צעד)",
    "btn_show": "לְהַצִיג",
    "btn_hide": "לְהַסתִיר",
    "btn_save": "שמור קובץ",
}


def merge_translation(base: Strings, overrides: dict[str, str]) -> Strings:
    """Overlay ``overrides`` on ``base``; untranslated entries get a marker suffix."""

    marker = " " + overrides.get("not_translated", base.not_translated)
    merged = {f.name: getattr(base, f.name) + marker for f in fields(base)}
    for key, value in overrides.items():
        if key not in merged:
            raise KeyError(f"unknown string key: {key}")
        merged[key] = value
    return replace(base, **merged)


def strings_for(locale: Locale | str) -> Strings:
    try:
        loc = Locale(locale)
    except ValueError:
        raise ConfigError(f"invalid locale: {locale!r}") from None
    if loc is Locale.EN:
        return EN
    return merge_translation(EN, _HE)
