"""District recovery score from outage, occurrence and weather signals."""

from __future__ import annotations

from typing import Iterable

ELECTRICITY_WEIGHT = 0.4
OCCURRENCES_WEIGHT = 0.3
WEATHER_WEIGHT = 0.2
MAX_SCHEDULED_WORK_BONUS = 10


def calculate_recovery_score(
    *,
    electricity_score: float,
    occurrences_score: float,
    weather_score: float,
    scheduled_work_bonus: float = 0,
) -> int:
    """Weighted 0-100 score; 100 means fully recovered."""
    raw = (
        electricity_score * ELECTRICITY_WEIGHT
        + occurrences_score * OCCURRENCES_WEIGHT
        + weather_score * WEATHER_WEIGHT
        + min(scheduled_work_bonus, MAX_SCHEDULED_WORK_BONUS)
    )
    return round(min(100.0, max(0.0, raw)))


def derive_electricity_score(total_outages: int) -> int:
    if total_outages == 0:
        return 100
    if total_outages <= 2:
        return 85
    if total_outages <= 5:
        return 70
    if total_outages <= 10:
        return 50
    if total_outages <= 20:
        return 30
    return 10


def derive_occurrences_score(active_count: int) -> int:
    if active_count == 0:
        return 100
    if active_count <= 2:
        return 80
    if active_count <= 5:
        return 60
    if active_count <= 10:
        return 40
    return 20


def derive_weather_score(warning_levels: Iterable[str]) -> int:
    levels = {level.strip().lower() for level in warning_levels}
    if "red" in levels:
        return 20
    if "orange" in levels:
        return 50
    if "yellow" in levels:
        return 75
    return 100


def derive_scheduled_work_bonus(scheduled_work_count: int) -> int:
    # Scheduled repairs signal active recovery work.
    if scheduled_work_count == 0:
        return 0
    if scheduled_work_count <= 3:
        return 3
    if scheduled_work_count <= 10:
        return 6
    return 10


def build_recovery_summary(
    *,
    total_outages: int,
    active_occurrences: int,
    warning_levels: Iterable[str],
    scheduled_work_count: int = 0,
) -> dict:
    electricity = derive_electricity_score(total_outages)
    occurrences = derive_occurrences_score(active_occurrences)
    weather = derive_weather_score(warning_levels)
    bonus = derive_scheduled_work_bonus(scheduled_work_count)
    return {
        "score": calculate_recovery_score(
            electricity_score=electricity,
            occurrences_score=occurrences,
            weather_score=weather,
            scheduled_work_bonus=bonus,
        ),
        "components": {
            "electricity": electricity,
            "occurrences": occurrences,
            "weather": weather,
            "scheduled_work_bonus": bonus,
        },
    }
