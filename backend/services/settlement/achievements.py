"""Rider achievement catalog and unlock rules."""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Mapping


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    icon: str


FIRST_RIDE = "first-ride"
TEN_RIDES = "ten-rides"
FIVE_SHARED = "five-shared"
NIGHT_RIDE = "night-ride"

ACHIEVEMENTS: Dict[str, Achievement] = {
    achievement.id: achievement
    for achievement in (
        Achievement(FIRST_RIDE, "First Journey", "Complete your first ride.", "fa-rocket"),
        Achievement(TEN_RIDES, "Campus Veteran", "Complete 10 rides in total.", "fa-star"),
        Achievement(FIVE_SHARED, "Eco Warrior", "Take 5 shared rides.", "fa-leaf"),
        Achievement(NIGHT_RIDE, "Night Owl", "Complete a ride between 10 PM and 5 AM.", "fa-moon"),
    )
}

NIGHT_START_HOUR = 22
NIGHT_END_HOUR = 5


def is_night_ride(completed_at: datetime) -> bool:
    return completed_at.hour >= NIGHT_START_HOUR or completed_at.hour < NIGHT_END_HOUR


def evaluate_achievements(
    earned: Mapping[str, bool],
    total_rides: int,
    shared_rides: int,
    completed_at: datetime,
) -> List[Achievement]:
    """
    Achievements newly unlocked by a completion.

    ``total_rides`` and ``shared_rides`` are the counts *after* the ride;
    ``completed_at`` is in local time. Already-earned ids are never returned.
    """
    candidates = []
    if total_rides >= 1:
        candidates.append(FIRST_RIDE)
    if total_rides >= 10:
        candidates.append(TEN_RIDES)
    if shared_rides >= 5:
        candidates.append(FIVE_SHARED)
    if is_night_ride(completed_at):
        candidates.append(NIGHT_RIDE)

    return [ACHIEVEMENTS[achievement_id] for achievement_id in candidates if not earned.get(achievement_id)]
