"""Level thresholds and computation.

These values MUST match the app's progress screen.
"""

from __future__ import annotations

LEVEL_THRESHOLDS: list[dict] = [
    {"level": 1, "title": "Listener", "xp_required": 0, "cumulative": 0},
    {"level": 2, "title": "First Notes", "xp_required": 100, "cumulative": 100},
    {"level": 3, "title": "Scale Runner", "xp_required": 200, "cumulative": 300},
    {"level": 4, "title": "Steady Tempo", "xp_required": 300, "cumulative": 600},
    {"level": 5, "title": "Etude Player", "xp_required": 400, "cumulative": 1000},
    {"level": 6, "title": "Ensemble Ready", "xp_required": 600, "cumulative": 1600},
    {"level": 7, "title": "Repertoire Builder", "xp_required": 800, "cumulative": 2400},
    {"level": 8, "title": "Stage Regular", "xp_required": 1100, "cumulative": 3500},
    {"level": 9, "title": "Improviser", "xp_required": 1500, "cumulative": 5000},
    {"level": 10, "title": "Virtuoso", "xp_required": 2500, "cumulative": 7500},
    {"level": 15, "title": "Soloist", "xp_required": 5000, "cumulative": 12500},
    {"level": 20, "title": "Maestro", "xp_required": 12500, "cumulative": 25000},
]


def compute_level(total_xp: int) -> dict:
    """Compute level info from total XP."""
    current = LEVEL_THRESHOLDS[0]
    next_level = LEVEL_THRESHOLDS[1]

    for i in range(len(LEVEL_THRESHOLDS) - 1):
        if total_xp >= LEVEL_THRESHOLDS[i]["cumulative"]:
            current = LEVEL_THRESHOLDS[i]
            next_level = LEVEL_THRESHOLDS[i + 1]

    # Handle XP beyond max level
    if total_xp >= LEVEL_THRESHOLDS[-1]["cumulative"]:
        current = LEVEL_THRESHOLDS[-1]
        next_level = LEVEL_THRESHOLDS[-1]

    xp_into_level = total_xp - current["cumulative"]
    xp_for_level = next_level["cumulative"] - current["cumulative"]

    # At max level, avoid division by zero
    if xp_for_level == 0:
        xp_for_level = 1

    return {
        "level": current["level"],
        "title": current["title"],
        "xp_into_level": xp_into_level,
        "xp_for_level": xp_for_level,
        "xp_for_next_level": max(0, next_level["cumulative"] - total_xp),
        "progress_percent": min(100, round(xp_into_level / xp_for_level * 100)),
        "next_level": next_level["level"],
        "next_title": next_level["title"],
    }
