"""Risk scoring for near-Earth objects.

``score_risk`` maps one NeoWs record to a :class:`RiskAssessment` by adding
five factors:

========================  ======  =========================================
factor                    max     source
========================  ======  =========================================
size                      40      ``estimated_diameter.kilometers`` max
miss distance             25      first close approach, in lunar distances
velocity                  20      first close approach, km/h
NASA hazard flag          10      ``is_potentially_hazardous_asteroid``
approach frequency         5      number of close approaches
========================  ======  =========================================

The total (0-100) is banded into five levels. Missing fields fall back to
defaults: diameter 0, miss distance infinite, velocity 0, one approach.
"""

import math
from typing import Iterable, List, NamedTuple, Sequence

from .schemas import RiskAssessment, RiskSummary

LUNAR_DISTANCE_KM = 384_400


class RiskLevel(NamedTuple):
    name: str
    min_score: int
    color: str
    description: str


# highest threshold first; the first match wins
RISK_LEVELS = (
    RiskLevel("CRITICAL", 80, "red", "Extreme risk: warrants immediate attention"),
    RiskLevel("HIGH", 60, "orange", "High risk: close monitoring recommended"),
    RiskLevel("MODERATE", 40, "yellow", "Moderate risk: routine monitoring"),
    RiskLevel("LOW", 20, "blue", "Low risk: minimal concern"),
    RiskLevel("MINIMAL", 0, "green", "Minimal risk: no significant threat"),
)

SIZE_BANDS = (
    (10, 40, "Extremely large diameter (>10 km)"),
    (1, 30, "Very large diameter (>1 km)"),
    (0.5, 20, "Large diameter (>500 m)"),
    (0.1, 15, "Medium diameter (>100 m)"),
    (0.05, 8, "Small diameter (>50 m)"),
)
SIZE_FLOOR = (2, "Very small diameter (<=50 m)")

# thresholds in lunar distances
DISTANCE_BANDS = (
    (0.1, 25, "Extremely close approach (<0.1 LD)"),
    (0.25, 20, "Very close approach (<0.25 LD)"),
    (0.5, 15, "Close approach (<0.5 LD)"),
    (1, 10, "Approach within lunar distance (<1 LD)"),
    (2, 5, "Near approach (<2 LD)"),
)
DISTANCE_FLOOR = (1, "Distant approach (>=2 LD)")

VELOCITY_BANDS = (
    (100_000, 20, "Extreme velocity (>100,000 km/h)"),
    (75_000, 15, "Very high velocity (>75,000 km/h)"),
    (50_000, 10, "High velocity (>50,000 km/h)"),
    (25_000, 6, "Moderate velocity (>25,000 km/h)"),
)
VELOCITY_FLOOR = (2, "Low velocity (<=25,000 km/h)")

HAZARD_POINTS = 10


def _to_float(value, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def first_approach(neo: dict) -> dict:
    approaches = neo.get("close_approach_data") or []
    return approaches[0] if approaches else {}


def diameter_km(neo: dict, bound: str = "max") -> float:
    km = (neo.get("estimated_diameter") or {}).get("kilometers") or {}
    return _to_float(km.get(f"estimated_diameter_{bound}"), 0.0)


def miss_distance_km(neo: dict) -> float:
    """First approach miss distance; ``inf`` when the record has none."""
    miss = first_approach(neo).get("miss_distance") or {}
    return _to_float(miss.get("kilometers"), math.inf)


def velocity_kmh(neo: dict) -> float:
    velocity = first_approach(neo).get("relative_velocity") or {}
    return _to_float(velocity.get("kilometers_per_hour"), 0.0)


def approach_count(neo: dict) -> int:
    return len(neo.get("close_approach_data") or []) or 1


def approach_date(neo: dict, fallback: str | None = None) -> str | None:
    return first_approach(neo).get("close_approach_date") or fallback


def lunar_distances(distance_km: float) -> float | None:
    """Distance in LD rounded to 2 places, or None when it is not finite."""
    if not math.isfinite(distance_km):
        return None
    return round(distance_km / LUNAR_DISTANCE_KM, 2)


def _above(value: float, bands, floor) -> tuple:
    for threshold, points, label in bands:
        if value > threshold:
            return points, label
    return floor


def _below(value: float, bands, floor) -> tuple:
    for threshold, points, label in bands:
        if value < threshold:
            return points, label
    return floor


def risk_level_for(score: int) -> RiskLevel:
    for level in RISK_LEVELS:
        if score >= level.min_score:
            return level
    return RISK_LEVELS[-1]


def score_risk(neo: dict) -> RiskAssessment:
    """Score a single NeoWs record. Pure: same record, same assessment."""
    size = diameter_km(neo)
    distance = miss_distance_km(neo)
    velocity = velocity_kmh(neo)
    hazardous = bool(neo.get("is_potentially_hazardous_asteroid", False))
    approaches = approach_count(neo)

    score = 0
    factors: List[str] = []

    points, label = _above(size, SIZE_BANDS, SIZE_FLOOR)
    score += points
    factors.append(label)

    points, label = _below(distance / LUNAR_DISTANCE_KM, DISTANCE_BANDS, DISTANCE_FLOOR)
    score += points
    factors.append(label)

    points, label = _above(velocity, VELOCITY_BANDS, VELOCITY_FLOOR)
    score += points
    factors.append(label)

    if hazardous:
        score += HAZARD_POINTS
        factors.append("Classified as potentially hazardous by NASA")

    if approaches > 3:
        score += 5
        factors.append(f"Frequent close approaches ({approaches} recorded)")
    elif approaches > 1:
        score += 2
        factors.append(f"Multiple close approaches ({approaches} recorded)")

    level = risk_level_for(score)
    return RiskAssessment(
        id=str(neo.get("id", "")),
        name=neo.get("name", "Unknown"),
        risk_score=score,
        risk_level=level.name,
        risk_color=level.color,
        risk_description=level.description,
        risk_factors=tuple(factors),
        size_km=size,
        miss_distance_lunar=lunar_distances(distance),
        velocity_kmh=velocity,
        is_nasa_hazardous=hazardous,
    )


def assess_neos(neos: Iterable[dict], fallback_date: str | None = None) -> List[RiskAssessment]:
    """Score every record and sort by descending risk.

    ``sorted`` is stable, so equal scores keep their input order.
    """
    assessments = [
        score_risk(neo).model_copy(
            update={
                "approach_date": approach_date(neo, fallback_date),
                "nasa_jpl_url": neo.get("nasa_jpl_url"),
            }
        )
        for neo in neos
    ]
    return sorted(assessments, key=lambda a: a.risk_score, reverse=True)


def summarize_risk(assessments: Sequence[RiskAssessment]) -> RiskSummary:
    counts = {level.name: 0 for level in RISK_LEVELS}
    for assessment in assessments:
        counts[assessment.risk_level] += 1
    scores = [a.risk_score for a in assessments]
    return RiskSummary(
        total_objects=len(assessments),
        critical_risk=counts["CRITICAL"],
        high_risk=counts["HIGH"],
        moderate_risk=counts["MODERATE"],
        low_risk=counts["LOW"],
        minimal_risk=counts["MINIMAL"],
        highest_risk_score=max(scores, default=0),
        average_risk_score=round(sum(scores) / len(scores), 1) if scores else 0.0,
    )
