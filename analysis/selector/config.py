"""
Configuration for subset selection.

Contains:
- Default budgets
- Policy constants (efficiency threshold, balance weights)
- Quality rubric bands
"""

# ============================================
# BUDGETS
# ============================================

DEFAULT_TOKEN_LIMIT = 4000
DEFAULT_MAX_OPINIONS = 15

# Share of the token budget at which it counts as effectively hit
TOKEN_LIMIT_HIT_RATIO = 0.95


# ============================================
# POLICIES
# ============================================

# Minimum priority-per-token for token_efficiency admission
EFFICIENCY_THRESHOLD = 20

# balanced: 0.7 x priority/100 + 0.3 x min(efficiency / 50, 1)
BALANCE_PRIORITY_WEIGHT = 0.7
BALANCE_EFFICIENCY_WEIGHT = 0.3
BALANCE_EFFICIENCY_NORMALIZER = 50


# ============================================
# QUALITY RUBRIC (4 x 25 points)
# ============================================

# (threshold_exclusive, points), checked top-down; last entry is the floor
SELECTION_RATE_BANDS = [(80, 25), (60, 20), (40, 15)]
AVERAGE_PRIORITY_BANDS = [(70, 25), (60, 20), (50, 15)]
EFFICIENCY_BANDS = [(20, 25), (15, 20), (10, 15)]
RUBRIC_FLOOR = 10

# Token usage is best just under the ceiling
TOKEN_USAGE_SWEET_SPOT = (85, 95)
TOKEN_USAGE_BANDS = [(70, 20), (50, 15)]

QUALITY_GRADES = [(90, "excellent"), (75, "good"), (60, "fair")]


# ============================================
# STRATEGY RECOMMENDATION
# ============================================

GREEDY_MIN_AVERAGE_PRIORITY = 70
GREEDY_MIN_PRIORITY_VARIANCE = 200
TOKEN_VARIANCE_RATIO = 0.5


def band_points(value: float, bands: list[tuple[float, int]], floor: int = RUBRIC_FLOOR) -> int:
    """Points of the first band whose threshold value exceeds."""
    for threshold, points in bands:
        if value > threshold:
            return points
    return floor


def grade_for_score(score: float, grades: list[tuple[float, str]] = QUALITY_GRADES) -> str:
    """excellent / good / fair / poor from a 0-100 score."""
    for minimum, grade in grades:
        if score >= minimum:
            return grade
    return "poor"
