"""Time-to-goal estimates and projected trajectories for tracked metrics."""

import calendar
import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Iterable, List, Optional, Tuple

import structlog

from ..domain.models import PersonalRecord, PredictionDetails, ProjectionPoint, TrainingTier

logger = structlog.get_logger()

GOAL_REACHED = "Goal reached!"
NOT_ENOUGH_DATA = "Not enough data"

# Monthly improvement assumed when there is no usable history
MONTHLY_RATES = {
    TrainingTier.BEGINNER: 0.10,
    TrainingTier.INTERMEDIATE: 0.05,
    TrainingTier.ADVANCED: 0.02,
}

# Applied to a measured daily rate
TIER_ADJUSTMENTS = {
    TrainingTier.BEGINNER: 1.2,
    TrainingTier.INTERMEDIATE: 1.0,
    TrainingTier.ADVANCED: 0.8,
}

TIER_IMPACT = {
    TrainingTier.BEGINNER: "As a beginner, your progress predictions are accelerated (20% faster)",
    TrainingTier.INTERMEDIATE: "As an intermediate lifter, your progress predictions are balanced",
    TrainingTier.ADVANCED: "As an advanced lifter, your progress predictions are more conservative (20% slower)",
}

_ETA_PATTERN = re.compile(r"(\d+)\s*(day|week|month|year)")


def _ceil(value: float) -> int:
    # Trim float noise so 2.0000000000000004 does not become 3
    return math.ceil(round(value, 9))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _plural(amount: int, unit: str) -> str:
    return f"~{amount} {unit}" if amount == 1 else f"~{amount} {unit}s"


def _tier(tier: Any) -> TrainingTier:
    try:
        return TrainingTier(tier)
    except ValueError:
        logger.warning("unknown_training_tier", tier=str(tier))
        return TrainingTier.INTERMEDIATE


def _weight_factor(body_weight: Optional[float]) -> float:
    if not body_weight:
        return 1.0
    if body_weight > 200:
        return 0.9
    if body_weight > 150:
        return 1.0
    return 1.1


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed.replace(tzinfo=None) if parsed.tzinfo else parsed
    return None


def _coerce_sample(entry: Any) -> Optional[Tuple[float, datetime]]:
    """Pull (value, when) out of a mapping, a record or a pair."""
    if isinstance(entry, PersonalRecord):
        raw_value, raw_date = entry.current_value, entry.date_achieved
    elif isinstance(entry, dict):
        raw_value = entry.get("value", entry.get("current_value"))
        raw_date = entry.get("date", entry.get("date_achieved"))
    elif isinstance(entry, (tuple, list)) and len(entry) == 2:
        raw_value, raw_date = entry
    else:
        raw_value = getattr(entry, "value", None)
        raw_date = getattr(entry, "date", None)

    try:
        value = float(raw_value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    when = _as_datetime(raw_date)
    if when is None:
        return None
    return value, when


def parse_history(history: Optional[Iterable[Any]]) -> List[Tuple[float, datetime]]:
    """Usable samples ordered oldest first; malformed entries are dropped."""
    samples = []
    for entry in history or ():
        sample = _coerce_sample(entry)
        if sample is None:
            logger.debug("history_entry_skipped", entry=repr(entry)[:80])
            continue
        samples.append(sample)
    samples.sort(key=lambda s: s[1])
    return samples


def _fallback_estimate(
    current: float, target: float, tier: TrainingTier, body_weight: Optional[float]
) -> str:
    monthly_delta = current * MONTHLY_RATES[tier] * _weight_factor(body_weight)
    if monthly_delta <= 0:
        return NOT_ENOUGH_DATA

    months = _ceil((target - current) / monthly_delta)
    if months <= 1:
        return "~1 month"
    if months <= 12:
        return f"~{months} months"
    return _plural(_round_half_up(months / 12), "year")


def estimate_time_to_goal(
    current: float,
    target: float,
    tier: TrainingTier = TrainingTier.INTERMEDIATE,
    history: Optional[Iterable[Any]] = None,
    body_weight: Optional[float] = None,
) -> str:
    """Human readable estimate of how long until ``current`` reaches ``target``.

    With two or more usable history samples the measured daily rate between
    the oldest and newest sample is used, scaled by the tier adjustment.
    Otherwise, or when the measured rate is not positive, a fixed monthly
    rate per tier is assumed.
    """
    if current >= target:
        return GOAL_REACHED

    tier = _tier(tier)
    samples = parse_history(history)
    if len(samples) < 2:
        return _fallback_estimate(current, target, tier, body_weight)

    (oldest_value, oldest_date), (newest_value, newest_date) = samples[0], samples[-1]
    days_between = (newest_date - oldest_date).total_seconds() / 86400
    if days_between <= 0:
        return _fallback_estimate(current, target, tier, body_weight)

    daily_rate = (newest_value - oldest_value) / days_between
    if daily_rate <= 0:
        return _fallback_estimate(current, target, tier, body_weight)

    days = _ceil((target - current) / (daily_rate * TIER_ADJUSTMENTS[tier]))
    if days <= 7:
        return _plural(days, "day")
    if days <= 30:
        return _plural(_ceil(days / 7), "week")
    if days <= 365:
        return _plural(max(_round_half_up(days / 30), 1), "month")
    return _plural(_round_half_up(days / 365), "year")


def parse_eta(eta: str) -> Optional[Tuple[int, str]]:
    """Split an estimate like ``"~3 weeks"`` into ``(3, "week")``."""
    if not isinstance(eta, str):
        return None
    match = _ETA_PATTERN.search(eta)
    if not match:
        return None
    return int(match.group(1)), match.group(2)


def add_months(day: date, months: int) -> date:
    """Calendar month arithmetic, clamping to the last day of the month."""
    index = day.month - 1 + months
    year, month = day.year + index // 12, index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def project_trajectory(
    current: float,
    target: float,
    eta: str,
    start: Optional[date] = None,
) -> List[ProjectionPoint]:
    """Points from today's value to the target, linearly interpolated.

    Day estimates get weekly points, weeks biweekly, months monthly and
    years quarterly.
    """
    start = start or date.today()
    points = [ProjectionPoint(point_date=start, value=current, label="Now")]
    if eta == GOAL_REACHED:
        return points

    parsed = parse_eta(eta)
    if parsed is None:
        logger.debug("eta_unparseable", eta=eta)
        amount, unit = 3, "month"
    else:
        amount, unit = parsed
    amount = max(amount, 1)

    if unit == "day":
        end = start + timedelta(days=amount)
        step = lambda i: start + timedelta(weeks=i)
        span, interval = (end - start).days, 7
    elif unit == "week":
        end = start + timedelta(weeks=amount)
        step = lambda i: start + timedelta(weeks=2 * i)
        span, interval = (end - start).days, 14
    elif unit == "month":
        end = add_months(start, amount)
        step = lambda i: add_months(start, i)
        span, interval = amount, 1
    else:
        end = add_months(start, 12 * amount)
        step = lambda i: add_months(start, 3 * i)
        span, interval = 12 * amount, 3

    intervals = max(_ceil(span / interval), 1)
    increment = (target - current) / intervals
    for i in range(1, intervals):
        when = step(i)
        points.append(
            ProjectionPoint(point_date=when, value=current + increment * i, label=when.strftime("%b %d"))
        )
    points.append(ProjectionPoint(point_date=end, value=target, label="Goal"))
    return points


def calculate_progress(current: Optional[float], target: Optional[float]) -> float:
    """Fraction of target reached, capped at 1.0; 0 for missing inputs."""
    if not current or not target:
        return 0.0
    if math.isnan(current) or math.isnan(target):
        return 0.0
    return min(current / target, 1.0)


def improvement_rate(history: Optional[Iterable[Any]]) -> str:
    """Measured relative improvement per month, or "Unknown"."""
    samples = parse_history(history)
    if len(samples) < 2:
        return "Unknown"
    (oldest_value, oldest_date), (newest_value, newest_date) = samples[0], samples[-1]
    days_between = (newest_date - oldest_date).total_seconds() / 86400
    if days_between <= 0 or newest_value <= oldest_value or oldest_value <= 0:
        return "Unknown"
    daily = (newest_value - oldest_value) / oldest_value / days_between
    return f"{daily * 30 * 100:.2f}% per month"


def describe_prediction(
    record: PersonalRecord,
    history: Optional[Iterable[Any]] = None,
    tier: TrainingTier = TrainingTier.INTERMEDIATE,
    body_weight: Optional[float] = None,
) -> PredictionDetails:
    """Everything the goal detail view shows for one record."""
    tier = _tier(tier)
    history = list(history or [])
    return PredictionDetails(
        exercise_name=record.exercise_name,
        current_value=record.current_value,
        target_value=record.target_value,
        unit=record.unit,
        time_to_goal=estimate_time_to_goal(
            record.current_value, record.target_value, tier, history, body_weight
        ),
        progress=round(calculate_progress(record.current_value, record.target_value) * 100, 1),
        improvement_rate=improvement_rate(history),
        history_count=len(history),
        tier=tier,
        tier_impact=TIER_IMPACT[tier],
    )
