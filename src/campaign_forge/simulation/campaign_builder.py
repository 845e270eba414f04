"""
Campaign Builder.

Instantiates a campaign template into a concrete ``Campaign`` and its
ordered ``Stage`` list. Every random draw goes through the injected
``random.Random`` so the same seed and clock always produce the same
campaign.

Time patterns:
- uniform: stages evenly spaced across the window
- random: stage anchors drawn uniformly and sorted
- attack_simulation: dense initial access, long dwell, fast exfiltration
- business_hours: anchors snapped to weekdays between 09:00 and 17:00
- weekend_heavy: most anchors moved onto the nearest weekend day
"""

import logging
import math
import random
import re
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone

from campaign_forge.simulation.errors import InvalidTimeWindowError
from campaign_forge.simulation.models import (
    Campaign,
    Complexity,
    ScenarioType,
    Stage,
    TimePattern,
    TimeRange,
)
from campaign_forge.simulation.scenarios import (
    CampaignTemplate,
    ScenarioCatalog,
    StageTemplate,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_RELATIVE_PATTERN = re.compile(r"^\s*(\d+)\s*([smhdw])\s*$", re.IGNORECASE)
_RELATIVE_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}

# Share of a stage's candidate techniques used at each complexity
_TECHNIQUE_RATIO = {
    Complexity.LOW: 0.34,
    Complexity.MEDIUM: 0.67,
    Complexity.HIGH: 0.85,
    Complexity.EXPERT: 1.0,
}

_BUSINESS_START_HOUR = 9
_BUSINESS_END_HOUR = 17
_WEEKEND_SHARE = 0.7
_MIN_STAGE_GAP = timedelta(minutes=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_time_expression(value: str | datetime, now: datetime) -> datetime:
    """
    Resolve a time expression against ``now``.

    Accepts ``datetime`` objects, ``"now"``, relative offsets into the past
    such as ``"2d"``, ``"6h"`` or ``"30m"``, and ISO 8601 timestamps.
    Naive values are treated as UTC.

    Raises:
        InvalidTimeWindowError: If the expression cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.lower() == "now":
            return now
        match = _RELATIVE_PATTERN.match(text)
        if match:
            amount, unit = int(match.group(1)), match.group(2).lower()
            return now - timedelta(**{_RELATIVE_UNITS[unit]: amount})
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise InvalidTimeWindowError(f"Unparseable time expression: {value!r}") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CampaignBuilder:
    """
    Builds campaigns and stages from catalog templates.

    Example:
        builder = CampaignBuilder(default_catalog(), random.Random(42))
        campaign, stages = builder.build("apt", Complexity.HIGH)
    """

    def __init__(
        self,
        catalog: ScenarioCatalog,
        rng: random.Random,
        clock: Clock = utc_now,
    ) -> None:
        self.catalog = catalog
        self.rng = rng
        self.clock = clock

    def build(
        self,
        scenario_type: ScenarioType | str,
        complexity: Complexity | str = Complexity.MEDIUM,
        time_window: tuple[str | datetime, str | datetime] | None = None,
        time_pattern: TimePattern | str = TimePattern.ATTACK_SIMULATION,
    ) -> tuple[Campaign, list[Stage]]:
        """
        Build a campaign and its stages.

        Args:
            scenario_type: Campaign family (apt, ransomware, insider, supply_chain)
            complexity: Controls how many candidate techniques each stage uses
            time_window: Optional explicit ``(start, end)``; ISO or relative
            time_pattern: How stages are spread over the campaign duration

        Raises:
            UnknownScenarioError: If no template exists for the scenario type
            InvalidTimeWindowError: If the explicit window is empty or inverted
        """
        templates = self.catalog.templates_for(scenario_type)
        complexity = Complexity(complexity)
        time_pattern = TimePattern(time_pattern)

        template = templates[0] if len(templates) == 1 else self.rng.choice(templates)
        duration = self._resolve_duration(template, time_window)

        campaign = Campaign(
            id=self._new_id("campaign"),
            name=template.name,
            type=template.type,
            threat_actor=template.threat_actor,
            objectives=template.objectives,
            duration=duration,
            complexity=complexity,
        )

        anchors = self._stage_anchors(len(template.stages), duration, time_pattern)
        stages = [
            self._build_stage(campaign, index, stage_template, anchor, complexity)
            for index, (stage_template, anchor) in enumerate(zip(template.stages, anchors))
        ]

        logger.debug(
            f"Built campaign {campaign.id} ({template.name}) with {len(stages)} stages",
            extra={"campaign_id": campaign.id},
        )
        return campaign, stages

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{self.rng.getrandbits(48):012x}"

    def _resolve_duration(
        self,
        template: CampaignTemplate,
        time_window: tuple[str | datetime, str | datetime] | None,
    ) -> TimeRange:
        now = self.clock()
        if time_window is not None:
            start = parse_time_expression(time_window[0], now)
            end = parse_time_expression(time_window[1], now)
            if end <= start:
                raise InvalidTimeWindowError(
                    f"Time window end ({end.isoformat()}) must be after start "
                    f"({start.isoformat()})"
                )
            return TimeRange(start=start, end=end)

        min_days, max_days = template.duration_days
        days = self.rng.uniform(min_days, max_days)
        return TimeRange(start=now - timedelta(days=days), end=now)

    # -------------------------------------------------------------------------
    # Stage placement
    # -------------------------------------------------------------------------

    def _stage_anchors(
        self,
        count: int,
        duration: TimeRange,
        pattern: TimePattern,
    ) -> list[datetime]:
        fractions = self._pattern_fractions(count, pattern)
        latest = max(duration.start, duration.end - _MIN_STAGE_GAP)

        anchors = []
        for fraction in fractions:
            anchor = duration.start + timedelta(seconds=duration.span_seconds * fraction)
            if pattern == TimePattern.BUSINESS_HOURS:
                anchor = _snap_to_business_hours(anchor)
            elif pattern == TimePattern.WEEKEND_HEAVY and self.rng.random() < _WEEKEND_SHARE:
                anchor = _nearest_weekend(anchor)
            anchors.append(min(max(anchor, duration.start), latest))
        return anchors

    def _pattern_fractions(self, count: int, pattern: TimePattern) -> list[float]:
        if count == 0:
            return []
        if pattern == TimePattern.RANDOM:
            return sorted(self.rng.random() for _ in range(count))
        if pattern == TimePattern.ATTACK_SIMULATION:
            jitter = 0.3 / count
            positions = sorted(
                min(1.0, max(0.0, (i + 0.5) / count + self.rng.uniform(-jitter, jitter)))
                for i in range(count)
            )
            return [3 * p**2 - 2 * p**3 for p in positions]
        # uniform, business_hours and weekend_heavy start from even slots
        return [i / count for i in range(count)]

    def _build_stage(
        self,
        campaign: Campaign,
        index: int,
        template: StageTemplate,
        start_time: datetime,
        complexity: Complexity,
    ) -> Stage:
        min_hours, max_hours = template.duration_hours
        hours = self.rng.uniform(min_hours, max_hours)
        end_time = min(start_time + timedelta(hours=hours), campaign.duration.end)

        return Stage(
            id=self._new_id("stage"),
            name=template.name,
            tactic=template.tactic,
            techniques=self._select_techniques(template.techniques, complexity),
            start_time=start_time,
            end_time=end_time,
            objectives=template.objectives,
            correlation_key=f"{campaign.id}-stage-{index:02d}",
            index=index,
        )

    def _select_techniques(
        self,
        candidates: Sequence[str],
        complexity: Complexity,
    ) -> tuple[str, ...]:
        if not candidates:
            return ()
        count = max(1, math.ceil(len(candidates) * _TECHNIQUE_RATIO[complexity]))
        if count >= len(candidates):
            return tuple(candidates)
        chosen = set(self.rng.sample(list(candidates), count))
        return tuple(t for t in candidates if t in chosen)


def _snap_to_business_hours(moment: datetime) -> datetime:
    """Move a timestamp forward into the next weekday working window."""
    if moment.hour >= _BUSINESS_END_HOUR:
        moment = (moment + timedelta(days=1)).replace(hour=_BUSINESS_START_HOUR)
    elif moment.hour < _BUSINESS_START_HOUR:
        moment = moment.replace(hour=_BUSINESS_START_HOUR)
    while moment.weekday() >= 5:
        moment = (moment + timedelta(days=1)).replace(hour=_BUSINESS_START_HOUR)
    return moment


def _nearest_weekend(moment: datetime) -> datetime:
    """Shift a weekday timestamp to the closest Saturday or Sunday."""
    weekday = moment.weekday()
    if weekday >= 5:
        return moment
    back_to_sunday = weekday + 1
    forward_to_saturday = 5 - weekday
    if back_to_sunday <= forward_to_saturday:
        return moment - timedelta(days=back_to_sunday)
    return moment + timedelta(days=forward_to_saturday)
