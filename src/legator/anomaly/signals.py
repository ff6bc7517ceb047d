"""
Anomaly heuristics.

Each detector compares the current run against the same agent's
earlier runs (already filtered to the lookback window) and returns a
signal or None. The three are independent; a run may trip all of them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from legator.anomaly.snapshot import RunSnapshot
from legator.core import AnomalyConfig
from legator.core.durations import format_duration
from legator.core.resources import EventSeverity

FREQUENCY_SPIKE = "frequency-spike"
SCOPE_SPIKE = "scope-spike"
TARGET_DRIFT = "target-drift"

SCOPE_MIN_SAMPLES = 3
MAX_LISTED_TARGETS = 5


@dataclass
class AnomalySignal:
    type: str
    severity: EventSeverity
    summary: str
    detail: str
    labels: dict[str, str] = field(default_factory=dict)


def detect_anomalies(
    current: RunSnapshot, history: list[RunSnapshot], cfg: AnomalyConfig
) -> list[AnomalySignal]:
    relevant = filter_lookback(history, current.timestamp, cfg.lookback)
    if not relevant:
        return []

    signals = []
    for detector in (detect_frequency_spike, detect_scope_spike, detect_target_drift):
        signal = detector(current, relevant, cfg)
        if signal is not None:
            signals.append(signal)
    return signals


def filter_lookback(
    history: list[RunSnapshot], now: datetime, lookback: timedelta
) -> list[RunSnapshot]:
    if lookback <= timedelta(0):
        return list(history)
    return [item for item in history if now - item.timestamp <= lookback]


def detect_frequency_spike(
    current: RunSnapshot, history: list[RunSnapshot], cfg: AnomalyConfig
) -> Optional[AnomalySignal]:
    recent = 1 + sum(
        1 for item in history if current.timestamp - item.timestamp <= cfg.frequency_window
    )
    if recent <= cfg.frequency_threshold:
        return None

    severity = EventSeverity.WARNING
    if recent >= cfg.frequency_threshold * 2:
        severity = EventSeverity.CRITICAL

    window = format_duration(cfg.frequency_window)
    return AnomalySignal(
        type=FREQUENCY_SPIKE,
        severity=severity,
        summary=(
            f"Run frequency anomaly for agent {current.agent}: {recent} manual runs "
            f"within {window} (threshold={cfg.frequency_threshold})"
        ),
        detail=(
            f"Detected {recent} manual runs for agent {current.agent} in the last "
            f"{window}; baseline threshold is {cfg.frequency_threshold}."
        ),
        labels={"anomaly-kind": "frequency", "window": window},
    )


def detect_scope_spike(
    current: RunSnapshot, history: list[RunSnapshot], cfg: AnomalyConfig
) -> Optional[AnomalySignal]:
    if len(history) < SCOPE_MIN_SAMPLES:
        return None

    avg = sum(item.action_count for item in history) / len(history)
    threshold = math.ceil(avg * cfg.scope_spike_multiplier)
    if current.action_count < threshold:
        return None
    # small baselines make the multiplier alone too jumpy (1 -> 3 actions)
    if current.action_count - _round_half_away(avg) < cfg.min_scope_spike_delta:
        return None

    return AnomalySignal(
        type=SCOPE_SPIKE,
        severity=EventSeverity.WARNING,
        summary=(
            f"Scope anomaly for agent {current.agent}: {current.action_count} actions "
            f"vs baseline {avg:.1f} (multiplier={cfg.scope_spike_multiplier:.2f})"
        ),
        detail=(
            f"Current run action count {current.action_count} exceeded spike threshold "
            f"{threshold} (avg {avg:.1f} * {cfg.scope_spike_multiplier:.2f})."
        ),
        labels={"anomaly-kind": "scope"},
    )


def detect_target_drift(
    current: RunSnapshot, history: list[RunSnapshot], cfg: AnomalyConfig
) -> Optional[AnomalySignal]:
    if len(history) < cfg.target_drift_min_samples or not current.target_classes:
        return None

    seen: set[str] = set()
    for item in history:
        seen.update(item.target_classes)
    if not seen:
        return None

    new_targets = sorted(t for t in set(current.target_classes) if t not in seen)
    if not new_targets:
        return None
    listed = ", ".join(new_targets[:MAX_LISTED_TARGETS])

    return AnomalySignal(
        type=TARGET_DRIFT,
        severity=EventSeverity.WARNING,
        summary=f"Target drift anomaly for agent {current.agent}: new target classes {listed}",
        detail=(
            f"Current run references unseen target classes ({listed}) compared with "
            f"{len(history)} recent runs."
        ),
        labels={"anomaly-kind": "target-drift"},
    )


def _round_half_away(value: float) -> int:
    # round() is banker's rounding; 2.5 must become 3 here
    return int(math.floor(value + 0.5)) if value >= 0 else -int(math.floor(-value + 0.5))
