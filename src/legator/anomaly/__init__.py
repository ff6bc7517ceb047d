"""
Baseline anomaly detection over agent run history.

Three heuristics (frequency spike, scope spike, target drift) are
evaluated per manual run against the same agent's earlier runs.
"""

from legator.anomaly.detector import AnomalyDetector, ScanResult, anomaly_key
from legator.anomaly.signals import (
    FREQUENCY_SPIKE,
    SCOPE_SPIKE,
    TARGET_DRIFT,
    AnomalySignal,
    detect_anomalies,
)
from legator.anomaly.snapshot import RunSnapshot, normalize_target_class, summarize_run

__all__ = [
    "AnomalyDetector",
    "AnomalySignal",
    "FREQUENCY_SPIKE",
    "RunSnapshot",
    "SCOPE_SPIKE",
    "ScanResult",
    "TARGET_DRIFT",
    "anomaly_key",
    "detect_anomalies",
    "normalize_target_class",
    "summarize_run",
]
