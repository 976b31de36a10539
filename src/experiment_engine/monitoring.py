"""
On-demand experiment monitoring.

Metric anomaly detection (outlier rate per metric) and traffic checks
(low traffic, stalled data collection). Checks take ``now`` explicitly; nothing
here runs on a schedule.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from .schema import (
    AnomalyAlert,
    Experiment,
    ExperimentStatus,
    Exposure,
    Metric,
    MetricValue,
    Severity,
    parse_timestamp,
    utc_now,
)
from .tracking import exposures_frame, metric_values_frame

logger = logging.getLogger(__name__)

OUTLIER_STD = 3.0
OUTLIER_RATE_THRESHOLD = 0.05
LOW_TRAFFIC_HOURS = 24
LOW_TRAFFIC_EXPOSURES = 100


def _alert_id(kind: str) -> str:
    return f"alert-{kind}-{uuid.uuid4().hex[:8]}"


def detect_outliers(
    metric_values: Iterable[MetricValue],
    metrics: Optional[Sequence[Metric]] = None,
    experiment_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[AnomalyAlert]:
    """
    Flag metrics whose outlier rate is unusually high.

    A value is an outlier when it lies more than 3 sample standard deviations
    from its metric's mean; an alert is raised when outliers exceed 5% of the
    metric's observations.

    Args:
        metric_values: Recorded metric values
        metrics: Optional metric definitions (restricts the check and supplies names)
        experiment_id: Optional experiment filter
        now: Alert timestamp (defaults to the current UTC time)

    Returns:
        One AnomalyAlert per anomalous metric
    """
    now = parse_timestamp(now) or utc_now()
    df = metric_values_frame(metric_values, experiment_id)
    if df.empty:
        return []

    names: Dict[str, str] = {}
    if metrics is not None:
        names = {m.id: m.name for m in metrics}
        df = df[df["metric_id"].isin(list(names))]

    alerts = []
    for metric_id, group in df.groupby("metric_id"):
        values = group["value"].to_numpy(dtype=float)
        n = len(values)
        mean = values.mean()
        std = float(np.sqrt(((values - mean) ** 2).sum() / ((n - 1) or 1)))
        n_outliers = int((np.abs(values - mean) > OUTLIER_STD * std).sum())

        if n_outliers > n * OUTLIER_RATE_THRESHOLD:
            name = names.get(metric_id, metric_id)
            exp_ids = group["experiment_id"].unique()
            alert = AnomalyAlert(
                id=_alert_id("anomaly"),
                experiment_id=experiment_id or str(exp_ids[0]),
                alert_type="metric_anomaly",
                severity=Severity.WARNING,
                timestamp=now,
                message=(
                    f"Unusual distribution detected in {name}: {n_outliers} outliers "
                    f"({n_outliers / n * 100:.1f}%)"
                ),
                metadata={
                    "metric_id": metric_id,
                    "outlier_count": n_outliers,
                    "total_values": n,
                },
            )
            logger.warning(alert.message)
            alerts.append(alert)
    return alerts


def monitor_traffic(
    experiment: Experiment,
    exposures: Iterable[Exposure],
    now: Optional[datetime] = None,
) -> List[AnomalyAlert]:
    """
    Low-traffic and stalled-collection alerts for one experiment.

    - warning: more than 24h since start and fewer than 100 exposures
    - critical: running for over an hour with no exposure in the last hour
    """
    now = parse_timestamp(now) or utc_now()
    df = exposures_frame(exposures, experiment.id)
    start = parse_timestamp(experiment.start_date)
    hours_since_start = (now - start).total_seconds() / 3600 if start else 0.0

    alerts = []
    if hours_since_start > LOW_TRAFFIC_HOURS and len(df) < LOW_TRAFFIC_EXPOSURES:
        alerts.append(AnomalyAlert(
            id=_alert_id("low-traffic"),
            experiment_id=experiment.id,
            alert_type="low_traffic",
            severity=Severity.WARNING,
            message=(
                f"Low traffic detected: Only {len(df)} exposures "
                f"in {hours_since_start:.0f} hours"
            ),
            timestamp=now,
            metadata={"exposure_count": len(df), "hours_since_start": hours_since_start},
        ))

    if ExperimentStatus(experiment.status) == ExperimentStatus.RUNNING and hours_since_start > 1:
        timestamps = df["timestamp"].map(parse_timestamp)
        recent = [t for t in timestamps if now - t < timedelta(hours=1)]
        if not recent:
            alerts.append(AnomalyAlert(
                id=_alert_id("no-data"),
                experiment_id=experiment.id,
                alert_type="low_traffic",
                severity=Severity.CRITICAL,
                message="No exposures recorded in the last hour. Check data collection.",
                timestamp=now,
            ))

    for alert in alerts:
        logger.warning(f"{experiment.id}: {alert.message}")
    return alerts


def experiment_velocity(
    exposures: Iterable[Exposure],
    experiment_id: Optional[str] = None,
) -> Dict[str, float]:
    """
    Distinct users per day and per hour over the exposure time span.

    A zero span (all exposures at one instant) counts as one day.
    """
    df = exposures_frame(exposures, experiment_id)
    if df.empty:
        return {"users_per_day": 0.0, "users_per_hour": 0.0, "total_users": 0}

    timestamps = df["timestamp"].map(parse_timestamp)
    days = (max(timestamps) - min(timestamps)).total_seconds() / 86400
    days = days or 1.0
    users = int(df["user_id"].nunique())
    per_day = users / days
    return {"users_per_day": per_day, "users_per_hour": per_day / 24, "total_users": users}


def active_alerts(
    experiment: Experiment,
    metrics: Sequence[Metric],
    exposures: Iterable[Exposure],
    metric_values: Iterable[MetricValue],
    now: Optional[datetime] = None,
) -> List[AnomalyAlert]:
    """Traffic and metric alerts for an experiment, newest first."""
    alerts = monitor_traffic(experiment, exposures, now=now)
    alerts += detect_outliers(metric_values, metrics, experiment_id=experiment.id, now=now)
    return sorted(alerts, key=lambda a: a.timestamp, reverse=True)
