"""
Exposure and metric-value tracking on top of a record store.

Provides functions to record exposures/metric values, read them back per
experiment, and flatten them to DataFrames for aggregation.
"""

import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .schema import Exposure, MetricValue
from .store import EXPOSURES, METRIC_VALUES, RecordStore

logger = logging.getLogger(__name__)

EXPOSURE_COLUMNS = ["id", "experiment_id", "variant_id", "user_id", "timestamp"]
METRIC_VALUE_COLUMNS = [
    "id", "experiment_id", "variant_id", "metric_id", "user_id", "value", "timestamp",
]


def track_exposure(store: RecordStore, exposure: Exposure) -> None:
    store.put(EXPOSURES, exposure.id, exposure)
    logger.debug(f"Tracked exposure {exposure.id} ({exposure.user_id} -> {exposure.variant_id})")


def track_metric_value(store: RecordStore, metric_value: MetricValue) -> None:
    store.put(METRIC_VALUES, metric_value.id, metric_value)
    logger.debug(f"Tracked metric value {metric_value.id} for {metric_value.metric_id}")


def get_exposures(store: RecordStore, experiment_id: Optional[str] = None) -> List[Exposure]:
    return store.list(EXPOSURES, experiment_id)


def get_metric_values(
    store: RecordStore,
    experiment_id: Optional[str] = None,
    metric_id: Optional[str] = None,
) -> List[MetricValue]:
    values = store.list(METRIC_VALUES, experiment_id)
    if metric_id is not None:
        values = [v for v in values if v.metric_id == metric_id]
    return values


def exposures_frame(
    exposures: Iterable[Exposure],
    experiment_id: Optional[str] = None,
) -> pd.DataFrame:
    """
    Flatten exposures to a DataFrame.

    Returns:
        DataFrame with columns: id, experiment_id, variant_id, user_id, timestamp
    """
    rows = [
        {c: getattr(e, c) for c in EXPOSURE_COLUMNS}
        for e in exposures
        if experiment_id is None or e.experiment_id == experiment_id
    ]
    return pd.DataFrame(rows, columns=EXPOSURE_COLUMNS)


def metric_values_frame(
    metric_values: Iterable[MetricValue],
    experiment_id: Optional[str] = None,
    metric_id: Optional[str] = None,
) -> pd.DataFrame:
    """
    Flatten metric values to a DataFrame, optionally filtered.

    Returns:
        DataFrame with columns: id, experiment_id, variant_id, metric_id,
        user_id, value, timestamp
    """
    rows = [
        {c: getattr(mv, c) for c in METRIC_VALUE_COLUMNS}
        for mv in metric_values
        if (experiment_id is None or mv.experiment_id == experiment_id)
        and (metric_id is None or mv.metric_id == metric_id)
    ]
    df = pd.DataFrame(rows, columns=METRIC_VALUE_COLUMNS)
    df["value"] = df["value"].astype(float)
    return df


def user_count_by_variant(
    exposures: Iterable[Exposure],
    experiment_id: Optional[str] = None,
) -> Dict[str, int]:
    """Distinct users per variant id."""
    df = exposures_frame(exposures, experiment_id)
    if df.empty:
        return {}
    counts = df.groupby("variant_id")["user_id"].nunique()
    return {str(k): int(v) for k, v in counts.items()}


def distinct_users(exposures: Iterable[Exposure], experiment_id: Optional[str] = None) -> int:
    df = exposures_frame(exposures, experiment_id)
    return int(df["user_id"].nunique()) if not df.empty else 0
