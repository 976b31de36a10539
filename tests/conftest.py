"""Pytest configuration - add src/ to path and shared experiment fixtures."""
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT / "src"))

from experiment_engine.schema import (  # noqa: E402
    Experiment,
    ExperimentStatus,
    Exposure,
    Metric,
    MetricType,
    MetricValue,
    Variant,
)


@pytest.fixture
def experiment():
    return Experiment(
        id="exp_1",
        name="Checkout button",
        status=ExperimentStatus.RUNNING,
        target_sample_size=1000,
    )


@pytest.fixture
def variants():
    return [
        Variant(id="v_control", experiment_id="exp_1", name="control", traffic_split=50, is_control=True),
        Variant(id="v_treatment", experiment_id="exp_1", name="treatment", traffic_split=50),
    ]


@pytest.fixture
def metrics():
    return [
        Metric(id="m_conv", experiment_id="exp_1", name="conversion", metric_type=MetricType.CONVERSION, is_primary=True),
        Metric(id="m_latency", experiment_id="exp_1", name="latency_ms", metric_type=MetricType.GUARDRAIL),
    ]


def _make_exposures(experiment_id, counts):
    """Exposures for ``counts`` = {variant_id: n_users}; user ids are unique per variant."""
    out = []
    for vid, n in counts.items():
        for i in range(n):
            out.append(Exposure(
                id=f"x_{vid}_{i}",
                experiment_id=experiment_id,
                variant_id=vid,
                user_id=f"{vid}_u{i}",
            ))
    return out


def _make_values(experiment_id, metric_id, variant_id, values, user_prefix=None):
    """One MetricValue per value, each for a distinct user."""
    prefix = user_prefix or variant_id
    return [
        MetricValue(
            id=f"mv_{metric_id}_{variant_id}_{i}",
            experiment_id=experiment_id,
            variant_id=variant_id,
            metric_id=metric_id,
            user_id=f"{prefix}_u{i}",
            value=float(v),
        )
        for i, v in enumerate(values)
    ]


@pytest.fixture
def make_exposures():
    return _make_exposures


@pytest.fixture
def make_values():
    return _make_values
