"""
Bayesian analysis of conversion metrics.

Beta-Binomial model with a flat Beta(1, 1) prior per variant. Probability to be
best and expected loss are Monte Carlo estimates; trials run in independent
batches whose win/loss sums are reduced, so a fixed seed and batch size give
the same answer regardless of how many workers run the batches.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..schema import BayesianDecision, BayesianResult, MetricValue, Variant
from ..tracking import metric_values_frame
from .distributions import beta_mean, beta_variance, sample_beta

logger = logging.getLogger(__name__)

DEFAULT_TRIALS = 10000
CREDIBLE_Z = 1.96


@dataclass(frozen=True)
class ConversionData:
    variant_id: str
    successes: int
    trials: int


def beta_posterior(
    successes: int,
    trials: int,
    prior_alpha: float = 1.0,
    prior_beta: float = 1.0,
) -> Tuple[float, float]:
    """Posterior (alpha, beta) after ``successes`` out of ``trials``."""
    successes = max(0, successes)
    failures = max(0, trials - successes)
    return prior_alpha + successes, prior_beta + failures


def credible_interval(alpha: float, beta: float) -> Tuple[float, float]:
    """95% interval from the normal approximation to the Beta posterior, clipped to [0, 1]."""
    mean = beta_mean(alpha, beta)
    std = np.sqrt(beta_variance(alpha, beta))
    return max(0.0, mean - CREDIBLE_Z * std), min(1.0, mean + CREDIBLE_Z * std)


def _run_batch(
    posteriors: Sequence[Tuple[float, float]],
    n: int,
    seed: np.random.SeedSequence,
    sampler: str,
) -> Tuple[np.ndarray, np.ndarray]:
    """Win counts and summed losses per variant over ``n`` trials."""
    rng = np.random.default_rng(seed)
    k = len(posteriors)
    draws = np.empty((n, k))
    for j, (a, b) in enumerate(posteriors):
        draws[:, j] = sample_beta(rng, a, b, size=n, method=sampler)

    # Tied maxima (common once draws are clipped to 0 or 1) share the win
    is_max = draws == draws.max(axis=1, keepdims=True)
    wins = (is_max / is_max.sum(axis=1, keepdims=True)).sum(axis=0)

    if k == 1:
        return wins, np.zeros(1)
    losses = np.empty(k)
    for j in range(k):
        best_other = np.delete(draws, j, axis=1).max(axis=1)
        losses[j] = np.maximum(0.0, best_other - draws[:, j]).sum()
    return wins, losses


def monte_carlo_best(
    posteriors: Sequence[Tuple[float, float]],
    n_trials: int = DEFAULT_TRIALS,
    seed: Optional[int] = None,
    sampler: str = "normal",
    batch_size: int = DEFAULT_TRIALS,
    workers: int = 1,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Estimate probability to be best and expected loss for each posterior.

    Args:
        posteriors: (alpha, beta) per variant
        n_trials: Total Monte Carlo trials
        seed: Seed for reproducible draws
        sampler: "normal" (mean + std * Z) or "beta"
        batch_size: Trials per batch
        workers: Threads used to run batches

    Returns:
        Tuple of (probability_to_be_best, expected_loss) arrays
    """
    k = len(posteriors)
    if k == 0:
        return np.zeros(0), np.zeros(0)

    sizes = [batch_size] * (n_trials // batch_size)
    if n_trials % batch_size:
        sizes.append(n_trials % batch_size)
    seeds = np.random.SeedSequence(seed).spawn(len(sizes))

    if workers > 1 and len(sizes) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            parts = list(pool.map(
                lambda args: _run_batch(posteriors, args[0], args[1], sampler),
                zip(sizes, seeds),
            ))
    else:
        parts = [_run_batch(posteriors, n, s, sampler) for n, s in zip(sizes, seeds)]

    wins = np.sum([p[0] for p in parts], axis=0)
    losses = np.sum([p[1] for p in parts], axis=0)
    return wins / n_trials, losses / n_trials


def analyze(
    variants: Sequence[Variant],
    conversion_data: Iterable[ConversionData],
    n_trials: int = DEFAULT_TRIALS,
    seed: Optional[int] = None,
    sampler: str = "normal",
    batch_size: int = DEFAULT_TRIALS,
    workers: int = 1,
) -> List[BayesianResult]:
    """
    Bayesian analysis of conversion data.

    Conversion data is matched to variants by id; variants without data keep
    the flat prior.

    Returns:
        One BayesianResult per variant, in variant order
    """
    if not variants:
        return []

    by_variant: Dict[str, ConversionData] = {d.variant_id: d for d in conversion_data}
    posteriors = []
    for v in variants:
        data = by_variant.get(v.id)
        if data is None:
            logger.debug(f"No conversion data for variant {v.id}; using flat prior")
            posteriors.append(beta_posterior(0, 0))
        else:
            if data.successes > data.trials:
                logger.warning(
                    f"Variant {v.id}: successes ({data.successes}) exceed trials ({data.trials})"
                )
            posteriors.append(beta_posterior(data.successes, data.trials))

    p_best, loss = monte_carlo_best(
        posteriors,
        n_trials=n_trials,
        seed=seed,
        sampler=sampler,
        batch_size=batch_size,
        workers=workers,
    )

    results = []
    for i, (v, (a, b)) in enumerate(zip(variants, posteriors)):
        results.append(BayesianResult(
            variant_id=v.id,
            variant_name=v.name,
            posterior_alpha=a,
            posterior_beta=b,
            posterior_mean=beta_mean(a, b),
            posterior_std=float(np.sqrt(beta_variance(a, b))),
            credible_interval=credible_interval(a, b),
            probability_to_be_best=float(p_best[i]),
            expected_loss=float(loss[i]),
        ))
    return results


def should_stop_experiment(
    results: Sequence[BayesianResult],
    min_probability: float = 0.95,
    max_expected_loss: float = 0.01,
) -> BayesianDecision:
    """
    Decision rule: stop when one variant is very likely best at low expected loss.
    """
    if not results:
        return BayesianDecision(should_stop=False, reason="No Bayesian results available")

    best = max(results, key=lambda r: r.probability_to_be_best)
    if best.probability_to_be_best >= min_probability and best.expected_loss <= max_expected_loss:
        return BayesianDecision(
            should_stop=True,
            reason=(
                f"{best.variant_name} has {best.probability_to_be_best * 100:.1f}% "
                "probability to be best"
            ),
            recommended_variant=best.variant_name,
        )

    if best.probability_to_be_best < 0.6:
        return BayesianDecision(
            should_stop=False,
            reason="No clear winner yet, continue collecting data",
        )

    return BayesianDecision(
        should_stop=False,
        reason="Continue experiment to reach decision threshold",
    )


def conversion_data_from_values(
    metric_values: Iterable[MetricValue],
    metric_id: str,
    experiment_id: Optional[str] = None,
) -> List[ConversionData]:
    """
    Successes and trials per variant for a conversion metric.

    A user converts when any of their values is positive; trials are distinct users.
    """
    df = metric_values_frame(metric_values, experiment_id, metric_id)
    if df.empty:
        return []
    per_user = df.groupby(["variant_id", "user_id"])["value"].max().reset_index()
    per_user["converted"] = per_user["value"] > 0
    grouped = per_user.groupby("variant_id")["converted"].agg(["sum", "size"])
    return [
        ConversionData(variant_id=str(vid), successes=int(row["sum"]), trials=int(row["size"]))
        for vid, row in grouped.iterrows()
    ]
