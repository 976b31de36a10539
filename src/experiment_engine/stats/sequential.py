"""
Sequential analysis: alpha-spending and early-stopping decisions.

Checking results every time data arrives inflates the false-positive rate. An
O'Brien-Fleming style spending function gives early looks a much smaller alpha;
winners may only be declared from 50% of the planned sample onwards, and
futility is checked past the same point.
"""

import math
from typing import Sequence, Tuple

from ..schema import ExperimentResult, Recommendation, SequentialTestResult, StoppingEstimate
from .distributions import normal_cdf, normal_ppf

FUTILITY_FRACTION = 0.5
FUTILITY_P_VALUE = 0.5
FUTILITY_CONFIDENCE = 0.95
MIN_WINNER_FRACTION = 0.5

# Rule-of-thumb n = 16 * sigma^2 / effect^2 with sigma fixed at 0.05
RULE_OF_THUMB_SIGMA = 0.05
DEFAULT_ELAPSED_DAYS = 7
DEFAULT_DAYS_REMAINING = 14


def obf_boundary(
    alpha: float,
    information_fraction: float,
) -> float:
    """
    O'Brien-Fleming z boundary for the current information fraction.

    Args:
        alpha: Overall Type I error
        information_fraction: Proportion of planned sample already observed (0-1)

    Returns:
        Z-critical value for current look (inf outside (0, 1])
    """
    if information_fraction <= 0 or information_fraction > 1:
        return math.inf
    return normal_ppf(1 - alpha / 2) / math.sqrt(information_fraction)


def alpha_spending(information_fraction: float, alpha: float = 0.05) -> float:
    """
    Alpha available at this look: 2 * (1 - Phi(z_{1-alpha/2} / sqrt(t))).

    Returns 0 for information fractions outside (0, 1].
    """
    z = obf_boundary(alpha, information_fraction)
    if math.isinf(z):
        return 0.0
    return 2 * (1 - normal_cdf(z))


def information_fraction(current_sample_size: int, target_sample_size: int) -> float:
    """current / target, capped at 1.0; 0 for a non-positive target."""
    if target_sample_size <= 0 or current_sample_size <= 0:
        return 0.0
    return min(1.0, current_sample_size / target_sample_size)


def evaluate(
    current_sample_size: int,
    target_sample_size: int,
    primary_result: ExperimentResult,
    alpha: float = 0.05,
) -> SequentialTestResult:
    """
    Decide whether the experiment can stop at this look.

    Args:
        current_sample_size: Distinct users observed so far
        target_sample_size: Planned sample size
        primary_result: Treatment result for the primary metric
        alpha: Overall significance level

    Returns:
        SequentialTestResult with recommendation continue / stop_winner / stop_no_effect
    """
    fraction = information_fraction(current_sample_size, target_sample_size)
    adjusted_alpha = alpha_spending(fraction, alpha)
    p_value = primary_result.p_value

    if fraction > FUTILITY_FRACTION and p_value > FUTILITY_P_VALUE:
        return SequentialTestResult(
            should_stop=True,
            reason="Futility: Unlikely to detect significant effect even with full sample size",
            confidence=FUTILITY_CONFIDENCE,
            recommendation=Recommendation.STOP_NO_EFFECT,
            information_fraction=fraction,
            adjusted_alpha=adjusted_alpha,
        )

    if p_value < adjusted_alpha and fraction >= MIN_WINNER_FRACTION:
        return SequentialTestResult(
            should_stop=True,
            reason=(
                "Statistical significance achieved with adjusted alpha "
                f"(p={p_value:.4f} < {adjusted_alpha:.4f})"
            ),
            confidence=1 - p_value,
            recommendation=Recommendation.STOP_WINNER,
            information_fraction=fraction,
            adjusted_alpha=adjusted_alpha,
        )

    return SequentialTestResult(
        should_stop=False,
        reason=f"Continue collecting data ({fraction * 100:.1f}% of target sample size)",
        confidence=fraction,
        recommendation=Recommendation.CONTINUE,
        information_fraction=fraction,
        adjusted_alpha=adjusted_alpha,
    )


def repeated_peek_warning(
    n_planned: int,
    n_observed: int,
    n_analyses: int,
) -> Tuple[bool, str]:
    """
    Flag looks that inflate Type I error when read with the fixed alpha.

    Returns:
        (is_warning, message); no warning for a single look at the planned size
    """
    notes = []
    if n_observed < n_planned:
        pct = n_observed / n_planned * 100 if n_planned > 0 else 0.0
        notes.append(
            f"Early analysis: only {pct:.0f}% of planned sample. "
            "Stopping now inflates the false-positive rate."
        )
    if n_analyses > 1:
        notes.append(
            f"Multiple analyses ({n_analyses}) performed. "
            "Compare p-values against the spent alpha, not the nominal one."
        )
    if not notes:
        return False, "Single analysis at planned sample size."
    return True, " ".join(notes)


def optimal_stopping_time(
    results: Sequence[ExperimentResult],
    current_sample_size: int,
    target_sample_size: int,
    elapsed_days: float = DEFAULT_ELAPSED_DAYS,
) -> StoppingEstimate:
    """
    Project the sample needed for the largest observed treatment effect.

    Args:
        results: Results of one metric (control rows are ignored)
        current_sample_size: Users observed so far
        target_sample_size: Planned sample size, used when no effect is observed
        elapsed_days: Days the experiment has been collecting data

    Returns:
        StoppingEstimate; without treatment results the target and a
        two-week horizon are returned
    """
    treatments = [r for r in results if not r.is_control]
    if not treatments:
        return StoppingEstimate(
            can_stop_early=False,
            estimated_sample_size_needed=target_sample_size,
            days_remaining=DEFAULT_DAYS_REMAINING,
        )

    best = max(treatments, key=lambda r: abs(r.relative_uplift))
    effect = abs(best.relative_uplift) / 100
    if effect > 0:
        needed = int(math.ceil(16 * RULE_OF_THUMB_SIGMA ** 2 / effect ** 2))
    else:
        needed = target_sample_size

    remaining = max(0, needed - current_sample_size)
    per_day = current_sample_size / elapsed_days if elapsed_days > 0 else 0.0
    days = int(math.ceil(remaining / per_day)) if per_day > 0 else DEFAULT_DAYS_REMAINING

    return StoppingEstimate(
        can_stop_early=current_sample_size >= needed and best.is_significant,
        estimated_sample_size_needed=needed,
        days_remaining=days,
    )
