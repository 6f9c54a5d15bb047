"""
One-tailed exact binomial test for ABX sessions.

Null hypothesis: the listener is guessing, so every trial is a fair coin
(p = 0.5). The p-value is the probability of getting at least the observed
number of correct answers by chance:

    p = sum_{k=correct..n} C(n, k) * 0.5**n

Binomial coefficients are built iteratively from multiplicative ratio
updates on Python ints, so every intermediate value is exact and nothing
overflows no matter how many trials were run. The final division by 2**n
is a correctly rounded int/int true division.
"""
from __future__ import annotations

import math

SIGNIFICANCE_ALPHA = 0.05


def binomial_coefficient(n: int, k: int) -> int:
    """C(n, k); 0 outside 0 <= k <= n."""
    if k < 0 or k > n:
        return 0
    if k == 0 or k == n:
        return 1
    if k > n / 2:
        k = n - k
    res = 1
    for i in range(1, k + 1):
        # exact: the running product of i consecutive ints is divisible by i!
        res = res * (n - i + 1) // i
    return res


def binomial_pmf(n: int, k: int) -> float:
    """P(X = k) for X ~ Binomial(n, 0.5)."""
    if n < 0:
        return math.nan
    return binomial_coefficient(n, k) / (1 << n)


def abx_p_value(total_trials: int, correct: int) -> float:
    """Probability of `correct` or more right answers out of `total_trials` coin flips.

    Returns NaN for negative counts or correct > total_trials.
    """
    if total_trials < 0 or correct < 0 or correct > total_trials:
        return math.nan
    n = total_trials
    term = binomial_coefficient(n, correct)
    tail = 0
    for k in range(correct, n + 1):
        tail += term
        # C(n, k+1) = C(n, k) * (n - k) / (k + 1)
        term = term * (n - k) // (k + 1)
    return tail / (1 << n)


def is_significant(p_value: float, alpha: float = SIGNIFICANCE_ALPHA) -> bool:
    """Reject the guessing hypothesis when p <= alpha. NaN is never significant."""
    return p_value <= alpha


def interpret(p_value: float, alpha: float = SIGNIFICANCE_ALPHA) -> str:
    if is_significant(p_value, alpha):
        return (
            f"Since the p-value ({p_value:.4f}) is less than or equal to the common "
            f"significance level of {alpha}, we reject the null hypothesis. This suggests "
            f"a statistically significant difference (unlikely to be due to chance)."
        )
    return (
        f"Since the p-value ({p_value:.4f}) is greater than the common significance "
        f"level of {alpha}, we fail to reject the null hypothesis. This means there isn't "
        f"enough evidence to conclude a statistically significant difference (results "
        f"could be due to chance)."
    )
