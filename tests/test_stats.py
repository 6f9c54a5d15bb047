import math

import pytest

from abx_remote.stats import (
    SIGNIFICANCE_ALPHA,
    abx_p_value,
    binomial_coefficient,
    binomial_pmf,
    interpret,
    is_significant,
)


class TestBinomialCoefficient:
    def test_small_values(self):
        assert binomial_coefficient(5, 0) == 1
        assert binomial_coefficient(5, 1) == 5
        assert binomial_coefficient(5, 2) == 10
        assert binomial_coefficient(5, 5) == 1
        assert binomial_coefficient(16, 12) == 1820

    def test_out_of_range_is_zero(self):
        assert binomial_coefficient(5, -1) == 0
        assert binomial_coefficient(5, 6) == 0

    def test_symmetry(self):
        for n in range(0, 40):
            for k in range(0, n + 1):
                assert binomial_coefficient(n, k) == binomial_coefficient(n, n - k)

    def test_matches_math_comb_for_large_n(self):
        for n, k in ((200, 100), (1000, 3), (1000, 997), (3000, 1500)):
            assert binomial_coefficient(n, k) == math.comb(n, k)

    def test_pmf_sums_to_one(self):
        assert sum(binomial_pmf(20, k) for k in range(21)) == pytest.approx(1.0)


class TestAbxPValue:
    def test_all_correct_out_of_five(self):
        p = abx_p_value(5, 5)
        assert p == 0.03125
        assert is_significant(p)

    def test_three_of_five(self):
        p = abx_p_value(5, 3)
        assert p == 0.5
        assert not is_significant(p)

    def test_zero_correct_is_certain(self):
        for n in (1, 5, 16, 100):
            assert abx_p_value(n, 0) == 1.0

    def test_all_correct_is_half_to_the_n(self):
        for n in range(1, 30):
            assert abx_p_value(n, n) == 0.5 ** n

    def test_zero_trials(self):
        assert abx_p_value(0, 0) == 1.0

    def test_known_values(self):
        assert abx_p_value(10, 8) == pytest.approx(56 / 1024)
        assert abx_p_value(10, 9) == pytest.approx(11 / 1024)
        assert abx_p_value(16, 12) == pytest.approx(2517 / 65536)

    def test_significance_boundary_at_ten_trials(self):
        assert not is_significant(abx_p_value(10, 8))
        assert is_significant(abx_p_value(10, 9))

    def test_monotonic_in_correct(self):
        n = 24
        values = [abx_p_value(n, c) for c in range(n + 1)]
        for hi, lo in zip(values, values[1:]):
            assert lo < hi

    def test_always_a_probability(self):
        for n in range(0, 50):
            for c in range(0, n + 1):
                p = abx_p_value(n, c)
                assert 0.0 <= p <= 1.0

    def test_large_n_does_not_overflow(self):
        p = abx_p_value(2000, 1000)
        assert 0.5 < p < 0.51
        assert abx_p_value(2000, 0) == 1.0
        assert 0.0 <= abx_p_value(2000, 2000) < 1e-300

    @pytest.mark.parametrize("n,c", [(-1, 0), (5, -1), (5, 6)])
    def test_invalid_input_is_nan(self, n, c):
        p = abx_p_value(n, c)
        assert math.isnan(p)
        assert not is_significant(p)


class TestInterpretation:
    def test_alpha(self):
        assert SIGNIFICANCE_ALPHA == 0.05

    def test_boundary_is_inclusive(self):
        assert is_significant(0.05)
        assert not is_significant(0.0500001)

    def test_reject_text(self):
        text = interpret(0.03125)
        assert "(0.0312)" in text or "(0.0313)" in text
        assert "we reject the null hypothesis" in text

    def test_fail_to_reject_text(self):
        text = interpret(0.5)
        assert "(0.5000)" in text
        assert "fail to reject the null hypothesis" in text
        assert "we reject" not in text
