"""Tests for verification code generation."""

from unittest.mock import patch

import pytest

from taskmarket.services import verification_code


@pytest.mark.unit
class TestGenerateCode:
    """Tests for generate_code."""

    def test_lower_bound(self):
        """Test the lowest draw is still six digits."""
        with patch("taskmarket.services.verification_code.secrets.randbelow", return_value=0):
            assert verification_code.generate_code() == "100000"

    def test_upper_bound(self):
        """Test the highest draw is still six digits."""
        with patch("taskmarket.services.verification_code.secrets.randbelow", return_value=899999):
            assert verification_code.generate_code() == "999999"

    def test_draws_from_full_range(self):
        """Test codes are drawn from the full range."""
        with patch("taskmarket.services.verification_code.secrets.randbelow", return_value=0) as mock_randbelow:
            verification_code.generate_code()

        mock_randbelow.assert_called_once_with(900000)

    def test_always_six_digits(self):
        """Test codes are always six digits."""
        codes = [verification_code.generate_code() for _ in range(500)]

        assert all(len(code) == 6 and code.isdigit() for code in codes)
        assert all(100000 <= int(code) <= 999999 for code in codes)


@pytest.mark.unit
def test_generate_code_pair_draws_twice():
    """Test a code pair draws two codes."""
    with patch("taskmarket.services.verification_code.generate_code", side_effect=["111111", "222222"]):
        assert verification_code.generate_code_pair() == ("111111", "222222")
