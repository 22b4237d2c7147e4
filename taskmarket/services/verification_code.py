"""Verification code generation."""

import secrets

from taskmarket.core.config import Constants


def generate_code() -> str:
    """Return a fresh uniformly random 6-digit code in [100000, 999999]."""
    span = Constants.VERIFICATION_CODE_MAX - Constants.VERIFICATION_CODE_MIN + 1
    return str(Constants.VERIFICATION_CODE_MIN + secrets.randbelow(span))


def generate_code_pair() -> tuple[str, str]:
    """Return independent (requestor_code, doer_code) for one approval."""
    return generate_code(), generate_code()
