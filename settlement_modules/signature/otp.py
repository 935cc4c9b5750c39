"""One-time password generation and comparison."""

import hmac
import re
import secrets
from typing import Callable

OTP_LENGTH = 6

OtpGenerator = Callable[[], str]

_OTP_PATTERN = re.compile(rf"[0-9]{{{OTP_LENGTH}}}")


def generate_otp() -> str:
    """A uniformly random 6-digit code in 100000..999999."""
    return str(100000 + secrets.randbelow(900000))


def is_well_formed(code: object) -> bool:
    return isinstance(code, str) and _OTP_PATTERN.fullmatch(code) is not None


def codes_match(expected: str, submitted: object) -> bool:
    """Constant-time comparison; malformed submissions never match."""
    if not is_well_formed(submitted):
        return False
    return hmac.compare_digest(expected.encode("ascii"), submitted.encode("ascii"))
