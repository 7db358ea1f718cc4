"""Token adapters - OTP key verification."""

from .otp import JwtOtpKeyVerifier, OtpIdType, OtpTxType

__all__ = ["JwtOtpKeyVerifier", "OtpIdType", "OtpTxType"]
