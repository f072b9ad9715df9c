from datetime import timedelta
from enum import Enum
from typing import Optional


class ProviderErrorKind(str, Enum):
    INVALID_PHONE = "invalid_phone"
    RATE_LIMITED = "rate_limited"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    CHALLENGE_SETUP_FAILED = "challenge_setup_failed"
    INVALID_CODE = "invalid_code"
    CODE_EXPIRED = "code_expired"
    SESSION_EXPIRED = "session_expired"

class ProviderError(Exception):
    def __init__(self, kind: ProviderErrorKind, message: Optional[str] = None):
        super().__init__(message or kind.value)
        self.kind = kind


class GatewayError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

class LetterNotFound(GatewayError):
    pass


class FailureReason(str, Enum):
    COOLDOWN_ACTIVE = "cooldown_active"
    NOT_FOUND = "not_found"
    GATEWAY_ERROR = "gateway_error"
    INVALID_PHONE = ProviderErrorKind.INVALID_PHONE.value
    RATE_LIMITED = ProviderErrorKind.RATE_LIMITED.value
    PROVIDER_UNAVAILABLE = ProviderErrorKind.PROVIDER_UNAVAILABLE.value
    CHALLENGE_SETUP_FAILED = ProviderErrorKind.CHALLENGE_SETUP_FAILED.value
    INVALID_CODE = ProviderErrorKind.INVALID_CODE.value
    CODE_EXPIRED = ProviderErrorKind.CODE_EXPIRED.value
    SESSION_EXPIRED = ProviderErrorKind.SESSION_EXPIRED.value

    @classmethod
    def from_provider(cls, kind: ProviderErrorKind) -> "FailureReason":
        return cls(kind.value)


MESSAGES = {
    FailureReason.COOLDOWN_ACTIVE: "A code was sent to this number recently. Please wait before requesting another one.",
    FailureReason.NOT_FOUND: "No letter found for this phone number",
    FailureReason.GATEWAY_ERROR: "Something went wrong. Please try again.",
    FailureReason.INVALID_PHONE: "Please enter a valid phone number",
    FailureReason.RATE_LIMITED: "Too many attempts. Please try again later.",
    FailureReason.PROVIDER_UNAVAILABLE: "Failed to send verification code. Please try again.",
    FailureReason.CHALLENGE_SETUP_FAILED: "Could not verify that you are human. Please try again.",
    FailureReason.INVALID_CODE: "Invalid verification code",
    FailureReason.CODE_EXPIRED: "The verification code has expired. Please request a new one.",
    FailureReason.SESSION_EXPIRED: "Your verification session has expired. Please request a new code.",
}

def user_message(reason: FailureReason, retry_after: Optional[timedelta] = None) -> str:
    message = MESSAGES[reason]
    if reason == FailureReason.COOLDOWN_ACTIVE and retry_after:
        hours, remainder = divmod(int(retry_after.total_seconds()), 3600)
        minutes = remainder // 60
        message = f"{message} You can try again in {hours}h {minutes}m."
    return message
