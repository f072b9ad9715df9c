"""Phone verification provider adapter.

``VerificationProvider`` wraps a ``PhoneAuthBackend`` (the raw provider
capability) and adds handle semantics: every successful send yields a
single-use ``ConfirmationHandle`` that owns the bot-check challenge used for
that send. Invalidating the handle tears the challenge down.
"""
import httpx
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from app.config import FIREBASE_API_KEY
from app.services.phone import to_e164
from app.utils.logger import logger
from .errors import ProviderError, ProviderErrorKind


@dataclass
class ChallengeArtifact:
    token: str
    cleared: bool = False

    def clear(self):
        self.token = ""
        self.cleared = True

@dataclass
class Identity:
    phone_number: str
    id_token: str
    uid: Optional[str] = None


class ConfirmationHandle:
    def __init__(self, phone: str, session_info: str, challenge: ChallengeArtifact):
        self.phone = phone
        self._session_info = session_info
        self._challenge = challenge

    @property
    def active(self) -> bool:
        return self._session_info is not None

    @property
    def session_info(self) -> Optional[str]:
        return self._session_info

    def invalidate(self):
        if self._challenge is not None:
            self._challenge.clear()
            self._challenge = None
        self._session_info = None


class PhoneAuthBackend(ABC):
    """Raw provider capability. Implementations raise ``ProviderError``."""

    @abstractmethod
    async def setup_challenge(self) -> ChallengeArtifact:
        ...

    @abstractmethod
    async def send_code(self, phone_number: str, challenge: ChallengeArtifact) -> str:
        ...

    @abstractmethod
    async def confirm(self, session_info: str, code: str) -> Identity:
        ...


# Identity Toolkit error message -> adapter error kind
FIREBASE_ERROR_KINDS = {
    "INVALID_PHONE_NUMBER": ProviderErrorKind.INVALID_PHONE,
    "MISSING_PHONE_NUMBER": ProviderErrorKind.INVALID_PHONE,
    "TOO_MANY_ATTEMPTS_TRY_LATER": ProviderErrorKind.RATE_LIMITED,
    "QUOTA_EXCEEDED": ProviderErrorKind.RATE_LIMITED,
    "CAPTCHA_CHECK_FAILED": ProviderErrorKind.CHALLENGE_SETUP_FAILED,
    "MISSING_RECAPTCHA_TOKEN": ProviderErrorKind.CHALLENGE_SETUP_FAILED,
    "INVALID_RECAPTCHA_TOKEN": ProviderErrorKind.CHALLENGE_SETUP_FAILED,
    "INVALID_CODE": ProviderErrorKind.INVALID_CODE,
    "MISSING_CODE": ProviderErrorKind.INVALID_CODE,
    "CODE_EXPIRED": ProviderErrorKind.CODE_EXPIRED,
    "SESSION_EXPIRED": ProviderErrorKind.SESSION_EXPIRED,
    "INVALID_SESSION_INFO": ProviderErrorKind.SESSION_EXPIRED,
    "MISSING_SESSION_INFO": ProviderErrorKind.SESSION_EXPIRED,
}

class FirebasePhoneAuthBackend(PhoneAuthBackend):
    BASE_URL = "https://identitytoolkit.googleapis.com/v1"

    def __init__(
        self,
        recaptcha_token_source: Callable[[], Awaitable[str]],
        api_key: Optional[str] = FIREBASE_API_KEY,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._token_source = recaptcha_token_source
        self._api_key = api_key
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def setup_challenge(self) -> ChallengeArtifact:
        try:
            token = await self._token_source()
        except Exception as e:
            raise ProviderError(ProviderErrorKind.CHALLENGE_SETUP_FAILED, str(e)) from e
        if not token:
            raise ProviderError(ProviderErrorKind.CHALLENGE_SETUP_FAILED, "Empty reCAPTCHA token")
        return ChallengeArtifact(token=token)

    async def send_code(self, phone_number: str, challenge: ChallengeArtifact) -> str:
        body = await self._post("sendVerificationCode", {
            "phoneNumber": phone_number,
            "recaptchaToken": challenge.token,
        })
        session_info = body.get("sessionInfo")
        if not session_info:
            raise ProviderError(ProviderErrorKind.PROVIDER_UNAVAILABLE, "Missing sessionInfo in response")
        return session_info

    async def confirm(self, session_info: str, code: str) -> Identity:
        body = await self._post("signInWithPhoneNumber", {
            "sessionInfo": session_info,
            "code": code,
        })
        return Identity(
            phone_number=body.get("phoneNumber", ""),
            id_token=body.get("idToken", ""),
            uid=body.get("localId"),
        )

    async def _post(self, method: str, payload: dict) -> dict:
        try:
            response = await self._client.post(
                f"{self.BASE_URL}/accounts:{method}",
                params={"key": self._api_key},
                json=payload,
            )
        except httpx.HTTPError as e:
            raise ProviderError(ProviderErrorKind.PROVIDER_UNAVAILABLE, str(e)) from e

        if response.status_code >= 500:
            raise ProviderError(ProviderErrorKind.PROVIDER_UNAVAILABLE, f"Provider returned {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError(ProviderErrorKind.PROVIDER_UNAVAILABLE, "Malformed provider response") from e

        if response.status_code >= 400:
            # Messages look like "TOO_MANY_ATTEMPTS_TRY_LATER : details"
            message = (body.get("error") or {}).get("message", "")
            code = message.split(":")[0].strip().split(" ")[0]
            kind = FIREBASE_ERROR_KINDS.get(code, ProviderErrorKind.PROVIDER_UNAVAILABLE)
            raise ProviderError(kind, message)
        return body


class VerificationProvider:
    def __init__(self, backend: PhoneAuthBackend):
        self.backend = backend

    async def send_code(self, phone: str) -> ConfirmationHandle:
        try:
            challenge = await self.backend.setup_challenge()
        except ProviderError as e:
            raise ProviderError(ProviderErrorKind.CHALLENGE_SETUP_FAILED, str(e)) from e

        sent = False
        try:
            session_info = await self.backend.send_code(to_e164(phone), challenge)
            sent = True
        except ProviderError as e:
            logger.warning(f"Sending code to {phone} failed: {e.kind.value}")
            raise
        finally:
            # A challenge is never reused after a failed send
            if not sent:
                challenge.clear()

        return ConfirmationHandle(phone, session_info, challenge)

    async def confirm_code(self, handle: ConfirmationHandle, code: str) -> Identity:
        if handle is None or not handle.active:
            raise ProviderError(ProviderErrorKind.SESSION_EXPIRED, "Confirmation handle is no longer valid")

        try:
            identity = await self.backend.confirm(handle.session_info, code)
        except ProviderError as e:
            if e.kind in (ProviderErrorKind.CODE_EXPIRED, ProviderErrorKind.SESSION_EXPIRED):
                handle.invalidate()
            raise

        # Handles are single-use
        handle.invalidate()
        return identity
