"""Client-side verification session.

Drives one unlock attempt for one phone number through
IDLE -> SENDING -> AWAITING_CODE -> VERIFYING -> SUCCEEDED, with FAILED
reachable from SENDING and VERIFYING and left again only through resend().

Every public method is phase-guarded: calls that do not apply to the current
phase return immediately without side effects, which also makes repeated
"resend" clicks while a request is outstanding a no-op. ``close()`` is valid
from any phase and bumps the session epoch, so results of calls still in
flight are discarded when they resume.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from app.models.letter import LetterView
from app.services.cooldown import remaining_wait
from app.utils.dates import utcnow
from app.utils.logger import logger
from .errors import (
    FailureReason,
    GatewayError,
    LetterNotFound,
    ProviderError,
    ProviderErrorKind,
    user_message,
)
from .gateway import UnlockGatewayClient
from .provider import ConfirmationHandle, VerificationProvider

CODE_PATTERN = re.compile(r"^\d{6}$")


class Phase(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    AWAITING_CODE = "awaiting_code"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class SessionError:
    reason: FailureReason
    message: str
    retry_after: Optional[timedelta] = None


class VerificationSession:
    def __init__(
        self,
        phone: str,
        gateway: UnlockGatewayClient,
        provider: VerificationProvider,
        on_unlock: Optional[Callable[[LetterView], None]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.target_phone = phone
        self.gateway = gateway
        self.provider = provider
        self.on_unlock = on_unlock
        self._clock = clock

        self.phase = Phase.IDLE
        self.error: Optional[SessionError] = None
        self.record: Optional[LetterView] = None
        self._handle: Optional[ConfirmationHandle] = None
        self._cooldown_until: Optional[datetime] = None
        self._epoch = 0

    @property
    def confirmation_handle(self) -> Optional[ConfirmationHandle]:
        return self._handle

    @property
    def resend_available(self) -> bool:
        if self.phase not in (Phase.FAILED, Phase.AWAITING_CODE):
            return False
        return self._cooldown_until is None or self._clock() >= self._cooldown_until

    async def open(self) -> Phase:
        if self.phase != Phase.IDLE:
            return self.phase
        await self._send_cycle()
        return self.phase

    async def resend(self) -> Phase:
        if not self.resend_available:
            return self.phase
        await self._send_cycle()
        return self.phase

    async def submit_code(self, code: str) -> Phase:
        if self.phase != Phase.AWAITING_CODE:
            return self.phase

        code = (code or "").strip()
        if not CODE_PATTERN.match(code):
            self.error = SessionError(FailureReason.INVALID_CODE, "Please enter a valid 6-digit code")
            return self.phase

        epoch = self._epoch
        self._transition(Phase.VERIFYING)
        try:
            identity = await self.provider.confirm_code(self._handle, code)
        except ProviderError as e:
            if self._is_stale(epoch):
                return self.phase
            if e.kind == ProviderErrorKind.INVALID_CODE:
                self._transition(Phase.AWAITING_CODE)
                self.error = SessionError(FailureReason.INVALID_CODE, user_message(FailureReason.INVALID_CODE))
            else:
                self._fail(FailureReason.from_provider(e.kind))
            return self.phase

        if self._is_stale(epoch):
            return self.phase
        self._teardown()

        try:
            record = await self.gateway.postcheck(self.target_phone, identity.id_token)
        except LetterNotFound:
            if not self._is_stale(epoch):
                self._fail(FailureReason.NOT_FOUND)
            return self.phase
        except GatewayError as e:
            if not self._is_stale(epoch):
                logger.warning(f"Unlock failed for {self.target_phone}: {e}")
                self._fail(FailureReason.GATEWAY_ERROR)
            return self.phase

        if self._is_stale(epoch):
            return self.phase
        self.record = record
        self._transition(Phase.SUCCEEDED)
        if self.on_unlock:
            self.on_unlock(record)
        return self.phase

    def close(self) -> Phase:
        self._teardown()
        self._epoch += 1
        self.error = None
        self.record = None
        self._cooldown_until = None
        self._transition(Phase.IDLE)
        return self.phase

    async def _send_cycle(self):
        self._teardown()
        self._epoch += 1
        epoch = self._epoch
        self.error = None
        self._cooldown_until = None
        self._transition(Phase.SENDING)

        try:
            check = await self.gateway.precheck(self.target_phone)
        except LetterNotFound:
            if not self._is_stale(epoch):
                self._fail(FailureReason.NOT_FOUND)
            return
        except GatewayError as e:
            if not self._is_stale(epoch):
                logger.warning(f"Pre-check failed for {self.target_phone}: {e}")
                self._fail(FailureReason.GATEWAY_ERROR)
            return

        if self._is_stale(epoch):
            return
        if not check.can_resend:
            now = self._clock()
            wait = remaining_wait(check.last_sent_at, now)
            self._cooldown_until = now + wait
            self._fail(FailureReason.COOLDOWN_ACTIVE, retry_after=wait)
            return

        try:
            handle = await self.provider.send_code(self.target_phone)
        except ProviderError as e:
            if not self._is_stale(epoch):
                self._fail(FailureReason.from_provider(e.kind))
            return

        if self._is_stale(epoch):
            # Closed or restarted while the SMS was being sent
            handle.invalidate()
            return
        self._handle = handle
        self._transition(Phase.AWAITING_CODE)

    def _is_stale(self, epoch: int) -> bool:
        return epoch != self._epoch

    def _teardown(self):
        if self._handle is not None:
            self._handle.invalidate()
            self._handle = None

    def _fail(self, reason: FailureReason, retry_after: Optional[timedelta] = None):
        self._teardown()
        self.error = SessionError(reason, user_message(reason, retry_after), retry_after)
        self._transition(Phase.FAILED)

    def _transition(self, phase: Phase):
        logger.debug(f"Verification session {self.target_phone}: {self.phase.value} -> {phase.value}")
        self.phase = phase
