"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, recreated for every test
- HTTPX AsyncClient bound to the app through ASGITransport
- A scripted phone-auth backend standing in for Firebase
"""
import asyncio
import os
from datetime import datetime, timedelta
from typing import AsyncGenerator, Generator, Optional

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "test-password"
os.environ["VERIFY_ID_TOKEN"] = "false"

import pytest
from httpx import AsyncClient, ASGITransport
from sqlmodel import SQLModel, Session

from app.main import app
from app.database import engine, create_db_and_tables
from app.models.letter import Letter
from app.client.errors import ProviderError, ProviderErrorKind
from app.client.gateway import UnlockGatewayClient
from app.client.provider import ChallengeArtifact, Identity, PhoneAuthBackend, VerificationProvider
from app.utils.dates import utcnow


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    create_db_and_tables()
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def make_letter(db: Session):
    """Insert a letter directly, bypassing admin validation."""
    def _make(
        phone: str = "+976 99112233",
        title: str = "Merry Christmas",
        context: str = "Dear friend, thank you for this year.",
        extra_note: str = "",
        attachments: Optional[list] = None,
        logged_at_ago: Optional[timedelta] = None,
        deleted: bool = False,
        created_at: Optional[datetime] = None,
    ) -> Letter:
        letter = Letter(
            phone=phone,
            title=title,
            context=context,
            extra_note=extra_note,
            attachments=attachments or [],
            logged_at=utcnow() - logged_at_ago if logged_at_ago is not None else None,
            deleted=deleted,
            created_at=created_at or utcnow(),
        )
        db.add(letter)
        db.commit()
        db.refresh(letter)
        return letter
    return _make


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as c:
        yield c


@pytest.fixture(scope="function")
async def admin_headers(client: AsyncClient) -> dict:
    response = await client.post("/admin/login", json={"username": "admin", "password": "test-password"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


# =============================================================================
# Verification Fixtures
# =============================================================================

class FakePhoneAuthBackend(PhoneAuthBackend):
    """Scripted provider: accepts ``code`` and raises queued error kinds."""

    def __init__(self, code: str = "123456"):
        self.code = code
        self.challenges = []
        self.sent = []
        self.setup_error: Optional[ProviderErrorKind] = None
        self.send_error: Optional[ProviderErrorKind] = None
        self.confirm_errors = []
        self.send_gate: Optional[asyncio.Event] = None
        self.confirm_gate: Optional[asyncio.Event] = None
        self.confirm_calls = 0
        self._phones = {}

    async def setup_challenge(self) -> ChallengeArtifact:
        if self.setup_error:
            raise ProviderError(self.setup_error)
        artifact = ChallengeArtifact(token=f"captcha-{len(self.challenges)}")
        self.challenges.append(artifact)
        return artifact

    async def send_code(self, phone_number: str, challenge: ChallengeArtifact) -> str:
        if challenge.cleared:
            raise ProviderError(ProviderErrorKind.CHALLENGE_SETUP_FAILED)
        if self.send_gate is not None:
            await self.send_gate.wait()
        if self.send_error:
            raise ProviderError(self.send_error)
        self.sent.append(phone_number)
        session_info = f"session-{len(self.sent)}"
        self._phones[session_info] = phone_number
        return session_info

    async def confirm(self, session_info: str, code: str) -> Identity:
        self.confirm_calls += 1
        if self.confirm_gate is not None:
            await self.confirm_gate.wait()
        if self.confirm_errors:
            raise ProviderError(self.confirm_errors.pop(0))
        if code != self.code:
            raise ProviderError(ProviderErrorKind.INVALID_CODE)
        return Identity(
            phone_number=self._phones[session_info],
            id_token=f"id-token-{session_info}",
            uid="uid-1",
        )


@pytest.fixture(scope="function")
def fake_backend() -> FakePhoneAuthBackend:
    return FakePhoneAuthBackend()


@pytest.fixture(scope="function")
def provider(fake_backend: FakePhoneAuthBackend) -> VerificationProvider:
    return VerificationProvider(fake_backend)


@pytest.fixture(scope="function")
def gateway(client: AsyncClient) -> UnlockGatewayClient:
    return UnlockGatewayClient(http_client=client)
