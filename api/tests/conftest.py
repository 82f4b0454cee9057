from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest
from fastapi.testclient import TestClient

from hirelane.core.auth import Principal, RecruiterPermissions, Role
from hirelane.main import app
from hirelane.services.blob_storage import get_storage_client
from hirelane.services.engine import LifecycleEngine
from hirelane.services.errors import AuthenticationError, UpstreamUnavailableError
from hirelane.services.job_lifecycle import JobEvent
from hirelane.services.realtime import ChangeFeed, get_change_feed
from hirelane.services.records import JobDraft
from hirelane.services.repository import get_repository
from hirelane.services.store import InMemoryRepository
from hirelane.services.supabase_auth import AuthSession, AuthUser, get_auth_client

USERS: dict[str, tuple[str, str]] = {
    "candidate-token": ("11111111-1111-1111-1111-111111111111", "candidate@example.com"),
    "employer-token": ("22222222-2222-2222-2222-222222222222", "employer@example.com"),
    "recruiter-token": ("33333333-3333-3333-3333-333333333333", "recruiter@example.com"),
    "other-employer-token": ("44444444-4444-4444-4444-444444444444", "other@example.com"),
    "outsider-token": ("55555555-5555-5555-5555-555555555555", "outsider@example.com"),
    "candidate2-token": ("66666666-6666-6666-6666-666666666666", "second@example.com"),
    "viewer-token": ("77777777-7777-7777-7777-777777777777", "viewer@example.com"),
    "newcomer-token": ("88888888-8888-8888-8888-888888888888", "newcomer@example.com"),
}


class FakeAuthClient:
    configured = True

    def __init__(self) -> None:
        self.role_updates: list[tuple[str, Role]] = []
        self.fail_role_sync = False

    async def get_user(self, token: str) -> AuthUser:
        if token not in USERS:
            raise AuthenticationError("invalid token")
        user_id, email = USERS[token]
        return AuthUser(id=user_id, email=email, role_hint=None)

    async def update_user_role(self, token: str, role: Role) -> AuthUser:
        if self.fail_role_sync:
            raise UpstreamUnavailableError("auth provider down")
        self.role_updates.append((token, role))
        return await self.get_user(token)

    async def sign_up(self, *, email: str, password: str, role: Role | None = None) -> AuthSession:
        user = AuthUser(id="99999999-9999-9999-9999-999999999999", email=email, role_hint=role)
        return AuthSession(user=user, access_token=None, refresh_token=None, expires_in=None)

    async def sign_in(self, *, email: str, password: str) -> AuthSession:
        for token, (user_id, user_email) in USERS.items():
            if user_email == email and password == "correct-horse":
                user = AuthUser(id=user_id, email=user_email, role_hint=None)
                return AuthSession(user=user, access_token=token, refresh_token="refresh", expires_in=3600)
        raise AuthenticationError("Invalid login credentials")


class FakeStorageClient:
    def __init__(self) -> None:
        self.uploads: list[tuple[str, bytes, str]] = []

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        self.uploads.append((path, data, content_type))
        return f"https://storage.test/resumes/{path}"


@dataclass
class Marketplace:
    engine: LifecycleEngine
    repository: InMemoryRepository
    auth_client: FakeAuthClient
    storage_client: FakeStorageClient
    job_id: str = ""
    ids: dict[str, str] = field(default_factory=dict)

    async def load(self, token: str) -> Principal:
        user_id, email = USERS[token]
        return await self.engine.load_principal(subject=user_id, email=email, access_token=token)

    def principal(self, token: str) -> Principal:
        return asyncio.run(self.load(token))


async def _provision(market: Marketplace, token: str, role: Role, attributes: dict[str, str]) -> None:
    principal = await market.load(token)
    result = await market.engine.provision_profile(principal, role, attributes)
    market.ids[token] = result.profile.id


async def _seed(market: Marketplace) -> None:
    engine = market.engine
    await _provision(market, "employer-token", Role.EMPLOYER, {"company_name": "Acme"})
    await _provision(market, "other-employer-token", Role.EMPLOYER, {"company_name": "Globex"})

    employer = await market.load("employer-token")
    other_employer = await market.load("other-employer-token")
    await engine.invite_recruiter(
        employer,
        email="recruiter@example.com",
        full_name="Rita Recruiter",
        permissions=RecruiterPermissions(can_post_jobs=True, can_review_applications=True),
    )
    await engine.invite_recruiter(employer, email="viewer@example.com", full_name="Vic Viewer")
    await engine.invite_recruiter(
        other_employer,
        email="outsider@example.com",
        permissions=RecruiterPermissions(can_post_jobs=True, can_review_applications=True, can_interview=True),
    )
    await _provision(market, "recruiter-token", Role.RECRUITER, {})
    await _provision(market, "viewer-token", Role.RECRUITER, {})
    await _provision(market, "outsider-token", Role.RECRUITER, {})
    await _provision(market, "candidate-token", Role.CANDIDATE, {"full_name": "Casey Candidate"})
    await _provision(market, "candidate2-token", Role.CANDIDATE, {"full_name": "Sam Second"})

    job = await engine.create_job(
        employer,
        JobDraft(
            title="Backend Engineer",
            description="Build the hiring pipeline",
            category="engineering",
            employment_type="full_time",
            experience_level=3,
            salary_min=60000,
            salary_max=90000,
            location="Berlin",
        ),
    )
    await engine.transition_job(employer, job.id, JobEvent.APPROVE)
    market.job_id = job.id


@pytest.fixture
def marketplace() -> Marketplace:
    repository = InMemoryRepository(change_feed=ChangeFeed())
    auth_client = FakeAuthClient()
    storage_client = FakeStorageClient()
    engine = LifecycleEngine(
        repository,
        auth_client=auth_client,
        storage_client=storage_client,
        change_feed=repository.change_feed,
    )
    market = Marketplace(
        engine=engine,
        repository=repository,
        auth_client=auth_client,
        storage_client=storage_client,
    )
    asyncio.run(_seed(market))
    return market


@pytest.fixture
def api_client(marketplace: Marketplace) -> TestClient:
    app.dependency_overrides[get_repository] = lambda: marketplace.repository
    app.dependency_overrides[get_auth_client] = lambda: marketplace.auth_client
    app.dependency_overrides[get_storage_client] = lambda: marketplace.storage_client
    app.dependency_overrides[get_change_feed] = lambda: marketplace.repository.change_feed
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()