from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class Role(str, Enum):
    CANDIDATE = "candidate"
    EMPLOYER = "employer"
    RECRUITER = "recruiter"


@dataclass(slots=True, frozen=True)
class RecruiterPermissions:
    can_post_jobs: bool = False
    can_review_applications: bool = False
    can_interview: bool = False

    @classmethod
    def from_json(cls, value: Any) -> RecruiterPermissions:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                value = {}
        if not isinstance(value, dict):
            value = {}
        return cls(
            can_post_jobs=bool(value.get("can_post_jobs", False)),
            can_review_applications=bool(value.get("can_review_applications", False)),
            can_interview=bool(value.get("can_interview", False)),
        )

    def to_json(self) -> dict[str, bool]:
        return {
            "can_post_jobs": self.can_post_jobs,
            "can_review_applications": self.can_review_applications,
            "can_interview": self.can_interview,
        }


@dataclass(slots=True)
class Principal:
    """Authenticated caller passed explicitly into every engine operation.

    ``role`` stays ``None`` until the principal provisions a profile. For employers
    ``employer_id`` is their own profile id; for recruiters it is the employer they
    are delegated by.
    """

    subject: str
    email: str | None = None
    access_token: str | None = None
    role: Role | None = None
    profile_id: str | None = None
    employer_id: str | None = None
    permissions: RecruiterPermissions | None = None

    @property
    def has_profile(self) -> bool:
        return self.role is not None and self.profile_id is not None
