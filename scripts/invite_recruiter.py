#!/usr/bin/env python3
"""Emit deterministic SQL that seeds a recruiter invitation for an employer."""

from __future__ import annotations

import argparse
import json

PERMISSION_FLAGS = ("can_post_jobs", "can_review_applications", "can_interview")


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(
    *,
    email: str,
    employer_id: str | None,
    employer_email: str | None,
    full_name: str,
    title: str | None,
    permissions: list[str],
) -> str:
    permissions_json = json.dumps({flag: flag in permissions for flag in PERMISSION_FLAGS}, sort_keys=True)

    if employer_id:
        employer_select = f"select {_quote_sql(employer_id)}::uuid"
    else:
        assert employer_email is not None
        employer_select = (
            "select ep.id from employer_profiles ep join principals p on p.id = ep.user_id "
            f"where lower(p.email) = lower({_quote_sql(employer_email)})"
        )

    title_value = _quote_sql(title) if title else "null"

    return f"""-- Recruiter invitation seed SQL
-- Run against the application database; the recruiter claims it on first provisioning.

insert into recruiter_profiles (employer_id, email, full_name, title, permissions)
select employer.id, {_quote_sql(email)}, {_quote_sql(full_name)}, {title_value}, {_quote_sql(permissions_json)}::jsonb
from ({employer_select}) as employer (id)
on conflict (employer_id, lower(email)) do update
set permissions = excluded.permissions;
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to invite a recruiter on behalf of an employer.")
    parser.add_argument("--email", required=True, help="Recruiter email used to claim the invitation")
    employer_group = parser.add_mutually_exclusive_group(required=True)
    employer_group.add_argument("--employer-id", help="employer_profiles id (UUID)")
    employer_group.add_argument("--employer-email", help="Email of the employer's principal")
    parser.add_argument("--full-name", default="", help="Recruiter display name")
    parser.add_argument("--title", default=None, help="Recruiter job title")
    parser.add_argument(
        "--permission",
        action="append",
        choices=PERMISSION_FLAGS,
        default=[],
        help="Permission flag to grant; repeat for several",
    )
    args = parser.parse_args()

    print(
        render_sql(
            email=args.email,
            employer_id=args.employer_id,
            employer_email=args.employer_email,
            full_name=args.full_name,
            title=args.title,
            permissions=args.permission,
        )
    )


if __name__ == "__main__":
    main()
