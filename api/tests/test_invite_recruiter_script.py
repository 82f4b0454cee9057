from __future__ import annotations

import subprocess
import sys
from pathlib import Path


SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "invite_recruiter.py"


def _run_script(*args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, str(SCRIPT_PATH), *args],
        capture_output=True,
        text=True,
    )


def test_invite_script_emits_sql_for_employer_id() -> None:
    employer_id = "00000000-0000-0000-0000-000000000123"
    completed = _run_script(
        "--email",
        "rita@example.com",
        "--employer-id",
        employer_id,
        "--full-name",
        "Rita O'Hara",
        "--permission",
        "can_post_jobs",
    )

    assert completed.returncode == 0
    output = completed.stdout
    assert "insert into recruiter_profiles (employer_id, email, full_name, title, permissions)" in output
    assert f"from (select '{employer_id}'::uuid) as employer (id)" in output
    assert "'Rita O''Hara'" in output
    assert '{"can_interview": false, "can_post_jobs": true, "can_review_applications": false}' in output
    assert "on conflict (employer_id, lower(email)) do update" in output


def test_invite_script_resolves_employer_by_email() -> None:
    completed = _run_script(
        "--email",
        "rita@example.com",
        "--employer-email",
        "owner@example.com",
        "--title",
        "Talent Partner",
        "--permission",
        "can_review_applications",
        "--permission",
        "can_interview",
    )

    assert completed.returncode == 0
    output = completed.stdout
    assert "where lower(p.email) = lower('owner@example.com')" in output
    assert "'Talent Partner'" in output
    assert '"can_interview": true' in output
    assert '"can_review_applications": true' in output


def test_invite_script_requires_exactly_one_employer_target() -> None:
    missing = _run_script("--email", "rita@example.com")
    both = _run_script("--email", "rita@example.com", "--employer-id", "x", "--employer-email", "y@example.com")
    bad_flag = _run_script("--email", "rita@example.com", "--employer-id", "x", "--permission", "can_fire")

    assert missing.returncode == 2
    assert both.returncode == 2
    assert bad_flag.returncode == 2
