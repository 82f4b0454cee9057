from __future__ import annotations

import httpx
from fastapi.testclient import TestClient

from conftest import USERS, Marketplace
from hirelane.main import app
from hirelane.services.supabase_auth import SupabaseAuthClient, get_auth_client


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _apply(client: TestClient, job_id: str, token: str = "candidate-token") -> dict:
    response = client.post(f"/jobs/{job_id}/applications", headers=_auth(token))
    assert response.status_code in {200, 201}
    return response.json()


def test_requests_without_valid_token_are_unauthorized(api_client: TestClient) -> None:
    assert api_client.get("/jobs").status_code == 401
    assert api_client.get("/jobs", headers={"Authorization": "Token abc"}).status_code == 401
    assert api_client.get("/jobs", headers=_auth("forged-token")).status_code == 401


def test_provisioning_is_created_once(api_client: TestClient, marketplace: Marketplace) -> None:
    payload = {"role": "candidate", "attributes": {"full_name": "Nia Newcomer", "location": "Lisbon"}}

    first = api_client.post("/profiles", headers=_auth("newcomer-token"), json=payload)
    second = api_client.post("/profiles", headers=_auth("newcomer-token"), json=payload)

    assert first.status_code == 201
    body = first.json()
    assert body["created"] is True
    assert body["role_synced"] is True
    assert body["role"] == "candidate"
    assert body["profile"]["kind"] == "candidate"
    assert body["profile"]["user_id"] == USERS["newcomer-token"][0]
    assert second.status_code == 200
    assert second.json()["created"] is False
    assert second.json()["profile"]["id"] == body["profile"]["id"]


def test_provisioning_a_second_role_conflicts(api_client: TestClient) -> None:
    response = api_client.post(
        "/profiles",
        headers=_auth("candidate-token"),
        json={"role": "employer", "attributes": {"company_name": "Side Hustle"}},
    )
    assert response.status_code == 409


def test_provisioning_rejects_fields_of_another_role(api_client: TestClient) -> None:
    response = api_client.post(
        "/profiles",
        headers=_auth("newcomer-token"),
        json={"role": "candidate", "attributes": {"company_name": "Acme"}},
    )
    assert response.status_code == 422


def test_recruiter_without_invitation_is_not_found(api_client: TestClient) -> None:
    response = api_client.post("/profiles", headers=_auth("newcomer-token"), json={"role": "recruiter"})
    assert response.status_code == 404
    assert api_client.get("/profiles/me", headers=_auth("newcomer-token")).status_code == 404


def test_profile_read_and_update(api_client: TestClient) -> None:
    response = api_client.patch("/profiles/me", headers=_auth("employer-token"), json={"industry": "Robotics"})
    assert response.status_code == 200
    assert response.json()["profile"]["industry"] == "Robotics"

    current = api_client.get("/profiles/me", headers=_auth("employer-token")).json()
    assert current["role"] == "employer"
    assert current["profile"]["company_name"] == "Acme"
    assert current["profile"]["industry"] == "Robotics"

    recruiter = api_client.get("/profiles/me", headers=_auth("recruiter-token")).json()
    assert recruiter["profile"]["permissions"] == {
        "can_post_jobs": True,
        "can_review_applications": True,
        "can_interview": False,
    }


def test_job_posting_lifecycle_over_http(api_client: TestClient) -> None:
    invalid = api_client.post(
        "/jobs",
        headers=_auth("employer-token"),
        json={"title": "Platform Engineer", "salary_min": 10, "salary_max": 5},
    )
    assert invalid.status_code == 422

    created = api_client.post(
        "/jobs",
        headers=_auth("employer-token"),
        json={"title": "Platform Engineer", "experience_level": 4, "location": "Remote"},
    )
    assert created.status_code == 201
    job = created.json()
    assert job["status"] == "pending_review"

    assert api_client.get(f"/jobs/{job['id']}", headers=_auth("candidate-token")).status_code == 403

    approved = api_client.post(
        f"/jobs/{job['id']}/transitions",
        headers=_auth("employer-token"),
        json={"event": "approve"},
    )
    assert approved.status_code == 200
    assert approved.json()["from_status"] == "pending_review"
    assert approved.json()["job"]["status"] == "active"

    titles = [item["title"] for item in api_client.get("/jobs", headers=_auth("candidate-token")).json()]
    assert "Platform Engineer" in titles

    again = api_client.post(
        f"/jobs/{job['id']}/transitions",
        headers=_auth("employer-token"),
        json={"event": "approve"},
    )
    assert again.status_code == 409

    unknown_event = api_client.post(
        f"/jobs/{job['id']}/transitions",
        headers=_auth("employer-token"),
        json={"event": "reopen"},
    )
    assert unknown_event.status_code == 422


def test_job_search_filters(api_client: TestClient) -> None:
    headers = _auth("candidate-token")
    assert len(api_client.get("/jobs", headers=headers, params={"q": "backend"}).json()) == 1
    assert len(api_client.get("/jobs", headers=headers, params={"location": "berlin"}).json()) == 1
    assert api_client.get("/jobs", headers=headers, params={"category": "sales"}).json() == []
    assert len(api_client.get("/jobs", headers=headers, params={"category": "ENGINEERING"}).json()) == 1
    assert api_client.get("/jobs", headers=headers, params={"category": "engineer"}).json() == []
    assert api_client.get("/jobs", headers=headers, params={"employment_type": "full"}).json() == []
    assert api_client.get("/jobs", headers=headers, params={"q": "%"}).json() == []
    assert api_client.get("/jobs", headers=headers, params={"q": "back_nd"}).json() == []
    assert api_client.get("/jobs", headers=headers, params={"limit": 0}).status_code == 422


def test_scope_listing_includes_every_status(api_client: TestClient) -> None:
    api_client.post("/jobs", headers=_auth("recruiter-token"), json={"title": "Support Lead"})

    mine = api_client.get("/jobs/mine", headers=_auth("employer-token"))
    pending = api_client.get("/jobs/mine", headers=_auth("employer-token"), params={"status": "pending_review"})

    assert mine.status_code == 200
    assert {job["title"] for job in mine.json()} == {"Backend Engineer", "Support Lead"}
    assert [job["title"] for job in pending.json()] == ["Support Lead"]
    assert api_client.get("/jobs/mine", headers=_auth("candidate-token")).status_code == 403


def test_apply_is_idempotent_over_http(api_client: TestClient, marketplace: Marketplace) -> None:
    first = api_client.post(f"/jobs/{marketplace.job_id}/applications", headers=_auth("candidate-token"))
    second = api_client.post(f"/jobs/{marketplace.job_id}/applications", headers=_auth("candidate-token"))

    assert first.status_code == 201
    assert first.json()["created"] is True
    assert first.json()["status"] == "pending"
    assert second.status_code == 200
    assert second.json()["created"] is False
    assert second.json()["status"] == "pending"
    assert second.json()["application"]["id"] == first.json()["application"]["id"]


def test_employers_cannot_apply(api_client: TestClient, marketplace: Marketplace) -> None:
    response = api_client.post(f"/jobs/{marketplace.job_id}/applications", headers=_auth("employer-token"))
    assert response.status_code == 403


def test_application_review_over_http(api_client: TestClient, marketplace: Marketplace) -> None:
    application_id = _apply(api_client, marketplace.job_id)["application"]["id"]

    illegal = api_client.post(
        f"/applications/{application_id}/transitions",
        headers=_auth("employer-token"),
        json={"event": "hire"},
    )
    assert illegal.status_code == 409

    shortlisted = api_client.post(
        f"/applications/{application_id}/transitions",
        headers=_auth("recruiter-token"),
        json={"event": "shortlist"},
    )
    assert shortlisted.status_code == 200
    assert shortlisted.json()["from_status"] == "pending"
    assert shortlisted.json()["application"]["status"] == "shortlisted"

    noted = api_client.patch(
        f"/applications/{application_id}",
        headers=_auth("employer-token"),
        json={"notes": "strong systems background"},
    )
    assert noted.status_code == 200
    assert noted.json()["notes"] == "strong systems background"

    listing = api_client.get(
        f"/jobs/{marketplace.job_id}/applications",
        headers=_auth("employer-token"),
        params={"status": "shortlisted"},
    )
    assert [item["id"] for item in listing.json()] == [application_id]

    hired = api_client.post(
        f"/applications/{application_id}/transitions",
        headers=_auth("employer-token"),
        json={"event": "hire"},
    )
    assert hired.json()["application"]["status"] == "hired"

    terminal = api_client.post(
        f"/applications/{application_id}/transitions",
        headers=_auth("employer-token"),
        json={"event": "reject"},
    )
    assert terminal.status_code == 409


def test_viewer_recruiter_cannot_review(api_client: TestClient, marketplace: Marketplace) -> None:
    application_id = _apply(api_client, marketplace.job_id)["application"]["id"]
    response = api_client.post(
        f"/applications/{application_id}/transitions",
        headers=_auth("viewer-token"),
        json={"event": "review"},
    )
    assert response.status_code == 403
    assert api_client.get(f"/jobs/{marketplace.job_id}/stats", headers=_auth("viewer-token")).status_code == 200


def test_out_of_scope_ids_look_missing(api_client: TestClient, marketplace: Marketplace) -> None:
    application_id = _apply(api_client, marketplace.job_id)["application"]["id"]

    scoped = api_client.get(f"/applications/{application_id}", headers=_auth("outsider-token"))
    missing = api_client.get("/applications/00000000-0000-0000-0000-000000000000", headers=_auth("outsider-token"))

    assert scoped.status_code == missing.status_code == 404
    assert scoped.json() == missing.json()
    assert api_client.get(f"/jobs/{marketplace.job_id}", headers=_auth("outsider-token")).status_code == 404


def test_candidate_sees_and_deletes_own_applications(api_client: TestClient, marketplace: Marketplace) -> None:
    application_id = _apply(api_client, marketplace.job_id)["application"]["id"]

    mine = api_client.get("/applications", headers=_auth("candidate-token")).json()
    assert [item["id"] for item in mine] == [application_id]
    assert api_client.get(f"/applications/{application_id}", headers=_auth("candidate2-token")).status_code == 403

    deleted = api_client.delete(f"/applications/{application_id}", headers=_auth("candidate-token"))
    assert deleted.status_code == 204
    assert api_client.get("/applications", headers=_auth("candidate-token")).json() == []


def test_stats_and_dashboard(api_client: TestClient, marketplace: Marketplace) -> None:
    application_id = _apply(api_client, marketplace.job_id)["application"]["id"]
    _apply(api_client, marketplace.job_id, token="candidate2-token")
    api_client.post(
        f"/applications/{application_id}/transitions",
        headers=_auth("employer-token"),
        json={"event": "shortlist"},
    )

    stats = api_client.get(f"/jobs/{marketplace.job_id}/stats", headers=_auth("employer-token")).json()
    assert stats["total"] == 2
    assert sum(stats["by_status"].values()) == stats["total"]
    assert stats["by_status"]["hired"] == 0

    dashboard = api_client.get("/employers/me/dashboard", headers=_auth("recruiter-token")).json()
    assert dashboard["total_jobs"] == 1
    assert dashboard["active_jobs"] == 1
    assert dashboard["total_applications"] == 2
    assert dashboard["total_shortlisted"] == 1
    assert dashboard["recent_shortlisted"] == 1

    assert api_client.get("/employers/me/dashboard", headers=_auth("candidate-token")).status_code == 403
    assert api_client.get(f"/jobs/{marketplace.job_id}/stats", headers=_auth("candidate-token")).status_code == 403


def test_recruiter_management(api_client: TestClient) -> None:
    payload = {"email": "new.recruiter@example.com", "full_name": "Nora", "permissions": {"can_interview": True}}

    first = api_client.post("/employers/me/recruiters", headers=_auth("employer-token"), json=payload)
    second = api_client.post("/employers/me/recruiters", headers=_auth("employer-token"), json=payload)

    assert first.status_code == 201
    assert first.json()["user_id"] is None
    assert first.json()["permissions"]["can_interview"] is True
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]

    patched = api_client.patch(
        f"/employers/me/recruiters/{first.json()['id']}",
        headers=_auth("employer-token"),
        json={"permissions": {"can_post_jobs": True}},
    )
    assert patched.status_code == 200
    assert patched.json()["permissions"] == {
        "can_post_jobs": True,
        "can_review_applications": False,
        "can_interview": False,
    }

    emails = {item["email"] for item in api_client.get("/employers/me/recruiters", headers=_auth("employer-token")).json()}
    assert emails == {"recruiter@example.com", "viewer@example.com", "new.recruiter@example.com"}

    foreign = api_client.patch(
        f"/employers/me/recruiters/{first.json()['id']}",
        headers=_auth("other-employer-token"),
        json={"permissions": {"can_post_jobs": True}},
    )
    assert foreign.status_code == 403
    assert api_client.post("/employers/me/recruiters", headers=_auth("recruiter-token"), json=payload).status_code == 403


def test_notification_inbox(api_client: TestClient, marketplace: Marketplace) -> None:
    application_id = _apply(api_client, marketplace.job_id)["application"]["id"]
    api_client.post(
        f"/applications/{application_id}/transitions",
        headers=_auth("employer-token"),
        json={"event": "shortlist"},
    )
    headers = _auth("candidate-token")

    assert api_client.get("/notifications/unread-count", headers=headers).json() == {"unread": 1}
    inbox = api_client.get("/notifications", headers=headers).json()
    assert [item["type"] for item in inbox] == ["application_status"]
    assert inbox[0]["related_entity_id"] == application_id

    marked = api_client.post("/notifications/read", headers=headers, json={"notification_ids": [inbox[0]["id"]]})
    assert marked.json() == {"updated": 1}
    assert api_client.get("/notifications/unread-count", headers=headers).json() == {"unread": 0}
    assert api_client.get("/notifications", headers=headers, params={"unread_only": True}).json() == []

    assert api_client.post("/notifications/read", headers=headers, json={"notification_ids": []}).status_code == 422
    assert api_client.post("/notifications/read", headers=headers, json={"notification_ids": ["nope"]}).status_code == 422


def test_resume_upload(api_client: TestClient, marketplace: Marketplace) -> None:
    response = api_client.post(
        "/profiles/me/resume",
        headers=_auth("candidate-token"),
        files={"file": ("cv.pdf", b"%PDF-1.7 resume", "application/pdf")},
    )

    assert response.status_code == 200
    assert response.json()["profile"]["resume_url"].startswith("https://storage.test/resumes/")
    assert marketplace.storage_client.uploads[0][1] == b"%PDF-1.7 resume"

    employer = api_client.post(
        "/profiles/me/resume",
        headers=_auth("employer-token"),
        files={"file": ("cv.pdf", b"%PDF", "application/pdf")},
    )
    assert employer.status_code == 403


def test_sign_in_and_sign_up(api_client: TestClient) -> None:
    ok = api_client.post("/auth/signin", json={"email": "candidate@example.com", "password": "correct-horse"})
    assert ok.status_code == 200
    assert ok.json()["access_token"] == "candidate-token"
    assert ok.json()["user"]["id"] == USERS["candidate-token"][0]

    bad = api_client.post("/auth/signin", json={"email": "candidate@example.com", "password": "wrong"})
    assert bad.status_code == 401

    signup = api_client.post(
        "/auth/signup",
        json={"email": "fresh@example.com", "password": "hunter22", "role": "employer"},
    )
    assert signup.status_code == 201
    assert signup.json()["user"]["role_hint"] == "employer"
    assert signup.json()["access_token"] is None


def test_sign_up_rejection_is_unprocessable(api_client: TestClient) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"msg": "User already registered"})

    app.dependency_overrides[get_auth_client] = lambda: SupabaseAuthClient(
        supabase_url="https://project.supabase.co",
        anon_key="anon-key",
        transport=httpx.MockTransport(handler),
    )

    response = api_client.post("/auth/signup", json={"email": "taken@example.com", "password": "hunter22"})

    assert response.status_code == 422
    assert response.json()["detail"] == "User already registered"


def test_job_edit_over_http(api_client: TestClient, marketplace: Marketplace) -> None:
    url = f"/jobs/{marketplace.job_id}"

    edited = api_client.patch(url, headers=_auth("employer-token"), json={"title": "Staff Engineer", "location": None})
    assert edited.status_code == 200
    assert edited.json()["title"] == "Staff Engineer"
    assert edited.json()["location"] is None
    assert edited.json()["status"] == "active"

    by_recruiter = api_client.patch(url, headers=_auth("recruiter-token"), json={"experience_level": 5})
    assert by_recruiter.status_code == 200
    assert by_recruiter.json()["title"] == "Staff Engineer"

    assert api_client.patch(url, headers=_auth("employer-token"), json={"salary_min": 100000}).status_code == 422
    assert api_client.patch(url, headers=_auth("employer-token"), json={"status": "closed"}).status_code == 422
    assert api_client.patch(url, headers=_auth("employer-token"), json={"title": ""}).status_code == 422
    assert api_client.patch(url, headers=_auth("viewer-token"), json={"title": "Nope"}).status_code == 403
    assert api_client.patch(url, headers=_auth("candidate-token"), json={"title": "Nope"}).status_code == 403
    assert api_client.patch(url, headers=_auth("outsider-token"), json={"title": "Nope"}).status_code == 404

    api_client.post(f"{url}/transitions", headers=_auth("employer-token"), json={"event": "close"})
    closed = api_client.patch(url, headers=_auth("employer-token"), json={"title": "Reopened?"})
    assert closed.status_code == 409


def test_candidate_never_sees_reviewer_notes_over_http(api_client: TestClient, marketplace: Marketplace) -> None:
    application_id = _apply(api_client, marketplace.job_id)["application"]["id"]
    api_client.patch(
        f"/applications/{application_id}",
        headers=_auth("employer-token"),
        json={"notes": "salary expectations too high"},
    )

    own = api_client.get(f"/applications/{application_id}", headers=_auth("candidate-token"))
    listing = api_client.get("/applications", headers=_auth("candidate-token"))
    reviewer = api_client.get(f"/applications/{application_id}", headers=_auth("recruiter-token"))

    assert own.status_code == 200
    assert own.json()["notes"] is None
    assert [item["notes"] for item in listing.json()] == [None]
    assert reviewer.json()["notes"] == "salary expectations too high"


def test_employer_inbox_over_http(api_client: TestClient, marketplace: Marketplace) -> None:
    first = _apply(api_client, marketplace.job_id)["application"]["id"]
    second = _apply(api_client, marketplace.job_id, token="candidate2-token")["application"]["id"]
    api_client.post(f"/applications/{first}/transitions", headers=_auth("employer-token"), json={"event": "review"})

    inbox = api_client.get("/employers/me/applications", headers=_auth("employer-token"))
    reviewed = api_client.get(
        "/employers/me/applications",
        headers=_auth("recruiter-token"),
        params={"status": "reviewed", "job_id": marketplace.job_id},
    )

    assert inbox.status_code == 200
    assert [item["id"] for item in inbox.json()] == [second, first]
    assert [item["candidate_name"] for item in inbox.json()] == ["Sam Second", "Casey Candidate"]
    assert [item["id"] for item in reviewed.json()] == [first]
    assert api_client.get("/employers/me/applications", headers=_auth("viewer-token")).status_code == 403
    assert api_client.get("/employers/me/applications", headers=_auth("candidate-token")).status_code == 403
    bad_status = api_client.get("/employers/me/applications", headers=_auth("employer-token"), params={"status": "lost"})
    assert bad_status.status_code == 422


def test_work_history_and_applicant_details_over_http(api_client: TestClient, marketplace: Marketplace) -> None:
    headers = _auth("candidate-token")
    api_client.patch("/profiles/me", headers=headers, json={"title": "SRE", "skills": ["go", "terraform"]})

    created = api_client.post(
        "/profiles/me/experiences",
        headers=headers,
        json={"company": "Initech", "position": "Developer", "start_date": "2019-03-01"},
    )
    assert created.status_code == 201
    experience_id = created.json()["id"]

    backwards = api_client.patch(
        f"/profiles/me/experiences/{experience_id}",
        headers=headers,
        json={"end_date": "2018-01-01"},
    )
    assert backwards.status_code == 422
    finished = api_client.patch(
        f"/profiles/me/experiences/{experience_id}",
        headers=headers,
        json={"end_date": "2021-02-28"},
    )
    assert finished.status_code == 200
    assert finished.json()["end_date"] == "2021-02-28"
    assert finished.json()["company"] == "Initech"

    foreign = api_client.delete(f"/profiles/me/experiences/{experience_id}", headers=_auth("candidate2-token"))
    assert foreign.status_code == 404
    assert api_client.get("/profiles/me/experiences", headers=_auth("employer-token")).status_code == 403
    missing_field = api_client.post("/profiles/me/experiences", headers=headers, json={"company": "Initech"})
    assert missing_field.status_code == 422

    application_id = _apply(api_client, marketplace.job_id)["application"]["id"]
    applicant = api_client.get(f"/applications/{application_id}/applicant", headers=_auth("employer-token"))
    assert applicant.status_code == 200
    body = applicant.json()
    assert body["application_id"] == application_id
    assert body["profile"]["full_name"] == "Casey Candidate"
    assert body["profile"]["title"] == "SRE"
    assert body["profile"]["skills"] == ["go", "terraform"]
    assert [item["company"] for item in body["experiences"]] == ["Initech"]
    assert api_client.get(f"/applications/{application_id}/applicant", headers=_auth("viewer-token")).status_code == 403

    deleted = api_client.delete(f"/profiles/me/experiences/{experience_id}", headers=headers)
    assert deleted.status_code == 204
    assert api_client.get("/profiles/me/experiences", headers=headers).json() == []
