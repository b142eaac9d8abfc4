"""
End-to-end tests for the HTTP surface.
"""
import httpx
from fastapi.testclient import TestClient

from conftest import add_completed_attempt, days_ago, headers_for
from dailyprep.core.auth import create_token
from dailyprep.core.clock import get_clock
from dailyprep.main import app
from dailyprep.services.identity import IdentityDirectory, get_identity_directory


def correct_answers(questions):
    return {q.id: q.correct_answer for q in questions}


def start(client, headers):
    resp = client.post("/v1/test/start", headers=headers)
    assert resp.status_code in (200, 201)
    return resp.json()["attempt_id"]


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_unhandled_error_uses_envelope(client, auth_headers):
    def broken_clock():
        raise RuntimeError("clock is broken")

    app.dependency_overrides[get_clock] = broken_clock
    resp = TestClient(app, raise_server_exceptions=False).get("/v1/stats", headers=auth_headers)

    assert resp.status_code == 500
    error = resp.json()["error"]
    assert error["type"] == "internal_error"
    assert error["message"] == "clock is broken"


def test_leaderboard_survives_malformed_identity(client, auth_headers, db, yesterday):
    add_completed_attempt(db, "user-2", yesterday, 22)
    directory = IdentityDirectory(
        "http://identity.test",
        client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, json="oops"))),
    )
    app.dependency_overrides[get_identity_directory] = lambda: directory

    resp = client.get("/v1/leaderboard", headers=auth_headers)

    assert resp.status_code == 200
    assert resp.json()["entries"][0]["name"] == "Anonymous"


class TestAuthentication:
    def test_missing_token(self, client):
        resp = client.get("/v1/test/today")
        assert resp.status_code == 401
        assert resp.json()["error"]["type"] == "auth_error"

    def test_garbage_token(self, client):
        resp = client.get("/v1/test/today", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Invalid token"

    def test_expired_token(self, client):
        token = create_token("user-1", ttl_minutes=-5)
        resp = client.get("/v1/stats", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Token has expired"


class TestAttemptFlow:
    def test_start_is_idempotent(self, client, auth_headers, questions, today):
        first = client.post("/v1/test/start", headers=auth_headers)
        second = client.post("/v1/test/start", headers=auth_headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert first.json() == second.json()
        assert first.json()["test_date"] == today.isoformat()

    def test_start_with_small_catalog(self, client, auth_headers):
        resp = client.post("/v1/test/start", headers=auth_headers)
        assert resp.status_code == 503
        assert resp.json()["error"]["type"] == "insufficient_catalog"

    def test_today_hides_answers(self, client, auth_headers, questions):
        resp = client.get("/v1/test/today", headers=auth_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert len(body["questions"]) == 25
        assert body["attempt_id"] is None
        assert body["is_completed"] is False
        assert "correct_answer" not in body["questions"][0]
        assert "explanation" not in body["questions"][0]

    def test_full_flow(self, client, auth_headers, questions):
        attempt_id = start(client, auth_headers)
        ids = [q["id"] for q in client.get("/v1/test/today", headers=auth_headers).json()["questions"]]
        answers = correct_answers(questions)

        for qid in ids[:5]:
            resp = client.post("/v1/test/answer", headers=auth_headers, json={
                "attempt_id": attempt_id, "question_id": qid, "answer": answers[qid].lower(),
            })
            assert resp.status_code == 200
            assert resp.json() == {"success": True, "is_correct": True}

        resp = client.post("/v1/test/submit", headers=auth_headers, json={"attempt_id": attempt_id})
        assert resp.status_code == 200
        body = resp.json()
        assert body["score"] == 5
        assert body["percentage"] == 20
        assert [r["question_id"] for r in body["results"]] == ids
        assert body["results"][0]["correct_answer"] == answers[ids[0]]

        replay = client.post("/v1/test/submit", headers=auth_headers, json={"attempt_id": attempt_id})
        assert replay.status_code == 200
        assert replay.json()["score"] == 5

        today = client.get("/v1/test/today", headers=auth_headers).json()
        assert today["attempt_id"] == attempt_id
        assert today["is_completed"] is True
        assert today["score"] == 5

    def test_answer_after_submit_conflicts(self, client, auth_headers, questions):
        attempt_id = start(client, auth_headers)
        client.post("/v1/test/submit", headers=auth_headers, json={"attempt_id": attempt_id})

        resp = client.post("/v1/test/answer", headers=auth_headers, json={
            "attempt_id": attempt_id, "question_id": questions[0].id, "answer": "A",
        })
        assert resp.status_code == 409
        assert resp.json()["error"]["type"] == "state_conflict"

    def test_invalid_option_letter(self, client, auth_headers, questions):
        attempt_id = start(client, auth_headers)
        ids = [q["id"] for q in client.get("/v1/test/today", headers=auth_headers).json()["questions"]]

        resp = client.post("/v1/test/answer", headers=auth_headers, json={
            "attempt_id": attempt_id, "question_id": ids[0], "answer": "E",
        })
        assert resp.status_code == 422
        assert resp.json()["error"]["type"] == "validation_error"

    def test_malformed_body(self, client, auth_headers, questions):
        resp = client.post("/v1/test/answer", headers=auth_headers, json={"attempt_id": "x"})
        assert resp.status_code == 422
        assert resp.json()["error"]["details"]

    def test_other_users_attempt(self, client, auth_headers, questions):
        attempt_id = start(client, auth_headers)
        resp = client.post("/v1/test/submit", headers=headers_for("user-2"), json={"attempt_id": attempt_id})
        assert resp.status_code == 404
        assert resp.json()["error"]["type"] == "not_found"


class TestReporting:
    def test_history_and_stats(self, client, auth_headers, db, today):
        add_completed_attempt(db, "user-1", days_ago(2), 15)
        add_completed_attempt(db, "user-1", days_ago(1), 20)
        add_completed_attempt(db, "user-2", days_ago(1), 10)

        history = client.get("/v1/test/history", headers=auth_headers).json()["tests"]
        assert [t["score"] for t in history] == [20, 15]
        assert history[0]["percentage"] == 80

        stats = client.get("/v1/stats", headers=auth_headers).json()
        assert stats["platform"]["total_users"] == 2
        assert stats["platform"]["total_tests_taken"] == 3
        assert stats["platform"]["tests_today"] == 0
        assert stats["platform"]["average_platform_score"] == 60
        assert stats["personal"]["current_streak"] == 2
        assert stats["personal"]["best_score"] == 80

        debug = client.get("/v1/stats/streak-debug", headers=auth_headers).json()
        assert debug["user_id"] == "user-1"
        assert debug["today"] == today.isoformat()
        assert debug["days_since_last_test"] == 1
        assert len(debug["raw_tests"]) == 2

    def test_diagnostic_without_history(self, client, auth_headers):
        resp = client.get("/v1/diagnostic", headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json()["error"]["type"] == "no_history"

    def test_diagnostic_report(self, client, auth_headers, db, questions, yesterday):
        add_completed_attempt(db, "user-1", yesterday, 21)

        resp = client.get("/v1/diagnostic", headers=auth_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["total_attempts"] == 1
        assert body["overall_accuracy"] == 84
        assert body["speed_analysis"]["questions_per_minute"] == 1.0
        assert body["concept_vs_speed"]["issue"] == "balanced"

    def test_leaderboard_defaults_to_yesterday(self, client, auth_headers, db, yesterday):
        add_completed_attempt(db, "user-2", yesterday, 22)
        add_completed_attempt(db, "user-1", yesterday, 18)

        resp = client.get("/v1/leaderboard", headers=auth_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["date"] == yesterday.isoformat()
        assert [(e["name"], e["is_current_user"]) for e in body["entries"]] == [("bob", False), ("alice", True)]
        assert body["entries"][0]["percentage"] == 88.0

    def test_leaderboard_for_today_rejected(self, client, auth_headers, today):
        resp = client.get("/v1/leaderboard", headers=auth_headers, params={"date": today.isoformat()})
        assert resp.status_code == 422
        assert resp.json()["error"]["type"] == "validation_error"
