from conftest import BROWSER


def start(client, quiz_id, **headers):
    return client.post(
        "/attempts/start", json={"quiz_id": quiz_id, "browser_info": BROWSER}, headers=headers
    )


def test_requires_api_key(client, make_quiz):
    qid = make_quiz()
    r = start(client, qid, **{"x-api-key": "wrong"})
    assert r.status_code == 401


def test_requires_user_identity(client, make_quiz):
    qid = make_quiz()
    r = start(client, qid, **{"x-user-id": ""})
    assert r.status_code == 401


def test_start_and_restart_return_same_attempt(client, make_quiz):
    qid = make_quiz()
    r = start(client, qid)
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "started"
    assert body["user_id"] == "u1"
    assert body["time_budget"] == 600
    assert body["progress"] == 0

    again = start(client, qid)
    assert again.status_code == 201
    assert again.json()["id"] == body["id"]
    assert again.json()["status"] == "in_progress"


def test_answer_flow_end_to_end(client, make_quiz):
    qid = make_quiz()
    attempt_id = start(client, qid).json()["id"]

    r = client.post(
        f"/attempts/{attempt_id}/answer",
        json={"question_index": 0, "answer": 1, "time_spent": 12.5},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["answers"]["0"]["selected_option"] == 1
    assert body["progress"] == 50

    client.post(
        f"/attempts/{attempt_id}/answer", json={"question_index": 1, "answer": 0, "time_spent": 3}
    )
    r = client.post(f"/attempts/{attempt_id}/submit")
    assert r.status_code == 200
    assert r.json()["status"] == "completed"
    assert r.json()["progress"] == 100

    r = client.post(f"/attempts/{attempt_id}/grade")
    assert r.status_code == 201
    result = r.json()
    assert result["total_score"] == 5
    assert result["max_score"] == 10
    assert result["percentage"] == 50
    assert result["passed"] is False
    assert result["grade"] == "F"
    assert result["performance_level"] == "poor"


def test_navigate_out_of_range_is_400(client, make_quiz):
    qid = make_quiz()
    attempt_id = start(client, qid).json()["id"]
    client.post(
        f"/attempts/{attempt_id}/answer", json={"question_index": 0, "answer": 1, "time_spent": 1}
    )
    r = client.post(f"/attempts/{attempt_id}/navigate", json={"question_index": 5})
    assert r.status_code == 400
    assert r.json() == {
        "ok": False,
        "error": {"kind": "validation_error", "message": "Invalid question index"},
    }


def test_negative_answer_rejected_by_schema(client, make_quiz):
    qid = make_quiz()
    attempt_id = start(client, qid).json()["id"]
    r = client.post(
        f"/attempts/{attempt_id}/answer", json={"question_index": 0, "answer": -1, "time_spent": 1}
    )
    assert r.status_code == 422


def test_pause_not_allowed_is_409(client, make_quiz):
    qid = make_quiz(allow_pause=False)
    attempt_id = start(client, qid).json()["id"]
    r = client.post(f"/attempts/{attempt_id}/pause")
    assert r.status_code == 409
    assert r.json()["error"]["kind"] == "invalid_state"


def test_pause_resume_round_trip(client, make_quiz):
    qid = make_quiz(allow_pause=True)
    attempt_id = start(client, qid).json()["id"]
    client.post(f"/attempts/{attempt_id}/skip", json={"question_index": 0})
    r = client.post(f"/attempts/{attempt_id}/pause")
    assert r.json()["status"] == "paused"
    assert r.json()["paused_at"] is not None
    r = client.post(f"/attempts/{attempt_id}/resume")
    assert r.json()["status"] == "in_progress"
    assert r.json()["paused_at"] is None
    assert r.json()["skipped_questions"] == [0]


def test_review_and_activity(client, make_quiz):
    qid = make_quiz()
    attempt_id = start(client, qid).json()["id"]
    r = client.post(f"/attempts/{attempt_id}/mark-review", json={"question_index": 1})
    assert r.json()["flagged_questions"] == [1]
    r = client.post(f"/attempts/{attempt_id}/unmark-review", json={"question_index": 1})
    assert r.json()["flagged_questions"] == []

    r = client.post(f"/attempts/{attempt_id}/activity", json={"activity_type": "tab_switch"})
    assert r.json()["tab_switch_count"] == 1
    r = client.post(
        f"/attempts/{attempt_id}/activity",
        json={"activity_type": "copy_paste", "details": "ctrl+v"},
    )
    body = r.json()
    assert body["tab_switch_count"] == 1
    assert [e["type"] for e in body["suspicious_activity"]] == ["tab_switch", "copy_paste"]

    r = client.post(f"/attempts/{attempt_id}/activity", json={"activity_type": "telepathy"})
    assert r.status_code == 422


def test_progress_heartbeat(client, make_quiz):
    qid = make_quiz()
    attempt_id = start(client, qid).json()["id"]
    r = client.put(f"/attempts/{attempt_id}/progress", json={"time_spent": 30, "remaining_time": 570})
    assert r.status_code == 200
    assert r.json()["remaining_time"] == 570


def test_double_submit_is_409(client, make_quiz):
    qid = make_quiz()
    attempt_id = start(client, qid).json()["id"]
    assert client.post(f"/attempts/{attempt_id}/submit").status_code == 200
    r = client.post(f"/attempts/{attempt_id}/submit")
    assert r.status_code == 409
    assert r.json()["error"]["message"] == "Attempt already submitted"


def test_other_user_is_forbidden(client, make_quiz):
    qid = make_quiz()
    attempt_id = start(client, qid).json()["id"]
    other = {"x-user-id": "u2"}
    assert client.get(f"/attempts/{attempt_id}", headers=other).status_code == 403
    r = client.post(f"/attempts/{attempt_id}/submit", headers=other)
    assert r.status_code == 403
    assert r.json()["error"]["kind"] == "forbidden"

    # admins act on any attempt
    r = client.get(f"/attempts/{attempt_id}", headers={**other, "x-admin-token": "secret"})
    assert r.status_code == 200


def test_unknown_attempt_is_404(client):
    r = client.get("/attempts/4242")
    assert r.status_code == 404
    assert r.json()["error"]["kind"] == "not_found"


def test_active_and_history_views(client, make_quiz):
    qid = make_quiz(allow_retake=True, max_attempts=3)
    r = client.get(f"/attempts/active/{qid}")
    assert r.json() == {"ok": True, "attempt": None}

    first = start(client, qid).json()["id"]
    assert client.get(f"/attempts/active/{qid}").json()["attempt"]["id"] == first
    client.post(f"/attempts/{first}/submit")
    second = start(client, qid).json()["id"]

    r = client.get(f"/attempts/user/{qid}")
    body = r.json()
    assert body["count"] == 2
    assert [a["id"] for a in body["items"]] == [second, first]
    assert "answers" not in body["items"][0]


def test_start_unknown_quiz_is_404(client):
    r = start(client, 777)
    assert r.status_code == 404
    assert r.json()["error"]["message"] == "Quiz not found"
