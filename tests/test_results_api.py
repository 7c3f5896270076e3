from conftest import BROWSER


def submit_body(quiz_id, answers, attempt_number=1):
    return {
        "quiz_id": quiz_id,
        "answers": answers,
        "question_times": {"0": 20, "1": 40},
        "start_time": "2026-03-02T08:58:00Z",
        "end_time": "2026-03-02T09:00:00Z",
        "attempt_number": attempt_number,
    }


def test_submit_two_question_quiz(client, make_quiz):
    qid = make_quiz()
    r = client.post("/results/submit", json=submit_body(qid, {"0": 1, "1": 0}))
    assert r.status_code == 201
    b = r.json()
    assert b["total_score"] == 5
    assert b["max_score"] == 10
    assert b["percentage"] == 50
    assert b["passed"] is False
    assert b["total_time_spent"] == 120
    assert [a["selected_answer"] for a in b["answers"]] == [1, 0]
    assert b["analytics"]["correct_answers_count"] == 1
    assert b["analytics"]["slowest_question"] == 40


def test_submit_all_skipped(client, make_quiz):
    qid = make_quiz()
    r = client.post("/results/submit", json=submit_body(qid, {}))
    b = r.json()
    assert b["total_score"] == 0 and b["percentage"] == 0
    assert [a["selected_answer"] for a in b["answers"]] == [-1, -1]


def test_submit_rejects_end_before_start(client, make_quiz):
    qid = make_quiz()
    body = submit_body(qid, {"0": 1})
    body["end_time"] = "2026-03-02T08:00:00Z"
    assert client.post("/results/submit", json=body).status_code == 422


def test_submit_rejects_negative_answer(client, make_quiz):
    qid = make_quiz()
    assert client.post("/results/submit", json=submit_body(qid, {"0": -2})).status_code == 422


def test_submit_over_limit_is_409(client, make_quiz):
    qid = make_quiz()
    assert client.post("/results/submit", json=submit_body(qid, {"0": 1})).status_code == 201
    r = client.post("/results/submit", json=submit_body(qid, {"0": 1}, attempt_number=2))
    assert r.status_code == 409
    assert r.json()["error"]["kind"] == "invalid_state"


def test_my_results_and_detail(client, make_quiz):
    qid = make_quiz()
    rid = client.post("/results/submit", json=submit_body(qid, {"0": 1, "1": 1})).json()["id"]

    r = client.get("/results/my")
    body = r.json()
    assert body["count"] == 1
    assert body["items"][0]["grade"] == "A"
    assert "answers" not in body["items"][0]

    assert client.get(f"/results/{rid}").status_code == 200
    assert client.get(f"/results/{rid}", headers={"x-user-id": "u2"}).status_code == 403


def test_feedback_requires_admin(client, make_quiz):
    qid = make_quiz()
    rid = client.post("/results/submit", json=submit_body(qid, {"0": 1})).json()["id"]

    assert client.post(f"/results/{rid}/feedback", json={"feedback": "ok"}).status_code == 401

    r = client.post(
        f"/results/{rid}/feedback",
        json={"feedback": "Review fractions"},
        headers={"x-admin-token": "secret", "x-user-id": "reviewer-7"},
    )
    assert r.status_code == 200
    assert r.json()["feedback"] == "Review fractions"
    assert r.json()["reviewed_by"] == "reviewer-7"


def test_quiz_listing_hides_answers(client, make_quiz):
    qid = make_quiz(time_per_question=30)
    make_quiz(is_published=False)
    r = client.get("/quizzes")
    assert r.status_code == 200
    items = r.json()
    assert [q["id"] for q in items] == [qid]
    assert items[0]["time_budget_seconds"] == 60
    assert "correct_option" not in items[0]["questions"][0]

    assert client.get(f"/quizzes/{qid}").json()["question_count"] == 2
    assert client.get("/quizzes/999").status_code == 404


def test_detailed_result(client, make_quiz):
    qid = make_quiz()
    rid = client.post("/results/submit", json=submit_body(qid, {"0": 0})).json()["id"]

    r = client.get(f"/results/{rid}/detailed")
    assert r.status_code == 200
    body = r.json()
    assert body["id"] == rid
    assert body["grade"] == "F"
    assert body["questions"][0] == {
        "question_index": 0,
        "question": "2 + 2",
        "user_answer": "3",
        "correct_answer": "4",
        "explanation": None,
        "is_correct": False,
        "points_earned": 0,
    }
    assert body["questions"][1]["user_answer"] == "Not answered"

    assert client.get(f"/results/{rid}/detailed", headers={"x-user-id": "u2"}).status_code == 403
    assert client.get("/results/999/detailed").status_code == 404


def test_best_result(client, make_quiz):
    qid = make_quiz(allow_retake=True, max_attempts=3)
    assert client.get(f"/results/best/{qid}").json() == {"ok": True, "result": None}

    client.post("/results/submit", json=submit_body(qid, {"0": 1, "1": 1}))
    client.post("/results/submit", json=submit_body(qid, {"0": 1}, attempt_number=2))

    best = client.get(f"/results/best/{qid}").json()["result"]
    assert best["percentage"] == 100
    assert best["attempt_number"] == 1


def test_quiz_results_admin_only_with_score_filter(client, make_quiz):
    qid = make_quiz()
    for user, answers in (("a", {}), ("b", {"0": 1}), ("c", {"0": 1, "1": 1})):
        client.post("/results/submit", json=submit_body(qid, answers), headers={"x-user-id": user})

    assert client.get(f"/results/quiz/{qid}").status_code == 401

    admin = {"x-admin-token": "secret"}
    body = client.get(f"/results/quiz/{qid}", headers=admin).json()
    assert body["count"] == 3
    assert [row["user_id"] for row in body["items"]] == ["c", "b", "a"]
    assert "answers" not in body["items"][0]

    r = client.get(f"/results/quiz/{qid}?min_score=40&max_score=60", headers=admin)
    assert [row["user_id"] for row in r.json()["items"]] == ["b"]

    assert client.get(f"/results/quiz/{qid}?min_score=101", headers=admin).status_code == 422
    r = client.get(f"/results/quiz/{qid}?min_score=70&max_score=30", headers=admin)
    assert r.status_code == 400


def test_grading_twice_over_http_is_409(client, make_quiz):
    qid = make_quiz()
    attempt_id = client.post(
        "/attempts/start", json={"quiz_id": qid, "browser_info": BROWSER}
    ).json()["id"]
    client.post(f"/attempts/{attempt_id}/submit")
    assert client.post(f"/attempts/{attempt_id}/grade").status_code == 201

    r = client.post(f"/attempts/{attempt_id}/grade")
    assert r.status_code == 409
    assert r.json()["error"]["message"] == "Attempt already graded"
