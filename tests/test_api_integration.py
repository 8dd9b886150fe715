from __future__ import annotations

import time

from conftest import finalize_reply
from speechcoach.core.errors import ReasoningServiceError


def _poll_plan(client, session_id: str, attempts: int = 50):
    for _ in range(attempts):
        response = client.get(f"/api/session/{session_id}/plan")
        if response.status_code != 202:
            return response
        time.sleep(0.02)
    return response


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["sessions"] == 0
    assert "x-request-id" in response.headers


def test_check_in_to_practice_happy_path(client, checkin_llm):
    checkin_llm.queue("Hello! How are you feeling today?", finalize_reply("Thank you, preparing now."))

    start = client.post("/api/session/start", json={"practiceQuestionCount": 4})
    assert start.status_code == 200
    start_data = start.json()
    session_id = start_data["sessionId"]
    assert start_data["message"] == "Hello! How are you feeling today?"
    assert start_data["status"] == "active"

    reply = client.post(f"/api/session/{session_id}/message", json={"message": "Happy, I love cooking"})
    assert reply.status_code == 200
    assert reply.json() == {"message": "Thank you, preparing now.", "status": "finalizing", "planReady": False}

    plan_response = _poll_plan(client, session_id)
    assert plan_response.status_code == 200
    plan = plan_response.json()["plan"]
    assert sum(len(block["items"]) for block in plan["blocks"]) == 4
    assert plan["session_metadata"]["session_id"] == session_id

    holding = client.post(f"/api/session/{session_id}/message", json={"message": "ready?"})
    assert holding.json()["planReady"] is True

    loaded = client.post(f"/api/practice/{session_id}/load")
    assert loaded.status_code == 200
    assert loaded.json()["status"] == "loaded"

    state = client.post(f"/api/practice/{session_id}/start").json()
    answered = 0
    while state["status"] == "presenting":
        expected = state["currentItem"]["answer"]
        state = client.post(f"/api/practice/{session_id}/answer", json={"answer": expected}).json()
        assert state["status"] == "showing_feedback"
        assert state["feedback"]["isCorrect"] is True
        answered += 1
        state = client.post(f"/api/practice/{session_id}/next").json()

    assert answered == 4
    assert state["status"] == "ended"
    assert state["score"] == {"correct": 4, "total": 4}

    summaries = client.get("/api/practice/summaries").json()["summaries"]
    assert summaries[0]["sessionId"] == session_id
    assert summaries[0]["endedEarly"] is False
    assert summaries[0]["blocksCompleted"] == 4

    events = client.get("/events/history", params={"sessionId": session_id}).json()["events"]
    assert [e["type"] for e in events] == [
        "session_started",
        "session_finalizing",
        "plan_completed",
        "practice_ended",
    ]


def test_malformed_plan_output_surfaces_error(client, checkin_llm, planner_llm):
    checkin_llm.queue("Hi!", finalize_reply())
    planner_llm.queue("Sorry, no plan today.")

    session_id = client.post("/api/session/start").json()["sessionId"]
    client.post(f"/api/session/{session_id}/message", json={"message": "I like gardening"})

    response = _poll_plan(client, session_id)
    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "plan_generation_failed"
    assert "invalid JSON" in body["error"]["details"]

    blocked = client.post(f"/api/practice/{session_id}/load")
    assert blocked.status_code == 409


def test_demo_skip_generates_plan(client):
    start = client.post("/api/session/demo-skip", json={"practiceQuestionCount": 6})
    assert start.status_code == 200
    data = start.json()
    assert data["status"] == "finalizing"
    assert data["message"].startswith("Demo Skip enabled")

    plan = _poll_plan(client, data["sessionId"]).json()["plan"]
    assert plan["patient_profile"]["mood"] == "motivated"
    assert sum(len(block["items"]) for block in plan["blocks"]) == 6


def test_early_end_records_summary(client):
    session_id = client.post("/api/session/demo-skip", json={"practiceQuestionCount": 4}).json()["sessionId"]
    assert _poll_plan(client, session_id).status_code == 200

    client.post(f"/api/practice/{session_id}/load")
    client.post(f"/api/practice/{session_id}/start")
    client.post(f"/api/practice/{session_id}/answer", json={"answer": "something else"})
    ended = client.post(f"/api/practice/{session_id}/end").json()
    assert ended["status"] == "ended"
    assert ended["score"] == {"correct": 0, "total": 1}

    # Out-of-state calls after the end are harmless no-ops.
    again = client.post(f"/api/practice/{session_id}/next").json()
    assert again["status"] == "ended"

    summary = client.get("/api/practice/summaries").json()["summaries"][0]
    assert summary["sessionId"] == session_id
    assert summary["endedEarly"] is True
    assert summary["total"] == 1


def test_unknown_session_returns_404_envelope(client):
    response = client.post("/api/session/does-not-exist/message", json={"message": "hello"})
    assert response.status_code == 404
    body = response.json()
    assert body["error"]["code"] == "session_not_found"
    assert "does-not-exist" in body["error"]["message"]

    assert client.get("/api/session/does-not-exist/plan").status_code == 404
    assert client.get("/api/practice/does-not-exist").status_code == 404
    assert client.delete("/api/session/does-not-exist").status_code == 404


def test_message_validation(client):
    session_id = client.post("/api/session/start").json()["sessionId"]
    assert client.post(f"/api/session/{session_id}/message", json={}).status_code == 422
    blank = client.post(f"/api/session/{session_id}/message", json={"message": "   "})
    assert blank.status_code == 400
    assert blank.json()["error"]["code"] == "bad_request"


def test_reasoning_failure_returns_502_and_session_stays_active(client, checkin_llm):
    checkin_llm.queue("Hi!", ReasoningServiceError("upstream down"), "Glad to hear it.")
    session_id = client.post("/api/session/start").json()["sessionId"]

    failed = client.post(f"/api/session/{session_id}/message", json={"message": "I'm fine"})
    assert failed.status_code == 502
    assert failed.json()["error"]["code"] == "reasoning_service_error"

    retried = client.post(f"/api/session/{session_id}/message", json={"message": "I'm fine"})
    assert retried.status_code == 200
    assert retried.json()["status"] == "active"


def test_delete_session_evicts(client):
    session_id = client.post("/api/session/start").json()["sessionId"]
    assert client.delete(f"/api/session/{session_id}").status_code == 200
    assert client.get(f"/api/session/{session_id}/plan").status_code == 404


def test_evaluate_endpoint(client, grader_llm):
    exact = client.post("/api/evaluate", json={"submitted": "A red PAN", "expected": "pan"})
    assert exact.json() == {"correct": True, "tier": "exact"}

    grader_llm.queue("correct")
    semantic = client.post("/api/evaluate", json={"submitted": "sofa", "expected": "couch"})
    assert semantic.json() == {"correct": True, "tier": "semantic"}


def test_picture_images_endpoint(client):
    response = client.get("/api/picture-images", params={"targetConcept": "cat", "topic": "pets"})
    assert response.status_code == 200
    choices = response.json()["choices"]
    assert len(choices) == 4
    assert sum(1 for c in choices if c["isCorrect"]) == 1
    assert len({c["imageUrl"] for c in choices}) == 4

    missing = client.get("/api/picture-images")
    assert missing.status_code == 400


def test_image_search_endpoint(client):
    response = client.get("/api/image-search", params=[("query", "cat"), ("query", "dog")])
    assert response.status_code == 200
    results = response.json()["results"]
    assert [r["query"] for r in results] == ["cat", "dog"]
    assert client.get("/api/image-search").status_code == 400


def test_reloaded_practice_keeps_one_summary_per_session(client):
    session_id = client.post("/api/session/demo-skip", json={"practiceQuestionCount": 4}).json()["sessionId"]
    assert _poll_plan(client, session_id).status_code == 200

    for _ in range(2):
        client.post(f"/api/practice/{session_id}/load")
        client.post(f"/api/practice/{session_id}/start")
        assert client.post(f"/api/practice/{session_id}/end").json()["status"] == "ended"

    summaries = client.get("/api/practice/summaries").json()["summaries"]
    assert [s["sessionId"] for s in summaries].count(session_id) == 1
    assert summaries[0]["total"] == 0
