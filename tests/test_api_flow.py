"""
End-to-end onboarding flow over HTTP:

questionnaire → review → sprint → package → payment → board → tasks → finish
"""

BASE = "/api/v1"


def test_full_onboarding_flow(client, questionnaire_content, package_options,
                              admin_headers, startup_headers, notifications, realtime_events):
    # Anonymous founder fills in the questionnaire, then signs up and links it
    q = client.post(f"{BASE}/questionnaires", json=questionnaire_content()).get_json()
    res = client.post(f"{BASE}/questionnaires/link", json={"temporary_id": q["temporary_id"]},
                      headers=startup_headers)
    assert res.status_code == 200

    res = client.post(f"{BASE}/questionnaires/{q['id']}/review", json={"status": "approved"},
                      headers=admin_headers)
    assert res.get_json()["status"] == "approved"

    res = client.post(f"{BASE}/sprints", json={
        "questionnaire_id": q["id"],
        "name": "Seed Round Sprint",
        "type": "fundraising",
        "estimated_duration": 14,
        "package_options": package_options,
    }, headers=admin_headers)
    assert res.status_code == 201
    sprint_id = res.get_json()["id"]

    res = client.get(f"{BASE}/sprints/{sprint_id}/board", headers=startup_headers)
    assert res.status_code == 403

    res = client.post(f"{BASE}/sprints/{sprint_id}/select-package", json={"package_id": "basic"},
                      headers=startup_headers)
    assert res.get_json()["selected_package"]["price"] == 2500

    res = client.post(f"{BASE}/sprints/{sprint_id}/documents",
                      json={"documents": [{"name": "Deck", "url": "https://files.example/deck.pdf"}]},
                      headers=startup_headers)
    assert res.get_json()["status"] == "documents_submitted"

    res = client.post(f"{BASE}/sprints/{sprint_id}/meeting", json={
        "meeting_url": "https://meet.example/kickoff", "scheduled_at": "2030-01-15T10:00:00Z",
    }, headers=startup_headers)
    assert res.get_json()["status"] == "meeting_scheduled"

    res = client.post(f"{BASE}/sprints/{sprint_id}/verify-payment", headers=admin_headers)
    assert res.status_code == 200

    res = client.post(f"{BASE}/sprints/{sprint_id}/status", json={"status": "in_progress"},
                      headers=admin_headers)
    assert res.get_json()["status"] == "in_progress"

    board = client.get(f"{BASE}/sprints/{sprint_id}/board", headers=startup_headers).get_json()
    columns = {c["role"]: c["id"] for c in board["columns"]}

    task = client.post(f"{BASE}/boards/{board['id']}/tasks", json={"title": "Build data room"},
                       headers=startup_headers).get_json()
    res = client.post(f"{BASE}/sprints/{sprint_id}/finish", headers=startup_headers)
    assert res.status_code == 409

    client.post(f"{BASE}/tasks/{task['id']}/move", json={"column_id": columns["done"], "position": 0},
                headers=startup_headers)
    sprint = client.get(f"{BASE}/sprints/{sprint_id}", headers=startup_headers).get_json()
    assert sprint["progress"]["percentage"] == 100

    res = client.post(f"{BASE}/sprints/{sprint_id}/finish", headers=startup_headers)
    assert res.status_code == 200
    assert res.get_json()["status"] == "completed"

    templates = [n["template"] for n in notifications.sent]
    for expected in ("questionnaire_submitted", "questionnaire_approved", "sprint_proposal_created",
                     "sprint_package_selected", "sprint_documents_submitted",
                     "sprint_meeting_scheduled", "sprint_payment_verified"):
        assert expected in templates
    assert {"task_created", "task_moved"} <= {e["event"] for e in realtime_events.events}
