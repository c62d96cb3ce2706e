import pytest
from fastapi.testclient import TestClient

from fieldtrain.api.rest_api import status_code_for
from fieldtrain.core.exceptions import BusyError, ConfigurationError, GroupFullError, NotRegisteredError
from fieldtrain.services.concurrency_manager import group_lock_key


ADMIN = {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"}


@pytest.fixture
def client(platform):
    return TestClient(platform.app)


@pytest.fixture
def setup(client):
    supervisor = client.post("/supervisors", json={"name": "Dr. Hana Saleh"}, headers=ADMIN).json()
    site = client.post("/sites", json={"name": "City Hospital"}, headers=ADMIN).json()
    course = client.post("/courses", json={"name": "Clinical Practice I", "status": "active"},
                         headers=ADMIN).json()
    group = client.post(f"/courses/{course['id']}/groups", json={
        "group_name": "G1",
        "site_id": site['id'],
        "supervisor_id": supervisor['id'],
        "start_date": "2026-03-01",
        "end_date": "2026-04-01",
        "capacity": 1,
    }, headers=ADMIN).json()
    students = [
        client.post("/students", json={"university_id": uid, "name": name}, headers=ADMIN).json()
        for uid, name in [("20210001", "Alice"), ("20210002", "Bob")]
    ]
    return {'supervisor': supervisor, 'site': site, 'course': course, 'group': group, 'students': students}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_actor_headers_required(client):
    response = client.get("/students")
    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"


def test_unknown_role_is_bad_request(client):
    response = client.get("/students", headers={"X-Actor-Id": "x", "X-Actor-Role": "dean"})
    assert response.status_code == 400


def test_request_validation_renders_error_body(client):
    response = client.post("/students", json={"name": "No Id"}, headers=ADMIN)
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["details"]["errors"]


def test_group_response_has_live_seats(setup):
    group = setup['group']
    assert group["capacity"] == 1
    assert group["available_seats"] == 1
    assert group["is_full"] is False


def test_register_then_full(client, setup):
    alice, bob = setup['students']
    group_id = setup['group']['id']

    response = client.post("/registrations", json={"student_id": alice['id'], "group_id": group_id},
                           headers=ADMIN)
    assert response.status_code == 201
    assert response.json()["status"] == "active"

    response = client.post("/registrations", json={"student_id": bob['id'], "group_id": group_id},
                           headers=ADMIN)
    assert response.status_code == 409
    assert response.json()["error"] == "GROUP_FULL"

    detail = client.get(f"/groups/{group_id}", headers=ADMIN).json()
    assert detail["group"]["is_full"] is True
    assert [s["student"]["name"] for s in detail["students"]] == ["Alice"]


def test_cancel_twice(client, setup):
    alice = setup['students'][0]
    assignment = client.post("/registrations", json={"student_id": alice['id'], "group_id": setup['group']['id']},
                             headers=ADMIN).json()

    assert client.post(f"/assignments/{assignment['id']}/cancel", headers=ADMIN).status_code == 200
    response = client.post(f"/assignments/{assignment['id']}/cancel", headers=ADMIN)
    assert response.status_code == 409
    assert response.json()["error"] == "ALREADY_CANCELLED"

    missing = client.post("/assignments/nope/cancel", headers=ADMIN)
    assert missing.status_code == 404


def test_student_confirms_and_is_notified(client, setup):
    alice = setup['students'][0]
    assignment = client.post("/registrations", json={"student_id": alice['id'], "group_id": setup['group']['id']},
                             headers=ADMIN).json()
    student_headers = {"X-Actor-Id": alice['id'], "X-Actor-Role": "student"}

    response = client.post(f"/assignments/{assignment['id']}/confirm", headers=student_headers)
    assert response.status_code == 200
    assert response.json()["confirmed"] is True

    notifications = client.get("/notifications", headers=student_headers).json()
    assert [n["title"] for n in notifications] == ["Assignment confirmed"]
    read = client.post(f"/notifications/{notifications[0]['id']}/read", headers=student_headers)
    assert read.json()["read"] is True


def test_evaluation_flow(client, setup):
    alice = setup['students'][0]
    assignment = client.post("/registrations", json={"student_id": alice['id'], "group_id": setup['group']['id']},
                             headers=ADMIN).json()
    supervisor_headers = {"X-Actor-Id": setup['supervisor']['id'], "X-Actor-Role": "supervisor"}
    grades = {"attendance_grade": 20, "behavior_grade": 25, "final_exam_grade": 42}

    assert client.put(f"/assignments/{assignment['id']}/evaluation", json=grades,
                      headers=ADMIN).status_code == 403

    response = client.put(f"/assignments/{assignment['id']}/evaluation", json=grades, headers=supervisor_headers)
    assert response.status_code == 200
    assert response.json()["final_grade"] == pytest.approx(32.5)
    assert response.json()["passed"] is False

    out_of_range = dict(grades, final_exam_grade=120)
    assert client.put(f"/assignments/{assignment['id']}/evaluation", json=out_of_range,
                      headers=supervisor_headers).status_code == 400


def test_activity_log_requires_permission(client, setup):
    student_headers = {"X-Actor-Id": "s", "X-Actor-Role": "student"}
    assert client.get("/activity", headers=student_headers).status_code == 403

    events = client.get("/activity", params={"resource_type": "training_group"}, headers=ADMIN).json()
    assert [e["action"] for e in events] == ["create"]


def test_list_courses_by_status(client, setup):
    active = client.get("/courses", params={"status": "active"}, headers=ADMIN).json()
    assert [c["id"] for c in active] == [setup['course']['id']]
    assert client.get("/courses", params={"status": "upcoming"}, headers=ADMIN).json() == []


def test_available_groups(client, setup):
    groups = client.get("/groups/available", headers=ADMIN).json()
    assert [g["id"] for g in groups] == [setup['group']['id']]


def test_statistics(client, setup):
    body = client.get("/statistics", headers=ADMIN).json()
    assert body["success"] is True
    assert body["statistics"]["catalog"]["students"] == 2


def test_busy_maps_to_503(platform, client, setup):
    manager = platform.concurrency_manager
    lock_id = manager.acquire_lock(group_lock_key(setup['group']['id']), holder_id="maintenance")
    try:
        response = client.post("/registrations",
                               json={"student_id": setup['students'][0]['id'], "group_id": setup['group']['id']},
                               headers=ADMIN)
    finally:
        manager.release_lock(lock_id)
    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"


def test_status_codes_follow_error_hierarchy():
    assert status_code_for(GroupFullError("full")) == 409
    assert status_code_for(NotRegisteredError("no")) == 404
    assert status_code_for(BusyError("busy")) == 503
    assert status_code_for(ConfigurationError("bad")) == 500
