from datetime import date
from unittest import mock

import pytest
import requests
from fastapi.testclient import TestClient

from fieldtrain.client import ApiError, FieldTrainingClient, seed_sample_data


def _response(status_code, payload=None):
    response = mock.Mock(spec=requests.Response)
    response.status_code = status_code
    response.text = str(payload)
    if payload is None:
        response.json.side_effect = ValueError("no body")
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def session():
    session = mock.Mock(spec=requests.Session)
    session.headers = {}
    return session


def test_actor_headers_set_on_session(session):
    FieldTrainingClient("http://api.test/", actor_id="sup-1", actor_role="supervisor", session=session)
    assert session.headers == {"X-Actor-Id": "sup-1", "X-Actor-Role": "supervisor"}


def test_register_posts_json(session):
    session.request.return_value = _response(201, {"id": "a1", "status": "active"})
    client = FieldTrainingClient("http://api.test/", session=session, timeout=3)

    assert client.register("s1", "g1") == {"id": "a1", "status": "active"}
    session.request.assert_called_once_with(
        "POST", "http://api.test/registrations", timeout=3,
        json={"student_id": "s1", "group_id": "g1"},
    )


def test_error_body_becomes_api_error(session):
    session.request.return_value = _response(409, {
        "error": "GROUP_FULL", "message": "Group G1 is full", "details": {"group_id": "g1"},
    })
    client = FieldTrainingClient(session=session)

    with pytest.raises(ApiError) as exc_info:
        client.register("s1", "g1")

    assert exc_info.value.status_code == 409
    assert exc_info.value.error_code == "GROUP_FULL"
    assert exc_info.value.details == {"group_id": "g1"}


def test_non_json_error(session):
    session.request.return_value = _response(502)
    client = FieldTrainingClient(session=session)
    with pytest.raises(ApiError) as exc_info:
        client.get_statistics()
    assert exc_info.value.status_code == 502
    assert exc_info.value.error_code == "API_ERROR"


def test_connection_failure(session):
    session.request.side_effect = requests.exceptions.ConnectionError("refused")
    client = FieldTrainingClient(session=session)
    assert client.is_healthy() is False


def test_create_group_serializes_dates(session):
    session.request.return_value = _response(201, {"id": "g1"})
    client = FieldTrainingClient("http://api.test", session=session)
    client.create_group("c1", "G1", "site-1", "sup-1", date(2026, 3, 1), date(2026, 4, 1), capacity=5)

    _, kwargs = session.request.call_args
    assert kwargs["json"]["start_date"] == "2026-03-01"
    assert kwargs["json"]["capacity"] == 5


def test_seed_sample_data_through_api(platform):
    test_client = TestClient(platform.app)
    client = FieldTrainingClient("http://testserver", session=test_client)

    created = seed_sample_data(client, today=date(2026, 3, 1))

    assert len(created["students"]) == 5
    assert len(created["groups"]) == 2
    # Group A holds 3 and Group B holds 2, so every student gets a seat
    assert len(created["assignments"]) == 5
    stats = platform.registration.get_statistics()
    assert stats["active"] == 5
