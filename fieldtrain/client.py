"""
HTTP client for the Fieldtrain REST API, plus a sample-data seeder.

Make sure the server is running before seeding:

    fieldtrain --seed http://127.0.0.1:8000
"""

import json
import logging
import os
import sys
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import requests

from .core.exceptions import FieldTrainingError


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8000"


def _console_supports_utf8() -> bool:
    enc = getattr(sys.stdout, "encoding", None)
    return enc is not None and "utf" in enc.lower()


_OK_CHAR = "✓" if _console_supports_utf8() else "[OK]"
_FAIL_CHAR = "✗" if _console_supports_utf8() else "[FAIL]"
_WARN_CHAR = "⚠" if _console_supports_utf8() else "[WARN]"


class ApiError(FieldTrainingError):
    """Error response returned by the server."""

    default_code = "API_ERROR"

    def __init__(self, status_code: int, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)
        self.status_code = status_code


def detect_base_url() -> str:
    """Determine a reachable base URL.

    Priority: environment variable ``FIELDTRAIN_BASE_URL``, then common local
    ports. If nothing responds, fall back to http://127.0.0.1:8000.
    """
    env = os.environ.get("FIELDTRAIN_BASE_URL")
    if env:
        return env

    candidates = [
        DEFAULT_BASE_URL,
        "http://127.0.0.1:8888",
        "http://localhost:8000",
        "http://localhost:8888",
    ]

    for c in candidates:
        try:
            resp = requests.get(f"{c}/health", timeout=0.5)
            if resp.status_code == 200:
                return c
        except requests.exceptions.RequestException:
            continue

    return candidates[0]


class FieldTrainingClient:
    """Thin wrapper over the REST API acting as one user."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, actor_id: str = "admin",
                 actor_role: str = "admin", timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "X-Actor-Id": actor_id,
            "X-Actor-Role": actor_role,
        })

    @property
    def base_url(self) -> str:
        return self._base_url

    def as_actor(self, actor_id: str, actor_role: str) -> 'FieldTrainingClient':
        """Client for another user against the same server."""
        return FieldTrainingClient(self._base_url, actor_id, actor_role, self._timeout)

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._session.request(method, f"{self._base_url}{path}",
                                             timeout=self._timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.warning("Request %s %s failed: %s", method, path, e)
            raise ApiError(0, f"Cannot reach {self._base_url}: {e}", "CONNECTION_ERROR")

        if response.status_code == 204:
            return None
        if 200 <= response.status_code < 300:
            return response.json()

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        raise ApiError(response.status_code, payload.get("message", response.text),
                       payload.get("error"), payload.get("details"))

    def is_healthy(self) -> bool:
        try:
            self._request("GET", "/health")
            return True
        except ApiError:
            return False

    # Catalog
    def create_student(self, university_id: str, name: str, **fields) -> Dict[str, Any]:
        return self._request("POST", "/students", json={"university_id": university_id, "name": name, **fields})

    def list_students(self, **filters) -> List[Dict[str, Any]]:
        return self._request("GET", "/students", params=filters)

    def create_supervisor(self, name: str, **fields) -> Dict[str, Any]:
        return self._request("POST", "/supervisors", json={"name": name, **fields})

    def create_site(self, name: str, **fields) -> Dict[str, Any]:
        return self._request("POST", "/sites", json={"name": name, **fields})

    def create_course(self, name: str, **fields) -> Dict[str, Any]:
        return self._request("POST", "/courses", json={"name": name, **fields})

    def list_courses(self, **filters) -> List[Dict[str, Any]]:
        return self._request("GET", "/courses", params=filters)

    def set_course_status(self, course_id: str, status: str) -> Dict[str, Any]:
        return self._request("PUT", f"/courses/{course_id}/status", json={"status": status})

    def create_group(self, course_id: str, group_name: str, site_id: str, supervisor_id: str,
                     start_date: date, end_date: date, capacity: int = 10, **fields) -> Dict[str, Any]:
        data = {
            "group_name": group_name,
            "site_id": site_id,
            "supervisor_id": supervisor_id,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "capacity": capacity,
            **fields,
        }
        return self._request("POST", f"/courses/{course_id}/groups", json=data)

    def available_groups(self, **filters) -> List[Dict[str, Any]]:
        return self._request("GET", "/groups/available", params=filters)

    # Registration
    def register(self, student_id: str, group_id: str) -> Dict[str, Any]:
        return self._request("POST", "/registrations", json={"student_id": student_id, "group_id": group_id})

    def cancel(self, student_id: str, group_id: str) -> Dict[str, Any]:
        return self._request("POST", "/registrations/cancel",
                             json={"student_id": student_id, "group_id": group_id})

    def transfer(self, student_id: str, from_group_id: str, to_group_id: str) -> Dict[str, Any]:
        return self._request("POST", "/registrations/transfer", json={
            "student_id": student_id,
            "from_group_id": from_group_id,
            "to_group_id": to_group_id,
        })

    def confirm(self, assignment_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/assignments/{assignment_id}/confirm")

    # Evaluation
    def evaluate(self, assignment_id: str, attendance: float, behavior: float, final_exam: float,
                 comments: str = "") -> Dict[str, Any]:
        return self._request("PUT", f"/assignments/{assignment_id}/evaluation", json={
            "attendance_grade": attendance,
            "behavior_grade": behavior,
            "final_exam_grade": final_exam,
            "comments": comments,
        })

    def get_statistics(self) -> Dict[str, Any]:
        return self._request("GET", "/statistics")


def _try(label: str, func, *args, **kwargs) -> Optional[Dict[str, Any]]:
    try:
        result = func(*args, **kwargs)
        print(f"{_OK_CHAR} {label}")
        return result
    except ApiError as e:
        print(f"{_FAIL_CHAR} {label}: [{e.error_code}] {e.message}")
        return None


def seed_sample_data(client: FieldTrainingClient, today: Optional[date] = None) -> Dict[str, List[Dict[str, Any]]]:
    """Create a small catalog and a few registrations through the API."""
    today = today or date.today()
    created: Dict[str, List[Dict[str, Any]]] = {
        "students": [], "supervisors": [], "sites": [], "courses": [], "groups": [], "assignments": [],
    }

    print("Creating students...")
    for university_id, name in [
        ("20210001", "Alice Johnson"),
        ("20210002", "Bob Smith"),
        ("20210003", "Carol Davis"),
        ("20210004", "David Wilson"),
        ("20210005", "Emma Brown"),
    ]:
        student = _try(f"Created student: {name} ({university_id})", client.create_student,
                       university_id, name, faculty_id="medicine", major_id="nursing")
        if student:
            created["students"].append(student)

    print("\nCreating supervisors and sites...")
    for name in ("Dr. Hana Saleh", "Dr. Omar Nasser"):
        supervisor = _try(f"Created supervisor: {name}", client.create_supervisor, name, faculty_id="medicine")
        if supervisor:
            created["supervisors"].append(supervisor)
    for name, address in [("City Hospital", "12 Main St"), ("North Clinic", "3 Hill Rd")]:
        site = _try(f"Created site: {name}", client.create_site, name, address=address)
        if site:
            created["sites"].append(site)

    if not (created["supervisors"] and created["sites"]):
        print(f"{_WARN_CHAR} Skipping courses: no supervisors or sites")
        return created

    print("\nCreating courses and groups...")
    course = _try("Created course: Clinical Practice I", client.create_course, "Clinical Practice I",
                  faculty_id="medicine", major_id="nursing", status="active")
    if course:
        created["courses"].append(course)
        for index, (group_name, capacity) in enumerate([("Group A", 3), ("Group B", 2)]):
            group = _try(
                f"Created group: {group_name} (capacity {capacity})", client.create_group,
                course["id"], group_name,
                created["sites"][index % len(created["sites"])]["id"],
                created["supervisors"][index % len(created["supervisors"])]["id"],
                today, today + timedelta(days=60), capacity,
            )
            if group:
                created["groups"].append(group)

    print("\nRegistering students...")
    for index, student in enumerate(created["students"]):
        if not created["groups"]:
            break
        group = created["groups"][index % len(created["groups"])]
        assignment = _try(f"Registered {student['name']} in {group['group_name']}",
                          client.register, student["id"], group["id"])
        if assignment:
            created["assignments"].append(assignment)

    return created


def main(base_url: Optional[str] = None) -> int:
    """Seed a running server and print its statistics."""
    print("=" * 60)
    print("Fieldtrain - Sample Data Script")
    print("=" * 60)

    client = FieldTrainingClient(base_url or detect_base_url())
    if not client.is_healthy():
        print(f"{_FAIL_CHAR} Server is not running at {client.base_url}")
        print("\nPlease start the server first:")
        print("  fieldtrain --port 8000")
        return 1
    print(f"{_OK_CHAR} Server is running at {client.base_url}\n")

    seed_sample_data(client)

    statistics = _try("Fetched statistics", client.get_statistics)
    if statistics:
        print(json.dumps(statistics["statistics"], indent=2))

    print("\nYou can now:")
    print(f"  - View API docs: {client.base_url}/docs")
    print(f"  - List available groups: curl -H 'X-Actor-Id: admin' -H 'X-Actor-Role: admin' "
          f"{client.base_url}/groups/available")
    return 0


if __name__ == "__main__":
    sys.exit(main())
