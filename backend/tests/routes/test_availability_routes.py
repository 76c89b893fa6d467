# backend/tests/routes/test_availability_routes.py
from tests.factories import make_student, make_teacher, utc
from tests.routes.conftest import auth_headers

AVAILABILITY_URL = "/api/v1/teachers/me/availability"
BLOCKED_URL = "/api/v1/teachers/me/blocked-times"


class TestWeeklyAvailability:
    def test_replace_then_read(self, client, teacher, teacher_headers):
        payload = {
            "windows": [
                {"dayOfWeek": 1, "startTime": "09:00", "endTime": "12:00"},
                {"dayOfWeek": 1, "startTime": "13:00", "endTime": "17:00"},
            ]
        }
        response = client.put(AVAILABILITY_URL, json=payload, headers=teacher_headers)
        assert response.status_code == 200

        body = client.get(AVAILABILITY_URL, headers=teacher_headers).json()
        assert body["timezone"] == teacher.timezone
        assert [(w["startTime"], w["endTime"]) for w in body["windows"]] == [("09:00", "12:00"), ("13:00", "17:00")]

    def test_overlap_rejected(self, client, teacher_headers):
        payload = {
            "windows": [
                {"dayOfWeek": 2, "startTime": "09:00", "endTime": "12:00"},
                {"dayOfWeek": 2, "startTime": "11:00", "endTime": "13:00"},
            ]
        }
        response = client.put(AVAILABILITY_URL, json=payload, headers=teacher_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "AVAILABILITY_OVERLAP"

    def test_bad_time_is_a_validation_error(self, client, teacher_headers):
        payload = {"windows": [{"dayOfWeek": 2, "startTime": "9:00", "endTime": "12:00"}]}
        response = client.put(AVAILABILITY_URL, json=payload, headers=teacher_headers)
        assert response.status_code == 400


class TestBlockedTimes:
    def test_create_list_delete(self, client, teacher_headers):
        created = client.post(
            BLOCKED_URL,
            json={"start": "2030-07-01T00:00:00Z", "end": "2030-07-15T00:00:00Z", "reason": "Summer tour"},
            headers=teacher_headers,
        )
        assert created.status_code == 201
        blocked_id = created.json()["id"]

        listed = client.get(BLOCKED_URL, headers=teacher_headers).json()
        assert [item["id"] for item in listed] == [blocked_id]

        deleted = client.delete(f"{BLOCKED_URL}/{blocked_id}", headers=teacher_headers)
        assert deleted.status_code == 204
        assert client.get(BLOCKED_URL, headers=teacher_headers).json() == []

    def test_past_range_rejected(self, client, teacher_headers):
        response = client.post(
            BLOCKED_URL,
            json={"start": utc(2020, 1, 1).isoformat(), "end": utc(2020, 1, 2).isoformat()},
            headers=teacher_headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "BLOCKED_TIME_IN_PAST"

    def test_unknown_id(self, client, teacher_headers):
        response = client.delete(f"{BLOCKED_URL}/01J0000000000000000000000A", headers=teacher_headers)
        assert response.status_code == 404


class TestAvailableSlots:
    # 2030-01-07 is a Monday; the whole local day in New York
    RANGE = {"start": "2030-01-07T05:00:00Z", "end": "2030-01-08T05:00:00Z", "duration": 60}

    def url(self, teacher):
        return f"/api/v1/teachers/{teacher.id}/available-slots"

    def test_student_sees_open_slots(self, db, client, teacher, weekday_availability):
        learner = make_student(db, teacher, name="Learner", email="learner@example.com", user_id="student-user")

        response = client.get(self.url(teacher), params=self.RANGE, headers=auth_headers(learner.user_id, "STUDENT"))

        assert response.status_code == 200
        body = response.json()
        assert body["teacherId"] == teacher.id
        assert len(body["slots"]) == 15
        assert body["slots"][0]["start"].startswith("2030-01-07T14:00:00")
        assert body["slots"][0]["price"] == 9000

    def test_student_of_another_teacher_is_forbidden(self, db, client, teacher, weekday_availability):
        other = make_teacher(db, email="other@example.com")
        outsider = make_student(db, other, name="Outsider", email="outsider@example.com", user_id="outsider-user")

        response = client.get(self.url(teacher), params=self.RANGE, headers=auth_headers(outsider.user_id, "STUDENT"))

        assert response.status_code == 403
        assert response.json()["code"] == "NOT_TEACHERS_STUDENT"

    def test_teacher_cannot_browse_another_calendar(self, db, client, teacher_headers):
        other = make_teacher(db, email="other@example.com")
        response = client.get(self.url(other), params=self.RANGE, headers=teacher_headers)
        assert response.status_code == 403

    def test_missing_range_is_a_validation_error(self, client, teacher, teacher_headers):
        response = client.get(self.url(teacher), headers=teacher_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
