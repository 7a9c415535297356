"""Tests for walk-in appointment and slot routes."""

from datetime import date, timedelta

from conftest import HEALTHY, walk_in_payload

from clinic import booking_service


class TestWalkInRoutes:
    """Tests for /api/appointments endpoints."""

    def test_create_appointment(self, client, staff_headers, dentist, visit_day):
        """POST /api/appointments/ books a confirmed walk-in."""
        response = client.post(
            "/api/appointments/", json=walk_in_payload(dentist.id, visit_day), headers=staff_headers
        )
        assert response.status_code == 201
        data = response.json()
        assert data["source"] == "walk_in"
        assert data["status"] == "confirmed"
        assert data["duration"] == 30
        assert data["price"] == 650
        assert data["balance"] == 650
        assert data["payment_status"] == "unpaid"
        assert data["treatment_option"] == "Cleaning (LINIS) - Mild to Average Deposit (Tartar)"
        assert data["patient_name"] == "Walk-in Pedro"

    def test_create_requires_back_office(self, client, patient_headers, dentist, visit_day):
        response = client.post(
            "/api/appointments/", json=walk_in_payload(dentist.id, visit_day), headers=patient_headers
        )
        assert response.status_code == 403

    def test_create_requires_login(self, client, dentist, visit_day):
        response = client.post("/api/appointments/", json=walk_in_payload(dentist.id, visit_day))
        assert response.status_code == 401

    def test_double_booking_rejected(self, client, staff_headers, dentist, visit_day):
        """The same dentist cannot take two confirmed walk-ins at once."""
        payload = walk_in_payload(dentist.id, visit_day)
        assert client.post("/api/appointments/", json=payload, headers=staff_headers).status_code == 201

        response = client.post("/api/appointments/", json=payload, headers=staff_headers)
        assert response.status_code == 409

    def test_overlapping_long_service_rejected(self, client, staff_headers, dentist, visit_day):
        client.post(
            "/api/appointments/",
            json=walk_in_payload(dentist.id, visit_day, time="11:00 - 11:30"),
            headers=staff_headers,
        )
        payload = walk_in_payload(
            dentist.id, visit_day, time="10:30 - 11:00",
            category="Filling (PASTA)", option="Permanent",
        )
        response = client.post("/api/appointments/", json=payload, headers=staff_headers)
        assert response.status_code == 409

    def test_other_dentist_same_time(self, client, staff_headers, dentist, other_dentist, visit_day):
        client.post("/api/appointments/", json=walk_in_payload(dentist.id, visit_day), headers=staff_headers)
        response = client.post(
            "/api/appointments/", json=walk_in_payload(other_dentist.id, visit_day), headers=staff_headers
        )
        assert response.status_code == 201

    def test_pending_walk_in_does_not_block(self, client, staff_headers, dentist, visit_day):
        payload = walk_in_payload(dentist.id, visit_day, status="pending")
        assert client.post("/api/appointments/", json=payload, headers=staff_headers).status_code == 201
        assert client.post("/api/appointments/", json=payload, headers=staff_headers).status_code == 201

    def test_past_date_rejected(self, client, staff_headers, dentist):
        payload = walk_in_payload(dentist.id, date.today() - timedelta(days=1))
        response = client.post("/api/appointments/", json=payload, headers=staff_headers)
        assert response.status_code == 422

    def test_unknown_service_rejected(self, client, staff_headers, dentist, visit_day):
        payload = walk_in_payload(dentist.id, visit_day, option="Diamond")
        response = client.post("/api/appointments/", json=payload, headers=staff_headers)
        assert response.status_code == 400

    def test_incomplete_health_declaration_rejected(self, client, staff_headers, dentist, visit_day):
        answers = dict(HEALTHY)
        del answers["q10"]
        payload = walk_in_payload(dentist.id, visit_day, health_answers=answers)
        response = client.post("/api/appointments/", json=payload, headers=staff_headers)
        assert response.status_code == 400
        assert "q10" in response.json()["detail"]

    def test_unknown_dentist(self, client, staff_headers, staff, visit_day):
        response = client.post(
            "/api/appointments/", json=walk_in_payload(staff.id, visit_day), headers=staff_headers
        )
        assert response.status_code == 404

    def test_bad_phone_rejected(self, client, staff_headers, dentist, visit_day):
        payload = walk_in_payload(dentist.id, visit_day, patient_phone="12345")
        response = client.post("/api/appointments/", json=payload, headers=staff_headers)
        assert response.status_code == 422

    def test_registered_patient_notified(self, client, staff_headers, dentist, patient, patient_headers, visit_day):
        payload = walk_in_payload(dentist.id, visit_day, patient_id=patient.id)
        data = client.post("/api/appointments/", json=payload, headers=staff_headers).json()
        assert data["patient_name"] == patient.full_name
        assert data["patient_email"] == patient.email

        notifications = client.get("/api/notifications/", headers=patient_headers).json()
        assert [n["type"] for n in notifications] == ["appointment_created"]

    def test_list_and_search(self, client, staff_headers, dentist, visit_day):
        client.post("/api/appointments/", json=walk_in_payload(dentist.id, visit_day), headers=staff_headers)
        client.post(
            "/api/appointments/",
            json=walk_in_payload(dentist.id, visit_day, time="13:00 - 13:30", patient_name="Ana Cruz"),
            headers=staff_headers,
        )

        assert len(client.get("/api/appointments/", headers=staff_headers).json()) == 2
        found = client.get("/api/appointments/", params={"search": "ana"}, headers=staff_headers).json()
        assert [a["patient_name"] for a in found] == ["Ana Cruz"]

    def test_move_to_taken_slot_rejected(self, client, staff_headers, dentist, visit_day):
        client.post("/api/appointments/", json=walk_in_payload(dentist.id, visit_day), headers=staff_headers)
        second = client.post(
            "/api/appointments/",
            json=walk_in_payload(dentist.id, visit_day, time="12:00 - 12:30"),
            headers=staff_headers,
        ).json()

        response = client.put(
            f"/api/appointments/{second['id']}", json={"time": "10:00 - 10:30"}, headers=staff_headers
        )
        assert response.status_code == 409

    def test_move_to_free_slot(self, client, staff_headers, dentist, visit_day):
        created = client.post(
            "/api/appointments/", json=walk_in_payload(dentist.id, visit_day), headers=staff_headers
        ).json()

        response = client.put(
            f"/api/appointments/{created['id']}", json={"time": "15:00 - 15:30"}, headers=staff_headers
        )
        assert response.status_code == 200
        assert response.json()["time"] == "15:00 - 15:30"

        slots = client.get(
            "/api/slots", params={"date": visit_day.isoformat(), "provider_id": dentist.id}
        ).json()["slots"]
        assert "10:00 - 10:30" in slots
        assert "15:00 - 15:30" not in slots

    def test_confirming_pending_checks_slot(self, client, staff_headers, dentist, visit_day):
        pending = client.post(
            "/api/appointments/",
            json=walk_in_payload(dentist.id, visit_day, status="pending"),
            headers=staff_headers,
        ).json()
        client.post("/api/appointments/", json=walk_in_payload(dentist.id, visit_day), headers=staff_headers)

        response = client.put(
            f"/api/appointments/{pending['id']}", json={"status": "confirmed"}, headers=staff_headers
        )
        assert response.status_code == 409

    def test_unknown_time_rejected(self, client, staff_headers, dentist, visit_day):
        payload = walk_in_payload(dentist.id, visit_day, time="25:00 - 25:30")
        response = client.post("/api/appointments/", json=payload, headers=staff_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Unknown time slot: 25:00 - 25:30"

    def test_move_pending_to_unknown_time_rejected(self, client, staff_headers, dentist, visit_day):
        """A booking that does not block time still cannot leave the catalog."""
        pending = client.post(
            "/api/appointments/",
            json=walk_in_payload(dentist.id, visit_day, status="pending"),
            headers=staff_headers,
        ).json()

        response = client.put(
            f"/api/appointments/{pending['id']}", json={"time": "25:00 - 25:30"}, headers=staff_headers
        )
        assert response.status_code == 400

        stored = client.get(f"/api/appointments/{pending['id']}", headers=staff_headers).json()
        assert stored["time"] == "10:00 - 10:30"

    def test_move_and_cancel_into_taken_slot(self, client, staff_headers, dentist, visit_day):
        """The move is judged against the status the update leaves behind."""
        first = client.post(
            "/api/appointments/", json=walk_in_payload(dentist.id, visit_day), headers=staff_headers
        ).json()
        client.post(
            "/api/appointments/",
            json=walk_in_payload(dentist.id, visit_day, time="11:00 - 11:30"),
            headers=staff_headers,
        )

        response = client.put(
            f"/api/appointments/{first['id']}",
            json={"time": "11:00 - 11:30", "status": "cancelled"},
            headers=staff_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["time"] == "11:00 - 11:30"

    def test_move_and_confirm_reserves_once(self, client, staff_headers, dentist, visit_day, monkeypatch):
        reserved = []
        real_reserve = booking_service.reserve_slot

        def counting_reserve(*args, **kwargs):
            reserved.append(args[3])
            return real_reserve(*args, **kwargs)

        monkeypatch.setattr(booking_service, "reserve_slot", counting_reserve)

        pending = client.post(
            "/api/appointments/",
            json=walk_in_payload(dentist.id, visit_day, status="pending"),
            headers=staff_headers,
        ).json()
        reserved.clear()

        response = client.put(
            f"/api/appointments/{pending['id']}",
            json={"time": "13:00 - 13:30", "status": "confirmed"},
            headers=staff_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"
        assert reserved == ["13:00 - 13:30"]

        slots = client.get(
            "/api/slots", params={"date": visit_day.isoformat(), "provider_id": dentist.id}
        ).json()["slots"]
        assert "10:00 - 10:30" in slots
        assert "13:00 - 13:30" not in slots

    def test_move_and_confirm_into_taken_slot(self, client, staff_headers, dentist, visit_day):
        pending = client.post(
            "/api/appointments/",
            json=walk_in_payload(dentist.id, visit_day, status="pending"),
            headers=staff_headers,
        ).json()
        client.post(
            "/api/appointments/",
            json=walk_in_payload(dentist.id, visit_day, time="13:00 - 13:30"),
            headers=staff_headers,
        )

        response = client.put(
            f"/api/appointments/{pending['id']}",
            json={"time": "13:00 - 13:30", "status": "confirmed"},
            headers=staff_headers,
        )
        assert response.status_code == 409

        stored = client.get(f"/api/appointments/{pending['id']}", headers=staff_headers).json()
        assert (stored["status"], stored["time"]) == ("pending", "10:00 - 10:30")

    def test_price_change_updates_payment_status(self, client, staff_headers, dentist, visit_day):
        created = client.post(
            "/api/appointments/", json=walk_in_payload(dentist.id, visit_day), headers=staff_headers
        ).json()
        response = client.put(
            f"/api/appointments/{created['id']}", json={"price": 0}, headers=staff_headers
        )
        assert response.json()["payment_status"] == "paid"

    def test_cancel_frees_slot(self, client, staff_headers, dentist, visit_day):
        created = client.post(
            "/api/appointments/", json=walk_in_payload(dentist.id, visit_day), headers=staff_headers
        ).json()

        response = client.post(f"/api/appointments/{created['id']}/cancel", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        again = client.post(
            "/api/appointments/", json=walk_in_payload(dentist.id, visit_day), headers=staff_headers
        )
        assert again.status_code == 201

    def test_delete(self, client, staff_headers, dentist, visit_day):
        created = client.post(
            "/api/appointments/", json=walk_in_payload(dentist.id, visit_day), headers=staff_headers
        ).json()
        assert client.delete(f"/api/appointments/{created['id']}", headers=staff_headers).status_code == 204
        assert client.get(f"/api/appointments/{created['id']}", headers=staff_headers).status_code == 404


class TestSlotRoutes:
    """Tests for /api/slots and the catalog endpoints."""

    def test_empty_day(self, client, dentist, visit_day):
        response = client.get("/api/slots", params={"date": visit_day.isoformat(), "provider_id": dentist.id})
        assert response.status_code == 200
        data = response.json()
        assert len(data["slots"]) == 14
        assert data["provider_id"] == dentist.id

    def test_duration_from_service(self, client, visit_day):
        response = client.get("/api/slots", params={
            "date": visit_day.isoformat(),
            "category": "Filling (PASTA)",
            "option": "Permanent",
        })
        data = response.json()
        assert data["duration"] == 60
        assert "16:30 - 17:00" not in data["slots"]
        assert len(data["slots"]) == 13

    def test_category_without_option(self, client, visit_day):
        response = client.get("/api/slots", params={"date": visit_day.isoformat(), "category": "Whitening"})
        assert response.status_code == 400

    def test_booked_slots_excluded(self, client, staff_headers, dentist, visit_day):
        client.post(
            "/api/appointments/",
            json=walk_in_payload(dentist.id, visit_day, time="11:00 - 11:30"),
            headers=staff_headers,
        )
        data = client.get("/api/slots", params={
            "date": visit_day.isoformat(), "provider_id": dentist.id, "duration": 60,
        }).json()
        assert "10:30 - 11:00" not in data["slots"]
        assert "11:00 - 11:30" not in data["slots"]
        assert len(data["slots"]) == 11

    def test_unknown_dentist(self, client, visit_day):
        response = client.get("/api/slots", params={"date": visit_day.isoformat(), "provider_id": 999})
        assert response.status_code == 404

    def test_catalog(self, client):
        assert len(client.get("/api/catalog/time-slots").json()) == 14
        assert len(client.get("/api/catalog/health-questions").json()) == 10
        services = client.get("/api/catalog/services").json()
        assert services[0]["category"] == "Cleaning (LINIS)"

    def test_quote(self, client):
        response = client.get("/api/catalog/quote", params={"category": "Whitening", "option": "In-Office"})
        assert response.status_code == 200
        data = response.json()
        assert data["price"] == 6000
        assert data["down_payment"] == 2400
        assert data["due_now"] == {"reservation": 10, "downpayment": 2410, "full": 6010}
