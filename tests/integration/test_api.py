"""
Integration tests de la API HTTP.

Verifica los routers contra el contenedor in-memory:
- /health y /health/ready
- Ciclo de vida de reservaciones (crear, pagar, check-in, check-out)
- Traducción de errores de dominio a 404/409/422
- Enmiendas de OTA y su resolución
- Allotments, reglas de asignación y días de inventario
- Operación manual del workflow y del worker de sincronización
"""

import pytest
from fastapi.testclient import TestClient

from pms.domain.entities.intents import RefundRequest
from pms.main import create_app
from tests.helpers import utc

API = "/api/v1"
CHECK_IN = "2025-01-10T14:00:00Z"
CHECK_OUT = "2025-01-12T11:00:00Z"


@pytest.fixture
def reservation_payload() -> dict:
    return {
        "hotel_id": "H1",
        "guest_id": "G1",
        "check_in": CHECK_IN,
        "check_out": CHECK_OUT,
        "rooms": [{"room_type": "STD", "rate": "5000", "room_id": "101"}],
        "total_amount": "10000",
        "guest_info": {"name": "Ana López", "email": "ana.lopez@hotelmail.com"},
    }


def create_allotment(client: TestClient, allocations: dict[str, int], days: list[str]) -> None:
    response = client.post(f"{API}/allotments", json={"hotel_id": "H1", "room_type_id": "STD", "total_inventory": 10})
    assert response.status_code == 201, f"Creación de allotment falló: {response.json()}"
    for day in days:
        for channel, quantity in allocations.items():
            response = client.post(
                f"{API}/inventory/H1/STD/{day}/allocate", json={"channel": channel, "quantity": quantity}
            )
            assert response.status_code == 200, f"Asignación falló: {response.json()}"


class TestHealth:
    """Endpoints de monitoreo"""

    def test_liveness(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "hotel-pms-core"}

    def test_readiness_without_workers(self, client: TestClient):
        """
        Sin lifespan los workers no corren, pero la persistencia responde.
        """
        response = client.get("/health/ready")
        assert response.status_code == 200, f"Readiness falló: {response.json()}"

        checks = response.json()["checks"]
        assert checks["persistence"] == "healthy"
        assert checks["workflow_engine"] == "stopped"
        assert checks["sync_worker"] == "stopped"
        assert checks["channel_breakers"] == {}

    def test_readiness_with_unavailable_persistence(self, client: TestClient, container):
        container.reservation_repo.available = False

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_lifespan_starts_and_stops_workers(self, settings, container):
        """
        El lifespan arranca el workflow y el worker, y los detiene al salir.
        """
        with TestClient(create_app(settings, container)) as client:
            checks = client.get("/health/ready").json()["checks"]
            assert checks["workflow_engine"] == "running"
            assert checks["sync_worker"] == "running"

            response = client.post(f"{API}/workers/sync/process")
            assert response.status_code == 409

        assert container.workflow.is_running is False
        assert container.sync_worker.is_running is False


class TestReservations:
    """Ciclo de vida de una reservación directa por HTTP"""

    def test_create_reservation(self, client: TestClient, reservation_payload: dict):
        response = client.post(f"{API}/reservations", json=reservation_payload)
        assert response.status_code == 201, f"Creación falló: {response.json()}"

        data = response.json()
        assert data["status"] == "pending"
        assert data["payment_status"] == "pending"
        assert data["booking_number"].startswith("BK20250101")
        assert data["nights"] == 2
        assert data["channel"] == "direct"
        assert data["reserved_until"] == "2025-01-01T10:15:00Z"

        by_number = client.get(f"{API}/reservations/by-booking-number/{data['booking_number']}")
        assert by_number.status_code == 200
        assert by_number.json()["id"] == data["id"]

    def test_full_stay_lifecycle(self, client: TestClient, reservation_payload: dict, clock):
        """
        Pago -> confirmada por el workflow -> check-in -> check-out.
        """
        create_allotment(client, {"direct": 2}, ["2025-01-10", "2025-01-11"])
        reservation_id = client.post(f"{API}/reservations", json=reservation_payload).json()["id"]

        paid = client.post(f"{API}/reservations/{reservation_id}/payments", json={"amount": "10000"})
        assert paid.status_code == 200, f"Pago falló: {paid.json()}"
        assert paid.json()["status"] == "confirmed"
        assert paid.json()["payment_status"] == "paid"

        clock.set_time(utc(2025, 1, 10, 14))
        checked_in = client.post(f"{API}/reservations/{reservation_id}/status", json={"status": "checked_in"})
        assert checked_in.status_code == 200, f"Check-in falló: {checked_in.json()}"
        assert checked_in.json()["actual_check_in"] == "2025-01-10T14:00:00Z"

        clock.set_time(utc(2025, 1, 12, 11))
        checked_out = client.post(f"{API}/reservations/{reservation_id}/status", json={"status": "checked_out"})
        assert checked_out.status_code == 200
        assert [entry["status"] for entry in checked_out.json()["status_history"]] == [
            "pending",
            "confirmed",
            "checked_in",
            "checked_out",
        ]

        days = client.get(f"{API}/inventory/H1/STD", params={"start_date": "2025-01-10", "end_date": "2025-01-11"})
        assert [day["channels"]["direct"]["sold"] for day in days.json()] == [1, 1]

    def test_invalid_dates(self, client: TestClient, reservation_payload: dict):
        reservation_payload["check_out"] = CHECK_IN

        response = client.post(f"{API}/reservations", json=reservation_payload)

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_RESERVATION_DATA"

    def test_unknown_fields_are_rejected(self, client: TestClient, reservation_payload: dict):
        reservation_payload["discount_code"] = "PROMO"
        assert client.post(f"{API}/reservations", json=reservation_payload).status_code == 422

    def test_duplicate_channel_reference(self, client: TestClient, reservation_payload: dict):
        reservation_payload.update(source="ota-booking", channel_booking_id="BDC-1")
        assert client.post(f"{API}/reservations", json=reservation_payload).status_code == 201

        response = client.post(f"{API}/reservations", json=reservation_payload)

        assert response.status_code == 409
        assert response.json()["code"] == "RESERVATION_ALREADY_EXISTS"

    def test_unknown_reservation(self, client: TestClient):
        response = client.get(f"{API}/reservations/missing")
        assert response.status_code == 404
        assert response.json()["code"] == "RESERVATION_NOT_FOUND"

    def test_invalid_transition(self, client: TestClient, reservation_payload: dict):
        reservation_id = client.post(f"{API}/reservations", json=reservation_payload).json()["id"]

        response = client.post(f"{API}/reservations/{reservation_id}/status", json={"status": "checked_out"})

        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    def test_unknown_context_flag_is_rejected(self, client: TestClient, reservation_payload: dict):
        reservation_id = client.post(f"{API}/reservations", json=reservation_payload).json()["id"]

        response = client.post(
            f"{API}/reservations/{reservation_id}/status", json={"status": "cancelled", "skip_everything": True}
        )

        assert response.status_code == 422

    def test_guest_cancellation_inside_window_is_audited(self, client: TestClient, reservation_payload: dict):
        """
        La ventana de cancelación aplica al huésped; el rechazo queda en la auditoría.
        """
        reservation_payload.update(check_in="2025-01-01T22:00:00Z", check_out="2025-01-03T11:00:00Z")
        reservation_id = client.post(f"{API}/reservations", json=reservation_payload).json()["id"]

        response = client.post(f"{API}/reservations/{reservation_id}/cancel", json={"source": "guest"})
        assert response.status_code == 422
        assert response.json()["code"] == "POLICY_VIOLATION"

        audit = client.get(f"{API}/reservations/{reservation_id}/audit").json()
        assert [entry["kind"] for entry in audit] == ["transition_rejected"]
        assert audit[0]["details"]["to_status"] == "cancelled"

        staff = client.post(f"{API}/reservations/{reservation_id}/cancel", json={"reason": "Solicitud en recepción"})
        assert staff.status_code == 200
        assert staff.json()["status"] == "cancelled"

    def test_cancellation_of_paid_booking_requests_refund(
        self, client: TestClient, reservation_payload: dict, notifications
    ):
        create_allotment(client, {"direct": 2}, ["2025-01-10", "2025-01-11"])
        reservation_id = client.post(f"{API}/reservations", json=reservation_payload).json()["id"]
        client.post(f"{API}/reservations/{reservation_id}/payments", json={"amount": "10000"})

        response = client.post(f"{API}/reservations/{reservation_id}/cancel", json={"reason": "Cambio de planes"})

        assert response.status_code == 200
        [refund] = notifications.of_type(RefundRequest)
        assert str(refund.amount) == "10000"

    def test_overpayment_is_rejected(self, client: TestClient, reservation_payload: dict):
        reservation_id = client.post(f"{API}/reservations", json=reservation_payload).json()["id"]

        response = client.post(f"{API}/reservations/{reservation_id}/payments", json={"amount": "20000"})

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_RESERVATION_DATA"

    def test_update_details(self, client: TestClient, reservation_payload: dict):
        reservation_id = client.post(f"{API}/reservations", json=reservation_payload).json()["id"]

        response = client.patch(
            f"{API}/reservations/{reservation_id}/details",
            json={"guest_info": {"phone": "+52 55 1234 5678"}, "special_requests": "Llegada tarde"},
        )

        assert response.status_code == 200, f"Actualización falló: {response.json()}"
        data = response.json()
        assert data["guest_info"]["phone"] == "+52 55 1234 5678"
        assert data["guest_info"]["name"] == "Ana López"
        assert data["special_requests"] == "Llegada tarde"


class TestAmendments:
    """Enmiendas de Booking.com por HTTP"""

    @pytest.fixture
    def ota_reservation_id(self, client: TestClient, reservation_payload: dict) -> str:
        create_allotment(client, {"booking_com": 2}, ["2025-05-01", "2025-05-02", "2025-05-03"])
        reservation_payload.update(
            check_in="2025-05-01T15:00:00Z",
            check_out="2025-05-03T11:00:00Z",
            total_amount="400",
            source="ota-booking",
            channel_booking_id="BDC-778899",
        )
        reservation_id = client.post(f"{API}/reservations", json=reservation_payload).json()["id"]
        response = client.post(
            f"{API}/reservations/{reservation_id}/status",
            json={"status": "confirmed", "source": "ota", "channel": "booking_com", "reason": "Confirmed by channel"},
        )
        assert response.status_code == 200, f"Confirmación falló: {response.json()}"
        return reservation_id

    def test_receive_and_approve(self, client: TestClient, ota_reservation_id: str):
        payload = {
            "externalAmendmentId": "AMD-1",
            "type": "dates_change",
            "requestedChanges": {"checkOut": "2025-05-04T11:00:00Z"},
        }

        received = client.post(f"{API}/reservations/{ota_reservation_id}/amendments", json=payload)
        assert received.status_code == 202, f"Recepción falló: {received.json()}"
        receipt = received.json()
        assert receipt["status"] == "pending"
        assert receipt["duplicate"] is False

        replay = client.post(f"{API}/reservations/{ota_reservation_id}/amendments", json=payload)
        assert replay.json()["duplicate"] is True

        resolution = client.post(
            f"{API}/reservations/{ota_reservation_id}/amendments/{receipt['amendment_id']}/resolution",
            json={"decision": "approved", "approver": {"userId": "u-1", "userName": "Recepción"}},
        )
        assert resolution.status_code == 200, f"Resolución falló: {resolution.json()}"
        assert resolution.json()["status"] == "approved"

        reservation = client.get(f"{API}/reservations/{ota_reservation_id}").json()
        assert reservation["nights"] == 3
        assert reservation["status"] == "confirmed"

        again = client.post(
            f"{API}/reservations/{ota_reservation_id}/amendments/{receipt['amendment_id']}/resolution",
            json={"decision": "rejected"},
        )
        assert again.status_code == 409
        assert again.json()["code"] == "AMENDMENT_ALREADY_RESOLVED"

    def test_list_amendments(self, client: TestClient, ota_reservation_id: str):
        client.post(
            f"{API}/reservations/{ota_reservation_id}/amendments",
            json={"type": "special_request_change", "requestedChanges": {"specialRequests": "Piso alto"}},
        )

        amendments = client.get(f"{API}/reservations/{ota_reservation_id}/amendments").json()

        assert [a["amendment_type"] for a in amendments] == ["special_request_change"]
        assert amendments[0]["status"] == "approved"

    def test_unknown_amendment(self, client: TestClient, ota_reservation_id: str):
        response = client.post(
            f"{API}/reservations/{ota_reservation_id}/amendments/AM0000/resolution", json={"decision": "approved"}
        )
        assert response.status_code == 404
        assert response.json()["code"] == "AMENDMENT_NOT_FOUND"

    def test_confirmation_is_queued_for_the_channel(self, client: TestClient, ota_reservation_id: str, clock):
        items = client.get(f"{API}/reservations/{ota_reservation_id}/sync-items").json()
        assert [(i["channel"], i["target_status"], i["status"]) for i in items] == [
            ("booking_com", "confirmed", "NEW")
        ]

        clock.advance(seconds=1)
        assert client.post(f"{API}/workers/sync/process").json() == {"processed": 1}

        reservation = client.get(f"{API}/reservations/{ota_reservation_id}").json()
        assert reservation["sync_status"]["needs_sync"] is False


class TestInventory:
    """Allotments, reglas e inventario diario"""

    def test_duplicate_allotment(self, client: TestClient):
        create_allotment(client, {}, [])
        response = client.post(f"{API}/allotments", json={"hotel_id": "H1", "room_type_id": "STD", "total_inventory": 5})
        assert response.status_code == 409
        assert response.json()["code"] == "ALLOTMENT_ALREADY_EXISTS"

    def test_unknown_allotment(self, client: TestClient):
        response = client.get(f"{API}/allotments/H1/STD")
        assert response.status_code == 404
        assert response.json()["code"] == "ALLOTMENT_NOT_FOUND"

    def test_initialize_days(self, client: TestClient):
        create_allotment(client, {}, [])

        response = client.post(f"{API}/allotments/H1/STD/days", json={"start_date": "2025-01-10", "days": 3})

        assert response.status_code == 201
        days = response.json()
        assert [day["day"] for day in days] == ["2025-01-10", "2025-01-11", "2025-01-12"]
        assert days[0]["free_stock"] == 10
        assert days[0]["occupancy_rate"] == 0

    def test_fixed_rule_application(self, client: TestClient):
        create_allotment(client, {}, [])
        rule = client.post(
            f"{API}/allotments/H1/STD/rules",
            json={"name": "Base", "rule_type": "fixed", "fixed": {"direct": 4, "booking_com": 3}},
        )
        assert rule.status_code == 201, f"Regla falló: {rule.json()}"
        rule_id = rule.json()["rule_id"]

        applied = client.post(
            f"{API}/allotments/H1/STD/rules/{rule_id}/apply",
            json={"start_date": "2025-01-10", "end_date": "2025-01-11"},
        )
        assert applied.json() == {"days_processed": 2, "errors": []}

        [day] = client.get(
            f"{API}/inventory/H1/STD", params={"start_date": "2025-01-10", "end_date": "2025-01-10"}
        ).json()
        assert day["channels"]["direct"]["allocated"] == 4
        assert day["channels"]["booking_com"]["available"] == 3
        assert day["free_stock"] == 3

        deactivated = client.post(f"{API}/allotments/H1/STD/rules/{rule_id}/deactivate")
        assert deactivated.json()["is_active"] is False

    def test_over_allocation_is_rejected(self, client: TestClient):
        create_allotment(client, {}, [])

        response = client.post(
            f"{API}/inventory/H1/STD/2025-01-10/allocate", json={"channel": "direct", "quantity": 11}
        )

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_ALLOCATION"

    def test_block_and_rate(self, client: TestClient):
        create_allotment(client, {"direct": 4}, ["2025-01-10"])

        blocked = client.post(f"{API}/inventory/H1/STD/2025-01-10/block", json={"channel": "direct", "quantity": 1})
        assert blocked.json()["channels"]["direct"]["available"] == 3

        unblocked = client.post(
            f"{API}/inventory/H1/STD/2025-01-10/unblock", json={"channel": "direct", "quantity": 1}
        )
        assert unblocked.json()["channels"]["direct"]["available"] == 4

        priced = client.post(f"{API}/inventory/H1/STD/2025-01-10/rate", json={"channel": "direct", "rate": "129.90"})
        assert priced.json()["channels"]["direct"]["rate"] == "129.90"

    def test_inverted_date_range(self, client: TestClient):
        create_allotment(client, {}, [])
        response = client.post(
            f"{API}/allotments/H1/STD/apply", json={"start_date": "2025-01-11", "end_date": "2025-01-10"}
        )
        assert response.status_code == 422

    def test_recommendations_and_optimized_rule(self, client: TestClient):
        create_allotment(client, {}, [])
        client.post(
            f"{API}/allotments/H1/STD/performance",
            json={
                "period_start": "2024-12-01",
                "period_end": "2024-12-31",
                "channels": [
                    {"channel_id": "booking_com", "utilization_rate": 95, "revenue": 12000, "conversion_rate": 35},
                    {"channel_id": "expedia", "utilization_rate": 40, "revenue": 3000, "conversion_rate": 10},
                ],
            },
        )

        recommendations = client.get(f"{API}/allotments/H1/STD/recommendations").json()
        actions = {(r["channel_id"], r["action"]) for r in recommendations}
        assert ("booking_com", "increase_allocation") in actions
        assert ("expedia", "decrease_allocation") in actions

        optimized = client.post(f"{API}/allotments/H1/STD/optimize")
        assert optimized.status_code == 201
        assert optimized.json()["rule_type"] == "percentage"
        assert optimized.json()["is_active"] is False


class TestWorkflowOperations:
    """Revisiones manuales y administración de reglas"""

    def test_stats(self, client: TestClient):
        stats = client.get(f"{API}/workflow/stats").json()
        assert stats["running"] is False
        assert "auto_confirm_on_payment" in stats["rules"]

    def test_disable_and_enable_rule(self, client: TestClient, container):
        assert client.post(f"{API}/workflow/rules/send_notifications/disable").json() == {
            "rule_id": "send_notifications",
            "enabled": False,
        }
        assert container.workflow.stats()["rules"]["send_notifications"]["enabled"] is False
        assert client.post(f"{API}/workflow/rules/send_notifications/enable").status_code == 200

    def test_unknown_rule(self, client: TestClient):
        assert client.post(f"{API}/workflow/rules/missing/disable").status_code == 404

    def test_manual_expired_hold_check(self, client: TestClient, reservation_payload: dict, clock):
        reservation_id = client.post(f"{API}/reservations", json=reservation_payload).json()["id"]
        clock.advance(minutes=16)

        response = client.post(f"{API}/workflow/checks/expired_holds")

        assert response.json() == {"check": "expired_holds", "handled": 1}
        assert client.get(f"{API}/reservations/{reservation_id}").json()["status"] == "cancelled"

    def test_unknown_check(self, client: TestClient):
        assert client.post(f"{API}/workflow/checks/everything").status_code == 422

    def test_manual_sync_batch_with_empty_queue(self, client: TestClient):
        assert client.post(f"{API}/workers/sync/process").json() == {"processed": 0}
