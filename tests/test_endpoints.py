"""
Tests HTTP: headers de tenant, formato de errores y flujo completo
reserva -> check-in -> auditoría nocturna
"""

from datetime import timedelta

import pytest

from conftest import BUSINESS_DATE


@pytest.fixture
def headers(hotel):
    return {"X-Hotel-Id": str(hotel["hotel"].id), "X-User": "recepcion"}


def _reserve_and_check_in(client, headers, hotel, room):
    body = {
        "guest_id": hotel["guest"].id,
        "check_in_date": BUSINESS_DATE.isoformat(),
        "check_out_date": (BUSINESS_DATE + timedelta(days=2)).isoformat(),
        "segments": [{"room_type_id": hotel["room_type"].id, "room_id": room.id}],
    }
    response = client.post("/api/reservations", json=body, headers=headers)
    assert response.status_code == 201, response.text
    reservation_id = response.json()["id"]

    response = client.post(f"/api/reservations/{reservation_id}/check-in", json={}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


class TestTenant:

    def test_falta_header_hotel(self, client):
        response = client.get("/api/rooms")
        assert response.status_code == 400

    def test_hotel_inexistente(self, client):
        response = client.get("/api/rooms", headers={"X-Hotel-Id": "9999"})
        assert response.status_code == 404

    def test_listar_habitaciones(self, client, headers):
        response = client.get("/api/rooms", headers=headers)
        assert response.status_code == 200
        assert len(response.json()) == 10


class TestGuestsAndReservations:

    def test_alta_huesped(self, client, headers):
        response = client.post("/api/guests", json={"first_name": "Luis", "last_name": "Pérez"}, headers=headers)
        assert response.status_code == 201
        assert response.json()["first_name"] == "Luis"

    def test_check_in(self, client, headers, hotel):
        reservation = _reserve_and_check_in(client, headers, hotel, hotel["rooms"][0])
        assert reservation["status"] == "checked_in"

        response = client.get("/api/rooms", params={"status": "occupied"}, headers=headers)
        assert [r["room_number"] for r in response.json()] == ["101"]

    def test_error_de_dominio_en_json(self, client, headers, hotel):
        reservation = _reserve_and_check_in(client, headers, hotel, hotel["rooms"][0])

        response = client.post(f"/api/reservations/{reservation['id']}/check-in", json={}, headers=headers)

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "invalid_transition"
        assert body["context"]["current"] == "checked_in"
        assert "detail" in body

    def test_fechas_invertidas(self, client, headers, hotel):
        body = {
            "guest_id": hotel["guest"].id,
            "check_in_date": BUSINESS_DATE.isoformat(),
            "check_out_date": BUSINESS_DATE.isoformat(),
            "segments": [{"room_type_id": hotel["room_type"].id}],
        }
        response = client.post("/api/reservations", json=body, headers=headers)
        assert response.status_code == 422


class TestFolios:

    def test_folio_recien_abierto_no_esta_pendiente(self, client, headers, hotel):
        _reserve_and_check_in(client, headers, hotel, hotel["rooms"][0])

        outstanding = client.get("/api/folios/outstanding", headers=headers).json()
        assert outstanding["folios"] == []
        assert outstanding["total_balance"] == 0.0

        response = client.get("/api/folios/stats", headers=headers)
        assert response.status_code == 200

    def test_cargo_y_pago(self, client, headers, hotel):
        reservation = _reserve_and_check_in(client, headers, hotel, hotel["rooms"][0])
        response = client.post(
            "/api/folios", json={"reservation_id": reservation["id"]}, headers=headers
        )
        folio_id = response.json()["id"]

        response = client.post(
            f"/api/folios/{folio_id}/items",
            json={"category": "food_beverage", "unit_price": "800.00"},
            headers=headers,
        )
        assert response.status_code == 201, response.text

        response = client.post(
            f"/api/folios/{folio_id}/payments",
            json={"amount": "1000.00", "method": "cash"},
            headers=headers,
        )
        assert response.status_code == 201
        body = response.json()
        assert body["balance"] == -200.0
        assert len(body["warnings"]) == 1

        folio = client.get(f"/api/folios/{folio_id}", headers=headers).json()
        assert len(folio["line_items"]) == 1
        assert len(folio["payments"]) == 1

    def test_ajuste_division_y_pago_multiple(self, client, headers, hotel):
        reservation = _reserve_and_check_in(client, headers, hotel, hotel["rooms"][0])
        folio_id = client.post("/api/folios", json={"reservation_id": reservation["id"]}, headers=headers).json()["id"]
        items = [
            client.post(f"/api/folios/{folio_id}/items", json={"category": "other", "unit_price": price},
                        headers=headers).json()["id"]
            for price in ("700.00", "300.00")
        ]

        response = client.post(
            f"/api/folios/{folio_id}/adjustments",
            json={"amount": "100.00", "reason": "Cortesía", "is_discount": True},
            headers=headers,
        )
        assert response.status_code == 201, response.text
        assert response.json()["amount"] == -100.0

        response = client.post(f"/api/folios/{folio_id}/split", json={"item_ids": [items[1]]}, headers=headers)
        assert response.status_code == 201, response.text
        split = response.json()
        assert split["balance"] == 300.0
        assert [i["id"] for i in split["line_items"]] == [items[1]]

        response = client.post(
            "/api/folios/bulk-payments",
            json={"folio_ids": [folio_id, split["id"]], "total_amount": "750.00", "method": "cash"},
            headers=headers,
        )
        assert response.status_code == 201, response.text
        assert [p["amount"] for p in response.json()["payments"]] == [600.0, 150.0]

        assert client.get(f"/api/folios/{folio_id}", headers=headers).json()["balance"] == 0.0
        assert client.get(f"/api/folios/{split['id']}", headers=headers).json()["balance"] == 150.0

    def test_pago_multiple_sin_saldo(self, client, headers, hotel):
        reservation = _reserve_and_check_in(client, headers, hotel, hotel["rooms"][0])
        folio_id = client.post("/api/folios", json={"reservation_id": reservation["id"]}, headers=headers).json()["id"]
        response = client.post(
            "/api/folios/bulk-payments",
            json={"folio_ids": [folio_id], "total_amount": "10", "method": "cash"},
            headers=headers,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "validation_failed"

    def test_metodo_de_pago_invalido(self, client, headers, hotel):
        reservation = _reserve_and_check_in(client, headers, hotel, hotel["rooms"][0])
        folio_id = client.post("/api/folios", json={"reservation_id": reservation["id"]}, headers=headers).json()["id"]

        response = client.post(
            f"/api/folios/{folio_id}/payments", json={"amount": "10", "method": "cheque"}, headers=headers
        )
        assert response.status_code == 422
        assert response.json()["error"] == "validation_failed"


class TestNightAuditFlow:

    def test_flujo_completo(self, client, headers, hotel):
        for room in hotel["rooms"][:6]:
            _reserve_and_check_in(client, headers, hotel, room)

        current = client.get("/api/night-audit/current", headers=headers).json()
        assert current["phase"] == "idle"

        response = client.post("/api/night-audit/start", headers=headers)
        assert response.status_code == 201
        assert response.json()["phase"] == "reviewing"

        checklist = client.get("/api/night-audit/checklist", headers=headers).json()
        assert checklist["ready"] is True

        response = client.post("/api/night-audit/post-room-charges", headers=headers)
        assert response.status_code == 200
        posting = response.json()
        assert posting["posted"] == 6
        assert posting["phase"] == "settling"
        assert posting["posting_token"]

        response = client.post(
            "/api/night-audit/post-room-charges", json={"posting_token": "otra-corrida"}, headers=headers
        )
        assert response.status_code == 409
        response = client.post(
            "/api/night-audit/post-room-charges", json={"posting_token": posting["posting_token"]}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["already_posted"] == 6

        progress = client.get("/api/night-audit/progress", headers=headers).json()
        assert progress["pending"] == 0

        response = client.post("/api/night-audit/complete", json={"notes": "OK"}, headers=headers)
        assert response.status_code == 200, response.text
        audit = response.json()
        assert audit["status"] == "completed"
        assert audit["occupancy_rate"] == 60.0
        assert audit["adr"] == 5000.0
        assert audit["revpar"] == 3000.0

        business_date = client.get(f"/api/hotels/{hotel['hotel'].id}/business-date").json()
        assert business_date["current_date"] == (BUSINESS_DATE + timedelta(days=1)).isoformat()

        history = client.get("/api/night-audit/history", headers=headers).json()
        assert history[0]["business_date"] == BUSINESS_DATE.isoformat()

        trend = client.get("/api/night-audit/trend", params={"metric": "adr"}, headers=headers).json()
        assert [p["value"] for p in trend["points"]] == [5000.0]

        events = client.get("/api/events/recent", headers=headers).json()
        types = {e["event_type"] for e in events["events"]}
        assert {"BusinessDateAdvanced", "AuditPhaseChanged", "FolioUpdated"} <= types

    def test_doble_inicio(self, client, headers):
        client.post("/api/night-audit/start", headers=headers)
        response = client.post("/api/night-audit/start", headers=headers)
        assert response.status_code == 409
        assert response.json()["error"] == "audit_already_running"

    def test_completar_sin_postear(self, client, headers):
        client.post("/api/night-audit/start", headers=headers)
        response = client.post("/api/night-audit/complete", headers=headers)
        assert response.status_code == 409
