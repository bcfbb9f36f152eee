"""
API Integration Tests
End-to-end testing of API endpoints with real HTTP requests
"""

from typing import Dict, List

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from pipeyard.models.auth import Company, User
from pipeyard.models.storage_request import StorageRequest
from pipeyard.models.trucking import TruckingLoad
from pipeyard.models.yard import Rack

API = "/api/v1"


class TestSystemAPI:

    def test_health_check(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] in ["healthy", "degraded"]
        assert "version" in data

    def test_system_info(self, client: TestClient):
        response = client.get("/info")

        assert response.status_code == 200
        data = response.json()
        assert "application" in data
        assert "Allocation Guard" in data["features"]


class TestAuthenticationAPI:

    def test_login_success(self, client: TestClient, customer_user: User):
        response = client.post(f"{API}/auth/login", data={
            "username": customer_user.username,
            "password": "customerpassword123",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["user"]["company_id"] == customer_user.company_id

    def test_login_invalid_credentials(self, client: TestClient, customer_user: User):
        response = client.post(f"{API}/auth/login", data={
            "username": customer_user.username,
            "password": "wrongpassword",
        })

        assert response.status_code == 401

    def test_locked_account(self, client: TestClient, customer_user: User):
        for _ in range(5):
            client.post(f"{API}/auth/login", data={"username": customer_user.username, "password": "nope"})

        response = client.post(f"{API}/auth/login", data={
            "username": customer_user.username,
            "password": "customerpassword123",
        })

        assert response.status_code == 423

    def test_current_user(self, client: TestClient, customer_auth_headers: Dict[str, str]):
        response = client.get(f"{API}/auth/me", headers=customer_auth_headers)

        assert response.status_code == 200
        assert response.json()["username"] == "customer"

    def test_unauthenticated_request(self, client: TestClient):
        assert client.get(f"{API}/requests").status_code == 401


class TestRequestAPI:

    def test_customer_submits_request(self, client: TestClient, customer_auth_headers: Dict[str, str],
                                      company: Company, dispatched: List[bool]):
        response = client.post(f"{API}/requests", headers=customer_auth_headers, json={
            "item_type": "Casing",
            "grade": "P110",
            "total_joints": 120,
            "storage_start_date": "2026-04-01",
        })

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["company_id"] == company.id
        assert data["reference_id"].startswith("PY-")
        assert dispatched == [True]

    def test_admin_cannot_submit_request(self, client: TestClient, admin_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/requests", headers=admin_auth_headers, json={"total_joints": 10})

        assert response.status_code == 403
        assert response.json()["error"] == "insufficient_permissions"

    def test_invalid_date_range(self, client: TestClient, customer_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/requests", headers=customer_auth_headers, json={
            "total_joints": 10,
            "storage_start_date": "2026-04-01",
            "storage_end_date": "2026-03-01",
        })

        assert response.status_code == 422

    def test_customer_cannot_approve(self, client: TestClient, customer_auth_headers: Dict[str, str],
                                     rack: Rack):
        created = client.post(f"{API}/requests", headers=customer_auth_headers, json={"total_joints": 10})

        response = client.post(f"{API}/requests/{created.json()['id']}/approve",
                               headers=customer_auth_headers, json={"rack_ids": [rack.id]})

        assert response.status_code == 403

    def test_admin_approves_request(self, client: TestClient, customer_auth_headers: Dict[str, str],
                                    admin_auth_headers: Dict[str, str], rack: Rack):
        created = client.post(f"{API}/requests", headers=customer_auth_headers, json={"total_joints": 10})

        response = client.post(f"{API}/requests/{created.json()['id']}/approve",
                               headers=admin_auth_headers, json={"rack_ids": [rack.id]})

        assert response.status_code == 200
        assert response.json()["status"] == "APPROVED"
        assert response.json()["assigned_rack_ids"] == ["B-N-1"]

    def test_approval_without_capacity(self, client: TestClient, customer_auth_headers: Dict[str, str],
                                       admin_auth_headers: Dict[str, str], rack_factory):
        rack_factory("B-N-1", capacity=200, occupied=195, occupied_length="2300")
        created = client.post(f"{API}/requests", headers=customer_auth_headers, json={"total_joints": 10})

        response = client.post(f"{API}/requests/{created.json()['id']}/approve",
                               headers=admin_auth_headers, json={"rack_ids": ["B-N-1"]})

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "capacity_exceeded"
        assert body["details"]["requested"] == 10
        assert body["details"]["available"] == 5

    def test_other_company_cannot_read_request(self, client: TestClient, approved_request: StorageRequest,
                                               other_customer_auth_headers: Dict[str, str]):
        response = client.get(f"{API}/requests/{approved_request.id}", headers=other_customer_auth_headers)

        assert response.status_code == 403
        assert response.json()["error"] == "cross_tenant_violation"

    def test_list_is_scoped(self, client: TestClient, approved_request: StorageRequest,
                            customer_auth_headers: Dict[str, str],
                            other_customer_auth_headers: Dict[str, str],
                            admin_auth_headers: Dict[str, str]):
        assert len(client.get(f"{API}/requests", headers=customer_auth_headers).json()) == 1
        assert client.get(f"{API}/requests", headers=other_customer_auth_headers).json() == []
        assert len(client.get(f"{API}/requests", headers=admin_auth_headers).json()) == 1

    def test_workflow_state(self, client: TestClient, approved_request: StorageRequest,
                            customer_auth_headers: Dict[str, str]):
        response = client.get(f"{API}/requests/{approved_request.id}/workflow-state",
                              headers=customer_auth_headers)

        assert response.status_code == 200
        assert response.json()["label"] == "Waiting on Load #1"

    def test_archive(self, client: TestClient, approved_request: StorageRequest,
                     customer_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/requests/{approved_request.id}/archive", headers=customer_auth_headers)

        assert response.status_code == 200
        assert response.json()["archived_at"] is not None
        assert client.get(f"{API}/requests", headers=customer_auth_headers).json() == []


class TestLoadAPI:

    def test_customer_books_and_lists_loads(self, client: TestClient, approved_request: StorageRequest,
                                            customer_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/requests/{approved_request.id}/loads", headers=customer_auth_headers,
                               json={
                                   "direction": "INBOUND",
                                   "scheduled_slot_start": "2026-05-02T08:00:00Z",
                                   "scheduled_slot_end": "2026-05-02T10:00:00Z",
                                   "trucking_company": "Lone Star Haulage",
                               })

        assert response.status_code == 201
        assert response.json()["sequence_number"] == 1
        assert response.json()["status"] == "NEW"

        loads = client.get(f"{API}/requests/{approved_request.id}/loads", headers=customer_auth_headers)
        assert [load["id"] for load in loads.json()] == [response.json()["id"]]

    def test_complete_inbound_load(self, client: TestClient, company: Company,
                                   approved_request: StorageRequest, inbound_load: TruckingLoad,
                                   admin_auth_headers: Dict[str, str], dispatched: List[bool]):
        payload = {
            "company_id": company.id,
            "request_id": approved_request.id,
            "rack_id": "B-N-1",
            "actual_units_received": 60,
        }

        response = client.post(f"{API}/loads/{inbound_load.id}/complete-inbound",
                               headers=admin_auth_headers, json=payload)

        assert response.status_code == 200
        data = response.json()
        assert data["inventory_items_created"] == 2
        assert data["rack_new_occupancy"] == 60
        assert dispatched == [True]

        repeat = client.post(f"{API}/loads/{inbound_load.id}/complete-inbound",
                             headers=admin_auth_headers, json=payload)
        assert repeat.status_code == 409
        assert repeat.json()["error"] == "already_completed"

        rack = client.get(f"{API}/racks/B-N-1", headers=admin_auth_headers).json()
        assert rack["occupied"] == 60
        assert rack["available"] == 140

    def test_inbound_mismatch_reports_numbers(self, client: TestClient, company: Company,
                                              approved_request: StorageRequest, inbound_load: TruckingLoad,
                                              admin_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/loads/{inbound_load.id}/complete-inbound", headers=admin_auth_headers,
                               json={
                                   "company_id": company.id,
                                   "request_id": approved_request.id,
                                   "rack_id": "B-N-1",
                                   "actual_units_received": 55,
                               })

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "manifest_mismatch"
        assert body["details"] == {"declared": 60, "actual": 55}

    def test_inbound_for_wrong_company(self, client: TestClient, other_company: Company,
                                       approved_request: StorageRequest, inbound_load: TruckingLoad,
                                       admin_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/loads/{inbound_load.id}/complete-inbound", headers=admin_auth_headers,
                               json={
                                   "company_id": other_company.id,
                                   "request_id": approved_request.id,
                                   "rack_id": "B-N-1",
                                   "actual_units_received": 60,
                               })

        assert response.status_code == 403
        assert response.json()["error"] == "cross_tenant_violation"

    def test_customer_cannot_complete_loads(self, client: TestClient, company: Company,
                                            approved_request: StorageRequest, inbound_load: TruckingLoad,
                                            customer_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/loads/{inbound_load.id}/complete-inbound", headers=customer_auth_headers,
                               json={
                                   "company_id": company.id,
                                   "request_id": approved_request.id,
                                   "rack_id": "B-N-1",
                                   "actual_units_received": 60,
                               })

        assert response.status_code == 403

    def test_attach_manifest(self, client: TestClient, inbound_load: TruckingLoad,
                             customer_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/loads/{inbound_load.id}/manifest", headers=customer_auth_headers, json={
            "document_type": "TALLY_SHEET",
            "lines": [{"quantity": 30, "tally_length_ft": "31.0"}, {"quantity": 30}],
        })

        assert response.status_code == 201
        data = response.json()
        assert data["declared_total_joints"] == 60
        assert [line["line_number"] for line in data["lines"]] == [1, 2]

    def test_manifest_rejects_unknown_fields(self, client: TestClient, inbound_load: TruckingLoad,
                                             admin_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/loads/{inbound_load.id}/manifest", headers=admin_auth_headers, json={
            "lines": [{"quantity": 30, "length": "31.0"}],
        })

        assert response.status_code == 422

    def test_full_outbound_cycle(self, client: TestClient, company: Company,
                                 approved_request: StorageRequest, inbound_load: TruckingLoad,
                                 customer_auth_headers: Dict[str, str], admin_auth_headers: Dict[str, str],
                                 db_session: Session):
        client.post(f"{API}/loads/{inbound_load.id}/complete-inbound", headers=admin_auth_headers, json={
            "company_id": company.id,
            "request_id": approved_request.id,
            "rack_id": "B-N-1",
            "actual_units_received": 60,
        })
        booked = client.post(f"{API}/requests/{approved_request.id}/loads", headers=customer_auth_headers,
                             json={"direction": "OUTBOUND"}).json()
        client.post(f"{API}/loads/{booked['id']}/approve", headers=admin_auth_headers)
        item_ids = [item.id for item in approved_request.inventory_items]

        response = client.post(f"{API}/loads/{booked['id']}/complete-outbound", headers=admin_auth_headers,
                               json={
                                   "company_id": company.id,
                                   "request_id": approved_request.id,
                                   "inventory_item_ids": item_ids,
                                   "actual_units_loaded": 60,
                               })

        assert response.status_code == 200
        assert response.json()["load_status"] == "IN_TRANSIT"
        assert response.json()["racks_updated"] == ["B-N-1"]

        delivered = client.post(f"{API}/loads/{booked['id']}/delivered", headers=admin_auth_headers)
        assert delivered.json()["status"] == "COMPLETED"

        state = client.get(f"{API}/requests/{approved_request.id}/workflow-state",
                           headers=customer_auth_headers).json()
        assert state["label"] == "All Pipe Returned"

    def test_customer_cancels_own_load(self, client: TestClient, inbound_load: TruckingLoad,
                                       customer_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/loads/{inbound_load.id}/cancel", headers=customer_auth_headers,
                               json={"reason": "Rig move delayed"})

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

    def test_admin_requests_manifest_correction(self, client: TestClient, inbound_load: TruckingLoad,
                                                admin_auth_headers: Dict[str, str], dispatched: List[bool]):
        response = client.post(f"{API}/loads/{inbound_load.id}/request-correction",
                               headers=admin_auth_headers,
                               json={"issues": ["Missing heat numbers on line 2"]})

        assert response.status_code == 200
        assert response.json()["status"] == "APPROVED"
        assert dispatched == [True]

    def test_manifest_correction_needs_issues(self, client: TestClient, inbound_load: TruckingLoad,
                                              admin_auth_headers: Dict[str, str],
                                              customer_auth_headers: Dict[str, str]):
        empty = client.post(f"{API}/loads/{inbound_load.id}/request-correction",
                            headers=admin_auth_headers, json={"issues": []})
        customer = client.post(f"{API}/loads/{inbound_load.id}/request-correction",
                               headers=customer_auth_headers, json={"issues": ["Wrong grade"]})

        assert empty.status_code == 422
        assert customer.status_code == 403

    def test_other_customer_cannot_see_load(self, client: TestClient, inbound_load: TruckingLoad,
                                            other_customer_auth_headers: Dict[str, str]):
        response = client.get(f"{API}/loads/{inbound_load.id}", headers=other_customer_auth_headers)

        assert response.status_code == 403


class TestRackAPI:

    def test_areas_and_utilisation(self, client: TestClient, rack: Rack, customer_auth_headers: Dict[str, str]):
        areas = client.get(f"{API}/racks/areas", headers=customer_auth_headers)
        assert [area["id"] for area in areas.json()] == ["B-N"]

        area = client.get(f"{API}/racks/areas/B-N", headers=customer_auth_headers)
        assert area.status_code == 200
        assert area.json()["rack_count"] == 1

    def test_unknown_rack(self, client: TestClient, customer_auth_headers: Dict[str, str]):
        response = client.get(f"{API}/racks/Z-Z-9", headers=customer_auth_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_manual_adjustment(self, client: TestClient, rack: Rack, admin_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/racks/B-N-1/adjust", headers=admin_auth_headers, json={
            "new_occupied_units": 12,
            "new_occupied_length": "110.50",
            "justification": "Physical recount after storm damage",
        })

        assert response.status_code == 200
        assert response.json()["old_occupied"] == 0
        assert response.json()["new_occupied"] == 12

        history = client.get(f"{API}/racks/B-N-1/adjustments", headers=admin_auth_headers).json()
        assert len(history) == 1
        assert history[0]["reason"] == "Physical recount after storm damage"

    def test_adjustment_needs_justification(self, client: TestClient, rack: Rack,
                                            admin_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/racks/B-N-1/adjust", headers=admin_auth_headers, json={
            "new_occupied_units": 12,
            "new_occupied_length": "110.50",
            "justification": "oops",
        })

        assert response.status_code == 422
        assert response.json()["error"] == "invalid_adjustment"

    def test_customer_cannot_adjust(self, client: TestClient, rack: Rack,
                                    customer_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/racks/B-N-1/adjust", headers=customer_auth_headers, json={
            "new_occupied_units": 12,
            "new_occupied_length": "110.50",
            "justification": "Physical recount after storm damage",
        })

        assert response.status_code == 403


class TestNotificationAPI:

    def test_admin_processes_queue(self, client: TestClient, approved_request: StorageRequest,
                                   admin_auth_headers: Dict[str, str]):
        response = client.post(f"{API}/notifications/process", headers=admin_auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["processed"] >= 2
