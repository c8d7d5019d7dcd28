"""API tests for the /cases endpoints."""
import pytest


CASE_PAYLOAD = {
    "program_type": "OIC",
    "total_debt": 45000,
    "tax_years": [2021, 2022],
}


async def _create_case(http_client, headers, payload=None) -> dict:
    response = await http_client.post("/api/v1/cases", json=payload or CASE_PAYLOAD, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateAndRead:
    """POST/GET /api/v1/cases"""

    @pytest.mark.asyncio
    async def test_create_case(self, http_client, client_user, auth_headers):
        body = await _create_case(http_client, auth_headers(client_user))

        assert body["case_id"].startswith("OT")
        assert body["status"] == "INITIAL_ASSESSMENT"
        assert body["progress"] == 10
        assert body["document_progress"] == 0
        assert body["documents_complete"] is False
        assert body["user_id"] == str(client_user.id)

    @pytest.mark.asyncio
    async def test_invalid_payload_is_422(self, http_client, client_user, auth_headers):
        response = await http_client.post(
            "/api/v1/cases",
            json={"program_type": "OIC", "total_debt": -5, "tax_years": []},
            headers=auth_headers(client_user),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    @pytest.mark.parametrize("total_debt", ["inf", "-Infinity", "NaN", 1e10])
    async def test_non_finite_or_oversized_debt_is_422(self, http_client, client_user, auth_headers, total_debt):
        response = await http_client.post(
            "/api/v1/cases",
            json={**CASE_PAYLOAD, "total_debt": total_debt},
            headers=auth_headers(client_user),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unauthenticated(self, http_client):
        response = await http_client.get("/api/v1/cases")
        assert response.status_code in (401, 403)

    @pytest.mark.asyncio
    async def test_other_client_gets_403(self, http_client, client_user, other_client, auth_headers):
        case = await _create_case(http_client, auth_headers(client_user))

        response = await http_client.get(f"/api/v1/cases/{case['case_id']}", headers=auth_headers(other_client))

        assert response.status_code == 403
        assert response.json()["code"] == "CASE_ACCESS_DENIED"
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_missing_case_is_404(self, http_client, admin_user, auth_headers):
        response = await http_client.get("/api/v1/cases/OT2024039999", headers=auth_headers(admin_user))
        assert response.status_code == 404
        assert response.json()["code"] == "CASE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_pagination(self, http_client, client_user, auth_headers):
        headers = auth_headers(client_user)
        for _ in range(3):
            await _create_case(http_client, headers)

        response = await http_client.get("/api/v1/cases?limit=2&page=1", headers=headers)

        body = response.json()
        assert len(body["cases"]) == 2
        assert body["pagination"] == {
            "page": 1, "limit": 2, "total": 3, "total_pages": 2, "has_next": True, "has_prev": False,
        }

    @pytest.mark.asyncio
    async def test_list_filter_by_status(self, http_client, client_user, auth_headers):
        headers = auth_headers(client_user)
        await _create_case(http_client, headers)

        response = await http_client.get("/api/v1/cases?status=REVIEW", headers=headers)
        assert response.json()["pagination"]["total"] == 0


class TestStatusChanges:
    """PUT /api/v1/cases/{id}/status"""

    @pytest.mark.asyncio
    async def test_professional_moves_case(self, http_client, client_user, admin_user, auth_headers):
        case = await _create_case(http_client, auth_headers(client_user))

        response = await http_client.put(
            f"/api/v1/cases/{case['case_id']}/status",
            json={"status": "DOCUMENT_COLLECTION", "notes": "Need returns", "expected_version": 1},
            headers=auth_headers(admin_user),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "DOCUMENT_COLLECTION"
        assert body["progress"] == 25
        assert body["version"] == 2
        assert body["state_history"][0]["notes"] == "Need returns"

    @pytest.mark.asyncio
    async def test_client_cannot_change_status(self, http_client, client_user, auth_headers):
        case = await _create_case(http_client, auth_headers(client_user))

        response = await http_client.put(
            f"/api/v1/cases/{case['case_id']}/status",
            json={"status": "DOCUMENT_COLLECTION"},
            headers=auth_headers(client_user),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_illegal_edge_is_409(self, http_client, client_user, admin_user, auth_headers):
        case = await _create_case(http_client, auth_headers(client_user))

        response = await http_client.put(
            f"/api/v1/cases/{case['case_id']}/status",
            json={"status": "ACCEPTED"},
            headers=auth_headers(admin_user),
        )

        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    @pytest.mark.asyncio
    async def test_unknown_status_is_400(self, http_client, client_user, admin_user, auth_headers):
        case = await _create_case(http_client, auth_headers(client_user))

        response = await http_client.put(
            f"/api/v1/cases/{case['case_id']}/status",
            json={"status": "LIMBO"},
            headers=auth_headers(admin_user),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_STATUS"

    @pytest.mark.asyncio
    async def test_stale_version_is_409(self, http_client, client_user, admin_user, auth_headers):
        case = await _create_case(http_client, auth_headers(client_user))
        url = f"/api/v1/cases/{case['case_id']}/status"
        headers = auth_headers(admin_user)

        first = await http_client.put(url, json={"status": "DOCUMENT_COLLECTION", "expected_version": 1}, headers=headers)
        second = await http_client.put(url, json={"status": "ON_HOLD", "expected_version": 1}, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["code"] == "CASE_VERSION_CONFLICT"

    @pytest.mark.asyncio
    async def test_timeline_lists_status_change(self, http_client, client_user, admin_user, auth_headers):
        case = await _create_case(http_client, auth_headers(client_user))
        await http_client.put(
            f"/api/v1/cases/{case['case_id']}/status",
            json={"status": "DOCUMENT_COLLECTION"},
            headers=auth_headers(admin_user),
        )

        response = await http_client.get(
            f"/api/v1/cases/{case['case_id']}/timeline", headers=auth_headers(client_user)
        )

        entries = response.json()
        assert [e["type"] for e in entries if e["type"] == "status_change"] == ["status_change"]


class TestUpdateAndAssign:
    """PATCH /cases/{id} and POST /cases/{id}/assign"""

    @pytest.mark.asyncio
    async def test_client_updates_notes(self, http_client, client_user, auth_headers):
        case = await _create_case(http_client, auth_headers(client_user))

        response = await http_client.patch(
            f"/api/v1/cases/{case['case_id']}",
            json={"notes": "Spoke to the revenue officer"},
            headers=auth_headers(client_user),
        )

        assert response.status_code == 200
        assert response.json()["notes"] == "Spoke to the revenue officer"

    @pytest.mark.asyncio
    async def test_client_cannot_set_amounts(self, http_client, client_user, auth_headers):
        case = await _create_case(http_client, auth_headers(client_user))

        response = await http_client.patch(
            f"/api/v1/cases/{case['case_id']}",
            json={"proposed_amount": 500},
            headers=auth_headers(client_user),
        )

        assert response.status_code == 403
        assert response.json()["code"] == "FIELD_UPDATE_DENIED"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field,value", [
        ("proposed_amount", "inf"),
        ("estimated_savings", "NaN"),
        ("monthly_payment", 100_000_000),
        ("total_debt", 10_000_000_000),
    ])
    async def test_amounts_must_fit_their_columns(
        self, http_client, client_user, admin_user, auth_headers, field, value
    ):
        case = await _create_case(http_client, auth_headers(client_user))

        response = await http_client.patch(
            f"/api/v1/cases/{case['case_id']}",
            json={field: value},
            headers=auth_headers(admin_user),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_admin_assigns_professional(self, http_client, client_user, admin_user, tax_pro, auth_headers):
        case = await _create_case(http_client, auth_headers(client_user))

        response = await http_client.post(
            f"/api/v1/cases/{case['case_id']}/assign",
            json={"tax_professional_id": str(tax_pro.id)},
            headers=auth_headers(admin_user),
        )
        assert response.status_code == 200
        assert response.json()["assigned_to"] == str(tax_pro.id)

        visible = await http_client.get(f"/api/v1/cases/{case['case_id']}", headers=auth_headers(tax_pro))
        assert visible.status_code == 200

    @pytest.mark.asyncio
    async def test_requirements_endpoint(self, http_client, client_user, auth_headers):
        case = await _create_case(http_client, auth_headers(client_user))

        response = await http_client.get(
            f"/api/v1/cases/{case['case_id']}/documents/requirements",
            headers=auth_headers(client_user),
        )

        body = response.json()
        assert body["progress"] == 0
        assert body["missing"][0] == "TAX_RETURN"
        assert len(body["required"]) == 6
