import json

import pytest


async def _file_dispute(client, headers, transaction_id="TXN-1"):
    response = await client.post(
        "/api/v1/disputes",
        headers=headers,
        json={
            "transaction_id": transaction_id,
            "reason": "duplicate_charge",
            "priority": "high",
            "description": "Charged twice",
            "requested_amount": 120,
        },
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["service"] == "disputedesk"
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_request_id_echoed_or_generated(client):
    echoed = await client.get("/health", headers={"X-Request-Id": "req-42"})
    generated = await client.get("/health")

    assert echoed.headers["x-request-id"] == "req-42"
    assert len(generated.headers["x-request-id"]) == 12
    assert "x-request-duration-ms" in generated.headers


@pytest.mark.asyncio
async def test_missing_actor_headers(client):
    response = await client.get("/api/v1/disputes")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_role_forbidden(client):
    response = await client.get(
        "/api/v1/disputes",
        headers={"X-Actor-Id": "u1", "X-Actor-Role": "intern"},
    )
    assert response.status_code == 403


# ---------- Disputes ----------


@pytest.mark.asyncio
async def test_file_dispute(client, agent_headers):
    data = await _file_dispute(client, agent_headers)

    assert data["status"] == "created"
    assert data["version"] == 1
    assert data["transaction"]["status"] == "disputed"


@pytest.mark.asyncio
async def test_file_dispute_unknown_transaction(client, agent_headers):
    response = await client.post(
        "/api/v1/disputes",
        headers=agent_headers,
        json={"transaction_id": "TXN-404"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_and_count_disputes(client, agent_headers):
    await _file_dispute(client, agent_headers)
    await _file_dispute(client, agent_headers, "TXN-2")

    response = await client.get("/api/v1/disputes", headers=agent_headers, params={"page_size": 1})
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert body["total_pages"] == 2
    assert body["items"][0]["transaction_id"] == "TXN-2"

    counts = await client.get("/api/v1/disputes/counts", headers=agent_headers)
    assert counts.json()["created"] == 2


@pytest.mark.asyncio
async def test_get_missing_dispute(client, agent_headers):
    response = await client.get("/api/v1/disputes/DSP-000404", headers=agent_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_stale_update_returns_409_with_server_copy(client, agent_headers, analyst_headers):
    dispute = await _file_dispute(client, agent_headers)

    ok = await client.patch(
        f"/api/v1/disputes/{dispute['id']}",
        headers=analyst_headers,
        json={"expected_version": 1, "changes": {"description": "analyst notes"}},
    )
    assert ok.status_code == 200
    assert ok.json()["version"] == 2

    stale = await client.patch(
        f"/api/v1/disputes/{dispute['id']}",
        headers=agent_headers,
        json={"expected_version": 1, "changes": {"description": "agent notes"}},
    )
    assert stale.status_code == 409
    detail = stale.json()["detail"]
    assert detail["server_version"] == 2
    assert detail["server_data"]["description"] == "analyst notes"


@pytest.mark.asyncio
async def test_status_workflow(client, agent_headers, analyst_headers, finance_headers):
    dispute = await _file_dispute(client, agent_headers)
    url = f"/api/v1/disputes/{dispute['id']}/status"

    denied = await client.post(url, headers=agent_headers, json={"status": "under_review"})
    assert denied.status_code == 403

    review = await client.post(url, headers=analyst_headers, json={"status": "under_review", "expected_version": 1})
    assert review.status_code == 200
    assert review.json()["to_status"] == "under_review"

    missing_notes = await client.post(url, headers=analyst_headers, json={"status": "rejected"})
    assert missing_notes.status_code == 400

    approve = await client.post(
        url, headers=finance_headers, json={"status": "approved", "approved_amount": 100}
    )
    assert approve.json()["dispute"]["approved_amount"] == 100

    settle = await client.post(url, headers=finance_headers, json={"status": "settled"})
    assert settle.json()["dispute"]["status"] == "settled"

    txn = await client.get(f"/api/v1/transactions/{dispute['transaction_id']}", headers=finance_headers)
    assert txn.json()["status"] == "refunded"


@pytest.mark.asyncio
async def test_status_change_with_stale_version(client, agent_headers, analyst_headers):
    dispute = await _file_dispute(client, agent_headers)
    await client.patch(
        f"/api/v1/disputes/{dispute['id']}",
        headers=agent_headers,
        json={"expected_version": 1, "changes": {"description": "edited"}},
    )

    response = await client.post(
        f"/api/v1/disputes/{dispute['id']}/status",
        headers=analyst_headers,
        json={"status": "under_review", "expected_version": 1},
    )
    assert response.status_code == 409
    assert response.json()["detail"]["local_version"] == 1


@pytest.mark.asyncio
async def test_available_transitions(client, agent_headers, analyst_headers):
    dispute = await _file_dispute(client, agent_headers)
    url = f"/api/v1/disputes/{dispute['id']}/transitions"

    as_agent = await client.get(url, headers=agent_headers)
    as_analyst = await client.get(url, headers=analyst_headers)

    assert as_agent.json()["available"] == []
    assert as_analyst.json()["available"] == ["under_review"]


@pytest.mark.asyncio
async def test_assign(client, agent_headers, admin_headers, analyst):
    dispute = await _file_dispute(client, agent_headers)

    response = await client.post(
        f"/api/v1/disputes/{dispute['id']}/assign",
        headers=admin_headers,
        json={"assignee_id": analyst.id, "assignee_name": analyst.name, "assignee_role": "risk_analyst"},
    )
    assert response.status_code == 200

    mine = await client.get("/api/v1/disputes", headers=agent_headers, params={"assigned_to": analyst.id})
    assert mine.json()["total"] == 1


@pytest.mark.asyncio
async def test_resolve_conflict_use_server(client, agent_headers, analyst_headers):
    dispute = await _file_dispute(client, agent_headers)
    await client.patch(
        f"/api/v1/disputes/{dispute['id']}",
        headers=analyst_headers,
        json={"expected_version": 1, "changes": {"description": "analyst notes"}},
    )

    response = await client.post(
        f"/api/v1/disputes/{dispute['id']}/resolve-conflict",
        headers=agent_headers,
        json={"strategy": "use_server"},
    )
    assert response.status_code == 200
    assert response.json()["description"] == "analyst notes"


@pytest.mark.asyncio
async def test_delete_dispute(client, agent_headers, admin_headers):
    dispute = await _file_dispute(client, agent_headers)

    forbidden = await client.delete(f"/api/v1/disputes/{dispute['id']}", headers=agent_headers)
    assert forbidden.status_code == 403

    response = await client.delete(f"/api/v1/disputes/{dispute['id']}", headers=admin_headers)
    assert response.status_code == 204


# ---------- Drafts ----------


@pytest.mark.asyncio
async def test_draft_lifecycle(client, agent_headers):
    created = await client.post(
        "/api/v1/drafts",
        headers=agent_headers,
        json={"data": {"transaction_id": "TXN-2"}, "step": 0},
    )
    assert created.status_code == 201
    draft_id = created.json()["id"]

    updated = await client.post(
        "/api/v1/drafts",
        headers=agent_headers,
        json={"data": {"description": "Wrong amount", "reason": "incorrect_amount"}, "step": 2, "draft_id": draft_id},
    )
    assert updated.json()["data"]["transaction_id"] == "TXN-2"

    listing = await client.get("/api/v1/drafts", headers=agent_headers)
    assert [d["id"] for d in listing.json()] == [draft_id]

    submitted = await client.post(f"/api/v1/drafts/{draft_id}/submit", headers=agent_headers)
    assert submitted.status_code == 201
    assert submitted.json()["reason"] == "incorrect_amount"

    gone = await client.get(f"/api/v1/drafts/{draft_id}", headers=agent_headers)
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_delete_missing_draft(client, agent_headers):
    response = await client.delete("/api/v1/drafts/DRAFT-9999", headers=agent_headers)
    assert response.status_code == 404


# ---------- Audit ----------


@pytest.mark.asyncio
async def test_audit_listing_and_filters(client, agent_headers, agent):
    dispute = await _file_dispute(client, agent_headers)

    per_dispute = await client.get(f"/api/v1/disputes/{dispute['id']}/audit", headers=agent_headers)
    assert [e["action"] for e in per_dispute.json()] == ["dispute_created"]

    listing = await client.get("/api/v1/audit", headers=agent_headers, params={"actor_id": agent.id})
    assert listing.json()["total"] == 1

    stats = await client.get("/api/v1/audit/stats", headers=agent_headers)
    assert stats.json()["entries_by_action"] == {"dispute_created": 1}


@pytest.mark.asyncio
async def test_audit_time_range_accepts_naive_bounds(client, agent_headers):
    await _file_dispute(client, agent_headers)

    response = await client.get(
        "/api/v1/audit",
        headers=agent_headers,
        params={"start": "2000-01-01T00:00:00", "end": "2100-01-01T00:00:00"},
    )
    assert response.status_code == 200
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_audit_export_requires_capability(client, agent_headers, finance_headers):
    dispute = await _file_dispute(client, agent_headers)

    forbidden = await client.get("/api/v1/audit/export", headers=agent_headers)
    assert forbidden.status_code == 403

    response = await client.get(
        "/api/v1/audit/export", headers=finance_headers, params={"dispute_id": dispute["id"]}
    )
    assert response.status_code == 200
    assert "attachment" in response.headers["content-disposition"]
    entries = json.loads(response.text)
    assert entries[0]["dispute_id"] == dispute["id"]


# ---------- Transactions ----------


@pytest.mark.asyncio
async def test_transactions_masked_for_support(client, agent_headers, analyst_headers):
    masked = await client.get("/api/v1/transactions/TXN-1", headers=agent_headers)
    full = await client.get("/api/v1/transactions/TXN-1", headers=analyst_headers)

    assert masked.json()["account_number"] == "****5678"
    assert masked.json()["user_name"] == "J*** S****"
    assert full.json()["account_number"] == "ACC-12345678"


@pytest.mark.asyncio
async def test_search_transactions(client, analyst_headers):
    response = await client.get(
        "/api/v1/transactions",
        headers=analyst_headers,
        params={"transaction_id": "TXN-2", "page_size": 5},
    )
    assert response.status_code == 200
    assert [t["id"] for t in response.json()["items"]] == ["TXN-2"]


@pytest.mark.asyncio
async def test_missing_transaction(client, analyst_headers):
    response = await client.get("/api/v1/transactions/TXN-404", headers=analyst_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_search_transactions_with_naive_dates(client, analyst_headers):
    same_day = await client.get(
        "/api/v1/transactions",
        headers=analyst_headers,
        params={"user_id": "USR-9001", "date_from": "2026-09-01T00:00:00", "date_to": "2026-09-01T00:00:00"},
    )
    day_before = await client.get(
        "/api/v1/transactions",
        headers=analyst_headers,
        params={"user_id": "USR-9001", "date_to": "2026-08-31T00:00:00"},
    )

    assert same_day.status_code == 200
    assert sorted(t["id"] for t in same_day.json()["items"]) == ["TXN-1", "TXN-2"]
    assert day_before.json()["items"] == []
