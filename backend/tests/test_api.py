"""End-to-end tests through the HTTP API."""
from vetmed.models.audit import AuditLog


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_requires_token(client, household):
    resp = client.get("/api/v1/regimens", params={"household_id": household.household.id})
    assert resp.status_code == 401


def test_invalid_token_rejected(client, household):
    resp = client.get(
        "/api/v1/regimens",
        params={"household_id": household.household.id},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert resp.status_code == 401


def dose_body(h, **overrides):
    body = {
        "household_id": h.household.id,
        "animal_id": h.animal.id,
        "regimen_id": h.fixed.id,
        "administered_at": "2026-06-15T12:05:00Z",
        "idempotency_key": "api-key-1",
    }
    body.update(overrides)
    return body


class TestAdministrations:
    def test_record_and_replay(self, client, household, headers_for):
        headers = headers_for(household.caregiver)
        first = client.post("/api/v1/administrations", json=dose_body(household), headers=headers)
        assert first.status_code == 201
        assert first.json()["status"] == "ON_TIME"

        replay = client.post("/api/v1/administrations", json=dose_body(household), headers=headers)
        assert replay.status_code == 201
        assert replay.json()["id"] == first.json()["id"]

        listed = client.get(
            "/api/v1/administrations",
            params={"household_id": household.household.id},
            headers=headers_for(household.vet),
        )
        assert [a["id"] for a in listed.json()] == [first.json()["id"]]

    def test_vet_cannot_record(self, client, household, headers_for):
        resp = client.post("/api/v1/administrations", json=dose_body(household), headers=headers_for(household.vet))
        assert resp.status_code == 403

    def test_unknown_regimen_is_404(self, client, household, headers_for):
        resp = client.post(
            "/api/v1/administrations",
            json=dose_body(household, regimen_id="missing"),
            headers=headers_for(household.caregiver),
        )
        assert resp.status_code == 404
        assert "detail" in resp.json()

    def test_blank_idempotency_key_is_422(self, client, household, headers_for):
        resp = client.post(
            "/api/v1/administrations",
            json=dose_body(household, idempotency_key=""),
            headers=headers_for(household.caregiver),
        )
        assert resp.status_code == 422

    def test_write_is_audited_by_middleware(self, client, household, headers_for, session_factory):
        client.post("/api/v1/administrations", json=dose_body(household), headers=headers_for(household.caregiver))
        db = session_factory()
        try:
            logs = db.query(AuditLog).filter(AuditLog.request_path == "/api/v1/administrations").all()
        finally:
            db.close()
        assert len(logs) == 1
        assert logs[0].user_id == household.caregiver.auth_subject
        assert logs[0].details == {"status_code": 201}


def test_due_list(client, household, headers_for):
    # 08:30 in New York
    params = {"household_id": household.household.id, "at": "2026-06-15T12:30:00Z"}
    resp = client.get("/api/v1/regimens/due", params=params, headers=headers_for(household.owner))
    assert resp.status_code == 200
    rows = resp.json()
    assert [(r["regimen"]["id"], r["section"]) for r in rows] == [
        (household.fixed.id, "due"),
        (household.high_risk.id, "due"),
        (household.prn.id, "prn"),
    ]
    assert rows[0]["minutes_until_due"] == -30
    assert rows[0]["is_overdue"] is True
    assert rows[0]["animal_name"] == "Rex"

    client.post("/api/v1/administrations", json=dose_body(household), headers=headers_for(household.caregiver))
    rows = client.get("/api/v1/regimens/due", params=params, headers=headers_for(household.owner)).json()
    fixed = next(r for r in rows if r["regimen"]["id"] == household.fixed.id)
    assert fixed["section"] == "later"
    assert fixed["minutes_until_due"] == 690


def test_outsider_cannot_view_household(client, household, headers_for):
    resp = client.get(
        "/api/v1/regimens/due",
        params={"household_id": household.household.id},
        headers=headers_for(household.outsider),
    )
    assert resp.status_code == 403


class TestInventory:
    def test_negative_result_is_400(self, client, household, headers_for):
        resp = client.patch(
            f"/api/v1/inventory/{household.item.id}/quantity",
            json={"household_id": household.household.id, "quantity_change": -50},
            headers=headers_for(household.caregiver),
        )
        assert resp.status_code == 400

    def test_update_and_list(self, client, household, headers_for):
        resp = client.patch(
            f"/api/v1/inventory/{household.item.id}/quantity",
            json={"household_id": household.household.id, "quantity_change": -2, "reason": "dropped"},
            headers=headers_for(household.caregiver),
        )
        assert resp.status_code == 200
        assert resp.json()["units_remaining"] == 8

        items = client.get(
            "/api/v1/inventory",
            params={"household_id": household.household.id},
            headers=headers_for(household.vet),
        ).json()
        by_id = {i["id"]: i for i in items}
        assert by_id[household.item.id]["generic_name"] == "Carprofen"
        assert by_id[household.expired_item.id]["is_expired"] is True

    def test_mark_in_use(self, client, household, headers_for):
        resp = client.post(
            f"/api/v1/inventory/{household.item.id}/in-use",
            json={"household_id": household.household.id, "animal_id": household.animal.id},
            headers=headers_for(household.owner),
        )
        assert resp.status_code == 200
        assert resp.json()["in_use"] is True


def test_audit_logs_are_owner_only(client, household, headers_for):
    params = {"household_id": household.household.id}
    client.patch(
        f"/api/v1/inventory/{household.item.id}/quantity",
        json={"household_id": household.household.id, "quantity_change": -1},
        headers=headers_for(household.caregiver),
    )

    assert client.get("/api/v1/admin/audit-logs", params=params, headers=headers_for(household.caregiver)).status_code == 403
    resp = client.get(
        "/api/v1/admin/audit-logs",
        params={**params, "action": "UPDATE_INVENTORY_QUANTITY"},
        headers=headers_for(household.owner),
    )
    assert resp.status_code == 200
    assert [log["resource_id"] for log in resp.json()] == [household.item.id]


def test_cosign_flow(client, household, headers_for):
    admin = client.post(
        "/api/v1/administrations",
        json=dose_body(
            household,
            animal_id=household.other_animal.id,
            regimen_id=household.high_risk.id,
            idempotency_key="hr-api",
        ),
        headers=headers_for(household.caregiver),
    ).json()

    created = client.post(
        "/api/v1/cosign/requests",
        json={"administration_id": admin["id"], "cosigner_id": household.owner.id},
        headers=headers_for(household.caregiver),
    )
    assert created.status_code == 201

    pending = client.get("/api/v1/cosign/requests/pending", headers=headers_for(household.owner)).json()
    assert [p["id"] for p in pending] == [created.json()["id"]]

    approved = client.post(
        f"/api/v1/cosign/requests/{created.json()['id']}/approve",
        json={"signature": "data:image/png;base64,AAA"},
        headers=headers_for(household.owner),
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"


def test_heatmap(client, household, headers_for):
    for key, at in (("h1", "2026-06-15T12:05:00Z"), ("h2", "2026-06-15T14:30:00Z")):
        client.post(
            "/api/v1/administrations",
            json=dose_body(household, idempotency_key=key, administered_at=at),
            headers=headers_for(household.caregiver),
        )

    resp = client.get(
        "/api/v1/insights/heatmap",
        params={"household_id": household.household.id},
        headers=headers_for(household.vet),
    )
    assert resp.status_code == 200
    buckets = {(b["dow"], b["hour"]): b for b in resp.json()}
    # Both land on the Monday 08:00 slot: one on time, one late
    assert buckets[(1, 8)]["count"] == 2
    assert buckets[(1, 8)]["late_pct"] == 50

    summary = client.get(
        "/api/v1/insights/compliance",
        params={"household_id": household.household.id},
        headers=headers_for(household.vet),
    ).json()
    assert summary["total"] == 2
