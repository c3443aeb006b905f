"""
Tenant isolation tests.

Traders only see and change their own directory, catalog and estimates.
Someone else's row is a logged 403; a row that does not exist is a 404.
"""

from estimate_desk.models import SecurityEvent


def _estimate(client, headers, catalog):
    resp = client.post(
        "/api/estimates",
        json={"customer": {"kind": "directory", "id": catalog["customer"].id}, "items": [{"item": catalog["cement"].id, "quantity": 1}]},
        headers=headers,
    )
    assert resp.status_code == 201
    return resp.get_json()


def _cross_tenant_events(db_session, user_id):
    return (
        db_session.query(SecurityEvent)
        .filter_by(user_id=user_id, event_type="CROSS_TENANT_ACCESS_DENIED")
        .count()
    )


class TestCrossTenantReads:

    def test_other_traders_estimate_is_forbidden_and_logged(
        self, client, db_session, catalog_a, catalog_b, trader_a, trader_b, auth_headers
    ):
        estimate = _estimate(client, auth_headers(trader_a), catalog_a)

        resp = client.get(f"/api/estimates/{estimate['id']}", headers=auth_headers(trader_b))
        assert resp.status_code == 403
        assert _cross_tenant_events(db_session, trader_b.id) == 1

    def test_missing_estimate_is_404(self, client, trader_b, auth_headers):
        resp = client.get("/api/estimates/424242", headers=auth_headers(trader_b))
        assert resp.status_code == 404

    def test_other_traders_item_and_customer_are_forbidden(
        self, client, catalog_a, trader_b, auth_headers
    ):
        headers = auth_headers(trader_b)
        assert client.get(f"/api/items/{catalog_a['cement'].id}", headers=headers).status_code == 403
        assert client.get(f"/api/customers/{catalog_a['customer'].id}", headers=headers).status_code == 403
        assert client.get(f"/api/brands/{catalog_a['brand'].id}", headers=headers).status_code == 403

    def test_lists_only_show_own_rows(self, client, catalog_a, catalog_b, trader_a, trader_b, auth_headers):
        _estimate(client, auth_headers(trader_a), catalog_a)
        headers = auth_headers(trader_b)

        assert client.get("/api/estimates", headers=headers).get_json()["pagination"]["total"] == 0
        items = client.get("/api/items", headers=headers).get_json()["items"]
        assert {i["trader_id"] for i in items} == {trader_b.id}
        customers = client.get("/api/customers", headers=headers).get_json()["items"]
        assert [c["id"] for c in customers] == [catalog_b["customer"].id]

    def test_phone_lookup_is_scoped(self, client, catalog_a, trader_b, auth_headers):
        phone = catalog_a["customer"].phone
        resp = client.get(f"/api/customers/search/phone/{phone}", headers=auth_headers(trader_b))
        assert resp.status_code == 404


class TestCrossTenantWrites:

    def test_cannot_update_or_delete_other_traders_rows(
        self, client, catalog_a, trader_a, trader_b, auth_headers
    ):
        estimate = _estimate(client, auth_headers(trader_a), catalog_a)
        headers = auth_headers(trader_b)

        assert client.put(f"/api/estimates/{estimate['id']}", json={"notes": "x"}, headers=headers).status_code == 403
        assert client.put(f"/api/estimates/{estimate['id']}/send", json={}, headers=headers).status_code == 403
        assert client.delete(f"/api/estimates/{estimate['id']}", headers=headers).status_code == 403
        assert client.put(
            f"/api/items/{catalog_a['cement'].id}", json={"current_rate": 1}, headers=headers
        ).status_code == 403
        assert client.delete(f"/api/customers/{catalog_a['customer'].id}", headers=headers).status_code == 403

    def test_cannot_quote_other_traders_item(self, client, catalog_a, catalog_b, trader_b, auth_headers):
        resp = client.post(
            "/api/estimates",
            json={"customer": catalog_b["customer"].id, "items": [{"item": catalog_a["cement"].id, "quantity": 1}]},
            headers=auth_headers(trader_b),
        )
        assert resp.status_code == 403

    def test_cannot_bill_other_traders_customer(self, client, catalog_a, catalog_b, trader_b, auth_headers):
        resp = client.post(
            "/api/estimates",
            json={
                "customer": {"kind": "directory", "id": catalog_a["customer"].id},
                "items": [{"item": catalog_b["cement"].id, "quantity": 1}],
            },
            headers=auth_headers(trader_b),
        )
        assert resp.status_code == 403

    def test_trader_id_in_payload_is_ignored_for_traders(self, client, trader_a, trader_b, auth_headers):
        resp = client.post(
            "/api/brands",
            json={"name": "Sneaky", "trader_id": trader_b.id},
            headers=auth_headers(trader_a),
        )
        assert resp.status_code == 201
        assert resp.get_json()["trader_id"] == trader_a.id


class TestAdminAndCustomerScope:

    def test_admin_sees_every_trader(self, client, catalog_a, catalog_b, admin, trader_a, trader_b, auth_headers):
        _estimate(client, auth_headers(trader_a), catalog_a)
        _estimate(client, auth_headers(trader_b), catalog_b)

        body = client.get("/api/estimates", headers=auth_headers(admin)).get_json()
        assert body["pagination"]["total"] == 2

    def test_customer_cannot_use_directory_or_catalog(self, client, customer_account, auth_headers):
        headers = auth_headers(customer_account)
        assert client.get("/api/customers", headers=headers).status_code == 403
        assert client.get("/api/items", headers=headers).status_code == 403
        assert client.get("/api/dashboard/stats", headers=headers).status_code == 403

    def test_customer_cannot_open_estimate_billed_to_someone_else(
        self, client, catalog_a, trader_a, customer_account, auth_headers
    ):
        estimate = _estimate(client, auth_headers(trader_a), catalog_a)
        resp = client.get(f"/api/estimates/{estimate['id']}", headers=auth_headers(customer_account))
        assert resp.status_code == 403

    def test_customer_list_is_limited_to_own_estimates(
        self, client, catalog_a, trader_a, customer_account, auth_headers
    ):
        trader_headers = auth_headers(trader_a)
        _estimate(client, trader_headers, catalog_a)
        mine = client.post(
            "/api/estimates",
            json={
                "customer": {"kind": "registered", "id": customer_account.id},
                "items": [{"item": catalog_a["cement"].id, "quantity": 1}],
            },
            headers=trader_headers,
        ).get_json()

        body = client.get("/api/estimates", headers=auth_headers(customer_account)).get_json()
        assert [e["id"] for e in body["items"]] == [mine["id"]]
