"""
Customer directory and catalog (brands, items) tests.
"""

from estimate_desk.models import Item


class TestBrands:

    def test_create_and_list(self, client, trader_a, auth_headers):
        headers = auth_headers(trader_a)
        resp = client.post("/api/brands", json={"name": "UltraTech"}, headers=headers)
        assert resp.status_code == 201

        names = [b["name"] for b in client.get("/api/brands", headers=headers).get_json()["items"]]
        assert names == ["UltraTech"]

    def test_duplicate_name_is_case_insensitive(self, client, trader_a, auth_headers):
        headers = auth_headers(trader_a)
        client.post("/api/brands", json={"name": "UltraTech"}, headers=headers)

        resp = client.post("/api/brands", json={"name": "ultratech"}, headers=headers)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "A brand with this name already exists in your account"

    def test_same_name_allowed_for_another_trader(self, client, trader_a, trader_b, auth_headers):
        assert client.post("/api/brands", json={"name": "UltraTech"}, headers=auth_headers(trader_a)).status_code == 201
        assert client.post("/api/brands", json={"name": "UltraTech"}, headers=auth_headers(trader_b)).status_code == 201

    def test_rename_to_existing_name_rejected(self, client, catalog_a, trader_a, auth_headers):
        headers = auth_headers(trader_a)
        other = client.post("/api/brands", json={"name": "ACC"}, headers=headers).get_json()

        resp = client.put(f"/api/brands/{other['id']}", json={"name": "a cement co"}, headers=headers)
        assert resp.status_code == 400

    def test_name_required(self, client, trader_a, auth_headers):
        resp = client.post("/api/brands", json={"description": "no name"}, headers=auth_headers(trader_a))
        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["param"] == "name"

    def test_delete_refused_while_items_exist(self, client, catalog_a, trader_a, auth_headers):
        resp = client.delete(f"/api/brands/{catalog_a['brand'].id}", headers=auth_headers(trader_a))
        assert resp.status_code == 400

    def test_delete_empty_brand(self, client, trader_a, auth_headers):
        headers = auth_headers(trader_a)
        brand = client.post("/api/brands", json={"name": "Empty"}, headers=headers).get_json()
        assert client.delete(f"/api/brands/{brand['id']}", headers=headers).status_code == 200
        assert client.get(f"/api/brands/{brand['id']}", headers=headers).status_code == 404


class TestItems:

    def test_create_item(self, client, catalog_a, trader_a, auth_headers):
        resp = client.post(
            "/api/items",
            json={
                "name": "PPC Cement", "category": "Cement", "brand_id": catalog_a["brand"].id,
                "uom": "bag", "current_rate": "385.50",
            },
            headers=auth_headers(trader_a),
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["current_rate"] == "385.50"
        assert body["brand"]["name"] == "A Cement Co"

    def test_brand_must_be_in_same_catalog(self, client, catalog_a, catalog_b, trader_a, auth_headers):
        resp = client.post(
            "/api/items",
            json={
                "name": "Borrowed", "category": "Cement", "brand_id": catalog_b["brand"].id,
                "uom": "bag", "current_rate": 10,
            },
            headers=auth_headers(trader_a),
        )
        assert resp.status_code == 400

    def test_negative_rate_and_unknown_uom_rejected(self, client, catalog_a, trader_a, auth_headers):
        headers = auth_headers(trader_a)
        base = {"name": "Sand", "category": "Aggregates", "brand_id": catalog_a["brand"].id}

        assert client.post("/api/items", json={**base, "uom": "cft", "current_rate": -1}, headers=headers).status_code == 400
        assert client.post("/api/items", json={**base, "uom": "bucket", "current_rate": 1}, headers=headers).status_code == 400

    def test_filter_by_category_and_brand(self, client, catalog_a, trader_a, auth_headers):
        headers = auth_headers(trader_a)
        body = client.get("/api/items?category=steel", headers=headers).get_json()
        assert [i["id"] for i in body["items"]] == [catalog_a["steel"].id]

        body = client.get(f"/api/items?brand={catalog_a['brand'].id}", headers=headers).get_json()
        assert body["pagination"]["total"] == 2

    def test_categories(self, client, catalog_a, trader_a, auth_headers):
        body = client.get("/api/items/categories", headers=auth_headers(trader_a)).get_json()
        assert body == ["Cement", "Steel"]

    def test_delete_unused_item(self, client, db_session, catalog_a, trader_a, auth_headers):
        resp = client.delete(f"/api/items/{catalog_a['steel'].id}", headers=auth_headers(trader_a))
        assert resp.status_code == 200
        assert resp.get_json()["deleted"] is True
        assert db_session.query(Item).filter_by(id=catalog_a["steel"].id).count() == 0

    def test_quoted_item_is_deactivated_not_deleted(self, client, catalog_a, trader_a, auth_headers):
        headers = auth_headers(trader_a)
        client.post(
            "/api/estimates",
            json={"customer": catalog_a["customer"].id, "items": [{"item": catalog_a["steel"].id, "quantity": 1}]},
            headers=headers,
        )

        resp = client.delete(f"/api/items/{catalog_a['steel'].id}", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["deleted"] is False

        listed = [i["id"] for i in client.get("/api/items", headers=headers).get_json()["items"]]
        assert catalog_a["steel"].id not in listed
        assert client.get(f"/api/items/{catalog_a['steel'].id}", headers=headers).get_json()["is_active"] is False


class TestCustomers:

    def test_create_normalizes_address_and_tags(self, client, trader_a, auth_headers):
        resp = client.post(
            "/api/customers",
            json={
                "name": "Ravi Constructions",
                "phone": "9876500000",
                "address": {"street": " 12 MG Road ", "city": "Nashik", "state": ""},
                "tags": ["contractor", " contractor ", ""],
                "referred_by_type": "mason",
            },
            headers=auth_headers(trader_a),
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["address"] == {"street": "12 MG Road", "city": "Nashik"}
        assert body["full_address"] == "12 MG Road, Nashik"
        assert body["tags"] == ["contractor"]

    def test_duplicate_phone_within_trader_rejected(self, client, catalog_a, trader_a, auth_headers):
        resp = client.post(
            "/api/customers",
            json={"name": "Copy", "phone": catalog_a["customer"].phone},
            headers=auth_headers(trader_a),
        )
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Customer with this phone number already exists"

    def test_same_phone_allowed_for_another_trader(self, client, catalog_a, trader_b, auth_headers):
        resp = client.post(
            "/api/customers",
            json={"name": "Shared", "phone": catalog_a["customer"].phone},
            headers=auth_headers(trader_b),
        )
        assert resp.status_code == 201

    def test_search_and_phone_lookup(self, client, catalog_a, trader_a, auth_headers):
        headers = auth_headers(trader_a)
        body = client.get("/api/customers?search=builder", headers=headers).get_json()
        assert body["pagination"]["total"] == 1

        resp = client.get(f"/api/customers/search/phone/{catalog_a['customer'].phone}", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["id"] == catalog_a["customer"].id

    def test_filter_by_tag(self, client, trader_a, auth_headers):
        headers = auth_headers(trader_a)
        client.post("/api/customers", json={"name": "One", "phone": "1", "tags": ["vip"]}, headers=headers)
        client.post("/api/customers", json={"name": "Two", "phone": "2"}, headers=headers)

        body = client.get("/api/customers?tag=vip", headers=headers).get_json()
        assert [c["name"] for c in body["items"]] == ["One"]

    def test_link_requires_customer_account(self, client, catalog_a, trader_b, trader_a, auth_headers):
        resp = client.put(
            f"/api/customers/{catalog_a['customer'].id}",
            json={"user_id": trader_b.id},
            headers=auth_headers(trader_a),
        )
        assert resp.status_code == 400

    def test_for_estimate_merges_directory_and_accounts(
        self, client, catalog_a, trader_a, customer_account, auth_headers
    ):
        body = client.get("/api/customers/for-estimate", headers=auth_headers(trader_a)).get_json()

        kinds = {(c["customer_kind"], c["id"]) for c in body["items"]}
        assert ("directory", catalog_a["customer"].id) in kinds
        assert ("registered", customer_account.id) in kinds

        registered = next(c for c in body["items"] if c["customer_kind"] == "registered")
        assert registered["display_name"].endswith("[Registered]")
        assert registered["company_name"] == "Jane Homes"
        names = [c["name"].lower() for c in body["items"]]
        assert names == sorted(names)

    def test_delete_customer_with_estimates_deactivates(self, client, catalog_a, trader_a, auth_headers):
        headers = auth_headers(trader_a)
        client.post(
            "/api/estimates",
            json={"customer": catalog_a["customer"].id, "items": [{"item": catalog_a["cement"].id, "quantity": 1}]},
            headers=headers,
        )

        resp = client.delete(f"/api/customers/{catalog_a['customer'].id}", headers=headers)
        assert resp.get_json()["deleted"] is False
        assert client.get("/api/customers", headers=headers).get_json()["pagination"]["total"] == 0
