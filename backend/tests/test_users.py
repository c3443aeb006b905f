"""
User management tests (admin edits, self-service edits, deletion).
"""

from conftest import make_user
from estimate_desk.models import SecurityEvent, SessionToken, User


class TestListUsers:

    def test_admin_lists_and_filters(self, client, admin, trader_a, trader_b, customer_account, auth_headers):
        headers = auth_headers(admin)
        body = client.get("/api/users?role=trader", headers=headers).get_json()
        assert {u["id"] for u in body["items"]} == {trader_a.id, trader_b.id}

        body = client.get("/api/users?search=jane", headers=headers).get_json()
        assert [u["id"] for u in body["items"]] == [customer_account.id]

    def test_unknown_role_filter_rejected(self, client, admin, auth_headers):
        assert client.get("/api/users?role=wizard", headers=auth_headers(admin)).status_code == 400

    def test_trader_cannot_list_users(self, client, trader_a, auth_headers):
        resp = client.get("/api/users", headers=auth_headers(trader_a))
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Access denied. Admin only."

    def test_traders_picker_excludes_pending(self, client, db_session, admin, trader_a, customer_account, auth_headers):
        make_user("trader", "Pending Trader", "pending@example.com", "9000000009")

        body = client.get("/api/users/traders", headers=auth_headers(customer_account)).get_json()
        assert [t["id"] for t in body] == [trader_a.id]
        assert body[0]["business_name"] == "A Building Supplies"


class TestUpdateUser:

    def test_user_edits_own_details(self, client, trader_a, auth_headers):
        resp = client.put(
            f"/api/users/{trader_a.id}",
            json={"name": "Trader Alpha", "tags": ["cement", "cement", "steel"]},
            headers=auth_headers(trader_a),
        )
        assert resp.status_code == 200
        user = resp.get_json()["user"]
        assert user["name"] == "Trader Alpha"
        assert user["tags"] == ["cement", "steel"]

    def test_user_cannot_edit_someone_else(self, client, db_session, trader_a, trader_b, auth_headers):
        resp = client.put(f"/api/users/{trader_b.id}", json={"name": "Hacked"}, headers=auth_headers(trader_a))
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Not authorized to update this user"
        assert db_session.query(SecurityEvent).filter_by(event_type="USER_UPDATE_DENIED").count() == 1

    def test_only_admin_changes_role(self, client, trader_a, auth_headers):
        resp = client.put(f"/api/users/{trader_a.id}", json={"role": "admin"}, headers=auth_headers(trader_a))
        assert resp.status_code == 403

    def test_role_change_revokes_sessions(self, client, db_session, admin, customer_account, auth_headers):
        old_headers = auth_headers(customer_account)

        resp = client.put(
            f"/api/users/{customer_account.id}", json={"role": "trader"}, headers=auth_headers(admin)
        )
        assert resp.status_code == 200
        user = resp.get_json()["user"]
        assert user["role"] == "trader"
        assert user["approval_status"] == "approved"

        assert client.get("/api/auth/me", headers=old_headers).status_code == 401
        live = db_session.query(SessionToken).filter_by(user_id=customer_account.id, is_revoked=False).count()
        assert live == 0

    def test_deactivation_revokes_sessions(self, client, admin, trader_a, auth_headers):
        trader_headers = auth_headers(trader_a)

        resp = client.put(f"/api/users/{trader_a.id}", json={"is_active": False}, headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.get_json()["user"]["is_active"] is False
        assert client.get("/api/auth/me", headers=trader_headers).status_code == 401

    def test_admin_cannot_demote_or_deactivate_self(self, client, admin, auth_headers):
        headers = auth_headers(admin)
        assert client.put(f"/api/users/{admin.id}", json={"role": "trader"}, headers=headers).status_code == 400
        assert client.put(f"/api/users/{admin.id}", json={"is_active": False}, headers=headers).status_code == 400

    def test_duplicate_email_rejected(self, client, trader_a, trader_b, auth_headers):
        resp = client.put(
            f"/api/users/{trader_a.id}", json={"email": "TRADER_B@example.com"}, headers=auth_headers(trader_a)
        )
        assert resp.status_code == 400


class TestDeleteUser:

    def test_delete_unused_account(self, client, db_session, admin, customer_account, auth_headers):
        user_id = customer_account.id
        auth_headers(customer_account)

        resp = client.delete(f"/api/users/{user_id}", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert db_session.get(User, user_id) is None
        assert db_session.query(SessionToken).filter_by(user_id=user_id).count() == 0
        assert db_session.query(SecurityEvent).filter_by(event_type="USER_DELETED").count() == 1

    def test_cannot_delete_self(self, client, admin, auth_headers):
        assert client.delete(f"/api/users/{admin.id}", headers=auth_headers(admin)).status_code == 400

    def test_account_with_records_is_refused(self, client, admin, catalog_a, trader_a, auth_headers):
        resp = client.delete(f"/api/users/{trader_a.id}", headers=auth_headers(admin))
        assert resp.status_code == 400

    def test_unknown_user_is_404(self, client, admin, auth_headers):
        assert client.delete("/api/users/99999", headers=auth_headers(admin)).status_code == 404

    def test_trader_cannot_delete(self, client, trader_a, customer_account, auth_headers):
        assert client.delete(f"/api/users/{customer_account.id}", headers=auth_headers(trader_a)).status_code == 403
