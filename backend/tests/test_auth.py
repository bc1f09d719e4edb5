"""
Authentication tests.

Verifies:
- Registration provisions an organization with the new user as owner
- Login failures are indistinguishable (unknown login, wrong password, no active org)
- Session tokens are signed, expire, and carry no tenant or role
- Member administration (create, list, update, reset password)
"""

from datetime import timedelta

import jwt
import pytest

from app.extensions import db
from app.models import Membership, Organization, SecurityEvent, User
from app.roles import Role
from app.services import auth_service, session_service
from app.services.auth_service import (
    DuplicateLoginError,
    InvalidCredentialsError,
    PasswordValidationError,
)
from app.services.permission_service import PermissionDeniedError
from app.services.tenant_service import resolve_membership
from app.validation import NotFoundError, ValidationError

from conftest import PASSWORD, auth_headers, get_auth_token, make_member


class TestRegistration:
    def test_register_creates_owner_membership(self, client, db_session):
        resp = client.post("/api/v1/auth/register", json={
            "name": "Alice",
            "username": "alice",
            "password": PASSWORD,
        })
        assert resp.status_code == 201
        user_id = resp.json["id"]

        user = db.session.get(User, user_id)
        assert user.password_hash != PASSWORD
        assert user.password_hash.startswith("$2")

        memberships = db_session.query(Membership).filter_by(user_id=user_id).all()
        assert len(memberships) == 1
        assert memberships[0].role == "owner"
        assert memberships[0].is_active is True

        org = db.session.get(Organization, memberships[0].org_id)
        assert org.name == "Alice's Store"
        assert user.current_org_id == org.id

    def test_duplicate_login_conflicts(self, client, db_session):
        payload = {"name": "Bob", "username": "bob", "password": PASSWORD}
        assert client.post("/api/v1/auth/register", json=payload).status_code == 201

        resp = client.post("/api/v1/auth/register", json=payload)
        assert resp.status_code == 409
        assert db_session.query(User).filter_by(username="bob").count() == 1
        # No orphan organization from the failed attempt
        assert db_session.query(Organization).count() == 1

    def test_duplicate_login_service(self, db_session):
        auth_service.register("Carol", "carol", PASSWORD)
        with pytest.raises(DuplicateLoginError):
            auth_service.register("Carol Two", "carol", PASSWORD)

    @pytest.mark.parametrize("password", ["short1!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigits!!", "NoSpecial123"])
    def test_weak_passwords_rejected(self, client, db_session, password):
        resp = client.post("/api/v1/auth/register", json={
            "name": "Weak",
            "username": "weak",
            "password": password,
        })
        assert resp.status_code == 400
        assert db_session.query(User).count() == 0

    def test_missing_name_rejected(self, db_session):
        with pytest.raises(ValidationError):
            auth_service.register("", "nobody", PASSWORD)


class TestLogin:
    def test_login_returns_token_and_context(self, client, owner_a, org_a):
        resp = client.post("/api/v1/auth/login", json={"username": "owner_a", "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.json
        assert body["token"]
        assert body["user_id"] == owner_a.id
        assert body["org_id"] == org_a.id
        assert body["role"] == "owner"
        assert "password_hash" not in body["user"]

    def test_failures_are_indistinguishable(self, client, db_session, org_a):
        make_member(db_session, org_a, "inactive", Role.CASHIER, is_active=False)
        make_member(db_session, org_a, "active", Role.CASHIER)

        wrong_password = client.post("/api/v1/auth/login", json={"username": "active", "password": "Wrong123!"})
        unknown_login = client.post("/api/v1/auth/login", json={"username": "ghost", "password": PASSWORD})
        no_active_org = client.post("/api/v1/auth/login", json={"username": "inactive", "password": PASSWORD})

        for resp in (wrong_password, unknown_login, no_active_org):
            assert resp.status_code == 401
            assert resp.json == {"error": "Invalid credentials"}

    def test_failed_logins_are_audited(self, client, owner_a):
        client.post("/api/v1/auth/login", json={"username": "owner_a", "password": "Wrong123!"})
        event = db.session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").one()
        assert event.user_id == owner_a.id
        assert event.reason == "Password mismatch"

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/v1/auth/login", json={"username": "x"})
        assert resp.status_code == 400

    def test_service_raises_invalid_credentials(self, owner_a):
        with pytest.raises(InvalidCredentialsError):
            auth_service.login("owner_a", "Wrong123!")


class TestSessionToken:
    def test_token_carries_identity_only(self, app, owner_a):
        issued = session_service.issue_token(owner_a.id)
        claims = jwt.decode(issued.token, app.config["JWT_SECRET"], algorithms=["HS256"])
        assert claims["sub"] == str(owner_a.id)
        assert set(claims) == {"sub", "iat", "exp"}

    def test_default_ttl_is_72_hours(self, app, owner_a):
        issued = session_service.issue_token(owner_a.id)
        claims = jwt.decode(issued.token, app.config["JWT_SECRET"], algorithms=["HS256"])
        assert claims["exp"] - claims["iat"] == 72 * 3600

    def test_expired_token_rejected(self, client, owner_a):
        issued = session_service.issue_token(owner_a.id, ttl=timedelta(seconds=-5))
        resp = client.get("/api/v1/products", headers=auth_headers(issued.token))
        assert resp.status_code == 401

    def test_tampered_token_rejected(self, client, owner_a):
        forged = jwt.encode({"sub": str(owner_a.id), "iat": 0, "exp": 4102444800}, "not-our-secret", algorithm="HS256")
        resp = client.get("/api/v1/products", headers=auth_headers(forged))
        assert resp.status_code == 401

    def test_missing_token(self, client, db_session):
        assert client.get("/api/v1/products").status_code == 401
        assert client.get("/api/v1/products", headers={"Authorization": "Token abc"}).status_code == 401

    def test_role_change_applies_without_relogin(self, client, owner_a, cashier_a, org_a):
        token = get_auth_token(client, "cashier_a")
        assert client.get("/api/v1/users", headers=auth_headers(token)).status_code == 403

        membership = db_session_membership(org_a.id, cashier_a.id)
        membership.role = Role.MANAGER.value
        db.session.commit()

        assert client.get("/api/v1/users", headers=auth_headers(token)).status_code == 200

    def test_deactivation_applies_without_relogin(self, client, cashier_a, org_a):
        token = get_auth_token(client, "cashier_a")
        assert client.get("/api/v1/products", headers=auth_headers(token)).status_code == 200

        membership = db_session_membership(org_a.id, cashier_a.id)
        membership.is_active = False
        db.session.commit()

        assert client.get("/api/v1/products", headers=auth_headers(token)).status_code == 403


def db_session_membership(org_id, user_id):
    return db.session.query(Membership).filter_by(org_id=org_id, user_id=user_id).one()


class TestMe:
    def test_me(self, client, owner_headers, org_a):
        resp = client.get("/api/v1/auth/me", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["username"] == "owner_a"
        assert resp.json["org_id"] == org_a.id
        assert resp.json["role"] == "owner"


class TestMemberAdministration:
    def test_owner_creates_cashier(self, client, owner_headers, org_a):
        resp = client.post("/api/v1/users", headers=owner_headers, json={
            "name": "New Cashier",
            "username": "newcashier",
            "password": PASSWORD,
            "role": "cashier",
        })
        assert resp.status_code == 201

        new_id = resp.json["id"]
        membership = db_session_membership(org_a.id, new_id)
        assert membership.role == "cashier"
        assert membership.is_active is True

        assert get_auth_token(client, "newcashier") is not None

    def test_unknown_role_rejected(self, client, owner_headers):
        resp = client.post("/api/v1/users", headers=owner_headers, json={
            "name": "Typo",
            "username": "typo",
            "password": PASSWORD,
            "role": "admin",
        })
        assert resp.status_code == 400
        assert db.session.query(User).filter_by(username="typo").count() == 0

    def test_duplicate_username_rejected(self, client, owner_headers, cashier_a):
        resp = client.post("/api/v1/users", headers=owner_headers, json={
            "name": "Dup",
            "username": "cashier_a",
            "password": PASSWORD,
            "role": "cashier",
        })
        assert resp.status_code == 409

    def test_list_members_sorted_by_name(self, client, owner_headers, manager_a, cashier_a, owner_b):
        resp = client.get("/api/v1/users", headers=owner_headers)
        assert resp.status_code == 200
        names = [u["name"] for u in resp.json["users"]]
        assert names == sorted(names)
        usernames = {u["username"] for u in resp.json["users"]}
        assert usernames == {"owner_a", "manager_a", "cashier_a"}

    def test_update_member_role_and_active(self, client, manager_headers, cashier_a, org_a):
        resp = client.put(f"/api/v1/users/{cashier_a.id}", headers=manager_headers, json={"role": "manager"})
        assert resp.status_code == 200
        assert db_session_membership(org_a.id, cashier_a.id).role == "manager"

        resp = client.put(f"/api/v1/users/{cashier_a.id}", headers=manager_headers, json={"is_active": False})
        assert resp.status_code == 200
        assert db_session_membership(org_a.id, cashier_a.id).is_active is False

    def test_update_member_bad_role(self, client, owner_headers, cashier_a):
        resp = client.put(f"/api/v1/users/{cashier_a.id}", headers=owner_headers, json={"role": "Owner "})
        # Role parsing is case/whitespace tolerant but closed
        assert resp.status_code == 200
        resp = client.put(f"/api/v1/users/{cashier_a.id}", headers=owner_headers, json={"role": "superuser"})
        assert resp.status_code == 400

    def test_update_member_in_other_org_is_not_found(self, client, owner_headers, owner_b):
        resp = client.put(f"/api/v1/users/{owner_b.id}", headers=owner_headers, json={"is_active": False})
        assert resp.status_code == 404

    def test_update_out_of_range_id_is_not_found(self, client, owner_headers):
        resp = client.put(f"/api/v1/users/{10 ** 20}", headers=owner_headers, json={"is_active": False})
        assert resp.status_code == 404


class TestResetPassword:
    def test_out_of_range_id_is_not_found(self, client, owner_headers):
        resp = client.post(
            f"/api/v1/users/{10 ** 20}/reset-password",
            headers=owner_headers,
            json={"password": "BrandNew456$"},
        )
        assert resp.status_code == 404

    def test_owner_resets_member_password(self, client, owner_headers, cashier_a):
        resp = client.post(
            f"/api/v1/users/{cashier_a.id}/reset-password",
            headers=owner_headers,
            json={"password": "BrandNew456$"},
        )
        assert resp.status_code == 200
        assert get_auth_token(client, "cashier_a") is None
        assert get_auth_token(client, "cashier_a", "BrandNew456$") is not None

    def test_cashier_cannot_reset(self, client, cashier_headers, manager_a):
        resp = client.post(
            f"/api/v1/users/{manager_a.id}/reset-password",
            headers=cashier_headers,
            json={"password": "BrandNew456$"},
        )
        assert resp.status_code == 403

    def test_target_outside_org_is_not_found(self, client, owner_headers, owner_b):
        resp = client.post(
            f"/api/v1/users/{owner_b.id}/reset-password",
            headers=owner_headers,
            json={"password": "BrandNew456$"},
        )
        assert resp.status_code == 404
        assert get_auth_token(client, "owner_b") is not None

    def test_weak_new_password(self, client, owner_headers, cashier_a):
        resp = client.post(
            f"/api/v1/users/{cashier_a.id}/reset-password",
            headers=owner_headers,
            json={"password": "weak"},
        )
        assert resp.status_code == 400

    def test_service_level_checks(self, owner_a, cashier_a, owner_b):
        cashier_ctx = resolve_membership(cashier_a.id)
        owner_ctx = resolve_membership(owner_a.id)

        with pytest.raises(PermissionDeniedError):
            auth_service.reset_password(cashier_ctx, owner_a.id, "BrandNew456$")
        with pytest.raises(NotFoundError):
            auth_service.reset_password(owner_ctx, owner_b.id, "BrandNew456$")
        with pytest.raises(PasswordValidationError):
            auth_service.reset_password(owner_ctx, cashier_a.id, "weak")
