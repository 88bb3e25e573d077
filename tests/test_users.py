"""Tests for users, membership and admin statistics."""

import pytest

from errors import BadRequestError, NotFoundError


class TestEnsureUser:
    """Tests for ensure_user."""

    def test_inserts_with_default_role(self, service, db) -> None:
        result = service.ensure_user("new@example.com", {"displayName": "New", "photoURL": "http://img"})

        stored = db.users.find_one({"email": "new@example.com"})
        assert result["insertedId"] == str(stored["_id"])
        assert stored["role"] == "user"
        assert stored["displayName"] == "New"

    def test_is_idempotent(self, service, db) -> None:
        db.users.insert_one({"email": "old@example.com", "role": "member", "displayName": "Old"})

        result = service.ensure_user("old@example.com", {"displayName": "Changed"})

        assert result == {"message": "User already exists", "insertedId": None}
        assert db.users.count_documents({}) == 1
        assert db.users.find_one({"email": "old@example.com"})["displayName"] == "Old"


class TestRoles:
    """Tests for get_role and list_members."""

    def test_get_role(self, service, db) -> None:
        db.users.insert_one({"email": "m@example.com", "role": "member"})

        assert service.get_role("m@example.com") == "member"

    def test_get_role_unknown_user(self, service) -> None:
        with pytest.raises(NotFoundError):
            service.get_role("ghost@example.com")

    def test_list_members(self, service, db) -> None:
        db.users.insert_many(
            [
                {"email": "a@example.com", "role": "member"},
                {"email": "b@example.com", "role": "user"},
                {"email": "c@example.com", "role": "member"},
            ]
        )

        assert sorted(u["email"] for u in service.list_members()) == ["a@example.com", "c@example.com"]


class TestRemoveMembership:
    """Tests for remove_membership and delete_user."""

    def test_member_becomes_user(self, service, db) -> None:
        user_id = db.users.insert_one({"email": "m@example.com", "role": "member"}).inserted_id

        service.remove_membership(str(user_id))

        assert db.users.find_one({"_id": user_id})["role"] == "user"

    @pytest.mark.parametrize("role", ["user", "admin"])
    def test_non_member_not_found(self, service, db, role) -> None:
        user_id = db.users.insert_one({"email": "x@example.com", "role": role}).inserted_id

        with pytest.raises(NotFoundError):
            service.remove_membership(str(user_id))
        assert db.users.find_one({"_id": user_id})["role"] == role

    def test_malformed_id(self, service) -> None:
        with pytest.raises(BadRequestError):
            service.remove_membership("abc")

    def test_delete_user(self, service, db) -> None:
        user_id = db.users.insert_one({"email": "x@example.com", "role": "user"}).inserted_id

        service.delete_user(str(user_id))

        assert db.users.count_documents({}) == 0
        with pytest.raises(NotFoundError):
            service.delete_user(str(user_id))


class TestAdminStats:
    """Tests for compute_admin_stats."""

    @pytest.mark.usefixtures("apartments")
    def test_counts_every_agreement_as_unavailable(self, service, db, admin) -> None:
        db.agreements.insert_many(
            [
                {"userEmail": "a@example.com", "apartmentId": "apt-1", "status": "checked"},
                {"userEmail": "b@example.com", "apartmentId": "apt-2", "status": "pending"},
                {"userEmail": "c@example.com", "apartmentId": "apt-2", "status": "pending"},
            ]
        )
        db.users.insert_many([{"email": "a@example.com", "role": "member"}, {"email": "b@example.com", "role": "user"}])

        stats = service.compute_admin_stats(admin)

        assert stats == {
            "totalApartments": 10,
            "availableApartments": 8,
            "unavailableApartments": 2,
            "availablePercentage": 80.0,
            "unavailablePercentage": 20.0,
            "totalUsers": 3,
            "totalMembers": 1,
        }

    def test_no_apartments(self, service, admin) -> None:
        stats = service.compute_admin_stats(admin)

        assert stats["totalApartments"] == 0
        assert stats["availablePercentage"] == 0
        assert stats["unavailablePercentage"] == 0

    def test_non_admin_not_found(self, service, db) -> None:
        db.users.insert_one({"email": "m@example.com", "role": "member"})

        with pytest.raises(NotFoundError):
            service.compute_admin_stats("m@example.com")
        with pytest.raises(NotFoundError):
            service.compute_admin_stats(None)


class TestUserRoutes:
    """Tests for the user and member routes."""

    def test_register_then_role(self, client) -> None:
        created = client.post("/users", json={"email": "new@example.com", "displayName": "New"})
        again = client.post("/users", json={"email": "new@example.com"})
        role = client.get("/users/role/new@example.com")

        assert created.json()["message"] == "User created"
        assert again.json()["message"] == "User already exists"
        assert role.json() == {"role": "user"}

    def test_role_of_unknown_user(self, client) -> None:
        assert client.get("/users/role/ghost@example.com").status_code == 404

    def test_members_and_removal(self, client, auth, admin, db) -> None:
        member_id = str(db.users.insert_one({"email": "m@example.com", "role": "member"}).inserted_id)
        headers = auth(admin)

        members = client.get("/members", headers=headers)
        removed = client.patch(f"/members/{member_id}/remove", headers=headers)
        removed_again = client.patch(f"/members/{member_id}/remove", headers=headers)
        malformed = client.patch("/members/nope/remove", headers=headers)

        assert [m["email"] for m in members.json()] == ["m@example.com"]
        assert removed.status_code == 200
        assert removed_again.status_code == 404
        assert malformed.status_code == 400

    def test_delete_user_requires_admin(self, client, auth, db) -> None:
        user_id = str(db.users.insert_one({"email": "m@example.com", "role": "member"}).inserted_id)

        response = client.delete(f"/users/{user_id}", headers=auth("m@example.com"))

        assert response.status_code == 403

    def test_admin_stats(self, client, auth, admin) -> None:
        assert client.get("/admin/stats", headers=auth(admin)).status_code == 200
        assert client.get("/admin/stats", headers=auth("nobody@example.com")).status_code == 404
