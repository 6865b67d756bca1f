"""
Tests for organization users, workspace memberships and invitations.

Covers:
- /api/v1/users CRUD, role changes and owner protection
- PUT/DELETE /api/v1/users/{id}/clients/{client_id}
- Invitation create → lookup → accept, supersede, revoke and expiry
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from complianceos.db.models import ClientMembership, Invitation, NotificationLog, User


async def _invitation_token(session_factory, email: str) -> str:
    async with session_factory() as session:
        return (
            await session.execute(
                select(Invitation.token).where(Invitation.email == email, Invitation.status == "pending")
            )
        ).scalar_one()


class TestUsers:
    @pytest.mark.asyncio
    async def test_list_users_in_organization_only(self, client, admin_user, member_user, outsider_user):
        response = await client.get("/api/v1/users")
        assert response.status_code == 200
        emails = {u["email"] for u in response.json()}
        assert admin_user.email in emails
        assert member_user.email in emails
        assert outsider_user.email not in emails

    @pytest.mark.asyncio
    async def test_create_user(self, client):
        response = await client.post(
            "/api/v1/users",
            json={"email": "New.Hire@acme.io", "password": "long-enough-pw", "name": "New Hire"},
        )
        assert response.status_code == 201, response.text
        data = response.json()
        assert data["email"] == "new.hire@acme.io"
        assert data["role"] == "member"
        assert data["memberships"] == []

    @pytest.mark.asyncio
    async def test_create_user_duplicate_email(self, client, member_user):
        response = await client.post(
            "/api/v1/users",
            json={"email": member_user.email, "password": "long-enough-pw", "name": "Dup"},
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_admin_cannot_create_owner(self, client, admin_user, headers_for):
        response = await client.post(
            "/api/v1/users",
            json={"email": "boss@acme.io", "password": "long-enough-pw", "name": "Boss", "role": "owner"},
            headers=headers_for(admin_user),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_member_cannot_manage_users(self, client, member_user, headers_for):
        response = await client.post(
            "/api/v1/users",
            json={"email": "x@acme.io", "password": "long-enough-pw", "name": "X"},
            headers=headers_for(member_user),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_cannot_deactivate_or_delete_self(self, client, owner_user):
        deactivate = await client.patch(f"/api/v1/users/{owner_user.id}", json={"is_active": False})
        assert deactivate.status_code == 400
        delete = await client.delete(f"/api/v1/users/{owner_user.id}")
        assert delete.status_code == 400

    @pytest.mark.asyncio
    async def test_change_role(self, client, member_user):
        response = await client.patch(f"/api/v1/users/{member_user.id}/role", json={"role": "admin"})
        assert response.status_code == 200
        assert response.json()["role"] == "admin"

    @pytest.mark.asyncio
    async def test_admin_cannot_change_owner_role(self, client, admin_user, owner_user, headers_for):
        response = await client.patch(
            f"/api/v1/users/{owner_user.id}/role",
            json={"role": "member"},
            headers=headers_for(admin_user),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_user_releases_email_and_memberships(
        self, client, session_factory, workspace, member_user, add_member
    ):
        await add_member(workspace, member_user, "editor")
        response = await client.delete(f"/api/v1/users/{member_user.id}")
        assert response.status_code == 204

        async with session_factory() as session:
            user = await session.get(User, member_user.id)
            memberships = (
                await session.execute(select(ClientMembership).where(ClientMembership.user_id == member_user.id))
            ).scalars().all()
        assert user.deleted_at is not None
        assert user.email != member_user.email
        assert memberships == []

        # The released address can be registered again
        again = await client.post(
            "/api/v1/users",
            json={"email": member_user.email, "password": "long-enough-pw", "name": "Returning"},
        )
        assert again.status_code == 201

    @pytest.mark.asyncio
    async def test_cross_org_user_is_not_found(self, client, outsider_user):
        response = await client.patch(f"/api/v1/users/{outsider_user.id}", json={"name": "Hijack"})
        assert response.status_code == 404


class TestMemberships:
    @pytest.mark.asyncio
    async def test_grant_and_remove_membership(self, client, workspace, member_user):
        granted = await client.put(
            f"/api/v1/users/{member_user.id}/clients/{workspace.id}", json={"role": "editor"}
        )
        assert granted.status_code == 200, granted.text
        assert granted.json()["memberships"][0]["role"] == "editor"

        changed = await client.put(
            f"/api/v1/users/{member_user.id}/clients/{workspace.id}", json={"role": "viewer"}
        )
        assert changed.json()["memberships"][0]["role"] == "viewer"

        removed = await client.delete(f"/api/v1/users/{member_user.id}/clients/{workspace.id}")
        assert removed.status_code == 204
        missing = await client.delete(f"/api/v1/users/{member_user.id}/clients/{workspace.id}")
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_workspace_admin_cannot_grant_owner(
        self, client, workspace, member_user, second_member, add_member, headers_for
    ):
        await add_member(workspace, member_user, "admin")
        response = await client.put(
            f"/api/v1/users/{second_member.id}/clients/{workspace.id}",
            json={"role": "owner"},
            headers=headers_for(member_user),
        )
        assert response.status_code == 403


class TestInvitations:
    @pytest.mark.asyncio
    async def test_invite_lookup_accept(self, client, session_factory, workspace, outbox):
        created = await client.post(
            "/api/v1/invitations",
            json={"email": "Auditor@Partner.io", "role": "editor", "client_id": str(workspace.id)},
        )
        assert created.status_code == 201, created.text
        assert created.json()["status"] == "pending"
        assert len(outbox.emails) == 1
        assert outbox.emails[0].to_emails == ["auditor@partner.io"]
        assert "accept-invite?token=" in outbox.emails[0].body

        token = await _invitation_token(session_factory, "auditor@partner.io")
        lookup = await client.get("/api/v1/invitations/lookup", params={"token": token}, headers={"Authorization": ""})
        assert lookup.status_code == 200
        assert lookup.json()["client_name"] == "Globex Corp"

        accepted = await client.post(
            "/api/v1/invitations/accept",
            json={"token": token, "name": "Audra Auditor", "password": "auditor-password"},
            headers={"Authorization": ""},
        )
        assert accepted.status_code == 201, accepted.text
        assert accepted.json()["access_token"]

        async with session_factory() as session:
            user = (await session.execute(select(User).where(User.email == "auditor@partner.io"))).scalar_one()
            membership = (
                await session.execute(select(ClientMembership).where(ClientMembership.user_id == user.id))
            ).scalar_one()
        assert user.role == "member"
        assert membership.client_id == workspace.id
        assert membership.role == "editor"

        again = await client.post(
            "/api/v1/invitations/accept",
            json={"token": token, "name": "Audra Auditor", "password": "auditor-password"},
            headers={"Authorization": ""},
        )
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_reinvite_supersedes_pending(self, client, session_factory):
        await client.post("/api/v1/invitations", json={"email": "twice@partner.io"})
        await client.post("/api/v1/invitations", json={"email": "twice@partner.io"})

        async with session_factory() as session:
            statuses = sorted(
                (await session.execute(select(Invitation.status).where(Invitation.email == "twice@partner.io")))
                .scalars()
                .all()
            )
        assert statuses == ["pending", "revoked"]

    @pytest.mark.asyncio
    async def test_invite_existing_user_conflicts(self, client, member_user):
        response = await client.post("/api/v1/invitations", json={"email": member_user.email})
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_expired_invitation_is_gone(self, client, session_factory):
        await client.post("/api/v1/invitations", json={"email": "late@partner.io"})
        async with session_factory() as session:
            invitation = (
                await session.execute(select(Invitation).where(Invitation.email == "late@partner.io"))
            ).scalar_one()
            invitation.expires_at = datetime.utcnow() - timedelta(days=1)
            token = invitation.token
            await session.commit()

        response = await client.post(
            "/api/v1/invitations/accept",
            json={"token": token, "name": "Late", "password": "late-password"},
            headers={"Authorization": ""},
        )
        assert response.status_code == 410

        async with session_factory() as session:
            status = (await session.execute(select(Invitation.status).where(Invitation.token == token))).scalar_one()
        assert status == "expired"

    @pytest.mark.asyncio
    async def test_unknown_token(self, client):
        response = await client.get(
            "/api/v1/invitations/lookup", params={"token": "nope"}, headers={"Authorization": ""}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_revoke_only_pending(self, client):
        created = await client.post("/api/v1/invitations", json={"email": "revoke@partner.io"})
        invitation_id = created.json()["id"]

        first = await client.post(f"/api/v1/invitations/{invitation_id}/revoke")
        assert first.status_code == 200
        assert first.json()["status"] == "revoked"
        second = await client.post(f"/api/v1/invitations/{invitation_id}/revoke")
        assert second.status_code == 400

        deleted = await client.delete(f"/api/v1/invitations/{invitation_id}")
        assert deleted.status_code == 204

    @pytest.mark.asyncio
    async def test_invitation_email_is_logged(self, client, session_factory):
        await client.post("/api/v1/invitations", json={"email": "logged@partner.io"})
        async with session_factory() as session:
            logs = (await session.execute(select(NotificationLog))).scalars().all()
        assert any(log.type == "invitation" for log in logs)
