"""
Profile Access Service Integration Tests.

WHY: check_access is what clients use to decide which screens to show,
and the allow-list is the only door for people outside the organization.
"""

import pytest

from app.core.exceptions import ErrorKind


class TestCheckAccess:
    @pytest.mark.parametrize(
        "who,role",
        [
            ("profile_owner", "owner"),
            ("org_owner", "admin"),
            ("admin", "admin"),
            ("member", "member"),
            ("whitelisted", "whitelisted"),
        ],
    )
    @pytest.mark.asyncio
    async def test_roles(self, profile_service, workspace, who, role):
        user = getattr(workspace, who)
        check = (await profile_service.check_access(user.id, workspace.profile.id)).unwrap()

        assert check.has_access is True
        assert check.role == role

    @pytest.mark.asyncio
    async def test_outsider(self, profile_service, workspace):
        check = (await profile_service.check_access(workspace.outsider.id, workspace.profile.id)).unwrap()
        assert check.has_access is False
        assert check.role is None

    @pytest.mark.asyncio
    async def test_unknown_profile(self, profile_service, workspace):
        result = await profile_service.check_access(workspace.member.id, 98765)
        assert result.kind == ErrorKind.NOT_FOUND


class TestAllowedEmails:
    @pytest.mark.asyncio
    async def test_admin_adds_normalized(self, profile_service, workspace):
        emails = (
            await profile_service.update_allowed_emails(
                workspace.admin.id,
                workspace.profile.id,
                "add",
                ["  New.Vendor@Example.COM ", "new.vendor@example.com"],
            )
        ).unwrap()

        assert emails == [workspace.whitelisted.email, "new.vendor@example.com"]

    @pytest.mark.asyncio
    async def test_member_cannot_change(self, profile_service, workspace):
        result = await profile_service.update_allowed_emails(
            workspace.member.id, workspace.profile.id, "add", ["a@example.com"]
        )
        assert result.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_limit(self, profile_service, workspace):
        emails = [f"vendor{i}@example.com" for i in range(101)]
        result = await profile_service.update_allowed_emails(
            workspace.profile_owner.id, workspace.profile.id, "set", emails
        )
        assert result.kind == ErrorKind.LIMIT_EXCEEDED

    @pytest.mark.parametrize(
        "operation,emails",
        [("add", ["not-an-email"]), ("merge", ["a@example.com"])],
    )
    @pytest.mark.asyncio
    async def test_invalid_input(self, profile_service, workspace, operation, emails):
        result = await profile_service.update_allowed_emails(
            workspace.profile_owner.id, workspace.profile.id, operation, emails
        )
        assert result.kind == ErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_removed_email_loses_access(self, profile_service, workspace):
        """
        Test that removing an email revokes access immediately.

        WHY: The allow-list is matched on every request.
        """
        remaining = (
            await profile_service.update_allowed_emails(
                workspace.profile_owner.id,
                workspace.profile.id,
                "remove",
                [workspace.whitelisted.email.upper()],
            )
        ).unwrap()

        assert remaining == []
        check = (await profile_service.check_access(workspace.whitelisted.id, workspace.profile.id)).unwrap()
        assert check.has_access is False
