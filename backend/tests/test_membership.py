"""
Tests for the Membership Lifecycle service.

Covers:
- approve / reject / set_status (last write wins, idempotent)
- promote / demote
- exit: one audit row, one announcement, status rejected; second exit no-op
- unknown user ids
- login upsert never touches status or admin flag
"""

import json
import logging

import pytest
from sqlalchemy import func, select

from auth.principal import OAuth2Principal, OIDCPrincipal
from models import CommunityExit, Post, User
from models.user import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED
from services.membership import EXIT_ANNOUNCEMENT, MembershipLifecycle, UserNotFound
from services.users import upsert_user_from_principal


async def _add_user(db, user_id="u1", status=STATUS_PENDING, is_admin=False, **fields):
    user = User(id=user_id, auth_provider="oidc", status=status, is_admin=is_admin, **fields)
    db.add(user)
    await db.commit()
    return user


def _audit_events(caplog):
    return [
        json.loads(r.getMessage()) for r in caplog.records if r.name == "audit"
    ]


class TestStatusTransitions:

    @pytest.mark.asyncio
    async def test_approve(self, db):
        await _add_user(db)
        user = await MembershipLifecycle(db).approve("u1")
        assert user.status == STATUS_APPROVED

    @pytest.mark.asyncio
    async def test_approve_reject_approve_ends_approved(self, db):
        await _add_user(db)
        lifecycle = MembershipLifecycle(db)
        await lifecycle.approve("u1")
        await lifecycle.reject("u1")
        user = await lifecycle.approve("u1")
        assert user.status == STATUS_APPROVED

    @pytest.mark.asyncio
    async def test_idempotent(self, db):
        await _add_user(db, status=STATUS_APPROVED)
        user = await MembershipLifecycle(db).approve("u1")
        assert user.status == STATUS_APPROVED

    @pytest.mark.asyncio
    async def test_rejected_can_be_reapproved(self, db):
        await _add_user(db, status=STATUS_REJECTED)
        user = await MembershipLifecycle(db).set_status("u1", STATUS_APPROVED)
        assert user.status == STATUS_APPROVED

    @pytest.mark.asyncio
    async def test_invalid_status(self, db):
        await _add_user(db)
        with pytest.raises(ValueError):
            await MembershipLifecycle(db).set_status("u1", "banned")

    @pytest.mark.asyncio
    async def test_unknown_user(self, db):
        with pytest.raises(UserNotFound) as exc_info:
            await MembershipLifecycle(db).approve("ghost")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_status_change_is_audited(self, db, caplog):
        await _add_user(db)
        with caplog.at_level(logging.INFO, logger="audit"):
            await MembershipLifecycle(db).approve("u1")
        events = _audit_events(caplog)
        assert events[-1]["action"] == "APPROVE"
        assert events[-1]["resource_id"] == "u1"
        assert events[-1]["details"]["new"] == STATUS_APPROVED


class TestAdminFlag:

    @pytest.mark.asyncio
    async def test_promote_and_demote(self, db):
        await _add_user(db)
        lifecycle = MembershipLifecycle(db)
        assert (await lifecycle.promote("u1")).is_admin is True
        assert (await lifecycle.demote("u1")).is_admin is False

    @pytest.mark.asyncio
    async def test_promote_leaves_status_alone(self, db):
        await _add_user(db, status=STATUS_PENDING)
        user = await MembershipLifecycle(db).promote("u1")
        assert user.status == STATUS_PENDING


class TestExit:

    @pytest.mark.asyncio
    async def test_exit_records_everything(self, db):
        await _add_user(db, status=STATUS_APPROVED, first_name="Ada", last_name="Lovelace")
        exited = await MembershipLifecycle(db).exit("u1", reason="Moving abroad")
        assert exited is True

        user = await db.get(User, "u1")
        assert user.status == STATUS_REJECTED

        exits = (await db.execute(select(CommunityExit))).scalars().all()
        assert len(exits) == 1
        assert exits[0].user_name == "Ada Lovelace"
        assert exits[0].reason == "Moving abroad"

        posts = (await db.execute(select(Post))).scalars().all()
        assert len(posts) == 1
        assert posts[0].type == "announcement"
        assert posts[0].content == EXIT_ANNOUNCEMENT.format(name="Ada Lovelace")

    @pytest.mark.asyncio
    async def test_second_exit_is_noop(self, db):
        await _add_user(db, status=STATUS_APPROVED)
        lifecycle = MembershipLifecycle(db)
        assert await lifecycle.exit("u1") is True
        assert await lifecycle.exit("u1") is False

        assert await db.scalar(select(func.count(CommunityExit.id))) == 1
        assert await db.scalar(select(func.count(Post.id))) == 1

    @pytest.mark.asyncio
    async def test_exit_from_pending(self, db):
        await _add_user(db, status=STATUS_PENDING)
        assert await MembershipLifecycle(db).exit("u1") is True
        assert (await db.get(User, "u1")).status == STATUS_REJECTED

    @pytest.mark.asyncio
    async def test_blank_reason_stored_as_null(self, db):
        await _add_user(db, status=STATUS_APPROVED)
        await MembershipLifecycle(db).exit("u1", reason="   ")
        exit_row = (await db.execute(select(CommunityExit))).scalar_one()
        assert exit_row.reason is None

    @pytest.mark.asyncio
    async def test_exit_name_falls_back_to_email(self, db):
        await _add_user(db, status=STATUS_APPROVED, email="anon@example.com")
        await MembershipLifecycle(db).exit("u1")
        exit_row = (await db.execute(select(CommunityExit))).scalar_one()
        assert exit_row.user_name == "anon@example.com"


class TestLoginUpsert:

    @pytest.mark.asyncio
    async def test_first_login_creates_pending(self, db):
        user = await upsert_user_from_principal(
            db, OAuth2Principal(subject_id="ms-9", given_name="Sipho")
        )
        assert user.status == STATUS_PENDING
        assert user.is_admin is False
        assert user.auth_provider == "oauth2"
        assert user.first_name == "Sipho"

    @pytest.mark.asyncio
    async def test_relogin_preserves_moderation_state(self, db):
        await _add_user(db, status=STATUS_REJECTED, is_admin=True, first_name="Old",
                        email="keep@example.com")
        user = await upsert_user_from_principal(
            db, OIDCPrincipal(subject_id="u1", given_name="New", email=None)
        )
        assert user.status == STATUS_REJECTED
        assert user.is_admin is True
        assert user.first_name == "New"
        # Omitted claims do not blank known values
        assert user.email == "keep@example.com"
