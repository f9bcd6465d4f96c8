"""Tests for project invitations."""

import pytest

from taskboard.core import invitations as invitations_mod
from taskboard.core import notifications as notifications_mod
from taskboard.core import projects as projects_mod
from taskboard.core import users as users_mod


@pytest.fixture
def invited(seeded):
    """dave is a registered user who is not on the board."""
    users_mod.create_user(seeded, "dave", "Dave", "dave@example.com")
    return seeded


class TestInvite:
    def test_invite_creates_pending(self, invited):
        invitation = invitations_mod.invite(invited, "board", "bob", "dave")
        assert invitation.status == "pending"
        assert invitation.sender_id == "bob"
        assert [i.id for i in invitations_mod.list_pending(invited, "dave")] == [invitation.id]

    def test_invite_notifies_recipient(self, invited):
        invitation = invitations_mod.invite(invited, "board", "alice", "dave")
        [note] = notifications_mod.list_notifications(invited, "dave")
        assert note.type == "project_invitation"
        assert note.message == 'Alice invited you to join project "Board"'
        assert note.invitation_id == invitation.id
        assert note.project_id == "board"

    def test_non_member_cannot_invite(self, invited):
        users_mod.create_user(invited, "erin", "Erin", "erin@example.com")
        with pytest.raises(PermissionError):
            invitations_mod.invite(invited, "board", "dave", "erin")

    def test_existing_member(self, invited):
        with pytest.raises(ValueError, match="already a member"):
            invitations_mod.invite(invited, "board", "alice", "bob")

    def test_unknown_user(self, invited):
        with pytest.raises(ValueError, match="User not found"):
            invitations_mod.invite(invited, "board", "alice", "ghost")

    def test_duplicate_pending(self, invited):
        invitations_mod.invite(invited, "board", "alice", "dave")
        with pytest.raises(ValueError, match="pending invitation"):
            invitations_mod.invite(invited, "board", "bob", "dave")

    def test_reinvite_after_reject(self, invited):
        first = invitations_mod.invite(invited, "board", "alice", "dave")
        invitations_mod.reject(invited, first.id, "dave")
        second = invitations_mod.invite(invited, "board", "alice", "dave")
        assert second.id != first.id


class TestDecide:
    def test_accept_adds_member(self, invited):
        invitation = invitations_mod.invite(invited, "board", "alice", "dave")
        accepted = invitations_mod.accept(invited, invitation.id, "dave")
        assert accepted.status == "accepted"
        assert projects_mod.is_member(invited, "board", "dave")
        assert invitations_mod.list_pending(invited, "dave") == []

    def test_reject_leaves_membership(self, invited):
        invitation = invitations_mod.invite(invited, "board", "alice", "dave")
        assert invitations_mod.reject(invited, invitation.id, "dave").status == "rejected"
        assert not projects_mod.is_member(invited, "board", "dave")

    def test_only_recipient(self, invited):
        invitation = invitations_mod.invite(invited, "board", "alice", "dave")
        with pytest.raises(PermissionError):
            invitations_mod.accept(invited, invitation.id, "alice")
        assert invitations_mod.get_invitation(invited, invitation.id).status == "pending"

    def test_second_decision(self, invited):
        invitation = invitations_mod.invite(invited, "board", "alice", "dave")
        invitations_mod.accept(invited, invitation.id, "dave")
        with pytest.raises(ValueError, match="already been accepted"):
            invitations_mod.reject(invited, invitation.id, "dave")

    def test_missing(self, invited):
        assert invitations_mod.accept(invited, 999, "dave") is None

    def test_deleted_with_project(self, invited):
        invitation = invitations_mod.invite(invited, "board", "alice", "dave")
        projects_mod.delete_project(invited, "board")
        assert invitations_mod.get_invitation(invited, invitation.id) is None
        assert notifications_mod.list_notifications(invited, "dave") == []
