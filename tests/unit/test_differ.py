"""Tests for the user diff engine."""

import pytest

from mq_reconciler.differ import UserChange, UserDiff, compute_user_diff
from mq_reconciler.models import UserSpec


def _user(username: str, **kwargs) -> UserSpec:
    kwargs.setdefault("password", "correct-Horse99")
    return UserSpec(username=username, **kwargs)


class TestComputeUserDiff:
    """Tests for diff computation between old and new user collections."""

    def test_first_apply_creates_everyone(self):
        """Empty old collection creates every new user."""
        diff = compute_user_diff([], [_user("alice"), _user("bob")])

        assert [c.username for c in diff.creates] == ["alice", "bob"]
        assert diff.deletes == []
        assert diff.updates == []
        assert all(c.action == "create" for c in diff.creates)

    def test_removed_user_produces_delete(self):
        """User in old but not in new produces delete."""
        diff = compute_user_diff([_user("alice"), _user("bob")], [_user("alice")])

        assert diff.creates == []
        assert diff.updates == []
        assert diff.deletes == [UserChange(action="delete", username="bob")]

    def test_identical_collections_produce_nothing(self):
        """diff(X, X) is empty."""
        users = [
            _user("alice", console_access=True, groups=("admins",)),
            _user("bob", replication_user=True),
        ]
        diff = compute_user_diff(users, list(users))

        assert not diff
        assert len(diff) == 0

    def test_group_order_does_not_matter(self):
        """Reordered group membership is not a change."""
        old = [_user("a", groups=("g1", "g2"))]
        new = [_user("a", groups=("g2", "g1"))]

        assert not compute_user_diff(old, new)

    def test_password_change_produces_update(self):
        """A different password always produces an update."""
        old = [_user("alice", password="correct-Horse99")]
        new = [_user("alice", password="correct-Horse100")]

        diff = compute_user_diff(old, new)

        assert len(diff.updates) == 1
        assert diff.updates[0].user is new[0]

    @pytest.mark.parametrize(
        "changes",
        [
            {"console_access": True},
            {"replication_user": True},
            {"groups": ("admins",)},
        ],
    )
    def test_flag_or_group_change_produces_update(self, changes):
        """Any structural change to a user produces exactly one update."""
        diff = compute_user_diff([_user("alice")], [_user("alice", **changes)])

        assert [c.action for c in diff] == ["update"]

    def test_every_username_accounted_for_once(self):
        """Each username in old or new appears in at most one operation."""
        old = [_user("keep"), _user("change"), _user("drop")]
        new = [_user("keep"), _user("change", console_access=True), _user("add")]

        diff = compute_user_diff(old, new)
        touched = [c.username for c in diff]

        assert sorted(touched) == ["add", "change", "drop"]
        assert len(touched) == len(set(touched))

    def test_iteration_order_is_create_delete_update(self):
        """Iterating a diff yields creates, then deletes, then updates."""
        old = [_user("change"), _user("drop")]
        new = [_user("change", console_access=True), _user("add")]

        actions = [c.action for c in compute_user_diff(old, new)]

        assert actions == ["create", "delete", "update"]

    def test_missing_username_fails_fast(self):
        """An entry without a username is a programming error."""

        class Nameless:
            username = ""

        with pytest.raises(ValueError, match="without username"):
            compute_user_diff([Nameless()], [])  # type: ignore[list-item]


class TestUserDiff:
    """Tests for the UserDiff container."""

    def test_empty_diff_is_falsy(self):
        """A fresh diff has no operations."""
        assert not UserDiff()
        assert list(UserDiff()) == []

    def test_describe(self):
        """Changes describe themselves for logs and plans."""
        assert UserChange(action="create", username="alice").describe() == "create user alice"
