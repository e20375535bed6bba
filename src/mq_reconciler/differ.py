"""Diff engine for broker users.

Compares the previously declared users against the newly declared users,
keyed by username, to produce the create/update/delete operations needed
to make the remote user set match the new declaration.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from .models import UserSpec


@dataclass(frozen=True)
class UserChange:
    """A single user operation to apply."""

    action: str  # "create", "update", "delete"
    username: str
    user: UserSpec | None = None  # new declaration for create/update

    def describe(self) -> str:
        return f"{self.action} user {self.username}"


@dataclass
class UserDiff:
    """Operations produced by :func:`compute_user_diff`."""

    creates: list[UserChange] = field(default_factory=list)
    deletes: list[UserChange] = field(default_factory=list)
    updates: list[UserChange] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.creates or self.deletes or self.updates)

    def __len__(self) -> int:
        return len(self.creates) + len(self.deletes) + len(self.updates)

    def __iter__(self) -> Iterator[UserChange]:
        """Iterate in application order: creates, then deletes, then updates."""
        yield from self.creates
        yield from self.deletes
        yield from self.updates


def compute_user_diff(old: Iterable[UserSpec], new: Iterable[UserSpec]) -> UserDiff:
    """Compute user operations between two declarations.

    Args:
        old: Previously declared (or last observed) users.
        new: Newly declared users.

    Returns:
        UserDiff with creates, deletes and updates. Group order never
        produces an update; a password change always does.

    Raises:
        ValueError: If an entry has no username.
    """
    existing: dict[str, UserSpec] = {}
    for user in old:
        existing[_username(user)] = user

    diff = UserDiff()
    for user in new:
        username = _username(user)
        current = existing.pop(username, None)
        if current is None:
            diff.creates.append(UserChange(action="create", username=username, user=user))
        elif not current.matches(user):
            diff.updates.append(UserChange(action="update", username=username, user=user))

    # Whatever is left was declared before but not any more
    for username in existing:
        diff.deletes.append(UserChange(action="delete", username=username))

    return diff


def _username(user: UserSpec) -> str:
    if not getattr(user, "username", None):
        raise ValueError(f"User declaration without username: {user!r}")
    return user.username
