"""
Relationship domain service - Friend State Machine implementation.

An edge is stored directed as (source_id, target_id) but stands for the
unordered pair {source_id, target_id}. At most one edge exists per pair.

States and transitions:

    (absent)  -> PENDING(source=actor, target)   request_friend
    PENDING   -> FRIENDED                        accept_friend, target only
    (absent) / PENDING / FRIENDED -> BLOCKED     block_friend (upsert)
    PENDING / FRIENDED -> (absent)               reject_friend, either side
    BLOCKED   -> (absent)                        unblock_friend, blocker only

A BLOCKED edge suppresses new requests between the pair until the blocker
removes it. Mutations that touch another user wait for that user's
DISABLE and BLOCK locks; block_friend holds the BLOCK lock itself.
"""

import logging
from dataclasses import dataclass

from .exceptions import (
    AlreadyExists,
    ObjectNotFound,
    PermissionDenied,
    UserNotFound,
    ValidationError,
    WasBlocked,
)
from .locks import AdvisoryLocks, OperationClass
from .ports import (
    Friend,
    FriendRepository,
    FriendStatus,
    FriendView,
    NotificationPublisher,
    UserRepository,
    UserStatus,
    UserSuggestion,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Classes that must be free on the other user before a relationship mutation
_TARGET_GUARDS = (OperationClass.DISABLE, OperationClass.BLOCK)


@dataclass(frozen=True)
class FriendCheck:
    """Relationship between the caller and another user."""

    exists: bool
    friend_id: int | None = None
    status: FriendStatus | None = None
    other_id: int | None = None

    @property
    def is_friend(self) -> bool:
        return self.status == FriendStatus.FRIENDED


def canonical_other(edge: Friend, actor_id: int) -> int:
    """
    The other party reported for an edge.

    PENDING reports the target (the side that must accept), BLOCKED reports
    the source (the blocker), FRIENDED reports whichever side is not actor.
    """
    if edge.status == FriendStatus.PENDING:
        return edge.target_id
    if edge.status == FriendStatus.BLOCKED:
        return edge.source_id
    return edge.target_id if edge.source_id == actor_id else edge.source_id


def page_bounds(page_number: int | None, page_size: int | None) -> tuple[int, int]:
    """Convert 1-based page number and size to (offset, limit)."""
    limit = DEFAULT_PAGE_SIZE if page_size is None else max(1, min(page_size, MAX_PAGE_SIZE))
    offset = 0 if page_number is None else max(page_number - 1, 0) * limit
    return offset, limit


@dataclass
class FriendService:
    """
    Domain service for relationships between users.

    Coordinates through advisory locks; the repository's pair uniqueness
    constraint is the final guard against duplicate edges.
    """

    users: UserRepository
    friends: FriendRepository
    locks: AdvisoryLocks
    publisher: NotificationPublisher

    def request_friend(self, actor_id: int, target_id: int, actor_name: str = "") -> int:
        """
        Send a friend request.

        Returns:
            Id of the new PENDING edge

        Raises:
            ValidationError: actor_id == target_id
            UserNotFound: target missing or inactive
            WasBlocked: a BLOCKED edge exists for the pair
            AlreadyExists: any other edge exists for the pair
        """
        if actor_id == target_id:
            raise ValidationError(detail="cannot befriend yourself")

        self.locks.wait_until_free(target_id, *_TARGET_GUARDS)
        self._require_active(target_id)

        edges = self.friends.find_by_pair(actor_id, target_id)
        if any(e.status == FriendStatus.BLOCKED for e in edges):
            raise WasBlocked()
        if edges:
            raise AlreadyExists()

        edge = self.friends.insert(actor_id, target_id, FriendStatus.PENDING)
        logger.info("Friend request created: id=%d %d -> %d", edge.id, actor_id, target_id)
        self.publisher.publish(
            target_id,
            "FRIEND_REQUEST",
            {
                "friendId": edge.id,
                "sourceId": actor_id,
                "title": f"{actor_name} sent you a friend request",
            },
        )
        return edge.id

    def accept_friend(self, actor_id: int, friend_id: int, actor_name: str = "") -> None:
        """
        Accept a pending request. Only the target may accept.

        Raises:
            ObjectNotFound: no PENDING edge with this id
            PermissionDenied: actor is not the target
        """
        edge = self.friends.find_by_id(friend_id)
        if edge is None or edge.status != FriendStatus.PENDING:
            raise ObjectNotFound()
        if edge.target_id != actor_id:
            raise PermissionDenied()

        self.locks.wait_until_free(edge.source_id, *_TARGET_GUARDS)
        # Re-read: the pair may have been blocked while we waited
        edge = self.friends.find_by_id(friend_id)
        if edge is None or edge.status != FriendStatus.PENDING:
            raise ObjectNotFound()

        self.friends.update_status(friend_id, FriendStatus.FRIENDED)
        logger.info("Friend request accepted: id=%d", friend_id)
        self.publisher.publish(
            edge.source_id,
            "FRIEND_ACCEPTED",
            {"friendId": friend_id, "title": f"{actor_name} accepted your friend request"},
        )

    def reject_friend(self, actor_id: int, friend_id: int) -> None:
        """
        Reject a request or remove a friend. Either side may do this.

        Raises:
            ObjectNotFound: no non-BLOCKED edge with this id
            PermissionDenied: actor is on neither side
        """
        edge = self.friends.find_by_id(friend_id)
        if edge is None or edge.status == FriendStatus.BLOCKED:
            raise ObjectNotFound()
        if actor_id not in (edge.source_id, edge.target_id):
            raise PermissionDenied()

        self.friends.delete(friend_id)
        other_id = edge.target_id if edge.source_id == actor_id else edge.source_id
        logger.info("Friend edge removed: id=%d by %d", friend_id, actor_id)
        self.publisher.publish(
            other_id, "FRIEND_REMOVED", {"friendId": friend_id, "userId": actor_id}
        )

    def block_friend(self, actor_id: int, target_id: int) -> None:
        """
        Block a user: flip the pair's edge to BLOCKED(actor, target) or create one.

        Idempotent; blocking an already-blocked pair leaves one BLOCKED edge.

        Raises:
            ValidationError: actor_id == target_id
            UserNotFound: target missing or inactive
        """
        if actor_id == target_id:
            raise ValidationError(detail="cannot block yourself")

        with self.locks.guard(
            OperationClass.BLOCK, target_id, wait_for=(OperationClass.DISABLE,)
        ):
            self._require_active(target_id)
            if self.friends.update_pair_status(actor_id, target_id, FriendStatus.BLOCKED) == 0:
                try:
                    self.friends.insert(actor_id, target_id, FriendStatus.BLOCKED)
                except AlreadyExists:
                    # The other side created the pair's edge after our update
                    self.friends.update_pair_status(actor_id, target_id, FriendStatus.BLOCKED)
            logger.info("User blocked: %d -> %d", actor_id, target_id)

        self.publisher.publish(target_id, "FRIEND_BLOCKED", {"userId": actor_id})

    def unblock_friend(self, actor_id: int, friend_id: int) -> None:
        """
        Remove a block. Only the edge's source (the blocker) may unblock.

        Raises:
            ObjectNotFound: no BLOCKED edge with this id sourced by actor
        """
        edge = self.friends.find_by_id(friend_id)
        if edge is None or edge.status != FriendStatus.BLOCKED or edge.source_id != actor_id:
            raise ObjectNotFound()
        self.friends.delete(friend_id)
        logger.info("User unblocked: edge=%d by %d", friend_id, actor_id)

    def check_friend(self, actor_id: int, other_id: int) -> FriendCheck:
        """Report the edge between actor and other, if any. Read-only."""
        edges = self.friends.find_by_pair(actor_id, other_id)
        if not edges:
            return FriendCheck(exists=False)
        edge = edges[0]
        return FriendCheck(
            exists=True,
            friend_id=edge.id,
            status=edge.status,
            other_id=canonical_other(edge, actor_id),
        )

    def list_friends(
        self, actor_id: int, page_number: int | None = None, page_size: int | None = None
    ) -> list[FriendView]:
        offset, limit = page_bounds(page_number, page_size)
        return self.friends.list_for(actor_id, FriendStatus.FRIENDED, offset, limit)

    def list_requests(
        self, actor_id: int, page_number: int | None = None, page_size: int | None = None
    ) -> list[FriendView]:
        offset, limit = page_bounds(page_number, page_size)
        return self.friends.list_for(actor_id, FriendStatus.PENDING, offset, limit)

    def list_blocked(
        self, actor_id: int, page_number: int | None = None, page_size: int | None = None
    ) -> list[FriendView]:
        offset, limit = page_bounds(page_number, page_size)
        return self.friends.list_blocked_by(actor_id, offset, limit)

    def suggest_by_contact(
        self,
        actor_id: int,
        search: str | None = None,
        phones: list[str] | None = None,
        page_number: int | None = None,
        page_size: int | None = None,
    ) -> list[UserSuggestion]:
        """
        Active users matching search (name, email or phone) and/or a list of
        phone numbers, each with the actor's edge to them when one exists.

        Users who blocked the actor are left out.
        """
        offset, limit = page_bounds(page_number, page_size)
        suggestions = []
        for user in self.users.find_contacts(actor_id, search or None, phones, offset, limit):
            edges = self.friends.find_by_pair(actor_id, user.id)
            if not edges:
                suggestions.append(UserSuggestion(user=user))
                continue
            edge = edges[0]
            if edge.status == FriendStatus.BLOCKED and edge.source_id == user.id:
                continue
            suggestions.append(
                UserSuggestion(user=user, friend_id=edge.id, friend_status=edge.status)
            )
        return suggestions

    def delete_all_for(self, user_id: int) -> None:
        """Drop every edge touching user_id (account disabling)."""
        self.friends.delete_all_for(user_id)

    def _require_active(self, user_id: int) -> None:
        if self.users.find_by_id(user_id, status=UserStatus.ACTIVE) is None:
            raise UserNotFound()
