# app/friends/services.py
import logging

from app.common.document_store import DocumentStore
from app.highfives.errors import InvalidPartner
from app.users.models import ONLINE_THRESHOLD_MS, User, user_path
from app.users.services import UserNotFound, require_user

logger = logging.getLogger(__name__)


def _with_friend(friend_id: str):
    def apply(current):
        if not current:
            return None
        friend_ids = User.from_document(current).friend_ids
        if friend_id in friend_ids:
            return None
        current["friendIds"] = friend_ids + [friend_id]
        return current

    return apply


async def add_friend(store: DocumentStore, user_id: str, friend_id: str) -> bool:
    """Symmetric: both users end up in each other's friendIds."""
    if str(user_id) == str(friend_id):
        raise InvalidPartner("cannot add yourself")

    await require_user(store, user_id)
    await require_user(store, friend_id)

    added, _ = await store.transaction(user_path(user_id), _with_friend(friend_id))
    back_added, _ = await store.transaction(user_path(friend_id), _with_friend(user_id))
    logger.info("Friendship %s <-> %s (new=%s/%s)", user_id, friend_id, added, back_added)
    return bool(added or back_added)


async def is_friend(store: DocumentStore, user_id: str, other_id: str) -> bool:
    user = await require_user(store, user_id)
    return other_id in user.friend_ids


async def list_friends(
    store: DocumentStore, user_id: str, threshold_ms: int = ONLINE_THRESHOLD_MS
) -> list:
    """
    Friends ordered online first, then most recent heartbeat, then name.
    Returns (user, online) pairs evaluated against the store clock.
    """
    user = await require_user(store, user_id)
    now = await store.now()

    friends = []
    for friend_id in user.friend_ids:
        try:
            friends.append(await require_user(store, friend_id))
        except UserNotFound:
            logger.warning("user %s lists unknown friend %s", user_id, friend_id)

    friends.sort(
        key=lambda u: (
            not u.is_online(now, threshold_ms),
            -u.last_heartbeat,
            u.username.lower(),
        )
    )
    return [(u, u.is_online(now, threshold_ms)) for u in friends]
