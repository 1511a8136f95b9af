"""User credential checks and provisioning."""
import logging
from functools import lru_cache
from typing import Optional

import bcrypt

from stagebox.metadata.schemas import User
from stagebox.metadata.service import MetadataStore

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    """Stand-in hash checked for unknown usernames."""
    return hash_password("stagebox-dummy-password")


class UserService:
    """Creates users and checks their passwords against the metadata store."""

    def __init__(self, store: MetadataStore) -> None:
        self.store = store

    def create_user(self, username: str, password: str) -> User:
        """Raises DuplicateUserError if the username is taken."""
        user = self.store.create_user(username.strip(), hash_password(password))
        logger.info("Created user %s", user.id)
        return user

    def authenticate(self, username: str, password: str) -> Optional[User]:
        user = self.store.get_user_by_username(username.strip())
        if user is None:
            verify_password(password, _dummy_hash())
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user
