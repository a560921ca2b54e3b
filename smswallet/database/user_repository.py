"""
User database repository.

Lookups by phone number, username, registration name, and the combined
identifier resolution used for SEND/REQUEST/NOMINATE recipients.
"""

from typing import Optional

import structlog
from sqlalchemy import func, select

from smswallet.database.base import BaseRepository
from smswallet.models.database import User
from smswallet.utils.phone_number import format_phone_number, looks_like_phone_number

logger = structlog.get_logger(__name__)


class UserRepository(BaseRepository):
    """Repository for wallet holders and their approvers."""

    def get_by_phone(self, phone_number: str) -> Optional[User]:
        with self._operation("get user by phone"):
            return self.db.scalars(
                select(User).where(User.phone_number == format_phone_number(phone_number))
            ).first()

    def get_by_username(self, username: str) -> Optional[User]:
        """Usernames match case-insensitively."""
        with self._operation("get user by username"):
            return self.db.scalars(
                select(User).where(func.lower(User.username) == username.lower())
            ).first()

    def get_by_registration_name(self, registration_name: str) -> Optional[User]:
        with self._operation("get user by registration name"):
            return self.db.scalars(
                select(User).where(func.lower(User.registration_name) == registration_name.lower())
            ).first()

    def find_by_identifier(self, identifier: str) -> Optional[User]:
        """
        Resolve a recipient as typed in an SMS.

        Tries username, then registration name, then phone number.

        Args:
            identifier: Username, registered name, or phone number

        Returns:
            Matching user, or None
        """
        identifier = identifier.strip()
        if not identifier:
            return None

        user = self.get_by_username(identifier)
        if user is None and "." in identifier:
            user = self.get_by_registration_name(identifier)
        if user is None and looks_like_phone_number(identifier):
            user = self.get_by_phone(identifier)
        return user

    def is_username_taken(self, username: str) -> bool:
        return self.get_by_username(username) is not None

    def create(
        self,
        phone_number: str,
        username: str,
        wallet_id: str,
        wallet_address: str,
        registration_name: Optional[str] = None,
    ) -> User:
        """
        Create a new user record.

        Raises:
            DatabaseError: If the insert fails (e.g. a concurrent
                registration took the phone number or username)
        """
        with self._operation("create user", phone_number=phone_number, username=username):
            user = User(
                phone_number=format_phone_number(phone_number),
                username=username,
                wallet_id=wallet_id,
                wallet_address=wallet_address,
                registration_name=registration_name,
                requires_approval=False,
            )
            self.db.add(user)
            self.db.flush()

        logger.info("User created", user_id=user.id, username=username)
        return user

    def add_approver(self, user: User, approver: User) -> None:
        """Add ``approver`` as a cosigner of ``user`` and turn on approval mode."""
        with self._operation("add approver", user_id=user.id, approver_id=approver.id):
            if all(existing.id != approver.id for existing in user.approvers):
                user.approvers.append(approver)
            user.requires_approval = True
            self.db.flush()
