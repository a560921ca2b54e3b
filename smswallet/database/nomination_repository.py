"""
Nomination database repository.
"""

from typing import List

import structlog
from sqlalchemy import select, update

from smswallet.database.base import BaseRepository
from smswallet.models.database import Nomination, NominationStatus, User

logger = structlog.get_logger(__name__)


class NominationRepository(BaseRepository):
    """Repository for cosigner nominations."""

    def code_in_use(self, code: str) -> bool:
        """True when any nomination, answered or not, already uses ``code``."""
        with self._operation("check nomination code"):
            return self.db.scalars(
                select(Nomination.id).where(Nomination.code == code)
            ).first() is not None

    def create_pending(self, nominator: User, nominees: List[User], code: str) -> List[Nomination]:
        """Create one pending nomination per nominee, all sharing ``code``."""
        with self._operation("create nominations", nominator_id=nominator.id, code=code):
            nominations = [
                Nomination(
                    nominator_id=nominator.id,
                    nominee_id=nominee.id,
                    code=code,
                    status=NominationStatus.PENDING.value,
                )
                for nominee in nominees
            ]
            self.db.add_all(nominations)
            self.db.flush()

        logger.info(
            "Nominations created",
            nominator_id=nominator.id,
            nominee_ids=[nominee.id for nominee in nominees],
            code=code,
        )
        return nominations

    def claim_pending(self, code: str, nominee_id: int, accepted: bool) -> List[Nomination]:
        """
        Move the pending nominations for (code, nominee) out of pending.

        Each row is transitioned with a guarded update so a concurrent reply
        with the same code cannot claim it twice.

        Args:
            code: Nomination code (upper-case)
            nominee_id: Responding user
            accepted: True for ACCEPT, False for DENY

        Returns:
            The nominations this call transitioned; empty when none were pending
        """
        new_status = NominationStatus.ACCEPTED if accepted else NominationStatus.REJECTED
        with self._operation("claim nominations", code=code, nominee_id=nominee_id):
            query = select(Nomination).where(
                Nomination.code == code,
                Nomination.nominee_id == nominee_id,
                Nomination.status == NominationStatus.PENDING.value,
            )
            cutoff = self._code_cutoff()
            if cutoff is not None:
                query = query.where(Nomination.created_at >= cutoff)

            claimed = []
            for nomination in self.db.scalars(query).all():
                result = self.db.execute(
                    update(Nomination)
                    .where(
                        Nomination.id == nomination.id,
                        Nomination.status == NominationStatus.PENDING.value,
                    )
                    .values(status=new_status.value)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    claimed.append(nomination)

        return claimed
