"""
Transaction History Service - Read-only views over ledger transactions.

Every query is scoped to the requesting user; a transaction between two
other users is indistinguishable from one that does not exist.
"""

from decimal import Decimal

from sqlalchemy import ColumnElement, Select, and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from gateway.db.models import Transaction, User
from gateway.exceptions import TransactionNotFoundError
from gateway.models.api import TransactionDirection
from gateway.models.domain import (
    TransactionDetail,
    TransactionPage,
    TransactionRecord,
    TransactionSummary,
)

COMPLETED_STATUS = "completed"


class HistoryService:
    """Queries the transactions table on behalf of one of its parties."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @staticmethod
    def _party_filter(
        user_id: int, direction: TransactionDirection | None
    ) -> ColumnElement[bool]:
        if direction == TransactionDirection.SENT:
            return Transaction.sender_id == user_id
        if direction == TransactionDirection.RECEIVED:
            return Transaction.receiver_id == user_id
        return or_(Transaction.sender_id == user_id, Transaction.receiver_id == user_id)

    async def history(
        self,
        user_id: int,
        limit: int = 50,
        offset: int = 0,
        direction: TransactionDirection | None = None,
    ) -> TransactionPage:
        """Newest-first page of the user's transactions with counterparty info."""
        sender = aliased(User)
        receiver = aliased(User)
        party_filter = self._party_filter(user_id, direction)

        query: Select = (
            select(
                Transaction,
                sender.email.label("sender_email"),
                sender.full_name.label("sender_name"),
                receiver.email.label("receiver_email"),
                receiver.full_name.label("receiver_name"),
            )
            .join(sender, sender.id == Transaction.sender_id)
            .join(receiver, receiver.id == Transaction.receiver_id)
            .where(party_filter)
            .order_by(Transaction.created_at.desc(), Transaction.id)
            .limit(limit)
            .offset(offset)
        )
        rows = (await self.session.execute(query)).all()

        total = await self.session.scalar(
            select(func.count()).select_from(Transaction).where(party_filter)
        )

        records = []
        for row in rows:
            txn: Transaction = row.Transaction
            if txn.sender_id == user_id:
                txn_direction = TransactionDirection.SENT
                counterparty_email, counterparty_name = row.receiver_email, row.receiver_name
            else:
                txn_direction = TransactionDirection.RECEIVED
                counterparty_email, counterparty_name = row.sender_email, row.sender_name
            records.append(
                TransactionRecord(
                    transaction_id=txn.id,
                    direction=txn_direction,
                    amount=txn.amount,
                    currency=txn.currency,
                    status=txn.status,
                    description=txn.description,
                    created_at=txn.created_at,
                    counterparty_email=counterparty_email,
                    counterparty_name=counterparty_name,
                )
            )

        return TransactionPage(records=records, total=total or 0, limit=limit, offset=offset)

    async def detail(self, user_id: int, transaction_id: str) -> TransactionDetail:
        """
        Full view of one transaction the user is a party to.

        Raises:
            TransactionNotFoundError: absent, or the user is not a party
        """
        sender = aliased(User)
        receiver = aliased(User)
        result = await self.session.execute(
            select(Transaction, sender, receiver)
            .join(sender, sender.id == Transaction.sender_id)
            .join(receiver, receiver.id == Transaction.receiver_id)
            .where(
                Transaction.id == transaction_id,
                or_(Transaction.sender_id == user_id, Transaction.receiver_id == user_id),
            )
        )
        row = result.one_or_none()
        if row is None:
            raise TransactionNotFoundError(transaction_id)

        txn, sender_user, receiver_user = row
        return TransactionDetail(
            transaction_id=txn.id,
            sender_id=sender_user.id,
            sender_email=sender_user.email,
            sender_name=sender_user.full_name,
            receiver_id=receiver_user.id,
            receiver_email=receiver_user.email,
            receiver_name=receiver_user.full_name,
            amount=txn.amount,
            currency=txn.currency,
            status=txn.status,
            description=txn.description,
            created_at=txn.created_at,
            completed_at=txn.completed_at,
        )

    async def summary(self, user_id: int) -> TransactionSummary:
        """Counts and totals of completed transfers, per direction."""
        sent = Transaction.sender_id == user_id
        received = Transaction.receiver_id == user_id
        result = await self.session.execute(
            select(
                func.count(case((sent, 1))).label("sent_count"),
                func.coalesce(func.sum(case((sent, Transaction.amount))), 0).label("sent_total"),
                func.count(case((received, 1))).label("received_count"),
                func.coalesce(func.sum(case((received, Transaction.amount))), 0).label(
                    "received_total"
                ),
            ).where(and_(or_(sent, received), Transaction.status == COMPLETED_STATUS))
        )
        row = result.one()
        return TransactionSummary(
            sent_count=int(row.sent_count),
            sent_total=Decimal(str(row.sent_total)),
            received_count=int(row.received_count),
            received_total=Decimal(str(row.received_total)),
        )
