import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID
from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from genstudio.errors import LedgerFailure, NotEnoughTokens
from genstudio.models.token import ActionKind, Charge, ChargeState, TokenBalance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeReceipt:
    charge_id: UUID
    cost: int
    balance: int


class LedgerClient:
    """Ledger de tokens : ouverture, règlement et remboursement des charges."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def open_charge(self, user_id: UUID, cost: int, action: ActionKind) -> ChargeReceipt:
        """
        Débite `cost` tokens et crée une charge `pending`, dans une seule transaction.

        Le débit est un UPDATE conditionnel (balance >= cost) : deux charges
        concurrentes ne peuvent pas rendre le solde négatif.
        """
        if cost <= 0:
            raise ValueError("cost must be a positive number of tokens")

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(TokenBalance)
                        .where(and_(TokenBalance.user_id == user_id, TokenBalance.balance >= cost))
                        .values(balance=TokenBalance.balance - cost, updated_at=datetime.utcnow())
                    )
                    if result.rowcount != 1:
                        raise NotEnoughTokens(details={"cost": cost})

                    charge = Charge(
                        user_id=user_id,
                        cost=cost,
                        action=ActionKind(action).value,
                        state=ChargeState.PENDING.value,
                    )
                    session.add(charge)
                    await session.flush()

                    balance = await session.scalar(
                        select(TokenBalance.balance).where(TokenBalance.user_id == user_id)
                    )
                    receipt = ChargeReceipt(charge_id=charge.id, cost=cost, balance=balance)
        except NotEnoughTokens:
            raise
        except Exception as e:
            logger.error(f"Failed to open charge for user {user_id}: {e}")
            raise LedgerFailure(f"Ledger unavailable: {e}") from e

        logger.info(f"Charge {receipt.charge_id} opened: user={user_id} cost={cost} balance={receipt.balance}")
        return receipt

    async def settle_charge(self, charge_id: UUID, artifact_id: Optional[UUID] = None) -> bool:
        """Passe la charge en `settled`. Best-effort : un échec est journalisé, jamais propagé."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(Charge)
                        .where(and_(Charge.id == charge_id, Charge.state == ChargeState.PENDING.value))
                        .values(
                            state=ChargeState.SETTLED.value,
                            artifact_id=artifact_id,
                            resolved_at=datetime.utcnow(),
                        )
                    )
        except Exception as e:
            logger.error(f"Settle failed for charge {charge_id} (artifact {artifact_id}), left pending: {e}")
            return False

        if result.rowcount != 1:
            logger.warning(f"Settle skipped for charge {charge_id}: not pending")
            return False
        logger.info(f"Charge {charge_id} settled with artifact {artifact_id}")
        return True

    async def spend(self, user_id: UUID, cost: int, action: ActionKind) -> ChargeReceipt:
        """Débit direct pour une action sans artefact (ex. détourage) : charge ouverte puis réglée."""
        receipt = await self.open_charge(user_id, cost, action)
        if not await self.settle_charge(receipt.charge_id):
            logger.error(f"Spend charge {receipt.charge_id} could not be settled, needs reconciliation")
        return receipt

    async def refund_charge(self, charge_id: UUID) -> bool:
        """
        Rembourse une charge `pending` et recrédite le solde.

        Idempotent : une charge déjà remboursée ou réglée n'est pas modifiée.
        Best-effort : un échec est journalisé, jamais propagé, pour ne pas
        masquer l'erreur d'origine.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    charge = await session.scalar(select(Charge).where(Charge.id == charge_id))
                    if charge is None:
                        logger.warning(f"Refund skipped for charge {charge_id}: unknown charge")
                        return False

                    result = await session.execute(
                        update(Charge)
                        .where(and_(Charge.id == charge_id, Charge.state == ChargeState.PENDING.value))
                        .values(state=ChargeState.REFUNDED.value, resolved_at=datetime.utcnow())
                    )
                    if result.rowcount != 1:
                        logger.warning(f"Refund skipped for charge {charge_id}: already {charge.state}")
                        return False

                    await session.execute(
                        update(TokenBalance)
                        .where(TokenBalance.user_id == charge.user_id)
                        .values(balance=TokenBalance.balance + charge.cost, updated_at=datetime.utcnow())
                    )
        except Exception as e:
            logger.error(f"Refund failed for charge {charge_id}, left pending: {e}")
            return False

        logger.info(f"Charge {charge_id} refunded ({charge.cost} tokens)")
        return True

    async def get_balance(self, user_id: UUID) -> int:
        try:
            async with self._session_factory() as session:
                balance = await session.scalar(
                    select(TokenBalance.balance).where(TokenBalance.user_id == user_id)
                )
        except Exception as e:
            raise LedgerFailure(f"Ledger unavailable: {e}") from e
        return balance or 0

    async def grant_tokens(self, user_id: UUID, amount: int) -> int:
        """Crédite un compte (crée la ligne de solde au besoin). Retourne le nouveau solde."""
        if amount <= 0:
            raise ValueError("amount must be positive")

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(TokenBalance, user_id)
                    if row is None:
                        row = TokenBalance(user_id=user_id, balance=amount)
                        session.add(row)
                    else:
                        row.balance = row.balance + amount
                    await session.flush()
                    balance = row.balance
        except Exception as e:
            raise LedgerFailure(f"Ledger unavailable: {e}") from e
        return balance

    async def get_charge(self, charge_id: UUID) -> Charge | None:
        async with self._session_factory() as session:
            return await session.get(Charge, charge_id)

    async def list_stale_pending(self, older_than: timedelta = timedelta(minutes=15)) -> List[Charge]:
        """Charges restées `pending` (settle/refund échoué) à réconcilier manuellement."""
        cutoff = datetime.utcnow() - older_than
        async with self._session_factory() as session:
            result = await session.execute(
                select(Charge)
                .where(and_(Charge.state == ChargeState.PENDING.value, Charge.created_at < cutoff))
                .order_by(Charge.created_at.asc())
            )
            return list(result.scalars().all())
