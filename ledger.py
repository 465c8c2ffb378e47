import logging
from typing import Optional, Union

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from models import Asset, Liability, Transaction, TransactionType


logger = logging.getLogger(__name__)

LedgerRecord = Union[Asset, Liability]

# (transaction type, target kind) -> multiplier applied to the amount.
BALANCE_EFFECTS: dict[tuple[TransactionType, str], int] = {
    (TransactionType.deposit, "asset"): 1,
    (TransactionType.interest, "asset"): 1,
    (TransactionType.withdrawal, "asset"): -1,
    (TransactionType.payment, "asset"): -1,
    (TransactionType.emi_payment, "liability"): -1,
    (TransactionType.payment, "liability"): -1,
    (TransactionType.adjustment, "liability"): 1,
}


def balance_effect(txn_type: TransactionType, target_kind: str) -> int:
    return BALANCE_EFFECTS.get((txn_type, target_kind), 0)


def target_kind(txn: Transaction) -> str:
    return "asset" if txn.asset_id is not None else "liability"


def signed_delta(txn: Transaction, *, reverse: bool = False) -> int:
    delta = txn.amount_cents * balance_effect(txn.type, target_kind(txn))
    return -delta if reverse else delta


class BalanceEngine:
    """Keeps asset values and liability balances in step with the ledger.

    Balances are adjusted incrementally with one atomic UPDATE per change, so
    two requests touching the same record cannot overwrite each other. The
    result is clamped at zero. A missing target is logged and skipped; the
    transaction row itself is still written or removed by the caller.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _load(self, txn: Transaction) -> Optional[LedgerRecord]:
        if txn.asset_id is not None:
            record = self.session.get(Asset, txn.asset_id)
        else:
            record = self.session.get(Liability, txn.liability_id)
        if record is None or record.user_id != self.user_id:
            return None
        return record

    def apply(self, txn: Transaction, *, reverse: bool = False) -> Optional[int]:
        record = self._load(txn)
        if record is None:
            logger.warning(
                f"balance_skip: txn={txn.id} asset={txn.asset_id} "
                f"liability={txn.liability_id} reason=target_missing"
            )
            return None

        delta = signed_delta(txn, reverse=reverse)
        if delta == 0:
            return _balance_of(record)

        model = type(record)
        column = model.value_cents if model is Asset else model.balance_cents
        new_value = column + delta
        stmt = (
            update(model)
            .where(model.id == record.id, model.user_id == self.user_id)
            .values(
                {
                    column: case((new_value < 0, 0), else_=new_value),
                    model.version: model.version + 1,
                }
            )
            .execution_options(synchronize_session=False)
        )
        self.session.execute(stmt)
        self.session.refresh(record)
        balance = _balance_of(record)
        logger.info(
            f"balance_update: {model.__tablename__}={record.id} "
            f"delta={delta} balance={balance}"
        )
        return balance


def _balance_of(record: LedgerRecord) -> int:
    if isinstance(record, Asset):
        return record.value_cents
    return record.balance_cents
