"""Service layer for transaction CRUD and the dashboard aggregates."""
import logging
from collections import OrderedDict
from datetime import date
from typing import Dict, Iterable, List, Optional

from models.transaction import (
    CategoryTotal,
    DashboardMetrics,
    DashboardOverview,
    ExtractionResult,
    MonthlyTotal,
    Transaction,
    TransactionDraft,
)
from services.transaction_store import TransactionStore

logger = logging.getLogger(__name__)


async def list_transactions(store: TransactionStore) -> List[Transaction]:
    transactions = await store.list_all()
    logger.info(f"Listed {len(transactions)} transactions.")
    return transactions


async def create_transaction(store: TransactionStore, draft: TransactionDraft) -> Transaction:
    logger.info(f"Creating {draft.type} of {draft.amount} in '{draft.category}'.")
    return await store.add(draft)


async def replace_transaction(store: TransactionStore, transaction_id: int, draft: TransactionDraft) -> Transaction:
    logger.info(f"Replacing transaction {transaction_id}.")
    return await store.update(transaction_id, draft)


async def delete_transaction(store: TransactionStore, transaction_id: int) -> Dict[str, object]:
    logger.warning(f"Deleting transaction {transaction_id}.")
    await store.delete(transaction_id)
    return {"status": "success", "deleted_id": transaction_id}


async def accept_extractions(
    store: TransactionStore,
    results: Iterable[ExtractionResult],
    on_date: Optional[date] = None,
) -> List[Transaction]:
    """Stores extraction results as transactions, in order, dated `on_date` (default today)."""
    saved = []
    for result in results:
        saved.append(await store.add(result.to_draft(on_date)))
    logger.info(f"Accepted {len(saved)} extracted transactions.")
    return saved


# --- Aggregates ---

def compute_metrics(transactions: Iterable[Transaction]) -> DashboardMetrics:
    income = 0.0
    expenses = 0.0
    count = 0
    for t in transactions:
        count += 1
        if t.type == "income":
            income += t.amount
        else:
            expenses += t.amount
    return DashboardMetrics(
        income=round(income, 2),
        expenses=round(expenses, 2),
        balance=round(income - expenses, 2),
        count=count,
    )


def compute_monthly(transactions: Iterable[Transaction]) -> List[MonthlyTotal]:
    totals: Dict[str, MonthlyTotal] = {}
    for t in transactions:
        key = t.date.strftime("%Y-%m")
        bucket = totals.setdefault(key, MonthlyTotal(month=key))
        if t.type == "income":
            bucket.income = round(bucket.income + t.amount, 2)
        else:
            bucket.expenses = round(bucket.expenses + t.amount, 2)
    return [totals[k] for k in sorted(totals)]


def compute_categories(transactions: Iterable[Transaction]) -> List[CategoryTotal]:
    """Expense totals per category, largest first."""
    totals: Dict[str, float] = OrderedDict()
    for t in transactions:
        if t.type != "expense":
            continue
        totals[t.category] = totals.get(t.category, 0.0) + t.amount
    ordered = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [CategoryTotal(name=name, value=round(value, 2)) for name, value in ordered]


def build_overview(transactions: List[Transaction], revision: int) -> DashboardOverview:
    return DashboardOverview(
        revision=revision,
        metrics=compute_metrics(transactions),
        monthly=compute_monthly(transactions),
        categories=compute_categories(transactions),
    )


class DashboardView:
    """
    Derived dashboard data kept in step with the store.

    Subscribes to store changes; any change marks the cached overview stale and
    the next read recomputes it from the full transaction list.
    """

    def __init__(self, store: TransactionStore):
        self.store = store
        self._overview: Optional[DashboardOverview] = None
        self._unsubscribe = store.subscribe(self.invalidate)

    def invalidate(self) -> None:
        logger.debug("Transactions changed, dashboard marked stale.")
        self._overview = None

    @property
    def is_stale(self) -> bool:
        return self._overview is None

    async def overview(self) -> DashboardOverview:
        if self._overview is not None:
            return self._overview
        revision = self.store.revision
        transactions = await self.store.list_all()
        overview = build_overview(transactions, revision)
        logger.info(f"Recomputed dashboard from {len(transactions)} transactions (revision {revision}).")
        # A write that landed while reading leaves the cache stale
        if self.store.revision == revision:
            self._overview = overview
        return overview

    def close(self) -> None:
        self._unsubscribe()
