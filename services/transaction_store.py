"""Transaction repository: a local JSON key-value file or a MongoDB collection."""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List

from pydantic import ValidationError
from motor.motor_asyncio import AsyncIOMotorCollection # Type hint for collection

from models.transaction import Transaction, TransactionDraft
from utils.errors import StorageError, TransactionNotFoundError

logger = logging.getLogger(__name__)

STORAGE_KEY = "clarity_finance_transactions"

ChangeListener = Callable[[], None]


class TransactionStore(ABC):
    """
    Async repository for transactions with explicit change subscriptions.

    Listeners are called with no arguments after every successful write and
    are expected to re-read whatever they display.
    """

    def __init__(self) -> None:
        self._listeners: List[ChangeListener] = []
        self.revision = 0

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        self.revision += 1
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.exception(f"Transaction change listener {listener!r} failed: {e}")

    @abstractmethod
    async def list_all(self) -> List[Transaction]:
        """All transactions, newest first."""

    @abstractmethod
    async def get(self, transaction_id: int) -> Transaction:
        ...

    @abstractmethod
    async def add(self, draft: TransactionDraft) -> Transaction:
        ...

    @abstractmethod
    async def update(self, transaction_id: int, draft: TransactionDraft) -> Transaction:
        ...

    @abstractmethod
    async def delete(self, transaction_id: int) -> None:
        ...

    async def close(self) -> None:
        pass


def _with_id(transaction_id: int, draft: TransactionDraft) -> Transaction:
    data = draft.model_dump()
    data["id"] = transaction_id
    return Transaction.model_validate(data)


def _sort_newest_first(transactions: List[Transaction]) -> List[Transaction]:
    return sorted(transactions, key=lambda t: (t.date, t.id), reverse=True)


class LocalTransactionStore(TransactionStore):
    """
    Stores the transaction list as a JSON array under a fixed key of a small
    JSON key-value document:

      {"clarity_finance_transactions": [{...}, {...}]}
    """

    def __init__(self, path: Path, key: str = STORAGE_KEY):
        super().__init__()
        self.path = Path(path)
        self.key = key
        self._lock = asyncio.Lock()

    def _read_document(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read local store {self.path}: {e}")
            raise StorageError(f"Could not read local store: {e}")
        if not isinstance(data, dict):
            raise StorageError(f"Local store {self.path} is not a key-value document.")
        return data

    def _load(self) -> List[Transaction]:
        rows = self._read_document().get(self.key) or []
        transactions = []
        for row in rows:
            try:
                transactions.append(Transaction.model_validate(row))
            except ValidationError as e:
                # Skip invalid rows
                logger.error(f"Invalid transaction row in local store (id={row.get('id', 'N/A')}): {e}")
        return transactions

    def _save(self, transactions: List[Transaction]) -> None:
        document = self._read_document()
        document[self.key] = [t.model_dump(mode="json") for t in transactions]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            logger.error(f"Could not write local store {self.path}: {e}")
            raise StorageError(f"Could not write local store: {e}")

    async def list_all(self) -> List[Transaction]:
        async with self._lock:
            return _sort_newest_first(await asyncio.to_thread(self._load))

    async def get(self, transaction_id: int) -> Transaction:
        async with self._lock:
            for transaction in await asyncio.to_thread(self._load):
                if transaction.id == transaction_id:
                    return transaction
        raise TransactionNotFoundError(transaction_id)

    async def add(self, draft: TransactionDraft) -> Transaction:
        async with self._lock:
            transactions = await asyncio.to_thread(self._load)
            next_id = max((t.id for t in transactions), default=0) + 1
            transaction = _with_id(next_id, draft)
            transactions.append(transaction)
            await asyncio.to_thread(self._save, transactions)
        logger.info(f"Added transaction {transaction.id} to local store.")
        self._notify()
        return transaction

    async def update(self, transaction_id: int, draft: TransactionDraft) -> Transaction:
        async with self._lock:
            transactions = await asyncio.to_thread(self._load)
            for index, existing in enumerate(transactions):
                if existing.id == transaction_id:
                    break
            else:
                raise TransactionNotFoundError(transaction_id)
            updated = _with_id(transaction_id, draft)
            transactions[index] = updated
            await asyncio.to_thread(self._save, transactions)
        logger.info(f"Updated transaction {transaction_id} in local store.")
        self._notify()
        return updated

    async def delete(self, transaction_id: int) -> None:
        async with self._lock:
            transactions = await asyncio.to_thread(self._load)
            remaining = [t for t in transactions if t.id != transaction_id]
            if len(remaining) == len(transactions):
                raise TransactionNotFoundError(transaction_id)
            await asyncio.to_thread(self._save, remaining)
        logger.info(f"Deleted transaction {transaction_id} from local store.")
        self._notify()


class MongoTransactionStore(TransactionStore):
    """Stores transactions in the `transactions` collection, keyed by an integer `id` field."""

    def __init__(self, collection: AsyncIOMotorCollection, client: Any = None):
        super().__init__()
        self.collection = collection
        self.client = client
        self._lock = asyncio.Lock()

    @staticmethod
    def _to_document(transaction: Transaction) -> Dict[str, Any]:
        # Dates are kept as ISO strings, matching the Transaction shape
        return transaction.model_dump(mode="json")

    @staticmethod
    def _from_document(doc: Dict[str, Any]) -> Transaction:
        doc = dict(doc)
        doc.pop("_id", None)
        return Transaction.model_validate(doc)

    async def list_all(self) -> List[Transaction]:
        logger.info(f"Fetching all transactions from collection '{self.collection.name}'...")
        transactions = []
        try:
            cursor = self.collection.find().sort([("date", -1), ("id", -1)])
            async for doc in cursor:
                try:
                    transactions.append(self._from_document(doc))
                except ValidationError as e:
                    logger.error(f"Data validation error for document id {doc.get('id', 'N/A')}: {e}")
                    # Skip invalid documents
                    continue
        except Exception as e:
            logger.error(f"Database error fetching transactions: {e}")
            raise StorageError(f"Database error fetching transactions: {e}")
        logger.info(f"Fetched {len(transactions)} transactions successfully.")
        return transactions

    async def get(self, transaction_id: int) -> Transaction:
        try:
            doc = await self.collection.find_one({"id": transaction_id})
        except Exception as e:
            logger.error(f"Database error fetching transaction {transaction_id}: {e}")
            raise StorageError(f"Database error fetching transaction: {e}")
        if doc is None:
            raise TransactionNotFoundError(transaction_id)
        return self._from_document(doc)

    async def _next_id(self) -> int:
        cursor = self.collection.find({}, {"id": 1}).sort("id", -1).limit(1)
        async for doc in cursor:
            return int(doc["id"]) + 1
        return 1

    async def add(self, draft: TransactionDraft) -> Transaction:
        # The lock only orders writers of this process; ids are max+1 like the local store
        async with self._lock:
            try:
                transaction = _with_id(await self._next_id(), draft)
                await self.collection.insert_one(self._to_document(transaction))
            except Exception as e:
                logger.error(f"Database error inserting transaction: {e}")
                raise StorageError(f"Database error inserting transaction: {e}")
        logger.info(f"Inserted transaction {transaction.id} into '{self.collection.name}'.")
        self._notify()
        return transaction

    async def update(self, transaction_id: int, draft: TransactionDraft) -> Transaction:
        updated = _with_id(transaction_id, draft)
        try:
            result = await self.collection.replace_one({"id": transaction_id}, self._to_document(updated))
        except Exception as e:
            logger.error(f"Database error updating transaction {transaction_id}: {e}")
            raise StorageError(f"Database error updating transaction: {e}")
        if result.matched_count == 0:
            raise TransactionNotFoundError(transaction_id)
        logger.info(f"Updated transaction {transaction_id} in '{self.collection.name}'.")
        self._notify()
        return updated

    async def delete(self, transaction_id: int) -> None:
        try:
            result = await self.collection.delete_one({"id": transaction_id})
        except Exception as e:
            logger.error(f"Database error deleting transaction {transaction_id}: {e}")
            raise StorageError(f"Database error deleting transaction: {e}")
        if result.deleted_count == 0:
            raise TransactionNotFoundError(transaction_id)
        logger.info(f"Deleted transaction {transaction_id} from '{self.collection.name}'.")
        self._notify()

    async def close(self) -> None:
        if self.client is not None:
            logger.info("Closing MongoDB connection...")
            self.client.close()
            logger.info("MongoDB connection closed.")
