"""Error types shared by the extractors, the store and the routes."""


class FinanceError(Exception):
    """Base class for application errors."""


class MissingCredentialError(FinanceError):
    """Raised before an extraction attempt when no model API key is configured."""


class ParseError(FinanceError, ValueError):
    """The extractor output could not be turned into valid transaction data."""


class ExtractionServiceError(FinanceError, ConnectionError):
    """The hosted model call itself failed."""


class StorageError(FinanceError, ConnectionError):
    """A read or write against the transaction store failed."""


class TransactionNotFoundError(FinanceError, KeyError):
    def __init__(self, transaction_id: int):
        super().__init__(transaction_id)
        self.transaction_id = transaction_id

    def __str__(self) -> str:
        return f"Transaction {self.transaction_id} not found."
