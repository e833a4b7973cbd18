"""API Routes for transactions, dashboard data and text extraction"""
from fastapi import APIRouter, HTTPException, Body, Depends, Request
from fastapi.responses import JSONResponse
from typing import Any, List, Annotated, Literal, Optional
from services import transactions_service
from services.transaction_store import TransactionStore
from services.transactions_service import DashboardView
from models.transaction import DashboardOverview, ExtractionResult, Transaction, TransactionDraft
from utils import heuristic_extractor
from utils.errors import (
    ExtractionServiceError,
    MissingCredentialError,
    ParseError,
    StorageError,
    TransactionNotFoundError,
)
from utils.limiter import limiter, extract_rate_limit
from utils.openai_agent import RemoteExtractor
import logging

from pydantic import BaseModel, Field

REPHRASE_HINT = "Could not understand the transaction. Try rephrasing, e.g. 'صرفت ٥٠ جنيه على الطعام' or 'spent $25 on coffee'."


class MessageInput(BaseModel):
    message: str


class ExtractInput(BaseModel):
    message: Optional[str] = None
    action: Optional[Literal['analyze', 'summarize']] = None
    data: Any = None


class FromTextInput(BaseModel):
    message: str
    engine: Optional[Literal['local', 'remote']] = None


class SavedTransactions(BaseModel):
    transactions: List[Transaction] = Field(default_factory=list)


router = APIRouter()
logger = logging.getLogger(__name__)

# --- Dependency Functions ---
def get_store(request: Request) -> TransactionStore:
    """Dependency to get the transaction store from the application state."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        logger.error("Transaction store not found in application state. Check storage configuration.")
        raise HTTPException(status_code=503, detail="Storage service not available.")
    return store


def get_dashboard(request: Request) -> DashboardView:
    dashboard = getattr(request.app.state, "dashboard", None)
    if dashboard is None:
        raise HTTPException(status_code=503, detail="Storage service not available.")
    return dashboard


def get_remote_extractor(request: Request) -> RemoteExtractor:
    return request.app.state.remote_extractor


def get_policy(request: Request) -> heuristic_extractor.ClassificationPolicy:
    return request.app.state.policy


StoreDep = Annotated[TransactionStore, Depends(get_store)]
DashboardDep = Annotated[DashboardView, Depends(get_dashboard)]
RemoteDep = Annotated[RemoteExtractor, Depends(get_remote_extractor)]
PolicyDep = Annotated[heuristic_extractor.ClassificationPolicy, Depends(get_policy)]


def error_response(exc: Exception) -> JSONResponse:
    """Maps extraction/storage failures to an `{"error": ...}` payload with a non-2xx status."""
    if isinstance(exc, MissingCredentialError):
        status_code, message = 401, str(exc)
    elif isinstance(exc, ParseError):
        status_code, message = 422, REPHRASE_HINT
    elif isinstance(exc, ExtractionServiceError):
        status_code, message = 502, "The extraction service is unavailable. Please try again later."
    elif isinstance(exc, StorageError):
        status_code, message = 503, "Could not save the transaction. Please try again."
    else:
        status_code, message = 500, "An unexpected server error occurred."
    return JSONResponse(status_code=status_code, content={"error": message})


# --- Transaction Routes ---

@router.get("/transactions", response_model=List[Transaction], summary="Get All Transactions", description="Retrieves all transactions, newest first.")
async def get_transactions(store: StoreDep) -> List[Transaction]:
    logger.info("GET /transactions endpoint called.")
    try:
        return await transactions_service.list_transactions(store)
    except StorageError as se:
        logger.error(f"Storage error fetching transactions: {se}")
        raise HTTPException(status_code=503, detail=f"Storage error: {se}")


@router.get("/transactions/{transaction_id}", response_model=Transaction, summary="Get Transaction")
async def get_transaction(transaction_id: int, store: StoreDep) -> Transaction:
    try:
        return await store.get(transaction_id)
    except TransactionNotFoundError as nf:
        raise HTTPException(status_code=404, detail=str(nf))
    except StorageError as se:
        logger.error(f"Storage error fetching transaction {transaction_id}: {se}")
        raise HTTPException(status_code=503, detail=f"Storage error: {se}")


@router.post("/transactions", response_model=Transaction, status_code=201, summary="Add Transaction")
async def add_transaction(draft: Annotated[TransactionDraft, Body(...)], store: StoreDep) -> Transaction:
    logger.info(f"POST /transactions endpoint called: {draft.type} {draft.amount} '{draft.category}'")
    try:
        return await transactions_service.create_transaction(store, draft)
    except StorageError as se:
        logger.error(f"Storage error adding transaction: {se}")
        raise HTTPException(status_code=503, detail=f"Storage error: {se}")


@router.put("/transactions/{transaction_id}", response_model=Transaction, summary="Replace Transaction", description="Replaces every field of an existing transaction.")
async def update_transaction(transaction_id: int, draft: Annotated[TransactionDraft, Body(...)], store: StoreDep) -> Transaction:
    logger.info(f"PUT /transactions/{transaction_id} endpoint called.")
    try:
        return await transactions_service.replace_transaction(store, transaction_id, draft)
    except TransactionNotFoundError as nf:
        logger.warning(f"Update rejected: {nf}")
        raise HTTPException(status_code=404, detail=str(nf))
    except StorageError as se:
        logger.error(f"Storage error updating transaction {transaction_id}: {se}")
        raise HTTPException(status_code=503, detail=f"Storage error: {se}")


@router.delete("/transactions/{transaction_id}", summary="Delete Transaction")
async def delete_transaction_route(transaction_id: int, store: StoreDep):
    try:
        return await transactions_service.delete_transaction(store, transaction_id)
    except TransactionNotFoundError as nf:
        logger.warning(f"Delete rejected: {nf}")
        raise HTTPException(status_code=404, detail=str(nf))
    except StorageError as se:
        logger.error(f"Storage error deleting transaction {transaction_id}: {se}")
        raise HTTPException(status_code=503, detail=f"Storage error: {se}")


@router.get("/dashboard", response_model=DashboardOverview, summary="Dashboard Data", description="Totals, monthly income/expense series and expense categories.")
async def get_dashboard_overview(dashboard: DashboardDep) -> DashboardOverview:
    try:
        return await dashboard.overview()
    except StorageError as se:
        logger.error(f"Storage error computing dashboard: {se}")
        raise HTTPException(status_code=503, detail=f"Storage error: {se}")


# --- Extraction Routes ---

@router.post("/extract", summary="Extract Transactions From Text", description="Remote extraction: `{message}` returns a list, `{action: analyze}` one transaction with advice, `{action: summarize}` a summary.")
@limiter.limit(extract_rate_limit)
async def extract(request: Request, payload: Annotated[ExtractInput, Body(...)], remote: RemoteDep, store: StoreDep):
    try:
        if payload.action is None:
            if not payload.message or not payload.message.strip():
                return JSONResponse(status_code=400, content={"error": "Message cannot be empty."})
            logger.info(f"POST /extract called with message: {payload.message[:50]}...")
            results = await remote.analyze_many(payload.message)
            return [r.model_dump(exclude_none=True) for r in results]

        if payload.action == "analyze":
            data = payload.data
            text = (data.get("text") or data.get("description")) if isinstance(data, dict) else data
            if not isinstance(text, str) or not text.strip():
                return JSONResponse(status_code=400, content={"error": "Nothing to analyze."})
            logger.info(f"POST /extract action=analyze: {text[:50]}...")
            result = await remote.analyze_with_advice(text)
            return result.model_dump()

        # summarize
        if payload.data is None:
            transactions = await transactions_service.list_transactions(store)
        else:
            try:
                transactions = [Transaction.model_validate(item) for item in payload.data]
            except Exception as e:
                logger.warning(f"Summarize rejected invalid transaction data: {e}")
                return JSONResponse(status_code=400, content={"error": "data must be a list of transactions."})
        logger.info(f"POST /extract action=summarize over {len(transactions)} transactions.")
        return {"summary": await remote.summarize(transactions)}
    except (MissingCredentialError, ParseError, ExtractionServiceError, StorageError) as e:
        logger.error(f"Extraction failed: {e}")
        return error_response(e)


@router.post("/extract/local", response_model=ExtractionResult, summary="Extract Transaction Locally", description="Keyword/regex extraction without any external call.")
@limiter.limit(extract_rate_limit)
async def extract_local(request: Request, payload: Annotated[MessageInput, Body(...)], policy: PolicyDep):
    logger.info(f"POST /extract/local called with message: {payload.message[:50]}...")
    result = heuristic_extractor.analyze(payload.message, policy)
    if result is None:
        logger.warning("Local extraction could not classify the message.")
        return JSONResponse(status_code=422, content={"error": REPHRASE_HINT})
    return result


@router.post("/transactions/from-text", status_code=201, response_model=SavedTransactions, summary="Add Transactions From Text", description="Extracts transactions from a message and stores them.")
@limiter.limit(extract_rate_limit)
async def add_from_text(request: Request, payload: Annotated[FromTextInput, Body(...)], remote: RemoteDep, policy: PolicyDep, store: StoreDep):
    engine = payload.engine or request.app.state.settings.extractor_engine
    logger.info(f"POST /transactions/from-text called (engine: {engine}) with message: {payload.message[:50]}...")
    if not payload.message.strip():
        return JSONResponse(status_code=400, content={"error": "Message cannot be empty."})

    try:
        if engine == "local":
            result = heuristic_extractor.analyze(payload.message, policy)
            results: List[ExtractionResult] = [result] if result is not None else []
        else:
            results = await remote.analyze_many(payload.message)

        if not results:
            logger.warning("No transactions extracted from message.")
            return JSONResponse(status_code=422, content={"error": REPHRASE_HINT})

        saved = await transactions_service.accept_extractions(store, results)
        return SavedTransactions(transactions=saved)
    except (MissingCredentialError, ParseError, ExtractionServiceError, StorageError) as e:
        logger.error(f"Adding transactions from text failed: {e}")
        return error_response(e)
