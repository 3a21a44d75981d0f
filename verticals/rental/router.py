"""Rental API router: transactions, pickups and returns.

Outcome failures map to HTTP statuses:
- validation -> 422 with the findings list
- conflict (race, repeated return) -> 409
- not found -> 404
StoreUnavailableError is turned into a 503 by the app's exception handler.
"""

from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from api.middleware import get_current_actor
from core.database import get_session_factory
from verticals.rental.audit import ActivityLogAuditSink, AuditSink, SafeAuditSink
from verticals.rental.config import RentalConfig
from verticals.rental.errors import TransactionNotFoundError
from verticals.rental.models.schemas import OutcomeResponse, PickupRequest, ReturnRequest
from verticals.rental.outcome import EngineOutcome, FailureKind
from verticals.rental.pickup import PickupEngine
from verticals.rental.returns import ReturnEngine
from verticals.rental.store import SqlAlchemyTransactionStore, TransactionStore

router = APIRouter()

FAILURE_STATUS = {
    FailureKind.VALIDATION: 422,
    FailureKind.CONFLICT: 409,
    FailureKind.NOT_FOUND: 404,
}


# ============================================================================
# Dependencies
# ============================================================================

@lru_cache
def get_config() -> RentalConfig:
    return RentalConfig.from_env()


def get_store(config: RentalConfig = Depends(get_config)) -> TransactionStore:
    return SqlAlchemyTransactionStore(
        get_session_factory(),
        commit_timeout=config.concurrency.commit_timeout_seconds,
    )


@lru_cache
def get_audit_sink() -> AuditSink:
    return SafeAuditSink(ActivityLogAuditSink(get_session_factory()))


def get_pickup_engine(
    store: TransactionStore = Depends(get_store),
    audit: AuditSink = Depends(get_audit_sink),
    config: RentalConfig = Depends(get_config),
) -> PickupEngine:
    return PickupEngine(store, audit=audit, config=config)


def get_return_engine(
    store: TransactionStore = Depends(get_store),
    audit: AuditSink = Depends(get_audit_sink),
    config: RentalConfig = Depends(get_config),
) -> ReturnEngine:
    return ReturnEngine(store, audit=audit, config=config)


def respond(outcome: EngineOutcome) -> JSONResponse:
    status_code = 200 if outcome.success else FAILURE_STATUS[outcome.failure]
    return JSONResponse(status_code=status_code, content=outcome.to_dict())


# ============================================================================
# Transactions
# ============================================================================

@router.get("/transactions/{transaction_id}")
async def get_transaction(transaction_id: str, store: TransactionStore = Depends(get_store)):
    try:
        snapshot = await store.read_snapshot(transaction_id)
    except TransactionNotFoundError:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return snapshot.to_dict()


@router.get("/transactions/{transaction_id}/pickup-summary")
async def get_pickup_summary(transaction_id: str, engine: PickupEngine = Depends(get_pickup_engine)):
    summary = await engine.pickup_summary(transaction_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return summary


# ============================================================================
# Pickups
# ============================================================================

@router.post("/pickups/validate", response_model=OutcomeResponse)
async def validate_pickup(request: PickupRequest, engine: PickupEngine = Depends(get_pickup_engine)):
    """Dry-run a pickup and return every finding."""
    return respond(await engine.validate(request))


@router.post("/pickups", response_model=OutcomeResponse)
async def process_pickup(request: PickupRequest, engine: PickupEngine = Depends(get_pickup_engine)):
    return respond(await engine.process_pickup(request, actor=get_current_actor()))


# ============================================================================
# Returns
# ============================================================================

@router.post("/returns/preview", response_model=OutcomeResponse)
async def preview_return(request: ReturnRequest, engine: ReturnEngine = Depends(get_return_engine)):
    """Validate a return and price its penalties without committing."""
    return respond(await engine.preview(request))


@router.post("/returns", response_model=OutcomeResponse)
async def process_return(request: ReturnRequest, engine: ReturnEngine = Depends(get_return_engine)):
    return respond(await engine.process_return(request, actor=get_current_actor()))
