from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from .deps import get_supervisor
from ....core.domain.entities.ledger_entities import QuoteResult, ResourceIdentity, SagaOutcome
from ....core.domain.entities.operation_intent import OperationIntent
from ....core.domain.enums.saga_enums import OperationKind, SagaState
from ....core.domain.exceptions import ResolutionExhaustedError, SagaBusyError
from ....workers.saga_supervisor import SagaSupervisor

router = APIRouter(prefix="/api", tags=["sagas"])

# =========================
# Sagas
# =========================

class SagaTriggerDTO(BaseModel):
    actor_id: str = Field(..., examples=["0x9f2c..."])
    asset_id: str
    amount: int = Field(..., ge=0, description="raw token units")
    operation_kind: OperationKind
    auxiliary_asset_id: Optional[str] = None
    auxiliary_amount: Optional[int] = None
    reference_id: Optional[int] = None
    min_amount_out: Optional[int] = None
    max_slippage_bps: Optional[int] = None
    fee_rate_bps: Optional[int] = None

class SagaAcceptedDTO(BaseModel):
    saga_id: str
    actor_id: str
    operation_kind: OperationKind
    state: SagaState

class SagaStatusDTO(BaseModel):
    actor_id: str
    operation_kind: OperationKind
    state: SagaState
    last_outcome: Optional[SagaOutcome] = None

@router.post("/sagas", response_model=SagaAcceptedDTO, status_code=202)
async def trigger_saga(dto: SagaTriggerDTO, sup: SagaSupervisor = Depends(get_supervisor)):
    """
    Start the approval-gated saga for the intent. Returns at once; poll
    GET /api/sagas/{actor_id}/{kind} for progress.
    A pending saga for the same actor/kind still waiting on its approval is superseded.
    """
    try:
        intent = OperationIntent(**dto.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    try:
        run = sup.saga_driver.start(intent)
    except SagaBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return SagaAcceptedDTO(
        saga_id=run.saga_id,
        actor_id=intent.actor_id,
        operation_kind=intent.operation_kind,
        state=run.state,
    )

@router.get("/sagas/{actor_id}/{kind}", response_model=SagaStatusDTO)
async def get_saga_state(actor_id: str, kind: OperationKind, sup: SagaSupervisor = Depends(get_supervisor)):
    driver = sup.saga_driver
    return SagaStatusDTO(
        actor_id=actor_id.lower(),
        operation_kind=kind,
        state=driver.current_state(actor_id, kind),
        last_outcome=driver.last_outcome(actor_id, kind),
    )

# =========================
# Quotes
# =========================

class QuoteInputDTO(BaseModel):
    asset_in: str
    asset_out: str
    value: str = Field("", description="decimal token amount as typed, e.g. '1.5'")

class QuoteAcceptedDTO(BaseModel):
    seq: int
    amount: Optional[int] = None

@router.post("/quotes", response_model=QuoteAcceptedDTO, status_code=202)
async def push_quote_input(dto: QuoteInputDTO, sup: SagaSupervisor = Depends(get_supervisor)):
    """
    Feed the latest amount field value. The quote is fetched once the input
    has been quiet for the configured period.
    """
    inp = sup.quotes.push(dto.asset_in, dto.asset_out, dto.value)
    return QuoteAcceptedDTO(seq=inp.seq, amount=inp.amount)

@router.get("/quotes/latest", response_model=Optional[QuoteResult])
async def latest_quote(sup: SagaSupervisor = Depends(get_supervisor)):
    return sup.quotes.latest_quote()

# =========================
# Shadow ledger / resources
# =========================

class ShadowTotalsDTO(BaseModel):
    totals: Dict[str, int]
    aggregate: int

@router.get("/shadow-ledger", response_model=ShadowTotalsDTO)
async def shadow_totals(sup: SagaSupervisor = Depends(get_supervisor)):
    return ShadowTotalsDTO(totals=sup.shadow_ledger.totals(), aggregate=sup.shadow_ledger.aggregate())

@router.get("/resources/{asset_a}/{asset_b}", response_model=ResourceIdentity)
async def resolve_resource(asset_a: str, asset_b: str, sup: SagaSupervisor = Depends(get_supervisor)):
    try:
        return await sup.resolver.resolve(asset_a, asset_b)
    except ResolutionExhaustedError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
