from fastapi import APIRouter, Depends, Response
from genstudio.config import get_settings
from genstudio.dependencies import get_ledger
from genstudio.errors import ErrorCode, InvalidInput
from genstudio.middleware.auth import CurrentUser, get_current_user
from genstudio.models.token import ActionKind
from genstudio.schemas.token import SPEND_ACTIONS, BalanceResponse, SpendRequest, SpendResponse
from genstudio.services.ledger import LedgerClient

router = APIRouter(prefix="/api/tokens", tags=["Tokens"])


def action_cost(action: ActionKind) -> int:
    settings = get_settings()
    return {
        ActionKind.CUTOUT: settings.COST_CUTOUT,
        ActionKind.AI_QUICK: settings.COST_CHEAP,
        ActionKind.AI_PRO: settings.COST_STRONG,
    }[action]


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    current_user: CurrentUser = Depends(get_current_user),
    ledger: LedgerClient = Depends(get_ledger),
):
    return BalanceResponse(balance=await ledger.get_balance(current_user.id))


@router.post("/spend", response_model=SpendResponse)
async def spend_tokens(
    body: SpendRequest,
    response: Response,
    current_user: CurrentUser = Depends(get_current_user),
    ledger: LedgerClient = Depends(get_ledger),
):
    action = SPEND_ACTIONS.get((body.action or "").strip().upper())
    if action is None:
        raise InvalidInput(
            "Unknown action",
            code=ErrorCode.BAD_ACTION,
            details={"allowed": sorted(SPEND_ACTIONS)},
        )

    receipt = await ledger.spend(current_user.id, action_cost(action), action)
    response.headers["Cache-Control"] = "no-store"
    response.headers["X-Token-Balance"] = str(receipt.balance)
    return SpendResponse(action=action, cost=receipt.cost, balance=receipt.balance, charge_id=receipt.charge_id)
