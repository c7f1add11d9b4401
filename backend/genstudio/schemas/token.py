from typing import Optional
from uuid import UUID
from pydantic import BaseModel
from genstudio.models.token import ActionKind

# noms d'actions acceptés par /api/tokens/spend
SPEND_ACTIONS = {
    "CUTOUT": ActionKind.CUTOUT,
    "QUICK": ActionKind.AI_QUICK,
    "AI_QUICK": ActionKind.AI_QUICK,
    "PRO": ActionKind.AI_PRO,
    "AI_PRO": ActionKind.AI_PRO,
}


class BalanceResponse(BaseModel):
    balance: int


class SpendRequest(BaseModel):
    action: Optional[str] = None


class SpendResponse(BaseModel):
    ok: bool = True
    action: ActionKind
    cost: int
    balance: int
    charge_id: UUID
