from genstudio.models.token import TokenBalance, Charge, ChargeState, ActionKind
from genstudio.models.artifact import Artifact

__all__ = [
    "TokenBalance", "Charge", "ChargeState", "ActionKind",
    "Artifact",
]
