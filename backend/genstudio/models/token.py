import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Uuid, CheckConstraint
from genstudio.database import Base


class ChargeState(str, enum.Enum):
    PENDING = "pending"
    SETTLED = "settled"
    REFUNDED = "refunded"


class ActionKind(str, enum.Enum):
    AI_QUICK = "AI_QUICK"
    AI_PRO = "AI_PRO"
    CUTOUT = "CUTOUT"


class TokenBalance(Base):
    __tablename__ = "token_balances"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_token_balances_non_negative"),)

    user_id = Column(Uuid, primary_key=True)
    balance = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Charge(Base):
    __tablename__ = "token_charges"
    __table_args__ = (CheckConstraint("cost > 0", name="ck_token_charges_positive_cost"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    cost = Column(Integer, nullable=False)
    action = Column(String(20), nullable=False)  # AI_QUICK, AI_PRO, CUTOUT
    state = Column(String(20), nullable=False, default=ChargeState.PENDING.value, index=True)
    artifact_id = Column(Uuid, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    resolved_at = Column(DateTime, nullable=True)
