"""
SQLAlchemy Models for MorphMind

Database schema for:
- Users (ledger accounts)
- Positions (stakes)
- Sources (yield venues)

Decimal amounts are stored as text so they round-trip exactly on every backend.
"""

from datetime import datetime, UTC

from sqlalchemy import Column, String, Boolean, DateTime, JSON, Index
from sqlalchemy.orm import declarative_base

from morphmind.utils.clock import ensure_utc

Base = declarative_base()


def _utcnow():
    return datetime.now(UTC)


# ==============================================================================
# USERS
# ==============================================================================

class UserRecord(Base):
    """Ledger account keyed by the chat/account id"""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    display_name = Column(String(255), nullable=False, default='')

    # Keypair reference
    public_key = Column(String(128), nullable=False, unique=True)
    secret_key = Column(String(256), nullable=False)

    # Accounting (decimal text)
    balance = Column(String(64), nullable=False, default='0')
    total_staked = Column(String(64), nullable=False, default='0')
    total_earned = Column(String(64), nullable=False, default='0')

    position_ids = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'display_name': self.display_name,
            'public_key': self.public_key,
            'secret_key': self.secret_key,
            'balance': self.balance,
            'total_staked': self.total_staked,
            'total_earned': self.total_earned,
            'position_ids': list(self.position_ids or []),
            'created_at': ensure_utc(self.created_at).isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserRecord":
        created_at = data.get('created_at')
        return cls(
            id=data['id'],
            display_name=data.get('display_name') or '',
            public_key=data['public_key'],
            secret_key=data['secret_key'],
            balance=data['balance'],
            total_staked=data['total_staked'],
            total_earned=data['total_earned'],
            position_ids=list(data.get('position_ids') or []),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )

    def __repr__(self):
        return f"<UserRecord(id={self.id}, staked={self.total_staked})>"


# ==============================================================================
# POSITIONS
# ==============================================================================

class PositionRecord(Base):
    """Stake bound to a source"""
    __tablename__ = "positions"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    source_id = Column(String(64), nullable=False, index=True)

    amount = Column(String(64), nullable=False)
    shares = Column(String(64), nullable=False)
    earned = Column(String(64), nullable=False, default='0')
    contributed = Column(String(64), nullable=True)  # NULL on rows written before it existed
    start_rate = Column(String(32), nullable=False)
    current_rate = Column(String(32), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    last_accrual = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_position_user_source', 'user_id', 'source_id'),
    )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'source_id': self.source_id,
            'amount': self.amount,
            'shares': self.shares,
            'earned': self.earned,
            'contributed': self.contributed,
            'start_rate': self.start_rate,
            'current_rate': self.current_rate,
            'created_at': ensure_utc(self.created_at).isoformat(),
            'last_accrual': ensure_utc(self.last_accrual).isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PositionRecord":
        return cls(
            id=data['id'],
            user_id=data['user_id'],
            source_id=data['source_id'],
            amount=data['amount'],
            shares=data['shares'],
            earned=data['earned'],
            contributed=data.get('contributed'),
            start_rate=data['start_rate'],
            current_rate=data['current_rate'],
            created_at=datetime.fromisoformat(data['created_at']),
            last_accrual=datetime.fromisoformat(data['last_accrual']),
        )

    def __repr__(self):
        return f"<PositionRecord(id={self.id}, user={self.user_id}, source={self.source_id})>"


# ==============================================================================
# SOURCES
# ==============================================================================

class SourceRecord(Base):
    """Yield venue with drifting rate"""
    __tablename__ = "sources"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    rate = Column(String(32), nullable=False)
    volume = Column(String(64), nullable=False, default='0')
    active = Column(Boolean, nullable=False, default=True, index=True)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'rate': self.rate,
            'volume': self.volume,
            'active': bool(self.active),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SourceRecord":
        return cls(
            id=data['id'],
            name=data['name'],
            rate=data['rate'],
            volume=data['volume'],
            active=bool(data['active']),
        )

    def __repr__(self):
        return f"<SourceRecord(id={self.id}, rate={self.rate}, active={self.active})>"
