"""
Ledger records

Plain dataclasses for the three record types owned by the LedgerStore:
- User: identity, liquid balance, aggregates, owned position ids
- Position: one stake bound to a source, accruing over time
- Source: a yield venue with a drifting rate

Records convert to/from JSON-friendly dicts (decimals as strings,
timestamps as ISO-8601 UTC) for the storage repository.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from morphmind.utils.clock import ensure_utc

ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Convert a number or numeric string to Decimal without float artefacts.

    Raises:
        InvalidOperation: If value is not numeric
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f"Not a number: {value!r}")
    if isinstance(value, (int, str)):
        return Decimal(value.strip() if isinstance(value, str) else value)
    if isinstance(value, float):
        return Decimal(repr(value))
    raise InvalidOperation(f"Not a number: {value!r}")


def _iso(value: datetime) -> str:
    return ensure_utc(value).isoformat()


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value))


class WithdrawMode(str, Enum):
    """Withdrawal options offered to the user."""
    EARNINGS_ONLY = "EARNINGS_ONLY"  # Earnings to balance, positions stay live
    FULL = "FULL"                    # Principal + earnings to balance, positions closed


@dataclass
class User:
    """
    Ledger account for one chat user.

    Invariant: total_staked == sum of owned live position amounts.
    """
    id: str
    display_name: str
    public_key: str
    secret_key: str = field(repr=False)
    balance: Decimal = ZERO
    total_staked: Decimal = ZERO
    total_earned: Decimal = ZERO
    position_ids: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'display_name': self.display_name,
            'public_key': self.public_key,
            'secret_key': self.secret_key,
            'balance': str(self.balance),
            'total_staked': str(self.total_staked),
            'total_earned': str(self.total_earned),
            'position_ids': list(self.position_ids),
            'created_at': _iso(self.created_at) if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=str(data['id']),
            display_name=data.get('display_name') or '',
            public_key=data['public_key'],
            secret_key=data['secret_key'],
            balance=to_decimal(data.get('balance', '0')),
            total_staked=to_decimal(data.get('total_staked', '0')),
            total_earned=to_decimal(data.get('total_earned', '0')),
            position_ids=list(data.get('position_ids') or []),
            created_at=_parse_ts(data['created_at']) if data.get('created_at') else None,
        )


@dataclass
class Position:
    """
    A single stake of principal bound to one source.

    `amount` is the live principal and grows as reward compounds into it.
    `contributed` is the principal the user staked; accrual never changes it.
    `shares` mirrors `amount` at all times (liquidity accounting).
    `start_rate` is the rate at first bind and never changes.
    """
    id: str
    user_id: str
    amount: Decimal
    source_id: str
    start_rate: Decimal
    current_rate: Decimal
    created_at: datetime
    last_accrual: datetime
    earned: Decimal = ZERO
    shares: Decimal = ZERO
    contributed: Optional[Decimal] = None

    def __post_init__(self):
        self.shares = self.amount
        if self.contributed is None:
            self.contributed = self.amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'amount': str(self.amount),
            'source_id': self.source_id,
            'start_rate': str(self.start_rate),
            'current_rate': str(self.current_rate),
            'earned': str(self.earned),
            'shares': str(self.shares),
            'contributed': str(self.contributed),
            'created_at': _iso(self.created_at),
            'last_accrual': _iso(self.last_accrual),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        return cls(
            id=str(data['id']),
            user_id=str(data['user_id']),
            amount=to_decimal(data['amount']),
            source_id=data['source_id'],
            start_rate=to_decimal(data['start_rate']),
            current_rate=to_decimal(data['current_rate']),
            earned=to_decimal(data.get('earned', '0')),
            contributed=to_decimal(data.get('contributed') or data['amount']),
            created_at=_parse_ts(data['created_at']),
            last_accrual=_parse_ts(data['last_accrual']),
        )


@dataclass
class Source:
    """Yield venue. Rate is annualized percent, bounded by the configured floor/ceiling."""
    id: str
    name: str
    rate: Decimal
    volume: Decimal = ZERO
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'rate': str(self.rate),
            'volume': str(self.volume),
            'active': self.active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Source":
        return cls(
            id=str(data['id']),
            name=data['name'],
            rate=to_decimal(data['rate']),
            volume=to_decimal(data.get('volume', '0')),
            active=bool(data.get('active', True)),
        )


# ==============================================================================
# READ-ONLY SNAPSHOTS (returned to the calling interface)
# ==============================================================================

@dataclass(frozen=True)
class SourceView:
    id: str
    name: str
    rate: Decimal
    volume: Decimal
    active: bool

    @classmethod
    def of(cls, source: Source) -> "SourceView":
        return cls(source.id, source.name, source.rate, source.volume, source.active)


@dataclass(frozen=True)
class PositionView:
    id: str
    source_id: str
    source_name: str
    amount: Decimal
    shares: Decimal
    start_rate: Decimal
    current_rate: Decimal
    earned: Decimal
    created_at: datetime
    last_accrual: datetime


@dataclass(frozen=True)
class UserView:
    """User snapshot without secret material."""
    id: str
    display_name: str
    public_key: str
    balance: Decimal
    total_staked: Decimal
    total_earned: Decimal
    position_ids: Tuple[str, ...]
    created_at: Optional[datetime]

    @classmethod
    def of(cls, user: User) -> "UserView":
        return cls(
            id=user.id,
            display_name=user.display_name,
            public_key=user.public_key,
            balance=user.balance,
            total_staked=user.total_staked,
            total_earned=user.total_earned,
            position_ids=tuple(user.position_ids),
            created_at=user.created_at,
        )


@dataclass(frozen=True)
class PortfolioSnapshot:
    user_id: str
    balance: Decimal
    total_staked: Decimal
    total_earned: Decimal
    roi: Decimal  # total_earned / total_staked, 0 when nothing is staked
    positions: Tuple[PositionView, ...]
    accrued: Decimal  # reward accrued by the lazy accrual of this read


@dataclass(frozen=True)
class PlatformStatistics:
    total_users: int
    total_staked: Decimal
    total_earned: Decimal
    active_sources: int
    average_rate: Optional[Decimal]  # None when no source is active


@dataclass(frozen=True)
class WithdrawalResult:
    user_id: str
    mode: WithdrawMode
    amount: Decimal
    balance: Decimal
    positions_closed: int
