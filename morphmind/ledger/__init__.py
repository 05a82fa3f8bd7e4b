"""
LEDGER Module - Users, Positions and Sources

Provides:
- Record dataclasses and read-only views
- Error taxonomy
- LedgerStore (in-memory owner of all records, durable via a repository)
- Keypair generation for new users

The Ledger API lives in morphmind.ledger.api (it depends on the scorer
and accrual engines).
"""

from .errors import (
    LedgerError,
    NotFoundError,
    AlreadyExistsError,
    InvalidAmountError,
    InsufficientBalanceError,
    NoActiveStakesError,
    NoActiveSourceError,
    PersistenceError,
)
from .models import (
    User,
    Position,
    Source,
    WithdrawMode,
    UserView,
    SourceView,
    PositionView,
    PortfolioSnapshot,
    PlatformStatistics,
    WithdrawalResult,
    to_decimal,
)
from .identity import Keypair, KeypairFactory, EthKeypairFactory
from .store import LedgerStore, StoreTransaction

__all__ = [
    "LedgerError",
    "NotFoundError",
    "AlreadyExistsError",
    "InvalidAmountError",
    "InsufficientBalanceError",
    "NoActiveStakesError",
    "NoActiveSourceError",
    "PersistenceError",
    "User",
    "Position",
    "Source",
    "WithdrawMode",
    "UserView",
    "SourceView",
    "PositionView",
    "PortfolioSnapshot",
    "PlatformStatistics",
    "WithdrawalResult",
    "to_decimal",
    "Keypair",
    "KeypairFactory",
    "EthKeypairFactory",
    "LedgerStore",
    "StoreTransaction",
]
