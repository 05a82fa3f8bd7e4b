"""
Identity generation for new ledger users.

The ledger only keeps a keypair reference (public address + secret key);
it never signs or submits anything with it.
"""

from dataclasses import dataclass, field
from typing import Protocol

from eth_account import Account


@dataclass(frozen=True)
class Keypair:
    public_key: str
    secret_key: str = field(repr=False)


class KeypairFactory(Protocol):
    def generate(self) -> Keypair:
        ...


class EthKeypairFactory:
    """Generates fresh random accounts with eth_account."""

    def generate(self) -> Keypair:
        account = Account.create()
        return Keypair(public_key=account.address, secret_key=account.key.hex())
