"""
Player and Bank

The player's wallet and share ledger. Every spend path in the game goes
through Bank.try_withdraw, which checks and debits in one step so a balance
can never go negative.
"""

import logging
from typing import Any, Dict, Optional

from reactive import Observable
from snapshots import BankSnapshot, PlayerSnapshot

logger = logging.getLogger(__name__)


class Bank:
    """Holds the player's currency balance."""

    def __init__(self, balance: float = 0.0):
        if balance < 0:
            raise ValueError(f"balance cannot be negative, got {balance}")
        self.balance = Observable(float(balance))

    def deposit(self, amount: float) -> None:
        if amount < 0:
            raise ValueError(f"deposit amount must be non-negative, got {amount}")
        self.balance.value = self.balance.peek() + amount

    def try_withdraw(self, amount: float) -> bool:
        """
        Debit `amount` if the balance covers it.

        Returns:
            True if the funds were withdrawn, False (balance untouched) otherwise
        """
        if amount < 0:
            raise ValueError(f"withdrawal amount must be non-negative, got {amount}")
        balance = self.balance.peek()
        if balance < amount:
            return False
        self.balance.value = balance - amount
        return True

    def to_json(self) -> Dict[str, Any]:
        return BankSnapshot(balance=self.balance.peek()).dump()

    @classmethod
    def restore(cls, saved_bank: Any) -> "Bank":
        bank = cls()
        snapshot = BankSnapshot.load(saved_bank)
        if snapshot is not None and snapshot.balance is not None:
            bank.balance.value = snapshot.balance
        return bank


class Player:
    """
    The person playing the game.

    Owns the bank and a ledger of shares held, keyed by company name so the
    player never holds references into the stock exchange.
    """

    def __init__(self, bank: Optional[Bank] = None, owned_shares: Optional[Dict[str, int]] = None):
        self.bank = bank if bank is not None else Bank()
        self.owned_shares: Dict[str, int] = dict(owned_shares or {})

    def shares_of(self, company_name: str) -> int:
        return self.owned_shares.get(company_name, 0)

    def add_shares(self, company_name: str, shares: int) -> None:
        if shares <= 0:
            raise ValueError(f"shares must be positive, got {shares}")
        self.owned_shares[company_name] = self.shares_of(company_name) + shares

    def remove_shares(self, company_name: str, shares: int) -> None:
        if shares <= 0:
            raise ValueError(f"shares must be positive, got {shares}")
        held = self.shares_of(company_name)
        if shares > held:
            raise ValueError(f"Cannot remove {shares} shares of {company_name}, only {held} held")
        remaining = held - shares
        if remaining:
            self.owned_shares[company_name] = remaining
        else:
            del self.owned_shares[company_name]

    def to_json(self) -> Dict[str, Any]:
        return PlayerSnapshot(bank=self.bank.to_json(), owned_shares=dict(self.owned_shares)).dump()

    @classmethod
    def restore(cls, saved_player: Any) -> "Player":
        snapshot = PlayerSnapshot.load(saved_player)
        if snapshot is None:
            return cls()
        bank = Bank.restore(snapshot.bank)
        owned_shares = {name: shares for name, shares in (snapshot.owned_shares or {}).items() if shares > 0}
        return cls(bank=bank, owned_shares=owned_shares)
