"""
Token collaborator.

The marketplace moves a single fungible asset through ``TokenLedger``.
Every call returns a boolean that the caller must check; ``False`` means the
movement did not happen. ``checkpoint``/``revert`` let the marketplace undo a
whole call the way a reverted transaction would.

``InMemoryToken`` is an ERC-20 style ledger with allowances, used by the API
and the tests. Recipient hooks run after a credit lands, which is how a
malicious counterpart gets a chance to call back into the marketplace.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from .errors import TransferFailed

logger = logging.getLogger(__name__)

ReceiveHook = Callable[[str, int], None]


def require_transfer(ok: bool, description: str) -> None:
    if not ok:
        logger.warning("Token transfer failed: %s", description)
        raise TransferFailed(f"Transfer failed: {description}")


class TokenLedger(ABC):
    """Handle on the token as seen from one account (the escrow)."""

    @abstractmethod
    def balance_of(self, account: str) -> int:
        pass

    @abstractmethod
    def transfer(self, to: str, amount: int) -> bool:
        """Move ``amount`` from the bound account to ``to``."""
        pass

    @abstractmethod
    def transfer_from(self, sender: str, to: str, amount: int) -> bool:
        """Move ``amount`` from ``sender`` to ``to`` using the bound account's allowance."""
        pass

    @abstractmethod
    def checkpoint(self) -> Any:
        pass

    @abstractmethod
    def revert(self, checkpoint: Any) -> None:
        pass


class InMemoryToken:
    def __init__(self, symbol: str = "YD"):
        self.symbol = symbol
        self.balances: dict[str, int] = {}
        self.allowances: dict[tuple[str, str], int] = {}
        self.receive_hooks: dict[str, ReceiveHook] = {}
        self.blocked: set[str] = set()

    def mint(self, to: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        self.balances[to] = self.balances.get(to, 0) + amount

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            return False
        self.allowances[(owner, spender)] = amount
        return True

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    @property
    def total_supply(self) -> int:
        return sum(self.balances.values())

    def on_receive(self, account: str, hook: Optional[ReceiveHook]) -> None:
        if hook is None:
            self.receive_hooks.pop(account, None)
        else:
            self.receive_hooks[account] = hook

    def transfer_as(self, sender: str, to: str, amount: int) -> bool:
        return self._move(sender, to, amount)

    def transfer_from_as(self, spender: str, sender: str, to: str, amount: int) -> bool:
        allowed = self.allowance(sender, spender)
        if amount > allowed:
            logger.debug("allowance %s < %s for %s -> %s", allowed, amount, sender, spender)
            return False
        if not self._move(sender, to, amount):
            return False
        self.allowances[(sender, spender)] = allowed - amount
        return True

    def connect(self, account: str) -> "TokenClient":
        return TokenClient(self, account)

    def _move(self, sender: str, to: str, amount: int) -> bool:
        if amount < 0 or sender in self.blocked or to in self.blocked:
            return False
        if self.balance_of(sender) < amount:
            return False
        self.balances[sender] = self.balance_of(sender) - amount
        self.balances[to] = self.balance_of(to) + amount

        hook = self.receive_hooks.get(to)
        if hook is not None:
            hook(sender, amount)
        return True


class TokenClient(TokenLedger):
    def __init__(self, token: InMemoryToken, account: str):
        self.token = token
        self.account = account

    def balance_of(self, account: str) -> int:
        return self.token.balance_of(account)

    def transfer(self, to: str, amount: int) -> bool:
        return self.token.transfer_as(self.account, to, amount)

    def transfer_from(self, sender: str, to: str, amount: int) -> bool:
        return self.token.transfer_from_as(self.account, sender, to, amount)

    def checkpoint(self) -> Any:
        return copy.deepcopy((self.token.balances, self.token.allowances))

    def revert(self, checkpoint: Any) -> None:
        balances, allowances = copy.deepcopy(checkpoint)
        self.token.balances = balances
        self.token.allowances = allowances
