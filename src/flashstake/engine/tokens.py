"""Fungible token ledgers for principal assets, fTokens and reward tokens."""

import logging
from typing import Callable, Dict, Optional, Tuple

from .chain import Chain, Ownable, Snapshottable
from .errors import InputValidationError, InsufficientAllowanceError, InsufficientBalanceError

logger = logging.getLogger(__name__)

# Called after every balance move with (token, sender, recipient, amount).
TransferHook = Callable[['TokenLedger', str, str, int], None]


class TokenLedger(Snapshottable, Ownable):
    """ERC20-style balance and allowance ledger.

    Minting is restricted to the ledger owner (the protocol, for fTokens).
    Burning spends the holder's own balance, or an allowance via
    ``burn_from``.
    """

    _snapshot_fields = ('balances', 'allowances', 'total_supply', 'owner')

    def __init__(
        self,
        chain: Chain,
        name: str,
        symbol: str,
        decimals: int = 18,
        owner: Optional[str] = None,
        on_transfer: Optional[TransferHook] = None,
    ):
        """
        Deploy a token ledger.

        Args:
            chain: Execution environment
            name: Token name
            symbol: Token symbol
            decimals: Number of decimals of one whole unit
            owner: Address allowed to mint (None means nobody)
            on_transfer: Optional hook invoked after transfers
        """
        self.chain = chain
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.owner = owner or ""
        self.on_transfer = on_transfer
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}
        self.total_supply = 0
        self.address = chain.deploy(self, prefix=symbol)

    def __repr__(self) -> str:
        return f"TokenLedger({self.symbol} @ {self.address})"

    def unit(self, amount=1) -> int:
        """Whole token units expressed in base units."""
        return int(amount * 10 ** self.decimals)

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def allowance(self, holder: str, spender: str) -> int:
        return self.allowances.get((holder, spender), 0)

    def approve(self, holder: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("allowance cannot be negative")
        self.allowances[(holder, spender)] = amount

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("transfer amount cannot be negative")
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalanceError(
                f"{self.symbol}: {sender} has {balance}, needs {amount}"
            )
        self.balances[sender] = balance - amount
        self.balances[recipient] = self.balance_of(recipient) + amount
        if self.on_transfer is not None:
            self.on_transfer(self, sender, recipient, amount)

    def _spend_allowance(self, holder: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("amount cannot be negative")
        if holder == spender:
            return
        current = self.allowance(holder, spender)
        if current < amount:
            raise InsufficientAllowanceError(
                f"{self.symbol}: {spender} may spend {current} of {holder}, needs {amount}"
            )
        self.allowances[(holder, spender)] = current - amount

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        self._move(sender, recipient, amount)
        return True

    def transfer_from(self, spender: str, holder: str, recipient: str, amount: int) -> bool:
        """Move ``amount`` from ``holder`` to ``recipient`` on ``spender``'s allowance."""
        self._spend_allowance(holder, spender, amount)
        self._move(holder, recipient, amount)
        return True

    def mint(self, caller: str, recipient: str, amount: int) -> None:
        self._only_owner(caller)
        if amount < 0:
            raise ValueError("mint amount cannot be negative")
        self.balances[recipient] = self.balance_of(recipient) + amount
        self.total_supply += amount

    def burn(self, holder: str, amount: int) -> None:
        """Destroy tokens from the holder's own balance."""
        if amount < 0:
            raise ValueError("burn amount cannot be negative")
        balance = self.balance_of(holder)
        if balance < amount:
            raise InsufficientBalanceError(
                f"{self.symbol}: burn of {amount} exceeds balance {balance}"
            )
        self.balances[holder] = balance - amount
        self.total_supply -= amount

    def burn_from(self, spender: str, holder: str, amount: int) -> None:
        self._spend_allowance(holder, spender, amount)
        self.burn(holder, amount)


class FTokenFactory:
    """Creates one fToken ledger per registered strategy."""

    def __init__(self, chain: Chain):
        self.chain = chain

    def create(self, name: str, symbol: str, owner: str, decimals: int = 18) -> TokenLedger:
        if not name or not symbol:
            raise InputValidationError("fToken name and symbol must be non-empty")
        ftoken = TokenLedger(self.chain, name, symbol, decimals=decimals, owner=owner)
        logger.info("Created fToken %s (%s) at %s", name, symbol, ftoken.address)
        return ftoken
