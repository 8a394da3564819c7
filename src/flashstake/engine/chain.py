"""Execution environment: block clock, atomic transactions and event log.

Every mutating entry point runs as one serialized, all-or-nothing unit. The
outermost ``Chain.transaction()`` snapshots the declared state of every
registered component; if anything raises, all of it is restored and the
error propagates. There is no parallelism, so the only concurrency hazard
is reentrancy from calls into tokens and strategies, handled by
``nonreentrant`` and by committing internal effects before external calls.
"""

import copy
import functools
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar

from .errors import NotContractOwnerError, ReentrancyError
from .events import Event

logger = logging.getLogger(__name__)


class Snapshottable:
    """Mixin for components whose state participates in transactions.

    Subclasses list their plain-data attributes in ``_snapshot_fields``.
    References to other components are never listed; they are restored
    through their own snapshots.
    """

    _snapshot_fields: tuple = ()

    def snapshot(self) -> Dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self._snapshot_fields}

    def restore(self, state: Dict[str, Any]) -> None:
        for name, value in state.items():
            setattr(self, name, value)


E = TypeVar('E', bound=Event)


class EventLog(Snapshottable):
    """Append-only list of emitted events."""

    _snapshot_fields = ('_events',)

    def __init__(self):
        self._events: List[Event] = []

    def emit(self, event: Event) -> Event:
        self._events.append(event)
        return event

    def of_type(self, event_type: Type[E]) -> List[E]:
        """All events of the given type, in emission order."""
        return [e for e in self._events if isinstance(e, event_type)]

    def last(self, event_type: Type[E] = Event) -> Optional[E]:
        matches = self.of_type(event_type)
        return matches[-1] if matches else None

    def __iter__(self) -> Iterator[Event]:
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)


class Chain:
    """Block clock, contract registry and transaction manager."""

    def __init__(self, timestamp: int = 1_640_995_200):
        """
        Initialize chain.

        Args:
            timestamp: Initial block timestamp (seconds)
        """
        self.timestamp = int(timestamp)
        self.events = EventLog()
        self._components: List[Snapshottable] = [self.events]
        self._contracts: Dict[str, Any] = {}
        self._address_nonce = 0
        self._depth = 0

    # Clock

    def now(self) -> int:
        return self.timestamp

    def advance(self, seconds: int) -> int:
        """Move the clock forward and return the new timestamp."""
        if seconds < 0:
            raise ValueError("time cannot move backwards")
        self.timestamp += int(seconds)
        return self.timestamp

    def set_timestamp(self, timestamp: int) -> int:
        if timestamp < self.timestamp:
            raise ValueError(f"time cannot move backwards ({timestamp} < {self.timestamp})")
        self.timestamp = int(timestamp)
        return self.timestamp

    # Contracts

    def deploy(self, component: Any, prefix: str = "contract") -> str:
        """Assign an address to a component and track its state."""
        self._address_nonce += 1
        address = f"0x{self._address_nonce:040x}"
        self._contracts[address] = component
        if isinstance(component, Snapshottable):
            self._components.append(component)
        logger.debug("Deployed %s at %s", prefix, address)
        return address

    def contract_at(self, address: str) -> Any:
        try:
            return self._contracts[address]
        except KeyError:
            raise KeyError(f"No contract deployed at {address}") from None

    def is_contract(self, address: Optional[str]) -> bool:
        return address in self._contracts

    # Transactions

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def transaction(self, label: str = "tx"):
        """
        Run a block atomically.

        Nested transactions join the outermost one, so a failure anywhere
        rolls back the whole call tree.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        components = list(self._components)
        contracts = dict(self._contracts)
        nonce = self._address_nonce
        snapshots = [(component, component.snapshot()) for component in components]
        self._depth = 1
        logger.debug("Begin %s at t=%d", label, self.timestamp)
        try:
            yield self
        except BaseException as exc:
            for component, state in snapshots:
                component.restore(state)
            self._components = components
            self._contracts = contracts
            self._address_nonce = nonce
            logger.warning("Reverted %s: %s", label, exc)
            raise
        else:
            logger.debug("Commit %s", label)
        finally:
            self._depth = 0

    def emit(self, event: Event) -> Event:
        return self.events.emit(event)


def atomic(method):
    """Run a component method inside ``self.chain.transaction()``."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.chain.transaction(f"{type(self).__name__}.{method.__name__}"):
            return method(self, *args, **kwargs)
    return wrapper


def nonreentrant(method):
    """Reject re-entry into any guarded method of the same component."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if getattr(self, '_entered', False):
            raise ReentrancyError(f"{type(self).__name__}.{method.__name__} re-entered")
        self._entered = True
        try:
            return method(self, *args, **kwargs)
        finally:
            self._entered = False
    return wrapper


class Ownable:
    """Single-owner access control."""

    owner: str

    def _only_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise NotContractOwnerError(f"{caller} is not the owner of {type(self).__name__}")

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._only_owner(caller)
        if not new_owner:
            raise ValueError("new owner is the zero address")
        logger.info("%s ownership %s -> %s", type(self).__name__, self.owner, new_owner)
        self.owner = new_owner
