"""
Dividend Token

Public operation surface of the ledger. Wires the account ledger, holder
registry, allowance table and dividend engine together and runs every
operation as one serialised, all-or-nothing step. Domain events are released
only once the outermost operation has committed.
"""

from contextlib import contextmanager
from typing import Any, Dict, List, Optional
import threading

from .allowances import AllowanceTable
from .amounts import checked_sub, uint_max
from .audit import AuditTrail, AuditEventType
from .config import LedgerConfig, get_config
from .dividends import DividendAccrualEngine, Distribution
from .events import DomainEvent, EventDispatcher, EventPayload
from .gateway import HttpPayoutGateway, InMemoryGateway, ValueTransferGateway
from .holders import HolderRegistry
from .ledger import AccountLedger
from .logging_config import get_logger
from .storage import StorageInterface, create_storage


class DividendToken:
    """
    Value-backed token with proportional dividend accrual

    Value-bearing operations (``mint``, ``record_dividend``) take the native
    units that arrived with the call; payouts leave through the gateway.
    """

    def __init__(
        self,
        storage: StorageInterface,
        gateway: ValueTransferGateway,
        audit_trail: Optional[AuditTrail] = None,
        event_dispatcher: Optional[EventDispatcher] = None,
        amount_bits: int = 256
    ):
        self.storage = storage
        self.gateway = gateway
        self.audit_trail = audit_trail
        self._event_dispatcher = event_dispatcher
        self.max_amount = uint_max(amount_bits)

        self.holders = HolderRegistry(storage)
        self.allowances = AllowanceTable(storage)
        self.ledger = AccountLedger(
            storage, self.holders, self.allowances, gateway,
            audit_trail=audit_trail, max_amount=self.max_amount
        )
        self.dividends = DividendAccrualEngine(
            storage, self.ledger, self.holders, gateway, audit_trail=audit_trail
        )

        self.logger = get_logger("dividend_ledger.token")
        self._lock = threading.RLock()
        self._depth = 0
        self._pending_events: List[EventPayload] = []

    @contextmanager
    def _operation(self):
        """Serialise an operation, make it atomic and release its events on success"""
        with self._lock:
            outermost = self._depth == 0
            mark = len(self._pending_events)
            self._depth += 1
            try:
                with self.storage.atomic():
                    yield
            except BaseException:
                del self._pending_events[mark:]
                raise
            finally:
                self._depth -= 1

            if outermost:
                events, self._pending_events = self._pending_events, []
                for event in events:
                    self._event_dispatcher.publish(event)

    def _queue_event(self, event_type: DomainEvent, entity_type: str, entity_id: str,
                     data: Dict[str, Any]) -> None:
        if self._event_dispatcher is None:
            return
        # Amounts travel as strings so subscribers never lose precision
        data = {k: str(v) if isinstance(v, int) and not isinstance(v, bool) else v for k, v in data.items()}
        self._pending_events.append(EventPayload(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            data=data
        ))

    # Ledger operations

    def mint(self, caller: str, value: int) -> int:
        """Deposit ``value`` native units and credit the same balance"""
        with self._operation():
            balance = self.ledger.mint(caller, value)
            self._adjust_reserve(value)
            self._queue_event(DomainEvent.MINTED, "account", caller, {"amount": value, "balance": balance})
        return balance

    def burn(self, caller: str, destination: str) -> int:
        """Redeem the caller's entire balance to ``destination``"""
        with self._operation():
            # Reserve shrinks before the payout leaves the ledger
            amount = self.ledger.balance_of(caller)
            if amount:
                self._adjust_reserve(-amount)
            paid = self.ledger.burn(caller, destination)
            self._queue_event(DomainEvent.BURNED, "account", caller, {"amount": paid, "destination": destination})
        return paid

    def transfer(self, caller: str, to: str, amount: int) -> None:
        with self._operation():
            self.ledger.transfer(caller, to, amount)
            self._queue_event(DomainEvent.TRANSFERRED, "account", caller, {"from": caller, "to": to, "amount": amount})

    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> None:
        with self._operation():
            self.ledger.transfer_from(caller, owner, to, amount)
            self._queue_event(DomainEvent.TRANSFERRED, "account", owner, {
                "from": owner, "to": to, "amount": amount, "spender": caller
            })

    def approve(self, caller: str, spender: str, amount: int) -> None:
        with self._operation():
            self.ledger.approve(caller, spender, amount)
            self._queue_event(DomainEvent.APPROVAL, "account", caller, {"spender": spender, "amount": amount})

    def balance_of(self, account: str) -> int:
        return self.ledger.balance_of(account)

    def allowance(self, owner: str, spender: str) -> int:
        return self.ledger.allowance(owner, spender)

    def total_supply(self) -> int:
        return self.ledger.total_supply()

    def get_num_token_holders(self) -> int:
        return self.holders.count()

    def get_token_holder(self, index: int) -> str:
        """Holder at a 1-based, mutation-unstable position"""
        return self.holders.member_at(index)

    # Dividend operations

    def record_dividend(self, value: int, caller: Optional[str] = None) -> Distribution:
        """Distribute ``value`` native units to current holders pro rata"""
        with self._operation():
            distribution = self.dividends.record_distribution(value, actor=caller)
            self._adjust_reserve(value)
            self._queue_event(DomainEvent.DIVIDEND_RECORDED, "dividend", "distribution", {
                "amount": value,
                "total_supply": distribution.total_supply,
                "holder_count": distribution.holder_count,
                "allocated": distribution.allocated
            })
        return distribution

    def get_withdrawable_dividend(self, account: str) -> int:
        return self.dividends.get_withdrawable_dividend(account)

    def withdraw_dividend(self, caller: str, destination: str) -> int:
        """Pay the caller's pending dividend to ``destination``"""
        with self._operation():
            amount = self.dividends.get_withdrawable_dividend(caller)
            if amount:
                self._adjust_reserve(-amount)
            paid = self.dividends.withdraw_dividend(caller, destination)
            self._queue_event(DomainEvent.DIVIDEND_WITHDRAWN, "account", caller, {
                "amount": paid, "destination": destination
            })
        return paid

    # Reserve and reconciliation

    def reserve(self) -> int:
        """Native units currently held by the ledger"""
        record = self.storage.load(self.ledger.state_table, "reserve")
        if record is None:
            return 0
        return int(record["reserve"])

    def _adjust_reserve(self, delta: int) -> None:
        # Supply, pending dividends and dust together may exceed one amount's width
        current = self.reserve()
        if delta >= 0:
            updated = current + delta
        else:
            updated = checked_sub(current, -delta)
        self.storage.save(self.ledger.state_table, "reserve", {"reserve": str(updated)})

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Reconcile derived state against primary state

        Returns:
            Dictionary with ``valid`` plus any violations found
        """
        with self._lock:
            result: Dict[str, Any] = {
                'valid': True,
                'total_supply': self.total_supply(),
                'sum_of_balances': 0,
                'holder_count': self.holders.count(),
                'reserve': self.reserve(),
                'pending_dividends': self.dividends.total_withdrawable(),
                'violations': []
            }

            positive = set()
            for record in self.storage.load_all(self.ledger.balances_table):
                balance = int(record["balance"])
                result['sum_of_balances'] += balance
                if balance > 0:
                    positive.add(record["account"])

            members = self.holders.members()
            if len(members) != len(set(members)):
                result['violations'].append("holder registry contains duplicates")
            if set(members) != positive:
                result['violations'].append("holder registry does not match positive balances")
            for account in positive:
                if not self.holders.is_member(account):
                    result['violations'].append(f"holder {account} missing membership flag")
            if result['sum_of_balances'] != result['total_supply']:
                result['violations'].append("total supply does not equal sum of balances")
            if result['reserve'] < result['total_supply'] + result['pending_dividends']:
                result['violations'].append("reserve does not cover supply and pending dividends")

            result['valid'] = not result['violations']

            if self.audit_trail:
                with self.storage.atomic():
                    self.audit_trail.log_event(
                        event_type=AuditEventType.AUDIT_INTEGRITY_CHECK,
                        entity_type="ledger",
                        entity_id="invariants",
                        metadata={"valid": result['valid'], "violations": result['violations']}
                    )

            return result

    def close(self) -> None:
        self.gateway.close()
        self.storage.close()


def build_token(config: Optional[LedgerConfig] = None,
                gateway: Optional[ValueTransferGateway] = None,
                storage: Optional[StorageInterface] = None) -> DividendToken:
    """
    Build a DividendToken from configuration

    Args:
        config: Settings, defaults to the global configuration
        gateway: Payout gateway; built from ``payout_gateway_url`` if omitted
        storage: Storage backend; built from ``database_url`` if omitted
    """
    config = config or get_config()

    if storage is None:
        storage = create_storage(config.database_url)

    if gateway is None:
        if config.payout_gateway_url:
            gateway = HttpPayoutGateway(
                base_url=config.payout_gateway_url,
                timeout=config.payout_timeout,
                api_key=config.payout_api_key or None
            )
        else:
            gateway = InMemoryGateway()

    audit_trail = AuditTrail(storage) if config.enable_audit_logging else None
    event_dispatcher = EventDispatcher() if config.enable_events else None

    token = DividendToken(
        storage=storage,
        gateway=gateway,
        audit_trail=audit_trail,
        event_dispatcher=event_dispatcher,
        amount_bits=config.amount_bits
    )

    if audit_trail:
        with storage.atomic():
            audit_trail.log_event(
                event_type=AuditEventType.SYSTEM_START,
                entity_type="ledger",
                entity_id="system",
                metadata={
                    "storage": type(storage).__name__,
                    "gateway": type(gateway).__name__,
                    "amount_bits": config.amount_bits,
                    "events_enabled": config.enable_events
                }
            )
    token.logger.info(f"Dividend ledger started on {type(storage).__name__}")

    return token
