"""
Dividend Accrual Engine

Pull-based proportional distribution. A distribution snapshots the current
holders and balances and permanently credits each holder's truncated share
to a withdrawable accumulator that is independent of later balance changes.
Truncation dust stays unallocated.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from .amounts import require_uint, checked_add, mul_div
from .audit import AuditTrail, AuditEventType
from .errors import InvalidAmount, NoDividend, NoSupply
from .gateway import ValueTransferGateway, send_value
from .holders import HolderRegistry
from .ledger import AccountLedger, require_account
from .logging_config import get_logger, log_action
from .storage import StorageInterface


@dataclass
class Distribution:
    """Outcome of one recorded distribution"""
    amount: int
    total_supply: int
    holder_count: int
    credits: Dict[str, int] = field(default_factory=dict)

    @property
    def allocated(self) -> int:
        """Total credited to holders, never more than amount"""
        return sum(self.credits.values())

    @property
    def unallocated(self) -> int:
        """Truncation dust left over"""
        return self.amount - self.allocated


class DividendAccrualEngine:
    """
    Records distributions and pays out accrued dividends

    Withdrawable amounts live in their own table keyed by account and are
    never derived from balances.
    """

    def __init__(
        self,
        storage: StorageInterface,
        ledger: AccountLedger,
        holders: HolderRegistry,
        gateway: ValueTransferGateway,
        audit_trail: Optional[AuditTrail] = None
    ):
        self.storage = storage
        self.ledger = ledger
        self.holders = holders
        self.gateway = gateway
        self.audit_trail = audit_trail
        self.table_name = "dividends"
        self.logger = get_logger("dividend_ledger.dividends")

    @property
    def max_amount(self) -> int:
        return self.ledger.max_amount

    def get_withdrawable_dividend(self, account: str) -> int:
        """Pending dividend of an account, zero if never credited"""
        record = self.storage.load(self.table_name, account)
        if record is None:
            return 0
        return int(record["withdrawable"])

    def total_withdrawable(self) -> int:
        """Sum of all pending dividends"""
        return sum(int(record["withdrawable"]) for record in self.storage.load_all(self.table_name))

    def record_distribution(self, amount: int, actor: Optional[str] = None) -> Distribution:
        """
        Distribute ``amount`` across current holders pro rata

        Each holder h is credited floor(amount * balance(h) / total_supply).
        The credited total may fall short of amount; the remainder is not
        tracked.

        Args:
            amount: Native units being distributed
            actor: Account that funded the distribution, for the audit trail

        Returns:
            Distribution summary

        Raises:
            InvalidAmount: If amount is zero
            NoSupply: If total supply is zero
        """
        require_uint(amount, "amount", self.max_amount)
        if amount == 0:
            raise InvalidAmount("Distribution amount must be positive")

        with self.storage.atomic():
            total_supply = self.ledger.total_supply()
            if total_supply == 0:
                raise NoSupply("Cannot distribute dividends with zero total supply")

            holders = self.holders.members()
            distribution = Distribution(
                amount=amount,
                total_supply=total_supply,
                holder_count=len(holders)
            )
            for holder in holders:
                share = mul_div(amount, self.ledger.balance_of(holder), total_supply, self.max_amount)
                if share == 0:
                    continue
                self._set_withdrawable(
                    holder,
                    checked_add(self.get_withdrawable_dividend(holder), share, self.max_amount)
                )
                distribution.credits[holder] = share

            if self.audit_trail:
                self.audit_trail.log_event(
                    event_type=AuditEventType.DIVIDEND_RECORDED,
                    entity_type="dividend",
                    entity_id="distribution",
                    metadata={
                        "amount": amount,
                        "total_supply": total_supply,
                        "holder_count": distribution.holder_count,
                        "allocated": distribution.allocated
                    },
                    actor_id=actor
                )

        log_action(
            self.logger, "info", f"Recorded distribution of {amount}",
            account_id=actor, action="record_distribution", resource="dividend",
            extra={
                "amount": str(amount),
                "holders": distribution.holder_count,
                "allocated": str(distribution.allocated)
            }
        )
        return distribution

    def withdraw_dividend(self, caller: str, destination: str) -> int:
        """
        Pay the caller's pending dividend to ``destination``

        The accrual is zeroed before the gateway is called; a failed payout
        restores it. Works whether or not the caller still holds a balance.

        Returns:
            The amount paid out

        Raises:
            NoDividend: If nothing is pending
            TransferFailed: If the payout fails
        """
        require_account(caller, "caller")
        require_account(destination, "destination")

        with self.storage.atomic():
            amount = self.get_withdrawable_dividend(caller)
            if amount == 0:
                raise NoDividend(f"Account {caller} has no dividend to withdraw")

            self._set_withdrawable(caller, 0)

            if self.audit_trail:
                self.audit_trail.log_event(
                    event_type=AuditEventType.DIVIDEND_WITHDRAWN,
                    entity_type="account",
                    entity_id=caller,
                    metadata={"amount": amount, "destination": destination},
                    actor_id=caller
                )

            send_value(self.gateway, destination, amount)

        log_action(
            self.logger, "info", f"Withdrew dividend of {amount}",
            account_id=caller, action="withdraw_dividend", resource=f"account:{caller}",
            extra={"amount": str(amount), "destination": destination}
        )
        return amount

    def _set_withdrawable(self, account: str, amount: int) -> None:
        self.storage.save(self.table_name, account, {
            "account": account,
            "withdrawable": str(amount)
        })
