"""
Account Ledger

Balances, total supply and the mint / burn / transfer / allowance
operations. Every balance change goes through ``_set_balance`` so the holder
registry always mirrors which accounts hold a positive balance.
"""

from typing import Optional, Any

from .amounts import UINT256_MAX, require_uint, checked_add, checked_sub
from .allowances import AllowanceTable
from .audit import AuditTrail, AuditEventType
from .errors import InsufficientBalance, InvalidAccount, InvalidAmount, NothingToBurn
from .gateway import ValueTransferGateway, send_value
from .holders import HolderRegistry
from .logging_config import get_logger, log_action
from .storage import StorageInterface


def require_account(account: Any, name: str = "account") -> str:
    """Validate an account identifier"""
    if not isinstance(account, str) or not account:
        raise InvalidAccount(f"{name} must be a non-empty string, got {account!r}")
    return account


class AccountLedger:
    """
    Value-backed account ledger

    Balances are 1:1 backed by deposited native units: minting takes a
    deposit, burning pays the full balance back out through the gateway.
    """

    def __init__(
        self,
        storage: StorageInterface,
        holders: HolderRegistry,
        allowances: AllowanceTable,
        gateway: ValueTransferGateway,
        audit_trail: Optional[AuditTrail] = None,
        max_amount: int = UINT256_MAX
    ):
        self.storage = storage
        self.holders = holders
        self.allowances = allowances
        self.gateway = gateway
        self.audit_trail = audit_trail
        self.max_amount = max_amount
        self.balances_table = "balances"
        self.state_table = "ledger_state"
        self.logger = get_logger("dividend_ledger.ledger")

    # Reads

    def balance_of(self, account: str) -> int:
        """Balance of an account, zero if never referenced"""
        record = self.storage.load(self.balances_table, account)
        if record is None:
            return 0
        return int(record["balance"])

    def total_supply(self) -> int:
        """Sum of all balances"""
        record = self.storage.load(self.state_table, "supply")
        if record is None:
            return 0
        return int(record["total_supply"])

    def allowance(self, owner: str, spender: str) -> int:
        """Amount ``spender`` may still move on behalf of ``owner``"""
        return self.allowances.get(owner, spender)

    # Mutations

    def mint(self, caller: str, deposit_amount: int) -> int:
        """
        Credit a deposit of native units to the caller

        Args:
            caller: Depositing account
            deposit_amount: Native units deposited, must be positive

        Returns:
            The caller's new balance

        Raises:
            InvalidAmount: If deposit_amount is zero
            AmountOverflow: If the balance or supply would overflow
        """
        require_account(caller, "caller")
        require_uint(deposit_amount, "deposit_amount", self.max_amount)
        if deposit_amount == 0:
            raise InvalidAmount("Deposit amount must be positive")

        with self.storage.atomic():
            new_balance = checked_add(self.balance_of(caller), deposit_amount, self.max_amount)
            new_supply = checked_add(self.total_supply(), deposit_amount, self.max_amount)
            self._set_balance(caller, new_balance)
            self._set_supply(new_supply)

            self._audit(AuditEventType.TOKENS_MINTED, caller, caller, {
                "amount": deposit_amount,
                "balance": new_balance,
                "total_supply": new_supply
            })

        log_action(
            self.logger, "info", f"Minted {deposit_amount}",
            account_id=caller, action="mint", resource=f"account:{caller}",
            extra={"amount": str(deposit_amount), "total_supply": str(new_supply)}
        )
        return new_balance

    def burn(self, caller: str, destination: str) -> int:
        """
        Redeem the caller's whole balance to ``destination``

        Balance, supply and registry are updated before the gateway is
        called; a failed payout rolls all of it back.

        Returns:
            The amount paid out

        Raises:
            NothingToBurn: If the caller's balance is zero
            TransferFailed: If the payout fails
        """
        require_account(caller, "caller")
        require_account(destination, "destination")

        with self.storage.atomic():
            amount = self.balance_of(caller)
            if amount == 0:
                raise NothingToBurn(f"Account {caller} has no balance to burn")

            new_supply = checked_sub(self.total_supply(), amount)
            self._set_balance(caller, 0)
            self._set_supply(new_supply)

            self._audit(AuditEventType.TOKENS_BURNED, caller, caller, {
                "amount": amount,
                "destination": destination,
                "total_supply": new_supply
            })

            send_value(self.gateway, destination, amount)

        log_action(
            self.logger, "info", f"Burned {amount}",
            account_id=caller, action="burn", resource=f"account:{caller}",
            extra={"amount": str(amount), "destination": destination}
        )
        return amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        """
        Move ``amount`` from ``sender`` to ``to``

        Raises:
            InsufficientBalance: If sender's balance is below amount
        """
        require_account(sender, "sender")
        require_account(to, "to")
        require_uint(amount, "amount", self.max_amount)

        with self.storage.atomic():
            self._transfer(sender, to, amount)

        self._log_transfer(sender, sender, to, amount)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        """
        Move ``amount`` from ``owner`` to ``to`` using spender's allowance

        The allowance is checked and consumed first, then the balance moves.

        Raises:
            AllowanceExceeded: If the allowance is below amount
            InsufficientBalance: If owner's balance is below amount
        """
        require_account(spender, "spender")
        require_account(owner, "owner")
        require_account(to, "to")
        require_uint(amount, "amount", self.max_amount)

        with self.storage.atomic():
            self.allowances.consume(owner, spender, amount)
            self._transfer(owner, to, amount, spender=spender)

        self._log_transfer(spender, owner, to, amount)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Set (overwrite) the allowance of ``spender`` over ``owner``"""
        require_account(owner, "owner")
        require_account(spender, "spender")
        require_uint(amount, "amount", self.max_amount)

        with self.storage.atomic():
            self.allowances.set(owner, spender, amount)
            self._audit(AuditEventType.ALLOWANCE_SET, owner, owner, {
                "spender": spender,
                "amount": amount
            })

        log_action(
            self.logger, "info", f"Approved {spender} for {amount}",
            account_id=owner, action="approve", resource=f"account:{owner}",
            extra={"spender": spender, "amount": str(amount)}
        )

    # Internals

    def _transfer(self, sender: str, to: str, amount: int, spender: Optional[str] = None) -> None:
        sender_balance = self.balance_of(sender)
        if sender_balance < amount:
            raise InsufficientBalance(
                f"Account {sender} has {sender_balance}, cannot transfer {amount}"
            )

        if sender != to:
            self._set_balance(sender, checked_sub(sender_balance, amount))
            self._set_balance(to, checked_add(self.balance_of(to), amount, self.max_amount))

        metadata = {"from": sender, "to": to, "amount": amount}
        if spender is not None:
            metadata["spender"] = spender
        self._audit(AuditEventType.TOKENS_TRANSFERRED, sender, spender or sender, metadata)

    def _set_balance(self, account: str, balance: int) -> None:
        """Single write path for balances; keeps the holder registry in sync"""
        self.storage.save(self.balances_table, account, {
            "account": account,
            "balance": str(balance)
        })
        if balance > 0:
            self.holders.add(account)
        else:
            self.holders.remove(account)

    def _set_supply(self, total_supply: int) -> None:
        self.storage.save(self.state_table, "supply", {"total_supply": str(total_supply)})

    def _audit(self, event_type: AuditEventType, account: str, actor: str, metadata: dict) -> None:
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type="account",
                entity_id=account,
                metadata=metadata,
                actor_id=actor
            )

    def _log_transfer(self, actor: str, sender: str, to: str, amount: int) -> None:
        log_action(
            self.logger, "info", f"Transferred {amount}",
            account_id=actor, action="transfer", resource=f"account:{sender}",
            extra={"from": sender, "to": to, "amount": str(amount)}
        )
