"""
Allowance Table

Owner -> spender -> amount approvals for delegated transfers.
"""

import json
from typing import Dict, Any

from .amounts import checked_sub
from .errors import AllowanceExceeded
from .storage import StorageInterface


class AllowanceTable:
    """Approved spending amounts, one record per (owner, spender) pair"""

    def __init__(self, storage: StorageInterface, table_name: str = "allowances"):
        self.storage = storage
        self.table_name = table_name

    @staticmethod
    def _key(owner: str, spender: str) -> str:
        # JSON keeps the pair unambiguous whatever characters ids contain
        return json.dumps([owner, spender])

    def get(self, owner: str, spender: str) -> int:
        """Current allowance, zero if never approved"""
        record = self.storage.load(self.table_name, self._key(owner, spender))
        if record is None:
            return 0
        return int(record["amount"])

    def set(self, owner: str, spender: str, amount: int) -> None:
        """Overwrite the allowance"""
        data: Dict[str, Any] = {"owner": owner, "spender": spender, "amount": str(amount)}
        self.storage.save(self.table_name, self._key(owner, spender), data)

    def consume(self, owner: str, spender: str, amount: int) -> int:
        """
        Spend part of an allowance

        Returns:
            The remaining allowance

        Raises:
            AllowanceExceeded: If the allowance is smaller than amount
        """
        current = self.get(owner, spender)
        if current < amount:
            raise AllowanceExceeded(
                f"Allowance of {spender} over {owner} is {current}, requested {amount}"
            )
        remaining = checked_sub(current, amount)
        self.set(owner, spender, remaining)
        return remaining
