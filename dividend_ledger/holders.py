"""
Holder Registry

Secondary index of accounts with a non-zero balance: a compact sequence of
slots plus a membership flag per account. Removal swaps the last slot into
the vacated one, so positions are unstable across any add/remove.
"""

from typing import List

from .errors import InvalidIndex
from .storage import StorageInterface


class HolderRegistry:
    """
    Compact, order-unstable registry of current holders

    Slots are stored under their 1-based position; the membership table
    gives O(1) ``is_member`` checks.
    """

    def __init__(self, storage: StorageInterface, slots_table: str = "holder_slots",
                 index_table: str = "holder_index"):
        self.storage = storage
        self.slots_table = slots_table
        self.index_table = index_table

    def is_member(self, account: str) -> bool:
        return self.storage.exists(self.index_table, account)

    def count(self) -> int:
        """Current member count"""
        return self.storage.count(self.slots_table)

    def add(self, account: str) -> bool:
        """
        Append an account unless it is already a member

        Returns:
            True if the account was added
        """
        if self.is_member(account):
            return False
        slot = self.count() + 1
        self.storage.save(self.slots_table, str(slot), {"account": account})
        self.storage.save(self.index_table, account, {"member": True})
        return True

    def remove(self, account: str) -> bool:
        """
        Remove an account by swapping the last slot into its place

        Locating the slot is a linear scan; the removal itself is O(1).

        Returns:
            True if the account was removed
        """
        if not self.is_member(account):
            return False

        last = self.count()
        position = None
        for slot in range(1, last + 1):
            record = self.storage.load(self.slots_table, str(slot))
            if record and record["account"] == account:
                position = slot
                break
        if position is None:
            raise RuntimeError(f"Holder registry corrupted: {account} flagged but has no slot")

        if position != last:
            moved = self.storage.load(self.slots_table, str(last))
            self.storage.save(self.slots_table, str(position), moved)
        self.storage.delete(self.slots_table, str(last))
        self.storage.delete(self.index_table, account)
        return True

    def member_at(self, index: int) -> str:
        """
        Member at a 1-based position

        Positions are only meaningful until the next ledger mutation.

        Raises:
            InvalidIndex: Unless 1 <= index <= count()
        """
        count = self.count()
        if isinstance(index, bool) or not isinstance(index, int) or not 1 <= index <= count:
            raise InvalidIndex(f"Holder index {index} out of range [1, {count}]")
        record = self.storage.load(self.slots_table, str(index))
        return record["account"]

    def members(self) -> List[str]:
        """Snapshot of all members in slot order"""
        return [self.member_at(slot) for slot in range(1, self.count() + 1)]
