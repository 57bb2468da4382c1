"""
Value Transfer Gateway Module

Abstracts how native-currency units leave the ledger. Burns and dividend
withdrawals call the gateway as their final step; any failure surfaces as
TransferFailed so the surrounding operation rolls back.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set
import logging
import uuid

import httpx

from .errors import TransferFailed

logger = logging.getLogger("dividend_ledger.gateway")


class ValueTransferGateway(ABC):
    """Moves native units out of the ledger"""

    @abstractmethod
    def send(self, destination: str, amount: int) -> None:
        """
        Pay ``amount`` native units to ``destination``

        Must either complete synchronously or raise TransferFailed.
        """
        pass

    def close(self) -> None:
        """Release gateway resources (default no-op)"""
        pass


def send_value(gateway: ValueTransferGateway, destination: str, amount: int) -> None:
    """
    Invoke the gateway, normalising every failure to TransferFailed

    Raises:
        TransferFailed: If the gateway raises anything
    """
    try:
        gateway.send(destination, amount)
    except TransferFailed:
        logger.warning(f"Payout of {amount} to {destination} failed")
        raise
    except Exception as e:
        logger.warning(f"Payout of {amount} to {destination} failed: {e}")
        raise TransferFailed(f"Payout to {destination} failed: {e}") from e


@dataclass
class Payout:
    """A completed payout"""
    destination: str
    amount: int
    paid_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryGateway(ValueTransferGateway):
    """
    Gateway that records payouts in memory

    Destinations can be marked as rejecting to simulate failed payments, and
    an ``on_send`` hook runs before the payout is recorded (a hook that calls
    back into the ledger exercises re-entrancy).
    """

    def __init__(self, on_send: Optional[Callable[[str, int], None]] = None):
        self.payouts: List[Payout] = []
        self.on_send = on_send
        self._rejected: Set[str] = set()

    def reject(self, destination: str) -> None:
        """Make every payout to ``destination`` fail"""
        self._rejected.add(destination)

    def accept(self, destination: str) -> None:
        """Stop rejecting payouts to ``destination``"""
        self._rejected.discard(destination)

    def send(self, destination: str, amount: int) -> None:
        if destination in self._rejected:
            raise TransferFailed(f"Destination {destination} rejected payout")
        if self.on_send:
            self.on_send(destination, amount)
        self.payouts.append(Payout(destination=destination, amount=amount))

    def total_paid(self, destination: Optional[str] = None) -> int:
        """Sum of recorded payouts, optionally for one destination"""
        return sum(p.amount for p in self.payouts if destination is None or p.destination == destination)


class HttpPayoutGateway(ValueTransferGateway):
    """
    REST client for an external payout service

    Fail-closed: transport errors and non-2xx responses raise TransferFailed.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def send(self, destination: str, amount: int) -> None:
        headers = {"Idempotency-Key": str(uuid.uuid4())}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = self._client.post(
                f"{self.base_url}/payouts",
                json={"destination": destination, "amount": str(amount)},
                headers=headers
            )
        except httpx.HTTPError as e:
            logger.error(f"Payout service connection failed: {e}")
            raise TransferFailed(f"Payout service unreachable: {e}") from e

        if not response.is_success:
            logger.warning(f"Payout service returned {response.status_code}: {response.text}")
            raise TransferFailed(f"Payout service returned {response.status_code}")

    def health_check(self) -> bool:
        """Check if the payout service is healthy"""
        try:
            r = self._client.get(f"{self.base_url}/health")
            return r.status_code == 200
        except httpx.HTTPError:
            return False

    def close(self) -> None:
        """Close the HTTP client"""
        self._client.close()
