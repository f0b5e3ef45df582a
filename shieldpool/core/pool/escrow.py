"""
Escrow - value held by a pool between deposit and withdrawal.

Stands in for the pool contract's balance: deposits lock value, withdrawals
release one denomination to a recipient. A recipient can refuse payments,
which is how a failing payout is modelled.
"""

import threading
from typing import Dict, Set

from shieldpool.core.errors import PayoutRejected
from shieldpool.crypto import ADDRESS_SIZE, bytes_to_hex
from shieldpool.utils.logger import get_logger

logger = get_logger("pool.escrow")


class Escrow:
    """
    Locked balance plus the amounts paid out per recipient.

    Attributes:
        balance: Value currently held
        credited: Recipient address -> total received
    """

    def __init__(self, balance: int = 0):
        if balance < 0:
            raise ValueError("Balance cannot be negative")
        self.balance = balance
        self.credited: Dict[bytes, int] = {}
        self._rejecting: Set[bytes] = set()
        self._lock = threading.Lock()

    def lock(self, amount: int) -> None:
        """Take custody of a deposit."""
        if amount <= 0:
            raise ValueError(f"Amount must be positive, got {amount}")
        with self._lock:
            self.balance += amount

    def release(self, recipient: bytes, amount: int) -> None:
        """
        Pay amount to recipient.

        Raises:
            PayoutRejected: If the recipient refuses or the balance is short
        """
        if len(recipient) != ADDRESS_SIZE:
            raise ValueError(f"Recipient must be {ADDRESS_SIZE} bytes")

        with self._lock:
            if recipient in self._rejecting:
                raise PayoutRejected(f"Recipient {bytes_to_hex(recipient)} rejected payment")
            if amount > self.balance:
                raise PayoutRejected(f"Escrow holds {self.balance}, cannot pay {amount}")

            self.balance -= amount
            self.credited[recipient] = self.credited.get(recipient, 0) + amount

        logger.debug(f"Released {amount} to {bytes_to_hex(recipient)}")

    def revert_release(self, recipient: bytes, amount: int) -> None:
        """Undo a release(recipient, amount) that could not be recorded."""
        with self._lock:
            credited = self.credited.get(recipient, 0)
            if amount > credited:
                raise ValueError(f"Cannot revert {amount}, recipient was credited {credited}")

            self.balance += amount
            if credited == amount:
                del self.credited[recipient]
            else:
                self.credited[recipient] = credited - amount

        logger.debug(f"Reverted release of {amount} to {bytes_to_hex(recipient)}")

    def reject_payments(self, recipient: bytes) -> None:
        """Make every future payment to recipient fail."""
        with self._lock:
            self._rejecting.add(recipient)

    def accept_payments(self, recipient: bytes) -> None:
        with self._lock:
            self._rejecting.discard(recipient)

    def credited_to(self, recipient: bytes) -> int:
        return self.credited.get(recipient, 0)
