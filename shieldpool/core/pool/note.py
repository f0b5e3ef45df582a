"""
Deposit notes.

A note is the depositor's private receipt: the secret and nullifier seed
behind a commitment. Whoever holds the note can spend the deposit.
"""

import secrets
from dataclasses import dataclass

from shieldpool.crypto import (
    FIELD_PRIME,
    hash_commitment,
    hash_key,
    hash_nullifier,
    field_to_hex,
)
from shieldpool.utils.validation import parse_field_hex

# Random note values are drawn below 2^224 so they are always field elements
NOTE_VALUE_BYTES = 28


@dataclass(frozen=True)
class Note:
    """
    Secret material of one deposit.

    Attributes:
        secret: Random field element known only to the owner
        nullifier: Seed whose hash is revealed on spend
    """
    secret: int
    nullifier: int

    def __post_init__(self):
        for name in ("secret", "nullifier"):
            value = getattr(self, name)
            if not isinstance(value, int) or not 0 <= value < FIELD_PRIME:
                raise ValueError(f"{name} must be a field element")

    @classmethod
    def generate(cls) -> "Note":
        """Create a note from fresh randomness."""
        return cls(
            secret=int.from_bytes(secrets.token_bytes(NOTE_VALUE_BYTES), "big"),
            nullifier=int.from_bytes(secrets.token_bytes(NOTE_VALUE_BYTES), "big"),
        )

    @property
    def commitment(self) -> int:
        """Poseidon(secret, nullifier) - the value deposited into the tree."""
        return hash_commitment(self.secret, self.nullifier)

    @property
    def nullifier_hash(self) -> int:
        """Poseidon(nullifier) - revealed once, when the note is spent."""
        return hash_nullifier(self.nullifier)

    @property
    def key(self) -> int:
        """SMT key of the commitment's leaf."""
        return hash_key(self.commitment)

    def to_dict(self) -> dict:
        return {
            "secret": field_to_hex(self.secret),
            "nullifier": field_to_hex(self.nullifier),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Note":
        return cls(
            secret=parse_field_hex(data["secret"], "secret"),
            nullifier=parse_field_hex(data["nullifier"], "nullifier"),
        )

    def __repr__(self) -> str:
        # Keep secrets out of logs
        return f"Note(commitment={field_to_hex(self.commitment)[:12]}...)"
