"""
Exception hierarchy for the shielded pool.

Validation errors (bad amount, duplicate commitment or nullifier, unknown
root) are raised before any state change and can be retried with corrected
inputs. InvalidWithdrawProof is final for that proof only. WithdrawFailed is
raised after the spend has been rolled back. UnknownKey and RootMismatch from
the multiproof engine indicate inconsistent inputs, not user error.
"""


class ShieldPoolError(Exception):
    """Base exception for all pool components"""
    pass


# =============================================================================
# Sparse Merkle Tree
# =============================================================================


class TreeError(ShieldPoolError):
    """Sparse Merkle tree operation failed"""
    pass


class DuplicateKey(TreeError):
    """A leaf already occupies the key"""
    pass


class MaxDepthReached(TreeError):
    """Two keys share every bit the tree height can address"""
    pass


class UnknownRoot(TreeError):
    """Root was never produced by the tree or has left the history window"""
    pass


# =============================================================================
# Multiproof Engine
# =============================================================================


class MultiProofError(ShieldPoolError):
    """Multiproof construction or verification failed"""
    pass


class UnknownKey(MultiProofError):
    """A target key has no leaf in the tree"""
    pass


class RootMismatch(MultiProofError):
    """Folded targets do not reproduce the tree root"""
    pass


class InvalidMultiProof(MultiProofError):
    """Multiproof is malformed (sibling or flag count does not add up)"""
    pass


# =============================================================================
# Pool Protocol
# =============================================================================


class PoolError(ShieldPoolError):
    """Pool operation rejected"""
    pass


class InvalidDepositAmount(PoolError):
    """Deposit value does not match a permitted denomination"""
    pass


class CommitmentAlreadyExists(PoolError):
    """Commitment was deposited before"""
    pass


class RootDoesNotExist(PoolError):
    """Root is not in the retained history window"""
    pass


class NullifierAlreadyExists(PoolError):
    """Nullifier was already spent"""
    pass


class InvalidWithdrawProof(PoolError):
    """Verifier rejected the proof for the given public inputs"""
    pass


class WithdrawFailed(PoolError):
    """Payout to the recipient could not complete; nothing was spent"""
    pass


# =============================================================================
# Prover / Payout
# =============================================================================


class ProverError(ShieldPoolError):
    """Base exception for proving operations"""
    pass


class ProofGenerationError(ProverError):
    """Witness does not satisfy the withdraw relation or the prover failed"""
    pass


class PayoutRejected(ShieldPoolError):
    """Recipient refused the transfer or escrow cannot cover it"""
    pass
