"""Commitment pool protocol: notes, escrow, deposit/withdraw/transfer."""

from shieldpool.core.pool.note import Note
from shieldpool.core.pool.escrow import Escrow
from shieldpool.core.pool.pool import CommitmentPool, PoolSet
