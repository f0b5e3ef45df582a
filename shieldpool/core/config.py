"""
Pool configuration parameters.

Defines tree geometry, the root history window, permitted denominations
and operational paths.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# 1 ether in wei
DEFAULT_DENOMINATION = 10 ** 18

ENV_PREFIX = "SHIELDPOOL_"


@dataclass
class PoolConfig:
    """Pool-wide configuration parameters"""

    # Sparse Merkle tree
    tree_height: int = 32  # Levels below the root; keys use the low bits
    root_history_size: int = 100  # Roots accepted for withdraw/transfer proofs

    # Economics
    denominations: Tuple[int, ...] = (DEFAULT_DENOMINATION,)

    # Proving
    use_mock_verifier: bool = True
    circuit_name: str = "withdraw"

    # Paths
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")
    circuit_dir: Path = Path("circuits")

    def __post_init__(self):
        """Validate parameters"""
        if not 1 <= self.tree_height <= 254:
            raise ValueError(f"tree_height must be in [1, 254], got {self.tree_height}")
        if self.root_history_size < 1:
            raise ValueError(f"root_history_size must be positive, got {self.root_history_size}")
        if not self.denominations:
            raise ValueError("At least one denomination is required")
        if any(d <= 0 for d in self.denominations):
            raise ValueError(f"Denominations must be positive, got {self.denominations}")
        if len(set(self.denominations)) != len(self.denominations):
            raise ValueError(f"Denominations must be distinct, got {self.denominations}")

        self.data_dir = Path(self.data_dir)
        self.log_dir = Path(self.log_dir)
        self.circuit_dir = Path(self.circuit_dir)

    def ensure_dirs(self) -> None:
        """Create necessary directories"""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.log_dir.mkdir(exist_ok=True, parents=True)
        self.circuit_dir.mkdir(exist_ok=True, parents=True)


def _env(name: str) -> Optional[str]:
    value = os.environ.get(ENV_PREFIX + name)
    return value if value not in (None, "") else None


def load_config(config_path: Optional[str] = None) -> PoolConfig:
    """
    Load configuration from the environment.

    Variables are read with the SHIELDPOOL_ prefix, e.g.
    SHIELDPOOL_TREE_HEIGHT=20 or SHIELDPOOL_DENOMINATIONS=100,1000.

    Args:
        config_path: Optional dotenv file loaded before reading the environment

    Returns:
        PoolConfig instance
    """
    if config_path:
        load_dotenv(config_path, override=False)

    kwargs = {}

    if (value := _env("TREE_HEIGHT")) is not None:
        kwargs["tree_height"] = int(value)
    if (value := _env("ROOT_HISTORY_SIZE")) is not None:
        kwargs["root_history_size"] = int(value)
    if (value := _env("DENOMINATIONS")) is not None:
        kwargs["denominations"] = tuple(int(v) for v in value.split(",") if v.strip())
    if (value := _env("USE_MOCK_VERIFIER")) is not None:
        kwargs["use_mock_verifier"] = value.lower() in ("1", "true", "yes")
    if (value := _env("CIRCUIT_NAME")) is not None:
        kwargs["circuit_name"] = value
    for name in ("data_dir", "log_dir", "circuit_dir"):
        if (value := _env(name.upper())) is not None:
            kwargs[name] = Path(value)

    return PoolConfig(**kwargs)
