"""
Configuration management using pydantic-settings.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cellwallet.constants import DERIVE_CHANGE_ADDRESS_MAX_LEN, MAX_TX_FEE, MIN_SECP_CELL_CAPACITY


class TransferLimits(BaseModel):
    """Safety limits applied while balancing a transfer (shannons)."""

    fee_ceiling: int = Field(default=MAX_TX_FEE, ge=0, description="Maximum transaction fee")
    min_cell_capacity: int = Field(
        default=MIN_SECP_CELL_CAPACITY, ge=0, description="Smallest output a lock can hold"
    )
    derive_change_max_len: int = Field(
        default=DERIVE_CHANGE_ADDRESS_MAX_LEN,
        ge=1,
        description="How many change keys to search for the HD change address",
    )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CELLWALLET_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    rpc_url: str = "http://127.0.0.1:8114"
    rpc_timeout: float = Field(default=30.0, gt=0)
    index_snapshot: Path | None = None

    log_level: str = "INFO"

    fee_ceiling: int = Field(default=MAX_TX_FEE, ge=0)
    min_cell_capacity: int = Field(default=MIN_SECP_CELL_CAPACITY, ge=0)
    derive_change_max_len: int = Field(default=DERIVE_CHANGE_ADDRESS_MAX_LEN, ge=1)

    def transfer_limits(self) -> TransferLimits:
        return TransferLimits(
            fee_ceiling=self.fee_ceiling,
            min_cell_capacity=self.min_cell_capacity,
            derive_change_max_len=self.derive_change_max_len,
        )


def get_settings() -> Settings:
    return Settings()
