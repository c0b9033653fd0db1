"""Reconciliation configuration.

Defaults reproduce the ledger rules exactly. Individual values can be
overridden through ``RECON_*`` environment variables (or a ``.env`` file)
for experimentation, e.g. ``RECON_STATEMENT_CHUNK_SIZE=50``.
"""

import os
from decimal import Decimal
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


ENV_PREFIX = "RECON_"


class ReconciliationConfig(BaseModel):
    """Tolerances and tuning knobs for the pipeline."""

    # Outstanding in (-noise_tolerance, 0) is rounding noise
    noise_tolerance: Decimal = Field(default=Decimal("0.01"))
    # Slack used by every anomaly comparison
    anomaly_tolerance: Decimal = Field(default=Decimal("0.5"))
    # Entries below this balance count as settled
    settled_threshold: Decimal = Field(default=Decimal("1"))

    # Ambiguous D/M dates: window around the reference date
    date_window_days: int = Field(default=5)

    # Statement builder chunking; None picks by dataset size
    statement_chunk_size: Optional[int] = Field(default=None, ge=1)

    # Default strategy for recompute(): "strict" or "fuzzy"
    resolution_strategy: str = Field(default="strict")


DEFAULT_CONFIG = ReconciliationConfig()


def load_config(env_file: Optional[Path] = None) -> ReconciliationConfig:
    """Build a config from defaults plus RECON_* environment overrides.

    Args:
        env_file: Optional .env file to load first (existing env vars win)
    """
    if env_file is not None and env_file.exists():
        load_dotenv(env_file)
    else:
        load_dotenv()

    overrides = {}
    for name in ReconciliationConfig.model_fields:
        value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if value is not None and value.strip() != "":
            overrides[name] = value.strip()

    return ReconciliationConfig.model_validate(overrides)
