# backend/settings.py

"""
Runtime settings for the inventory arithmetic.

Values come from the environment (optionally a backend/.env file):
- DEFAULT_FEET_PER_LAYER      fallback when a product has no feet_per_layer (100)
- DEFAULT_LAYERS_PER_PALLET   fallback when a product has no layers_per_pallet (10)
- CLAMP_NEGATIVE_ON_COMMIT    clamp committed quantities at zero (false)
- LOG_LEVEL                   logging level name (INFO)
"""

import os
import logging
from pathlib import Path
from typing import Mapping, Optional
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

ROOT_DIR = Path(__file__).parent

DEFAULT_FEET_PER_LAYER = 100
DEFAULT_LAYERS_PER_PALLET = 10

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

_TRUE_VALUES = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Packing fallbacks and commit policy"""
    default_feet_per_layer: float = Field(default=DEFAULT_FEET_PER_LAYER, gt=0)
    default_layers_per_pallet: int = Field(default=DEFAULT_LAYERS_PER_PALLET, gt=0)
    clamp_negative_on_commit: bool = False
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level '{v}'")
        return level


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUE_VALUES


def get_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build settings from the environment.

    When environ is None the process environment is used, after loading
    backend/.env if present (existing variables win over the file).
    """
    if environ is None:
        load_dotenv(ROOT_DIR / '.env')
        environ = os.environ

    return Settings(
        default_feet_per_layer=environ.get('DEFAULT_FEET_PER_LAYER', DEFAULT_FEET_PER_LAYER),
        default_layers_per_pallet=environ.get('DEFAULT_LAYERS_PER_PALLET', DEFAULT_LAYERS_PER_PALLET),
        clamp_negative_on_commit=_flag(environ.get('CLAMP_NEGATIVE_ON_COMMIT')),
        log_level=environ.get('LOG_LEVEL', 'INFO')
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format=LOG_FORMAT
    )
