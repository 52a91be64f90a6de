from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

load_dotenv()

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [parent / "config/config.yaml" for parent in _HERE.parents[:4]]

DEFAULTS: Dict[str, Any] = {
    "database_path": "data/conversions.db",
    "default_job_limit": 50,
    "max_job_limit": 100,
    "default_usage_days": 30,
    "rate_limit_per_minute": 60,
    "log_level": "INFO",
    "cors_origins": ["*"],
    "master_api_key": "",
    "exchange_rates": {
        "api_key": "",
        "base_url": "https://api.exchangeratesapi.io/v1",
        "timeout_seconds": 15,
    },
    "ai": {
        "api_key": "",
        "base_url": "https://ai.gateway.lovable.dev/v1",
        "model": "google/gemini-2.5-flash",
        "max_tokens": 2000,
        "temperature": 0.7,
        "timeout_seconds": 60,
    },
    "pdf": {
        "soffice_binary": "soffice",
        "ghostscript_binary": "gs",
        "qpdf_binary": "qpdf",
        "timeout_seconds": 120,
        "default_quality": "medium",
    },
}

# Environment variable -> dotted config key
ENV_OVERRIDES: Dict[str, str] = {
    "DATABASE_PATH": "database_path",
    "LOG_LEVEL": "log_level",
    "MASTER_API_KEY": "master_api_key",
    "RATE_LIMIT_PER_MINUTE": "rate_limit_per_minute",
    "EXCHANGE_RATES_API_KEY": "exchange_rates.api_key",
    "AI_GATEWAY_API_KEY": "ai.api_key",
    "AI_GATEWAY_URL": "ai.base_url",
    "AI_MODEL": "ai.model",
    "SOFFICE_BINARY": "pdf.soffice_binary",
    "GHOSTSCRIPT_BINARY": "pdf.ghostscript_binary",
    "QPDF_BINARY": "pdf.qpdf_binary",
}


def _find_config_file() -> Optional[Path]:
    explicit = os.environ.get("CONVERTER_CONFIG_PATH")
    if explicit:
        path = Path(explicit)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found at {path}")
        return path
    return next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)


def _apply_env_overrides(config: DictConfig) -> None:
    """
    Copy set environment variables into ``config``.

    Values are taken verbatim so keys and secrets are never reinterpreted;
    only settings whose default is numeric are converted.
    """
    for env_name, key in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        current = OmegaConf.select(config, key)
        value: Any = raw
        if isinstance(current, (int, float)) and not isinstance(current, bool):
            value = type(current)(raw)
        OmegaConf.update(config, key, value)


def load_config(overrides: Optional[Dict[str, Any]] = None) -> DictConfig:
    """
    Build the runtime configuration.

    Layers, lowest precedence first: built-in defaults, the YAML config file
    (if one is found), environment variables, then explicit ``overrides``.
    Unknown keys in any layer are rejected.
    """
    base = OmegaConf.create(DEFAULTS)
    OmegaConf.set_struct(base, True)

    config_path = _find_config_file()
    if config_path is not None:
        config = OmegaConf.merge(base, OmegaConf.load(config_path))
    else:
        config = base

    _apply_env_overrides(config)
    if overrides:
        config = OmegaConf.merge(config, OmegaConf.create(overrides))
    return config


@lru_cache(maxsize=1)
def get_config() -> DictConfig:
    return load_config()
