# Core - Configuration
#
# Engine defaults, read from an optional .env file and the process
# environment (the environment wins). Only non-secret settings live
# here; master passwords are never read from configuration.

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import dotenv_values

from ..vault.exceptions import InvalidParameters
from ..vault.kdf import DEFAULT_KDF_PARAMS, KdfParams

ENV_PREFIX = "STRONGBOX_"

ENV_KDF_MEMORY = ENV_PREFIX + "KDF_MEMORY_KIB"
ENV_KDF_TIME = ENV_PREFIX + "KDF_TIME_COST"
ENV_KDF_PARALLELISM = ENV_PREFIX + "KDF_PARALLELISM"
ENV_AUDIT_LOG_DIR = ENV_PREFIX + "AUDIT_LOG_DIR"
ENV_FSYNC = ENV_PREFIX + "FSYNC"

_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class VaultConfig:
    """
    Engine settings.

    Attributes:
        kdf_params: Cost profile used by create_vault() when none is given
        audit_log_dir: Directory for daily audit log files (None = no file)
        fsync: Flush container writes to disk before the atomic replace
    """
    kdf_params: KdfParams = field(default_factory=lambda: DEFAULT_KDF_PARAMS)
    audit_log_dir: Optional[Path] = None
    fsync: bool = True


def _int_setting(values: Mapping[str, Optional[str]], name: str, default: int) -> int:
    raw = values.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise InvalidParameters(f"{name} must be an integer, got {raw!r}") from None


def load_config(
    env_file: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> VaultConfig:
    """
    Build a VaultConfig from an optional .env file and the environment.

    Args:
        env_file: Path to a dotenv file (ignored if None or missing)
        environ: Environment mapping (default: os.environ)

    Raises:
        InvalidParameters: KDF settings are not integers or out of range
    """
    values = {}
    if env_file is not None and Path(env_file).is_file():
        values.update(dotenv_values(env_file))
    values.update(os.environ if environ is None else environ)

    kdf_params = KdfParams(
        memory_cost=_int_setting(values, ENV_KDF_MEMORY, DEFAULT_KDF_PARAMS.memory_cost),
        time_cost=_int_setting(values, ENV_KDF_TIME, DEFAULT_KDF_PARAMS.time_cost),
        parallelism=_int_setting(values, ENV_KDF_PARALLELISM, DEFAULT_KDF_PARAMS.parallelism),
    ).validate()

    audit_dir = (values.get(ENV_AUDIT_LOG_DIR) or "").strip()
    fsync = (values.get(ENV_FSYNC) or "true").strip().lower() not in _FALSE_VALUES

    return VaultConfig(
        kdf_params=kdf_params,
        audit_log_dir=Path(audit_dir).expanduser() if audit_dir else None,
        fsync=fsync,
    )
