from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    if val in {"1", "true", "yes", "y", "on"}:
        return True
    if val in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int, min_val: int | None = None) -> int:
    """Get integer from environment with optional minimum enforcement."""
    val = int(os.environ.get(name, str(default)))
    if min_val is not None and val < min_val:
        return min_val
    return val


@dataclass(frozen=True)
class Settings:
    """Static settings for the editor and its local store.

    Keep defaults local and auditable; the RPC endpoint defaults to localhost.
    """

    root_dir: Path = Path(__file__).resolve().parents[2]
    data_dir: Path = root_dir / ".folio-data"
    log_path: Path = data_dir / "folio.log"
    log_level: str = os.environ.get("FOLIO_LOG_LEVEL", "INFO")
    log_max_bytes: int = _env_int("FOLIO_LOG_MAX_BYTES", 1_000_000)
    log_backup_count: int = _env_int("FOLIO_LOG_BACKUP_COUNT", 3)
    host: str = os.environ.get("FOLIO_HOST", "127.0.0.1")
    port: int = _env_int("FOLIO_PORT", 8020)

    # Editing
    # Quiet period before a buffered edit is pushed to the collection.
    debounce_ms: int = _env_int("FOLIO_DEBOUNCE_MS", 300, min_val=0)

    # Store
    trash_retention_days: int = _env_int("FOLIO_TRASH_RETENTION_DAYS", 30, min_val=1)
    default_owner: str = os.environ.get("FOLIO_DEFAULT_OWNER", "local")
    db_wal: bool = _env_bool("FOLIO_DB_WAL", True)

    # Client transport
    rpc_url: str = os.environ.get("FOLIO_RPC_URL", "http://127.0.0.1:8020/rpc")
    rpc_timeout: float = float(os.environ.get("FOLIO_RPC_TIMEOUT", "10"))


settings = Settings()


def resolve_data_dir() -> Path:
    """Data directory, honouring ``FOLIO_DATA_DIR`` at call time."""
    return Path(os.environ.get("FOLIO_DATA_DIR", settings.data_dir))
