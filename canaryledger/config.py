"""
Configuration module for the canary ledger.

Centralizes all configuration with environment variable support,
validation, and caching of key files.
"""

import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("CANARYLEDGER_ENV", "dev")  # dev|stage|prod

# Canary
CANARY_INTERVAL_SECONDS = int(os.getenv("CANARY_INTERVAL_SECONDS", "86400"))
CANARY_THREAT_THRESHOLD = int(os.getenv("CANARY_THREAT_THRESHOLD", "3"))

# Verifiers
VERIFIER_TYPE = os.getenv("CANARYLEDGER_VERIFIER", "placeholder")  # placeholder|ed25519
ORACLE_MIN_CREDENTIAL_LENGTH = int(os.getenv("ORACLE_MIN_CREDENTIAL_LENGTH", "64"))
SIGNATURE_MIN_CREDENTIAL_LENGTH = int(os.getenv("SIGNATURE_MIN_CREDENTIAL_LENGTH", "1"))
ORACLE_PUBLIC_KEYS_PATH = os.getenv("ORACLE_PUBLIC_KEYS_PATH", "trust/oracle_keys.json")
SIGNER_KEYS_PATH = os.getenv("SIGNER_KEYS_PATH", "trust/signer_keys.json")

# Storage
LEDGER_BACKEND = os.getenv("LEDGER_BACKEND", "memory")  # memory|sqlite
LEDGER_DB_PATH = os.getenv("LEDGER_DB_PATH", "data/canaryledger.db")

# HTTP rate limits (requests per minute, per caller)
STORE_RPM = int(os.getenv("STORE_RPM", "120"))
AUTHENTICATE_RPM = int(os.getenv("AUTHENTICATE_RPM", "120"))
CANARY_RPM = int(os.getenv("CANARY_RPM", "10"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "true").lower() in ("1", "true", "yes")
LOG_FILE = os.getenv("LOG_FILE") or None

# Cache TTL (seconds)
CONFIG_CACHE_TTL = int(os.getenv("CONFIG_CACHE_TTL", "60"))


# ============================================================
# Cached Configuration Loaders
# ============================================================

class CachedConfig:
    """
    Thread-safe cached configuration loader.
    Reloads configuration files periodically based on TTL.
    """

    def __init__(self, ttl_seconds: int = 60):
        self._cache: Dict[str, Any] = {}
        self._timestamps: Dict[str, float] = {}
        self._lock = threading.RLock()
        self._ttl = ttl_seconds

    def _is_stale(self, key: str) -> bool:
        if key not in self._timestamps:
            return True
        return (time.time() - self._timestamps[key]) > self._ttl

    def get_json(self, path: str, force_reload: bool = False) -> Dict[str, Any]:
        """
        Load JSON file with caching.
        Returns cached version if within TTL, otherwise reloads.
        """
        with self._lock:
            if not force_reload and path in self._cache and not self._is_stale(path):
                return self._cache[path]

            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)

            self._cache[path] = data
            self._timestamps[path] = time.time()
            return data

    def invalidate(self, path: Optional[str] = None) -> None:
        """Invalidate cache for a specific path or all paths."""
        with self._lock:
            if path:
                self._cache.pop(path, None)
                self._timestamps.pop(path, None)
            else:
                self._cache.clear()
                self._timestamps.clear()


_config_cache = CachedConfig(ttl_seconds=CONFIG_CACHE_TTL)


def load_json_cached(path: str) -> Dict[str, Any]:
    """Load JSON file with caching."""
    return _config_cache.get_json(path)


def load_key_map(path: str) -> Dict[str, str]:
    """
    Load an identity -> base64 Ed25519 public key map.

    Accepts either a flat object or one nested under "keys".
    """
    data = load_json_cached(path)
    keys = data.get("keys", data)
    if not isinstance(keys, dict):
        raise ConfigurationError(f"{path}: expected an object of base64 public keys")
    return {str(k): str(v) for k, v in keys.items()}


def invalidate_config_cache() -> None:
    """Invalidate all cached configuration."""
    _config_cache.invalidate()


# ============================================================
# Validation
# ============================================================

def validate_config() -> List[str]:
    """
    Check settings for invalid or unsafe values.

    Returns:
        List of problems found (empty when the configuration is sound)
    """
    problems = []

    if ENV not in ("dev", "stage", "prod"):
        problems.append(f"CANARYLEDGER_ENV must be dev, stage or prod, got {ENV!r}")
    if CANARY_INTERVAL_SECONDS <= 0:
        problems.append("CANARY_INTERVAL_SECONDS must be positive")
    if CANARY_THREAT_THRESHOLD != 3:
        problems.append("CANARY_THREAT_THRESHOLD is fixed at 3")
    if VERIFIER_TYPE not in ("placeholder", "ed25519"):
        problems.append(f"CANARYLEDGER_VERIFIER must be placeholder or ed25519, got {VERIFIER_TYPE!r}")
    if LEDGER_BACKEND not in ("memory", "sqlite"):
        problems.append(f"LEDGER_BACKEND must be memory or sqlite, got {LEDGER_BACKEND!r}")

    if VERIFIER_TYPE == "ed25519":
        for name, path in (("oracle keys", ORACLE_PUBLIC_KEYS_PATH), ("signer keys", SIGNER_KEYS_PATH)):
            if not Path(path).exists():
                problems.append(f"{name} file not found: {path}")

    if is_production():
        if VERIFIER_TYPE == "placeholder":
            problems.append("placeholder verifiers are not cryptographic and are refused in prod")
        if LEDGER_BACKEND == "memory":
            problems.append("memory backend loses state on restart and is refused in prod")

    return problems


def require_valid_config() -> None:
    """Raise ConfigurationError listing every problem validate_config() finds."""
    problems = validate_config()
    if problems:
        raise ConfigurationError("; ".join(problems))


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("CANARYLEDGER_DEBUG", "").lower() in ("1", "true", "yes")
