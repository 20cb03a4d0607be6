"""Runtime settings loaded from the environment (.env.local / .env)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_REPORT_DIR = Path("outputs/catalog_consolidation")
DEFAULT_FAMILIES_FILE = Path("curated_families.json")
PLACEHOLDER_TOKENS = ("your-store", "example.com", "changeme", "shpat_xxx")


def load_env_files(workspace: Optional[Path] = None) -> None:
    """Load .env.local then .env; variables already set in the process win."""
    for name in (".env.local", ".env"):
        path = (workspace or Path.cwd()) / name
        if path.exists():
            load_dotenv(path, override=False)


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        raise SystemExit(f"{key} must be an integer, got {raw!r}")


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = (env.get(key) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        raise SystemExit(f"{key} must be a number, got {raw!r}")


@dataclass
class Settings:
    domain: str
    token: str
    api_version: str = "2025-01"
    page_size: int = 50
    pacing_batch: int = 10
    pacing_delay: float = 1.0
    timeout: float = 30.0
    max_attempts: int = 5
    report_dir: Path = DEFAULT_REPORT_DIR
    families_file: Path = DEFAULT_FAMILIES_FILE

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            domain=(env.get("SHOPIFY_STORE_DOMAIN") or "").strip(),
            token=(env.get("SHOPIFY_ADMIN_ACCESS_TOKEN") or "").strip(),
            api_version=(env.get("SHOPIFY_API_VERSION") or "2025-01").strip(),
            page_size=max(1, min(250, _int(env, "CONSOLIDATION_PAGE_SIZE", 50))),
            pacing_batch=max(1, _int(env, "CONSOLIDATION_PACING_BATCH", 10)),
            pacing_delay=max(0.0, _float(env, "CONSOLIDATION_PACING_DELAY", 1.0)),
            timeout=_float(env, "CONSOLIDATION_TIMEOUT", 30.0),
            max_attempts=max(1, _int(env, "CONSOLIDATION_MAX_ATTEMPTS", 5)),
            report_dir=Path(env.get("CONSOLIDATION_REPORT_DIR") or DEFAULT_REPORT_DIR),
            families_file=Path(env.get("CONSOLIDATION_FAMILIES_FILE") or DEFAULT_FAMILIES_FILE),
        )

    def require_credentials(self) -> None:
        if not self.domain or not self.token:
            raise SystemExit(
                "Missing SHOPIFY_STORE_DOMAIN or SHOPIFY_ADMIN_ACCESS_TOKEN environment variables"
            )
        for value, name in ((self.domain, "SHOPIFY_STORE_DOMAIN"), (self.token, "SHOPIFY_ADMIN_ACCESS_TOKEN")):
            if any(t in value.lower() for t in PLACEHOLDER_TOKENS):
                raise SystemExit(f"{name} appears to be a placeholder. Set a real value before running.")
