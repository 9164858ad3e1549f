"""Dotenv loading for local runs.

Files are read from the project root, and variables already present in the
process environment always win:
- .env
- .env.dev, only when DJANGO_ENV is dev/development/local

Deployed workers should get real environment variables (or a secret store
for ALERTS_TRACKER_TOKEN and ALERTS_WEBHOOK_TOKENS) instead.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

DEV_ENVIRONMENTS = {"dev", "development", "local"}


def is_dev_environment() -> bool:
    return os.environ.get("DJANGO_ENV", "").lower() in DEV_ENVIRONMENTS


def load_env(base_dir: Path | None = None) -> None:
    """Load dotenv files into the process environment. Idempotent.

    Args:
        base_dir: Directory holding the dotenv files; defaults to the
            project root (the parent of config/).
    """
    if base_dir is None:
        base_dir = Path(__file__).resolve().parent.parent

    load_dotenv(base_dir / ".env", override=False)
    if is_dev_environment():
        load_dotenv(base_dir / ".env.dev", override=False)
