"""redeguard — Engine configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class RedeGuardSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "REDEGUARD_",
        "extra": "ignore",
    }

    # ── Kids subtree constraints ───────────────────────────────
    kids_leadership_gender: str = "FEMALE"
    kids_leader_min_ministry: str = "PASTOR"

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "console"


settings = RedeGuardSettings()
