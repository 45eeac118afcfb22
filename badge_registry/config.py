"""Badge Registry — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings

from badge_registry.registry.schema import SECONDS_PER_DAY, Tier


class BadgeSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── Registry ───────────────────────────────────────────────
    admin_identity: str = "0x00000000000000000000000000000000000000a1"
    base_uri: str = ""
    collection_name: str = "NFT Membership Badges"
    collection_symbol: str = "BADGE"

    # ── Tier validity (days) ───────────────────────────────────
    bronze_validity_days: int = 30
    silver_validity_days: int = 90
    gold_validity_days: int = 180
    platinum_validity_days: int = 365
    diamond_validity_days: int = 730

    @property
    def tier_validity(self) -> dict[Tier, int]:
        return {
            Tier.BRONZE: self.bronze_validity_days * SECONDS_PER_DAY,
            Tier.SILVER: self.silver_validity_days * SECONDS_PER_DAY,
            Tier.GOLD: self.gold_validity_days * SECONDS_PER_DAY,
            Tier.PLATINUM: self.platinum_validity_days * SECONDS_PER_DAY,
            Tier.DIAMOND: self.diamond_validity_days * SECONDS_PER_DAY,
        }

    # ── Event Ledger ───────────────────────────────────────────
    event_store_url: str = "sqlite:///badge_events.db"

    # ── HTTP API ───────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = BadgeSettings()
