"""
Badge Registry — service entrypoint.

1. Configures structured logging
2. Initializes the event ledger (schema + genesis entry)
3. Builds the capability engine, pause switch, and registry
4. Serves the HTTP API

Usage:
    python -m badge_registry.main
"""

from __future__ import annotations

import logging
import sys

import structlog

from badge_registry.config import BadgeSettings, settings

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure structured logging."""
    logging.basicConfig(level=settings.log_level, format="%(message)s", stream=sys.stdout)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if settings.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_registry(config: BadgeSettings):
    """
    Wire a registry backed by the persistent event ledger.

    Returns:
        Tuple of (MembershipRegistry, EventLedgerService).
    """
    from badge_registry.governance.permissions import CapabilityEngine
    from badge_registry.ledger.service import EventLedgerService
    from badge_registry.ledger.sink import LedgerEventSink
    from badge_registry.registry.metadata import MetadataStore
    from badge_registry.registry.service import MembershipRegistry

    ledger = EventLedgerService(config.event_store_url)
    ledger.initialize()

    registry = MembershipRegistry(
        CapabilityEngine(admin=config.admin_identity),
        event_sink=LedgerEventSink(ledger),
        metadata=MetadataStore(config.base_uri),
        tier_validity=config.tier_validity,
        name=config.collection_name,
        symbol=config.collection_symbol,
    )
    return registry, ledger


def main() -> None:
    """Start the registry service."""
    configure_logging()
    log = structlog.get_logger()

    log.info(
        "badge_registry.main.starting",
        admin=settings.admin_identity,
        event_store=settings.event_store_url,
    )

    from badge_registry.api.app import state

    try:
        state.registry, state.ledger_service = build_registry(settings)
    except Exception as e:
        log.exception("badge_registry.main.fatal_error", error=str(e))
        sys.exit(1)

    is_valid, entries, message = state.ledger_service.verify_chain()
    if not is_valid:
        log.critical("badge_registry.main.integrity_failure", message=message, entries=entries)
        sys.exit(1)
    log.info("badge_registry.main.ledger_ready", entries=entries)

    import uvicorn

    log.info("badge_registry.main.serving", host=settings.api_host, port=settings.api_port)
    uvicorn.run("badge_registry.api.app:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
