"""
Core module for the Farmers World bot.

This package contains configuration, logging, endpoint failover and the
orchestration components that drive the maintenance cycle.

Submodules:
    config: Application settings (``BotSettings``, ``AccountProfile``) via Pydantic.
    logging_setup: Compressed rotating file + safe console logging.
    endpoint_pool: ``EndpointPool`` and ordered failover with per-attempt timeouts.
    orchestrator: ``TaskOrchestrator`` per-account state machine.
    scheduler: ``Scheduler`` fixed-interval cycle runner.
"""
