"""
Core module for the Pharos testnet task runner.

This package contains the orchestration, configuration, retry, shutdown,
proxy selection and monitoring components that drive the wallet pipeline.

Submodules:
    config: Application settings (``BotSettings``, ``AccountProfile``) via Pydantic.
    errors: ``ErrorType`` taxonomy, typed exceptions and ``classify_error``.
    retry: ``execute`` bounded retry returning an ``Outcome``.
    guard: ``FreezeGuard`` timeout racer for pipeline steps.
    session: Address-keyed authentication session cache.
    shutdown: ``ShutdownCoordinator`` flag, interruptible sleep and forced exit.
    orchestrator: ``AccountPipeline`` step sequence and ``CycleDriver`` loop.
    proxy_manager: Static proxy list with per-account random selection.
    monitoring: Per-cycle step statistics and the cycle loader (Rich).
    logging_setup: Compressed rotating file + safe console logging.
"""
