"""AumOS Compliance Engine service entry point.

Initializes the FastAPI application with:
- structlog logging configured from Settings
- The state store for durable audit entries (in-memory or SQLAlchemy)
- The ComplianceService with default rules and retention policies
- The maintenance scheduler running periodic retention sweeps
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from aumos_compliance_engine.adapters.events import ComplianceEventBus
from aumos_compliance_engine.adapters.retention_store import InMemoryRetentionDataSource
from aumos_compliance_engine.adapters.scheduler import MaintenanceScheduler
from aumos_compliance_engine.adapters.state_store import close_state_store, init_state_store
from aumos_compliance_engine.api.router import router
from aumos_compliance_engine.core.interfaces import IRetentionDataSource, IStateStore
from aumos_compliance_engine.core.services import ComplianceService
from aumos_compliance_engine.observability import configure_logging, get_logger
from aumos_compliance_engine.settings import Settings

logger = get_logger(__name__)


def build_service(
    settings: Settings,
    state_store: IStateStore | None = None,
    event_bus: ComplianceEventBus | None = None,
    data_source: IRetentionDataSource | None = None,
) -> ComplianceService:
    """Construct a ComplianceService from settings.

    Args:
        settings: Service settings.
        state_store: Durable audit store, or None for in-memory audit only.
        event_bus: Event sink; a new ComplianceEventBus when omitted.
        data_source: Retention data source; a new in-memory source when omitted.

    Returns:
        An initialized ComplianceService.
    """
    service = ComplianceService(
        event_sink=event_bus if event_bus is not None else ComplianceEventBus(),
        retention_data_source=data_source if data_source is not None else InMemoryRetentionDataSource(),
        state_store=state_store,
        audit_max_entries=settings.audit_trail_max_entries,
        audit_ttl_days=settings.audit_ttl_days,
        max_violations=settings.max_violations,
        enforce_rule_validation=settings.enforce_rule_validation,
        enforce_policy_validation=settings.enforce_policy_validation,
        defaults_path=settings.defaults_path if settings.load_default_rules else None,
    )
    service.initialize()
    return service


def create_app(
    settings: Settings | None = None,
    retention_data_source: IRetentionDataSource | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Service settings; read from the environment when omitted.
        retention_data_source: Records swept by retention enforcement. An empty
            in-memory source is created when omitted and exposed on
            ``app.state.retention_data_source`` so records can be registered.

    Returns:
        The configured FastAPI application.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application startup and shutdown lifecycle.

        Builds the state store, compliance service and maintenance scheduler
        on startup. Stops the scheduler, flushes pending audit writes and
        disposes the state store engine on shutdown.

        Args:
            app: The FastAPI application instance.

        Yields:
            None
        """
        configure_logging(level=settings.log_level, json_output=settings.log_json)

        logger.info("Initializing state store", service=settings.service_name)
        state_store = await init_state_store(
            settings.state_store_url,
            pool_size=settings.state_store_pool_size,
        )

        event_bus = ComplianceEventBus()
        data_source = retention_data_source if retention_data_source is not None else InMemoryRetentionDataSource()
        service = build_service(settings, state_store=state_store, event_bus=event_bus, data_source=data_source)

        scheduler = MaintenanceScheduler(
            service,
            interval_seconds=settings.maintenance_interval_seconds,
            state_store=state_store,
        )
        await scheduler.start()

        # Shared objects for dependency injection
        app.state.settings = settings
        app.state.compliance_service = service
        app.state.event_bus = event_bus
        app.state.retention_data_source = data_source
        app.state.scheduler = scheduler

        logger.info("Compliance engine startup complete", rules_count=len(service.get_rules()))

        yield

        logger.info("Shutting down compliance engine")
        await scheduler.stop()
        await service.shutdown()
        await close_state_store()
        logger.info("Compliance engine shutdown complete")

    app = FastAPI(
        title=settings.service_name,
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router, prefix="/api/v1")

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.service_name}

    return app


app: FastAPI = create_app()
