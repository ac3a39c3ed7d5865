"""aiohttp application entrypoint."""
from __future__ import annotations

from aiohttp import web
from aiohttp_cors import ResourceOptions
from aiohttp_cors import setup as cors_setup

from webhook_service.api.router import setup_routes
from webhook_service.db.migrations import create_migration_runner
from webhook_service.db.pool import close_pool, create_pool_hook
from webhook_service.logging_config import configure_logging
from webhook_service.middleware.errors import error_middleware
from webhook_service.middleware.trace import create_trace_middleware
from webhook_service.otel import setup_otel, shutdown_otel
from webhook_service.repositories.protocols import DeliveryLedger, SubscriptionRegistry
from webhook_service.services.dependencies import (
    CONTEXT_KEY,
    WebhookContext,
    close_http_session,
    init_storage,
    start_http_session,
)
from webhook_service.settings import Settings, settings
from webhook_service.workers import build_worker


def create_app(
    app_settings: Settings | None = None,
    *,
    registry: SubscriptionRegistry | None = None,
    ledger: DeliveryLedger | None = None,
    start_worker: bool = True,
) -> web.Application:
    app_settings = app_settings or settings
    configure_logging(app_settings.log_level)
    setup_otel(app_settings)

    app = web.Application(
        middlewares=[create_trace_middleware(app_settings.app_name), error_middleware]
    )
    app[CONTEXT_KEY] = WebhookContext(settings=app_settings, registry=registry, ledger=ledger)

    cors = cors_setup(
        app,
        defaults={
            origin: ResourceOptions(
                allow_credentials=True,
                expose_headers="*",
                allow_headers="*",
                allow_methods="*",
            )
            for origin in app_settings.cors_allowed_origins
        },
    )

    async def healthcheck(_request: web.Request) -> web.Response:
        return web.json_response(
            {"status": "ok", "service": app_settings.app_name, "env": app_settings.env}
        )

    app.router.add_get("/health", healthcheck)
    setup_routes(app)

    uses_postgres = app_settings.storage_backend == "postgres" and (
        registry is None or ledger is None
    )
    if uses_postgres:
        app.on_startup.append(create_pool_hook(app_settings))
        app.on_startup.append(create_migration_runner(app_settings))
    app.on_startup.append(init_storage)
    app.on_startup.append(start_http_session)

    if start_worker:
        worker = build_worker(app_settings)
        app.on_startup.append(worker.start)
        # stop the worker before the session and pool it uses go away
        app.on_cleanup.append(worker.stop)
    app.on_cleanup.append(close_http_session)
    if uses_postgres:
        app.on_cleanup.append(close_pool)
    app.on_cleanup.append(shutdown_otel)

    for route in list(app.router.routes()):
        cors.add(route)

    return app


def main() -> None:
    web.run_app(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
