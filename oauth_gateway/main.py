"""
FastAPI Main Application

Run with `oauth-gateway` (console script) or
`uvicorn oauth_gateway.main:create_app --factory`.
"""

import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Callable, Optional

import httpx
import uvicorn
from dotenv import dotenv_values
from fastapi import FastAPI
from loguru import logger
from pydantic import ValidationError

from oauth_gateway.api import api_router
from oauth_gateway.common.exceptions import ConfigError, register_exception_handlers
from oauth_gateway.common.logging import LoggingMiddleware, setup_logging
from oauth_gateway.core.oauth.config import SettingsSnapshot, descriptor_summary, load_snapshot
from oauth_gateway.core.oauth.registry import ConfigHandle
from oauth_gateway.core.redis import RedisClient
from oauth_gateway.core.settings import ENV_FILE, Settings
from oauth_gateway.services.drive_service import DriveFlow
from oauth_gateway.services.exchange_service import TokenExchanger
from oauth_gateway.services.login_service import LoginFlow
from oauth_gateway.services.registrar_service import RegistrarClient
from oauth_gateway.services.session_service import (
    MemorySessionStore,
    RedisSessionStore,
    SessionBroker,
    SessionStore,
)


def snapshot_loader(
    settings_factory: Optional[Callable[[], Settings]] = None,
    env_file: Path = ENV_FILE,
) -> Callable[[int], SettingsSnapshot]:
    """
    Loader for ConfigHandle: options from the environment and `env_file`,
    providers from YAML.

    `env_file` is read again on every load and never exported to os.environ,
    so a reload sees its current contents.
    """

    def load(version: int) -> SettingsSnapshot:
        # Process environment wins over the file, as in Settings
        environ = {k: v for k, v in dotenv_values(env_file).items() if v is not None}
        environ.update(os.environ)
        try:
            options = settings_factory() if settings_factory else Settings(_env_file=env_file)
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors(include_input=False)
            )
            raise ConfigError(context=f"invalid settings: {details}") from None
        return load_snapshot(options, version, environ=environ)

    return load


def create_app(
    config: Optional[ConfigHandle] = None,
    session_store: Optional[SessionStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        config: configuration handle; loaded from the environment when None
        session_store: flow session backend; Redis when configured, else in-memory
        http_client: outbound client shared by exchanger and registrar

    Raises:
        ConfigError: configuration is invalid, the service must not start
    """
    handle = config or ConfigHandle(snapshot_loader())
    if not handle.loaded:
        handle.load()
    options = handle.current().settings.options

    setup_logging(options.log_level, options.log_to_file)

    use_redis = session_store is None and bool(options.redis_url)
    if session_store is None:
        session_store = RedisSessionStore() if use_redis else MemorySessionStore()

    owns_http_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(options.http_timeout_seconds))

    # Only RESTART_FIELDS are bound here; other options are read per request
    broker = SessionBroker(session_store)
    exchanger = TokenExchanger(http_client, user_agent=options.app_name)
    registrar = RegistrarClient(http_client, user_agent=options.app_name)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """Application Lifecycle"""
        generation = handle.current()
        logger.info(f"🚀 Starting {options.app_name} v{options.app_version}")
        logger.info(f"   Environment: {options.environment}")
        logger.info(f"   Configuration generation: {generation.version}")
        logger.info(f"   Providers: {', '.join(descriptor_summary(generation.settings)) or 'none'}")

        if use_redis:
            await RedisClient.init(options.redis_url, options.redis_pool_size)
        else:
            logger.info("   Redis not configured (flow sessions kept in memory)")

        yield

        if owns_http_client:
            await http_client.aclose()
        if use_redis:
            await RedisClient.close()
        logger.info("👋 Application shutdown")

    app = FastAPI(
        title=options.app_name,
        version=options.app_version,
        description="OAuth2 gateway: identity login and drive authorization with PKCE",
        docs_url="/docs" if options.debug or options.environment == "development" else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.config = handle
    app.state.session_broker = broker
    app.state.login_flow = LoginFlow(broker, exchanger, registrar)
    app.state.drive_flow = DriveFlow(broker, exchanger, registrar)

    # Exception handling
    register_exception_handlers(app)

    # Add logging middleware
    app.add_middleware(LoggingMiddleware)

    app.include_router(api_router)
    return app


def run() -> None:
    """Console entry point"""
    try:
        app = create_app()
    except ConfigError as e:
        logger.error(f"Configuration error, not starting: {e.context}")
        raise SystemExit(1)

    options = app.state.config.current().settings.options
    uvicorn.run(app, host=options.host, port=options.port)


if __name__ == "__main__":
    run()
