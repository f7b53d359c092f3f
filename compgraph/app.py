"""Application bootstrap for compgraph.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> proxy client -> resolver -> walker
              -> service -> catalog -> REST

Shutdown is graceful: components are stopped in reverse startup order and a
failure while stopping one does not prevent the others from stopping.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from compgraph.config import load_config
from compgraph.models.config import CompGraphConfig
from compgraph.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog
    import uvicorn

    from compgraph.catalog import CatalogClient
    from compgraph.resolver.client import KubernetesProxyClient
    from compgraph.service import ResourceGraphService

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class CompGraphApp:
    """Application root. Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self) -> None:
        self.config: CompGraphConfig | None = None

        self._proxy_client: KubernetesProxyClient | None = None
        self._service: ResourceGraphService | None = None
        self._catalog: CatalogClient | None = None
        self._rest_server: uvicorn.Server | None = None

        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("compgraph starting", version=_compgraph_version())

        # --- 3. Resolution pipeline -------------------------------------
        self._start_resolver()

        # --- 4. Catalog client (optional) -------------------------------
        self._start_catalog()

        # --- 5. REST API ------------------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info("compgraph started", port=self.config.api.port)

    def _start_resolver(self) -> None:
        """Build proxy client, resolver, walker and service."""
        assert self._log is not None
        assert self.config is not None
        try:
            from compgraph.resolver.client import KubernetesProxyClient, ObjectResolver, StaticTokenProvider
            from compgraph.resolver.paths import Pluralizer
            from compgraph.resolver.walker import GraphWalker
            from compgraph.service import ResourceGraphService

            self._proxy_client = KubernetesProxyClient(
                self.config.proxy,
                StaticTokenProvider(self.config.proxy.token),
            )
            resolver = ObjectResolver(
                self._proxy_client,
                Pluralizer().with_exceptions(self.config.resolver.plural_exceptions),
            )
            walker = GraphWalker(
                resolver,
                max_fanout=self.config.resolver.max_fanout,
                qualified_fallback_ids=self.config.resolver.qualified_fallback_ids,
            )
            self._service = ResourceGraphService(resolver, walker, self.config.resolver.deadline_seconds)
            self._log.info(
                "resolver started",
                proxy_url=self.config.proxy.url,
                max_fanout=self.config.resolver.max_fanout,
                deadline_seconds=self.config.resolver.deadline_seconds,
            )
        except Exception as exc:
            raise _ComponentError("resolver", exc) from exc

    def _start_catalog(self) -> None:
        assert self._log is not None
        assert self.config is not None
        if not self.config.catalog.url:
            self._log.info("catalog lookup disabled (no catalog url)")
            return
        from compgraph.catalog import CatalogClient

        self._catalog = CatalogClient(self.config.catalog.url, self.config.catalog.token)
        self._log.info("catalog client started", url=self.config.catalog.url)

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        assert self._service is not None
        try:
            import uvicorn

            from compgraph.api import build_app
            from compgraph.api.auth import StaticPolicy

            fastapi_app = build_app(
                service=self._service,
                authorizer=StaticPolicy(self.config.auth.denied_permissions),
                config=self.config,
                catalog=self._catalog,
            )
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    @property
    def serving(self) -> bool:
        """True while started and the REST server task is still running."""
        return self._running and all(not task.done() for task in self._background_tasks)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("compgraph shutting down")
        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True

        if self._background_tasks:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*self._background_tasks, return_exceptions=True),
                    timeout=_SHUTDOWN_GRACE_SECONDS,
                )
            except TimeoutError:
                log.warning("rest server stop timed out", timeout=_SHUTDOWN_GRACE_SECONDS)
                for task in self._background_tasks:
                    task.cancel()
        self._background_tasks.clear()

        await self._close("catalog", self._catalog)
        await self._close("proxy_client", self._proxy_client)
        log.info("compgraph stopped")

    async def _close(self, name: str, component: CatalogClient | KubernetesProxyClient | None) -> None:
        if component is None:
            return
        try:
            await component.aclose()
        except Exception as exc:
            (self._log or get_logger("app")).error("component stop raised an error", component=name, error=str(exc))


def _compgraph_version() -> str:
    from compgraph import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = CompGraphApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app.serving:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
