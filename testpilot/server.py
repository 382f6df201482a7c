"""HTTP API of the dashboard, including the live run event stream."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field

from aiohttp import web

from testpilot.archive import InvalidReportIdError, ReportArchive
from testpilot.config import ServerConfig
from testpilot.coordinator import RunCoordinator
from testpilot.models.events import RunEvent, encode_event
from testpilot.models.request import RunRequest
from testpilot.registry import TestRegistry, default_registry, load_registry

log = logging.getLogger(__name__)

CORS_HEADERS: Mapping[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

SSE_HEADERS: Mapping[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

DISCONNECT_POLL_INTERVAL = 0.25

type Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Allow the UI to call the API from another origin."""
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(CORS_HEADERS)
        raise
    if not response.prepared:
        response.headers.update(CORS_HEADERS)
    return response


@dataclass(frozen=True, kw_only=True)
class DashboardServer:
    """Request handlers bound to the registry, archive and coordinator.

    Only one run may be active at a time; a second run request is rejected
    rather than queued.
    """

    registry: TestRegistry
    archive: ReportArchive
    coordinator: RunCoordinator
    _run_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def run_active(self) -> bool:
        return self._run_lock.locked()

    def build_app(self) -> web.Application:
        """Create the aiohttp application serving this dashboard."""
        app = web.Application(middlewares=[cors_middleware])
        app.router.add_get("/health", self.handle_health)
        app.router.add_get("/api/tests", self.handle_list_tests)
        app.router.add_get("/api/run", self.handle_run, allow_head=False)
        app.router.add_get("/api/reports", self.handle_list_reports)
        app.router.add_get("/api/reports/{report_id}", self.handle_get_report)
        app.router.add_delete("/api/reports/{report_id}", self.handle_delete_report)

        self.archive.reports_dir.mkdir(parents=True, exist_ok=True)
        app.router.add_static("/reports", self.archive.reports_dir)
        return app

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def handle_list_tests(self, request: web.Request) -> web.Response:
        """List every registered test with its variables."""
        return web.json_response([spec.to_wire() for spec in self.registry])

    async def handle_run(self, request: web.Request) -> web.StreamResponse:
        """Run tests and stream the run's events as server-sent events.

        The run is cancelled as soon as the client goes away, even while the
        runner is silent and nothing is being written.
        """
        if self._run_lock.locked():
            return web.json_response(
                {"error": "A test run is already in progress"}, status=409
            )

        run_request = RunRequest.from_query(
            request.query.get("ids"), request.query.get("vars")
        )

        async with self._run_lock:
            log.info("Run requested: ids=%s", list(run_request.ids))
            response = web.StreamResponse(headers={**SSE_HEADERS, **CORS_HEADERS})
            await response.prepare(request)

            events = self.coordinator.start_run(run_request)
            relay = asyncio.create_task(_relay(events, response))
            disconnect = asyncio.create_task(_wait_for_disconnect(request))
            try:
                await asyncio.wait(
                    {relay, disconnect}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                disconnect.cancel()
                if not relay.done():
                    relay.cancel()
                await asyncio.gather(relay, disconnect, return_exceptions=True)
                await events.aclose()

            if relay.cancelled():
                log.info("Client disconnected, run cancelled")
                return response
            error = relay.exception()
            if isinstance(error, ConnectionResetError):
                log.info("Client disconnected, run cancelled")
                return response
            if error is not None:
                raise error

            await response.write_eof()
            return response

    async def handle_list_reports(self, request: web.Request) -> web.Response:
        """List archived reports, newest first."""
        return web.json_response(
            [record.to_wire() for record in self.archive.list_reports()]
        )

    async def handle_get_report(self, request: web.Request) -> web.Response:
        try:
            record = self.archive.get_report(request.match_info["report_id"])
        except InvalidReportIdError:
            return web.json_response({"error": "Invalid report ID"}, status=400)
        if record is None:
            return web.json_response({"error": "Report not found"}, status=404)
        return web.json_response(record.to_wire())

    async def handle_delete_report(self, request: web.Request) -> web.Response:
        """Delete one archived report and its HTML bundle."""
        try:
            deleted = self.archive.delete(request.match_info["report_id"])
        except InvalidReportIdError:
            return web.json_response({"error": "Invalid report ID"}, status=400)
        if not deleted:
            return web.json_response({"error": "Report not found"}, status=404)
        return web.json_response({"ok": True})


def create_app(
    config: ServerConfig, registry: TestRegistry | None = None
) -> web.Application:
    """Wire up registry, archive and coordinator from configuration."""
    if registry is None:
        registry = (
            load_registry(config.registry_path)
            if config.registry_path
            else default_registry()
        )

    archive = ReportArchive(
        reports_dir=config.reports_dir,
        report_source_dir=config.runner.report_path,
        registry=registry,
    )
    coordinator = RunCoordinator(
        registry=registry, archive=archive, runner=config.runner
    )
    server = DashboardServer(
        registry=registry, archive=archive, coordinator=coordinator
    )
    return server.build_app()


async def _relay(events: AsyncIterator[RunEvent], response: web.StreamResponse) -> None:
    async for event in events:
        await response.write(f"data: {encode_event(event)}\n\n".encode())


async def _wait_for_disconnect(request: web.Request) -> None:
    # aiohttp drops the request's transport once the connection is lost
    while request.transport is not None and not request.transport.is_closing():
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)
