"""
HTTP transport for extension hosts.

    GET  /events?window=<id>&kind=<kind>   SSE stream; one connection = one host
    POST /invoke/<channel>                 {"host": <id>, "args": [...]} -> {"result": ...}
    GET  /health

Every request is bridged onto the control loop, so HTTP workers never touch
tab state directly.
"""

import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .auth import TokenAuth, create_auth_middleware
from .broadcast import MailboxHost
from .config import Config
from .context import ExtensionContext
from .errors import InvalidInput, TabHubError
from .loop import ControlLoop

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "not_found": 404,
    "invalid_input": 400,
    "timeout": 504,
}


@dataclass
class Caller:
    """Command sender that is not a registered host."""
    id: Any = None
    window_id: Optional[int] = None


def format_sse(event_name: str, args) -> str:
    """One SSE frame; data is the JSON array of event arguments."""
    return f"event: {event_name}\ndata: {json.dumps(list(args))}\n\n"


# ══════════════════════════════════════════════════════════════════════════════
# Gateway
# ══════════════════════════════════════════════════════════════════════════════
class HostGateway:
    """Thread-safe entry points that run on the control loop."""

    def __init__(self, context: ExtensionContext, loop: ControlLoop, config: Optional[Config] = None):
        self.context = context
        self.loop = loop
        self.config = config or context.config

    def connect_host(self, window_id: Optional[int] = None, kind: str = "remote") -> MailboxHost:
        host = MailboxHost(self.config.mailbox_size, kind=kind, window_id=window_id)
        self.loop.call(self.context.observe_extension_host, host, timeout=self.config.command_timeout)
        return host

    def disconnect_host(self, host: MailboxHost):
        self.loop.post(host.close)

    def _invoke(self, channel: str, host_id: Any, args: List[Any]) -> Any:
        sender = Caller(id=host_id)
        if host_id is not None:
            for host in self.context.broadcaster.hosts:
                if host.id == host_id:
                    sender = host
                    break
        return self.context.invoke(channel, sender, *args)

    def invoke(self, channel: str, host_id: Any = None, args: Optional[List[Any]] = None) -> Any:
        return self.loop.call(self._invoke, channel, host_id, list(args or []),
                              timeout=self.config.command_timeout)

    def status(self) -> Dict[str, Any]:
        def read():
            return {
                "status": "ok",
                "tabs": len(self.context.registry),
                "hosts": len(self.context.broadcaster),
            }
        return self.loop.call(read, timeout=self.config.command_timeout)


# ══════════════════════════════════════════════════════════════════════════════
# App
# ══════════════════════════════════════════════════════════════════════════════
def create_app(gateway: HostGateway, auth: Optional[TokenAuth] = None):
    """Starlette app exposing the gateway."""
    from starlette.applications import Starlette
    from starlette.concurrency import run_in_threadpool
    from starlette.middleware import Middleware
    from starlette.requests import Request
    from starlette.responses import JSONResponse, StreamingResponse
    from starlette.routing import Route

    async def health(request: Request):
        return JSONResponse(await run_in_threadpool(gateway.status))

    async def events(request: Request):
        window = request.query_params.get("window")
        try:
            window_id = int(window) if window is not None else None
        except ValueError:
            return JSONResponse(InvalidInput(f"Bad window id: {window}").to_dict(), status_code=400)
        kind = request.query_params.get("kind", "remote")
        host = await run_in_threadpool(gateway.connect_host, window_id, kind)

        async def stream():
            try:
                yield format_sse("host", [{"id": host.id, "windowId": window_id}])
                while not host.destroyed:
                    if await request.is_disconnected():
                        break
                    event = await run_in_threadpool(host.get, 0.5)
                    if event is not None:
                        yield format_sse(*event)
            finally:
                gateway.disconnect_host(host)

        return StreamingResponse(stream(), media_type="text/event-stream",
                                 headers={"Cache-Control": "no-cache"})

    async def invoke(request: Request):
        channel = request.path_params["channel"]
        try:
            body = await request.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict) or not isinstance(body.get("args", []), list):
            error = InvalidInput("Body must be an object with an `args` array")
            return JSONResponse(error.to_dict(), status_code=400)

        try:
            result = await run_in_threadpool(gateway.invoke, channel, body.get("host"), body.get("args", []))
        except TabHubError as e:
            return JSONResponse(e.to_dict(), status_code=ERROR_STATUS.get(e.code, 500))
        return JSONResponse({"result": result})

    routes = [
        Route("/health", endpoint=health, methods=["GET"]),
        Route("/events", endpoint=events, methods=["GET"]),
        Route("/invoke/{channel}", endpoint=invoke, methods=["POST"]),
    ]

    middleware = []
    if auth is not None:
        middleware.append(Middleware(create_auth_middleware(auth)))

    return Starlette(routes=routes, middleware=middleware)


# ══════════════════════════════════════════════════════════════════════════════
# Run
# ══════════════════════════════════════════════════════════════════════════════
def run(config: Optional[Config] = None, transport: str = "http"):
    """Connect to Chrome, start the control loop and serve extension hosts."""
    import uvicorn

    from .browser import CDP, CDPEnvironment

    config = config or Config()
    loop = ControlLoop()
    loop.start()

    cdp = CDP(config.chrome_address, dispatch=loop.post)
    try:
        cdp.connect()
    except Exception as e:
        loop.stop()
        print(f"[!] Cannot reach Chrome at {config.chrome_address}: {e}", file=sys.stderr)
        print(f"[*] Start Chrome with --remote-debugging-port and --remote-allow-origins=*", file=sys.stderr)
        raise SystemExit(1)

    # tabs.create makes three round trips inside one command
    env = CDPEnvironment(cdp, timeout=min(CDPEnvironment.DEFAULT_TIMEOUT, config.command_timeout / 4))
    context = ExtensionContext(environment=env, config=config)
    gateway = HostGateway(context, loop, config)

    try:
        loop.call(env.bind, context, timeout=config.command_timeout)

        if transport == "mcp":
            from .tools import create_mcp_server
            print("[*] tabhub MCP server (stdio)", file=sys.stderr)
            create_mcp_server(gateway).run()
            return

        auth = TokenAuth(config.token) if config.auth else None
        print(f"[*] tabhub listening on http://{config.host}:{config.port}", file=sys.stderr)
        if auth is not None:
            print(f"[*] Token: {auth.token}", file=sys.stderr)
            print(f"[*] Events: http://{config.host}:{config.port}/events?token={auth.token}", file=sys.stderr)
        else:
            print("[*] Auth: DISABLED (not recommended)", file=sys.stderr)

        uvicorn.run(create_app(gateway, auth), host=config.host, port=config.port, log_level="warning")
    finally:
        loop.call(context.close, timeout=config.command_timeout)
        loop.stop()
        cdp.close()
