"""
Drop Server — aiohttp boundary for the drop service.

Routes:
    POST   /v1/drop          create a drop from an encrypted envelope
    GET    /v1/drop/{id}     retrieve (and burn one view of) a drop
    DELETE /v1/drop/{id}     revoke a drop
    GET    /healthz          liveness probe

The store is owned by the application and its expiry sweeper runs for
exactly as long as the application does (``cleanup_ctx``).

Security Note:
    Never log request bodies. The access log is disabled because request
    paths carry full drop identifiers.
"""
import logging
from typing import Any, Optional

import orjson
from aiohttp import web

from .config import BurnConfig
from .exceptions import BoundsError, StructuralError
from .policy import AdmissionPolicy
from .service import DropService
from .store import EphemeralStore, Reason

logger = logging.getLogger("burnenv.server")

CONFIG_KEY = web.AppKey("burnenv_config", BurnConfig)
STORE_KEY = web.AppKey("burnenv_store", EphemeralStore)
SERVICE_KEY = web.AppKey("burnenv_service", DropService)

# Used only when the config asks for distinct failure reasons.
_REASON_RESPONSES = {
    Reason.EXPIRED: (410, "Secret expired and was automatically burned"),
    Reason.EXHAUSTED: (410, "Secret already retrieved and burned (max views reached)"),
    Reason.NOT_FOUND: (404, "Secret not found - it may have been burned or never existed"),
}
_GENERIC_GONE = (404, "Secret not found or expired")


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.Response(
        body=orjson.dumps(data),
        status=status,
        content_type="application/json",
    )


def error_response(status: int, message: str, code: Optional[str] = None) -> web.Response:
    payload = {"error": message}
    if code:
        payload["code"] = code
    return json_response(payload, status=status)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def create_drop(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    service = request.app[SERVICE_KEY]
    try:
        raw = await request.read()
    except web.HTTPRequestEntityTooLarge:
        limit_mb = config.max_body_bytes / (1024 * 1024)
        return error_response(
            413, f"request body exceeds {limit_mb:.1f} MB limit", "body_too_large",
        )
    if not raw:
        return error_response(400, "missing body", "missing_body")
    try:
        drop_id = service.create(raw)
    except (StructuralError, BoundsError) as err:
        return error_response(err.status, err.message, err.code)
    return json_response(
        {"id": drop_id, "link": f"{config.base_url}/v1/drop/{drop_id}"},
        status=201,
    )


async def retrieve_drop(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    service = request.app[SERVICE_KEY]
    blob, reason = service.retrieve(request.match_info["drop_id"])
    if reason is Reason.SUCCESS:
        return web.Response(
            body=blob,
            content_type="application/json",
            headers={"Cache-Control": "no-store"},
        )
    if config.expose_reasons:
        status, message = _REASON_RESPONSES[reason]
    else:
        status, message = _GENERIC_GONE
    return error_response(status, message)


async def revoke_drop(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    if not service.revoke(request.match_info["drop_id"]):
        return error_response(404, "not found")
    return json_response({"status": "revoked"})


async def healthz(request: web.Request) -> web.Response:
    return json_response({"status": "ok"})


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

async def _store_lifecycle(app: web.Application):
    store = app[STORE_KEY]
    await store.start()
    yield
    await store.stop()


def create_app(
    config: Optional[BurnConfig] = None,
    store: Optional[EphemeralStore] = None,
) -> web.Application:
    """Build the drop server application.

    Args:
        config: Server configuration; defaults when omitted.
        store: Store to serve from; a new one is built from config when omitted.

    Returns:
        Configured aiohttp Application.
    """
    if config is None:
        config = BurnConfig()
    if store is None:
        store = EphemeralStore(
            sweep_interval=config.sweep_interval,
            sweep_batch=config.sweep_batch,
        )
    app = web.Application(client_max_size=config.max_body_bytes)
    app[CONFIG_KEY] = config
    app[STORE_KEY] = store
    app[SERVICE_KEY] = DropService(store, AdmissionPolicy(config.limits))
    app.router.add_post("/v1/drop", create_drop)
    # no HEAD: a HEAD request would burn a view
    app.router.add_get("/v1/drop/{drop_id}", retrieve_drop, allow_head=False)
    app.router.add_delete("/v1/drop/{drop_id}", revoke_drop)
    app.router.add_get("/healthz", healthz)
    app.cleanup_ctx.append(_store_lifecycle)
    return app


def run_server(config: Optional[BurnConfig] = None) -> None:
    """Run the drop server until interrupted.

    Args:
        config: Server configuration; read from the environment when omitted.
    """
    if config is None:
        config = BurnConfig.from_env()
    logger.info(
        "BurnEnv server listening on %s:%d (base url %s)",
        config.host, config.port, config.base_url,
    )
    web.run_app(
        create_app(config),
        host=config.host,
        port=config.port,
        access_log=None,
        print=None,
    )
