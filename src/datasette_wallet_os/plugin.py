"""
Datasette plugin exposing the wallet-os subscription API.

Routes:
- /api/subscriptions          list (GET) and create (POST)
- /api/subscriptions/<id>     update (PUT) and delete (DELETE)
- /api/search?q=              official domain lookup
- /api/icon?domain=&sz=       cached favicon
- /api/smart-parse            free text -> subscription fields
- /api/analyze                spending advice
- /api/stream                 server-sent change events
"""

import asyncio
import json
import logging
import weakref
from pathlib import Path
from typing import Any

from datasette import Response, hookimpl
from datasette.utils.asgi import AsgiStream, Request

from wallet_enrich.config import PLUGIN_NAME, EnrichConfig
from wallet_enrich.models import (
    InvalidInput,
    NotFoundError,
    SubscriptionInput,
    UpstreamUnavailable,
)
from wallet_enrich.services import EnrichmentServices

logger = logging.getLogger(__name__)

KEEP_ALIVE_SECONDS = 15.0

# One set of services per Datasette instance, built at startup
_services: "weakref.WeakKeyDictionary[Any, EnrichmentServices]" = weakref.WeakKeyDictionary()


# -----------------------------------------------------------------------------
# Plugin Configuration
# -----------------------------------------------------------------------------


def get_plugin_config(datasette) -> EnrichConfig:
    """Get plugin configuration from datasette.yaml."""
    return EnrichConfig.from_dict(datasette.plugin_config(PLUGIN_NAME) or {})


def ensure_db_exists(db_path: Path) -> None:
    """Create or migrate the subscriptions database. Safe to call repeatedly."""
    from datasette_wallet_os.migrations import run_migrations

    run_migrations(db_path)


def get_services(datasette) -> EnrichmentServices:
    """Get the services for a Datasette instance, building them on first use."""
    services = _services.get(datasette)
    if services is None:
        config = get_plugin_config(datasette)
        ensure_db_exists(config.db_path)
        services = EnrichmentServices.build(config)
        _services[datasette] = services
    return services


# -----------------------------------------------------------------------------
# Request Helpers
# -----------------------------------------------------------------------------


def error_response(message: str, status: int) -> Response:
    return Response.json({"error": message}, status=status)


async def read_json_body(request: Request) -> Any:
    """Decode the request body as JSON. Raises InvalidInput if it is not."""
    body = await request.post_body()
    try:
        return json.loads(body or b"")
    except ValueError as e:
        raise InvalidInput(f"Invalid JSON body: {e}") from e


def method_not_allowed() -> Response:
    return Response.text("Method not allowed", status=405)


# -----------------------------------------------------------------------------
# Subscription Routes
# -----------------------------------------------------------------------------


async def subscriptions_collection(request: Request, datasette) -> Response:
    """List all subscriptions, or create one."""
    services = get_services(datasette)

    if request.method == "GET":
        subs = services.db.list_all()
        return Response.json([sub.to_dict() for sub in subs])

    if request.method != "POST":
        return method_not_allowed()

    try:
        payload = SubscriptionInput.from_dict(await read_json_body(request))
        sub = services.db.insert(payload)
    except InvalidInput as e:
        return error_response(str(e), 400)

    return Response.json(sub.to_dict())


async def subscription_item(request: Request, datasette) -> Response:
    """Update or delete a single subscription."""
    services = get_services(datasette)

    try:
        subscription_id = int(request.url_vars["subscription_id"])
    except (KeyError, ValueError):
        return error_response("Invalid subscription id", 400)

    if request.method == "DELETE":
        services.db.delete(subscription_id)
        return Response.json({"status": "deleted"})

    if request.method != "PUT":
        return method_not_allowed()

    try:
        payload = SubscriptionInput.from_dict(await read_json_body(request))
        sub = services.db.update(subscription_id, payload)
    except InvalidInput as e:
        return error_response(str(e), 400)
    except NotFoundError as e:
        return error_response(str(e), 404)

    return Response.json(sub.to_dict())


# -----------------------------------------------------------------------------
# Enrichment Routes
# -----------------------------------------------------------------------------


async def search_domain(request: Request, datasette) -> Response:
    """Resolve the official domain for ?q=."""
    services = get_services(datasette)

    try:
        outcome = await services.domains.resolve(request.args.get("q", ""))
    except InvalidInput:
        return error_response("Query is empty", 400)

    if not outcome.found:
        return error_response("No domain found", 404)

    return Response.json({"domain": outcome.value, "source": outcome.source})


async def get_icon(request: Request, datasette) -> Response:
    """Serve the favicon for ?domain= at ?sz= pixels."""
    services = get_services(datasette)

    size_arg = request.args.get("sz")
    if size_arg is None:
        size = services.config.icons.default_size
    else:
        try:
            size = int(size_arg)
        except ValueError:
            return error_response("invalid size", 400)

    try:
        icon = await services.icons.resolve_icon(request.args.get("domain", ""), size)
    except InvalidInput as e:
        return error_response(str(e), 400)
    except UpstreamUnavailable as e:
        return error_response(str(e), 502)

    return Response(
        icon.content,
        status=200,
        headers={"cache-control": icon.cache_control},
        content_type=icon.content_type,
    )


async def smart_parse(request: Request, datasette) -> Response:
    """Extract subscription fields from {"text": ...}."""
    if request.method != "POST":
        return method_not_allowed()

    services = get_services(datasette)

    try:
        data = await read_json_body(request)
    except InvalidInput as e:
        return error_response(str(e), 400)

    text = data.get("text") if isinstance(data, dict) else None
    if not isinstance(text, str):
        return error_response("Missing 'text'", 400)

    fields = await services.enricher.extract(text)
    return Response.json(fields.to_dict())


async def analyze_spending(request: Request, datasette) -> Response:
    """Advice for the current active subscriptions."""
    if request.method != "POST":
        return method_not_allowed()

    services = get_services(datasette)
    report = await services.enricher.advise(services.db.list_active())
    return Response.json(report.to_dict())


async def stream_updates(request: Request, datasette) -> AsgiStream:
    """
    Server-sent events: one "update" message per change.

    The client re-fetches the subscription list when it receives a message.
    """
    services = get_services(datasette)
    subscriber = services.notifier.subscribe()

    async def wait_for_disconnect() -> None:
        while True:
            message = await request.receive()
            if message["type"] == "http.disconnect":
                return

    async def stream_fn(response) -> None:
        disconnect = asyncio.ensure_future(wait_for_disconnect())
        try:
            while not disconnect.done():
                next_event = asyncio.ensure_future(subscriber.get())
                done, _ = await asyncio.wait(
                    {next_event, disconnect},
                    timeout=KEEP_ALIVE_SECONDS,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if next_event not in done:
                    next_event.cancel()
                    if not done:
                        await response.write(": keep-alive\n\n")
                    continue
                event = next_event.result()
                if event is None:
                    break
                await response.write(f"data: {event.name}\n\n")
        finally:
            subscriber.close()
            disconnect.cancel()
            logger.debug("Event stream closed")

    return AsgiStream(
        stream_fn,
        headers={"cache-control": "no-cache", "x-accel-buffering": "no"},
        content_type="text/event-stream",
    )


# -----------------------------------------------------------------------------
# Datasette Hooks
# -----------------------------------------------------------------------------


@hookimpl
def register_routes():
    """Register plugin routes with Datasette."""
    return [
        (r"^/api/subscriptions$", subscriptions_collection),
        (r"^/api/subscriptions/(?P<subscription_id>[^/]+)$", subscription_item),
        (r"^/api/search$", search_domain),
        (r"^/api/icon$", get_icon),
        (r"^/api/smart-parse$", smart_parse),
        (r"^/api/analyze$", analyze_spending),
        (r"^/api/stream$", stream_updates),
    ]


@hookimpl
def skip_csrf(datasette, scope):
    """Skip CSRF for the JSON API; it takes no form posts."""
    if scope.get("path", "").startswith("/api/"):
        return True
    return None


@hookimpl
def startup(datasette):
    """Build the enrichment services and migrate the database on startup."""
    services = get_services(datasette)
    logger.info(f"wallet-os API ready (database: {services.config.db_path})")
