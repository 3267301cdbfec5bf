"""HTTP API: query and drive simulations over REST.

Endpoints:
    GET    /                       → API overview
    GET    /presets                → Preset table
    GET    /client-info            → Client network metadata (cached)
    GET    /simulations            → All simulations (?pinned=true|false)
    GET    /simulations/{id}       → One simulation
    POST   /simulations            → Create and start a simulation
    DELETE /simulations/{id}       → Stop and remove a simulation
    PUT    /simulations/{id}/pin   → Toggle the pinned flag
"""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

from .client_info import fetch_client_info
from .exceptions import PresetNotFoundError, SimulationNotFoundError
from .models import ClientInfo, Simulation
from .report import summarize

logger = logging.getLogger("media-chaos")


def _json_error(status: int, code: str, message: str, sim_id: str = "") -> web.Response:
    """Consistent JSON error payload."""
    payload = {"code": code, "message": message}
    if sim_id:
        payload["simulation_id"] = sim_id
    return web.json_response(payload, status=status)


def _parse_bool(value: str) -> bool | None:
    token = str(value or "").strip().lower()
    if token in ("true", "1", "yes"):
        return True
    if token in ("false", "0", "no"):
        return False
    return None


def _sim_to_dict(sim: Simulation) -> dict[str, Any]:
    data = sim.model_dump(mode="json")
    data["summary"] = summarize(sim)
    return data


def create_api_routes(state: dict[str, Any]) -> web.Application:
    """Create aiohttp app with the simulation API routes.

    Args:
        state: Shared state dict. Contains ``manager`` (SimulationManager),
            ``config`` (MediaChaosConfig) and optionally a cached
            ``client_info`` (ClientInfo).
    """
    routes = web.RouteTableDef()

    @routes.get("/")
    async def index(request: web.Request) -> web.Response:
        """API overview with simulation counts and endpoints."""
        manager = state["manager"]
        sims = manager.list()
        by_status: dict[str, int] = {}
        for sim in sims:
            by_status[sim.status.value] = by_status.get(sim.status.value, 0) + 1
        return web.json_response(
            {
                "name": "media-chaos",
                "description": "Media playback chaos and QoE testing API",
                "simulations": len(sims),
                "by_status": by_status,
                "endpoints": {
                    "GET /presets": "List chaos presets",
                    "GET /client-info": "Client network metadata",
                    "GET /simulations": "List simulations (?pinned=true|false)",
                    "GET /simulations/{sim_id}": "One simulation",
                    "POST /simulations": "Create a simulation",
                    "DELETE /simulations/{sim_id}": "Remove a simulation",
                    "PUT /simulations/{sim_id}/pin": "Toggle pinned flag",
                },
            }
        )

    @routes.get("/presets")
    async def get_presets(request: web.Request) -> web.Response:
        manager = state["manager"]
        return web.json_response(
            {key: preset.model_dump(mode="json") for key, preset in manager.presets.items()}
        )

    @routes.get("/client-info")
    async def get_client_info(request: web.Request) -> web.Response:
        """Client metadata; fetched once, then served from cache."""
        info = state.get("client_info")
        if info is None:
            config = state.get("config")
            if config is not None and config.client_info.enabled:
                info = await fetch_client_info(
                    config.client_info.url, config.client_info.timeout_seconds
                )
            else:
                info = ClientInfo.unknown()
            state["client_info"] = info
        return web.json_response(info.model_dump())

    @routes.get("/simulations")
    async def get_simulations(request: web.Request) -> web.Response:
        """List simulations.

        Query params:
            pinned: "true" for pinned only, "false" for unpinned only
        """
        pinned = None
        raw = request.query.get("pinned", "")
        if raw:
            pinned = _parse_bool(raw)
            if pinned is None:
                return _json_error(400, "invalid_param", "'pinned' must be true or false")
        sims = state["manager"].list(pinned=pinned)
        return web.json_response([_sim_to_dict(s) for s in sims])

    @routes.get("/simulations/{sim_id}")
    async def get_simulation(request: web.Request) -> web.Response:
        sim_id = request.match_info["sim_id"]
        try:
            sim = state["manager"].get(sim_id)
        except SimulationNotFoundError:
            return _json_error(
                404, "simulation_not_found", f"Simulation '{sim_id}' not found", sim_id
            )
        return web.json_response(_sim_to_dict(sim))

    @routes.post("/simulations")
    async def create_simulation(request: web.Request) -> web.Response:
        """Create and start a simulation.

        JSON body: {source_url, preset, name?, pinned?}
        """
        try:
            body = await request.json()
        except Exception:
            return _json_error(400, "invalid_json", "Request body must be JSON")
        if not isinstance(body, dict):
            return _json_error(400, "invalid_json", "Request body must be a JSON object")

        source_url = str(body.get("source_url") or "").strip()
        preset_key = str(body.get("preset") or "").strip()
        if not source_url or not preset_key:
            return _json_error(
                400, "missing_fields", "Both 'source_url' and 'preset' are required"
            )

        pinned = body.get("pinned", False)
        if isinstance(pinned, str):
            pinned = _parse_bool(pinned)
        if not isinstance(pinned, bool):
            return _json_error(400, "invalid_param", "'pinned' must be true or false")

        try:
            sim = state["manager"].create(
                source_url,
                preset_key,
                body.get("name") or None,
                pinned=pinned,
            )
        except PresetNotFoundError as e:
            return _json_error(400, "unknown_preset", str(e))
        except ValueError as e:
            return _json_error(400, "invalid_input", str(e))
        return web.json_response(_sim_to_dict(sim), status=201)

    @routes.delete("/simulations/{sim_id}")
    async def delete_simulation(request: web.Request) -> web.Response:
        sim_id = request.match_info["sim_id"]
        removed = await state["manager"].remove(sim_id)
        if not removed:
            return _json_error(
                404, "simulation_not_found", f"Simulation '{sim_id}' not found", sim_id
            )
        return web.json_response({"deleted": sim_id})

    @routes.put("/simulations/{sim_id}/pin")
    async def toggle_pin(request: web.Request) -> web.Response:
        """Toggle the pinned flag."""
        sim_id = request.match_info["sim_id"]
        manager = state["manager"]
        try:
            current = manager.get(sim_id)
            sim = manager.set_pinned(sim_id, not current.pinned)
        except SimulationNotFoundError:
            return _json_error(
                404, "simulation_not_found", f"Simulation '{sim_id}' not found", sim_id
            )
        return web.json_response(_sim_to_dict(sim))

    # ── Auth middleware ─────────────────────────────────
    config = state.get("config")
    auth_token = (config.api.auth_token if config else "") or ""

    @web.middleware
    async def auth_middleware(
        request: web.Request,
        handler: Any,
    ) -> web.Response:
        """Optional bearer token authentication."""
        if not auth_token or request.method == "OPTIONS":
            return await handler(request)
        auth_header = request.headers.get("Authorization", "")
        if auth_header == f"Bearer {auth_token}":
            return await handler(request)
        if request.query.get("token") == auth_token:
            return await handler(request)
        return _json_error(401, "unauthorized", "Invalid or missing auth token")

    # ── CORS middleware ──────────────────────────────────
    @web.middleware
    async def cors_middleware(
        request: web.Request,
        handler: Any,
    ) -> web.Response:
        """Allow any origin, for browser dashboards."""
        if request.method == "OPTIONS":
            resp = web.Response()
        else:
            resp = await handler(request)
        resp.headers["Access-Control-Allow-Origin"] = "*"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
        resp.headers["Access-Control-Allow-Headers"] = "*, Authorization"
        return resp

    async def _shutdown_simulations(app: web.Application) -> None:
        await state["manager"].shutdown()

    app = web.Application(middlewares=[auth_middleware, cors_middleware])
    app.add_routes(routes)
    app.on_cleanup.append(_shutdown_simulations)
    return app
