"""
API HTTP del matchmaker (aiohttp).

Capa fina: parsea el request, llama a MatchmakerService y traduce
los errores del dominio a códigos HTTP.
"""

import json

import structlog
from aiohttp import web

from matchmaker.errors import (
    MatchmakerError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from matchmaker.service import DEFAULT_PAGE_SIZE, MatchmakerService

logger = structlog.get_logger()

API_PREFIX = "/api/v1/matchmaker"
SERVICE_KEY = web.AppKey("matchmaker_service", MatchmakerService)

_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ValidationError, 400),
    (StorageError, 503),
    (MatchmakerError, 500),
)


def _error_response(status: int, error: MatchmakerError) -> web.Response:
    return web.json_response({"error": error.kind, "detail": error.message}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except MatchmakerError as e:
        for error_type, status in _STATUS_BY_ERROR:
            if isinstance(e, error_type):
                break
        if status >= 500:
            logger.error("Error atendiendo request", path=request.path, error=str(e))
        return _error_response(status, e)


async def _read_json(request: web.Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"Body JSON inválido: {e}") from e
    if not isinstance(body, dict):
        raise ValidationError("El body debe ser un objeto JSON")
    return body


def _int_query(request: web.Request, name: str, default: int) -> int:
    value = request.query.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def _service(request: web.Request) -> MatchmakerService:
    return request.app[SERVICE_KEY]


async def create_profile(request: web.Request) -> web.Response:
    result = _service(request).create_profile(await _read_json(request))
    return web.json_response(result.model_dump(mode="json"), status=201)


async def get_profile(request: web.Request) -> web.Response:
    profile = _service(request).get_profile(request.match_info["user_id"])
    return web.json_response({"profile": profile.model_dump(mode="json")})


async def list_matches(request: web.Request) -> web.Response:
    page = _service(request).list_matches(
        request.match_info["user_id"],
        status=request.query.get("status") or None,
        limit=_int_query(request, "limit", DEFAULT_PAGE_SIZE),
        offset=_int_query(request, "offset", 0),
    )
    return web.json_response(page.model_dump(mode="json"))


async def get_match(request: web.Request) -> web.Response:
    match = _service(request).get_match(request.match_info["match_id"])
    return web.json_response({"match": match.model_dump(mode="json")})


async def update_match_status(request: web.Request) -> web.Response:
    body = await _read_json(request)
    status = body.get("status")
    if not status:
        raise ValidationError("status es requerido")

    match = _service(request).update_match_status(request.match_info["match_id"], status)
    return web.json_response(
        {
            "message": "Match status updated successfully",
            "match": match.model_dump(mode="json"),
        }
    )


async def search(request: web.Request) -> web.Response:
    page = _service(request).search(await _read_json(request))
    return web.json_response(page.model_dump(mode="json"))


async def health(_: web.Request) -> web.Response:
    return web.Response(text="ok")


def create_app(service: MatchmakerService) -> web.Application:
    """Construye la aplicación aiohttp con todas las rutas."""
    app = web.Application(middlewares=[error_middleware])
    app[SERVICE_KEY] = service

    app.router.add_get("/health", health)
    app.router.add_post(f"{API_PREFIX}/profiles", create_profile)
    app.router.add_get(f"{API_PREFIX}/profiles/{{user_id}}", get_profile)
    app.router.add_get(f"{API_PREFIX}/matches/details/{{match_id}}", get_match)
    app.router.add_get(f"{API_PREFIX}/matches/{{user_id}}", list_matches)
    app.router.add_put(f"{API_PREFIX}/matches/{{match_id}}/status", update_match_status)
    app.router.add_post(f"{API_PREFIX}/search", search)
    return app
