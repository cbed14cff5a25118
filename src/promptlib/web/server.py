"""Starlette JSON API over the library service."""

import contextlib
import json
from dataclasses import asdict
from typing import Any

import logfire
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..composer import QUICK_PROMPTS, format_item
from ..config import DEFAULT_SUGGEST_LIMIT
from ..data_models import LibraryItem, SaveRequest
from ..service import LibraryService
from ..session_manager import WorkflowSession


def _get_service(request: Request) -> LibraryService:
    return request.app.state.service


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def _json_body(request: Request) -> dict[str, Any]:
    """Parse a JSON object body. Raises ValueError when it is not one."""
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise ValueError("Invalid JSON") from e
    if not isinstance(body, dict):
        raise ValueError("Expected a JSON object")
    return body


def _int_param(request: Request, name: str, default: int | None) -> int | None:
    value = request.query_params.get(name)
    if value is None:
        return default
    try:
        return max(int(value), 0)
    except ValueError:
        return default


def _item_detail(item: LibraryItem) -> dict[str, Any]:
    return {**item.summary(), "body": item.body, "relative_path": item.relative_path}


def _session_payload(service: LibraryService, session: WorkflowSession) -> dict[str, Any]:
    return {
        "session": session.to_dict(),
        "step": service.render_current_step(session),
        "status": service.sessions.format_status(session),
    }


async def api_get_item(request: Request) -> JSONResponse:
    """Look up one item by id or fuzzy name."""
    service = _get_service(request)
    name = request.query_params.get("name", "")
    fmt = request.query_params.get("format")
    if not name:
        return _error("Missing name", 400)

    result = await service.get_item(name)
    if result.item is None:
        return JSONResponse(
            {
                "error": f'"{name}" not found',
                "did_you_mean": [item.id for item in result.did_you_mean],
            },
            status_code=404,
        )

    payload = _item_detail(result.item)
    if fmt in ("full", "body", "prompt_only"):
        payload["text"] = format_item(result.item, fmt)
    return JSONResponse(payload)


async def api_list_items(request: Request) -> JSONResponse:
    service = _get_service(request)
    category = request.query_params.get("category")
    if category:
        items = await service.get_by_category(category)
    else:
        items = await service.get_all_items()
    return JSONResponse({"items": [item.summary() for item in items]})


async def api_save_item(request: Request) -> JSONResponse:
    """Persist a new item."""
    service = _get_service(request)
    try:
        save_request = SaveRequest.model_validate(await _json_body(request))
    except (ValidationError, ValueError) as e:
        return _error(str(e), 400)

    item = await service.save(save_request)
    if item is None:
        return _error("Save rejected", 400)
    return JSONResponse(_item_detail(item), status_code=201)


async def api_search(request: Request) -> JSONResponse:
    service = _get_service(request)
    query = request.query_params.get("q", "")
    results = await service.search(
        query,
        _int_param(request, "limit", None),
        category=request.query_params.get("category"),
    )
    return JSONResponse(
        {
            "results": [
                {**r.item.summary(), "score": r.score, "matches": r.matches}
                for r in results
            ]
        }
    )


async def api_suggest(request: Request) -> JSONResponse:
    service = _get_service(request)
    message = request.query_params.get("q", "")
    limit = _int_param(request, "limit", DEFAULT_SUGGEST_LIMIT)
    suggestions = await service.suggest(message, limit)
    return JSONResponse(
        {
            "suggestions": [
                {**s.item.summary(), "reason": s.reason, "confidence": s.confidence}
                for s in suggestions
            ]
        }
    )


async def api_stats(request: Request) -> JSONResponse:
    return JSONResponse(await _get_service(request).get_stats())


async def api_random(request: Request) -> JSONResponse:
    item = await _get_service(request).random_item(request.query_params.get("category"))
    if item is None:
        return _error("No items found", 404)
    return JSONResponse(_item_detail(item))


async def api_list_chains(request: Request) -> JSONResponse:
    workflows = await _get_service(request).get_all_chains()
    return JSONResponse(
        {
            "chains": [
                {"id": w.id, "name": w.name, "description": w.description, "steps": w.total_steps}
                for w in workflows
            ]
        }
    )


async def api_get_chain(request: Request) -> JSONResponse:
    name = request.path_params["name"]
    workflow = await _get_service(request).get_chain(name)
    if workflow is None:
        return _error(f'Chain "{name}" not found', 404)
    return JSONResponse(workflow.summary())


async def api_start_session(request: Request) -> JSONResponse:
    """Start a session. Body: {"chain": ..., "context": {...}}."""
    service = _get_service(request)
    try:
        body = await _json_body(request)
    except ValueError as e:
        return _error(str(e), 400)

    chain = body.get("chain")
    context = body.get("context") or {}
    if not isinstance(chain, str) or not isinstance(context, dict):
        return _error("Expected chain name and optional context object", 400)

    session = await service.start_session(chain, {str(k): str(v) for k, v in context.items()})
    if session is None:
        return _error(f'Chain "{chain}" not found or has no steps', 404)
    return JSONResponse(_session_payload(service, session), status_code=201)


async def api_get_session(request: Request) -> JSONResponse:
    service = _get_service(request)
    session = service.get_session(request.path_params["session_id"])
    if session is None:
        return _error("Session not found", 404)
    return JSONResponse(_session_payload(service, session))


async def api_advance_session(request: Request) -> JSONResponse:
    service = _get_service(request)
    result = service.advance(request.path_params["session_id"])
    if result is None:
        return _error("Session not found", 404)
    if result.completed:
        return JSONResponse({"completed": True, "session": result.session.to_dict()})
    return JSONResponse({"completed": False, **_session_payload(service, result.session)})


async def api_jump_session(request: Request) -> JSONResponse:
    service = _get_service(request)
    try:
        body = await _json_body(request)
        step = int(body.get("step"))
    except (ValueError, TypeError) as e:
        return _error(str(e) or "Expected a step number", 400)

    session = service.jump_to(request.path_params["session_id"], step)
    if session is None:
        return _error("Session not found", 404)
    return JSONResponse(_session_payload(service, session))


async def api_update_session_context(request: Request) -> JSONResponse:
    service = _get_service(request)
    try:
        body = await _json_body(request)
    except ValueError as e:
        return _error(str(e), 400)

    updates = {str(k): str(v) for k, v in body.items()}
    session = service.update_context(request.path_params["session_id"], updates)
    if session is None:
        return _error("Session not found", 404)
    return JSONResponse(_session_payload(service, session))


async def api_end_session(request: Request) -> JSONResponse:
    if not _get_service(request).end_session(request.path_params["session_id"]):
        return _error("Session not found", 404)
    return JSONResponse({"ended": True})


async def api_compose(request: Request) -> JSONResponse:
    """Compose items. Body: {"items": [...], "include_metadata": false}."""
    service = _get_service(request)
    try:
        body = await _json_body(request)
    except ValueError as e:
        return _error(str(e), 400)

    names = body.get("items")
    if not isinstance(names, list) or not names:
        return _error("Expected a non-empty items list", 400)

    composed = await service.compose(
        [str(n) for n in names], include_metadata=bool(body.get("include_metadata"))
    )
    if composed is None:
        return _error("None of the specified items were found", 404)
    return JSONResponse(
        {
            "text": composed.text,
            "components": [item.id for item in composed.components],
            "not_found": composed.not_found,
        }
    )


async def api_quick_prompts(request: Request) -> JSONResponse:
    return JSONResponse(
        {"quick_prompts": [asdict(qp) for qp in QUICK_PROMPTS.values()]}
    )


async def api_quick_prompt(request: Request) -> JSONResponse:
    name = request.path_params["name"]
    quick_prompt = _get_service(request).quick_prompt(name)
    if quick_prompt is None:
        return JSONResponse(
            {"error": f'Quick prompt "{name}" not found', "available": list(QUICK_PROMPTS)},
            status_code=404,
        )
    return JSONResponse(asdict(quick_prompt))


async def api_detect(request: Request) -> JSONResponse:
    """Detect the tech stack. Body: {"files": [...]}."""
    service = _get_service(request)
    try:
        body = await _json_body(request)
    except ValueError as e:
        return _error(str(e), 400)

    files = body.get("files")
    if not isinstance(files, list):
        return _error("Expected a files list", 400)

    detections = await service.detect_context([str(f) for f in files])
    return JSONResponse({"detected": [asdict(d) for d in detections]})


async def api_enhance(request: Request) -> JSONResponse:
    """Build enhanced context. Body: {"message": ..., "task_type": ...}."""
    service = _get_service(request)
    try:
        body = await _json_body(request)
    except ValueError as e:
        return _error(str(e), 400)

    message = body.get("message")
    if not isinstance(message, str) or not message:
        return _error("Empty message", 400)

    context = await service.enhance(message, body.get("task_type"))
    return JSONResponse(
        {
            "task_type": context.task_type,
            "approach": context.approach,
            "suggestions": [s.item.id for s in context.suggestions],
            "related_items": [item.id for item in context.related_items],
            "text": context.render(),
        }
    )


def create_app(service: LibraryService) -> Starlette:
    """Create the Starlette application.

    Args:
        service: Library service shared by all requests. Sessions live as
            long as the application.

    Returns:
        Configured Starlette application.
    """

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        await service.ensure_initialized()
        logfire.info("API ready", items=len(service.index))
        yield
        await service.close()

    routes = [
        Route("/api/item", api_get_item, methods=["GET"]),
        Route("/api/items", api_list_items, methods=["GET"]),
        Route("/api/items", api_save_item, methods=["POST"]),
        Route("/api/search", api_search, methods=["GET"]),
        Route("/api/suggest", api_suggest, methods=["GET"]),
        Route("/api/stats", api_stats, methods=["GET"]),
        Route("/api/random", api_random, methods=["GET"]),
        Route("/api/chains", api_list_chains, methods=["GET"]),
        Route("/api/chains/{name:path}", api_get_chain, methods=["GET"]),
        Route("/api/sessions", api_start_session, methods=["POST"]),
        Route("/api/sessions/{session_id}", api_get_session, methods=["GET"]),
        Route("/api/sessions/{session_id}", api_end_session, methods=["DELETE"]),
        Route("/api/sessions/{session_id}/advance", api_advance_session, methods=["POST"]),
        Route("/api/sessions/{session_id}/jump", api_jump_session, methods=["POST"]),
        Route("/api/sessions/{session_id}/context", api_update_session_context, methods=["POST"]),
        Route("/api/compose", api_compose, methods=["POST"]),
        Route("/api/quick", api_quick_prompts, methods=["GET"]),
        Route("/api/quick/{name}", api_quick_prompt, methods=["GET"]),
        Route("/api/detect", api_detect, methods=["POST"]),
        Route("/api/enhance", api_enhance, methods=["POST"]),
    ]

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.service = service
    return app
