"""FastAPI adapter: REST requests in, compiled SQL out (or the executor's result)."""

import inspect
import json
import logging
import traceback
from typing import Any, Callable, Optional

from fastapi import APIRouter, HTTPException, Request

from ..codec import decode_query
from ..errors import MissingValuesError, UnsafeStatementError, UnsupportedOperationError, ValidationError
from ..ir_types import CompiledQuery, RestRequest
from ..service import RestQL

logger = logging.getLogger(__name__)

Executor = Callable[[CompiledQuery], Any]

READ_ACTIONS = ('get', 'GET')


async def _read_json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid JSON payload: {e}", "format") from e


def create_router(
    restql: RestQL,
    executor: Optional[Executor] = None,
    enable_json_payloads: bool = False,
) -> APIRouter:
    """
    Build a router with one catch-all route for GET/POST/PUT/DELETE.

    Args:
        restql: Configured RestQL facade
        executor: Called with the CompiledQuery; may be sync or async. When
            omitted the compiled query itself is returned.
        enable_json_payloads: Accept POST {"action": "get", "query": {...}}
            as a read, for clients that cannot fit the query in a URL

    Returns:
        APIRouter to include under any prefix
    """
    router = APIRouter()

    @router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE"])
    async def handle_rest_request(path: str, request: Request):
        method = request.method
        try:
            query = None
            if 'q' in request.query_params:
                query = decode_query(request.query_params['q'])

            body = None
            if method != 'GET':
                body = await _read_json_body(request)

            if (
                enable_json_payloads
                and method == 'POST'
                and isinstance(body, dict)
                and body.get('action') in READ_ACTIONS
                and 'query' in body
            ):
                query = body['query']
                method = 'GET'
                body = None

            compiled = restql.to_sql(RestRequest(method=method, path=path, query=query, body=body))
        except (ValidationError, MissingValuesError) as e:
            raise HTTPException(
                status_code=400,
                detail={"error": str(e), "kind": getattr(e, 'kind', 'missing_values')},
            )
        except UnsupportedOperationError as e:
            raise HTTPException(status_code=405, detail={"error": str(e), "kind": "unsupported_operation"})
        except UnsafeStatementError as e:
            logger.error(f"[api] Generated SQL failed verification: {e}")
            logger.error(traceback.format_exc())
            raise HTTPException(status_code=500, detail={"error": "Failed to generate SQL"})

        if executor is None:
            return compiled.model_dump()

        result = executor(compiled)
        if inspect.isawaitable(result):
            result = await result
        return result

    return router
