from fastapi import FastAPI
from pydantic import BaseModel
from typing import Any, List, Optional
from dotenv import load_dotenv
import logging
import traceback

# Load environment variables from .env file
load_dotenv()

from restql import RestQL, RestRequest, load_config, decode_query
from restql.adapters import create_router
from restql.config import enable_json_payloads, log_level
from restql.errors import RestQLError

# Configure logging
logging.basicConfig(level=log_level())
logger = logging.getLogger(__name__)

app = FastAPI(title="RestQL SQL Service")

restql = RestQL(load_config())

# REST-shaped routes: GET /api/rest/users?q=<base64 query>, POST /api/rest/users, ...
app.include_router(
    create_router(restql, enable_json_payloads=enable_json_payloads()),
    prefix="/api/rest",
)


class ToSqlRequest(BaseModel):
    method: str
    path: str
    query: Optional[Any] = None  # decoded query object or base64 string
    body: Optional[Any] = None


class ToSqlResponse(BaseModel):
    success: bool
    sql: Optional[str] = None
    params: Optional[List[Any]] = None
    error: Optional[str] = None
    kind: Optional[str] = None


@app.get("/health")
async def health():
    return {"status": "ok", "dialect": restql.config.dialect}


@app.post("/api/to-sql", response_model=ToSqlResponse)
async def to_sql_endpoint(req: ToSqlRequest):
    """
    Compile a REST envelope to SQL without going through REST routing.

    Returns the SQL and ordered params on success, otherwise the error and
    its kind.
    """
    try:
        query = decode_query(req.query) if isinstance(req.query, str) else req.query
        compiled = restql.to_sql(
            RestRequest(method=req.method, path=req.path, query=query, body=req.body)
        )
        return ToSqlResponse(success=True, sql=compiled.sql, params=compiled.params)
    except RestQLError as e:
        return ToSqlResponse(
            success=False,
            error=str(e),
            kind=getattr(e, 'kind', type(e).__name__),
        )
    except Exception as e:
        logger.error(f"[to_sql] Unexpected error: {e}")
        logger.error(traceback.format_exc())
        return ToSqlResponse(success=False, error=f"Failed to generate SQL: {str(e)}")
