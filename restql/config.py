"""
Centralized configuration for restql.

RestQLConfig carries everything a compilation needs. load_config() builds one
from environment variables (call dotenv's load_dotenv() first to pick up a
.env file).
"""

import os
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .validator import DEFAULT_VALIDATION_OPTIONS, ValidationOptions, validate_table_name

SQLDialect = Literal['mysql', 'postgres', 'sqlite']


class RestQLConfig(BaseModel):
    """Dialect, schema, validation limits and row-limit policy."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    dialect: SQLDialect = 'postgres'
    schema_name: Optional[str] = Field(None, alias='schema')
    validation: ValidationOptions = DEFAULT_VALIDATION_OPTIONS
    default_limit: Optional[int] = Field(None, gt=0)
    max_limit: Optional[int] = Field(None, gt=0)
    verify_sql: bool = False

    @field_validator('schema_name')
    @classmethod
    def _check_schema_name(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            validate_table_name(value, "schema")
        return value


def _get_optional(value: Optional[str], default: str) -> str:
    return value if value else default


def _get_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value else None


def _get_bool(name: str, default: str = 'False') -> bool:
    return os.environ.get(name, default).lower() == 'true'


def load_config() -> RestQLConfig:
    """Build a RestQLConfig from RESTQL_* environment variables."""
    return RestQLConfig(
        dialect=_get_optional(os.getenv('RESTQL_DIALECT'), 'postgres'),
        schema_name=os.getenv('RESTQL_SCHEMA') or None,
        default_limit=_get_int('RESTQL_DEFAULT_LIMIT'),
        max_limit=_get_int('RESTQL_MAX_LIMIT'),
        verify_sql=_get_bool('RESTQL_VERIFY_SQL'),
    )


def enable_json_payloads() -> bool:
    return _get_bool('RESTQL_ENABLE_JSON_PAYLOADS')


def log_level() -> str:
    return _get_optional(os.getenv('LOG_LEVEL'), 'INFO').upper()
