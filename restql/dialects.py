"""SQL dialects: identifier quoting, placeholders and bulk id matching."""

from abc import ABC, abstractmethod
from typing import Any, List, NamedTuple, Sequence, Union


class Fragment(NamedTuple):
    """A piece of SQL text with the parameters its placeholders bind, in order."""
    sql: str
    params: List[Any]


# Dialect registry will be populated as concrete dialects are defined
DIALECT_REGISTRY = {}


def register_dialect(name: str):
    """Decorator to register a dialect under its configuration name"""
    def decorator(cls):
        cls.name = name
        DIALECT_REGISTRY[name] = cls()
        return cls
    return decorator


class Dialect(ABC):
    """Base class for SQL dialects. Instances are stateless and shared."""

    name: str = ""
    quote_char: str = '"'

    def escape_identifier(self, identifier: str) -> str:
        """Quote an identifier; dotted names are quoted part by part."""
        if self.is_quoted(identifier):
            return identifier
        if '.' in identifier:
            return '.'.join(self.escape_identifier(part) for part in identifier.split('.'))
        if identifier == '*':
            return identifier
        q = self.quote_char
        return f"{q}{identifier.replace(q, q + q)}{q}"

    @staticmethod
    def is_quoted(identifier: str) -> bool:
        return len(identifier) >= 2 and (
            (identifier.startswith('"') and identifier.endswith('"'))
            or (identifier.startswith('`') and identifier.endswith('`'))
        )

    @abstractmethod
    def placeholder(self, index: int) -> str:
        """Return the marker for the 1-based positional parameter `index`"""
        pass

    @abstractmethod
    def bulk_id_match(self, column: str, ids: Sequence[Any], offset: int) -> Fragment:
        """Match `column` against every id; `offset` parameters precede this fragment"""
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class QuestionMarkDialect(Dialect):
    """Dialects that bind with `?` and match id lists with IN (...)."""

    def placeholder(self, index: int) -> str:
        return "?"

    def bulk_id_match(self, column: str, ids: Sequence[Any], offset: int) -> Fragment:
        markers = ", ".join(self.placeholder(offset + i + 1) for i in range(len(ids)))
        return Fragment(f"{self.escape_identifier(column)} IN ({markers})", list(ids))


@register_dialect("mysql")
class MySQLDialect(QuestionMarkDialect):
    quote_char = '`'


@register_dialect("sqlite")
class SQLiteDialect(QuestionMarkDialect):
    quote_char = '"'


@register_dialect("postgres")
class PostgresDialect(Dialect):
    quote_char = '"'

    def placeholder(self, index: int) -> str:
        return f"${index}"

    def bulk_id_match(self, column: str, ids: Sequence[Any], offset: int) -> Fragment:
        # A single array parameter instead of one placeholder per id
        return Fragment(
            f"{self.escape_identifier(column)} = ANY({self.placeholder(offset + 1)})",
            [list(ids)],
        )


def get_dialect(dialect: Union[str, Dialect]) -> Dialect:
    """Resolve a dialect name (or pass through a Dialect instance)"""
    if isinstance(dialect, Dialect):
        return dialect
    if dialect not in DIALECT_REGISTRY:
        raise ValueError(f"Unsupported SQL dialect: {dialect}")
    return DIALECT_REGISTRY[dialect]
