# Cleans caller input and screens raw SQL submitted to the fallback query tool.
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Pattern, Sequence

from .settings import DANGEROUS_PATTERNS, Settings

logger = logging.getLogger(__name__)

MAX_STRING_LENGTH = 200
MAX_LIST_LENGTH = 20

_DDL_DML = re.compile(r"\b(DROP|CREATE|ALTER|INSERT|UPDATE|DELETE|TRUNCATE)\b", re.IGNORECASE)
_SYSTEM_SCHEMA = re.compile(r"\b(INFORMATION_SCHEMA|mysql|pg_\w+)\b|\bsys\.", re.IGNORECASE)
_FILE_OPERATION = re.compile(r"\b(LOAD|OUTFILE|DUMPFILE|EXPORT)\b", re.IGNORECASE)
_TABLE_REFERENCE = re.compile(r"`[^`]+`\.`[^`]+`\.`[^`]+`|[\w-]+\.[\w-]+\.[\w-]+")
_JOIN = re.compile(r"\bJOIN\b", re.IGNORECASE)
_LIMIT = re.compile(r"\bLIMIT\s+\d+\b", re.IGNORECASE)
_AGGREGATE = re.compile(r"\b(SUM|AVG|MAX|MIN|COUNT)\s*\(", re.IGNORECASE)


class QueryRejected(Exception):
    """A raw query that must not be forwarded. `reason` is shown to the caller verbatim."""

    kind = "rejected"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationError(QueryRejected):
    kind = "validation"


class AuthorizationError(QueryRejected):
    kind = "authorization"


@dataclass(frozen=True)
class Rejection:
    kind: str
    reason: str


@dataclass(frozen=True)
class QueryCheck:
    query: Optional[str] = None
    rejection: Optional[Rejection] = None

    @property
    def ok(self) -> bool:
        return self.rejection is None


def clean(value: Any) -> Any:
    """Trims and caps strings, caps lists and cleans their items; anything else passes through."""
    if isinstance(value, str):
        return value.strip()[:MAX_STRING_LENGTH]
    if isinstance(value, (list, tuple)):
        return [clean(item) for item in list(value)[:MAX_LIST_LENGTH]]
    return value


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def validate_raw_query(query: Any, max_length: int = 10000,
                       patterns: Sequence[Pattern] = DANGEROUS_PATTERNS) -> str:
    """
    Rejects non-string, oversized or dangerous-looking input.
    Returns the trimmed query.
    """
    if not isinstance(query, str):
        raise ValidationError("Query must be a string")

    cleaned = query.strip()
    if len(cleaned) > max_length:
        raise ValidationError(f"Query too long - maximum {max_length} characters allowed")

    for pattern in patterns:
        if pattern.search(cleaned):
            raise ValidationError("Query contains potentially dangerous SQL patterns")

    return cleaned


def _normalize_table(reference: str) -> str:
    return reference.replace("`", "").lower()


def extract_table_references(query: str) -> List[str]:
    """All `project.dataset.table` shaped tokens, with or without backticks."""
    return _TABLE_REFERENCE.findall(query)


def authorize_query(query: str, authorized_tables: Iterable[str]) -> None:
    """
    Raises AuthorizationError when the query steps outside the authorized
    tables or the read-only, bounded shape allowed for raw queries.
    """
    allowed = [t.replace("`", "") for t in authorized_tables]
    allowed_display = ", ".join(f"`{t}`" for t in allowed)

    if _DDL_DML.search(query):
        raise AuthorizationError("DDL/DML operations are not allowed")
    if _SYSTEM_SCHEMA.search(query):
        raise AuthorizationError("System schema access is not allowed")
    if _FILE_OPERATION.search(query):
        raise AuthorizationError("File operations are not allowed")

    references = extract_table_references(query)
    allowed_normalized = {t.lower() for t in allowed}
    unauthorized = [r for r in references if _normalize_table(r) not in allowed_normalized]
    if unauthorized:
        names = ", ".join(dict.fromkeys(r.replace("`", "") for r in unauthorized))
        raise AuthorizationError(
            f"Unauthorized table reference(s): {names}. Allowed tables: {allowed_display}"
        )

    if _JOIN.search(query) and len(references) > 1:
        raise AuthorizationError(
            "JOINs not allowed between table references. Analyze each table separately."
        )

    if not _LIMIT.search(query) and not _AGGREGATE.search(query):
        raise AuthorizationError(
            "Queries must include a LIMIT clause or an aggregate function to prevent resource exhaustion. "
            "Example: add 'LIMIT 100' to your query, or use COUNT(*) for aggregations."
        )

    lowered = query.lower()
    if not any(t.lower() in lowered for t in allowed):
        raise AuthorizationError(f"Query must reference one of the authorized tables: {allowed_display}")


def screen_query(query: Any, settings: Settings) -> QueryCheck:
    """Runs validation then authorization, returning the cleaned query or the rejection."""
    config = settings.flexible_query
    try:
        cleaned = validate_raw_query(query, config.max_query_length, config.dangerous_patterns)
        authorize_query(cleaned, settings.authorized_tables)
    except QueryRejected as e:
        logger.warning("Raw query rejected (%s): %s", e.kind, e.reason)
        return QueryCheck(rejection=Rejection(kind=e.kind, reason=e.reason))
    return QueryCheck(query=cleaned)
