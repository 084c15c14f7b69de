"""Safe filter compilation for Cypher queries.

Builds parameterised WHERE clauses from the filter dicts produced by
``BaseSpecification.to_filter``. Values always travel as parameters; field
names are checked against an identifier pattern before being interpolated.
"""

from __future__ import annotations

import re
from typing import Any

_OPS = {"gte": ">=", "lte": "<="}

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _field(alias: str, name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid filter field name: {name!r}")
    return f"{alias}.{name}"


def compile_predicate(filters: dict[str, Any] | None, alias: str = "m") -> tuple[str, dict[str, Any]]:
    """Compile a filter dict into a bare boolean expression and its parameters.

    Supported keys:
        - ``{"field": value}`` equality, ``{"field": None}`` IS NULL
        - ``{"field__gte": value}`` and ``{"field__lte": value}`` inclusive bounds
        - ``{"field__has": value}`` list membership (``value IN m.field``)
        - ``{"$and": [..]}``, ``{"$or": [..]}``, ``{"$not": {..}}`` groups

    Returns:
        ``("", {})`` for an empty filter
    """
    params: dict[str, Any] = {}

    def bind(value: Any) -> str:
        name = f"p_{len(params)}"
        params[name] = value
        return f"${name}"

    def field_clause(key: str, value: Any) -> str:
        name, op = key.split("__", 1)
        target = _field(alias, name)
        if op == "has":
            return f"{bind(value)} IN {target}"
        if op not in _OPS:
            raise ValueError(f"Unsupported filter operator: {op!r}")
        return f"{target} {_OPS[op]} {bind(value)}"

    def group(items: list[dict[str, Any]], joiner: str) -> str | None:
        parts = [part for part in (process(item) for item in items) if part]
        if not parts:
            return None
        if len(parts) == 1:
            return parts[0]
        return "(" + f" {joiner} ".join(parts) + ")"

    def process(filter_dict: dict[str, Any]) -> str | None:
        clauses: list[str] = []
        for key, value in filter_dict.items():
            if key == "$or":
                clause = group(value, "OR")
            elif key == "$and":
                clause = group(value, "AND")
            elif key == "$not":
                inner = process(value)
                clause = f"NOT ({inner})" if inner else None
            elif "__" in key:
                clause = field_clause(key, value)
            elif value is None:
                clause = f"{_field(alias, key)} IS NULL"
            else:
                clause = f"{_field(alias, key)} = {bind(value)}"
            if clause:
                clauses.append(clause)

        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return "(" + " AND ".join(clauses) + ")"

    predicate = process(filters or {}) or ""
    return predicate, params


def compile_filters(filters: dict[str, Any] | None, alias: str = "m") -> tuple[str, dict[str, Any]]:
    """Compile a filter dict into a ``WHERE`` clause and parameters.

    Examples:
        >>> compile_filters({"type": "episodic", "importance__gte": 0.7})
        ("WHERE (m.type = $p_0 AND m.importance >= $p_1)", {"p_0": "episodic", "p_1": 0.7})

        >>> compile_filters({"$or": [{"type": "semantic"}, {"type": "procedural"}]})
        ("WHERE (m.type = $p_0 OR m.type = $p_1)", {"p_0": "semantic", "p_1": "procedural"})
    """
    predicate, params = compile_predicate(filters, alias)
    if not predicate:
        return "", {}
    return f"WHERE {predicate}", params
