"""Composable specification base classes.

A specification answers two questions about the same rule: does this entity
satisfy it (``is_satisfied_by``), and what filter dict selects such entities
in a store (``to_filter``). The filter dict uses ``field__op`` keys plus
``$and``/``$or``/``$not`` groups, compiled to Cypher by
``memory_mesh.infrastructure.neo4j.filter_compiler``.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class BaseSpecification(BaseModel):
    """Base class for concrete specifications."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def is_satisfied_by(self, entity: Any) -> bool:
        """Check if the entity satisfies this specification."""
        raise NotImplementedError("Subclasses must implement is_satisfied_by")

    def to_filter(self) -> dict[str, Any]:
        """Convert this specification to a filter dict."""
        return {}

    def and_(self, other: "BaseSpecification") -> "BaseSpecification":
        return CompositeSpecification(operator="and", specifications=[self, other])

    def or_(self, other: "BaseSpecification") -> "BaseSpecification":
        return CompositeSpecification(operator="or", specifications=[self, other])

    def not_(self) -> "BaseSpecification":
        return NotSpecification(spec=self)


class NotSpecification(BaseSpecification):
    """NOT specification implementation."""

    type: Literal["not"] = "not"
    spec: BaseSpecification

    def is_satisfied_by(self, entity: Any) -> bool:
        return not self.spec.is_satisfied_by(entity)

    def to_filter(self) -> dict[str, Any]:
        return {"$not": self.spec.to_filter()}


class CompositeSpecification(BaseSpecification):
    """Combine several specifications with AND or OR."""

    type: Literal["composite"] = "composite"
    operator: Literal["and", "or"] = Field(...)
    specifications: list[BaseSpecification] = Field(...)

    def is_satisfied_by(self, entity: Any) -> bool:
        if self.operator == "and":
            return all(spec.is_satisfied_by(entity) for spec in self.specifications)
        return any(spec.is_satisfied_by(entity) for spec in self.specifications)

    def to_filter(self) -> dict[str, Any]:
        filters = [f for f in (spec.to_filter() for spec in self.specifications) if f]
        if not filters:
            return {}
        if len(filters) == 1:
            return filters[0]
        return {f"${self.operator}": filters}


class AlwaysTrueSpecification(BaseSpecification):
    """Matches everything; the empty filter."""

    def is_satisfied_by(self, entity: Any) -> bool:  # noqa: ARG002
        return True

    def to_filter(self) -> dict[str, Any]:
        return {}


def all_of(*specs: BaseSpecification | None) -> BaseSpecification:
    """AND together the given specifications, skipping ``None``."""
    present = [spec for spec in specs if spec is not None]
    if not present:
        return AlwaysTrueSpecification()
    if len(present) == 1:
        return present[0]
    return CompositeSpecification(operator="and", specifications=present)
