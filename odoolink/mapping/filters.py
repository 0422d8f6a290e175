from __future__ import annotations
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field

# Remote domain operators, keyed by every spelling the host may send.
# "is set" / "is not set" are rewritten against False in to_domain_term().
OPERATOR_MAP: Dict[str, str] = {
    "=": "=",
    "!=": "!=",
    ">": ">",
    ">=": ">=",
    "<": "<",
    "<=": "<=",
    "like": "like",
    "not like": "not like",
    "ilike": "ilike",
    "not ilike": "not ilike",
    "in": "in",
    "not in": "not in",
    "child_of": "child_of",
    "is set": "is set",
    "is not set": "is not set",
    # host aliases
    "equal": "=",
    "notEqual": "!=",
    "greaterThen": ">",
    "greaterThan": ">",
    "lesserThen": "<",
    "lessThan": "<",
    "greaterOrEqual": ">=",
    "lesserOrEqual": "<=",
    "notLike": "not like",
    "notIlike": "not ilike",
    "notIn": "not in",
    "childOf": "child_of",
    "isSet": "is set",
    "isNotSet": "is not set",
}

_LIST_OPERATORS = {"in", "not in", "child_of"}


class FilterCondition(BaseModel):
    field: str
    operator: str = "="
    value: Any = None

    def to_domain_term(self) -> List[Any]:
        op = OPERATOR_MAP.get(self.operator)
        if op is None:
            raise ValueError(f"Unsupported filter operator: {self.operator!r}")
        if op == "is set":
            return [self.field, "!=", False]
        if op == "is not set":
            return [self.field, "=", False]
        value = self.value
        if op in _LIST_OPERATORS and isinstance(value, str) and "," in value:
            value = [part.strip() for part in value.split(",") if part.strip()]
        elif op in ("in", "not in") and not isinstance(value, (list, tuple)):
            value = [value]
        return [self.field, op, value]


class FilterExpression(BaseModel):
    """Top-level AND/OR over a flat list of conditions."""

    combinator: Literal["and", "or"] = "and"
    conditions: List[FilterCondition] = Field(default_factory=list)

    def to_domain(self) -> List[Any]:
        """
        Translate to the remote prefix-notation domain.

        AND is implicit between terms; OR over n terms needs n-1 leading "|".
        """
        terms = [c.to_domain_term() for c in self.conditions]
        if self.combinator == "or" and len(terms) > 1:
            return ["|"] * (len(terms) - 1) + terms
        return terms


def _condition_from_term(term: Any) -> FilterCondition:
    # value-less operators ("is set") come as two-element terms
    if not isinstance(term, (list, tuple)) or len(term) < 2:
        raise ValueError(f"Filter term needs a field and an operator: {term!r}")
    return FilterCondition(
        field=term[0], operator=term[1], value=term[2] if len(term) > 2 else None,
    )


def coerce_filter(raw: Any) -> FilterExpression:
    """
    Build a FilterExpression from the shapes the host sends:

        None
        [["name", "=", "Acme"], ...]                       (ready-made terms)
        {"filter": [{"fieldName", "operator", "value"}]}   (host collection)
        {"combinator": "or", "conditions": [...]}
    """
    if raw is None:
        return FilterExpression()
    if isinstance(raw, FilterExpression):
        return raw
    if isinstance(raw, list):
        return FilterExpression(conditions=[_condition_from_term(t) for t in raw])
    if "filter" in raw:
        return FilterExpression(
            combinator=raw.get("combinator", "and"),
            conditions=[
                FilterCondition(
                    field=item["fieldName"],
                    operator=item.get("operator", "="),
                    value=item.get("value"),
                )
                for item in raw["filter"]
            ],
        )
    return FilterExpression.model_validate(raw)
