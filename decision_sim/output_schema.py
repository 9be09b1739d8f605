"""
Schema descriptors for structured model output.

A SchemaField describes the exact shape the model must emit. It renders to the
OpenAPI-style dict that Vertex AI takes as ``response_schema`` and validates
parsed output on its own, so a reply that ignores the constraint is rejected
instead of being patched up.
"""
from dataclasses import dataclass, field
from typing import Any, Optional

STRING = "string"
NUMBER = "number"
INTEGER = "integer"
BOOLEAN = "boolean"
ARRAY = "array"
OBJECT = "object"

_TYPE_CHECKS = {
    STRING: lambda v: isinstance(v, str),
    NUMBER: lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    INTEGER: lambda v: isinstance(v, int) and not isinstance(v, bool),
    BOOLEAN: lambda v: isinstance(v, bool),
    ARRAY: lambda v: isinstance(v, list),
    OBJECT: lambda v: isinstance(v, dict),
}


@dataclass(frozen=True)
class SchemaField:
    name: str
    type: str
    required: bool = True
    description: str = ""
    items: Optional["SchemaField"] = None
    properties: tuple["SchemaField", ...] = field(default_factory=tuple)
    min_items: int | None = None
    max_items: int | None = None

    def __post_init__(self):
        if self.type not in _TYPE_CHECKS:
            raise ValueError(f"Unsupported schema type for '{self.name}': {self.type}")
        if self.type == ARRAY and self.items is None:
            raise ValueError(f"Array field '{self.name}' needs an item descriptor")

    @property
    def required_names(self) -> list[str]:
        return [p.name for p in self.properties if p.required]

    def to_response_schema(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type}
        if self.description:
            out["description"] = self.description
        if self.type == OBJECT:
            out["properties"] = {p.name: p.to_response_schema() for p in self.properties}
            if self.required_names:
                out["required"] = self.required_names
        if self.type == ARRAY:
            out["items"] = self.items.to_response_schema()
            if self.min_items is not None:
                out["minItems"] = self.min_items
            if self.max_items is not None:
                out["maxItems"] = self.max_items
        return out

    def validate(self, value: Any, path: str = "$") -> list[str]:
        """
        Returns the list of problems found in ``value``; empty when it conforms.
        """
        if not _TYPE_CHECKS[self.type](value):
            return [f"{path}: expected {self.type}, got {type(value).__name__}"]

        problems: list[str] = []
        if self.type == OBJECT:
            for prop in self.properties:
                child = f"{path}.{prop.name}"
                if prop.name not in value or value[prop.name] is None:
                    if prop.required:
                        problems.append(f"{child}: required field missing")
                    continue
                problems.extend(prop.validate(value[prop.name], child))

        elif self.type == ARRAY:
            n = len(value)
            if self.min_items is not None and n < self.min_items:
                problems.append(f"{path}: expected at least {self.min_items} items, got {n}")
            if self.max_items is not None and n > self.max_items:
                problems.append(f"{path}: expected at most {self.max_items} items, got {n}")
            for i, item in enumerate(value):
                problems.extend(self.items.validate(item, f"{path}[{i}]"))

        return problems


def object_schema(name: str, *properties: SchemaField, description: str = "") -> SchemaField:
    return SchemaField(name=name, type=OBJECT, properties=tuple(properties), description=description)


def array_schema(name: str, items: SchemaField, *, min_items=None, max_items=None, description: str = "") -> SchemaField:
    return SchemaField(
        name=name,
        type=ARRAY,
        items=items,
        min_items=min_items,
        max_items=max_items,
        description=description,
    )
