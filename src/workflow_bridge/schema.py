"""
Typed parameter schemas for workflow tools.

Each workflow declares its arguments as a JSON-schema object. Instead of
passing that dict around and inspecting it at runtime, it is parsed once into
a tagged variant:

    ParameterSchema(
        properties={"period": ParamSpec(ParamKind.STRING, "Time period")},
        required=("period",),
    )

The variant renders the JSON schema advertised to the agent
(`to_json_schema`) and generates the pydantic model used to validate and
coerce incoming arguments (`coerce`).
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, create_model


class SchemaError(ValueError):
    """Raised when a JSON parameter schema cannot be parsed."""


class ParamKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


# Python annotation used for each kind when building the validation model.
# NUMBER accepts ints as ints so that `10` is forwarded as `10`, not `10.0`.
_KIND_TYPES: dict[ParamKind, Any] = {
    ParamKind.STRING: str,
    ParamKind.NUMBER: int | float,
    ParamKind.INTEGER: int,
    ParamKind.BOOLEAN: bool,
    ParamKind.ARRAY: list[Any],
    ParamKind.OBJECT: dict[str, Any],
}


@dataclass(frozen=True)
class ParamSpec:
    """One property of a parameter schema."""

    kind: ParamKind
    description: str = ""
    enum: tuple[Any, ...] | None = None
    default: Any = None

    @classmethod
    def from_json(cls, name: str, raw: dict[str, Any]) -> "ParamSpec":
        try:
            kind = ParamKind(raw.get("type"))
        except ValueError:
            raise SchemaError(f"Property '{name}' has unsupported type {raw.get('type')!r}")

        enum = raw.get("enum")
        if enum is not None:
            if not isinstance(enum, list) or not enum:
                raise SchemaError(f"Property '{name}' enum must be a non-empty list")
            enum = tuple(enum)

        return cls(
            kind=kind,
            description=raw.get("description", ""),
            enum=enum,
            default=raw.get("default"),
        )

    def to_json(self) -> dict[str, Any]:
        rendered: dict[str, Any] = {"type": self.kind.value}
        if self.description:
            rendered["description"] = self.description
        if self.default is not None:
            rendered["default"] = self.default
        if self.enum is not None:
            rendered["enum"] = list(self.enum)
        return rendered

    def annotation(self) -> Any:
        if self.enum is not None:
            return Literal[self.enum]
        return _KIND_TYPES[self.kind]


@dataclass(frozen=True)
class ParameterSchema:
    """An object schema: named properties plus the required-name list."""

    properties: dict[str, ParamSpec] = field(default_factory=dict)
    required: tuple[str, ...] = ()

    @classmethod
    def from_json_schema(cls, raw: dict[str, Any] | None) -> "ParameterSchema":
        if not raw:
            return cls()
        if raw.get("type", "object") != "object":
            raise SchemaError("Parameter schema must describe an object")

        raw_properties = raw.get("properties") or {}
        if not isinstance(raw_properties, dict):
            raise SchemaError("Parameter schema 'properties' must be an object")

        properties = {}
        for name, spec in raw_properties.items():
            if name.startswith("_"):
                # Underscore names are reserved for the bridge (e.g. `_context`).
                raise SchemaError(f"Property name '{name}' is reserved")
            if not isinstance(spec, dict):
                raise SchemaError(f"Property '{name}' must be an object")
            properties[name] = ParamSpec.from_json(name, spec)

        required = tuple(raw.get("required") or ())
        unknown = [name for name in required if name not in properties]
        if unknown:
            raise SchemaError(f"Required properties not declared: {', '.join(unknown)}")

        return cls(properties=properties, required=required)

    def to_json_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {name: spec.to_json() for name, spec in self.properties.items()},
            "required": list(self.required),
        }

    @cached_property
    def validation_model(self) -> type[BaseModel]:
        fields: dict[str, Any] = {}
        for name, spec in self.properties.items():
            if name in self.required:
                fields[name] = (spec.annotation(), ...)
            else:
                fields[name] = (spec.annotation() | None, None)
        return create_model(
            "WorkflowArguments",
            __config__=ConfigDict(extra="allow"),
            **fields,
        )

    def coerce(self, arguments: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
        """
        Validate `arguments` and coerce them to the declared kinds.

        Returns the coerced arguments and an empty problem list on success.
        On failure the arguments are returned untouched together with one
        problem string per failing field, e.g. "limit: Input should be a
        valid number".
        """
        try:
            validated = self.validation_model.model_validate(arguments)
        except ValidationError as exc:
            problems = []
            for error in exc.errors():
                location = ".".join(str(part) for part in error["loc"]) or "arguments"
                problems.append(f"{location}: {error['msg']}")
            return dict(arguments), problems
        return validated.model_dump(exclude_unset=True), []
