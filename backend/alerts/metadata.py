"""
Alert metadata shapes.

Each category carries a known payload; anything that does not fit its
category's shape is kept verbatim as an opaque JSON object.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

JSONValue = Union[str, int, float, bool, None, list[Any], dict[str, Any]]


class _Shape(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class CompetitiveMetadata(_Shape):
    kind: Literal["competitive"] = "competitive"
    competitor: str
    price_change: float = Field(validation_alias="priceChange", serialization_alias="priceChange")
    previous_price: float | None = Field(None, validation_alias="previousPrice", serialization_alias="previousPrice")
    new_price: float | None = Field(None, validation_alias="newPrice", serialization_alias="newPrice")


class PerformanceMetadata(_Shape):
    kind: Literal["performance"] = "performance"
    demand_increase: float = Field(validation_alias="demandIncrease", serialization_alias="demandIncrease")
    load_factor: float | None = Field(None, validation_alias="loadFactor", serialization_alias="loadFactor")
    opportunity: str | None = None


class NetworkMetadata(_Shape):
    kind: Literal["network"] = "network"
    from_route: str = Field(validation_alias="fromRoute", serialization_alias="fromRoute")
    to_route: str = Field(validation_alias="toRoute", serialization_alias="toRoute")
    capacity_change: float | None = Field(
        None, validation_alias="capacityChange", serialization_alias="capacityChange"
    )


class OpaqueMetadata(_Shape):
    kind: Literal["opaque"] = "opaque"
    payload: dict[str, JSONValue] = Field(default_factory=dict)


AlertMetadata = Annotated[
    Union[CompetitiveMetadata, PerformanceMetadata, NetworkMetadata, OpaqueMetadata],
    Field(discriminator="kind"),
]

_CATEGORY_SHAPES: dict[str, type[_Shape]] = {
    "competitive": CompetitiveMetadata,
    "performance": PerformanceMetadata,
    "network": NetworkMetadata,
}

_adapter = TypeAdapter(AlertMetadata)


def coerce_metadata(category: str, raw: dict[str, Any] | None) -> AlertMetadata:
    """Return the typed metadata for category, falling back to an opaque wrapper."""
    if not raw:
        return OpaqueMetadata()

    kind = raw.get("kind")
    if kind is not None:
        try:
            return _adapter.validate_python(raw)
        except PydanticValidationError:
            if kind == "opaque":
                return OpaqueMetadata(payload={k: v for k, v in raw.items() if k != "kind"})
            return OpaqueMetadata(payload=raw)

    shape = _CATEGORY_SHAPES.get(category)
    if shape is not None:
        try:
            return shape.model_validate(raw)
        except PydanticValidationError:
            pass
    return OpaqueMetadata(payload=raw)


def dump_metadata(metadata: AlertMetadata) -> dict[str, Any]:
    """Serialize metadata for storage and API responses (camelCase keys)."""
    return metadata.model_dump(by_alias=True, exclude_none=True, mode="json")


def load_metadata(category: str, stored: dict[str, Any] | None) -> dict[str, Any]:
    """Normalize a stored payload (including legacy untagged rows) for output."""
    return dump_metadata(coerce_metadata(category, stored))
