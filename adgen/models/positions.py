"""
Element placement value types.

A position document is keyed by element name (`logo`, `headline`,
`subheadline`, `cta`) and uses the camelCase field names the editor
frontend and the persisted JSON share (`fontSize`, `bgColor`). Validation is
structural only: presence and type per element. Whether a box fits inside the
canvas is left to the compositor, which degrades rather than aborts.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt
from pydantic import ValidationError as PydanticValidationError

from adgen.services.errors import InvalidField


HEX_COLOR_PATTERN = r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$"


class Element(str, Enum):
    """Logical elements placed on every ad, in render order."""

    LOGO = "logo"
    HEADLINE = "headline"
    SUBHEADLINE = "subheadline"
    CTA = "cta"


class TextAlign(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


# Fields that must be present for each element, by their document name.
REQUIRED_FIELDS: Dict[Element, tuple[str, ...]] = {
    Element.LOGO: ("width", "height"),
    Element.HEADLINE: ("fontSize", "color"),
    Element.SUBHEADLINE: ("fontSize", "color"),
    Element.CTA: ("width", "height", "fontSize", "color", "bgColor"),
}


class ElementPosition(BaseModel):
    """Placement and style for one element. `(x, y)` is the top-left corner."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    x: NonNegativeInt
    y: NonNegativeInt
    width: PositiveInt | None = None
    height: PositiveInt | None = None
    font_size: PositiveInt | None = Field(default=None, alias="fontSize")
    color: str | None = Field(default=None, pattern=HEX_COLOR_PATTERN)
    align: TextAlign | None = None
    bg_color: str | None = Field(default=None, alias="bgColor", pattern=HEX_COLOR_PATTERN)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ElementPositions(BaseModel):
    """The full position document for one ad."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    logo: ElementPosition | None = None
    headline: ElementPosition | None = None
    subheadline: ElementPosition | None = None
    cta: ElementPosition | None = None

    def get(self, element: Element) -> ElementPosition | None:
        return getattr(self, element.value)

    def items(self):
        """Yield `(element, position)` for every present element in render order."""
        for element in Element:
            position = self.get(element)
            if position is not None:
                yield element, position

    def to_document(self) -> Dict[str, Dict[str, Any]]:
        return {element.value: position.to_document() for element, position in self.items()}

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "ElementPositions":
        """Decode and validate a position document, raising `InvalidField` on failure."""
        if not isinstance(document, Mapping):
            raise InvalidField("element_positions", "expected an object keyed by element name")
        try:
            positions = cls.model_validate(dict(document))
        except PydanticValidationError as exc:
            error = exc.errors()[0]
            name = ".".join(str(part) for part in error["loc"]) or "element_positions"
            raise InvalidField(name, error["msg"]) from exc
        validate_positions(positions)
        return positions


def validate_position(element: Element, position: ElementPosition) -> None:
    """Check that every field the element needs is present."""
    document = position.model_dump(by_alias=True)
    for field_name in REQUIRED_FIELDS[element]:
        if document.get(field_name) is None:
            raise InvalidField(f"{element.value}.{field_name}", "field required")


def validate_positions(positions: ElementPositions) -> ElementPositions:
    for element, position in positions.items():
        validate_position(element, position)
    return positions
