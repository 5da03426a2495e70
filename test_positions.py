"""Position document decoding and validation."""

import pytest

from adgen.models.positions import ElementPositions
from adgen.services.errors import InvalidField
from adgen.services.layouts import AdSize, default_positions


def _document(**overrides):
    document = {
        "logo": {"x": 10, "y": 10, "width": 60, "height": 60},
        "headline": {"x": 150, "y": 80, "fontSize": 20, "color": "#000000", "align": "center"},
        "subheadline": {"x": 150, "y": 120, "fontSize": 14, "color": "#333333"},
        "cta": {
            "x": 75,
            "y": 200,
            "width": 150,
            "height": 40,
            "fontSize": 16,
            "color": "#ffffff",
            "bgColor": "#ff0000",
        },
    }
    document.update(overrides)
    return document


def test_document_round_trip_keeps_camel_case_names():
    positions = ElementPositions.from_document(_document())

    assert positions.cta.bg_color == "#ff0000"
    assert positions.to_document()["cta"]["bgColor"] == "#ff0000"
    assert positions.to_document()["headline"]["fontSize"] == 20


@pytest.mark.parametrize("ad_size", [size.value for size in AdSize] + ["123x456"])
def test_default_layouts_survive_a_document_round_trip(ad_size):
    positions = default_positions(ad_size)

    assert ElementPositions.from_document(positions.to_document()) == positions


def test_missing_elements_are_allowed():
    positions = ElementPositions.from_document({"headline": _document()["headline"]})

    assert positions.logo is None
    assert list(positions.to_document()) == ["headline"]


def test_unknown_keys_are_ignored():
    positions = ElementPositions.from_document(_document(sticker={"x": 1, "y": 1}))

    assert "sticker" not in positions.to_document()


def test_cta_without_background_color_is_rejected():
    cta = dict(_document()["cta"])
    del cta["bgColor"]

    with pytest.raises(InvalidField) as excinfo:
        ElementPositions.from_document(_document(cta=cta))

    assert excinfo.value.name == "cta.bgColor"


def test_logo_without_size_is_rejected():
    with pytest.raises(InvalidField) as excinfo:
        ElementPositions.from_document(_document(logo={"x": 0, "y": 0}))

    assert excinfo.value.name == "logo.width"


def test_negative_coordinate_is_rejected():
    headline = dict(_document()["headline"], x=-5)

    with pytest.raises(InvalidField) as excinfo:
        ElementPositions.from_document(_document(headline=headline))

    assert excinfo.value.name.startswith("headline")


def test_bad_color_is_rejected():
    headline = dict(_document()["headline"], color="black")

    with pytest.raises(InvalidField):
        ElementPositions.from_document(_document(headline=headline))


def test_non_object_document_is_rejected():
    with pytest.raises(InvalidField):
        ElementPositions.from_document(["headline"])


def test_positions_outside_the_canvas_are_structurally_valid():
    headline = dict(_document()["headline"], x=5000, y=5000)

    positions = ElementPositions.from_document(_document(headline=headline))

    assert positions.headline.x == 5000
