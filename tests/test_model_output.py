import pytest

from gravi.etl import model_output
from gravi.models import UNCLASSIFIED


def test_extract_json_object_strips_fences_and_prose():
    raw = 'Sure! Here is the analysis:\n```json\n{"store_type": "Supermarket", "note": "a } brace"}\n```\nThanks.'

    payload = model_output.extract_json_object(raw)

    assert payload == {"store_type": "Supermarket", "note": "a } brace"}


def test_extract_json_object_takes_first_balanced_object():
    raw = '{"a": {"b": 1}} trailing {"c": 2}'

    assert model_output.extract_json_object(raw) == {"a": {"b": 1}}


def test_extract_json_object_skips_non_json_braces():
    raw = "Template {placeholder} then {\"ok\": true}"

    assert model_output.extract_json_object(raw) == {"ok": True}


@pytest.mark.parametrize("raw", ["", "   ", None, "no json here", '{"unterminated": ', "[1, 2, 3]"])
def test_extract_json_object_rejects_unusable_output(raw):
    with pytest.raises(model_output.ModelOutputError):
        model_output.extract_json_object(raw)


@pytest.mark.parametrize(
    "value, expected",
    [
        (0.92, 92),
        (87, 87),
        (1, 100),
        (0, 0),
        (0.875, 88),
        (87.5, 88),
        ("0.6", 60),
        ("95%", 95),
        (140, 100),
        (-3, 0),
        (None, 0),
        ("high", 0),
        (True, 0),
        (float("nan"), 0),
    ],
)
def test_normalize_confidence(value, expected):
    assert model_output.normalize_confidence(value) == expected


def test_coerce_store_type():
    assert model_output.coerce_store_type("Kirana Store") == "Kirana Store"
    assert model_output.coerce_store_type("  Supermarket ") == "Supermarket"
    assert model_output.coerce_store_type("Mega Bazaar") == UNCLASSIFIED
    assert model_output.coerce_store_type("kirana store") == UNCLASSIFIED
    assert model_output.coerce_store_type(None) == UNCLASSIFIED
    assert model_output.coerce_store_type(["Supermarket"]) == UNCLASSIFIED


def test_clean_brand_map_drops_empty_and_invalid_categories():
    brands = model_output.clean_brand_map(
        {
            "Snacks": ["Lay's", " Kurkure ", ""],
            "Dairy": [],
            "Beverages": "Coca-Cola",
            "Home Care": [None, 3],
            "": ["Orphan"],
        }
    )

    assert brands == {"Snacks": ["Lay's", "Kurkure"]}
    assert model_output.clean_brand_map(["Lay's"]) == {}


def test_to_classification_result_applies_defaults():
    result = model_output.to_classification_result({"store_type": "Hypermarket?", "unexpected": "dropped"})

    assert result.store_type == UNCLASSIFIED
    assert result.confidence == 0
    assert result.detected_brands == {}
    assert result.shelf_density_score == 0
    assert result.store_name_from_image == "Unknown"
    assert result.reasoning == ""
    assert not hasattr(result, "unexpected")


def test_to_classification_result_full_payload():
    result = model_output.to_classification_result(
        {
            "store_name_from_image": "Fresh Mart",
            "store_type": "Supermarket",
            "confidence_score": 0.81,
            "detected_brands": {"Snacks": ["Lay's", "Bingo"], "Dairy": ["Amul"], "Empty": []},
            "shelf_density_score": "7.5",
            "reasoning": "Three aisles with dense shelving.",
        }
    )

    assert result.store_type == "Supermarket"
    assert result.confidence == 81
    assert result.confidence_label == "HIGH"
    assert result.detected_brands == {"Snacks": ["Lay's", "Bingo"], "Dairy": ["Amul"]}
    assert result.flat_brands == ["Lay's", "Bingo", "Amul"]
    assert result.shelf_density_score == 7.5


def test_to_review_intelligence_coerces_fields():
    intel = model_output.to_review_intelligence(
        {"sentiment": "Positive", "common_themes": ["fresh produce", "", 4, "a", "b", "c", "d", "e"]}
    )

    assert intel.sentiment == "positive"
    assert intel.common_themes == ("fresh produce", "a", "b", "c", "d", "e")

    fallback = model_output.to_review_intelligence({"sentiment": "ecstatic", "common_themes": "queues"})
    assert fallback.sentiment == "unknown"
    assert fallback.common_themes == ("queues",)


def test_to_bulk_image_result_defaults():
    result = model_output.to_bulk_image_result("a.jpg", {"store_type": "bakery", "visible_brands": "Amul"})

    assert result.image_name == "a.jpg"
    assert result.is_valid_grocery_store is True
    assert result.store_type == "other"
    assert result.store_type_confidence == 80
    assert result.visible_brands == ["Amul"]
    assert result.out_of_stock_signals == "None"
    assert result.reasoning == "Completed by Vision AI"
