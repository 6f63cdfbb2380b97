import pytest

from gravi.core.errors import ScoringError
from gravi.models import UNCLASSIFIED
from gravi.pipeline import scoring

NINE_BRANDS = ["Lay's", "Kurkure", "Amul", "Britannia", "Parle", "Tata", "Dabur", "Colgate", "Maggi"]


def test_strong_evidence_scores_full_marks():
    result = scoring.compute_authenticity_score(
        ["grocery_or_supermarket", "store"], NINE_BRANDS, "Supermarket", 80, 4
    )

    assert result.authenticity_score == 100
    assert result.risk_flags == ()
    assert result.components == {
        "category_match": 30,
        "brand_presence": 30,
        "store_type_quality": 25,
        "image_coverage": 15,
    }


def test_weak_evidence_raises_every_flag_in_order():
    result = scoring.compute_authenticity_score(["restaurant"], ["Amul"], UNCLASSIFIED, 40, 0)

    assert result.authenticity_score == 5
    assert result.risk_flags == (
        "Store type unclassifiable",
        "No photos available",
        "Low brand visibility",
        "Low AI confidence",
    )


@pytest.mark.parametrize(
    "hints, brands, store_type, confidence, images, expected",
    [
        (["store"], [], "Kirana Store", 74, 1, 18 + 5 + 12 + 8),
        (["restaurant"], NINE_BRANDS[:4], "Kirana Store", 75, 3, 12 + 20 + 25 + 15),
        ([], NINE_BRANDS[:2], "Not A Type", 99, 2, 0 + 10 + 0 + 8),
    ],
)
def test_component_boundaries(hints, brands, store_type, confidence, images, expected):
    result = scoring.compute_authenticity_score(hints, brands, store_type, confidence, images)

    assert result.authenticity_score == expected


def test_scoring_is_deterministic():
    args = (["supermarket"], NINE_BRANDS[:3], "Supermarket", 60, 2)

    assert scoring.compute_authenticity_score(*args) == scoring.compute_authenticity_score(*args)


@pytest.mark.parametrize(
    "brands, confidence, images",
    [
        (NINE_BRANDS, 101, 1),
        (NINE_BRANDS, -1, 1),
        (NINE_BRANDS, 0.8, 1),
        (NINE_BRANDS, True, 1),
        (NINE_BRANDS, 80, -1),
        ("Amul", 80, 1),
        (["Amul", None], 80, 1),
    ],
)
def test_invalid_inputs_raise(brands, confidence, images):
    with pytest.raises(ScoringError):
        scoring.compute_authenticity_score(["store"], brands, "Supermarket", confidence, images)
