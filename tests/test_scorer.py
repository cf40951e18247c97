from afinidad.matching import CompatibilityScorer, policy_compatible
from afinidad.models import (
    Candidate,
    OffererPreferences,
    SeekerPreferences,
    TargetType,
)


def _profile(**data):
    return Candidate.from_row({"id": "p1", **data}, TargetType.PROFILE)


def _listing(**data):
    return Candidate.from_row({"id": "l1", "owner_id": "owner-9", **data}, TargetType.LISTING)


def test_budget_and_partial_lifestyle_overlap():
    prefs = OffererPreferences(
        min_budget=1000, max_budget=2000, compatible_lifestyle_tags=["quiet", "clean"]
    )
    scored = CompatibilityScorer().score(prefs, _profile(budget=1500, lifestyle_tags=["quiet"]))

    # 30 + 12.5 sobre 55
    assert scored.percentage == 77
    assert "Budget matches your requirements" in scored.matched_reasons
    # La mitad justa del peso no alcanza para la razón de estilo de vida
    assert "Compatible lifestyle" not in scored.matched_reasons


def test_scoring_is_deterministic():
    prefs = OffererPreferences(min_budget=500, allows_pets=False, compatible_lifestyle_tags=["quiet"])
    candidate = _profile(budget=800, has_pets=True, lifestyle_tags=["quiet", "party"])
    scorer = CompatibilityScorer()

    first = scorer.score(prefs, candidate)
    second = scorer.score(prefs, candidate)

    assert first.percentage == second.percentage
    assert first.matched_reasons == second.matched_reasons
    assert first.incompatible_reasons == second.incompatible_reasons


def test_missing_candidate_fields_are_skipped_not_penalized():
    prefs = OffererPreferences(
        min_budget=1000, max_budget=2000, allows_pets=True, allows_smoking=False
    )
    scored = CompatibilityScorer().score(prefs, _profile(budget=1200))

    assert scored.percentage == 100
    assert scored.incompatible_reasons == []


def test_no_comparable_factors_yields_neutral():
    prefs = OffererPreferences(compatible_lifestyle_tags=["quiet"])
    scored = CompatibilityScorer().score(prefs, _profile())

    assert scored.percentage == 50


def test_no_preferences_yields_neutral_with_reason():
    scored = CompatibilityScorer(neutral_percentage=60).score(None, _profile(budget=100))

    assert scored.percentage == 60
    assert scored.matched_reasons == ["No preferences set"]


def test_budget_out_of_range_is_incompatible():
    prefs = OffererPreferences(min_budget=1000, max_budget=2000)
    scored = CompatibilityScorer().score(prefs, _profile(budget=3000))

    assert scored.percentage == 0
    assert scored.incompatible_reasons == ["Budget mismatch"]


def test_restrictive_policy_only_conflicts_with_requirement():
    assert policy_compatible(True, True)
    assert policy_compatible(True, False)
    assert policy_compatible(False, False)
    assert not policy_compatible(False, True)

    prefs = OffererPreferences(allows_pets=False, allows_smoking=False)
    scorer = CompatibilityScorer()

    clean = scorer.score(prefs, _profile(has_pets=False, smokes=False))
    assert clean.percentage == 100
    assert "Pet policy compatible" in clean.matched_reasons

    pets = scorer.score(prefs, _profile(has_pets=True, smokes=False))
    assert pets.percentage == 50
    assert "Pet policy incompatible" in pets.incompatible_reasons


def test_zero_lifestyle_overlap_reports_limited_compatibility():
    prefs = OffererPreferences(compatible_lifestyle_tags=["quiet"])
    scored = CompatibilityScorer().score(prefs, _profile(lifestyle_tags=["party"]))

    assert scored.percentage == 0
    assert "Limited lifestyle compatibility" in scored.incompatible_reasons


def test_malformed_values_are_treated_as_missing():
    prefs = OffererPreferences(min_budget="abc", max_budget=2000, allows_pets="maybe")
    assert prefs.min_budget is None
    assert prefs.allows_pets is None

    scored = CompatibilityScorer().score(
        prefs, _profile(budget="lots", lifestyle_tags="quiet", has_pets=[1])
    )
    assert scored.percentage == 50
    assert scored.incompatible_reasons == []


def test_percentage_stays_within_bounds_with_custom_weights():
    prefs = OffererPreferences(min_budget=0, allows_pets=True)
    scorer = CompatibilityScorer(offerer_weights={"budget": 500.0, "pets": 0.5})

    scored = scorer.score(prefs, _profile(budget=10, has_pets=True))

    assert 0 <= scored.percentage <= 100
    assert scored.percentage == 100


def test_listing_scoring_for_seekers():
    prefs = SeekerPreferences(
        min_price=500,
        max_price=1500,
        min_bedrooms=2,
        property_types=["apartment"],
        required_amenities=["wifi", "parking", "gym"],
        preferred_locations=["Palermo"],
        pet_friendly_required=True,
    )
    listing = _listing(
        price=1200,
        bedrooms=1,
        property_type="apartment",
        amenities=["wifi", "parking"],
        city="Palermo Soho",
        pet_friendly=True,
    )

    scored = CompatibilityScorer().score(prefs, listing)

    # price 30 + type 15 + amenities 2/3*20 + location 15 + pets 15 sobre 115
    assert scored.percentage == 77
    assert "Has 2/3 amenities" in scored.matched_reasons
    assert "Not enough bedrooms" in scored.incompatible_reasons
    assert "In preferred location" in scored.matched_reasons


def test_listing_owner_is_the_like_recipient():
    assert _listing().owner_id == "owner-9"
    assert _profile().owner_id == "p1"


def test_empty_lists_count_as_not_declared():
    scorer = CompatibilityScorer()

    profile = scorer.score(
        OffererPreferences(min_budget=1000, compatible_lifestyle_tags=["quiet"]),
        _profile(budget=1500, lifestyle_tags=[]),
    )
    listing = scorer.score(
        SeekerPreferences(max_price=1500, required_amenities=["wifi"]),
        _listing(price=1200, amenities=[]),
    )

    assert profile.percentage == 100
    assert listing.percentage == 100
    assert listing.incompatible_reasons == []
