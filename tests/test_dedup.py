import pytest

from pizzeria_search.etl import dedup


def test_string_similarity():
    assert dedup.string_similarity("", "abc") == 0.0
    assert dedup.string_similarity(None, "abc") == 0.0
    assert dedup.string_similarity("  ABC ", "abc") == 1.0
    assert dedup.string_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)


def test_normalize_phone():
    assert dedup.normalize_phone("(202) 555-0100") == "2025550100"
    assert dedup.normalize_phone(None) == ""


def test_identity_shortcut_ignores_other_fields(make_record):
    a = make_record(name="Joe's Pizza", source="yelp", external_id="y-1", lat=38.9, lng=-77.03)
    b = make_record(name="Completely Different", source="yelp", external_id="y-1", lat=40.7, lng=-74.0)

    check = dedup.are_duplicates(a, b)

    assert check.is_duplicate is True
    assert check.confidence == 1.0


def test_identity_shortcut_requires_external_id(make_record):
    a = make_record(name="Joe's Pizza", external_id=None, lat=38.9, lng=-77.03)
    b = make_record(name="Sal's Slices", external_id=None, lat=40.7, lng=-74.0)

    assert dedup.are_duplicates(a, b).is_duplicate is False


def test_near_identical_listings_are_duplicates(make_record):
    a = make_record(name="Joe's Pizza", source="google", external_id="g-1", lat=38.9000, lng=-77.0300, phone="202-555-0100")
    b = make_record(name="Joes Pizza", source="yelp", external_id="y-1", lat=38.9001, lng=-77.0301, phone="2025550100")

    check = dedup.are_duplicates(a, b)

    assert check.is_duplicate is True
    assert check.confidence > 0.7
    assert check.strong_matches == 3


def test_same_chain_far_apart_is_not_duplicate(make_record):
    a = make_record(name="Domino's", source="google", external_id="g-1", lat=38.9000, lng=-77.0300, phone="202-555-0100")
    b = make_record(name="Domino's", source="google", external_id="g-2", lat=39.3348, lng=-77.0300, phone="301-555-0199")

    check = dedup.are_duplicates(a, b)

    assert check.is_duplicate is False
    assert check.confidence == pytest.approx(0.4)


def test_two_strong_matches_win_over_low_confidence(make_record):
    a = make_record(name="Tony's", source="google", external_id="g-1", lat=38.9000, lng=-77.0300, phone="202-555-0100")
    b = make_record(
        name="Antonio Ristorante", source="yelp", external_id="y-1", lat=38.90005, lng=-77.0300, phone="(202) 555-0100"
    )

    check = dedup.are_duplicates(a, b)

    assert check.confidence < 0.7
    assert check.strong_matches == 2
    assert check.is_duplicate is True


def test_same_spot_different_business_is_not_duplicate(make_record):
    a = make_record(name="Subway", source="google", external_id="g-1", lat=38.9, lng=-77.03)
    b = make_record(name="Joe's Pizza", source="yelp", external_id="y-1", lat=38.9, lng=-77.03)

    assert dedup.are_duplicates(a, b).is_duplicate is False


def test_merge_records_combines_popularity_and_fills_gaps(make_record):
    survivor = make_record(source="database", external_id="1", rating=None, review_count=10, phone=None, website="https://joes.example")
    absorbed = make_record(source="yelp", external_id="y-1", rating=4.5, review_count=25, phone="202-555-0100", website="https://yelp.example")

    merged = dedup.merge_records(survivor, absorbed)

    assert merged.rating == 4.5
    assert merged.review_count == 35
    assert merged.phone == "202-555-0100"
    assert merged.website == "https://joes.example"
    assert merged.source == "database"
    assert merged.metadata["duplicate_sources"] == ["yelp"]
    assert merged.metadata["merged_ids"] == ["y-1"]
    assert survivor.metadata == {}


def test_merge_records_without_ratings_stays_unrated(make_record):
    merged = dedup.merge_records(make_record(rating=None), make_record(external_id="g-2", rating=None))
    assert merged.rating is None


def test_merge_chain_is_additive_and_append_only(make_record):
    a = make_record(source="database", external_id="1", rating=3.9, review_count=4)
    b = make_record(source="google", external_id="g-1", rating=4.4, review_count=100)
    c = make_record(source="yelp", external_id="y-1", rating=4.1, review_count=7)

    first = dedup.merge_records(a, b)
    second = dedup.merge_records(first, c)

    assert second.review_count == a.review_count + b.review_count + c.review_count
    assert second.rating == 4.4
    assert second.metadata["duplicate_sources"] == ["google", "yelp"]
    assert second.metadata["merged_ids"] == ["g-1", "y-1"]
    assert first.metadata["merged_ids"] == ["g-1"]


def test_greedy_clustering_merges_into_first_match(make_record):
    first = make_record(name="Pizza Place", source="database", external_id="1", lat=38.9, lng=-77.03, phone="111-111-1111")
    second = make_record(name="Pizza Place", source="database", external_id="2", lat=39.3348, lng=-77.03, phone="222-222-2222")
    late = make_record(name="Pizza Place", source="google", external_id="g-9", lat=38.9, lng=-77.03, phone="222-222-2222")

    result = dedup.deduplicate([first, second, late])

    assert [r.external_id for r in result.records] == ["1", "2"]
    assert result.records[0].metadata["merged_ids"] == ["g-9"]
    assert "merged_ids" not in result.records[1].metadata
    assert result.removed == 1
    decision = result.decisions[0]
    assert (decision.absorbed_source, decision.absorbed_id) == ("google", "g-9")
    assert (decision.survivor_source, decision.survivor_id) == ("database", "1")


def test_deduplicate_keeps_input_order_of_survivors(make_record):
    records = [
        make_record(name="Alpha Pizza", external_id="g-1", lat=38.90, lng=-77.03),
        make_record(name="Beta Slices", external_id="g-2", lat=38.95, lng=-77.10),
        make_record(name="Alpha Pizza", source="yelp", external_id="y-1", lat=38.90, lng=-77.03),
    ]

    result = dedup.deduplicate(records)

    assert [r.name for r in result.records] == ["Alpha Pizza", "Beta Slices"]
    assert result.records[0].metadata["duplicate_sources"] == ["yelp"]


def test_deduplicate_accepts_custom_strategy(make_record):
    class KeepEverything:
        def cluster(self, records):
            return dedup.DedupResult(records=list(records))

    records = [make_record(external_id="g-1"), make_record(external_id="g-1")]

    result = dedup.deduplicate(records, strategy=KeepEverything())

    assert len(result.records) == 2
    assert result.decisions == []


def test_deduplicate_empty_input():
    result = dedup.deduplicate([])
    assert result.records == []
    assert result.decisions == []
