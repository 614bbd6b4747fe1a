"""Filter compiler: loosely-typed options in, FilterSpec out."""

from datetime import datetime, timezone

from geosearch.services.catalog import CATALOG, get_kind
from geosearch.services.filter_compiler import compile_filters, parse_number, split_values
from geosearch.services.store import entity_matches

RESTAURANT = CATALOG["restaurant"]


def test_split_values_trims_and_dedupes() -> None:
    assert split_values(" Goan, Seafood ,,Goan") == ["Goan", "Seafood"]
    assert split_values(["a,b", "c", ""]) == ["a", "b", "c"]
    assert split_values(None) == []


def test_parse_number_rejects_non_finite_and_junk() -> None:
    assert parse_number("12.5") == 12.5
    assert parse_number("abc") is None
    assert parse_number("inf") is None
    assert parse_number("") is None
    assert parse_number(True) is None


def test_empty_category_input_is_no_filter() -> None:
    spec = compile_filters({"cuisines": "", "dietary": [], "features": " , "}, RESTAURANT)
    assert spec.any_of == {}
    assert spec.all_of == {}
    assert spec == compile_filters({}, RESTAURANT)


def test_any_of_and_all_of_fields_follow_kind() -> None:
    spec = compile_filters({"cuisines": "Goan,Seafood", "dietary": "vegan,gluten-free"}, RESTAURANT)
    assert spec.any_of == {"cuisines": ["Goan", "Seafood"]}
    assert spec.all_of == {"dietary": ["vegan", "gluten-free"]}


def test_one_sided_price_bound_stays_unbounded() -> None:
    spec = compile_filters({"minPrice": "500", "maxPrice": None}, RESTAURANT)
    assert spec.ranges["price"].gte == 500
    assert spec.ranges["price"].lte is None


def test_inverted_range_is_kept_and_matches_nothing(make_entity) -> None:
    spec = compile_filters({"minPrice": 2000, "maxPrice": 100}, RESTAURANT)
    assert spec.ranges["price"].gte == 2000
    assert not entity_matches(make_entity(price=900), spec)


def test_non_numeric_bounds_are_dropped() -> None:
    spec = compile_filters({"minPrice": "cheap", "minRating": "NaN"}, RESTAURANT)
    assert spec.ranges == {}


def test_unknown_keys_are_ignored() -> None:
    assert compile_filters({"foo": "bar", "colour": "red"}, RESTAURANT) == compile_filters({}, RESTAURANT)


def test_aliases_and_active_flag() -> None:
    spec = compile_filters({"min_price": "10", "rating": "4", "is_active_only": "false"}, RESTAURANT)
    assert spec.ranges["price"].gte == 10
    assert spec.ranges["rating"].gte == 4
    assert spec.active_only is False
    assert compile_filters({}, RESTAURANT).active_only is True


def test_open_now_uses_given_instant(make_entity) -> None:
    now = datetime(2026, 6, 1, 12, tzinfo=timezone.utc)
    spec = compile_filters({"openNow": "true"}, RESTAURANT, now=now)
    assert spec.open_at == now

    open_entity = make_entity(availability=[{"start": "2026-05-01T00:00:00Z", "end": "2026-07-01T00:00:00Z"}])
    closed_entity = make_entity(availability=[{"start": "2026-01-01T00:00:00Z", "end": "2026-02-01T00:00:00Z"}])
    assert entity_matches(open_entity, spec)
    assert not entity_matches(closed_entity, spec)
    assert not entity_matches(make_entity(), spec)


def test_history_date_range_with_bare_dates(make_entity) -> None:
    history = get_kind("history")
    spec = compile_filters({"startDate": "2026-02-01", "endDate": "2026-02-14"}, history)
    bounds = spec.date_ranges["started_at"]
    assert bounds.gte == datetime(2026, 2, 1, tzinfo=timezone.utc)
    assert bounds.lte.date().isoformat() == "2026-02-14"

    inside = make_entity(kind="history", started_at="2026-02-14T22:00:00Z")
    outside = make_entity(kind="history", started_at="2026-02-15T00:00:01Z")
    assert entity_matches(inside, spec)
    assert not entity_matches(outside, spec)


def test_unparsable_dates_are_ignored() -> None:
    spec = compile_filters({"startDate": "yesterday"}, get_kind("history"))
    assert spec.date_ranges == {}


def test_city_is_case_insensitive_and_q_is_literal(make_entity) -> None:
    spec = compile_filters({"city": "panaji", "q": "viva"}, RESTAURANT)
    assert entity_matches(make_entity(name="Viva Panjim"), spec)
    assert not entity_matches(make_entity(name="Viva Panjim", city="Mapusa"), spec)
    # Regex metacharacters have no special meaning.
    assert not entity_matches(make_entity(name="Viva Panjim"), compile_filters({"q": "v.va"}, RESTAURANT))


def test_kind_exact_field(make_entity) -> None:
    train = get_kind("trains")
    spec = compile_filters({"operator": "konkan railway"}, train)
    assert spec.exact["operator"] == "konkan railway"
    assert entity_matches(make_entity(kind="train", labels={"operator": "Konkan Railway"}), spec)
