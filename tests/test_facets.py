"""Facet aggregator: fan-out counts, top-N, price range and failure propagation."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from geosearch.core.errors import StoreUnavailable
from geosearch.models.query import FilterSpec
from geosearch.services.facets import FacetAggregator, top_buckets
from geosearch.services.filter_compiler import compile_filters
from geosearch.services.catalog import CATALOG
from geosearch.services.store import InMemoryEntityStore

from conftest import build_entity


async def test_multi_valued_entities_count_in_every_bucket(store) -> None:
    spec = compile_filters({}, CATALOG["restaurant"])
    result = await FacetAggregator(store).facets(spec, ["cuisines", "features"])
    cuisines = {b.value: b.count for b in result.facets["cuisines"]}

    # r1 (Goan, Seafood), r2 (Seafood), r3 (Continental, Bakery), r5 (Goan); r4 is inactive.
    assert cuisines == {"Goan": 2, "Seafood": 2, "Continental": 1, "Bakery": 1}
    total = await store.count_by_filter(spec)
    assert sum(cuisines.values()) > total
    assert [b.value for b in result.facets["cuisines"]][:2] == ["Goan", "Seafood"]


async def test_facets_follow_the_filter(store) -> None:
    spec = compile_filters({"city": "Mapusa"}, CATALOG["restaurant"])
    result = await FacetAggregator(store).facets(spec, ["cuisines"])
    assert {b.value for b in result.facets["cuisines"]} == {"Continental", "Bakery"}
    assert (result.price_range.min, result.price_range.max) == (700, 700)


async def test_price_range_over_population(store) -> None:
    result = await FacetAggregator(store).facets(FilterSpec(kind="restaurant"), [])
    assert (result.price_range.min, result.price_range.max) == (700, 1400)


async def test_empty_population_has_zero_price_range(store) -> None:
    result = await FacetAggregator(store).facets(FilterSpec(kind="restaurant", exact={"city": "Atlantis"}), ["cuisines"])
    assert result.facets == {"cuisines": []}
    assert (result.price_range.min, result.price_range.max) == (0, 0)


async def test_top_n_truncation() -> None:
    store = InMemoryEntityStore([
        build_entity(id=f"e{i}", attributes={"tags": [f"tag{i:02d}"] + (["common"] if i % 2 else [])})
        for i in range(40)
    ])
    result = await FacetAggregator(store, top_n=25).facets(FilterSpec(), ["tags"])
    buckets = result.facets["tags"]
    assert len(buckets) == 25
    assert buckets[0].value == "common"
    assert buckets[0].count == 20


def test_top_buckets_orders_ties_by_value() -> None:
    buckets = top_buckets([("b", 2), ("a", 2), ("c", 5)], top_n=2)
    assert [(b.value, b.count) for b in buckets] == [("c", 5), ("a", 2)]


async def test_one_failing_sub_aggregation_fails_everything() -> None:
    store = AsyncMock()
    store.group_count = AsyncMock(side_effect=[[("Goan", 3)], StoreUnavailable("replica down")])
    store.numeric_range = AsyncMock(return_value=(1.0, 2.0))
    with pytest.raises(StoreUnavailable):
        await FacetAggregator(store).facets(FilterSpec(), ["cuisines", "dietary"])


async def test_failure_cancels_pending_sub_aggregations() -> None:
    started = asyncio.Event()
    cancelled = []

    async def group_count(spec, field):
        if field == "dietary":
            await started.wait()
            raise StoreUnavailable("replica down")
        started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.append(field)
            raise

    store = AsyncMock()
    store.group_count = AsyncMock(side_effect=group_count)
    store.numeric_range = AsyncMock(return_value=(1.0, 2.0))
    with pytest.raises(StoreUnavailable):
        await FacetAggregator(store).facets(FilterSpec(), ["cuisines", "dietary"])
    assert cancelled == ["cuisines"]
