# Facet Aggregator: grouped counts per category field and the price range,
# computed over exactly the population described by one FilterSpec.

import asyncio
from typing import List, Optional, Sequence, Tuple

import structlog

from geosearch.core.config import settings
from geosearch.models.dto import FacetBucket, FacetResult, PriceRange
from geosearch.models.query import ExecutableQuery, FilterSpec, GroupBy, Match
from geosearch.services.spatial_planner import aggregate
from geosearch.services.store import EntityStore

logger = structlog.get_logger(__name__)


def top_buckets(rows: Sequence[Tuple[str, int]], top_n: int) -> List[FacetBucket]:
    """Order by descending count (value ascending on ties) and keep the first ``top_n``."""
    ordered = sorted(rows, key=lambda r: (-r[1], str(r[0])))
    return [FacetBucket(value=str(v), count=c) for v, c in ordered[:top_n]]


class FacetAggregator:
    """
    Fans out one group-count per facet field plus a price min/max, waits for
    all of them, then assembles a FacetResult.

    Any failing sub-aggregation fails the whole result; a partial facet set
    is never returned.
    """

    def __init__(self, store: EntityStore, top_n: int = settings.FACET_TOP_N, price_field: str = "price"):
        self.store = store
        self.top_n = top_n
        self.price_field = price_field

    async def facets(self, spec: FilterSpec, fields: Sequence[str]) -> FacetResult:
        tasks = [
            asyncio.create_task(aggregate(ExecutableQuery(stages=[Match(filter=spec), GroupBy(field=field)]), self.store))
            for field in fields
        ]
        tasks.append(asyncio.create_task(self.store.numeric_range(spec, self.price_field)))
        try:
            *groups, price = await asyncio.gather(*tasks)
        except Exception as e:
            # gather leaves the siblings running; stop them before reporting.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error("facet_aggregation_failed", fields=list(fields), error=str(e))
            raise

        return FacetResult(
            facets={field: top_buckets(rows, self.top_n) for field, rows in zip(fields, groups)},
            price_range=self._price_range(price),
        )

    @staticmethod
    def _price_range(value: Optional[Tuple[float, float]]) -> PriceRange:
        # An empty population reports {0, 0}, not null.
        if value is None:
            return PriceRange(min=0.0, max=0.0)
        lo, hi = value
        return PriceRange(min=lo, max=hi)
