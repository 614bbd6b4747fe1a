"""Pytest configuration and fixtures for geosearch.

The in-memory store is seeded per test from small synthetic records. HTTP tests
use geosearch.main:app through an ASGI transport; the lifespan does not run
there, so the client fixture wires app.state itself.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List

import pytest
from httpx import ASGITransport, AsyncClient

from geosearch.main import app
from geosearch.models.dto import SearchableEntity
from geosearch.services.cache import MemoryResultCache
from geosearch.services.search_service import SearchService
from geosearch.services.store import InMemoryEntityStore

# Kilometers per degree of latitude for R = 6371 km.
KM_PER_DEGREE = 111.19492664455873

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def build_entity(**overrides: Any) -> SearchableEntity:
    data: Dict[str, Any] = {
        "id": "e-1",
        "kind": "restaurant",
        "name": "Test Place",
        "city": "Panaji",
        "country": "India",
        "location": {"type": "Point", "coordinates": [73.8278, 15.4989]},
        "created_at": BASE_TIME,
    }
    data.update(overrides)
    return SearchableEntity.model_validate(data)


@pytest.fixture
def make_entity() -> Callable[..., SearchableEntity]:
    """Factory for SearchableEntity with sensible defaults."""
    return build_entity


@pytest.fixture
def sample_entities() -> List[SearchableEntity]:
    """A small mixed catalogue around Panaji."""
    return [
        build_entity(
            id="r1", name="Viva Panjim", price=900, rating=4.4, review_count=300, popularity=87,
            view_count=5400, bookings_count=410, labels={"priceLevel": "2"},
            attributes={"cuisines": ["Goan", "Seafood"], "dietary": ["vegetarian-options"],
                        "features": ["wifi", "outdoor-seating"]},
            availability=[{"start": BASE_TIME - timedelta(days=30), "end": BASE_TIME + timedelta(days=365)}],
        ),
        build_entity(
            id="r2", name="Ritz Classic", price=1400, rating=4.6, review_count=1200, popularity=95,
            view_count=12000, bookings_count=980, labels={"priceLevel": "3"},
            location={"type": "Point", "coordinates": [73.8267, 15.4960]},
            attributes={"cuisines": ["Seafood"], "features": ["air-conditioning"]},
            created_at=BASE_TIME + timedelta(days=1),
        ),
        build_entity(
            id="r3", name="Cafe Bodega", city="Mapusa", price=700, rating=4.2, review_count=80, popularity=41,
            view_count=1900, bookings_count=52, labels={"priceLevel": "2"},
            location={"type": "Point", "coordinates": [73.8093, 15.5937]},
            attributes={"cuisines": ["Continental", "Bakery"], "dietary": ["vegan", "vegetarian-options"],
                        "features": ["wifi", "outdoor-seating"]},
            created_at=BASE_TIME + timedelta(days=2),
        ),
        build_entity(
            id="r4", name="Old Quarter Kitchen", price=1100, rating=3.9, review_count=40, popularity=12,
            attributes={"cuisines": ["Portuguese"]}, is_active=False,
        ),
        build_entity(
            id="r5", name="Nowhere Diner", location=None, price=None, rating=0.0, popularity=5,
            attributes={"cuisines": ["Goan"]},
        ),
        build_entity(
            id="t1", kind="train", name="Mandovi Express", city="Madgaon",
            location={"type": "Point", "coordinates": [73.9522, 15.2736]},
            path={"type": "LineString", "coordinates": [[72.8356, 18.9402], [73.8059, 15.6050], [73.9522, 15.2736]]},
            stops=[
                {"seq": 2, "name": "Thivim", "location": {"type": "Point", "coordinates": [73.8059, 15.6050]}},
                {"seq": 1, "name": "Mumbai CSMT", "location": {"type": "Point", "coordinates": [72.8356, 18.9402]}},
                {"seq": 3, "name": "Madgaon", "location": {"type": "Point", "coordinates": [73.9522, 15.2736]}},
            ],
            labels={"operator": "Konkan Railway"},
            attributes={"classes": ["SL", "3A"], "amenities": ["pantry", "charging"]},
            price=760, rating=4.1, review_count=2210, popularity=70,
        ),
        build_entity(
            id="h1", kind="history", name="Dinner at Ritz Classic",
            labels={"entityType": "restaurant", "action": "visited"},
            started_at=datetime(2026, 2, 14, 14, 0, tzinfo=timezone.utc),
        ),
        build_entity(
            id="h2", kind="history", name="Cab to airport",
            labels={"entityType": "cab", "action": "booked"},
            started_at=datetime(2026, 3, 2, 6, 30, tzinfo=timezone.utc),
        ),
    ]


@pytest.fixture
def store(sample_entities) -> InMemoryEntityStore:
    return InMemoryEntityStore(sample_entities)


@pytest.fixture
def cache() -> MemoryResultCache:
    return MemoryResultCache(namespace="test")


@pytest.fixture
def service(store, cache) -> SearchService:
    return SearchService(store, cache)


@pytest.fixture
async def client(store, cache, service) -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI)."""
    app.state.store = store
    app.state.cache = cache
    app.state.search_service = service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
