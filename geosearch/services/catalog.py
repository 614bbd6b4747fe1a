# Per-kind declarations: which option keys are "any-of" vs "all-of" sets,
# which are exact labels, and which fields are summarised as facets.

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class EntityKindSpec(BaseModel):
    name: str
    any_of: List[str] = Field(default_factory=list)
    all_of: List[str] = Field(default_factory=list)
    exact: List[str] = Field(default_factory=list)
    facets: List[str] = Field(default_factory=list)
    text_fields: List[str] = Field(default_factory=lambda: ["name", "city", "country"])
    date_field: Optional[str] = None


RESTAURANT = EntityKindSpec(
    name="restaurant",
    any_of=["cuisines", "tags", "priceLevel"],
    all_of=["dietary", "features"],
    facets=["cuisines", "dietary", "features", "priceLevel"],
    text_fields=["name", "city", "country", "cuisines", "tags"],
)

TRAIN = EntityKindSpec(
    name="train",
    any_of=["classes"],
    all_of=["amenities"],
    exact=["operator"],
    facets=["operator", "classes", "amenities"],
    text_fields=["name", "city", "country", "operator"],
)

CAB = EntityKindSpec(
    name="cab",
    any_of=["vehicleClass"],
    all_of=["features"],
    exact=["provider"],
    facets=["vehicleClass", "provider"],
)

HISTORY = EntityKindSpec(
    name="history",
    any_of=["entityType", "action"],
    facets=["entityType", "action"],
    date_field="started_at",
)

CATALOG: Dict[str, EntityKindSpec] = {spec.name: spec for spec in (RESTAURANT, TRAIN, CAB, HISTORY)}

DEFAULT_KIND = RESTAURANT.name


def get_kind(name: Optional[str]) -> Optional[EntityKindSpec]:
    """Look up a kind, accepting plural route names ("restaurants", "cabs")."""
    if not name:
        return None
    key = name.strip().lower()
    if key in CATALOG:
        return CATALOG[key]
    if key.endswith("s") and key[:-1] in CATALOG:
        return CATALOG[key[:-1]]
    return None
