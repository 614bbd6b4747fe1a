# GeoJSON Projector: entities -> RFC 7946 FeatureCollections for map overlays.

from typing import Iterable, List, Optional, Union

from geosearch.models.dto import (
    Feature,
    FeatureCollection,
    FeatureProperties,
    LineString,
    Point,
    SearchableEntity,
    SearchHit,
)
from geosearch.services.geometry import is_valid_path, is_valid_point

GEOJSON_MEDIA_TYPE = "application/geo+json"


def feature_properties(entity: SearchableEntity, role: str = "location", distance_km: Optional[float] = None) -> FeatureProperties:
    """The documented property subset; never the full record."""
    return FeatureProperties(
        id=entity.id,
        kind=entity.kind,
        name=entity.name,
        role=role,
        category=entity.category,
        city=entity.city,
        country=entity.country,
        rating=entity.rating if entity.review_count else None,
        review_count=entity.review_count,
        price=entity.price,
        currency=entity.currency if entity.price is not None else None,
        distance_km=distance_km,
    )


def entity_features(entity: SearchableEntity, distance_km: Optional[float] = None) -> List[Feature]:
    """One Point feature for a valid location, one LineString feature for a valid path."""
    features: List[Feature] = []
    if entity.location is not None and is_valid_point(entity.location.coordinates):
        features.append(Feature(
            geometry=Point(coordinates=list(entity.location.coordinates)),
            properties=feature_properties(entity, "location", distance_km),
        ))
    if entity.path is not None and is_valid_path(entity.path.coordinates):
        features.append(Feature(
            geometry=LineString(coordinates=[list(c) for c in entity.path.coordinates]),
            properties=feature_properties(entity, "path", distance_km),
        ))
    return features


def project(items: Iterable[Union[SearchableEntity, SearchHit]]) -> FeatureCollection:
    """Project entities (or search hits) into a FeatureCollection.

    Entities without valid geometry are left out silently.
    """
    features: List[Feature] = []
    for item in items:
        if isinstance(item, SearchHit):
            features.extend(entity_features(item.entity, item.distance_km))
        else:
            features.extend(entity_features(item))
    return FeatureCollection(features=features)


def project_route(entity: SearchableEntity) -> FeatureCollection:
    """A route overlay: the path as a LineString followed by each stop, in sequence order."""
    features: List[Feature] = []
    if entity.path is not None and is_valid_path(entity.path.coordinates):
        features.append(Feature(
            geometry=LineString(coordinates=[list(c) for c in entity.path.coordinates]),
            properties=feature_properties(entity, "path"),
        ))
    for stop in sorted(entity.stops, key=lambda s: s.seq):
        if stop.location is None or not is_valid_point(stop.location.coordinates):
            continue
        props = feature_properties(entity, "stop").model_copy(update={"name": stop.name, "seq": stop.seq})
        features.append(Feature(geometry=Point(coordinates=list(stop.location.coordinates)), properties=props))
    return FeatureCollection(features=features)
