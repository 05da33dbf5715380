"""Weighted multi-signal duplicate detection with connected-component clustering."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Final

from realty_corridor.detectors.base import BaseDuplicateDetector
from realty_corridor.detectors.similarity import extract_contacts, text_similarity
from realty_corridor.geo.polygon import haversine_m, listing_coordinates
from realty_corridor.models.catalog import Listing

logger = logging.getLogger(__name__)

RARE_AMENITIES: Final = {
    "сауна": "sauna",
    "хамам": "hamam",
    "джакузи": "jacuzzi",
    "камин": "fireplace",
    "терраса": "terrace",
    "винный погреб": "wine_cellar",
    "домашний кинотеатр": "home_theater",
    "спортзал": "gym",
    "мастерская": "workshop",
    "кабинет": "office",
}
LAYOUT_FEATURES: Final = {
    "объединена из": "merged_apartments",
    "двухуровневая": "duplex",
    "пентхаус": "penthouse",
    "студия": "studio",
    "свободная планировка": "free_layout",
    "европланировка": "euro_layout",
    "изолированные комнаты": "isolated_rooms",
    "проходные комнаты": "connected_rooms",
}
LEGAL_FEATURES: Final = {
    "материнский капитал": "maternity_capital",
    "ипотека": "mortgage",
    "рассрочка": "installment",
    "обременение": "encumbrance",
    "доля": "share",
    "альтернатива": "alternative_sale",
    "более 5 лет": "longterm_ownership",
    "менее 3 лет": "shortterm_ownership",
}
FEATURE_GROUPS: Final = (
    (RARE_AMENITIES, 0.8),
    (LAYOUT_FEATURES, 0.6),
    (LEGAL_FEATURES, 0.4),
)
SAUNA_HAMAM_WEIGHT: Final = 1.2
MANY_BATHROOMS_WEIGHT: Final = 0.7
MANY_BALCONIES_WEIGHT: Final = 0.6
MAX_FEATURE_SCORE: Final = 5.0

_BATHROOMS = re.compile(r"(\d+)\s*(?:санузл|туалет|ванн)", re.IGNORECASE)
_BALCONIES = re.compile(r"(\d+)\s*(?:лоджи|балкон)", re.IGNORECASE)

AGENCY_PATTERNS: Final = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (r"estate", r"недвижимость", r"риэлт", r"агент", r"брокер", r"консультант")
)

WEIGHTS: Final = {
    "features": 0.35,
    "specifications": 0.25,
    "semantic": 0.20,
    "seller": 0.10,
    "price": 0.05,
    "location": 0.05,
}
CLUSTER_THRESHOLD: Final = 0.70
SAME_SPOT_M: Final = 50.0
LOCATION_FALLOFF_M: Final = 500.0


@dataclass(slots=True)
class FeatureSet:
    features: dict[str, float] = field(default_factory=dict)
    score: float = 0.0


def extract_features(description: str | None) -> FeatureSet:
    """Rare amenities, layout and legal keywords plus bathroom/balcony counts."""

    if not description:
        return FeatureSet()

    text = description.lower()
    found: dict[str, float] = {}
    for dictionary, weight in FEATURE_GROUPS:
        for keyword, feature in dictionary.items():
            if keyword in text:
                found[feature] = weight
    if "сауна" in text and "хамам" in text:
        found["sauna_hamam"] = SAUNA_HAMAM_WEIGHT

    bathrooms = max((int(n) for n in _BATHROOMS.findall(text)), default=0)
    balconies = max((int(n) for n in _BALCONIES.findall(text)), default=0)
    if bathrooms >= 3:
        found["multiple_bathrooms"] = MANY_BATHROOMS_WEIGHT
    if balconies >= 3:
        found["multiple_balconies"] = MANY_BALCONIES_WEIGHT

    return FeatureSet(features=found, score=min(sum(found.values()), MAX_FEATURE_SCORE))


def feature_similarity(first: FeatureSet, second: FeatureSet) -> float:
    top = max(first.score, second.score)
    if top <= 0:
        return 0.0
    common = sum(
        max(weight, second.features[name])
        for name, weight in first.features.items()
        if name in second.features
    )
    return common / top


@dataclass(slots=True)
class SpecificationMatch:
    similarity: float
    exact_match: bool


def compare_specifications(first: Listing, second: Listing) -> SpecificationMatch:
    """Weighted agreement of area, floor, rooms, type, material and house height."""

    matched = 0.0
    exact = True

    if first.area_total and second.area_total:
        diff = abs(first.area_total - second.area_total)
        if diff <= 5:
            matched += 0.3 * max(0.0, 1 - diff / 5)
        exact = exact and diff == 0
    else:
        exact = False

    if first.floor is not None and second.floor is not None:
        if first.floor == second.floor:
            matched += 0.2
        else:
            exact = False
    else:
        exact = False

    if first.rooms is not None and second.rooms is not None:
        if abs(first.rooms - second.rooms) <= 1:
            matched += 0.2
        exact = exact and first.rooms == second.rooms
    else:
        exact = False

    if first.property_type and second.property_type:
        if first.property_type == second.property_type:
            matched += 0.15
        else:
            exact = False
    else:
        exact = False

    if first.house_type and second.house_type:
        if first.house_type.strip().lower() == second.house_type.strip().lower():
            matched += 0.1

    if first.floors_total and first.floors_total == second.floors_total:
        matched += 0.05

    # Component weights sum to 1.0.
    return SpecificationMatch(similarity=matched, exact_match=exact)


def _normalize_name(name: str | None) -> str:
    return re.sub(r"[^\w\s]", "", (name or "").lower()).strip()


def agency_name(seller_name: str | None) -> str | None:
    if not seller_name:
        return None
    name = seller_name.lower()

    bracketed = re.search(r"\(([^)]+)\)", name)
    if bracketed and any(p.search(bracketed.group(1)) for p in AGENCY_PATTERNS):
        return bracketed.group(1).strip()

    for pattern in AGENCY_PATTERNS:
        if pattern.search(name):
            words = [w for w in name.split() if pattern.search(w) or len(w) > 4]
            return " ".join(words[:3])
    return None


@dataclass(slots=True)
class SellerRelation:
    confidence: float
    reason: str


def seller_relation(first: Listing, second: Listing) -> SellerRelation:
    name1, name2 = _normalize_name(first.seller_name), _normalize_name(second.seller_name)
    if name1 and name1 == name2:
        return SellerRelation(confidence=1.0, reason="same_seller")

    relation = SellerRelation(confidence=0.0, reason="no_relation")
    types = {first.seller_type, second.seller_type}
    if types == {"agent", "owner"}:
        relation = SellerRelation(confidence=0.7, reason="agent_owner_pair")
    elif first.seller_type == "agent" and second.seller_type == "agent":
        agency1, agency2 = agency_name(first.seller_name), agency_name(second.seller_name)
        if agency1 and agency1 == agency2:
            relation = SellerRelation(confidence=0.8, reason="same_agency")
        elif first.seller_name and second.seller_name:
            relation = SellerRelation(confidence=0.5, reason="different_agents")

    contacts1, contacts2 = extract_contacts(first), extract_contacts(second)
    if contacts1.phones & contacts2.phones:
        return SellerRelation(confidence=max(relation.confidence, 0.9), reason="same_phone")
    if contacts1.emails & contacts2.emails:
        return SellerRelation(confidence=max(relation.confidence, 0.8), reason="same_email")
    return relation


def price_proximity(first: Listing, second: Listing) -> float:
    if not first.price or not second.price or first.price <= 0 or second.price <= 0:
        return 0.0
    return 1 - abs(first.price - second.price) / max(first.price, second.price)


def location_similarity(first: Listing, second: Listing) -> float:
    point1, point2 = listing_coordinates(first), listing_coordinates(second)
    if point1 is None or point2 is None:
        return 0.0
    distance = haversine_m(point1, point2)
    if distance <= SAME_SPOT_M:
        return 1.0
    return max(0.0, 1 - distance / LOCATION_FALLOFF_M)


def advanced_score(first: Listing, second: Listing) -> float:
    features = feature_similarity(
        extract_features(first.description), extract_features(second.description)
    )
    specifications = compare_specifications(first, second)
    seller = seller_relation(first, second)

    score = (
        features * WEIGHTS["features"]
        + specifications.similarity * WEIGHTS["specifications"]
        + text_similarity(first.description, second.description).combined
        * WEIGHTS["semantic"]
        + seller.confidence * WEIGHTS["seller"]
        + price_proximity(first, second) * WEIGHTS["price"]
        + location_similarity(first, second) * WEIGHTS["location"]
    )
    if features >= 0.8:
        score += 0.1
    if specifications.exact_match:
        score += 0.05
    if seller.reason == "same_seller":
        score += 0.05
    return min(score, 1.0)


class AdvancedDuplicateDetector(BaseDuplicateDetector):
    """Connected components over listing pairs scoring at least 0.70.

    Every component, singletons included, becomes one object.
    """

    strategy = "advanced"

    async def cluster(self, listings: list[Listing]) -> list[list[Listing]]:
        size = len(listings)
        neighbours: list[set[int]] = [set() for _ in range(size)]
        for i in range(size):
            await asyncio.sleep(0)
            for j in range(i + 1, size):
                if advanced_score(listings[i], listings[j]) >= CLUSTER_THRESHOLD:
                    neighbours[i].add(j)
                    neighbours[j].add(i)

        seen: set[int] = set()
        clusters: list[list[Listing]] = []
        for start in range(size):
            if start in seen:
                continue
            component: list[Listing] = []
            stack = [start]
            while stack:
                current = stack.pop()
                if current in seen:
                    continue
                seen.add(current)
                component.append(listings[current])
                stack.extend(neighbours[current] - seen)
            clusters.append(component)

        logger.debug("Advanced clustering: %s listings -> %s clusters", size, len(clusters))
        return clusters
