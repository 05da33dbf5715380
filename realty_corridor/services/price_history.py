"""Price-at-date resolution over object price histories."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from realty_corridor.models.catalog import PriceHistoryEntry, RealEstateObject


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so mixed inputs stay comparable."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def sorted_history(obj: RealEstateObject) -> list[PriceHistoryEntry]:
    # Stored histories are expected sorted; re-sort anyway, stable on equal dates.
    return sorted(obj.price_history, key=lambda entry: as_utc(entry.date))


def price_per_meter(price: int | None, area_total: float | None) -> int | None:
    if price is None or price <= 0 or area_total is None or area_total <= 0:
        return None
    return round(price / area_total)


def get_price_at_date(obj: RealEstateObject, at: datetime) -> int | None:
    """Return the object's price as of ``at``.

    The latest observation at or before ``at`` wins; a date before every
    observation gets the earliest price, and an empty history falls back to
    ``current_price``. No interpolation.
    """

    history = sorted_history(obj)
    if not history:
        return obj.current_price

    moment = as_utc(at)
    found: PriceHistoryEntry | None = None
    for entry in history:
        if as_utc(entry.date) <= moment:
            found = entry
        else:
            break
    return (found or history[0]).price


def get_price_per_meter_at_date(obj: RealEstateObject, at: datetime) -> int:
    per_meter = price_per_meter(get_price_at_date(obj, at), obj.area_total)
    if per_meter is not None:
        return per_meter

    moment = as_utc(at)
    stored: int | None = None
    for entry in sorted_history(obj):
        if as_utc(entry.date) > moment:
            break
        if entry.price_per_meter is not None:
            stored = entry.price_per_meter
    if stored is not None:
        return stored
    return obj.price_per_meter or 0


def price_series(
    obj: RealEstateObject, dates: Iterable[datetime]
) -> list[tuple[datetime, int | None]]:
    """Sample the price at each date, e.g. for chart time slices."""

    return [(at, get_price_at_date(obj, at)) for at in dates]


def append_price_observation(
    obj: RealEstateObject,
    price: int,
    observed_at: datetime,
    *,
    listing_id: str | None = None,
) -> bool:
    """Record a new observed price; returns False when the price is unchanged.

    Raises ``ValueError`` for a non-positive price or an observation older than
    the last history entry.
    """

    if price <= 0:
        raise ValueError("price must be positive")

    moment = as_utc(observed_at)
    history = obj.price_history
    if history:
        last = history[-1]
        if moment < as_utc(last.date):
            raise ValueError("price observation is older than the last history entry")
        if last.price == price:
            return False

    history.append(
        PriceHistoryEntry(
            date=moment,
            price=price,
            listing_id=listing_id,
            price_per_meter=price_per_meter(price, obj.area_total),
        )
    )
    obj.current_price = price
    obj.price_per_meter = price_per_meter(price, obj.area_total)
    if obj.updated is None or as_utc(obj.updated) < moment:
        obj.updated = moment
    return True
