"""Evaluation-driven price corridors and saved analysis sessions."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from realty_corridor.db.store import CatalogStore, Collection
from realty_corridor.errors import InvalidArgumentError, NotFoundError, OperationResult
from realty_corridor.models.catalog import ObjectStatus, RealEstateObject
from realty_corridor.models.evaluation import (
    EXCLUDED_EVALUATIONS,
    AnalysisSession,
    Confidence,
    Corridor,
    Corridors,
    EvaluationKind,
    EvaluationRecord,
)
from realty_corridor.services.price_history import as_utc, get_price_at_date
from realty_corridor.services.recompute import RecomputeScheduler

logger = logging.getLogger(__name__)

# One debounced recompute per analysis session, shared by concurrent callers.
_RECOMPUTES: dict[str, RecomputeScheduler[OperationResult[CorridorEngine]]] = {}


@dataclass(frozen=True, slots=True)
class ConfidenceTier:
    min_valid: int
    level: int
    message: str
    recommendation: str


# Ordered from the highest threshold down.
CONFIDENCE_TIERS: tuple[ConfidenceTier, ...] = (
    ConfidenceTier(9, 95, "Very high confidence", "The corridor is well supported."),
    ConfidenceTier(6, 80, "High confidence", "Add a few more comparisons to confirm."),
    ConfidenceTier(3, 60, "Medium confidence", "Evaluate more competitors to narrow the range."),
    ConfidenceTier(1, 25, "Low confidence", "At least 3 valid evaluations are recommended."),
    ConfidenceTier(0, 0, "No data", "Evaluate competitors to build a corridor."),
)


def confidence_for(valid: int) -> Confidence:
    for tier in CONFIDENCE_TIERS:
        if valid >= tier.min_valid:
            return Confidence(
                level=tier.level,
                message=tier.message,
                recommendation=tier.recommendation,
                valid_evaluations=valid,
            )
    raise ValueError("valid evaluation count cannot be negative")


def _ordered(corridor: Corridor) -> Corridor:
    if corridor.min is not None and corridor.max is not None and corridor.min > corridor.max:
        return Corridor()
    return corridor


def _parse_kind(kind: EvaluationKind | str) -> EvaluationKind:
    try:
        return EvaluationKind(kind)
    except ValueError as exc:
        raise InvalidArgumentError(f"Unsupported evaluation kind: {kind}") from exc


class CorridorEngine:
    """Corridor state for one analysis session (one subject property).

    ``better`` competitors cap the subject's price from above and ``worse``
    ones raise its floor. ``equal`` is informational. With ``as_of`` set,
    object prices are read from their price history at that date.
    """

    def __init__(
        self,
        objects: Iterable[RealEstateObject] = (),
        *,
        as_of: datetime | None = None,
    ) -> None:
        self._objects: dict[str, RealEstateObject] = {obj.id: obj for obj in objects}
        self._evaluations: dict[str, EvaluationKind] = {}
        self.as_of = as_of

    @property
    def evaluations(self) -> dict[str, EvaluationKind]:
        return dict(self._evaluations)

    def set_objects(self, objects: Iterable[RealEstateObject]) -> None:
        self._objects = {obj.id: obj for obj in objects}

    def evaluate(
        self, object_id: str, kind: EvaluationKind | str
    ) -> OperationResult[EvaluationKind]:
        try:
            parsed = _parse_kind(kind)
        except InvalidArgumentError as exc:
            return OperationResult.failure(exc)
        if self._objects and object_id not in self._objects:
            return OperationResult.failure(
                NotFoundError("object not found", item_id=object_id)
            )
        self._evaluations[object_id] = parsed
        return OperationResult.success(parsed)

    def clear_evaluation(self, object_id: str) -> bool:
        return self._evaluations.pop(object_id, None) is not None

    def reset(self) -> None:
        self._evaluations.clear()

    def _price(self, obj: RealEstateObject) -> int | None:
        if self.as_of is not None:
            return get_price_at_date(obj, self.as_of)
        return obj.current_price

    def _priced(self) -> Iterable[tuple[RealEstateObject, EvaluationKind, int]]:
        for object_id, kind in self._evaluations.items():
            obj = self._objects.get(object_id)
            if obj is None:
                continue
            price = self._price(obj)
            if price is None or price <= 0:
                continue
            yield obj, kind, price

    def calculate_corridor_bounds(self, status: ObjectStatus) -> Corridor:
        """Bounds from evaluated objects in ``status``; an empty bucket has no bounds."""

        low: int | None = None
        high: int | None = None
        for obj, kind, price in self._priced():
            if obj.status != status or kind in EXCLUDED_EVALUATIONS:
                continue
            if kind == EvaluationKind.BETTER:
                high = price if high is None else min(high, price)
            elif kind == EvaluationKind.WORSE:
                low = price if low is None else max(low, price)
        return _ordered(Corridor(min=low, max=high))

    def calculate_optimal_range(
        self, active: Corridor | None = None, archive: Corridor | None = None
    ) -> Corridor:
        """Intersect the active and archive corridors.

        A missing bound on one side places no constraint; non-overlapping
        ranges collapse to an empty corridor.
        """

        active = active or self.calculate_corridor_bounds(ObjectStatus.ACTIVE)
        archive = archive or self.calculate_corridor_bounds(ObjectStatus.ARCHIVE)
        mins = [value for value in (active.min, archive.min) if value is not None]
        maxs = [value for value in (active.max, archive.max) if value is not None]
        return _ordered(
            Corridor(min=max(mins) if mins else None, max=min(maxs) if maxs else None)
        )

    def calculate_confidence_level(self) -> Confidence:
        valid = sum(
            1 for kind in self._evaluations.values() if kind not in EXCLUDED_EVALUATIONS
        )
        return confidence_for(valid)

    def auto_detect_overpriced_objects(self) -> bool:
        """Reclassify ``worse`` competitors priced above a ``better`` one.

        A ``worse`` object is marked ``not-sold`` when it costs more than some
        ``better`` object and its ``updated`` date falls inside that object's
        ``[created, updated]`` window. Returns whether anything changed.
        """

        references = [
            (obj, price, as_utc(obj.created), as_utc(obj.updated))
            for obj, kind, price in self._priced()
            if kind == EvaluationKind.BETTER
            and obj.created is not None
            and obj.updated is not None
        ]
        if not references:
            return False

        changed = False
        for obj, kind, price in list(self._priced()):
            if kind != EvaluationKind.WORSE or obj.updated is None:
                continue
            seen_at = as_utc(obj.updated)
            for better, better_price, window_start, window_end in references:
                if price > better_price and window_start <= seen_at <= window_end:
                    self._evaluations[obj.id] = EvaluationKind.NOT_SOLD
                    changed = True
                    logger.info(
                        "Object %s reclassified as overpriced against %s",
                        obj.id,
                        better.id,
                    )
                    break
        return changed

    def get_corridors(self) -> Corridors:
        active = self.calculate_corridor_bounds(ObjectStatus.ACTIVE)
        archive = self.calculate_corridor_bounds(ObjectStatus.ARCHIVE)
        return Corridors(
            active=active,
            archive=archive,
            optimal=self.calculate_optimal_range(active, archive),
        )

    def get_confidence(self) -> Confidence:
        return self.calculate_confidence_level()

    def to_records(self) -> list[EvaluationRecord]:
        return [
            EvaluationRecord(object_id=object_id, evaluation=kind)
            for object_id, kind in self._evaluations.items()
        ]

    def restore(self, records: Sequence[EvaluationRecord]) -> None:
        """Replace evaluations with persisted records, keeping their order."""

        restored: dict[str, EvaluationKind] = {}
        for record in records:
            restored[record.object_id] = _parse_kind(record.evaluation)
        self._evaluations = restored


class AnalysisSessionService:
    """Save, load and delete analysis sessions through the record store."""

    def __init__(self, store: CatalogStore) -> None:
        self._store = store

    async def list_sessions(self) -> list[AnalysisSession]:
        return await self._store.get_all(Collection.ANALYSIS_SESSIONS)

    async def create(self, name: str) -> OperationResult[AnalysisSession]:
        if not name or not name.strip():
            return OperationResult.failure(InvalidArgumentError("session name is required"))
        session = await self._store.add(
            Collection.ANALYSIS_SESSIONS, AnalysisSession(id="", name=name.strip())
        )
        return OperationResult.success(session)

    async def load(self, session_id: str) -> OperationResult[AnalysisSession]:
        session = await self._store.get(Collection.ANALYSIS_SESSIONS, session_id)
        if session is None:
            return OperationResult.failure(
                NotFoundError("analysis session not found", item_id=session_id)
            )
        return OperationResult.success(session)

    async def open_engine(
        self, session_id: str, *, as_of: datetime | None = None
    ) -> OperationResult[CorridorEngine]:
        """Build an engine over the current objects with the session's evaluations."""

        loaded = await self.load(session_id)
        if loaded.error is not None:
            return OperationResult.failure(loaded.error)
        session = loaded.unwrap()
        engine = CorridorEngine(
            await self._store.get_all(Collection.OBJECTS), as_of=as_of
        )
        engine.restore(session.evaluations)
        return OperationResult.success(engine)

    async def save(
        self, session_id: str, engine: CorridorEngine
    ) -> OperationResult[AnalysisSession]:
        loaded = await self.load(session_id)
        if not loaded.ok:
            return loaded
        session = loaded.unwrap()
        session.evaluations = engine.to_records()
        session.corridors = engine.get_corridors()
        saved = await self._store.update(Collection.ANALYSIS_SESSIONS, session)
        return OperationResult.success(saved)

    async def delete(self, session_id: str) -> OperationResult[str]:
        if not await self._store.delete(Collection.ANALYSIS_SESSIONS, session_id):
            return OperationResult.failure(
                NotFoundError("analysis session not found", item_id=session_id)
            )
        return OperationResult.success(session_id)

    async def record_evaluation(
        self, session_id: str, object_id: str, kind: EvaluationKind | str
    ) -> OperationResult[AnalysisSession]:
        opened = await self.open_engine(session_id)
        if opened.error is not None:
            return OperationResult.failure(opened.error)
        engine = opened.unwrap()
        evaluated = engine.evaluate(object_id, kind)
        if evaluated.error is not None:
            return OperationResult.failure(evaluated.error)
        return await self.save(session_id, engine)

    async def recompute(self, session_id: str) -> OperationResult[CorridorEngine]:
        """Re-run the overpriced check and store fresh corridors for a session."""

        opened = await self.open_engine(session_id)
        if opened.error is not None:
            return opened
        engine = opened.unwrap()
        engine.auto_detect_overpriced_objects()
        saved = await self.save(session_id, engine)
        if saved.error is not None:
            return OperationResult.failure(saved.error)
        return OperationResult.success(engine)

    async def schedule_recompute(
        self, session_id: str
    ) -> OperationResult[CorridorEngine]:
        """Debounced ``recompute``: a burst of calls for one session runs once.

        Every caller gets the result of the latest run.
        """

        scheduler = _RECOMPUTES.get(session_id)
        if scheduler is None:
            scheduler = RecomputeScheduler(lambda: self.recompute(session_id))
            _RECOMPUTES[session_id] = scheduler
        scheduler.request(lambda: self.recompute(session_id))
        try:
            result = await scheduler.flush()
        finally:
            if _RECOMPUTES.get(session_id) is scheduler and not scheduler.pending:
                del _RECOMPUTES[session_id]
        if result is None:
            return await self.recompute(session_id)
        return result
