"""Pluggable duplicate detection strategies."""

from realty_corridor.detectors.address import AddressMatcher, AddressSuggestion
from realty_corridor.detectors.advanced import AdvancedDuplicateDetector
from realty_corridor.detectors.base import BaseDuplicateDetector, DetectionResult
from realty_corridor.detectors.basic import BasicDuplicateDetector
from realty_corridor.errors import InvalidArgumentError

DETECTORS: dict[str, type[BaseDuplicateDetector]] = {
    BasicDuplicateDetector.strategy: BasicDuplicateDetector,
    AdvancedDuplicateDetector.strategy: AdvancedDuplicateDetector,
}


def get_detector(
    strategy: str, address_matcher: AddressMatcher | None = None
) -> BaseDuplicateDetector:
    """Instantiate the detector registered under ``strategy``."""

    detector_cls = DETECTORS.get((strategy or "").strip().lower())
    if detector_cls is None:
        raise InvalidArgumentError(
            f"Unknown detector strategy: {strategy}. "
            f"Valid values are: {', '.join(DETECTORS)}"
        )
    return detector_cls(address_matcher)


__all__ = [
    "AddressMatcher",
    "AddressSuggestion",
    "AdvancedDuplicateDetector",
    "BaseDuplicateDetector",
    "BasicDuplicateDetector",
    "DETECTORS",
    "DetectionResult",
    "get_detector",
]
