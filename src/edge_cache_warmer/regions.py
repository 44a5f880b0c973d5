"""Static region catalog used for rotation and edge-location verification."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Final

SUPPORTED_LOCATION_HINTS: Final[frozenset[str]] = frozenset(
    {"wnam", "enam", "sam", "weur", "eeur", "apac", "oc", "afr", "me"}
)

DEFAULT_REGION_ORDER: Final[tuple[str, ...]] = (
    "Western North America",
    "Eastern North America",
    "South America",
    "Western Europe",
    "Eastern Europe",
    "Middle East",
    "Africa",
    "Asia-Pacific",
    "Oceania",
)

DEFAULT_LOCATION_HINTS: Final[dict[str, str]] = {
    "Western North America": "wnam",
    "Eastern North America": "enam",
    "South America": "sam",
    "Western Europe": "weur",
    "Eastern Europe": "eeur",
    "Middle East": "me",
    "Africa": "afr",
    "Asia-Pacific": "apac",
    "Oceania": "oc",
}

DEFAULT_REPRESENTATIVE_CODES: Final[dict[str, str]] = {
    "Western North America": "SFO",
    "Eastern North America": "IAD",
    "South America": "GRU",
    "Western Europe": "AMS",
    "Eastern Europe": "WAW",
    "Middle East": "DXB",
    "Africa": "JNB",
    "Asia-Pacific": "SIN",
    "Oceania": "SYD",
}

# Best-effort, not exhaustive.
# fmt: off
DEFAULT_ACCEPTABLE_CODES: Final[dict[str, list[str]]] = {
    "Western North America": [
        "SFO", "LAX", "SEA", "SJC", "DEN", "PHX", "LAS", "YVR", "YYC", "SLC", "PDX",
    ],
    "Eastern North America": [
        "IAD", "JFK", "EWR", "YYZ", "YUL", "ATL", "MIA", "BOS", "ORD", "DFW", "CLT",
        "DTW",
    ],
    "South America": ["GRU", "GIG", "EZE", "SCL", "LIM", "BOG", "UIO", "MVD"],
    "Western Europe": [
        "AMS", "LHR", "FRA", "CDG", "MAD", "BRU", "DUS", "HAM", "CPH", "BCN", "ZRH",
    ],
    "Eastern Europe": [
        "WAW", "PRG", "BUD", "OTP", "VIE", "RIX", "VNO", "TLL", "BEG", "SOF",
    ],
    "Middle East": ["DXB", "DOH", "BAH", "KWI", "AMM", "MCT", "RUH", "JED"],
    "Africa": ["JNB", "CPT", "NBO", "CAI", "CMN", "LOS", "ACC", "DAR", "TUN"],
    "Asia-Pacific": [
        "SIN", "HKG", "KUL", "BKK", "NRT", "KIX", "ICN", "TPE", "MNL", "CGK",
    ],
    "Oceania": ["SYD", "MEL", "BNE", "AKL", "PER", "ADL", "CBR"],
}
# fmt: on


@dataclass(slots=True, frozen=True)
class Region:
    """A geographic rotation unit and the edge codes expected when warming it."""

    label: str
    placement_hint: str | None
    representative_code: str
    acceptable_codes: frozenset[str]

    def is_exact_match(self, observed_code: str | None) -> bool:
        return observed_code is not None and observed_code == self.representative_code

    def is_regional_match(self, observed_code: str | None) -> bool:
        return observed_code is not None and observed_code in self.acceptable_codes


class RegionCatalog:
    """Ordered, read-only set of configured regions."""

    def __init__(self, regions: Sequence[Region]) -> None:
        self._regions: dict[str, Region] = {}
        for region in regions:
            if region.label in self._regions:
                raise ValueError(f"Duplicate region label {region.label!r}")
            self._regions[region.label] = region

    @classmethod
    def from_mappings(
        cls,
        *,
        order: Sequence[str],
        location_hints: Mapping[str, str],
        representative_codes: Mapping[str, str],
        acceptable_codes: Mapping[str, Sequence[str]],
    ) -> RegionCatalog:
        # An empty order falls back to the representative-code mapping's order.
        labels = list(order) if order else list(representative_codes)
        return cls(
            [
                Region(
                    label=label,
                    placement_hint=location_hints.get(label),
                    representative_code=representative_codes.get(label, "UNKNOWN"),
                    acceptable_codes=frozenset(acceptable_codes.get(label, ())),
                )
                for label in labels
            ]
        )

    @property
    def labels(self) -> list[str]:
        return list(self._regions)

    def get(self, label: str) -> Region | None:
        return self._regions.get(label)

    def require(self, label: str) -> Region:
        region = self._regions.get(label)
        if region is None:
            raise LookupError(f"Region {label!r} is not configured")
        return region

    def __contains__(self, label: object) -> bool:
        return label in self._regions

    def __iter__(self) -> Iterator[Region]:
        return iter(self._regions.values())

    def __len__(self) -> int:
        return len(self._regions)


__all__ = [
    "DEFAULT_ACCEPTABLE_CODES",
    "DEFAULT_LOCATION_HINTS",
    "DEFAULT_REGION_ORDER",
    "DEFAULT_REPRESENTATIVE_CODES",
    "Region",
    "RegionCatalog",
    "SUPPORTED_LOCATION_HINTS",
]
