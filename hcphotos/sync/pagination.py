"""Offset pagination driven by sentinel visibility."""
from dataclasses import dataclass


@dataclass
class PaginationCursor:
    page_size: int = 20
    threshold: float = 0.1
    has_more: bool = False
    in_flight: bool = False

    @property
    def sentinel_observed(self) -> bool:
        return self.has_more

    def should_load(self, intersection_ratio: float) -> bool:
        return self.has_more and not self.in_flight and intersection_ratio > self.threshold

    def next_offset(self, current_count: int) -> int:
        return current_count
