"""Minimum-length gate and length-scaled debounce for search queries."""

from dataclasses import dataclass

from treepager.config import (
    SEARCH_BASE_DEBOUNCE,
    SEARCH_DEBOUNCE_PER_MISSING_CHAR,
    SEARCH_MIN_CHARACTERS,
    SEARCH_MIN_CHARACTERS_CEILING,
    SEARCH_MIN_CHARACTERS_FLOOR,
)


@dataclass(frozen=True)
class SearchPolicy:
    """Decides whether and when a search query should be issued.

    Queries shorter than ``min_characters`` are never issued. Short but valid
    queries wait longer: every character below the default minimum adds
    ``SEARCH_DEBOUNCE_PER_MISSING_CHAR`` seconds to the base debounce.
    """

    min_characters: int = SEARCH_MIN_CHARACTERS
    enable_scaling_delay: bool = True
    base_debounce: float = SEARCH_BASE_DEBOUNCE

    def __post_init__(self) -> None:
        clamped = max(
            SEARCH_MIN_CHARACTERS_FLOOR,
            min(SEARCH_MIN_CHARACTERS_CEILING, self.min_characters),
        )
        object.__setattr__(self, "min_characters", clamped)
        object.__setattr__(self, "base_debounce", max(0.0, self.base_debounce))

    def is_query_valid(self, query: str) -> bool:
        return len(query.strip()) >= self.min_characters

    def search_delay(self, query: str) -> float | None:
        """Seconds to wait before searching, or None if the query is too short."""
        length = len(query.strip())
        if length < self.min_characters:
            return None
        delay = self.base_debounce
        if self.enable_scaling_delay:
            missing = max(0, SEARCH_MIN_CHARACTERS - length)
            delay += missing * SEARCH_DEBOUNCE_PER_MISSING_CHAR
        return delay

    def requirement_message(self, current_length: int) -> str | None:
        if current_length >= self.min_characters:
            return None
        remaining = self.min_characters - current_length
        noun = "character" if remaining == 1 else "characters"
        return f"Enter {remaining} more {noun} to search"
