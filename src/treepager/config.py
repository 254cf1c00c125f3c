"""Configuration constants and tunables for treepager."""

import os
from dataclasses import dataclass
from pathlib import Path

# Chunk loader defaults.
DEFAULT_CHUNK_SIZE: int = 100
INITIAL_LOAD_SIZE: int = 50
LOAD_AHEAD_FACTOR: float = 2.0
UNLOAD_THRESHOLD: float = 5.0
MAX_LOADED_ITEMS: int = 500
DEBOUNCE_DELAY: float = 0.1
CHUNK_CACHE_SIZE: int = 10
LATENCY_WINDOW: int = 10

# Search gating.
SEARCH_MIN_CHARACTERS: int = 6
SEARCH_MIN_CHARACTERS_FLOOR: int = 3
SEARCH_MIN_CHARACTERS_CEILING: int = 10
SEARCH_BASE_DEBOUNCE: float = 0.3
SEARCH_DEBOUNCE_PER_MISSING_CHAR: float = 0.2

# Number of raw matches fetched to seed ancestor expansion.
MATCH_PROBE_LIMIT: int = 100

# Background executor idle timeout, in seconds.
WORKER_IDLE_TIMEOUT: float = 30.0

# Directory with the record database. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/treepager").expanduser(),
    Path("~/.treepager").expanduser(),
    Path("/tmp/treepager"),
]

DATABASE_FILENAME: str = "records.db"


def resolve_data_directory() -> Path:
    """Return the data directory, honouring TREEPAGER_DATA_DIR.

    Falls back to the first existing entry of DATA_DIRECTORIES, or the first
    entry when none exists yet.
    """
    env_dir = os.environ.get("TREEPAGER_DATA_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DATA_DIRECTORIES[0]


@dataclass(frozen=True)
class LoaderConfig:
    """Tunables for the chunk loader.

    The load-ahead and unload multipliers are expressed in viewport heights.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    initial_load_size: int = INITIAL_LOAD_SIZE
    load_ahead_factor: float = LOAD_AHEAD_FACTOR
    unload_threshold: float = UNLOAD_THRESHOLD
    max_loaded_items: int = MAX_LOADED_ITEMS
    cache_size: int = CHUNK_CACHE_SIZE
    debounce_delay: float = DEBOUNCE_DELAY
    latency_window: int = LATENCY_WINDOW

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            msg = f"chunk_size must be positive, got {self.chunk_size}"
            raise ValueError(msg)
        if self.max_loaded_items <= 0:
            msg = f"max_loaded_items must be positive, got {self.max_loaded_items}"
            raise ValueError(msg)
        if self.latency_window <= 0:
            msg = f"latency_window must be positive, got {self.latency_window}"
            raise ValueError(msg)
        # Negative multipliers collapse the window to the viewport itself.
        object.__setattr__(self, "initial_load_size", max(0, self.initial_load_size))
        object.__setattr__(self, "load_ahead_factor", max(0.0, self.load_ahead_factor))
        object.__setattr__(self, "unload_threshold", max(0.0, self.unload_threshold))
        object.__setattr__(self, "cache_size", max(0, self.cache_size))
        object.__setattr__(self, "debounce_delay", max(0.0, self.debounce_delay))
