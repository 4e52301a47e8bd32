from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Tuple
import os


@dataclass
class Settings:
    server_url: str = "http://localhost:3000"
    max_concurrent_requests: int = 5
    # Lowered from the usual near-duplicate range after missed matches on
    # recompressed feed images. Treat as policy, not a calibrated value.
    similarity_threshold: float = 0.5
    debounce_seconds: float = 0.05
    hash_size: int = 16
    resize_to: int = 256
    fetch_timeout: float = 10.0
    store_path: Path = Path("feedmute.db")
    post_tag: str = "article"
    glyph_markers: Tuple[str, ...] = field(default_factory=lambda: ("emoji",))

    def validate(self) -> "Settings":
        """
        Check value ranges.

        Returns:
            The same settings object, for chaining

        Raises:
            ValueError: If any value is out of range
        """
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError(
                f"similarity_threshold must be within [0, 1], got {self.similarity_threshold}"
            )
        if self.max_concurrent_requests < 1:
            raise ValueError(
                f"max_concurrent_requests must be positive, got {self.max_concurrent_requests}"
            )
        if self.debounce_seconds < 0:
            raise ValueError(f"debounce_seconds must not be negative, got {self.debounce_seconds}")
        if self.hash_size < 2 or self.resize_to < self.hash_size:
            raise ValueError(
                f"resize_to ({self.resize_to}) must be at least hash_size ({self.hash_size}) >= 2"
            )
        return self

    @classmethod
    def from_env(cls, prefix: str = "FEEDMUTE_") -> "Settings":
        """Build settings from FEEDMUTE_* environment variables over the defaults."""
        settings = cls()
        for item in fields(cls):
            raw = os.getenv(prefix + item.name.upper())
            if raw is None:
                continue
            current = getattr(settings, item.name)
            if isinstance(current, bool):
                value = raw.strip().lower() in ("1", "true", "yes", "on")
            elif isinstance(current, int):
                value = int(raw)
            elif isinstance(current, float):
                value = float(raw)
            elif isinstance(current, Path):
                value = Path(raw)
            elif isinstance(current, tuple):
                value = tuple(part.strip() for part in raw.split(",") if part.strip())
            else:
                value = raw
            setattr(settings, item.name, value)
        return settings.validate()
