"""
stab.core.config — Configuration for the stab tab steward.

Two layers:

``Config``
    Process configuration: where data lives, engine limits, and which
    categorization provider to talk to.  Loaded from YAML or built
    programmatically.  The provider clients live in
    ``stab.inference.providers``.

``Settings``
    User-facing policy settings kept in the synchronized storage
    namespace.  Immutable snapshots: a change notification produces a
    new ``Settings`` which the engine swaps in whole.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from stab.core.types import LLMFunc


IDLE_UNITS = ("minutes", "hours", "days")
GROUPING_MODES = ("group", "window")

DEFAULT_PRIVILEGED_PREFIXES: Tuple[str, ...] = (
    "chrome://",
    "chrome-extension://",
    "edge://",
    "about:",
)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


@dataclass(frozen=True)
class Settings:
    """Policy toggles and thresholds, one consistent snapshot."""

    idle_enabled: bool = True
    idle_time: int = 30
    idle_unit: str = "minutes"
    memory_enabled: bool = False
    memory_threshold_mb: int = 500
    duplicates_enabled: bool = True
    grouping_mode: str = "group"
    api_key: str = field(default="", repr=False)

    @classmethod
    def defaults(cls) -> Dict[str, Any]:
        return {f.name: f.default for f in fields(cls)}

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "Settings":
        """Build a snapshot from stored values, coercing bad input to defaults.

        Unknown keys are ignored.  Numbers that do not parse or are not
        positive fall back to their default, as does an unknown unit or
        grouping mode.
        """
        base = cls()
        data = dict(data or {})
        unit = str(data.get("idle_unit", base.idle_unit))
        mode = str(data.get("grouping_mode", base.grouping_mode))
        return cls(
            idle_enabled=bool(data.get("idle_enabled", base.idle_enabled)),
            idle_time=_positive_int(data.get("idle_time"), base.idle_time),
            idle_unit=unit if unit in IDLE_UNITS else base.idle_unit,
            memory_enabled=bool(data.get("memory_enabled", base.memory_enabled)),
            memory_threshold_mb=_positive_int(
                data.get("memory_threshold_mb"), base.memory_threshold_mb
            ),
            duplicates_enabled=bool(
                data.get("duplicates_enabled", base.duplicates_enabled)
            ),
            grouping_mode=mode if mode in GROUPING_MODES else base.grouping_mode,
            api_key=str(data.get("api_key") or ""),
        )

    def merged(self, changes: Mapping[str, Any]) -> "Settings":
        """Return a new snapshot with *changes* applied (unknown keys dropped)."""
        known = {f.name for f in fields(self)}
        current = self.to_dict(include_secrets=True)
        current.update({k: v for k, v in changes.items() if k in known})
        return Settings.from_mapping(current)

    def to_dict(self, include_secrets: bool = False) -> Dict[str, Any]:
        d = {f.name: getattr(self, f.name) for f in fields(self)}
        if not include_secrets:
            d["api_key"] = "***" if self.api_key else ""
        return d


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@dataclass
class Config:
    """
    Central process configuration.

    Construct directly, via ``Config.from_yaml(path)``, or via
    ``Config.from_data_dir(path)`` for quick bootstrap.
    """

    # -- storage ------------------------------------------------------------
    data_dir: Path = field(default_factory=lambda: Path("./stab_data"))

    # -- eviction engine ----------------------------------------------------
    check_interval_minutes: float = 1.0
    history_limit: int = 100
    log_limit: int = 20
    privileged_prefixes: Tuple[str, ...] = DEFAULT_PRIVILEGED_PREFIXES

    # -- relationship tracking ----------------------------------------------
    min_dwell_ms: int = 3000
    max_relationships: int = 50
    min_relationship_count: int = 2

    # -- categorization provider --------------------------------------------
    llm_provider: str = "anthropic"  # "anthropic" | "openai" | "ollama" | "custom"
    llm_model: str = "claude-3-5-haiku-latest"
    llm_base_url: str = ""
    llm_max_tokens: int = 1024
    llm_timeout: float = 60.0
    llm_func: Optional[LLMFunc] = field(default=None, repr=False)

    # -- structured logging -------------------------------------------------
    structured_logging: bool = False  # emit JSON log lines when True

    # -----------------------------------------------------------------------
    # Derived paths (all relative to data_dir)
    # -----------------------------------------------------------------------

    @property
    def sync_path(self) -> Path:
        return self.data_dir / "settings.yaml"

    @property
    def local_path(self) -> Path:
        return self.data_dir / "local.json"

    # -----------------------------------------------------------------------
    # Construction helpers
    # -----------------------------------------------------------------------

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir).resolve()
        self.privileged_prefixes = tuple(self.privileged_prefixes)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load a YAML file, either flat or with everything under ``stab:``.

        Keys that are not Config fields are ignored.
        """
        import yaml

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as fh:
            raw: Dict[str, Any] = yaml.safe_load(fh) or {}

        # pull the stab section if nested, else use top-level
        data = raw.get("stab", raw)

        if "data_dir" in data:
            data["data_dir"] = Path(data["data_dir"])

        known = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in known}

        return cls(**filtered)

    @classmethod
    def from_data_dir(cls, data_dir: str | Path, **overrides: Any) -> "Config":
        """Config rooted at *data_dir*; *overrides* set any other field."""
        return cls(data_dir=Path(data_dir), **overrides)

    def with_overrides(self, **overrides: Any) -> "Config":
        return replace(self, **overrides)

    def ensure_directories(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    # -----------------------------------------------------------------------
    # Categorization callable
    # -----------------------------------------------------------------------

    def get_categorizer(self, credential: str) -> LLMFunc:
        """Return a ``(prompt, system) -> str`` callable for ``llm_provider``.

        A directly supplied ``llm_func`` wins and *credential* is ignored.
        """
        from stab.inference.providers import build_categorizer

        return build_categorizer(self, credential)

    # -----------------------------------------------------------------------
    # Serialisation
    # -----------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to a plain dict (YAML/JSON-safe, no callables)."""
        return {
            "data_dir": str(self.data_dir),
            "check_interval_minutes": self.check_interval_minutes,
            "history_limit": self.history_limit,
            "log_limit": self.log_limit,
            "privileged_prefixes": list(self.privileged_prefixes),
            "min_dwell_ms": self.min_dwell_ms,
            "max_relationships": self.max_relationships,
            "min_relationship_count": self.min_relationship_count,
            "llm_provider": self.llm_provider,
            "llm_model": self.llm_model,
            "llm_base_url": self.llm_base_url,
            "llm_max_tokens": self.llm_max_tokens,
            "llm_timeout": self.llm_timeout,
            "structured_logging": self.structured_logging,
        }
