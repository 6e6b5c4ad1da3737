"""Data models for atopview."""

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any

DEFAULT_HERTZ = 100


class RankBy(Enum):
    """Ranking rules for the process summary."""

    CPU = "cpu"
    DISK = "disk"
    MEM = "mem"


class ViewType(Enum):
    """Report variants, each with its own template and process order."""

    GENERIC = "generic"
    MEMORY = "memory"
    DISK = "disk"
    COMMAND_LINE = "command_line"

    @property
    def rank_by(self) -> RankBy:
        """Get the process ranking used by this view."""
        return {
            ViewType.GENERIC: RankBy.CPU,
            ViewType.MEMORY: RankBy.MEM,
            ViewType.DISK: RankBy.DISK,
            ViewType.COMMAND_LINE: RankBy.DISK,
        }[self]


@dataclass(slots=True, frozen=True)
class DisplayConfig:
    """
    Per-call display settings for one report.

    Every cap is the number of top-ranked entries kept for its category.
    Caps are clamped to the number of available entries when used.
    """

    proc: int = 200
    cpu: int = 0
    gpu: int = 2
    disk: int = 1
    interface: int = 2
    infiniband: int = 2
    nfs: int = 2
    container: int = 1
    numa: int = 0
    llc: int = 0
    rank_by: RankBy = RankBy.CPU
    show_threads: bool = False

    def __post_init__(self) -> None:
        for name in CAP_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

    def with_caps(self, **caps: int) -> "DisplayConfig":
        """Return a copy with the given caps replaced."""
        unknown = set(caps) - set(CAP_FIELDS)
        if unknown:
            raise ValueError(f"unknown caps: {', '.join(sorted(unknown))}")
        return replace(self, **caps)

    def for_view(self, view: ViewType) -> "DisplayConfig":
        """Return a copy ranked the way the given view expects."""
        return replace(self, rank_by=view.rank_by)


CAP_FIELDS: tuple[str, ...] = tuple(
    f.name for f in fields(DisplayConfig) if f.name not in ("rank_by", "show_threads")
)


@dataclass(slots=True, frozen=True)
class FormatContext:
    """Values the formatters need from the derived document."""

    per_cpu_total: float = 1.0
    hertz: int = DEFAULT_HERTZ

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "FormatContext":
        """Build a context from a derived document, falling back to defaults."""
        extra = document.get("EXTRA")
        cpu = document.get("CPU")
        per_cpu_total = extra.get("percputot") if isinstance(extra, dict) else None
        hertz = cpu.get("hertz") if isinstance(cpu, dict) else None
        return cls(
            per_cpu_total=per_cpu_total or 1.0,
            hertz=hertz or DEFAULT_HERTZ,
        )
