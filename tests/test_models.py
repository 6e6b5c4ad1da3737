"""Tests for atopview data models."""

import pytest

from atopview.models import CAP_FIELDS, DisplayConfig, FormatContext, RankBy, ViewType


def test_display_config_defaults():
    """Test DisplayConfig default caps and settings."""
    config = DisplayConfig()

    assert config.proc == 200
    assert config.cpu == 0
    assert config.gpu == 2
    assert config.disk == 1
    assert config.interface == 2
    assert config.infiniband == 2
    assert config.nfs == 2
    assert config.container == 1
    assert config.numa == 0
    assert config.llc == 0
    assert config.rank_by == RankBy.CPU
    assert config.show_threads is False


def test_display_config_is_frozen():
    """Test that DisplayConfig is immutable (frozen)."""
    config = DisplayConfig()

    try:
        config.proc = 10
        raise AssertionError("Should have raised FrozenInstanceError")
    except AttributeError:
        pass  # Expected behavior for frozen dataclass


def test_display_config_uses_slots():
    """Test that DisplayConfig uses __slots__."""
    assert not hasattr(DisplayConfig(), "__dict__")


def test_display_config_rejects_negative_caps():
    """Test negative caps are refused."""
    with pytest.raises(ValueError):
        DisplayConfig(disk=-1)


def test_with_caps_returns_copy():
    """Test with_caps replaces caps without touching the original."""
    config = DisplayConfig()
    changed = config.with_caps(disk=4, proc=10)

    assert changed.disk == 4
    assert changed.proc == 10
    assert config.disk == 1
    assert config.proc == 200


def test_with_caps_rejects_unknown_names():
    """Test with_caps refuses names that are not caps."""
    with pytest.raises(ValueError):
        DisplayConfig().with_caps(show_threads=True)


def test_cap_fields():
    """Test every cap is listed, and only caps."""
    assert "proc" in CAP_FIELDS
    assert "llc" in CAP_FIELDS
    assert "rank_by" not in CAP_FIELDS
    assert "show_threads" not in CAP_FIELDS
    assert len(CAP_FIELDS) == 10


class TestViewType:
    """Tests for ViewType enum."""

    def test_view_values(self):
        """Test ViewType enum has the template names as values."""
        assert ViewType.GENERIC.value == "generic"
        assert ViewType.MEMORY.value == "memory"
        assert ViewType.DISK.value == "disk"
        assert ViewType.COMMAND_LINE.value == "command_line"

    def test_view_rank_by(self):
        """Test each view maps to its process ordering."""
        assert ViewType.GENERIC.rank_by == RankBy.CPU
        assert ViewType.MEMORY.rank_by == RankBy.MEM
        assert ViewType.DISK.rank_by == RankBy.DISK
        assert ViewType.COMMAND_LINE.rank_by == RankBy.DISK

    def test_for_view(self):
        """Test for_view only changes the ranking."""
        config = DisplayConfig(proc=5).for_view(ViewType.MEMORY)
        assert config.rank_by == RankBy.MEM
        assert config.proc == 5


class TestFormatContext:
    """Tests for FormatContext."""

    def test_from_document(self):
        """Test values are read from EXTRA and CPU."""
        context = FormatContext.from_document(
            {"EXTRA": {"percputot": 500.0}, "CPU": {"hertz": 250}}
        )
        assert context.per_cpu_total == 500.0
        assert context.hertz == 250

    def test_from_document_defaults(self):
        """Test missing sections fall back to defaults."""
        context = FormatContext.from_document({})
        assert context.per_cpu_total == 1.0
        assert context.hertz == 100
