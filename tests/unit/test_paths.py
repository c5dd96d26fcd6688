"""
Tests for paths module.
"""

from pathlib import Path

from screen_switch_agent.paths import build_paths, ensure_dirs, get_paths, reset_paths, set_paths


def test_build_paths_default(monkeypatch):
    """Test that build_paths uses ~/.screen-switch-agent by default."""
    monkeypatch.delenv("SCREEN_SWITCH_BASE_DIR", raising=False)
    paths = build_paths()

    base = Path.home() / ".screen-switch-agent"
    assert paths.base_dir == base
    assert paths.log_dir == base / "logs"
    assert paths.runtime_dir == base / "run"
    assert paths.log_path == base / "logs" / "screen_switch.log"


def test_build_paths_custom_base():
    custom_base = Path("/tmp/test-screen-switch")
    paths = build_paths(custom_base)

    assert paths.base_dir == custom_base
    assert paths.log_dir == custom_base / "logs"
    assert paths.log_path == custom_base / "logs" / "screen_switch.log"


def test_build_paths_env_var_override(monkeypatch):
    """Test that SCREEN_SWITCH_BASE_DIR env var overrides default."""
    custom_base = "/tmp/env-override"
    monkeypatch.setenv("SCREEN_SWITCH_BASE_DIR", custom_base)

    paths = build_paths()

    assert paths.base_dir == Path(custom_base)


def test_ensure_dirs_creates_structure(tmp_path):
    paths = build_paths(tmp_path / "agent")

    ensure_dirs(paths)
    ensure_dirs(paths)  # Second call should not fail

    assert paths.base_dir.is_dir()
    assert paths.log_dir.is_dir()
    assert paths.runtime_dir.is_dir()


def test_get_paths_singleton_and_override(monkeypatch, tmp_path):
    monkeypatch.setenv("SCREEN_SWITCH_BASE_DIR", str(tmp_path))
    reset_paths()

    paths1 = get_paths()
    assert paths1 is get_paths()
    assert paths1.base_dir == tmp_path

    custom = build_paths(Path("/custom/base"))
    set_paths(custom)
    assert get_paths() is custom

    reset_paths()
    assert get_paths() is not custom
    reset_paths()
