# tests/test_settings.py
"""Tests for settings loading and precedence."""

import pytest

from unitable.config.settings import UnitableSettings, find_config_file, load_settings
from unitable.errors import ConfigurationError


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestDefaults:
    def test_defaults(self):
        s = load_settings(env={})
        assert s == UnitableSettings()
        assert s.max_recursive_depth == 100
        assert s.encryption_secret is None
        assert (s.schema_cache.max_size, s.schema_cache.ttl_seconds) == (100, 300)
        assert (s.validator_cache.max_size, s.validator_cache.ttl_seconds) == (500, 3600)

    def test_secret_not_in_repr(self):
        s = UnitableSettings(encryption_secret="hunter2")
        assert "hunter2" not in repr(s)


class TestFile:
    def test_default_file_is_found(self, isolated_cwd):
        (isolated_cwd / "unitable.yml").write_text(
            "max_recursive_depth: 7\nschema_cache:\n  max_size: 5\n"
        )
        assert find_config_file() == isolated_cwd / "unitable.yml"
        s = load_settings(env={})
        assert s.max_recursive_depth == 7
        assert s.schema_cache.max_size == 5
        assert s.schema_cache.ttl_seconds == 300

    def test_dot_directory(self, isolated_cwd):
        (isolated_cwd / ".unitable").mkdir()
        (isolated_cwd / ".unitable" / "config.yml").write_text("query_timeout_seconds: 2.5\n")
        assert load_settings(env={}).query_timeout_seconds == 2.5

    def test_explicit_path(self, tmp_path):
        cfg = tmp_path / "elsewhere.yml"
        cfg.write_text("duckdb_threads: 2\n")
        assert load_settings(cfg, env={}).duckdb_threads == 2

    def test_missing_explicit_path(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_settings(tmp_path / "nope.yml", env={})

    def test_empty_file(self, isolated_cwd):
        (isolated_cwd / "unitable.yml").write_text("")
        assert load_settings(env={}) == UnitableSettings()

    @pytest.mark.parametrize("content", ["- just\n- a list\n", "key: [unclosed\n"])
    def test_bad_file(self, isolated_cwd, content):
        (isolated_cwd / "unitable.yml").write_text(content)
        with pytest.raises(ConfigurationError):
            load_settings(env={})


class TestPrecedence:
    def test_env_beats_file(self, isolated_cwd):
        (isolated_cwd / "unitable.yml").write_text("max_recursive_depth: 7\n")
        s = load_settings(env={"UNITABLE_MAX_RECURSIVE_DEPTH": "9", "UNITABLE_SECRET": "k"})
        assert s.max_recursive_depth == 9
        assert s.encryption_secret == "k"

    def test_overrides_beat_env(self):
        s = load_settings(env={"DUCKDB_THREADS": "4"}, duckdb_threads=1, query_timeout_seconds=None)
        assert s.duckdb_threads == 1
        assert s.query_timeout_seconds is None

    def test_invalid_values(self):
        with pytest.raises(ConfigurationError) as exc:
            load_settings(env={"UNITABLE_QUERY_TIMEOUT": "-1"})
        assert "query_timeout_seconds" in str(exc.value)
