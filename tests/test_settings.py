"""
Tests for EngineSettings and environment loading.
"""
import pytest

from ring_insights.errors import ConfigurationError
from ring_insights.settings import DEFAULT_SETTINGS, ENV_PREFIX, EngineSettings, load_settings


@pytest.fixture
def clean_env(monkeypatch):
    for key in ("SEED", "SINGULAR_POLICY", "MAX_ITERATIONS", "ISOLATION_TREES", "ANOMALY_THRESHOLD"):
        # set first so teardown also removes values python-dotenv writes
        monkeypatch.setenv(ENV_PREFIX + key, "")
        monkeypatch.delenv(ENV_PREFIX + key)
    return monkeypatch


class TestEngineSettings:

    def test_defaults(self):
        assert DEFAULT_SETTINGS.singular_policy == "raise"
        assert DEFAULT_SETTINGS.seed is None
        assert DEFAULT_SETTINGS.max_cofactor_size == 10

    def test_invalid_policy(self):
        with pytest.raises(ConfigurationError):
            EngineSettings(singular_policy="ignore")

    def test_invalid_cap(self):
        with pytest.raises(ConfigurationError):
            EngineSettings(isolation_trees=0)

    def test_with_overrides(self):
        s = DEFAULT_SETTINGS.with_overrides(seed=3)
        assert s.seed == 3
        assert DEFAULT_SETTINGS.seed is None


class TestLoadSettings:

    def test_environment_overrides(self, clean_env):
        clean_env.setenv(ENV_PREFIX + "SEED", "42")
        clean_env.setenv(ENV_PREFIX + "SINGULAR_POLICY", "epsilon")
        clean_env.setenv(ENV_PREFIX + "ANOMALY_THRESHOLD", "3.0")
        s = load_settings()
        assert s.seed == 42
        assert s.singular_policy == "epsilon"
        assert s.anomaly_threshold == 3.0

    def test_empty_value_keeps_default(self, clean_env):
        clean_env.setenv(ENV_PREFIX + "ISOLATION_TREES", "  ")
        assert load_settings().isolation_trees == DEFAULT_SETTINGS.isolation_trees

    def test_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / "engine.env"
        env_file.write_text(f"{ENV_PREFIX}MAX_ITERATIONS=25\n")
        s = load_settings(env_file)
        assert s.kmeans_max_iterations == 25

    def test_process_env_wins_over_file(self, clean_env, tmp_path):
        env_file = tmp_path / "engine.env"
        env_file.write_text(f"{ENV_PREFIX}SEED=1\n")
        clean_env.setenv(ENV_PREFIX + "SEED", "9")
        assert load_settings(env_file).seed == 9

    def test_unparseable_value(self, clean_env):
        clean_env.setenv(ENV_PREFIX + "SEED", "abc")
        with pytest.raises(ConfigurationError):
            load_settings()

    def test_invalid_policy_from_env(self, clean_env):
        clean_env.setenv(ENV_PREFIX + "SINGULAR_POLICY", "ignore")
        with pytest.raises(ConfigurationError):
            load_settings()
