import pytest

from taxasync.config import Config
from taxasync.errors import ConfigurationError


class TestConfig:
    def test_defaults_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DYNTAXA_APIKEY", "secret")
        monkeypatch.setenv("TAXASYNC_LOOKUP_WORKERS", "8")
        monkeypatch.setenv("TAXASYNC_BATCH_TIMEOUT", "30")
        monkeypatch.setenv("TAXASYNC_CACHE_DIR", str(tmp_path))

        config = Config()

        assert config.api_key == "secret"
        assert config.lookup_workers == 8
        assert config.batch_timeout == 30.0
        assert config.cache_base_dir == str(tmp_path)

    def test_invalid_number_reported_by_validate(self, monkeypatch):
        monkeypatch.setenv("TAXASYNC_LOOKUP_WORKERS", "many")
        monkeypatch.setenv("TAXASYNC_BATCH_TIMEOUT", "soon")

        config = Config()

        assert config.lookup_workers == 4
        with pytest.raises(ConfigurationError, match="TAXASYNC_LOOKUP_WORKERS.*TAXASYNC_BATCH_TIMEOUT"):
            config.validate()

    def test_valid_environment_passes_validate(self, monkeypatch):
        monkeypatch.setenv("TAXASYNC_LOOKUP_WORKERS", "2")
        Config().validate()

    def test_require_api_key(self, monkeypatch):
        monkeypatch.delenv("DYNTAXA_APIKEY", raising=False)
        config = Config()

        with pytest.raises(ConfigurationError):
            config.require_api_key()

        config.api_key = "secret"
        assert config.require_api_key() == "secret"

    def test_update_from_args_ignores_none_and_unknown(self):
        config = Config()
        config.batch_timeout = 12.0
        config.update_from_args({"lookup_workers": 2, "batch_timeout": None, "output_dir": "out"})

        assert config.lookup_workers == 2
        assert config.batch_timeout == 12.0
        assert not hasattr(config, "output_dir")

    def test_summary_masks_api_key(self):
        config = Config()
        config.api_key = "very-secret"

        summary = config.get_config_summary()

        assert "very-secret" not in summary
        assert "api_key: <set>" in summary
