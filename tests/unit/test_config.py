"""Unit tests for configuration loading and validation."""

import pytest

from utils.config import PROJECT_ROOT, load_config, validate_config


@pytest.fixture
def valid_config():
    return {
        "text_model_provider": "openrouter",
        "openrouter_api_key": "or-key",
        "dashscope_api_key": "ds-key",
        "rapidapi_key": "rapid-key",
        "search_provider": "feed_search",
        "storage_endpoint_url": "https://account.r2.cloudflarestorage.com",
        "storage_access_key_id": "id",
        "storage_secret_access_key": "secret",
        "storage_public_url": "https://cdn.test",
        "queries_per_run": 5,
        "videos_per_query": 5,
        "max_concurrent_analyses": 1,
        "analysis_timeout_seconds": 300.0,
    }


class TestLoadConfig:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("TEXT_MODEL_PROVIDER", "Gemini")
        monkeypatch.setenv("MAX_CONCURRENT_ANALYSES", "3")
        monkeypatch.setenv("LOG_JSON", "TRUE")

        config = load_config()

        assert config["text_model_provider"] == "gemini"
        assert config["max_concurrent_analyses"] == 3
        assert config["log_json"] is True

    def test_relative_database_paths_resolve_to_project_root(self, monkeypatch):
        monkeypatch.setenv("DATABASE_PATH", "data/trends.db")
        monkeypatch.setenv("JOBS_DB_PATH", ":memory:")

        config = load_config()

        assert config["database_path"] == str(PROJECT_ROOT / "data/trends.db")
        assert config["jobs_db_path"] == ":memory:"

    def test_defaults(self, monkeypatch):
        for name in ("QUERIES_PER_RUN", "VIDEOS_PER_QUERY", "STORAGE_BUCKET_NAME", "ANALYSIS_TIMEOUT_SECONDS"):
            monkeypatch.delenv(name, raising=False)

        config = load_config()

        assert config["queries_per_run"] == 5
        assert config["videos_per_query"] == 5
        assert config["storage_bucket_name"] == "tiktok-videos"
        assert config["analysis_timeout_seconds"] == 300.0


class TestValidateConfig:
    def test_valid(self, valid_config):
        assert validate_config(valid_config) == []

    def test_provider_key_follows_provider(self, valid_config):
        valid_config["text_model_provider"] = "gemini"
        errors = validate_config(valid_config)
        assert errors == ["GEMINI_API_KEY is required when TEXT_MODEL_PROVIDER=gemini"]

    def test_unknown_provider(self, valid_config):
        valid_config["text_model_provider"] = "mystery"
        assert "TEXT_MODEL_PROVIDER" in validate_config(valid_config)[0]

    def test_storage_needs_public_url(self, valid_config):
        valid_config["storage_public_url"] = None
        assert validate_config(valid_config) == [
            "STORAGE_PUBLIC_URL is required so the analysis model can fetch videos"
        ]

    def test_counts_and_timeout(self, valid_config):
        valid_config["videos_per_query"] = 0
        valid_config["analysis_timeout_seconds"] = 0
        assert validate_config(valid_config) == [
            "VIDEOS_PER_QUERY must be at least 1",
            "ANALYSIS_TIMEOUT_SECONDS must be positive",
        ]
