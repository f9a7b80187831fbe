"""
Configuration Tests
===================

Tests for YAML loading and environment overrides.
"""

import pytest


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self):
        from carbonlens.config import Settings

        settings = Settings()
        assert settings.capture.frames_per_batch == 12
        assert settings.capture.grid_cols * settings.capture.grid_rows == 12
        assert settings.capture.timeout_seconds == 300.0
        assert settings.capture.queue_poll_interval_seconds == 5.0
        assert settings.admission.threshold == 20
        assert settings.queue.capacity == 3
        assert settings.analyzer.backend == "mock"
        assert settings.analyzer.reference_daily_co2_kg == 12.85

    def test_yaml_file(self, tmp_path, monkeypatch):
        from carbonlens.config import load_config

        for name in ("CARBONLENS_SIMILARITY_THRESHOLD", "CARBONLENS_QUEUE_CAPACITY", "PORT", "CARBONLENS_PORT"):
            monkeypatch.delenv(name, raising=False)

        path = tmp_path / "config.yaml"
        path.write_text(
            "capture:\n"
            "  source: recording.mp4\n"
            "  policy: bounded\n"
            "admission:\n"
            "  threshold: 12\n"
            "server:\n"
            "  port: 9000\n"
        )

        settings = load_config(str(path))
        assert settings.capture.source == "recording.mp4"
        assert settings.capture.policy == "bounded"
        assert settings.admission.threshold == 12
        assert settings.server.port == 9000
        assert settings.queue.capacity == 3

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        from carbonlens.config import load_config

        path = tmp_path / "config.yaml"
        path.write_text("admission:\n  threshold: 12\n")

        monkeypatch.setenv("CARBONLENS_SIMILARITY_THRESHOLD", "25")
        monkeypatch.setenv("CARBONLENS_QUEUE_CAPACITY", "5")
        monkeypatch.setenv("CARBONLENS_ANALYZER_BACKEND", "gemini")
        monkeypatch.setenv("GEMINI_API_KEY", "secret")
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("CARBONLENS_PORT", "7070")

        settings = load_config(str(path))
        assert settings.admission.threshold == 25
        assert settings.queue.capacity == 5
        assert settings.analyzer.backend == "gemini"
        assert settings.analyzer.api_key == "secret"
        assert settings.server.port == 8080

    def test_invalid_values_rejected(self):
        from pydantic import ValidationError

        from carbonlens.config import Settings

        with pytest.raises(ValidationError):
            Settings.model_validate({"admission": {"threshold": 65}})
        with pytest.raises(ValidationError):
            Settings.model_validate({"queue": {"capacity": 0}})


class TestAnalyzerFactory:
    """Tests for create_analyzer."""

    def test_backends(self):
        from carbonlens.analysis import GeminiAnalyzer, MockAnalyzer
        from carbonlens.config import Settings
        from carbonlens.main import create_analyzer

        assert isinstance(create_analyzer(Settings()), MockAnalyzer)

        gemini = create_analyzer(Settings.model_validate({"analyzer": {"backend": "gemini"}}))
        assert isinstance(gemini, GeminiAnalyzer)

        with pytest.raises(ValueError):
            create_analyzer(Settings.model_validate({"analyzer": {"backend": "vision"}}))
