"""Unit tests for WorkerConfig env loading and validation."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from hlte_worker.config import WorkerConfig


class TestFromEnv:
    def test_missing_stream_key_raises(self):
        with (
            patch.dict("os.environ", {}, clear=True),
            pytest.raises(ValueError, match="HLTE_STREAM_KEY"),
        ):
            WorkerConfig.from_env()

    def test_defaults(self):
        with patch.dict("os.environ", {"HLTE_STREAM_KEY": "hlte:work"}, clear=True):
            cfg = WorkerConfig.from_env()

        assert cfg.stream_key == "hlte:work"
        assert cfg.failed_stream_key == "hlte:work:failed"
        assert cfg.redis_url == "redis://localhost:6379/0"
        assert cfg.data_root == Path("./data")
        assert cfg.retain_entries is False
        assert cfg.probe_before_fetch is True
        assert cfg.capture_enabled is False
        assert cfg.gallery_enabled is False
        assert cfg.gallery_min_pixels == 200_000
        assert cfg.gallery_publish_marker == "#publish"
        assert cfg.capture_pdf_options == {"format": "Letter", "printBackground": True}

    def test_full_environment(self):
        env = {
            "HLTE_STREAM_KEY": "s",
            "HLTE_REDIS_URL": "redis://queue:6379/2",
            "HLTE_DATA_ROOT": "/srv/hlte",
            "HLTE_RETAIN_ENTRIES": "yes",
            "HLTE_PROBE_BEFORE_FETCH": "false",
            "HLTE_CAPTURE_URL": "https://capture.example.com",
            "HLTE_CAPTURE_TOKEN": "tok",
            "HLTE_CAPTURE_PDF_OPTS": '{"format": "A4"}',
            "HLTE_ANNOTATION_DSN": "postgresql://u:p@db/hlte",
            "HLTE_GALLERY_TEMPLATE": "/srv/gallery.html",
            "HLTE_GALLERY_LIVE_PATH": "/srv/www/index.html",
            "HLTE_GALLERY_MIN_PIXELS": "500000",
            "HLTE_MAX_BACKGROUND_TASKS": "3",
            "HLTE_POLL_INTERVAL_SECONDS": "0.5",
        }
        with patch.dict("os.environ", env, clear=True):
            cfg = WorkerConfig.from_env()
        cfg.validate()

        assert cfg.retain_entries is True
        assert cfg.probe_before_fetch is False
        assert cfg.capture_enabled is True
        assert cfg.capture_pdf_options == {"format": "A4"}
        assert cfg.gallery_enabled is True
        assert cfg.gallery_live_path == Path("/srv/www/index.html")
        assert cfg.gallery_min_pixels == 500_000
        assert cfg.max_background_tasks == 3
        assert cfg.poll_interval_seconds == 0.5

    def test_invalid_pdf_options_json(self):
        env = {"HLTE_STREAM_KEY": "s", "HLTE_CAPTURE_PDF_OPTS": "{not json"}
        with (
            patch.dict("os.environ", env, clear=True),
            pytest.raises(ValueError, match="not valid JSON"),
        ):
            WorkerConfig.from_env()

    def test_pdf_options_must_be_object(self):
        env = {"HLTE_STREAM_KEY": "s", "HLTE_CAPTURE_PDF_OPTS": "[1, 2]"}
        with (
            patch.dict("os.environ", env, clear=True),
            pytest.raises(ValueError, match="JSON object"),
        ):
            WorkerConfig.from_env()


class TestValidate:
    def test_valid_minimal_config_passes(self, make_config):
        make_config().validate()

    def test_capture_url_without_token(self, make_config):
        cfg = make_config(capture_base_url="https://capture.example.com")
        with pytest.raises(ValueError, match="HLTE_CAPTURE_TOKEN"):
            cfg.validate()

    def test_partial_gallery_config(self, make_config, tmp_path):
        cfg = make_config(annotation_dsn="postgresql://db/hlte", gallery_template_path=tmp_path / "t.html")
        with pytest.raises(ValueError, match="HLTE_GALLERY_LIVE_PATH"):
            cfg.validate()

    def test_non_positive_pixel_threshold(self, make_config):
        with pytest.raises(ValueError, match="MIN_PIXELS"):
            make_config(gallery_min_pixels=0).validate()

    def test_task_bound(self, make_config):
        with pytest.raises(ValueError, match="MAX_BACKGROUND_TASKS"):
            make_config(max_background_tasks=0).validate()

    def test_negative_poll_interval(self, make_config):
        with pytest.raises(ValueError, match="POLL_INTERVAL"):
            make_config(poll_interval_seconds=-1.0).validate()
