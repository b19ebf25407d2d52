"""Shared pytest fixtures: a throwaway SQLite queue and injected settings."""

import pytest
from fastapi.testclient import TestClient

import config
import database


@pytest.fixture
def db(tmp_path):
    """Point the database module at a fresh file for each test."""
    database.close_db_cleanup()
    database.init_db(str(tmp_path / "studio_test.db"))
    yield database
    database.close_db_cleanup()


@pytest.fixture
def settings(tmp_path):
    return config.Settings(
        google_api_key="test-google-key",
        elevenlabs_api_key="test-elevenlabs-key",
        kling_api_key="test-kling-key",
        db_path=str(tmp_path / "studio_test.db"),
    )


@pytest.fixture
def client(db, settings):
    import server

    server.app.dependency_overrides[server.get_settings] = lambda: settings
    yield TestClient(server.app)
    server.app.dependency_overrides.clear()


@pytest.fixture
def make_item(db):
    """Creates a pending queue row, optionally with a preset retry_count."""
    def _make(file_name="clip.mp4", retry_count=0, max_retries=config.DEFAULT_MAX_RETRIES,
              user_id="user-1", video_data=None):
        item_id = db.create_queue_item(
            user_id=user_id,
            file_name=file_name,
            video_data=video_data or f"b64-{file_name}",
            max_retries=max_retries,
        )
        if retry_count:
            db.update_queue_item(item_id, retry_count=retry_count)
        return item_id
    return _make
