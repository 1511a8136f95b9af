"""Shared test fixtures for the Stagebox backend."""
import httpx
import pytest
from fastapi.testclient import TestClient

from stagebox.auth.rate_limit import set_login_limiter
from stagebox.auth.tokens import get_token_codec, set_token_codec
from stagebox.config import load_config, set_config
from stagebox.gateway.client import MediaServiceClient, set_media_client
from stagebox.main import app as primary_app
from stagebox.media.main import app as media_app
from stagebox.media.service import MediaStorageService
from stagebox.metadata.service import MetadataStore

TEST_JWT_SECRET = "test-jwt-secret"
TEST_ADMIN_KEY = "test-admin-key"


def _reset_singletons():
    set_token_codec(None)
    set_login_limiter(None)
    set_media_client(None)
    MediaStorageService.reset_instance()
    MetadataStore.reset_instance()


@pytest.fixture(autouse=True)
def app_config(tmp_path):
    """Load a config rooted in tmp_path and install it for the test.

    Storage root and metadata database live under tmp_path; the upload
    ceiling is lowered to 1MB so size limits are cheap to exercise.
    """
    settings_file = tmp_path / "stagebox.settings.yaml"
    settings_file.write_text(
        "storage:\n"
        "  root: filestore\n"
        "metadata:\n"
        "  db_path: stagebox.duckdb\n"
        "media:\n"
        "  max_upload_size: 1MB\n",
        encoding="utf-8",
    )
    cfg = load_config(
        settings_path=settings_file,
        secrets_path=tmp_path / "stagebox.secrets.yaml",
        environ={"JWT_SECRET": TEST_JWT_SECRET, "ADMIN_API_KEY": TEST_ADMIN_KEY},
    )
    set_config(cfg)
    _reset_singletons()
    yield cfg
    _reset_singletons()
    set_config(None)


@pytest.fixture
def media_client():
    """TestClient for the media service app."""
    return TestClient(media_app)


@pytest.fixture
def api_client():
    """TestClient for the primary app, wired to the media app in-process."""
    set_media_client(MediaServiceClient("http://media", transport=httpx.ASGITransport(app=media_app)))
    return TestClient(primary_app)


@pytest.fixture
def session_for():
    """Return a helper that signs a session cookie for a user id onto a client."""

    def _sign(client, user_id=1):
        token = get_token_codec().sign_session(user_id, 3600)
        client.cookies.set("session", token)
        return token

    return _sign


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {TEST_ADMIN_KEY}"}
