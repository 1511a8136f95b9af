"""Tests for project media routes and the deletion cascade."""
from pathlib import Path
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from stagebox.gateway.client import MediaServiceClient, MediaServiceError, set_media_client
from stagebox.media.schemas import MediaKind
from stagebox.media.waveform import WaveformError, WaveformGenerator
from stagebox.metadata.schemas import MediaCreate
from stagebox.metadata.service import MetadataStore
from stagebox.projects.deletion import DeletionCoordinator, MediaNotFoundError


async def _fake_generate(self, input_path, output_path):
    Path(output_path).write_bytes(b"waveform")


async def _failing_generate(self, input_path, output_path):
    raise WaveformError(details="audiowaveform exited with status 1")


def _refuse_connections(request):
    raise httpx.ConnectError("connection refused", request=request)


@pytest.fixture
def storage_root(app_config):
    root = Path(app_config.storage.root)
    root.mkdir(parents=True, exist_ok=True)
    return root


@pytest.fixture
def store():
    return MetadataStore.get_instance()


@pytest.fixture
def stored_song(storage_root, store):
    """A record with its original, waveform and two comments."""
    (storage_root / "1_song.mp3").write_bytes(b"audio")
    (storage_root / "1_song.mp3.dat").write_bytes(b"waveform")
    record = store.create_media(
        MediaCreate(project_id=1, title="song", storage_key="1_song.mp3", kind=MediaKind.AUDIO)
    )
    store.create_comment(record.id, 1, "great take", time=3.0)
    store.create_comment(record.id, 2, "agreed")
    return record


class TestUpload:
    """POST /api/project/{id}/media"""

    def test_upload_creates_record_after_storing(self, api_client, session_for, storage_root):
        session_for(api_client)

        resp = api_client.post(
            "/api/project/1/media",
            files={"file": ("clip.mp4", b"video-bytes", "video/mp4")},
            data={"description": "first pass"},
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["projectId"] == 1
        assert body["title"] == "clip"
        assert body["description"] == "first pass"
        assert body["kind"] == "video"
        assert (storage_root / body["storageKey"]).read_bytes() == b"video-bytes"

    def test_audio_upload_has_waveform(self, api_client, session_for, storage_root):
        session_for(api_client)

        with patch.object(WaveformGenerator, "generate", _fake_generate):
            resp = api_client.post(
                "/api/project/1/media",
                files={"file": ("song.mp3", b"audio", "audio/mpeg")},
                data={"title": "Song Title"},
            )

        assert resp.status_code == 201
        body = resp.json()
        assert body["title"] == "Song Title"
        assert body["kind"] == "audio"
        assert (storage_root / (body["storageKey"] + ".dat")).exists()

    def test_failed_ingest_creates_no_record(self, api_client, session_for, storage_root, store):
        session_for(api_client)

        with patch.object(WaveformGenerator, "generate", _failing_generate):
            resp = api_client.post("/api/project/1/media", files={"file": ("song.mp3", b"audio", "audio/mpeg")})

        assert resp.status_code == 500
        assert resp.json() == {
            "error": "Media service upload failed",
            "details": "Waveform generation failed",
        }
        assert store.list_media(1) == []
        assert list(storage_root.iterdir()) == []

    def test_requires_session(self, api_client):
        resp = api_client.post("/api/project/1/media", files={"file": ("clip.mp4", b"v", "video/mp4")})

        assert resp.status_code == 401

    def test_missing_file_is_400(self, api_client, session_for):
        session_for(api_client)

        resp = api_client.post("/api/project/1/media", data={"title": "nothing"})

        assert resp.status_code == 400

    def test_bad_project_id_is_400(self, api_client, session_for):
        session_for(api_client)

        resp = api_client.post("/api/project/abc/media", files={"file": ("clip.mp4", b"v", "video/mp4")})

        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid project id"}

    def test_oversized_upload_is_413(self, api_client, session_for, storage_root):
        session_for(api_client)

        resp = api_client.post(
            "/api/project/1/media",
            files={"file": ("big.mp4", b"x" * (1024 * 1024 + 1), "video/mp4")},
        )

        assert resp.status_code == 413
        assert list(storage_root.iterdir()) == []

    def test_record_failure_removes_stored_file(self, api_client, session_for, storage_root):
        session_for(api_client)

        with patch.object(MetadataStore, "create_media", side_effect=RuntimeError("db down")):
            with pytest.raises(RuntimeError):
                api_client.post("/api/project/1/media", files={"file": ("clip.mp4", b"v", "video/mp4")})

        assert list(storage_root.iterdir()) == []


class TestListAndGet:
    """GET /api/project/{id}/media[/{media_id}]"""

    def test_list_newest_first(self, api_client, store):
        first = store.create_media(MediaCreate(project_id=1, title="a", storage_key="1_a.mp4", kind=MediaKind.VIDEO))
        second = store.create_media(MediaCreate(project_id=1, title="b", storage_key="2_b.mp4", kind=MediaKind.VIDEO))

        resp = api_client.get("/api/project/1/media")

        assert resp.status_code == 200
        assert [m["id"] for m in resp.json()] == [second.id, first.id]

    def test_list_bad_project_id(self, api_client):
        assert api_client.get("/api/project/0/media").status_code == 400

    def test_get_record(self, api_client, stored_song):
        resp = api_client.get(f"/api/project/1/media/{stored_song.id}")

        assert resp.status_code == 200
        assert resp.json()["storageKey"] == "1_song.mp3"

    def test_get_record_in_other_project_is_404(self, api_client, stored_song):
        assert api_client.get(f"/api/project/2/media/{stored_song.id}").status_code == 404

    def test_get_bad_media_id_is_400(self, api_client):
        assert api_client.get("/api/project/1/media/abc").status_code == 400


class TestDeleteRoute:
    """DELETE /api/project/{id}/media/{media_id}"""

    def test_delete_cascades_to_storage(self, api_client, session_for, stored_song, storage_root, store):
        session_for(api_client)

        resp = api_client.delete(f"/api/project/1/media/{stored_song.id}")

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "mediaId": stored_song.id,
            "metadataDeleted": True,
            "storageDeleted": True,
            "storageError": None,
        }
        assert store.get_media(stored_song.id) is None
        assert store.list_comments(stored_song.id) == []
        assert list(storage_root.iterdir()) == []

    def test_unreachable_media_service_still_succeeds(self, api_client, session_for, stored_song, store):
        """Metadata is removed and the delete reports success when the peer is down."""
        session_for(api_client)
        set_media_client(MediaServiceClient("http://media", transport=httpx.MockTransport(_refuse_connections)))

        resp = api_client.delete(f"/api/project/1/media/{stored_song.id}")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["metadataDeleted"] is True
        assert body["storageDeleted"] is False
        assert "connection refused" in body["storageError"]
        assert store.get_media(stored_song.id) is None
        assert store.list_comments(stored_song.id) == []

    def test_already_missing_file_reported(self, api_client, session_for, stored_song, storage_root):
        session_for(api_client)
        (storage_root / "1_song.mp3").unlink()

        resp = api_client.delete(f"/api/project/1/media/{stored_song.id}")

        assert resp.status_code == 200
        assert resp.json()["storageDeleted"] is False
        assert resp.json()["storageError"] == "File not found"

    def test_unknown_media_is_404(self, api_client, session_for):
        session_for(api_client)

        assert api_client.delete("/api/project/1/media/999").status_code == 404

    def test_requires_session(self, api_client, stored_song):
        assert api_client.delete(f"/api/project/1/media/{stored_song.id}").status_code == 401


class TestDeleteProjectMedia:
    """DELETE /api/project/{id}/media"""

    def test_deletes_all_records_and_files(self, api_client, session_for, stored_song, storage_root, store):
        (storage_root / "2_clip.mp4").write_bytes(b"video")
        store.create_media(MediaCreate(project_id=1, title="clip", storage_key="2_clip.mp4", kind=MediaKind.VIDEO))
        session_for(api_client)

        resp = api_client.delete("/api/project/1/media")

        assert resp.status_code == 200
        body = resp.json()
        assert body["deleted"] == 2
        assert all(r["storageDeleted"] for r in body["results"])
        assert store.list_media(1) == []
        assert list(storage_root.iterdir()) == []

    def test_empty_project_is_404(self, api_client, session_for):
        session_for(api_client)

        resp = api_client.delete("/api/project/5/media")

        assert resp.status_code == 404
        assert resp.json() == {"error": "No media found for this project"}


class TestDeletionCoordinator:
    """Cascade order and failure handling without HTTP."""

    @pytest.mark.asyncio
    async def test_storage_failure_is_swallowed(self, store, stored_song):
        client = AsyncMock()
        client.delete_file.side_effect = MediaServiceError("Media service delete failed", details="boom")

        result = await DeletionCoordinator(store, client).delete(stored_song.id)

        assert result.metadata_deleted is True
        assert result.storage_deleted is False
        assert result.storage_error == "boom"
        assert store.get_media(stored_song.id) is None
        client.delete_file.assert_awaited_once_with("1_song.mp3")

    @pytest.mark.asyncio
    async def test_unexpected_error_is_swallowed(self, store, stored_song):
        client = AsyncMock()
        client.delete_file.side_effect = RuntimeError("socket closed")

        result = await DeletionCoordinator(store, client).delete(stored_song.id)

        assert result.storage_deleted is False
        assert result.storage_error == "socket closed"

    @pytest.mark.asyncio
    async def test_project_mismatch_is_not_found(self, store, stored_song):
        client = AsyncMock()

        with pytest.raises(MediaNotFoundError):
            await DeletionCoordinator(store, client).delete(stored_song.id, project_id=2)

        assert store.get_media(stored_song.id) is not None
        client.delete_file.assert_not_awaited()
