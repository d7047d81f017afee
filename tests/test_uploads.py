"""
Tests for POST /api/users/profile-picture and the upload pipeline.

Tests cover:
- Storing an image under a random name with the original extension
- Replacing and deleting picture files
- Rejecting missing files, disallowed extensions and oversized uploads
"""

import io

import pytest

from chatapp.credentials import CredentialStore
from chatapp.errors import InvalidUpload, UserNotFound
from chatapp.presence import PresenceTracker
from chatapp.services import AccountService
from conftest import register

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def upload(client, user_id, filename="me.png", content=PNG_BYTES):
    return client.post(
        "/api/users/profile-picture",
        data={"userId": user_id},
        files={"profilePicture": (filename, content, "image/png")},
    )


class TestProfilePictureEndpoint:
    """Test the multipart upload route."""

    def test_upload_success(self, client, storage_env):
        alice = register(client, "alice", "a@x.com", "pw1")

        response = upload(client, alice["id"])

        body = response.json()
        assert body["success"] is True
        reference = body["profilePicture"]
        assert reference.startswith("/uploads/")
        assert reference.endswith(".png")
        stored = storage_env.uploads_dir / reference.rsplit("/", 1)[1]
        assert stored.read_bytes() == PNG_BYTES

        users = client.get("/api/users").json()
        assert users[0]["profilePicture"] == reference

    def test_upload_replaces_previous_file(self, client, storage_env):
        alice = register(client, "alice", "a@x.com", "pw1")
        first = upload(client, alice["id"]).json()["profilePicture"]

        second = upload(client, alice["id"], filename="me.gif").json()["profilePicture"]

        assert first != second
        assert not (storage_env.uploads_dir / first.rsplit("/", 1)[1]).exists()
        assert (storage_env.uploads_dir / second.rsplit("/", 1)[1]).exists()

    def test_delete_account_removes_picture(self, client, storage_env):
        alice = register(client, "alice", "a@x.com", "pw1")
        reference = upload(client, alice["id"]).json()["profilePicture"]

        client.request("DELETE", f"/api/users/{alice['id']}", json={"password": "pw1"})

        assert not (storage_env.uploads_dir / reference.rsplit("/", 1)[1]).exists()

    def test_disallowed_extension(self, client, storage_env):
        alice = register(client, "alice", "a@x.com", "pw1")

        response = upload(client, alice["id"], filename="script.exe")

        assert response.json() == {"success": False, "message": "Only image files are allowed!"}
        assert list(storage_env.uploads_dir.iterdir()) == []

    def test_missing_file(self, client):
        alice = register(client, "alice", "a@x.com", "pw1")

        response = client.post("/api/users/profile-picture", data={"userId": alice["id"]})

        assert response.json() == {"success": False, "message": "No file uploaded"}

    def test_missing_user_id(self, client):
        response = client.post(
            "/api/users/profile-picture",
            files={"profilePicture": ("me.png", PNG_BYTES, "image/png")},
        )

        assert response.json() == {"success": False, "message": "User ID is required"}

    def test_unknown_user_leaves_no_file(self, client, storage_env):
        response = upload(client, "123")

        assert response.json() == {"success": False, "message": "User not found"}
        assert list(storage_env.uploads_dir.iterdir()) == []

    def test_uploaded_picture_is_served(self, client):
        alice = register(client, "alice", "a@x.com", "pw1")
        reference = upload(client, alice["id"]).json()["profilePicture"]

        response = client.get(reference)

        assert response.status_code == 200
        assert response.content == PNG_BYTES

    def test_missing_upload_is_404(self, client):
        response = client.get("/uploads/nothing-here.png")

        assert response.status_code == 404


class TestUploadPipeline:
    """Test AccountService.upload_profile_picture directly."""

    @pytest.fixture
    def service(self, tmp_path):
        uploads = tmp_path / "uploads"
        presence = PresenceTracker()
        credentials = CredentialStore(tmp_path / "users.json", uploads, presence=presence)
        return AccountService(credentials, presence, uploads, max_upload_bytes=16)

    def test_oversized_upload_rejected_before_write(self, service, tmp_path):
        user = service.register("alice", "a@x.com", "pw1")

        with pytest.raises(InvalidUpload) as exc_info:
            service.upload_profile_picture(user["id"], "big.jpg", io.BytesIO(b"x" * 17))

        assert exc_info.value.message == "File too large"
        assert not (tmp_path / "uploads").exists() or list((tmp_path / "uploads").iterdir()) == []

    def test_upload_at_size_limit(self, service):
        user = service.register("alice", "a@x.com", "pw1")

        reference = service.upload_profile_picture(user["id"], "ok.jpeg", io.BytesIO(b"x" * 16))

        assert reference.endswith(".jpeg")

    @pytest.mark.parametrize("filename", ["photo.JPG", "photo.png.txt", "png", "photo", "photo.png\n"])
    def test_extension_allow_list(self, service, filename):
        user = service.register("alice", "a@x.com", "pw1")

        with pytest.raises(InvalidUpload):
            service.upload_profile_picture(user["id"], filename, io.BytesIO(b"x"))

    def test_unknown_user(self, service, tmp_path):
        with pytest.raises(UserNotFound):
            service.upload_profile_picture("nope", "a.png", io.BytesIO(b"x"))

        assert list((tmp_path / "uploads").iterdir()) == []
