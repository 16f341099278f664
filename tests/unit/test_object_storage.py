"""Unit tests for S3-compatible video storage."""

import pytest
from botocore.exceptions import ClientError

from services.errors import UpstreamUnavailableError
from services.object_storage import VideoStorage, create_storage


class TestVideoStorage:
    def test_upload_video_uses_prefix_and_public_url(self, storage, fake_s3):
        key, url = storage.upload_video("tq-1-video-1-2.mp4", b"data")

        assert key == "videos/tq-1-video-1-2.mp4"
        assert url == "https://cdn.test/videos/tq-1-video-1-2.mp4"
        assert fake_s3.objects[key] == b"data"
        assert fake_s3.content_types[key] == "video/mp4"

    def test_url_without_public_base(self, fake_s3):
        storage = VideoStorage("https://s3.test", "k", "s", bucket_name="b", client=fake_s3)
        assert storage.public_url_for("videos/x.mp4") == "s3://b/videos/x.mp4"

    def test_list_files_returns_names(self, storage):
        storage.upload_video("a.mp4", b"1")
        storage.upload_video("b.mp4", b"22")
        storage.upload_file("other/c.json", b"{}")

        files = storage.list_files()

        assert [f["name"] for f in files] == ["a.mp4", "b.mp4"]
        assert files[1]["size"] == 2

    def test_delete_files_accepts_bare_names(self, storage, fake_s3):
        storage.upload_video("a.mp4", b"1")
        storage.upload_video("b.mp4", b"1")

        assert storage.delete_files(["a.mp4", "videos/b.mp4"]) == 2
        assert fake_s3.objects == {}
        assert storage.delete_files([]) == 0

    def test_upload_error_maps_to_upstream_unavailable(self, storage, fake_s3):
        def fail(*args, **kwargs):
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject")

        fake_s3.upload_fileobj = fail
        with pytest.raises(UpstreamUnavailableError):
            storage.upload_video("a.mp4", b"1")


class TestCreateStorage:
    def test_missing_credentials_returns_none(self):
        assert create_storage({"storage_endpoint_url": "https://s3.test"}) is None

    def test_builds_from_config(self):
        storage = create_storage(
            {
                "storage_endpoint_url": "https://s3.test",
                "storage_access_key_id": "k",
                "storage_secret_access_key": "s",
                "storage_bucket_name": "clips",
                "storage_public_url": "https://cdn.test/",
            }
        )
        assert storage.bucket_name == "clips"
        assert storage.public_url_for("videos/x.mp4") == "https://cdn.test/videos/x.mp4"
