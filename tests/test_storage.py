import os

import pytest
from botocore.exceptions import ClientError, NoCredentialsError

from db_backup.errors import DownloadError, StorageError, UploadError
from db_backup.schemas import StorageConfig, StorageCredentials
from db_backup.storage import LocalStorage, S3Storage, get_storage_provider
from tests.conftest import FakeBody, FakeS3Client


@pytest.fixture
def local_storage(tmp_path):
    return LocalStorage(StorageConfig(kind="local", root=str(tmp_path / "store")))


@pytest.fixture
def artifact(tmp_path):
    path = tmp_path / "artifact.gz"
    path.write_bytes(b"\x1f\x8b backup payload")
    return path


class TestRegistry:
    def test_local(self, tmp_path):
        assert isinstance(get_storage_provider(StorageConfig(kind="local", root=str(tmp_path))), LocalStorage)

    @pytest.mark.parametrize("kind", ["gcs", "azure"])
    def test_unregistered_backends(self, kind):
        with pytest.raises(ValueError, match=kind):
            get_storage_provider(StorageConfig(kind=kind))


class TestLocalStorage:
    def test_upload_creates_directories_and_copies(self, local_storage, artifact, tmp_path):
        locator = local_storage.upload(str(artifact), "backups/ts/artifact.gz")

        expected = tmp_path / "store" / "backups" / "ts" / "artifact.gz"
        assert locator == str(expected)
        assert os.path.isabs(locator)
        assert expected.read_bytes() == artifact.read_bytes()
        assert artifact.exists()

    def test_download(self, local_storage, artifact, tmp_path):
        local_storage.upload(str(artifact), "a/b.gz")
        target = tmp_path / "restore" / "nested" / "b.gz"
        local_storage.download("a/b.gz", str(target))
        assert target.read_bytes() == artifact.read_bytes()

    def test_download_missing_key(self, local_storage, tmp_path):
        with pytest.raises(DownloadError):
            local_storage.download("missing.gz", str(tmp_path / "out.gz"))

    def test_upload_missing_source(self, local_storage, tmp_path):
        with pytest.raises(UploadError):
            local_storage.upload(str(tmp_path / "missing"), "x/missing")

    def test_delete(self, local_storage, artifact):
        local_storage.upload(str(artifact), "a/b.gz")
        local_storage.delete("a/b.gz")
        assert local_storage.list() == []
        with pytest.raises(StorageError):
            local_storage.delete("a/b.gz")

    def test_list_recursive_and_prefixed(self, local_storage, artifact):
        for key in ["backups/t1/x.gz", "backups/t2/y.gz", "other/z.gz"]:
            local_storage.upload(str(artifact), key)

        assert local_storage.list() == ["backups/t1/x.gz", "backups/t2/y.gz", "other/z.gz"]
        assert local_storage.list("backups") == ["backups/t1/x.gz", "backups/t2/y.gz"]

    def test_list_missing_directory_is_empty(self, tmp_path):
        storage = LocalStorage(StorageConfig(kind="local", root=str(tmp_path / "does-not-exist")))
        assert storage.list() == []
        assert storage.list("backups") == []

    def test_rejects_keys_outside_root(self, local_storage, artifact):
        with pytest.raises(StorageError):
            local_storage.upload(str(artifact), "../escape.gz")


@pytest.fixture
def s3_storage(s3_client):
    return S3Storage(StorageConfig(kind="s3", bucket="backups"), client=s3_client)


class TestS3Storage:
    def test_requires_bucket(self, s3_client):
        with pytest.raises(ValueError, match="bucket"):
            S3Storage(StorageConfig(kind="s3"), client=s3_client)

    def test_creates_missing_bucket(self):
        client = FakeS3Client(existing_bucket=False)
        S3Storage(StorageConfig(kind="s3", bucket="fresh"), client=client)
        assert "fresh" in client.buckets
        assert client.create_bucket_calls == [{"Bucket": "fresh"}]

    def test_creates_missing_bucket_in_configured_region(self):
        client = FakeS3Client(existing_bucket=False)
        config = StorageConfig(kind="s3", bucket="my-backups",
                               credentials=StorageCredentials(region="eu-west-1"))
        S3Storage(config, client=client)
        assert client.create_bucket_calls == [
            {"Bucket": "my-backups", "CreateBucketConfiguration": {"LocationConstraint": "eu-west-1"}}
        ]

    def test_existing_bucket_is_not_created(self, s3_client):
        S3Storage(StorageConfig(kind="s3", bucket="backups"), client=s3_client)
        assert s3_client.create_bucket_calls == []

    def test_forbidden_bucket_raises_storage_error(self):
        client = FakeS3Client()

        def head_bucket(Bucket):
            raise ClientError({"Error": {"Code": "403", "Message": "Forbidden"}}, "HeadBucket")

        client.head_bucket = head_bucket
        with pytest.raises(StorageError, match="backups") as excinfo:
            S3Storage(StorageConfig(kind="s3", bucket="backups"), client=client)
        assert isinstance(excinfo.value.__cause__, ClientError)
        assert client.create_bucket_calls == []

    def test_missing_credentials_raise_storage_error(self):
        client = FakeS3Client()

        def head_bucket(Bucket):
            raise NoCredentialsError()

        client.head_bucket = head_bucket
        with pytest.raises(StorageError):
            S3Storage(StorageConfig(kind="s3", bucket="backups"), client=client)

    def test_bucket_creation_failure_raises_storage_error(self):
        client = FakeS3Client(existing_bucket=False)

        def create_bucket(Bucket, **kwargs):
            raise ClientError({"Error": {"Code": "BucketAlreadyExists", "Message": "taken"}}, "CreateBucket")

        client.create_bucket = create_bucket
        with pytest.raises(StorageError, match="fresh"):
            S3Storage(StorageConfig(kind="s3", bucket="fresh"), client=client)

    def test_upload_returns_location(self, s3_storage, s3_client, artifact):
        location = s3_storage.upload(str(artifact), "shop/ts/artifact.gz")
        assert location == "s3://backups/shop/ts/artifact.gz"
        assert s3_client.objects["shop/ts/artifact.gz"] == artifact.read_bytes()

    def test_upload_missing_file(self, s3_storage, tmp_path):
        with pytest.raises(UploadError):
            s3_storage.upload(str(tmp_path / "missing"), "k")

    def test_download_streams_to_file_and_closes_body(self, s3_storage, s3_client, tmp_path):
        s3_client.objects["k.gz"] = b"x" * 200_000
        target = tmp_path / "dl" / "k.gz"
        s3_storage.download("k.gz", str(target))
        assert target.read_bytes() == b"x" * 200_000
        assert s3_client.bodies[-1].closed

    def test_download_stream_error_removes_partial_file(self, s3_storage, s3_client, tmp_path):
        body = FakeBody(b"y" * 300_000, fail_after=65536)
        s3_client.get_object = lambda Bucket, Key: {"Body": body}
        target = tmp_path / "partial.gz"

        with pytest.raises(DownloadError):
            s3_storage.download("k.gz", str(target))
        assert not target.exists()
        assert body.closed

    def test_download_missing_key(self, s3_storage, tmp_path):
        with pytest.raises(DownloadError):
            s3_storage.download("missing", str(tmp_path / "m"))

    def test_delete(self, s3_storage, s3_client):
        s3_client.objects["k"] = b"1"
        s3_storage.delete("k")
        assert "k" not in s3_client.objects

    def test_list_follows_continuation_cursor(self, s3_client, s3_storage):
        for i in range(1500):
            s3_client.objects[f"shop/{i:05d}.gz"] = b""
        keys = s3_storage.list("shop/")
        assert len(keys) == 1500
        assert len(set(keys)) == 1500
        assert s3_client.list_calls == [None, "1000"]

    def test_list_does_not_stop_on_empty_page(self, s3_storage, s3_client):
        pages = [
            {"Contents": [{"Key": "a"}], "NextContinuationToken": "t1"},
            {"KeyCount": 0, "NextContinuationToken": "t2"},
            {"Contents": [{"Key": "b"}, {"Key": "a"}], "NextContinuationToken": ""},
        ]
        tokens = []

        def list_objects_v2(**kwargs):
            tokens.append(kwargs.get("ContinuationToken"))
            return pages[len(tokens) - 1]

        s3_client.list_objects_v2 = list_objects_v2
        assert s3_storage.list() == ["a", "b"]
        assert tokens == [None, "t1", "t2"]
