import io
from datetime import datetime, timezone

import pytest

from db_backup.schemas import CommandResult, DatabaseConfig

FIXED_TIME = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
FIXED_STAMP = "2024-01-01T00-00-00-000Z"

DUMP_OUTPUT_FLAGS = ("--archive=", "--file=")


class FakeRunner:
    """Records every command and writes a dump artifact like the real tools would."""

    def __init__(self, exit_code=0, stderr="", dump_content=b"dump-bytes" * 1000, write_output=True):
        self.exit_code = exit_code
        self.stderr = stderr
        self.dump_content = dump_content
        self.write_output = write_output
        self.calls = []

    def run(self, args, env=None, secrets=()):
        self.calls.append({"args": list(args), "env": env})
        if args[0] in ("mongodump", "pg_dump") and self.exit_code == 0 and self.write_output:
            for arg in args:
                for flag in DUMP_OUTPUT_FLAGS:
                    if arg.startswith(flag):
                        with open(arg[len(flag):], "wb") as f:
                            f.write(self.dump_content)
        return CommandResult(exit_code=self.exit_code, stdout="", stderr=self.stderr)

    @property
    def last_args(self):
        return self.calls[-1]["args"]


class FakeBody:
    def __init__(self, data, fail_after=None):
        self._stream = io.BytesIO(data)
        self.fail_after = fail_after
        self.closed = False

    def iter_chunks(self, chunk_size):
        sent = 0
        while True:
            if self.fail_after is not None and sent >= self.fail_after:
                raise OSError("connection reset mid-stream")
            chunk = self._stream.read(chunk_size)
            if not chunk:
                return
            sent += len(chunk)
            yield chunk

    def close(self):
        self.closed = True


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client methods the storage layer uses."""

    def __init__(self, page_size=1000, existing_bucket=True):
        self.objects = {}
        self.page_size = page_size
        self.buckets = {"backups"} if existing_bucket else set()
        self.list_calls = []
        self.bodies = []
        self.create_bucket_calls = []

    def head_bucket(self, Bucket):
        from botocore.exceptions import ClientError
        if Bucket not in self.buckets:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadBucket")

    def create_bucket(self, Bucket, **kwargs):
        self.create_bucket_calls.append(dict(Bucket=Bucket, **kwargs))
        self.buckets.add(Bucket)

    def upload_fileobj(self, Fileobj, Bucket, Key):
        self.objects[Key] = Fileobj.read()

    def get_object(self, Bucket, Key):
        from botocore.exceptions import ClientError
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "Not Found"}}, "GetObject")
        body = FakeBody(self.objects[Key])
        self.bodies.append(body)
        return {"Body": body}

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)

    def list_objects_v2(self, Bucket, Prefix=None, ContinuationToken=None):
        self.list_calls.append(ContinuationToken)
        keys = sorted(k for k in self.objects if not Prefix or k.startswith(Prefix))
        start = int(ContinuationToken) if ContinuationToken else 0
        page = keys[start:start + self.page_size]
        response = {"Contents": [{"Key": k} for k in page], "KeyCount": len(page)}
        if start + self.page_size < len(keys):
            response["NextContinuationToken"] = str(start + self.page_size)
            response["IsTruncated"] = True
        return response


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_TIME


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def mongo_config():
    return DatabaseConfig(
        engine="mongodb", host="db.internal", port=27017,
        username="admin", password="s3cret", database="shop",
    )


@pytest.fixture
def postgres_config():
    return DatabaseConfig(
        engine="postgresql", host="pg.internal", port=5432,
        username="postgres", password="pgpass", database="shop",
    )


@pytest.fixture
def s3_client():
    return FakeS3Client()
