from datetime import datetime, timedelta, timezone

from db_backup.utils import format_timestamp, join_key, sanitize_filename


class TestFormatTimestamp:
    def test_replaces_separators(self):
        moment = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        assert format_timestamp(moment) == "2024-01-01T00-00-00-000Z"

    def test_keeps_milliseconds(self):
        moment = datetime(2024, 3, 5, 13, 7, 9, 123456, tzinfo=timezone.utc)
        stamp = format_timestamp(moment)
        assert stamp == "2024-03-05T13-07-09-123Z"
        assert ":" not in stamp and "." not in stamp

    def test_converts_to_utc(self):
        moment = datetime(2024, 1, 1, 2, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(moment) == "2024-01-01T00-00-00-000Z"

    def test_one_millisecond_apart_never_collides(self):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        stamps = {format_timestamp(base + timedelta(milliseconds=i)) for i in range(2000)}
        assert len(stamps) == 2000


def test_join_key_skips_empty_prefix():
    assert join_key("", "ts", "file.gz") == "ts/file.gz"
    assert join_key("backups/", "ts", "file.gz") == "backups/ts/file.gz"


def test_sanitize_filename():
    assert sanitize_filename("My Shop_DB.prod") == "my-shop-db-prod"
    assert sanitize_filename("--weird$$name--") == "weirdname"
