from datetime import datetime, timedelta, timezone

from database import serialize_doc, to_api_datetime


def test_naive_datetimes_are_rendered_as_utc():
    assert to_api_datetime(datetime(2026, 10, 19, 12, 0)) == "2026-10-19T12:00:00Z"


def test_aware_datetimes_are_converted_to_utc():
    plus_two = timezone(timedelta(hours=2))
    assert to_api_datetime(datetime(2026, 10, 19, 14, 0, tzinfo=plus_two)) == "2026-10-19T12:00:00Z"
    assert to_api_datetime(datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)) == "2026-10-19T12:00:00Z"


def test_serialize_doc():
    doc = {"_id": "abc", "createdAt": datetime(2026, 1, 2, 3, 4, 5), "status": "active"}
    assert serialize_doc(doc) == {"id": "abc", "createdAt": "2026-01-02T03:04:05Z", "status": "active"}
