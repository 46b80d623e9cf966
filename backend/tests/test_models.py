from datetime import datetime

from medilocker.models import AccessRequest, Record, User
from medilocker.models.base import UTCDateTime


def test_record_tag_list_is_sorted_and_skips_blanks():
    record = Record(owner_id="patient-1", record_type="lab_report", title="CBC", tags="thyroid,,blood")

    assert record.tag_list == ["blood", "thyroid"]
    assert not record.is_deleted


def test_access_request_selection_and_level():
    request = AccessRequest(
        doctor_id="doctor-1",
        patient_id="patient-1",
        reason="Review",
        access_level="read_write",
        requested_record_types="xray,lab_report",
        expiry_days=7,
    )

    assert request.allows_write
    assert request.record_types.covers("xray")
    assert not request.record_types.covers("prescription")


def test_user_condition_tags():
    assert User(id="d", role="doctor", display_name="Dr", condition_tags="asthma,copd").condition_tag_list == [
        "asthma",
        "copd",
    ]
    assert User(id="p", role="patient", display_name="Pat").condition_tag_list == []


def test_utc_datetime_stamps_naive_values():
    column_type = UTCDateTime()
    naive = datetime(2026, 3, 2, 9, 0)

    stored = column_type.process_bind_param(naive, None)
    loaded = column_type.process_result_value(naive, None)

    assert stored.utcoffset().total_seconds() == 0
    assert loaded == stored
    assert column_type.process_result_value(None, None) is None
