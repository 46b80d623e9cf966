import pytest

from medilocker.models import AllTypes, RecordType, SpecificTypes, parse_record_types, select_record_types


def test_all_marker_selects_every_type():
    selection = select_record_types(["lab_report", "all"])
    assert selection == AllTypes()
    assert all(selection.covers(t) for t in RecordType)


def test_listing_every_type_collapses_to_all():
    assert select_record_types([t.value for t in RecordType]) == AllTypes()


def test_specific_selection_covers_only_named_types():
    selection = select_record_types(["lab_report", " xray "])
    assert isinstance(selection, SpecificTypes)
    assert selection.covers("lab_report")
    assert selection.covers(RecordType.xray)
    assert not selection.covers("prescription")
    assert not selection.covers("not-a-type")


@pytest.mark.parametrize("values", [[], [""], ["  "]])
def test_empty_selection_is_rejected(values):
    with pytest.raises(ValueError, match="at least one"):
        select_record_types(values)


def test_unknown_type_is_rejected():
    with pytest.raises(ValueError, match="Unknown record type"):
        select_record_types(["lab_report", "tarot"])


def test_stored_form_is_sorted_and_parses_back():
    selection = select_record_types(["xray", "lab_report"])
    assert selection.serialize() == "lab_report,xray"
    assert parse_record_types(selection.serialize()) == selection
    assert parse_record_types("all") == AllTypes()
