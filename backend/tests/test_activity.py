from datetime import date, timedelta

import pytest

from conftest import DOCTOR_ID, OTHER_DOCTOR_ID, PATIENT_ID
from medilocker.errors import ForbiddenError, NotFoundError, ValidationError
from medilocker.models import User
from medilocker.services.activity import ActivityAggregator, ContributionGraph
from medilocker.services.events import DoctorEndorsed
from medilocker.services.records import BlobUpload
from medilocker.services.users import UserDirectory
from medilocker.utils.time import utc_day

SECOND_PATIENT_ID = "patient-2"


@pytest.fixture()
async def users(user_repository):
    for user in (
        User(id=PATIENT_ID, role="patient", display_name="Pat One"),
        User(id=SECOND_PATIENT_ID, role="patient", display_name="Pat Two"),
        User(
            id=DOCTOR_ID,
            role="doctor",
            display_name="Dr Ada",
            specialization="Cardiology",
            condition_tags="arrhythmia,hypertension",
        ),
        User(id=OTHER_DOCTOR_ID, role="doctor", display_name="Dr Ben", specialization="Radiology"),
    ):
        await user_repository.save(user)
    return UserDirectory(user_repository)


@pytest.fixture()
def activity(record_repository, access_repository, endorsement_repository, users, publisher, clock):
    return ActivityAggregator(
        record_repository,
        access_repository,
        endorsement_repository,
        users=users,
        publisher=publisher,
        clock=clock,
    )


async def _grant(engine, patient_id=PATIENT_ID, doctor_id=DOCTOR_ID):
    request = await engine.create(
        doctor_id=doctor_id,
        doctor_role="doctor",
        patient_id=patient_id,
        reason="Managing ongoing cardiac care",
        access_level="read_write",
        requested_record_types=["all"],
        expiry_days=30,
    )
    return await engine.respond(request.id, patient_id, approved=True)


async def _doctor_commit(store, record_id=None, patient_id=PATIENT_ID, doctor_id=DOCTOR_ID):
    return await store.commit_version(
        record_id=record_id,
        owner_id=patient_id if record_id is None else None,
        record_type="lab_report",
        title="Troponin",
        tags=None,
        commit_message="Doctor note",
        blob=BlobUpload(data=b"result", file_name="troponin.txt"),
        committer_id=doctor_id,
        committer_role="doctor",
    )


@pytest.mark.anyio
async def test_three_active_days_then_a_gap(activity, access_engine, record_store, clock):
    await _grant(access_engine)
    day_one = utc_day(clock.now)
    for _ in range(3):
        await _doctor_commit(record_store)
        clock.advance(days=1)

    graph = await activity.contribution_graph(DOCTOR_ID, weeks=1, today=day_one + timedelta(days=4))
    assert [day.count for day in graph][-5:] == [1, 1, 1, 0, 0]
    assert (await activity.summary(DOCTOR_ID, weeks=1, today=day_one + timedelta(days=4))).current_streak == 0

    at_day_three = await activity.summary(DOCTOR_ID, weeks=1, today=day_one + timedelta(days=2))
    assert at_day_three.current_streak == 3
    assert at_day_three.longest_streak == 3
    assert at_day_three.total_contributions == 3
    assert at_day_three.active_days == 3

    # A quiet today does not break a streak that ran through yesterday.
    next_morning = await activity.summary(DOCTOR_ID, weeks=1, today=day_one + timedelta(days=3))
    assert next_morning.current_streak == 3


@pytest.mark.anyio
async def test_graph_is_complete_ordered_and_restartable(activity, clock):
    graph = await activity.contribution_graph(DOCTOR_ID, weeks=2)

    days = list(graph)
    assert len(graph) == 14
    assert days == list(graph)
    assert days[-1].date == utc_day(clock.now)
    assert [d.date for d in days] == sorted(d.date for d in days)
    assert all(d.count == 0 for d in days)
    assert list(graph.as_dict()) == [d.key for d in days]
    assert [len(week) for week in graph.weeks_grid()] == [7, 7]


@pytest.mark.anyio
async def test_graph_defaults_to_configured_window(activity):
    graph = await activity.contribution_graph(DOCTOR_ID)
    assert len(graph) == 26 * 7


@pytest.mark.anyio
@pytest.mark.parametrize("weeks", [0, -1, 53])
async def test_graph_window_is_bounded(activity, weeks):
    with pytest.raises(ValidationError):
        await activity.contribution_graph(DOCTOR_ID, weeks=weeks)


def test_graph_rejects_out_of_range_weeks_directly():
    with pytest.raises(ValueError):
        ContributionGraph({}, today=date(2026, 3, 2), weeks=0)


@pytest.mark.anyio
async def test_patient_commits_do_not_count_but_endorsements_do(activity, record_store, clock):
    await record_store.commit_version(
        record_id=None,
        owner_id=PATIENT_ID,
        record_type="xray",
        title="Knee",
        tags=None,
        commit_message="Upload",
        blob=BlobUpload(data=b"img", file_name="knee.png"),
        committer_id=PATIENT_ID,
        committer_role="patient",
    )
    await activity.endorse(
        doctor_id=OTHER_DOCTOR_ID, endorser_id=DOCTOR_ID, endorser_role="doctor", skill="Imaging"
    )

    summary = await activity.summary(DOCTOR_ID)
    assert summary.total_contributions == 1
    assert (await activity.summary(PATIENT_ID)).total_contributions == 0


@pytest.mark.anyio
async def test_doctor_stats_are_derived_from_history(activity, access_engine, record_store, clock):
    await _grant(access_engine)
    clock.advance(hours=2)
    first = await _doctor_commit(record_store)
    clock.advance(hours=1)
    await _doctor_commit(record_store)
    clock.advance(hours=1)
    await record_store.commit_version(
        record_id=first.record.id,
        owner_id=None,
        record_type="lab_report",
        title="Troponin",
        tags=None,
        commit_message="Patient correction",
        blob=BlobUpload(data=b"fixed", file_name="troponin.txt"),
        committer_id=PATIENT_ID,
        committer_role="patient",
    )
    second_grant = await _grant(access_engine, patient_id=SECOND_PATIENT_ID)
    await access_engine.revoke(second_grant.id, SECOND_PATIENT_ID)
    await activity.endorse(
        doctor_id=DOCTOR_ID, endorser_id=OTHER_DOCTOR_ID, endorser_role="doctor", skill="Cardiology"
    )

    stats = await activity.doctor_stats(DOCTOR_ID)

    assert stats.total_cases_handled == 2
    assert stats.active_cases == 1
    assert stats.average_response_time_hours == 2.0
    assert stats.record_accuracy_score == 50.0
    assert stats.endorsement_count == 1
    assert stats.last_active_at == clock.now - timedelta(hours=1)


@pytest.mark.anyio
async def test_stats_without_history_have_no_samples(activity):
    stats = await activity.doctor_stats(OTHER_DOCTOR_ID)
    assert stats.total_cases_handled == 0
    assert stats.average_response_time_hours is None
    assert stats.record_accuracy_score is None
    assert stats.last_active_at is None


@pytest.mark.anyio
async def test_endorse_rules(activity, publisher):
    with pytest.raises(ForbiddenError):
        await activity.endorse(
            doctor_id=DOCTOR_ID, endorser_id=PATIENT_ID, endorser_role="patient", skill="Kindness"
        )
    with pytest.raises(ValidationError, match="yourself"):
        await activity.endorse(
            doctor_id=DOCTOR_ID, endorser_id=DOCTOR_ID, endorser_role="doctor", skill="Cardiology"
        )
    with pytest.raises(ValidationError, match="1 to 80"):
        await activity.endorse(
            doctor_id=DOCTOR_ID, endorser_id=OTHER_DOCTOR_ID, endorser_role="doctor", skill="x" * 81
        )
    with pytest.raises(NotFoundError):
        await activity.endorse(
            doctor_id=PATIENT_ID, endorser_id=OTHER_DOCTOR_ID, endorser_role="doctor", skill="Care"
        )

    endorsement = await activity.endorse(
        doctor_id=DOCTOR_ID,
        endorser_id=OTHER_DOCTOR_ID,
        endorser_role="doctor",
        skill=" Cardiology ",
        note="Excellent ECG reads",
    )
    assert endorsement.skill == "Cardiology"
    [event] = publisher.of_type(DoctorEndorsed)
    assert event.doctor_id == DOCTOR_ID


@pytest.mark.anyio
async def test_discovery_filters_and_sorts(activity, access_engine):
    await _grant(access_engine)
    await _grant(access_engine, patient_id=SECOND_PATIENT_ID)
    await _grant(access_engine, doctor_id=OTHER_DOCTOR_ID)

    ranked = await activity.discover_doctors()
    assert [p.user.id for p in ranked] == [DOCTOR_ID, OTHER_DOCTOR_ID]
    assert [p.stats.total_cases_handled for p in ranked] == [2, 1]

    assert [p.user.id for p in await activity.discover_doctors(specialization="radio")] == [
        OTHER_DOCTOR_ID
    ]
    assert [p.user.id for p in await activity.discover_doctors(condition_tag="Hypertension")] == [
        DOCTOR_ID
    ]
    assert [p.user.id for p in await activity.discover_doctors(min_cases=2)] == [DOCTOR_ID]

    by_response = await activity.discover_doctors(sort_by="average_response_time_hours")
    assert len(by_response) == 2

    with pytest.raises(ValidationError, match="sort_by"):
        await activity.discover_doctors(sort_by="rating")


@pytest.mark.anyio
async def test_profile_of_unknown_doctor_is_not_found(activity):
    assert (await activity.profile(DOCTOR_ID)).user.display_name == "Dr Ada"
    with pytest.raises(NotFoundError):
        await activity.profile(PATIENT_ID)


@pytest.mark.anyio
async def test_profile_counts_endorsements_per_skill(activity, users, user_repository, clock):
    await user_repository.save(User(id="doctor-3", role="doctor", display_name="Dr Cy"))
    for endorser, skill in (
        (OTHER_DOCTOR_ID, "Echocardiography"),
        ("doctor-3", "Echocardiography"),
        ("doctor-3", "Bedside manner"),
    ):
        clock.advance(minutes=1)
        await activity.endorse(doctor_id=DOCTOR_ID, endorser_id=endorser, endorser_role="doctor", skill=skill)

    profile = await activity.profile(DOCTOR_ID)
    assert profile.endorsement_counts == {"Echocardiography": 2, "Bedside manner": 1}
    assert list(profile.endorsement_counts) == ["Echocardiography", "Bedside manner"]
    assert profile.stats.endorsement_count == 3

    [listed] = [p for p in await activity.discover_doctors() if p.user.id == DOCTOR_ID]
    assert listed.endorsement_counts == profile.endorsement_counts
    assert (await activity.profile(OTHER_DOCTOR_ID)).endorsement_counts == {}
