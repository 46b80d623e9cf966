import pytest

from medilocker.errors import ForbiddenError, ValidationError
from medilocker.models import UserRole
from medilocker.services.identity import Principal
from medilocker.services.users import UserDirectory


def _principal(subject_id: str, role: UserRole, **claims) -> Principal:
    return Principal(subject_id=subject_id, role=role, claims=claims)


@pytest.fixture()
def directory(user_repository):
    return UserDirectory(user_repository)


@pytest.mark.anyio
async def test_register_doctor_takes_name_from_token(directory):
    doctor = _principal("doctor-1", UserRole.doctor, name="Dr Ada", email="ada@example.org")

    user = await directory.register(
        doctor, specialization=" Cardiology ", condition_tags=["Hypertension", " arrhythmia", ""]
    )

    assert user.display_name == "Dr Ada"
    assert user.email == "ada@example.org"
    assert user.role == "doctor"
    assert user.specialization == "Cardiology"
    assert user.condition_tag_list == ["arrhythmia", "hypertension"]


@pytest.mark.anyio
async def test_register_again_refreshes_without_losing_fields(directory):
    doctor = _principal("doctor-1", UserRole.doctor)
    await directory.register(doctor, display_name="Dr Ada", specialization="Cardiology")

    user = await directory.register(doctor, display_name="Dr Ada Lovelace")

    assert user.display_name == "Dr Ada Lovelace"
    assert user.specialization == "Cardiology"
    assert len(await directory.doctors()) == 1


@pytest.mark.anyio
async def test_register_requires_a_display_name(directory):
    with pytest.raises(ValidationError, match="Display name"):
        await directory.register(_principal("patient-1", UserRole.patient), display_name="  ")


@pytest.mark.anyio
async def test_patients_have_no_specialization(directory):
    with pytest.raises(ValidationError, match="specialization"):
        await directory.register(
            _principal("patient-1", UserRole.patient),
            display_name="Pat",
            specialization="Cardiology",
        )


@pytest.mark.anyio
async def test_role_cannot_change_after_registration(directory):
    await directory.register(_principal("user-1", UserRole.patient), display_name="Pat")

    with pytest.raises(ForbiddenError):
        await directory.register(_principal("user-1", UserRole.doctor), display_name="Dr Pat")


@pytest.mark.anyio
async def test_patient_search(directory):
    for subject_id, name, email in (
        ("patient-1", "Pat Jones", "pat@example.org"),
        ("patient-2", "Sam Patel", None),
        ("patient-3", "Robin Lee", "robin@clinic.example.org"),
    ):
        await directory.register(
            _principal(subject_id, UserRole.patient, email=email),
            display_name=name,
        )
    await directory.register(_principal("doctor-1", UserRole.doctor), display_name="Dr Patterson")
    doctor = _principal("doctor-1", UserRole.doctor)

    names = [u.display_name for u in await directory.search_patients(doctor, "pat")]
    assert names == ["Pat Jones", "Sam Patel"]
    assert [u.id for u in await directory.search_patients(doctor, "CLINIC")] == ["patient-3"]
    assert await directory.search_patients(doctor, " p ") == []

    with pytest.raises(ForbiddenError):
        await directory.search_patients(_principal("patient-1", UserRole.patient), "pat")
