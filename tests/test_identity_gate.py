import pytest

from classroom_app.core.document_store import InMemoryDocumentStore
from classroom_app.core.errors import AuthError, NotFoundError, ValidationError
from classroom_app.core.models import Role
from classroom_app.core.services.identity_gate import IdentityGate


@pytest.fixture
def accounts(provider):
    provider.create_account("srcsteach01@srcs.edu", "teach-pass")
    provider.create_account("srcslearn01@srcs.edu", "learn-pass")
    provider.create_account("admin001@srcs.edu", "admin-pass")


def test_login_creates_profile_from_email_on_first_sign_in(gate, store, accounts):
    session = gate.login("SRCSLearn01", "learn-pass", "student")

    assert session.profile.email == "srcslearn01@srcs.edu"
    assert session.profile.role is Role.STUDENT
    assert session.profile.first_name == "srcslearn"
    assert session.profile.gender == "Not specified"
    assert store.get("users", session.principal_id) is not None
    assert gate.current_session(session.token) is session


def test_second_login_reuses_existing_profile(gate, accounts):
    first = gate.login("srcslearn01", "learn-pass", Role.STUDENT)
    gate.update_profile(first.principal_id, first_name="Ana", last_name="Reyes")
    gate.logout(first.token)

    second = gate.login("srcslearn01", "learn-pass", Role.STUDENT)
    assert (second.profile.first_name, second.profile.last_name) == ("Ana", "Reyes")


def test_role_mismatch_is_rejected_without_creating_a_profile(gate, store, accounts):
    with pytest.raises(AuthError, match="not registered as a teacher"):
        gate.login("srcslearn01", "learn-pass", "teacher")
    assert store.query("users") == []


def test_admin_may_sign_in_through_teacher_role(gate, accounts):
    session = gate.login("admin001", "admin-pass", "teacher")
    assert session.profile.role is Role.ADMIN


def test_unassigned_user_and_bad_password_are_rejected(gate, provider, accounts):
    provider.create_account("stranger@srcs.edu", "pw")
    with pytest.raises(AuthError):
        gate.login("stranger", "pw", "student")
    with pytest.raises(AuthError, match="Invalid credentials"):
        gate.login("srcsteach01", "wrong", "teacher")


def test_empty_username_is_a_validation_error(gate):
    with pytest.raises(ValidationError):
        gate.login("   ", "x", "student")


def test_logout_clears_session_and_notifies_listeners(gate, provider, accounts):
    events = []
    gate.on_session_changed(events.append)
    session = gate.login("srcsteach01", "teach-pass", "teacher")
    assert provider.is_signed_in(session.principal_id)
    gate.logout(session.token)

    assert not provider.is_signed_in(session.principal_id)
    assert gate.current_session(session.token) is None
    assert [event.role if event else None for event in events] == [Role.TEACHER, None]
    with pytest.raises(AuthError):
        gate.require_session(session.token)


def test_update_profile_refreshes_live_sessions(gate, accounts):
    session = gate.login("srcslearn01", "learn-pass", "student")
    gate.update_profile(session.principal_id, gender="Female")
    assert gate.refresh_profile(session.token).profile.gender == "Female"
    assert session.profile.gender == "Female"

    with pytest.raises(ValidationError):
        gate.update_profile(session.principal_id, first_name="  ")
    with pytest.raises(NotFoundError):
        gate.update_profile("missing", first_name="Ana")


class VanishingProfileStore(InMemoryDocumentStore):
    """Deletes the document instead of updating it, as a concurrent delete would."""

    def update(self, collection, doc_id, changes):
        self.delete(collection, doc_id)


def test_update_profile_of_a_profile_deleted_mid_update(provider, roles, accounts):
    gate = IdentityGate(VanishingProfileStore(), provider, roles)
    session = gate.login("srcslearn01", "learn-pass", "student")

    with pytest.raises(NotFoundError):
        gate.update_profile(session.principal_id, gender="Female")


def test_provisioned_account_can_sign_in_with_generated_password(gate):
    profile, password = gate.provision_account("newkid01", "Ben", "Cruz", "student")

    assert len(password) == 8
    assert profile.email == "newkid01@srcs.edu"
    session = gate.login("newkid01", password, "student")
    assert session.profile.last_name == "Cruz"
    assert [student.id for student in gate.list_students()] == [profile.id]


def test_delete_account_removes_credentials_role_and_profile(gate):
    profile, password = gate.provision_account("temp01", "Tim", "Lee", "teacher")
    gate.delete_account(profile.id)

    assert gate.get_profile(profile.id) is None
    with pytest.raises(AuthError):
        gate.login("temp01", password, "teacher")
    with pytest.raises(NotFoundError):
        gate.delete_account(profile.id)


def test_unknown_role_in_directory_is_rejected(roles):
    with pytest.raises(ValidationError):
        roles.assign("x@srcs.edu", "principal")
