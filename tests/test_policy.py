"""Політика доступу: чисті функції, без БД."""
import pytest

from concerndesk.core.errors import Unauthorized
from concerndesk.db.models import Concern, ConcernStatusEnum, RoleEnum
from concerndesk.services.policy import (
    AuthIdentity,
    authorize,
    can_access,
    can_assign,
    can_delete,
    can_rate,
    can_submit,
    can_transition,
    can_view_stats,
    rating_open,
)

STUDENT = AuthIdentity(id=1, role=RoleEnum.student, name="Owner")
OTHER_STUDENT = AuthIdentity(id=2, role=RoleEnum.student, name="Other")
MENTOR = AuthIdentity(id=3, role=RoleEnum.mentor, name="Mentor")
OTHER_MENTOR = AuthIdentity(id=4, role=RoleEnum.mentor, name="Other Mentor")
ADMIN = AuthIdentity(id=5, role=RoleEnum.admin, name="Admin")
SUPERADMIN = AuthIdentity(id=6, role=RoleEnum.superadmin, name="Super")


def make_concern(status=ConcernStatusEnum.submitted, assigned_to_id=None) -> Concern:
    return Concern(id=10, student_id=STUDENT.id, assigned_to_id=assigned_to_id, status=status)


class TestCanAccess:
    def test_owner_student_has_access(self):
        assert can_access(STUDENT, make_concern())

    def test_other_student_denied(self):
        assert not can_access(OTHER_STUDENT, make_concern())

    def test_mentor_needs_assignment(self):
        assert not can_access(MENTOR, make_concern())
        assert can_access(MENTOR, make_concern(assigned_to_id=MENTOR.id))
        assert not can_access(OTHER_MENTOR, make_concern(assigned_to_id=MENTOR.id))

    @pytest.mark.parametrize("actor", [ADMIN, SUPERADMIN])
    def test_admins_always(self, actor):
        assert can_access(actor, make_concern())
        assert can_access(actor, make_concern(assigned_to_id=MENTOR.id))


class TestCanTransition:
    def test_owner_student_cannot_change_status(self):
        assert not can_transition(STUDENT, make_concern(), ConcernStatusEnum.closed)

    def test_assigned_mentor_can_change_any_status(self):
        concern = make_concern(assigned_to_id=MENTOR.id)
        for status in ConcernStatusEnum:
            assert can_transition(MENTOR, concern, status)

    def test_unassigned_mentor_denied(self):
        assert not can_transition(MENTOR, make_concern(), ConcernStatusEnum.in_progress)

    def test_admin_allowed(self):
        assert can_transition(ADMIN, make_concern(), ConcernStatusEnum.resolved)


class TestAdminOnlyActions:
    @pytest.mark.parametrize("actor,expected", [
        (STUDENT, False),
        (MENTOR, False),
        (ADMIN, True),
        (SUPERADMIN, True),
    ])
    def test_assign_delete_stats(self, actor, expected):
        concern = make_concern()
        assert can_assign(actor, concern) is expected
        assert can_delete(actor, concern) is expected
        assert can_view_stats(actor) is expected


class TestRatingAndSubmit:
    def test_only_owner_can_rate(self):
        concern = make_concern(status=ConcernStatusEnum.resolved)
        assert can_rate(STUDENT, concern)
        assert not can_rate(OTHER_STUDENT, concern)
        assert not can_rate(ADMIN, concern)

    def test_rating_window(self):
        assert rating_open(make_concern(status=ConcernStatusEnum.resolved))
        assert rating_open(make_concern(status=ConcernStatusEnum.closed))
        assert not rating_open(make_concern(status=ConcernStatusEnum.in_progress))

    def test_only_students_submit(self):
        assert can_submit(STUDENT)
        assert not can_submit(MENTOR)
        assert not can_submit(ADMIN)


class TestAuthorize:
    def test_raises_unauthorized_with_message(self):
        with pytest.raises(Unauthorized) as exc:
            authorize(False, "Nope")
        assert exc.value.message == "Nope"
        assert exc.value.status_code == 403

    def test_passes_when_allowed(self):
        assert authorize(True) is None
