"""
Tests for AchievementWorkflowService.

Verifies:
- Create, Edit, Upload, Submit, Delete, Verify, Reject against the state machine
- Ownership and advising checks
- Compensation and reconciliation on partial cross-store failures
- Detail and listing read paths, visibility, and pagination
"""

import io

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import OperationalError

from student_achievements.achievements.enums import AchievementStatus, Role
from student_achievements.achievements.errors import (
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from student_achievements.achievements.identity import CurrentUser
from student_achievements.achievements.references import ReferenceStore
from student_achievements.achievements.schemas import (
    MAX_POINTS,
    AchievementCreate,
    AchievementUpdate,
)
from student_achievements.achievements.services import AchievementWorkflowService
from student_achievements.attachments.uploader import IncomingFile
from student_achievements.db.audit_models import AuditLogModel
from student_achievements.db.models import (
    AchievementReferenceModel,
    ReconciliationEntryModel,
)
from student_achievements.documents.repository import DocumentDecodeError


def pdf(size=None, name="sertifikat.pdf", content_type="application/pdf"):
    data = b"%PDF-1.4 proof of achievement"
    return IncomingFile(
        filename=name,
        content_type=content_type,
        size=len(data) if size is None else size,
        stream=io.BytesIO(data),
    )


def db_failure():
    return OperationalError("INSERT INTO achievement_references", {}, Exception("db down"))


@pytest.fixture
def draft(service, profiles, payload_factory):
    return service.create(profiles.student, payload_factory())


@pytest.fixture
def submitted(service, profiles, draft):
    service.submit(draft.id, profiles.student)
    return draft


class TestCreate:
    """Tests for AchievementWorkflowService.create()."""

    def test_create_starts_as_draft(self, service, documents, profiles, draft):
        assert draft.status == "draft"
        assert draft.student_id == profiles.student_id
        assert draft.document_id in documents.documents

    def test_create_round_trip(self, service, profiles, payload_factory):
        ref = service.create(
            profiles.student,
            payload_factory(title="Juara 1 Hackathon", achievement_type="Nasional"),
        )

        detail = service.get_detail(ref.id, profiles.student)

        assert detail.title == "Juara 1 Hackathon"
        assert detail.achievement_type == "Nasional"
        assert detail.status == "draft"
        assert detail.attachments == []
        assert detail.points == 0

    def test_document_never_carries_status(self, documents, draft):
        stored = documents.documents[draft.document_id]
        assert "status" not in stored.model_dump()

    def test_non_student_cannot_create(self, service, profiles, payload_factory):
        with pytest.raises(ValidationError, match="Only students"):
            service.create(profiles.admin, payload_factory())
        with pytest.raises(ValidationError, match="Only students"):
            service.create(profiles.advisor, payload_factory())

    def test_student_role_without_profile(self, service, profiles, payload_factory):
        ghost = CurrentUser("user-unknown", Role.STUDENT)
        with pytest.raises(ValidationError, match="Only students"):
            service.create(ghost, payload_factory())

    def test_document_insert_failure_writes_nothing(
        self, service, db_session, documents, profiles, payload_factory
    ):
        documents.fail_on.add("insert")

        with pytest.raises(DatabaseError):
            service.create(profiles.student, payload_factory())

        assert db_session.query(AchievementReferenceModel).count() == 0

    def test_reference_failure_removes_document(
        self, service, db_session, documents, profiles, payload_factory, monkeypatch
    ):
        def broken_create(*args, **kwargs):
            raise db_failure()

        monkeypatch.setattr(service.references, "create", broken_create)

        with pytest.raises(DatabaseError) as exc_info:
            service.create(profiles.student, payload_factory())

        assert exc_info.value.message == DatabaseError.GENERIC_MESSAGE
        assert documents.documents == {}
        assert db_session.query(ReconciliationEntryModel).count() == 0

    def test_failed_compensation_is_queued(
        self, service, db_session, documents, profiles, payload_factory, monkeypatch
    ):
        def broken_create(*args, **kwargs):
            raise db_failure()

        monkeypatch.setattr(service.references, "create", broken_create)
        documents.fail_on.add("delete")

        with pytest.raises(DatabaseError):
            service.create(profiles.student, payload_factory())

        (orphan_id,) = documents.documents.keys()
        entry = db_session.query(ReconciliationEntryModel).one()
        assert entry.action == "delete_document"
        assert entry.document_id == orphan_id
        assert entry.resolved_at is None
        assert db_session.query(AchievementReferenceModel).count() == 0

    def test_unstorable_details_rejected_before_any_write(
        self, service, db_session, documents, profiles
    ):
        # Bypasses request validation, as an internal caller would
        payload = AchievementCreate.model_construct(
            achievement_type="Nasional",
            title="Juara 1 Hackathon",
            description="",
            details={"nim_hash": 10**20},
            tags=[],
        )

        with pytest.raises(ValidationError, match="cannot be stored"):
            service.create(profiles.student, payload)

        assert documents.documents == {}
        assert db_session.query(AchievementReferenceModel).count() == 0

    def test_payload_schema_bounds_detail_integers(self):
        with pytest.raises(PydanticValidationError, match="out of range"):
            AchievementCreate(
                achievement_type="Nasional", title="x", details={"a": [1, 2**64]}
            )


class TestEdit:
    """Tests for AchievementWorkflowService.edit()."""

    def test_edit_applies_only_supplied_fields(self, service, profiles, draft):
        service.edit(
            draft.id,
            profiles.student,
            AchievementUpdate(title="Juara 2 Hackathon", tags=["updated"]),
        )

        detail = service.get_detail(draft.id, profiles.student)
        assert detail.title == "Juara 2 Hackathon"
        assert detail.tags == ["updated"]
        assert detail.achievement_type == "Nasional"
        assert detail.description == "Hackathon tingkat nasional"

    def test_edit_touches_reference(self, service, db_session, profiles, draft):
        before = draft.updated_at
        service.edit(draft.id, profiles.student, AchievementUpdate(description="New"))

        ref = db_session.get(AchievementReferenceModel, draft.id)
        assert ref.updated_at >= before.replace(tzinfo=ref.updated_at.tzinfo)

    def test_edit_unknown_achievement(self, service, profiles):
        with pytest.raises(NotFoundError):
            service.edit("missing-id", profiles.student, AchievementUpdate(title="x"))

    def test_edit_by_other_student(self, service, profiles, draft):
        with pytest.raises(ValidationError, match="not your achievement"):
            service.edit(draft.id, profiles.other_student, AchievementUpdate(title="x"))

    def test_edit_after_submit_is_rejected(self, service, documents, profiles, submitted):
        with pytest.raises(ValidationError, match="Only draft"):
            service.edit(submitted.id, profiles.student, AchievementUpdate(title="Changed"))

        assert documents.documents[submitted.document_id].title == "Juara 1 Hackathon"

    def test_edit_document_failure(self, service, documents, profiles, draft):
        documents.fail_on.add("update_content")
        with pytest.raises(DatabaseError):
            service.edit(draft.id, profiles.student, AchievementUpdate(title="x"))

    @pytest.mark.parametrize("field", ["title", "achievement_type"])
    def test_blank_required_content_rejected(self, field):
        with pytest.raises(PydanticValidationError, match="must not be blank"):
            AchievementUpdate(**{field: "   "})

    def test_edit_with_unstorable_details(self, service, documents, profiles, draft):
        update = AchievementUpdate.model_construct(details={"x": 10**20})

        with pytest.raises(ValidationError, match="cannot be stored"):
            service.edit(draft.id, profiles.student, update)

        assert documents.documents[draft.document_id].details == {
            "organizer": "Kemdikbud",
            "rank": 1,
        }

    def test_edit_audit_records_previous_values(
        self, service, db_session, profiles, draft
    ):
        service.edit(draft.id, profiles.student, AchievementUpdate(title="Juara 2"))

        entry = (
            db_session.query(AuditLogModel)
            .filter(AuditLogModel.entity_id == draft.id, AuditLogModel.action == "updated")
            .one()
        )
        assert entry.before == {"title": "Juara 1 Hackathon"}
        assert entry.after == {"title": "Juara 2"}

    def test_edit_missing_document(self, service, documents, profiles, draft):
        del documents.documents[draft.document_id]
        with pytest.raises(NotFoundError, match="content not found"):
            service.edit(draft.id, profiles.student, AchievementUpdate(title="x"))


class TestUploadAttachment:
    """Tests for AchievementWorkflowService.upload_attachment()."""

    def test_upload_appends_pointer(self, service, profiles, draft, upload_dir):
        detail = service.upload_attachment(draft.id, profiles.student, pdf())

        assert len(detail.attachments) == 1
        pointer = detail.attachments[0]
        assert pointer.file_name.startswith(f"ACH-{draft.id}-")
        assert pointer.file_name.endswith(".pdf")
        assert pointer.file_url == f"/uploads/achievements/{pointer.file_name}"
        assert pointer.file_type == "application/pdf"
        assert (upload_dir / pointer.file_name).exists()

    def test_oversized_file_rejected(self, service, documents, profiles, draft, upload_dir):
        with pytest.raises(ValidationError, match="5MB"):
            service.upload_attachment(
                draft.id, profiles.student, pdf(size=6 * 1024 * 1024)
            )

        assert documents.documents[draft.document_id].attachments == []
        assert list(upload_dir.iterdir()) == []

    def test_unsupported_type_rejected(self, service, profiles, draft):
        with pytest.raises(ValidationError, match="Unsupported file type"):
            service.upload_attachment(
                draft.id,
                profiles.student,
                pdf(name="notes.txt", content_type="text/plain"),
            )

    def test_upload_by_other_student(self, service, profiles, draft):
        with pytest.raises(ValidationError, match="not your achievement"):
            service.upload_attachment(draft.id, profiles.other_student, pdf())

    def test_upload_after_submit(self, service, profiles, submitted, upload_dir):
        with pytest.raises(ValidationError):
            service.upload_attachment(submitted.id, profiles.student, pdf())
        assert list(upload_dir.iterdir()) == []

    def test_failed_append_removes_file(
        self, service, db_session, documents, profiles, draft, upload_dir
    ):
        documents.fail_on.add("add_attachment")

        with pytest.raises(DatabaseError):
            service.upload_attachment(draft.id, profiles.student, pdf())

        assert list(upload_dir.iterdir()) == []
        assert db_session.query(ReconciliationEntryModel).count() == 0

    def test_failed_file_removal_is_queued(
        self, service, db_session, documents, uploader, profiles, draft, monkeypatch
    ):
        documents.fail_on.add("add_attachment")

        def broken_delete(file_name):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr(uploader.store, "delete", broken_delete)

        with pytest.raises(DatabaseError):
            service.upload_attachment(draft.id, profiles.student, pdf())

        entry = db_session.query(ReconciliationEntryModel).one()
        assert entry.action == "delete_file"
        assert entry.achievement_id == draft.id
        assert entry.payload["file_name"].startswith(f"ACH-{draft.id}-")


class TestSubmitAndDelete:
    def test_submit(self, service, db_session, profiles, draft):
        result = service.submit(draft.id, profiles.student)

        assert result.status == "submitted"
        assert result.submitted_at is not None

    def test_submit_twice(self, service, profiles, submitted):
        with pytest.raises(ValidationError, match="Only draft"):
            service.submit(submitted.id, profiles.student)

    def test_submit_by_other_student(self, service, profiles, draft):
        with pytest.raises(ValidationError):
            service.submit(draft.id, profiles.other_student)

    def test_advisor_cannot_submit(self, service, profiles, draft):
        with pytest.raises(ValidationError):
            service.submit(draft.id, profiles.advisor)

    def test_delete_keeps_document(self, service, documents, profiles, draft):
        result = service.delete(draft.id, profiles.student)

        assert result.status == "deleted"
        assert draft.document_id in documents.documents

    def test_deleted_detail_still_readable(self, service, profiles, draft):
        service.delete(draft.id, profiles.student)

        detail = service.get_detail(draft.id, profiles.student)
        assert detail.status == "deleted"

    def test_delete_submitted_is_rejected(self, service, profiles, submitted):
        with pytest.raises(ValidationError, match="Only draft"):
            service.delete(submitted.id, profiles.student)

    def test_deleted_is_terminal(self, service, profiles, draft):
        service.delete(draft.id, profiles.student)
        with pytest.raises(ValidationError):
            service.submit(draft.id, profiles.student)


class TestVerify:
    """Tests for AchievementWorkflowService.verify()."""

    def test_create_submit_verify(self, service, profiles, submitted):
        result = service.verify(submitted.id, profiles.advisor, 100)

        assert result.status == "verified"
        assert result.verified_by == profiles.advisor_id
        assert result.verified_at is not None

        detail = service.get_detail(submitted.id, profiles.student)
        assert detail.status == "verified"
        assert detail.points == 100

    def test_second_verify_fails(self, service, profiles, submitted):
        service.verify(submitted.id, profiles.advisor, 100)

        with pytest.raises(ValidationError, match="Only submitted"):
            service.verify(submitted.id, profiles.advisor, 10)

        assert service.get_detail(submitted.id, profiles.advisor).points == 100

    def test_verify_draft(self, service, profiles, draft):
        with pytest.raises(ValidationError, match="Only submitted"):
            service.verify(draft.id, profiles.advisor, 50)

    def test_verify_unknown(self, service, profiles):
        with pytest.raises(NotFoundError):
            service.verify("missing-id", profiles.advisor, 50)

    def test_verify_by_non_lecturer(self, service, profiles, submitted):
        with pytest.raises(ValidationError, match="not a lecturer"):
            service.verify(submitted.id, profiles.student, 50)

    def test_verify_by_other_advisor(self, service, profiles, submitted):
        with pytest.raises(ValidationError, match="not your advisee"):
            service.verify(submitted.id, profiles.other_advisor, 50)

    @pytest.mark.parametrize("points", [0, -5])
    def test_points_must_be_positive(self, service, profiles, submitted, points):
        with pytest.raises(ValidationError, match="positive"):
            service.verify(submitted.id, profiles.advisor, points)

    def test_student_without_advisor_cannot_be_verified(
        self, service, profiles, payload_factory
    ):
        ref = service.create(profiles.orphan_student, payload_factory())
        service.submit(ref.id, profiles.orphan_student)

        with pytest.raises(ValidationError, match="not your advisee"):
            service.verify(ref.id, profiles.advisor, 10)

    def test_points_failure_leaves_verified_and_queues(
        self, service, db_session, documents, profiles, submitted
    ):
        documents.fail_on.add("set_points")

        with pytest.raises(DatabaseError):
            service.verify(submitted.id, profiles.advisor, 75)

        ref = db_session.get(AchievementReferenceModel, submitted.id)
        db_session.refresh(ref)
        assert ref.status == "verified"
        assert documents.documents[submitted.document_id].points == 0

        entry = db_session.query(ReconciliationEntryModel).one()
        assert entry.action == "apply_points"
        assert entry.achievement_id == submitted.id
        assert entry.payload == {"points": 75}

    def test_concurrent_verify_only_one_wins(
        self, db_session, documents, uploader, profiles, submitted, monkeypatch
    ):
        first = AchievementWorkflowService(db_session, documents, uploader)
        second = AchievementWorkflowService(db_session, documents, uploader)
        guarded = second.references.transition

        def racing_transition(*args, **kwargs):
            # The other advisor request lands between our status read and our write
            first.verify(submitted.id, profiles.advisor, 80)
            return guarded(*args, **kwargs)

        monkeypatch.setattr(second.references, "transition", racing_transition)

        with pytest.raises(ValidationError, match="Only submitted"):
            second.verify(submitted.id, profiles.advisor, 50)

        detail = first.get_detail(submitted.id, profiles.advisor)
        assert detail.status == "verified"
        assert detail.points == 80

    def test_points_above_maximum_leave_submission_untouched(
        self, service, db_session, profiles, submitted
    ):
        with pytest.raises(ValidationError, match="positive"):
            service.verify(submitted.id, profiles.advisor, 2**63)

        ref = db_session.get(AchievementReferenceModel, submitted.id)
        db_session.refresh(ref)
        assert ref.status == "submitted"
        assert db_session.query(ReconciliationEntryModel).count() == 0

    def test_maximum_points_accepted(self, service, profiles, submitted):
        service.verify(submitted.id, profiles.advisor, MAX_POINTS)
        assert service.get_detail(submitted.id, profiles.advisor).points == MAX_POINTS

    def test_unencodable_points_write_is_queued(
        self, service, db_session, documents, profiles, submitted, monkeypatch
    ):
        def overflowing_set_points(document_id, points):
            raise OverflowError("MongoDB can only handle up to 8-byte ints")

        monkeypatch.setattr(documents, "set_points", overflowing_set_points)

        with pytest.raises(DatabaseError):
            service.verify(submitted.id, profiles.advisor, 75)

        entry = db_session.query(ReconciliationEntryModel).one()
        assert entry.action == "apply_points"
        assert entry.payload == {"points": 75}


class TestReject:
    """Tests for AchievementWorkflowService.reject()."""

    def test_create_submit_reject(self, service, profiles, submitted):
        result = service.reject(submitted.id, profiles.advisor, "Bukti tidak valid")

        assert result.status == "rejected"
        assert result.rejection_note == "Bukti tidak valid"
        assert result.verified_by == profiles.advisor_id

        detail = service.get_detail(submitted.id, profiles.student)
        assert detail.status == "rejected"
        assert detail.rejection_note == "Bukti tidak valid"
        assert detail.points == 0

    def test_note_is_trimmed_before_length_check(self, service, profiles, submitted):
        with pytest.raises(ValidationError, match="at least 5"):
            service.reject(submitted.id, profiles.advisor, "  abc   ")

    def test_rejected_is_terminal(self, service, profiles, submitted):
        service.reject(submitted.id, profiles.advisor, "Bukti tidak valid")

        with pytest.raises(ValidationError):
            service.verify(submitted.id, profiles.advisor, 10)
        with pytest.raises(ValidationError):
            service.reject(submitted.id, profiles.advisor, "Another reason")
        with pytest.raises(ValidationError):
            service.edit(submitted.id, profiles.student, AchievementUpdate(title="Retry"))

    def test_reject_does_not_touch_document(self, service, documents, profiles, submitted):
        before = documents.documents[submitted.document_id].model_dump()
        service.reject(submitted.id, profiles.advisor, "Bukti tidak valid")
        assert documents.documents[submitted.document_id].model_dump() == before

    def test_reject_by_other_advisor(self, service, profiles, submitted):
        with pytest.raises(ValidationError, match="not your advisee"):
            service.reject(submitted.id, profiles.other_advisor, "Bukti tidak valid")


class TestGuardedTransition:
    """Tests for ReferenceStore.transition() compare-and-set."""

    def test_only_first_transition_lands(self, db_session, draft):
        store = ReferenceStore(db_session)

        assert store.transition(draft.id, AchievementStatus.DRAFT, AchievementStatus.SUBMITTED)
        assert not store.transition(
            draft.id, AchievementStatus.DRAFT, AchievementStatus.DELETED
        )
        assert store.get(draft.id).status == "submitted"


class TestGetDetail:
    """Tests for AchievementWorkflowService.get_detail()."""

    def test_owner_sees_detail(self, service, profiles, draft):
        detail = service.get_detail(draft.id, profiles.student)
        assert detail.student.id == profiles.student_id
        assert detail.student.full_name == "Andi Pratama"
        assert detail.details == {"organizer": "Kemdikbud", "rank": 1}

    def test_other_student_denied(self, service, profiles, draft):
        with pytest.raises(ValidationError):
            service.get_detail(draft.id, profiles.other_student)

    def test_advisor_sees_advisee(self, service, profiles, draft):
        assert service.get_detail(draft.id, profiles.advisor).id == draft.id

    def test_other_advisor_denied(self, service, profiles, draft):
        with pytest.raises(ValidationError, match="not your advisee"):
            service.get_detail(draft.id, profiles.other_advisor)

    def test_student_without_advisor_hidden_from_advisors(
        self, service, profiles, payload_factory
    ):
        ref = service.create(profiles.orphan_student, payload_factory())
        with pytest.raises(ValidationError):
            service.get_detail(ref.id, profiles.advisor)

    def test_admin_sees_everything(self, service, profiles, draft):
        assert service.get_detail(draft.id, profiles.admin).id == draft.id

    def test_unknown_achievement(self, service, profiles):
        with pytest.raises(NotFoundError):
            service.get_detail("missing-id", profiles.admin)

    def test_missing_document_is_not_found(self, service, documents, profiles, draft):
        del documents.documents[draft.document_id]
        with pytest.raises(NotFoundError, match="content not found"):
            service.get_detail(draft.id, profiles.student)

    def test_document_store_outage(self, service, documents, profiles, draft):
        documents.fail_on.add("get")
        with pytest.raises(DatabaseError):
            service.get_detail(draft.id, profiles.student)

    def test_malformed_document_is_database_error(
        self, service, documents, profiles, draft, monkeypatch
    ):
        def malformed_get(document_id):
            raise DocumentDecodeError(f"Malformed achievement document {document_id}")

        monkeypatch.setattr(documents, "get", malformed_get)

        with pytest.raises(DatabaseError) as exc_info:
            service.get_detail(draft.id, profiles.student)
        assert exc_info.value.message == DatabaseError.GENERIC_MESSAGE


class TestListing:
    """Tests for get_all() and get_by_student()."""

    @pytest.fixture
    def catalogue(self, service, profiles, payload_factory):
        """Three submitted and one draft for the first advisee, two submitted
        for the second, one deleted for the first."""
        refs = {"mine_submitted": [], "other_submitted": []}
        for i in range(3):
            ref = service.create(profiles.student, payload_factory(title=f"Lomba {i}"))
            service.submit(ref.id, profiles.student)
            refs["mine_submitted"].append(ref.id)
        refs["mine_draft"] = service.create(profiles.student, payload_factory(title="Draft")).id
        deleted = service.create(profiles.student, payload_factory(title="Gone"))
        service.delete(deleted.id, profiles.student)
        refs["deleted"] = deleted.id
        for i in range(2):
            ref = service.create(profiles.other_student, payload_factory(title=f"Other {i}"))
            service.submit(ref.id, profiles.other_student)
            refs["other_submitted"].append(ref.id)
        return refs

    def test_advisor_status_filter_and_paging(self, service, profiles, catalogue):
        page = service.get_all(profiles.advisor, page=1, limit=2, status="submitted")

        assert page.total == 3
        assert page.total_pages == 2
        assert page.page_size == 2
        assert len(page.data) == 2
        assert {item.student_id for item in page.data} == {profiles.student_id}

        second = service.get_all(profiles.advisor, page=2, limit=2, status="submitted")
        assert len(second.data) == 1
        ids = {i.id for i in page.data} | {i.id for i in second.data}
        assert ids == set(catalogue["mine_submitted"])

    def test_student_sees_own_without_deleted(self, service, profiles, catalogue):
        page = service.get_all(profiles.student)

        assert page.total == 4
        assert catalogue["deleted"] not in {item.id for item in page.data}

    def test_admin_sees_all(self, service, profiles, catalogue):
        page = service.get_all(profiles.admin, limit=100)
        assert page.total == 6

    def test_search_by_student_name_and_number(self, service, profiles, catalogue):
        assert service.get_all(profiles.admin, search="budi").total == 2
        assert service.get_all(profiles.admin, search="434221001").total == 4

    def test_newest_first(self, service, profiles, catalogue):
        page = service.get_all(profiles.other_student)
        assert [item.title for item in page.data] == ["Other 1", "Other 0"]

    @pytest.mark.parametrize(
        "page,limit,expected_page,expected_limit",
        [(0, 10, 1, 10), (-3, 5, 1, 5), (1, 0, 1, 10), (1, 101, 1, 10), (2, 100, 2, 100)],
    )
    def test_paging_is_normalized(
        self, service, profiles, page, limit, expected_page, expected_limit
    ):
        result = service.get_all(profiles.admin, page=page, limit=limit)
        assert result.page == expected_page
        assert result.page_size == expected_limit
        assert result.total == 0
        assert result.total_pages == 0

    def test_missing_document_leaves_empty_content(
        self, service, documents, profiles, catalogue
    ):
        ref_id = catalogue["mine_draft"]
        detail_ref = service.references.get(ref_id)
        del documents.documents[detail_ref.document_id]

        page = service.get_all(profiles.student)
        row = next(item for item in page.data if item.id == ref_id)
        assert row.title == ""
        assert row.achievement_type == ""
        assert page.total == 4

    def test_listing_merges_points(self, service, profiles, catalogue):
        service.verify(catalogue["mine_submitted"][0], profiles.advisor, 40)
        page = service.get_all(profiles.student, status="verified")
        assert [(item.status, item.points) for item in page.data] == [("verified", 40)]

    def test_by_student_for_self(self, service, profiles, catalogue):
        page = service.get_by_student(profiles.student_id, profiles.student)
        assert page.total == 4

    def test_by_student_other_student_denied(self, service, profiles, catalogue):
        with pytest.raises(ValidationError):
            service.get_by_student(profiles.student_id, profiles.other_student)

    def test_by_student_advisor_checks(self, service, profiles, catalogue):
        page = service.get_by_student(profiles.student_id, profiles.advisor, status="submitted")
        assert page.total == 3
        with pytest.raises(ValidationError, match="not your advisee"):
            service.get_by_student(profiles.other_student_id, profiles.advisor)
        with pytest.raises(ValidationError):
            service.get_by_student(profiles.orphan_student_id, profiles.advisor)

    def test_by_student_admin(self, service, profiles, catalogue):
        assert service.get_by_student(profiles.other_student_id, profiles.admin).total == 2

    def test_by_student_unknown(self, service, profiles):
        with pytest.raises(NotFoundError):
            service.get_by_student("no-such-student", profiles.admin)


class TestAuditTrail:
    def test_lifecycle_is_audited(self, service, db_session, profiles, submitted):
        service.verify(submitted.id, profiles.advisor, 100)

        entries = (
            db_session.query(AuditLogModel)
            .filter(AuditLogModel.entity_id == submitted.id)
            .order_by(AuditLogModel.ts)
            .all()
        )
        assert [e.action for e in entries] == ["created", "status_changed", "status_changed"]
        assert entries[0].actor_kind == "student"
        assert entries[-1].actor_kind == "advisor"
        assert entries[-1].after == {"status": "verified"}

    def test_audit_failure_does_not_fail_operation(
        self, service, profiles, payload_factory, monkeypatch
    ):
        def broken_log(*args, **kwargs):
            raise db_failure()

        monkeypatch.setattr(service.audit, "log_create", broken_log)

        ref = service.create(profiles.student, payload_factory())
        assert service.get_detail(ref.id, profiles.student).status == "draft"
