"""Test configuration and fixtures."""

import copy
import os
import tempfile

# Set environment variables before importing application code
_UPLOAD_DIR = tempfile.mkdtemp(prefix="achievement-uploads-")
os.environ["UPLOAD_STORAGE_URI"] = f"file://{_UPLOAD_DIR}"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"

from types import SimpleNamespace
from typing import Any, Dict, Iterable, List, Optional, Set

import bson
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from jose import jwt
from pymongo.errors import AutoReconnect
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from student_achievements.achievements.enums import Permission, Role
from student_achievements.achievements.identity import CurrentUser
from student_achievements.achievements.schemas import AchievementCreate
from student_achievements.achievements.services import AchievementWorkflowService
from student_achievements.attachments.storage import FileAttachmentStore
from student_achievements.attachments.uploader import (
    AttachmentUploader,
    get_attachment_uploader,
)
from student_achievements.config import get_settings
from student_achievements.db.base import Base, get_db
from student_achievements.db.models import LecturerModel, StudentModel
from student_achievements.documents.base import get_document_repository
from student_achievements.documents.models import AchievementDocument, AttachmentPointer
from student_achievements.documents.repository import AchievementDocumentRepository
from student_achievements.primitives import utc_now


class InMemoryDocumentRepository(AchievementDocumentRepository):
    """Dict-backed document store.

    Any method named in ``fail_on`` raises a pymongo error instead of running,
    which lets tests break the document store at a chosen step. Writes are
    BSON-encoded first, so values the driver would refuse fail here too.
    """

    def __init__(self):
        self.documents: Dict[str, AchievementDocument] = {}
        self.fail_on: Set[str] = set()

    def _maybe_fail(self, method: str) -> None:
        if method in self.fail_on:
            raise AutoReconnect(f"document store unavailable during {method}")

    def insert(self, document: AchievementDocument) -> str:
        self._maybe_fail("insert")
        bson.encode(document.model_dump(exclude={"id"}))
        document_id = str(ObjectId())
        self.documents[document_id] = document.model_copy(
            update={"id": document_id}, deep=True
        )
        return document_id

    def get(self, document_id: str) -> Optional[AchievementDocument]:
        self._maybe_fail("get")
        document = self.documents.get(document_id)
        return document.model_copy(deep=True) if document else None

    def get_many(self, document_ids: Iterable[str]) -> Dict[str, AchievementDocument]:
        self._maybe_fail("get_many")
        return {
            d: self.documents[d].model_copy(deep=True)
            for d in document_ids
            if d in self.documents
        }

    def update_content(self, document_id: str, changes: Dict[str, Any]) -> bool:
        self._maybe_fail("update_content")
        bson.encode(changes)
        if document_id not in self.documents:
            return False
        update = copy.deepcopy(changes)
        update["updated_at"] = utc_now()
        self.documents[document_id] = self.documents[document_id].model_copy(update=update)
        return True

    def add_attachment(self, document_id: str, attachment: AttachmentPointer) -> bool:
        self._maybe_fail("add_attachment")
        if document_id not in self.documents:
            return False
        document = self.documents[document_id]
        document.attachments.append(attachment)
        document.updated_at = utc_now()
        return True

    def set_points(self, document_id: str, points: int) -> bool:
        self._maybe_fail("set_points")
        bson.encode({"points": points})
        if document_id not in self.documents:
            return False
        document = self.documents[document_id]
        document.points = points
        document.updated_at = utc_now()
        return True

    def delete(self, document_id: str) -> bool:
        self._maybe_fail("delete")
        return self.documents.pop(document_id, None) is not None


STUDENT_PERMISSIONS: List[str] = [Permission.ACHIEVEMENT_CREATE.value]
ADVISOR_PERMISSIONS: List[str] = [Permission.ACHIEVEMENT_VERIFY.value]


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    from student_achievements.db import audit_models, models  # noqa: F401

    test_engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def documents() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def uploader(upload_dir) -> AttachmentUploader:
    settings = get_settings()
    return AttachmentUploader(
        store=FileAttachmentStore(upload_dir),
        url_prefix=settings.upload_url_prefix,
        max_bytes=settings.max_upload_bytes,
        allowed_types=settings.allowed_upload_type_list(),
    )


@pytest.fixture
def service(db_session, documents, uploader) -> AchievementWorkflowService:
    return AchievementWorkflowService(db_session, documents, uploader)


@pytest.fixture
def profiles(db_session):
    """Two advisors with one advisee each, plus a student without an advisor.

    Returns callers for every profile along with their internal ids.
    """
    advisor = LecturerModel(
        user_id="user-lecturer-1", lecturer_number="198501", full_name="Dr. Siti Rahma"
    )
    other_advisor = LecturerModel(
        user_id="user-lecturer-2", lecturer_number="198502", full_name="Dr. Bambang"
    )
    db_session.add_all([advisor, other_advisor])
    db_session.commit()

    student = StudentModel(
        user_id="user-student-1",
        student_number="434221001",
        full_name="Andi Pratama",
        program_study="Informatika",
        academic_year="2022",
        advisor_id=advisor.id,
    )
    other_student = StudentModel(
        user_id="user-student-2",
        student_number="434221002",
        full_name="Budi Santoso",
        advisor_id=other_advisor.id,
    )
    orphan_student = StudentModel(
        user_id="user-student-3",
        student_number="434221003",
        full_name="Citra Lestari",
        advisor_id=None,
    )
    db_session.add_all([student, other_student, orphan_student])
    db_session.commit()

    return SimpleNamespace(
        advisor_id=advisor.id,
        other_advisor_id=other_advisor.id,
        student_id=student.id,
        other_student_id=other_student.id,
        orphan_student_id=orphan_student.id,
        student=CurrentUser(
            "user-student-1", Role.STUDENT, "andi", frozenset(STUDENT_PERMISSIONS)
        ),
        other_student=CurrentUser(
            "user-student-2", Role.STUDENT, "budi", frozenset(STUDENT_PERMISSIONS)
        ),
        orphan_student=CurrentUser(
            "user-student-3", Role.STUDENT, "citra", frozenset(STUDENT_PERMISSIONS)
        ),
        advisor=CurrentUser(
            "user-lecturer-1", Role.ADVISOR, "siti", frozenset(ADVISOR_PERMISSIONS)
        ),
        other_advisor=CurrentUser(
            "user-lecturer-2", Role.ADVISOR, "bambang", frozenset(ADVISOR_PERMISSIONS)
        ),
        admin=CurrentUser("user-admin-1", Role.ADMIN, "admin", frozenset()),
    )


def make_payload(**overrides) -> AchievementCreate:
    """Create a valid achievement payload with optional overrides."""
    defaults = {
        "achievement_type": "Nasional",
        "title": "Juara 1 Hackathon",
        "description": "Hackathon tingkat nasional",
        "details": {"organizer": "Kemdikbud", "rank": 1},
        "tags": ["hackathon", "software"],
    }
    defaults.update(overrides)
    return AchievementCreate(**defaults)


@pytest.fixture
def payload_factory():
    return make_payload


def make_token(
    user_id: str,
    role: str,
    permissions: Optional[List[str]] = None,
    username: str = "tester",
    **extra: Any,
) -> str:
    settings = get_settings()
    claims = {
        "user_id": user_id,
        "username": username,
        "role": role,
        "permissions": permissions or [],
    }
    claims.update(extra)
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


@pytest.fixture
def auth_headers():
    """Build an Authorization header for a CurrentUser."""

    def _headers(user: CurrentUser) -> Dict[str, str]:
        token = make_token(
            user.user_id, user.role.value, sorted(user.permissions), user.username
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def client(session_factory, documents, uploader):
    """API client wired to the test database, document store and upload dir."""
    from student_achievements.api import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_document_repository] = lambda: documents
    app.dependency_overrides[get_attachment_uploader] = lambda: uploader
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def token_factory():
    return make_token
