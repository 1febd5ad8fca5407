import os
import tempfile
from types import SimpleNamespace

os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="worklog-uploads-")
os.environ.pop("S3_BUCKET", None)

import mongomock  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import database  # noqa: E402
from auth import CurrentUser, create_token, create_user  # noqa: E402
from main import app  # noqa: E402
from schemas import Role  # noqa: E402
from storage import LocalStorage, get_storage  # noqa: E402

PASSWORD = "secret123"


@pytest.fixture
def db():
    database.db = mongomock.MongoClient()["worklog_test"]
    yield database.db
    database.db = None


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "uploads"))


@pytest.fixture
def client(db, storage):
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(role: Role, email: str, full_name: str = None, is_active: bool = True):
    uid = create_user(full_name or email.split("@")[0].title(), email, PASSWORD, role, is_active=is_active)
    return SimpleNamespace(
        id=uid,
        email=email,
        role=role,
        principal=CurrentUser(id=uid, role=role),
        headers={"Authorization": f"Bearer {create_token(uid, role.value)}"},
    )


@pytest.fixture
def manager(db):
    return make_user(Role.MANAGER, "manager@worksite.io", "Miriam Manager")


@pytest.fixture
def leader(db):
    return make_user(Role.TEAM_LEADER, "leader@worksite.io", "Tal Leader")


@pytest.fixture
def other_leader(db):
    return make_user(Role.TEAM_LEADER, "other@worksite.io", "Omer Other")


def log_form(date="2024-05-01", project="Site A", start="2024-05-01T08:00:00", end="2024-05-01T16:00:00",
             description="Poured concrete for the north wall", employees='["Avi", "Dana"]', status=None):
    data = {
        "date": date,
        "project": project,
        "start_time": start,
        "end_time": end,
        "work_description": description,
        "employees": employees,
    }
    if status:
        data["status"] = status
    return data


def post_log(client, user, files=None, **kwargs):
    return client.post("/api/logs", data=log_form(**kwargs), files=files, headers=user.headers)


def jpeg(name="photo.jpg", size=128):
    return (name, b"\xff\xd8\xff" + b"0" * size, "image/jpeg")


def pdf(name="certificate.pdf", size=128):
    return (name, b"%PDF-1.4" + b"0" * size, "application/pdf")
