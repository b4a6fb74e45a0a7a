import os
import tempfile

# Must be set before config is imported anywhere
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["RATE_LIMIT_PER_HOUR"] = "1000000"
os.environ["LOG_FILE"] = ""
os.environ.setdefault("REPORTS_DIR", tempfile.mkdtemp(prefix="proofly-reports-"))

import pytest

from services.upstream_client import BinaryPayload


SESSION_ID = "3f2b8c1e-9a4d-4e7b-8c2a-1d5e6f7a8b9c"
OTHER_SESSION_ID = "a1b2c3d4-e5f6-4a7b-8c9d-0e1f2a3b4c5d"


def make_session(**overrides):
    session = {
        "uuid": SESSION_ID,
        "status": "completed",
        "sha256": "ab" * 32,
        "image_path": f"/storage/original/{SESSION_ID}.jpg",
        "total_faces": 2,
        "faces": [
            {
                "face_path": f"/storage/faces/{SESSION_ID}_0.png",
                "ansamble": 0.12,
                **{f"is_real_model_{i}": 0.1 for i in range(1, 11)},
            },
            {
                "face_path": f"/storage/faces/{SESSION_ID}_1.png",
                "ansamble": 0.97,
                **{f"is_real_model_{i}": 0.9 for i in range(1, 11)},
            },
        ],
        "created_at": "2024-05-01T10:00:00Z",
        "processed_at": "2024-05-01T10:00:09Z",
    }
    session.update(overrides)
    return session


class FakeUpstream:
    """In-memory stand-in for UpstreamClient that records every call."""

    def __init__(self, session=None, status="completed", upload_response=None, remote=None):
        self.session = session if session is not None else make_session()
        self.status = status
        self.upload_response = upload_response if upload_response is not None else {"uuid": SESSION_ID}
        self.remote = remote
        self.calls = []

    async def create_session(self, filename, content, content_type):
        self.calls.append(("create_session", filename, len(content), content_type))
        return self.upload_response

    async def get_session_info(self, session_id):
        self.calls.append(("get_session_info", session_id))
        if isinstance(self.session, Exception):
            raise self.session
        return self.session

    async def get_session_status(self, session_id):
        self.calls.append(("get_session_status", session_id))
        return {"status": self.status}

    async def get_system_status(self):
        self.calls.append(("get_system_status",))
        return {"status": "ok", "queue": 0}

    async def fetch_storage_file(self, kind, filename):
        self.calls.append(("fetch_storage_file", kind, filename))
        return BinaryPayload(content=b"\x89PNG fake", content_type="image/png")

    async def fetch_remote_image(self, url):
        self.calls.append(("fetch_remote_image", url))
        if isinstance(self.remote, Exception):
            raise self.remote
        return self.remote or BinaryPayload(content=b"\xff\xd8 fake jpeg", content_type="image/jpeg")


@pytest.fixture
def fake_upstream():
    return FakeUpstream()
