import pytest
import redis
from fastapi.testclient import TestClient

from conftest import FakeLLM, quiz_payload
from studyforge.database import crud
from studyforge.database.database import get_db
from studyforge.database.models import ProcessingStatus, ProcessingVersion
from studyforge.exceptions import LLMUnavailable
from studyforge.main import app
from studyforge.routers.deps import get_job_queue, get_llm


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def client(db, queue, fake_llm):
    def _db():
        yield db

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_job_queue] = lambda: queue
    app.dependency_overrides[get_llm] = lambda: fake_llm
    yield TestClient(app)
    app.dependency_overrides.clear()


# ─── Materials ────────────────────────────────────────────────────────────────

def test_register_material_queues_processing(client, queue):
    response = client.post("/materials/", json={
        "title": "Lecture 1",
        "file_url": "https://files/lecture1.pdf",
        "mime_type": "application/pdf",
        "filename": "lecture1.pdf",
    })

    assert response.status_code == 202
    body = response.json()
    assert body["processing_status"] == "pending"
    assert body["processing_version"] == "v2"
    assert body["filename"] == "lecture1.pdf"
    assert [job.material_id for job in queue.documents] == [body["id"]]
    assert queue.documents[0].filename == "lecture1.pdf"


def test_register_legacy_material(client, queue):
    response = client.post("/materials/", json={
        "title": "Old notes",
        "file_url": "https://files/old.txt",
        "mime_type": "text/plain",
        "legacy": True,
    })
    assert response.status_code == 202
    assert response.json()["processing_version"] == "v1"
    assert len(queue.legacy) == 1
    assert queue.documents == []


def test_register_unsupported_type(client, queue):
    response = client.post("/materials/", json={
        "title": "Archive",
        "file_url": "https://files/a.zip",
        "mime_type": "application/zip",
    })
    assert response.status_code == 415
    assert "application/zip" in response.json()["detail"]
    assert queue.documents == []


def test_content_edit_bumps_version(client, completed_material):
    response = client.put(f"/materials/{completed_material.id}/content", json={"content": "New text"})
    assert response.status_code == 200
    assert response.json()["material_version"] == 3


def test_unknown_material(client):
    assert client.get("/materials/missing").status_code == 404
    assert client.delete("/materials/missing").status_code == 404


def test_delete_material_removes_segments(client, db, completed_material):
    assert client.delete(f"/materials/{completed_material.id}").status_code == 204
    assert crud.count_segments(db, completed_material.id) == 0


# ─── Processing ───────────────────────────────────────────────────────────────

def test_status_and_segment_count(client, completed_material):
    status = client.get(f"/processing/{completed_material.id}/status").json()
    assert status["is_ready"] is True
    assert status["segment_count"] == 3

    count = client.get(f"/processing/{completed_material.id}/segments/count").json()
    assert count == {"material_id": completed_material.id, "segment_count": 3}


def test_submit_job_for_existing_material(client, queue, completed_material):
    response = client.post("/processing/jobs", json={
        "material_id": completed_material.id,
        "file_url": "https://files/bio.pdf",
        "mime_type": "application/pdf",
        "filename": "bio.pdf",
    })
    assert response.status_code == 202
    assert response.json()["material_id"] == completed_material.id
    assert len(queue.documents) == 1


def test_retry_conflict_and_missing(client, completed_material):
    conflict = client.post(f"/processing/{completed_material.id}/retry")
    assert conflict.status_code == 409
    assert conflict.json()["detail"] == "Cannot retry: material is currently completed"
    assert client.post("/processing/missing/retry").status_code == 404


# ─── Study ────────────────────────────────────────────────────────────────────

def test_quiz_is_generated_then_cached(client, fake_llm, completed_material):
    fake_llm.responses.append(quiz_payload(5))

    first = client.post(f"/materials/{completed_material.id}/quiz", json={})
    second = client.post(f"/materials/{completed_material.id}/quiz", json={})

    assert first.status_code == 200
    assert first.json()["status"] == "ready"
    assert first.json()["cached"] is False
    assert len(first.json()["questions"]) == 5
    assert second.json()["cached"] is True
    assert len(fake_llm.calls) == 1


def test_quiz_while_processing(client, db, completed_material):
    crud.set_processing_status(db, completed_material.id, ProcessingStatus.CLEANING)
    response = client.post(f"/materials/{completed_material.id}/quiz", json={})
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "PROCESSING"
    assert response.json()["detail"]["status"] == "cleaning"


def test_quiz_for_failed_material(client, db, completed_material):
    crud.mark_failed(db, completed_material.id, "This PDF is password-protected.", "encrypted")
    response = client.post(f"/materials/{completed_material.id}/flashcards", json={})
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "UNSUPPORTED"


def test_generation_exhausted(client, fake_llm, completed_material):
    fake_llm.responses.extend([LLMUnavailable("down", attempts=3)] * 3)
    response = client.post(f"/materials/{completed_material.id}/quiz", json={"regenerate": True})
    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "GENERATION_FAILED"


def test_legacy_material_reports_upgrading(client, db, queue):
    material = crud.create_material(db, title="Old", processing_version=ProcessingVersion.V1)
    crud.complete_processing(db, material.id, "Legacy content about rivers. " * 10, False, None,
                             processing_version=ProcessingVersion.V1)

    response = client.post(f"/materials/{material.id}/flashcards", json={})

    assert response.status_code == 200
    assert response.json()["status"] == "upgrading"
    assert queue.upgrades == [material.id]


def test_invalid_page_range(client, completed_material):
    response = client.post(f"/materials/{completed_material.id}/quiz", json={"page_start": 3, "page_end": 1})
    assert response.status_code == 422


# ─── Health ───────────────────────────────────────────────────────────────────

class _Redis:
    def __init__(self, error=None):
        self.error = error

    def ping(self):
        if self.error:
            raise self.error
        return True


@pytest.mark.parametrize("redis_conn, expected", [
    (_Redis(), 200),
    (_Redis(redis.ConnectionError("refused")), 503),
])
def test_health_checks_redis(client, redis_conn, expected):
    app.state.redis = redis_conn
    try:
        response = client.get("/health")
    finally:
        del app.state.redis
    assert response.status_code == expected
