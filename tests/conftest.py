import json
from typing import List, Optional

import fitz
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from studyforge.database import crud, models  # noqa: F401
from studyforge.database.database import Base
from studyforge.exceptions import LLMUnavailable
from studyforge.ingestion.ocr import OcrEngine
from studyforge.ingestion.schemas import TextSegment


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()
    engine.dispose()


class FakeLLM:
    """Returns queued responses in order; dicts/lists are JSON-encoded, exceptions are raised."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    async def complete(self, prompt, system, temperature=0.7, max_tokens=2000, json_mode=True):
        self.calls.append({"prompt": prompt, "system": system, "temperature": temperature})
        if not self.responses:
            raise LLMUnavailable("no scripted response left", attempts=1)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return response
        return json.dumps(response)


class RecordingQueue:
    def __init__(self):
        self.documents = []
        self.legacy = []
        self.upgrades = []
        self.enrichments = []

    def _id(self) -> str:
        total = len(self.documents) + len(self.legacy) + len(self.upgrades) + len(self.enrichments)
        return f"job-{total}"

    def enqueue_document(self, job):
        self.documents.append(job)
        return self._id()

    def enqueue_legacy(self, job):
        self.legacy.append(job)
        return self._id()

    def enqueue_upgrade(self, material_id):
        self.upgrades.append(material_id)
        return self._id()

    def enqueue_enrichment(self, material_id):
        self.enrichments.append(material_id)
        return self._id()


class FakeDownloader:
    def __init__(self, data: bytes = b"", error: Optional[Exception] = None):
        self.data = data
        self.error = error
        self.urls = []

    async def download(self, url: str) -> bytes:
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.data


class FakeOcrEngine(OcrEngine):
    def __init__(self, text: str = "", confidence: float = 90.0, fail_pages=()):
        self.text = text
        self.confidence = confidence
        self.fail_pages = set(fail_pages)
        self.seen = 0

    def recognize(self, image: bytes):
        self.seen += 1
        if self.seen in self.fail_pages:
            raise RuntimeError("engine crashed")
        return self.text, self.confidence


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def queue():
    return RecordingQueue()


def build_pdf(page_texts: List[str], **save_options) -> bytes:
    doc = fitz.open()
    for text in page_texts:
        page = doc.new_page()
        if text:
            page.insert_textbox(fitz.Rect(50, 50, 545, 790), text, fontsize=11)
    data = doc.tobytes(**save_options)
    doc.close()
    return data


@pytest.fixture
def make_pdf():
    return build_pdf


def make_segments(texts: List[str], pages=None, headings=None) -> List[TextSegment]:
    segments = []
    offset = 0
    for i, text in enumerate(texts):
        page_start, page_end = (pages[i] if pages else (None, None))
        segments.append(TextSegment(
            text=text,
            token_count=max(1, len(text) // 4),
            segment_index=i,
            char_start=offset,
            char_end=offset + len(text),
            page_start=page_start,
            page_end=page_end,
            heading=headings[i] if headings else None,
        ))
        offset += len(text) + 2
    return segments


@pytest.fixture
def completed_material(db):
    """A processed v2 material with three segments (material_version 2)"""
    texts = [
        "Photosynthesis\nPlants convert light energy into chemical energy stored in glucose. " * 6,
        "Cellular respiration releases energy from glucose in the mitochondria of the cell. " * 6,
        "The Calvin cycle fixes carbon dioxide into sugars using ATP and NADPH molecules. " * 6,
    ]
    material = crud.create_material(db, title="Plant Biology", file_url="https://files/bio.pdf",
                                    file_type="application/pdf")
    crud.replace_segments(db, material.id, make_segments(texts, pages=[(1, 1), (2, 2), (3, 3)]))
    crud.complete_processing(db, material.id, "\n\n".join(texts), False, None)
    return crud.get_material(db, material.id)


def quiz_payload(count: int = 5, options: int = 4) -> dict:
    return {
        "topic": "Plant Biology",
        "difficulty": "intermediate",
        "questions": [
            {
                "id": f"q{n}",
                "type": "mcq",
                "question": f"Which statement about photosynthesis number {n} is correct?",
                "options": [f"Option {n}-{k}" for k in range(options)],
                "answer": f"Option {n}-0",
                "explanation": "Photosynthesis stores light energy as chemical energy.",
            }
            for n in range(1, count + 1)
        ],
    }
