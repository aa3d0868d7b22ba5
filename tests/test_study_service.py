import pytest

from conftest import FakeLLM, quiz_payload
from studyforge.database import crud
from studyforge.database.models import ProcessingStatus, ProcessingVersion
from studyforge.exceptions import InsufficientContent, MaterialNotFound, StillProcessing, UnsupportedDocument
from studyforge.generation.generators import FlashcardGenerator, QuizGenerator
from studyforge.generation.schemas import GenerationRequest
from studyforge.generation.study_service import StudyMaterialService, cache_miss_reason, slice_content

FLASHCARDS = {"flashcards": [
    {"id": "f1", "front": "Photosynthesis", "back": "Turning light energy into glucose"},
    {"id": "f2", "front": "Calvin cycle", "back": "Fixes carbon dioxide into sugars"},
]}


def service(db, queue, llm):
    return StudyMaterialService(db, queue, QuizGenerator(llm), FlashcardGenerator(llm))


def legacy_material(db, content):
    material = crud.create_material(db, title="Old notes", file_url="https://files/old.pdf",
                                    file_type="application/pdf")
    crud.complete_processing(db, material.id, content, False, None, processing_version=ProcessingVersion.V1)
    return crud.get_material(db, material.id)


# ─── Cache rules ──────────────────────────────────────────────────────────────

def test_cache_miss_reasons():
    full = GenerationRequest()
    assert cache_miss_reason(full, [{"id": "q1"}], 2, 2) is None
    assert cache_miss_reason(full, None, None, 2) == "no-cache"
    assert cache_miss_reason(full, [], 2, 2) == "empty-cache"
    assert cache_miss_reason(full, [{"id": "q1"}], 1, 2) == "version-mismatch"
    assert cache_miss_reason(GenerationRequest(page_start=2), [{"id": "q1"}], 2, 2) == "page-range-specified"
    assert cache_miss_reason(GenerationRequest(regenerate=True), [{"id": "q1"}], 2, 2) == "regenerate-requested"
    assert cache_miss_reason(GenerationRequest(topic="cells"), [{"id": "q1"}], 2, 2) == "topic-specified"


def test_slice_content_by_estimated_pages():
    content = "a" * 3000 + "b" * 3000 + "c" * 100
    assert slice_content(content, 2, 2) == "b" * 3000
    assert slice_content(content, 3, None) == "c" * 100
    assert slice_content(content, None, 1) == "a" * 3000


def test_page_end_before_start_is_rejected():
    with pytest.raises(ValueError):
        GenerationRequest(page_start=5, page_end=2)


# ─── Quiz ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_second_full_request_is_served_from_cache(db, queue, completed_material):
    llm = FakeLLM([quiz_payload(5)])
    svc = service(db, queue, llm)

    first = await svc.get_quiz(completed_material.id, GenerationRequest())
    second = await svc.get_quiz(completed_material.id, GenerationRequest())

    assert first.cached is False
    assert first.selection_method == "all"
    assert second.cached is True
    assert len(llm.calls) == 1
    assert [q.model_dump() for q in second.questions] == [q.model_dump() for q in first.questions]
    assert crud.get_material(db, completed_material.id).quiz_generated_version == 2


@pytest.mark.asyncio
async def test_content_edit_invalidates_cache(db, queue, completed_material):
    llm = FakeLLM([quiz_payload(5), quiz_payload(5)])
    svc = service(db, queue, llm)

    await svc.get_quiz(completed_material.id, GenerationRequest())
    crud.update_content(db, completed_material.id, "Edited notes about plants and light. " * 10)
    result = await svc.get_quiz(completed_material.id, GenerationRequest())

    assert result.cached is False
    assert len(llm.calls) == 2
    assert crud.get_material(db, completed_material.id).quiz_generated_version == 3


@pytest.mark.asyncio
async def test_page_range_request_is_not_cached(db, queue, completed_material):
    llm = FakeLLM([quiz_payload(2)])
    svc = service(db, queue, llm)

    result = await svc.get_quiz(completed_material.id, GenerationRequest(page_start=2, page_end=2, count=2))

    assert result.selection_method == "page_range"
    assert "Cellular respiration" in llm.calls[0]["prompt"]
    assert "Calvin cycle" not in llm.calls[0]["prompt"]
    assert crud.get_material(db, completed_material.id).quiz is None


@pytest.mark.asyncio
async def test_topic_request_focuses_segments(db, queue, completed_material):
    llm = FakeLLM([quiz_payload(2)])
    result = await service(db, queue, llm).get_quiz(
        completed_material.id, GenerationRequest(topic="Calvin cycle", count=2)
    )
    assert result.selection_method == "topic"
    assert "[Segment 1 - Page 3]" in llm.calls[0]["prompt"]
    assert 'about "Calvin cycle"' in llm.calls[0]["prompt"]


def test_stale_result_is_not_cached(db, completed_material):
    crud.update_content(db, completed_material.id, "Newer text")
    assert crud.store_quiz_cache(db, completed_material.id, [{"id": "q1"}], 2) is False
    assert crud.get_material(db, completed_material.id).quiz is None


# ─── Material state ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_missing_material(db, queue, llm):
    with pytest.raises(MaterialNotFound):
        await service(db, queue, llm).get_quiz("nope", GenerationRequest())


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [ProcessingStatus.EXTRACTING, ProcessingStatus.SEGMENTING])
async def test_in_progress_material_is_not_ready(db, queue, llm, completed_material, status):
    crud.set_processing_status(db, completed_material.id, status)
    with pytest.raises(StillProcessing) as exc:
        await service(db, queue, llm).get_quiz(completed_material.id, GenerationRequest())
    assert exc.value.status == status.value
    assert llm.calls == []


@pytest.mark.asyncio
async def test_pending_v2_material_is_not_ready(db, queue, llm):
    material = crud.create_material(db, title="Fresh upload")
    with pytest.raises(StillProcessing):
        await service(db, queue, llm).get_flashcards(material.id, GenerationRequest())


@pytest.mark.asyncio
async def test_failed_material_is_unsupported(db, queue, llm, completed_material):
    crud.mark_failed(db, completed_material.id, "This PDF is password-protected", "needs_pass")
    with pytest.raises(UnsupportedDocument) as exc:
        await service(db, queue, llm).get_quiz(completed_material.id, GenerationRequest())
    assert exc.value.reason == "This PDF is password-protected"


# ─── Legacy materials ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_v1_material_is_upgraded_once(db, queue, llm):
    material = legacy_material(db, "Legacy lecture notes about thermodynamics. " * 20)
    svc = service(db, queue, llm)

    first = await svc.get_quiz(material.id, GenerationRequest())
    second = await svc.get_flashcards(material.id, GenerationRequest())

    assert first.status == "upgrading"
    assert first.message == "Preparing this material for smart study..."
    assert second.status == "upgrading"
    assert queue.upgrades == [material.id]
    assert crud.get_material(db, material.id).processing_status == ProcessingStatus.PENDING
    assert llm.calls == []


@pytest.mark.asyncio
async def test_cached_v1_quiz_is_served_without_upgrade(db, queue, llm):
    material = legacy_material(db, "Legacy lecture notes about thermodynamics. " * 20)
    crud.store_quiz_cache(db, material.id, quiz_payload(3)["questions"], material.material_version)

    result = await service(db, queue, llm).get_quiz(material.id, GenerationRequest())

    assert result.cached is True
    assert queue.upgrades == []


@pytest.mark.asyncio
async def test_content_fallback_without_segments(db, queue):
    material = crud.create_material(db, title="Pasted notes")
    crud.complete_processing(db, material.id, "Enzymes lower activation energy of reactions. " * 20, False, None)
    llm = FakeLLM([FLASHCARDS])

    result = await service(db, queue, llm).get_flashcards(material.id, GenerationRequest(count=2))

    assert result.selection_method == "content"
    assert [c.id for c in result.flashcards] == ["f1", "f2"]
    assert "Enzymes lower activation energy" in llm.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_content_fallback_with_empty_page_slice(db, queue, llm):
    material = crud.create_material(db, title="Pasted notes")
    crud.complete_processing(db, material.id, "Enzymes lower activation energy of reactions. " * 20, False, None)

    with pytest.raises(InsufficientContent):
        await service(db, queue, llm).get_quiz(material.id, GenerationRequest(page_start=4))
