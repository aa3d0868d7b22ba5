"""
Material enrichment: topic tags for browsing and search.

Runs as its own job after processing completes. It only writes
Material.tags; processing status is never touched.
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from studyforge.database import crud
from studyforge.generation.json_unwrap import parse_llm_json

log = logging.getLogger(__name__)

TAG_SOURCE_CHARS = 2000
MAX_TAGS = 10

TAG_SYSTEM = "You label study material. Output only what is asked."

TAG_PROMPT = """Read the beginning of this study document and list 5 to 10 short topic tags
(one to three words each, lowercase) that describe what it covers.

Respond with ONLY a JSON object: {{"tags": ["<tag>", "..."]}}

DOCUMENT:
\"\"\"
{content}
\"\"\""""


def _normalize_tags(raw) -> List[str]:
    if isinstance(raw, dict):
        raw = raw.get("tags", [])
    if isinstance(raw, str):
        raw = raw.split(",")
    tags = []
    for tag in raw or []:
        tag = str(tag).strip().lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:MAX_TAGS]


async def enrich_material(db: Session, llm, material_id: str) -> List[str]:
    material = crud.get_material(db, material_id)
    if material is None or not (material.content or "").strip():
        log.info("Enrich: material=%s has no content, skipping", material_id)
        return []

    raw = await llm.complete(
        TAG_PROMPT.format(content=material.content[:TAG_SOURCE_CHARS]),
        system=TAG_SYSTEM,
        temperature=0.3,
        max_tokens=200,
    )
    tags = _normalize_tags(parse_llm_json(raw))
    crud.set_tags(db, material_id, tags)
    log.info("Enrich: material=%s tags=%s", material_id, tags)
    return tags
