"""Diagnostics API endpoint tests."""
import uuid

import pytest

from inspectai.dependencies import get_diagnosis_service, get_validation_service
from inspectai.exceptions import UpstreamError
from inspectai.main import app
from inspectai.services.diagnosis_service import DiagnosisService
from inspectai.services.validation_service import ValidationService

from tests.support import FakeEmbedder, ScriptedLLM, fake_fetch_photo

GENERATE_URL = "/api/v1/diagnostics/generate"
VALIDATE_URL = "/api/v1/diagnostics/validate"


@pytest.fixture
def services():
    """Wire both endpoints to fake AI collaborators sharing one embedder."""
    embedder = FakeEmbedder()
    llm = ScriptedLLM()
    state = {
        "diagnosis": DiagnosisService(embedder=embedder, llm=llm, photo_fetcher=fake_fetch_photo),
        "validation": ValidationService(embedder=embedder),
        "llm": llm,
    }
    app.dependency_overrides[get_diagnosis_service] = lambda: state["diagnosis"]
    app.dependency_overrides[get_validation_service] = lambda: state["validation"]
    yield state
    app.dependency_overrides.pop(get_diagnosis_service, None)
    app.dependency_overrides.pop(get_validation_service, None)


def _generate_body(**overrides):
    body = {
        "photo_id": "photo-1",
        "photo_url": "https://photos.example.com/photo-1.jpg",
        "environment": "Facade",
        "system": "Cladding",
        "element": "Ceramic tiles",
        "status": "Damaged",
    }
    body.update(overrides)
    return body


# ═══════════════════════════════════════════════════════
# Generate
# ═══════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_generate_returns_suggestion(client, services):
    response = await client.post(GENERATE_URL, json=_generate_body())

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    data = body["data"]
    assert data["description"]
    assert data["summary"]["severity"] == "High"
    assert data["summary"]["defect_tags"] == ["rebar corrosion", "spalling"]
    assert data["exemplars"] == []
    uuid.UUID(data["feedback_id"])


@pytest.mark.asyncio
async def test_generate_without_photo_is_bad_request(client, services):
    response = await client.post(GENERATE_URL, json=_generate_body(photo_url=None))

    assert response.status_code == 400
    problem = response.json()
    assert problem["type"] == "validation_error"
    assert problem["status"] == 400
    assert problem["detail"].startswith("Could not generate diagnosis:")
    assert problem["instance"] == GENERATE_URL
    assert "retryable" not in problem


@pytest.mark.asyncio
async def test_generate_upstream_failure_is_retryable(client, services):
    services["llm"].error = UpstreamError("Vision model request timed out")

    response = await client.post(GENERATE_URL, json=_generate_body())

    assert response.status_code == 502
    problem = response.json()
    assert problem["type"] == "upstream_error"
    assert problem["retryable"] is True


@pytest.mark.asyncio
async def test_generate_without_credentials(client, services):
    services["diagnosis"] = DiagnosisService(photo_fetcher=fake_fetch_photo)

    response = await client.post(GENERATE_URL, json=_generate_body())

    assert response.status_code == 500
    assert response.json()["type"] == "configuration_error"


# ═══════════════════════════════════════════════════════
# Validate + ledger reads
# ═══════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_generate_then_edit_builds_lineage(client, services):
    generated = (await client.post(GENERATE_URL, json=_generate_body())).json()["data"]

    response = await client.post(VALIDATE_URL, json={
        "photo_id": "photo-1",
        "final_text": "Detached ceramic tiles on the north facade, mortar bed failure.",
        "prior_feedback_id": generated["feedback_id"],
        "was_edited": True,
        "environment": "Facade",
        "summary": {"severity": "High", "defect_tags": ["detachment"]},
    })

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Validated description recorded."
    child_id = body["data"]["feedback_id"]
    assert child_id != generated["feedback_id"]

    listing = await client.get("/api/v1/diagnostics/photos/photo-1/feedback")
    assert listing.status_code == 200
    records = listing.json()["data"]
    assert [r["id"] for r in records] == [generated["feedback_id"], child_id]
    parent, child = records
    assert parent["origin"] == "ai"
    assert parent["metadata"]["supersededByUser"] is True
    assert child["origin"] == "user"
    assert child["validated"] is True
    assert child["confidence"] is None
    assert child["parent_feedback_id"] == generated["feedback_id"]
    assert child["tags"] == ["detachment"]


@pytest.mark.asyncio
async def test_validate_empty_text_is_bad_request(client, services):
    response = await client.post(VALIDATE_URL, json={"photo_id": "photo-1", "final_text": ""})

    assert response.status_code == 400
    assert response.json()["detail"] == "Could not save description: final_text is required"

    listing = await client.get("/api/v1/diagnostics/photos/photo-1/feedback")
    assert listing.json()["data"] == []


@pytest.mark.asyncio
async def test_get_feedback(client, services):
    saved = (await client.post(VALIDATE_URL, json={
        "photo_id": "photo-5", "final_text": "Blistered paint on balcony soffit."
    })).json()["data"]

    response = await client.get(f"/api/v1/diagnostics/feedback/{saved['feedback_id']}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["description"] == "Blistered paint on balcony soffit."
    assert data["origin"] == "user"


@pytest.mark.asyncio
async def test_get_unknown_feedback_is_not_found(client):
    response = await client.get(f"/api/v1/diagnostics/feedback/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["type"] == "not_found"
