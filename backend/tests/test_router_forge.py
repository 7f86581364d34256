"""Tests for the forge (anchor pipeline) router."""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from identity_forge.core.errors import ConfigurationError, ContentPolicyError
from identity_forge.models.character import CharacterBlueprint, CharacterDNA
from identity_forge.models.generation import AspectRatio, GenerationResult, Provider
from identity_forge.services.dispatcher import ProviderDispatcher
from identity_forge.services.store import InMemoryCharacterStore

PHOTO = "data:image/jpeg;base64,/9j/4AAQ"
HEADSHOT = "data:image/png;base64,SEVBRFNIT1Q="
BODY = "data:image/png;base64,Qk9EWQ=="

BLUEPRINT = CharacterBlueprint.model_validate(
    {
        "identity": {
            "ageRange": "Mid 20s",
            "gender": "Female",
            "ethnicity": "Swedish",
            "skinComplexion": "Fair",
            "eyeDetails": "Blue eyes",
            "hairDetails": "Platinum bob",
            "distinctiveFeatures": ["Nose ring"],
        },
        "style": {"bodySomatotype": "Slender", "clothingStyle": ["Minimalist"], "defaultAccessories": []},
    }
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_dispatcher():
    dispatcher = MagicMock(spec=ProviderDispatcher)
    dispatcher.analyze_image = AsyncMock(return_value=BLUEPRINT)
    dispatcher.generate = AsyncMock(side_effect=[GenerationResult(image=HEADSHOT), GenerationResult(image=BODY)])
    return dispatcher


@pytest.fixture
def store():
    return InMemoryCharacterStore()


@pytest.fixture
def client(mock_dispatcher, store):
    from identity_forge.main import app

    with TestClient(app) as c:
        app.state.dispatcher = mock_dispatcher
        app.state.character_store = store
        app.state.forge_sessions = {}
        yield c


def _create(client: TestClient, name: str = "Ava") -> str:
    resp = client.post("/api/forge/sessions", json={"name": name, "photo": PHOTO})
    assert resp.status_code == 201
    return resp.json()["id"]


def _through_generation(client: TestClient) -> str:
    session_id = _create(client)
    assert client.post(f"/api/forge/sessions/{session_id}/analyze").status_code == 200
    assert client.post(f"/api/forge/sessions/{session_id}/generate").status_code == 200
    return session_id


def _seed_character(store: InMemoryCharacterStore) -> CharacterDNA:
    character = CharacterDNA(
        id="ava01", name="Ava", created_at=1, anchor_headshot=HEADSHOT, anchor_body=BODY, blueprint=BLUEPRINT
    )
    store.save_character(character)
    return character


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


class TestCreateSession:
    def test_starts_in_upload_stage(self, client: TestClient) -> None:
        resp = client.post("/api/forge/sessions", json={"name": "Ava", "photo": PHOTO})
        assert resp.status_code == 201
        body = resp.json()
        assert body["stage"] == "upload"
        assert body["name"] == "Ava"
        assert body["canGenerateBody"] is False

    def test_invalid_photo_returns_422(self, client: TestClient) -> None:
        resp = client.post("/api/forge/sessions", json={"name": "Ava", "photo": "data:image/png;base64,???"})
        assert resp.status_code == 422

    def test_blank_name_returns_422(self, client: TestClient) -> None:
        resp = client.post("/api/forge/sessions", json={"name": "   ", "photo": PHOTO})
        assert resp.status_code == 422

    def test_unknown_session_returns_404(self, client: TestClient) -> None:
        assert client.get("/api/forge/sessions/nope").status_code == 404


class TestFullFlow:
    def test_ava_end_to_end(self, client: TestClient, store: InMemoryCharacterStore) -> None:
        session_id = _create(client)

        analyzed = client.post(f"/api/forge/sessions/{session_id}/analyze").json()
        assert analyzed["stage"] == "edit_prompts"
        assert analyzed["blueprint"]["identity"]["ageRange"] == "Mid 20s"
        assert analyzed["headshotPrompt"].startswith("Professional passport-style headshot")

        assert client.post(f"/api/forge/sessions/{session_id}/generate").json()["stage"] == "generating"

        headshot = client.post(f"/api/forge/sessions/{session_id}/headshot").json()
        assert headshot["anchorHeadshot"] == HEADSHOT
        assert headshot["canGenerateBody"] is True

        body = client.post(f"/api/forge/sessions/{session_id}/body").json()
        assert body["anchorBody"] == BODY

        assert client.post(f"/api/forge/sessions/{session_id}/review").json()["stage"] == "review"

        saved = client.post(f"/api/forge/sessions/{session_id}/save")
        assert saved.status_code == 200
        character = saved.json()
        assert character["name"] == "Ava"
        assert character["anchorHeadshot"] == HEADSHOT
        assert character["anchorBody"] == BODY
        assert store.get_character(character["id"]) is not None
        assert len(store.gallery) == 2

        # session is closed after save
        assert client.get(f"/api/forge/sessions/{session_id}").status_code == 404

    def test_prompt_edits_and_overrides(self, client: TestClient) -> None:
        session_id = _create(client)
        client.post(f"/api/forge/sessions/{session_id}/analyze")

        resp = client.put(
            f"/api/forge/sessions/{session_id}/prompts",
            json={"attributes": {"age": "Late 30s"}, "bodyPrompt": "custom body"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["blueprint"]["identity"]["ageRange"] == "Late 30s"
        assert "Late 30s" in body["headshotPrompt"]
        assert body["bodyPrompt"] == "custom body"


class TestStageErrors:
    def test_body_before_headshot_returns_409(self, client: TestClient) -> None:
        session_id = _through_generation(client)
        resp = client.post(f"/api/forge/sessions/{session_id}/body")
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Generate the headshot first"

    def test_generate_before_analyze_returns_409(self, client: TestClient) -> None:
        session_id = _create(client)
        assert client.post(f"/api/forge/sessions/{session_id}/headshot").status_code == 409

    def test_analyze_failure_reports_sanitized_message(self, client: TestClient, mock_dispatcher) -> None:
        mock_dispatcher.analyze_image.side_effect = ConfigurationError(
            "Gemini API key missing. Please set GEMINI_API_KEY."
        )
        session_id = _create(client)

        resp = client.post(f"/api/forge/sessions/{session_id}/analyze")
        assert resp.status_code == 503
        assert resp.json()["detail"] == "Gemini API key missing. Please set GEMINI_API_KEY."

        state = client.get(f"/api/forge/sessions/{session_id}").json()
        assert state["stage"] == "upload"
        assert state["lastError"] == "Gemini API key missing. Please set GEMINI_API_KEY."

    def test_content_policy_returns_422(self, client: TestClient, mock_dispatcher) -> None:
        mock_dispatcher.generate.side_effect = ContentPolicyError("Prompt blocked by safety filters (SAFETY)")
        session_id = _through_generation(client)

        resp = client.post(f"/api/forge/sessions/{session_id}/headshot")
        assert resp.status_code == 422
        assert "safety" in resp.json()["detail"]

    def test_blank_prompt_after_generation_started_returns_409(self, client: TestClient) -> None:
        session_id = _through_generation(client)

        resp = client.put(f"/api/forge/sessions/{session_id}/prompts", json={"headshotPrompt": ""})
        assert resp.status_code == 409

        headshot = client.post(f"/api/forge/sessions/{session_id}/headshot")
        assert headshot.status_code == 200
        assert headshot.json()["anchorHeadshot"] == HEADSHOT

    def test_unexpected_analysis_error_returns_to_upload(self, client: TestClient, mock_dispatcher) -> None:
        mock_dispatcher.analyze_image.side_effect = ValueError("Unknown API response")
        session_id = _create(client)

        resp = client.post(f"/api/forge/sessions/{session_id}/analyze")
        assert resp.status_code == 503

        state = client.get(f"/api/forge/sessions/{session_id}").json()
        assert state["stage"] == "upload"
        assert state["lastError"]


class TestEditCharacter:
    def test_reopens_saved_character_at_review(self, client: TestClient, mock_dispatcher) -> None:
        session_id = _through_generation(client)
        client.post(f"/api/forge/sessions/{session_id}/headshot")
        client.post(f"/api/forge/sessions/{session_id}/body")
        client.post(f"/api/forge/sessions/{session_id}/review")
        character = client.post(f"/api/forge/sessions/{session_id}/save").json()

        resp = client.post(f"/api/forge/characters/{character['id']}/edit")
        assert resp.status_code == 201
        state = resp.json()
        assert state["stage"] == "review"
        assert state["characterId"] == character["id"]
        assert state["anchorHeadshot"] == HEADSHOT
        assert state["canGenerateBody"] is True

    def test_unknown_character_returns_404(self, client: TestClient) -> None:
        assert client.post("/api/forge/characters/missing/edit").status_code == 404

    def test_edit_session_keeps_requested_provider(
        self, client: TestClient, mock_dispatcher, store: InMemoryCharacterStore
    ) -> None:
        character = _seed_character(store)
        mock_dispatcher.generate.side_effect = [GenerationResult(image=BODY)]

        resp = client.post(
            f"/api/forge/characters/{character.id}/edit",
            json={"provider": "comet", "model": "flux-kontext-pro"},
        )
        session_id = resp.json()["id"]
        assert client.post(f"/api/forge/sessions/{session_id}/body").status_code == 200

        request = mock_dispatcher.generate.await_args.args[0]
        assert request.provider is Provider.comet
        assert request.model == "flux-kontext-pro"
        assert request.character_reference == HEADSHOT


# ---------------------------------------------------------------------------
# Character-anchored generations
# ---------------------------------------------------------------------------

SCENE = "data:image/png;base64,U0NFTkU="
RESULT = "data:image/png;base64,UkVTVUxU"


class TestGenerateWithCharacter:
    def test_scene_is_saved_to_gallery(
        self, client: TestClient, mock_dispatcher, store: InMemoryCharacterStore
    ) -> None:
        character = _seed_character(store)
        mock_dispatcher.generate.side_effect = [GenerationResult(image=RESULT)]

        resp = client.post(
            f"/api/forge/characters/{character.id}/generate",
            json={"kind": "scene", "prompt": "walking through a night market", "aspectRatio": "16:9"},
        )

        assert resp.status_code == 201
        item = resp.json()
        assert item["imageUrl"] == RESULT
        assert item["type"] == "generation"
        assert item["influencerId"] == character.id
        request = mock_dispatcher.generate.await_args.args[0]
        assert request.character_reference == HEADSHOT
        assert request.aspect_ratio is AspectRatio.wide
        assert "night market" in request.prompt
        assert store.gallery[0].id == item["id"]

    def test_reference_sheet_is_wide_with_twelve_poses(
        self, client: TestClient, mock_dispatcher, store: InMemoryCharacterStore
    ) -> None:
        character = _seed_character(store)
        mock_dispatcher.generate.side_effect = [GenerationResult(image=RESULT)]

        resp = client.post(
            f"/api/forge/characters/{character.id}/generate",
            json={"kind": "sheet", "prompt": "Winter parka"},
        )

        assert resp.status_code == 201
        request = mock_dispatcher.generate.await_args.args[0]
        assert request.aspect_ratio is AspectRatio.wide
        assert request.reference_strength == "high"
        assert "exactly 12 distinct poses" in request.prompt
        assert "Winter parka" in request.prompt

    def test_insertion_is_saved_as_faceswap(
        self, client: TestClient, mock_dispatcher, store: InMemoryCharacterStore
    ) -> None:
        character = _seed_character(store)
        mock_dispatcher.generate.side_effect = [GenerationResult(image=RESULT)]

        resp = client.post(
            f"/api/forge/characters/{character.id}/generate",
            json={"kind": "insertion", "sceneImage": SCENE},
        )

        assert resp.status_code == 201
        assert resp.json()["type"] == "faceswap"
        request = mock_dispatcher.generate.await_args.args[0]
        assert request.scene_image == SCENE
        assert request.character_reference == HEADSHOT

    def test_insertion_without_scene_returns_422(self, client: TestClient, store: InMemoryCharacterStore) -> None:
        character = _seed_character(store)
        resp = client.post(f"/api/forge/characters/{character.id}/generate", json={"kind": "insertion"})
        assert resp.status_code == 422

    def test_unknown_character_returns_404(self, client: TestClient) -> None:
        resp = client.post("/api/forge/characters/missing/generate", json={"kind": "scene", "prompt": "beach"})
        assert resp.status_code == 404

    def test_text_only_result_returns_502_and_saves_nothing(
        self, client: TestClient, mock_dispatcher, store: InMemoryCharacterStore
    ) -> None:
        character = _seed_character(store)
        mock_dispatcher.generate.side_effect = [GenerationResult(text="I can't create that image")]

        resp = client.post(
            f"/api/forge/characters/{character.id}/generate",
            json={"kind": "scene", "prompt": "on stage"},
        )

        assert resp.status_code == 502
        assert store.gallery == []
