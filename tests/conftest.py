from __future__ import annotations

from typing import Any

import orjson
import pytest

from Entropy_decomp.adapters.registry import AdapterRegistry
from Entropy_decomp.config.settings import OrchestratorSettings, get_settings
from Entropy_decomp.models import (
    ExtractionResult,
    FeatureRecord,
    Requirement,
    RequirementStatus,
    RequirementType,
)
from Entropy_decomp.orchestration.orchestrator import DecompositionOrchestrator
from Entropy_decomp.utils.storage_keys import extracted_text_key

PRIMARY_ADAPTER_ID = "anthropic-claude-4-sonnet"
REQUIREMENT_TEXT = (
    "Users sign in with email and password. The API must return a session token within 200 ms.\n\n"
    "Admins can export monthly usage reports as CSV files."
)

CLASSIFICATION_PAYLOAD: dict[str, Any] = {
    "type": "new_feature",
    "confidence": 0.9,
    "reasoning": "Describes capabilities that do not exist yet",
    "suggestedDecomposition": True,
    "indicators": {
        "hasMultipleThemes": True,
        "estimatedComplexity": "medium",
        "scopeIndicators": ["authentication", "reporting"],
        "ambiguityFlags": [],
    },
}

DECOMPOSITION_PAYLOAD: dict[str, Any] = {
    "themes": [
        {"id": "t1", "name": "Authentication", "description": "User sign-in", "confidence": 0.9},
        {"id": "t2", "name": "Reporting", "description": "Usage reports", "confidence": 0.8},
    ],
    "atomicRequirements": [
        {
            "id": "ar1",
            "text": "The API must return a session token within 200 ms",
            "clarityScore": 0.9,
            "theme": "t1",
            "dependencies": [],
        },
        {
            "id": "ar2",
            "text": "Users should be able to reset their password by email",
            "clarityScore": 0.8,
            "theme": "t1",
        },
        {
            "id": "ar3",
            "text": "Admins can export monthly usage reports as CSV files",
            "clarityScore": 0.7,
            "theme": "t2",
        },
    ],
    "featureCandidates": [
        {
            "title": "Login",
            "description": "As a user, I want to sign in so that I can access my data",
            "theme": "t1",
            "atomicRequirementIds": ["ar1", "ar2"],
            "estimatedComplexity": "medium",
            "suggestedPriority": 8,
        },
        {
            "title": "Usage export",
            "description": "Export usage data for admins",
            "theme": "t2",
            "atomicRequirementIds": ["ar3"],
        },
    ],
    "clarificationQuestions": [
        {"question": "Which SSO providers are required?", "questionType": "text", "priority": "blocking"},
    ],
}

CLASSIFICATION_RESPONSE = orjson.dumps(CLASSIFICATION_PAYLOAD).decode()
DECOMPOSITION_RESPONSE = f"```json\n{orjson.dumps(DECOMPOSITION_PAYLOAD).decode()}\n```"


class FakeRequirementRepository:
    def __init__(self, *requirements: Requirement) -> None:
        self.records = {item.id: item for item in requirements}
        self.statuses: list[tuple[RequirementStatus, str | None]] = []
        self.lookups = 0

    async def find_by_id(self, requirement_id: str) -> Requirement | None:
        self.lookups += 1
        record = self.records.get(requirement_id)
        return record.model_copy() if record is not None else None

    async def update_status(
        self, requirement_id: str, status: RequirementStatus, error: str | None = None
    ) -> None:
        self.statuses.append((status, error))
        record = self.records[requirement_id]
        self.records[requirement_id] = record.model_copy(update={"status": status, "error": error})

    async def update_extracted_text(self, requirement_id: str, s3_key: str) -> None:
        record = self.records[requirement_id]
        self.records[requirement_id] = record.model_copy(update={"extracted_text_s3_key": s3_key})

    async def update_classification(
        self, requirement_id: str, requirement_type: RequirementType, confidence: float
    ) -> None:
        record = self.records[requirement_id]
        self.records[requirement_id] = record.model_copy(
            update={"type": requirement_type, "classification_confidence": confidence}
        )


class FakeFeatureRepository:
    def __init__(self) -> None:
        self.features: list[FeatureRecord] = []

    async def create_feature(self, feature: FeatureRecord) -> str:
        self.features.append(feature)
        return f"feature-{len(self.features)}"


class FakeObjectStore:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.json_objects: dict[str, Any] = {}

    async def upload(self, key: str, body: bytes, content_type: str = "application/octet-stream") -> None:
        self.objects[key] = body

    async def download(self, key: str) -> bytes | None:
        return self.objects.get(key)

    async def upload_json(self, key: str, payload: Any) -> None:
        self.json_objects[key] = payload

    async def download_json(self, key: str) -> Any | None:
        return self.json_objects.get(key)


class FakeExtractionService:
    def __init__(self, storage: FakeObjectStore, text: str = REQUIREMENT_TEXT) -> None:
        self.storage = storage
        self.text = text
        self.extracted: list[str] = []

    async def extract_from_s3(self, s3_key: str) -> ExtractionResult:
        self.extracted.append(s3_key)
        return ExtractionResult(text=self.text, word_count=len(self.text.split()), page_count=1)

    async def save_extracted_text(
        self, requirement_id: str, project_id: str, client_id: str, result: ExtractionResult
    ) -> str:
        key = extracted_text_key(client_id, project_id, requirement_id)
        await self.storage.upload(key, result.text.encode("utf-8"), "text/plain")
        return key


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def classification_response() -> str:
    return CLASSIFICATION_RESPONSE


@pytest.fixture
def decomposition_response() -> str:
    return DECOMPOSITION_RESPONSE


@pytest.fixture
def decomposition_payload() -> dict[str, Any]:
    return orjson.loads(orjson.dumps(DECOMPOSITION_PAYLOAD))


@pytest.fixture
def requirement_text() -> str:
    return REQUIREMENT_TEXT


@pytest.fixture
def requirement() -> Requirement:
    return Requirement(
        id="req-1",
        project_id="project-1",
        client_id="client-1",
        source_file_s3_key="uploads/req-1.pdf",
    )


@pytest.fixture
def requirements(requirement: Requirement) -> FakeRequirementRepository:
    return FakeRequirementRepository(requirement)


@pytest.fixture
def features() -> FakeFeatureRepository:
    return FakeFeatureRepository()


@pytest.fixture
def storage() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def extraction(storage: FakeObjectStore) -> FakeExtractionService:
    return FakeExtractionService(storage)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def registry() -> AdapterRegistry:
    return AdapterRegistry()


@pytest.fixture
def build_orchestrator(requirements, features, storage, extraction, sleeper):
    def build(registry: AdapterRegistry, **kwargs: Any) -> DecompositionOrchestrator:
        kwargs.setdefault("settings", OrchestratorSettings())
        return DecompositionOrchestrator.from_registry(
            registry,
            requirements=requirements,
            features=features,
            extraction=extraction,
            storage=storage,
            sleep=sleeper,
            **kwargs,
        )

    return build
