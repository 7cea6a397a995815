import json
import os
import re
import sys
import tempfile
from pathlib import Path

import pytest

os.environ.setdefault("ENABLE_FILE_LOGS", "0")

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storage.migrate import migrate
from config.settings import Settings, settings
from config.registry import TEXT_MODEL_KEY, bind_model, unbind_model


GOOD_MESSAGE = (
    "Welcome, it is a pleasure to meet you and I look forward to hearing about your experience today."
)
GOOD_COMMENT = "Thanks, your experience building Python services and designing APIs came through clearly."
GOOD_EVALUATION = {
    "score": 8,
    "feedback": "Strong and specific answers with good structure.",
    "strengths": ["Concrete examples", "Clear structure"],
    "improvements": ["Quantify results"],
    "technical_accuracy": 8,
    "communication_clarity": 9,
    "completeness": 7,
}


class FakeTextModel:
    """Answers interviewer prompts by kind and records every prompt it sees."""

    def __init__(self, *, analysis=None, message=GOOD_MESSAGE, evaluation=None):
        self.prompts = []
        self._analysis = analysis
        self.message = message
        self._evaluation = evaluation or GOOD_EVALUATION

    def __call__(self, *, prompt, **_):
        self.prompts.append(prompt)
        if '"technical_accuracy"' in prompt:
            return json.dumps(self._evaluation)
        match = re.search(r"QUESTION NUMBER: (\d+) of (\d+)", prompt)
        if match:
            number = int(match.group(1))
            if callable(self._analysis):
                return self._analysis(number)
            return json.dumps(
                {
                    "comment": GOOD_COMMENT,
                    "shouldAskFollowUp": False,
                    "followUpQuestion": None,
                    "shouldContinueToNext": True,
                    "nextQuestion": f"Could you walk me through the project behind answer number {number}?",
                    "reasoning": "clear answer",
                }
            )
        return self.message


@pytest.fixture(autouse=True)
def tmp_db(monkeypatch):
    td = tempfile.TemporaryDirectory()
    db_path = os.path.join(td.name, "test.db")
    monkeypatch.setattr(settings, "DB_PATH", db_path, raising=False)
    migrate(db_path)
    try:
        yield db_path
    finally:
        td.cleanup()


@pytest.fixture(autouse=True)
def clean_registry():
    unbind_model(TEXT_MODEL_KEY)
    yield
    unbind_model(TEXT_MODEL_KEY)


@pytest.fixture
def app_settings(tmp_db):
    return Settings(
        _env_file=None,
        GEMINI_API_KEY="",
        OPENAI_API_KEY="",
        LLM_CONFIG_PATH=None,
        LLM_RETRY_BACKOFF_S=0,
        SESSION_BACKEND="memory",
        DB_PATH=tmp_db,
    )


@pytest.fixture
def fake_model():
    model = FakeTextModel()
    bind_model(TEXT_MODEL_KEY, model)
    return model


@pytest.fixture
def client(app_settings):
    from fastapi.testclient import TestClient

    from api.app import create_app

    return TestClient(create_app(app_settings))
