import json

from config.llm import route_from_settings
from config.registry import TEXT_MODEL_KEY, bind_model, get_model, has_model, unbind_model
from config.settings import Settings


def _settings(**overrides):
    base = dict(_env_file=None, GEMINI_API_KEY="", OPENAI_API_KEY="", LLM_CONFIG_PATH=None)
    base.update(overrides)
    return Settings(**base)


def test_settings_defaults():
    settings = _settings()
    assert settings.DB_PATH.endswith(".db")
    assert settings.TOTAL_QUESTIONS == 5
    assert settings.LLM_MAX_ATTEMPTS == 3
    assert settings.LLM_RETRY_BACKOFF_S == 1.0
    assert settings.LLM_TIMEOUT_S == 60
    assert settings.CANDIDATE_QUESTION_LIMIT == 1


def test_no_keys_means_simulation():
    assert route_from_settings(_settings()) is None


def test_auto_prefers_openai_then_gemini():
    both = route_from_settings(_settings(OPENAI_API_KEY="o", GEMINI_API_KEY="g"))
    assert both.provider == "openai"
    gemini = route_from_settings(_settings(GEMINI_API_KEY="g"))
    assert gemini.provider == "gemini"
    assert gemini.generation["temperature"] == 0.3
    assert gemini.endpoint == "/models/gemini-2.5-flash:generateContent"


def test_explicit_provider_without_key_is_none():
    assert route_from_settings(_settings(LLM_PROVIDER="gemini", OPENAI_API_KEY="o")) is None


def test_route_file_wins(tmp_path):
    path = tmp_path / "routes.json"
    path.write_text(
        json.dumps(
            {
                "default_route": "local",
                "llm_routes": {
                    "local": {
                        "name": "local",
                        "provider": "openai",
                        "base_url": "http://localhost:1234/v1",
                        "endpoint": "/chat/completions",
                        "model": "qwen",
                    }
                },
            }
        ),
        encoding="utf-8",
    )
    route = route_from_settings(_settings(LLM_CONFIG_PATH=str(path), GEMINI_API_KEY="g"))
    assert route.name == "local"
    assert route.model == "qwen"


def test_registry_bind_and_retrieve():
    marker = object()
    bind_model(TEXT_MODEL_KEY, lambda **_: marker)
    assert has_model(TEXT_MODEL_KEY)
    assert get_model(TEXT_MODEL_KEY)() is marker
    unbind_model(TEXT_MODEL_KEY)
    assert not has_model(TEXT_MODEL_KEY)
