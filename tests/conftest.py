import pytest
from fastapi.testclient import TestClient

from agents.code_explainer_agent import CodeExplainerAgent
from api_server.main import create_app
from tests.fakes import FakeChatModel, make_settings
from utils.rate_limit import InMemoryRateLimitStore


@pytest.fixture
def fake_model():
    return FakeChatModel()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def rate_limit_store():
    return InMemoryRateLimitStore()


@pytest.fixture
def client(settings, fake_model, rate_limit_store):
    app = create_app(
        settings=settings,
        explainer=CodeExplainerAgent(settings, llm_model=fake_model),
        rate_limit_store=rate_limit_store,
    )
    with TestClient(app) as test_client:
        yield test_client
