import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OPENAI_API_KEY"] = ""
os.environ["CHAT_WEBHOOK_TOKEN"] = ""
os.environ["OPERATOR_API_TOKEN"] = ""

from datetime import timedelta  # noqa: E402
from typing import List, Optional  # noqa: E402
from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models  # noqa: E402,F401
from app.config import settings  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.models import Assistant, ChannelBinding, Company, CompanySubscription, SubscriptionPlan  # noqa: E402
from app.services.dispatch import DispatcherRegistry, LocalDispatcher  # noqa: E402
from app.services.ingestion_service import IngestionService  # noqa: E402
from app.services.llm import AssistantProvider, AssistantProviderError, MessageContent, RunOutcome  # noqa: E402
from app.services.reply_service import ReplyOrchestrator  # noqa: E402
from app.services.result import Result  # noqa: E402
from app.services.timeutils import utcnow  # noqa: E402


class FakeAssistantProvider(AssistantProvider):
    """In-memory provider that records every call."""

    def __init__(self, replies: Optional[List[Optional[str]]] = None, configured: bool = True):
        self.configured = configured
        self.replies = list(replies) if replies is not None else ["Thanks, we will help you."]
        self.created_assistants: list[dict] = []
        self.threads: list[dict] = []
        self.uploads: list[dict] = []
        self.messages: list[tuple[str, MessageContent]] = []
        self.runs: list[tuple[str, str]] = []
        self.fail_create_assistant = False
        self.fail_add_message_times = 0

    def is_configured(self) -> bool:
        return self.configured

    def create_assistant(self, *, name, instructions, model, tools=None, metadata=None) -> str:
        if self.fail_create_assistant:
            raise AssistantProviderError("create failed")
        self.created_assistants.append({"name": name, "tools": tools, "metadata": metadata})
        return f"asst_{len(self.created_assistants)}"

    def create_thread(self, metadata=None) -> str:
        self.threads.append(metadata or {})
        return f"thread_{len(self.threads)}"

    def upload_file(self, *, filename, data, mime_type, purpose) -> str:
        self.uploads.append({"filename": filename, "size": len(data), "mime_type": mime_type, "purpose": purpose})
        return f"file_{len(self.uploads)}"

    def add_message(self, thread_id: str, content: MessageContent) -> str:
        if self.fail_add_message_times > 0:
            self.fail_add_message_times -= 1
            raise AssistantProviderError("thread is busy")
        self.messages.append((thread_id, content))
        return f"msg_{len(self.messages)}"

    def run_and_wait(self, thread_id: str, assistant_id: str) -> RunOutcome:
        self.runs.append((thread_id, assistant_id))
        text = self.replies.pop(0) if self.replies else None
        return RunOutcome(status="completed" if text else "timeout", text=text)


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def media_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "media_storage_dir", str(tmp_path / "media"))
    monkeypatch.setattr(settings, "public_base_url", "https://chat.example.com")
    return tmp_path / "media"


@pytest.fixture
def make_company(db):
    def factory(
        name: str = "Acme",
        included_chats: int = 20,
        status: str = Company.STATUS_ACTIVE,
        subscription: bool = True,
        **subscription_fields,
    ) -> Company:
        company = Company(name=name, status=status)
        db.add(company)
        db.flush()
        if subscription:
            now = utcnow()
            plan = SubscriptionPlan(name="Starter", included_chats=included_chats, billing_cycle_days=30, price=0)
            db.add(plan)
            db.flush()
            values = {
                "company_id": company.id,
                "plan_id": plan.id,
                "status": CompanySubscription.STATUS_ACTIVE,
                "quantity": 1,
                "chat_count_current_period": 0,
                "starts_at": now - timedelta(days=1),
                "expires_at": now + timedelta(days=365),
                "period_started_at": now - timedelta(days=1),
                "period_ends_at": now + timedelta(days=29),
            }
            values.update(subscription_fields)
            db.add(CompanySubscription(**values))
        db.commit()
        return company

    return factory


@pytest.fixture
def make_assistant(db):
    def factory(company: Company, name: str = "Aria", **fields) -> Assistant:
        values = {"is_active": True, "openai_assistant_id": "asst_existing"}
        values.update(fields)
        assistant = Assistant(company_id=company.id, name=name, **values)
        db.add(assistant)
        db.commit()
        return assistant

    return factory


@pytest.fixture
def make_binding(db):
    def factory(assistant: Assistant, channel: str, **fields) -> ChannelBinding:
        values = {"is_active": True, "credentials": {}, "settings": {}}
        values.update(fields)
        binding = ChannelBinding(company_id=assistant.company_id, assistant_id=assistant.id, channel=channel, **values)
        db.add(binding)
        db.commit()
        return binding

    return factory


@pytest.fixture
def fake_provider():
    return FakeAssistantProvider()


@pytest.fixture
def dispatchers():
    """Registry whose remote channels are mocks returning provider ids."""
    registry = DispatcherRegistry()
    for channel in ("widget", "api", "internal-test"):
        registry.register(LocalDispatcher(channel))
    for channel in ("telegram", "instagram"):
        dispatcher = Mock()
        dispatcher.channel = channel
        dispatcher.supports_media = False
        dispatcher.send.return_value = Result.success(f"{channel}-42")
        registry.register(dispatcher)
    return registry


@pytest.fixture
def ingestion(fake_provider, dispatchers):
    return IngestionService(orchestrator=ReplyOrchestrator(provider=fake_provider), dispatchers=dispatchers)


@pytest.fixture
def client(db, ingestion):
    from app.main import app
    from app.routers.dependencies import get_ingestion_service

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ingestion_service] = lambda: ingestion
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_provider():
    return FakeAssistantProvider
