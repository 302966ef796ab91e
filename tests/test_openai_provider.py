from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest

from app.services.llm import AssistantProviderError, MessageContent, OpenAIAssistantsProvider


def response(status_code=200, body=None):
    mock_response = Mock()
    mock_response.status_code = status_code
    mock_response.json.return_value = body or {}
    mock_response.text = str(body)
    return mock_response


def provider(**kwargs) -> OpenAIAssistantsProvider:
    return OpenAIAssistantsProvider(api_key="sk-test", sleep=lambda _: None, **kwargs)


class TestOpenAIRequests:
    def test_not_configured_without_key(self):
        assert OpenAIAssistantsProvider(api_key=None).is_configured() is False
        assert provider().is_configured() is True

    @patch("app.services.llm.openai_provider.httpx.Client")
    def test_assistants_v2_headers(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.request.return_value = response(body={"id": "thread_abc"})

        thread_id = provider().create_thread(metadata={"chat_id": 5})

        assert thread_id == "thread_abc"
        args, kwargs = mock_client.request.call_args
        assert args == ("POST", "https://api.openai.com/v1/threads")
        assert kwargs["headers"]["OpenAI-Beta"] == "assistants=v2"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["json"] == {"metadata": {"chat_id": "5"}}

    @patch("app.services.llm.openai_provider.httpx.Client")
    def test_error_status_raises(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.request.return_value = response(status_code=429, body={"error": "rate limited"})

        with pytest.raises(AssistantProviderError) as exc:
            provider().create_thread()
        assert exc.value.status_code == 429

    @patch("app.services.llm.openai_provider.httpx.Client")
    def test_network_error_raises(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.request.side_effect = httpx.ConnectTimeout("timed out")

        with pytest.raises(AssistantProviderError):
            provider().create_thread()

    @patch("app.services.llm.openai_provider.httpx.Client")
    def test_image_message_content(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.request.return_value = response(body={"id": "msg_1"})

        provider().add_message("thread_1", MessageContent(text="What is this?", image_file_id="file_9"))

        assert mock_client.request.call_args[1]["json"] == {
            "role": "user",
            "content": [
                {"type": "text", "text": "What is this?"},
                {"type": "image_file", "image_file": {"file_id": "file_9"}},
            ],
        }

    @patch("app.services.llm.openai_provider.httpx.Client")
    def test_attachment_with_tools(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.request.return_value = response(body={"id": "msg_1"})

        provider().add_message(
            "thread_1",
            MessageContent(text="See file", attachment_file_id="file_2", attachment_tools=["file_search"]),
        )

        payload = mock_client.request.call_args[1]["json"]
        assert payload["content"] == "See file"
        assert payload["attachments"] == [{"file_id": "file_2", "tools": [{"type": "file_search"}]}]


class TestRunAndWait:
    @patch("app.services.llm.openai_provider.httpx.Client")
    def test_polls_until_completed(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.request.side_effect = [
            response(body={"id": "run_1", "status": "queued"}),
            response(body={"id": "run_1", "status": "in_progress"}),
            response(body={"id": "run_1", "status": "completed"}),
            response(
                body={
                    "data": [
                        {"role": "assistant", "content": [{"type": "text", "text": {"value": "  "}}]},
                        {"role": "assistant", "content": [{"type": "text", "text": {"value": "We open at 9."}}]},
                    ]
                }
            ),
        ]

        outcome = provider().run_and_wait("thread_1", "asst_1")

        assert outcome.status == "completed"
        assert outcome.text == "We open at 9."
        last_call = mock_client.request.call_args
        assert last_call[1]["params"] == {"run_id": "run_1", "order": "desc", "limit": 20}

    @patch("app.services.llm.openai_provider.httpx.Client")
    def test_failed_run(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.request.return_value = response(body={"id": "run_1", "status": "failed"})

        outcome = provider().run_and_wait("thread_1", "asst_1")

        assert outcome.status == "failed"
        assert outcome.has_text is False

    @patch("app.services.llm.openai_provider.httpx.Client")
    def test_gives_up_after_max_attempts(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.request.return_value = response(body={"id": "run_1", "status": "in_progress"})

        outcome = provider(run_max_attempts=3).run_and_wait("thread_1", "asst_1")

        assert outcome.status == "timeout"
        assert mock_client.request.call_count == 4
