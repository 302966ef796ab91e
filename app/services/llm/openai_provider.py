import time
from typing import Callable, List, Optional

import httpx

from app.logging_config import get_logger
from app.services.llm.base import AssistantProvider, AssistantProviderError, MessageContent, RunOutcome

logger = get_logger("llm.openai")

TERMINAL_RUN_STATUSES = {"completed", "failed", "cancelled", "expired", "incomplete", "requires_action"}


class OpenAIAssistantsProvider(AssistantProvider):
    """OpenAI Assistants API (v2) provider: assistants, threads, files and runs."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        default_model: str = "gpt-4o",
        timeout_seconds: float = 60.0,
        run_max_attempts: int = 20,
        run_timeout_seconds: float = 900.0,
        poll_interval_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key or ""
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds
        self.run_max_attempts = max(int(run_max_attempts), 1)
        self.run_timeout_seconds = run_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep

    def is_configured(self) -> bool:
        return bool(self.api_key.strip())

    def _headers(self, json_body: bool = True) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "assistants=v2",
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        files: Optional[dict] = None,
        data: Optional[dict] = None,
    ) -> dict:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.request(
                    method,
                    url,
                    headers=self._headers(json_body=files is None),
                    json=json,
                    params=params,
                    files=files,
                    data=data,
                )
        except httpx.HTTPError as e:
            raise AssistantProviderError(f"OpenAI request failed: {e}") from e

        logger.debug(f"OpenAI {method} {path}: {response.status_code}")
        if response.status_code >= 400:
            raise AssistantProviderError(
                f"OpenAI API error: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise AssistantProviderError("OpenAI returned a non-JSON body") from e

    def create_assistant(
        self,
        *,
        name: str,
        instructions: Optional[str],
        model: Optional[str],
        tools: Optional[List[str]] = None,
        metadata: Optional[dict] = None,
    ) -> str:
        payload = {
            "name": name,
            "model": model or self.default_model,
            "tools": [{"type": tool} for tool in tools or []],
        }
        if instructions:
            payload["instructions"] = instructions
        if metadata:
            payload["metadata"] = {key: str(value) for key, value in metadata.items()}
        data = self._request("POST", "/assistants", json=payload)
        return self._require_id(data, "assistant")

    def create_thread(self, metadata: Optional[dict] = None) -> str:
        payload = {}
        if metadata:
            payload["metadata"] = {key: str(value) for key, value in metadata.items()}
        data = self._request("POST", "/threads", json=payload)
        return self._require_id(data, "thread")

    def upload_file(self, *, filename: str, data: bytes, mime_type: Optional[str], purpose: str) -> str:
        if not data:
            raise AssistantProviderError("Cannot upload an empty file")
        files = {"file": (filename or "upload", data, mime_type or "application/octet-stream")}
        body = self._request("POST", "/files", files=files, data={"purpose": purpose})
        return self._require_id(body, "file")

    def add_message(self, thread_id: str, content: MessageContent) -> str:
        payload: dict = {"role": "user"}
        if content.image_file_id or content.image_url:
            parts: list = [{"type": "text", "text": content.text}]
            if content.image_file_id:
                parts.append({"type": "image_file", "image_file": {"file_id": content.image_file_id}})
            else:
                parts.append({"type": "image_url", "image_url": {"url": content.image_url}})
            payload["content"] = parts
        else:
            payload["content"] = content.text

        if content.attachment_file_id and content.attachment_tools:
            payload["attachments"] = [
                {
                    "file_id": content.attachment_file_id,
                    "tools": [{"type": tool} for tool in content.attachment_tools],
                }
            ]

        data = self._request("POST", f"/threads/{thread_id}/messages", json=payload)
        return self._require_id(data, "message")

    def run_and_wait(self, thread_id: str, assistant_id: str) -> RunOutcome:
        run = self._request("POST", f"/threads/{thread_id}/runs", json={"assistant_id": assistant_id})
        run_id = self._require_id(run, "run")
        status = run.get("status") or "queued"

        deadline = time.monotonic() + self.run_timeout_seconds
        attempts = 0
        while status not in TERMINAL_RUN_STATUSES:
            attempts += 1
            if attempts > self.run_max_attempts or time.monotonic() >= deadline:
                logger.warning(
                    "OpenAI run did not finish in time",
                    extra={"context": {"thread_id": thread_id, "run_id": run_id, "status": status}},
                )
                return RunOutcome(status="timeout")
            self._sleep(self.poll_interval_seconds)
            run = self._request("GET", f"/threads/{thread_id}/runs/{run_id}")
            status = run.get("status") or status

        if status != "completed":
            logger.warning(
                "OpenAI run ended without completing",
                extra={"context": {"thread_id": thread_id, "run_id": run_id, "status": status}},
            )
            return RunOutcome(status=status)

        return RunOutcome(status=status, text=self._latest_run_reply(thread_id, run_id))

    def _latest_run_reply(self, thread_id: str, run_id: str) -> Optional[str]:
        data = self._request(
            "GET",
            f"/threads/{thread_id}/messages",
            params={"run_id": run_id, "order": "desc", "limit": 20},
        )
        for message in data.get("data") or []:
            if message.get("role") != "assistant":
                continue
            for part in message.get("content") or []:
                if part.get("type") != "text":
                    continue
                value = ((part.get("text") or {}).get("value") or "").strip()
                if value:
                    return value
        return None

    @staticmethod
    def _require_id(data: dict, kind: str) -> str:
        value = data.get("id") if isinstance(data, dict) else None
        if not value:
            raise AssistantProviderError(f"OpenAI response has no {kind} id")
        return str(value)
