import json

import httpx
import pytest

from profilegen.config import Settings
from profilegen.executor import ResilientExecutor

PROFILE = {
    "sections": [
        {"header": "About me", "text": "Backend engineer with eight years of experience."},
        {"header": "Experience", "text": "Acme Corp, Senior Software Engineer, 2019-2024."},
    ]
}


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler):
        self.requests = []

        def recording_handler(request):
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)

    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


def chat_completion(content, status_code=200):
    return httpx.Response(
        status_code,
        json={
            "id": "cmpl-1",
            "object": "chat.completion",
            "model": "openai",
            "choices": [
                {"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}
            ],
        },
    )


def gemini_completion(content):
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": content}]}}]})


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def executor(sleeper):
    return ResilientExecutor(max_attempts=3, base_delay=2.0, sleep=sleeper)


@pytest.fixture
def settings(tmp_path):
    return Settings(profile_store_dir=str(tmp_path / "profiles"))


@pytest.fixture
def profile_json():
    return json.loads(json.dumps(PROFILE))
