import json
from dataclasses import replace

import httpx
import pytest

from conftest import RecordingTransport, chat_completion, gemini_completion
from profilegen.errors import ConfigurationError, ExhaustedRetriesError, MalformedResponseError
from profilegen.executor import ResilientExecutor
from profilegen.models import ProfileData, RenderOptions
from profilegen.pipeline import ProfilePipeline
from profilegen.selection import candidate_backends


def host_of(request):
    return request.url.host


# --- candidate ordering ----------------------------------------------------


def test_explicit_preference_goes_first(settings):
    assert candidate_backends("gemini", settings) == ["gemini", "openai", "pollinations"]
    assert candidate_backends("A", settings) == ["openai", "gemini", "pollinations"]
    assert candidate_backends("b", settings) == ["gemini", "openai", "pollinations"]


def test_auto_only_lists_configured_backends(settings):
    assert candidate_backends(None, settings) == ["pollinations"]
    assert candidate_backends("auto", replace(settings, gemini_api_key="g")) == ["gemini", "pollinations"]
    both = replace(settings, gemini_api_key="g", openai_api_key="o")
    assert candidate_backends(None, both) == ["openai", "gemini", "pollinations"]


def test_default_preference_comes_from_settings(settings):
    assert candidate_backends(None, replace(settings, render_backend="gemini"))[0] == "gemini"


def test_pollinations_preference_is_not_duplicated(settings):
    assert candidate_backends("pollinations", settings) == ["pollinations"]


def test_unknown_backend_is_rejected(settings):
    with pytest.raises(ConfigurationError):
        candidate_backends("claude", settings)


# --- operations -------------------------------------------------------------


def make_pipeline(settings, handler, sleeper=None):
    transport = RecordingTransport(handler)
    executor = ResilientExecutor(max_attempts=3, base_delay=0, sleep=sleeper)
    return ProfilePipeline(settings, executor=executor, transport=transport), transport


async def test_reformulate_returns_validated_profile(settings, profile_json):
    fenced = "```json\n" + json.dumps(profile_json) + "\n```"
    pipeline, transport = make_pipeline(settings, lambda request: chat_completion(fenced))

    profile = await pipeline.reformulate("Jane Doe, backend engineer", secondary_text="Medium Profile:")

    assert profile.headers() == ["About me", "Experience"]
    assert all(s.header.strip() and s.text.strip() for s in profile.sections)
    body = transport.bodies()[0]
    assert body["response_format"] == {"type": "json_object"}
    assert "Featured articles" in body["messages"][0]["content"]


async def test_reformulate_uses_configured_token(settings, profile_json):
    settings = replace(settings, pollinations_token="secret")
    pipeline, transport = make_pipeline(settings, lambda request: chat_completion(json.dumps(profile_json)))

    await pipeline.reformulate("text")

    assert transport.requests[0].headers["authorization"] == "Bearer secret"


async def test_reformulate_rejects_malformed_output_without_retrying(settings):
    pipeline, transport = make_pipeline(settings, lambda request: chat_completion('{"sections": []}'))

    with pytest.raises(MalformedResponseError):
        await pipeline.reformulate("Jane Doe")
    assert len(transport.requests) == 1


async def test_reformulate_requires_text(settings):
    pipeline, _ = make_pipeline(settings, lambda request: chat_completion("{}"))
    with pytest.raises(ValueError):
        await pipeline.reformulate("   ")


async def test_augment_keeps_every_existing_header(settings, profile_json):
    answer = {"sections": [
        {"header": "Experience", "text": "Model tried to rewrite this"},
        {"header": "Volunteering", "text": "Mentor at Code Club since 2021."},
    ]}
    pipeline, _ = make_pipeline(settings, lambda request: chat_completion(json.dumps(answer)))
    base = ProfileData(**profile_json)

    merged = await pipeline.augment(base, "Add my volunteering")

    assert merged.headers() == ["About me", "Experience", "Volunteering"]
    assert set(base.headers()) <= set(merged.headers())
    assert merged.sections[1].text == base.sections[1].text


async def test_augment_requires_instructions(settings, profile_json):
    pipeline, transport = make_pipeline(settings, lambda request: chat_completion("{}"))
    with pytest.raises(ValueError):
        await pipeline.augment(ProfileData(**profile_json), "  ")
    assert transport.requests == []


async def test_render_prefers_configured_backend_then_falls_back(settings, profile_json):
    settings = replace(settings, gemini_api_key="g-key")

    def handler(request):
        if host_of(request) == "generativelanguage.googleapis.com":
            return httpx.Response(503)
        return chat_completion("```html\n<main class=\"bg-white text-slate-900\">Jane</main>\n```")

    pipeline, transport = make_pipeline(settings, handler)
    markup = await pipeline.render(ProfileData(**profile_json), RenderOptions(username="Jane"))

    assert markup == '<main class="bg-white text-slate-900">Jane</main>'
    hosts = [host_of(r) for r in transport.requests]
    assert hosts == ["generativelanguage.googleapis.com"] * 3 + ["text.pollinations.ai"]


async def test_render_survives_explicit_backend_without_key(settings, profile_json):
    pipeline, transport = make_pipeline(settings, lambda request: chat_completion("<section>ok</section>"))

    markup = await pipeline.render(ProfileData(**profile_json), RenderOptions(preferred_backend="A"))

    assert markup == "<section>ok</section>"
    assert [host_of(r) for r in transport.requests] == ["text.pollinations.ai"]


async def test_render_uses_openai_when_it_succeeds(settings, profile_json):
    settings = replace(settings, openai_api_key="sk", gemini_api_key="g")
    pipeline, transport = make_pipeline(settings, lambda request: chat_completion("<div>openai</div>"))

    markup = await pipeline.render(ProfileData(**profile_json))

    assert markup == "<div>openai</div>"
    assert [host_of(r) for r in transport.requests] == ["api.openai.com"]


async def test_render_raises_when_fallback_fails_too(settings, profile_json):
    settings = replace(settings, gemini_api_key="g-key")
    pipeline, transport = make_pipeline(settings, lambda request: httpx.Response(502))

    with pytest.raises(ExhaustedRetriesError) as exc_info:
        await pipeline.render(ProfileData(**profile_json))

    assert exc_info.value.backend == "pollinations"
    assert len(transport.requests) == 6


async def test_render_passes_gemini_output_through(settings, profile_json):
    settings = replace(settings, gemini_api_key="g-key")
    pipeline, _ = make_pipeline(settings, lambda request: gemini_completion("<article>g</article>"))

    assert await pipeline.render(ProfileData(**profile_json), RenderOptions(preferred_backend="gemini")) == "<article>g</article>"


async def test_empty_fenced_fragment_moves_to_next_backend(settings, profile_json):
    settings = replace(settings, gemini_api_key="g-key")

    def handler(request):
        if host_of(request) == "generativelanguage.googleapis.com":
            return gemini_completion("```html\n```")
        return chat_completion("<main>from pollinations</main>")

    pipeline, transport = make_pipeline(settings, handler)
    markup = await pipeline.render(ProfileData(**profile_json), RenderOptions(preferred_backend="gemini"))

    assert markup == "<main>from pollinations</main>"
    hosts = [host_of(r) for r in transport.requests]
    assert hosts == ["generativelanguage.googleapis.com", "text.pollinations.ai"]


async def test_empty_fragment_from_last_backend_is_malformed(settings, profile_json):
    pipeline, _ = make_pipeline(settings, lambda request: chat_completion("```\n```"))

    with pytest.raises(MalformedResponseError):
        await pipeline.render(ProfileData(**profile_json))
