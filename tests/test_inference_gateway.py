import asyncio

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage

from coach_backend.api.inference_gateway import InferenceGateway, lc_text_from_content
from coach_backend.database.core.errors import InferenceMalformedResponse, InferenceTimeout, InferenceUnavailable

from conftest import FakeChatModel

REQUEST = httpx.Request("POST", "https://llm.test/v1/chat/completions")


def status_error(error_type, status):
    return error_type(f"status {status}", response=httpx.Response(status, request=REQUEST), body=None)


def gateway_for(model, recording_sleep, **kwargs):
    options = {"timeout_ms": 1000, "max_retries": 2, "backoff_ms": 100}
    options.update(kwargs)
    return InferenceGateway(model=model, sleep=recording_sleep, **options)


def test_returns_reply_text(recording_sleep):
    model = FakeChatModel("Tailor your resume to the job description.")

    reply = asyncio.run(gateway_for(model, recording_sleep).infer("prompt"))

    assert reply == "Tailor your resume to the job description."
    assert model.prompts == ["prompt"]
    assert recording_sleep.delays == []


def test_transient_errors_are_retried_with_linear_backoff(recording_sleep):
    model = FakeChatModel(
        openai.APIConnectionError(request=REQUEST),
        status_error(openai.RateLimitError, 429),
        "Recovered.",
    )

    reply = asyncio.run(gateway_for(model, recording_sleep).infer("prompt"))

    assert reply == "Recovered."
    assert len(model.prompts) == 3
    assert recording_sleep.delays == [0.1, 0.2]


def test_exhausted_retries_raise_unavailable(recording_sleep):
    model = FakeChatModel(*[status_error(openai.InternalServerError, 503) for _ in range(3)])

    with pytest.raises(InferenceUnavailable) as raised:
        asyncio.run(gateway_for(model, recording_sleep).infer("prompt"))

    assert not isinstance(raised.value, InferenceTimeout)
    assert len(model.prompts) == 3


def test_last_attempt_timing_out_raises_timeout(recording_sleep):
    model = FakeChatModel(openai.APIConnectionError(request=REQUEST), 0.5)

    with pytest.raises(InferenceTimeout):
        asyncio.run(gateway_for(model, recording_sleep, max_retries=1, timeout_ms=20).infer("prompt"))

    assert recording_sleep.delays == [0.1]


def test_client_timeout_error_counts_as_timeout(recording_sleep):
    model = FakeChatModel(openai.APITimeoutError(request=REQUEST))

    with pytest.raises(InferenceTimeout):
        asyncio.run(gateway_for(model, recording_sleep, max_retries=0).infer("prompt"))


def test_client_errors_are_not_retried(recording_sleep):
    model = FakeChatModel(status_error(openai.BadRequestError, 400), "never reached")

    with pytest.raises(InferenceUnavailable):
        asyncio.run(gateway_for(model, recording_sleep).infer("prompt"))

    assert len(model.prompts) == 1
    assert recording_sleep.delays == []


@pytest.mark.parametrize("content", ["", "  \n"])
def test_empty_reply_is_malformed_and_not_retried(recording_sleep, content):
    model = FakeChatModel(content, "never reached")

    with pytest.raises(InferenceMalformedResponse):
        asyncio.run(gateway_for(model, recording_sleep).infer("prompt"))

    assert len(model.prompts) == 1


def test_none_reply_is_malformed(recording_sleep):
    class SilentModel:
        async def ainvoke(self, prompt):
            return None

    with pytest.raises(InferenceMalformedResponse):
        asyncio.run(gateway_for(SilentModel(), recording_sleep).infer("prompt"))


def test_content_parts_are_joined():
    parts = [{"type": "text", "text": "Hello "}, {"type": "image_url", "image_url": "x"}, "world"]

    assert lc_text_from_content(parts) == "Hello world"
    assert lc_text_from_content(AIMessage(content="plain").content) == "plain"
    with pytest.raises(InferenceMalformedResponse):
        lc_text_from_content({"unexpected": True})
