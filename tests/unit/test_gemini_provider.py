"""Tests for the Gemini provider against a stub SDK client."""

from types import SimpleNamespace

import pytest

from campus_rag.exceptions import GenerationError
from campus_rag.generation.gemini_provider import GeminiProvider


class StubModels:
    def __init__(self, texts=None, error=None, fail_after=None):
        self.texts = texts or []
        self.error = error
        self.fail_after = fail_after
        self.calls = []
        self.closed = False

    async def generate_content(self, model, contents, config):
        self.calls.append({"contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.texts[0] if self.texts else None)

    async def generate_content_stream(self, model, contents, config):
        self.calls.append({"contents": contents, "config": config})
        if self.error is not None:
            raise self.error

        async def chunks():
            try:
                for i, text in enumerate(self.texts):
                    if self.fail_after is not None and i == self.fail_after:
                        raise RuntimeError("stream reset")
                    yield SimpleNamespace(text=text)
            finally:
                self.closed = True

        return chunks()


@pytest.fixture
def make_provider(settings):
    def _make(**kwargs):
        provider = GeminiProvider(settings)
        models = StubModels(**kwargs)
        provider._client = SimpleNamespace(aio=SimpleNamespace(models=models))
        return provider, models

    return _make


async def _drain(stream):
    return [chunk async for chunk in stream]


@pytest.mark.asyncio
async def test_completion_passes_system_prompt_and_budget(make_provider):
    provider, models = make_provider(texts=["1:0.9"])
    assert await provider.generate_completion("系统提示", "用户输入", 64) == "1:0.9"
    config = models.calls[0]["config"]
    assert config.system_instruction == "系统提示"
    assert config.max_output_tokens == 64


@pytest.mark.asyncio
async def test_completion_without_budget_uses_default_and_handles_empty(make_provider, settings):
    provider, models = make_provider()
    assert await provider.generate_completion("", "用户输入", None) == ""
    assert models.calls[0]["config"].max_output_tokens == settings.gemini_max_tokens


@pytest.mark.asyncio
async def test_completion_failure_wrapped(make_provider):
    provider, _ = make_provider(error=RuntimeError("quota"))
    with pytest.raises(GenerationError):
        await provider.generate_completion("s", "u")


@pytest.mark.asyncio
async def test_stream_builds_grounded_request(make_provider):
    provider, models = make_provider(texts=["根据", "", "资料"])
    history = [
        {"role": "user", "content": "上一个问题"},
        {"role": "assistant", "content": "上一个回答"},
        {"role": "assistant", "content": ""},
    ]
    chunks = await _drain(provider.stream_response("奖学金怎么申请", "[1] (办法) 片段\n", history))
    assert chunks == ["根据", "资料"]

    call = models.calls[0]
    assert [c.role for c in call["contents"]] == ["user", "model", "user"]
    assert call["contents"][-1].parts[0].text == "奖学金怎么申请"
    system = call["config"].system_instruction
    assert system.index("<<参考资料开始>>") < system.index("[1] (办法) 片段") < system.index("<<参考资料结束>>")


@pytest.mark.asyncio
async def test_stream_without_references_uses_placeholder(make_provider):
    provider, models = make_provider(texts=["好的"])
    await _drain(provider.stream_response("奖学金怎么申请", "", []))
    assert "当前未检索到相关资料" in models.calls[0]["config"].system_instruction


@pytest.mark.asyncio
async def test_stream_errors_wrapped(make_provider):
    provider, _ = make_provider(error=RuntimeError("quota"))
    with pytest.raises(GenerationError):
        await _drain(provider.stream_response("q", "", []))

    provider, models = make_provider(texts=["a", "b"], fail_after=1)
    with pytest.raises(GenerationError):
        await _drain(provider.stream_response("q", "", []))
    assert models.closed


@pytest.mark.asyncio
async def test_closing_stream_closes_provider_stream(make_provider):
    provider, models = make_provider(texts=["a", "b", "c"])
    stream = provider.stream_response("q", "", [])
    assert await stream.__anext__() == "a"
    await stream.aclose()
    assert models.closed
