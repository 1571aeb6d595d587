"""
提供商客户端单元测试 - LLM（模拟ChatOpenAI）与研究接口（httpx MockTransport）
"""
import json
import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage, SystemMessage

from utils.errors import ProviderError
from utils.llm_client_manager import LLMClientManager, build_messages
from utils.research_client import ResearchClient


class TestLLMClientManager:

    @pytest.mark.unit
    def test_build_messages(self):
        messages = build_messages("user text", "system text")
        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        assert len(build_messages("only user")) == 1

    @pytest.mark.unit
    def test_client_uses_task_config_and_budget(self, config_manager):
        with patch('utils.llm_client_manager.ChatOpenAI') as mock_chat:
            manager = LLMClientManager(config_manager)
            manager.get_client('scene_breakdown', max_tokens=5000)
            manager.get_client('scene_breakdown', max_tokens=5000)

        assert mock_chat.call_count == 1
        kwargs = mock_chat.call_args.kwargs
        assert kwargs['model'] == 'openai/gpt-4o'
        assert kwargs['max_tokens'] == 5000
        assert kwargs['temperature'] == 0.7

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generate_text(self, config_manager):
        client = MagicMock()
        client.ainvoke = AsyncMock(return_value=AIMessage(content="The die is cast."))

        with patch('utils.llm_client_manager.ChatOpenAI', return_value=client):
            manager = LLMClientManager(config_manager)
            text = await manager.generate_text('script_analysis', "prompt", system_prompt="system")

        assert text == "The die is cast."
        sent = client.ainvoke.call_args.args[0]
        assert sent[0].content == "system"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_and_failed_responses(self, config_manager):
        client = MagicMock()
        client.ainvoke = AsyncMock(side_effect=[AIMessage(content="  "), RuntimeError("502 Bad Gateway")])

        with patch('utils.llm_client_manager.ChatOpenAI', return_value=client):
            manager = LLMClientManager(config_manager)
            with pytest.raises(ProviderError):
                await manager.generate_text('script_analysis', "prompt")
            with pytest.raises(ProviderError) as exc_info:
                await manager.generate_text('script_analysis', "prompt")

        assert "502" in str(exc_info.value)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stream_text_yields_fragments(self, config_manager):
        async def astream(messages):
            for piece in ["[", "", '{"a": 1}', "]"]:
                yield AIMessageChunk(content=piece)

        client = MagicMock()
        client.astream = astream
        client.model_name = "openai/gpt-4o"

        with patch('utils.llm_client_manager.ChatOpenAI', return_value=client):
            manager = LLMClientManager(config_manager)
            fragments = [f async for f in manager.stream_text('scene_breakdown', "prompt", max_tokens=2048)]

        assert fragments == ["[", '{"a": 1}', "]"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stream_failure_is_provider_error(self, config_manager):
        async def astream(messages):
            yield AIMessageChunk(content="[")
            raise ConnectionError("reset by peer")

        client = MagicMock()
        client.astream = astream
        client.model_name = "openai/gpt-4o"

        with patch('utils.llm_client_manager.ChatOpenAI', return_value=client):
            manager = LLMClientManager(config_manager)
            received = []
            with pytest.raises(ProviderError):
                async for fragment in manager.stream_text('scene_breakdown', "prompt"):
                    received.append(fragment)

        assert received == ["["]


def _research_client(config_manager, handler):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ResearchClient(config_manager, http_client=http_client)


class TestResearchClient:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_request_shape(self, config_manager):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen['auth'] = request.headers['Authorization']
            seen['body'] = json.loads(request.content)
            return httpx.Response(200, json={'choices': [{'message': {'content': 'Findings'}}]})

        client = _research_client(config_manager, handler)
        content = await client.complete([{"role": "user", "content": "q"}],
                                        temperature=0.2, max_tokens=3000, return_citations=True)

        assert content == "Findings"
        assert seen['auth'] == "Bearer test-perplexity-key"
        assert seen['body']['model'] == "sonar-pro"
        assert seen['body']['return_citations'] is True
        assert seen['body']['temperature'] == 0.2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_non_200_is_provider_error(self, config_manager):
        client = _research_client(config_manager, lambda request: httpx.Response(401, text="bad key"))
        with pytest.raises(ProviderError) as exc_info:
            await client.complete([], temperature=0.3, max_tokens=10)
        assert exc_info.value.status == 401

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{'choices': []}, {'choices': [{'message': {'content': ''}}]}])
    async def test_missing_content(self, config_manager, payload):
        client = _research_client(config_manager, lambda request: httpx.Response(200, json=payload))
        with pytest.raises(ProviderError):
            await client.complete([], temperature=0.3, max_tokens=10)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_key(self, config_manager):
        config_manager.api_keys['perplexity'] = ''
        handler = MagicMock()
        client = _research_client(config_manager, handler)
        with pytest.raises(ProviderError):
            await client.complete([], temperature=0.3, max_tokens=10)
        handler.assert_not_called()
