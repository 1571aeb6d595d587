"""
基于LangChain的LLM客户端管理器 - 通过OpenRouter访问各阶段配置的模型

每个任务类型对应 settings.json 中 llm.<task_type> 的一组模型参数；
本层不做自动重试，失败统一包装为 ProviderError。
"""
import logging
import time
from typing import AsyncIterator, Dict, List, Optional, Tuple

from langchain_openai import ChatOpenAI
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from core.config_manager import ConfigManager, ModelConfig
from utils.errors import ProviderError

PROVIDER_NAME = "text-generation"


def build_messages(user_prompt: str, system_prompt: Optional[str] = None) -> List[BaseMessage]:
    """转换为LangChain消息格式"""
    messages: List[BaseMessage] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))
    messages.append(HumanMessage(content=user_prompt))
    return messages


def _chunk_text(content) -> str:
    """AIMessageChunk.content 可能是字符串或内容块列表"""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return ''.join(
            block.get('text', '') if isinstance(block, dict) else str(block)
            for block in content
        )
    return str(content or '')


class LLMClientManager:
    """
    LLM客户端管理器

    特性：
    1. 按任务类型缓存 ChatOpenAI 实例（OpenRouter兼容端点）
    2. generate_text: 单次完整响应 (ainvoke)
    3. stream_text: 增量文本片段 (astream)
    4. max_tokens 可按调用覆盖（token预算随时长/场景数变化）
    """

    def __init__(self, config_manager: ConfigManager):
        self.config = config_manager
        self.logger = logging.getLogger('storyboard.llm')
        self.request_timeout = config_manager.get('general.request_timeout', 120)
        self._clients: Dict[Tuple[str, int], ChatOpenAI] = {}

    def get_model_config(self, task_type: str) -> ModelConfig:
        return self.config.get_llm_config(task_type)

    def get_client(self, task_type: str, max_tokens: Optional[int] = None) -> ChatOpenAI:
        """获取（或创建）任务对应的ChatOpenAI客户端"""
        model_config = self.get_model_config(task_type)
        tokens = max_tokens or model_config.max_tokens
        key = (task_type, tokens)

        if key not in self._clients:
            self._clients[key] = ChatOpenAI(
                api_key=model_config.api_key or self.config.get_api_key('openrouter'),
                base_url=model_config.api_base,
                model=model_config.name,
                temperature=model_config.temperature,
                max_tokens=tokens,
                timeout=self.request_timeout,
                max_retries=0,
            )
            self.logger.debug(f"Created client for {task_type}: {model_config.name} (max_tokens={tokens})")

        return self._clients[key]

    async def generate_text(self, task_type: str, user_prompt: str,
                            system_prompt: Optional[str] = None,
                            max_tokens: Optional[int] = None) -> str:
        """
        单次调用，返回完整文本

        Raises:
            ProviderError: 网络/状态码错误或空响应
        """
        client = self.get_client(task_type, max_tokens)
        messages = build_messages(user_prompt, system_prompt)
        start_time = time.time()

        try:
            result = await client.ainvoke(messages)
        except Exception as e:
            raise self._wrap_error(task_type, e, start_time) from e

        text = _chunk_text(getattr(result, 'content', result))
        if not text.strip():
            self.logger.warning(f"Empty response for task: {task_type}")
            raise ProviderError(PROVIDER_NAME, f"Empty response for {task_type}")

        self.logger.info(f"✅ LLM call successful for {task_type} "
                         f"({len(text)} chars in {time.time() - start_time:.2f}s)")
        return text

    async def stream_text(self, task_type: str, user_prompt: str,
                          system_prompt: Optional[str] = None,
                          max_tokens: Optional[int] = None) -> AsyncIterator[str]:
        """
        流式调用，逐个产出文本片段

        Raises:
            ProviderError: 在迭代过程中抛出
        """
        client = self.get_client(task_type, max_tokens)
        messages = build_messages(user_prompt, system_prompt)
        start_time = time.time()
        received = 0

        self.logger.info(f"🚀 Streaming {task_type} with {client.model_name}")

        try:
            async for chunk in client.astream(messages):
                text = _chunk_text(getattr(chunk, 'content', chunk))
                if text:
                    received += len(text)
                    yield text
        except Exception as e:
            raise self._wrap_error(task_type, e, start_time) from e

        self.logger.info(f"✅ Stream finished for {task_type} "
                         f"({received} chars in {time.time() - start_time:.2f}s)")

    def _wrap_error(self, task_type: str, error: Exception, start_time: float) -> ProviderError:
        status = getattr(error, 'status_code', None)
        self.logger.error(f"❌ LLM call failed for {task_type} after "
                          f"{time.time() - start_time:.2f}s: {error}")
        return ProviderError(PROVIDER_NAME, str(error) or type(error).__name__, status)
