"""
历史研究客户端 - Perplexity chat/completions 接口
"""
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from core.config_manager import ConfigManager
from utils.enhanced_logger import log_api_call
from utils.errors import ProviderError

PROVIDER_NAME = "research"


class ResearchClient:
    """
    研究提供商客户端

    请求体: {model, messages, temperature, max_tokens, return_citations?}
    响应体: {choices: [{message: {content}}]}
    """

    def __init__(self, config_manager: ConfigManager, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config_manager
        self.logger = logging.getLogger('storyboard.research')
        self.api_url = config_manager.get('research.api_url', 'https://api.perplexity.ai/chat/completions')
        self.model = config_manager.get('research.model', 'sonar-pro')
        self.timeout = config_manager.get('general.request_timeout', 120)
        self._http_client = http_client

    def _headers(self) -> Dict[str, str]:
        api_key = self.config.get_api_key('perplexity')
        if not api_key:
            raise ProviderError(PROVIDER_NAME, "PERPLEXITY_API_KEY is not configured")
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    async def complete(self, messages: List[Dict[str, str]], temperature: float,
                       max_tokens: int, return_citations: bool = False) -> str:
        """
        调用研究接口并返回消息内容

        Raises:
            ProviderError: 非200状态、超时或响应中无内容
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if return_citations:
            payload["return_citations"] = True

        headers = self._headers()
        start_time = time.time()

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.api_url, headers=headers, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.api_url, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            self.logger.error("Research API call timeout")
            raise ProviderError(PROVIDER_NAME, "Research API call timeout") from e
        except httpx.HTTPError as e:
            self.logger.error(f"Research API call failed: {e}")
            raise ProviderError(PROVIDER_NAME, str(e)) from e

        elapsed = time.time() - start_time
        log_api_call(self.logger, "POST", self.api_url, response.status_code, elapsed,
                     error=None if response.status_code == 200 else response.text[:200])
        if response.status_code != 200:
            raise ProviderError(PROVIDER_NAME, response.text[:500] or "request failed", response.status_code)

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(PROVIDER_NAME, f"Malformed research response: {e}", response.status_code) from e

        if not content:
            raise ProviderError(PROVIDER_NAME, "No content returned from research API", response.status_code)

        self.logger.info(f"✅ Research call completed: {len(content)} chars in {elapsed:.2f}s")
        return content
