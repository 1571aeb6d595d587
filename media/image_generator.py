"""
图像生成器 - fal nano-banana 油画风格历史场景图
"""
import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from core.config_manager import ConfigManager
from content.prompt_templates import OIL_PAINTING_STYLE_SUFFIX, NEGATIVE_PROMPT_HISTORICAL
from utils.enhanced_logger import log_api_call
from utils.errors import ProviderError

PROVIDER_NAME = "image-generation"
DEFAULT_PROMPT = "Historical scene"
MAX_SEED = 999999


def apply_style_suffix(prompt: str) -> str:
    """追加油画风格后缀；已带后缀的提示词（重新生成时回填的）保持不变"""
    base = (prompt or "").strip() or DEFAULT_PROMPT
    if base.endswith(OIL_PAINTING_STYLE_SUFFIX.strip()):
        return base
    return f"{base}{OIL_PAINTING_STYLE_SUFFIX}"


def extract_image_url(payload: Any) -> Optional[str]:
    """响应中的图片地址: images[0].url，可能嵌套在 data 下"""
    if not isinstance(payload, dict):
        return None
    for container in (payload.get('data'), payload):
        if not isinstance(container, dict):
            continue
        images = container.get('images')
        if isinstance(images, list) and images and isinstance(images[0], dict):
            url = images[0].get('url')
            if url:
                return url
    return None


@dataclass
class ImageGenerationRequest:
    """图像生成请求"""
    prompt: str                                   # 场景视觉提示词（未加风格后缀）
    negative_prompt: str = NEGATIVE_PROMPT_HISTORICAL
    aspect_ratio: str = "16:9"
    num_images: int = 1
    seed: Optional[int] = None                    # 为空时随机
    scene_number: Optional[int] = None            # 仅用于日志


@dataclass
class GeneratedImage:
    """生成结果（远程URL，不落盘）"""
    image_url: str
    prompt_used: str               # 实际发送的带风格提示词
    aspect_ratio: str
    model: str
    style: str
    generation_time: float
    seed: int


class ImageGenerator:
    """
    图像生成器

    单次请求，不做重试；失败统一抛出 ProviderError，
    由图像池/重新生成控制器决定场景状态。
    """

    def __init__(self, config_manager: ConfigManager,
                 session: Optional[aiohttp.ClientSession] = None):
        self.config = config_manager
        self.logger = logging.getLogger('storyboard.media')
        self.image_config = config_manager.get('media.image', {})
        self.endpoint = self.image_config.get('endpoint', 'https://fal.run/fal-ai/nano-banana')
        self.model = self.image_config.get('model', 'fal-ai/nano-banana')
        self.style = self.image_config.get('style', 'oil-painting-historical')
        self.timeout = config_manager.get('general.request_timeout', 120)
        self._session = session

    def build_payload(self, request: ImageGenerationRequest) -> Dict[str, Any]:
        """fal 输入体"""
        seed = request.seed if request.seed is not None else random.randint(0, MAX_SEED)
        return {
            "prompt": apply_style_suffix(request.prompt),
            "negative_prompt": request.negative_prompt,
            "num_images": request.num_images,
            "aspect_ratio": request.aspect_ratio,
            "seed": seed,
        }

    async def generate(self, request: ImageGenerationRequest) -> GeneratedImage:
        """
        生成一张场景图

        Raises:
            ProviderError: 未配置密钥、非200状态、响应中无图片地址
        """
        api_key = self.config.get_api_key('fal')
        if not api_key:
            raise ProviderError(PROVIDER_NAME, "FAL_API_KEY is not configured")

        payload = self.build_payload(request)
        headers = {
            "Authorization": f"Key {api_key}",
            "Content-Type": "application/json",
        }

        label = f"scene {request.scene_number}" if request.scene_number else "image"
        self.logger.info(f"🎨 Generating {label} ({len(payload['prompt'])} prompt chars)")
        start_time = time.time()

        try:
            result = await self._post(payload, headers)
        except ProviderError as e:
            log_api_call(self.logger, "POST", self.endpoint, e.status, time.time() - start_time, error=e.message)
            raise
        except aiohttp.ClientError as e:
            self.logger.error(f"❌ Image request failed for {label}: {e}")
            raise ProviderError(PROVIDER_NAME, str(e) or type(e).__name__) from e
        except asyncio.TimeoutError as e:
            self.logger.error(f"❌ Image request timeout for {label}")
            raise ProviderError(PROVIDER_NAME, "Image generation timeout") from e

        image_url = extract_image_url(result)
        if not image_url:
            raise ProviderError(PROVIDER_NAME, "No image URL in response")

        generation_time = time.time() - start_time
        log_api_call(self.logger, "POST", self.endpoint, 200, generation_time)
        self.logger.info(f"✅ Generated {label} in {generation_time:.2f}s")

        return GeneratedImage(
            image_url=image_url,
            prompt_used=payload['prompt'],
            aspect_ratio=payload['aspect_ratio'],
            model=self.model,
            style=self.style,
            generation_time=generation_time,
            seed=payload['seed'],
        )

    async def _post(self, payload: Dict[str, Any], headers: Dict[str, str]) -> Any:
        if self._session is not None:
            return await self._send(self._session, payload, headers)

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            return await self._send(session, payload, headers)

    async def _send(self, session: aiohttp.ClientSession,
                    payload: Dict[str, Any], headers: Dict[str, str]) -> Any:
        async with session.post(self.endpoint, json=payload, headers=headers) as response:
            if response.status != 200:
                error_text = await response.text()
                raise ProviderError(PROVIDER_NAME, error_text[:500] or "request failed", response.status)
            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise ProviderError(PROVIDER_NAME, f"Malformed image response: {e}", response.status) from e
