"""
测试配置文件
提供全局fixtures和提供商替身
"""
import pytest
import asyncio
import copy
import tempfile
from pathlib import Path
from unittest.mock import patch
from typing import Any, Dict, List, Optional

# 系统导入
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config_manager import ConfigManager
from core.session_store import SessionStore
from media.image_generator import GeneratedImage, ImageGenerationRequest, apply_style_suffix
from utils.enhanced_logger import setup_enhanced_logging
from utils.errors import ProviderError


SAMPLE_SCRIPT = (
    "January 10th, 49 BC. The Rubicon River, northern Italy. Julius Caesar stands at the edge of "
    "the shallow stream with the Thirteenth Legion behind him. To cross is to declare war on Rome itself. "
    "He pauses, then speaks the words that Suetonius records: the die is cast."
)


@pytest.fixture
def test_config(temp_dir):
    """测试配置：默认配置 + 临时输出目录 + 精简日志"""
    config = copy.deepcopy(ConfigManager.default_config())
    config['general']['output_dir'] = str(temp_dir)
    config['general']['request_timeout'] = 5
    config['logging']['console_level'] = 'WARNING'
    return config


@pytest.fixture
def temp_dir():
    """临时目录fixture"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def config_manager(test_config):
    """配置管理器fixture（不读写磁盘配置文件，带测试密钥）"""
    with patch.object(ConfigManager, '_load_main_config') as mock_load:
        mock_load.return_value = test_config
        config = ConfigManager()
    config.api_keys = {
        'openrouter': 'test-openrouter-key',
        'perplexity': 'test-perplexity-key',
        'fal': 'test-fal-key',
    }
    yield config


@pytest.fixture
def logger_manager(config_manager):
    """日志管理器fixture"""
    return setup_enhanced_logging(config_manager.config)


@pytest.fixture
def session_store():
    return SessionStore()


@pytest.fixture
def sample_script():
    return SAMPLE_SCRIPT


class FakeLLMManager:
    """
    LLMClientManager 替身

    responses: task_type -> 文本 / 异常 / 文本列表（按调用顺序）
    streams: task_type -> 片段列表 / 异常
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None,
                 streams: Optional[Dict[str, Any]] = None,
                 fail_stream_after: Optional[int] = None):
        self.responses = responses or {}
        self.streams = streams or {}
        self.fail_stream_after = fail_stream_after
        self.calls: List[Dict[str, Any]] = []

    async def generate_text(self, task_type, user_prompt, system_prompt=None, max_tokens=None):
        self.calls.append({'task': task_type, 'prompt': user_prompt,
                           'system': system_prompt, 'max_tokens': max_tokens})
        response = self.responses[task_type]
        if isinstance(response, list):
            response = response.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def stream_text(self, task_type, user_prompt, system_prompt=None, max_tokens=None):
        self.calls.append({'task': task_type, 'prompt': user_prompt,
                           'system': system_prompt, 'max_tokens': max_tokens, 'stream': True})
        chunks = self.streams[task_type]
        if isinstance(chunks, Exception):
            raise chunks
        for i, chunk in enumerate(chunks):
            if self.fail_stream_after is not None and i >= self.fail_stream_after:
                raise ProviderError("text-generation", "connection reset", 502)
            await asyncio.sleep(0)
            yield chunk

    def tasks(self) -> List[str]:
        return [call['task'] for call in self.calls]


class FakeImageGenerator:
    """
    ImageGenerator 替身

    fail_prompts: 包含这些子串的提示词会失败
    fail_all: 所有请求都失败
    """

    def __init__(self, fail_prompts: Optional[List[str]] = None, fail_all: bool = False):
        self.fail_prompts = fail_prompts or []
        self.fail_all = fail_all
        self.requests: List[ImageGenerationRequest] = []

    async def generate(self, request: ImageGenerationRequest) -> GeneratedImage:
        self.requests.append(request)
        await asyncio.sleep(0)
        if self.fail_all or any(marker in request.prompt for marker in self.fail_prompts):
            raise ProviderError("image-generation", "upstream unavailable", 503)
        return GeneratedImage(
            image_url=f"https://images.test/{len(self.requests)}.png",
            prompt_used=apply_style_suffix(request.prompt),
            aspect_ratio="16:9",
            model="fal-ai/nano-banana",
            style="oil-painting-historical",
            generation_time=0.01,
            seed=42,
        )

    @property
    def call_count(self) -> int:
        return len(self.requests)


@pytest.fixture
def fake_llm_factory():
    return FakeLLMManager


@pytest.fixture
def fake_image_factory():
    return FakeImageGenerator


def make_scenes(count: int, prefix: str = "Scene"):
    from utils.structured_output_models import Scene
    return [
        Scene(scene_number=i + 1, script_snippet=f"{prefix} snippet {i + 1}",
              visual_prompt=f"{prefix} visual {i + 1}")
        for i in range(count)
    ]


@pytest.fixture
def scene_factory():
    return make_scenes


# pytest钩子函数
def pytest_configure(config):
    """pytest配置钩子"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
