"""
配置管理器 - 历史叙事分镜流水线的全部参数
"""
import json
import os
import re
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass
import logging

@dataclass
class ModelConfig:
    """LLM模型配置"""
    name: str
    temperature: float
    max_tokens: int
    api_base: str
    api_key: str

@dataclass
class PipelineConfig:
    """流水线常量（时长估算、图像池、token预算）"""
    seconds_per_scene: int = 7
    words_per_minute: int = 150
    max_generated_images: int = 60
    image_unit_cost: float = 0.004
    min_script_chars: int = 50
    min_tts_chars: int = 10
    breakdown_tokens_per_scene: int = 180
    breakdown_token_buffer: int = 1000
    breakdown_min_tokens: int = 2048
    breakdown_max_tokens: int = 16000
    script_tokens_per_word: float = 1.5
    script_min_tokens: int = 2048
    script_max_tokens: int = 16000
    rewrite_length_tolerance: float = 0.15
    final_script_tolerance: float = 0.30

class ConfigManager:
    """
    配置管理器

    各阶段的默认模型参数：
    - scene_breakdown: openai/gpt-4o, temp=0.7, max_tokens由场景数决定
    - script_analysis: anthropic/claude-sonnet-4, temp=0.7, max_tokens=4096
    - script_rewrite: anthropic/claude-sonnet-4, temp=0.7, max_tokens=16384
    - tts_formatting: openai/gpt-4o, temp=0.3, max_tokens=16000
    - narrative_outline: anthropic/claude-sonnet-4, temp=0.7, max_tokens=3000
    - final_script: anthropic/claude-sonnet-4, temp=0.8, max_tokens由目标时长决定
    """

    _ENV_PATTERN = re.compile(r'\$\{([A-Z0-9_]+)(?::-([^}]*))?\}')

    def __init__(self, config_path: str = "config/settings.json"):
        self.config_path = Path(config_path)
        self.config_dir = self.config_path.parent
        self.logger = logging.getLogger(__name__)

        # 加载主配置
        self.config = self._load_main_config()

        # 加载API配置
        self._load_api_configs()

    def _load_main_config(self) -> Dict[str, Any]:
        """加载主配置文件"""
        if not self.config_path.exists():
            self._create_default_config()

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                config = json.load(f)
            self.logger.info(f"Loaded config from {self.config_path}")
            return config
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to load config: {e}")
            return self.default_config()

    @staticmethod
    def default_config() -> Dict[str, Any]:
        """默认配置"""
        llm_defaults = {
            "api_base": "${OPENROUTER_API_BASE:-https://openrouter.ai/api/v1}",
            "api_key": "${OPENROUTER_API_KEY}"
        }
        return {
            "general": {
                "output_dir": "output",
                "log_level": "INFO",
                "request_timeout": 120
            },
            "pipeline": {
                "seconds_per_scene": 7,
                "words_per_minute": 150,
                "max_generated_images": 60,
                "image_unit_cost": 0.004,
                "min_script_chars": 50,
                "min_tts_chars": 10,
                "breakdown_tokens_per_scene": 180,
                "breakdown_token_buffer": 1000,
                "breakdown_min_tokens": 2048,
                "breakdown_max_tokens": 16000,
                "script_tokens_per_word": 1.5,
                "script_min_tokens": 2048,
                "script_max_tokens": 16000,
                "rewrite_length_tolerance": 0.15,
                "final_script_tolerance": 0.30
            },
            "llm": {
                "scene_breakdown": {"model": "openai/gpt-4o", "temperature": 0.7, "max_tokens": 16000, **llm_defaults},
                "script_analysis": {"model": "anthropic/claude-sonnet-4", "temperature": 0.7, "max_tokens": 4096, **llm_defaults},
                "script_rewrite": {"model": "anthropic/claude-sonnet-4", "temperature": 0.7, "max_tokens": 16384, **llm_defaults},
                "tts_formatting": {"model": "openai/gpt-4o", "temperature": 0.3, "max_tokens": 16000, **llm_defaults},
                "narrative_outline": {"model": "anthropic/claude-sonnet-4", "temperature": 0.7, "max_tokens": 3000, **llm_defaults},
                "final_script": {"model": "anthropic/claude-sonnet-4", "temperature": 0.8, "max_tokens": 16000, **llm_defaults}
            },
            "research": {
                "api_url": "https://api.perplexity.ai/chat/completions",
                "model": "sonar-pro",
                "discovery": {"temperature": 0.2, "max_tokens": 3000},
                "structuring": {"temperature": 0.3, "max_tokens": 8000}
            },
            "media": {
                "image": {
                    "endpoint": "https://fal.run/fal-ai/nano-banana",
                    "model": "fal-ai/nano-banana",
                    "aspect_ratio": "16:9",
                    "num_images": 1,
                    "style": "oil-painting-historical"
                }
            },
            "logging": {
                "level": "INFO",
                "console_level": "INFO",
                "max_file_size_mb": 5,
                "backup_count": 3,
                "log_format": "text",
                "filters": {
                    "sensitive_patterns": ["sk-[A-Za-z0-9_-]{10,}", "pplx-[A-Za-z0-9]{10,}"]
                },
                "files": {
                    "main": {"filename": "storyboard.log", "level": "INFO", "enabled": True},
                    "errors": {"filename": "errors.log", "level": "ERROR", "enabled": True},
                    "performance": {"filename": "performance.log", "level": "INFO", "enabled": True}
                }
            }
        }

    def _create_default_config(self):
        """创建默认配置文件"""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(self.default_config(), f, ensure_ascii=False, indent=2)

        self.logger.info(f"Created default config at {self.config_path}")

    def _load_api_configs(self):
        """从环境变量加载API密钥"""
        self.api_keys = {
            'openrouter': os.getenv('OPENROUTER_API_KEY', ''),
            'perplexity': os.getenv('PERPLEXITY_API_KEY', ''),
            'fal': os.getenv('FAL_KEY', '') or os.getenv('FAL_API_KEY', '')
        }

        missing_keys = [key for key, value in self.api_keys.items() if not value]
        if missing_keys:
            self.logger.warning(f"Missing API keys: {missing_keys}")

    def get(self, key: str, default: Any = None) -> Any:
        """获取配置值（支持点分隔路径）"""
        try:
            value = self.config
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def _expand_env_vars(self, value: str) -> str:
        """展开 ${VAR} 和 ${VAR:-default} 形式的环境变量"""
        if not isinstance(value, str):
            return value
        return self._ENV_PATTERN.sub(
            lambda m: os.getenv(m.group(1), m.group(2) or ''), value
        )

    def get_llm_config(self, task_type: str) -> ModelConfig:
        """
        获取LLM配置

        Args:
            task_type: 任务类型 (scene_breakdown, script_analysis, final_script, etc.)
        """
        config = self.get(f'llm.{task_type}', {})

        if not config:
            raise ValueError(f"LLM config not found for task type: {task_type}")

        return ModelConfig(
            name=config.get('model'),
            temperature=config.get('temperature', 0.7),
            max_tokens=config.get('max_tokens', 4096),
            api_base=self._expand_env_vars(config.get('api_base', '')) or 'https://openrouter.ai/api/v1',
            api_key=self._expand_env_vars(config.get('api_key', ''))
        )

    def get_pipeline_config(self) -> PipelineConfig:
        """获取流水线常量"""
        pipeline = self.get('pipeline', {})
        known = PipelineConfig.__dataclass_fields__.keys()
        return PipelineConfig(**{k: v for k, v in pipeline.items() if k in known})

    def get_api_key(self, service: str) -> str:
        """获取API密钥"""
        return self.api_keys.get(service, '')

    def validate_config(self) -> List[str]:
        """验证配置完整性"""
        errors = []

        if not self.get_api_key('openrouter'):
            errors.append("Missing OPENROUTER_API_KEY environment variable")

        pipeline = self.get_pipeline_config()
        if pipeline.seconds_per_scene <= 0:
            errors.append("pipeline.seconds_per_scene must be positive")
        if pipeline.words_per_minute <= 0:
            errors.append("pipeline.words_per_minute must be positive")
        if pipeline.max_generated_images <= 0:
            errors.append("pipeline.max_generated_images must be positive")
        if pipeline.breakdown_min_tokens > pipeline.breakdown_max_tokens:
            errors.append("pipeline.breakdown_min_tokens exceeds breakdown_max_tokens")

        output_dir = Path(self.get('general.output_dir', 'output'))
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Cannot create output directory: {e}")

        return errors

    def __str__(self) -> str:
        """字符串表示"""
        return f"ConfigManager(path={self.config_path}, " \
               f"output_dir={self.get('general.output_dir')})"
