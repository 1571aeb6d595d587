"""
加载 .env 中的提供商密钥（OPENROUTER_API_KEY / PERPLEXITY_API_KEY / FAL_API_KEY）
"""
from pathlib import Path
import logging
import os

logger = logging.getLogger('storyboard.env')

def _parse_line(line: str):
    line = line.strip()
    if not line or line.startswith('#') or '=' not in line:
        return None

    if line.startswith('export '):
        line = line[len('export '):]

    key, value = line.split('=', 1)
    key = key.strip()
    value = value.strip()

    # 移除引号
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        value = value[1:-1]

    return key, value

def load_env_file(env_file: str = '.env', override: bool = False) -> int:
    """
    手动加载.env文件

    Args:
        env_file: .env文件路径
        override: 是否覆盖已存在的环境变量

    Returns:
        int: 写入的变量个数（文件不存在时为0）
    """
    env_path = Path(env_file)
    if not env_path.exists():
        logger.debug(f"Environment file not found: {env_file}")
        return 0

    loaded = 0
    with open(env_path, 'r', encoding='utf-8') as f:
        for line in f:
            parsed = _parse_line(line)
            if parsed is None:
                continue
            key, value = parsed
            if not override and key in os.environ:
                continue
            os.environ[key] = value
            loaded += 1

    logger.debug(f"Loaded {loaded} environment variables from {env_file}")
    return loaded
