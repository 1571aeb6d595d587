"""
增强型日志管理器 - 分镜流水线的日志系统

控制台彩色输出 + 按用途拆分的轮转文件（主日志/错误/性能），
所有处理器都会屏蔽API密钥等敏感信息。
"""
import logging
import logging.handlers
import sys
import json
import time
import traceback
import re
from pathlib import Path
from typing import Optional, Dict, Any, List
from datetime import datetime
from dataclasses import dataclass, asdict
from contextlib import contextmanager

ROOT_LOGGER_NAME = 'storyboard'

THIRD_PARTY_LOGGERS = [
    'httpx', 'httpcore', 'aiohttp', 'urllib3',
    'openai', 'langchain', 'langchain_core', 'langchain_openai'
]

_URL_SECRET_PARAMS = re.compile(r'([?&](?:api_key|key|token)=)[^&]*')

@dataclass
class PerformanceMetrics:
    """性能指标"""
    operation: str
    start_time: float
    end_time: Optional[float] = None
    duration: Optional[float] = None
    success: bool = True

class SensitiveDataFilter(logging.Filter):
    """在消息格式化前屏蔽敏感信息"""

    def __init__(self, patterns: List[str]):
        super().__init__()
        self.patterns = [re.compile(p) for p in patterns or []]

    def filter(self, record) -> bool:
        if self.patterns:
            message = record.getMessage()
            masked = mask_sensitive(message, self.patterns)
            if masked != message:
                record.msg = masked
                record.args = ()
        return True

def mask_sensitive(message: str, patterns: List[re.Pattern]) -> str:
    for pattern in patterns:
        message = pattern.sub('***MASKED***', message)
    return message

def mask_url(url: str) -> str:
    """掩码URL查询参数中的密钥"""
    return _URL_SECRET_PARAMS.sub(r'\1***MASKED***', url)

class StructuredFormatter(logging.Formatter):
    """JSON行格式器"""

    def __init__(self, fields: List[str] = None):
        super().__init__()
        self.fields = fields or ["timestamp", "level", "component", "message", "performance"]

    def format(self, record) -> str:
        log_data = {}

        if "timestamp" in self.fields:
            log_data["timestamp"] = datetime.fromtimestamp(record.created).isoformat()
        if "level" in self.fields:
            log_data["level"] = record.levelname
        if "component" in self.fields:
            log_data["component"] = record.name
        if "function" in self.fields:
            log_data["function"] = record.funcName
        if "message" in self.fields:
            log_data["message"] = record.getMessage()
        if "performance" in self.fields and hasattr(record, 'performance'):
            log_data["performance"] = record.performance
        if hasattr(record, 'context'):
            log_data["context"] = record.context

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_data, ensure_ascii=False, separators=(',', ':'), default=str)

class ColoredFormatter(logging.Formatter):
    """控制台彩色格式器（只给级别名上色，不修改原记录）"""
    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m'
    }
    RESET = '\033[0m'

    def format(self, record):
        original = record.levelname
        if original in self.COLORS:
            record.levelname = f"{self.COLORS[original]}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original

class EnhancedLoggerManager:
    """
    增强型日志管理器

    特性：
    1. 控制台彩色简洁输出
    2. errors.log 只收集ERROR及以上级别
    3. performance.log 只收集带性能数据的记录（performance_tracker / log_api_call）
    4. 敏感信息掩码（logging.filters.sensitive_patterns）
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config.get('logging', {})
        self.log_dir = Path(config.get('general', {}).get('output_dir', 'output')) / 'logs'
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self._error_counts: Dict[str, int] = {}
        self._sensitive_filter = SensitiveDataFilter(
            self.config.get('filters', {}).get('sensitive_patterns', [])
        )
        self._setup_logging()

    def _setup_logging(self):
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        root_logger.setLevel(logging.DEBUG)

        self._setup_console_logging()
        self._setup_file_logging()
        self._configure_third_party_loggers()

    def _setup_console_logging(self):
        console_level = self.config.get('console_level', self.config.get('level', 'INFO'))

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, console_level.upper(), logging.INFO))
        console_handler.setFormatter(ColoredFormatter(
            '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
            datefmt='%H:%M:%S'
        ))
        console_handler.addFilter(self._sensitive_filter)

        logging.getLogger().addHandler(console_handler)

    def _setup_file_logging(self):
        for log_type, file_config in self.config.get('files', {}).items():
            if not file_config.get('enabled', True):
                continue
            self._setup_file_handler(log_type, file_config)

    def _setup_file_handler(self, log_type: str, file_config: Dict[str, Any]):
        level = file_config.get('level', 'INFO')
        max_size = file_config.get('max_size_mb', self.config.get('max_file_size_mb', 5))

        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / file_config['filename'],
            maxBytes=max_size * 1024 * 1024,
            backupCount=self.config.get('backup_count', 3),
            encoding='utf-8'
        )
        handler.setLevel(getattr(logging, level.upper(), logging.INFO))

        if self.config.get('log_format') == 'structured':
            handler.setFormatter(StructuredFormatter(self.config.get('structured_fields')))
        else:
            handler.setFormatter(self._get_file_formatter(log_type))

        if log_type == 'errors':
            handler.addFilter(lambda record: record.levelno >= logging.ERROR)
        elif log_type == 'performance':
            handler.addFilter(lambda record: hasattr(record, 'performance'))

        handler.addFilter(self._sensitive_filter)
        logging.getLogger().addHandler(handler)

    def _get_file_formatter(self, log_type: str) -> logging.Formatter:
        if log_type == 'errors':
            return logging.Formatter(
                '%(asctime)s | ERROR | %(name)s | %(funcName)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
        if log_type == 'performance':
            return logging.Formatter(
                '%(asctime)s | PERF | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
        return logging.Formatter(
            '%(asctime)s | %(levelname)s | %(name)s | %(funcName)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def _configure_third_party_loggers(self):
        for logger_name in THIRD_PARTY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    def get_logger(self, name: str) -> logging.Logger:
        """获取 storyboard 层级下的日志器"""
        if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
            name = f"{ROOT_LOGGER_NAME}.{name}"
        logger = logging.getLogger(name)
        logger.propagate = True
        return logger

    @contextmanager
    def performance_tracker(self, logger: logging.Logger, operation: str):
        """记录一次操作的耗时与成败"""
        metrics = PerformanceMetrics(operation=operation, start_time=time.time())

        try:
            yield metrics
        except Exception:
            metrics.success = False
            raise
        finally:
            metrics.end_time = time.time()
            metrics.duration = metrics.end_time - metrics.start_time
            status = "completed" if metrics.success else "failed"
            perf_record = logger.makeRecord(
                logger.name, logging.INFO, __file__, 0,
                f"Operation '{operation}' {status} in {metrics.duration:.3f}s",
                (), None
            )
            perf_record.performance = asdict(metrics)
            logger.handle(perf_record)

    def log_error_with_context(self, logger: logging.Logger, error: Exception,
                               context: Optional[Dict[str, Any]] = None):
        """记录带上下文和出现次数的错误"""
        error_key = f"{type(error).__name__}:{error}"
        self._error_counts[error_key] = self._error_counts.get(error_key, 0) + 1

        error_info = {
            'error_type': type(error).__name__,
            'error_kind': getattr(error, 'kind', None),
            'error_message': str(error),
            'occurrence_count': self._error_counts[error_key],
            'context': context or {}
        }

        error_record = logger.makeRecord(
            logger.name, logging.ERROR, __file__, 0,
            f"Error occurred: {error_info}",
            (), (type(error), error, error.__traceback__)
        )
        error_record.context = error_info
        logger.handle(error_record)

def log_api_call(logger: logging.Logger, method: str, url: str,
                 status_code: Optional[int] = None,
                 response_time: Optional[float] = None,
                 error: Optional[str] = None):
    """记录一次提供商API调用（进入 performance.log）"""
    safe_url = mask_url(url)
    metrics = {
        'method': method,
        'url': safe_url,
        'status_code': status_code,
        'response_time': response_time,
        'success': error is None
    }

    level = logging.ERROR if error else logging.INFO
    message = f"API {method} {safe_url}"
    if status_code:
        message += f" [{status_code}]"
    if response_time is not None:
        message += f" ({response_time:.3f}s)"
    if error:
        message += f" ERROR: {error}"

    perf_record = logger.makeRecord(logger.name, level, __file__, 0, message, (), None)
    perf_record.performance = metrics
    logger.handle(perf_record)

def setup_enhanced_logging(config: Dict[str, Any]) -> EnhancedLoggerManager:
    """
    快速设置增强型日志系统

    Usage:
        log_manager = setup_enhanced_logging(config_manager.config)
        logger = log_manager.get_logger('service')

        with log_manager.performance_tracker(logger, 'image_pool'):
            ...
    """
    return EnhancedLoggerManager(config)
