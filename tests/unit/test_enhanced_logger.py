"""
日志系统与Result类型单元测试
"""
import logging
import pytest

from utils.enhanced_logger import log_api_call, mask_url
from utils.errors import ParseError, ProviderError, ValidationError
from utils.result_types import Result, ResultStatus


def _flush():
    for handler in logging.getLogger().handlers:
        handler.flush()


class TestEnhancedLogger:

    @pytest.mark.unit
    def test_logger_names_are_namespaced(self, logger_manager):
        assert logger_manager.get_logger('service').name == 'storyboard.service'
        assert logger_manager.get_logger('storyboard.media').name == 'storyboard.media'

    @pytest.mark.unit
    def test_log_files_split_by_purpose(self, logger_manager):
        logger = logger_manager.get_logger('test')
        logger.info("🎬 plain info line")
        logger.error("❌ failing line")
        with logger_manager.performance_tracker(logger, 'image_pool'):
            pass
        _flush()

        errors = (logger_manager.log_dir / 'errors.log').read_text(encoding='utf-8')
        perf = (logger_manager.log_dir / 'performance.log').read_text(encoding='utf-8')
        main = (logger_manager.log_dir / 'storyboard.log').read_text(encoding='utf-8')

        assert "failing line" in errors and "plain info line" not in errors
        assert "Operation 'image_pool' completed" in perf and "plain info line" not in perf
        assert "plain info line" in main

    @pytest.mark.unit
    def test_tracker_marks_failure_and_reraises(self, logger_manager):
        logger = logger_manager.get_logger('test')
        with pytest.raises(RuntimeError):
            with logger_manager.performance_tracker(logger, 'breakdown'):
                raise RuntimeError("boom")
        _flush()

        perf = (logger_manager.log_dir / 'performance.log').read_text(encoding='utf-8')
        assert "Operation 'breakdown' failed" in perf

    @pytest.mark.unit
    def test_secrets_are_masked(self, logger_manager):
        logger = logger_manager.get_logger('test')
        logger.info("using key sk-abcdefghijklmnop")
        _flush()

        main = (logger_manager.log_dir / 'storyboard.log').read_text(encoding='utf-8')
        assert "sk-abcdefghijklmnop" not in main
        assert "***MASKED***" in main

    @pytest.mark.unit
    def test_api_call_url_masked(self, logger_manager):
        assert mask_url("https://x.test/a?key=secret&b=1") == "https://x.test/a?key=***MASKED***&b=1"

        log_api_call(logger_manager.get_logger('media'), "POST", "https://x.test/a?token=abc", 503, 0.5, "down")
        _flush()
        errors = (logger_manager.log_dir / 'errors.log').read_text(encoding='utf-8')
        assert "[503]" in errors and "abc" not in errors

    @pytest.mark.unit
    def test_error_occurrences_counted(self, logger_manager):
        logger = logger_manager.get_logger('test')
        error = ProviderError("image-generation", "down", 503)
        logger_manager.log_error_with_context(logger, error, {'scene': 1})
        logger_manager.log_error_with_context(logger, error)

        assert list(logger_manager._error_counts.values()) == [2]


class TestResult:

    @pytest.mark.unit
    def test_success_and_warning(self):
        ok = Result.success([1, 2], {'n': 2})
        assert ok.is_success() and not ok.has_warning()
        assert ok.unwrap() == [1, 2]

        warn = Result.warning("data", "word order changed")
        assert warn.is_success() and warn.has_warning()
        assert warn.status == ResultStatus.WARNING
        assert warn.error == "word order changed"

    @pytest.mark.unit
    def test_error_unwrap(self):
        failed = Result.error("nope", {'error_kind': 'provider'})
        assert failed.error_kind == 'provider'
        assert failed.unwrap_or("fallback") == "fallback"
        with pytest.raises(RuntimeError):
            failed.unwrap()

    @pytest.mark.unit
    def test_from_exception_kinds(self):
        validation = Result.from_exception(ValidationError("Script is too short"))
        assert validation.error_kind == "validation"
        assert validation.error.startswith("Invalid input")

        parse = Result.from_exception(ParseError("bad json", "{scenes: ["), {'stage': 'breakdown'})
        assert parse.error_kind == "parse"
        assert parse.metadata['raw_excerpt'] == "{scenes: ["
        assert parse.metadata['stage'] == 'breakdown'

        unknown = Result.from_exception(KeyError())
        assert unknown.error_kind == "provider"
        assert unknown.error == "KeyError"
