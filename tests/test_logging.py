"""Tests for the PprintLogger and setup_logging functionality.

This module verifies:
- PprintLogger wraps standard logging.Logger correctly
- pprint parameter defaults to True and formats complex objects
- pprint=False uses simple string conversion
- Pydantic models (run results, spans) use model_dump_json() when pprint=True
- Delegation to underlying logger methods works
- setup_logging names loggers after the calling module and sets_level reaches them
"""

import logging
from io import StringIO

from clinspan.logging import PprintLogger, set_level, setup_logging
from clinspan.runner import DocumentResult
from clinspan.span import Mention, UmlsConcept


def _capture(name: str) -> tuple[PprintLogger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
    logger.addHandler(handler)
    return PprintLogger(logger), stream


class TestPprintLogger:
    """Tests for PprintLogger formatting and delegation."""

    def test_pprint_formats_dict(self) -> None:
        logger, stream = _capture("test_pprint_dict")
        logger.info({"Segment": 1, "Token": {"nested": 5}})
        output = stream.getvalue()
        assert "Segment" in output
        assert "nested" in output
        assert "{" in output

    def test_pprint_false_uses_str(self) -> None:
        logger, stream = _capture("test_pprint_false")
        counts = {"Token": 5}
        logger.info(counts, pprint=False)
        assert str(counts) in stream.getvalue()

    def test_simple_string(self) -> None:
        logger, stream = _capture("test_simple_string")
        logger.info("Processed 4 documents")
        assert "Processed 4 documents" in stream.getvalue()

    def test_all_levels(self) -> None:
        logger, stream = _capture("test_all_levels")
        data = {"level": "test"}
        logger.debug(data)
        logger.info(data)
        logger.warning(data)
        logger.error(data)
        output = stream.getvalue()
        for level in ("DEBUG", "INFO", "WARNING", "ERROR"):
            assert level in output

    def test_exception_logging_includes_traceback(self) -> None:
        logger, stream = _capture("test_exception")
        try:
            raise ValueError("stage exploded")
        except ValueError:
            logger.exception({"document_id": "note.txt"})
        output = stream.getvalue()
        assert "note.txt" in output
        assert "ValueError" in output
        assert "stage exploded" in output

    def test_pydantic_model_uses_model_dump_json(self) -> None:
        logger, stream = _capture("test_pydantic")
        result = DocumentResult(document_id="note.txt", mentions=1, codes=1)
        logger.info(result)
        output = stream.getvalue()
        assert '"document_id": "note.txt"' in output
        assert '"mentions": 1' in output

    def test_span_with_concepts_is_readable(self) -> None:
        logger, stream = _capture("test_span")
        logger.debug(Mention(begin=15, end=25, concepts=(UmlsConcept(cui="C0008031"),)))
        output = stream.getvalue()
        assert '"cui": "C0008031"' in output
        assert '"polarity": "positive"' in output

    def test_disabled_level_is_skipped(self) -> None:
        logger, stream = _capture("test_disabled")
        logger.setLevel(logging.WARNING)
        logger.info({"hidden": True})
        assert stream.getvalue() == ""

    def test_delegates_to_underlying_logger(self) -> None:
        underlying = logging.getLogger("test_delegation")
        logger = PprintLogger(underlying)
        logger.setLevel(logging.WARNING)
        assert underlying.level == logging.WARNING
        assert logger.handlers == underlying.handlers


class TestSetupLogging:
    """Tests for setup_logging and set_level."""

    def test_returns_pprint_logger_named_after_module(self) -> None:
        logger = setup_logging()
        assert isinstance(logger, PprintLogger)
        assert logger.name == __name__

    def test_does_not_duplicate_handlers(self) -> None:
        first = setup_logging("clinspan.test_handlers")
        second = setup_logging("clinspan.test_handlers")
        assert first._logger is second._logger  # pylint: disable=protected-access
        assert len(first.handlers) == 1

    def test_level(self) -> None:
        logger = setup_logging("clinspan.test_level", level=logging.DEBUG)
        assert logger.level == logging.DEBUG

    def test_set_level_reaches_clinspan_loggers(self) -> None:
        logger = setup_logging("clinspan.test_set_level")
        other = logging.getLogger("unrelated.test_set_level")
        other.setLevel(logging.INFO)
        try:
            set_level(logging.DEBUG)
            assert logger.level == logging.DEBUG
            assert other.level == logging.INFO
        finally:
            set_level(logging.INFO)
