"""
Tests for structured JSON logging and LogContext propagation.
"""

import logging
from decimal import Decimal

import pytest

from controller_kernel.logging_config import LogContext, get_logger


class TestStructuredLogging:

    def test_extra_fields_are_serialized(self, captured_logs):
        logger = get_logger("tests.logging")
        logger.info("value_logged", extra={"amount": Decimal("12.50"), "year": 2024})

        records = [r for r in captured_logs() if r["message"] == "value_logged"]
        assert len(records) == 1
        assert records[0]["amount"] == "12.50"
        assert records[0]["year"] == 2024
        assert records[0]["logger"] == "controller_kernel.tests.logging"
        assert records[0]["level"] == "INFO"

    def test_log_context_fields_are_attached(self, captured_logs):
        logger = get_logger("tests.logging")
        with LogContext.bind(run_id="run-1", actor_id="controller"):
            logger.info("inside_context")
        logger.info("outside_context")

        records = {r["message"]: r for r in captured_logs()}
        assert records["inside_context"]["run_id"] == "run-1"
        assert records["inside_context"]["actor_id"] == "controller"
        assert "run_id" not in records["outside_context"]

    def test_exception_details_are_logged(self, captured_logs):
        from controller_kernel.exceptions import DuplicateLineError

        logger = get_logger("tests.logging")
        try:
            raise DuplicateLineError("rev")
        except DuplicateLineError:
            logger.exception("failure_logged")

        record = next(r for r in captured_logs() if r["message"] == "failure_logged")
        assert record["exc_type"] == "DuplicateLineError"
        assert record["exc_code"] == "DUPLICATE_LINE"
        assert record["exc_line_id"] == "rev"

    def test_logger_namespace(self):
        assert get_logger("engines.x").name == "controller_kernel.engines.x"
        assert logging.getLogger("controller_kernel").level == logging.DEBUG

    def test_unknown_context_field_rejected(self):
        with pytest.raises(ValueError):
            LogContext.set(tenant="t1")

    def test_nested_bind_restores_outer_value(self, captured_logs):
        logger = get_logger("tests.logging")
        with LogContext.bind(company_ref="C1"):
            with LogContext.bind(company_ref="C2", budget_year=2025):
                logger.info("inner")
            logger.info("outer")

        records = {r["message"]: r for r in captured_logs()}
        assert records["inner"]["company_ref"] == "C2"
        assert records["inner"]["budget_year"] == 2025
        assert records["outer"]["company_ref"] == "C1"
        assert "budget_year" not in records["outer"]
