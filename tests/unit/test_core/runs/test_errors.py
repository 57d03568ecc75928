"""Tests for the pipeline error family and the error-response registry."""

import pytest

from hypoforge.core.errors import (
    ERROR_MAPPINGS,
    ContentGenerationError,
    ExternalOperationError,
    HypothesisNotFound,
    MissingInput,
    OperationTimeoutError,
    ParsingError,
    PipelineError,
    RateLimitError,
    RunNotFound,
    VersionConflictError,
    error_to_response,
    get_error_message,
    is_pipeline_error,
    wrap_error,
)


class TestPipelineErrors:
    @pytest.mark.parametrize(
        "exc, code",
        [
            (RunNotFound("r1"), "RUN_NOT_FOUND"),
            (HypothesisNotFound("h1"), "HYPOTHESIS_NOT_FOUND"),
            (MissingInput("p1", ["technical_assets"]), "MISSING_INPUT"),
            (ExternalOperationError("failed", step="divergent"), "EXTERNAL_OPERATION_ERROR"),
            (ContentGenerationError("empty", step="evaluation"), "CONTENT_GENERATION_ERROR"),
            (ParsingError("nothing"), "PARSING_ERROR"),
            (RateLimitError(2.0), "RATE_LIMIT_ERROR"),
            (OperationTimeoutError("research", 60), "TIMEOUT_ERROR"),
        ],
    )
    def test_stable_codes(self, exc, code):
        assert exc.code == code
        assert exc.to_dict()["code"] == code
        assert is_pipeline_error(exc)

    def test_external_operation_details(self):
        exc = ExternalOperationError("boom", step="research", interaction_id="int-1", status_code=500)
        assert exc.message == "External operation failed (research): boom"
        assert exc.details == {"step": "research", "interaction_id": "int-1", "status_code": 500}

    def test_missing_input_lists_kinds(self):
        exc = MissingInput("p1", ["target_specification", "technical_assets"])
        assert exc.missing == ["target_specification", "technical_assets"]
        assert "target_specification, technical_assets" in exc.message

    def test_rate_limit_message(self):
        assert RateLimitError(2.5).message == "Rate limit reached; retry after 2.5s"
        assert RateLimitError().message == "Rate limit reached"


class TestWrapError:
    def test_pipeline_errors_pass_through(self):
        exc = ParsingError("bad")
        assert wrap_error(exc, "ctx") is exc

    def test_foreign_exception_wrapped(self):
        original = ValueError("bad value")

        wrapped = wrap_error(original, "Phase aggregate failed")

        assert wrapped.code == "UNKNOWN_ERROR"
        assert wrapped.message == "Phase aggregate failed: bad value"
        assert wrapped.details["error_type"] == "ValueError"
        assert wrapped.__cause__ is original

    @pytest.mark.parametrize(
        "value, expected",
        [
            (PipelineError("pipeline msg"), "pipeline msg"),
            (KeyError(), "KeyError"),
            ("plain", "plain"),
            (42, "Unknown error"),
        ],
    )
    def test_get_error_message(self, value, expected):
        assert get_error_message(value) == expected


class TestErrorToResponse:
    def test_every_mapping_is_exception_type(self):
        for exc_type in ERROR_MAPPINGS:
            assert issubclass(exc_type, Exception)

    def test_not_found(self):
        response = error_to_response(RunNotFound("r1"))

        assert response["success"] is False
        assert response["data"]["error_code"] == "RUN_NOT_FOUND"
        assert response["data"]["error_type"] == "not_found"
        assert response["data"]["details"]["run_id"] == "r1"

    def test_version_conflict(self):
        response = error_to_response(VersionConflictError("r1", 3, 4))

        assert response["data"]["error_code"] == "VERSION_CONFLICT"
        assert response["data"]["error_type"] == "conflict"

    def test_pipeline_code_carried(self):
        response = error_to_response(PipelineError("all failed", "ALL_HYPOTHESES_FAILED"))

        assert response["data"]["error_code"] == "INTERNAL_ERROR"
        assert response["data"]["details"]["pipeline_code"] == "ALL_HYPOTHESES_FAILED"

    def test_unknown_type_returns_none(self):
        assert error_to_response(RuntimeError("nope")) is None
