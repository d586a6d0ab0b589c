"""Tests for marginalia.core.errors module."""

import pytest

from marginalia.core.errors import (
    AnalysisError,
    ControllerError,
    DispatchError,
    ErrorCategory,
    ErrorContext,
    MarginaliaError,
    NotFoundError,
    SchedulerTaskError,
    SerializationError,
    ValidationError,
    error_message,
)


class TestErrorContext:
    def test_empty_context_serializes_to_empty_dict(self):
        assert ErrorContext().to_dict() == {}

    def test_metadata_is_merged(self):
        ctx = ErrorContext(controller="post", metadata={"post_id": "p1"})
        assert ctx.to_dict() == {"controller": "post", "post_id": "p1"}


class TestMarginaliaError:
    def test_default_category(self):
        assert MarginaliaError("boom").category is ErrorCategory.INTERNAL

    def test_category_override(self):
        error = MarginaliaError("boom", category=ErrorCategory.CONFIG)
        assert error.category is ErrorCategory.CONFIG

    def test_cause_is_chained(self):
        cause = KeyError("k")
        error = MarginaliaError("wrapped", cause=cause)
        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == str(cause)

    def test_with_context_is_fluent(self):
        error = MarginaliaError("boom").with_context(controller="post", action="ADD_TO_BOOKMARK", retry=2)
        assert error.context.controller == "post"
        assert error.to_dict()["context"] == {"controller": "post", "action": "ADD_TO_BOOKMARK", "retry": 2}

    def test_repr(self):
        assert repr(ValidationError("bad")) == "ValidationError('bad', category=VALIDATION)"


class TestSubclasses:
    @pytest.mark.parametrize(
        ("error", "category"),
        [
            (ValidationError("x"), ErrorCategory.VALIDATION),
            (NotFoundError("x"), ErrorCategory.NOT_FOUND),
            (SerializationError("x"), ErrorCategory.SERIALIZATION),
            (SchedulerTaskError("x", task_id="t"), ErrorCategory.SCHEDULER),
            (DispatchError("x", action_type="A"), ErrorCategory.DISPATCH),
            (ControllerError("x", controller="c"), ErrorCategory.CONTROLLER),
            (AnalysisError("x"), ErrorCategory.ANALYSIS),
        ],
    )
    def test_categories(self, error, category):
        assert isinstance(error, MarginaliaError)
        assert error.category is category

    def test_validation_details(self):
        error = ValidationError("too long", field="content", value=1001, constraint="max_length=1000")
        data = error.to_dict()
        assert data["field"] == "content"
        assert data["value"] == "1001"
        assert data["constraint"] == "max_length=1000"

    def test_dispatch_carries_available_actions(self):
        error = DispatchError("Unknown action: X", action_type="X", available_actions=["A", "B"])
        assert error.available_actions == ["A", "B"]
        assert error.context.action == "X"

    def test_scheduler_task_error_context(self):
        error = SchedulerTaskError("failed", task_id="collector-flush", tick=3)
        assert error.tick == 3
        assert error.to_dict()["context"] == {"task_id": "collector-flush"}

    def test_controller_error_code(self):
        error = ControllerError("gone", controller="post", code="CONTROLLER_DESTROYED")
        assert error.to_dict()["code"] == "CONTROLLER_DESTROYED"
        assert error.context.controller == "post"


class TestErrorMessage:
    def test_marginalia_error(self):
        assert error_message(ValidationError("Reply content is required")) == "Reply content is required"

    def test_plain_exception(self):
        assert error_message(RuntimeError("boom")) == "boom"

    def test_exception_without_message(self):
        assert error_message(KeyError()) == "KeyError"
