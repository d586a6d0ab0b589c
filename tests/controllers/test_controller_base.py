"""Tests for marginalia.controllers.base: action tables, dispatch, lifecycle."""

from enum import Enum

import pytest

from marginalia.controllers.base import ActionDefinition, Controller, optional_text, require_text
from marginalia.core.errors import ControllerError, ValidationError


class EchoAction(str, Enum):
    ECHO = "ECHO"
    FAIL = "FAIL"


class OtherAction(str, Enum):
    ECHO = "ECHO"


class EchoController(Controller):
    name = "echo"
    Action = EchoAction

    def __init__(self, bus):
        self.seen = []
        super().__init__(bus)

    def define_actions(self):
        return [
            ActionDefinition(EchoAction.ECHO, self._echo, "Echo the payload"),
            ActionDefinition(EchoAction.FAIL, self._fail, "Always fails"),
        ]

    async def _echo(self, payload):
        self.seen.append(payload)
        await self.emit("echoed", payload)

    async def _fail(self, payload):
        raise ValidationError("Text is required", field="text")


class TestActionTable:
    def test_supported_actions(self, bus):
        controller = EchoController(bus)
        assert controller.get_supported_actions() == ["ECHO", "FAIL"]
        assert controller.describe_actions()[0] == {"action": "ECHO", "description": "Echo the payload"}

    def test_table_is_read_only(self, bus):
        controller = EchoController(bus)
        with pytest.raises(TypeError):
            controller.actions[EchoAction.ECHO] = None

    def test_missing_handler_fails_construction(self, bus):
        class Incomplete(EchoController):
            def define_actions(self):
                return [ActionDefinition(EchoAction.ECHO, self._echo)]

        with pytest.raises(ControllerError) as exc_info:
            Incomplete(bus)
        assert exc_info.value.code == "INCOMPLETE_ACTION_TABLE"

    def test_duplicate_handler_fails_construction(self, bus):
        class Doubled(EchoController):
            def define_actions(self):
                return [
                    ActionDefinition(EchoAction.ECHO, self._echo),
                    ActionDefinition(EchoAction.ECHO, self._echo),
                    ActionDefinition(EchoAction.FAIL, self._fail),
                ]

        with pytest.raises(ControllerError) as exc_info:
            Doubled(bus)
        assert exc_info.value.code == "DUPLICATE_ACTION"

    def test_foreign_action_fails_construction(self, bus):
        class Foreign(EchoController):
            def define_actions(self):
                return [
                    ActionDefinition(OtherAction.ECHO, self._echo),
                    ActionDefinition(EchoAction.FAIL, self._fail),
                ]

        with pytest.raises(ControllerError) as exc_info:
            Foreign(bus)
        assert exc_info.value.code == "FOREIGN_ACTION"


class TestDispatch:
    @pytest.mark.asyncio
    async def test_known_action_runs_handler(self, bus, recorder):
        controller = EchoController(bus)
        await controller.execute_action("ECHO", {"text": "hi"})

        assert controller.seen == [{"text": "hi"}]
        event = recorder.last("echo.echoed")
        assert event.source == "echo"
        assert event.payload == {"text": "hi"}

    @pytest.mark.asyncio
    async def test_enum_member_accepted(self, bus, recorder):
        controller = EchoController(bus)
        await controller.execute_action(EchoAction.ECHO)
        assert controller.seen == [{}]

    @pytest.mark.asyncio
    async def test_handler_gets_a_copy_of_the_payload(self, bus, recorder):
        controller = EchoController(bus)
        payload = {"text": "hi"}
        await controller.execute_action("ECHO", payload)
        controller.seen[0]["text"] = "changed"
        assert payload == {"text": "hi"}

    @pytest.mark.asyncio
    async def test_unknown_action_emits_exactly_one_error(self, bus, recorder):
        controller = EchoController(bus)
        await controller.execute_action("NOPE", {"x": 1})

        assert recorder.types == ["echo.action_error"]
        payload = recorder.events[0].payload
        assert payload["action_type"] == "NOPE"
        assert payload["available_actions"] == ["ECHO", "FAIL"]
        assert "NOPE" in payload["error"]
        assert controller.seen == []

    @pytest.mark.asyncio
    async def test_handler_failure_becomes_error_event(self, bus, recorder):
        controller = EchoController(bus)
        await controller.execute_action("FAIL", {"text": ""})

        assert recorder.types == ["echo.action_error"]
        assert recorder.events[0].payload == {
            "action_type": "FAIL",
            "payload": {"text": ""},
            "error": "Text is required",
        }


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, bus, recorder):
        controller = EchoController(bus)
        await controller.initialize()
        await controller.initialize()

        assert controller.is_initialized is True
        assert recorder.types == ["echo.initialized"]

    @pytest.mark.asyncio
    async def test_initialize_failure_wrapped(self, bus):
        class Broken(EchoController):
            async def on_initialize(self):
                raise RuntimeError("no backend")

        with pytest.raises(ControllerError) as exc_info:
            await Broken(bus).initialize()
        assert exc_info.value.code == "INIT_FAILED"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_destroy_then_execute_is_silent(self, bus, recorder):
        controller = EchoController(bus)
        await controller.destroy()
        await controller.execute_action("ECHO", {"text": "late"})
        await controller.execute_action("NOPE")

        assert controller.is_destroyed is True
        assert recorder.types == ["echo.destroyed"]
        assert controller.seen == []

    @pytest.mark.asyncio
    async def test_emit_after_destroy_raises(self, bus):
        controller = EchoController(bus)
        await controller.destroy()
        with pytest.raises(ControllerError) as exc_info:
            await controller.emit("late")
        assert exc_info.value.code == "CONTROLLER_DESTROYED"

    @pytest.mark.asyncio
    async def test_destroy_hook_failure_is_logged(self, bus, recorder):
        class Messy(EchoController):
            async def on_destroy(self):
                raise RuntimeError("cleanup failed")

        controller = Messy(bus)
        await controller.destroy()
        assert controller.is_destroyed is True
        assert recorder.types == ["echo.destroyed"]


class TestPayloadHelpers:
    def test_require_text_strips(self):
        assert require_text({"content": "  hi  "}, "content") == "hi"

    @pytest.mark.parametrize("value", [None, "", "   ", 5])
    def test_require_text_missing(self, value):
        with pytest.raises(ValidationError, match="Reply content is required"):
            require_text({"content": value}, "content", label="Reply content")

    def test_require_text_too_long(self):
        with pytest.raises(ValidationError, match=r"too long \(max 3 characters\)"):
            require_text({"content": "abcd"}, "content", max_length=3)

    def test_default_label(self):
        with pytest.raises(ValidationError, match="Post id is required"):
            require_text({}, "post_id")

    def test_optional_text(self):
        assert optional_text({}, "selected_text") == ""
        assert optional_text({"selected_text": " x "}, "selected_text") == "x"
        with pytest.raises(ValidationError):
            optional_text({"selected_text": 3}, "selected_text")
