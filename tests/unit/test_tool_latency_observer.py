from pydantic import BaseModel

from legal_agent.agent.registry import ToolRegistry, ToolSpec
from legal_agent.types import RequestContext


class EchoInput(BaseModel):
    text: str


def test_tool_observers_capture_latency_and_payload() -> None:
    registry = ToolRegistry()

    def _handler(data: EchoInput, context: RequestContext) -> dict[str, str]:
        return {"text": data.text.upper()}

    registry.register(
        ToolSpec(
            name="echo",
            description="uppercase",
            args_schema=EchoInput,
            handler=_handler,
        )
    )

    observed = []
    per_call = []
    registry.set_observer(observed.append)
    result = registry.execute(
        "echo",
        {"text": "hello"},
        RequestContext(uid="u1", conversation_id="c1"),
        observer=per_call.append,
    )
    registry.set_observer(None)

    assert result == {"text": "HELLO"}
    assert len(observed) == 1
    assert per_call == observed
    assert observed[0].name == "echo"
    assert observed[0].input_payload == {"text": "hello"}
    assert observed[0].output_preview == '{"text": "HELLO"}'
    assert observed[0].latency_ms >= 0.0
