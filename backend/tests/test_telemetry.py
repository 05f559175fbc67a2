import json
import logging

from skill_tracker.telemetry import TelemetryEvent, emit_event, register_listener


def test_emit_event_notifies_listeners_and_logs(caplog) -> None:
    received: list[TelemetryEvent] = []
    register_listener(received.append)

    with caplog.at_level(logging.INFO, logger="skill_tracker.telemetry"):
        emit_event("skill_created", user_id="u1", skill_id="s1")

    assert received == [TelemetryEvent(name="skill_created", payload={"user_id": "u1", "skill_id": "s1"})]
    record = next(r for r in caplog.records if r.name == "skill_tracker.telemetry")
    payload = json.loads(record.getMessage().removeprefix("TELEMETRY "))
    assert payload == {"event": "skill_created", "user_id": "u1", "skill_id": "s1"}


def test_failing_listener_does_not_block_others() -> None:
    received: list[str] = []

    def broken(event: TelemetryEvent) -> None:
        raise RuntimeError("boom")

    register_listener(broken)
    register_listener(lambda event: received.append(event.name))

    emit_event("skill_deleted", skill_id="s1")

    assert received == ["skill_deleted"]
