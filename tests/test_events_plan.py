from activity_recorder.recording.events import EventChannel
from activity_recorder.recording.plan import PlanProgress, PlanStep


def test_event_channel_is_per_instance():
    a, b = EventChannel("a"), EventChannel("b")
    seen = []
    a.subscribe(seen.append)
    b.emit("ignored")
    a.emit("hello")
    assert seen == ["hello"]
    assert len(b) == 0


def test_unsubscribe_twice_is_harmless():
    channel = EventChannel("x")
    unsubscribe = channel.subscribe(lambda e: None)
    unsubscribe()
    unsubscribe()
    assert len(channel) == 0


def test_plan_progress_peek_and_advance():
    plan = PlanProgress("p-1", [
        PlanStep(name="warmup", duration_seconds=600),
        PlanStep(name="threshold", duration_seconds=1200, target_power=250),
    ])
    assert plan.peek_step(1).name == "threshold"
    assert plan.peek_step(2) is None
    assert plan.peek_step(-1) is None
    assert plan.current_step.name == "warmup"
    assert plan.advance().name == "threshold"
    assert plan.advance() is None
    assert plan.finished
    assert plan.advance() is None
    assert plan.current_index == 2
