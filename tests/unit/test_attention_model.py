import math

import pytest

from attention_router.attention.model import NamespaceAttentionState, ToolAttentionState
from attention_router.config import AttentionConfig


def test_thresholds_default_and_move_multiplicatively() -> None:
    state = NamespaceAttentionState()

    assert state.get_threshold("task") == 0.7
    assert math.isclose(state.raise_threshold("task"), 0.7 * 1.05)
    assert math.isclose(state.lower_threshold("timer"), 0.7 * 0.95)


def test_thresholds_are_clamped() -> None:
    state = NamespaceAttentionState()
    state.set_threshold("task", 0.99)

    for _ in range(5):
        state.raise_threshold("task")

    assert state.get_threshold("task") == 1.0
    state.set_threshold("task", -3.0)
    assert state.get_threshold("task") == 0.0


def test_thresholds_move_off_zero_by_the_minimum_delta() -> None:
    state = NamespaceAttentionState.from_config(AttentionConfig(min_threshold_delta=0.002))
    state.set_threshold("task", 0.0)
    state.set_threshold("timer", 0.01)

    assert state.raise_threshold("task") == pytest.approx(0.002)
    assert state.lower_threshold("timer") == pytest.approx(0.008)
    assert state.lower_threshold("task") == 0.0

    state.set_threshold("note", 1.0)
    assert state.raise_threshold("note") == 1.0


def test_step_decay_shrinks_steps_with_training() -> None:
    state = NamespaceAttentionState.from_config(AttentionConfig(step_decay=1.0))
    state.training_sample_count = 4

    assert math.isclose(state.effective_step, 0.05 / 5)
    assert math.isclose(state.raise_threshold("task"), 0.7 * (1 + 0.01))


def test_centroid_moving_average_and_replacement() -> None:
    state = NamespaceAttentionState()

    assert state.get_centroid("task") is None
    assert state.update_centroid("task", [1.0, 0.0]) == [1.0, 0.0]

    updated = state.update_centroid("task", [0.0, 1.0])
    assert updated == pytest.approx([0.9, 0.1])

    replaced = state.update_centroid("task", [0.5, 0.5, 0.5])
    assert replaced == [0.5, 0.5, 0.5]


def test_record_training_bumps_counters() -> None:
    state = NamespaceAttentionState()

    state.record_training()

    assert state.training_sample_count == 1
    assert state.version == 1
    assert state.last_trained_at is not None


def test_tool_scores_use_neutral_defaults() -> None:
    tools = ToolAttentionState(namespace="task")

    assert tools.get_success_rate("create") == 0.5
    assert tools.get_keyword_weight("create", "milk") == 0.5
    assert tools.score_tool("create", []) == 0.5
    assert tools.score_tool("create", ["milk", "buy"]) == 0.5


def test_tool_scores_reflect_learning() -> None:
    tools = ToolAttentionState(namespace="task")
    tools.set_success_rate("create", 0.9)
    tools.set_keyword_weight("create", "add", 1.4)
    tools.set_success_rate("list", -0.2)

    assert tools.get_keyword_weight("create", "add") == 1.0
    assert tools.get_success_rate("list") == 0.0
    assert math.isclose(tools.score_tool("create", ["add"]), (0.9 + 1.0) / 2)
    assert math.isclose(tools.score_tool("create", ["add", "new"]), (0.9 + 0.75) / 2)
    assert [name for name, _ in tools.rank_tools(["create", "list", "complete"], ["add"])] == [
        "create",
        "complete",
        "list",
    ]


def test_attention_state_serializes_as_json() -> None:
    state = NamespaceAttentionState()
    state.lower_threshold("task")
    state.set_centroid("task", [0.1, 0.2])

    restored = NamespaceAttentionState.model_validate_json(state.model_dump_json())

    assert restored.get_threshold("task") == state.get_threshold("task")
    assert restored.get_centroid("task") == [0.1, 0.2]
