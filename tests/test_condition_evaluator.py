from narramorph.modules.conditions.evaluator import ConditionEvaluator, matches_journey_pattern, matches_pattern
from narramorph.modules.conditions.schema import TransformationCondition, TransformationRule
from narramorph.modules.transform.schemas import TextTransformation
from tests.support.journeys import make_node, path_of, registry, walk


def _path_and_node():
    nodes = registry(
        make_node("a", "Algorithm", 1, attractors=["memory-fragment"]),
        make_node("b", "Algorithm", 2),
        make_node("c", "Algorithm", 2),
        make_node("d", "LastHuman", 9),
    )
    path, current = walk(nodes, ["a", "b", "c", "d"], engage=True)
    return path, current["d"]


def test_empty_condition_is_true() -> None:
    evaluator = ConditionEvaluator()
    path, node = _path_and_node()
    assert evaluator.evaluate(None, path, node) is True
    assert evaluator.evaluate({}, path, node) is True
    assert evaluator.evaluate(TransformationCondition(), path, node) is True


def test_basic_leaves() -> None:
    evaluator = ConditionEvaluator()
    path, node = _path_and_node()

    assert evaluator.evaluate({"visit_count": 1}, path, node) is True
    assert evaluator.evaluate({"visit_count": 2}, path, node) is False
    assert evaluator.evaluate({"previously_visited_nodes": ["a", "c"]}, path, node) is True
    assert evaluator.evaluate({"previously_visited_nodes": ["zzz"]}, path, node) is False
    assert evaluator.evaluate({"visit_pattern": ["b", "c"]}, path, node) is True
    assert evaluator.evaluate({"visit_pattern": ["c", "b"]}, path, node) is False
    assert evaluator.evaluate({"journey_pattern": ["c", "d"]}, path, node) is True
    assert evaluator.evaluate({"journey_pattern": ["b", "c"]}, path, node) is False
    assert evaluator.evaluate({"strange_attractors_engaged": ["memory-fragment"]}, path, node) is True
    assert evaluator.evaluate({"temporal_position": "future"}, path, node) is True
    assert evaluator.evaluate({"temporal_position": "past"}, path, node) is False
    assert evaluator.evaluate({"revisit_pattern": [{"node_id": "a", "min_visits": 2}]}, path, node) is False
    assert evaluator.evaluate({"endpoint_progress": {"orientation": "past", "min_value": 10}}, path, node) is False


def test_character_bleed_leaf() -> None:
    evaluator = ConditionEvaluator()
    path, node = _path_and_node()
    assert evaluator.evaluate({"character_bleed": True}, path, node) is True

    same = path_of(["x", "y"], "Algorithm")
    assert evaluator.evaluate({"character_bleed": True}, same, make_node("y", "Algorithm")) is False
    assert evaluator.evaluate({"character_bleed": False}, same, make_node("y", "Algorithm")) is True


def test_all_of_short_circuits() -> None:
    evaluator = ConditionEvaluator()
    path, node = _path_and_node()
    condition = {"allOf": [{"visit_count": 5}, {"visit_pattern": ["a", "b"]}]}

    assert evaluator.evaluate(condition, path, node) is False
    assert evaluator.evaluations == 2


def test_any_of_and_negation() -> None:
    evaluator = ConditionEvaluator()
    path, node = _path_and_node()

    assert evaluator.evaluate({"anyOf": [{"visit_count": 5}, {"temporal_position": "future"}]}, path, node) is True
    assert evaluator.evaluate({"anyOf": [{"visit_count": 5}, {"temporal_position": "past"}]}, path, node) is False
    assert evaluator.evaluate({"not": {"visit_count": 5}}, path, node) is True
    assert evaluator.evaluate({"not": {"not": {"visit_count": 5}}}, path, node) is False
    assert evaluator.evaluate({"not": {"not": {"visit_count": 1}}}, path, node) is True


def test_combinators_are_anded_with_leaves() -> None:
    evaluator = ConditionEvaluator()
    path, node = _path_and_node()
    condition = {"anyOf": [{"visit_count": 1}], "temporal_position": "past"}
    assert evaluator.evaluate(condition, path, node) is False


def test_composite_conditions() -> None:
    evaluator = ConditionEvaluator()
    path, node = _path_and_node()

    assert evaluator.evaluate({"character_focus": {"characters": ["Algorithm"], "min_focus_ratio": 0.7}}, path, node)
    assert not evaluator.evaluate({"character_focus": {"characters": ["LastHuman"]}}, path, node)
    assert evaluator.evaluate({"temporal_focus": {"temporal_layers": ["past"]}}, path, node)
    assert evaluator.evaluate({"attractor_affinity": {"attractors": ["memory-fragment"]}}, path, node)
    assert not evaluator.evaluate({"attractor_affinity": {"attractors": ["system-decay"]}}, path, node)
    assert not evaluator.evaluate({"attractor_engagement": {"attractor": "system-decay"}}, path, node)


def test_recursive_pattern_condition() -> None:
    evaluator = ConditionEvaluator()
    path = path_of(["a", "b", "a", "b", "a", "b"])
    node = make_node("b")

    assert evaluator.evaluate({"recursive_pattern": {"min_pattern_strength": 0.6}}, path, node) is True
    assert evaluator.evaluate({"recursive_pattern": {"max_pattern_length": 1}}, path, node) is False
    assert evaluator.evaluate({"recursive_pattern": {}}, path_of(["a", "b", "c"]), node) is False


def test_repeated_evaluation_hits_cache_until_invalidated() -> None:
    evaluator = ConditionEvaluator()
    path, node = _path_and_node()
    condition = {"visit_pattern": ["a", "b"]}

    assert evaluator.evaluate(condition, path, node) is True
    assert evaluator.evaluate(condition, path, node) is True
    assert evaluator.cache_hits == 1

    evaluator.invalidate()
    assert evaluator.rule_set_version == 1
    assert evaluator.evaluate(condition, path, node) is True
    assert evaluator.cache_hits == 1
    assert evaluator.stats()["rule_set_version"] == 1


def test_cache_distinguishes_node_state() -> None:
    evaluator = ConditionEvaluator()
    path, node = _path_and_node()
    assert evaluator.evaluate({"character_bleed": True}, path, node) is True
    assert evaluator.evaluate({"character_bleed": True}, path, node.model_copy(update={"character": "Algorithm"})) is False


def test_trace_reports_failing_branch() -> None:
    evaluator = ConditionEvaluator()
    path, node = _path_and_node()

    result, trace = evaluator.evaluate_trace(
        {"allOf": [{"visit_count": 5}, {"visit_pattern": ["a", "b"]}]}, path, node
    )

    assert result is False
    group = trace["children"][0]
    assert group["op"] == "allOf"
    assert len(group["children"]) == 1
    assert group["children"][0]["children"] == [{"op": "visit_count", "result": False}]


def test_rules_collect_transformations_from_passing_conditions() -> None:
    evaluator = ConditionEvaluator()
    path, node = _path_and_node()
    passing = TransformationRule(
        condition=TransformationCondition(temporal_position="future"),
        transformations=[TextTransformation(type="emphasize", selector="light")],
    )
    failing = TransformationRule(
        condition=TransformationCondition(temporal_position="past"),
        transformations=[TextTransformation(type="fragment", selector="dark")],
    )

    result = evaluator.evaluate_all_transformations([passing, failing], path, node)

    assert [item.selector for item in result] == ["light"]


def test_pattern_matchers() -> None:
    assert matches_pattern([], ["a"])
    assert matches_pattern(["b", "c"], ["a", "b", "c", "d"])
    assert not matches_pattern(["a", "c"], ["a", "b", "c"])
    assert matches_journey_pattern(["c", "d"], ["a", "b", "c", "d"])
    assert not matches_journey_pattern(["a", "b", "c"], ["b", "c"])
