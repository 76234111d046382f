from stepwise.contracts import CreateWorkflowRequest
from stepwise.validation import find_cycle, validate_definition


def _request(steps, **kwargs):
    return CreateWorkflowRequest(name=kwargs.pop("name", "wf"), steps=steps, **kwargs)


def test_valid_definition_has_no_issues():
    request = _request(
        [
            {"id": "a", "name": "A", "type": "agent_task", "agentId": "x", "successors": ["b"]},
            {"id": "b", "name": "B", "type": "condition", "condition": "true", "successors": ["c"]},
            {"id": "c", "name": "C", "type": "delay", "delayMs": 50},
        ]
    )
    assert validate_definition(request) == []


def test_dangling_reference_names_the_offending_step():
    request = _request(
        [{"id": "a", "name": "Fetch", "type": "agent_task", "agentId": "x", "successors": ["ghost"]}]
    )
    issues = validate_definition(request)
    assert len(issues) == 1
    assert issues[0].field == "steps.0"
    assert issues[0].step_id == "a"
    assert issues[0].message == 'Step "Fetch" references non-existent step: ghost'


def test_validation_is_idempotent():
    request = _request(
        [
            {"id": "a", "name": "", "type": "agent_task", "successors": ["zz"]},
            {"id": "a", "name": "dup", "type": "condition"},
        ],
        name="",
    )
    first = validate_definition(request)
    assert first
    assert validate_definition(request) == first


def test_per_type_required_fields():
    request = _request(
        [
            {"id": "a", "name": "Agent", "type": "agent_task"},
            {"id": "b", "name": "Cond", "type": "condition"},
            {"id": "c", "name": "Fan", "type": "parallel"},
            {"id": "d", "name": "Seq", "type": "sequential"},
        ]
    )
    messages = {issue.message for issue in validate_definition(request)}
    assert 'Agent task step "Agent" requires an agentId' in messages
    assert 'Condition step "Cond" requires a condition' in messages
    assert 'Parallel step "Fan" requires branches' in messages
    assert 'Sequential step "Seq" requires branches' in messages


def test_workflow_level_limits():
    request = _request([], name="x" * 101, description="d" * 501)
    fields = {issue.field for issue in validate_definition(request)}
    assert {"name", "description", "steps"} <= fields

    too_many = _request(
        [{"id": f"s{i}", "name": f"S{i}", "type": "delay", "delayMs": 0} for i in range(51)]
    )
    assert any("Maximum 50 steps" in issue.message for issue in validate_definition(too_many))


def test_trigger_requires_condition():
    request = _request(
        [{"id": "a", "name": "A", "type": "delay", "delayMs": 0}],
        triggers=[{"type": "manual", "condition": "  "}],
    )
    issues = validate_definition(request)
    assert [issue.field for issue in issues] == ["triggers.0.condition"]


def test_cycles_are_detected_across_every_edge_kind():
    request = _request(
        [
            {"id": "a", "name": "A", "type": "agent_task", "agentId": "x", "successors": ["p"]},
            {"id": "p", "name": "P", "type": "parallel", "branches": ["c"]},
            {"id": "c", "name": "C", "type": "condition", "condition": "true", "otherwise": ["a"]},
        ]
    )
    assert find_cycle(request.steps) == ["a", "p", "c", "a"]
    issues = validate_definition(request)
    assert any(issue.message == "Cycle detected: a -> p -> c -> a" for issue in issues)


def test_diamond_is_not_a_cycle():
    request = _request(
        [
            {"id": "p", "name": "P", "type": "parallel", "branches": ["b", "c"]},
            {"id": "b", "name": "B", "type": "delay", "delayMs": 0, "successors": ["d"]},
            {"id": "c", "name": "C", "type": "delay", "delayMs": 0, "successors": ["d"]},
            {"id": "d", "name": "D", "type": "delay", "delayMs": 0},
        ]
    )
    assert find_cycle(request.steps) is None
    assert validate_definition(request) == []
