"""Tests for stab.inference: context, parsing, validation, application and the pipeline."""

import json

import httpx
import pytest

from stab.core.errors import HostError
from stab.core.types import WorkspaceResult
from stab.inference.apply import PALETTE, apply_workspaces
from stab.inference.context import build_context, host_name
from stab.inference.parse import (
    Proposal,
    extract_json_object,
    parse_workspaces,
    validate,
)
from stab.inference.pipeline import PipelineState
from stab.inference.prompt import WORKSPACE_SYSTEM, build_prompt
from stab.inference.providers import build_categorizer


def _answer(*workspaces):
    return json.dumps({"workspaces": [{"name": n, "tabIds": ids} for n, ids in workspaces]})


class FakeCategorizer:
    def __init__(self, response="", error=None):
        self.response = response
        self.error = error
        self.calls = []
        self.credentials = []

    def factory(self, credential):
        self.credentials.append(credential)
        return self

    def __call__(self, prompt, system):
        self.calls.append((prompt, system))
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def categorizer():
    return FakeCategorizer()


@pytest.fixture
def pipeline(steward, categorizer):
    steward.inference.categorizer_factory = categorizer.factory
    return steward.inference


def _open(host, *ids, url="https://docs.test/"):
    for rid in ids:
        host.add(id=rid, url=f"{url}{rid}", title=f"Tab {rid}")


class TestContext:
    def test_host_name(self):
        assert host_name("https://docs.python.org/3/") == "docs.python.org"
        assert host_name("not a url") == ""
        assert host_name("") == ""

    def test_summaries_use_engagement(self, steward, host):
        _open(host, "a", "b")
        host.add(id="c", url="chrome://extensions", title="Extensions")
        steward.tracker.focus_changed("a", at=0)
        steward.tracker.focus_changed("b", at=130_000)
        ctx = build_context(host.list_resources(), steward.tracker, ("chrome://",))
        assert ctx.ids == ["a", "b"]
        a = ctx.resources[0]
        assert (a.host, a.minutes, a.visits) == ("docs.test", 2, 1)
        assert ctx.resources[1].minutes == 0

    def test_too_few_resources(self, steward, host):
        _open(host, "solo")
        assert not build_context(host.list_resources(), steward.tracker).sufficient

    def test_relationships_need_two_switches(self, steward, host):
        _open(host, "a", "b", "c")
        t = 0
        for rid in ["a", "b", "a", "c"]:
            steward.tracker.focus_changed(rid, at=t)
            t += 5000
        ctx = build_context(host.list_resources(), steward.tracker)
        assert [(e.a, e.b) for e in ctx.relationships] == [("a", "b")]

    def test_prompt_mentions_every_tab(self, steward, host):
        _open(host, "a", "b")
        ctx = build_context(host.list_resources(), steward.tracker)
        prompt = build_prompt(ctx)
        assert "- a | Tab a | docs.test" in prompt
        assert "(no usage history yet)" in prompt
        assert '"workspaces"' in WORKSPACE_SYSTEM


class TestParse:
    def test_plain_json(self):
        assert extract_json_object('{"workspaces": []}') == {"workspaces": []}

    def test_json_wrapped_in_prose(self):
        text = 'Sure! Here you go:\n{"workspaces": [{"name": "Docs", "tabIds": [1, 2]}]}\nHope that helps.'
        proposals = parse_workspaces(text)
        assert proposals == [Proposal(name="Docs", tab_ids=["1", "2"])]

    def test_markdown_fence(self):
        text = '```json\n{"workspaces": [{"name": "X", "tabIds": ["a", "b"]}]}\n```'
        assert parse_workspaces(text)[0].tab_ids == ["a", "b"]

    def test_trailing_prose_with_braces(self):
        text = '{"workspaces": [{"name": "X", "tabIds": ["a", "b"]}]} note: {not json}'
        assert len(parse_workspaces(text)) == 1

    @pytest.mark.parametrize("text", ["", "no json here", "{broken", "[1, 2]", '{"workspaces": "nope"}'])
    def test_garbage_means_no_workspaces(self, text):
        assert parse_workspaces(text) == []

    def test_malformed_entries_skipped(self):
        text = json.dumps({"workspaces": ["x", {"name": "ok", "tabIds": ["a", "b"]}, {"name": "no ids"}]})
        assert [p.name for p in parse_workspaces(text)] == ["ok"]

    def test_float_ids_normalised(self):
        assert parse_workspaces('{"workspaces": [{"name": "n", "tabIds": [3.0, 4]}]}')[0].tab_ids == ["3", "4"]


class TestValidate:
    def test_one_stale_id_of_three_keeps_survivors(self):
        result = validate([Proposal("Research", ["1", "2", "gone"])], ["1", "2", "3"])
        assert result == [WorkspaceResult(name="Research", tab_ids=["1", "2"])]

    def test_too_few_survivors_discards(self):
        assert validate([Proposal("Research", ["1", "gone", "also-gone"])], ["1", "2"]) == []

    def test_a_tab_joins_one_workspace_only(self):
        result = validate([Proposal("A", ["1", "2"]), Proposal("B", ["2", "3"])], ["1", "2", "3"])
        assert [w.name for w in result] == ["A"]

    def test_logs_valid_count(self, caplog):
        with caplog.at_level("INFO", logger="stab.inference.parse"):
            validate([Proposal("Research", ["1", "2", "gone"])], ["1", "2"])
        assert "2 of 3 proposed tab ids are valid" in caplog.text


class TestApply:
    def test_group_mode_rotates_palette(self, host):
        workspaces = [WorkspaceResult(name=f"w{i}", tab_ids=["a", "b"]) for i in range(len(PALETTE) + 1)]
        applied, failed = apply_workspaces(host, workspaces, mode="group")
        assert len(applied) == len(PALETTE) + 1 and failed == []
        colors = [g["color"] for g in host.groups]
        assert colors[: len(PALETTE)] == list(PALETTE)
        assert colors[-1] == PALETTE[0]

    def test_window_mode(self, host):
        applied, _ = apply_workspaces(host, [WorkspaceResult("w", ["a", "b", "c"])], mode="window")
        assert host.windows == {"w1": ["a", "b", "c"]}
        assert len(applied) == 1

    def test_failure_is_isolated(self, host):
        host.fail_group_named = {"bad"}
        workspaces = [WorkspaceResult("bad", ["a", "b"]), WorkspaceResult("good", ["c", "d"])]
        applied, failed = apply_workspaces(host, workspaces)
        assert [w.name for w in applied] == ["good"]
        assert failed[0][0].name == "bad"


class TestPipeline:
    def test_success(self, steward, host, pipeline, categorizer):
        _open(host, "1", "2", "3", "4")
        categorizer.response = "Here:\n" + _answer(("Docs", [1, 2]), ("Mail", ["3", "4", "99"]))
        result = pipeline.run(credential="sk-test")
        assert result.ok
        assert result.applied == 2
        assert [g["title"] for g in host.groups] == ["Docs", "Mail"]
        assert host.groups[1]["tabIds"] == ["3", "4"]
        assert categorizer.credentials == ["sk-test"]
        assert pipeline.state is PipelineState.DONE
        assert steward.logs()[0].message == "Created 2 workspace(s)"

    def test_stored_api_key_is_used(self, steward, host, pipeline, categorizer):
        steward.update_settings({"api_key": "sk-stored"})
        _open(host, "1", "2")
        categorizer.response = _answer(("Pair", ["1", "2"]))
        assert pipeline.run().applied == 1
        assert categorizer.credentials == ["sk-stored"]

    def test_missing_credential(self, steward, host, pipeline, categorizer):
        _open(host, "1", "2")
        result = pipeline.run()
        assert not result.ok
        assert result.error == "no-credential"
        assert categorizer.calls == []
        assert "inference failed" in steward.logs()[0].message

    def test_fewer_than_two_resources(self, host, pipeline, categorizer):
        _open(host, "1")
        host.add(id="2", url="chrome://newtab/")
        result = pipeline.run(credential="k")
        assert result.ok and result.applied == 0
        assert categorizer.calls == []

    def test_service_error(self, host, pipeline, categorizer):
        _open(host, "1", "2")
        categorizer.error = ConnectionError("401 Unauthorized")
        result = pipeline.run(credential="k")
        assert not result.ok
        assert result.error == "service-error"
        assert "401" in result.message
        assert result.state == "failed"
        assert pipeline.state is PipelineState.FAILED
        assert host.groups == []

    def test_unparseable_answer_is_zero_workspaces(self, host, pipeline, categorizer):
        _open(host, "1", "2")
        categorizer.response = "I could not decide."
        result = pipeline.run(credential="k")
        assert result.ok and result.applied == 0

    def test_resource_closed_while_waiting(self, host, pipeline, categorizer):
        _open(host, "1", "2", "3")

        def answer_then_close(prompt, system):
            host.resources.pop("3")
            return _answer(("Trio", ["1", "2", "3"]), ("Pair", ["3", "1"]))

        pipeline.categorizer_factory = lambda credential: answer_then_close
        result = pipeline.run(credential="k")
        assert result.applied == 1
        assert result.workspaces[0].tab_ids == ["1", "2"]

    def test_window_mode_from_settings(self, steward, host, pipeline, categorizer):
        steward.update_settings({"grouping_mode": "window"})
        _open(host, "1", "2")
        categorizer.response = _answer(("Pair", ["1", "2"]))
        pipeline.run(credential="k")
        assert host.windows == {"w1": ["1", "2"]}
        assert host.groups == []

    def test_one_failed_workspace_does_not_stop_others(self, steward, host, pipeline, categorizer):
        _open(host, "1", "2", "3", "4")
        host.fail_group_named = {"Broken"}
        categorizer.response = _answer(("Broken", ["1", "2"]), ("Fine", ["3", "4"]))
        result = pipeline.run(credential="k")
        assert result.ok and result.applied == 1
        messages = [e.message for e in steward.logs()]
        assert any("Failed to create workspace 'Broken'" in m for m in messages)

    def test_unexpected_failure(self, host, pipeline):
        _open(host, "1", "2")

        def exploding_factory(credential):
            raise ImportError("anthropic is required")

        pipeline.categorizer_factory = exploding_factory
        result = pipeline.run(credential="k")
        assert result.error == "unexpected"
        assert "anthropic" in result.message


class TestProviders:
    def test_llm_func_wins(self, config):
        def fn(prompt, system):
            return "{}"

        assert build_categorizer(config.with_overrides(llm_func=fn), "key") is fn

    def test_unknown_provider_lists_choices(self, config):
        with pytest.raises(ValueError, match="anthropic, ollama, openai"):
            build_categorizer(config.with_overrides(llm_provider="bard"), "key")

    def test_ollama_request(self, config, monkeypatch):
        sent = {}

        def fake_post(self, url, json=None, **kwargs):
            sent.update(url=url, body=json, auth=self.headers.get("Authorization"))
            request = httpx.Request("POST", f"http://localhost:11434{url}")
            return httpx.Response(200, json={"response": ' {"workspaces": []} '}, request=request)

        monkeypatch.setattr(httpx.Client, "post", fake_post)
        categorize = build_categorizer(
            config.with_overrides(llm_provider="ollama", llm_model="llama3"), "token"
        )
        assert categorize("prompt", "system") == '{"workspaces": []}'
        assert sent["url"] == "/api/generate"
        assert sent["body"]["model"] == "llama3"
        assert sent["body"]["system"] == "system"
        assert sent["body"]["format"] == "json"
        assert sent["auth"] == "Bearer token"

    def test_ollama_http_error_becomes_service_error(self, steward, host, config, monkeypatch):
        def fake_post(self, url, json=None, **kwargs):
            request = httpx.Request("POST", f"http://localhost:11434{url}")
            return httpx.Response(503, text="overloaded", request=request)

        monkeypatch.setattr(httpx.Client, "post", fake_post)
        _open(host, "1", "2")
        steward.config.llm_provider = "ollama"
        result = steward.infer_workspaces(credential="k")
        assert result.error == "service-error"
        assert "503" in result.message


class TestPipelineErrorKinds:
    def test_host_failure_is_reported_as_unexpected(self, host, pipeline, categorizer):
        def unreadable():
            raise HostError("snapshot unreadable")

        host.list_resources = unreadable
        result = pipeline.run(credential="k")
        assert not result.ok
        assert result.error == "unexpected"
        assert "snapshot unreadable" in result.message
        assert result.state == "failed"

    def test_host_failure_while_validating(self, host, pipeline, categorizer):
        _open(host, "1", "2")
        categorizer.response = _answer(("Pair", ["1", "2"]))
        real_listing = host.list_resources
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) > 1:
                raise HostError("host restarted")
            return real_listing()

        host.list_resources = flaky
        result = pipeline.run(credential="k")
        assert result.error == "unexpected"
        assert host.groups == []

    def test_valid_counts_reach_the_activity_log(self, steward, host, pipeline, categorizer):
        _open(host, "1", "2", "3")
        categorizer.response = _answer(("Trio", ["1", "2", "gone"]), ("Lost", ["gone", "3"]))
        pipeline.run(credential="k")
        messages = [e.message for e in steward.logs()]
        assert "Workspace 'Trio': 2 of 3 proposed tab ids are valid" in messages
        assert "Workspace 'Lost': 1 of 2 proposed tab ids are valid" in messages


class TestExtractFallbacks:
    def test_non_json_fence_does_not_hide_object(self):
        text = 'Plan:\n```\nstep one\n```\n{"workspaces": [{"name": "X", "tabIds": ["a", "b"]}]}'
        assert parse_workspaces(text)[0].tab_ids == ["a", "b"]

    def test_object_after_stray_brace(self):
        text = 'Thinking {about it... {"workspaces": []}'
        assert extract_json_object(text) == {"workspaces": []}

    def test_report_callback(self):
        lines = []
        validate([Proposal("Solo", ["1", "x"])], ["1"], report=lines.append)
        assert lines == ["Workspace 'Solo': 1 of 2 proposed tab ids are valid"]
