from Recipeweaver.feedback import FeedbackSink, RunStatus, Severity
from Recipeweaver.metrics import get_counter


def test_status_is_monotonic():
    sink = FeedbackSink()
    for status in [0, 2, 1]:
        sink.set_status(status)
    assert sink.status == 2


def test_report_builds_nested_tree_and_raises_status():
    sink = FeedbackSink()
    sink.report("courses", "algebra", Severity.SUCCESS, "restored")
    assert sink.status == RunStatus.OK
    sink.report("courses", "algebra", "warning", "duplicate")
    sink.report("config", "local_catquiz", Severity.ERROR, "missing key")
    assert sink.snapshot() == {
        "courses": {"algebra": {"success": ["restored"], "warning": ["duplicate"]}},
        "config": {"local_catquiz": {"error": ["missing key"]}},
    }
    assert sink.status == RunStatus.ERROR
    assert get_counter("feedback.error") == 1


def test_has_errors_and_issues_are_per_entity():
    sink = FeedbackSink()
    sink.report("localdata", "a", Severity.WARNING, "w")
    sink.report("localdata", "b", Severity.ERROR, "e")
    assert sink.has_issues("localdata", "a")
    assert not sink.has_errors("localdata", "a")
    assert sink.has_errors("localdata", "b")
    assert not sink.has_issues("localdata", "c")


def test_snapshot_is_detached():
    sink = FeedbackSink()
    sink.report("plugins", "mod_x", Severity.SUCCESS, "ok")
    tree = sink.snapshot()
    tree["plugins"]["mod_x"]["success"].append("tampered")
    assert sink.messages("plugins", "mod_x", Severity.SUCCESS) == ["ok"]


def test_merge_keeps_fatal_status():
    run = FeedbackSink()
    child = FeedbackSink()
    child.report("plugins", "upgrade", Severity.ERROR, "failed")
    child.set_status(RunStatus.FATAL)
    run.merge(child)
    assert run.status == RunStatus.FATAL
    assert run.messages("plugins", "upgrade", "error") == ["failed"]
    assert bool(run)


def test_rolled_back_turns_successes_into_one_error():
    sink = FeedbackSink()
    sink.report("config", "local_a", Severity.SUCCESS, "Setting foo updated")
    sink.report("config", "local_a", Severity.SUCCESS, "Setting bar updated")
    sink.report("config", "local_b", Severity.WARNING, "Setting baz was not found")
    sink.set_status(RunStatus.FATAL)

    rolled = sink.rolled_back("undone")

    assert rolled.snapshot() == {
        "config": {
            "local_a": {"error": ["undone"]},
            "local_b": {"warning": ["Setting baz was not found"]},
        }
    }
    assert rolled.status == RunStatus.FATAL
