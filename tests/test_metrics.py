from Recipeweaver.metrics import get_counter, get_counters, inc_counter, observe_histogram, timed


def test_counters_and_histogram_flattening():
    inc_counter("feedback.error")
    inc_counter("feedback.error", 2)
    observe_histogram("orchestrator.step.duration_ms", 10)
    observe_histogram("orchestrator.step.duration_ms", 11)
    observe_histogram("orchestrator.step.duration_ms", 90000)

    out = get_counters()
    assert get_counter("feedback.error") == 3
    assert get_counter("never.seen") == 0
    assert out["histo.orchestrator.step.duration_ms.le_10"] == 1
    assert out["histo.orchestrator.step.duration_ms.le_50"] == 1
    assert out["histo.orchestrator.step.duration_ms.gt_60000"] == 1
    assert out["histo.orchestrator.step.duration_ms.sum"] == 90021
    assert out["histo.orchestrator.step.duration_ms.count"] == 3


def test_timed_records_even_on_error():
    try:
        with timed("installer.config.duration_ms"):
            raise ValueError("boom")
    except ValueError:
        pass

    assert get_counters()["histo.installer.config.duration_ms.count"] == 1
