from __future__ import annotations

import allure

from avatar_worker.app.aggregator import ResultAggregator

pytestmark = [
    allure.epic("Queue Drain"),
    allure.feature("Run Report"),
]


def test_fresh_aggregator_reports_empty_success() -> None:
    report = ResultAggregator().snapshot()

    assert report.processed_count == 0
    assert report.failed_count == 0
    assert report.details == []
    assert report.error is None
    assert report.run_failed is False


def test_record_keeps_processing_order_and_counts() -> None:
    aggregator = ResultAggregator()
    aggregator.record("a-3", True, "ok")
    aggregator.record("a-1", False, "boom")
    aggregator.record("a-2", True, "ok")

    report = aggregator.snapshot()

    assert report.processed_count == 2
    assert report.failed_count == 1
    assert [d.subject_id for d in report.details] == ["a-3", "a-1", "a-2"]
    assert report.details[1].message == "boom"


def test_first_run_error_wins() -> None:
    aggregator = ResultAggregator()
    aggregator.fail_run("connection lost")
    aggregator.fail_run("second failure")

    assert aggregator.snapshot().error == "connection lost"


def test_snapshot_is_detached_from_later_records() -> None:
    aggregator = ResultAggregator()
    aggregator.record("a-1", True, "ok")
    first = aggregator.snapshot()
    aggregator.record("a-2", True, "ok")

    assert len(first.details) == 1
    assert len(aggregator.snapshot().details) == 2


def test_report_to_dict_uses_wire_names() -> None:
    aggregator = ResultAggregator()
    aggregator.record("a-1", True, "Updated thumb count to 3")

    assert aggregator.snapshot().to_dict() == {
        "processedCount": 1,
        "failedCount": 0,
        "details": [{"subjectId": "a-1", "success": True, "message": "Updated thumb count to 3"}],
    }
