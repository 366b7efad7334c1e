import asyncio

from dual_storage.contracts.validation import validate_record
from dual_storage.engine.consistency import ConsistencyEvaluator, aggregate_reports


def _seed_both(backend_a, backend_b, raw_a, raw_b=None) -> None:
    backend_a.upsert(validate_record(raw_a))
    backend_b.upsert(validate_record(raw_b or raw_a))


def test_matching_records_score_100(backend_a, backend_b, record_factory) -> None:
    _seed_both(backend_a, backend_b, record_factory())
    evaluator = ConsistencyEvaluator(backend_a, backend_b)

    report = asyncio.run(evaluator.evaluate("story", "rec-1"))

    assert report.score == 100
    assert report.is_consistent is True
    assert report.violations == []
    assert report.metrics.completeness == 100


def test_title_mismatch_is_one_critical(backend_a, backend_b, record_factory) -> None:
    _seed_both(
        backend_a,
        backend_b,
        record_factory(title="The Keeper"),
        record_factory(title="The Lighthouse"),
    )
    evaluator = ConsistencyEvaluator(backend_a, backend_b)

    report = asyncio.run(evaluator.evaluate("story", "rec-1"))

    assert report.score == 70
    assert report.is_consistent is False
    assert report.count("critical") == 1
    assert report.violations[0].field == "title"
    assert report.metrics.consistency == 70
    assert report.metrics.accuracy == 100


def test_whitespace_only_difference_is_info(backend_a, backend_b, record_factory) -> None:
    raw_b = record_factory()
    raw_b["payload"]["content"] = "A lighthouse  keeper finds a map. "
    _seed_both(backend_a, backend_b, record_factory(), raw_b)
    evaluator = ConsistencyEvaluator(backend_a, backend_b)

    report = asyncio.run(evaluator.evaluate("story", "rec-1"))

    assert report.score == 98
    assert report.violations[0].severity == "info"
    assert report.is_consistent is True


def test_prompt_keyword_rules(backend_a, backend_b, record_factory) -> None:
    raw_b = record_factory("prompt", "p-1")
    raw_b["payload"]["keywords"] = ["dusk", "lighthouse"]
    raw_b["payload"]["keyword_count"] = 3
    _seed_both(backend_a, backend_b, record_factory("prompt", "p-1"), raw_b)
    evaluator = ConsistencyEvaluator(backend_a, backend_b)

    report = asyncio.run(evaluator.evaluate("prompt", "p-1"))

    severities = {violation.field: violation.severity for violation in report.violations}
    assert severities == {"payload.keywords": "info", "payload.keyword_count": "warning"}
    assert report.score == 88


def test_video_url_mismatch_is_critical(backend_a, backend_b, record_factory) -> None:
    raw_a = record_factory("video_job", "v-1")
    raw_a["payload"]["video_url"] = "https://cdn.example.com/a.mp4"
    raw_b = record_factory("video_job", "v-1")
    raw_b["payload"]["video_url"] = "https://cdn.example.com/b.mp4"
    _seed_both(backend_a, backend_b, raw_a, raw_b)
    evaluator = ConsistencyEvaluator(backend_a, backend_b)

    report = asyncio.run(evaluator.evaluate("video_job", "v-1"))

    assert report.count("critical") == 1
    assert report.metrics.accuracy == 70


def test_timestamp_skew_beyond_tolerance(backend_a, backend_b, record_factory) -> None:
    raw_b = record_factory(updated_at="2026-01-15T09:31:00+00:00")
    _seed_both(backend_a, backend_b, record_factory(), raw_b)
    evaluator = ConsistencyEvaluator(backend_a, backend_b, timestamp_tolerance_s=5.0)

    report = asyncio.run(evaluator.evaluate("story", "rec-1"))

    assert [violation.field for violation in report.violations] == ["updated_at"]
    assert report.metrics.timeliness == 98


def test_missing_on_one_side_halves_completeness(backend_a, backend_b, record_factory) -> None:
    backend_a.upsert(validate_record(record_factory()))
    evaluator = ConsistencyEvaluator(backend_a, backend_b)

    report = asyncio.run(evaluator.evaluate("story", "rec-1"))

    assert report.metrics.completeness == 50
    assert report.count("critical") == 1
    assert "backend_b" in report.violations[0].issue


def test_fetch_failure_is_reported_not_raised(backend_a, backend_b, record_factory) -> None:
    _seed_both(backend_a, backend_b, record_factory())
    backend_b.fail_reads = True
    evaluator = ConsistencyEvaluator(backend_a, backend_b)

    report = asyncio.run(evaluator.evaluate("story", "rec-1"))

    assert report.violations[0].field == "backend_b"
    assert "read refused" in report.violations[0].issue
    assert report.score == 70


def test_score_floors_at_zero(backend_a, backend_b, record_factory) -> None:
    raw_b = record_factory(title="Other", owner_id="user-2")
    raw_b["payload"]["content"] = "Something else entirely."
    raw_b["payload"]["genre"] = "comedy"
    raw_b["status"] = "archived"
    raw_b["project_id"] = None
    raw_b["created_at"] = "2025-01-01T00:00:00+00:00"
    _seed_both(backend_a, backend_b, record_factory(), raw_b)
    evaluator = ConsistencyEvaluator(backend_a, backend_b)

    report = asyncio.run(evaluator.evaluate("story", "rec-1"))

    assert report.score == 0


def test_aggregate_reports_distribution(backend_a, backend_b, record_factory) -> None:
    evaluator = ConsistencyEvaluator(backend_a, backend_b)
    good = evaluator.compare(
        validate_record(record_factory()), validate_record(record_factory())
    )
    bad = evaluator.compare(
        validate_record(record_factory(record_id="rec-2")),
        validate_record(record_factory(record_id="rec-2", title="Changed")),
    )

    aggregate = aggregate_reports([good, bad])

    assert aggregate.records_evaluated == 2
    assert aggregate.average_score == 85.0
    assert aggregate.distribution.excellent == 1
    assert aggregate.distribution.poor == 1
    assert aggregate.inconsistent_records == ["story:rec-2"]
    assert aggregate.is_consistent is False
    assert aggregate.recommendations
