"""BDD step definitions for document synchronization."""

from datetime import date, timedelta
from pathlib import Path

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from fiscalsync.adapters.storage import FilesystemAdapter
from fiscalsync.domain.models import DocumentCategory, RetrievalMode
from fiscalsync.domain.parser import parse_document
from fiscalsync.errors import ConfigurationError
from fiscalsync.retention import RetentionSweeper


@scenario("features/sync.feature", "Paginated run archives only new documents")
def test_paginated_run() -> None:
    pass


@scenario("features/sync.feature", "A failing day does not abort the run")
def test_failing_day() -> None:
    pass


@scenario("features/sync.feature", "Missing credential is rejected before any request")
def test_missing_credential() -> None:
    pass


@scenario("features/sync.feature", "Archived documents expire after the retention window")
def test_retention() -> None:
    pass


@pytest.fixture
def context() -> dict:
    """Shared test context."""
    return {"next_number": 1}


@given(parsers.parse('a subscriber "{subscriber_id}" with one active CNPJ'))
def given_subscriber(context: dict, subscriber, subscriber_id: str) -> None:
    assert subscriber.id == subscriber_id
    context["subscriber_id"] = subscriber_id


@given(parsers.parse('the source holds {count:d} NF-e documents for "{day}"'))
def source_holds(context: dict, source, make_batch, count: int, day: str) -> None:
    batch = make_batch(count, start=context["next_number"])
    context["next_number"] += count
    context["batch"] = batch
    source.serve(date.fromisoformat(day), batch)


@given(parsers.parse("{count:d} of those documents were already archived"))
def already_archived(context: dict, writer, subscriber, tax_id, count: int) -> None:
    for raw in context["batch"][:count]:
        fields = parse_document(raw, DocumentCategory.NFE)
        writer.archive(raw, fields, subscriber, tax_id, RetrievalMode.MANUAL)


@given(parsers.parse('the source is unavailable on "{day}"'))
def source_unavailable(source, day: str) -> None:
    source.failing_days.add(date.fromisoformat(day))


@given("the subscriber has no credential")
def no_credential(subscriber) -> None:
    subscriber.credential = None


@when(parsers.parse('a manual run covers "{start}" to "{end}"'))
def run_range(context: dict, service, start: str, end: str) -> None:
    context["summary"] = service.run_for_subscriber(
        context["subscriber_id"],
        date_range=(date.fromisoformat(start), date.fromisoformat(end)),
    )


@when(parsers.re(r'a manual run covers "(?P<day>[\d-]+)"$'))
def run_day(context: dict, service, day: str) -> None:
    run_range(context, service, day, day)


@when("a manual run is attempted")
def run_attempted(context: dict, service) -> None:
    try:
        service.run_for_subscriber(context["subscriber_id"])
    except ConfigurationError as e:
        context["error"] = e


@when(parsers.parse("the retention sweep runs {days:d} days later"))
def sweep_later(context: dict, store, fixed_now, days: int) -> None:
    context["paths"] = [Path(o.file_path) for o in store.list_outcomes()]
    sweeper = RetentionSweeper(store, FilesystemAdapter())
    sweeper.purge_expired(fixed_now + timedelta(days=days))


@then(parsers.parse("{count:d} documents are seen"))
def documents_seen(context: dict, count: int) -> None:
    assert context["summary"].seen == count


@then(parsers.parse("{count:d} documents are archived"))
def documents_archived(context: dict, count: int) -> None:
    assert context["summary"].archived == count


@then(parsers.parse("{count:d} documents are skipped as duplicates"))
def documents_duplicated(context: dict, count: int) -> None:
    assert context["summary"].duplicates == count


@then("no unit failed")
def no_failures(context: dict) -> None:
    assert context["summary"].failures == 0


@then(parsers.parse("{count:d} unit failed"))
def unit_failures(context: dict, count: int) -> None:
    assert context["summary"].failures == count


@then(parsers.parse("the source was queried at offsets {first:d} and {second:d}"))
def queried_offsets(source, first: int, second: int) -> None:
    assert [call[4] for call in source.calls] == [first, second]


@then("the run fails with a configuration error")
def configuration_error(context: dict) -> None:
    assert isinstance(context.get("error"), ConfigurationError)


@then("the source was never queried")
def never_queried(source) -> None:
    assert source.calls == []


@then("no outcome records remain")
def no_records(store) -> None:
    assert store.list_outcomes() == []


@then("the archived files are gone")
def files_gone(context: dict) -> None:
    assert context["paths"]
    assert not any(p.exists() for p in context["paths"])
