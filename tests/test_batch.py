import logging
from datetime import timedelta
from unittest import mock

import pytest

from drive_restore.core.batch import BatchDriver
from drive_restore.core.drive import GoogleDriveStore
from drive_restore.core.models import ProcessingOutcome
from drive_restore.exceptions import DiscoveryError, ExtractError

from conftest import make_file


@pytest.fixture
def driver(settings, store, processor):
    return BatchDriver(settings, store, processor)


def test_listing_failure_aborts_batch(driver, store):
    store.fail_list = True

    with pytest.raises(DiscoveryError):
        driver.run()


def test_only_marker_files_are_processed(driver, store):
    store.files = [make_file("a", name="Susenas2025M_a.7z"), make_file("b", name="other.7z")]

    report = driver.run()

    assert report.total == 1
    assert store.deleted == ["a"]


def test_failures_do_not_stop_the_batch(driver, store, extractor):
    store.files = [
        make_file("small", size=10),
        make_file("broken", name="Susenas2025M_broken.7z", age=timedelta(minutes=1)),
        make_file("good", name="Susenas2025M_good.7z"),
    ]
    extract = extractor.extract

    def failing_extract(archive_path, dest_dir, password):
        if "broken" in archive_path:
            raise ExtractError("Can not open the file as archive")
        extract(archive_path, dest_dir, password)

    extractor.extract = failing_extract

    report = driver.run()

    assert report.total == 3
    assert report.count(ProcessingOutcome.SKIPPED_TOO_SMALL) == 1
    assert report.count(ProcessingOutcome.FAILED_TRANSIENT) == 1
    assert report.count(ProcessingOutcome.PROCESSED) == 1
    assert store.deleted == ["small", "good"]
    assert "Susenas2025M_broken.7z" in report.failures


def test_files_are_processed_in_listing_order(driver, store, events):
    store.files = [make_file("first"), make_file("second"), make_file("third")]

    driver.run()

    downloads = [e for e in events if e.startswith("download:")]
    assert downloads == ["download:first", "download:second", "download:third"]


def test_permanent_failure_is_reported(driver, store, extractor):
    extractor.error = ExtractError("corrupt")
    store.files = [make_file("old", age=timedelta(hours=2))]

    report = driver.run()

    assert report.count(ProcessingOutcome.FAILED_PERMANENT) == 1
    assert store.deleted == ["old"]


def test_unexpected_errors_are_isolated(driver, store, processor, caplog):
    caplog.set_level(logging.INFO)
    store.files = [make_file("a"), make_file("b")]
    calls = []

    def process(file):
        calls.append(file.id)
        if file.id == "a":
            raise RuntimeError("boom")
        return ProcessingOutcome.PROCESSED

    processor.process = process

    report = driver.run()

    assert calls == ["a", "b"]
    assert report.count(ProcessingOutcome.FAILED_TRANSIENT) == 1
    assert report.count(ProcessingOutcome.PROCESSED) == 1
    assert any("Batch run completed" in r.getMessage() for r in caplog.records)


def test_listing_timeout_aborts_batch(settings, processor):
    service = mock.MagicMock()
    service.files.return_value.list.return_value.execute.side_effect = TimeoutError("timed out")
    driver = BatchDriver(settings, GoogleDriveStore(service), processor)

    with pytest.raises(DiscoveryError):
        driver.run()
