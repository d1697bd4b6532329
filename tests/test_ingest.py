from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.core.errors import BadRequestError, UnsupportedUploadError, UploadTooLargeError
from backend.workers.ingest import ScannerWatcher, WatcherConfig

from conftest import PDF_BYTES, run


@pytest.fixture()
def scanner_dir(tmp_path) -> Path:
    path = tmp_path / "scanner"
    path.mkdir()
    return path


@pytest.fixture()
def watcher(service, scanner_dir) -> ScannerWatcher:
    return ScannerWatcher(service.ingest, WatcherConfig(source_dir=scanner_dir, interval=5.0, actor="scanner-bot"))


def test_tick_moves_pdfs_into_inbox(service, settings, scanner_dir, watcher):
    (scanner_dir / "invoice.pdf").write_bytes(PDF_BYTES)
    (scanner_dir / "notes.txt").write_text("ignore me", encoding="utf-8")

    ingested = run(watcher.tick())

    assert len(ingested) == 1
    record = run(service.get_document(ingested[0]))
    assert record["filePath"] == "storage/inbox/invoice.pdf"
    assert record["originalFilename"] == "invoice.pdf"
    assert record["history"][0]["from"] == "scanner"
    assert record["history"][0]["by"] == "scanner-bot"
    assert not (scanner_dir / "invoice.pdf").exists()
    assert (scanner_dir / "notes.txt").exists()


def test_same_name_twice_gets_distinct_files(service, settings, scanner_dir, watcher):
    (scanner_dir / "invoice.pdf").write_bytes(PDF_BYTES)
    first = run(watcher.tick())
    (scanner_dir / "invoice.pdf").write_bytes(PDF_BYTES + b"second")
    second = run(watcher.tick())

    paths = [run(service.get_document(doc_id))["filePath"] for doc_id in first + second]
    assert paths == ["storage/inbox/invoice.pdf", "storage/inbox/invoice (1).pdf"]
    assert len({*first, *second}) == 2


def test_unstable_file_is_not_ingested(service, scanner_dir):
    path = scanner_dir / "growing.pdf"
    path.write_bytes(PDF_BYTES)

    async def scenario() -> bool:
        check = asyncio.create_task(service.ingest.is_stable(path, delay=0.5))
        await asyncio.sleep(0.1)
        path.write_bytes(PDF_BYTES * 4)
        return await check

    assert run(scenario()) is False
    assert run(service.ingest.is_stable(path, delay=0.0)) is True
    assert run(service.ingest.is_stable(scanner_dir / "gone.pdf", delay=0.0)) is False


def test_failed_registration_returns_file_to_scanner(service, scanner_dir, watcher, monkeypatch):
    (scanner_dir / "invoice.pdf").write_bytes(PDF_BYTES)

    async def refuse(record):
        raise OSError("disk full")

    monkeypatch.setattr(service.ingest._store, "create", refuse)

    assert run(watcher.tick()) == []
    assert (scanner_dir / "invoice.pdf").exists()
    assert run(service.list_documents("inbox")) == []


def test_watcher_stops_on_request(service, scanner_dir, watcher):
    (scanner_dir / "invoice.pdf").write_bytes(PDF_BYTES)

    async def scenario():
        handle = watcher.start()
        await asyncio.sleep(0.2)
        handle.stop()
        await asyncio.wait_for(handle.task, timeout=2.0)
        return handle

    handle = run(scenario())

    assert handle.stopped
    assert handle.task.done()
    assert len(run(service.list_documents("inbox"))) == 1


@pytest.mark.parametrize(
    ("filename", "content_type", "data", "error", "code"),
    [
        ("scan.png", "image/png", PDF_BYTES, UnsupportedUploadError, "unsupported_type"),
        ("scan.pdf", "application/pdf", b"GIF89a", UnsupportedUploadError, "invalid_pdf"),
        (None, "application/pdf", PDF_BYTES, BadRequestError, "bad_request"),
    ],
)
def test_upload_validation(service, filename, content_type, data, error, code):
    with pytest.raises(error) as excinfo:
        service.ingest.validate_upload(filename, content_type, data)
    assert excinfo.value.code == code


def test_upload_size_limit(service, monkeypatch):
    from dataclasses import replace

    monkeypatch.setattr(service.ingest, "_settings", replace(service.settings, max_upload_bytes=16))

    with pytest.raises(UploadTooLargeError):
        service.ingest.validate_upload("scan.pdf", "application/pdf", PDF_BYTES)


def test_upload_collision_keeps_both_documents(service, add_document):
    first = add_document("invoice.pdf")
    second = add_document("invoice.pdf")

    assert first["filePath"] == "storage/inbox/invoice.pdf"
    assert second["filePath"] == "storage/inbox/invoice (1).pdf"
    assert second["originalFilename"] == "invoice (1).pdf"


def test_cancelled_poll_still_registers_the_moved_file(service, settings, scanner_dir, watcher, monkeypatch):
    (scanner_dir / "invoice.pdf").write_bytes(PDF_BYTES)
    store = service.ingest._store
    original_create = store.create

    async def slow_create(record):
        await asyncio.sleep(0.5)
        await original_create(record)

    monkeypatch.setattr(store, "create", slow_create)

    async def scenario():
        handle = watcher.start()
        await asyncio.sleep(0.2)
        handle.stop()
        handle.task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await handle.task
        # the shielded ingest keeps running on the loop
        await asyncio.sleep(0.6)

    run(scenario())

    records = run(service.list_documents("inbox"))
    assert [item.filePath for item in records] == ["storage/inbox/invoice.pdf"]
    assert (settings.storage_root / "inbox" / "invoice.pdf").is_file()
    assert not (scanner_dir / "invoice.pdf").exists()
