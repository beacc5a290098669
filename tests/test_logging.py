"""Tests for the error log and the operations log."""

import logging

from kbindex.errors import log_exception
from kbindex.logging_config import configure_ops_log


def test_log_exception_writes_traceback(tmp_path, monkeypatch):
    monkeypatch.setenv("KBINDEX_STORE_PATH", str(tmp_path))
    try:
        raise RuntimeError("boom")
    except RuntimeError as e:
        path = log_exception(e, context="kb add")
    assert path == tmp_path / "kbindex-errors.log"
    text = path.read_text()
    assert "kb add" in text
    assert "RuntimeError: boom" in text


def test_ops_log_records_store_operations(tmp_path, kb):
    handler = configure_ops_log(tmp_path)
    try:
        kb.add_item("Logged", "body")
        handler.flush()
        assert "Added 'Logged'" in (tmp_path / "kbindex-ops.log").read_text()
    finally:
        logging.getLogger("kbindex").removeHandler(handler)
        handler.close()
