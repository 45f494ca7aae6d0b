import json

import pytest

from line_relay.services.logger.factory import LoggerFactory
from line_relay.services.logger.json_logger import JsonLogger
from line_relay.services.logger.memory_logger import MemoryLogger


def test_create_caches_instances():
    factory = LoggerFactory(default_impl="memory")
    assert factory.create() is factory.create()
    assert isinstance(factory.create(), MemoryLogger)


def test_unknown_default_impl_rejected():
    with pytest.raises(ValueError, match="Unknown logger implementation"):
        LoggerFactory(default_impl="syslog")


def test_for_component_binds_context():
    factory = LoggerFactory(default_impl="memory")
    log = factory.for_component("batcher")
    log.info("Batch sent", group_id="G1")
    entry = factory.create().entries[-1]
    assert entry.msg == "Batch sent"
    assert entry.ctx == {"component": "batcher", "group_id": "G1"}


def test_bind_nests_and_call_context_wins():
    mem = MemoryLogger()
    log = mem.bind(component="relay").bind(group_id="G1")
    log.warn("x", group_id="G2")
    assert mem.entries[0].ctx == {"component": "relay", "group_id": "G2"}
    assert mem.entries[0].level == "WARN"


def test_json_logger_writes_one_object_per_line(capsys):
    JsonLogger().error("Send failed", group_id="G1", error=ValueError("boom"))
    line = capsys.readouterr().err.strip()
    entry = json.loads(line)
    assert entry["level"] == "ERROR"
    assert entry["msg"] == "Send failed"
    assert entry["group_id"] == "G1"
    assert entry["error"] == "boom"


def test_pretty_logger_prefixes_component_and_respects_level(capsys, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warn")
    factory = LoggerFactory(default_impl="pretty")
    log = factory.for_component("batcher")
    log.info("Notification queued", group_id="G1")
    log.warn("Batch drain failed", group_id="G1", error="connection reset")
    err = capsys.readouterr().err
    assert "Notification queued" not in err
    assert "batcher" in err
    assert "group_id=G1 error='connection reset'" in err
    assert "component=" not in err
