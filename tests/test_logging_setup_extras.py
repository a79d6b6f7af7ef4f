import json
import logging
from pathlib import Path

from ibancheck.utils import logging_setup


def test_compute_max_lines_env(monkeypatch):
    monkeypatch.setenv("IBANCHECK_LOG_MAX_LINES", "1234")
    assert logging_setup._compute_max_lines() == 1234
    monkeypatch.setenv("IBANCHECK_LOG_MAX_LINES", "nonsense")
    assert logging_setup._compute_max_lines() == 5000
    monkeypatch.setenv("IBANCHECK_LOG_MAX_LINES", "-5")
    assert logging_setup._compute_max_lines() == 5000


def test_env_flag(monkeypatch):
    monkeypatch.setenv("IBANCHECK_LOG_CONSOLE", "YES")
    assert logging_setup._env_flag("IBANCHECK_LOG_CONSOLE", False) is True
    monkeypatch.setenv("IBANCHECK_LOG_CONSOLE", "off")
    assert logging_setup._env_flag("IBANCHECK_LOG_CONSOLE", True) is False
    monkeypatch.delenv("IBANCHECK_LOG_CONSOLE")
    assert logging_setup._env_flag("IBANCHECK_LOG_CONSOLE", True) is True


def test_log_event_respects_detail(monkeypatch, caplog):
    caplog.set_level(logging.INFO)
    monkeypatch.setattr(logging.getLogger(), "_ibancheck_log_detail", False, raising=False)
    logging_setup.log_event(logging.getLogger("ibancheck.test"), "detail.test", "msg", big="x" * 1000, small="ok")
    assert "small='ok'" in caplog.text
    # big should be trimmed away when detail disabled
    assert "big=" not in caplog.text
    rec = caplog.records[-1]
    assert rec.event_name == "detail.test"
    assert rec.extra_payload == {"small": "ok"}


def test_line_capped_handler_keeps_tail(tmp_path: Path):
    log_file = tmp_path / "capped.log"
    handler = logging_setup.LineCappedFileHandler(log_file, max_lines=10)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger = logging.getLogger("ibancheck.test_capped")
    logger.propagate = False
    logger.handlers = [handler]
    logger.setLevel(logging.INFO)
    try:
        for i in range(25):
            logger.info("line %d", i)
    finally:
        logger.handlers = []
        handler.close()
    lines = log_file.read_text(encoding="utf-8").splitlines()
    # trimmed to 10 once 20 lines were reached, then 5 more appended
    assert len(lines) == 15
    assert lines[0] == "line 10"
    assert lines[-1] == "line 24"


def test_setup_logging_writes_text_and_jsonl(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("IBANCHECK_LOG_CONSOLE", raising=False)
    monkeypatch.setattr(logging_setup, "_ROOT_CONFIGURED", False)
    root = logging.getLogger()
    monkeypatch.setattr(root, "_ibancheck_log_detail", True, raising=False)
    before = list(root.handlers)
    old_level = root.level
    try:
        log = logging_setup.setup_logging(tmp_path, name="ibancheck.test_setup")
        logging_setup.log_event(log, "setup.test", "hello", n=1)
    finally:
        for h in root.handlers[:]:
            if h not in before:
                root.removeHandler(h)
                h.close()
        root.setLevel(old_level)

    text = (tmp_path / "ibancheck.log").read_text(encoding="utf-8")
    assert "hello | n=1" in text
    events = [json.loads(line) for line in (tmp_path / "ibancheck_events.jsonl").read_text(encoding="utf-8").splitlines()]
    assert any(e["event_name"] == "setup.test" and e["extra"] == {"n": 1} for e in events)
    assert any(e["event_name"] == "logging.start" for e in events)
