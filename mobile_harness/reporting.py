"""
Structured test events and the HTML report built from them.

Events are keyed by worker so parallel tests each write to their own
entry. Every event is mirrored to the log.
"""

from __future__ import annotations

import getpass
import html
import logging
import os
import platform as host_platform
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Hashable, Optional, Protocol

logger = logging.getLogger(__name__)


class Status(str, Enum):
    INFO = "info"
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"
    WARNING = "warning"


_LOG_LEVELS = {
    Status.INFO: logging.INFO,
    Status.PASS: logging.INFO,
    Status.FAIL: logging.ERROR,
    Status.SKIP: logging.WARNING,
    Status.WARNING: logging.WARNING,
}


def _current_user() -> str:
    # No login variable and no passwd entry for the UID (`docker run --user`).
    try:
        return getpass.getuser()
    except (KeyError, OSError) as e:
        logger.debug("Could not determine the current user: %s", e)
        return "unknown"


class ReportingSink(Protocol):
    def start_test(
        self,
        worker_key: Hashable,
        name: str,
        *,
        category: str = "",
        description: str = "",
    ) -> None: ...

    def log(self, worker_key: Hashable, status: Status, message: str) -> None: ...

    def attach_screenshot(self, worker_key: Hashable, path: Path, title: str) -> None: ...

    def end_test(
        self,
        worker_key: Hashable,
        status: Status,
        *,
        duration_ms: int,
        error: Optional[str] = None,
    ) -> None: ...


@dataclass
class StepRecord:
    timestamp: datetime
    status: Status
    message: str


@dataclass
class TestRecord:
    name: str
    category: str
    description: str
    started_at: datetime
    status: Status = Status.INFO
    duration_ms: int = 0
    error: Optional[str] = None
    steps: list[StepRecord] = field(default_factory=list)
    screenshots: list[tuple[str, Path]] = field(default_factory=list)

    __test__ = False


class HtmlReport:
    """ReportingSink that renders one self-contained HTML file per run."""

    def __init__(
        self,
        report_dir: Path,
        *,
        report_name: str = "Mobile-Automation-Test-Report",
        title: str = "Mobile Test Execution Report",
        suite_name: str = "Mobile Test Suite",
        system_info: Optional[dict[str, str]] = None,
    ) -> None:
        self.report_dir = Path(report_dir)
        self.report_name = report_name
        self.title = title
        self.suite_name = suite_name
        self.started_at = datetime.now()
        self.system_info = {
            "Application": "Mobile Test Automation",
            "User": _current_user(),
            "OS": f"{host_platform.system()} {host_platform.release()}",
            "Python Version": host_platform.python_version(),
        }
        self.system_info.update(system_info or {})
        self.tests: list[TestRecord] = []
        self._active: dict[Hashable, TestRecord] = {}
        self._lock = threading.Lock()

    def start_test(
        self,
        worker_key: Hashable,
        name: str,
        *,
        category: str = "",
        description: str = "",
    ) -> None:
        logger.info("---------- Test Started: %s ----------", name)
        record = TestRecord(name=name, category=category, description=description, started_at=datetime.now())
        if description:
            record.steps.append(StepRecord(datetime.now(), Status.INFO, description))
        with self._lock:
            self.tests.append(record)
            self._active[worker_key] = record

    def _record(self, worker_key: Hashable) -> Optional[TestRecord]:
        with self._lock:
            return self._active.get(worker_key)

    def log(self, worker_key: Hashable, status: Status, message: str) -> None:
        logger.log(_LOG_LEVELS[status], message)
        record = self._record(worker_key)
        if record is not None:
            record.steps.append(StepRecord(datetime.now(), status, message))

    def attach_screenshot(self, worker_key: Hashable, path: Path, title: str) -> None:
        logger.info("Screenshot attached to report: %s", path)
        record = self._record(worker_key)
        if record is not None:
            record.screenshots.append((title, Path(path)))

    def end_test(
        self,
        worker_key: Hashable,
        status: Status,
        *,
        duration_ms: int,
        error: Optional[str] = None,
    ) -> None:
        with self._lock:
            record = self._active.pop(worker_key, None)
        if record is None:
            logger.warning("end_test for worker %r without a started test", worker_key)
            return
        record.status = status
        record.duration_ms = duration_ms
        record.error = error
        level = _LOG_LEVELS[status]
        logger.log(level, "---------- Test %s: %s ----------", status.value.upper(), record.name)
        if error:
            logger.log(level, "Failure reason: %s", error)

    # ---------------------------------------------------------------- rendering

    def summary(self) -> dict[str, int]:
        counts = {status.value: 0 for status in (Status.PASS, Status.FAIL, Status.SKIP)}
        for record in self.tests:
            if record.status.value in counts:
                counts[record.status.value] += 1
        counts["total"] = len(self.tests)
        return counts

    def _relative(self, path: Path) -> str:
        try:
            return os.path.relpath(path.resolve(), self.report_dir.resolve())
        except ValueError:
            return str(path.resolve())

    def render(self) -> str:
        e = html.escape
        counts = self.summary()
        rows: list[str] = []
        for index, record in enumerate(self.tests, 1):
            steps = "".join(
                f'<li class="{s.status.value}"><span>{s.timestamp:%H:%M:%S}</span> {e(s.message)}</li>'
                for s in record.steps
            )
            shots = "".join(
                f'<a href="{e(self._relative(p))}"><img src="{e(self._relative(p))}" alt="{e(t)}"></a>'
                for t, p in record.screenshots
            )
            error = f"<pre>{e(record.error)}</pre>" if record.error else ""
            rows.append(
                f'<tr class="{record.status.value}"><td>{index}</td><td>{e(record.name)}</td>'
                f"<td>{e(record.category)}</td><td>{record.status.value.upper()}</td>"
                f"<td>{record.duration_ms} ms</td>"
                f"<td><ul>{steps}</ul>{error}{shots}</td></tr>"
            )
        info = "".join(f"<tr><th>{e(k)}</th><td>{e(v)}</td></tr>" for k, v in self.system_info.items())
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>{e(self.title)}</title>
<style>
body {{ font-family: sans-serif; margin: 24px; color: #222; }}
table {{ border-collapse: collapse; width: 100%; margin-bottom: 24px; }}
th, td {{ border: 1px solid #ddd; padding: 6px 8px; text-align: left; vertical-align: top; }}
tr.pass td:nth-child(4) {{ color: #1b7f3b; font-weight: bold; }}
tr.fail td:nth-child(4) {{ color: #c62828; font-weight: bold; }}
tr.skip td:nth-child(4) {{ color: #b8860b; font-weight: bold; }}
li.fail {{ color: #c62828; }} li.warning {{ color: #b8860b; }} li.pass {{ color: #1b7f3b; }}
ul {{ margin: 0; padding-left: 18px; }}
img {{ max-height: 240px; margin: 4px; border: 1px solid #ccc; }}
pre {{ background: #fbeaea; padding: 8px; white-space: pre-wrap; }}
</style>
</head>
<body>
<h1>{e(self.suite_name)}</h1>
<p>Started {self.started_at:%Y-%m-%d %H:%M:%S}</p>
<table class="summary">
<tr><th>Total</th><th>Passed</th><th>Failed</th><th>Skipped</th></tr>
<tr><td>{counts['total']}</td><td>{counts['pass']}</td><td>{counts['fail']}</td><td>{counts['skip']}</td></tr>
</table>
<table class="system">{info}</table>
<table class="tests">
<tr><th>#</th><th>Test</th><th>Category</th><th>Status</th><th>Time</th><th>Details</th></tr>
{''.join(rows)}
</table>
</body>
</html>
"""

    def write(self) -> Path:
        self.report_dir.mkdir(parents=True, exist_ok=True)
        path = self.report_dir / f"{self.report_name}_{self.started_at:%Y%m%d_%H%M%S}.html"
        path.write_text(self.render(), encoding="utf-8")
        logger.info("HTML report written: %s", path)
        return path
