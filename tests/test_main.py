import asyncio
import json
import logging
import os

from dr_counter import Counter
from dr_dispatcher import Dispatcher
from dr_errors import ReqError
from dr_job import Job, Result, Strategy
from dr_log import ContextFilter, config_logger, current_job_url
from dr_main import make_human_readable, read_jobs, run_batch, write_result
from dr_requester import BrowserReq, DirectReq
from fakes import FakeBrowser, FakeSession


class FakeProgressBar:
    def __init__(self):
        self.count = 0

    def update(self):
        self.count += 1


def test_read_jobs_skips_entries_without_url(tmp_path):
    path = tmp_path / "jobs.json"
    path.write_text(
        json.dumps(
            [
                {"url": "http://x/ok"},
                {"method": "GET"},
                {"url": "http://x/render", "headless": True, "type": "page"},
                {"url": "http://x/form", "method": "post", "payload": "a=1"},
            ]
        )
    )

    jobs = read_jobs(str(path))

    assert [job.url for job in jobs] == ["http://x/ok", "http://x/render", "http://x/form"]
    assert [job.strategy for job in jobs] == [Strategy.DIRECT, Strategy.BROWSER, Strategy.DIRECT]
    assert jobs[2].payload == b"a=1"


def test_run_batch_records_every_outcome(tmp_path):
    session = FakeSession(by_url={"http://x/bad": (503, b"down")}, body=b"hello")
    dispatcher = Dispatcher(
        direct_req=DirectReq(session),
        browser_req=BrowserReq(FakeBrowser(html="<html>ok</html>"), str(tmp_path / "scratch")),
        direct_counter=Counter(),
        browser_counter=Counter(),
    )

    jobs = [
        Job("http://x/ok"),
        Job("http://x/bad", method="POST"),
        Job("http://x/render", headless=True),
    ]
    results_path = tmp_path / "results"
    results_path.mkdir()
    progress_bar = FakeProgressBar()

    checked_d = asyncio.run(
        run_batch(dispatcher, jobs, num_tasks=2, progress_bar=progress_bar, results_path=str(results_path))
    )

    assert checked_d == {
        "http://x/ok": ["direct", 200, 5],
        "http://x/bad": ["direct", "dr_error 4b", "Bad http status"],
        "http://x/render": ["browser", None, 15],
    }
    assert progress_bar.count == 3
    assert sorted(os.listdir(results_path)) == ["http:%2F%2Fx%2Fok", "http:%2F%2Fx%2Frender"]


def test_run_batch_survives_bad_header_job(tmp_path):
    session = FakeSession(body=b"hello")
    dispatcher = Dispatcher(direct_req=DirectReq(session), direct_counter=Counter())
    jobs = [
        Job("http://x/injected", headers={"X": "a\r\nInjected: 1"}),
        Job("http://x/ok"),
    ]

    checked_d = asyncio.run(run_batch(dispatcher, jobs, num_tasks=1))

    assert checked_d == {
        "http://x/injected": ["direct", "dr_error 1b", "Request construction"],
        "http://x/ok": ["direct", 200, 5],
    }
    assert dispatcher.direct_counter.fail == 1
    assert dispatcher.direct_counter.success == 1


def test_write_result(tmp_path):
    write_result(Result(Job("http://x/a b"), b"hello", 200), str(tmp_path))

    assert (tmp_path / "http:%2F%2Fx%2Fa%20b").read_bytes() == b"hello"


def test_make_human_readable_is_valid_json(tmp_path):
    path = tmp_path / "checked"
    checked_d = {
        "http://x/ok": ["direct", 200, 5],
        "http://x/render": ["browser", None, 15],
        "http://x/bad": ["direct", "dr_error 4b", "Bad http status"],
    }

    make_human_readable(checked_d, str(path))

    text = path.read_text()
    assert json.loads(text) == checked_d
    assert list(json.loads(text)) == ["http://x/render", "http://x/bad", "http://x/ok"]
    assert len(text.splitlines()) == len(checked_d) + 2


def test_context_filter_adds_task_name():
    record = logging.LogRecord("dr", logging.INFO, __file__, 1, "msg", None, None)
    assert ContextFilter().filter(record)
    assert record.task_id == ""

    async def in_task():
        rec = logging.LogRecord("dr", logging.INFO, __file__, 1, "msg", None, None)
        ContextFilter().filter(rec)
        return rec.task_id

    async def main():
        return await asyncio.create_task(in_task(), name="worker-1")

    assert asyncio.run(main()) == "- worker-1"


def test_context_filter_adds_job_url():
    async def in_task():
        current_job_url.set("http://x/a")
        rec = logging.LogRecord("dr", logging.INFO, __file__, 1, "msg", None, None)
        ContextFilter().filter(rec)
        return rec.task_id

    async def main():
        return await asyncio.create_task(in_task(), name="worker-2")

    assert asyncio.run(main()) == "- worker-2 http://x/a"
    assert current_job_url.get() == ""


def test_failure_log_carries_job_url(tmp_path):
    log_path = tmp_path / "dr.log"
    root = config_logger(str(log_path), console_level=logging.CRITICAL)
    dispatcher = Dispatcher(direct_req=DirectReq(FakeSession(status=404, body=b"gone")))

    async def main():
        try:
            await dispatcher.dispatch(Job("http://x/gone"))
        except ReqError:
            pass

    try:
        asyncio.run(main())
    finally:
        handlers = [h for h in root.handlers if getattr(h, "dr_handler", False)]
        for handler in handlers:
            root.removeHandler(handler)
            handler.close()

    error_lines = [line for line in log_path.read_text().splitlines() if "dr_error 4b" in line]
    assert len(error_lines) == 1
    assert error_lines[0].endswith("http://x/gone")
    assert current_job_url.get() == ""


def test_config_logger_replaces_its_own_handlers(tmp_path):
    root = logging.getLogger()
    before = len(root.handlers)

    config_logger(str(tmp_path / "dr.log"))
    config_logger(str(tmp_path / "dr.log"))

    handlers = [h for h in root.handlers if getattr(h, "dr_handler", False)]
    try:
        assert len(handlers) == 2
        assert len(root.handlers) == before + 2
    finally:
        for handler in handlers:
            root.removeHandler(handler)
            handler.close()
