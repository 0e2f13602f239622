# Description: Dispatch a batch of jobs from a json file and record the outcomes

# Args: path to a json list of jobs. eg: [{"url": "http://example.com", "headless": true}]


import asyncio
import json
import logging
import os
import sys
from datetime import datetime
from urllib import parse

import enlighten

import dr_constants as constants
from dr_dispatcher import Dispatcher
from dr_errors import ReqError
from dr_job import Job
from dr_log import config_logger


logger = logging.getLogger(__name__)


def make_dirs():
    """
    Create the folders for writing files
    """
    if not os.path.exists(constants.RESULTS_PATH):
        os.makedirs(constants.RESULTS_PATH)


def read_jobs(path):
    """
    Get the jobs from a json file. Entries without a url are skipped.
    """
    with open(path, "r") as f:
        jobs_l = json.load(f)

    jobs = []
    for job_d in jobs_l:
        if not job_d.get("url"):
            logger.warning(f"Skipping job without url: {job_d}")
            continue
        jobs.append(Job.from_dict(job_d))
    return jobs


def write_result(result, results_path=constants.RESULTS_PATH):
    url_path = parse.quote(result.job.url, safe=":")
    body_path = os.path.join(results_path, url_path)[:254]
    with open(body_path, "wb") as f:
        f.write(result.body)
    logger.info(f"Success: Write: {body_path}")


async def req_looper(dispatcher, jobs_q, checked_d, progress_bar=None, results_path=None):
    """
    Take jobs from the queue until it is empty.
    Every outcome is written to checked_d as url: [strategy, status or error code, size or desc]
    """
    while True:
        try:
            job = jobs_q.get_nowait()
        except asyncio.QueueEmpty:
            return

        requester, _ = dispatcher.choose_requester(job)
        try:
            result = await dispatcher.dispatch(job)
            checked_d[job.url] = [job.strategy.value, result.status_code, len(result.body)]
            if results_path:
                write_result(result, results_path)
        except ReqError as errex:
            checked_d[job.url] = [
                job.strategy.value,
                f"dr_error {errex.err_num}{requester.ec_char}",
                errex.desc,
            ]
        finally:
            if progress_bar is not None:
                progress_bar.update()


async def run_batch(dispatcher, jobs, num_tasks=constants.SEMAPHORE, progress_bar=None, results_path=None):
    """
    Start each async task in the request loop and wait for all of them
    """
    jobs_q = asyncio.Queue()
    for job in jobs:
        jobs_q.put_nowait(job)

    checked_d = {}
    logger.info(f"{num_tasks=} {len(jobs)=}")
    await asyncio.gather(
        *(
            req_looper(dispatcher, jobs_q, checked_d, progress_bar, results_path)
            for _ in range(num_tasks)
        )
    )
    return checked_d


def make_human_readable(checked_d, path):
    """
    Write the outcome log as json, one url per line, sorted so failures sit
    together and urls are in order within each strategy.
    """

    def sort_key(item):
        url, (strategy, outcome, _) = item
        return (strategy, not isinstance(outcome, str), url)

    lines = [f"  {json.dumps(url)}: {json.dumps(row)}" for url, row in sorted(checked_d.items(), key=sort_key)]
    with open(path, "w", encoding="utf8") as out_file:
        out_file.write("{\n" + ",\n".join(lines) + "\n}\n")


def display_stats(dispatcher, start_time, checked_d):
    duration = datetime.now() - start_time
    logger.info(f"\n\nJobs checked = {len(checked_d)}")
    logger.info(f"Duration = {round(duration.total_seconds())} seconds")
    for name, stats_s in dispatcher.stats().items():
        logger.info(f"{name}: {stats_s}")


async def main(jobs_path):
    start_time = datetime.now()
    jobs = read_jobs(jobs_path)
    headless = any(job.headless for job in jobs)

    manager = enlighten.get_manager()
    progress_bar = manager.counter(total=len(jobs), desc="Jobs", leave=False)

    async with Dispatcher.open(headless=headless) as dispatcher:
        checked_d = await run_batch(
            dispatcher, jobs, progress_bar=progress_bar, results_path=constants.RESULTS_PATH
        )
        logger.info(f"  Batch complete  ".center(70, "="))
        display_stats(dispatcher, start_time, checked_d)

    manager.stop()
    make_human_readable(checked_d, constants.CHECKED_PATH)
    return checked_d


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(f"usage: {sys.argv[0]} jobs.json")
        sys.exit(2)

    make_dirs()
    config_logger(constants.LOG_PATH)
    asyncio.run(main(sys.argv[1]))
