import contextlib
import logging

import aiohttp
from playwright.async_api import async_playwright

import dr_constants as constants
from dr_counter import Counter
from dr_errors import ReqError
from dr_job import Strategy
from dr_log import current_job_url
from dr_requester import BrowserReq, DirectReq, make_scratch_dir


logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Send each job to the direct or the browser requester and keep a tally of the outcomes.

    Each requester has its own counter. A failed job is never retried and never
    handed to the other requester. The job's retry_if_error is only a hint for the caller.
    """

    def __init__(
        self,
        direct_req=None,
        browser_req=None,
        direct_counter=None,
        browser_counter=None,
        timeout=constants.REQ_TIMEOUT,
    ):
        self.requesters = {
            Strategy.DIRECT: direct_req,
            Strategy.BROWSER: browser_req,
        }
        self.counters = {
            Strategy.DIRECT: direct_counter or Counter(),
            Strategy.BROWSER: browser_counter or Counter(),
        }
        self.timeout = timeout
        self._playwright = None

    @property
    def direct_counter(self):
        return self.counters[Strategy.DIRECT]

    @property
    def browser_counter(self):
        return self.counters[Strategy.BROWSER]

    def choose_requester(self, job):
        """
        Return the requester and counter for the job's strategy
        """
        requester = self.requesters[job.strategy]
        if requester is None:
            raise RuntimeError(f"no {job.strategy.value} requester configured for {job!r}")
        return requester, self.counters[job.strategy]

    async def dispatch(self, job, timeout=None):
        """
        Run the job once and return its Result.
        On failure the requester's error is raised again with the counter stats attached.
        """
        timeout = self.timeout if timeout is None else timeout
        requester, counter = self.choose_requester(job)
        url_token = current_job_url.set(job.url)
        logger.debug(
            f"{requester.name} request: headless: {job.headless}, method: {job.method}, url: {job.url}, counter: {counter}"
        )

        try:
            result = await requester.request(job, timeout)
        except ReqError as errex:
            counter.failed()
            errex.counter_s = str(counter)
            requester.failed_req_handler(errex)
            raise
        finally:
            current_job_url.reset(url_token)

        counter.ok()
        logger.debug(f"{requester.name} reqs stats: {counter}")
        return result

    def stats(self):
        return {strategy.value: str(counter) for strategy, counter in self.counters.items()}

    @classmethod
    async def create(
        cls,
        headless=True,
        scratch_path=constants.SCRATCH_PATH,
        timeout=constants.REQ_TIMEOUT,
    ):
        """
        Initialize the aiohttp session and, if wanted, the Playwright browser
        """
        session = aiohttp.ClientSession(headers={"User-Agent": constants.USER_AGENT_S})
        dispatcher = cls(direct_req=DirectReq(session), timeout=timeout)

        if headless:
            try:
                make_scratch_dir(scratch_path)
                dispatcher._playwright = await async_playwright().start()
                brow = await dispatcher._playwright.chromium.launch(
                    args=constants.BROWSER_ARGS, downloads_path=scratch_path
                )
            except Exception:
                await dispatcher.close()
                raise
            dispatcher.requesters[Strategy.BROWSER] = BrowserReq(brow, scratch_path)

        return dispatcher

    @classmethod
    @contextlib.asynccontextmanager
    async def open(cls, **kwargs):
        dispatcher = await cls.create(**kwargs)
        try:
            yield dispatcher
        finally:
            await dispatcher.close()

    async def close(self):
        """
        Close the browser and the http session
        """
        for requester in self.requesters.values():
            if requester is None:
                continue
            try:
                await requester.close_session()
            except Exception:
                logger.exception(f"cant close session: {requester.name}")

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception:
                logger.exception(f"cant stop playwright")
            self._playwright = None
