import asyncio
import logging
import os
import re

import aiohttp
from playwright.async_api import Error as PwError
from playwright.async_api import TimeoutError as PwTimeoutError
from yarl import URL

import dr_constants as constants
from dr_errors import (
    BadStatusError,
    BodyReadError,
    BrowserSessionError,
    BrowserTimeoutError,
    EmptyBodyError,
    ReqTimeoutError,
    RequestConstructionError,
    ScratchDirCreationError,
    TransportError,
)
from dr_job import Result


logger = logging.getLogger(__name__)

METHOD_REG = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Z]+$")  # RFC 7230 token, upper cased
HEADER_NAME_REG = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
HEADER_VALUE_REG = re.compile(r"[\r\n\x00]")  # Would split or end the header


def quote_arg(arg):
    """
    Single quote every argument, even the ones a shell wouldn't need quoted
    """
    return "'" + arg.replace("'", "'\"'\"'") + "'"


def render_curl(method, url, headers, payload=b""):
    """
    Render a curl command equivalent to the request. Only used for logs and error messages.
    Raises UnicodeDecodeError for payloads that cant be shown as text.
    """
    parts = ["curl", "-X", quote_arg(method)]
    if payload:
        parts += ["-d", quote_arg(payload.decode("utf-8"))]
    for name in sorted(headers):
        parts += ["-H", quote_arg(f"{name}: {headers[name]}")]
    parts.append(quote_arg(str(url)))
    return " ".join(parts)


def make_scratch_dir(path=constants.SCRATCH_PATH, job=None):
    """
    Create the browser scratch dir if it is missing.
    Safe when several tasks race to create it.
    """
    if os.path.exists(path):
        return
    logger.info(f"directory {path} doesn't exist, creating it...")
    try:
        os.makedirs(path, mode=constants.SCRATCH_MODE, exist_ok=True)
    except OSError as errex:
        raise ScratchDirCreationError(f"cant create scratch dir {path}: {errex}", job) from errex


class RequesterBase:
    """
    URL requesting super class
    """

    name = "base"
    ec_char = ""

    async def request(self, job, timeout=constants.REQ_TIMEOUT):
        raise NotImplementedError

    def failed_req_handler(self, errex):
        """
        Log a failed request with its error code
        """
        logger.warning(
            f"dr_error {errex.err_num}{self.ec_char}: {errex.desc}: {errex}"
        )

    async def close_session(self):
        pass


class DirectReq(RequesterBase):
    """
    The aiohttp requester subclass.
    Makes one plain http request. Responses will not include dynamic content (JavaScript).
    """

    def __init__(self, session):
        self.name = "direct"
        self.ec_char = "b"
        self.session = session

    def build_request(self, job):
        """
        Validate the method and url and collect the headers
        """
        if not METHOD_REG.match(job.method):
            raise RequestConstructionError(f"invalid method {job.method!r}", job)
        try:
            url = URL(job.url)
        except (TypeError, ValueError) as errex:
            raise RequestConstructionError(
                f"couldn't create request for {job.url!r}: {errex}", job
            ) from errex
        if url.scheme not in ("http", "https") or not url.host:
            raise RequestConstructionError(
                f"couldn't create request, bad url {job.url!r}", job
            )
        self.check_headers(job)
        return job.method, url, dict(job.headers)

    def check_headers(self, job):
        for name, value in job.headers.items():
            if not isinstance(name, str) or not HEADER_NAME_REG.match(name):
                raise RequestConstructionError(f"invalid header name {name!r}", job)
            if not isinstance(value, str) or HEADER_VALUE_REG.search(value):
                raise RequestConstructionError(
                    f"invalid value for header {name!r}: {value!r}", job
                )

    def get_curl_s(self, method, url, headers, payload):
        try:
            return render_curl(method, url, headers, payload)
        except UnicodeDecodeError as errex:
            logger.error(f"cant render curl command for {url}: {errex}")
            return ""

    async def request(self, job, timeout=constants.REQ_TIMEOUT):
        """
        Make the request and return the validated response body
        """
        method, url, headers = self.build_request(job)
        job = job.with_curl(self.get_curl_s(method, url, headers, job.payload))
        logger.debug(f"requesting {job!r} with request: {job.curl_s}")

        try:
            async with self.session.request(
                method,
                url,
                data=job.payload or None,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                status = resp.status
                self.check_status(job, status)
                body = await self.read_body(job, resp)

        except asyncio.TimeoutError as errex:
            raise ReqTimeoutError(
                f"timeout requesting {job.curl_s or job.url} with timeout: {timeout}s", job
            ) from errex
        except (aiohttp.ClientError, OSError) as errex:
            raise TransportError(
                f"couldn't make request for req {job.curl_s or job.url} and timeout: {timeout}s: {errex!r}",
                job,
            ) from errex
        # aiohttp refuses some requests only when it builds them
        except (ValueError, TypeError) as errex:
            raise RequestConstructionError(
                f"couldn't create request for req {job.curl_s or job.url}: {errex}", job
            ) from errex

        if not body:
            raise EmptyBodyError(
                f"empty body in response for requesting {job.curl_s or job.url}, status code: {status}",
                job,
            )
        return Result(job, body, status)

    def check_status(self, job, status):
        if constants.OK_STATUS_MIN <= status <= constants.OK_STATUS_MAX:
            return
        raise BadStatusError(
            f"not good status code {status} requesting {job}, curl: {job.curl_s}",
            job,
            status_code=status,
            curl_s=job.curl_s,
        )

    async def read_body(self, job, resp):
        try:
            return await resp.read()
        except asyncio.TimeoutError:
            raise
        except (aiohttp.ClientError, OSError) as errex:
            raise BodyReadError(f"couldn't read body for {job.url}: {errex!r}", job) from errex

    async def close_session(self):
        await self.session.close()


class BrowserSession:
    """
    One isolated browser context. It serves a single request and is then discarded.
    idle -> session_starting -> navigating -> waiting_ready -> extracting -> done | failed
    """

    def __init__(self, browser, selector=constants.READY_SELECTOR):
        self.browser = browser
        self.selector = selector
        self.state = "idle"
        self.context = None
        self._context_task = None

    async def render(self, url, timeout):
        self.state = "session_starting"
        # The context task outlives a timeout so close() can still reach it
        self._context_task = asyncio.ensure_future(
            self.browser.new_context(ignore_https_errors=True)
        )
        self.context = await asyncio.shield(self._context_task)
        page = await self.context.new_page()
        page.set_default_timeout(timeout * 1000)

        self.state = "navigating"
        await page.goto(url)

        self.state = "waiting_ready"
        await page.wait_for_selector(self.selector, state="attached")

        self.state = "extracting"
        html = await page.evaluate(
            "(sel) => document.querySelector(sel).outerHTML", self.selector
        )
        self.state = "done"
        return html

    def fail(self):
        """
        Mark the session failed and return the state it failed in
        """
        failed_in = self.state
        self.state = "failed"
        return failed_in

    async def close(self):
        if self.context is None and self._context_task is not None:
            try:
                self.context = await self._context_task
            except PwError:
                return  # Never opened
        if self.context is None:
            return
        try:
            await self.context.close()
        except Exception:
            logger.exception(f"cant close browser context")


class BrowserReq(RequesterBase):
    """
    The Playwright requester subclass.
    Responses will include dynamic content (JavaScript).
    """

    def __init__(
        self,
        browser,
        scratch_path=constants.SCRATCH_PATH,
        selector=constants.READY_SELECTOR,
    ):
        self.name = "browser"
        self.ec_char = "a"
        self.browser = browser
        self.scratch_path = scratch_path
        self.selector = selector

    async def request(self, job, timeout=constants.REQ_TIMEOUT):
        """
        Render the page and return its outer html.
        Navigation, the ready wait, and extraction share one timeout.
        """
        make_scratch_dir(self.scratch_path, job)

        session = BrowserSession(self.browser, self.selector)
        logger.debug(f"requesting {job.url} selector: {self.selector}")
        try:
            html = await asyncio.wait_for(session.render(job.url, timeout), timeout=timeout)

        # Playwright's TimeoutError is a subclass of its Error
        except (asyncio.TimeoutError, PwTimeoutError) as errex:
            state = session.fail()
            raise BrowserTimeoutError(
                f"browser timeout while {state} requesting {job.url}, requestTimeout: {timeout}s",
                job,
                state,
            ) from errex
        except PwError as errex:
            state = session.fail()
            raise BrowserSessionError(
                f"browser error while {state} requesting {job.url}: {errex}",
                job,
                state,
            ) from errex
        finally:
            await session.close()

        if not html:
            raise BrowserSessionError(
                f"empty document requesting {job.url}", job, "extracting"
            )
        return Result(job.copy(), html.encode("utf-8"))

    async def close_session(self):
        await self.browser.close()
