import copy
import enum

from bs4 import BeautifulSoup

import dr_constants as constants


class Strategy(enum.Enum):
    DIRECT = "direct"
    BROWSER = "browser"


class Job:
    """
    A request to perform plus the metadata used for routing and diagnostics.
    The strategy is decided here, once, and never re-derived later.
    """

    def __init__(
        self,
        url,
        method="GET",
        payload=b"",
        headers=None,
        retry_if_error=0,
        job_type="",
        info="",
        headless=False,
    ):
        if not url or not url.strip():
            raise ValueError("job url must not be empty")
        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        self.url = url.strip()
        self.method = (method or "GET").strip().upper()
        self.payload = payload or b""
        self.headers = dict(headers or {})
        self.retry_if_error = retry_if_error  # Advisory only. Nothing retries on it
        self.job_type = job_type
        self.info = info
        self.curl_s = ""
        self.headless = bool(headless)

        if self.headless and self.method == "GET":
            self.strategy = Strategy.BROWSER
        else:
            self.strategy = Strategy.DIRECT

    def __str__(self):
        return " : ".join([self.job_type, self.info, self.curl_s])

    def __repr__(self):
        return f"Job({self.method} {self.url} {self.strategy.value})"

    def copy(self):
        job = copy.copy(self)
        job.headers = dict(self.headers)
        return job

    def with_curl(self, curl_s):
        """
        Return a copy carrying the rendered curl command. The caller's job is left alone.
        """
        job = self.copy()
        job.curl_s = curl_s
        return job

    @classmethod
    def from_dict(cls, job_d):
        """
        Build a job from the json form used by the batch runner
        """
        return cls(
            job_d["url"],
            method=job_d.get("method", "GET"),
            payload=job_d.get("payload", b""),
            headers=job_d.get("headers"),
            retry_if_error=job_d.get("retry_if_error", 0),
            job_type=job_d.get("type", ""),
            info=job_d.get("info", ""),
            headless=job_d.get("headless", False),
        )


class Result:
    """
    A successful dispatch. Browser results have no status code.
    """

    def __init__(self, job, body, status_code=None):
        self.job = job
        self.body = body
        self.status_code = status_code

    def __repr__(self):
        return f"Result({self.job!r} status={self.status_code} size={len(self.body)})"

    @property
    def text(self):
        return self.body.decode("utf-8", errors="replace")

    def vis_text(self):
        """
        Remove nonvisible html elements and return the remaining text
        """
        vis_soup = BeautifulSoup(self.text, "html5lib").find("body")
        if vis_soup is None:
            return ""
        for x in vis_soup(["script", "style", "noscript"]):
            x.decompose()
        for x in vis_soup.find_all(style=constants.STYLE_REG):
            x.decompose()
        for x in vis_soup.find_all(type="hidden"):
            x.decompose()
        return constants.WHITE_REG.sub(" ", vis_soup.get_text(" ")).strip()
