"""
Request errors. Each class has a stable number used in the log lines:
    dr_error 1: Request construction
    dr_error 2: Scratch dir creation
    dr_error 3: Request timeout
    dr_error 4: Bad http status
    dr_error 5: Body read
    dr_error 6: Other transport
    dr_error 7: Empty body
    dr_error 8: Browser session
    dr_error 9: Browser timeout
The requester appends its own letter: a = browser, b = direct.
"""


class ReqError(Exception):
    """Base class for every failure a requester can report."""

    err_num = 0
    desc = "Request error"

    def __init__(self, msg, job=None):
        super().__init__(msg)
        self.msg = msg
        self.job = job
        self.counter_s = None  # Filled in by the dispatcher

    def __str__(self):
        if self.counter_s:
            return f"{self.msg}, counter: {self.counter_s}"
        return self.msg


class RequestConstructionError(ReqError):
    err_num = 1
    desc = "Request construction"


class ScratchDirCreationError(ReqError):
    err_num = 2
    desc = "Scratch dir creation"


class TransportError(ReqError):
    err_num = 6
    desc = "Other transport"


class ReqTimeoutError(TransportError):
    err_num = 3
    desc = "Request timeout"


class BadStatusError(ReqError):
    err_num = 4
    desc = "Bad http status"

    def __init__(self, msg, job=None, status_code=None, curl_s=""):
        super().__init__(msg, job)
        self.status_code = status_code
        self.curl_s = curl_s


class BodyReadError(ReqError):
    err_num = 5
    desc = "Body read"


class EmptyBodyError(ReqError):
    err_num = 7
    desc = "Empty body"


class BrowserSessionError(ReqError):
    err_num = 8
    desc = "Browser session"

    def __init__(self, msg, job=None, state=None):
        super().__init__(msg, job)
        self.state = state


class BrowserTimeoutError(BrowserSessionError):
    err_num = 9
    desc = "Browser timeout"
