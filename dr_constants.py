import logging
import os
import re
from datetime import date

DR_HOME_PATH = os.environ.get("DR_HOME_PATH", os.path.expanduser("~/dual_req"))

DATER_PATH = os.path.join(DR_HOME_PATH, date.today().isoformat())

RESULTS_PATH = os.path.join(DATER_PATH, "results")
CHECKED_PATH = os.path.join(DATER_PATH, "checked_jobs")
LOG_PATH = os.path.join(DATER_PATH, "log_file")

# Chromium needs a writable dir for downloads and crash dumps
SCRATCH_PATH = "/tmp"
SCRATCH_MODE = 0o777


# Requester options
REQ_TIMEOUT = 30  # Seconds. Shared budget for the whole request
SEMAPHORE = 12  # Num of concurrent tasks in the batch runner
READY_SELECTOR = "html"  # Wait for this and extract its outer html
USER_AGENT_S = "Mozilla/5.0 (X11; Linux x86_64; rv:109.0) Gecko/20100101 Firefox/111.0"
BROWSER_ARGS = ["--disable-gpu"]

# Inclusive range of acceptable http status codes
OK_STATUS_MIN = 200
OK_STATUS_MAX = 399


# Compile regex paterns for reducing whitespace in visible text
WHITE_REG = re.compile(r"\s+")

# Compile regex paterns for removing hidden HTML elements
STYLE_REG = re.compile(r"(display\s*:\s*none;?|visibility\s*:\s*hidden;?)")

CONSOLE_LOG_LEVEL = logging.INFO  # The log file always gets DEBUG
