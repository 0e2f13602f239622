import asyncio
import contextvars
import logging

import dr_constants as constants


# Url of the job being dispatched in the current task
current_job_url = contextvars.ContextVar("current_job_url", default="")


class ContextFilter(logging.Filter):
    """
    Append the asyncio task name and the url being dispatched, if available, to the log
    """

    def filter(self, record):
        try:
            task_name = asyncio.current_task().get_name()
        except (RuntimeError, AttributeError):  # No running loop, or no task
            task_name = ""
        job_url = current_job_url.get()

        record.task_id = " ".join(s for s in (task_name, job_url) if s)
        if record.task_id:
            record.task_id = f"- {record.task_id}"
        return True


def config_logger(log_path=None, console_level=constants.CONSOLE_LOG_LEVEL):
    """
    Console handler at console_level. With log_path, also a DEBUG file handler
    that tags each line with the task and job url.
    Calling it again replaces the handlers it added before.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in [h for h in root.handlers if getattr(h, "dr_handler", False)]:
        root.removeHandler(handler)
        handler.close()

    handlers = []
    if log_path:
        file_handler = logging.FileHandler(log_path, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(levelname)s - %(name)s - %(message)s %(task_id)s",
                datefmt="%H:%M:%S",
            )
        )
        file_handler.addFilter(ContextFilter())
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s - %(name)s - %(message)s"))
    handlers.append(console_handler)

    for handler in handlers:
        handler.dr_handler = True
        root.addHandler(handler)
    return root
