"""Shared utility functions."""

import logging
import re
import sys
import time
from typing import Callable
from uuid import uuid4

from rich.console import Console
from rich.logging import RichHandler

logger = logging.getLogger("lightsailvm")


def setup_logging(level: int | str = logging.INFO) -> None:
    """Set up logging with Rich handler to stderr."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    rich_handler = RichHandler(
        console=Console(stderr=True),
        log_time_format="[%X]",
        show_path=False,
        markup=True,
    )
    rich_handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    root_logger.addHandler(rich_handler)

    for name, lvl in [
        ("boto3", logging.INFO),
        ("botocore", logging.WARNING),
        ("urllib3", logging.WARNING),
        ("paramiko", logging.WARNING),
    ]:
        lg = logging.getLogger(name)
        for h in lg.handlers[:]:
            lg.removeHandler(h)
        lg.setLevel(lvl)
        lg.propagate = True


def log(msg: str) -> None:
    """Log info message."""
    logger.info(msg)


def warn(msg: str) -> None:
    """Log warning message."""
    logger.warning(msg)


def error(msg: str) -> None:
    """Log error message and exit."""
    logger.error(msg)
    sys.exit(1)


def get_ssh_user(blueprint_id: str) -> str:
    """Get default SSH user for a Lightsail blueprint.

    Only used until the instance reports its own username.

    :param blueprint_id: Lightsail blueprint, e.g. ubuntu_18_04
    :return: SSH username
    """
    if blueprint_id.startswith("ubuntu"):
        return "ubuntu"
    if blueprint_id.startswith("debian"):
        return "admin"
    if blueprint_id.startswith("centos"):
        return "centos"
    return "ec2-user"


def resource_base_name(
    machine_name: str, bundle_id: str, blueprint_id: str, suffix: str | None = None
) -> str:
    """Build the shared Lightsail name for a machine's instance and key pair.

    :param suffix: Disambiguator; a random 6 hex chars when omitted
    :return: Name like ``web-small_2_0-ubuntu_18_04-3fa9c1``
    """
    suffix = suffix or uuid4().hex[:6]
    raw = f"{machine_name}-{bundle_id}-{blueprint_id}-{suffix}".lower()
    return re.sub(r"[^a-z0-9_.-]", "-", raw)


def wait_until(
    predicate: Callable[[], bool],
    *,
    timeout: float,
    interval: float,
    backoff: float = 1.0,
    max_interval: float | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Call predicate until it returns True or the deadline passes.

    The predicate is always called at least once. The delay starts at
    ``interval`` and is multiplied by ``backoff`` after every miss, capped at
    ``max_interval``. Sleeps never overshoot the deadline.

    :param predicate: Zero-argument check; exceptions propagate
    :param timeout: Overall deadline in seconds
    :param interval: Initial delay between checks in seconds
    :return: True if the predicate succeeded, False on timeout
    """
    deadline = clock() + timeout
    delay = interval
    while True:
        if predicate():
            return True
        remaining = deadline - clock()
        if remaining <= 0:
            return False
        sleep(min(delay, remaining))
        delay *= backoff
        if max_interval is not None:
            delay = min(delay, max_interval)
