"""Scheduled jobs."""

from __future__ import annotations

from typing import Union

from .logger import Logger, NoOpLogger


def fake_job(logger: Union[Logger, NoOpLogger]) -> None:
    """A placeholder job that only reports that it ran."""
    logger.info("fake job running")