"""
Transports move an item's content and report progress while doing it.

Real network transfer is out of scope; SimulatedTransport walks progress
through fixed steps with a suspension point before each one, the same
shape a real chunked transfer would have.
"""
import asyncio
import logging
from typing import Iterable, Optional

from ..exceptions import TransientUploadFailure
from ..models import RawItem
from ..protocols import ProgressReporter

logger = logging.getLogger(__name__)


def progress_steps(step: int):
    """0, step, 2*step, ... always ending at exactly 100."""
    value = 0
    while value < 100:
        yield value
        value += step
    yield 100


class SimulatedTransport:
    """
    Transport that pretends to upload.

    Names in fail_names raise TransientUploadFailure halfway through, which
    is how callers exercise the failure path.
    """

    def __init__(self, step: int = 10, delay: float = 0.1, fail_names: Optional[Iterable[str]] = None):
        if not 1 <= step <= 100:
            raise ValueError("step must be between 1 and 100")
        self._step = step
        self._delay = delay
        self._fail_names = frozenset(fail_names or ())

    async def transfer(self, raw: RawItem, upload_id: str, report: ProgressReporter) -> str:
        for percent in progress_steps(self._step):
            await asyncio.sleep(self._delay)
            if raw.name in self._fail_names and percent >= 50:
                raise TransientUploadFailure(raw.name, "simulated transfer failure")
            await report(percent)
        logger.debug("Simulated transfer finished: %s", raw.name)
        return raw.url or f"memory://{upload_id}/{raw.name}"
