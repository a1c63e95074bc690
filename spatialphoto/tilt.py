"""Device tilt to parallax preview offset.

A motion source writes attitude samples at a fixed rate; the preview reads
the latest one and turns the relevant tilt axis into a normalized offset.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable

log = logging.getLogger(__name__)

# Motion updates at 60 Hz.

S_UPDATE_INTERVAL = 1.0 / 60.0

# Tilt of +/- 45 degrees maps onto [0, 1].

RAD_TILT_WINDOW = math.pi / 4

# Preview slider range around its centre: 0.0 .. 0.2.

G_SLIDE_CENTER = 0.1
G_SLIDE_SPAN = 0.2


@dataclass(frozen=True)
class AttitudeSample:
    """One device attitude reading, in radians."""

    radRoll: float = 0.0
    radPitch: float = 0.0


class DeviceOrientation(Enum):
    PORTRAIT = "portrait"
    PORTRAIT_UPSIDE_DOWN = "portraitUpsideDown"
    LANDSCAPE_LEFT = "landscapeLeft"
    LANDSCAPE_RIGHT = "landscapeRight"
    UNKNOWN = "unknown"

    @property
    def fLandscape(self) -> bool:
        return self in (DeviceOrientation.LANDSCAPE_LEFT, DeviceOrientation.LANDSCAPE_RIGHT)


def radTiltAxis(sample: AttitudeSample, display: DeviceOrientation) -> float:
    """Pick the tilt axis: pitch in landscape, roll otherwise."""

    return sample.radPitch if display.fLandscape else sample.radRoll


def disparity(sample: AttitudeSample, display: DeviceOrientation) -> float:
    """Normalized preview offset in [0, 1]; 0.5 when the device is level.

    Linear inside the +/- 45 degree window and saturated outside it.
    """

    radAxis = radTiltAxis(sample, display)
    gNormalized = (radAxis + RAD_TILT_WINDOW) / (2.0 * RAD_TILT_WINDOW)

    # NaN fails both comparisons; treat it as level.

    if math.isnan(gNormalized):
        return 0.5
    return min(max(gNormalized, 0.0), 1.0)


def gSlideOffset(gNormalized: float) -> float:
    """Rescale a [0, 1] disparity onto the slide preview's offset range."""

    return G_SLIDE_CENTER + (gNormalized - 0.5) * G_SLIDE_SPAN


class AttitudeChannel:
    """Latest-value cell for attitude samples.

    One writer (the motion source) publishes; any number of readers call
    sampleLatest() or subscribe. A sample is published by replacing a single
    reference to an immutable object, so readers always see both fields from
    the same reading and never wait.
    """

    def __init__(self, sampleInitial: AttitudeSample | None = None) -> None:
        self._sample = sampleInitial or AttitudeSample()
        self._lFnSubscriber: list[Callable[[AttitudeSample], None]] = []

    def publish(self, sample: AttitudeSample) -> None:
        self._sample = sample
        for fn in list(self._lFnSubscriber):
            fn(sample)

    def sampleLatest(self) -> AttitudeSample:
        return self._sample

    def subscribe(self, fn: Callable[[AttitudeSample], None]) -> Callable[[], None]:
        """Register fn for every published sample; returns an unsubscribe callable."""

        self._lFnSubscriber.append(fn)

        def unsubscribe() -> None:
            if fn in self._lFnSubscriber:
                self._lFnSubscriber.remove(fn)

        return unsubscribe

    def disparity(self, display: DeviceOrientation) -> float:
        return disparity(self._sample, display)


class MotionSampler:
    """Polls a motion source at a fixed interval and publishes to a channel.

    fnRead returns the current AttitudeSample, or None when the source has no
    reading yet (that tick is skipped).
    """

    def __init__(
        self,
        fnRead: Callable[[], AttitudeSample | None],
        channel: AttitudeChannel,
        sInterval: float = S_UPDATE_INTERVAL,
    ) -> None:
        self.fnRead = fnRead
        self.channel = channel
        self.sInterval = sInterval
        self._task: asyncio.Task | None = None

    @property
    def fRunning(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.fRunning:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        log.debug("Motion sampling every %.4fs", self.sInterval)
        while True:
            sample = self.fnRead()
            if sample is not None:
                self.channel.publish(sample)
            await asyncio.sleep(self.sInterval)
