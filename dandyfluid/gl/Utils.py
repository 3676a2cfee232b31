from collections import deque
from time import time
import math


class FpsCounter:
    def __init__(self, numSamples = 120) -> None:
        self._times: deque[float] = deque(maxlen=numSamples)
        self._min_fps: int = 0

    def tick(self) -> None:
        self._times.append(time())
        fps: int = self.get_fps()
        if fps > 0 and (self._min_fps == 0 or fps < self._min_fps):
            self._min_fps = fps

    def get_fps(self) -> int:
        if len(self._times) < 2:
            return 0
        diff: float = self._times[-1] - self._times[0]
        if diff == 0:
            return 0
        return int(math.floor((len(self._times) - 1) / diff))

    def get_min_fps(self) -> int:
        return self._min_fps

    def reset(self) -> None:
        self._times.clear()
        self._min_fps = 0
