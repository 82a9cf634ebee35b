"""The full set of V1 channels applied to each trial's image."""
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

import numpy as np

from .v1filter import ColorVis, V1Img, Vis

# name -> (border_ex, size, spacing)
VIS_CHANNELS = {
    "V1l16": (0, 24, 8),
    "V1m16": (0, 12, 4),
    "V1h16": (0, 6, 2),
    "V1l8": (32, 12, 4),
    "V1m8": (32, 6, 2),
}
COLOR_CHANNELS = {
    "V1Cl16": (0, 16, 16),
    "V1Cm16": (0, 8, 8),
    "V1Cl8": (32, 8, 8),
    "V1Cm8": (32, 4, 4),
}
OPTIONAL_CHANNELS = {"V1h16": "high16"}


class FilterBank:
    """Owns the shared image and every enabled channel.

    ``filter(rgb)`` sets the image once, runs each channel, and copies the
    results into the preallocated arrays returned by ``tensor(name)``.
    """

    def __init__(self, size: Tuple[int, int] = (128, 128), high16: bool = False, color_dog: bool = True,
                 parallel: bool = False, max_workers: Optional[int] = None):
        self.high16 = high16
        self.color_dog = color_dog
        self.parallel = parallel
        self.img = V1Img(size)
        self.channels: Dict[str, object] = {}
        for name, (border_ex, sz, spc) in VIS_CHANNELS.items():
            if name in OPTIONAL_CHANNELS and not getattr(self, OPTIONAL_CHANNELS[name]):
                continue
            self.channels[name] = Vis(border_ex, sz, spc, self.img)
        if color_dog:
            for name, (border_ex, sz, spc) in COLOR_CHANNELS.items():
                self.channels[name] = ColorVis(border_ex, sz, spc, self.img)
        self.pad = max(ch.pad for ch in self.channels.values())
        self.tensors: Dict[str, np.ndarray] = {name: np.zeros(ch.shape, dtype=np.float32)
                                               for name, ch in self.channels.items()}
        self._executor = ThreadPoolExecutor(max_workers=max_workers or len(self.channels)) if parallel else None

    def names(self) -> List[str]:
        return list(self.channels)

    def tensor(self, name: str) -> np.ndarray:
        if name not in self.tensors:
            raise KeyError(f"Unknown filter channel: {name}")
        return self.tensors[name]

    def _run(self, name: str):
        np.copyto(self.tensors[name], self.channels[name].filter())

    def filter(self, rgb: np.ndarray):
        self.img.set_image(rgb, self.pad)
        if self._executor is not None:
            # each channel writes only its own output array
            list(self._executor.map(self._run, self.channels))
        else:
            for name in self.channels:
                self._run(name)

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
