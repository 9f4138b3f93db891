from concurrent.futures import ThreadPoolExecutor
from typing import Tuple

import numpy as np

from frame.frame import Frame
from pipeline.region import Region

RGB = Tuple[int, int, int]


class RegionAggregator:
    """
    Reduces a region of a frame to its mean RGB color.

    Sampling walks the region rectangle every `stride` pixels in both axes.
    With `exclude_black` set, pure black pixels (and fully transparent ones
    when the frame carries alpha) are left out of the mean. The policy is
    fixed per instance so a deployment always aggregates the same way.
    """

    def __init__(self, stride: int = 1, exclude_black: bool = False, workers: int = 1):
        """
        Args:
            stride: Sample every Nth pixel along x and y (>= 1)
            exclude_black: Drop black / transparent pixels from the mean
            workers: Threads the sampled rows are split across (>= 1)
        """
        if stride < 1:
            raise ValueError("Sampling stride must be at least 1")
        if workers < 1:
            raise ValueError("Aggregation workers must be at least 1")

        self.stride = stride
        self.exclude_black = exclude_black
        self.workers = workers
        self._executor = (
            ThreadPoolExecutor(max_workers=workers, thread_name_prefix="Aggregate")
            if workers > 1
            else None
        )

    def __call__(self, frame: Frame, region: Region) -> RGB:
        return self.aggregate(frame, region)

    def aggregate(self, frame: Frame, region: Region) -> RGB:
        """
        Mean color of the sampled pixels in `region`.

        Returns:
            (r, g, b) truncated integer means, or (0, 0, 0) if no pixel was sampled
        """
        x_start, x_end, y_start, y_end = region.bounds(frame.width, frame.height)
        samples = frame.pixels()[
            y_start:y_end : self.stride, x_start:x_end : self.stride
        ]

        if self._executor is None or len(samples) < 2:
            sums, count = self._partial_sums(samples)
        else:
            chunks = np.array_split(samples, min(self.workers, len(samples)))
            sums = np.zeros(3, dtype=np.uint64)
            count = 0
            for chunk_sums, chunk_count in self._executor.map(self._partial_sums, chunks):
                sums += chunk_sums
                count += chunk_count

        if count == 0:
            return (0, 0, 0)

        r, g, b = (int(total) // count for total in sums)
        return (r, g, b)

    def _partial_sums(self, samples: np.ndarray) -> Tuple[np.ndarray, int]:
        """Per-channel uint64 sums and sample count for a block of sampled rows."""
        rgb = samples[..., :3].reshape(-1, 3)

        if self.exclude_black:
            keep = rgb.any(axis=1)
            if samples.shape[-1] == 4:
                keep &= samples[..., 3].reshape(-1) != 0
            rgb = rgb[keep]

        return rgb.sum(axis=0, dtype=np.uint64), len(rgb)

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
