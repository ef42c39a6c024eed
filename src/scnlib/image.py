"""Class for a single Image Lab plane and its physical parameters."""

import copy

import numpy as np

from scnlib.config import Config


class Image(object):
    """Class for single plane image data.

    Args:
        data: array of shape (Y, X) or (Y, X, C)
        config: physical pixel size
        info: dict (str, str) of additional info
    """

    def __init__(
        self,
        data: np.ndarray,
        config: Config | None = None,
        info: dict[str, str] | None = None,
    ):
        self.data: np.ndarray = data

        if config is None:
            self.config = Config()
        else:
            self.config = copy.copy(config)

        self.info = info or {}

    @property
    def extent(self) -> tuple[float, float, float, float]:
        """Image extent in μm"""
        return self.config.data_extent(self.shape[:2])

    @property
    def shape(self) -> tuple[int, ...]:
        return self.data.shape

    @property
    def channels(self) -> int:
        return self.data.shape[2] if self.data.ndim == 3 else 1

    def get(
        self,
        channel: int | None = None,
        extent: tuple[float, float, float, float] | None = None,
    ) -> np.ndarray:
        """Get image data.

        Args:
            channel: channel index, optional
            extent: trim to extent, μm

        Returns:
            all channels if `channel` is None
        """
        data = self.data
        if channel is not None:
            if channel >= self.channels:
                raise IndexError(f"channel {channel} out of range")
            if data.ndim == 3:
                data = data[:, :, channel]

        if extent is not None:
            x0, x1, y0, y1 = extent
            px, py = self.config.get_pixel_width(), self.config.get_pixel_height()
            x0, x1 = int(x0 / px), int(x1 / px)
            y0, y1 = int(y0 / py), int(y1 / py)
            data = data[y0:y1, x0:x1]

        return data.copy()
