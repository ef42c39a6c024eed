from scnlib.metadata import AcquisitionMetadata


class Config(object):
    """Class for the physical parameters of an image.

    Args:
        pixel_width: physical width of one pixel, μm
        pixel_height: physical height of one pixel, μm
    """

    def __init__(self, pixel_width: float = 1.0, pixel_height: float = 1.0):
        self.pixel_width = pixel_width
        self.pixel_height = pixel_height

    def data_extent(self, shape: tuple[int, ...]) -> tuple[float, float, float, float]:
        """Extent of data in μm."""
        px, py = self.get_pixel_width(), self.get_pixel_height()
        return (0.0, px * shape[1], 0.0, py * shape[0])

    def get_pixel_width(self) -> float:
        """Pixel width in μm."""
        return self.pixel_width

    def get_pixel_height(self) -> float:
        """Pixel height in μm."""
        return self.pixel_height

    @classmethod
    def from_metadata(cls, metadata: AcquisitionMetadata) -> "Config":
        """Create a Config from the physical sizes of `metadata`.

        Axes without a physical size default to 1 μm.
        """
        config = cls()
        if metadata.physical_size_x is not None:
            config.pixel_width = metadata.physical_size_x
        if metadata.physical_size_y is not None:
            config.pixel_height = metadata.physical_size_y
        return config
