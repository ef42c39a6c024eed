"""
Core and acquisition metadata of single plane Image Lab images, and a sink
collecting the typed values a reader forwards.
"""

from typing import Any

import numpy as np

from scnlib.errors import FormatError

UINT8 = "uint8"
UINT16 = "uint16"

valid_binnings = ["1x1", "2x2", "4x4", "8x8"]


def pixel_type_from_max_value(value: int) -> str | None:
    """Smallest unsigned pixel type holding `value`.

    Returns:
        'uint8', 'uint16' or None if `value` is larger than 65535
    """
    if value <= 256:
        return UINT8
    elif value <= 65535:
        return UINT16
    return None


def binning_from_string(binning: str) -> str:
    """Normalise a binning string.

    Args:
        binning: free-form binning, e.g. '2x2', '4 X 4'

    Returns:
        one of '1x1', '2x2', '4x4', '8x8' or 'Other'
    """
    value = binning.lower().replace(" ", "")
    if value in valid_binnings:
        return value
    return "Other"


class ImageDescriptor(object):
    """Dimensions and pixel layout of the single image plane.

    Image Lab files always hold exactly one plane, so the z, t and image counts
    are fixed at 1.
    """

    size_z = 1
    size_t = 1
    image_count = 1
    dimension_order = "XYCZT"

    def __init__(self):
        self.size_x = 0
        self.size_y = 0
        self.size_c = 1
        self.pixel_type: str | None = None
        self.little_endian = False
        self.pixel_data_offset: int | None = None

    @property
    def dtype(self) -> np.dtype:
        """Pixel dtype with the file's byte order.

        Raises:
            FormatError: if the pixel type is unknown
        """
        if self.pixel_type is None:
            raise FormatError("pixel type is unknown")
        return np.dtype(self.pixel_type).newbyteorder(
            "<" if self.little_endian else ">"
        )

    @property
    def bytes_per_pixel(self) -> int:
        return self.dtype.itemsize

    @property
    def shape(self) -> tuple[int, ...]:
        """Shape of the plane as (Y, X) or (Y, X, C)."""
        if self.size_c > 1:
            return (self.size_y, self.size_x, self.size_c)
        return (self.size_y, self.size_x)

    def reset(self) -> None:
        self.__init__()


class AcquisitionMetadata(object):
    """Optional acquisition values, None until read from a file.

    Physical sizes are in μm and the exposure time in s. The acquisition date is
    stored as text, exactly as written.
    """

    fields = (
        "gain",
        "exposure_time",
        "image_name",
        "serial_number",
        "acquisition_date",
        "binning",
        "model",
        "physical_size_x",
        "physical_size_y",
    )

    def __init__(self):
        self.gain: float | None = None
        self.exposure_time: float | None = None
        self.image_name: str | None = None
        self.serial_number: str | None = None
        self.acquisition_date: str | None = None
        self.binning: str | None = None
        self.model: str | None = None
        self.physical_size_x: float | None = None
        self.physical_size_y: float | None = None

    def reset(self) -> None:
        """Return all fields to None."""
        for field in self.fields:
            setattr(self, field, None)

    def to_dict(self) -> dict[str, Any]:
        """Fields that have been set."""
        return {
            field: getattr(self, field)
            for field in self.fields
            if getattr(self, field) is not None
        }


class MetadataStore(object):
    """Collects the typed values forwarded by a reader.

    Values are kept in insertion order in :attr:`values`, keyed by their
    OME-style names, e.g. 'Pixels PhysicalSizeX'.
    """

    def __init__(self):
        self.values: dict[str, Any] = {}

    def __contains__(self, key: str) -> bool:
        return key in self.values

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    def set_pixels(self, descriptor: ImageDescriptor) -> None:
        """Store the dimensions and pixel layout of `descriptor`."""
        self.values["Pixels SizeX"] = descriptor.size_x
        self.values["Pixels SizeY"] = descriptor.size_y
        self.values["Pixels SizeC"] = descriptor.size_c
        self.values["Pixels SizeZ"] = descriptor.size_z
        self.values["Pixels SizeT"] = descriptor.size_t
        self.values["Pixels Type"] = descriptor.pixel_type
        self.values["Pixels BigEndian"] = not descriptor.little_endian
        self.values["Pixels DimensionOrder"] = descriptor.dimension_order

    def set_instrument_id(self, id: str) -> None:
        self.values["Instrument ID"] = id

    def set_microscope_serial_number(self, serial_number: str) -> None:
        self.values["Microscope SerialNumber"] = serial_number

    def set_microscope_model(self, model: str) -> None:
        self.values["Microscope Model"] = model

    def set_image_name(self, name: str) -> None:
        self.values["Image Name"] = name

    def set_image_acquisition_date(self, date: str) -> None:
        self.values["Image AcquisitionDate"] = date

    def set_detector_id(self, id: str) -> None:
        self.values["Detector ID"] = id

    def set_detector_settings_id(self, id: str) -> None:
        self.values["DetectorSettings ID"] = id

    def set_detector_settings_gain(self, gain: float) -> None:
        self.values["DetectorSettings Gain"] = gain

    def set_detector_settings_binning(self, binning: str) -> None:
        self.values["DetectorSettings Binning"] = binning

    def set_plane_exposure_time(self, seconds: float) -> None:
        self.values["Plane ExposureTime"] = seconds

    def set_pixels_physical_size_x(self, size: float) -> None:
        """Physical pixel width, μm."""
        self.values["Pixels PhysicalSizeX"] = size

    def set_pixels_physical_size_y(self, size: float) -> None:
        """Physical pixel height, μm."""
        self.values["Pixels PhysicalSizeY"] = size
