import numpy as np
import pytest

from scnlib.errors import FormatError
from scnlib.metadata import (
    AcquisitionMetadata,
    ImageDescriptor,
    MetadataStore,
    binning_from_string,
    pixel_type_from_max_value,
)


def test_pixel_type_from_max_value():
    assert pixel_type_from_max_value(1) == "uint8"
    assert pixel_type_from_max_value(256) == "uint8"
    assert pixel_type_from_max_value(257) == "uint16"
    assert pixel_type_from_max_value(65535) == "uint16"
    assert pixel_type_from_max_value(65536) is None


def test_binning_from_string():
    assert binning_from_string("1x1") == "1x1"
    assert binning_from_string("4 X 4") == "4x4"
    assert binning_from_string("8x8") == "8x8"
    assert binning_from_string("3x3") == "Other"
    assert binning_from_string("") == "Other"


def test_image_descriptor():
    descriptor = ImageDescriptor()
    assert descriptor.size_z == 1
    assert descriptor.size_t == 1
    assert descriptor.image_count == 1
    assert descriptor.dimension_order == "XYCZT"

    with pytest.raises(FormatError):
        descriptor.dtype

    descriptor.size_x, descriptor.size_y = 10, 5
    descriptor.pixel_type = "uint16"
    assert descriptor.dtype == np.dtype(">u2")
    assert descriptor.bytes_per_pixel == 2
    assert descriptor.shape == (5, 10)

    descriptor.little_endian = True
    descriptor.size_c = 3
    assert descriptor.dtype == np.dtype("<u2")
    assert descriptor.shape == (5, 10, 3)

    descriptor.pixel_data_offset = 100
    descriptor.reset()
    assert descriptor.size_x == 0
    assert descriptor.size_c == 1
    assert descriptor.pixel_type is None
    assert not descriptor.little_endian
    assert descriptor.pixel_data_offset is None


def test_acquisition_metadata():
    metadata = AcquisitionMetadata()
    assert metadata.to_dict() == {}

    metadata.gain = 2.0
    metadata.image_name = "gel"
    assert metadata.to_dict() == {"gain": 2.0, "image_name": "gel"}

    metadata.reset()
    assert all(getattr(metadata, field) is None for field in metadata.fields)


def test_metadata_store():
    descriptor = ImageDescriptor()
    descriptor.size_x, descriptor.size_y = 8, 6
    descriptor.pixel_type = "uint8"

    store = MetadataStore()
    store.set_pixels(descriptor)
    store.set_pixels_physical_size_x(12.5)

    assert store["Pixels SizeX"] == 8
    assert store["Pixels SizeC"] == 1
    assert store["Pixels Type"] == "uint8"
    assert store["Pixels BigEndian"] is True
    assert store["Pixels PhysicalSizeX"] == 12.5
    assert "Pixels PhysicalSizeY" not in store
    assert list(store.values)[0] == "Pixels SizeX"
