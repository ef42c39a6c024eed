__version__ = "0.1.0"

from scnlib.config import Config
from scnlib.image import Image
from scnlib.metadata import AcquisitionMetadata, ImageDescriptor, MetadataStore

__all__ = [
    "AcquisitionMetadata",
    "Config",
    "Image",
    "ImageDescriptor",
    "MetadataStore",
]
