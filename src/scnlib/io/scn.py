"""
Import of Bio-Rad Image Lab '.scn' gel and blot images.
Files are a MIME multipart envelope of xml metadata parts and a single binary
pixel part. Only the offset of the pixel part is recorded on import, pixels are
read on demand.
"""

import logging
from collections.abc import Callable, Generator
from io import SEEK_END
from pathlib import Path
from typing import Any, BinaryIO
from xml.etree import ElementTree

import numpy as np

from scnlib.errors import (
    FormatError,
    MalformedEnvelopeError,
    MalformedMetadataValueError,
    UnsupportedFormatError,
)
from scnlib.metadata import (
    AcquisitionMetadata,
    ImageDescriptor,
    MetadataStore,
    binning_from_string,
    pixel_type_from_max_value,
)

logger = logging.getLogger(__name__)

MAGIC = "Generated by Image Lab"
MAGIC_BLOCK_LENGTH = 64

OCTET_STREAM = "application/octet-stream"
TEXT_XML = "text/xml"


def parse_int(value: str) -> int:
    """Parses a decimal integer with an optional sign.

    Unlike :func:`int`, surrounding whitespace and '_' separators are rejected.
    """
    digits = value[1:] if value[:1] in ("+", "-") else value
    if not (digits.isascii() and digits.isdigit()):
        raise ValueError(f"invalid integer '{value}'")
    return int(value)


def parse_float(value: str) -> float:
    if "_" in value:
        raise ValueError(f"invalid number '{value}'")
    return float(value)


def is_scn(path: Path | str | BinaryIO) -> bool:
    """Tests if a file or stream starts with the Image Lab banner.

    The banner must be found within the first 64 bytes. Streams are returned to
    their original position.
    """
    if isinstance(path, (str, Path)):
        path = Path(path)
        if not path.is_file():
            return False
        with path.open("rb") as fp:
            block = fp.read(MAGIC_BLOCK_LENGTH)
    else:
        pos = path.tell()
        block = path.read(MAGIC_BLOCK_LENGTH)
        path.seek(pos)

    if len(block) < MAGIC_BLOCK_LENGTH:
        return False
    return MAGIC in block.decode("latin-1")


class EnvelopePart(object):
    """A part of the multipart envelope, emitted at the end of its headers.

    Args:
        content_type: declared type, parameters removed
        boundary: boundary in effect when the part was found
        length: declared body length in bytes
        offset: position of the first body byte
        text: decoded body of xml parts, otherwise None
    """

    def __init__(
        self,
        content_type: str,
        boundary: str,
        length: int,
        offset: int,
        text: str | None = None,
    ):
        self.content_type = content_type
        self.boundary = boundary
        self.length = length
        self.offset = offset
        self.text = text

    @property
    def kind(self) -> str:
        """One of 'binary', 'xml' or 'other'."""
        if self.content_type == OCTET_STREAM:
            return "binary"
        elif self.content_type == TEXT_XML:
            return "xml"
        return "other"


def iter_envelope_parts(fp: BinaryIO) -> Generator[EnvelopePart, None, None]:
    """Scans an envelope line by line, yielding each part.

    Binary bodies are skipped without reading, xml bodies are read and decoded.
    Bodies of any other type are not consumed, their bytes are scanned as header
    lines.

    Args:
        fp: binary stream positioned at the start of the file

    Raises:
        MalformedEnvelopeError: invalid 'Content-Length' or truncated body
    """
    start = fp.tell()
    end = fp.seek(0, SEEK_END)
    fp.seek(start)

    boundary = ""
    content_type = ""
    length = 0

    while True:
        pos = fp.tell()
        raw = fp.readline()
        if not raw:
            break
        line = raw.decode("latin-1").strip()

        if line.startswith("Content-Type"):
            content_type = line[line.find(" ") + 1 :]
            # boundary="..." with the closing quote dropped
            idx = content_type.find("boundary")
            if idx > 0:
                boundary = content_type[idx + 10 : -1]
            if content_type.find(";") > 0:
                content_type = content_type[: content_type.find(";")]
        elif line == "--" + boundary:
            length = 0
        elif line.startswith("Content-Length"):
            try:
                length = int(line[line.find(" ") + 1 :])
            except ValueError as e:
                raise MalformedEnvelopeError("invalid length", line, pos) from e
            if length < 0:
                raise MalformedEnvelopeError("negative length", line, pos)
        elif len(line) == 0:
            part = EnvelopePart(content_type, boundary, length, fp.tell())
            if part.kind == "binary":
                if part.offset + length > end:
                    raise MalformedEnvelopeError(
                        f"truncated binary part, expected {length} bytes",
                        offset=part.offset,
                    )
                fp.seek(length, 1)
            elif part.kind == "xml":
                data = fp.read(length)
                if len(data) < length:
                    raise MalformedEnvelopeError(
                        f"truncated xml part, expected {length} bytes",
                        offset=part.offset,
                    )
                part.text = data.decode("utf-8")
            else:
                logger.debug(f"Skipping headers of '{content_type}' at byte {pos}.")
            yield part


def scan_envelope(fp: BinaryIO) -> tuple[int | None, list[str]]:
    """Reads the pixel offset and xml blocks of an envelope.

    If more than one binary part exists the last one is used.

    Args:
        fp: binary stream positioned at the start of the file

    Returns:
        offset of the pixel data, or None if there is no binary part
        list of xml blocks, in file order
    """
    offset = None
    xml = []
    for part in iter_envelope_parts(fp):
        if part.kind == "binary":
            if offset is not None:
                logger.warning("Multiple binary parts found, using the last.")
            offset = part.offset
        elif part.kind == "xml":
            assert part.text is not None
            xml.append(part.text)
    return offset, xml


class SCNHandler(object):
    """ElementTree parser target for Image Lab xml blocks.

    Only the most recently opened tag is tracked, nesting is ignored. Every
    attribute is logged as ('tag attribute', value) and every text as
    (tag, text), a fixed set of them are also converted into the descriptor and
    acquisition metadata. Text made only of whitespace, such as indentation, is
    neither logged nor converted.

    Args:
        descriptor: updated in place
        metadata: updated in place
        log: list appended with (key, value) pairs
    """

    def __init__(
        self,
        descriptor: ImageDescriptor,
        metadata: AcquisitionMetadata,
        log: list[tuple[str, str]],
    ):
        self.descriptor = descriptor
        self.metadata = metadata
        self.log = log

        self.tag: str | None = None
        self._text: list[str] = []

    def start(self, tag: str, attrib: dict[str, str]) -> None:
        self._flush_text()
        self.tag = tag
        for key, value in attrib.items():
            self.log.append((f"{tag} {key}", value))
            self.attribute(tag, key, value)

    def end(self, tag: str) -> None:
        self._flush_text()
        self.tag = None

    def data(self, data: str) -> None:
        # expat may split text, join it before handling
        if self.tag is not None:
            self._text.append(data)

    def close(self) -> None:
        self._flush_text()

    def _flush_text(self) -> None:
        text = "".join(self._text)
        self._text.clear()
        if self.tag is not None and len(text.strip()) > 0:
            self.log.append((self.tag, text))
            self.text(self.tag, text)

    def _convert(
        self, func: Callable[[str], Any], tag: str, key: str | None, value: str
    ) -> Any:
        try:
            return func(value)
        except ValueError as e:
            raise MalformedMetadataValueError(tag, key, value) from e

    def attribute(self, tag: str, key: str, value: str) -> None:
        if tag == "size_pix":
            if key == "width":
                self.descriptor.size_x = self._convert(parse_int, tag, key, value)
            elif key == "height":
                self.descriptor.size_y = self._convert(parse_int, tag, key, value)
        elif tag == "scanner":
            if key == "max_value":
                max_value = self._convert(parse_int, tag, key, value)
                pixel_type = pixel_type_from_max_value(max_value)
                if pixel_type is None:
                    logger.warning(f"Unsupported max_value {max_value}.")
                else:
                    self.descriptor.pixel_type = pixel_type
        elif tag == "size_mm":
            if key == "width":
                self.metadata.physical_size_x = self._physical_size(
                    self._convert(parse_float, tag, key, value), self.descriptor.size_x
                )
            elif key == "height":
                self.metadata.physical_size_y = self._physical_size(
                    self._convert(parse_float, tag, key, value), self.descriptor.size_y
                )
        elif key == "value":
            if tag == "serial_number":
                self.metadata.serial_number = value
            elif tag == "binning":
                self.metadata.binning = value
            elif tag == "image_date":
                self.metadata.acquisition_date = value
            elif tag == "imager":
                self.metadata.model = value

    def text(self, tag: str, text: str) -> None:
        if tag == "endian":
            self.descriptor.little_endian = text == "little"
        elif tag == "channel_count":
            self.descriptor.size_c = self._convert(parse_int, tag, None, text)
        elif tag == "application_gain":
            self.metadata.gain = self._convert(parse_float, tag, None, text)
        elif tag == "exposure_time":
            self.metadata.exposure_time = self._convert(parse_float, tag, None, text)
        elif tag == "name":
            self.metadata.image_name = text

    def _physical_size(self, size_mm: float, size_pixels: int) -> float | None:
        # relies on size_pix preceding size_mm
        if size_pixels == 0:
            logger.warning("Pixel size read before image size, unable to convert.")
            return None
        if size_mm <= 0.0:
            logger.warning(f"Invalid physical size {size_mm} mm, ignoring.")
            return None
        return size_mm / size_pixels * 1000.0  # mm to μm


def parse_metadata_block(
    text: str,
    descriptor: ImageDescriptor,
    metadata: AcquisitionMetadata,
    log: list[tuple[str, str]],
) -> None:
    """Parse one xml block into `descriptor`, `metadata` and `log`.

    Raises:
        MalformedEnvelopeError: invalid xml
        MalformedMetadataValueError: unconvertible mapped value
    """
    parser = ElementTree.XMLParser(target=SCNHandler(descriptor, metadata, log))
    try:
        parser.feed(text)
        parser.close()
    except ElementTree.ParseError as e:
        raise MalformedEnvelopeError(f"invalid xml block, {e}") from e


def check_plane_parameters(
    descriptor: ImageDescriptor, no: int, x: int, y: int, w: int, h: int
) -> None:
    """Validates a plane index and rectangle.

    Raises:
        ValueError: if `no` is not 0 or the rectangle is outside the plane
    """
    if no != 0:
        raise ValueError(f"invalid plane {no}, image has 1 plane")
    if w <= 0 or h <= 0:
        raise ValueError(f"invalid rectangle size ({w}, {h})")
    if x < 0 or y < 0 or x + w > descriptor.size_x or y + h > descriptor.size_y:
        raise ValueError(
            f"rectangle ({x}, {y}, {w}, {h}) outside of image "
            f"({descriptor.size_x}, {descriptor.size_y})"
        )


def read_plane(
    fp: BinaryIO, descriptor: ImageDescriptor, x: int, y: int, w: int, h: int
) -> np.ndarray:
    """Reads a rectangle of the pixel data.

    Channels are stored as consecutive planes of `size_y` rows. For each channel
    full rows are read then trimmed to the requested columns.

    Args:
        fp: binary stream of the file
        descriptor: descriptor with a pixel offset
        x, y: origin of the rectangle
        w, h: size of the rectangle

    Returns:
        array of shape (h, w) or (h, w, C), in the file's byte order

    Raises:
        FormatError: no pixel offset, unknown pixel type or truncated data
    """
    if descriptor.pixel_data_offset is None:
        raise FormatError("no pixel data in file")

    dtype = descriptor.dtype
    row_size = descriptor.size_x * dtype.itemsize
    plane_size = descriptor.size_y * row_size

    channels = []
    for c in range(descriptor.size_c):
        fp.seek(descriptor.pixel_data_offset + c * plane_size + y * row_size)
        buffer = fp.read(h * row_size)
        if len(buffer) < h * row_size:
            raise FormatError(
                f"truncated pixel data in channel {c}, expected {h * row_size} bytes"
            )
        data = np.frombuffer(buffer, dtype=dtype).reshape((h, descriptor.size_x))
        channels.append(data[:, x : x + w])

    if descriptor.size_c == 1:
        return channels[0]
    return np.stack(channels, axis=-1)


class SCNReader(object):
    """Reader session for a single Image Lab file.

    Opening a file scans the envelope and parses its xml. The file stays open
    for :meth:`open_bytes` until :meth:`close`, which also resets the metadata.
    To open a file use :meth:`scnlib.io.scn.SCNReader.from_file`.

    Attributes:
        descriptor: dimensions and pixel layout
        metadata: acquisition metadata
        meta_log: every xml attribute and text as (key, value), in file order
    """

    def __init__(self):
        self.path: Path | None = None
        self._fp: BinaryIO | None = None

        self.descriptor = ImageDescriptor()
        self.metadata = AcquisitionMetadata()
        self.meta_log: list[tuple[str, str]] = []

    def __enter__(self) -> "SCNReader":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @staticmethod
    def is_this_type(path: Path | str | BinaryIO) -> bool:
        return is_scn(path)

    @classmethod
    def from_file(cls, path: Path | str) -> "SCNReader":
        reader = cls()
        reader.open(path)
        return reader

    def open(self, path: Path | str) -> None:
        """Opens and parses a file.

        Raises:
            UnsupportedFormatError: missing Image Lab banner
            MalformedEnvelopeError: invalid envelope or xml
            MalformedMetadataValueError: invalid metadata value
        """
        path = Path(path)
        if self._fp is not None:
            self.close()

        self._fp = path.open("rb")
        self.path = path
        try:
            if not is_scn(self._fp):
                raise UnsupportedFormatError(f"{path.name} is not an Image Lab file")
            logger.debug(f"Reading '{path.name}'.")

            offset, xml = scan_envelope(self._fp)
            for block in xml:
                parse_metadata_block(
                    block, self.descriptor, self.metadata, self.meta_log
                )
        except Exception:
            self.close()
            raise

        if offset is None:
            logger.warning(f"No pixel data found in '{path.name}'.")
        self.descriptor.pixel_data_offset = offset

    def open_bytes(
        self,
        no: int = 0,
        x: int = 0,
        y: int = 0,
        w: int | None = None,
        h: int | None = None,
    ) -> np.ndarray:
        """Reads a rectangle of plane `no`.

        Args:
            no: plane index, always 0
            x, y: origin of the rectangle
            w, h: size of the rectangle, defaults to the remaining width, height

        Returns:
            array of shape (h, w) or (h, w, C)

        Raises:
            ValueError: rectangle outside of the image
        """
        if self._fp is None:
            raise ValueError("reader is closed")
        if w is None:
            w = self.descriptor.size_x - x
        if h is None:
            h = self.descriptor.size_y - y

        check_plane_parameters(self.descriptor, no, x, y, w, h)
        return read_plane(self._fp, self.descriptor, x, y, w, h)

    def populate_metadata(self, store: MetadataStore) -> None:
        """Forwards the typed values of the open file to `store`.

        Unset values are not forwarded. Detector entries are only created if a
        gain or binning was read.
        """
        store.set_pixels(self.descriptor)
        store.set_instrument_id("Instrument:0")

        metadata = self.metadata
        if metadata.serial_number is not None:
            store.set_microscope_serial_number(metadata.serial_number)
        if metadata.model is not None:
            store.set_microscope_model(metadata.model)
        if metadata.image_name is not None:
            store.set_image_name(metadata.image_name)
        if metadata.acquisition_date is not None:
            store.set_image_acquisition_date(metadata.acquisition_date)

        if metadata.gain is not None or metadata.binning is not None:
            store.set_detector_id("Detector:0:0")
            store.set_detector_settings_id("Detector:0:0")
        if metadata.gain is not None:
            store.set_detector_settings_gain(metadata.gain)
        if metadata.binning is not None:
            store.set_detector_settings_binning(binning_from_string(metadata.binning))

        if metadata.exposure_time is not None:
            store.set_plane_exposure_time(metadata.exposure_time)
        if metadata.physical_size_x is not None:
            store.set_pixels_physical_size_x(metadata.physical_size_x)
        if metadata.physical_size_y is not None:
            store.set_pixels_physical_size_y(metadata.physical_size_y)

    def close(self) -> None:
        """Closes the file and resets all metadata."""
        try:
            if self._fp is not None:
                self._fp.close()
        finally:
            self._fp = None
            self.path = None
            self.descriptor.reset()
            self.metadata.reset()
            self.meta_log = []


def load(
    path: str | Path, full: bool = False
) -> np.ndarray | tuple[np.ndarray, dict]:
    """Loads an Image Lab '.scn' file.

    Args:
        path: path to file
        full: also return dict with params

    Returns:
        array of pixel data, shape (Y, X) or (Y, X, C)
        dict of set acquisition metadata and the xml 'meta' log if `full`
    """
    with SCNReader.from_file(path) as reader:
        data = reader.open_bytes()
        params: dict = reader.metadata.to_dict()
        params["meta"] = list(reader.meta_log)

    if full:
        return data, params
    else:  # pragma: no cover
        return data
