from pathlib import Path

import numpy as np
import pytest

BANNER = b"Generated by Image Lab 6.1.0 build 7, Bio-Rad Laboratories, Inc.\r\n"

IMAGE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<scn version="1.0">
  <image_info>
    <name>Blot 1</name>
    <image_date value="2014-05-12T10:31:00"/>
    <serial_number value="731BR01234"/>
    <imager value="ChemiDoc MP"/>
    <size_pix width="4" height="3"/>
    <size_mm width="0.4" height="0.3"/>
    <scanner max_value="65535" bits="16"/>
    <endian>little</endian>
    <channel_count>1</channel_count>
    <application_gain>1.5</application_gain>
    <exposure_time>0.25</exposure_time>
    <binning value="2x2"/>
  </image_info>
</scn>"""

PIXELS = np.arange(12, dtype="<u2").reshape(3, 4) * 1000


def build_scn(
    parts: list[tuple[str, bytes]],
    boundary: str = "scn_boundary",
    newline: bytes = b"\r\n",
    banner: bytes = BANNER,
) -> bytes:
    """Builds an Image Lab envelope from (content type, body) parts.

    Each body is directly followed by the next boundary line.
    """
    out = banner.rstrip(b"\r\n") + newline
    out += f'Content-Type: multipart/mixed; boundary="{boundary}"'.encode() + newline
    out += newline
    for content_type, body in parts:
        out += f"--{boundary}".encode() + newline
        out += f"Content-Type: {content_type}".encode() + newline
        out += f"Content-Length: {len(body)}".encode() + newline
        out += newline
        out += body
    out += f"--{boundary}--".encode() + newline
    return out


@pytest.fixture
def scn_file(tmp_path: Path):
    def _scn_file(
        parts: list[tuple[str, bytes]] | None = None, name: str = "test.scn", **kwargs
    ) -> Path:
        if parts is None:
            parts = [
                ("text/xml", IMAGE_XML.encode()),
                ("application/octet-stream", PIXELS.tobytes()),
            ]
        path = tmp_path.joinpath(name)
        path.write_bytes(build_scn(parts, **kwargs))
        return path

    return _scn_file
