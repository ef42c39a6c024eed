import argparse
import logging
import time
from importlib.metadata import version
from pathlib import Path

import numpy as np

from scnlib import Config, Image, MetadataStore
from scnlib.io.scn import SCNReader

logger = logging.getLogger(__name__)


def load(path: Path) -> Image:
    info = {
        "Name": path.stem,
        "File Path": str(path.resolve()),
        "Import Date": time.strftime(
            "%Y-%m-%dT%H:%M:%S%z", time.localtime(time.time())
        ),
        "Import Version scnlib": version("scnlib"),
    }
    store = MetadataStore()
    with SCNReader.from_file(path) as reader:
        data = reader.open_bytes()
        reader.populate_metadata(store)
        config = Config.from_metadata(reader.metadata)
        meta = list(reader.meta_log)

    info.update({key: str(value) for key, value in store.values.items()})
    for key, value in meta:
        info.setdefault(key, value)

    return Image(data=data, config=config, info=info)


def create_parser_and_parse_args() -> argparse.Namespace:
    def check_exists(file: str) -> Path:
        path = Path(file)
        if not path.exists():
            raise argparse.ArgumentTypeError("path does not exist")
        return path

    valid_formats = [".npy", ".csv"]

    parser = argparse.ArgumentParser(
        description="CLI for reading Bio-Rad Image Lab '.scn' images.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    subparsers = parser.add_subparsers(title="command", dest="command", required=True)

    convert = subparsers.add_parser(
        "convert",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        help="convert images to .npy or .csv",
    )
    convert.add_argument(
        "input", type=check_exists, nargs="+", help="path to input file(s)"
    )
    convert.add_argument(
        "--format",
        choices=valid_formats,
        default=".npy",
        help="output file format",
    )
    convert.add_argument(
        "--output",
        type=Path,
        default=None,
        metavar="PATH",
        help="path to output file or directory, defaults to the input directory. "
        "if a file then the extension must match the format",
    )

    show = subparsers.add_parser(
        "show", help="output image size, pixel type and other information"
    )
    show.add_argument(
        "input", type=check_exists, nargs="+", help="path to input file(s)"
    )
    show.add_argument(
        "--meta",
        dest="show_meta",
        action="store_true",
        help="show all stored image information",
    )
    show.set_defaults(output=None, format=".npy")

    parser.add_argument(
        "-v", "--version", action="version", version=f"scnlib {version('scnlib')}"
    )

    args = parser.parse_args()

    try:
        args.images = [load(input) for input in args.input]
    except ValueError as e:
        parser.error(f"argument input: {e}")

    if args.output is not None and not args.output.is_dir() and len(args.input) > 1:
        parser.error(
            "argument output: output must be an existing directory when more than "
            "one input is passed"
        )

    if args.output is None:
        args.output = [input.with_suffix(args.format) for input in args.input]
    elif args.output.is_dir():
        args.output = [
            args.output.joinpath(input.with_suffix(args.format).name)
            for input in args.input
        ]
    else:
        if args.output.suffix.lower() != args.format:
            parser.error(
                "argument output: output file extension does not match format "
                f"'{args.format}'"
            )
        args.output = [args.output]

    return args


def save(image: Image, path: Path) -> None:
    if path.suffix.lower() == ".csv":
        if image.channels == 1:
            np.savetxt(path, image.get(), delimiter=",", fmt="%d")
        else:
            for i in range(image.channels):
                np.savetxt(
                    path.with_stem(f"{path.stem}_{i}"),
                    image.get(i),
                    delimiter=",",
                    fmt="%d",
                )
    elif path.suffix.lower() == ".npy":
        np.save(path, image.get())
    else:
        raise ValueError(
            f"scnlib: {path.name}: unable to save as format '{path.suffix}'"
        )


def main() -> int:
    args = create_parser_and_parse_args()

    for image, input, output in zip(args.images, args.input, args.output):
        if args.command == "show":
            print(f"{input.name}")
            print(f"\tshape: {image.shape}")
            print(f"\tchannels: {image.channels}")
            print(f"\tpixel type: {image.info.get('Pixels Type')}")
            print(f"\tpixel width: {image.config.get_pixel_width()}")
            print(f"\tpixel height: {image.config.get_pixel_height()}")
            if args.show_meta:
                for k, v in image.info.items():
                    print(f"\t{k}={v}")
            continue

        save(image, output)
        logger.info(f"Saved '{output.name}'.")

    return 0


if __name__ == "__main__":
    main()
