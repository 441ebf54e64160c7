"""Command-line interface for ggoled."""

import argparse
import functools
import logging
import sys
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from ggoled import __version__
from ggoled._signal import shutdown_guard
from ggoled.bitmap import Bitmap
from ggoled.clock import ClockConfig, run_clock
from ggoled.constants import BRIGHTNESS_MAX, BRIGHTNESS_MIN, DEFAULT_FPS, DEFAULT_FRAME_DELAY
from ggoled.device import Device, describe_devices, get_device_name
from ggoled.engine import DrawDevice
from ggoled.exceptions import DeviceNotFoundError, GGOledError
from ggoled.frames import DEFAULT_THRESHOLD, bitmap_from_bytes, decode_frames
from ggoled.models import LayerId, ShiftMode
from ggoled.text import DEFAULT_FONT_SIZE

logger = logging.getLogger(__name__)

# Epilog text for main parser
MAIN_EPILOG = """\
examples:
  ggoled text "Hello world"        Draw centered text
  ggoled img logo.png              Draw an image
  ggoled anim -l 0 spinner.gif     Loop an animated GIF forever
  ggoled clock                     Show a clock with headset notifications
  ggoled brightness 5              Set screen brightness (1-10)
  ggoled ui                        Return to the base station's own screen

supported devices:
  Arctis Nova Pro Wired / Wireless base stations (including Xbox variants)

Use -h with any command for detailed help.
"""

TEXT_EPILOG = """\
examples:
  ggoled text "Hello"                  Draw centered text
  ggoled text -x 0 -y 0 "Top left"     Draw at a fixed position
  some-command | ggoled text -d ===    Redraw the screen at every "===" line

Lines wider than the screen scroll horizontally.
"""

ANIM_EPILOG = """\
examples:
  ggoled anim spinner.gif              Play a GIF once with its own timing
  ggoled anim -r 2 -l 0 a.png b.png    Alternate two images at 2 fps forever

Press Ctrl+C to exit.
"""

CLOCK_EPILOG = """\
examples:
  ggoled clock                         Clock with anti burn-in shifting
  ggoled clock --shift off --fps 10    No shifting, lower refresh rate
  ggoled clock --time-format %H:%M     Hide seconds

Press Ctrl+C to exit. The base station's own UI is restored on exit.
"""


def parse_position(value: str) -> int | None:
    """Parse a screen coordinate; 'center' or 'c' return None."""
    if value.lower() in ("center", "c"):
        return None
    try:
        return int(value)
    except ValueError:
        msg = f"not a valid position: {value!r}"
        raise argparse.ArgumentTypeError(msg) from None


def _resolve(position: int | None, screen: int, size: int) -> int:
    return position if position is not None else (screen - size) // 2


def _report_errors(func: Callable[[argparse.Namespace], int]) -> Callable[[argparse.Namespace], int]:
    """Turn library errors into an error message and exit code 1."""

    @functools.wraps(func)
    def wrapper(args: argparse.Namespace) -> int:
        try:
            return func(args)
        except DeviceNotFoundError as e:
            print(f"Error: No compatible SteelSeries device found ({e}).", file=sys.stderr)
            return 1
        except GGOledError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        except KeyboardInterrupt:
            return 0

    return wrapper


@_report_errors
def cmd_clear(args: argparse.Namespace) -> int:
    """Clear the entire screen to black."""
    with Device.connect() as dev:
        dev.draw(Bitmap(dev.width, dev.height, on=False))
    return 0


@_report_errors
def cmd_fill(args: argparse.Namespace) -> int:
    """Fill the entire screen to white."""
    with Device.connect() as dev:
        dev.draw(Bitmap(dev.width, dev.height, on=True))
    return 0


def _read_screens(lines: Iterable[str], delimiter: str | None) -> Iterable[str]:
    """Group input lines into screens separated by ``delimiter`` lines."""
    screen: list[str] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if delimiter is not None and line == delimiter:
            yield "\n".join(screen)
            screen = []
        else:
            screen.append(line)
    if screen:
        yield "\n".join(screen)


@_report_errors
def cmd_text(args: argparse.Namespace) -> int:
    """Draw text, either from the argument or screen by screen from stdin."""
    device = Device.connect()
    try:
        dev = DrawDevice(device, fps=DEFAULT_FPS)
        try:
            if args.text is not None:
                dev.add_text(args.text, args.screen_x, args.screen_y)
                dev.play()
            else:
                dev.play()
                shown: list[LayerId] = []
                for screen in _read_screens(sys.stdin, args.delimiter):
                    shown = dev.replace_layers(
                        shown, dev.text_layers(screen, args.screen_x, args.screen_y)
                    )
            dev.await_frame()
        finally:
            dev.stop()
    finally:
        device.close()
    return 0


@_report_errors
def cmd_img(args: argparse.Namespace) -> int:
    """Draw a single image from a file or stdin."""
    if args.path == "-":
        bitmap = bitmap_from_bytes(sys.stdin.buffer.read(), args.threshold)
    else:
        frames = decode_frames(args.path, args.threshold)
        if len(frames) != 1:
            print("Warning: only the first frame is drawn.", file=sys.stderr)
        bitmap = frames[0].bitmap

    with Device.connect() as dev:
        x = _resolve(args.screen_x, dev.width, bitmap.width)
        y = _resolve(args.screen_y, dev.height, bitmap.height)
        dev.draw(bitmap, x, y)
    return 0


@_report_errors
def cmd_anim(args: argparse.Namespace) -> int:
    """Draw a sequence of images, optionally looping."""
    if args.framerate is not None and args.framerate <= 0:
        print("Error: Framerate must be positive.", file=sys.stderr)
        return 1
    if args.loops < 0:
        print("Error: Loops cannot be negative.", file=sys.stderr)
        return 1

    period = 1.0 / args.framerate if args.framerate is not None else None
    frames: list[tuple[Bitmap, float]] = []
    for path in args.paths:
        for frame in decode_frames(path, args.threshold):
            delay = frame.delay if frame.delay is not None else DEFAULT_FRAME_DELAY
            frames.append((frame.bitmap, period if period is not None else delay))

    with shutdown_guard() as flag, Device.connect() as dev:
        loop = 0
        while flag.running and (args.loops == 0 or loop < args.loops):
            for bitmap, delay in frames:
                if not flag.running:
                    break
                started = time.monotonic()
                x = _resolve(args.screen_x, dev.width, bitmap.width)
                y = _resolve(args.screen_y, dev.height, bitmap.height)
                dev.draw(bitmap, x, y)
                remaining = delay - (time.monotonic() - started)
                if remaining > 0:
                    flag.wait(remaining)
                else:
                    logger.warning("Fell behind: framerate too fast")
            loop += 1
    return 0


@_report_errors
def cmd_brightness(args: argparse.Namespace) -> int:
    """Set screen brightness."""
    if not BRIGHTNESS_MIN <= args.value <= BRIGHTNESS_MAX:
        print(
            f"Error: Brightness must be between {BRIGHTNESS_MIN} and {BRIGHTNESS_MAX}.",
            file=sys.stderr,
        )
        return 1
    with Device.connect() as dev:
        dev.set_brightness(args.value)
    return 0


@_report_errors
def cmd_ui(args: argparse.Namespace) -> int:
    """Return to the base station's own UI."""
    with Device.connect() as dev:
        dev.return_to_ui()
    return 0


@_report_errors
def cmd_devices(args: argparse.Namespace) -> int:
    """Dump every SteelSeries HID interface."""
    entries = describe_devices()
    if not entries:
        print("No devices.")
        return 0

    print("-----")
    for entry in entries:
        print(f"product={entry['product']} ({get_device_name(entry['product_id'])})")
        print(f"pid=0x{entry['product_id']:04x}")
        print(f"interface={entry['interface_number']}")
        path = entry["path"]
        print(f"path={path.decode(errors='replace') if isinstance(path, bytes) else path}")
        print(f"usage_page={entry['usage_page']} usage={entry['usage']}")
        if "descriptor_head" in entry:
            print(f"report desc first 16 bytes: {entry['descriptor_head'].hex(' ')}")
        else:
            print(f"opening device failed: {entry['error']}")
        print("-----")
    return 0


@_report_errors
def cmd_clock(args: argparse.Namespace) -> int:
    """Show the clock until interrupted."""
    if args.fps <= 0:
        print("Error: FPS must be positive.", file=sys.stderr)
        return 1
    if args.font is not None and not args.font.is_file():
        print(f"Error: Font file not found: {args.font}", file=sys.stderr)
        return 1

    config = ClockConfig(
        fps=args.fps,
        shift_mode=ShiftMode(args.shift),
        time_format=args.time_format,
        show_notifications=not args.no_notifications,
        font_path=args.font,
        font_size=args.font_size,
    )
    print("Press Ctrl+C to exit.")
    run_clock(config)
    print()
    return 0


def _add_position_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-x",
        "--screen-x",
        type=parse_position,
        default=None,
        metavar="POS",
        help="screen X offset, or 'center' (default: center)",
    )
    parser.add_argument(
        "-y",
        "--screen-y",
        type=parse_position,
        default=None,
        metavar="POS",
        help="screen Y offset, or 'center' (default: center)",
    )


def _add_threshold_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-T",
        "--threshold",
        type=int,
        default=DEFAULT_THRESHOLD,
        metavar="N",
        help=f"grayscale threshold for converting images to 1-bit (default: {DEFAULT_THRESHOLD})",
    )


def build_parser() -> argparse.ArgumentParser:
    # Use RawDescriptionHelpFormatter to preserve epilog formatting
    parser = argparse.ArgumentParser(
        prog="ggoled",
        description="Draw on the OLED screen of SteelSeries Arctis Nova Pro base stations.",
        epilog=MAIN_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="log debug output to stderr"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        required=True,
        title="commands",
        metavar="<command>",
    )

    clear_parser = subparsers.add_parser("clear", help="clear the entire screen to black")
    clear_parser.set_defaults(func=cmd_clear)

    fill_parser = subparsers.add_parser("fill", help="fill the entire screen to white")
    fill_parser.set_defaults(func=cmd_fill)

    text_parser = subparsers.add_parser(
        "text",
        help="draw some text",
        description="Draw text on the screen using the bundled font.",
        epilog=TEXT_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_position_args(text_parser)
    text_parser.add_argument("text", nargs="?", default=None, help="text, or omitted for stdin")
    text_parser.add_argument(
        "-d", "--delimiter", default=None, help="screen delimiter line for stdin input"
    )
    text_parser.set_defaults(func=cmd_text)

    img_parser = subparsers.add_parser("img", help="draw an image")
    _add_position_args(img_parser)
    _add_threshold_arg(img_parser)
    img_parser.add_argument("path", metavar="FILE", help="image path, or - for stdin")
    img_parser.set_defaults(func=cmd_img)

    anim_parser = subparsers.add_parser(
        "anim",
        help="draw a sequence of images",
        epilog=ANIM_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_position_args(anim_parser)
    _add_threshold_arg(anim_parser)
    anim_parser.add_argument(
        "-r",
        "--framerate",
        type=float,
        default=None,
        metavar="FPS",
        help="frames per second (default: embedded GIF delays, otherwise 1 fps)",
    )
    anim_parser.add_argument(
        "-l",
        "--loops",
        type=int,
        default=1,
        metavar="N",
        help="amount of repetitions, or 0 for infinite (default: 1)",
    )
    anim_parser.add_argument("paths", nargs="+", metavar="FILE", help="image paths")
    anim_parser.set_defaults(func=cmd_anim)

    brightness_parser = subparsers.add_parser("brightness", help="set screen brightness")
    brightness_parser.add_argument(
        "value", type=int, metavar="N", help=f"brightness ({BRIGHTNESS_MIN}-{BRIGHTNESS_MAX})"
    )
    brightness_parser.set_defaults(func=cmd_brightness)

    ui_parser = subparsers.add_parser("ui", help="return to the base station's own UI")
    ui_parser.set_defaults(func=cmd_ui)

    devices_parser = subparsers.add_parser(
        "devices", help="list SteelSeries HID interfaces for troubleshooting"
    )
    devices_parser.set_defaults(func=cmd_devices)

    clock_parser = subparsers.add_parser(
        "clock",
        help="show a clock with headset notifications",
        epilog=CLOCK_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    clock_parser.add_argument(
        "--fps", type=int, default=DEFAULT_FPS, help=f"render rate (default: {DEFAULT_FPS})"
    )
    clock_parser.add_argument(
        "--shift",
        choices=[mode.value for mode in ShiftMode],
        default=ShiftMode.SIMPLE.value,
        help="anti burn-in pixel shifting (default: simple)",
    )
    clock_parser.add_argument(
        "--time-format", default="%H:%M:%S", help="strftime format (default: %%H:%%M:%%S)"
    )
    clock_parser.add_argument(
        "--no-notifications",
        action="store_true",
        help="do not show headset connection icons",
    )
    clock_parser.add_argument(
        "--font", type=Path, metavar="FILE", default=None, help="custom TrueType font file"
    )
    clock_parser.add_argument(
        "--font-size",
        type=int,
        default=DEFAULT_FONT_SIZE,
        help=f"font size (default: {DEFAULT_FONT_SIZE})",
    )
    clock_parser.set_defaults(func=cmd_clock)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point with subcommands."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
