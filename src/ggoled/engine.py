"""Layered drawing on a render thread.

``DrawDevice`` moves a connected ``Device`` into a dedicated render thread.
The caller (the producer) edits layers and sends playback commands; every
tick the render thread composites the layers, writes the frame if it
changed, forwards device status reports and recovers from disconnects.

Example:
    with DrawDevice(Device.connect()) as dev:
        dev.add_text("hello")
        dev.play()
        dev.await_frame()
"""

import logging
import queue
import threading
import time
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager
from dataclasses import dataclass
from types import TracebackType
from typing import Self, cast

from ggoled.bitmap import Bitmap
from ggoled.constants import (
    DEFAULT_FPS,
    DEFAULT_FRAME_DELAY,
    HEARTBEAT_PERIOD,
    OLED_SHIFT_PERIOD,
    OLED_SHIFTS,
    RECONNECT_PERIOD,
    SCROLL_MARGIN,
)
from ggoled.device import Device
from ggoled.exceptions import DeviceCommunicationError, GGOledError
from ggoled.layers import AnimationState, LayerBatch, LayerEntry, LayerStore, ScrollState
from ggoled.models import (
    AnimationLayer,
    DeviceDisconnected,
    DeviceEventReceived,
    DeviceReconnected,
    DrawEvent,
    DrawLayer,
    ImageLayer,
    LayerId,
    ScrollLayer,
    ShiftMode,
)
from ggoled.text import TextRenderer

logger = logging.getLogger(__name__)


# Commands sent from the producer to the render thread


@dataclass(frozen=True, slots=True)
class _Play:
    pass


@dataclass(frozen=True, slots=True)
class _Pause:
    pass


@dataclass(frozen=True, slots=True)
class _SetShiftMode:
    mode: ShiftMode


@dataclass(frozen=True, slots=True)
class _Stop:
    pass


_Command = _Play | _Pause | _SetShiftMode | _Stop


class ShiftCycle:
    """Walk the anti burn-in offset ring, one step per period."""

    def __init__(self, period: float = OLED_SHIFT_PERIOD) -> None:
        self._period = period
        self._index = 0
        self._last_shift: float | None = None

    def offset(self, now: float) -> tuple[int, int]:
        if self._last_shift is None:
            self._last_shift = now
        elif now - self._last_shift >= self._period:
            self._index = (self._index + 1) % len(OLED_SHIFTS)
            self._last_shift = now
        return OLED_SHIFTS[self._index]


def _draw_animation(
    screen: Bitmap,
    layer: AnimationLayer,
    state: AnimationState,
    dx: int,
    dy: int,
    now: float,
) -> None:
    if not layer.frames:
        return
    frame = layer.frames[state.ticks % len(layer.frames)]
    screen.blit(frame.bitmap, layer.x + dx, layer.y + dy, opaque=False)
    if layer.follow_fps:
        state.ticks += 1
        return
    if state.next_update is None:
        state.next_update = now
    if now >= state.next_update:
        state.ticks += 1
        delay = frame.delay if frame.delay is not None else DEFAULT_FRAME_DELAY
        state.next_update += delay
        # Fell behind (slow ticks or a long pause): resync instead of skipping
        if state.next_update < now:
            state.next_update = now + delay


def _draw_scroll(
    screen: Bitmap, layer: ScrollLayer, state: ScrollState, dx: int, dy: int
) -> None:
    tile_width = layer.bitmap.width + SCROLL_MARGIN
    copies = 1 + screen.width // tile_width
    for i in range(copies + 1):
        screen.blit(layer.bitmap, state.x + i * tile_width + dx, layer.y + dy, opaque=False)
    state.x -= 1
    if state.x <= -tile_width:
        state.x += tile_width


def composite(
    entries: Iterable[LayerEntry],
    width: int,
    height: int,
    shift: tuple[int, int],
    now: float,
) -> Bitmap:
    """Draw layers in order onto a blank screen and advance their state."""
    screen = Bitmap(width, height)
    dx, dy = shift
    for entry in entries:
        layer = entry.layer
        if isinstance(layer, ImageLayer):
            screen.blit(layer.bitmap, layer.x + dx, layer.y + dy, opaque=False)
        elif isinstance(layer, AnimationLayer):
            _draw_animation(screen, layer, cast(AnimationState, entry.state), dx, dy, now)
        elif isinstance(layer, ScrollLayer):
            _draw_scroll(screen, layer, cast(ScrollState, entry.state), dx, dy)
    return screen


class Renderer:
    """Render thread state; one ``tick`` per loop iteration.

    Owns the device while the thread runs. Device errors never escape a
    tick: they switch to the disconnected state and are reported as events.
    """

    def __init__(
        self,
        device: Device,
        layers: LayerStore,
        events: queue.Queue[DrawEvent],
    ) -> None:
        self.device = device
        self._layers = layers
        self._events = events
        self.connected = True
        self.playing = False
        self.shift_mode = ShiftMode.OFF
        self._shift = ShiftCycle()
        self._prev_screen: Bitmap | None = None
        self._last_draw: float | None = None
        self._last_connect_attempt: float | None = None

    def apply(self, command: _Command) -> bool:
        """Apply one command. Returns True if the loop should stop."""
        if isinstance(command, _Play):
            self.playing = True
        elif isinstance(command, _Pause):
            self.playing = False
        elif isinstance(command, _SetShiftMode):
            self.shift_mode = command.mode
        elif isinstance(command, _Stop):
            return True
        return False

    def shift_offset(self, now: float) -> tuple[int, int]:
        if self.shift_mode == ShiftMode.OFF:
            return (0, 0)
        return self._shift.offset(now)

    def tick(self, now: float) -> None:
        """Run one render iteration at clock reading ``now``."""
        if not self.connected:
            self._try_reconnect(now)

        if self.connected and self.playing:
            self._render(now)

        if self.connected:
            self._forward_device_events(now)

    def _try_reconnect(self, now: float) -> None:
        if (
            self._last_connect_attempt is not None
            and now - self._last_connect_attempt < RECONNECT_PERIOD
        ):
            return
        self._last_connect_attempt = now
        try:
            self.device.reconnect()
        except GGOledError as e:
            logger.debug("Reconnect failed: %s", e)
            return
        logger.info("Device reconnected")
        self.connected = True
        self._prev_screen = None
        self._events.put(DeviceReconnected())

    def _render(self, now: float) -> None:
        shift = self.shift_offset(now)
        with self._layers.locked() as entries:
            screen = composite(entries, self.device.width, self.device.height, shift, now)

        heartbeat = self._last_draw is None or now - self._last_draw >= HEARTBEAT_PERIOD
        if screen == self._prev_screen and not heartbeat:
            return
        self._last_draw = now
        try:
            self.device.draw(screen, 0, 0)
        except DeviceCommunicationError as e:
            self._disconnect(now, e)
            return
        self._prev_screen = screen

    def _forward_device_events(self, now: float) -> None:
        try:
            events = self.device.get_events()
        except DeviceCommunicationError as e:
            self._disconnect(now, e)
            return
        for event in events:
            logger.debug("Device event: %s", event)
            self._events.put(DeviceEventReceived(event))

    def _disconnect(self, now: float, error: Exception) -> None:
        logger.warning("Device disconnected: %s", error)
        self.connected = False
        self._last_connect_attempt = now
        self._events.put(DeviceDisconnected())


class DrawDevice:
    """Thread-safe layered drawing surface backed by a Device.

    Layer edits take effect on the next render tick. Playback starts paused;
    call ``play()`` once the initial layers are in place.
    """

    def __init__(
        self,
        device: Device,
        fps: int = DEFAULT_FPS,
        texter: TextRenderer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Start the render thread.

        Args:
            device: A connected device. It belongs to the render thread until
                ``stop()`` hands it back.
            fps: Render ticks per second.
            texter: Renderer used by ``add_text``. Defaults to the bundled font.
            clock: Monotonic clock in seconds.
        """
        if fps <= 0:
            msg = f"fps must be positive, got {fps}"
            raise ValueError(msg)
        self.width = device.width
        self.height = device.height
        self.texter = texter if texter is not None else TextRenderer()
        self._layers = LayerStore()
        self._commands: queue.Queue[_Command] = queue.Queue()
        self._events: queue.Queue[DrawEvent] = queue.Queue()
        self._renderer = Renderer(device, self._layers, self._events)
        self._period = 1.0 / fps
        self._clock = clock
        self._frame_count = 0
        self._frame_cond = threading.Condition()
        self._stopped = False
        self._thread = threading.Thread(target=self._run, name="ggoled-render", daemon=True)
        self._thread.start()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if not self._stopped:
            self.stop()

    def _run(self) -> None:
        while True:
            start = self._clock()
            stop = False
            while True:
                try:
                    command = self._commands.get_nowait()
                except queue.Empty:
                    break
                stop = self._renderer.apply(command) or stop

            try:
                self._renderer.tick(start)
            except Exception:
                # Only Stop ends the render thread
                logger.exception("Render tick failed")
            finally:
                with self._frame_cond:
                    self._frame_count += 1
                    self._frame_cond.notify_all()

            if stop:
                break

            elapsed = self._clock() - start
            time.sleep(max(0.0, self._period - elapsed))

    def stop(self) -> Device:
        """Stop the render thread and return the device.

        The tick in progress completes before the thread exits.

        Raises:
            RuntimeError: If the engine was already stopped.
        """
        if self._stopped:
            msg = "Draw engine already stopped"
            raise RuntimeError(msg)
        self._stopped = True
        self._commands.put(_Stop())
        self._thread.join()
        return self._renderer.device

    # Playback

    def play(self) -> None:
        self._commands.put(_Play())

    def pause(self) -> None:
        """Stop compositing; reconnects and event polling continue."""
        self._commands.put(_Pause())

    def set_shift_mode(self, mode: ShiftMode) -> None:
        self._commands.put(_SetShiftMode(mode))

    def await_frame(self, timeout: float | None = None) -> bool:
        """Block until a full render tick has run after this call.

        Returns:
            False if the timeout expired first.
        """
        with self._frame_cond:
            target = self._frame_count + 2
            return self._frame_cond.wait_for(
                lambda: self._frame_count >= target or not self._thread.is_alive(),
                timeout,
            )

    # Events

    def try_event(self) -> DrawEvent | None:
        """Return the next pending event, if any."""
        try:
            return self._events.get_nowait()
        except queue.Empty:
            return None

    def poll_event(self, timeout: float | None = None) -> DrawEvent:
        """Block until an event arrives.

        Raises:
            queue.Empty: If ``timeout`` expires.
        """
        return self._events.get(timeout=timeout)

    # Layers

    def add_layer(self, layer: DrawLayer) -> LayerId:
        return self._layers.add(layer)

    def remove_layer(self, layer_id: LayerId) -> None:
        self._layers.remove(layer_id)

    def remove_layers(self, layer_ids: Iterable[LayerId]) -> None:
        self._layers.remove_many(layer_ids)

    def clear_layers(self) -> None:
        self._layers.clear()

    def replace_layers(
        self, remove_ids: Iterable[LayerId], layers: Iterable[DrawLayer]
    ) -> list[LayerId]:
        """Remove and add layers in one step, so no tick sees a partial edit."""
        return self._layers.replace(remove_ids, layers)

    def batch(self) -> AbstractContextManager[LayerBatch]:
        """Context manager for arbitrary atomic layer edits."""
        return self._layers.batch()

    def layer_ids(self) -> list[LayerId]:
        return self._layers.ids()

    # Text helpers

    def center_bitmap(self, bitmap: Bitmap) -> tuple[int, int]:
        """Return the position that centers ``bitmap`` on the screen."""
        return (self.width - bitmap.width) // 2, (self.height - bitmap.height) // 2

    def font_line_height(self) -> int:
        return self.texter.line_height()

    def text_layers(
        self, text: str, x: int | None = None, y: int | None = None
    ) -> list[DrawLayer]:
        """Build one layer per line of text.

        Lines at least as wide as the screen scroll; others are static and
        horizontally centered unless ``x`` is given. Lines stack downwards
        from ``y``, or are vertically centered as a block.
        """
        bitmaps = self.texter.render_lines(text)
        line_height = self.texter.line_height()
        top = y if y is not None else (self.height - line_height * len(bitmaps)) // 2
        layers: list[DrawLayer] = []
        for i, bitmap in enumerate(bitmaps):
            line_y = top + i * line_height
            if bitmap.width >= self.width:
                layers.append(ScrollLayer(bitmap, y=line_y))
            else:
                line_x = x if x is not None else self.center_bitmap(bitmap)[0]
                layers.append(ImageLayer(bitmap, x=line_x, y=line_y))
        return layers

    def add_text(self, text: str, x: int | None = None, y: int | None = None) -> list[LayerId]:
        """Add text as layers (see ``text_layers``) in one atomic edit."""
        return self._layers.replace((), self.text_layers(text, x, y))
