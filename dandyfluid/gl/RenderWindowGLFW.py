"""GLFW host window running its own render thread.

The window owns the GL context: allocate(), draw() and deallocate() are always
called from the render thread. Input is forwarded to registered callbacks in
framebuffer pixels with y pointing down.
"""

import logging
import time
from enum import Enum
from threading import Thread, Lock, current_thread
from typing import Callable, Optional

import OpenGL.GL as gl
import glfw

from dandyfluid.gl.Utils import FpsCounter


class Button(Enum):
    NONE =          0
    LEFT_UP =       1
    LEFT_DOWN =     2
    RIGHT_UP =      3
    RIGHT_DOWN =    4


_BUTTONS: dict[tuple[int, int], Button] = {
    (glfw.MOUSE_BUTTON_LEFT, glfw.PRESS):     Button.LEFT_DOWN,
    (glfw.MOUSE_BUTTON_LEFT, glfw.RELEASE):   Button.LEFT_UP,
    (glfw.MOUSE_BUTTON_RIGHT, glfw.PRESS):    Button.RIGHT_DOWN,
    (glfw.MOUSE_BUTTON_RIGHT, glfw.RELEASE):  Button.RIGHT_UP,
}

MouseCallback = Callable[[float, float, Button], None]
KeyCallback = Callable[[bytes, float, float], None]


class RenderWindow():
    """Single resizable window, optionally fullscreen on a chosen monitor.

    Subclasses override allocate(), deallocate(), draw() and window_reshape().
    """

    def __init__(self, width: int, height: int, name: str, fullscreen: bool = False, v_sync: bool = True,
                 fps: int | None = None, posX: int = 0, posY: int = 0, monitor_id: int = 0) -> None:
        self.window_width: int = width
        self.window_height: int = height
        self._windowed_size: tuple[int, int] = (width, height)
        self._windowed_pos: tuple[int, int] = (posX, posY)
        self.fullscreen: bool = fullscreen
        self.monitor_id: int = monitor_id
        self.monitor: Optional[glfw._GLFWmonitor] = None

        # a fixed frame rate replaces v-sync
        self.frame_interval: int | None = int(1_000_000_000 / fps) if fps and fps > 0 else None
        self.v_sync: bool = v_sync and self.frame_interval is None

        self.windowName: str = name
        self.title_status: str = ''
        self.fps = FpsCounter()
        self.mouse_x: float = 0.0
        self.mouse_y: float = 0.0

        self.main_window: Optional[glfw._GLFWwindow] = None
        self.render_thread: Thread | None = None
        self.callback_lock = Lock()
        self.mouse_callbacks: set[MouseCallback] = set()
        self.key_callbacks: set[KeyCallback] = set()
        self.exit_callbacks: set[Callable[[], None]] = set()

    # THREAD
    def start(self) -> None:
        if self.render_thread is not None and self.render_thread.is_alive():
            return
        self.render_thread = Thread(target=self.run, daemon=False)
        self.render_thread.start()

    def stop(self) -> None:
        """Close the window and wait for the render thread to finish."""
        if self.render_thread is None or not self.render_thread.is_alive():
            return
        self._request_close()
        if current_thread() is self.render_thread:
            return

        self.clearCallbacks()
        self.render_thread.join(timeout=2.0)
        if self.render_thread.is_alive():
            logging.warning("RenderWindow: render thread did not stop within 2 seconds")

    def run(self) -> None:
        try:
            self._create_window()
            gl.glEnable(gl.GL_TEXTURE_2D)
            gl.glDisable(gl.GL_BLEND)
            logging.info(f"RenderWindow: OpenGL {gl.glGetString(gl.GL_VERSION).decode('utf-8')}")  # type: ignore
            self.allocate()
            self._loop()
        except Exception:
            logging.exception("RenderWindow: render thread failed")
        finally:
            self.deallocate()
            self._destroy_window()

    def _request_close(self) -> None:
        if self.main_window:
            glfw.set_window_should_close(self.main_window, True)
            glfw.post_empty_event()

    # WINDOW
    def _create_window(self) -> None:
        if not glfw.init():
            raise RuntimeError("Failed to initialize GLFW")

        glfw.window_hint(glfw.CONTEXT_VERSION_MAJOR, 2)
        glfw.window_hint(glfw.CONTEXT_VERSION_MINOR, 1)
        glfw.window_hint(glfw.RESIZABLE, glfw.TRUE)

        monitors = glfw.get_monitors()
        self.monitor = monitors[self.monitor_id] if 0 <= self.monitor_id < len(monitors) else glfw.get_primary_monitor()

        self.main_window = glfw.create_window(self.window_width, self.window_height, self.windowName, None, None)
        if not self.main_window:
            glfw.terminate()
            raise RuntimeError("Failed to create GLFW window")

        monitor_x, monitor_y = glfw.get_monitor_pos(self.monitor)
        self._windowed_pos = (self._windowed_pos[0] + monitor_x, self._windowed_pos[1] + monitor_y)
        glfw.set_window_pos(self.main_window, *self._windowed_pos)

        glfw.make_context_current(self.main_window)
        glfw.swap_interval(1 if self.v_sync else 0)

        glfw.set_framebuffer_size_callback(self.main_window, self._on_framebuffer_size)
        glfw.set_key_callback(self.main_window, self._on_key)
        glfw.set_cursor_pos_callback(self.main_window, self._on_cursor)
        glfw.set_mouse_button_callback(self.main_window, self._on_mouse_button)

        if self.fullscreen:
            self.fullscreen = False
            self.setFullscreen(True)

        # framebuffer can differ from window size on high dpi screens
        self.window_reshape(*glfw.get_framebuffer_size(self.main_window))

    def _destroy_window(self) -> None:
        if self.main_window:
            glfw.destroy_window(self.main_window)
            self.main_window = None
        glfw.terminate()

        with self.callback_lock:
            callbacks = list(self.exit_callbacks)
        for callback in callbacks:
            callback()

    def setFullscreen(self, value: bool) -> None:
        if not self.main_window or self.fullscreen == value:
            return
        self.fullscreen = value

        if value:
            self._windowed_size = glfw.get_window_size(self.main_window)
            self._windowed_pos = glfw.get_window_pos(self.main_window)
            mode = glfw.get_video_mode(self.monitor)
            glfw.set_window_monitor(self.main_window, self.monitor, 0, 0, mode.size.width, mode.size.height, mode.refresh_rate)
            glfw.set_input_mode(self.main_window, glfw.CURSOR, glfw.CURSOR_HIDDEN)
        else:
            glfw.set_window_monitor(self.main_window, None, *self._windowed_pos, *self._windowed_size, 0)
            glfw.set_input_mode(self.main_window, glfw.CURSOR, glfw.CURSOR_NORMAL)

    def window_reshape(self, width: int, height: int) -> None:
        self.window_width = width
        self.window_height = height
        self.setView(width, height)

    def setView(self, width: int, height: int) -> None:
        # pixel coordinates, origin top left
        gl.glViewport(0, 0, width, height)
        gl.glMatrixMode(gl.GL_PROJECTION)
        gl.glLoadIdentity()
        gl.glOrtho(0, width, height, 0, -1, 1)
        gl.glMatrixMode(gl.GL_MODELVIEW)

    # FRAME
    def _loop(self) -> None:
        next_frame: int = time.time_ns()
        while not glfw.window_should_close(self.main_window):
            self._frame()
            glfw.poll_events()
            if self.frame_interval:
                next_frame = self._pace(next_frame, self.frame_interval)

    @staticmethod
    def _pace(next_frame: int, interval: int) -> int:
        next_frame += interval
        now: int = time.time_ns()
        if next_frame > now:
            time.sleep((next_frame - now) / 1_000_000_000)
        elif now - next_frame > interval:
            # more than a frame behind, drop the backlog
            next_frame = now
        return next_frame

    def _frame(self) -> None:
        status: str = self.title_status or f'FPS: {self.fps.get_fps()} (Min: {self.fps.get_min_fps()})'
        glfw.set_window_title(self.main_window, f'{self.windowName} - {status}')

        gl.glClear(gl.GL_COLOR_BUFFER_BIT)  # type: ignore
        gl.glLoadIdentity()
        self.draw()
        glfw.swap_buffers(self.main_window)
        self.fps.tick()

    def allocate(self) -> None:
        """Create GL resources, called on the render thread once the context exists."""

    def deallocate(self) -> None:
        """Release GL resources, called on the render thread before the context is destroyed."""

    def draw(self) -> None:
        pass

    # INPUT
    def _on_framebuffer_size(self, window, width: int, height: int) -> None:
        # minimized windows report 0x0, keep the last size
        if width > 0 and height > 0:
            self.window_reshape(width, height)

    def _on_key(self, window, key: int, scancode: int, action: int, mods: int) -> None:
        if action not in (glfw.PRESS, glfw.REPEAT):
            return
        if key == glfw.KEY_ESCAPE:
            self._request_close()
        elif key == glfw.KEY_F:
            self.setFullscreen(not self.fullscreen)
        elif 32 <= key <= 126:
            with self.callback_lock:
                callbacks = list(self.key_callbacks)
            for callback in callbacks:
                callback(bytes([key]), self.mouse_x, self.mouse_y)

    def _on_cursor(self, window, x: float, y: float) -> None:
        # cursor positions are in screen coordinates, scale to framebuffer pixels
        window_width, window_height = glfw.get_window_size(window)
        self.mouse_x = x * self.window_width / window_width if window_width > 0 else x
        self.mouse_y = y * self.window_height / window_height if window_height > 0 else y
        self._notify_mouse(Button.NONE)

    def _on_mouse_button(self, window, button: int, action: int, mods: int) -> None:
        self._notify_mouse(_BUTTONS.get((button, action), Button.NONE))

    def _notify_mouse(self, button: Button) -> None:
        with self.callback_lock:
            callbacks = list(self.mouse_callbacks)
        for callback in callbacks:
            callback(self.mouse_x, self.mouse_y, button)

    def addMouseCallback(self, callback: MouseCallback) -> None:
        with self.callback_lock:
            self.mouse_callbacks.add(callback)

    def addKeyboardCallback(self, callback: KeyCallback) -> None:
        with self.callback_lock:
            self.key_callbacks.add(callback)

    def addExitCallback(self, callback: Callable[[], None]) -> None:
        with self.callback_lock:
            self.exit_callbacks.add(callback)

    def clearCallbacks(self) -> None:
        with self.callback_lock:
            self.mouse_callbacks.clear()
            self.key_callbacks.clear()
            self.exit_callbacks.clear()
