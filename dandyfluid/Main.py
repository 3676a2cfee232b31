import logging

import OpenGL.GL as gl

from dandyfluid.Settings import Settings, WindowSettings
from dandyfluid.fluid import FluidSimulation, Visualize, ColorMode
from dandyfluid.gl.Image import Image
from dandyfluid.gl.RenderWindowGLFW import RenderWindow, Button

MOUSE_ID: str = "mouse"
FALLBACK_COLOR: tuple[float, float, float] = (0.08, 0.08, 0.1)


def _cycle(enum_type, current):
    members = list(enum_type)
    return members[(members.index(current) + 1) % len(members)]


class FluidWindow(RenderWindow):
    """Presents the simulation surface full-window and forwards mouse input.

    With a GPU simulation the passes render into framebuffers on this thread
    and the surface texture is drawn directly, otherwise the host surface is
    uploaded every frame.

    Keys: R reset, S toggle simulation, B toggle boundaries, C toggle color,
    V next visualized field, M next color mode, F fullscreen, ESC quit.
    """

    def __init__(self, simulation: FluidSimulation, settings: WindowSettings) -> None:
        fps: int | None = None if settings.v_sync else settings.fps
        super().__init__(settings.width, settings.height, settings.title, settings.fullscreen,
                         settings.v_sync, fps, settings.x, settings.y, settings.monitor)
        self.simulation: FluidSimulation = simulation
        self.image: Image = Image()
        self.addMouseCallback(self.mouse_callback)
        self.addKeyboardCallback(self.key_callback)

    def allocate(self) -> None:
        self.simulation.allocate()
        self.simulation.start()

    def deallocate(self) -> None:
        self.image.deallocate()
        self.simulation.deallocate()

    def window_reshape(self, width: int, height: int) -> None:
        super().window_reshape(width, height)
        self.simulation.on_resize(width, height)

    def draw(self) -> None:
        if self.simulation.tick():
            surface = self.simulation.surface
            if surface.on_gpu:
                surface.draw(0, 0, self.window_width, self.window_height)
            elif surface.data is not None:
                self.image.set_from_image(surface.data)
                self.image.draw(0, 0, self.window_width, self.window_height)
            return

        if self.simulation.error is not None:
            self.title_status = f"Error: {self.simulation.error}"
            gl.glClearColor(*FALLBACK_COLOR, 1.0)
            gl.glClear(gl.GL_COLOR_BUFFER_BIT)  # type: ignore

    def mouse_callback(self, x: float, y: float, button: Button) -> None:
        if button == Button.LEFT_DOWN:
            self.simulation.pointer_down(MOUSE_ID, x, y)
        elif button == Button.RIGHT_DOWN:
            self.simulation.reset()
        else:
            # hover forcing: untracked moves begin tracking implicitly
            self.simulation.pointer_move(MOUSE_ID, x, y)

    def key_callback(self, key: bytes, x: float, y: float) -> None:
        config = self.simulation.config
        if key == b'R':
            self.simulation.reset()
        elif key == b'S':
            self.simulation.set_option("Simulate", not config.simulate)
        elif key == b'B':
            self.simulation.set_option("Boundaries", not config.boundaries)
        elif key == b'C':
            self.simulation.set_option("AddColor", not config.add_color)
        elif key == b'V':
            self.simulation.set_option("Visualize", _cycle(Visualize, config.visualize))
        elif key == b'M':
            self.simulation.set_option("Mode", _cycle(ColorMode, config.mode))


class Main():
    def __init__(self, settings: Settings) -> None:
        self.settings: Settings = settings

        self.is_running: bool = False
        self.is_finished: bool = False

        self.simulation = FluidSimulation(settings.window.width, settings.window.height, settings.fluid, settings.gpu)
        if settings.gradient_path:
            try:
                self.simulation.load_gradient(settings.gradient_path)
            except OSError as e:
                logging.warning(f"Main: could not load gradient {settings.gradient_path}: {e}")

        self.window = FluidWindow(self.simulation, settings.window)

    def start(self) -> None:
        self.window.addExitCallback(self.stop)
        self.window.start()
        self.is_running = True

    def stop(self) -> None:
        if not self.is_running:
            return
        self.is_running = False
        print("Stopping fluid window...")
        self.window.stop()
        self.is_finished = True
