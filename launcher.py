import logging
import math
import time
from argparse import ArgumentParser, Namespace
from os import path
from signal import signal, SIGINT
from threading import Event

import numpy as np
from PIL import Image

from dandyfluid.Settings import Settings
from dandyfluid.fluid import FluidSimulation


def run_headless(settings: Settings, frames: int, output: str | None) -> int:
    """Render frames without a window, stirring the fluid with a synthetic circling input."""
    width: int = settings.window.width
    height: int = settings.window.height
    simulation = FluidSimulation(width, height, settings.fluid)
    if settings.gradient_path:
        simulation.load_gradient(settings.gradient_path)
    simulation.allocate()
    simulation.start()

    radius: float = min(width, height) * 0.25
    start: float = time.perf_counter()
    rendered: int = 0
    previous: tuple[float, float] = (width * 0.5 + radius, height * 0.5)
    for frame in range(frames):
        angle: float = frame * 0.05
        x: float = width * 0.5 + math.cos(angle) * radius
        y: float = height * 0.5 + math.sin(angle) * radius
        simulation.add_input(x, y, x - previous[0], y - previous[1])
        previous = (x, y)
        if not simulation.tick():
            break
        rendered += 1
    elapsed: float = time.perf_counter() - start

    print(f"Rendered {rendered} frames at {simulation.width}x{simulation.height} in {elapsed:.2f}s "
          f"({rendered / elapsed if elapsed > 0 else 0.0:.1f} fps)")
    if simulation.error is not None:
        print(f"Simulation stopped: {simulation.error}")

    surface = simulation.surface.data
    if output and surface is not None:
        Image.fromarray(np.ascontiguousarray(surface[::-1])).save(output)
        print(f"Saved last frame to: {output}")

    simulation.deallocate()
    return 1 if simulation.error is not None else 0


if __name__ == '__main__':
    parser: ArgumentParser = ArgumentParser()
    parser.add_argument('-W',       '--width',          type=int,   default=None,   help='window width')
    parser.add_argument('-H',       '--height',         type=int,   default=None,   help='window height')
    parser.add_argument('-fps',     '--fps',            type=int,   default=None,   help='frames per second, disables v-sync')
    parser.add_argument('-fs',      '--fullscreen',     action='store_true',        help='start fullscreen')
    parser.add_argument('-hl',      '--headless',       type=int,   default=0,      help='render N frames without a window')
    parser.add_argument('-o',       '--output',         type=str,   default=None,   help='save the last headless frame as an image')
    parser.add_argument('-s',       '--settings',       type=str,   default=None,   help='settings file')
    parser.add_argument('-cpu',     '--cpu',            action='store_true',        help='run the passes in numpy instead of GLSL')
    parser.add_argument('-v',       '--verbose',        action='store_true',        help='log allocation and resize details')

    args: Namespace = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format='%(asctime)s %(levelname)s %(message)s')

    settings: Settings = Settings()
    if args.settings:
        settings_path: str = args.settings
        if not settings_path.endswith('.json'):
            settings_path = path.join(path.dirname(__file__), 'files', 'settings', f'{args.settings}.json')
        print(f"Loading settings from: {settings_path}")
        settings = Settings.load(settings_path)

    if args.width:
        settings.window.width = args.width
    if args.height:
        settings.window.height = args.height
    if args.fps:
        settings.window.fps = args.fps
        settings.window.v_sync = False
    if args.fullscreen:
        settings.window.fullscreen = True
    if args.cpu:
        settings.gpu = False

    if args.headless > 0:
        raise SystemExit(run_headless(settings, args.headless, args.output))

    from dandyfluid.Main import Main

    app = Main(settings)
    app.start()

    shutdown_event = Event()

    def signal_handler_exit(sig, frame) -> None:
        print("Received interrupt signal, shutting down...")
        shutdown_event.set()
        if app.is_running:
            app.stop()

    signal(SIGINT, signal_handler_exit)

    while not app.is_finished and not shutdown_event.is_set():
        shutdown_event.wait(0.01)
