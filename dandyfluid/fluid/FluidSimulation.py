"""Fluid Simulation - Interactive 2D Navier-Stokes background.

Runs a fixed sequence of full-screen passes once per frame:
    1. Advect velocity
    2. Inject pointer/touch force and color (if any inputs)
    3. Inject card force and color (if any card inputs)
    4. Reflect velocity at the walls (if enabled)
    5. Compute divergence
    6. Relax pressure with Jacobi iterations
    7. Subtract the pressure gradient
    8. Advect color with decay
    9. Compose the selected field into the surface

Velocity lives in aspect-scaled simulation space: x spans [0, width/height],
y spans [0, 1].
"""

import logging
from typing import Any, Hashable, Iterable

import numpy as np
from PIL import Image

from dandyfluid.gl import BufferPool, Fbo, Texture, PixelFormat, Precision, AllocationError
from dandyfluid.fluid.FluidConfig import FluidConfig, Visualize, ColorMode
from dandyfluid.fluid.FrameState import FrameState
from dandyfluid.fluid.InputTracker import InputTracker
from dandyfluid.fluid.shaders import (
    VelocityInit, ColorInit, Advect, TouchForce, TouchColor, CardForce,
    Boundary, Divergence, JacobiPressure, Gradient, Composition
)

EXTERNAL_INPUT_ID: str = "external"
CARD_INPUT_ID: str = "card-external"


class FluidError(RuntimeError):
    """A frame could not be rendered; the simulation instance is unusable."""


class FluidSimulation:
    """Frame driver owning the buffer pools, the passes and the input trackers.

    Usage:
        sim = FluidSimulation(1280, 720)
        sim.allocate()
        sim.start()
        while sim.tick():      # once per display refresh
            present(sim.surface)
        sim.deallocate()
    """

    def __init__(self, viewport_width: int, viewport_height: int, config: FluidConfig | None = None,
                 gpu: bool = False) -> None:
        """Set up the simulation for a viewport in pixels.

        With gpu the buffers are GL framebuffers and the passes run their GLSL
        programs, so every call must come from the thread that owns the GL
        context. Without it everything runs in numpy on the host.
        """
        self.config: FluidConfig = config or FluidConfig()
        self.gpu: bool = gpu
        fbo_type: type[Fbo] = Fbo
        if gpu:
            from dandyfluid.gl.GpuFbo import GpuFbo
            fbo_type = GpuFbo

        self.viewport_width: int = max(1, int(viewport_width))
        self.viewport_height: int = max(1, int(viewport_height))
        self.width, self.height = self._resolution()
        self.aspect: tuple[float, float] = (self.width / self.height, 1.0)
        self.texel_size: tuple[float, float] = (1.0 / self.width, 1.0 / self.height)

        # Pools (one per field). Divergence and pressure scale with 1/dt and 1/h,
        # a fast swipe takes them past the half float range.
        self.velocity_pool: BufferPool = BufferPool(self.width, self.height, 2, PixelFormat.RGBA, Precision.HALF_FLOAT, 'velocity', fbo_type)
        self.divergence_pool: BufferPool = BufferPool(self.width, self.height, 1, PixelFormat.RGBA, Precision.FLOAT, 'divergence', fbo_type)
        self.pressure_pool: BufferPool = BufferPool(self.width, self.height, 2, PixelFormat.RGBA, Precision.FLOAT, 'pressure', fbo_type)
        self.color_pool: BufferPool = BufferPool(self.width, self.height, 2, PixelFormat.RGB, Precision.UNSIGNED_BYTE, 'color', fbo_type)

        # Seed textures and output
        self._velocity_init_fbo: Fbo = fbo_type()
        self._color_init_fbo: Fbo = fbo_type()
        self.surface: Fbo = fbo_type()
        self.gradient: Texture | None = None
        self._blank_card: Texture | None = None

        # Passes
        self._velocity_init: VelocityInit = VelocityInit()
        self._color_init: ColorInit = ColorInit()
        self._velocity_advection: Advect = Advect()
        self._touch_force: TouchForce = TouchForce()
        self._touch_color: TouchColor = TouchColor()
        self._card_force: CardForce = CardForce()
        self._card_color: TouchColor = TouchColor()
        self._boundary: Boundary = Boundary()
        self._divergence: Divergence = Divergence()
        self._jacobi_pressure: JacobiPressure = JacobiPressure()
        self._gradient: Gradient = Gradient()
        self._color_advection: Advect = Advect()
        self._composition: Composition = Composition()

        self.inputs: InputTracker = InputTracker()
        self.card_inputs: InputTracker = InputTracker()

        self.state: FrameState | None = None
        self.allocated: bool = False
        self.running: bool = False
        self.error: str | None = None
        self.frame_count: int = 0

        self.config.watch(self._on_scale, 'scale')

    @property
    def _passes(self) -> list:
        return [
            self._velocity_init, self._color_init, self._velocity_advection,
            self._touch_force, self._touch_color, self._card_force, self._card_color,
            self._boundary, self._divergence, self._jacobi_pressure, self._gradient,
            self._color_advection, self._composition,
        ]

    @property
    def _pools(self) -> list[BufferPool]:
        return [self.velocity_pool, self.divergence_pool, self.pressure_pool, self.color_pool]

    def _resolution(self) -> tuple[int, int]:
        scale: float = self.config.scale
        return max(1, int(scale * self.viewport_width)), max(1, int(scale * self.viewport_height))

    # ========== Lifecycle ==========

    def allocate(self) -> None:
        """Create buffers, seed textures and passes.

        Raises:
            AllocationError: If any buffer cannot be created.
        """
        if self.allocated:
            return

        for pool in self._pools:
            pool.allocate()
        self._velocity_init_fbo.allocate(self.width, self.height, PixelFormat.RGBA, Precision.HALF_FLOAT)
        self._color_init_fbo.allocate(self.width, self.height, PixelFormat.RGB, Precision.UNSIGNED_BYTE)
        self.surface.allocate(self.width, self.height, PixelFormat.RGB, Precision.UNSIGNED_BYTE)
        self._blank_card = Texture.from_array(np.ones((1, 1, 1), dtype=np.float32))

        for shader in self._passes:
            shader.allocate()
        self._update_resolution_uniforms()
        self._render_init()

        # pressure is warm started across frames, start from zero
        self.state = FrameState(
            velocity=self._velocity_init_fbo,
            color=self._color_init_fbo,
            divergence=self.divergence_pool.acquire_next(),
            pressure=self.pressure_pool.acquire_next(),
        )

        self.allocated = True
        logging.info(f"FluidSimulation: allocated {self.width}x{self.height} for viewport {self.viewport_width}x{self.viewport_height}")

    def deallocate(self) -> None:
        """Stop the loop and release every texture, pool and pass."""
        self.stop()

        for shader in self._passes:
            shader.deallocate()
        for pool in self._pools:
            pool.deallocate()
        self._velocity_init_fbo.deallocate()
        self._color_init_fbo.deallocate()
        self.surface.deallocate()
        if self._blank_card is not None:
            self._blank_card.deallocate()
            self._blank_card = None
        if self.gradient is not None:
            self.gradient.deallocate()
            self.gradient = None

        self.inputs.clear()
        self.card_inputs.clear()
        self.state = None
        self.allocated = False

    def reset(self) -> None:
        """Re-seed velocity and color from the init textures."""
        if self.state is None:
            return
        self.state.velocity = self._velocity_init_fbo
        self.state.color = self._color_init_fbo

    def _render_init(self) -> None:
        self._velocity_init.render(self._velocity_init_fbo)
        self._color_init.render(self._color_init_fbo)

    # ========== Frame loop ==========

    def start(self) -> None:
        """Schedule the frame chain. A simulation that hit a fatal error stays stopped."""
        if self.error is not None:
            logging.warning(f"FluidSimulation: not restarting after fatal error: {self.error}")
            return
        if not self.allocated:
            self.allocate()
        self.running = True

    def stop(self) -> None:
        self.running = False

    def tick(self) -> bool:
        """Render one frame if running. Call once per display refresh.

        Returns:
            True while the loop is alive, False once stopped or failed.
        """
        if not self.running:
            return False
        try:
            self.render()
        except (FluidError, AllocationError) as e:
            self.error = str(e)
            logging.error(f"FluidSimulation: {e}")
            self.stop()
            return False
        return True

    def render(self) -> Fbo:
        """Run one frame and compose it into the surface.

        Raises:
            FluidError: If the simulation is not allocated or a pass is misconfigured.
            AllocationError: If a buffer has been released or cannot be reallocated.
        """
        if not self.allocated or self.state is None:
            raise FluidError("FluidSimulation: render without allocated resources")

        # options are read once, changes apply from the next frame
        config: FluidConfig = self.config
        simulate: bool = config.simulate
        iterations: int = config.iterations
        radius: float = config.radius
        color_decay: float = config.color_decay
        boundaries: bool = config.boundaries
        add_color: bool = config.add_color
        visualize: Visualize = config.visualize
        mode: ColorMode = config.mode
        dt: float = config.dt

        try:
            if simulate:
                self._simulate(self.state, dt, iterations, radius, color_decay, boundaries, add_color)
            self._compose(self.state, visualize, mode)
        except (ValueError, KeyError) as e:
            raise FluidError(f"FluidSimulation: frame {self.frame_count} failed: {e}") from e

        self.frame_count += 1
        return self.surface

    def _simulate(self, state: FrameState, dt: float, iterations: int, radius: float,
                  color_decay: float, boundaries: bool, add_color: bool) -> None:
        inputs = self.inputs.consume()
        cards = self.card_inputs.consume()

        # ===== VELOCITY ADVECTION =====
        self._velocity_advection.update(velocity=state.velocity, input_texture=state.velocity, time_delta=dt)
        state.velocity = self._velocity_advection.render(self.velocity_pool.acquire_next())

        # ===== INPUT FORCE & COLOR =====
        if inputs:
            self._touch_force.update(touches=inputs, radius=radius, velocity=state.velocity)
            state.velocity = self._touch_force.render(self.velocity_pool.acquire_next())

            if add_color:
                self._touch_color.update(touches=inputs, radius=radius, color=state.color)
                state.color = self._touch_color.render(self.color_pool.acquire_next())

        # ===== CARD FORCE & COLOR =====
        if cards:
            card_texture: Texture | None = cards[0].texture
            if card_texture is None:
                card_texture = self._blank_card

            self._card_force.update(touches=cards, radius=radius, velocity=state.velocity, card_texture=card_texture)
            state.velocity = self._card_force.render(self.velocity_pool.acquire_next())

            if add_color:
                self._card_color.update(touches=cards, radius=radius, color=state.color, mask=card_texture)
                state.color = self._card_color.render(self.color_pool.acquire_next())

        # ===== BOUNDARIES =====
        if boundaries:
            self._boundary.update(velocity=state.velocity)
            state.velocity = self._boundary.render(self.velocity_pool.acquire_next())

        # ===== DIVERGENCE =====
        self._divergence.update(velocity=state.velocity, time_delta=dt)
        state.divergence = self._divergence.render(self.divergence_pool.acquire_next())

        # ===== PRESSURE =====
        self._jacobi_pressure.update(divergence=state.divergence)
        for _ in range(iterations):
            self._jacobi_pressure.update(pressure=state.pressure)
            state.pressure = self._jacobi_pressure.render(self.pressure_pool.acquire_next())

        # ===== GRADIENT SUBTRACTION =====
        self._gradient.update(velocity=state.velocity, pressure=state.pressure, time_delta=dt)
        state.velocity = self._gradient.render(self.velocity_pool.acquire_next())

        # ===== COLOR ADVECTION =====
        self._color_advection.update(velocity=state.velocity, input_texture=state.color,
                                     time_delta=dt, decay=color_decay)
        state.color = self._color_advection.render(self.color_pool.acquire_next())

    def _compose(self, state: FrameState, visualize: Visualize, mode: ColorMode) -> None:
        sources: dict[Visualize, Fbo] = {
            Visualize.COLOR: state.color,
            Visualize.VELOCITY: state.velocity,
            Visualize.DIVERGENCE: state.divergence,
            Visualize.PRESSURE: state.pressure,
        }
        self._composition.update(color_buffer=sources[visualize], mode=mode, gradient=self.gradient)
        self._composition.render(self.surface)

    # ========== Resize ==========

    def on_resize(self, viewport_width: int, viewport_height: int) -> None:
        """Recompute the simulation resolution for a new viewport size.

        Zero sized viewports are clamped to 1x1. Pools reallocate lazily, the
        current fields are resampled by the next passes.
        """
        self.viewport_width = max(1, int(viewport_width))
        self.viewport_height = max(1, int(viewport_height))
        width, height = self._resolution()
        if (width, height) == (self.width, self.height):
            return

        self.width, self.height = width, height
        self.aspect = (width / height, 1.0)
        self.texel_size = (1.0 / width, 1.0 / height)

        for pool in self._pools:
            pool.resize(width, height)
        if self.allocated:
            self.surface.resize(width, height)
            self._velocity_init_fbo.resize(width, height)
            self._color_init_fbo.resize(width, height)
            self._render_init()
        self._update_resolution_uniforms()
        logging.info(f"FluidSimulation: resized to {width}x{height} for viewport {self.viewport_width}x{self.viewport_height}")

    def _update_resolution_uniforms(self) -> None:
        for shader in (self._velocity_advection, self._color_advection, self._touch_force,
                       self._touch_color, self._card_force, self._card_color):
            shader.update(aspect=self.aspect)
        for shader in (self._divergence, self._jacobi_pressure, self._gradient):
            shader.update(aspect=self.aspect, texel_size=self.texel_size)

    def _on_scale(self, _: float) -> None:
        self.on_resize(self.viewport_width, self.viewport_height)

    # ========== Options ==========

    def set_option(self, key: str, value: Any) -> None:
        """Set a configuration option by name or display name. A new scale resizes the simulation."""
        self.config.set_option(key, value)

    def load_gradient(self, path: str) -> None:
        """Load a horizontal color ramp used by the GRADIENT color mode."""
        with Image.open(path) as image:
            self.set_gradient(np.asarray(image.convert('RGB')))
        logging.info(f"FluidSimulation: loaded gradient {path}")

    def set_gradient(self, image: np.ndarray) -> None:
        if self.gradient is not None:
            self.gradient.deallocate()
        self.gradient = Texture.from_array(image)

    # ========== Input ==========

    def _to_simulation(self, x: float, y: float) -> tuple[float, float]:
        return x / self.viewport_width * self.aspect[0], 1.0 - y / self.viewport_height

    def _velocity_to_simulation(self, vx: float, vy: float) -> tuple[float, float]:
        return vx / self.viewport_width * self.aspect[0], -vy / self.viewport_height

    def add_input(self, x: float, y: float, vx: float = 0.0, vy: float = 0.0) -> None:
        """Feed a synthetic input in screen pixels, y pointing down."""
        self.inputs.set(EXTERNAL_INPUT_ID, *self._to_simulation(x, y), *self._velocity_to_simulation(vx, vy))

    def add_card_input(self, x: float, y: float, vx: float = 0.0, vy: float = 0.0,
                       texture: Texture | np.ndarray | None = None) -> None:
        """Feed a card input whose texture shapes the injected force and color. It stays until end_card_input()."""
        if texture is not None and not isinstance(texture, Texture):
            texture = Texture.from_array(texture)
        self.card_inputs.set(CARD_INPUT_ID, *self._to_simulation(x, y), *self._velocity_to_simulation(vx, vy), texture)

    def end_card_input(self) -> None:
        """Remove the card input. The card passes stop running from the next frame."""
        self.card_inputs.end(CARD_INPUT_ID)

    def pointer_down(self, input_id: Hashable, x: float, y: float) -> None:
        self.inputs.begin(input_id, *self._to_simulation(x, y))

    def pointer_move(self, input_id: Hashable, x: float, y: float) -> None:
        self.inputs.move(input_id, *self._to_simulation(x, y))

    def pointer_up(self, input_id: Hashable) -> None:
        self.inputs.end(input_id)

    def touch_cancel(self, active_ids: Iterable[Hashable]) -> None:
        """Drop every touch that the host no longer reports as active."""
        active: set[Hashable] = set(active_ids)
        active.add(EXTERNAL_INPUT_ID)
        self.inputs.cancel(active)
