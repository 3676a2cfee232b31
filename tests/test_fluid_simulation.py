import os
import tempfile
from unittest import TestCase, mock

import numpy as np
from numpy.testing import assert_array_equal, assert_allclose
from PIL import Image

from dandyfluid.gl import Texture, Precision, AllocationError
from dandyfluid.fluid import FluidSimulation, FluidConfig, FluidError, Visualize, ColorMode
from dandyfluid.fluid.FluidSimulation import EXTERNAL_INPUT_ID, CARD_INPUT_ID
from dandyfluid.fluid.shaders import MAX_INPUTS


def small_simulation(width: int = 64, height: int = 48, **options) -> FluidSimulation:
    config = FluidConfig(iterations=4)
    for key, value in options.items():
        config.set_option(key, value)
    sim = FluidSimulation(width, height, config)
    sim.allocate()
    sim.start()
    return sim


class LifecycleTest(TestCase):

    def test_resolution_follows_scale(self):
        sim = FluidSimulation(64, 48)
        self.assertEqual((32, 24), (sim.width, sim.height))
        self.assertAlmostEqual(32 / 24, sim.aspect[0])
        sim.allocate()
        self.assertEqual((32, 24), (sim.surface.width, sim.surface.height))
        sim.start()
        self.assertTrue(sim.tick())
        self.assertEqual(1, sim.frame_count)
        sim.deallocate()

    def test_tick_before_start_does_nothing(self):
        sim = FluidSimulation(16, 16)
        sim.allocate()
        self.assertFalse(sim.tick())
        self.assertEqual(0, sim.frame_count)

    def test_render_without_allocation(self):
        sim = FluidSimulation(16, 16)
        with self.assertRaises(FluidError):
            sim.render()

    def test_start_allocates(self):
        sim = FluidSimulation(16, 16)
        sim.start()
        self.assertTrue(sim.allocated)
        self.assertTrue(sim.running)

    def test_deallocate_releases_everything(self):
        sim = small_simulation()
        sim.add_input(10, 10, 2, 2)
        sim.set_gradient(np.zeros((1, 4, 3), dtype=np.uint8))
        sim.tick()
        sim.deallocate()
        self.assertFalse(sim.allocated)
        self.assertFalse(sim.running)
        self.assertIsNone(sim.state)
        self.assertIsNone(sim.gradient)
        self.assertFalse(sim.surface.allocated)
        self.assertFalse(any(pool.allocated for pool in (sim.velocity_pool, sim.color_pool)))
        self.assertEqual(0, len(sim.inputs))
        self.assertFalse(sim.tick())

    def test_fields_at_rest_stay_at_rest(self):
        sim = small_simulation()
        for _ in range(3):
            self.assertTrue(sim.tick())
        assert_array_equal(0.0, sim.state.velocity.read())
        assert_array_equal(0.0, sim.state.color.read())
        assert_array_equal(0, sim.surface.data)

    def test_reset_restores_init_fields(self):
        sim = small_simulation()
        sim.add_input(32, 24, 8, 0)
        sim.tick()
        self.assertIsNot(sim._velocity_init_fbo, sim.state.velocity)
        sim.reset()
        self.assertIs(sim._velocity_init_fbo, sim.state.velocity)
        self.assertIs(sim._color_init_fbo, sim.state.color)
        sim.tick()
        assert_array_equal(0.0, sim.state.velocity.read())


class FrameTest(TestCase):

    def test_color_decays_without_flow(self):
        sim = small_simulation(color_decay=0.1)
        sim.state.color.clear(1.0, 1.0, 1.0)
        for _ in range(10):
            self.assertTrue(sim.tick())
        assert_allclose(0.9 ** 10, sim.state.color.read(), atol=0.02)

    def test_zero_decay_keeps_color(self):
        sim = small_simulation(color_decay=0.0)
        sim.state.color.clear(0.2, 0.4, 0.6)
        for _ in range(3):
            sim.tick()
        assert_allclose([0.2, 0.4, 0.6], sim.state.color.read()[5, 5], atol=1 / 255)

    def test_default_decay_fades_color_to_black(self):
        sim = small_simulation()
        sim.state.color.clear(0.15, 0.15, 0.15)
        for _ in range(60):
            self.assertTrue(sim.tick())
        assert_array_equal(0.0, sim.state.color.read())
        assert_array_equal(0, sim.surface.data)

    def test_fast_swipe_keeps_fields_finite(self):
        sim = small_simulation(1280, 720, scale=0.25, iterations=8)
        self.assertEqual(Precision.FLOAT, sim.divergence_pool.precision)
        self.assertEqual(Precision.FLOAT, sim.pressure_pool.precision)
        sim.pointer_down("mouse", 40, 360)
        x = 40
        for _ in range(5):
            x += 250
            sim.pointer_move("mouse", x, 360)
            self.assertTrue(sim.tick())
        for _ in range(30):
            self.assertTrue(sim.tick())
        self.assertIsNone(sim.error)
        for field in (sim.state.velocity, sim.state.divergence, sim.state.pressure):
            self.assertTrue(np.all(np.isfinite(field.read())))

    def test_input_moves_fluid_and_paints(self):
        sim = small_simulation()
        sim.add_input(32, 24, 10, 0)
        self.assertTrue(sim.tick())
        velocity = sim.state.velocity.read()
        self.assertGreater(np.abs(velocity[..., 0]).max(), 0.0)
        self.assertGreater(sim.state.color.read().max(), 0.0)
        self.assertGreater(int(sim.surface.data.max()), 0)
        # velocity was consumed by the frame
        self.assertEqual(0.0, sim.inputs.get(EXTERNAL_INPUT_ID).vx)

    def test_no_color_when_disabled(self):
        sim = small_simulation(add_color=False)
        sim.add_input(32, 24, 10, 0)
        sim.tick()
        assert_array_equal(0.0, sim.state.color.read())

    def test_saturated_inputs(self):
        sim = small_simulation()
        for i in range(15):
            sim.inputs.set(i, 0.05 * i, 0.5, 0.01, 0.0)
        self.assertTrue(sim.tick())
        packed = sim._touch_force.uniforms["inputs"]
        self.assertEqual((MAX_INPUTS, 4), packed.shape)
        assert_allclose([0.05 * i for i in range(MAX_INPUTS)], packed[:, 0], atol=1e-6)

    def test_card_input_with_array_texture(self):
        sim = small_simulation()
        sim.add_card_input(32, 24, 10, 0, texture=np.full((8, 8), 255, dtype=np.uint8))
        self.assertIsInstance(sim.card_inputs.get(CARD_INPUT_ID).texture, Texture)
        self.assertTrue(sim.tick())
        self.assertGreater(np.abs(sim.state.velocity.read()[..., 0]).max(), 0.0)
        self.assertGreater(sim.state.color.read().max(), 0.0)

    def test_card_input_without_texture(self):
        sim = small_simulation()
        sim.add_card_input(32, 24, 10, 0)
        self.assertTrue(sim.tick())
        self.assertGreater(np.abs(sim.state.velocity.read()[..., 0]).max(), 0.0)

    def test_end_card_input_stops_card_passes(self):
        sim = small_simulation()
        sim.add_card_input(32, 24, 10, 0)
        self.assertTrue(sim.tick())
        sim.end_card_input()
        self.assertNotIn(CARD_INPUT_ID, sim.card_inputs)
        with mock.patch.object(sim._card_force, 'render', wraps=sim._card_force.render) as render:
            self.assertTrue(sim.tick())
        self.assertEqual(0, render.call_count)

    def test_boundaries_toggle(self):
        sim = small_simulation()
        with mock.patch.object(sim._boundary, 'render', wraps=sim._boundary.render) as render:
            sim.tick()
            self.assertEqual(1, render.call_count)
            sim.set_option("Boundaries", False)
            sim.tick()
            self.assertEqual(1, render.call_count)

    def test_jacobi_iteration_count(self):
        sim = small_simulation(iterations=7)
        with mock.patch.object(sim._jacobi_pressure, 'render', wraps=sim._jacobi_pressure.render) as render:
            sim.tick()
        self.assertEqual(7, render.call_count)

    def test_paused_simulation_only_composes(self):
        sim = small_simulation(simulate=False)
        sim.add_input(32, 24, 10, 0)
        velocity = sim.state.velocity
        self.assertTrue(sim.tick())
        self.assertIs(velocity, sim.state.velocity)
        self.assertEqual(1, sim.frame_count)
        # inputs are left for the next simulated frame
        self.assertNotEqual(0.0, sim.inputs.get(EXTERNAL_INPUT_ID).vx)

    def test_velocity_visualized_as_vector(self):
        sim = small_simulation(visualize="Velocity", mode="Vector")
        sim.tick()
        assert_array_equal(128, sim.surface.data)

    def test_fatal_error_stops_the_loop(self):
        sim = small_simulation()
        self.assertTrue(sim.tick())
        with mock.patch.object(sim.velocity_pool, 'acquire_next', side_effect=AllocationError("context lost")) as acquire:
            with self.assertLogs(level='ERROR'):
                self.assertFalse(sim.tick())
            self.assertFalse(sim.tick())
            self.assertEqual(1, acquire.call_count)
        self.assertIn("context lost", sim.error)
        self.assertFalse(sim.running)
        with self.assertLogs(level='WARNING'):
            sim.start()
        self.assertFalse(sim.running)


class ResizeTest(TestCase):

    def test_resize_mid_simulation(self):
        sim = small_simulation(1600, 900, iterations=2)
        self.assertEqual((800, 450), (sim.width, sim.height))
        sim.add_input(800, 450, 20, 0)
        self.assertTrue(sim.tick())

        sim.on_resize(800, 450)
        self.assertEqual((400, 225), (sim.width, sim.height))
        self.assertAlmostEqual(400 / 225, sim.aspect[0])
        self.assertEqual((1 / 400, 1 / 225), sim.texel_size)
        self.assertTrue(sim.tick())
        for field in (sim.state.velocity, sim.state.color, sim.state.pressure, sim.state.divergence, sim.surface):
            self.assertEqual((400, 225), (field.width, field.height))

    def test_degenerate_viewport(self):
        sim = small_simulation(0, 0)
        self.assertEqual((1, 1), (sim.width, sim.height))
        self.assertTrue(sim.tick())
        sim.on_resize(-5, 0)
        self.assertEqual((1, 1), (sim.width, sim.height))
        self.assertTrue(sim.tick())

    def test_same_resolution_is_noop(self):
        sim = small_simulation()
        sim.on_resize(65, 49)
        self.assertEqual(0, sim.velocity_pool.pending_resize())

    def test_scale_option_resizes(self):
        sim = small_simulation()
        sim.set_option("scale", "0.25")
        self.assertEqual((16, 12), (sim.width, sim.height))
        self.assertTrue(sim.tick())
        self.assertEqual((16, 12), (sim.surface.width, sim.surface.height))
        sim.set_option("Scale", 0.001)
        self.assertEqual(0.05, sim.config.scale)


class OptionTest(TestCase):

    def test_set_option_by_alias_and_clamping(self):
        sim = FluidSimulation(32, 32)
        sim.set_option("Iterations", 500)
        self.assertEqual(128, sim.config.iterations)
        sim.set_option("ColorDecay", "0.5")
        self.assertEqual(0.5, sim.config.color_decay)
        sim.set_option("add_color", "off")
        self.assertFalse(sim.config.add_color)
        sim.set_option("Mode", "luminance")
        self.assertEqual(ColorMode.LUMINANCE, sim.config.mode)
        sim.set_option("visualize", Visualize.PRESSURE)
        self.assertEqual(Visualize.PRESSURE, sim.config.visualize)
        sim.set_option("Timestep", "1 / 30")
        self.assertAlmostEqual(1 / 30, sim.config.dt)

    def test_invalid_options(self):
        sim = FluidSimulation(32, 32)
        with self.assertRaises(KeyError):
            sim.set_option("viscosity", 1.0)
        with self.assertRaises(ValueError):
            sim.set_option("Mode", "Plasma")
        with self.assertRaises(ValueError):
            sim.set_option("Timestep", "1/7")
        with self.assertRaises(ValueError):
            sim.set_option("Radius", "wide")

    def test_load_gradient(self):
        sim = small_simulation()
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, "ramp.png")
            Image.new('RGB', (4, 1), (255, 0, 0)).save(path)
            sim.load_gradient(path)
        self.assertEqual((4, 1), (sim.gradient.width, sim.gradient.height))
        sim.set_option("Mode", "Gradient")
        sim.state.color.clear(1.0, 1.0, 1.0)
        self.assertTrue(sim.tick())
        self.assertEqual(255, sim.surface.data[..., 0].max())
        self.assertEqual(0, sim.surface.data[..., 1:].max())


class InputTest(TestCase):

    def test_screen_to_simulation_space(self):
        sim = FluidSimulation(200, 100)
        sim.add_input(50, 25, 10, 5)
        point = sim.inputs.get(EXTERNAL_INPUT_ID)
        assert_allclose([0.5, 0.75, 0.1, -0.05], [point.x, point.y, point.vx, point.vy])

    def test_pointer_lifecycle(self):
        sim = FluidSimulation(200, 100)
        sim.pointer_down("mouse", 100, 50)
        sim.pointer_move("mouse", 120, 50)
        point = sim.inputs.get("mouse")
        assert_allclose([1.2, 0.5, 0.2, 0.0], [point.x, point.y, point.vx, point.vy])
        sim.pointer_up("mouse")
        self.assertNotIn("mouse", sim.inputs)

    def test_touch_cancel_keeps_active_and_external(self):
        sim = FluidSimulation(200, 100)
        sim.pointer_down(1, 10, 10)
        sim.pointer_down(2, 20, 20)
        sim.add_input(30, 30)
        sim.touch_cancel([2])
        self.assertNotIn(1, sim.inputs)
        self.assertIn(2, sim.inputs)
        self.assertIn(EXTERNAL_INPUT_ID, sim.inputs)


class HeadlessTest(TestCase):

    def test_run_headless_saves_last_frame(self):
        from launcher import run_headless
        from dandyfluid.Settings import Settings

        settings = Settings()
        settings.window.width = 48
        settings.window.height = 32
        settings.fluid.set_option("iterations", 2)
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, "frame.png")
            self.assertEqual(0, run_headless(settings, 5, path))
            with Image.open(path) as image:
                self.assertEqual((24, 16), image.size)
