import re
from unittest import TestCase, mock

import numpy as np
from numpy.testing import assert_array_equal, assert_allclose

from dandyfluid.gl import Fbo, Texture, PixelFormat, Precision, Wrap, AllocationError
from dandyfluid.gl.Shader import uniform_value
from dandyfluid.fluid import ColorMode, InputPoint
from dandyfluid.fluid.shaders import (
    Advect, TouchForce, TouchColor, CardForce, Boundary, Divergence,
    JacobiPressure, Gradient, Composition, VelocityInit, ColorInit, MAX_INPUTS,
    MAX_INPUT_SPEED, MAX_SPEED, pack_inputs
)


def make_fbo(width: int, height: int, values=None, pixel_format: PixelFormat = PixelFormat.RGBA,
             precision: Precision = Precision.FLOAT) -> Fbo:
    fbo = Fbo()
    fbo.allocate(width, height, pixel_format, precision)
    if values is not None:
        fbo.write(np.broadcast_to(np.asarray(values, dtype=np.float32), (height, width, pixel_format.channels)))
    return fbo


def allocated(shader):
    shader.allocate()
    return shader


def laplacian_residual(pressure: np.ndarray, divergence: np.ndarray, h: float) -> float:
    p = np.pad(pressure.astype(np.float64), 1, mode='edge')
    lap = (p[1:-1, :-2] + p[1:-1, 2:] + p[:-2, 1:-1] + p[2:, 1:-1] - 4.0 * p[1:-1, 1:-1]) / (h * h)
    return float(np.linalg.norm(lap - divergence))


class ShaderContractTest(TestCase):

    def test_update_merge_patches(self):
        shader = TouchForce()
        shader.update(radius=0.5)
        shader.update(radius=None, aspect=(2.0, 1.0))
        self.assertEqual(0.5, shader.uniforms["radius"])
        self.assertEqual((2.0, 1.0), shader.uniforms["aspect"])

    def test_update_unknown_uniform(self):
        with self.assertRaises(KeyError):
            Advect().update(viscosity=1.0)

    def test_render_into_own_input_is_rejected(self):
        fbo = make_fbo(4, 4)
        shader = allocated(Advect(velocity=fbo, input_texture=fbo))
        with self.assertRaises(ValueError):
            shader.render(fbo)

    def test_render_with_released_input_is_fatal(self):
        source = make_fbo(4, 4)
        source.deallocate()
        shader = allocated(Advect(velocity=make_fbo(4, 4), input_texture=source))
        with self.assertRaises(AllocationError):
            shader.render(make_fbo(4, 4))

    def test_unallocated_pass_draws_nothing(self):
        target = make_fbo(4, 4, (0.25, 0.25, 0.25, 0.25))
        shader = Advect(velocity=make_fbo(4, 4), input_texture=make_fbo(4, 4, (1.0, 1.0, 1.0, 1.0)))
        with self.assertLogs(level='WARNING'):
            result = shader.render(target)
        self.assertIs(target, result)
        assert_array_equal(0.25, target.read())

    def test_init_passes(self):
        velocity = make_fbo(5, 3, (1.0, 1.0, 1.0, 1.0), precision=Precision.HALF_FLOAT)
        allocated(VelocityInit()).render(velocity)
        assert_array_equal(0.0, velocity.read())
        color = make_fbo(5, 3, pixel_format=PixelFormat.RGB, precision=Precision.UNSIGNED_BYTE)
        allocated(ColorInit((1.0, 0.0, 0.0))).render(color)
        assert_array_equal(1.0, color.read()[..., 0])
        assert_array_equal(0.0, color.read()[..., 1:])


class AdvectTest(TestCase):

    def test_zero_timestep_copies(self):
        source = make_fbo(8, 6)
        source.write(np.random.default_rng(0).random((6, 8, 4), dtype=np.float32))
        velocity = make_fbo(8, 6, (3.0, -2.0, 0.0, 0.0))
        shader = allocated(Advect(velocity=velocity, input_texture=source, decay=0.0))
        shader.update(time_delta=0.0)
        out = shader.render(make_fbo(8, 6))
        assert_allclose(source.read(), out.read(), atol=1e-5)

    def test_uniform_flow_shifts_one_texel(self):
        source = make_fbo(8, 8)
        source.write(np.random.default_rng(1).random((8, 8, 4), dtype=np.float32))
        velocity = make_fbo(8, 8, (1.0 / 8.0, 0.0, 0.0, 0.0))
        shader = allocated(Advect(velocity=velocity, input_texture=source))
        shader.update(time_delta=1.0, aspect=(1.0, 1.0))
        out = shader.render(make_fbo(8, 8))
        assert_allclose(np.roll(source.read(), 1, axis=1), out.read(), atol=1e-5)

    def test_decay_scales_result(self):
        source = make_fbo(4, 4, (1.0, 0.5, 0.0, 0.0))
        shader = allocated(Advect(velocity=make_fbo(4, 4), input_texture=source, decay=0.25))
        shader.update(time_delta=1.0 / 60.0)
        out = shader.render(make_fbo(4, 4))
        assert_allclose(0.75, out.read()[..., 0], atol=1e-6)
        assert_allclose(0.375, out.read()[..., 1], atol=1e-6)

    def test_decay_moves_8bit_texels_down_a_step(self):
        source = make_fbo(4, 4, (10 / 255, 150 / 255, 0.0), pixel_format=PixelFormat.RGB, precision=Precision.UNSIGNED_BYTE)
        shader = allocated(Advect(velocity=make_fbo(4, 4), input_texture=source, decay=0.01))
        shader.update(time_delta=1.0 / 60.0)
        out = shader.render(make_fbo(4, 4, pixel_format=PixelFormat.RGB, precision=Precision.UNSIGNED_BYTE))
        # 9.9 and 148.5 floor to 9 and 148 instead of rounding back up
        assert_array_equal(np.broadcast_to([9, 148, 0], (4, 4, 3)), out.data)

    def test_zero_decay_keeps_8bit_texels(self):
        source = make_fbo(4, 4, (10 / 255, 150 / 255, 0.0), pixel_format=PixelFormat.RGB, precision=Precision.UNSIGNED_BYTE)
        shader = allocated(Advect(velocity=make_fbo(4, 4), input_texture=source, decay=0.0))
        shader.update(time_delta=1.0 / 60.0)
        out = shader.render(make_fbo(4, 4, pixel_format=PixelFormat.RGB, precision=Precision.UNSIGNED_BYTE))
        assert_array_equal(source.data, out.data)


class StencilTest(TestCase):

    def test_zero_field_has_zero_divergence(self):
        zero = make_fbo(16, 9, precision=Precision.HALF_FLOAT)
        advect = allocated(Advect(velocity=zero, input_texture=zero))
        advect.update(time_delta=1.0 / 60.0, aspect=(16 / 9, 1.0))
        advected = advect.render(make_fbo(16, 9, precision=Precision.HALF_FLOAT))

        force = allocated(TouchForce(velocity=advected))
        force.update(touches=[InputPoint(0.5, 0.5, 0.0, 0.0), InputPoint(1.2, 0.3, 0.0, 0.0)], aspect=(16 / 9, 1.0))
        forced = force.render(make_fbo(16, 9, precision=Precision.HALF_FLOAT))

        divergence = allocated(Divergence(velocity=forced))
        divergence.update(texel_size=(1 / 16, 1 / 9), aspect=(16 / 9, 1.0))
        out = divergence.render(make_fbo(16, 9, precision=Precision.HALF_FLOAT))
        assert_array_equal(0.0, out.read())

    def test_divergence_of_expanding_field(self):
        width, height = 8, 4
        aspect = (width / height, 1.0)
        uv = (np.stack(np.meshgrid(np.arange(width), np.arange(height)), axis=-1) + 0.5) / (width, height)
        velocity = make_fbo(width, height)
        velocity.write(np.concatenate([uv * aspect, np.zeros((height, width, 2))], axis=-1))
        shader = allocated(Divergence(velocity=velocity))
        shader.update(texel_size=(1 / width, 1 / height), aspect=aspect, time_delta=0.5)
        out = shader.render(make_fbo(width, height)).read()[..., 0]
        assert_allclose(4.0, out[1:-1, 1:-1], rtol=1e-5)

    def test_boundary_reflects_edges(self):
        values = np.random.default_rng(2).normal(size=(5, 6, 4)).astype(np.float32)
        velocity = make_fbo(6, 5)
        velocity.write(values)
        out = allocated(Boundary(velocity=velocity)).render(make_fbo(6, 5)).read()
        assert_allclose(values[1:-1, 1:-1], out[1:-1, 1:-1], atol=1e-5)
        assert_allclose(-values[1, 1:-1], out[0, 1:-1], atol=1e-5)
        assert_allclose(-values[-2, 1:-1], out[-1, 1:-1], atol=1e-5)
        assert_allclose(-values[1:-1, 1], out[1:-1, 0], atol=1e-5)
        assert_allclose(-values[1:-1, -2], out[1:-1, -1], atol=1e-5)
        assert_allclose(-values[1, 1], out[0, 0], atol=1e-5)

    def test_jacobi_residual_decreases_with_iterations(self):
        size = 16
        h = 1.0 / size
        d = np.zeros((size, size), dtype=np.float32)
        d[4, 4] = 1.0
        d[11, 10] = -1.0
        divergence = make_fbo(size, size)
        divergence.write(d[..., np.newaxis])

        buffers = [make_fbo(size, size), make_fbo(size, size)]
        shader = allocated(JacobiPressure(divergence=divergence))
        shader.update(texel_size=(h, h), aspect=(1.0, 1.0))

        residuals = [laplacian_residual(buffers[0].read()[..., 0], d, h)]
        pressure = buffers[0]
        for iteration in range(1, 65):
            shader.update(pressure=pressure)
            pressure = shader.render(buffers[iteration % 2])
            if iteration in (1, 2, 4, 8, 16, 32, 64):
                residuals.append(laplacian_residual(pressure.read()[..., 0], d, h))

        for before, after in zip(residuals, residuals[1:]):
            self.assertLess(after, before)

    def test_gradient_subtraction(self):
        width, height = 8, 8
        h = 1.0 / width
        x = (np.arange(width, dtype=np.float32) + 0.5) * h
        pressure = make_fbo(width, height)
        pressure.write(np.broadcast_to(x[np.newaxis, :, np.newaxis], (height, width, 1)))
        velocity = make_fbo(width, height, (1.0, 0.5, 0.0, 0.0))
        shader = allocated(Gradient(velocity=velocity, pressure=pressure))
        shader.update(texel_size=(h, h), aspect=(1.0, 1.0), time_delta=0.1)
        out = shader.render(make_fbo(width, height)).read()
        # dp/dx = 1 in the interior
        assert_allclose(0.9, out[:, 1:-1, 0], atol=1e-5)
        assert_allclose(0.5, out[..., 1], atol=1e-6)


class TouchTest(TestCase):

    def _centre_touch(self, vx: float, vy: float) -> list[InputPoint]:
        return [InputPoint(0.5, 0.5, vx, vy)]

    def test_force_points_along_motion(self):
        shader = allocated(TouchForce(velocity=make_fbo(16, 16)))
        shader.update(touches=self._centre_touch(0.1, 0.0), radius=0.25, aspect=(1.0, 1.0))
        out = shader.render(make_fbo(16, 16)).read()
        self.assertGreater(out[8, 8, 0], 0.0)
        self.assertEqual(0.0, out[8, 7, 0])
        assert_array_equal(0.0, out[..., 1])
        self.assertTrue(np.all(out[..., 0] >= 0.0))

    def test_saturation_applies_first_inputs(self):
        touches = [InputPoint(0.1 * i, 0.5, 0.0, 0.0) for i in range(MAX_INPUTS)]
        touches += [InputPoint(0.5, 0.5, 0.2, 0.1) for _ in range(5)]
        shader = allocated(TouchForce(velocity=make_fbo(16, 16)))
        shader.update(touches=touches)
        self.assertEqual((MAX_INPUTS, 4), shader.uniforms["inputs"].shape)
        assert_allclose([[0.1 * i, 0.5, 0.0, 0.0] for i in range(MAX_INPUTS)], shader.uniforms["inputs"], atol=1e-6)
        out = shader.render(make_fbo(16, 16))
        assert_array_equal(0.0, out.read())

    def test_fewer_inputs_clear_unused_slots(self):
        shader = TouchForce()
        shader.update(touches=[InputPoint(0.5, 0.5, 0.1, 0.0) for _ in range(4)])
        shader.update(touches=[InputPoint(0.2, 0.2, 0.1, 0.0)])
        assert_array_equal(0.0, shader.uniforms["inputs"][1:])

    def test_flat_color(self):
        shader = allocated(TouchColor(color=make_fbo(16, 16, pixel_format=PixelFormat.RGB)))
        shader.update(touches=self._centre_touch(0.1, 0.0), radius=0.25)
        out = shader.render(make_fbo(16, 16, pixel_format=PixelFormat.RGB)).read()
        painted = out[..., 0] > 0.0
        self.assertTrue(painted.any())
        assert_array_equal(0.0, out[..., 1])
        assert_allclose(0.5 * out[painted][:, 0], out[painted][:, 2], rtol=1e-5)

    def test_masked_color(self):
        mask = Texture.from_array(np.array([[[0, 255, 0], [0, 255, 0]]], dtype=np.uint8))
        shader = allocated(TouchColor(color=make_fbo(16, 16, pixel_format=PixelFormat.RGB)))
        shader.update(touches=self._centre_touch(0.1, 0.0), radius=0.25, mask=mask)
        out = shader.render(make_fbo(16, 16, pixel_format=PixelFormat.RGB)).read()
        self.assertGreater(out[..., 1].max(), 0.0)
        assert_array_equal(0.0, out[..., 0])
        assert_array_equal(0.0, out[..., 2])

    def test_card_force_follows_card_texture(self):
        touch = self._centre_touch(0.1, 0.05)
        plain = allocated(TouchForce(velocity=make_fbo(16, 16)))
        plain.update(touches=touch)
        expected = plain.render(make_fbo(16, 16)).read()

        full = allocated(CardForce(velocity=make_fbo(16, 16), card_texture=Texture.from_array(np.full((4, 4), 255, np.uint8))))
        full.update(touches=touch)
        assert_allclose(expected, full.render(make_fbo(16, 16)).read(), atol=1e-5)

        blank = allocated(CardForce(velocity=make_fbo(16, 16), card_texture=Texture.from_array(np.zeros((4, 4), np.uint8))))
        blank.update(touches=touch)
        assert_array_equal(0.0, blank.render(make_fbo(16, 16)).read())

    def test_fast_inputs_are_limited(self):
        packed = pack_inputs([InputPoint(0.5, 0.5, 3.0, 4.0), InputPoint(0.2, 0.2, 0.01, 0.0)])
        assert_allclose([MAX_INPUT_SPEED * 0.6, MAX_INPUT_SPEED * 0.8], packed[0, 2:], rtol=1e-6)
        assert_allclose([0.01, 0.0], packed[1, 2:], rtol=1e-6)

    def test_force_caps_field_speed(self):
        shader = allocated(TouchForce(velocity=make_fbo(16, 16)))
        shader.update(touches=self._centre_touch(1.0, 0.0), radius=2.0)
        out = shader.render(make_fbo(16, 16)).read()
        speed = np.linalg.norm(out[..., :2], axis=-1)
        self.assertAlmostEqual(MAX_SPEED, float(speed.max()), places=4)
        self.assertTrue(np.all(np.isfinite(out)))


class CompositionTest(TestCase):

    def _compose(self, source: Fbo, mode: ColorMode, gradient: Texture | None = None) -> np.ndarray:
        shader = allocated(Composition(color_buffer=source))
        shader.update(mode=mode, gradient=gradient)
        surface = make_fbo(4, 4, pixel_format=PixelFormat.RGB, precision=Precision.UNSIGNED_BYTE)
        return shader.render(surface).read()

    def test_modes(self):
        source = make_fbo(4, 4, (0.2, 0.4, 0.6), pixel_format=PixelFormat.RGB)
        assert_allclose([0.2, 0.4, 0.6], self._compose(source, ColorMode.NORMAL)[0, 0], atol=1 / 255)
        assert_allclose([0.6, 0.7, 0.8], self._compose(source, ColorMode.VECTOR)[0, 0], atol=1 / 255)
        luma = 0.2126 * 0.2 + 0.7152 * 0.4 + 0.0722 * 0.6
        assert_allclose([luma] * 3, self._compose(source, ColorMode.LUMINANCE)[0, 0], atol=1 / 255)

    def test_spectral_is_black_for_empty_field(self):
        source = make_fbo(4, 4, pixel_format=PixelFormat.RGB)
        assert_array_equal(0.0, self._compose(source, ColorMode.SPECTRAL))

    def test_gradient_falls_back_to_spectral(self):
        source = make_fbo(4, 4, (0.9, 0.5, 0.1), pixel_format=PixelFormat.RGB)
        assert_array_equal(self._compose(source, ColorMode.SPECTRAL), self._compose(source, ColorMode.GRADIENT))

    def test_gradient_lookup(self):
        source = make_fbo(4, 4, (0.2, 0.4, 0.6), pixel_format=PixelFormat.RGB)
        ramp = Texture.from_array(np.array([[[0, 0, 0], [255, 0, 0]]], dtype=np.uint8))
        luma = 0.2126 * 0.2 + 0.7152 * 0.4 + 0.0722 * 0.6
        out = self._compose(source, ColorMode.GRADIENT, ramp)
        assert_allclose([luma * 2 - 0.5, 0.0, 0.0], out[0, 0], atol=2 / 255)

    def test_signed_fields_in_vector_mode(self):
        source = make_fbo(4, 4, (-1.0, 1.0, 0.0, 0.0))
        assert_allclose([0.0, 1.0, 0.5], self._compose(source, ColorMode.VECTOR)[0, 0], atol=1 / 255)


class ProgramSourceTest(TestCase):

    PASSES = (VelocityInit, ColorInit, Advect, TouchForce, TouchColor, CardForce, Boundary,
              Divergence, JacobiPressure, Gradient, Composition)

    def test_every_uniform_is_declared_in_glsl(self):
        target = make_fbo(4, 4)
        for pass_type in self.PASSES:
            shader = pass_type()
            self.assertIn("void main()", shader.fragment_source)
            for name in set(shader.uniforms) | set(shader.target_uniforms(target)):
                with self.subTest(shader=shader.shader_name, uniform=name):
                    self.assertRegex(shader.fragment_source, rf"uniform \w+ {re.escape(name)}\b")

    def test_uniform_values_map_to_gl_calls(self):
        texture = make_fbo(2, 2)
        self.assertEqual(('sampler', texture), uniform_value(texture))
        self.assertEqual(('1i', 1), uniform_value(True))
        self.assertEqual(('1i', list(ColorMode).index(ColorMode.SPECTRAL)), uniform_value(ColorMode.SPECTRAL))
        self.assertEqual(('1f', 0.25), uniform_value(0.25))
        self.assertEqual(('1f', 3.0), uniform_value(3))
        self.assertEqual(('2f', (2.0, 1.0)), uniform_value((2.0, 1.0)))
        self.assertEqual(('3f', (0.0, 0.5, 1.0)), uniform_value((0.0, 0.5, 1.0)))
        kind, payload = uniform_value(np.zeros((MAX_INPUTS, 4), np.float32))
        self.assertEqual('4fv', kind)
        self.assertEqual((MAX_INPUTS, 4), payload.shape)
        with self.assertRaises(ValueError):
            uniform_value(np.zeros((3, 3)))

    def test_gl_targets_run_the_program(self):
        class GlTarget(Fbo):
            on_gpu = True

        target = GlTarget()
        target.allocate(4, 4, PixelFormat.RGB, Precision.UNSIGNED_BYTE)
        source = make_fbo(4, 4, (0.5, 0.5, 0.5), pixel_format=PixelFormat.RGB)
        shader = allocated(Advect(velocity=make_fbo(4, 4), input_texture=source, decay=0.01))
        program = mock.Mock()
        shader.program = program

        self.assertIs(target, shader.render(target))
        program.draw.assert_called_once()
        drawn, uniforms, wrap = program.draw.call_args.args
        self.assertIs(target, drawn)
        self.assertIs(source, uniforms["input_texture"])
        self.assertAlmostEqual(0.5 / 255, uniforms["bias"])
        self.assertEqual(Wrap.REPEAT, wrap["input_texture"])
        # the numpy fragment did not run
        assert_array_equal(0, target.data)

        shader.deallocate()
        program.deallocate.assert_called_once()
        self.assertIsNone(shader.program)
