"""
Tests for Layers and Weights
============================

Geometry of convolutions, layout validation and weight breeding.
"""

import numpy as np
import pytest

from numpy_flownet.model_builder.layers import (Layer_Input, Layer_Dense, Layer_Output, Layer_Convolution,
                                                Layer_Focus, unwrap, focus_index)
from numpy_flownet.model_builder.activation_functions import Activation_ReLU, Activation_Linear
from numpy_flownet.model_builder.weight_breeders import WeightBreeder, expected_weight_shapes


class TestConvolutionGeometry:
    """Tests for the output volume formula and invalid geometries."""

    def test_unit_field(self):
        """4x4 input, field 1, stride 1, no padding keeps width 4."""
        conv = Layer_Convolution((4, 4, 1), padding=0, field=1, stride=1, filters=1, activation=Activation_ReLU())
        assert conv.dim_out == (4, 4, 1)
        assert conv.neurons == 16

    def test_padding_and_stride(self):
        conv = Layer_Convolution((5, 7, 3), padding=(1, 0), field=(3, 3), stride=(2, 2), filters=8,
                                 activation=Activation_ReLU())
        assert conv.dim_in_padded == (7, 7, 3)
        assert conv.dim_out == (3, 3, 8)
        assert conv.field_size == 27

    def test_field_too_big(self):
        with pytest.raises(ValueError):
            Layer_Convolution((3, 3, 1), padding=0, field=4, stride=1, filters=1, activation=Activation_ReLU())

    def test_stride_mismatch(self):
        with pytest.raises(ValueError):
            Layer_Convolution((6, 6, 1), padding=0, field=3, stride=2, filters=1, activation=Activation_ReLU())

    @pytest.mark.parametrize("kwargs", [
        dict(filters=0),
        dict(stride=0),
        dict(field=0),
        dict(padding=-1),
    ])
    def test_invalid_values(self, kwargs):
        params = dict(dim_in=(4, 4, 1), padding=0, field=1, stride=1, filters=1, activation=Activation_ReLU())
        params.update(kwargs)
        with pytest.raises(ValueError):
            Layer_Convolution(**params)


class TestLayers:
    """Tests for dense layers and Focus."""

    def test_non_positive_neurons(self):
        with pytest.raises(ValueError):
            Layer_Dense(0, Activation_ReLU())
        with pytest.raises(ValueError):
            Layer_Input(-1)

    def test_focus_wraps_inner_layer(self):
        dense = Layer_Dense(3, Activation_ReLU())
        focus = Layer_Focus(dense)
        assert unwrap(focus) is dense
        assert focus.neurons == 3
        assert focus_index([Layer_Input(2), focus, Layer_Output(1, Activation_Linear())]) == 1
        assert focus_index([Layer_Input(2), dense]) is None

    def test_focus_rejects_input(self):
        with pytest.raises(ValueError):
            Layer_Focus(Layer_Input(2))


class TestWeightShapes:
    """Tests for the weight matrix shapes of a layout."""

    def test_dense(self):
        layers = [Layer_Input(2), Layer_Dense(3, Activation_ReLU()), Layer_Output(1, Activation_Linear())]
        assert expected_weight_shapes(layers) == [(2, 3), (3, 1)]

    def test_convolutional(self):
        conv = Layer_Convolution((4, 4, 2), padding=1, field=3, stride=1, filters=5, activation=Activation_ReLU())
        layers = [conv, Layer_Focus(Layer_Dense(7, Activation_ReLU())), Layer_Output(2, Activation_Linear())]
        assert expected_weight_shapes(layers) == [(5, 18), (80, 7), (7, 2)]

    def test_input_must_come_first(self):
        with pytest.raises(ValueError):
            expected_weight_shapes([Layer_Dense(2, Activation_ReLU()), Layer_Input(2)])


class TestWeightBreeder:
    """Tests for weight initialization."""

    layers = [Layer_Input(4), Layer_Dense(3, Activation_ReLU()), Layer_Output(2, Activation_Linear())]

    def test_static(self):
        weights = WeightBreeder("static", value=0.5)(self.layers)
        assert [w.shape for w in weights] == [(4, 3), (3, 2)]
        assert all(np.all(w == 0.5) for w in weights)

    def test_seed_is_reproducible(self):
        first = WeightBreeder("he_scaling", seed=3)(self.layers)
        second = WeightBreeder("he_scaling", seed=3)(self.layers)
        for a, b in zip(first, second):
            np.testing.assert_array_equal(a, b)

    def test_random_range(self):
        weights = WeightBreeder("random", low=-0.1, high=0.1, seed=0)(self.layers)
        assert all(np.all(np.abs(w) <= 0.1) for w in weights)

    def test_per_layer_config(self):
        weights = WeightBreeder("static", value=1., config={1: dict(value=-2.)})(self.layers)
        assert np.all(weights[0] == 1.)
        assert np.all(weights[1] == -2.)

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            WeightBreeder("orthogonal")
