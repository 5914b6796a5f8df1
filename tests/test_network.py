"""
Tests for Network
=================

Tests for definition expansion, network construction, forward/backward
wiring, losses and prediction.
"""

import numpy as np
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from reticulum.definitions import (LayerType, LayerDef, activate_layers, FullyConnectedConfig,
                                   ConvConfig, PoolConfig, DropoutConfig, MaxoutConfig,
                                   SoftmaxConfig, SVMConfig, RegressionConfig)
from reticulum.layers import DropoutLayer
from reticulum.network import Network, build_layer
from reticulum.volume import Volume
from reticulum.utils import make_rng, get_model_summary


def input_def(*dims):
    return LayerDef(LayerType.INPUT, output=dims)


def types(defs):
    return [d.layer_type for d in defs]


class TestActivateLayers:
    """Tests for definition expansion."""

    def test_softmax_gets_fully_connected(self):
        defs = [input_def(1, 1, 2),
                LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(2)),
                LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2))]

        expanded = activate_layers(defs)

        assert types(expanded) == ['input', 'fc', 'fc', 'softmax']
        assert expanded[2].config.neurons == 2

    def test_svm_and_regression_get_fully_connected(self):
        svm = activate_layers([input_def(1, 1, 2), LayerDef(LayerType.SVM, SVMConfig(3))])
        reg = activate_layers([input_def(1, 1, 2),
                               LayerDef(LayerType.REGRESSION, RegressionConfig(4))])

        assert types(svm) == ['input', 'fc', 'svm']
        assert svm[1].config.neurons == 3
        assert types(reg) == ['input', 'fc', 'regression']
        assert reg[1].config.neurons == 4

    def test_activation_appended(self):
        defs = [input_def(1, 1, 2),
                LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(4), activation='sigmoid'),
                LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2))]

        assert types(activate_layers(defs)) == ['input', 'fc', 'sigmoid', 'fc', 'softmax']

    def test_relu_sets_preferred_bias(self):
        config = FullyConnectedConfig(4)
        defs = [input_def(1, 1, 2),
                LayerDef(LayerType.FULLY_CONNECTED, config, activation='relu'),
                LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2))]

        expanded = activate_layers(defs)

        assert types(expanded) == ['input', 'fc', 'relu', 'fc', 'softmax']
        assert expanded[1].config.preferred_bias == 0.1
        # The caller's definitions are left alone
        assert config.preferred_bias == 0.0
        assert defs[1].config is config

    def test_maxout_and_dropout(self):
        defs = [input_def(4, 4, 1),
                LayerDef(LayerType.CONV, ConvConfig(4, sx=3), activation='maxout',
                         maxout=MaxoutConfig(4), dropout=DropoutConfig(0.3)),
                LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(4), activation='maxout'),
                LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2))]

        expanded = activate_layers(defs)

        assert types(expanded) == ['input', 'conv', 'maxout', 'dropout',
                                   'fc', 'maxout', 'fc', 'softmax']
        assert expanded[2].config.group_size == 4
        assert expanded[3].config.probability == 0.3
        # Default group size
        assert expanded[5].config.group_size == 2

    def test_unknown_activation(self):
        defs = [input_def(1, 1, 2),
                LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(2), activation='swish'),
                LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2))]

        with pytest.raises(ValueError):
            activate_layers(defs)

    def test_unknown_layer_type(self):
        with pytest.raises(ValueError):
            LayerDef('batchnorm')


class TestNetworkConstruction:
    """Tests for definition validation and layer building."""

    def test_too_few_layers(self):
        with pytest.raises(ValueError):
            Network([input_def(1, 1, 2)])

    def test_first_must_be_input(self):
        with pytest.raises(ValueError):
            Network([LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(2)),
                     LayerDef(LayerType.RELU),
                     LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2))])

    def test_last_must_be_loss(self):
        with pytest.raises(ValueError):
            Network([input_def(1, 1, 2),
                     LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(2)),
                     LayerDef(LayerType.RELU)])

    def test_single_input_layer(self):
        with pytest.raises(ValueError):
            Network([input_def(1, 1, 2),
                     input_def(1, 1, 2),
                     LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2))])

    def test_single_loss_layer(self):
        with pytest.raises(ValueError):
            Network([input_def(1, 1, 2),
                     LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2)),
                     LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2))])

    def test_dimensions_chain(self):
        net = Network([
            input_def(8, 8, 1),
            LayerDef(LayerType.CONV, ConvConfig(4, sx=3, padding=1), activation='relu'),
            LayerDef(LayerType.POOL, PoolConfig(2)),
            LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(10)),
            LayerDef(LayerType.SOFTMAX, SoftmaxConfig(3)),
        ], rng=make_rng(0))

        dims = [layer.out_dims for layer in net.layers]
        assert dims == [(8, 8, 1), (8, 8, 4), (8, 8, 4), (4, 4, 4),
                        (1, 1, 10), (1, 1, 3), (1, 1, 3)]
        for prev, layer in zip(net.layers, net.layers[1:]):
            assert layer.in_dims == prev.out_dims

    def test_relu_bias_applied(self):
        net = Network([
            input_def(1, 1, 2),
            LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(3), activation='relu'),
            LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2)),
        ], rng=make_rng(0))

        np.testing.assert_allclose(net.layers[1].biases.values, 0.1)
        np.testing.assert_allclose(net.layers[3].biases.values, 0.0)

    def test_len_and_size(self):
        net = Network([
            input_def(1, 1, 2),
            LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(3)),
            LayerDef(LayerType.SVM, SVMConfig(2)),
        ], rng=make_rng(0))

        assert len(net) == 4
        assert net.size == 4
        assert net.input_dims == (1, 1, 2)

    def test_seeded_networks_identical(self):
        def make():
            return Network([
                input_def(1, 1, 3),
                LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(4), activation='tanh'),
                LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2)),
            ], rng=make_rng(5))

        a, b = make(), make()
        for ra, rb in zip(a.get_response(), b.get_response()):
            np.testing.assert_array_equal(ra.values, rb.values)

    def test_build_layer_unknown_type(self):
        definition = LayerDef(LayerType.RELU)
        definition.layer_type = 'unknown'
        with pytest.raises(ValueError):
            build_layer(definition, (1, 1, 2))


class TestNetworkPasses:
    """Tests for forward, backward and prediction."""

    def make_classifier(self, rng=None):
        return Network([
            input_def(1, 1, 2),
            LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(6), activation='tanh'),
            LayerDef(LayerType.SOFTMAX, SoftmaxConfig(3)),
        ], rng=rng or make_rng(42))

    def test_forward_probabilities(self):
        net = self.make_classifier()
        out = net.forward(Volume((1, 1, 2), values=[0.3, -0.5]))

        assert out.dims == (1, 1, 3)
        assert np.sum(out.values) == pytest.approx(1.0)

    def test_forward_wires_previous_output(self):
        net = self.make_classifier()
        net.forward(Volume((1, 1, 2), values=[0.3, -0.5]))

        for prev, layer in zip(net.layers, net.layers[1:]):
            assert layer.in_vol is prev.out_vol

    def test_backward_reaches_first_layer(self):
        net = self.make_classifier()
        vol = Volume((1, 1, 2), values=[0.3, -0.5])
        net.forward(vol)

        loss = net.backward(1)

        assert loss > 0
        assert np.any(net.layers[1].filters[0].gradients != 0)
        assert np.any(vol.gradients != 0)

    def test_get_cost_loss(self):
        net = self.make_classifier()
        vol = Volume((1, 1, 2), values=[0.3, -0.5])

        probs = net.forward(vol).values.copy()
        assert net.get_cost_loss(vol, 2) == pytest.approx(-np.log(probs[2]))

    def test_prediction(self):
        net = self.make_classifier()
        vol = Volume((1, 1, 2), values=[0.3, -0.5])

        probs = net.forward(vol).values
        assert net.get_prediction() == int(np.argmax(probs))
        assert net.predict(vol) == int(np.argmax(probs))

    def test_prediction_requires_softmax(self):
        net = Network([
            input_def(1, 1, 2),
            LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(2)),
            LayerDef(LayerType.SVM, SVMConfig(2)),
        ], rng=make_rng(0))
        net.forward(Volume((1, 1, 2), values=[1.0, 0.0]))

        with pytest.raises(NotImplementedError):
            net.get_prediction()

    def test_regression_methods_require_regression_head(self):
        net = self.make_classifier()
        net.forward(Volume((1, 1, 2), values=[1.0, 0.0]))

        with pytest.raises(NotImplementedError):
            net.backward_regression([0.0, 0.0, 0.0])
        with pytest.raises(NotImplementedError):
            net.dimensional_loss(0, 1.0)

    def test_classification_requires_loss_head(self):
        net = Network([
            input_def(1, 1, 2),
            LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(2)),
            LayerDef(LayerType.REGRESSION, RegressionConfig(2)),
        ], rng=make_rng(0))
        net.forward(Volume((1, 1, 2), values=[1.0, 0.0]))

        assert net.is_regression
        with pytest.raises(NotImplementedError):
            net.backward(0)

    def test_regression_losses(self):
        net = Network([
            input_def(1, 1, 2),
            LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(4), activation='tanh'),
            LayerDef(LayerType.REGRESSION, RegressionConfig(2)),
        ], rng=make_rng(0))
        vol = Volume((1, 1, 2), values=[1.0, -1.0])
        out = net.forward(vol).values.copy()

        loss = net.multi_dimensional_loss([0.0, 0.0])
        assert loss == pytest.approx(0.5 * np.sum(out ** 2))

        loss = net.backward_dimension(1, 0.5)
        assert loss == pytest.approx(0.5 * (out[1] - 0.5) ** 2)
        assert np.any(vol.gradients != 0)

    def test_dropout_training_flag(self):
        net = Network([
            input_def(1, 1, 50),
            LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(40),
                     dropout=DropoutConfig(0.5)),
            LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2)),
        ], rng=make_rng(1))
        dropout = net.layers[2]
        assert isinstance(dropout, DropoutLayer)
        vol = Volume((1, 1, 50), rng=make_rng(2))

        net.forward(vol, training=True)
        assert dropout.dropped.any()

        net.forward(vol, training=False)
        assert not dropout.dropped.any()
        np.testing.assert_allclose(dropout.out_vol.values, dropout.in_vol.values * 0.5)

    def test_response_order(self):
        net = self.make_classifier()
        response = net.get_response()

        # fc(6) filters + biases, tanh, fc(3) filters + biases
        assert len(response) == 6 + 1 + 3 + 1
        assert response[0].values is net.layers[1].filters[0].values
        assert response[-1].values is net.layers[3].biases.values

    def test_summary(self, capsys):
        net = self.make_classifier()
        total = net.summary()

        captured = capsys.readouterr()
        assert 'Total trainable parameters' in captured.out
        assert total == (2 * 6 + 6) + (6 * 3 + 3)
        assert net.summary(verbose=False) == total

    def test_model_summary_string(self):
        net = self.make_classifier()
        text = get_model_summary(net)

        assert 'Total trainable parameters: 39' in text
        assert 'FullyConnectedLayer(2, 6)' in text
