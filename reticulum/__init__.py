"""
Reticulum
=========

A small neural network engine built on packed 3D volumes.
This library demonstrates the mechanics of neural networks including:
- Volumes holding values and gradients side by side
- Fully connected, convolution, max pooling, dropout and maxout layers
- Softmax, SVM and regression loss heads
- Hand-written forward and backward passes for every layer
- SGD, Nesterov, Adagrad, Windowgrad, Adadelta and Adam updates with
  mini-batch gradient accumulation and L1/L2 weight decay
"""

from .volume import Dimensions, Volume
from .activations import ReLU, Sigmoid, Tanh, get_activation
from .definitions import (LayerType, LayerDef, activate_layers,
                          FullyConnectedConfig, ConvConfig, PoolConfig, DropoutConfig,
                          MaxoutConfig, SoftmaxConfig, SVMConfig, RegressionConfig)
from .layers import (Layer, ParameterResponse, InputLayer, FullyConnectedLayer, ConvLayer,
                     PoolLayer, ReLULayer, SigmoidLayer, TanhLayer, DropoutLayer, MaxoutLayer)
from .losses import (LossLayer, RegressionLossLayer, SoftmaxLayer, SVMLayer, RegressionLayer,
                     labeled_loss, regression_loss, dimensional_loss)
from .network import Network, build_layer
from .optimizers import (Optimizer, SGD, Adam, Adagrad, Adadelta, Windowgrad, Nesterov,
                         get_optimizer, Trainer, TrainingResults)
from .utils import make_rng, create_batches, accuracy_score, confusion_matrix

__version__ = "1.0.0"
__all__ = [
    # Volumes
    'Dimensions', 'Volume',
    # Activations
    'ReLU', 'Sigmoid', 'Tanh', 'get_activation',
    # Definitions
    'LayerType', 'LayerDef', 'activate_layers',
    'FullyConnectedConfig', 'ConvConfig', 'PoolConfig', 'DropoutConfig',
    'MaxoutConfig', 'SoftmaxConfig', 'SVMConfig', 'RegressionConfig',
    # Layers
    'Layer', 'ParameterResponse', 'InputLayer', 'FullyConnectedLayer', 'ConvLayer',
    'PoolLayer', 'ReLULayer', 'SigmoidLayer', 'TanhLayer', 'DropoutLayer', 'MaxoutLayer',
    # Losses
    'LossLayer', 'RegressionLossLayer', 'SoftmaxLayer', 'SVMLayer', 'RegressionLayer',
    'labeled_loss', 'regression_loss', 'dimensional_loss',
    # Network
    'Network', 'build_layer',
    # Optimizers
    'Optimizer', 'SGD', 'Adam', 'Adagrad', 'Adadelta', 'Windowgrad', 'Nesterov',
    'get_optimizer', 'Trainer', 'TrainingResults',
    # Utilities
    'make_rng', 'create_batches', 'accuracy_score', 'confusion_matrix',
]
