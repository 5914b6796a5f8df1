"""
Utility Functions
=================

Helper functions for:
- Reproducible random generators
- Batching
- Metrics
- Model summaries
- Numerical gradient checks
"""

import numpy as np


def make_rng(seed=None):
    """
    Create the numpy Generator threaded through volumes, layers and networks.

    Args:
        seed: Integer seed, or None for fresh entropy

    Returns:
        numpy.random.Generator
    """
    return np.random.default_rng(seed)


def create_batches(X, y, batch_size, shuffle=True, rng=None):
    """
    Create mini-batches of samples.

    Args:
        X: Sequence of samples (e.g. Volumes)
        y: Labels or targets, same length as X
        batch_size: Batch size
        shuffle: Whether to shuffle
        rng: numpy Generator used for shuffling

    Yields:
        (X_batch, y_batch) lists
    """
    n_samples = len(X)

    if shuffle:
        if rng is None:
            rng = np.random.default_rng()
        indices = rng.permutation(n_samples)
    else:
        indices = np.arange(n_samples)

    for start_idx in range(0, n_samples, batch_size):
        batch = indices[start_idx:start_idx + batch_size]
        yield [X[i] for i in batch], [y[i] for i in batch]


def accuracy_score(y_true, y_pred):
    """
    Compute classification accuracy.

    Args:
        y_true: True labels
        y_pred: Predicted labels

    Returns:
        Accuracy as float
    """
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    return float(np.mean(y_true == y_pred))


def confusion_matrix(y_true, y_pred, num_classes=None):
    """
    Compute confusion matrix.

    Args:
        y_true: True labels
        y_pred: Predicted labels
        num_classes: Number of classes

    Returns:
        Confusion matrix, shape (num_classes, num_classes)
    """
    y_true = np.asarray(y_true, dtype=int)
    y_pred = np.asarray(y_pred, dtype=int)

    if num_classes is None:
        num_classes = max(y_true.max(), y_pred.max()) + 1

    cm = np.zeros((num_classes, num_classes), dtype=int)
    for t, p in zip(y_true, y_pred):
        cm[t, p] += 1

    return cm


def evaluate(network, inputs, labels):
    """
    Classification accuracy of a softmax network on a dataset.

    Args:
        network: Network ending in a softmax layer
        inputs: Sequence of input volumes
        labels: True class labels

    Returns:
        (predictions, accuracy)
    """
    predictions = [network.predict(vol) for vol in inputs]
    return predictions, accuracy_score(labels, predictions)


def get_model_summary(network):
    """
    Generate model summary.

    Args:
        network: Network

    Returns:
        Summary string
    """
    lines = []
    lines.append("=" * 70)
    lines.append(f"{'Layer':<40} {'Output Shape':<15} {'Params':<15}")
    lines.append("=" * 70)

    total_params = 0

    for layer in network.layers:
        name = repr(layer)
        if len(name) > 39:
            name = name[:36] + '...'

        n_params = sum(len(r.values) for r in layer.get_response())
        total_params += n_params

        out = layer.out_dims
        lines.append(f"{name:<40} {f'{out.x}x{out.y}x{out.z}':<15} {n_params:,}")

    lines.append("=" * 70)
    lines.append(f"Total trainable parameters: {total_params:,}")
    lines.append("=" * 70)

    return '\n'.join(lines)


def numerical_gradient(f, values, epsilon=1e-5):
    """
    Centered finite-difference gradient of a scalar function.

    Perturbs `values` in place one element at a time and restores it.

    Args:
        f: Function of no arguments returning a scalar loss, reading `values`
        values: 1D array to differentiate with respect to
        epsilon: Perturbation size

    Returns:
        Numerical gradient, same shape as values
    """
    grad = np.zeros_like(values)

    for i in range(len(values)):
        old = values[i]

        values[i] = old + epsilon
        loss_plus = f()

        values[i] = old - epsilon
        loss_minus = f()

        values[i] = old
        grad[i] = (loss_plus - loss_minus) / (2 * epsilon)

    return grad


def relative_error(analytical, numerical):
    """Maximum elementwise relative error between two gradients."""
    diff = np.abs(analytical - numerical)
    denom = np.maximum(np.abs(analytical) + np.abs(numerical), 1e-8)
    return float(np.max(diff / denom))
