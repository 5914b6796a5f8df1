"""
Optimizers and Trainer
======================

The Trainer runs one sample at a time through the network, lets gradients
accumulate in the parameter volumes, and every `batch_size` samples turns
them into a parameter update using one of the update rules below.

Per parameter p with accumulated raw gradient g:
    l2_grad = l2_decay * p
    l1_grad = l1_decay * sign(p)       (-l1_decay when p <= 0)
    gij     = (l2_grad + l1_grad + g) / batch_size

Update rules (v, x are per-parameter accumulators):
- SGD: momentum step dx = momentum*v - lr*gij, or plain p -= lr*gij
- Adagrad: v += gij^2, p -= lr / (sqrt(v) + eps) * gij
- Windowgrad: Adagrad over an exponential moving window (rho)
- Adadelta: unit-corrected steps from two moving windows, no learning rate
- Nesterov: look-ahead momentum
- Adam: moving first and second moments
"""

import time
from collections import namedtuple

import numpy as np
from tqdm import tqdm

from .losses import SoftmaxLayer, labeled_loss, regression_loss


class Optimizer:
    """
    Base class for update rules.

    Every rule sees the same hyperparameters and uses the ones it needs.
    update() mutates the parameter values and the accumulators in place.
    """

    # Whether the rule needs the second accumulator (x)
    uses_xsum = False

    def __init__(self, learning_rate=0.01, momentum=0.9, rho=0.95, epsilon=1e-8,
                 beta1=0.9, beta2=0.999):
        self.learning_rate = learning_rate
        self.momentum = momentum
        self.rho = rho
        self.epsilon = epsilon
        self.beta1 = beta1
        self.beta2 = beta2

    def update(self, p, gij, gsum, xsum, k):
        """
        Apply one update.

        Args:
            p: Parameter values (updated in place)
            gij: Batch-normalized gradient including decay
            gsum: First accumulator, same length as p
            xsum: Second accumulator (empty unless uses_xsum)
            k: Iteration counter of the trainer
        """
        raise NotImplementedError

    def get_lr(self):
        return self.learning_rate

    def __repr__(self):
        return f"{type(self).__name__}(learning_rate={self.learning_rate})"


class SGD(Optimizer):
    """
    Stochastic Gradient Descent with optional momentum.

    momentum > 0: dx = momentum*v - lr*gij; v = dx; p += dx
    momentum = 0: p += -lr*gij
    """

    def update(self, p, gij, gsum, xsum, k):
        if self.momentum > 0.0:
            dx = self.momentum * gsum - self.learning_rate * gij
            # Back this up for the next momentum step
            gsum[:] = dx
            p += dx
        else:
            p += -self.learning_rate * gij


class Adagrad(Optimizer):
    """Adagrad: per-parameter learning rate shrinking with the gradient history."""

    def update(self, p, gij, gsum, xsum, k):
        gsum += gij * gij
        p += -self.learning_rate / (np.sqrt(gsum) + self.epsilon) * gij


class Windowgrad(Optimizer):
    """
    Adagrad over a moving window.

    The squared gradient history is an exponential moving average, so old
    gradients are forgotten instead of accumulating over the whole run.
    """

    def update(self, p, gij, gsum, xsum, k):
        gsum[:] = self.rho * gsum + (1 - self.rho) * gij * gij
        # eps inside the sqrt for better conditioning
        p += -self.learning_rate / np.sqrt(gsum + self.epsilon) * gij


class Adadelta(Optimizer):
    """
    Adadelta (Zeiler, 2012).

    v tracks the squared gradients, x the squared updates; x lags v by one
    step.
    """

    uses_xsum = True

    def update(self, p, gij, gsum, xsum, k):
        gsum[:] = self.rho * gsum + (1 - self.rho) * gij * gij
        dx = -np.sqrt((xsum + self.epsilon) / (gsum + self.epsilon)) * gij
        xsum[:] = self.rho * xsum + (1 - self.rho) * dx * dx
        p += dx


class Nesterov(Optimizer):
    """
    Nesterov momentum.

    dx_old = v; v = momentum*v + lr*gij; p += momentum*dx_old - (1+momentum)*v
    """

    def update(self, p, gij, gsum, xsum, k):
        dx_old = gsum.copy()
        gsum[:] = gsum * self.momentum + self.learning_rate * gij
        dx = self.momentum * dx_old - (1.0 + self.momentum) * gsum
        p += dx


class Adam(Optimizer):
    """
    Adam (Adaptive Moment Estimation).

    The moment estimates are scaled by (1 - beta^k) with k the trainer's
    iteration counter.
    """

    uses_xsum = True

    def update(self, p, gij, gsum, xsum, k):
        # Biased first and second moment estimates
        gsum[:] = gsum * self.beta1 + (1 - self.beta1) * gij
        xsum[:] = xsum * self.beta2 + (1 - self.beta2) * gij * gij

        bias_corr1 = gsum * (1 - self.beta1 ** k)
        bias_corr2 = xsum * (1 - self.beta2 ** k)

        p += -self.learning_rate * bias_corr1 / (np.sqrt(bias_corr2) + self.epsilon)


# Optimizer registry
OPTIMIZERS = {
    'sgd': SGD,
    'adam': Adam,
    'adagrad': Adagrad,
    'adadelta': Adadelta,
    'windowgrad': Windowgrad,
    'nesterov': Nesterov,
}


def get_optimizer(name, **kwargs):
    """
    Get optimizer by name.

    Args:
        name: Registry name ('sgd', 'adam', ...) or Optimizer instance
        **kwargs: Hyperparameters passed to the optimizer

    Returns:
        Optimizer instance
    """
    if isinstance(name, Optimizer):
        return name

    name_lower = name.lower()
    if name_lower not in OPTIMIZERS:
        raise ValueError(f"Unknown optimizer '{name}'. Available: {list(OPTIMIZERS.keys())}")

    return OPTIMIZERS[name_lower](**kwargs)


TrainingResults = namedtuple('TrainingResults', [
    'forward_time', 'backward_time', 'l1_decay_loss', 'l2_decay_loss',
    'cost_loss', 'total_loss'])


class Trainer:
    """
    Mini-batch trainer.

    Args:
        network: Network to train
        method: Update rule name or Optimizer instance (default: 'sgd')
        learning_rate: Step size (default: 0.01)
        batch_size: Samples per parameter update (default: 1)
        momentum: Momentum for SGD/Nesterov (default: 0.9)
        rho: Window decay for Windowgrad/Adadelta (default: 0.95)
        epsilon: Conditioning constant (default: 1e-8)
        beta1, beta2: Adam moment decays (default: 0.9, 0.999)
        l1_decay, l2_decay: Weight decay strengths (default: 0)

    Example:
        >>> trainer = Trainer(net, method='adam', learning_rate=0.01, batch_size=4)
        >>> results = trainer.train(vol, labeled_loss(3))
        >>> results.total_loss
    """

    def __init__(self, network, method='sgd', learning_rate=0.01, batch_size=1,
                 momentum=0.9, rho=0.95, epsilon=1e-8, beta1=0.9, beta2=0.999,
                 l1_decay=0.0, l2_decay=0.0):
        if network is None:
            raise ValueError("Network cannot be None")
        if batch_size <= 0:
            raise ValueError(f"Batch size must be greater than 0, got {batch_size}")

        self.network = network
        self.optimizer = get_optimizer(method, learning_rate=learning_rate, momentum=momentum,
                                       rho=rho, epsilon=epsilon, beta1=beta1, beta2=beta2)
        self.batch_size = batch_size
        self.l1_decay = l1_decay
        self.l2_decay = l2_decay

        # Decides which loss function fit() uses
        self.regression = network.is_regression

        # Iteration counter
        self.k = 0

        # Per-response accumulators, allocated on the first update
        self.gsum = []
        self.xsum = []

    def _init_accumulators(self, response):
        for r in response:
            self.gsum.append(np.zeros(len(r.values)))
            if self.optimizer.uses_xsum:
                self.xsum.append(np.zeros(len(r.values)))
            else:
                self.xsum.append(np.zeros(0))

    def train(self, vol, loss_fn):
        """
        Forward, loss + backward, and (every batch_size calls) an update.

        Args:
            vol: Input volume
            loss_fn: Callable taking the network and returning the loss after
                     backpropagating it, e.g. labeled_loss(label)

        Returns:
            TrainingResults; decay losses are only non-zero on update calls
        """
        start = time.perf_counter()
        self.network.forward(vol, training=True)
        forward_time = time.perf_counter() - start

        start = time.perf_counter()
        cost_loss = loss_fn(self.network)
        backward_time = time.perf_counter() - start

        self.k += 1
        l1_decay_loss = 0.0
        l2_decay_loss = 0.0
        if self.k % self.batch_size == 0:
            l1_decay_loss, l2_decay_loss = self._update()

        return TrainingResults(
            forward_time=forward_time,
            backward_time=backward_time,
            l1_decay_loss=l1_decay_loss,
            l2_decay_loss=l2_decay_loss,
            cost_loss=cost_loss,
            total_loss=cost_loss + l1_decay_loss + l2_decay_loss,
        )

    def _update(self):
        """Apply the update rule to every parameter and zero the gradients."""
        response = self.network.get_response()
        if not self.gsum:
            self._init_accumulators(response)

        l1_decay_loss = 0.0
        l2_decay_loss = 0.0
        for i, r in enumerate(response):
            p, g = r.values, r.gradients

            l1_decay = self.l1_decay * r.l1_decay_mul
            l2_decay = self.l2_decay * r.l2_decay_mul

            # Accumulate weight decay loss
            l2_decay_loss += float(np.sum(l2_decay * p * p / 2.0))
            l1_decay_loss += float(np.sum(l1_decay * np.abs(p)))

            l1_grad = np.where(p <= 0, -l1_decay, l1_decay)
            l2_grad = l2_decay * p

            # Raw batch gradient
            gij = (l2_grad + l1_grad + g) / self.batch_size

            self.optimizer.update(p, gij, self.gsum[i], self.xsum[i], self.k)

            # Zero out gradient so that we can begin accumulating anew
            g.fill(0.0)

        return l1_decay_loss, l2_decay_loss

    def fit(self, inputs, targets, epochs=1, shuffle=True, verbose=True):
        """
        Train over a dataset for a number of epochs.

        Args:
            inputs: Sequence of input volumes
            targets: Class labels, or target vectors for a regression network
            epochs: Number of passes over the data
            shuffle: Visit samples in a random order every epoch
            verbose: Show a progress bar and per-epoch summary

        Returns:
            History dict with the mean 'loss' per epoch and, for softmax
            networks, the training 'accuracy' per epoch
        """
        if len(inputs) != len(targets):
            raise ValueError(f"Got {len(inputs)} inputs but {len(targets)} targets")

        classify = isinstance(self.network.output_layer, SoftmaxLayer)
        history = {'loss': [], 'accuracy': []}
        n_samples = len(inputs)

        for epoch in range(epochs):
            if shuffle:
                order = self.network.rng.permutation(n_samples)
            else:
                order = np.arange(n_samples)

            if verbose:
                pbar = tqdm(order, total=n_samples, desc=f"Epoch {epoch+1}/{epochs}")
            else:
                pbar = order

            epoch_loss = 0.0
            epoch_correct = 0
            seen = 0
            for i in pbar:
                target = targets[i]
                if self.regression:
                    loss_fn = regression_loss(target)
                else:
                    loss_fn = labeled_loss(int(target))

                results = self.train(inputs[i], loss_fn)
                epoch_loss += results.cost_loss
                seen += 1

                if classify and self.network.get_prediction() == int(target):
                    epoch_correct += 1

                if verbose and hasattr(pbar, 'set_postfix'):
                    postfix = {'loss': f'{epoch_loss/seen:.4f}'}
                    if classify:
                        postfix['acc'] = f'{epoch_correct/seen:.4f}'
                    pbar.set_postfix(postfix)

            avg_loss = epoch_loss / max(n_samples, 1)
            history['loss'].append(avg_loss)
            if classify:
                history['accuracy'].append(epoch_correct / max(n_samples, 1))

            if verbose:
                msg = f"Epoch {epoch+1}/{epochs} - Loss: {avg_loss:.4f}"
                if classify:
                    msg += f" - Acc: {history['accuracy'][-1]:.4f}"
                print(msg)

        return history

    def __repr__(self):
        return f"Trainer({self.optimizer!r}, batch_size={self.batch_size})"
