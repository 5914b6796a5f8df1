"""
Visualization Utilities
=======================

This module provides functions for visualizing:
- Training progress (loss/accuracy curves from Trainer.fit)
- Convolutional filters
- The depth slices of any Volume (inputs, activations)
"""

import numpy as np
import matplotlib.pyplot as plt


def _finish(fig, save_path, what, show):
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"{what} saved to {save_path}")

    if show:
        plt.show()
    return fig


def plot_training_history(history, figsize=(14, 5), save_path=None, show=True):
    """
    Plot training history (loss and, when present, accuracy curves).

    Args:
        history: Dictionary with 'loss' and optionally 'accuracy'
        figsize: Figure size
        save_path: Path to save figure
        show: Call plt.show()
    """
    has_accuracy = bool(history.get('accuracy'))
    fig, axes = plt.subplots(1, 2 if has_accuracy else 1, figsize=figsize)
    axes = np.atleast_1d(axes)

    epochs = range(1, len(history['loss']) + 1)

    # Loss plot
    axes[0].plot(epochs, history['loss'], 'b-', label='Training Loss', linewidth=2)
    axes[0].set_xlabel('Epoch', fontsize=12)
    axes[0].set_ylabel('Loss', fontsize=12)
    axes[0].set_title('Training Loss', fontsize=14)
    axes[0].legend(fontsize=10)
    axes[0].grid(True, alpha=0.3)

    # Accuracy plot
    if has_accuracy:
        axes[1].plot(epochs, history['accuracy'], 'b-', label='Training Accuracy', linewidth=2)
        axes[1].set_xlabel('Epoch', fontsize=12)
        axes[1].set_ylabel('Accuracy', fontsize=12)
        axes[1].set_title('Training Accuracy', fontsize=14)
        axes[1].legend(fontsize=10)
        axes[1].grid(True, alpha=0.3)

    return _finish(fig, save_path, "Training history plot", show)


def _grid(n, figsize):
    n_cols = int(np.ceil(np.sqrt(n)))
    n_rows = int(np.ceil(n / n_cols))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize)
    return fig, np.array(axes).flatten()


def visualize_filters(layer, max_filters=32, figsize=(12, 8), save_path=None, show=True):
    """
    Visualize the filters of a convolution layer.

    Args:
        layer: ConvLayer
        max_filters: Maximum number of filters to display
        figsize: Figure size
        save_path: Path to save figure
        show: Call plt.show()
    """
    n_filters = min(len(layer.filters), max_filters)
    fig, axes = _grid(n_filters, figsize)

    for i in range(n_filters):
        # (height, width, depth) -> average across input channels
        filter_img = np.mean(layer.filters[i].to_array(), axis=2)

        # Normalize for visualization
        filter_img = (filter_img - filter_img.min()) / (filter_img.max() - filter_img.min() + 1e-8)

        axes[i].imshow(filter_img, cmap='gray')
        axes[i].set_title(f'Filter {i}', fontsize=8)
        axes[i].axis('off')

    for i in range(n_filters, len(axes)):
        axes[i].axis('off')

    plt.suptitle('Convolutional Filters', fontsize=14)
    return _finish(fig, save_path, "Filters visualization", show)


def visualize_volume(vol, max_maps=16, figsize=(12, 12), save_path=None, show=True):
    """
    Visualize every depth slice of a volume, e.g. a layer's output.

    Args:
        vol: Volume
        max_maps: Maximum number of depth slices to display
        figsize: Figure size
        save_path: Path to save figure
        show: Call plt.show()
    """
    maps = vol.to_array()
    n_maps = min(vol.dims.z, max_maps)
    fig, axes = _grid(n_maps, figsize)

    for i in range(n_maps):
        axes[i].imshow(maps[:, :, i], cmap='viridis')
        axes[i].set_title(f'Depth {i}', fontsize=8)
        axes[i].axis('off')

    # Hide unused subplots
    for i in range(n_maps, len(axes)):
        axes[i].axis('off')

    plt.suptitle('Feature Maps', fontsize=14)
    return _finish(fig, save_path, "Feature maps", show)
