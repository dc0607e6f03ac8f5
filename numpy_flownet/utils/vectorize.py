"""
vectorize.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Implements the im2col/col2im transformations used to express convolution as matrix multiplication,
             the geometry index map of im2col, and the delta expansion that routes convolution gradients
             back to the input positions they originated from.
Published: 10-18-2026
"""

import numpy as _np
from numpy_flownet.utils import backend


def im2col(x, field, stride, padding=(0, 0), with_indices=False):
    """
    Transform a batch of feature-map stacks into columnar patch representations.

    The im2col trick reshapes a 4D input tensor into a 2D matrix so that
    convolution can be performed as a single matrix multiplication
    W (filters x fh*fw*D) @ cols.

    Within a patch the field width iterates fastest, then the field height,
    then the depth; the convolution weights use the same order.

    Args:
        x (ndarray): Input tensor of shape (N, D, H, W).
        field (tuple): Receptive field (width, height).
        stride (tuple): Stride (width, height).
        padding (tuple): Zero-padding (width, height) applied on each side.
        with_indices (bool): Also build the index map of the geometry.

    Returns:
        cols (ndarray): 2D array of shape (D*fh*fw, N*H_out*W_out).
        index_map (ndarray or None): Int array of shape (Hp, Wp, fh, fw) holding,
            for padded position (r, c) read at field offset (a, b), 1 + the
            per-sample column of the window that read it; 0 marks unused cells.

    Example:
        x = numpy.random.rand(2, 3, 6, 6)
        cols, _ = im2col(x, field=(3, 3), stride=(1, 1))
        cols.shape
        (27, 32)  # 3*3*3, 2*4*4
    """
    xp = backend.array_module(x)
    # Extract input dimensions
    N, D, H, W = x.shape
    fw, fh = field
    sw, sh = stride
    pw, ph = padding
    # Compute output spatial dimensions
    H_p, W_p = H + 2*ph, W + 2*pw
    H_out = (H_p - fh)//sh + 1
    W_out = (W_p - fw)//sw + 1

    # ===== Zero-padding =====
    if ph or pw:
        x_padded = xp.zeros((N, D, H_p, W_p), dtype=x.dtype)
        x_padded[:, :, ph:ph+H, pw:pw+W] = x
    else:
        x_padded = x

    # ===== Extract sliding windows =====
    # windows shape: (N, D, H_p-fh+1, W_p-fw+1, fh, fw)
    sliding_window_view = xp.lib.stride_tricks.sliding_window_view
    windows = sliding_window_view(x_padded, (fh, fw), axis=(2, 3))
    # Apply stride by slicing every S steps in height and width
    windows = windows[:, :, ::sh, ::sw, :, :]

    # ===== Rearrange and reshape =====
    # from (N, D, H_out, W_out, fh, fw) to (D, fh, fw, N, H_out, W_out)
    windows = windows.transpose(1, 4, 5, 0, 2, 3)
    cols = windows.reshape(D*fh*fw, N*H_out*W_out)

    if not with_indices:
        return cols, None
    return cols, xp.asarray(index_map(H, W, field, stride, padding))


def index_map(height, width, field, stride, padding=(0, 0)):
    """
    Build the im2col index map for a geometry (independent of the values and the depth).

    Returns:
        numpy.ndarray: Int array (Hp, Wp, fh, fw), see im2col.
    """
    fw, fh = field
    sw, sh = stride
    pw, ph = padding
    H_p, W_p = height + 2*ph, width + 2*pw
    H_out = (H_p - fh)//sh + 1
    W_out = (W_p - fw)//sw + 1

    oh, ow, a, b = _np.meshgrid(_np.arange(H_out), _np.arange(W_out), _np.arange(fh), _np.arange(fw), indexing="ij")
    indices = _np.zeros((H_p, W_p, fh, fw), dtype=_np.int64)
    # a (position, offset) pair belongs to exactly one window
    indices[oh*sh + a, ow*sw + b, a, b] = oh*W_out + ow + 1
    return indices


def col2im(matrix, dim, batch_size=1):
    """
    Inverse reshape of a convolution output back into feature maps.

    Args:
        matrix (ndarray): Shape (filters, N*H*W), columns ordered (n, h, w).
        dim (tuple): Output volume (width, height, filters).
        batch_size (int): Number of samples N.

    Returns:
        ndarray: Feature maps of shape (N, filters, H, W).
    """
    W, H, F = dim
    return matrix.reshape(F, batch_size, H, W).transpose(1, 0, 2, 3)


def flatten_maps(matrix, dim, batch_size):
    """
    Move a convolution activation from (filters, N*H*W) to the dense layout (N, filters*H*W).
    """
    W, H, F = dim
    return matrix.reshape(F, batch_size, H*W).transpose(1, 0, 2).reshape(batch_size, F*H*W)


def unflatten_maps(matrix, dim, batch_size):
    """
    Inverse of flatten_maps: (N, filters*H*W) -> (filters, N*H*W).
    """
    W, H, F = dim
    return matrix.reshape(batch_size, F, H*W).transpose(1, 0, 2).reshape(F, batch_size*H*W)


def expand_deltas(delta, indices, batch_size):
    """
    Scatter every output delta to each input position its window read from.

    Args:
        delta (ndarray): Deltas of a convolution layer, shape (F, N*H_out*W_out).
        indices (ndarray): Index map of that layer's im2col, shape (Hp, Wp, fh, fw).
        batch_size (int): Number of samples N.

    Returns:
        ndarray: Expanded map (N, F, Hp*fh, Wp*fw); cell (r*fh + a, c*fw + b) holds the
            delta of the window that read padded position (r, c) at offset (a, b), zero if none.
    """
    xp = backend.array_module(delta)
    F = delta.shape[0]
    H_p, W_p, fh, fw = indices.shape
    deltas = delta.reshape(F, batch_size, -1)
    # unused cells gather index -1 and are masked out below
    gathered = deltas[:, :, indices - 1]
    gathered = gathered * (indices > 0).astype(delta.dtype)
    # (F, N, Hp, Wp, fh, fw) -> (N, F, Hp, fh, Wp, fw)
    expanded = gathered.transpose(1, 0, 2, 4, 3, 5)
    return xp.ascontiguousarray(expanded).reshape(batch_size, F, H_p*fh, W_p*fw)


def regroup_weights(weights, depth, field):
    """
    Regroup convolution weights (F, D*fh*fw) into (D, F*fh*fw) for the backward pass.
    """
    fw, fh = field
    F = weights.shape[0]
    return weights.reshape(F, depth, fh*fw).transpose(1, 0, 2).reshape(depth, F*fh*fw)


def conv_backward_deltas(delta, weights, layer, indices, batch_size):
    """
    Propagate the deltas of a convolution layer to the activations of its input volume.

    Overlapping windows contribute separately and are summed by the matrix multiply.

    Args:
        delta (ndarray): Deltas of `layer`, shape (filters, N*H_out*W_out).
        weights (ndarray): Weights of `layer`, shape (filters, fh*fw*D).
        layer (Layer_Convolution): The convolution the deltas belong to.
        indices (ndarray): Index map of `layer`'s im2col.
        batch_size (int): Number of samples N.

    Returns:
        ndarray: Gradient w.r.t. the input activations, shape (D, N*H*W).
    """
    W, H, D = layer.dim_in
    pw, ph = layer.padding
    H_p, W_p = H + 2*ph, W + 2*pw

    expanded = expand_deltas(delta, indices, batch_size)
    dc, _ = im2col(expanded, layer.field, layer.field)
    ww = regroup_weights(weights, D, layer.field)
    d = (ww @ dc).reshape(D, batch_size, H_p, W_p)
    # crop the padding back off
    d = d[:, :, ph:ph+H, pw:pw+W]
    return d.reshape(D, batch_size*H*W)
