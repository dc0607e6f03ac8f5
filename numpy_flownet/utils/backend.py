"""
backend.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Backend configuration and GPU utilities for NumPy/CuPy-based computations.
             Includes array-module selection per device, dtype resolution, scoped device buffers
             with guaranteed release, GPU synchronization and a timing context manager.
Published: 10-18-2026
"""

import time
from contextlib import contextmanager
import numpy as _np
# Attempt to import CuPy for GPU acceleration; fall back to None if unavailable
try:
    import cupy as _cp
except ImportError:
    _cp = None

cp = _cp # CuPy if available, else None

DEVICES = ("cpu", "gpu")
DTYPES = {"float32": _np.float32, "float64": _np.float64}


def gpu_available():
    """
    Check whether CuPy is installed and a CUDA device answers a test allocation.

    Returns:
        bool: True if the 'gpu' device can be used.
    """
    if cp is None:
        return False
    try:
        # quick test allocation on GPU
        cp.zeros((1,)).sum()
        return True
    except Exception:
        return False


def get_array_module(device):
    """
    Select compute backend: 'gpu' for CuPy, 'cpu' for NumPy.

    Args:
        device (str): 'gpu' or 'cpu'.

    Returns:
        module: numpy or cupy.
    """
    if device == "gpu":
        if cp is None:
            raise RuntimeError("CuPy is not installed, the 'gpu' device is unavailable")
        return cp
    if device == "cpu":
        return _np
    raise ValueError(f"Unknown device: {device}")


def array_module(array):
    """Return the array module (numpy or cupy) an array belongs to."""
    if cp is not None and isinstance(array, cp.ndarray):
        return cp
    return _np


def resolve_dtype(dtype):
    """Map a precision name ('float32', 'float64') to its NumPy scalar type."""
    try:
        return DTYPES[dtype]
    except KeyError:
        raise ValueError(f"Unsupported dtype: {dtype}") from None


def to_numpy(array):
    """
    Copy an array to host memory.

    Args:
        array: NumPy or CuPy array.

    Returns:
        numpy.ndarray: Host copy (NumPy arrays are copied as well).
    """
    if cp is not None and isinstance(array, cp.ndarray):
        return cp.asnumpy(array)
    return _np.array(array, copy=True)


def sync_gpu(xp):
    """
    Synchronize GPU operations to ensure all kernels complete.

    Only effective if xp is CuPy; otherwise does nothing.
    """
    if cp is not None and xp is cp:
        cp.cuda.Device().synchronize()


class DeviceBuffers:
    """
    Registry of intermediate buffers for one training step.

    Buffers are keyed by (layer_index, purpose) so a step can be audited,
    and are all released when the scope closes, including on exceptions.

    Attributes:
        xp (module): Array module the buffers live in.
        released (int): Number of buffers released by the last close().
    """
    def __init__(self, xp):
        self.xp = xp
        self.handles = {}
        self.released = 0

    def __setitem__(self, key, array):
        self.handles[key] = array

    def __getitem__(self, key):
        return self.handles[key]

    def __contains__(self, key):
        return key in self.handles

    def __len__(self):
        return len(self.handles)

    def keys(self):
        return list(self.handles.keys())

    def close(self):
        """
        Drop every registered buffer and hand freed blocks back to the CuPy pool.
        """
        self.released = len(self.handles)
        self.handles.clear()
        if cp is not None and self.xp is cp:
            cp.cuda.Device().synchronize()
            cp.get_default_memory_pool().free_all_blocks()


@contextmanager
def device_buffers(xp, audit=None):
    """
    Scoped acquisition of a DeviceBuffers registry with guaranteed release.

    Args:
        xp (module): numpy or cupy.
        audit (list): Optional list receiving the registry after release (for tests).
    """
    buffers = DeviceBuffers(xp)
    try:
        yield buffers
    finally:
        buffers.close()
        if audit is not None:
            audit.append(buffers)


def memory_usage_mb(xp):
    """
    Current CuPy memory pool usage in MB, 0 for NumPy.
    """
    if cp is None or xp is not cp:
        return 0.
    return cp.get_default_memory_pool().used_bytes() / (1024 ** 2)


@contextmanager
def profile_block(xp, name="Block", logger=None):
    """
    Context manager to time execution and track GPU memory delta for a code block.

    Args:
        xp (module): Array module of the profiled code.
        name (str): Identifier for the profiling block.
        logger: Optional logger to record profiling info; prints to stdout if None.
    """
    # Start timing and optional GPU sync
    start_time = time.time()
    sync_gpu(xp)
    start_mem = memory_usage_mb(xp)

    yield  # Run the code block

    # End timing and memory measurement
    sync_gpu(xp)
    end_mem = memory_usage_mb(xp)

    elapsed = time.time() - start_time
    msg = f"{name} | Time: {elapsed:.3f}s | GPU Memory: {start_mem:.2f} -> {end_mem:.2f} MB"
    if logger:
        logger.info(msg)
    else:
        print(msg)
