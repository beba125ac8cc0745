"""
Compute backends: buffers, kernels and an ordered command queue.

Every backend owns a single-worker executor that plays the role of a GPU
queue: work runs in submission order, so a readback submitted after a batch
of steps always sees the finished batch. GL calls only ever happen on that
worker thread, which is where the context is created.

    ArrayBackend   NumPy, or CuPy when requested and available
    GLBackend      OpenGL 4.3 compute shaders through ModernGL
"""

from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from . import kernels
from .errors import ResourceExhaustedError, UnsupportedConfigurationError

try:
    import cupy as cp

    _HAS_CUPY = True
except ImportError:
    _HAS_CUPY = False


class ComputeBackend:
    """Buffers, kernels, dispatch and readback behind one command queue."""

    dtype = np.dtype("f8")
    max_workgroup_size = 1024

    def __init__(self):
        self._queue = ThreadPoolExecutor(max_workers=1, thread_name_prefix=type(self).__name__)
        self.released = False

    def submit(self, fn, *args, **kwargs):
        """Queue fn behind everything already submitted; returns a Future."""
        if self.released:
            raise RuntimeError(f"{type(self).__name__} has been released")
        return self._queue.submit(fn, *args, **kwargs)

    def run(self, fn, *args, **kwargs):
        """Submit and wait. Never call from inside queued work."""
        return self.submit(fn, *args, **kwargs).result()

    # Everything below executes on the queue thread.

    def allocate(self, n, components=2):
        raise NotImplementedError

    def upload(self, buffer, data):
        raise NotImplementedError

    def compile(self, entry, workgroup_size):
        raise NotImplementedError

    def dispatch(self, kernel, bindings, workgroups, uniforms):
        raise NotImplementedError

    def barrier(self):
        pass

    def copy(self, dst, src):
        raise NotImplementedError

    def read(self, buffer):
        """Independent host copy of a buffer."""
        raise NotImplementedError

    def release_buffer(self, buffer):
        pass

    def release_kernel(self, kernel):
        pass

    def release(self):
        if not self.released:
            self.released = True
            self._queue.shutdown(wait=True)


class ArrayBackend(ComputeBackend):
    """
    Array kernels on NumPy, or on CuPy when use_gpu is set and CuPy imports.

    max_workgroup_size emulates a device limit so capability checks behave
    the same as on a GPU.
    """

    def __init__(self, use_gpu=False, dtype="f8", max_workgroup_size=1024):
        super().__init__()
        self.gpu = use_gpu and _HAS_CUPY
        self.xp = cp if self.gpu else np
        self.dtype = np.dtype(dtype)
        self.max_workgroup_size = max_workgroup_size

    @property
    def label(self):
        return "GPU (CuPy)" if self.gpu else "CPU (NumPy)"

    def allocate(self, n, components=2):
        shape = (n, components) if components > 1 else (n,)
        try:
            return self.xp.zeros(shape, dtype=self.dtype)
        except MemoryError as exc:
            raise ResourceExhaustedError(f"cannot allocate buffer of shape {shape}") from exc

    def upload(self, buffer, data):
        buffer[...] = self.xp.asarray(data, dtype=self.dtype)

    def compile(self, entry, workgroup_size):
        return kernels.ENTRIES[entry].array_fn

    def dispatch(self, kernel, bindings, workgroups, uniforms):
        kernel(self.xp, uniforms, **bindings)

    def copy(self, dst, src):
        dst[...] = src

    def read(self, buffer):
        return buffer.get() if self.gpu else buffer.copy()


GLKernel = namedtuple("GLKernel", "shader roles")


class GLBackend(ComputeBackend):
    """
    OpenGL 4.3 compute shaders via a standalone ModernGL context.

    Buffers are SSBOs of float32; each kernel binds its roles to consecutive
    storage-buffer slots. memory_barrier() separates dependent dispatches.
    """

    dtype = np.dtype("f4")

    def __init__(self, standalone_backend=None):
        super().__init__()
        try:
            self.ctx, self.max_workgroup_size = self.run(self._create_context, standalone_backend)
        except Exception as exc:
            self.release()
            raise UnsupportedConfigurationError(
                f"no OpenGL {kernels.GLSL_VERSION // 100}.{kernels.GLSL_VERSION % 100 // 10} "
                f"compute context: {exc}") from exc

    @staticmethod
    def _create_context(standalone_backend):
        import moderngl

        options = {"require": kernels.GLSL_VERSION}
        if standalone_backend:
            options["backend"] = standalone_backend
        ctx = moderngl.create_standalone_context(**options)
        # GL 4.3 guarantees at least 1024 for both limits
        size = ctx.info.get("GL_MAX_COMPUTE_WORK_GROUP_SIZE", (1024, 1024, 64))[0]
        invocations = ctx.info.get("GL_MAX_COMPUTE_WORK_GROUP_INVOCATIONS", 1024)
        return ctx, min(size, invocations)

    @property
    def label(self):
        return f"GPU (OpenGL: {self.run(lambda: self.ctx.info['GL_RENDERER'])})"

    def allocate(self, n, components=2):
        import moderngl

        try:
            return self.ctx.buffer(np.zeros(n * components, dtype=self.dtype).tobytes())
        except moderngl.Error as exc:
            raise ResourceExhaustedError(f"cannot allocate SSBO of {n}×{components} floats") from exc

    def upload(self, buffer, data):
        buffer.write(np.ascontiguousarray(data, dtype=self.dtype).tobytes())

    def compile(self, entry, workgroup_size):
        shader = self.ctx.compute_shader(kernels.glsl_source(entry, workgroup_size))
        return GLKernel(shader, kernels.ENTRIES[entry].bindings)

    def dispatch(self, kernel, bindings, workgroups, uniforms):
        for slot, role in enumerate(kernel.roles):
            bindings[role].bind_to_storage_buffer(slot)
        for name, value in uniforms.items():
            member = kernel.shader.get(name, None)
            if member is not None:
                member.value = value
        kernel.shader.run(group_x=workgroups)

    def barrier(self):
        self.ctx.memory_barrier()

    def copy(self, dst, src):
        self.ctx.copy_buffer(dst, src)

    def read(self, buffer):
        return np.frombuffer(buffer.read(), dtype=self.dtype).reshape(-1, 2).astype(np.float64)

    def release_buffer(self, buffer):
        buffer.release()

    def release_kernel(self, kernel):
        kernel.shader.release()

    def release(self):
        if not self.released and getattr(self, "ctx", None) is not None:
            self.run(self.ctx.release)
        super().release()
