"""
FDTD stencils for the 1D Schrödinger equation.

Natural units: ℏ = 1, m = 1. Ψ is stored as (re, im) pairs.

With lap f = (f[i+1] − 2f[i] + f[i−1]) / dx², the updates are

    first order   Re' = Re − dt·(lap Im − 2V·Im)/2     Im' = Im + dt·(lap Re − 2V·Re)/2
    leapfrog      Re' = Re_old − dt·(lap Im − 2V·Im)   Im' = Im_old + dt·(lap Re − 2V·Re)
    staggered     Re(t+dt) from Im(t+dt/2), then Im(t+3dt/2) from Re(t+dt)

Neighbour indices are clamped to [0, N−1] with min/max, never wrapped; the
edge values this produces are overwritten by the Mur boundary when enabled.

Every entry point exists twice: as an array function (NumPy or CuPy via
`xp`) and as a GLSL 4.30 compute shader. Both take the same binding roles;
for the shaders the role order is the SSBO binding index.
"""

from collections import namedtuple

GLSL_VERSION = 430

Entry = namedtuple("Entry", "name bindings array_fn glsl local_size")


# ── Array kernels ────────────────────────────────────────

def neighbour_indices(xp, n):
    """(right, left) neighbour indices, clamped to the grid."""
    i = xp.arange(n)
    return xp.minimum(i + 1, n - 1), xp.maximum(i - 1, 0)


def laplacian(xp, f, dx):
    right, left = neighbour_indices(xp, f.shape[0])
    return (f[right] - 2.0 * f + f[left]) / (dx * dx)


def _edges(n):
    # (edge, one step in) for the left and right boundary
    return [0, n - 1], [1, n - 2]


def euler_step(xp, u, potential, psi, updated):
    dt, dx = u["dt"], u["dx"]
    re, im = psi[:, 0], psi[:, 1]
    updated[:, 0] = re - 0.5 * dt * (laplacian(xp, im, dx) - 2.0 * potential * im)
    updated[:, 1] = im + 0.5 * dt * (laplacian(xp, re, dx) - 2.0 * potential * re)


def leapfrog_step(xp, u, potential, old, psi, updated):
    dt, dx = u["dt"], u["dx"]
    re, im = psi[:, 0], psi[:, 1]
    updated[:, 0] = old[:, 0] - dt * (laplacian(xp, im, dx) - 2.0 * potential * im)
    updated[:, 1] = old[:, 1] + dt * (laplacian(xp, re, dx) - 2.0 * potential * re)


def staggered_real(xp, u, potential, psi, old):
    dt, dx = u["dt"], u["dx"]
    im = psi[:, 1]
    old[:, 0] = psi[:, 0]
    psi[:, 0] = old[:, 0] - dt * (0.5 * laplacian(xp, im, dx) - potential * im)


def staggered_imag(xp, u, potential, psi, old):
    dt, dx = u["dt"], u["dx"]
    re = psi[:, 0]
    old[:, 1] = psi[:, 1]
    psi[:, 1] = old[:, 1] + dt * (0.5 * laplacian(xp, re, dx) - potential * re)


def mur_boundary(xp, u, psi, updated):
    edge, inner = _edges(psi.shape[0])
    c = u["mur"]
    updated[edge] = psi[inner] + c * (updated[inner] - psi[edge])


def mur_real(xp, u, psi, old):
    edge, inner = _edges(psi.shape[0])
    c = u["mur"]
    psi[edge, 0] = old[inner, 0] + c * (psi[inner, 0] - old[edge, 0])


def mur_imag(xp, u, psi, old):
    edge, inner = _edges(psi.shape[0])
    c = u["mur"]
    psi[edge, 1] = old[inner, 1] + c * (psi[inner, 1] - old[edge, 1])


def fused_euler(xp, u, potential, psi, scratch):
    """`iterations` first-order steps, ping-ponging psi ↔ scratch."""
    src, dst = psi, scratch
    for _ in range(u["iterations"]):
        euler_step(xp, u, potential, src, dst)
        if u["boundary"]:
            mur_boundary(xp, u, src, dst)
        src, dst = dst, src


# ── GLSL compute shaders ─────────────────────────────────

_HEADER = """
uniform float dt;
uniform float dx;
uniform int n;

int right_of(int i) { return min(i + 1, n - 1); }
int left_of(int i) { return max(i - 1, 0); }
"""

_EULER = """
layout(std430, binding = 0) readonly buffer Potential { float potential[]; };
layout(std430, binding = 1) readonly buffer Psi { vec2 psi[]; };
layout(std430, binding = 2) writeonly buffer Updated { vec2 updated[]; };

void main() {
    int i = int(gl_GlobalInvocationID.x);
    if (i >= n) {
        return;
    }
    vec2 here = psi[i];
    vec2 lap = (psi[right_of(i)] - 2.0 * here + psi[left_of(i)]) / (dx * dx);
    float twoV = 2.0 * potential[i];
    updated[i] = here + 0.5 * dt * vec2(-(lap.y - twoV * here.y), lap.x - twoV * here.x);
}
"""

_LEAPFROG = """
layout(std430, binding = 0) readonly buffer Potential { float potential[]; };
layout(std430, binding = 1) readonly buffer Old { vec2 old_psi[]; };
layout(std430, binding = 2) readonly buffer Psi { vec2 psi[]; };
layout(std430, binding = 3) writeonly buffer Updated { vec2 updated[]; };

void main() {
    int i = int(gl_GlobalInvocationID.x);
    if (i >= n) {
        return;
    }
    vec2 here = psi[i];
    vec2 lap = (psi[right_of(i)] - 2.0 * here + psi[left_of(i)]) / (dx * dx);
    float twoV = 2.0 * potential[i];
    updated[i] = old_psi[i] + dt * vec2(-(lap.y - twoV * here.y), lap.x - twoV * here.x);
}
"""

# Each staggered pass writes only the component it does not read from
# neighbours, so updating psi in place is race free.
_STAGGERED_REAL = """
layout(std430, binding = 0) readonly buffer Potential { float potential[]; };
layout(std430, binding = 1) buffer Psi { vec2 psi[]; };
layout(std430, binding = 2) buffer Old { vec2 old_psi[]; };

void main() {
    int i = int(gl_GlobalInvocationID.x);
    if (i >= n) {
        return;
    }
    float im = psi[i].y;
    float lap = (psi[right_of(i)].y - 2.0 * im + psi[left_of(i)].y) / (dx * dx);
    float re = psi[i].x;
    old_psi[i].x = re;
    psi[i].x = re - dt * (0.5 * lap - potential[i] * im);
}
"""

_STAGGERED_IMAG = """
layout(std430, binding = 0) readonly buffer Potential { float potential[]; };
layout(std430, binding = 1) buffer Psi { vec2 psi[]; };
layout(std430, binding = 2) buffer Old { vec2 old_psi[]; };

void main() {
    int i = int(gl_GlobalInvocationID.x);
    if (i >= n) {
        return;
    }
    float re = psi[i].x;
    float lap = (psi[right_of(i)].x - 2.0 * re + psi[left_of(i)].x) / (dx * dx);
    float im = psi[i].y;
    old_psi[i].y = im;
    psi[i].y = im + dt * (0.5 * lap - potential[i] * re);
}
"""

# Invocation 0 handles the left edge, invocation 1 the right edge.
_MUR = """
layout(std430, binding = 0) readonly buffer Psi { vec2 psi[]; };
layout(std430, binding = 1) buffer Updated { vec2 updated[]; };
uniform float mur;

void main() {
    int side = int(gl_GlobalInvocationID.x);
    int edge = side * (n - 1);
    int inner = edge + 1 - 2 * side;
    updated[edge] = psi[inner] + mur * (updated[inner] - psi[edge]);
}
"""

_MUR_COMPONENT = """
layout(std430, binding = 0) buffer Psi { vec2 psi[]; };
layout(std430, binding = 1) readonly buffer Old { vec2 old_psi[]; };
uniform float mur;

void main() {
    int side = int(gl_GlobalInvocationID.x);
    int edge = side * (n - 1);
    int inner = edge + 1 - 2 * side;
    psi[edge].%(c)s = old_psi[inner].%(c)s + mur * (psi[inner].%(c)s - old_psi[edge].%(c)s);
}
"""

# One workgroup spanning the whole grid; barrier() replaces re-dispatch.
_FUSED_EULER = """
layout(std430, binding = 0) readonly buffer Potential { float potential[]; };
layout(std430, binding = 1) coherent buffer Psi { vec2 psi[]; };
layout(std430, binding = 2) coherent buffer Scratch { vec2 scratch[]; };
uniform int iterations;
uniform int boundary;
uniform float mur;

vec2 advance(vec2 here, vec2 right, vec2 left, float V) {
    vec2 lap = (right - 2.0 * here + left) / (dx * dx);
    return here + 0.5 * dt * vec2(-(lap.y - 2.0 * V * here.y), lap.x - 2.0 * V * here.x);
}

void main() {
    int i = int(gl_LocalInvocationID.x);
    int inner = i == 0 ? 1 : n - 2;
    bool on_edge = boundary != 0 && (i == 0 || i == n - 1);
    float V = potential[i];

    for (int it = 0; it < iterations; it++) {
        if (it % 2 == 0) {
            scratch[i] = advance(psi[i], psi[right_of(i)], psi[left_of(i)], V);
        } else {
            psi[i] = advance(scratch[i], scratch[right_of(i)], scratch[left_of(i)], V);
        }
        memoryBarrierBuffer();
        barrier();
        if (on_edge) {
            if (it % 2 == 0) {
                scratch[i] = psi[inner] + mur * (scratch[inner] - psi[i]);
            } else {
                psi[i] = scratch[inner] + mur * (psi[inner] - scratch[i]);
            }
        }
        memoryBarrierBuffer();
        barrier();
    }
}
"""

ENTRIES = {
    e.name: e for e in (
        Entry("euler_step", ("potential", "psi", "updated"), euler_step, _EULER, None),
        Entry("leapfrog_step", ("potential", "old", "psi", "updated"),
              leapfrog_step, _LEAPFROG, None),
        Entry("staggered_real", ("potential", "psi", "old"),
              staggered_real, _STAGGERED_REAL, None),
        Entry("staggered_imag", ("potential", "psi", "old"),
              staggered_imag, _STAGGERED_IMAG, None),
        Entry("mur_boundary", ("psi", "updated"), mur_boundary, _MUR, 2),
        Entry("mur_real", ("psi", "old"), mur_real, _MUR_COMPONENT % {"c": "x"}, 2),
        Entry("mur_imag", ("psi", "old"), mur_imag, _MUR_COMPONENT % {"c": "y"}, 2),
        Entry("fused_euler", ("potential", "psi", "scratch"), fused_euler, _FUSED_EULER, None),
    )
}


def glsl_source(name, workgroup_size):
    """Complete compute shader for an entry point."""
    entry = ENTRIES[name]
    size = entry.local_size or workgroup_size
    return (f"#version {GLSL_VERSION}\n"
            f"layout(local_size_x = {size}) in;\n"
            + _HEADER + entry.glsl)
