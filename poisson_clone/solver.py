"""
**Gradient-Domain Seamless Cloning (Poisson Image Editing)**

This module pastes the gradient field of a source image into a destination
image inside a masked region Omega. Inside Omega the result keeps the texture of
the source, at the border of Omega it takes on the colors of the destination, so
no visible seam remains.

For every pixel p in Omega the discrete Poisson equation with Dirichlet boundary
is solved:

    |N_p| f_p - sum_{q in N_p & Omega} f_q = sum_{q in N_p & dOmega} f*_q + sum_{q in N_p} v_pq

with N_p the in-bounds 4-neighbours of p, f* the destination and v_pq the
guidance field, here the source gradient g_p - g_q (or, with mixed gradients,
whichever of source and destination gradient is stronger per channel).
Raster border pixels simply have fewer neighbours.

Core pipeline:
1. Classify the mask into Omega (`region.classify`)
2. Build interior addressing: scan-order interior indices + neighbour slot table
3. Assemble the right-hand side per interior pixel (guidance + boundary values)
4. Seed the estimate from destination or source colors
5. Gauss-Seidel / SOR sweeps in raster scan order until the largest per-channel
   change of one sweep drops below the tolerance, or the budget runs out
6. Clamp, round and write the estimate into a copy of the destination

As ASCII model:
```text
      source      mask      destination
         │          │            │
         │          v            │
         │   ┌─────────────┐     │
         │   │  Omega map  │     │
         │   └──────┬──────┘     │
         v          v            v
      ┌────────────────────────────────┐
      │  assemble rhs (guidance + f*)  │
      └───────────────┬────────────────┘
                      v
      ┌────────────────────────────────┐ <─┐
      │    relaxation sweep (in order) │   │ max_diff >= tolerance
      └───────────────┬────────────────┘ ──┘ and budget left
                      v
      ┌────────────────────────────────┐
      │  clamp + write into dst copy   │
      └────────────────────────────────┘
```

<br><br>

Numba notes:<br>
The per-pixel work runs in Numba kernels on flat arrays. The sweep itself is
strictly sequential: every update already sees the neighbours updated earlier in
the same sweep. Do not parallelize `relax_sweep_numba` over pixels, that turns
the method into Jacobi iteration with different convergence behavior.
`solve_batch` parallelizes across independent solves only.

Example:
```python
result = pc.solver.solve(
    source=src,
    mask=mask,
    destination=dst,
    config=pc.solver.SolverConfig(max_iterations=2000, relaxation_factor=1.8)
)
```

Dependencies:
- numpy
- numba
- joblib (batch solving)

Public API:
- SolverConfig
- solve(...)
- solve_with_info(...)
- seamless_clone(...)
- solve_batch(...)

Main internal kernels/utilities:
- assemble_system_numba(...)
- init_estimate_numba(...)
- relax_sweep_numba(...)
- write_back_numba(...)
"""



# ---------------
# >>> Imports <<<
# ---------------
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

# optimization
import numba
from joblib import Parallel, delayed

from .img import check_same_size, to_rgba
from .region import classify, interior_indices, build_neighbor_slots, NEIGHBOR_DX, NEIGHBOR_DY



# -------------------------
# >>> Config & records <<<
# -------------------------

@dataclass(frozen=True)
class SolverConfig:
    """
    Parameters of one solve.

    Attributes:
    - max_iterations (int): <br>
        Sweep budget. The solve stops here if not converged earlier (default: 500).
    - tolerance (float): <br>
        Convergence threshold on the largest per-channel change of one sweep (default: 1e-3).
    - relaxation_factor (float): <br>
        SOR weight. 1.0 is plain Gauss-Seidel, 1.25-1.95 usually converges faster,
        above 2.0 the iteration diverges (default: 1.0).
    - guess_destination (bool): <br>
        Seed the estimate from the destination colors (True) or from the
        source colors (False) (default: True).
    - mixed_gradients (bool): <br>
        Per channel use the destination gradient where it is stronger than the
        source gradient. Never applied to alpha (default: False).
    """
    max_iterations: int = 500
    tolerance: float = 1e-3
    relaxation_factor: float = 1.0
    guess_destination: bool = True
    mixed_gradients: bool = False

    def __post_init__(self):
        if int(self.max_iterations) != self.max_iterations or self.max_iterations < 0:
            raise ValueError(f"max_iterations must be a non-negative integer, got {self.max_iterations!r}.")
        if not self.tolerance >= 0:
            raise ValueError(f"tolerance must be non-negative, got {self.tolerance!r}.")
        if not self.relaxation_factor > 0:
            raise ValueError(f"relaxation_factor must be positive, got {self.relaxation_factor!r}.")

    def replace(self, **changes) -> "SolverConfig":
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)



@dataclass(frozen=True)
class SolveProgress:
    """
    Diagnostic record handed to an observer.

    Sent once per sweep (`finished=False`, `iteration` is the 0-based sweep index)
    and once at the end (`finished=True`, `iteration` is the number of sweeps run).
    """
    iteration: int
    max_diff: float
    pixel_count: int
    converged: bool
    finished: bool = False



@dataclass(frozen=True)
class SolveInfo:
    """
    Summary of a finished solve.

    Attributes:
    - pixel_count (int): number of pixels in Omega.
    - iterations (int): number of sweeps performed.
    - converged (bool): whether the tolerance was reached within the budget.
    - last_max_diff (float): largest per-channel change of the last sweep
      (0.0 if no sweep ran).
    """
    pixel_count: int
    iterations: int
    converged: bool
    last_max_diff: float



# -------------------------
# >>> Numerical kernels <<<
# -------------------------

@numba.njit(cache=True, fastmath=True)
def assemble_system_numba(src, dst, omega_idx, inside_flat, H, W, dx, dy, mixed):
    """
    Assemble the constant right-hand side of the Poisson system.

    For every interior pixel p and every in-bounds neighbour q the guidance
    value is added per channel. For R, G and B this is the source gradient
    src[p] - src[q], replaced by the destination gradient dst[p] - dst[q] when
    `mixed` is set and the destination gradient has the larger magnitude.
    Alpha always uses the source gradient, mixing alpha produces jagged edges.
    Neighbours outside Omega additionally contribute their destination color
    (Dirichlet boundary).

    Parameters:
    - src (np.ndarray): <br>
        (H*W, 4) float64 source colors.
    - dst (np.ndarray): <br>
        (H*W, 4) float64 destination colors.
    - omega_idx (np.ndarray): <br>
        (K,) int64 linear indices of the interior pixels.
    - inside_flat (np.ndarray): <br>
        (H*W,) bool membership map.
    - H (int): <br>
        Raster height.
    - W (int): <br>
        Raster width.
    - dx (np.ndarray): <br>
        x offsets of the 4 neighbours.
    - dy (np.ndarray): <br>
        y offsets of the 4 neighbours.
    - mixed (int): <br>
        1 to enable mixed gradients, 0 otherwise.

    Returns:
    - np.ndarray: <br>
        (K, 4) float64 right-hand side.
    """
    K = omega_idx.shape[0]
    rhs = np.zeros((K, 4), dtype=np.float64)

    for k in range(K):
        p = omega_idx[k]
        y = p // W
        x = p - y * W

        for n in range(4):
            nx = x + dx[n]
            ny = y + dy[n]
            if nx < 0 or nx >= W or ny < 0 or ny >= H:
                continue
            q = ny * W + nx

            for c in range(3):
                g_src = src[p, c] - src[q, c]
                g_dst = dst[p, c] - dst[q, c]
                if mixed == 1 and abs(g_dst) > abs(g_src):
                    guidance = g_dst
                else:
                    guidance = g_src

                if not inside_flat[q]:
                    rhs[k, c] += dst[q, c]
                rhs[k, c] += guidance

            # alpha: plain source gradient
            if not inside_flat[q]:
                rhs[k, 3] += dst[q, 3]
            rhs[k, 3] += src[p, 3] - src[q, 3]

    return rhs



@numba.njit(cache=True, fastmath=True)
def init_estimate_numba(seed, omega_idx):
    """
    Copy the seed colors of all interior pixels into a (K, 4) float64 estimate.
    """
    K = omega_idx.shape[0]
    f = np.empty((K, 4), dtype=np.float64)
    for k in range(K):
        p = omega_idx[k]
        for c in range(4):
            f[k, c] = seed[p, c]
    return f



@numba.njit(cache=True, nogil=True)
def relax_sweep_numba(f, rhs, neighbor_slots, neighbor_count, omega):
    """
    Perform one Gauss-Seidel / SOR sweep in place.

    Interior pixels are visited in scan order. For each pixel the new value is
    the average of rhs plus the current estimates of interior neighbours. The
    change against the previous estimate (before relaxation) is tracked, then
    the relaxed value is written immediately so later pixels of the same
    sweep see it.

    Parameters:
    - f (np.ndarray): <br>
        (K, 4) float64 estimate, updated in place.
    - rhs (np.ndarray): <br>
        (K, 4) float64 right-hand side from `assemble_system_numba`.
    - neighbor_slots (np.ndarray): <br>
        (K, 4) int64 interior slot per neighbour, -1 if not interior.
    - neighbor_count (np.ndarray): <br>
        (K,) int64 number of in-bounds neighbours.
    - omega (float): <br>
        Relaxation factor.

    Returns:
    - float: <br>
        Largest absolute per-channel change (new estimate vs. previous value) of this sweep,
        nan or inf once the estimate has diverged.
    """
    K = f.shape[0]
    max_diff = 0.0

    for k in range(K):
        n_count = neighbor_count[k]
        # a 1x1 raster has no neighbours at all
        if n_count == 0:
            continue

        for c in range(4):
            acc = rhs[k, c]
            for n in range(4):
                s = neighbor_slots[k, n]
                if s >= 0:
                    acc += f[s, c]
            new_val = acc / n_count

            diff = abs(new_val - f[k, c])
            # nan of a diverged solve must win
            if not diff <= max_diff:
                max_diff = diff

            f[k, c] = (1.0 - omega) * f[k, c] + omega * new_val

    return max_diff



@numba.njit(cache=True)
def write_back_numba(result_flat, f, omega_idx):
    """
    Clamp the estimate into [0, 255], round and write it into the result.

    Parameters:
    - result_flat (np.ndarray): <br>
        (H*W, 4) uint8 copy of the destination, modified in place.
    - f (np.ndarray): <br>
        (K, 4) float64 estimate.
    - omega_idx (np.ndarray): <br>
        (K,) int64 linear indices of the interior pixels.
    """
    K = omega_idx.shape[0]
    for k in range(K):
        p = omega_idx[k]
        for c in range(4):
            v = f[k, c]
            # nan only shows up on a diverged solve
            if v != v or v <= 0.0:
                v = 0.0
            elif v >= 255.0:
                v = 255.0
            result_flat[p, c] = int(v + 0.5)



# --------------
# >>> Solver <<<
# --------------

def _snapshot(destination_rgba, f, omega_idx):
    result = destination_rgba.copy()
    write_back_numba(result.reshape(-1, 4), f, omega_idx)
    return result



def _run(source, mask, destination, config, observer, should_print, snapshot_every=0):
    """
    Shared solve driver.

    `snapshot_every` > 0 collects a result raster every that many sweeps
    (and always after the last sweep).

    Returns (result, info, snapshots).
    """
    if config is None:
        config = SolverConfig()

    # fail fast before any allocation
    check_same_size(source, mask, destination)

    src_rgba = to_rgba(source)
    dst_rgba = to_rgba(destination)
    H, W = dst_rgba.shape[:2]

    inside, pixel_count = classify(mask, should_print=should_print)
    snapshots = []

    # empty region: every update is a no-op
    if pixel_count == 0:
        result = dst_rgba.copy()
        if snapshot_every > 0:
            snapshots.append(result.copy())
        info = SolveInfo(pixel_count=0, iterations=0, converged=True, last_max_diff=0.0)
        if observer is not None:
            observer(SolveProgress(iteration=0, max_diff=0.0, pixel_count=0, converged=True, finished=True))
        return result, info, snapshots

    inside_flat = inside.reshape(-1)
    omega_idx = interior_indices(inside)
    neighbor_slots, neighbor_count = build_neighbor_slots(inside, omega_idx)

    src_flat = src_rgba.reshape(-1, 4).astype(np.float64)
    dst_flat = dst_rgba.reshape(-1, 4).astype(np.float64)

    rhs = assemble_system_numba(src_flat, dst_flat, omega_idx, inside_flat, H, W,
                                NEIGHBOR_DX, NEIGHBOR_DY, 1 if config.mixed_gradients else 0)
    f = init_estimate_numba(dst_flat if config.guess_destination else src_flat, omega_idx)

    omega = float(config.relaxation_factor)
    max_diff = 0.0
    iterations = 0
    converged = False

    for iteration in range(int(config.max_iterations)):
        max_diff = relax_sweep_numba(f, rhs, neighbor_slots, neighbor_count, omega)
        iterations = iteration + 1
        converged = bool(np.isfinite(max_diff)) and max_diff < config.tolerance

        if should_print and iteration % 10 == 0:
            print(f"Iteration {iteration}/{config.max_iterations}, maxDiff: {max_diff}")

        if observer is not None:
            observer(SolveProgress(iteration=iteration, max_diff=max_diff,
                                   pixel_count=pixel_count, converged=converged))

        if (snapshot_every > 0 and iterations % snapshot_every == 0
                and iterations < config.max_iterations and not converged):
            snapshots.append(_snapshot(dst_rgba, f, omega_idx))

        if converged:
            if should_print:
                print(f"Converged after {iterations} iterations.")
            break

    result = _snapshot(dst_rgba, f, omega_idx)
    if snapshot_every > 0:
        snapshots.append(result.copy())

    info = SolveInfo(pixel_count=pixel_count, iterations=iterations,
                     converged=converged, last_max_diff=float(max_diff))
    if observer is not None:
        observer(SolveProgress(iteration=iterations, max_diff=float(max_diff),
                               pixel_count=pixel_count, converged=converged, finished=True))
    return result, info, snapshots



def solve_with_info(source: np.ndarray,
                    mask: np.ndarray,
                    destination: np.ndarray,
                    config: Optional[SolverConfig] = None,
                    observer: Optional[Callable[[SolveProgress], None]] = None,
                    should_print: bool = False):
    """
    Seamlessly clone `source` into `destination` inside the region given by `mask`
    and report how the solve went.

    Parameters:
    - source (np.ndarray): <br>
        Source raster (H, W), (H, W, 3) or (H, W, 4), values in [0, 255].
    - mask (np.ndarray): <br>
        Mask raster of the same (H, W). Pixels with intensity > 127 are cloned.
    - destination (np.ndarray): <br>
        Destination raster of the same (H, W).
    - config (SolverConfig, optional): <br>
        Solver parameters. None uses the defaults.
    - observer (Callable[[SolveProgress], None], optional): <br>
        Called once per sweep and once at the end. Informational only.
    - should_print (bool, optional): <br>
        Whether to print progress to the console (default: False).

    Returns:
    - Tuple[np.ndarray, SolveInfo]: <br>
        (result, info). `result` is an (H, W, 4) uint8 RGBA raster equal to the
        destination outside Omega.

    Raises:
    - ValueError: <br>
        If the three rasters do not share the same width and height.
    """
    result, info, _ = _run(source, mask, destination, config, observer, should_print)
    return result, info



def solve(source: np.ndarray,
          mask: np.ndarray,
          destination: np.ndarray,
          config: Optional[SolverConfig] = None,
          observer: Optional[Callable[[SolveProgress], None]] = None,
          should_print: bool = False) -> np.ndarray:
    """
    Seamlessly clone `source` into `destination` inside the region given by `mask`.

    Non-convergence within `config.max_iterations` is a normal outcome, use
    `observer` or `solve_with_info` to tell it apart from convergence.

    Parameters:
    - source (np.ndarray): <br>
        Source raster (H, W), (H, W, 3) or (H, W, 4), values in [0, 255].
    - mask (np.ndarray): <br>
        Mask raster of the same (H, W). Pixels with intensity > 127 are cloned.
    - destination (np.ndarray): <br>
        Destination raster of the same (H, W).
    - config (SolverConfig, optional): <br>
        Solver parameters. None uses the defaults.
    - observer (Callable[[SolveProgress], None], optional): <br>
        Called once per sweep and once at the end. Informational only.
    - should_print (bool, optional): <br>
        Whether to print progress to the console (default: False).

    Returns:
    - np.ndarray: <br>
        (H, W, 4) uint8 RGBA result.
    """
    result, _info, _ = _run(source, mask, destination, config, observer, should_print)
    return result



def seamless_clone(source,
                   mask,
                   destination,
                   max_iterations:int=500,
                   tolerance:float=1e-3,
                   relaxation_factor:float=1.0,
                   guess_destination=True,
                   mixed_gradients=False,
                   should_print=False,
                   iterative_tracking=False,
                   iterative_steps=None):
    """
    Keyword-argument front end to `solve` with optional progress snapshots.

    Parameters:
    - source (np.ndarray): <br>
        Source raster.
    - mask (np.ndarray): <br>
        Mask raster, intensity > 127 marks the cloning region.
    - destination (np.ndarray): <br>
        Destination raster.
    - max_iterations (int): <br>
        Sweep budget (default: 500).
    - tolerance (float): <br>
        Convergence threshold on the largest change of one sweep (default: 1e-3).
    - relaxation_factor (float): <br>
        SOR weight, 1.0 disables over-relaxation (default: 1.0).
    - guess_destination (bool): <br>
        Seed from destination (True) or source (False) colors (default: True).
    - mixed_gradients (bool): <br>
        Use the stronger of source and destination gradient per channel (default: False).
    - should_print (bool): <br>
        Whether to print progress (default: False).
    - iterative_tracking (bool): <br>
        If True, return a list of intermediate result rasters instead of one result.
    - iterative_steps (int | None): <br>
        Controls how many snapshots to collect when `iterative_tracking=True`:
        - None  -> treated as -1
        - -1    -> snapshot after every sweep
        - 1     -> snapshot only once at the end
        - k>1   -> snapshot roughly `k` times over the sweep budget

    Returns:
    - np.ndarray | List[np.ndarray]: <br>
        If `iterative_tracking` is False: the (H, W, 4) uint8 result.<br>
        If `iterative_tracking` is True: list of snapshots, the last one is the result.
    """
    config = SolverConfig(max_iterations=max_iterations,
                          tolerance=tolerance,
                          relaxation_factor=relaxation_factor,
                          guess_destination=guess_destination,
                          mixed_gradients=mixed_gradients)

    if iterative_steps is None:
        iterative_steps = -1

    # decide how many sweeps lie between two snapshots
    if not iterative_tracking:
        snapshot_every = 0
    elif iterative_steps == -1:
        snapshot_every = 1
    elif iterative_steps == 1:
        snapshot_every = max(1, max_iterations)
    else:
        snapshot_every = max(1, int(max_iterations // iterative_steps))

    result, _info, snapshots = _run(source, mask, destination, config, None, should_print,
                                    snapshot_every=snapshot_every)

    if not iterative_tracking:
        return result
    else:
        return snapshots



def solve_batch(jobs,
                config: Optional[SolverConfig] = None,
                parallelization=0,
                parallelization_method="threads"):
    """
    Solve several independent cloning problems.

    Each solve stays a sequential Gauss-Seidel solve, only whole solves run
    side by side.

    Parameters:
    - jobs (Iterable[Tuple[np.ndarray, np.ndarray, np.ndarray]]): <br>
        (source, mask, destination) triples.
    - config (SolverConfig, optional): <br>
        Shared solver parameters. None uses the defaults.
    - parallelization (int, optional):<br>
        The amount of workers. 0 for no parallelization, -1 for max amount of workers.
    - parallelization_method (str, optional):<br>
        "threads" or "processes" (soft preference handed to joblib).

    Returns:
    - list: <br>
        Result rasters in the order of `jobs`.
    """
    jobs = list(jobs)

    if parallelization == 0:
        return [solve(source, mask, destination, config) for (source, mask, destination) in jobs]

    return list(Parallel(n_jobs=parallelization, prefer=parallelization_method)(
                    delayed(solve)(source, mask, destination, config)
                    for (source, mask, destination) in jobs
                ))
