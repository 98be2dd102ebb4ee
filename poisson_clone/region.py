"""
**Cloning Region Classification**

Reduces a mask raster to the cloning region Omega: a boolean membership map of
the same size as the mask, true where the mask intensity is strictly above 127.

A mask is read as a single intensity per pixel. Two-dimensional masks are used
as they are, for colored masks only the first channel counts.

On top of the membership map this module builds the flat addressing structures
the solver sweeps over:

- `omega_idx`: linear (row-major) pixel index of every interior pixel, in scan order.
- `neighbor_slots`: for each interior pixel and each of its 4 neighbours
  (left, right, up, down) the interior slot of that neighbour, or -1 if the
  neighbour lies outside Omega or outside the raster.

Example:
```python
inside, count = pc.region.classify(mask, should_print=True)
omega_idx = pc.region.interior_indices(inside)
```

Dependencies:
- numpy
- numba

Public API:
- classify(...)
- mask_intensity(...)
- interior_indices(...)
- build_neighbor_slots(...)

Main internal kernels:
- threshold_mask_numba(...)
- interior_indices_numba(...)
- build_neighbor_slots_numba(...)
"""



# ---------------
# >>> Imports <<<
# ---------------
import numpy as np

# optimization
import numba



# ------------------
# >>> Constants <<<
# ------------------

# mask values strictly above this are inside the cloning region
MASK_THRESHOLD = 127

# 4-connected neighbourhood: left, right, up, down
NEIGHBOR_DX = np.array([-1, 1, 0, 0], dtype=np.int64)
NEIGHBOR_DY = np.array([0, 0, -1, 1], dtype=np.int64)



# ---------------------
# >>> Membership map <<<
# ---------------------

@numba.njit(cache=True, fastmath=True)
def threshold_mask_numba(mask_u8, threshold):
    """
    Threshold a 2D uint8 mask into a boolean membership map.

    Parameters:
    - mask_u8 (np.ndarray): <br>
        2D uint8 mask intensities.
    - threshold (int): <br>
        Values strictly greater than this are inside.

    Returns:
    - Tuple[np.ndarray, int]: <br>
        (inside, count) with `inside` a 2D bool map and `count` the number of true entries.
    """
    H, W = mask_u8.shape[0], mask_u8.shape[1]
    inside = np.zeros((H, W), dtype=np.bool_)
    count = 0
    for y in range(H):
        for x in range(W):
            if int(mask_u8[y, x]) > threshold:
                inside[y, x] = True
                count += 1
    return inside, count



def mask_intensity(mask):
    """
    Reduce a mask raster to one uint8 intensity per pixel.

    Parameters:
    - mask (np.ndarray): <br>
        Mask of shape (H, W) or (H, W, C). For C > 1 only the first channel is used.

    Returns:
    - np.ndarray: <br>
        2D uint8 intensities, C-contiguous.
    """
    mask = np.asarray(mask)
    if mask.ndim == 3:
        mask = mask[..., 0]
    if mask.ndim != 2:
        raise ValueError(f"mask_intensity: expected a 2D or 3D mask, got shape {mask.shape}.")

    if mask.dtype == np.bool_:
        mask = mask.astype(np.uint8) * 255
    elif mask.dtype != np.uint8:
        # ceil keeps "> 127" intact for fractional values
        mask = np.clip(np.ceil(mask), 0, 255).astype(np.uint8)
    return np.ascontiguousarray(mask)



def classify(mask, should_print=False):
    """
    Compute the cloning region Omega from a mask raster.

    Omega[p] is true iff the mask intensity at p is strictly greater than 127.
    The threshold is fixed.

    Parameters:
    - mask (np.ndarray): <br>
        Mask of shape (H, W) or (H, W, C), see `mask_intensity`.
    - should_print (bool, optional): <br>
        Whether to print the interior pixel count (default: False).
        A larger count means a longer solve.

    Returns:
    - Tuple[np.ndarray, int]: <br>
        (inside, count): 2D bool membership map and the number of interior pixels.
    """
    inside, count = threshold_mask_numba(mask_intensity(mask), MASK_THRESHOLD)
    count = int(count)
    if should_print:
        print(f"Cloning region pixel count: {count}")
    return inside, count



# ----------------------------
# >>> Interior addressing <<<
# ----------------------------

@numba.njit(cache=True, fastmath=True)
def interior_indices_numba(inside_flat, count):
    """
    Collect the linear indices of all interior pixels in scan order.
    """
    omega_idx = np.empty(count, dtype=np.int64)
    k = 0
    for i in range(inside_flat.shape[0]):
        if inside_flat[i]:
            omega_idx[k] = i
            k += 1
    return omega_idx



def interior_indices(inside):
    """
    Linear row-major indices of every pixel in Omega.

    The order is the raster scan order (top to bottom, left to right), which
    is the order the relaxation sweep visits pixels in.

    Parameters:
    - inside (np.ndarray): <br>
        2D bool membership map.

    Returns:
    - np.ndarray: <br>
        1D int64 array of length |Omega|.
    """
    inside_flat = np.ascontiguousarray(inside, dtype=np.bool_).reshape(-1)
    count = int(np.count_nonzero(inside_flat))
    return interior_indices_numba(inside_flat, count)



@numba.njit(cache=True, fastmath=True)
def build_neighbor_slots_numba(omega_idx, inside_flat, H, W, dx, dy):
    """
    Build the interior-slot lookup table for the 4-neighbourhood.

    Parameters:
    - omega_idx (np.ndarray): <br>
        Linear indices of the interior pixels, in scan order.
    - inside_flat (np.ndarray): <br>
        Flattened bool membership map of length H*W.
    - H (int): <br>
        Raster height.
    - W (int): <br>
        Raster width.
    - dx (np.ndarray): <br>
        x offsets of the 4 neighbours.
    - dy (np.ndarray): <br>
        y offsets of the 4 neighbours.

    Returns:
    - Tuple[np.ndarray, np.ndarray]: <br>
        (neighbor_slots, neighbor_count): (K, 4) int64 slots (-1 = not interior)
        and (K,) int64 count of in-bounds neighbours per interior pixel.
    """
    K = omega_idx.shape[0]

    # pixel index -> interior slot
    slot_of = np.full(H * W, -1, dtype=np.int64)
    for k in range(K):
        slot_of[omega_idx[k]] = k

    neighbor_slots = np.full((K, 4), -1, dtype=np.int64)
    neighbor_count = np.zeros(K, dtype=np.int64)
    for k in range(K):
        i = omega_idx[k]
        y = i // W
        x = i - y * W
        for n in range(4):
            nx = x + dx[n]
            ny = y + dy[n]
            # no wraparound at the raster border
            if nx < 0 or nx >= W or ny < 0 or ny >= H:
                continue
            neighbor_count[k] += 1
            j = ny * W + nx
            if inside_flat[j]:
                neighbor_slots[k, n] = slot_of[j]
    return neighbor_slots, neighbor_count



def build_neighbor_slots(inside, omega_idx=None):
    """
    Precompute neighbour addressing for every interior pixel.

    Parameters:
    - inside (np.ndarray): <br>
        2D bool membership map.
    - omega_idx (np.ndarray, optional): <br>
        Interior indices as returned by `interior_indices`. Computed if None.

    Returns:
    - Tuple[np.ndarray, np.ndarray]: <br>
        (neighbor_slots, neighbor_count), see `build_neighbor_slots_numba`.
    """
    H, W = inside.shape[:2]
    inside_flat = np.ascontiguousarray(inside, dtype=np.bool_).reshape(-1)
    if omega_idx is None:
        omega_idx = interior_indices(inside)
    return build_neighbor_slots_numba(omega_idx, inside_flat, H, W, NEIGHBOR_DX, NEIGHBOR_DY)
