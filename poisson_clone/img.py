"""
**Raster Loading, Layout and Saving Helpers**

This module is the thin I/O layer around the cloning core. It turns image files
into in-memory RGBA rasters, brings arbitrary arrays into the one layout the solver
works on and writes finished composites back to disk.

All rasters handed to the solver are `(H, W, 4)` uint8 arrays in RGBA order.
Files are decoded with OpenCV, which delivers BGR(A), so channels are swapped on
the way in and on the way out.

Example:
```python
src = pc.img.open("source.png")
mask = pc.img.open_mask("mask.png")
dst = pc.img.open("destination.png")
result = pc.solver.solve(src, mask, dst)
pc.img.save_timestamped(result)
```

Dependencies:
- numpy
- OpenCV (cv2)

Functions:
- open(...)  - Load an image file as RGBA uint8.
- open_mask(...)  - Load a mask file as a single channel uint8 array.
- to_rgba(...)  - Convert grayscale/RGB/RGBA arrays to RGBA uint8.
- get_width_height(...)  - Width and height of a raster.
- check_same_size(...)  - Fail fast on unequal raster dimensions.
- get_current_timestamp(...)  - Timestamp string for file names.
- save(...)  - Write an RGBA raster to disk.
- save_timestamped(...)  - Write an RGBA raster as `Image-<timestamp>.png`.
"""



# ---------------
# >>> Imports <<<
# ---------------
import os
import datetime

import numpy as np
import cv2



# --------------
# >>> Layout <<<
# --------------

def get_width_height(img):
    """
    Get the width and height of a raster.

    Parameters:
    - img (np.ndarray): <br>
        Raster of shape (H, W) or (H, W, C).

    Returns:
    - Tuple[int, int]: <br>
        (width, height)
    """
    return int(img.shape[1]), int(img.shape[0])



def to_rgba(img):
    """
    Bring a raster into RGBA uint8 layout.

    Grayscale inputs are replicated into R, G and B, RGB inputs get an opaque
    alpha channel and RGBA inputs are only cast. Float inputs are rounded to the
    nearest integer and clipped into [0, 255] before the cast.

    Parameters:
    - img (np.ndarray): <br>
        Raster of shape (H, W), (H, W, 1), (H, W, 3) or (H, W, 4).

    Returns:
    - np.ndarray: <br>
        (H, W, 4) uint8 raster in RGBA order. A new array, the input is never modified.
    """
    img = np.asarray(img)
    if img.ndim == 2:
        img = img[..., np.newaxis]
    if img.ndim != 3:
        raise ValueError(f"to_rgba: expected a 2D or 3D raster, got shape {img.shape}.")

    if img.dtype != np.uint8:
        img = np.clip(np.rint(img), 0, 255).astype(np.uint8)

    H, W, C = img.shape
    out = np.empty((H, W, 4), dtype=np.uint8)
    if C == 1:
        out[..., :3] = img
        out[..., 3] = 255
    elif C == 3:
        out[..., :3] = img
        out[..., 3] = 255
    elif C == 4:
        out[...] = img
    else:
        raise ValueError(f"to_rgba: unsupported channel count {C} (expected 1, 3 or 4).")
    return out



def check_same_size(source, mask, destination):
    """
    Ensure source, mask and destination share width and height.

    Channel counts may differ (a mask is usually single channel), only the
    pixel grid has to match.

    Parameters:
    - source (np.ndarray): <br>
        Source raster.
    - mask (np.ndarray): <br>
        Mask raster.
    - destination (np.ndarray): <br>
        Destination raster.

    Raises:
    - ValueError: <br>
        If any of the three rasters has a different (H, W) grid.
    """
    shapes = [np.shape(source)[:2], np.shape(mask)[:2], np.shape(destination)[:2]]
    if len(set(shapes)) != 1:
        raise ValueError(
            "Source, mask and destination must have the same dimensions, got "
            f"source={tuple(np.shape(source))}, mask={tuple(np.shape(mask))}, "
            f"destination={tuple(np.shape(destination))}."
        )



# ---------------
# >>> Loading <<<
# ---------------

def open(src, should_print=False):
    """
    Load an image file as an RGBA uint8 raster.

    Parameters:
    - src (str): <br>
        Path to the image file.
    - should_print (bool, optional): <br>
        Whether to print the loaded dimensions (default: False).

    Returns:
    - np.ndarray: <br>
        (H, W, 4) uint8 raster in RGBA order.
    """
    img = cv2.imread(src, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise FileNotFoundError(f"Could not load image '{src}'.")

    # opencv delivers BGR / BGRA
    if img.ndim == 3 and img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
    elif img.ndim == 3 and img.shape[2] == 4:
        img = cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)

    # 16-bit files are brought down to 8-bit range
    if img.dtype == np.uint16:
        img = (img // 257).astype(np.uint8)

    img = to_rgba(img)
    if should_print:
        width, height = get_width_height(img)
        print(f"Loaded '{src}': {width} x {height}")
    return img



def open_mask(src, should_print=False):
    """
    Load a mask file as a single channel uint8 raster.

    Color information in a mask is irrelevant, so the file is decoded
    directly as grayscale.

    Parameters:
    - src (str): <br>
        Path to the mask image.
    - should_print (bool, optional): <br>
        Whether to print the loaded dimensions (default: False).

    Returns:
    - np.ndarray: <br>
        (H, W) uint8 mask intensities.
    """
    mask = cv2.imread(src, cv2.IMREAD_GRAYSCALE)
    if mask is None:
        raise FileNotFoundError(f"Could not load mask '{src}'.")
    if should_print:
        width, height = get_width_height(mask)
        print(f"Loaded '{src}': {width} x {height}")
    return mask



# --------------
# >>> Saving <<<
# --------------

def get_current_timestamp(now=None):
    """
    Timestamp string of the form YYYY-MM-DD-HH-MM-SS, used for unique file names.
    """
    if now is None:
        now = datetime.datetime.now()
    return now.strftime("%Y-%m-%d-%H-%M-%S")



def save(path, img):
    """
    Write an RGBA (or grayscale/RGB) raster to disk.

    Parameters:
    - path (str): <br>
        Target file path, the extension selects the encoder.
    - img (np.ndarray): <br>
        Raster to write.

    Returns:
    - str: <br>
        The path that was written.
    """
    rgba = to_rgba(img)
    bgra = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA)
    if not cv2.imwrite(path, bgra):
        raise IOError(f"Could not save image to '{path}'.")
    return path



def save_timestamped(img, output_dir=".", prefix="Image", now=None):
    """
    Save a raster as `<prefix>-<timestamp>.png` inside `output_dir`.

    Parameters:
    - img (np.ndarray): <br>
        Raster to write.
    - output_dir (str, optional): <br>
        Target directory, created when missing (default: current directory).
    - prefix (str, optional): <br>
        File name prefix (default: "Image").
    - now (datetime.datetime, optional): <br>
        Fixed point in time for the name, mostly for tests (default: now).

    Returns:
    - str: <br>
        Path of the written file.
    """
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, f"{prefix}-{get_current_timestamp(now)}.png")
    return save(path, img)
