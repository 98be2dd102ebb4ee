import datetime
import os

import numpy as np
import pytest

from poisson_clone import img


def test_to_rgba_from_gray():
    gray = np.array([[0, 128]], dtype=np.uint8)
    out = img.to_rgba(gray)
    assert out.shape == (1, 2, 4)
    assert out[0, 1].tolist() == [128, 128, 128, 255]


def test_to_rgba_from_rgb_and_float():
    rgb = np.array([[[1.0, 2.0, 300.0]]])
    out = img.to_rgba(rgb)
    assert out.dtype == np.uint8
    assert out[0, 0].tolist() == [1, 2, 255, 255]


def test_to_rgba_copies_rgba():
    rgba = np.full((2, 2, 4), 9, dtype=np.uint8)
    out = img.to_rgba(rgba)
    np.testing.assert_array_equal(out, rgba)
    out[0, 0, 0] = 0
    assert rgba[0, 0, 0] == 9


@pytest.mark.parametrize("shape", [(2, 2, 2), (2, 2, 5), (3,)])
def test_to_rgba_rejects_other_layouts(shape):
    with pytest.raises(ValueError):
        img.to_rgba(np.zeros(shape, dtype=np.uint8))


def test_check_same_size():
    a = np.zeros((3, 4, 4), dtype=np.uint8)
    mask = np.zeros((3, 4), dtype=np.uint8)
    img.check_same_size(a, mask, a)

    with pytest.raises(ValueError, match="mask=\\(3, 5\\)"):
        img.check_same_size(a, np.zeros((3, 5), dtype=np.uint8), a)


def test_width_height():
    assert img.get_width_height(np.zeros((3, 7, 4))) == (7, 3)


def test_save_and_open_keep_channel_order(tmp_path):
    raster = np.zeros((2, 3, 4), dtype=np.uint8)
    raster[0, 0] = (255, 0, 0, 255)
    raster[1, 2] = (0, 10, 200, 128)
    path = img.save(str(tmp_path / "out.png"), raster)

    loaded = img.open(path)
    np.testing.assert_array_equal(loaded, raster)


def test_open_mask_is_single_channel(tmp_path):
    raster = np.zeros((2, 2, 4), dtype=np.uint8)
    raster[0, 0] = 255
    path = img.save(str(tmp_path / "mask.png"), raster)

    mask = img.open_mask(path)
    assert mask.shape == (2, 2)
    assert mask[0, 0] == 255 and mask[1, 1] == 0


def test_open_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        img.open(str(tmp_path / "missing.png"))
    with pytest.raises(FileNotFoundError):
        img.open_mask(str(tmp_path / "missing.png"))


def test_save_timestamped(tmp_path):
    now = datetime.datetime(2024, 3, 5, 7, 8, 9)
    out_dir = tmp_path / "results"
    path = img.save_timestamped(np.zeros((2, 2, 4), dtype=np.uint8), output_dir=str(out_dir), now=now)

    assert os.path.basename(path) == "Image-2024-03-05-07-08-09.png"
    assert os.path.exists(path)


def test_timestamp_format():
    assert img.get_current_timestamp(datetime.datetime(2025, 12, 31, 23, 59, 1)) == "2025-12-31-23-59-01"


def test_to_rgba_rounds_float_values():
    out = img.to_rgba(np.array([[0.9, 0.4, 254.6]]))
    assert out[0, :, 0].tolist() == [1, 0, 255]
