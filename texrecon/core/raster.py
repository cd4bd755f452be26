"""
Triangle rasterization and dilation helpers for patch and atlas rasters.

Both work in pixel space where an integer coordinate is a pixel center:
x indexes columns, y indexes rows.

    rasterize_triangles — interpolate per-corner values over triangles
                          (barycentric), returning the image and a coverage mask
    dilate              — grow covered regions outward by copying the nearest
                          covered pixel, so filtering never reads background
"""

import numpy as np
from scipy.ndimage import distance_transform_edt

# Epsilon for the barycentric inside-triangle test. A small negative value
# includes pixels exactly on triangle edges, so adjacent triangles leave no
# hairline gaps between them.
BARY_EPSILON = -1e-5


def rasterize_triangles(coords, corner_values, height, width):
    """
    Rasterize triangles into an image, interpolating per-corner values.

    For each triangle:
    1. Compute its pixel-space bounding box
    2. For each pixel in the bounding box, compute barycentric coordinates
    3. If inside the triangle, interpolate the corner values at that pixel

    Later triangles overwrite earlier ones where they overlap.

    Args:
        coords:        (F, 3, 2) pixel coordinates of each triangle's corners.
        corner_values: (F, 3, C) values at each corner.
        height, width: Output raster size.

    Returns:
        (image, mask) — (height, width, C) float32 values and a (height, width)
        bool coverage mask. Uncovered pixels are 0.
    """
    coords = np.asarray(coords, dtype=np.float64).reshape(-1, 3, 2)
    corner_values = np.asarray(corner_values, dtype=np.float32)
    n_channels = corner_values.shape[-1]

    img = np.zeros((height, width, n_channels), dtype=np.float32)
    mask = np.zeros((height, width), dtype=bool)

    for tri, values in zip(coords, corner_values):
        (x0, y0), (x1, y1), (x2, y2) = tri
        d0, d1, d2 = values

        # Axis-aligned bounding box, clamped to the image.
        xmin = max(0, int(np.floor(min(x0, x1, x2))))
        xmax = min(width - 1, int(np.ceil(max(x0, x1, x2))))
        ymin = max(0, int(np.floor(min(y0, y1, y2))))
        ymax = min(height - 1, int(np.ceil(max(y0, y1, y2))))

        if xmin > xmax or ymin > ymax:
            continue

        denom = (y1 - y2) * (x0 - x2) + (x2 - x1) * (y0 - y2)
        if abs(denom) < 1e-12:
            continue  # Degenerate / zero-area triangle

        xs = np.arange(xmin, xmax + 1, dtype=np.float64)
        ys = np.arange(ymin, ymax + 1, dtype=np.float64)
        xx, yy = np.meshgrid(xs, ys)

        w0 = ((y1 - y2) * (xx - x2) + (x2 - x1) * (yy - y2)) / denom
        w1 = ((y2 - y0) * (xx - x2) + (x0 - x2) * (yy - y2)) / denom
        w2 = 1.0 - w0 - w1

        inside = (w0 >= BARY_EPSILON) & (w1 >= BARY_EPSILON) & (w2 >= BARY_EPSILON)
        if not inside.any():
            continue

        iy, ix = np.where(inside)
        w0_i = w0[iy, ix][:, np.newaxis]
        w1_i = w1[iy, ix][:, np.newaxis]
        w2_i = w2[iy, ix][:, np.newaxis]

        img[ymin + iy, xmin + ix] = w0_i * d0 + w1_i * d1 + w2_i * d2
        mask[ymin + iy, xmin + ix] = True

    return img, mask


def dilate(img_data, filled_mask, iterations):
    """
    Fill pixels within `iterations` pixels of a covered region with the
    value of their nearest covered pixel.

    distance_transform_edt on the uncovered area gives every empty pixel
    its distance to, and the index of, the nearest covered pixel in a single
    vectorized pass.

    Args:
        img_data:    (H, W, C) or (H, W) array.
        filled_mask: (H, W) bool, True where img_data holds real values.
        iterations:  Dilation radius in pixels.

    Returns:
        (result, new_mask) — dilated copy of img_data and the grown mask.
    """
    result = img_data.copy()
    if not filled_mask.any() or filled_mask.all():
        return result, filled_mask.copy()

    dist, nearest_indices = distance_transform_edt(~filled_mask, return_indices=True)
    dilation_mask = (dist > 0) & (dist <= iterations)

    if dilation_mask.any():
        nearest_r = nearest_indices[0][dilation_mask]
        nearest_c = nearest_indices[1][dilation_mask]
        result[dilation_mask] = img_data[nearest_r, nearest_c]

    return result, filled_mask | dilation_mask
