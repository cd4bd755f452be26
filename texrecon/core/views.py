"""
Calibrated texture views.

A TextureView is one photograph plus its pinhole calibration:

    K — 3×3 intrinsic matrix (pixels, COLMAP convention: the top-left pixel
        center sits at (0.5, 0.5))
    R — 3×3 world-to-camera rotation
    t — world-to-camera translation, so x_cam = R·x_world + t

Pixel coordinates returned by get_pixel_coords() are shifted by -0.5 so an
integer coordinate is a pixel center and coordinates index the image array
directly (column = x, row = y).

View sets come from three sources:
    - a scene directory of images with same-stem MVE-style .cam files
    - a COLMAP sparse model (cameras/images .bin or .txt) read with pycolmap
    - raw caller buffers (library mode)

Images are decoded lazily with Pillow, so loading a scene is cheap and the
raster is only read when patch generation or data costs need it.
"""

import colorsys
import logging
from pathlib import Path

import numpy as np
from PIL import Image
from pillow_heif import register_heif_opener

from texrecon.core.errors import LoadError

# Register HEIF/HEIC support with Pillow so Image.open() can read Apple's
# default photo format straight from a phone's camera roll.
register_heif_opener()

logger = logging.getLogger(__name__)

# Extensions we'll attempt to open with Pillow when pairing images with .cam files.
SUPPORTED_IMAGE_EXTENSIONS = {
    ".jpg", ".jpeg", ".png", ".tif", ".tiff", ".bmp", ".heic", ".heif",
}


class TextureView:
    """
    One calibrated photograph.

    Either `image_path` or `image` must be given; a path is decoded on the
    first call to get_image().
    """

    def __init__(self, view_id: int, K, R, t, width: int, height: int,
                 image_path: Path | None = None, image: np.ndarray | None = None):
        self.id = view_id
        self.K = np.asarray(K, dtype=np.float64).reshape(3, 3)
        self.R = np.asarray(R, dtype=np.float64).reshape(3, 3)
        self.t = np.asarray(t, dtype=np.float64).reshape(3)
        self.width = int(width)
        self.height = int(height)
        self.image_path = Path(image_path) if image_path is not None else None
        self._image = image

    def __repr__(self):
        source = self.image_path.name if self.image_path else "buffer"
        return f"TextureView(id={self.id}, {self.width}x{self.height}, {source})"

    @property
    def position(self) -> np.ndarray:
        """Camera center in world coordinates (-Rᵀ·t)."""
        return -self.R.T @ self.t

    def get_image(self) -> np.ndarray:
        """Return the raster as (H, W, 3) uint8, loading it on first use."""
        if self._image is None:
            self._image = load_image(self.image_path)
            if self._image.shape[:2] != (self.height, self.width):
                # The calibration was made for the stored size; trust the file.
                logger.warning(
                    "%s is %dx%d but calibrated for %dx%d",
                    self.image_path.name, self._image.shape[1],
                    self._image.shape[0], self.width, self.height,
                )
        return self._image

    def set_image(self, image: np.ndarray) -> None:
        self._image = np.ascontiguousarray(image, dtype=np.uint8)

    def release_image(self) -> None:
        """Drop a decoded raster so it is re-read on demand. Buffers are kept."""
        if self.image_path is not None:
            self._image = None

    def project(self, points) -> tuple[np.ndarray, np.ndarray]:
        """
        Project world points into the image.

        Returns:
            (coords, depth) — (N, 2) pixel coordinates (integer = pixel center)
            and (N,) camera-space depth. Points at or behind the camera get
            NaN coordinates.
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        cam = points @ self.R.T + self.t
        depth = cam[:, 2]
        with np.errstate(divide="ignore", invalid="ignore"):
            proj = cam @ self.K.T
            coords = proj[:, :2] / proj[:, 2:3] - 0.5
        coords[depth <= 1e-9] = np.nan
        return coords, depth

    def get_pixel_coords(self, points) -> np.ndarray:
        return self.project(points)[0]

    def valid_pixel(self, coords) -> np.ndarray:
        """
        True where a coordinate can be bilinearly sampled.

        Leaves a one-pixel margin on the right/bottom so the 2×2 neighborhood
        stays inside the image.
        """
        coords = np.asarray(coords, dtype=np.float64).reshape(-1, 2)
        x, y = coords[:, 0], coords[:, 1]
        with np.errstate(invalid="ignore"):
            return (x >= 0) & (x < self.width - 1) & (y >= 0) & (y < self.height - 1)


def load_image(path: Path) -> np.ndarray:
    """
    Decode an image file to (H, W, 3) uint8 RGB.

    Raises:
        LoadError: If the file cannot be opened or decoded.
    """
    try:
        with Image.open(path) as img:
            # Convert to RGB in case the image has an alpha channel or is
            # in a palette / greyscale / 16-bit mode.
            return np.asarray(img.convert("RGB"), dtype=np.uint8).copy()
    except Exception as e:
        raise LoadError(f"Could not load image {path}: {e}") from e


# ---------------------------------------------------------------------------
# Scene directory with MVE-style .cam files
# ---------------------------------------------------------------------------

def _intrinsics_from_cam(flen, paspect, ppoint, width, height) -> np.ndarray:
    """
    Build K from normalized .cam intrinsics.

    The focal length is normalized by the larger image side and the
    principal point by the image size; paspect is the pixel aspect ratio.
    """
    image_aspect = (width / height) * paspect
    if image_aspect < 1.0:
        ax = flen * height / paspect
        ay = flen * height
    else:
        ax = flen * width
        ay = flen * width * paspect
    return np.array([
        [ax, 0.0, width * ppoint[0]],
        [0.0, ay, height * ppoint[1]],
        [0.0, 0.0, 1.0],
    ])


def read_cam_file(cam_path: Path) -> tuple[float, float, tuple[float, float], np.ndarray, np.ndarray]:
    """
    Parse a .cam file.

    Format (two lines):
        tx ty tz r00 r01 r02 r10 r11 r12 r20 r21 r22
        f d0 d1 paspect ppx ppy     (d0, d1, paspect, ppx, ppy optional)

    Returns:
        (flen, paspect, ppoint, R, t)

    Raises:
        LoadError: On a malformed file.
    """
    try:
        lines = [line.split() for line in Path(cam_path).read_text().splitlines() if line.strip()]
        extrinsic = [float(v) for v in lines[0]]
        intrinsic = [float(v) for v in lines[1]]
    except (OSError, IndexError, ValueError) as e:
        raise LoadError(f"Malformed camera file {cam_path}: {e}") from e

    if len(extrinsic) != 12 or not intrinsic:
        raise LoadError(f"Malformed camera file {cam_path}")

    t = np.array(extrinsic[:3])
    R = np.array(extrinsic[3:]).reshape(3, 3)
    flen = intrinsic[0]
    distortion = intrinsic[1:3]
    paspect = intrinsic[3] if len(intrinsic) > 3 else 1.0
    ppoint = (intrinsic[4], intrinsic[5]) if len(intrinsic) > 5 else (0.5, 0.5)

    if any(abs(d) > 1e-9 for d in distortion):
        logger.debug("%s has radial distortion; images are assumed undistorted", cam_path)

    return flen, paspect, ppoint, R, t


def _views_from_cam_directory(scene_dir: Path) -> list:
    views = []
    image_files = sorted(
        p for p in scene_dir.iterdir()
        if p.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS
    )
    for image_path in image_files:
        cam_path = image_path.with_suffix(".cam")
        if not cam_path.is_file():
            logger.debug("Skipping %s (no .cam file)", image_path.name)
            continue

        flen, paspect, ppoint, R, t = read_cam_file(cam_path)
        if flen <= 0:
            logger.warning("Skipping %s (invalid focal length)", image_path.name)
            continue

        try:
            with Image.open(image_path) as img:
                width, height = img.size
        except Exception as e:
            raise LoadError(f"Could not load image {image_path}: {e}") from e

        K = _intrinsics_from_cam(flen, paspect, ppoint, width, height)
        views.append(TextureView(len(views), K, R, t, width, height, image_path=image_path))
    return views


# ---------------------------------------------------------------------------
# COLMAP sparse model
# ---------------------------------------------------------------------------

def _find_colmap_model(scene_dir: Path) -> Path | None:
    """Return the directory holding cameras.bin/txt, if scene_dir is a COLMAP workspace."""
    candidates = [scene_dir, scene_dir / "sparse" / "0", scene_dir / "sparse"]
    for candidate in candidates:
        if (candidate / "cameras.bin").is_file() or (candidate / "cameras.txt").is_file():
            return candidate
    return None


def _views_from_colmap(model_dir: Path, scene_dir: Path) -> list:
    """
    Build views from a COLMAP sparse reconstruction via pycolmap.

    Images are resolved against <scene>/images/ (the COLMAP workspace layout)
    and then against the model directory itself.
    """
    import pycolmap

    try:
        reconstruction = pycolmap.Reconstruction(str(model_dir))
    except Exception as e:
        raise LoadError(f"Could not read COLMAP model {model_dir}: {e}") from e

    image_dirs = [scene_dir / "images", model_dir / "images", model_dir]

    views = []
    for _, image in sorted(reconstruction.images.items()):
        camera = reconstruction.cameras[image.camera_id]

        # pycolmap exposes the pose as a property in older releases and as a
        # method once rigs were introduced.
        pose = image.cam_from_world
        if callable(pose):
            pose = pose()
        Rt = np.asarray(pose.matrix(), dtype=np.float64)

        image_path = next(
            (d / image.name for d in image_dirs if (d / image.name).is_file()), None
        )
        if image_path is None:
            logger.warning("Skipping %s (image file not found)", image.name)
            continue

        views.append(TextureView(
            len(views),
            np.asarray(camera.calibration_matrix(), dtype=np.float64),
            Rt[:, :3], Rt[:, 3],
            camera.width, camera.height,
            image_path=image_path,
        ))
    return views


def generate_texture_views(in_scene) -> list:
    """
    Load every calibrated view of a scene.

    Args:
        in_scene: A COLMAP workspace or sparse model directory, or a directory
                  of images with same-stem .cam files.

    Returns:
        List of TextureView with ids 0..K-1.

    Raises:
        LoadError: If the scene is missing or holds no usable views.
    """
    scene_dir = Path(in_scene)
    if not scene_dir.is_dir():
        raise LoadError(f"Scene directory does not exist: {scene_dir}")

    model_dir = _find_colmap_model(scene_dir)
    if model_dir is not None:
        views = _views_from_colmap(model_dir, scene_dir)
    else:
        views = _views_from_cam_directory(scene_dir)

    if not views:
        raise LoadError(f"No calibrated views found in {scene_dir}")

    logger.info("Loaded %d texture views from %s", len(views), scene_dir)
    return views


# ---------------------------------------------------------------------------
# Raw buffers (library mode)
# ---------------------------------------------------------------------------

def _intrinsic_matrix(values) -> np.ndarray:
    values = np.asarray(values, dtype=np.float64).reshape(-1)
    if values.size == 4:
        fx, fy, cx, cy = values
        return np.array([[fx, 0.0, cx], [0.0, fy, cy], [0.0, 0.0, 1.0]])
    if values.size == 9:
        return values.reshape(3, 3)
    raise LoadError(
        f"Intrinsics need 4 values (fx, fy, cx, cy) or a 3x3 matrix, got {values.size}"
    )


def _extrinsic_matrix(values) -> tuple[np.ndarray, np.ndarray]:
    values = np.asarray(values, dtype=np.float64).reshape(-1)
    if values.size == 12:
        Rt = values.reshape(3, 4)
    elif values.size == 16:
        Rt = values.reshape(4, 4)[:3]
    else:
        raise LoadError(
            f"Extrinsics need a 3x4 [R|t] or 4x4 matrix, got {values.size} values"
        )
    return Rt[:, :3], Rt[:, 3]


def generate_texture_views_from_buffers(width: int, height: int, images_data,
                                        cameras_intrinsic, cameras_extrinsic) -> list:
    """
    Build views from raw RGB buffers and calibration arrays.

    Args:
        width, height:     Size shared by all images.
        images_data:       One buffer per view, width·height·3 bytes, RGB rows top-down.
        cameras_intrinsic: Per view: [fx, fy, cx, cy] in pixels or a flattened 3×3 K.
        cameras_extrinsic: Per view: flattened 3×4 [R|t] or 4×4 world-to-camera matrix.

    Raises:
        LoadError: On mismatched counts or malformed buffers.
    """
    if not (len(images_data) == len(cameras_intrinsic) == len(cameras_extrinsic)):
        raise LoadError(
            f"Got {len(images_data)} images, {len(cameras_intrinsic)} intrinsics "
            f"and {len(cameras_extrinsic)} extrinsics"
        )
    if not images_data:
        raise LoadError("No views supplied")
    if width <= 0 or height <= 0:
        raise LoadError(f"Invalid image size {width}x{height}")

    views = []
    for i, (data, intrinsic, extrinsic) in enumerate(
            zip(images_data, cameras_intrinsic, cameras_extrinsic)):
        raster = np.frombuffer(bytes(data), dtype=np.uint8)
        if raster.size != width * height * 3:
            raise LoadError(
                f"Image {i} has {raster.size} bytes, expected {width * height * 3}"
            )
        K = _intrinsic_matrix(intrinsic)
        R, t = _extrinsic_matrix(extrinsic)
        views.append(TextureView(i, K, R, t, width, height,
                                 image=raster.reshape(height, width, 3).copy()))
    return views


# ---------------------------------------------------------------------------
# Debug embeddings
# ---------------------------------------------------------------------------

def debug_color(view_id: int, num_views: int) -> tuple[int, int, int]:
    """Distinct, fully saturated color for a view (hues spread evenly)."""
    hue = (view_id / max(num_views, 1)) % 1.0
    r, g, b = colorsys.hsv_to_rgb(hue, 1.0, 1.0)
    return int(round(r * 255)), int(round(g * 255)), int(round(b * 255))


def generate_debug_embeddings(texture_views: list) -> None:
    """
    Replace every view's raster with a flat color identifying the view.

    Texturing with these rasters yields a model colored by view selection.
    Mutates the views in place; run it only after the primary model is built.
    """
    for view in texture_views:
        color = np.array(debug_color(view.id, len(texture_views)), dtype=np.uint8)
        image = np.empty((view.height, view.width, 3), dtype=np.uint8)
        image[:] = color
        view.set_image(image)
