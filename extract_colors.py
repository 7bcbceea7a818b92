#!/usr/bin/env python3
"""
Extract a ranked color palette from raw RGBA pixel data.

Pipeline: sample pixels at a stride → reject transparent, near-black/white and
skin-tone pixels → quantize onto an RGB grid → rank buckets by frequency.
Decoding and resizing images is the caller's job (see analyze.py).
"""

import logging
from dataclasses import dataclass, asdict
from typing import Iterable, Iterator, Optional

import numpy as np

from color_space import rgb_to_hex, rgb_to_hsv, rgb_to_hsv_array


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAX_COLORS = 5
DEFAULT_QUALITY = 10  # Sample every 10th pixel
DEFAULT_BUCKET_SIZE = 51  # 51 levels per channel → 6 grid steps (0..255)
ALPHA_THRESHOLD = 125  # Pixels below this alpha count as transparent

NEAR_BLACK_LIMIT = 20
NEAR_WHITE_LIMIT = 235

SKIN_SAMPLE_QUALITY = 5
SKIN_PERCENTAGE_THRESHOLD = 5.0

# Skin HSV window
SKIN_HUE_RANGE = (0, 50)
SKIN_SATURATION_RANGE = (0.2, 0.7)

# Sampled pixels filtered per step by the lazy sampler
SAMPLE_CHUNK = 4096


class InvalidPixelBufferError(ValueError):
    """Raised when a pixel buffer is missing or its dimensions don't match its data."""


# =============================================================================
# Pixel Buffer
# =============================================================================

@dataclass
class PixelBuffer:
    """Flat row-major RGBA bytes with explicit dimensions."""
    data: object  # bytes, bytearray, list of ints or numpy array
    width: int
    height: int

    @classmethod
    def from_array(cls, rgba: np.ndarray) -> 'PixelBuffer':
        """Build from an (height, width, 4) uint8 array."""
        rgba = np.asarray(rgba)
        if rgba.ndim != 3 or rgba.shape[2] != 4:
            raise InvalidPixelBufferError(f"Expected (height, width, 4) array, got shape {rgba.shape}")
        h, w = rgba.shape[:2]
        return cls(data=rgba.astype(np.uint8).ravel(), width=w, height=h)

    def pixels(self) -> np.ndarray:
        """
        Validate the buffer and return it as an (n, 4) uint8 array.

        Raises:
            InvalidPixelBufferError: missing data, bad dimensions, wrong length
                or channel values outside 0-255
        """
        if self.data is None:
            raise InvalidPixelBufferError("Pixel buffer has no data")
        for name, value in (('width', self.width), ('height', self.height)):
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
                raise InvalidPixelBufferError(f"Invalid {name}: {value!r}")

        if isinstance(self.data, (bytes, bytearray, memoryview)):
            flat = np.frombuffer(bytes(self.data), dtype=np.uint8)
        else:
            try:
                raw = np.asarray(self.data)
            except (TypeError, ValueError) as e:
                raise InvalidPixelBufferError(f"Unreadable pixel data: {e}")
            if raw.dtype.kind not in 'uif':
                raise InvalidPixelBufferError(f"Pixel data must be numeric, got {raw.dtype}")
            raw = raw.ravel()
            if raw.size and (raw.min() < 0 or raw.max() > 255):
                raise InvalidPixelBufferError("Channel values must be within 0-255")
            flat = raw.astype(np.uint8)

        expected = self.width * self.height * 4
        if flat.size != expected:
            raise InvalidPixelBufferError(
                f"Buffer has {flat.size} values, expected {expected} "
                f"for {self.width}x{self.height} RGBA"
            )
        return flat.reshape(-1, 4)


# =============================================================================
# Skin-Tone Detection
# =============================================================================

def is_skin_color(r: int, g: int, b: int) -> bool:
    """RGB heuristic first, then confirm the hue/saturation window in HSV."""
    rgb_check = (r > 95 and g > 40 and b > 20 and
                 r > g and r > b and
                 max(r, g, b) - min(r, g, b) > 15 and
                 abs(r - g) > 15)
    if not rgb_check:
        return False

    h, s, _ = rgb_to_hsv(r, g, b)
    return (SKIN_HUE_RANGE[0] <= h <= SKIN_HUE_RANGE[1] and
            SKIN_SATURATION_RANGE[0] <= s <= SKIN_SATURATION_RANGE[1])


def skin_mask(rgb: np.ndarray) -> np.ndarray:
    """Vectorized is_skin_color over an (n, 3) array."""
    rgb = np.asarray(rgb, dtype=np.int64).reshape(-1, 3)
    r, g, b = rgb[:, 0], rgb[:, 1], rgb[:, 2]

    rgb_check = ((r > 95) & (g > 40) & (b > 20) &
                 (r > g) & (r > b) &
                 (rgb.max(axis=1) - rgb.min(axis=1) > 15) &
                 (np.abs(r - g) > 15))
    if not rgb_check.any():
        return rgb_check

    hsv = rgb_to_hsv_array(rgb)
    h, s = hsv[:, 0], hsv[:, 1]
    return (rgb_check &
            (h >= SKIN_HUE_RANGE[0]) & (h <= SKIN_HUE_RANGE[1]) &
            (s >= SKIN_SATURATION_RANGE[0]) & (s <= SKIN_SATURATION_RANGE[1]))


def extreme_mask(rgb: np.ndarray) -> np.ndarray:
    """True for near-black or near-white pixels."""
    rgb = np.asarray(rgb).reshape(-1, 3)
    near_black = np.all(rgb < NEAR_BLACK_LIMIT, axis=1)
    near_white = np.all(rgb > NEAR_WHITE_LIMIT, axis=1)
    return near_black | near_white


# =============================================================================
# Pixel Sampler
# =============================================================================

def _check_quality(quality: int) -> None:
    if isinstance(quality, bool) or not isinstance(quality, (int, np.integer)) or quality < 1:
        raise ValueError(f"quality must be a positive integer stride, got {quality!r}")


def _accept_mask(sampled: np.ndarray, alpha_threshold: int,
                 filter_extremes: bool, filter_skin: bool) -> np.ndarray:
    rgb = sampled[:, :3]
    keep = sampled[:, 3] >= alpha_threshold
    if filter_extremes:
        keep &= ~extreme_mask(rgb)
    if filter_skin:
        keep &= ~skin_mask(rgb)
    return keep


def sample_pixel_array(buffer: PixelBuffer,
                       quality: int = DEFAULT_QUALITY,
                       alpha_threshold: int = ALPHA_THRESHOLD,
                       filter_extremes: bool = True,
                       filter_skin: bool = True) -> np.ndarray:
    """
    Sample every `quality`-th pixel and drop rejected ones.

    Filters, in order: alpha below threshold, near black/white (optional),
    skin tone (optional).

    Returns:
        (n, 3) int array of accepted RGB values in scan order
    """
    _check_quality(quality)
    sampled = buffer.pixels()[::quality]
    keep = _accept_mask(sampled, alpha_threshold, filter_extremes, filter_skin)
    return sampled[keep, :3].astype(np.int64)


def sample_pixels(buffer: PixelBuffer,
                  quality: int = DEFAULT_QUALITY,
                  alpha_threshold: int = ALPHA_THRESHOLD,
                  filter_extremes: bool = True,
                  filter_skin: bool = True) -> Iterator[tuple]:
    """
    Lazily yield accepted (r, g, b) triples in scan order.

    Filtering runs SAMPLE_CHUNK sampled pixels at a time, so a consumer that
    stops early never pays for the rest of the buffer. Re-running over the
    same buffer yields the same sequence.
    """
    _check_quality(quality)
    sampled = buffer.pixels()[::quality]
    for start in range(0, len(sampled), SAMPLE_CHUNK):
        chunk = sampled[start:start + SAMPLE_CHUNK]
        keep = _accept_mask(chunk, alpha_threshold, filter_extremes, filter_skin)
        for r, g, b in chunk[keep, :3].tolist():
            yield (r, g, b)


# =============================================================================
# Color Quantizer
# =============================================================================

@dataclass
class ColorBucket:
    """Accumulated pixels for one grid cell."""
    rgb: tuple  # Grid center, each channel clamped to 255
    count: int


def _check_bucket_size(bucket_size: int) -> None:
    if isinstance(bucket_size, bool) or not isinstance(bucket_size, (int, np.integer)) \
            or not 1 <= bucket_size <= 255:
        raise ValueError(f"bucket_size must be an integer in 1-255, got {bucket_size!r}")


def quantize_color(rgb: tuple, bucket_size: int = DEFAULT_BUCKET_SIZE) -> tuple:
    """Snap a single RGB color to its grid center (round half up)."""
    _check_bucket_size(bucket_size)
    return tuple(min(255, int(np.floor(c / bucket_size + 0.5)) * bucket_size) for c in rgb)


def bucket_key(grid: tuple) -> int:
    """Integer key for a grid cell; ascending keys order by r, then g, then b."""
    ir, ig, ib = grid
    return (ir * 256 + ig) * 256 + ib


def quantize(pixels: Iterable, bucket_size: int = DEFAULT_BUCKET_SIZE) -> dict:
    """
    Bucket pixels onto an RGB grid and count them.

    Args:
        pixels: (n, 3) array or iterable of (r, g, b) triples
        bucket_size: Grid width per channel

    Returns:
        dict of bucket key -> ColorBucket, in ascending key order.
        Empty when there are no pixels.
    """
    _check_bucket_size(bucket_size)
    if not isinstance(pixels, np.ndarray):
        pixels = list(pixels)
    pixels = np.asarray(pixels, dtype=np.int64).reshape(-1, 3)
    if len(pixels) == 0:
        return {}

    grid = np.floor(pixels / bucket_size + 0.5).astype(np.int64)
    keys = (grid[:, 0] * 256 + grid[:, 1]) * 256 + grid[:, 2]
    unique_keys, counts = np.unique(keys, return_counts=True)

    buckets = {}
    for key, count in zip(unique_keys.tolist(), counts.tolist()):
        cell = (key // 65536, (key // 256) % 256, key % 256)
        rgb = tuple(min(255, i * bucket_size) for i in cell)
        buckets[key] = ColorBucket(rgb=rgb, count=count)
    return buckets


# =============================================================================
# Palette Ranker
# =============================================================================

@dataclass
class PaletteEntry:
    """One ranked palette color."""
    rgb: tuple
    hex: str
    count: int
    percentage: float  # Share of the returned entries, 0-100
    name: str = ''

    def to_dict(self) -> dict:
        data = asdict(self)
        data['rgb'] = list(self.rgb)
        return data


def rank_palette(buckets: dict, max_colors: int = DEFAULT_MAX_COLORS) -> list:
    """
    Order buckets by count and keep the top `max_colors`.

    Ties are broken by ascending bucket key so the result doesn't depend on
    pixel scan order. Percentages are relative to the selected entries only.
    """
    if max_colors < 1:
        raise ValueError(f"max_colors must be at least 1, got {max_colors!r}")

    ranked = sorted(buckets.items(), key=lambda item: (-item[1].count, item[0]))[:max_colors]
    total = sum(bucket.count for _, bucket in ranked)
    if total == 0:
        return []

    return [
        PaletteEntry(
            rgb=bucket.rgb,
            hex=rgb_to_hex(*bucket.rgb),
            count=bucket.count,
            percentage=bucket.count / total * 100,
            name=describe_color(*bucket.rgb),
        )
        for _, bucket in ranked
    ]


def describe_color(r: int, g: int, b: int) -> str:
    """Generate a plain color name from HSV, e.g. 'dark blue' or 'light red'."""
    h, s, v = rgb_to_hsv(r, g, b)
    luminance = 0.299 * r + 0.587 * g + 0.114 * b

    # Achromatic
    if s < 0.10:
        if luminance < 50:
            return 'black'
        if luminance > 200:
            return 'white'
        return 'gray'

    if h < 15:
        base = 'red'
    elif h < 45:
        base = 'brown' if v < 0.40 else 'orange'
    elif h < 75:
        base = 'yellow'
    elif h < 150:
        base = 'green'
    elif h < 200:
        base = 'cyan'
    elif h < 260:
        base = 'blue'
    elif h < 300:
        base = 'purple'
    elif h < 330:
        base = 'magenta'
    else:
        base = 'red'

    if s < 0.30:
        return f"light {base}"
    if v < 0.40:
        return f"dark {base}"
    if v > 0.75 and s > 0.60:
        return f"bright {base}"
    return base


def fallback_palette() -> list:
    """Neutral palette for callers whose color analysis failed."""
    neutrals = [((54, 69, 79), 50.0), ((128, 128, 128), 30.0), ((245, 245, 220), 20.0)]
    return [
        PaletteEntry(rgb=rgb, hex=rgb_to_hex(*rgb), count=0, percentage=pct, name=describe_color(*rgb))
        for rgb, pct in neutrals
    ]


# =============================================================================
# Entry Points
# =============================================================================

def extract_colors(buffer: PixelBuffer,
                   max_colors: int = DEFAULT_MAX_COLORS,
                   quality: int = DEFAULT_QUALITY,
                   bucket_size: int = DEFAULT_BUCKET_SIZE,
                   alpha_threshold: int = ALPHA_THRESHOLD,
                   filter_extremes: bool = True) -> list:
    """
    Extract the dominant non-skin colors of a pixel buffer.

    Args:
        buffer: RGBA pixels
        max_colors: Number of palette entries to return at most
        quality: Sampling stride; smaller is more accurate and slower
        bucket_size: Quantization grid width per channel
        alpha_threshold: Minimum alpha for a pixel to count
        filter_extremes: Drop near-black and near-white pixels

    Returns:
        List of PaletteEntry sorted by count descending. Empty when every
        pixel was filtered out.
    """
    accepted = sample_pixel_array(buffer, quality=quality, alpha_threshold=alpha_threshold,
                                  filter_extremes=filter_extremes)
    buckets = quantize(accepted, bucket_size=bucket_size)
    palette = rank_palette(buckets, max_colors=max_colors)

    logger.debug("Sampled %d accepted pixels into %d buckets, returning %d colors",
                 len(accepted), len(buckets), len(palette))
    return palette


@dataclass
class SkinToneResult:
    has_skin_tones: bool
    percentage: float

    def to_dict(self) -> dict:
        return asdict(self)


def detect_skin_tones(buffer: PixelBuffer,
                      quality: int = SKIN_SAMPLE_QUALITY,
                      alpha_threshold: int = ALPHA_THRESHOLD,
                      threshold: Optional[float] = None) -> SkinToneResult:
    """
    Measure the share of skin-colored pixels among non-transparent samples.

    A buffer with no opaque pixels reports 0%.
    """
    _check_quality(quality)
    if threshold is None:
        threshold = SKIN_PERCENTAGE_THRESHOLD

    sampled = buffer.pixels()[::quality]
    opaque = sampled[sampled[:, 3] >= alpha_threshold, :3]
    total = len(opaque)
    if total == 0:
        return SkinToneResult(has_skin_tones=False, percentage=0.0)

    skin_count = int(skin_mask(opaque).sum())
    percentage = skin_count / total * 100
    return SkinToneResult(has_skin_tones=percentage > threshold, percentage=percentage)


def visualize_palette(palette: list, output_path: str) -> None:
    """
    Save a swatch strip with percentages under each color.

    Args:
        palette: PaletteEntry list from extract_colors()
        output_path: Path to save the output image
    """
    from PIL import Image, ImageDraw

    swatch_size = 80
    padding = 10
    text_height = 25
    cols = max(len(palette), 1)

    img_width = cols * (swatch_size + padding) + padding
    img_height = swatch_size + text_height + 2 * padding

    img = Image.new('RGB', (img_width, img_height), (240, 240, 240))
    draw = ImageDraw.Draw(img)

    for i, entry in enumerate(palette):
        x = padding + i * (swatch_size + padding)
        y = padding

        draw.rectangle([x, y, x + swatch_size, y + swatch_size], fill=tuple(entry.rgb))

        # Center text under swatch
        text = f"{entry.percentage:.1f}%"
        bbox = draw.textbbox((0, 0), text)
        text_width = bbox[2] - bbox[0]
        text_x = x + (swatch_size - text_width) // 2
        draw.text((text_x, y + swatch_size + 4), text, fill=(0, 0, 0))

    img.save(output_path)
    logger.info("Saved palette swatches to %s", output_path)
