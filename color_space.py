#!/usr/bin/env python3
"""
Color-space conversions shared by the extraction and harmony stages.

RGB channels are integers in 0-255. HSV and HSL use hue in degrees [0, 360)
and saturation/value/lightness in [0, 1].
"""

import math

import numpy as np
from skimage.color import deltaE_ciede2000


# =============================================================================
# Constants
# =============================================================================

# D65 reference white
XN, YN, ZN = 0.95047, 1.0, 1.08883
LAB_EPSILON = 0.008856
LAB_KAPPA = 903.3


# =============================================================================
# Hex
# =============================================================================

def rgb_to_hex(r: int, g: int, b: int) -> str:
    """Format an RGB triple as a lowercase #rrggbb string."""
    return f"#{int(round(r)):02x}{int(round(g)):02x}{int(round(b)):02x}"


def hex_to_rgb(hex_color: str) -> tuple:
    """Parse #rgb or #rrggbb (leading # optional)."""
    value = hex_color.strip().lstrip('#')
    if len(value) == 3:
        value = ''.join(c * 2 for c in value)
    if len(value) != 6:
        raise ValueError(f"Invalid hex color: {hex_color!r}")
    try:
        return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))
    except ValueError:
        raise ValueError(f"Invalid hex color: {hex_color!r}")


# =============================================================================
# HSV
# =============================================================================

def rgb_to_hsv(r: float, g: float, b: float) -> tuple:
    """Convert RGB (0-255) to (h, s, v). Achromatic colors get hue 0."""
    r, g, b = r / 255.0, g / 255.0, b / 255.0

    mx = max(r, g, b)
    mn = min(r, g, b)
    diff = mx - mn

    h = 0.0
    s = 0.0 if mx == 0 else diff / mx
    v = mx

    if diff != 0:
        if mx == r:
            h = ((g - b) / diff + (6 if g < b else 0)) / 6
        elif mx == g:
            h = ((b - r) / diff + 2) / 6
        else:
            h = ((r - g) / diff + 4) / 6

    return h * 360, s, v


def rgb_to_hsv_array(rgb: np.ndarray) -> np.ndarray:
    """Vectorized rgb_to_hsv over an (n, 3) array. Returns (n, 3) of h, s, v."""
    rgb_norm = np.asarray(rgb, dtype=np.float64).reshape(-1, 3) / 255.0
    r, g, b = rgb_norm[:, 0], rgb_norm[:, 1], rgb_norm[:, 2]

    mx = rgb_norm.max(axis=1)
    mn = rgb_norm.min(axis=1)
    diff = mx - mn

    s = np.where(mx == 0, 0.0, diff / np.where(mx == 0, 1.0, mx))

    # Avoid dividing by zero for achromatic pixels; their hue is reset below
    safe = np.where(diff == 0, 1.0, diff)
    h_r = ((g - b) / safe + np.where(g < b, 6, 0)) / 6
    h_g = ((b - r) / safe + 2) / 6
    h_b = ((r - g) / safe + 4) / 6
    h = np.select([mx == r, mx == g], [h_r, h_g], default=h_b)
    h = np.where(diff == 0, 0.0, h)

    return np.column_stack([h * 360, s, mx])


def hsv_to_rgb(h: float, s: float, v: float) -> tuple:
    """Convert (h, s, v) back to rounded RGB (0-255)."""
    h = (h % 360) / 60.0
    c = v * s
    x = c * (1 - abs(h % 2 - 1))
    m = v - c
    r, g, b = _hue_sector(h, c, x)
    return _to_byte(r + m), _to_byte(g + m), _to_byte(b + m)


# =============================================================================
# HSL
# =============================================================================

def rgb_to_hsl(r: float, g: float, b: float) -> tuple:
    """Convert RGB (0-255) to (h, s, l). Hue matches rgb_to_hsv."""
    h, _, _ = rgb_to_hsv(r, g, b)
    r, g, b = r / 255.0, g / 255.0, b / 255.0
    mx = max(r, g, b)
    mn = min(r, g, b)
    l = (mx + mn) / 2
    if mx == mn:
        return 0.0, 0.0, l
    d = mx - mn
    s = d / (1 - abs(2 * l - 1))
    return h, min(s, 1.0), l


def hsl_to_rgb(h: float, s: float, l: float) -> tuple:
    """Construct a color from hue/saturation/lightness as rounded RGB."""
    s = min(max(s, 0.0), 1.0)
    l = min(max(l, 0.0), 1.0)
    h = (h % 360) / 60.0
    c = (1 - abs(2 * l - 1)) * s
    x = c * (1 - abs(h % 2 - 1))
    m = l - c / 2
    r, g, b = _hue_sector(h, c, x)
    return _to_byte(r + m), _to_byte(g + m), _to_byte(b + m)


def _hue_sector(h: float, c: float, x: float) -> tuple:
    if h < 1:
        return c, x, 0.0
    if h < 2:
        return x, c, 0.0
    if h < 3:
        return 0.0, c, x
    if h < 4:
        return 0.0, x, c
    if h < 5:
        return x, 0.0, c
    return c, 0.0, x


def _to_byte(value: float) -> int:
    return int(min(255, max(0, math.floor(value * 255 + 0.5))))


# =============================================================================
# LAB (perceptual distance)
# =============================================================================

def rgb_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Convert RGB array (0-255) to LAB color space."""
    rgb_norm = np.asarray(rgb, dtype=np.float64).reshape(-1, 3) / 255.0

    # Apply gamma correction
    mask = rgb_norm > 0.04045
    rgb_linear = np.where(mask, ((rgb_norm + 0.055) / 1.055) ** 2.4, rgb_norm / 12.92)

    # RGB to XYZ matrix
    r, g, b = rgb_linear[:, 0], rgb_linear[:, 1], rgb_linear[:, 2]
    x = r * 0.4124564 + g * 0.3575761 + b * 0.1804375
    y = r * 0.2126729 + g * 0.7151522 + b * 0.0721750
    z = r * 0.0193339 + g * 0.1191920 + b * 0.9503041

    x, y, z = x / XN, y / YN, z / ZN

    fx = np.where(x > LAB_EPSILON, np.cbrt(x), (LAB_KAPPA * x + 16) / 116)
    fy = np.where(y > LAB_EPSILON, np.cbrt(y), (LAB_KAPPA * y + 16) / 116)
    fz = np.where(z > LAB_EPSILON, np.cbrt(z), (LAB_KAPPA * z + 16) / 116)

    L = 116 * fy - 16
    a = 500 * (fx - fy)
    b_val = 200 * (fy - fz)

    return np.column_stack([L, a, b_val])


def lab_to_rgb(lab: np.ndarray) -> np.ndarray:
    """Convert LAB array to RGB (0-255)."""
    lab = np.asarray(lab, dtype=np.float64).reshape(-1, 3)
    L, a, b = lab[:, 0], lab[:, 1], lab[:, 2]

    fy = (L + 16) / 116
    fx = a / 500 + fy
    fz = fy - b / 200

    x = np.where(fx**3 > LAB_EPSILON, fx**3, (116 * fx - 16) / LAB_KAPPA)
    y = np.where(L > LAB_KAPPA * LAB_EPSILON, ((L + 16) / 116) ** 3, L / LAB_KAPPA)
    z = np.where(fz**3 > LAB_EPSILON, fz**3, (116 * fz - 16) / LAB_KAPPA)

    x = x * XN
    z = z * ZN

    r = x * 3.2404542 - y * 1.5371385 - z * 0.4985314
    g = -x * 0.9692660 + y * 1.8760108 + z * 0.0415560
    b_out = x * 0.0556434 - y * 0.2040259 + z * 1.0572252

    rgb_linear = np.column_stack([r, g, b_out])
    mask = rgb_linear > 0.0031308
    rgb = np.where(mask, 1.055 * np.power(np.clip(rgb_linear, 0, None), 1/2.4) - 0.055, 12.92 * rgb_linear)

    return np.clip(np.round(rgb * 255), 0, 255).astype(np.uint8)


def delta_e(rgb1: tuple, rgb2: tuple) -> float:
    """CIEDE2000 distance between two RGB colors."""
    lab = rgb_to_lab(np.array([rgb1, rgb2]))
    return float(deltaE_ciede2000(lab[0], lab[1]))


# =============================================================================
# Hue utilities
# =============================================================================

def circular_hue_distance(hue1: float, hue2: float) -> float:
    """Compute minimum angular distance between two hues (0-180)."""
    diff = abs(hue1 - hue2) % 360
    return min(diff, 360 - diff)
