#!/usr/bin/env python3
"""
Color harmony: classify the hue relationships of a palette, and generate
harmonious colors from a single base color.

The classifier (analyze_color_harmony) and the generator (harmony_hues,
generate_color_matches) are independent: the first scores an existing
palette, the second builds new target colors.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, asdict

import numpy as np
from skimage.color import deltaE_ciede2000

from color_space import (
    hex_to_rgb, rgb_to_hex, rgb_to_hsv, rgb_to_hsl, hsl_to_rgb,
    rgb_to_lab, lab_to_rgb,
)
from extract_colors import PaletteEntry


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

COMPLEMENTARY_RANGE = (150, 210)  # Exclusive bounds on |hue difference|
TRIADIC_SPACING_TOLERANCE = 20
ANALOGOUS_MAX_DIFFERENCE = 30

HARMONY_SCORES = {
    'complementary': 95,
    'triadic': 90,
    'analogous': 85,
    'custom': 70,
}

HARMONY_SUGGESTIONS = {
    'complementary': 'Great use of complementary colors for high contrast!',
    'triadic': 'Balanced triadic color scheme creates visual interest.',
    'analogous': 'Harmonious analogous colors create a cohesive look.',
    'custom': 'Consider adding complementary colors for more visual impact.',
}

# Target hue offsets (degrees) for each generated harmony
HARMONY_OFFSETS = {
    'complementary': (180,),
    'analogous': (30, -30),
    'triadic': (120, 240),
    'split_complementary': (150, 210),
    'tetradic': (90, 180, 270),
    'monochromatic': (0,),
}

MONOCHROMATIC_LIGHTNESS = (0.3, 0.4, 0.6, 0.7)

# Wearable saturation / lightness window for generated colors
FASHION_SATURATION = (0.2, 0.9)
FASHION_LIGHTNESS = (0.25, 0.85)

MATCH_SNAP_DISTANCE = 40  # Delta E under which a named color replaces a generated one
SHADE_SNAP_DISTANCE = 35
LAB_LIGHTNESS_STEP = 18  # LAB L units per brighten/darken step

FASHION_COLORS = {
    # Basic colors
    'red': '#ff0000', 'blue': '#0000ff', 'green': '#00ff00', 'yellow': '#ffff00',
    'black': '#000000', 'white': '#ffffff',
    # Popular fashion colors
    'turquoise': '#40e0d0', 'aqua': '#00ffff', 'teal': '#008080', 'chartreuse': '#7fff00',
    'periwinkle': '#ccccff', 'mauve': '#e0b0ff', 'burgundy': '#800020', 'maroon': '#800000',
    'coral': '#ff7f50', 'salmon': '#fa8072', 'peach': '#ffe5b4', 'mint': '#98ff98',
    'sage': '#9dc183', 'olive': '#808000', 'khaki': '#c3b091', 'tan': '#d2b48c',
    'beige': '#f5f5dc', 'cream': '#fffdd0', 'ivory': '#fffff0', 'champagne': '#f7e7ce',
    'blush': '#de5d83', 'rose': '#ff007f', 'fuchsia': '#ff00ff', 'lilac': '#c8a2c8',
    'lavender': '#e6e6fa', 'plum': '#dda0dd', 'violet': '#ee82ee', 'indigo': '#4b0082',
    'navy': '#000080', 'cobalt': '#0047ab', 'azure': '#007fff', 'sky blue': '#87ceeb',
    'powder blue': '#b0e0e6', 'steel blue': '#4682b4', 'slate': '#708090',
    'charcoal': '#36454f', 'graphite': '#383428', 'pewter': '#96a8a1', 'silver': '#c0c0c0',
    'gold': '#ffd700', 'bronze': '#cd7f32', 'copper': '#b87333', 'rust': '#b7410e',
    'terracotta': '#e2725b', 'sienna': '#a0522d', 'umber': '#635147', 'ochre': '#cc7722',
    'mustard': '#ffdb58', 'canary': '#ffff99', 'lemon': '#fff44f', 'lime': '#bfff00',
    'emerald': '#50c878', 'jade': '#00a86b', 'forest green': '#228b22',
    'hunter green': '#355e3b', 'pine': '#01796f', 'moss': '#8a9a5b', 'seafoam': '#93e9be',
    'celadon': '#ace1af', 'pistachio': '#93c572', 'avocado': '#568203',
    # Neutrals & earth tones
    'taupe': '#483c32', 'mushroom': '#ada397', 'sand': '#c2b280', 'wheat': '#f5deb3',
    'camel': '#c19a6b', 'cognac': '#9a463d', 'chocolate': '#7b3f00', 'coffee': '#6f4e37',
    'espresso': '#4e312d', 'mocha': '#967969',
    # Jewel tones
    'ruby': '#e0115f', 'sapphire': '#0f52ba', 'amethyst': '#9966cc', 'topaz': '#ffc87c',
    'citrine': '#e4d00a', 'garnet': '#733635', 'onyx': '#353839', 'pearl': '#eae0c8',
    'opal': '#a8c3bc',
    # Pastels
    'baby blue': '#89cff0', 'baby pink': '#f4c2c2', 'lemon chiffon': '#fffacd',
    'peach puff': '#ffdab9', 'misty rose': '#ffe4e1', 'alice blue': '#f0f8ff',
    'honeydew': '#f0fff0', 'seashell': '#fff5ee',
    # Grays & whites
    'ash': '#b2beb5', 'dove': '#d3d3d3', 'smoke': '#738276', 'fog': '#dcdcdc',
    'cloud': '#f5f5f5', 'snow': '#fffafa', 'alabaster': '#f2f0e6', 'porcelain': '#f4ede4',
    # Additional
    'pink': '#ffc0cb', 'hot pink': '#ff69b4', 'deep pink': '#ff1493', 'light pink': '#ffb6c1',
    'crimson': '#dc143c', 'scarlet': '#ff2400', 'vermillion': '#e34234', 'orange': '#ffa500',
    'tangerine': '#f28500', 'apricot': '#fbceb1', 'amber': '#ffbf00', 'honey': '#eb9605',
    'butterscotch': '#e39842', 'caramel': '#af6e4d', 'cinnamon': '#d2691e',
    'mahogany': '#c04000', 'chestnut': '#954535', 'purple': '#800080', 'orchid': '#da70d6',
    'thistle': '#d8bfd8', 'heather': '#b7a8c7', 'wisteria': '#c9a0dc',
    'periwinkle blue': '#8e82fe', 'cornflower': '#6495ed', 'royal blue': '#4169e1',
    'midnight blue': '#191970', 'denim': '#1560bd', 'cerulean': '#007ba7',
    'aquamarine': '#7fffd4', 'cyan': '#00ffff', 'magenta': '#ff00ff',
}

_FASHION_NAMES = list(FASHION_COLORS)
_FASHION_LAB = rgb_to_lab(np.array([hex_to_rgb(FASHION_COLORS[n]) for n in _FASHION_NAMES]))

_RGB_PATTERN = re.compile(r'^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*[\d.]+\s*)?\)$')
_HEX_PATTERN = re.compile(r'^#?(?:[0-9a-f]{3}|[0-9a-f]{6})$')


# =============================================================================
# Harmony Classifier
# =============================================================================

@dataclass
class HarmonyResult:
    harmony: str  # 'complementary', 'triadic', 'analogous' or 'custom'
    score: int
    suggestions: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _entry_rgb(entry) -> tuple:
    """Accept a PaletteEntry, a mapping with 'rgb' or 'hex', a hex string or an RGB triple."""
    if isinstance(entry, PaletteEntry):
        rgb = entry.rgb
    elif isinstance(entry, Mapping):
        if 'rgb' in entry:
            rgb = entry['rgb']
        elif 'hex' in entry:
            rgb = hex_to_rgb(entry['hex'])
        else:
            raise ValueError(f"Palette entry has neither 'rgb' nor 'hex': {entry!r}")
    elif isinstance(entry, str):
        rgb = hex_to_rgb(entry)
    else:
        rgb = entry

    rgb = tuple(rgb)
    if len(rgb) != 3:
        raise ValueError(f"Expected an RGB triple, got {entry!r}")
    return rgb


def analyze_color_harmony(palette: list) -> HarmonyResult:
    """
    Classify a palette by its hue relationships.

    Checked in priority order, first match wins:
      complementary - some pair differs by 150-210°
      triadic       - some ordered triple i<j<k is near-evenly spaced
      analogous     - some pair differs by less than 30°
      custom        - anything else
    Differences are plain absolute differences, not wrapped around the wheel.
    """
    hues = [rgb_to_hsv(*_entry_rgb(entry))[0] for entry in palette]
    n = len(hues)
    pairs = [(hues[i], hues[j]) for i in range(n) for j in range(i + 1, n)]

    low, high = COMPLEMENTARY_RANGE
    has_complementary = any(low < abs(a - b) < high for a, b in pairs)

    has_triadic = n >= 3 and any(
        abs((hues[i] - hues[j]) - (hues[j] - hues[k])) < TRIADIC_SPACING_TOLERANCE
        for i in range(n) for j in range(i + 1, n) for k in range(j + 1, n)
    )

    has_analogous = any(abs(a - b) < ANALOGOUS_MAX_DIFFERENCE for a, b in pairs)

    if has_complementary:
        harmony = 'complementary'
    elif has_triadic:
        harmony = 'triadic'
    elif has_analogous:
        harmony = 'analogous'
    else:
        harmony = 'custom'

    return HarmonyResult(
        harmony=harmony,
        score=HARMONY_SCORES[harmony],
        suggestions=[HARMONY_SUGGESTIONS[harmony]],
    )


# =============================================================================
# Harmony Generator
# =============================================================================

def normalize_harmony_type(harmony_type: str) -> str:
    return harmony_type.strip().lower().replace('-', '_').replace(' ', '_')


def harmony_hues(hue: float, harmony_type: str) -> list:
    """
    Target hues for a harmony, as fixed offsets from `hue` modulo 360.

    Raises:
        ValueError: If harmony_type is unknown
    """
    key = normalize_harmony_type(harmony_type)
    if key not in HARMONY_OFFSETS:
        raise ValueError(
            f"Unknown harmony type {harmony_type!r}; expected one of {', '.join(HARMONY_OFFSETS)}"
        )
    return [(hue + offset) % 360 for offset in HARMONY_OFFSETS[key]]


def recommended_harmony(rgb: tuple) -> str:
    """Pick a harmony from the base color's saturation and lightness."""
    _, s, l = rgb_to_hsl(*rgb)

    if s < 0.15:
        return 'analogous'  # neutrals stay cohesive
    if l < 0.3:
        return 'split_complementary'
    if l > 0.75:
        return 'complementary'
    if s > 0.7:
        return 'triadic'
    if s < 0.4:
        return 'analogous'
    return 'complementary'


def parse_color(color) -> tuple:
    """
    Parse a hex string, rgb(...) string, fashion color name or RGB triple.

    Raises:
        ValueError: If the color can't be interpreted
    """
    if isinstance(color, str):
        value = color.strip().lower()
        if not value:
            raise ValueError("Valid color name, hex code, or RGB value is required")
        if value in FASHION_COLORS:
            return hex_to_rgb(FASHION_COLORS[value])
        if _HEX_PATTERN.match(value):
            return hex_to_rgb(value)
        match = _RGB_PATTERN.match(value)
        if match:
            rgb = tuple(int(c) for c in match.groups())
        else:
            raise ValueError(
                f"Invalid color format {color!r}. Use hex (#FF0000), RGB (rgb(255,0,0)), "
                "or a color name (turquoise, chartreuse, etc.)"
            )
    elif isinstance(color, (tuple, list)) and len(color) == 3:
        rgb = tuple(color)
    else:
        raise ValueError(f"Valid color name, hex code, or RGB value is required, got {color!r}")

    if not all(isinstance(c, (int, np.integer)) and 0 <= c <= 255 for c in rgb):
        raise ValueError(f"RGB channels must be integers in 0-255, got {rgb!r}")
    return tuple(int(c) for c in rgb)


def closest_named_color(rgb: tuple) -> tuple:
    """Nearest fashion color by CIEDE2000 delta E. Returns (name, hex, distance)."""
    lab = rgb_to_lab(np.array([rgb]))
    distances = deltaE_ciede2000(_FASHION_LAB, lab)
    idx = int(np.argmin(distances))
    name = _FASHION_NAMES[idx]
    return name, FASHION_COLORS[name], float(distances[idx])


def _display_name(name: str) -> str:
    return name[:1].upper() + name[1:]


@dataclass
class ColorMatch:
    label: str
    hex: str
    rgb: tuple
    name: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data['rgb'] = list(self.rgb)
        return data


@dataclass
class ColorMatchResult:
    input_color: ColorMatch
    matches: list  # List of ColorMatch
    harmony_type: str
    is_recommended: bool = False

    def to_dict(self) -> dict:
        return {
            'input_color': self.input_color.to_dict(),
            'matches': [m.to_dict() for m in self.matches],
            'harmony_type': self.harmony_type,
            'is_recommended': self.is_recommended,
        }


def _match_label(harmony_type: str, index: int) -> str:
    if harmony_type == 'complementary':
        return 'Complementary'
    if harmony_type == 'analogous':
        return 'Analogous +30°' if index == 0 else 'Analogous -30°'
    if harmony_type == 'triadic':
        return f"Triadic {index + 1}"
    if harmony_type == 'split_complementary':
        return f"Split Comp {index + 1}"
    if harmony_type == 'tetradic':
        return f"Tetradic {index + 1}"
    return f"Shade {index + 1}"


def _snap(rgb: tuple, max_distance: float) -> tuple:
    """Replace rgb with the nearest named color if it is close enough. Returns (rgb, name or None)."""
    name, hex_color, distance = closest_named_color(rgb)
    if distance < max_distance:
        return hex_to_rgb(hex_color), _display_name(name)
    return rgb, None


def shade_variation(rgb: tuple, adjustment: float, label: str) -> ColorMatch:
    """Lighter (adjustment > 0) or darker (< 0) version of a color, kept within wearable bounds."""
    lab = rgb_to_lab(np.array([rgb]))[0]
    lab[0] += LAB_LIGHTNESS_STEP * adjustment * 1.5
    shifted = tuple(int(c) for c in lab_to_rgb(lab)[0])

    h, s, l = rgb_to_hsl(*shifted)
    variant = hsl_to_rgb(h, max(0.2, s), min(0.9, max(0.2, l)))

    final, name = _snap(variant, SHADE_SNAP_DISTANCE)
    return ColorMatch(label=label, hex=rgb_to_hex(*final), rgb=final, name=name or label)


def generate_color_matches(color, harmony_type: str = 'complementary') -> ColorMatchResult:
    """
    Build harmonious colors for a base color.

    Args:
        color: Hex string, rgb(...) string, fashion color name or RGB triple
        harmony_type: One of HARMONY_OFFSETS, or 'recommended' to pick one from
            the color itself. Unknown types fall back to complementary.

    Returns:
        ColorMatchResult with one match per target hue followed by lighter,
        darker, tint and tone variations of the base color.
    """
    base = parse_color(color)
    h, s, l = rgb_to_hsl(*base)

    resolved = normalize_harmony_type(harmony_type)
    is_recommended = resolved == 'recommended'
    if is_recommended:
        resolved = recommended_harmony(base)
    if resolved not in HARMONY_OFFSETS:
        logger.warning("Unknown harmony type %r, using complementary", harmony_type)
        resolved = 'complementary'

    matches = []
    for index, target_hue in enumerate(harmony_hues(h, resolved)):
        if resolved == 'monochromatic':
            lightness = MONOCHROMATIC_LIGHTNESS[index % len(MONOCHROMATIC_LIGHTNESS)]
            target = (h, max(0.3, s), lightness)
        elif resolved == 'analogous':
            target = (target_hue, s * 0.9, l)
        elif resolved == 'complementary':
            target = (target_hue, s * 0.85, l)
        else:
            target = (target_hue, s, l)

        th, ts, tl = target
        ts = min(FASHION_SATURATION[1], max(FASHION_SATURATION[0], ts))
        tl = min(FASHION_LIGHTNESS[1], max(FASHION_LIGHTNESS[0], tl))
        generated = hsl_to_rgb(th, ts, tl)

        final, name = _snap(generated, MATCH_SNAP_DISTANCE)
        matches.append(ColorMatch(
            label=_match_label(resolved, index),
            hex=rgb_to_hex(*final),
            rgb=final,
            name=name or f"Custom {index + 1}",
        ))

    for adjustment, label in ((1, 'Lighter Shade'), (-1, 'Darker Shade'),
                              (0.5, 'Light Tint'), (-0.5, 'Dark Tone')):
        matches.append(shade_variation(base, adjustment, label))

    input_name, _, _ = closest_named_color(base)
    input_color = ColorMatch(label='Input', hex=rgb_to_hex(*base), rgb=base,
                             name=_display_name(input_name))

    return ColorMatchResult(
        input_color=input_color,
        matches=matches,
        harmony_type=resolved,
        is_recommended=is_recommended,
    )
