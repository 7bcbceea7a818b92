#!/usr/bin/env python3
"""
Analyze an outfit photo: palette, harmony and skin-tone coverage.

This is the caller side of the pipeline. It decodes and downscales the image
with Pillow, hands the RGBA buffer to extract_colors / harmony, and renders
the result as prose or HTML.
"""

import logging
from dataclasses import dataclass
from html import escape
from typing import Optional

import numpy as np
from PIL import Image

from color_space import rgb_to_lab
from extract_colors import (
    DEFAULT_BUCKET_SIZE, DEFAULT_MAX_COLORS, DEFAULT_QUALITY,
    PixelBuffer, SkinToneResult, extract_colors, detect_skin_tones, visualize_palette,
)
from harmony import HarmonyResult, ColorMatchResult, analyze_color_harmony, generate_color_matches


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Image size limits (security: prevent decompression bombs)
MAX_IMAGE_PIXELS = 50_000_000  # 50 megapixels
MAX_SOURCE_DIMENSION = 10_000  # 10k pixels per side

MAX_IMAGE_DIMENSION = 400  # Downscale target before analysis


# =============================================================================
# Loading
# =============================================================================

def load_pixel_buffer(image_path: str, max_dimension: Optional[int] = MAX_IMAGE_DIMENSION) -> PixelBuffer:
    """
    Decode an image to RGBA, shrinking it so neither side exceeds max_dimension.

    Raises:
        FileNotFoundError: If image file doesn't exist
        ValueError: If file is not a valid image or exceeds size limits
    """
    try:
        img = Image.open(image_path)
    except FileNotFoundError:
        raise FileNotFoundError(f"Image not found: {image_path}")
    except Exception as e:
        raise ValueError(f"Could not open image: {e}")

    with img:
        width, height = img.size
        if width > MAX_SOURCE_DIMENSION or height > MAX_SOURCE_DIMENSION:
            raise ValueError(
                f"Image dimensions {width}x{height} exceed maximum "
                f"{MAX_SOURCE_DIMENSION}x{MAX_SOURCE_DIMENSION}"
            )
        if width * height > MAX_IMAGE_PIXELS:
            raise ValueError(
                f"Image has {width * height:,} pixels, exceeding maximum {MAX_IMAGE_PIXELS:,}"
            )
        rgba = img.convert('RGBA')

    if max_dimension and max(width, height) > max_dimension:
        # thumbnail keeps the aspect ratio
        rgba.thumbnail((max_dimension, max_dimension))
        logger.debug("Downscaled %s from %dx%d to %dx%d", image_path, width, height, *rgba.size)

    return PixelBuffer.from_array(np.array(rgba))


# =============================================================================
# Pipeline
# =============================================================================

@dataclass
class ColorReport:
    """Everything the CLI reports for one image."""
    palette: list  # List of PaletteEntry
    harmony: HarmonyResult
    skin_tones: SkinToneResult
    image_size: tuple  # (width, height) after downscaling
    matches: Optional[ColorMatchResult] = None


def run_pipeline(image_path: str,
                 max_colors: int = DEFAULT_MAX_COLORS,
                 quality: int = DEFAULT_QUALITY,
                 bucket_size: int = DEFAULT_BUCKET_SIZE,
                 max_dimension: Optional[int] = MAX_IMAGE_DIMENSION,
                 match_harmony: Optional[str] = None) -> ColorReport:
    """Load an image and run extraction, harmony and skin detection on it.

    Args:
        match_harmony: If set, also generate matches of this harmony type for
            the dominant color.
    """
    buffer = load_pixel_buffer(image_path, max_dimension=max_dimension)

    palette = extract_colors(buffer, max_colors=max_colors, quality=quality, bucket_size=bucket_size)
    harmony = analyze_color_harmony(palette)
    skin_tones = detect_skin_tones(buffer)

    matches = None
    if match_harmony and palette:
        matches = generate_color_matches(palette[0].rgb, match_harmony)

    return ColorReport(
        palette=palette,
        harmony=harmony,
        skin_tones=skin_tones,
        image_size=(buffer.width, buffer.height),
        matches=matches,
    )


# =============================================================================
# Rendering
# =============================================================================

def render(report: ColorReport) -> str:
    """Render a report as prose."""
    lines = []

    lines.append(f"HARMONY: {report.harmony.harmony} (score {report.harmony.score})")
    for suggestion in report.harmony.suggestions:
        lines.append(suggestion)
    width, height = report.image_size
    lines.append(f"Analyzed at {width}x{height} | Colors: {len(report.palette)}")
    skin = report.skin_tones
    lines.append(f"Skin tones: {skin.percentage:.1f}% ({'present' if skin.has_skin_tones else 'not significant'})")
    lines.append("")

    lines.append("COLORS:")
    lines.append("")
    if not report.palette:
        lines.append("No colors found (every sampled pixel was filtered out)")
        lines.append("")

    for i, entry in enumerate(report.palette, 1):
        lines.append(f"{i}. {entry.name}")
        lines.append(f"  Hex: {entry.hex} | RGB: {tuple(entry.rgb)} | Share: {entry.percentage:.1f}%")
        lines.append("")

    if report.matches:
        lines.append(f"MATCHES ({report.matches.harmony_type.replace('_', ' ')}):")
        lines.append("")
        for match in report.matches.matches:
            lines.append(f"  - {match.label}: {match.name} {match.hex}")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def text_color_for_background(rgb: tuple) -> str:
    """Return black or white text color based on background lightness."""
    L = rgb_to_lab(np.array([rgb]))[0, 0]
    return "#000" if L > 50 else "#fff"


def render_html(report: ColorReport, image_path: str) -> str:
    """Render a report as a standalone HTML page."""
    safe_path = escape(image_path)

    css = """
        * { box-sizing: border-box; margin: 0; padding: 0; }
        body {
            font-family: system-ui, -apple-system, sans-serif;
            background: #f5f5f5;
            color: #333;
            line-height: 1.5;
            padding: 2rem;
            max-width: 900px;
            margin: 0 auto;
        }
        h1 { font-size: 1.5rem; margin-bottom: 0.5rem; }
        h2 { font-size: 1.2rem; margin: 2rem 0 1rem; border-bottom: 1px solid #ddd; padding-bottom: 0.5rem; }
        .meta { color: #666; font-size: 0.9rem; margin-bottom: 1rem; }
        .palette-strip {
            display: flex;
            height: 80px;
            border-radius: 8px;
            overflow: hidden;
            box-shadow: 0 2px 8px rgba(0,0,0,0.1);
            margin: 1.5rem 0;
        }
        .palette-strip .swatch {
            display: flex;
            align-items: flex-end;
            justify-content: center;
            padding: 0.5rem;
            font-size: 0.7rem;
            font-weight: 500;
        }
        .color-card {
            background: #fff;
            border-radius: 8px;
            padding: 1rem;
            margin-bottom: 1rem;
            box-shadow: 0 1px 3px rgba(0,0,0,0.08);
            display: grid;
            grid-template-columns: 60px 1fr;
            gap: 1rem;
        }
        .color-card .swatch { width: 60px; height: 60px; border-radius: 6px; }
        .match { display: inline-block; margin: 0 0.5rem 0.5rem 0; padding: 0.4rem 0.8rem; border-radius: 4px; font-size: 0.8rem; }
    """

    parts = []
    parts.append("<!DOCTYPE html>")
    parts.append("<html><head><meta charset=\"utf-8\">")
    parts.append(f"<title>Palette: {safe_path}</title>")
    parts.append(f"<style>{css}</style></head><body>")

    harmony = report.harmony
    parts.append(f"<h1>{escape(harmony.harmony.capitalize())} palette</h1>")
    width, height = report.image_size
    parts.append(f"<p class=\"meta\">{safe_path} · {width}x{height} · score {harmony.score} · "
                 f"skin tones {report.skin_tones.percentage:.1f}%</p>")
    for suggestion in harmony.suggestions:
        parts.append(f"<p>{escape(suggestion)}</p>")

    if report.palette:
        parts.append("<div class=\"palette-strip\">")
        for entry in report.palette:
            fg = text_color_for_background(entry.rgb)
            parts.append(f"<div class=\"swatch\" style=\"background:{entry.hex};color:{fg};"
                         f"flex:{entry.percentage:.2f}\">{entry.percentage:.0f}%</div>")
        parts.append("</div>")
    else:
        parts.append("<p>No colors found.</p>")

    parts.append("<h2>Colors</h2>")
    for entry in report.palette:
        parts.append("<div class=\"color-card\">")
        parts.append(f"<div class=\"swatch\" style=\"background:{entry.hex}\"></div>")
        parts.append(f"<div><strong>{escape(entry.name)}</strong><br>"
                     f"{entry.hex} · RGB{tuple(entry.rgb)} · {entry.percentage:.1f}%</div>")
        parts.append("</div>")

    if report.matches:
        parts.append(f"<h2>Matches ({escape(report.matches.harmony_type.replace('_', ' '))})</h2>")
        parts.append("<div>")
        for match in report.matches.matches:
            fg = text_color_for_background(match.rgb)
            parts.append(f"<span class=\"match\" style=\"background:{match.hex};color:{fg}\">"
                         f"{escape(match.label)}: {escape(match.name)}</span>")
        parts.append("</div>")

    parts.append("</body></html>")
    return "\n".join(parts)


def analyze_image(image_path: str, **options) -> tuple[str, str]:
    """Run the full analysis pipeline on an image.

    Returns:
        Tuple of (prose_output, html_output)
    """
    report = run_pipeline(image_path, **options)
    return render(report), render_html(report, image_path)


# =============================================================================
# CLI
# =============================================================================

def main(argv: Optional[list] = None) -> int:
    import argparse
    import sys
    from pathlib import Path

    parser = argparse.ArgumentParser(
        description='Extract an outfit color palette and judge its harmony.'
    )
    parser.add_argument('--input', '-i', required=True, help='Path to the image file')
    parser.add_argument(
        '--output', '-o',
        nargs='?',
        const=True,
        default=None,
        help='Write HTML report. Optionally specify path, otherwise auto-names from input.'
    )
    parser.add_argument('--swatches', help='Write a PNG swatch strip to this path')
    parser.add_argument('--max-colors', type=int, default=DEFAULT_MAX_COLORS)
    parser.add_argument('--quality', type=int, default=DEFAULT_QUALITY,
                        help='Sample every Nth pixel (smaller is slower but more accurate)')
    parser.add_argument('--bucket-size', type=int, default=DEFAULT_BUCKET_SIZE,
                        help='Quantization grid width per channel')
    parser.add_argument('--max-dimension', type=int, default=MAX_IMAGE_DIMENSION,
                        help='Downscale so neither side exceeds this (0 disables)')
    parser.add_argument('--matches', metavar='HARMONY',
                        help='Generate matches for the dominant color '
                             '(complementary, analogous, triadic, split_complementary, '
                             'tetradic, monochromatic, recommended)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )
    image_path = Path(args.input)

    try:
        report = run_pipeline(
            str(image_path),
            max_colors=args.max_colors,
            quality=args.quality,
            bucket_size=args.bucket_size,
            max_dimension=args.max_dimension or None,
            match_harmony=args.matches,
        )
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error analyzing image: {e}", file=sys.stderr)
        return 1

    # Always print prose to terminal
    print(render(report), end='')

    try:
        if args.swatches:
            visualize_palette(report.palette, args.swatches)
            print(f"\nWrote: {args.swatches}")

        if args.output:
            if args.output is True:
                output_path = image_path.with_name(f"{image_path.stem}-palette.html")
            else:
                output_path = Path(args.output)
            output_path.write_text(render_html(report, str(image_path)))
            print(f"\nWrote: {output_path}")
    except OSError as e:
        print(f"Error writing output: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == '__main__':
    raise SystemExit(main())
