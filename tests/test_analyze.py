"""Tests for image loading, the report pipeline and the CLIs."""
from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

import batch_analyze
from analyze import (
    load_pixel_buffer,
    main,
    render,
    render_html,
    run_pipeline,
    text_color_for_background,
)


@pytest.fixture
def split_image(tmp_path):
    """200x100 PNG: left half red, right half blue."""
    rgb = np.zeros((100, 200, 3), dtype=np.uint8)
    rgb[:, :100] = (255, 0, 0)
    rgb[:, 100:] = (0, 0, 255)
    path = tmp_path / "outfit.png"
    Image.fromarray(rgb).save(path)
    return path


def test_load_downscales_large_images(tmp_path):
    path = tmp_path / "big.png"
    Image.new('RGB', (800, 200), (0, 120, 0)).save(path)
    buffer = load_pixel_buffer(str(path))
    assert (buffer.width, buffer.height) == (400, 100)
    assert buffer.pixels().shape == (400 * 100, 4)
    assert buffer.pixels()[0].tolist() == [0, 120, 0, 255]


def test_load_keeps_small_images(split_image):
    buffer = load_pixel_buffer(str(split_image))
    assert (buffer.width, buffer.height) == (200, 100)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_pixel_buffer(str(tmp_path / "nope.png"))


def test_load_rejects_non_images(tmp_path):
    path = tmp_path / "notes.png"
    path.write_text("not an image")
    with pytest.raises(ValueError):
        load_pixel_buffer(str(path))


def test_load_closes_rejected_image(tmp_path, monkeypatch):
    path = tmp_path / "wide.png"
    Image.new('RGB', (100, 20), (0, 120, 0)).save(path)
    opened = []
    real_open = Image.open

    def tracking_open(*args, **kwargs):
        img = real_open(*args, **kwargs)
        opened.append(img)
        return img

    monkeypatch.setattr(Image, 'open', tracking_open)
    monkeypatch.setattr('analyze.MAX_SOURCE_DIMENSION', 50)
    with pytest.raises(ValueError, match="exceed maximum"):
        load_pixel_buffer(str(path))
    assert opened and opened[0].fp is None


def test_run_pipeline(split_image):
    report = run_pipeline(str(split_image))
    assert {e.hex for e in report.palette} == {'#ff0000', '#0000ff'}
    assert sum(e.percentage for e in report.palette) == pytest.approx(100)
    assert report.harmony.harmony == 'custom'
    assert report.skin_tones.has_skin_tones is False
    assert report.image_size == (200, 100)
    assert report.matches is None


def test_run_pipeline_with_matches(split_image):
    report = run_pipeline(str(split_image), match_harmony='triadic')
    assert report.matches.harmony_type == 'triadic'


def test_render_prose(split_image):
    report = run_pipeline(str(split_image), match_harmony='complementary')
    prose = render(report)
    assert prose.startswith("HARMONY: custom (score 70)")
    assert "COLORS:" in prose
    assert "#ff0000" in prose
    assert "MATCHES (complementary):" in prose


def test_render_html_escapes_path(split_image):
    report = run_pipeline(str(split_image))
    html = render_html(report, "<outfit>.png")
    assert html.startswith("<!DOCTYPE html>")
    assert "&lt;outfit&gt;.png" in html
    assert "#0000ff" in html


def test_text_color_for_background():
    assert text_color_for_background((255, 255, 255)) == "#000"
    assert text_color_for_background((0, 0, 80)) == "#fff"


def test_cli_writes_html_and_swatches(split_image, tmp_path, capsys):
    html_path = tmp_path / "report.html"
    swatch_path = tmp_path / "swatches.png"
    code = main(['--input', str(split_image), '--output', str(html_path),
                 '--swatches', str(swatch_path), '--quality', '2'])
    assert code == 0
    assert html_path.read_text().startswith("<!DOCTYPE html>")
    assert swatch_path.exists()
    assert "COLORS:" in capsys.readouterr().out


def test_cli_auto_names_html(split_image):
    assert main(['--input', str(split_image), '--output']) == 0
    assert (split_image.parent / "outfit-palette.html").exists()


def test_cli_missing_file(tmp_path, capsys):
    assert main(['--input', str(tmp_path / "missing.png")]) == 1
    assert "Error" in capsys.readouterr().err


def test_batch_writes_reports(split_image, tmp_path, capsys):
    (split_image.parent / "broken.jpg").write_text("nope")
    out_dir = tmp_path / "reports"
    code = batch_analyze.main(['--input', str(split_image.parent), '--output', str(out_dir)])
    assert code == 1
    assert (out_dir / "outfit-palette.html").exists()
    assert "broken.jpg" in capsys.readouterr().err


def test_batch_missing_input_dir(tmp_path):
    assert batch_analyze.main(['--input', str(tmp_path / "none"), '--output', str(tmp_path)]) == 2
