import io
import logging
import random
from datetime import datetime, timezone
from pathlib import Path

import pytest
from PIL import Image

from collage_utils.errors import DecodeFailureError, EncodeFailureError
from collage_utils.image_processor import (
    DecodedImage,
    build_export_filename,
    decode_image,
    encode_canvas,
    mime_type_for_path,
    safe_filename_part,
    save_collage,
    write_demo_images,
)


def create_temp_image(tmp_path: Path, size=(10, 10), name="img.png", mode="RGB") -> Path:
    img = Image.new(mode, size, color="red")
    path = tmp_path / name
    img.save(path)
    return path


def test_decode_from_path(tmp_path):
    path = create_temp_image(tmp_path, size=(12, 7))
    with decode_image(path) as decoded:
        assert (decoded.width, decoded.height) == (12, 7)
        assert decoded.source.mode == "RGB"


def test_decode_from_bytes_and_stream(tmp_path):
    data = create_temp_image(tmp_path, size=(5, 9)).read_bytes()
    assert decode_image(data).width == 5
    assert decode_image(io.BytesIO(data)).height == 9


def test_decode_converts_palette_and_grayscale(tmp_path):
    gray = decode_image(create_temp_image(tmp_path, name="gray.png", mode="L"))
    assert gray.source.mode == "RGB"
    alpha = decode_image(create_temp_image(tmp_path, name="alpha.png", mode="LA"))
    assert alpha.source.mode == "RGBA"


def test_decode_applies_exif_orientation(tmp_path):
    img = Image.new("RGB", (20, 10), color="blue")
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90 degrees clockwise
    path = tmp_path / "rotated.jpg"
    img.save(path, exif=exif)
    decoded = decode_image(path)
    assert (decoded.width, decoded.height) == (10, 20)


def test_decode_draft_respects_rotated_orientation(tmp_path):
    img = Image.new("RGB", (800, 200), color="blue")
    exif = Image.Exif()
    exif[0x0112] = 6
    path = tmp_path / "portrait.jpg"
    img.save(path, exif=exif)
    decoded = decode_image(path, target_size=(200, 100))
    assert decoded.width >= 200 and decoded.height >= 100
    assert decoded.height > decoded.width


def test_decode_invalid_data_raises(tmp_path, caplog):
    bad = tmp_path / "bad.png"
    bad.write_text("not an image")
    with caplog.at_level(logging.ERROR):
        with pytest.raises(DecodeFailureError):
            decode_image(bad)
    assert "Failed to decode" in caplog.text


def test_decoded_image_release_runs_once():
    calls = []
    decoded = DecodedImage(Image.new("RGB", (1, 1)), 1, 1, release=lambda: calls.append(1))
    with decoded:
        pass
    decoded.close()
    assert calls == [1]


def test_decoded_image_without_release():
    with DecodedImage(Image.new("RGB", (1, 1)), 1, 1) as decoded:
        assert decoded.release is None


@pytest.mark.parametrize("mime_type, fmt", [("image/png", "PNG"), ("image/jpeg", "JPEG"), ("image/webp", "WEBP")])
def test_encode_canvas_formats(mime_type, fmt):
    data = encode_canvas(Image.new("RGB", (16, 16), "green"), mime_type, 0.8)
    with Image.open(io.BytesIO(data)) as img:
        assert img.format == fmt
        assert img.size == (16, 16)


def test_encode_canvas_quality_changes_jpeg_size():
    img = Image.effect_noise((64, 64), 64).convert("RGB")
    low = encode_canvas(img, "image/jpeg", 0.1)
    high = encode_canvas(img, "image/jpeg", 1.5)  # clamped to 1
    assert len(low) < len(high)


def test_encode_canvas_rejects_unknown_type():
    with pytest.raises(EncodeFailureError):
        encode_canvas(Image.new("RGB", (4, 4)), "image/gif")


def test_save_collage_uses_extension(tmp_path):
    path = save_collage(Image.new("RGB", (8, 8)), tmp_path / "out.jpg", 0.9)
    with Image.open(path) as img:
        assert img.format == "JPEG"


def test_save_collage_rejects_missing_directory(tmp_path):
    with pytest.raises(ValueError):
        save_collage(Image.new("RGB", (8, 8)), tmp_path / "missing" / "out.png")


def test_mime_type_for_path():
    assert mime_type_for_path("a/b.PNG") == "image/png"
    assert mime_type_for_path("x.jpeg") == "image/jpeg"
    with pytest.raises(ValueError):
        mime_type_for_path("x.bmp")


def test_build_export_filename():
    now = datetime(2024, 5, 6, 7, 8, 9, 123000, tzinfo=timezone.utc)
    name = build_export_filename("my photo (1).JPG", 4096, "image/jpeg", now)
    assert name == "smartcollage-my-photo-1-.JPG-4096x4096-2024-05-06T07-08-09-123Z.jpg"


def test_safe_filename_part_truncates():
    assert safe_filename_part("a" * 200) == "a" * 80
    assert safe_filename_part("a//b") == "a-b"


def test_write_demo_images(tmp_path):
    paths = write_demo_images(tmp_path / "demo", 3, rng=random.Random(1), base_size=(30, 20), jitter=(10, 10))
    assert [p.name for p in paths] == ["demo-001.jpg", "demo-002.jpg", "demo-003.jpg"]
    for path in paths:
        with Image.open(path) as img:
            assert 30 <= img.width < 40 and 20 <= img.height < 30
