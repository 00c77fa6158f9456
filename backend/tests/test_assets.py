from __future__ import annotations

import asyncio
import base64

import pytest

from reporting.assets import (
    bytes_to_data_uri,
    confine_image_refs,
    is_supported_image_upload,
    mime_from_extension,
    normalize_image,
    normalize_images,
)
from reporting.errors import InvalidInput

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


def test_data_uri_is_returned_unchanged():
    ref = "data:image/jpeg;base64,/9j/4AAQSkZJRg=="
    assert asyncio.run(normalize_image(ref)) == ref


def test_raw_base64_is_wrapped_as_png_and_decodes_to_same_bytes():
    payload = PNG_BYTES * 3
    raw = base64.b64encode(payload).decode("ascii")
    assert len(raw) > 100
    out = asyncio.run(normalize_image(raw))
    assert out.startswith("data:image/png;base64,")
    assert base64.b64decode(out.split(",", 1)[1]) == payload


def test_short_base64_looking_string_is_treated_as_path():
    # Too short for the base64 heuristic and not an existing file
    assert asyncio.run(normalize_image("abc123")) == "abc123"


def test_missing_file_returns_original_reference():
    ref = "/definitely/not/here/logo.png"
    assert asyncio.run(normalize_image(ref)) == ref


def test_file_path_is_read_and_mime_inferred(tmp_path):
    jpg = tmp_path / "photo.JPG"
    jpg.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")
    svg = tmp_path / "logo.svg"
    svg.write_bytes(b"<svg xmlns='http://www.w3.org/2000/svg'/>")
    out_jpg, out_svg = asyncio.run(normalize_images([str(jpg), str(svg)]))
    assert out_jpg == bytes_to_data_uri(b"\xff\xd8\xff\xe0fake-jpeg", "image/jpeg")
    assert out_svg.startswith("data:image/svg+xml;base64,")


def test_normalize_images_preserves_input_order(tmp_path):
    paths = []
    for i in range(5):
        p = tmp_path / f"img{i}.webp"
        p.write_bytes(f"image-{i}".encode())
        paths.append(str(p))
    refs = ["data:image/png;base64,AAAA", *paths, "/missing.png"]
    out = asyncio.run(normalize_images(refs))
    assert out[0] == "data:image/png;base64,AAAA"
    for i, uri in enumerate(out[1:6]):
        assert base64.b64decode(uri.split(",", 1)[1]) == f"image-{i}".encode()
        assert uri.startswith("data:image/webp;base64,")
    assert out[-1] == "/missing.png"


def test_mime_from_extension_defaults_to_png():
    assert mime_from_extension("a.jpeg") == "image/jpeg"
    assert mime_from_extension("a.webp") == "image/webp"
    assert mime_from_extension("a.gif") == "image/png"
    assert mime_from_extension("no_extension") == "image/png"


def test_supported_image_upload_filter():
    assert is_supported_image_upload("chart.PNG", "image/png")
    assert is_supported_image_upload("logo.svg", "image/svg+xml")
    assert not is_supported_image_upload("anim.gif", "image/gif")
    assert not is_supported_image_upload("data.csv", "text/csv")


def test_confine_image_refs_keeps_inline_images():
    raw = base64.b64encode(PNG_BYTES * 3).decode("ascii")
    refs = ["data:image/png;base64,AAAA", raw]
    assert confine_image_refs(refs, asset_dir="") == refs


def test_confine_image_refs_rejects_paths_without_asset_dir(tmp_path):
    logo = tmp_path / "logo.png"
    logo.write_bytes(b"x")
    with pytest.raises(InvalidInput):
        confine_image_refs([str(logo)], asset_dir="")


def test_confine_image_refs_resolves_inside_asset_dir(tmp_path):
    (tmp_path / "img").mkdir()
    (tmp_path / "img" / "logo.png").write_bytes(b"x")
    assert confine_image_refs(["img/logo.png"], asset_dir=str(tmp_path)) == [str((tmp_path / "img" / "logo.png").resolve())]
    for escaping in ("../outside.png", "/etc/passwd", "img/../../outside.png"):
        with pytest.raises(InvalidInput):
            confine_image_refs([escaping], asset_dir=str(tmp_path / "img"))


def test_confine_image_refs_rejects_symlink_out_of_asset_dir(tmp_path):
    outside = tmp_path / "secret.txt"
    outside.write_bytes(b"secret")
    assets_dir = tmp_path / "assets"
    assets_dir.mkdir()
    (assets_dir / "link.png").symlink_to(outside)
    with pytest.raises(InvalidInput):
        confine_image_refs(["link.png"], asset_dir=str(assets_dir))
