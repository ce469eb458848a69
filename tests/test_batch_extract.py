"""Tests for the batch directory runner."""

import json

from PIL import Image

from batch_extract import find_images, main


def write_image(path, colors) -> None:
    img = Image.new("RGB", (len(colors), 1))
    img.putdata(colors)
    img.save(path)


def test_find_images_filters_by_extension(tmp_path) -> None:
    write_image(tmp_path / "b.PNG", [(1, 2, 3)])
    write_image(tmp_path / "a.png", [(1, 2, 3)])
    (tmp_path / "notes.txt").write_text("skip me")

    assert [p.name for p in find_images(tmp_path)] == ["a.png", "b.PNG"]


def test_batch_writes_json_per_image(tmp_path, capsys) -> None:
    images = tmp_path / "in"
    images.mkdir()
    write_image(images / "flag.png", [(255, 0, 0), (255, 0, 0), (0, 0, 255), (0, 0, 255)])
    out = tmp_path / "out"

    exit_code = main(["-i", str(images), "-o", str(out), "-k", "2", "--sample-rate", "1",
                      "--hex", "--swatches"])

    assert exit_code == 0
    data = json.loads((out / "flag-palette.json").read_text())
    assert data["dominantColor"] == "#ff0000"
    assert data["colors"] == ["#0000ff"]
    assert data["ratios"] == {"#ff0000": 0.5, "#0000ff": 0.5}
    assert (out / "flag-palette.png").exists()
    assert "Completed: 1/1" in capsys.readouterr().out


def test_batch_reports_failures(tmp_path, capsys) -> None:
    images = tmp_path / "in"
    images.mkdir()
    (images / "broken.png").write_bytes(b"not a png")
    write_image(images / "ok.png", [(9, 9, 9)])

    exit_code = main(["-i", str(images), "-o", str(tmp_path / "out"), "-k", "1"])

    captured = capsys.readouterr()
    assert exit_code == 1
    assert "broken.png → ERROR: DecodeError" in captured.err
    assert "Completed: 1/2" in captured.out


def test_batch_rejects_missing_directory(tmp_path) -> None:
    assert main(["-i", str(tmp_path / "missing"), "-o", str(tmp_path / "out")]) == 2
