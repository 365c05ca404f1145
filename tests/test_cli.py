from __future__ import annotations

import hashlib
import io
import json
from pathlib import Path

import pytest
from PIL import Image

from snapcrop import cli
from snapcrop.batch_pipeline import BatchSummary, ItemResult, ItemStatus
from snapcrop.cli import EXIT_CONFIG_ERROR, EXIT_ITEM_FAILED, EXIT_OK, _build_arg_parser, _build_cli_summary, main
from snapcrop.config import SnapcropConfig


def _digest(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def test_cli_parser_defaults() -> None:
    args = _build_arg_parser().parse_args(["out", "--res", "512"])
    assert args.output_path == Path("out")
    assert args.resolutions == "512"
    assert args.output_format == "png"
    assert args.input_file is None
    assert args.verbose is False
    assert args.progress is True


def test_cli_parser_requires_res() -> None:
    with pytest.raises(SystemExit):
        _build_arg_parser().parse_args(["out"])


def test_cli_parser_short_options() -> None:
    args = _build_arg_parser().parse_args(
        ["out", "--res", "[512x768]", "-i", "list.txt", "-l", "run.log", "-v", "-f", "webp", "-j", "4"]
    )
    assert args.input_file == Path("list.txt")
    assert args.log_path == Path("run.log")
    assert args.verbose is True
    assert args.output_format == "webp"
    assert args.workers == 4


def test_build_cli_summary_shape() -> None:
    summary = BatchSummary(written=2, skipped=1, elapsed_seconds=1.23456)
    summary.record(ItemResult(Path("bad.jpg"), ItemStatus.FAILED, reason="broken"))
    config = SnapcropConfig(output_dir=Path("out"), resolutions="512")

    payload = _build_cli_summary(status="partial_failure", config=config, candidate_count=1, summary=summary)

    assert payload["status"] == "partial_failure"
    assert payload["output_dir"] == "out"
    assert payload["options"]["resolutions"] == "512"
    assert payload["options"]["format"] == "png"
    assert payload["options"]["candidate_count"] == 1
    assert (payload["written"], payload["skipped"], payload["failed"]) == (2, 1, 1)
    assert payload["elapsed_seconds"] == 1.235
    assert payload["failed_files"] == [{"file": "bad.jpg", "error": "broken"}]


def test_config_validate() -> None:
    assert SnapcropConfig(output_dir=Path("out"), resolutions="512").validate() == (True, None)
    assert not SnapcropConfig(output_dir=Path("out"), resolutions=" ").validate()[0]
    assert not SnapcropConfig(output_dir=Path("out"), resolutions="512", quality=0).validate()[0]
    assert not SnapcropConfig(output_dir=Path("out"), resolutions="512", workers=0).validate()[0]
    assert not SnapcropConfig(output_dir=Path("out"), resolutions="512", output_format="psd").validate()[0]
    assert not SnapcropConfig(
        output_dir=Path("out"), resolutions="512", input_file=Path("does/not/exist.txt")
    ).validate()[0]


def test_main_end_to_end_and_rerun_skips(sample_images, temp_dir, write_image_list, capsys) -> None:
    out_dir = temp_dir / "out"
    image_list = write_image_list([sample_images["landscape"]])
    argv = [str(out_dir), "--res", "512x512", "-i", str(image_list), "--no-progress"]

    assert main(argv) == EXIT_OK

    output = out_dir / f"{_digest(sample_images['landscape'])}.png"
    assert [p.name for p in out_dir.iterdir()] == [output.name]
    with Image.open(output) as img:
        assert img.size == (512, 512)
    first_bytes = output.read_bytes()
    assert "書き込み: 1ファイル" in capsys.readouterr().out

    assert main(argv) == EXIT_OK
    assert "スキップ (出力済み): 1ファイル" in capsys.readouterr().out
    assert output.read_bytes() == first_bytes


def test_main_small_image_is_not_upscaled(sample_images, temp_dir, write_image_list) -> None:
    out_dir = temp_dir / "out"
    image_list = write_image_list([sample_images["small"]])

    assert main([str(out_dir), "--res", "1024x1024", "-i", str(image_list), "--no-progress"]) == EXIT_OK

    with Image.open(out_dir / f"{_digest(sample_images['small'])}.png") as img:
        assert img.size == (200, 200)


def test_main_reads_stdin(sample_images, temp_dir, monkeypatch) -> None:
    out_dir = temp_dir / "out"
    stdin_text = f"{sample_images['portrait']}\n\n{sample_images['landscape']}\n"
    monkeypatch.setattr(cli.sys, "stdin", io.StringIO(stdin_text))

    assert main([str(out_dir), "--res", "[512x384]", "-f", "jpg", "--no-progress"]) == EXIT_OK

    with Image.open(out_dir / f"{_digest(sample_images['portrait'])}.jpg") as img:
        assert img.size == (384, 512)
    with Image.open(out_dir / f"{_digest(sample_images['landscape'])}.jpg") as img:
        assert img.size == (512, 384)


def test_main_item_failure_returns_nonzero(sample_images, temp_dir, write_image_list) -> None:
    out_dir = temp_dir / "out"
    summary_path = temp_dir / "summary.json"
    image_list = write_image_list([sample_images["landscape"], sample_images["broken"]])

    exit_code = main(
        [str(out_dir), "--res", "256", "-i", str(image_list), "--no-progress", "--summary-json", str(summary_path)]
    )

    assert exit_code == EXIT_ITEM_FAILED
    payload = json.loads(summary_path.read_text(encoding="utf-8"))
    assert payload["status"] == "partial_failure"
    assert payload["written"] == 1
    assert payload["failed"] == 1
    assert payload["failed_files"][0]["file"] == str(sample_images["broken"])


def test_main_bad_spec_fails_before_processing(sample_images, temp_dir, write_image_list) -> None:
    out_dir = temp_dir / "out"
    image_list = write_image_list([sample_images["landscape"]])

    assert main([str(out_dir), "--res", "512:256:8", "-i", str(image_list), "--no-progress"]) == EXIT_CONFIG_ERROR
    assert not out_dir.exists()


def test_main_unusable_output_dir(sample_images, temp_dir, write_image_list) -> None:
    out_file = temp_dir / "occupied"
    out_file.write_text("x", encoding="utf-8")
    image_list = write_image_list([sample_images["landscape"]])

    assert main([str(out_file), "--res", "512", "-i", str(image_list), "--no-progress"]) == EXIT_CONFIG_ERROR


def test_main_unsupported_format(temp_dir, write_image_list) -> None:
    image_list = write_image_list([])
    assert main([str(temp_dir / "out"), "--res", "512", "-i", str(image_list), "-f", "psd"]) == EXIT_CONFIG_ERROR


def test_main_writes_debug_log(sample_images, temp_dir, write_image_list) -> None:
    log_path = temp_dir / "logs" / "debug.log"
    image_list = write_image_list([sample_images["landscape"]])

    assert main([str(temp_dir / "out"), "--res", "512", "-i", str(image_list), "-l", str(log_path), "--no-progress"]) == EXIT_OK

    log_text = log_path.read_text(encoding="utf-8")
    assert "1024x768 -> 512x512" in log_text


def test_main_writes_bmp_named_by_digest(sample_images, temp_dir, write_image_list) -> None:
    out_dir = temp_dir / "out"
    image_list = write_image_list([sample_images["portrait"]])

    assert main([str(out_dir), "--res", "[512x384]", "-i", str(image_list), "-f", "bmp", "--no-progress"]) == EXIT_OK

    output = out_dir / f"{_digest(sample_images['portrait'])}.bmp"
    with Image.open(output) as img:
        assert img.format == "BMP"
        assert img.size == (384, 512)
