#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
snapcrop コマンドラインインターフェース

入力画像のパス一覧（ファイルまたは標準入力）を受け取り、各画像を
``--res`` で指定した候補解像度のうちアスペクト比が最も近いものへ
切り抜き・リサイズして、出力先に ``<ダイジェスト>.<拡張子>`` で保存します。
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from loguru import logger

from .batch_pipeline import BatchSummary, iter_input_paths, run_batch
from .candidates import expand_spec
from .config import DEFAULT_FORMAT, DEFAULT_QUALITY, SnapcropConfig
from .errors import SpecError, StoreIOError, describe_error
from .output_store import OutputStore, supported_output_formats
from .resolution_grammar import parse_resolutions
from .runtime_logging import configure_logging, write_run_summary

EXIT_OK = 0
EXIT_ITEM_FAILED = 1
EXIT_CONFIG_ERROR = 2

_EXAMPLES = """\
例:

SDXL の学習用解像度に切り抜く
    snapcrop out --res 1024x1024,1152x896,896x1152,1216x832,832x1216,1344x768,768x1344,1536x640,640x1536

指定した正方形のうち最も近いサイズに切り抜く
    snapcrop out --res 1024,768,512

512x512 から 1024x1024 まで 64 刻みの正方形
    snapcrop out --res 512:1024:64

幅 512〜1024 (64 刻み)、高さ 512 固定
    snapcrop out --res 512:1024:64x512

縦横どちらの向きでもよい (512x768 と 768x512)
    snapcrop out --res [512x768]

自由に組み合わせ可能
    find photos -type f | snapcrop out --res [512x768],1024,512:768:64x768:1024:32
"""


def _build_arg_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI use."""
    p = argparse.ArgumentParser(
        prog="snapcrop",
        description="大量の画像を指定した解像度候補に合わせて一括で切り抜き・リサイズします",
        epilog=_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    p.add_argument("output_path", type=Path, metavar="OUTPUT_PATH", help="出力フォルダー")
    p.add_argument("--res", dest="resolutions", required=True, metavar="RESOLUTIONS", help="解像度候補の指定")
    p.add_argument(
        "-i",
        "--input-file",
        type=Path,
        default=None,
        help="画像パスを1行に1つ書いたファイル (省略時は標準入力)",
    )
    p.add_argument("-l", "--log", dest="log_path", type=Path, default=None, help="デバッグログの出力先ファイル")
    p.add_argument("-v", "--verbose", action="store_true", help="デバッグログを標準エラーにも出力する")
    p.add_argument(
        "-f",
        "--format",
        dest="output_format",
        default=DEFAULT_FORMAT,
        help=f"出力形式 ({', '.join(supported_output_formats())}、デフォルト: {DEFAULT_FORMAT})",
    )
    p.add_argument("-q", "--quality", type=int, default=DEFAULT_QUALITY, help="品質 (1-100)。PNG では圧縮レベルに換算する")
    p.add_argument("-j", "--workers", type=int, default=None, help="並列ワーカー数 (デフォルト: CPU 数)")
    p.add_argument("--summary-json", dest="summary_path", type=Path, default=None, help="処理結果の JSON 出力先")
    p.add_argument("--no-progress", dest="progress", action="store_false", help="進捗バーを表示しない")
    return p


def _config_from_args(args: argparse.Namespace) -> SnapcropConfig:
    return SnapcropConfig(
        output_dir=args.output_path,
        resolutions=args.resolutions,
        output_format=args.output_format,
        quality=args.quality,
        workers=args.workers,
        input_file=args.input_file,
        log_path=args.log_path,
        verbose=args.verbose,
        summary_path=args.summary_path,
        progress=args.progress,
    )


def _read_input_lines(input_file: Optional[Path]) -> list[str]:
    if input_file is None:
        return sys.stdin.read().splitlines()
    return input_file.read_text(encoding="utf-8").splitlines()


def _build_cli_summary(
    *,
    status: str,
    config: SnapcropConfig,
    candidate_count: int,
    summary: Optional[BatchSummary],
    message: str = "",
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "status": status,
        "output_dir": str(config.output_dir),
        "options": {
            "resolutions": config.resolutions,
            "candidate_count": candidate_count,
            "format": config.output_format,
            "quality": config.quality,
            "workers": config.workers,
        },
        "written": 0,
        "skipped": 0,
        "failed": 0,
        "elapsed_seconds": 0.0,
        "failed_files": [],
        "message": message,
    }
    if summary is not None:
        payload.update(
            written=summary.written,
            skipped=summary.skipped,
            failed=summary.failed,
            elapsed_seconds=round(summary.elapsed_seconds, 3),
            failed_files=[
                {"file": str(result.path), "error": result.reason or ""} for result in summary.failures
            ],
        )
    return payload


def _print_summary(summary: BatchSummary) -> None:
    print("-" * 80)
    print("【処理結果】")
    print(f"書き込み: {summary.written}ファイル")
    print(f"スキップ (出力済み): {summary.skipped}ファイル")
    print(f"失敗: {summary.failed}ファイル")
    print(f"処理時間: {summary.elapsed_seconds:.2f}秒")


def _write_summary(path: Path, payload: dict[str, Any]) -> None:
    try:
        write_run_summary(path, payload)
    except OSError as e:
        logger.error(f"summary JSON を保存できません: {path}: {describe_error(e)}")


def main(argv: Optional[Sequence[str]] = None) -> int:  # noqa: D401
    """CLI エントリポイント。終了コードを返す。"""
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    config = _config_from_args(args)

    log_paths = () if config.log_path is None else (config.log_path,)
    try:
        configure_logging(verbose=config.verbose, log_paths=log_paths)
    except OSError as e:
        print(f"ログファイルを作成できません: {describe_error(e)}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger.debug(f"引数: {args}")

    ok, message = config.validate()
    if not ok:
        logger.error(message)
        return EXIT_CONFIG_ERROR

    try:
        spec = parse_resolutions(config.resolutions)
        candidates = expand_spec(spec)
    except SpecError as e:
        logger.error(str(e))
        return EXIT_CONFIG_ERROR
    logger.debug(f"解像度候補 ({len(candidates)} 件): {', '.join(str(c) for c in candidates)}")

    store = OutputStore(config.output_dir, config.output_format, config.quality)
    try:
        store.prepare()
    except StoreIOError as e:
        logger.error(describe_error(e))
        return EXIT_CONFIG_ERROR

    try:
        image_paths = list(iter_input_paths(_read_input_lines(config.input_file)))
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"画像リストを読み込めません: {describe_error(e)}")
        return EXIT_CONFIG_ERROR

    if not image_paths:
        logger.warning("処理対象の画像パスがありません")

    logger.info(f"処理対象: {len(image_paths)}件 / 解像度候補: {len(candidates)}件 / 出力先: {config.output_dir}")
    summary = run_batch(
        image_paths,
        candidates,
        store,
        workers=config.workers,
        show_progress=config.progress,
    )
    _print_summary(summary)

    status = "success" if summary.ok else "partial_failure"
    payload = _build_cli_summary(
        status=status,
        config=config,
        candidate_count=len(candidates),
        summary=summary,
        message="" if summary.ok else f"{summary.failed} 件の画像が失敗しました",
    )
    if config.summary_path is not None:
        _write_summary(config.summary_path, payload)

    if not summary.ok:
        logger.warning(f"{summary.failed} 件の画像が失敗しました")
        return EXIT_ITEM_FAILED
    logger.success("すべての画像を処理しました！")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
