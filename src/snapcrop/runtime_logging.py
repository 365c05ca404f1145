"""ログの出力先 (loguru のシンク) と処理結果 JSON の保存。"""

from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Mapping, Union

from loguru import logger
from tqdm import tqdm

_CONSOLE_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {thread.name} | {module}:{function}:{line} - {message}"


def _tqdm_sink(message: str) -> None:
    # 進捗バーの表示を崩さないよう tqdm 経由で書き出す
    tqdm.write(message, end="", file=sys.stderr)


def configure_logging(verbose: bool = False, log_paths: tuple[Path, ...] = ()) -> None:
    """
    loguru のシンクを設定します

    Args:
        verbose: True なら標準エラーにも DEBUG を出す
        log_paths: DEBUG レベルで書き出すログファイル
    """
    logger.remove()
    logger.add(
        _tqdm_sink,
        format=_CONSOLE_FORMAT,
        level="DEBUG" if verbose else "INFO",
        colorize=sys.stderr.isatty(),
    )
    for log_path in log_paths:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            format=_FILE_FORMAT,
            level="DEBUG",
            encoding="utf-8",
        )


def write_run_summary(summary_path: Union[str, Path], payload: Mapping[str, Any]) -> None:
    """処理結果を JSON で保存する。同じディレクトリの一時ファイルから置き換える"""
    summary_path = Path(summary_path)
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, ensure_ascii=False, indent=2)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{summary_path.name}.", suffix=".tmp", dir=summary_path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text + "\n")
        os.replace(tmp_name, summary_path)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
