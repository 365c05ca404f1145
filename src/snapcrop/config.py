"""
実行設定のデータモデル
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .output_store import normalize_output_format

DEFAULT_FORMAT = "png"
DEFAULT_QUALITY = 90


@dataclass(frozen=True)
class SnapcropConfig:
    """1回のバッチ実行の設定"""

    output_dir: Path
    resolutions: str
    output_format: str = DEFAULT_FORMAT
    quality: int = DEFAULT_QUALITY
    # None なら CPU 数
    workers: Optional[int] = None
    # None なら標準入力から読む
    input_file: Optional[Path] = None
    log_path: Optional[Path] = None
    verbose: bool = False
    summary_path: Optional[Path] = None
    progress: bool = True

    def validate(self) -> tuple[bool, Optional[str]]:
        """設定の妥当性を検証"""
        if not self.resolutions.strip():
            return False, "解像度指定 (--res) が空です"

        if self.quality < 1 or self.quality > 100:
            return False, "品質は1〜100の範囲で指定してください"

        if self.workers is not None and self.workers < 1:
            return False, "ワーカー数は1以上で指定してください"

        try:
            normalize_output_format(self.output_format)
        except ValueError as e:
            return False, str(e)

        if self.input_file is not None and not self.input_file.is_file():
            return False, f"入力リストが見つかりません: {self.input_file}"

        return True, None

    def to_dict(self) -> dict:
        """辞書形式に変換"""
        return {
            "output_dir": str(self.output_dir),
            "resolutions": self.resolutions,
            "format": self.output_format,
            "quality": self.quality,
            "workers": self.workers,
            "input_file": str(self.input_file) if self.input_file else None,
        }
