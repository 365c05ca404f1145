"""snapcrop の例外階層と、例外から表示用メッセージを作るユーティリティ。

致命的なエラー(解像度指定・出力先)は処理開始前に送出され、
画像ごとのエラーはバッチ処理内で捕捉されて ``Failed`` として集計される。
"""

from __future__ import annotations

import errno as _errno
from typing import Optional

from PIL import UnidentifiedImageError


class SnapcropError(Exception):
    """snapcrop が送出する例外の基底クラス"""


class SpecError(SnapcropError):
    """解像度指定の解析・展開に失敗した（致命的）"""


class ParseError(SpecError):
    """解像度指定の文法エラー

    Attributes:
        fragment: 問題のある部分文字列
        position: 入力文字列中の位置 (0 始まり)
        expected: 期待していた構文要素の説明
    """

    def __init__(self, source: str, position: int, expected: str, fragment: Optional[str] = None):
        self.source = source
        self.position = position
        self.expected = expected
        if fragment is None:
            fragment = _fragment_at(source, position)
        self.fragment = fragment
        shown = repr(fragment) if fragment else "入力の終端"
        super().__init__(
            f"解像度指定を解析できません: {shown} (位置 {position}): {expected}が必要です"
        )


class StoreIOError(SnapcropError):
    """出力ディレクトリを作成・利用できない"""


class ItemError(SnapcropError):
    """画像1件ごとの失敗。バッチ全体は継続する。"""


class ItemDecodeError(ItemError):
    """入力ファイルを読み込めない・画像としてデコードできない"""


class ItemEncodeError(ItemError):
    """リサンプル・エンコード・書き込みに失敗した"""


def _fragment_at(source: str, position: int) -> str:
    rest = source[position:]
    for stop, ch in enumerate(rest):
        if ch in ",[]" and stop > 0:
            return rest[:stop]
    return rest


def describe_error(error: BaseException) -> str:
    """
    例外から利用者向けのエラーメッセージを生成します

    Args:
        error: 例外オブジェクト

    Returns:
        str: エラーメッセージ
    """
    error_type = type(error).__name__
    error_msg = str(error)

    if isinstance(error, SnapcropError):
        cause = error.__cause__
        if cause is not None and not isinstance(cause, SnapcropError):
            return f"{error_msg} ({describe_error(cause)})"
        return error_msg

    # ファイル関連エラー
    if isinstance(error, FileNotFoundError):
        return f"ファイルが見つかりません: {error_msg}"
    elif isinstance(error, PermissionError):
        return f"アクセス権限がありません: {error_msg}"
    elif isinstance(error, IsADirectoryError):
        return f"ディレクトリが指定されました（ファイルを指定してください）: {error_msg}"

    # 画像関連エラー
    elif isinstance(error, UnidentifiedImageError):
        return f"画像ファイルとして認識できません: {error_msg}"
    elif error_type == "DecompressionBombError":
        return f"画像が大きすぎます（圧縮爆弾の可能性）: {error_msg}"

    elif isinstance(error, OSError):
        if error.errno == _errno.ENOSPC:
            return "ディスク容量が不足しています"
        elif error.errno == _errno.ENAMETOOLONG:
            return "ファイル名が長すぎます"
        return f"システムエラー: {error_msg}"

    elif isinstance(error, MemoryError):
        return "メモリ不足エラー: 画像が大きすぎるか、使用可能なメモリが不足しています"
    elif isinstance(error, ValueError):
        return f"無効な値: {error_msg}"

    return f"{error_type}: {error_msg}"
