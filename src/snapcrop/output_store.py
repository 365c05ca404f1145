"""内容アドレス方式の出力ストア。

出力ファイル名は入力ファイルの生バイト列の SHA-256 (64桁の16進) と
出力形式の拡張子から決まる。同名ファイルが出力先にあればその入力は処理済み。
解像度指定はファイル名に含めないため、``--res`` を変えても既存の出力は再利用される。
"""

from __future__ import annotations

import hashlib
import os
import time
import uuid
from pathlib import Path
from typing import Any, Dict, Literal, Union

from loguru import logger
from PIL import Image, features

from .errors import ItemEncodeError, StoreIOError

SaveFormat = Literal["jpeg", "png", "bmp", "gif", "tiff", "tga", "webp", "avif"]

_FORMAT_EXTENSIONS: Dict[SaveFormat, str] = {
    "jpeg": ".jpg",
    "png": ".png",
    "bmp": ".bmp",
    "gif": ".gif",
    "tiff": ".tiff",
    "tga": ".tga",
    "webp": ".webp",
    "avif": ".avif",
}

_FORMAT_ALIASES = {"jpg": "jpeg", "tif": "tiff"}

# Pillow 本体だけで書き出せる形式
_BUILTIN_FORMATS: list[SaveFormat] = ["jpeg", "png", "bmp", "gif", "tiff", "tga"]

# 透過を白背景へ合成してから保存する形式
_OPAQUE_FORMATS = {"jpeg", "avif", "gif"}


def content_digest(data: bytes) -> str:
    """生バイト列のダイジェスト（64桁の16進文字列）"""
    return hashlib.sha256(data).hexdigest()


def supported_output_formats() -> list[SaveFormat]:
    """実行環境で利用可能な出力形式を返す。"""
    formats: list[SaveFormat] = list(_BUILTIN_FORMATS)
    if _feature_enabled("webp") or _registered_format("WEBP"):
        formats.append("webp")
    if _feature_enabled("avif") or _registered_format("AVIF"):
        formats.append("avif")
    return formats


def normalize_output_format(name: str) -> SaveFormat:
    """``--format`` の値を正規化する。未対応の形式は ValueError。"""
    requested = name.strip().lower()
    requested = _FORMAT_ALIASES.get(requested, requested)
    if requested not in supported_output_formats():
        raise ValueError(
            f"サポートされていない出力形式です: {name} "
            f"(利用可能: {', '.join(supported_output_formats())})"
        )
    return requested  # type: ignore[return-value]


def build_encoder_save_kwargs(output_format: SaveFormat, quality: int) -> Dict[str, Any]:
    """出力形式に応じたエンコーダ設定を返す。"""
    quality = max(1, min(100, int(quality)))
    if output_format == "jpeg":
        return {
            "format": "JPEG",
            "quality": min(quality, 95),
            "optimize": True,
            "progressive": True,
        }
    if output_format == "png":
        # PNGはロスレス。quality を圧縮レベルへ変換する (optimize 指定時は 9 固定)
        compress_level = int(round((100 - quality) / 100 * 9))
        return {"format": "PNG", "compress_level": max(0, min(9, compress_level))}
    if output_format == "webp":
        return {"format": "WEBP", "quality": quality, "method": 6}
    if output_format == "avif":
        return {"format": "AVIF", "quality": quality, "speed": 6}
    if output_format == "gif":
        return {"format": "GIF", "optimize": True}
    if output_format == "tiff":
        if _feature_enabled("libtiff"):
            return {"format": "TIFF", "compression": "tiff_deflate"}
        return {"format": "TIFF"}
    if output_format == "tga":
        return {"format": "TGA", "rle": True}
    return {"format": "BMP"}


class OutputStore:
    """出力ディレクトリ。ファイルの存在そのものが処理済みの記録になる"""

    def __init__(self, directory: Union[str, Path], output_format: str = "png", quality: int = 90):
        self.directory = Path(directory)
        self.output_format: SaveFormat = normalize_output_format(output_format)
        self.quality = quality
        self.extension = _FORMAT_EXTENSIONS[self.output_format]

    def prepare(self) -> None:
        """出力ディレクトリを作成し、書き込めることを確認する"""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreIOError(f"出力ディレクトリを作成できません: {self.directory}") from e

        if not self.directory.is_dir():
            raise StoreIOError(f"出力先がディレクトリではありません: {self.directory}")
        if not os.access(self.directory, os.W_OK | os.X_OK):
            raise StoreIOError(f"出力ディレクトリに書き込めません: {self.directory}")

    def path_for(self, digest: str) -> Path:
        return self.directory / f"{digest}{self.extension}"

    def contains(self, digest: str) -> bool:
        return self.path_for(digest).exists()

    def write(self, image: Image.Image, digest: str) -> Path:
        """
        画像をエンコードして ``<digest><拡張子>`` として保存します

        一時ファイルに書いてから置き換えるため、途中で失敗しても
        壊れた最終ファイルは残らない。

        Raises:
            ItemEncodeError: エンコードまたは書き込みに失敗した場合
        """
        final_path = self.path_for(digest)
        save_img = _prepare_for_format(image, self.output_format)
        save_kwargs = build_encoder_save_kwargs(self.output_format, self.quality)
        try:
            _save_with_atomic_replace(save_img, final_path, save_kwargs)
        except (OSError, ValueError) as e:
            raise ItemEncodeError(f"画像を保存できません: {final_path.name}") from e
        return final_path


def _prepare_for_format(image: Image.Image, output_format: SaveFormat) -> Image.Image:
    if output_format in _OPAQUE_FORMATS and image.mode in {"RGBA", "LA", "P"}:
        # 透過を持つ画像は白背景へ合成して保存する
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        background.alpha_composite(rgba)
        image = background.convert("RGB")
    if output_format == "gif":
        return image.convert("RGB").convert("P", palette=Image.Palette.ADAPTIVE)
    if output_format == "jpeg" and image.mode not in {"RGB", "L"}:
        return image.convert("RGB")
    return image


def _build_temp_save_path(target_path: Path) -> Path:
    """同一ディレクトリ内の一時保存パスを作る。"""
    token = f"{os.getpid()}_{time.time_ns()}_{uuid.uuid4().hex[:10]}"
    return target_path.with_name(f".{target_path.name}.{token}.tmp")


def _save_with_atomic_replace(
    save_img: Image.Image,
    final_path: Path,
    save_kwargs: Dict[str, Any],
) -> None:
    """保存を一時ファイル→置換で実行し、壊れた最終ファイルを防ぐ。"""
    tmp_path = _build_temp_save_path(final_path)
    try:
        # 一時ファイルの拡張子からは形式を推測できないため format を明示している
        save_img.save(tmp_path, **save_kwargs)
        os.replace(str(tmp_path), str(final_path))
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                logger.warning(f"一時保存ファイルの削除に失敗: {tmp_path}")


def _feature_enabled(feature_name: str) -> bool:
    try:
        return bool(features.check(feature_name))
    except Exception:
        return False


def _registered_format(name: str) -> bool:
    try:
        return any(v.upper() == name for v in Image.registered_extensions().values())
    except Exception:
        return False
