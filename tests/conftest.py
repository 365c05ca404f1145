#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
pytest設定ファイル
共通のフィクスチャやテスト設定を定義
"""

import shutil
import sys
import tempfile
from pathlib import Path

import pytest
from loguru import logger
from PIL import Image


@pytest.fixture
def temp_dir():
    """一時ディレクトリを作成・削除するフィクスチャ"""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture(autouse=True)
def reset_logger():
    """CLI テストで差し替えた loguru のシンクを元に戻す"""
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def sample_images(temp_dir):
    """様々なサイズ・形式のサンプル画像を作成するフィクスチャ"""
    source_dir = temp_dir / "source"
    source_dir.mkdir()
    images = {}

    # 横長画像
    landscape_path = source_dir / "landscape.png"
    Image.new("RGB", (1024, 768), color=(255, 0, 0)).save(landscape_path, "PNG")
    images["landscape"] = landscape_path

    # 縦長画像
    portrait_path = source_dir / "portrait.jpg"
    Image.new("RGB", (768, 1024), color=(255, 255, 0)).save(portrait_path, "JPEG", quality=95)
    images["portrait"] = portrait_path

    # 小さい画像（拡大しない）
    small_path = source_dir / "small.png"
    Image.new("RGB", (200, 200), color=(128, 128, 128)).save(small_path, "PNG")
    images["small"] = small_path

    # 透過PNG
    rgba_path = source_dir / "alpha.png"
    Image.new("RGBA", (640, 480), color=(0, 255, 0, 128)).save(rgba_path, "PNG")
    images["rgba"] = rgba_path

    # パレット画像
    gif_path = source_dir / "palette.gif"
    Image.new("P", (800, 600), color=3).save(gif_path, "GIF")
    images["gif"] = gif_path

    # 画像ではないファイル
    broken_path = source_dir / "broken.jpg"
    broken_path.write_bytes(b"this is not an image")
    images["broken"] = broken_path

    return images


@pytest.fixture
def write_image_list(temp_dir):
    """パス一覧ファイルを作成するフィクスチャ"""

    def _write(paths, name="images.txt"):
        list_path = temp_dir / name
        list_path.write_text("\n".join(str(p) for p in paths) + "\n", encoding="utf-8")
        return list_path

    return _write
