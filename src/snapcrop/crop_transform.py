"""
切り抜き・リサイズの計画と適用

方針:
1. 候補サイズを縦横とも覆う倍率でリサイズし、はみ出した分を中央で切り抜く
   （レターボックスにはしない）。
2. 拡大はしない。必要な倍率が 1 を超える場合は倍率を 1 に固定し、
   候補のアスペクト比のまま元画像に収まる大きさまで「候補の方を」縮める。
3. リサンプルは Lanczos フィルタで行う。
"""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from typing import Tuple

from PIL import Image

from .candidates import Candidate

_ALPHA_MODES = {"RGBA", "LA", "PA", "RGBa", "La"}
_WIDE_INT_MODES = {"I", "I;16", "I;16L", "I;16B", "I;16N"}


@dataclass(frozen=True)
class CropPlan:
    """1枚分の変換計画。選ばれた候補・倍率・切り抜き矩形を持つ"""

    source_size: Tuple[int, int]
    candidate: Candidate
    scale: Fraction
    resize_size: Tuple[int, int]
    crop_box: Tuple[int, int, int, int]
    upscale_clamped: bool = False

    @property
    def output_size(self) -> Tuple[int, int]:
        left, top, right, bottom = self.crop_box
        return right - left, bottom - top

    @property
    def needs_resample(self) -> bool:
        return self.resize_size != self.source_size


def plan_crop(source_size: Tuple[int, int], candidate: Candidate) -> CropPlan:
    """
    元画像サイズと候補から倍率と切り抜き矩形を計算します

    Args:
        source_size: 元画像の (幅, 高さ)
        candidate: ``match_candidate`` で選ばれた候補

    Returns:
        CropPlan: 変換計画。``crop_box`` はリサイズ後の画像上の座標
    """
    source_w, source_h = source_size
    if source_w <= 0 or source_h <= 0:
        raise ValueError(f"無効な画像サイズです: {source_w}x{source_h}")
    target_w, target_h = candidate.width, candidate.height

    scale = max(Fraction(target_w, source_w), Fraction(target_h, source_h))
    clamped = scale > 1

    if clamped:
        # 拡大禁止: 候補のアスペクト比を保ったまま元画像に収まるまで候補を縮める
        shrink = min(Fraction(source_w, target_w), Fraction(source_h, target_h))
        target_w = min(source_w, max(1, round(target_w * shrink)))
        target_h = min(source_h, max(1, round(target_h * shrink)))
        scale = Fraction(1)
        resize_w, resize_h = source_w, source_h
    elif source_w * target_h > target_w * source_h:
        # 候補より横長: 高さを合わせ、幅方向を切り抜く
        resize_w = max(target_w, round(Fraction(source_w * target_h, source_h)))
        resize_h = target_h
    else:
        # 候補より縦長、または同じ比率: 幅を合わせ、高さ方向を切り抜く
        resize_w = target_w
        resize_h = max(target_h, round(Fraction(target_w * source_h, source_w)))

    # 中央切り抜き。余りが奇数のときは左上側を1px少なく削る
    left = (resize_w - target_w) // 2
    top = (resize_h - target_h) // 2
    return CropPlan(
        source_size=(source_w, source_h),
        candidate=candidate,
        scale=scale,
        resize_size=(resize_w, resize_h),
        crop_box=(left, top, left + target_w, top + target_h),
        upscale_clamped=clamped,
    )


def _rescale_to_8bit(image: Image.Image) -> Image.Image:
    # 16bit のサンプルを 0-255 へ縮める。そのまま convert すると 255 で頭打ちになる
    return image.convert("I").point(lambda v: v * (1 / 256)).convert("L")


def normalize_mode(image: Image.Image) -> Image.Image:
    """リサンプル前に 8bit の RGB / RGBA へそろえる"""
    if image.mode in _WIDE_INT_MODES:
        image = _rescale_to_8bit(image)
    has_alpha = image.mode in _ALPHA_MODES or (
        image.mode == "P" and "transparency" in image.info
    )
    target_mode = "RGBA" if has_alpha else "RGB"
    if image.mode == target_mode:
        return image
    return image.convert(target_mode)


def apply_crop_plan(image: Image.Image, plan: CropPlan) -> Image.Image:
    """計画に従ってリサイズと中央切り抜きを行った新しい画像を返す"""
    if image.size != plan.source_size:
        raise ValueError(
            f"画像サイズが計画と一致しません: {image.size[0]}x{image.size[1]} != "
            f"{plan.source_size[0]}x{plan.source_size[1]}"
        )

    resized = image
    if plan.needs_resample:
        resized = image.resize(plan.resize_size, Image.Resampling.LANCZOS)
    return resized.crop(plan.crop_box)
