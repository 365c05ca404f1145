"""元画像のアスペクト比に最も近い候補解像度を選ぶ。

距離は対数空間の差 ``|ln(元の幅/高さ) - ln(候補の幅/高さ)|``。
比較は分数で厳密に行い、浮動小数点の誤差で結果が変わらないようにする。
縦横の自動入れ替えは行わない（向きの自由度は ``[...]`` で指定する）。
"""

from __future__ import annotations

import math
from fractions import Fraction
from typing import Iterable, Tuple

from .candidates import Candidate


def aspect_distance(source_size: Tuple[int, int], candidate: Candidate) -> float:
    """対数空間でのアスペクト比の距離（表示・ログ用）"""
    source_w, source_h = source_size
    return abs(math.log(source_w / source_h) - math.log(candidate.width / candidate.height))


def _distance_key(source_aspect: Fraction, candidate: Candidate) -> Fraction:
    # |ln(a/b)| は max(a/b, b/a) に対して単調増加なので、分数のまま比較できる
    ratio = source_aspect / candidate.aspect
    return ratio if ratio >= 1 else 1 / ratio


def match_candidate(source_size: Tuple[int, int], candidates: Iterable[Candidate]) -> Candidate:
    """
    元画像サイズに対して最適な候補を1つ選びます

    距離が等しい候補が複数ある場合は面積の大きい方、それも等しければ
    正規順序で先に現れる方を選ぶ。

    Args:
        source_size: 元画像の (幅, 高さ)
        candidates: 候補（``CandidateSet`` を想定。正規順序で列挙されること）

    Returns:
        Candidate: 選ばれた候補
    """
    source_w, source_h = source_size
    if source_w <= 0 or source_h <= 0:
        raise ValueError(f"無効な画像サイズです: {source_w}x{source_h}")

    ordered = tuple(candidates)
    if not ordered:
        raise ValueError("解像度候補が空です")

    source_aspect = Fraction(source_w, source_h)
    return min(
        ordered,
        key=lambda candidate: (_distance_key(source_aspect, candidate), -candidate.area),
    )
