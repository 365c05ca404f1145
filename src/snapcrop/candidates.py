"""
解像度指定の構文木を具体的な (幅, 高さ) 候補の集合へ展開するモジュール

候補集合はバッチ全体で一度だけ作成し、各ワーカーからは読み取り専用で参照する。
"""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from typing import FrozenSet, Iterable, Iterator, Tuple, Union

from .errors import SpecError
from .resolution_grammar import (
    Fixed,
    Grid,
    OrientationGroup,
    ResolutionSpec,
    Square,
    SquareRange,
    Term,
)

# 展開後の候補数の上限
MAX_CANDIDATES = 1_000_000


@dataclass(frozen=True, order=True)
class Candidate:
    """候補解像度。比較順 (幅, 高さ) が集合の正規順序になる"""

    width: int
    height: int

    @property
    def aspect(self) -> Fraction:
        """アスペクト比 (幅/高さ) を既約分数で返す"""
        return Fraction(self.width, self.height)

    @property
    def area(self) -> int:
        return self.width * self.height

    def __iter__(self) -> Iterator[int]:
        yield self.width
        yield self.height

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


class CandidateSet:
    """重複のない候補解像度の集合（正規順序でソート済み、不変）"""

    __slots__ = ("_items",)

    def __init__(self, candidates: Iterable[Union[Candidate, Tuple[int, int]]]):
        unique = {_to_candidate(item) for item in candidates}
        if not unique:
            raise SpecError("解像度候補が1つもありません")
        for candidate in unique:
            if candidate.width <= 0 or candidate.height <= 0:
                raise SpecError(f"無効な解像度候補です: {candidate}")
        self._items: Tuple[Candidate, ...] = tuple(sorted(unique))

    def __iter__(self) -> Iterator[Candidate]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, tuple) and len(item) == 2:
            item = Candidate(*item)
        return item in self._items

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CandidateSet):
            return NotImplemented
        return self._items == other._items

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        return f"CandidateSet({', '.join(str(c) for c in self._items)})"

    def pairs(self) -> FrozenSet[Tuple[int, int]]:
        """(幅, 高さ) のタプル集合として返す"""
        return frozenset((c.width, c.height) for c in self._items)

    @classmethod
    def from_spec(cls, spec: ResolutionSpec) -> "CandidateSet":
        return expand_spec(spec)


def _to_candidate(item: Union[Candidate, Tuple[int, int]]) -> Candidate:
    if isinstance(item, Candidate):
        return item
    width, height = item
    return Candidate(int(width), int(height))


def expand_term(term: Term) -> Iterator[Tuple[int, int]]:
    """1つの項を (幅, 高さ) の列に展開する。重複は呼び出し側で除く。"""
    if isinstance(term, Fixed):
        yield term.width, term.height
    elif isinstance(term, Square):
        yield term.size, term.size
    elif isinstance(term, SquareRange):
        for size in term.span.values():
            yield size, size
    elif isinstance(term, Grid):
        for width in term.widths.values():
            for height in term.heights.values():
                yield width, height
    elif isinstance(term, OrientationGroup):
        for width, height in expand_term(term.inner):
            yield width, height
            if width != height:
                yield height, width
    elif isinstance(term, ResolutionSpec):
        for child in term.terms:
            yield from expand_term(child)
    else:
        raise TypeError(f"未知の項です: {term!r}")


def count_upper_bound(term: Term) -> int:
    """重複除去前の展開件数。展開せずに計算する。"""
    if isinstance(term, (Fixed, Square)):
        return 1
    if isinstance(term, SquareRange):
        return len(term.span)
    if isinstance(term, Grid):
        return len(term.widths) * len(term.heights)
    if isinstance(term, OrientationGroup):
        return 2 * count_upper_bound(term.inner)
    if isinstance(term, ResolutionSpec):
        return sum(count_upper_bound(child) for child in term.terms)
    raise TypeError(f"未知の項です: {term!r}")


def expand_spec(spec: ResolutionSpec, max_candidates: int = MAX_CANDIDATES) -> CandidateSet:
    """
    解像度指定の構文木を候補集合に展開します

    Args:
        spec: ``parse_resolutions`` の結果
        max_candidates: 展開を許可する最大件数

    Returns:
        CandidateSet: 重複を除いた候補集合

    Raises:
        SpecError: 候補が空、または件数が上限を超える場合
    """
    upper_bound = count_upper_bound(spec)
    if upper_bound > max_candidates:
        raise SpecError(
            f"解像度候補が多すぎます: {upper_bound} 件 (上限 {max_candidates} 件): {spec}"
        )
    return CandidateSet(expand_term(spec))
