"""
解像度指定 (``--res``) の文法パーサー

書式の例::

    1024x1024,1152x896,896x1152   固定サイズの列挙
    1024,768,512                  正方形
    512:1024:64                   正方形の範囲 (開始:終了:ステップ)
    512:1024:64x512               幅だけ範囲、高さは固定
    [512x768]                     縦横どちらの向きも許可
    [512x768],1024,512:768:64x768:1024:32   自由に組み合わせ可能

文字列全体を読み切れない場合は ``ParseError`` を送出する。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .errors import ParseError

# 1辺の上限。これを超える値は文法エラーとして扱う
MAX_DIMENSION = 65535

_INT_PATTERN = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class AxisRange:
    """1軸分の範囲 ``lo:hi:step``"""

    lo: int
    hi: int
    step: int = 1

    @classmethod
    def single(cls, value: int) -> "AxisRange":
        return cls(value, value, 1)

    def values(self) -> range:
        # hi に届かない端数は捨てる
        return range(self.lo, self.hi + 1, self.step)

    def __len__(self) -> int:
        return (self.hi - self.lo) // self.step + 1

    def __str__(self) -> str:
        if self.lo == self.hi and self.step == 1:
            return str(self.lo)
        return f"{self.lo}:{self.hi}:{self.step}"


@dataclass(frozen=True)
class Fixed:
    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class Square:
    size: int

    def __str__(self) -> str:
        return str(self.size)


@dataclass(frozen=True)
class SquareRange:
    """``lo:hi:step`` 単独。正方形の列に展開される"""

    span: AxisRange

    def __str__(self) -> str:
        return str(self.span)


@dataclass(frozen=True)
class Grid:
    """``w0:w1:ws x h0:h1:hs``。片方の軸は固定値でもよい"""

    widths: AxisRange
    heights: AxisRange

    def __str__(self) -> str:
        return f"{self.widths}x{self.heights}"


@dataclass(frozen=True)
class OrientationGroup:
    """``[...]``。内側の各候補について縦横を入れ替えた候補も加える"""

    inner: "ResolutionSpec"

    def __str__(self) -> str:
        return f"[{self.inner}]"


@dataclass(frozen=True)
class ResolutionSpec:
    """カンマ区切りの項の集まり。トップレベルの指定もこの型になる"""

    terms: Tuple["Term", ...]

    def __str__(self) -> str:
        return ",".join(str(term) for term in self.terms)


Term = Union[Fixed, Square, SquareRange, Grid, OrientationGroup, ResolutionSpec]
_Axis = Union[int, AxisRange]


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip_whitespace(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def error(self, expected: str, position: Optional[int] = None, fragment: Optional[str] = None) -> ParseError:
        return ParseError(
            self.text,
            self.pos if position is None else position,
            expected,
            fragment=fragment,
        )

    def parse_spec(self) -> ResolutionSpec:
        terms = []
        while True:
            self.skip_whitespace()
            terms.append(self.parse_term())
            self.skip_whitespace()
            if self.peek() != ",":
                break
            self.pos += 1
        return ResolutionSpec(tuple(terms))

    def parse_term(self) -> Term:
        if self.peek() == "[":
            self.pos += 1
            inner = self.parse_spec()
            if self.peek() != "]":
                raise self.error("',' または ']'")
            self.pos += 1
            return OrientationGroup(inner)

        width = self.parse_axis()
        if self.peek() != "x":
            if isinstance(width, AxisRange):
                return SquareRange(width)
            return Square(width)

        self.pos += 1
        height = self.parse_axis()
        if isinstance(width, int) and isinstance(height, int):
            return Fixed(width, height)
        return Grid(_as_range(width), _as_range(height))

    def parse_axis(self) -> _Axis:
        start = self.pos
        lo = self.parse_int("サイズ")
        if self.peek() != ":":
            return lo

        self.pos += 1
        hi = self.parse_int("範囲の終了値")
        step = 1
        if self.peek() == ":":
            self.pos += 1
            step = self.parse_int("ステップ")

        if lo > hi:
            raise self.error(
                "開始値以下の終了値を持つ範囲 (開始:終了:ステップ)",
                position=start,
                fragment=self.text[start : self.pos],
            )
        return AxisRange(lo, hi, step)

    def parse_int(self, label: str) -> int:
        match = _INT_PATTERN.match(self.text, self.pos)
        if match is None:
            raise self.error(f"{label}を表す整数")

        digits = match.group(0)
        value = int(digits)
        if value == 0 or value > MAX_DIMENSION:
            raise self.error(f"1 から {MAX_DIMENSION} までの{label}", fragment=digits)

        self.pos = match.end()
        return value


def _as_range(axis: _Axis) -> AxisRange:
    if isinstance(axis, AxisRange):
        return axis
    return AxisRange.single(axis)


def parse_resolutions(text: str) -> ResolutionSpec:
    """
    解像度指定の文字列を構文木に変換します

    Args:
        text: ``--res`` に渡された文字列

    Returns:
        ResolutionSpec: 構文木

    Raises:
        ParseError: 文法に合わない、0 を含む、範囲が逆転しているなど
    """
    parser = _Parser(text)
    spec = parser.parse_spec()
    if parser.pos != len(text):
        raise parser.error("',' または入力の終端")
    return spec
