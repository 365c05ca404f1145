"""
バッチ処理パイプライン

入力パスの列をスレッドプールで並列に処理する。各画像は1つのワーカー上で
読み込み → ダイジェスト確認 → デコード → 候補選択 → 変換 → 保存 まで完結し、
結果は ``Written`` / ``Skipped`` / ``Failed`` のいずれかとして集計される。
1件の失敗はバッチ全体を止めない。
"""

from __future__ import annotations

import io
import os
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from loguru import logger
from PIL import Image
from tqdm import tqdm

from .aspect_match import match_candidate
from .candidates import Candidate, CandidateSet
from .crop_transform import apply_crop_plan, normalize_mode, plan_crop
from .errors import ItemDecodeError, ItemEncodeError, ItemError, describe_error
from .output_store import OutputStore, content_digest


class ItemStatus(str, Enum):
    WRITTEN = "written"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemResult:
    """1件分の処理結果"""

    path: Path
    status: ItemStatus
    digest: Optional[str] = None
    output_path: Optional[Path] = None
    source_size: Optional[Tuple[int, int]] = None
    candidate: Optional[Candidate] = None
    output_size: Optional[Tuple[int, int]] = None
    reason: Optional[str] = None


@dataclass
class BatchSummary:
    """バッチ全体の集計"""

    written: int = 0
    skipped: int = 0
    failed: int = 0
    failures: List[ItemResult] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def total(self) -> int:
        return self.written + self.skipped + self.failed

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def record(self, result: ItemResult) -> None:
        if result.status is ItemStatus.WRITTEN:
            self.written += 1
        elif result.status is ItemStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            self.failures.append(result)


def default_worker_count() -> int:
    return os.cpu_count() or 1


def iter_input_paths(lines: Iterable[str]) -> Iterator[Path]:
    """改行区切りのパス一覧から Path を順に返す。空行は無視する。"""
    for line in lines:
        stripped = line.strip()
        if stripped:
            yield Path(stripped)


def _decode_image(data: bytes, path: Path) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
        return normalize_mode(image)
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        raise ItemDecodeError(f"画像をデコードできません: {path}") from e


def process_image(path: Union[str, Path], candidates: CandidateSet, store: OutputStore) -> ItemResult:
    """
    画像1件を処理します

    ダイジェストが出力先に既にあればデコードせずにスキップする。

    Raises:
        ItemDecodeError: 読み込み・デコードに失敗した場合
        ItemEncodeError: リサンプル・保存に失敗した場合
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ItemDecodeError(f"ファイルを読み込めません: {path}") from e

    digest = content_digest(data)
    if store.contains(digest):
        return ItemResult(
            path=path,
            status=ItemStatus.SKIPPED,
            digest=digest,
            output_path=store.path_for(digest),
        )

    image = _decode_image(data, path)
    candidate = match_candidate(image.size, candidates)
    plan = plan_crop(image.size, candidate)
    logger.debug(
        f"{path}: {image.width}x{image.height} -> {candidate} "
        f"(出力 {plan.output_size[0]}x{plan.output_size[1]}"
        f"{', 拡大なし' if plan.upscale_clamped else ''})"
    )

    try:
        result_image = apply_crop_plan(image, plan)
    except (OSError, ValueError, MemoryError) as e:
        raise ItemEncodeError(f"リサイズに失敗しました: {path}") from e

    output_path = store.write(result_image, digest)
    return ItemResult(
        path=path,
        status=ItemStatus.WRITTEN,
        digest=digest,
        output_path=output_path,
        source_size=image.size,
        candidate=candidate,
        output_size=result_image.size,
    )


def _process_safely(path: Path, candidates: CandidateSet, store: OutputStore) -> ItemResult:
    try:
        return process_image(path, candidates, store)
    except ItemError as e:
        return ItemResult(path=Path(path), status=ItemStatus.FAILED, reason=describe_error(e))
    except Exception as e:
        logger.opt(exception=e).debug(f"予期せぬエラー: {path}")
        return ItemResult(path=Path(path), status=ItemStatus.FAILED, reason=describe_error(e))


def _log_result(result: ItemResult) -> None:
    if result.status is ItemStatus.WRITTEN:
        logger.debug(f"保存: {result.path} -> {result.output_path}")
    elif result.status is ItemStatus.SKIPPED:
        logger.debug(f"出力済みのためスキップ: {result.path} ({result.output_path})")
    else:
        logger.warning(f"失敗: {result.path}: {result.reason}")


def run_batch(
    paths: Iterable[Union[str, Path]],
    candidates: CandidateSet,
    store: OutputStore,
    *,
    workers: Optional[int] = None,
    show_progress: bool = True,
    total: Optional[int] = None,
) -> BatchSummary:
    """
    入力パスの列を並列に処理して集計を返します

    Args:
        paths: 入力パスの列（長さが事前にわからなくてもよい）
        candidates: 全ワーカーで共有する候補集合
        store: 出力ストア（``prepare()`` 済みであること）
        workers: ワーカー数。省略時は CPU 数
        show_progress: tqdm の進捗バーを表示するか
        total: 進捗バー用の件数。省略時は ``len(paths)`` が使えれば使う

    Returns:
        BatchSummary: 書き込み・スキップ・失敗の件数
    """
    workers = max(1, workers or default_worker_count())
    if total is None and hasattr(paths, "__len__"):
        total = len(paths)  # type: ignore[arg-type]

    summary = BatchSummary()
    start_time = time.perf_counter()
    path_iter = iter(paths)
    # 投入済みで未完了のタスク数の上限
    max_pending = workers * 2
    pending: Dict[Future, Path] = {}

    with tqdm(total=total, desc="画像処理中", unit="files", disable=not show_progress) as progress:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="snapcrop") as executor:

            def fill() -> None:
                while len(pending) < max_pending:
                    try:
                        path = Path(next(path_iter))
                    except StopIteration:
                        return
                    pending[executor.submit(_process_safely, path, candidates, store)] = path

            fill()
            while pending:
                done, _ = wait(pending.keys(), return_when=FIRST_COMPLETED)
                for future in done:
                    pending.pop(future)
                    result = future.result()
                    summary.record(result)
                    _log_result(result)
                    progress.update(1)
                fill()

    summary.elapsed_seconds = time.perf_counter() - start_time
    return summary
