"""
整数の合計（intsum）

やること：
- 入力の先頭から個数 n を読む
- 続く n 個の整数を順に読んで合計する
- 合計を1行で出力する

守りたいこと：
- 途中で読めなくなったら（足りない / 数字じゃない）即失敗。stdout には何も書かない
- 合計は Python の int なのでオーバーフローしない
- 読み取り（トークン化）と計算（合計）を分けて、stdin なしでもテストできる形にする
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from enum import IntEnum
from typing import Iterable, Iterator, TextIO

import toolkit

LOGGER_NAME = "intsum"

# cin >> long long が読める形に合わせて、ASCII の数字だけを許す（"1_000" や全角数字は不可）
_INT_TOKEN_RE = re.compile(r"[+-]?[0-9]+")


class ExitStatus(IntEnum):
    OK = 0
    MALFORMED_INPUT = 1


class MalformedInputError(ValueError):
    """個数や値のトークンが整数として読めない、または入力が途中で尽きた。"""


# -------------------------
# 読み取り（トークン → int）
# -------------------------


def iter_tokens(lines: Iterable[str]) -> Iterator[str]:
    """
    行の列を空白区切りのトークン列にする。

    必要な分だけ読む（n 個読んだら残りの行には触らない）ように generator にしている。
    """
    try:
        for line in lines:
            yield from line.split()
    except UnicodeDecodeError as exc:
        raise MalformedInputError(f"input is not valid text: {exc}") from exc


def parse_int_token(token: str | None, what: str) -> int:
    if token is None:
        raise MalformedInputError(f"{what}: unexpected end of input")
    if not _INT_TOKEN_RE.fullmatch(token):
        raise MalformedInputError(f"{what}: not an integer: {token!r}")
    try:
        return int(token)
    except ValueError as exc:
        # 桁数が int の変換上限（sys.get_int_max_str_digits）を超えた
        raise MalformedInputError(f"{what}: integer too long ({len(token)} digits)") from exc


def read_count(tokens: Iterator[str]) -> int:
    """先頭の個数 n を読む。負の個数も「壊れた入力」として扱う。"""
    n = parse_int_token(next(tokens, None), "count")
    if n < 0:
        raise MalformedInputError(f"count: must be non-negative: {n}")
    return n


def iter_values(tokens: Iterator[str], count: int) -> Iterator[int]:
    for i in range(count):
        yield parse_int_token(next(tokens, None), f"value {i + 1}/{count}")


# -------------------------
# 計算
# -------------------------


def read_sum(lines: Iterable[str]) -> int:
    """
    lines から「n と n 個の値」を読み、合計を返す。

    失敗したら MalformedInputError。部分和は返さない。
    """
    tokens = iter_tokens(lines)
    count = read_count(tokens)
    return sum(iter_values(tokens, count))


def run(input_stream: TextIO, output_stream: TextIO, logger: logging.Logger | None = None) -> ExitStatus:
    """
    input_stream を読み、合計を output_stream に1行で書く。

    - 成功：合計 + 改行を書いて ExitStatus.OK
    - 失敗：何も書かずに ExitStatus.MALFORMED_INPUT
    logger は CLI から渡されたときだけ使う（run 自体はログを出さない）。
    """
    try:
        total = read_sum(input_stream)
    except MalformedInputError as exc:
        if logger is not None:
            logger.error("malformed input: %s", exc)
        return ExitStatus.MALFORMED_INPUT

    output_stream.write(f"{total}\n")
    output_stream.flush()
    if logger is not None:
        logger.info("sum written: %d", total)
    return ExitStatus.OK


# -------------------------
# CLI
# -------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Read a count n and n integers from stdin, print their sum.",
    )
    parser.add_argument("--verbose", action="store_true", help="処理中の詳細ログを stderr に出す")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """stdin → 合計 → stdout。戻り値がそのまま終了コードになる。"""
    args = parse_args(argv)
    logger = toolkit.setup_logger(LOGGER_NAME, args.verbose)
    logger.info("read start: stdin")
    return int(run(sys.stdin, sys.stdout, logger=logger))
