"""
intsum のテスト。

狙い：
- 合計の正しさ（負数・0・大きな値を含む）
- 壊れた入力 / 足りない入力で「何も出さずに失敗」すること
- 必要な分しか読まないこと（n=0 なら後ろのトークンに触らない）
"""

from __future__ import annotations

import io
import sys

import pytest

import intsum


def _run(text: str) -> tuple[intsum.ExitStatus, str]:
    out = io.StringIO()
    status = intsum.run(io.StringIO(text), out)
    return status, out.getvalue()


@pytest.mark.parametrize(
    "text, expected",
    [
        ("3\n1\n2\n3\n", "6\n"),
        ("4\n10\n2\n3\n5\n", "20\n"),
        ("5\n8\n-3\n4\n0\n11\n", "20\n"),
    ],
)
def test_run_prints_sum_of_declared_values(text: str, expected: str) -> None:
    # テスト意図：埋め込みサンプルと同じ入力で、合計が1行で出ることを確認する
    status, out = _run(text)
    assert status is intsum.ExitStatus.OK
    assert out == expected


def test_run_is_repeatable_on_same_input() -> None:
    # テスト意図：同じ入力なら何回実行しても同じ出力になる
    first = _run("3\n1\n2\n3\n")
    second = _run("3\n1\n2\n3\n")
    assert first == second == (intsum.ExitStatus.OK, "6\n")


def test_run_accepts_tokens_on_one_line_and_explicit_sign() -> None:
    # テスト意図：改行でも空白でも区切れる。+付きの数も読める
    status, out = _run("3 +1 2\t-10\n")
    assert status is intsum.ExitStatus.OK
    assert out == "-7\n"


def test_run_zero_count_prints_zero_without_reading_further() -> None:
    # テスト意図：n=0 なら 0 を出し、後ろの行には触らない
    lines = iter(["0\n", "not a number\n"])
    out = io.StringIO()

    status = intsum.run(lines, out)  # type: ignore[arg-type]

    assert status is intsum.ExitStatus.OK
    assert out.getvalue() == "0\n"
    assert next(lines) == "not a number\n"


def test_run_does_not_overflow_64_bit_range() -> None:
    # テスト意図：long long の上限を2つ足しても正しい値になる
    big = 2**63 - 1
    status, out = _run(f"2\n{big}\n{big}\n")
    assert status is intsum.ExitStatus.OK
    assert out == f"{2 * big}\n"


@pytest.mark.parametrize(
    "text",
    [
        "",
        "abc\n1\n",
        "3\n1\n2\n",
        "2\n1\nx\n",
        "2\n1.5\n2\n",
        "1\n1_000\n",
        "-1\n",
    ],
)
def test_run_fails_without_output_on_malformed_or_short_input(text: str) -> None:
    # テスト意図：個数が読めない / 値が足りない / 数字でない / 負の個数 → 何も出さずに失敗
    status, out = _run(text)
    assert status is intsum.ExitStatus.MALFORMED_INPUT
    assert int(status) == 1
    assert out == ""


@pytest.mark.skipif(
    not hasattr(sys, "get_int_max_str_digits"),
    reason="int の桁数上限は Python 3.11 以降",
)
def test_run_fails_cleanly_on_token_longer_than_int_limit() -> None:
    # テスト意図：変換上限を超える桁数の値も、例外で落ちずに「壊れた入力」として失敗する
    limit = sys.get_int_max_str_digits()
    if limit == 0:
        pytest.skip("桁数上限が無効化されている")
    too_long = "9" * (limit + 700)

    status, out = _run(f"1\n{too_long}\n")
    assert status is intsum.ExitStatus.MALFORMED_INPUT
    assert out == ""

    with pytest.raises(intsum.MalformedInputError, match="integer too long"):
        intsum.read_sum(["1\n", f"{too_long}\n"])


def test_run_fails_cleanly_on_non_utf8_input() -> None:
    # テスト意図：UTF-8 として読めない入力も、何も出さずに失敗する
    stream = io.TextIOWrapper(io.BytesIO(b"2\n\xff\xfe\n3\n"), encoding="utf-8")
    out = io.StringIO()

    status = intsum.run(stream, out)

    assert status is intsum.ExitStatus.MALFORMED_INPUT
    assert out.getvalue() == ""


def test_read_sum_reports_which_token_failed() -> None:
    # テスト意図：エラーメッセージで「何番目が読めなかったか」が分かる
    with pytest.raises(intsum.MalformedInputError, match="value 3/3"):
        intsum.read_sum(["3\n", "1\n", "2\n"])
    with pytest.raises(intsum.MalformedInputError, match="count"):
        intsum.read_sum(["three\n"])


def test_main_reads_stdin_and_writes_stdout(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    # テスト意図：CLI 入口は stdin → stdout で、終了コード0を返す
    monkeypatch.setattr(sys, "stdin", io.StringIO("3\n1\n2\n3\n"))

    rc = intsum.main([])

    captured = capsys.readouterr()
    assert rc == 0
    assert captured.out == "6\n"
    assert captured.err == ""


def test_main_logs_reason_to_stderr_and_keeps_stdout_empty(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    # テスト意図：失敗時は stdout を汚さず、理由は stderr のログに出る
    monkeypatch.setattr(sys, "stdin", io.StringIO("2\n5\n"))

    rc = intsum.main([])

    captured = capsys.readouterr()
    assert rc == 1
    assert captured.out == ""
    assert "malformed input" in captured.err
