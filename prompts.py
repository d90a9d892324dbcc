"""
ソースに埋め込まれたサンプルケース（defiprompt ブロック）のパーサ。

ブロックの形：

    /*defiprompt
    INPUTS:
    3
    1
    2
    3
    OUTPUT:
    6
    -*-
    INPUTS:
    ...
    */

- INPUTS / OUTPUT の後ろのコロンはあってもなくてもよい
- `-*-` でケースを区切る（次の INPUTS でも区切られる）
- 行は前後の空白を落として扱い、空行は無視する
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

MARKER = "/*defiprompt"
END_MARKER = "*/"
SEPARATOR = "-*-"

_INPUT_HEADERS = frozenset({"INPUTS", "INPUTS:"})
_OUTPUT_HEADERS = frozenset({"OUTPUT", "OUTPUT:"})


class PromptParseError(ValueError):
    pass


@dataclass
class PromptCase:
    """1ケース分の入力行と期待出力行。"""

    inputs: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)


def parse_prompt_block(block: str) -> list[PromptCase]:
    """
    `/*defiprompt` と `*/` の間の本文からケースを取り出す。

    状態は "" / "input" / "output" の3つ。セクション外の行は読み飛ばす。
    """
    cases: list[PromptCase] = []
    current: PromptCase | None = None
    state = ""

    def flush() -> None:
        nonlocal current, state
        if current is None:
            return
        if not current.inputs or not current.outputs:
            raise PromptParseError("incomplete prompt case detected")
        cases.append(current)
        current = None
        state = ""

    for raw in block.splitlines():
        line = raw.strip()
        if not line:
            continue

        if line in _INPUT_HEADERS:
            flush()
            current = PromptCase()
            state = "input"
        elif line in _OUTPUT_HEADERS:
            if current is None:
                raise PromptParseError("OUTPUT encountered before INPUTS")
            state = "output"
        elif line == SEPARATOR:
            flush()
        elif current is not None and state == "input":
            current.inputs.append(line)
        elif current is not None and state == "output":
            current.outputs.append(line)

    flush()
    return cases


def parse_prompt_content(content: str) -> list[PromptCase]:
    """content 中のすべての defiprompt ブロックを順に読む。ブロックがなければ空リスト。"""
    cases: list[PromptCase] = []
    search_at = 0
    while True:
        start = content.find(MARKER, search_at)
        if start == -1:
            break
        body_start = start + len(MARKER)
        end = content.find(END_MARKER, body_start)
        if end == -1:
            raise PromptParseError("unterminated defiprompt block")
        cases.extend(parse_prompt_block(content[body_start:end]))
        search_at = end + len(END_MARKER)
    return cases


def load_prompt_cases(path: Path) -> list[PromptCase]:
    """path を読んでケースを返す。1つもなければ PromptParseError。"""
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise PromptParseError(f"failed to read {str(path)!r}: {exc}") from exc

    cases = parse_prompt_content(content)
    if not cases:
        raise PromptParseError(f"no defiprompt blocks found in {str(path)!r}")
    return cases
