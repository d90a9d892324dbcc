"""
埋め込みサンプルでソースを検査するツール（promptcheck）

やること：
- ソース（.cpp / .py）を検証してビルドする（.py は構文チェックのみ）
- `/*defiprompt` ブロックのケースを1つずつ実行し、stdout を期待出力と比べる
- 結果を表示する（人間向け / JSON / ファイル保存 / HTTP POST）
- `--once` でなければ、対象のファイル（またはディレクトリ・glob の最新ファイル）を
  ポーリングで監視して、変更のたびに検査し直す

設定の優先順位は CLI > env > config。
"""

from __future__ import annotations

import argparse
import fnmatch
import json
import logging
import os
import shlex
import shutil
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator

import toolkit
from prompts import PromptCase, PromptParseError, load_prompt_cases

LOGGER_NAME = "promptcheck"
USAGE = "usage: promptcheck [--interval N] [--once] [path|pattern]"

DEFAULT_CASE_TIMEOUT = 10.0
STATUS_PASSED = "passed"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class Language:
    """
    拡張子ごとの「どう動かすか」。compiler は PATH 上で見つかる必要がある。

    builds=False の言語（Python）は compiler がそのままインタプリタになる。
    """

    label: str
    compiler: str
    default_flags: tuple[str, ...] = ()
    builds: bool = True


SUPPORTED_LANGUAGES: dict[str, Language] = {
    ".cpp": Language(label="C++", compiler="c++", default_flags=("-std=c++11",)),
    ".py": Language(label="Python", compiler=sys.executable, builds=False),
}


class CheckError(RuntimeError):
    """検証・ビルド・ケース読み込みのどこかで止まった（ケースの実行までたどり着かない）。"""


class NoMatchingFilesError(LookupError):
    pass


# -------------------------
# データモデル（DTO）
# -------------------------


@dataclass
class CaseResult:
    """
    1ケースの実行結果。

    - ran_ok: プログラムが起動して終了コード0で終わった
    - matched: 出力が期待どおりだった（ran_ok が False なら常に False）
    """

    index: int
    status: str
    inputs: list[str]
    expected: list[str]
    actual: list[str] = field(default_factory=list)
    ran_ok: bool = False
    matched: bool = False
    error: str | None = None


@dataclass
class CheckReport:
    source: str
    language: str
    cases: list[CaseResult] = field(default_factory=list)
    error: str | None = None

    @property
    def total(self) -> int:
        return len(self.cases)

    @property
    def passed(self) -> int:
        return sum(1 for c in self.cases if c.status == STATUS_PASSED)

    @property
    def ok(self) -> bool:
        return self.error is None and self.total > 0 and self.passed == self.total


# -------------------------
# 検査フロー（検証 → ビルド → ケース読み込み → 実行）
# -------------------------


def language_label(path: Path) -> str:
    lang = SUPPORTED_LANGUAGES.get(path.suffix)
    if lang is not None:
        return lang.label
    return path.suffix.lstrip(".") or "-"


def validate_source(source: Path) -> Language:
    """存在する・ファイルである・対応拡張子・コンパイラがある、を確認する。"""
    if not source.exists():
        raise CheckError(f"failed to access {str(source)!r}: no such file")
    if source.is_dir():
        raise CheckError(f"{str(source)!r} is a directory, expected a file")

    lang = SUPPORTED_LANGUAGES.get(source.suffix)
    if lang is None:
        raise CheckError(f"unsupported file extension {source.suffix!r}")
    if shutil.which(lang.compiler) is None:
        raise CheckError(f"required compiler {lang.compiler!r} not found in PATH")
    return lang


def build_program(source: Path, lang: Language, flags: list[str], workdir: Path) -> list[str]:
    """
    ソースを workdir にビルドし、実行用の argv を返す。

    - C++: `c++ <flags> <src> -o <workdir>/prog`
    - Python: 構文チェックだけして `python <flags> <src>`（flags はインタプリタ側のオプション）
    """
    if not lang.builds:
        try:
            compile(source.read_text(encoding="utf-8"), str(source), "exec")
        except (SyntaxError, ValueError, UnicodeDecodeError) as exc:
            raise CheckError(f"compilation failed: {exc}") from exc
        return [lang.compiler, *flags, str(source)]

    binary = workdir / ("prog.exe" if os.name == "nt" else "prog")
    try:
        subprocess.run([lang.compiler, *flags, str(source), "-o", str(binary)], check=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise CheckError(f"compilation failed: {exc}") from exc
    return [str(binary)]


def compare_outputs(expected: list[str], actual: list[str]) -> str | None:
    """一致なら None、不一致ならその説明を返す。各行は前後の空白を無視して比べる。"""
    if len(expected) != len(actual):
        return f"expected {len(expected)} output lines, got {len(actual)}"
    for i, (want, got) in enumerate(zip(expected, actual), start=1):
        if want.strip() != got.strip():
            return f"expected output {want!r}, got {got!r} (line {i})"
    return None


def run_case(index: int, case: PromptCase, argv: list[str], timeout: float) -> CaseResult:
    """
    1ケース実行する。入力は1行ずつ改行付きで stdin に流し、stdout を行に分けて比べる。

    stderr は取り込まずに親の stderr へそのまま流す。
    """
    result = CaseResult(index=index, status=STATUS_FAILED, inputs=list(case.inputs), expected=list(case.outputs))
    stdin_text = "".join(f"{line}\n" for line in case.inputs)
    try:
        # UTF-8 として読めないバイトは U+FFFD に置き換えて比較に回す
        proc = subprocess.run(
            argv,
            input=stdin_text,
            stdout=subprocess.PIPE,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        result.error = f"case {index}: execution failed: timed out after {timeout}s"
        return result
    except OSError as exc:
        result.error = f"case {index}: start failed: {exc}"
        return result

    result.actual = [line.rstrip("\r") for line in proc.stdout.splitlines()]
    if proc.returncode != 0:
        result.error = f"case {index}: execution failed: exit status {proc.returncode}"
        return result

    result.ran_ok = True
    mismatch = compare_outputs(case.outputs, result.actual)
    if mismatch is not None:
        result.error = f"case {index}: {mismatch}"
        return result

    result.matched = True
    result.status = STATUS_PASSED
    return result


def run_check(
    source: Path,
    compile_flags: list[str] | None,
    case_timeout: float,
    logger: logging.Logger,
) -> CheckReport:
    """
    source を検査して CheckReport を返す。

    検証・ビルド・ケース読み込みで失敗したら CheckError。
    ケースの失敗は例外にせず、CaseResult に残して次のケースへ進む。
    """
    phases = 3
    logger.info("[1/%d] validating source: %s", phases, source)
    lang = validate_source(source)
    flags = list(compile_flags) if compile_flags else list(lang.default_flags)

    with tempfile.TemporaryDirectory(prefix="promptcheck-") as tmp:
        logger.info("[2/%d] compiling: %s %s", phases, lang.compiler, " ".join(flags))
        argv = build_program(source, lang, flags, Path(tmp))

        logger.info("[3/%d] parsing prompts", phases)
        try:
            cases = load_prompt_cases(source)
        except PromptParseError as exc:
            raise CheckError(str(exc)) from exc

        report = CheckReport(source=str(source), language=lang.label)
        for i, case in enumerate(cases, start=1):
            logger.info("case %d/%d: running", i, len(cases))
            result = run_case(i, case, argv, case_timeout)
            report.cases.append(result)
            if result.error is not None:
                logger.info("case %d/%d: %s", i, len(cases), result.error)
                if report.error is None:
                    report.error = result.error
            else:
                logger.info("case %d/%d: passed", i, len(cases))

    return report


def check_source(
    source: Path,
    compile_flags: list[str] | None,
    case_timeout: float,
    logger: logging.Logger,
) -> CheckReport:
    """run_check の CLI 向け版。CheckError も「ケース0件の失敗レポート」にして返す。"""
    try:
        return run_check(source, compile_flags, case_timeout, logger)
    except CheckError as exc:
        return CheckReport(source=str(source), language=language_label(source), error=str(exc))


# -------------------------
# 監視対象（ファイル / ディレクトリ / glob）
# -------------------------

MODE_FILE = "file"
MODE_DIRECTORY = "directory"


@dataclass(frozen=True)
class WatchSpec:
    original: str
    mode: str
    directory: Path
    file_path: Path | None = None
    pattern: str = ""


@dataclass(frozen=True)
class WatchEvent:
    path: Path
    mtime_ns: int
    initial: bool = False


@dataclass(frozen=True)
class WatchIdle:
    """対象ファイルが（まだ / もう）ない。"""


def has_glob(text: str) -> bool:
    return any(ch in text for ch in "*?[")


def parse_watch_spec(text: str) -> WatchSpec:
    """
    位置引数を WatchSpec にする。

    - glob 文字を含む：ディレクトリ + パターン（存在確認はしない）
    - ディレクトリ：中の対応拡張子ファイルを対象にする
    - ファイル：そのファイルだけ
    存在しないパスは FileNotFoundError。
    """
    if not text:
        text = "."
    cleaned = os.path.normpath(text)

    if has_glob(cleaned):
        return WatchSpec(
            original=text,
            mode=MODE_DIRECTORY,
            directory=Path(os.path.dirname(cleaned) or "."),
            pattern=os.path.basename(cleaned),
        )

    path = Path(cleaned)
    if not path.exists():
        raise FileNotFoundError(f"no such file or directory: {text}")
    if path.is_dir():
        return WatchSpec(original=text, mode=MODE_DIRECTORY, directory=path)
    return WatchSpec(original=text, mode=MODE_FILE, directory=path.parent, file_path=path)


def display_base(spec: WatchSpec) -> str:
    if spec.mode == MODE_FILE and spec.file_path is not None:
        return str(spec.file_path)
    if spec.pattern:
        return str(spec.directory / spec.pattern)
    return str(spec.directory)


def _is_candidate(name: str, pattern: str) -> bool:
    if pattern:
        return fnmatch.fnmatchcase(name, pattern)
    return Path(name).suffix in SUPPORTED_LANGUAGES


def resolve_latest_target(spec: WatchSpec) -> tuple[Path, int]:
    """
    いま検査すべきファイルと、その mtime（ns）を返す。

    ディレクトリモードでは直下の通常ファイルのうち、いちばん新しいもの。
    候補がなければ NoMatchingFilesError。それ以外の OSError はそのまま上げる。
    """
    if spec.mode == MODE_FILE and spec.file_path is not None:
        try:
            return spec.file_path, spec.file_path.stat().st_mtime_ns
        except FileNotFoundError as exc:
            raise NoMatchingFilesError(display_base(spec)) from exc

    latest: tuple[Path, int] | None = None
    for entry in sorted(spec.directory.iterdir()):
        if not entry.is_file() or not _is_candidate(entry.name, spec.pattern):
            continue
        mtime_ns = entry.stat().st_mtime_ns
        if latest is None or mtime_ns > latest[1]:
            latest = (entry, mtime_ns)

    if latest is None:
        raise NoMatchingFilesError(display_base(spec))
    return latest


def iter_watch_events(
    spec: WatchSpec,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[WatchEvent | WatchIdle]:
    """
    interval 秒ごとに対象を見て、変化があったときだけ yield する（終わらない generator）。

    - 最初の1回：ファイルがあれば WatchEvent(initial=True)、なければ WatchIdle
    - 以降：パスが変わった / mtime が進んだら WatchEvent
    - ファイルが消えたら WatchIdle（消えている間は繰り返さない）
    """
    if interval <= 0:
        interval = 1.0

    first = True
    had_file = False
    last_path: Path | None = None
    last_mtime_ns = 0

    while True:
        try:
            path, mtime_ns = resolve_latest_target(spec)
        except NoMatchingFilesError:
            if had_file or first:
                yield WatchIdle()
            had_file = False
        else:
            had_file = True
            if first or path != last_path or mtime_ns > last_mtime_ns:
                yield WatchEvent(path=path, mtime_ns=mtime_ns, initial=first)
                last_path = path
                last_mtime_ns = mtime_ns

        first = False
        sleep(interval)


# -------------------------
# CLIパース / config / env
# -------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    CLI引数を定義して返す。

    env/config で埋められるように、値を持つ項目は「未指定(None)」と区別できる形にしている。
    """
    parser = argparse.ArgumentParser(
        description="Run the /*defiprompt sample cases embedded in a source file.",
        usage=USAGE,
    )
    parser.add_argument(
        "target",
        nargs="?",
        default=None,
        help="検査するファイル、ディレクトリ、または glob（省略時はカレントディレクトリ）",
    )
    parser.add_argument("--interval", type=int, default=1, help="ポーリング間隔（秒, default: 1）")
    parser.add_argument("--once", action="store_true", help="1回だけ検査して終了する")
    parser.add_argument(
        "--compile-flag",
        dest="compile_flags",
        action="append",
        default=None,
        help="コンパイラ（.py ならインタプリタ）に渡すフラグ。複数回指定可。'-' で始まる値は --compile-flag=-O2 の形で渡す",
    )
    parser.add_argument(
        "--case-timeout",
        type=float,
        default=DEFAULT_CASE_TIMEOUT,
        help=f"1ケースの実行タイムアウト秒数（default: {DEFAULT_CASE_TIMEOUT}）",
    )
    parser.add_argument("--json", action="store_true", help="結果をJSON形式で出力する")
    parser.add_argument("--out", type=Path, default=None, help="Write the JSON payload to a file (e.g., report.json).")
    parser.add_argument("--post", type=str, default="", help="結果のJSONをPOSTするURL")
    parser.add_argument("--timeout", type=float, default=10.0, help="HTTP POSTのタイムアウト秒数（default: 10.0）")
    parser.add_argument("--config", type=Path, default=None, help="JSON config file path. CLI args override config.")
    parser.add_argument("--env-file", type=Path, default=None, help="Load environment variables from a .env file.")
    parser.add_argument("--verbose", action="store_true", help="処理中の詳細ログを表示する")
    return parser.parse_args(argv)


def _as_flags(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    return shlex.split(str(value))


def apply_config(args: argparse.Namespace, cfg: dict[str, Any], provided: set[str], logger: logging.Logger) -> None:
    """config の値で「CLI で明示されていない項目」だけを埋める。"""
    if args.target is None and "target" in cfg:
        args.target = str(cfg["target"])

    if "--interval" not in provided and "interval" in cfg:
        args.interval = int(cfg["interval"])
    if "--compile-flag" not in provided and "compile_flags" in cfg:
        args.compile_flags = _as_flags(cfg["compile_flags"])
    if "--case-timeout" not in provided and "case_timeout" in cfg:
        args.case_timeout = float(cfg["case_timeout"])
    if "--out" not in provided and "out" in cfg:
        args.out = Path(str(cfg["out"]))
    if "--post" not in provided and "post" in cfg:
        args.post = str(cfg["post"])
    if "--timeout" not in provided and "timeout" in cfg:
        args.timeout = float(cfg["timeout"])

    for flag, key in (("--once", "once"), ("--json", "json"), ("--verbose", "verbose")):
        if flag not in provided and key in cfg:
            setattr(args, key, bool(cfg[key]))

    logger.info("config applied (CLI overrides config)")


def apply_env(
    args: argparse.Namespace,
    env_file: dict[str, str],
    provided: set[str],
    logger: logging.Logger,
    target_from_cli: bool,
) -> None:
    """
    PROMPTCHECK_* の環境変数を反映する（CLI で明示された項目は触らない）。

    PROMPTCHECK_TARGET, PROMPTCHECK_INTERVAL, PROMPTCHECK_ONCE,
    PROMPTCHECK_COMPILE_FLAGS（空白区切り）, PROMPTCHECK_CASE_TIMEOUT,
    PROMPTCHECK_JSON, PROMPTCHECK_OUT, PROMPTCHECK_POST, PROMPTCHECK_TIMEOUT,
    PROMPTCHECK_VERBOSE
    """

    def env(name: str) -> str | None:
        return toolkit.get_env(f"PROMPTCHECK_{name}", env_file)

    if not target_from_cli:
        v = env("TARGET")
        if v:
            args.target = v

    if "--interval" not in provided:
        v = env("INTERVAL")
        if v:
            args.interval = int(v)
    if "--compile-flag" not in provided:
        v = env("COMPILE_FLAGS")
        if v:
            args.compile_flags = shlex.split(v)
    if "--case-timeout" not in provided:
        v = env("CASE_TIMEOUT")
        if v:
            args.case_timeout = float(v)
    if "--out" not in provided:
        v = env("OUT")
        if v:
            args.out = Path(v)
    if "--post" not in provided:
        v = env("POST")
        if v:
            args.post = v
    if "--timeout" not in provided:
        v = env("TIMEOUT")
        if v:
            args.timeout = float(v)

    # store_true のフラグ類
    for flag, key in (("--once", "ONCE"), ("--json", "JSON"), ("--verbose", "VERBOSE")):
        if flag in provided:
            continue
        v = env(key)
        if v is not None:
            setattr(args, key.lower(), toolkit.parse_bool(v))

    logger.info("env applied (CLI overrides env)")


def resolve_effective_args(argv: list[str] | None) -> tuple[argparse.Namespace, logging.Logger]:
    """CLI / env / config をまとめて、最終的に使う args と logger を返す。"""
    args = parse_args(argv)
    target_from_cli = args.target is not None
    provided = toolkit.parse_provided_options(argv)

    logger = toolkit.setup_logger(LOGGER_NAME, args.verbose)

    env_file: dict[str, str] = {}
    if args.env_file is not None:
        env_file = toolkit.load_env_file(args.env_file, logger)

    if args.config is None:
        v = toolkit.get_env("PROMPTCHECK_CONFIG", env_file)
        if v:
            args.config = Path(v)
    if args.config is not None:
        apply_config(args, toolkit.load_json_object(args.config, logger), provided, logger)

    apply_env(args, env_file, provided, logger, target_from_cli)

    logger = toolkit.setup_logger(LOGGER_NAME, args.verbose)
    return args, logger


def validate_args(args: argparse.Namespace) -> int:
    """値の範囲チェック。ダメなら stderr にメッセージを出して 2。"""
    if args.interval <= 0:
        print("Error: interval must be greater than zero", file=sys.stderr)
        return 2
    if args.case_timeout <= 0:
        print(f"Error: --case-timeout must be greater than zero: {args.case_timeout}", file=sys.stderr)
        return 2
    if args.timeout <= 0:
        print(f"Error: --timeout must be greater than zero: {args.timeout}", file=sys.stderr)
        return 2
    return 0


# -------------------------
# 出力
# -------------------------


def build_json_payload(report: CheckReport) -> dict[str, Any]:
    return {
        "source": report.source,
        "language": report.language,
        "passed": report.passed,
        "total": report.total,
        "ok": report.ok,
        "error": report.error,
        "cases": [
            {
                "index": c.index,
                "status": c.status,
                "inputs": c.inputs,
                "expected": c.expected,
                "actual": c.actual,
                "ran_ok": c.ran_ok,
                "matched": c.matched,
                "error": c.error,
            }
            for c in report.cases
        ],
    }


def print_report(report: CheckReport) -> None:
    print(f"source:     {report.source}")
    print(f"language:   {report.language}")
    for c in report.cases:
        if c.status == STATUS_PASSED:
            print(f"[PASS] case {c.index}")
        else:
            print(f"[FAIL] {c.error}")
    print(f"Tests passed: {report.passed}/{report.total}")


def emit_report(report: CheckReport, args: argparse.Namespace, logger: logging.Logger) -> int:
    """レポートを stdout / --out / --post に出して、終了コードを返す。"""
    payload = build_json_payload(report)

    if args.json:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        print_report(report)

    if report.error is not None:
        logger.error("%s", report.error)

    if args.out is not None and not toolkit.write_json_file(args.out, payload, logger):
        return 1
    if args.post and not toolkit.post_json(args.post, payload, timeout=args.timeout, logger=logger):
        return 1

    return 0 if report.ok else 1


# -------------------------
# 実行フロー
# -------------------------


def check_and_report(source: Path, args: argparse.Namespace, logger: logging.Logger) -> int:
    report = check_source(source, args.compile_flags, args.case_timeout, logger)
    return emit_report(report, args, logger)


def run_once(spec: WatchSpec, args: argparse.Namespace, logger: logging.Logger) -> int:
    try:
        path, _ = resolve_latest_target(spec)
    except NoMatchingFilesError:
        logger.error("no matching files found for %s", display_base(spec))
        return 1
    except OSError as exc:
        logger.error("failed to resolve target: %s", exc)
        return 1
    return check_and_report(path, args, logger)


def watch_and_check(
    spec: WatchSpec,
    args: argparse.Namespace,
    logger: logging.Logger,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    変更のたびに検査する。Ctrl-C で抜け、最後の検査の終了コードを返す（未実行なら0）。
    """
    rc = 0
    try:
        for event in iter_watch_events(spec, float(args.interval), sleep=sleep):
            if isinstance(event, WatchIdle):
                logger.warning("waiting for matching files: %s", display_base(spec))
                continue
            logger.info("change detected: %s", event.path)
            rc = check_and_report(event.path, args, logger)
    except KeyboardInterrupt:
        logger.info("watch stopped")
    except OSError as exc:
        logger.error("watch failed: %s", exc)
        return 1
    return rc


def main(argv: list[str] | None = None) -> int:
    """
    実行入口。

    resolve_effective_args（設定解決）→ validate_args（検証）→ 対象の解決 →
    --once なら1回検査、そうでなければ監視ループ。
    """
    if argv is None:
        argv = sys.argv[1:]
    try:
        args, logger = resolve_effective_args(argv)
    except (ValueError, TypeError) as exc:
        # env / config の数値項目が数値として読めない
        print(f"Error: invalid setting: {exc}", file=sys.stderr)
        return 2

    rc = validate_args(args)
    if rc != 0:
        return rc

    try:
        spec = parse_watch_spec(args.target or ".")
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        print(USAGE, file=sys.stderr)
        return 2

    if args.once:
        return run_once(spec, args, logger)
    return watch_and_check(spec, args, logger)
