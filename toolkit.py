"""
intsum / promptcheck 共通の I/O 部品。

ここに置くもの：
- logger 構成（進捗・失敗は stderr、結果は stdout）
- 設定の読み込み（JSON config / .env / OS 環境変数）と、CLI 明示判定
- 結果 payload の出力先（JSON ファイル保存 / HTTP POST）

ツール固有のもの（オプション名、環境変数名、payload の形）は各ツール側に残す。
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import httpx

_TRUE_WORDS = frozenset({"1", "true", "yes", "y", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "n", "off"})


# -------------------------
# logger
# -------------------------


def setup_logger(name: str, verbose: bool) -> logging.Logger:
    """
    name の logger を stderr 向けに組み直して返す。

    何度呼んでも handler が増えないように、毎回 clear してから付け直す
    （verbose が config/env で後から変わるケースがあるため）。
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    logger.propagate = False
    logger.handlers.clear()

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(handler)
    return logger


# -------------------------
# CLI / env / config
# -------------------------


def parse_provided_options(argv: list[str] | None) -> set[str]:
    """
    argv の中で明示された `--option` の名前を集める。

    `--opt=value` 形式は `--opt` として数える。`--` 以降は位置引数なので見ない。
    """
    provided: set[str] = set()
    for token in argv or []:
        if token == "--":
            break
        if token.startswith("--"):
            provided.add(token.split("=", 1)[0])
    return provided


def parse_bool(value: str) -> bool:
    """env 由来の文字列を bool にする（1/true/yes/y/on と 0/false/no/n/off）。"""
    v = value.strip().lower()
    if v in _TRUE_WORDS:
        return True
    if v in _FALSE_WORDS:
        return False
    return bool(v)


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def load_env_file(path: Path, logger: logging.Logger) -> dict[str, str]:
    """
    KEY=VALUE 形式の .env を読む。

    - 空行と `#` コメントは飛ばす
    - `export KEY=VALUE` も受け付ける
    - 値を囲む ' / " は外す
    - `=` のない行は黙って無視する
    読めなかったら空 dict（呼び出し側は「.env なし」と同じ扱いで続行できる）。
    """
    try:
        text = path.expanduser().read_text(encoding="utf-8")
    except OSError as exc:
        logger.error("env file load failed: %s (%s)", path, exc)
        return {}

    env: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        key, sep, val = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if key:
            env[key] = _strip_quotes(val.strip())
    return env


def get_env(name: str, env_file: dict[str, str]) -> str | None:
    """
    env_file（--env-file で読んだ値） > OS 環境変数 の順で name を引く。

    空文字は「未設定」と同じ扱いにする。
    """
    for source in (env_file.get(name), os.getenv(name)):
        if source:
            return source
    return None


def load_json_object(path: Path, logger: logging.Logger) -> dict[str, Any]:
    """
    JSON config を読む。オブジェクト以外・壊れた JSON は logger.error して空 dict。
    """
    try:
        data = json.loads(path.expanduser().read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error("config load failed: %s (%s)", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.error("config must be a JSON object: %s", path)
        return {}
    return data


# -------------------------
# 出力先（ファイル / HTTP）
# -------------------------


def write_json_file(path: Path, payload: dict[str, Any], logger: logging.Logger) -> bool:
    """payload を整形 JSON でファイルに書く。成否を bool で返す（stdout には何も出さない）。"""
    out_path = path.expanduser().resolve()
    try:
        out_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        logger.error("failed to write payload to %s: %s", out_path, exc)
        return False
    logger.info("payload written to %s", out_path)
    return True


def post_json(url: str, payload: dict[str, Any], timeout: float, logger: logging.Logger) -> bool:
    """
    payload を JSON で POST する。

    - 通信エラー / タイムアウトは False
    - ステータス 400 以上も False（本文の先頭を warning に残す）
    """
    try:
        with httpx.Client(timeout=timeout) as client:
            resp = client.post(url, json=payload)
    except httpx.HTTPError as exc:
        logger.error("HTTP POST failed: %s (%s)", url, exc)
        return False

    logger.info("POST %s -> %d", url, resp.status_code)
    if resp.status_code >= 400:
        logger.warning("response body (truncated): %s", resp.text[:200])
        return False
    return True
