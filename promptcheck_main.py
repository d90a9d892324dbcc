"""
promptcheck のエントリーポイント（薄いラッパー）

例：
  python promptcheck_main.py intsum_main.py --once
  python promptcheck_main.py "solutions/*.cpp" --interval 2
"""

from __future__ import annotations

import sys

if __name__ == "__main__":
    from promptcheck import main

    raise SystemExit(main(sys.argv[1:]))
