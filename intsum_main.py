"""
intsum のエントリーポイント（薄いラッパー）

実装は intsum.py。下のサンプルは promptcheck がそのまま実行して確認できる：
  python promptcheck_main.py intsum_main.py --once

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
4
10
2
3
5
OUTPUT:
20
-*-
INPUTS:
5
8
-3
4
0
11
OUTPUT:
20
-*-
INPUTS:
0
OUTPUT:
0
*/
"""

from __future__ import annotations

import sys

if __name__ == "__main__":
    from intsum import main

    raise SystemExit(main(sys.argv[1:]))
