"""
端末入出力モジュール

- 出力先 (sink): UARTの送信/エコー文字を書き込む先
- 端末モード: cbreak + エコーなし。終了時に必ず元の設定へ戻す
- キーボード入力スレッド: 受信バイトをキューへ渡す
"""

import logging
import os
import queue
import sys
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class TerminalSink:
    """テキストストリームへの出力 (既定は標準出力)"""

    def __init__(self, stream=None):
        self.stream = stream if stream is not None else sys.stdout

    def write(self, text: str) -> None:
        self.stream.write(text)

    def flush(self) -> None:
        self.stream.flush()


class BufferSink:
    """出力を内部バッファへ蓄積 (テスト/モニタ用)"""

    def __init__(self):
        self.chunks: List[str] = []
        self.flush_count: int = 0

    def write(self, text: str) -> None:
        self.chunks.append(text)

    def flush(self) -> None:
        self.flush_count += 1

    def get_text(self) -> str:
        return ''.join(self.chunks)

    def clear(self) -> None:
        self.chunks.clear()


class Terminal:
    """
    端末設定のスコープ管理

    with Terminal(): の間だけ cbreak / エコーなし にする。
    標準入力が端末でなければ何もしない。
    """

    def __init__(self, stream=None):
        self.stream = stream if stream is not None else sys.stdin
        self._saved = None

    def __enter__(self) -> 'Terminal':
        if not self.stream.isatty():
            return self

        import termios
        import tty

        fd = self.stream.fileno()
        self._saved = termios.tcgetattr(fd)
        tty.setcbreak(fd)

        attrs = termios.tcgetattr(fd)
        attrs[3] &= ~termios.ECHO
        termios.tcsetattr(fd, termios.TCSADRAIN, attrs)

        logger.debug("terminal in cbreak mode")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._saved is None:
            return

        import termios

        termios.tcsetattr(self.stream.fileno(), termios.TCSADRAIN, self._saved)
        self._saved = None
        logger.debug("terminal restored")

    @property
    def active(self) -> bool:
        return self._saved is not None


def _stdin_byte() -> Optional[int]:
    """標準入力から1バイト読む (EOFならNone)"""
    data = os.read(sys.stdin.fileno(), 1)
    if not data:
        return None
    return data[0]


class KeyboardReader:
    """
    キーボード入力スレッド

    read_byte() をブロッキングで呼び続け、得たバイトをキューへ入れる。
    実行ループ側は get_nowait() で取り出すので CPU は待たされない。
    """

    def __init__(self, input_queue: 'queue.Queue[int]',
                 read_byte: Optional[Callable[[], Optional[int]]] = None):
        self.input_queue = input_queue
        self.read_byte = read_byte or _stdin_byte
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """入力スレッドを開始"""
        self._thread = threading.Thread(target=self._run, name='keyboard-reader', daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """停止を要求 (ブロック中の read_byte は次の入力で抜ける)"""
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.is_set():
            value = self.read_byte()
            if value is None:
                logger.debug("keyboard reader: end of input")
                break
            self.input_queue.put(value & 0xFF)
