"""
UARTモジュール

6551 ACIA 相当のシリアルコントローラを再現
- データレジスタ (送信ラッチ / 受信ラッチ + 受信キュー)
- ステータスレジスタ
- コマンドレジスタ (送受信許可, 受信割り込み禁止, エコー)
- コントロールレジスタ (保持のみ)

レジスタアドレス:
    0x00FC  データ (R: 受信 / W: 送信)
    0x00FD  ステータス (R) / プログラムリセット (W)
    0x00FE  コマンド
    0x00FF  コントロール
"""

import logging
from collections import deque
from enum import IntFlag
from typing import Deque, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .memory import MemoryController

logger = logging.getLogger(__name__)


class StatusFlags(IntFlag):
    """ステータスレジスタ ビット定義"""
    PARITY_ERROR = 0x01
    FRAMING_ERROR = 0x02
    OVERRUN = 0x04
    RDRF = 0x08     # 受信データレジスタフル
    TDRE = 0x10     # 送信データレジスタエンプティ
    DCD = 0x20
    DSR = 0x40
    IRQ = 0x80


class CommandFlags(IntFlag):
    """コマンドレジスタ ビット定義"""
    DTR = 0x01      # 送受信許可
    IRD = 0x02      # 受信割り込み禁止
    ECHO = 0x10     # エコーモード


class SerialController:
    """
    シリアルコントローラ (6551 ACIA互換)

    出力先 (sink) は write(str) / flush() を持つオブジェクト。
    送信・エコーされた文字は1文字ずつ書き込まれ、'\\n' の後には '\\r' が続く。
    """

    # レジスタアドレス
    DATA = 0x00FC
    STATUS = 0x00FD
    COMMAND = 0x00FE
    CONTROL = 0x00FF

    # 初期値
    STATUS_INIT = StatusFlags.TDRE
    COMMAND_INIT = CommandFlags.IRD

    # データ読み込みで保持されるビット (3-6)
    STATUS_READ_KEEP = 0b0111_1000
    # リセットで保持されるビット (DCD, DSR)
    STATUS_RESET_KEEP = StatusFlags.DCD | StatusFlags.DSR

    def __init__(self, sink=None):
        self.sink = sink
        self.memory: Optional['MemoryController'] = None

        # レジスタ
        self.data_tx: int = 0x00
        self.data_rx: int = 0x00
        self.rx_queue: Deque[int] = deque()
        self.status: int = self.STATUS_INIT
        self.command: int = self.COMMAND_INIT
        self.control: int = 0x00

    def connect_memory(self, memory: 'MemoryController') -> None:
        """メモリコントローラを接続"""
        self.memory = memory
        self._register_peripheral_handlers()

    def _register_peripheral_handlers(self) -> None:
        """周辺レジスタハンドラを登録"""
        if not self.memory:
            return

        self.memory.register_peripheral(
            self.DATA,
            lambda a: self._read_data(),
            lambda a, v: self._write_data(v),
            lambda a: self.data_rx,
            name='UART_DATA'
        )

        self.memory.register_peripheral(
            self.STATUS,
            lambda a: self.status,
            lambda a, v: self.programmed_reset(),
            name='UART_STATUS'
        )

        self.memory.register_peripheral(
            self.COMMAND,
            lambda a: self.command,
            lambda a, v: self._write_command(v),
            name='UART_COMMAND'
        )

        self.memory.register_peripheral(
            self.CONTROL,
            lambda a: self.control,
            lambda a, v: setattr(self, 'control', v & 0xFF),
            name='UART_CONTROL'
        )

    def _emit(self, value: int) -> None:
        """1文字を出力 (改行の後にCRを付加)"""
        if self.sink is None:
            return

        self.sink.write(chr(value))
        if value == 0x0A:
            self.sink.write('\r')
        self.sink.flush()

    def _read_data(self) -> int:
        """データレジスタ読み込み (受信)"""
        value = self.data_rx

        if self.rx_queue:
            self.data_rx = self.rx_queue.popleft()
        else:
            self.data_rx = 0
            self.status &= ~StatusFlags.RDRF

        # エラー/IRQフラグをクリア
        self.status &= self.STATUS_READ_KEEP

        return value

    def _write_data(self, value: int) -> None:
        """データレジスタ書き込み (送信)"""
        self.data_tx = value & 0xFF

        if self.command & CommandFlags.DTR and self.data_tx != 0:
            self._emit(self.data_tx)
        else:
            # 送信データ保留
            self.status &= ~StatusFlags.TDRE

    def programmed_reset(self) -> None:
        """プログラムリセット (ステータスレジスタへの書き込み)"""
        logger.debug("uart programmed reset")
        self.command = self.COMMAND_INIT
        self.status &= ~StatusFlags.OVERRUN

    def _write_command(self, value: int) -> None:
        """コマンドレジスタ書き込み"""
        self.command = value & 0xFF

        # 許可され、かつ送信データが保留中なら送信
        if self.command & CommandFlags.DTR and not self.status & StatusFlags.TDRE:
            self._emit(self.data_tx)
            self.status |= StatusFlags.TDRE

    def receive(self, cpu, data: int) -> None:
        """
        外部から受信データを入力

        cpu は interrupt_request() を持つオブジェクト。
        受信割り込みが許可されていれば同期的に呼び出される。
        """
        if not self.command & CommandFlags.DTR:
            return

        data &= 0xFF

        # 受信ラッチが空なら直接格納、そうでなければキューへ
        if self.data_rx == 0:
            self.data_rx = data
        else:
            self.rx_queue.append(data)

        if self.command & CommandFlags.ECHO:
            self._emit(data)

        if not self.command & CommandFlags.IRD:
            cpu.interrupt_request()
            self.status |= StatusFlags.IRQ
        else:
            self.status &= ~StatusFlags.IRQ

        self.status |= StatusFlags.RDRF

    def receive_string(self, cpu, text: str) -> None:
        """文字列を1文字ずつ受信"""
        for char in text:
            self.receive(cpu, ord(char))

    def reset(self) -> None:
        """UARTをリセット"""
        self.data_tx = 0x00
        self.data_rx = 0x00
        self.rx_queue.clear()
        self.status = (self.status & self.STATUS_RESET_KEEP) | self.STATUS_INIT
        self.command = self.COMMAND_INIT
        self.control = 0x00

    def get_state(self) -> dict:
        """UART状態を取得"""
        return {
            'data_tx': int(self.data_tx),
            'data_rx': int(self.data_rx),
            'rx_pending': len(self.rx_queue),
            'status': int(self.status),
            'command': int(self.command),
            'control': int(self.control),
            'status_flags': {
                flag.name: bool(self.status & flag)
                for flag in StatusFlags
            },
            'command_flags': {
                flag.name: bool(self.command & flag)
                for flag in CommandFlags
            },
        }

    def get_rx_queue(self) -> List[int]:
        """受信キューの内容を取得"""
        return list(self.rx_queue)
