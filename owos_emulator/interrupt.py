"""
割り込み制御モジュール

UARTが発行する割り込み要求 (IRQ) をCPUへ届ける信号線

CPUそのものは外部から注入される。CPUを接続しない場合
(モニタ、テスト) は要求をラッチとログに残すだけになる。
"""

import logging
from typing import Callable, List

logger = logging.getLogger(__name__)


class InterruptLine:
    """
    IRQ信号線

    interrupt_request() を持つので、receive() の cpu 引数としてそのまま渡せる
    """

    def __init__(self, target=None):
        # 転送先CPU (interrupt_request() を持つオブジェクト)
        self.target = target

        self.pending: bool = False
        self.request_count: int = 0

        # 割り込みログ
        self.interrupt_log: List[dict] = []
        self.log_enabled: bool = True

        # 割り込みコールバック
        self.interrupt_callbacks: List[Callable] = []

    def connect_cpu(self, cpu) -> None:
        """CPUを接続"""
        self.target = cpu

    def interrupt_request(self) -> None:
        """割り込み要求"""
        self.pending = True
        self.request_count += 1

        logger.debug("irq request #%d", self.request_count)

        if self.log_enabled:
            self.interrupt_log.append({
                'event': 'request',
                'count': self.request_count,
            })

        if self.target is not None:
            self.target.interrupt_request()

        for callback in self.interrupt_callbacks:
            callback('request', self.request_count)

    def acknowledge(self) -> bool:
        """割り込み応答 (ラッチをクリアし、保留していたかを返す)"""
        was_pending = self.pending
        self.pending = False

        if was_pending and self.log_enabled:
            self.interrupt_log.append({
                'event': 'acknowledge',
                'count': self.request_count,
            })

        return was_pending

    def register_callback(self, callback: Callable) -> None:
        """割り込みコールバックを登録"""
        self.interrupt_callbacks.append(callback)

    def reset(self) -> None:
        """信号線をリセット"""
        self.pending = False
        self.request_count = 0
        self.clear_log()

    def get_state(self) -> dict:
        """割り込み状態を取得"""
        return {
            'pending': self.pending,
            'request_count': self.request_count,
            'connected': self.target is not None,
        }

    def get_interrupt_log(self, limit: int = 100) -> List[dict]:
        """割り込みログを取得"""
        return list(self.interrupt_log)[-limit:]

    def clear_log(self) -> None:
        """割り込みログをクリア"""
        self.interrupt_log.clear()
