"""
OwOSエミュレータ メインモジュール

メモリマップ・UART・ディスクを統合してOwOS仮想ハードウェアを提供

CPU (6502) は外部から注入する。CPUに求めるのは次のメソッドのみ:
    reset(bus)                 リセットベクタからの再開
    execute_instruction(bus)   1命令実行
    interrupt_request()        IRQ要求
bus には read(address) / write(address, value) を持つ MemoryController が渡される。
"""

import logging
import queue
from dataclasses import dataclass
from typing import Optional, Callable, List

from .memory import MemoryController, ResetController, ADDRESS_SPACE_SIZE
from .uart import SerialController
from .disc import DiscController
from .interrupt import InterruptLine
from .loader import BootImageLoader, DiscImageLoader, LoadResult
from .terminal import TerminalSink

logger = logging.getLogger(__name__)


@dataclass
class EmulatorConfig:
    """エミュレータ設定"""
    # メモリ設定
    ram_size: int = ADDRESS_SPACE_SIZE  # 64KB (到達可能な範囲)
    boot_fill: int = 0xFF               # 短いブートイメージの埋め値

    # デバッグ設定
    memory_log_enabled: bool = False
    interrupt_log_enabled: bool = True


class OwOSEmulator:
    """
    OwOS仮想ハードウェア

    全てのコンポーネントを統合し、CPUに対してバスを提供する
    """

    def __init__(self, boot_image: bytes = b'', config: Optional[EmulatorConfig] = None,
                 sink=None):
        self.config = config or EmulatorConfig()

        # コンポーネント初期化
        self.memory = MemoryController(
            boot_image,
            ram_size=self.config.ram_size,
            boot_fill=self.config.boot_fill,
        )
        self.reset_controller = ResetController(self.memory)
        self.uart = SerialController(sink if sink is not None else TerminalSink())
        self.disc = DiscController()
        self.irq = InterruptLine()
        self.disc_loader = DiscImageLoader()

        # コンポーネント接続
        self._connect_components()

        # イベントコールバック
        self.on_step: Optional[Callable] = None
        self.on_error: Optional[Callable] = None

        # 実行状態
        self.running: bool = False
        self.instruction_count: int = 0
        self.last_error: Optional[str] = None

    @classmethod
    def from_file(cls, boot_path: str, config: Optional[EmulatorConfig] = None,
                  sink=None) -> 'OwOSEmulator':
        """ブートROMファイルから生成 (読めなければ BootImageError)"""
        boot_image = BootImageLoader().load_boot_image(boot_path)
        return cls(boot_image, config=config, sink=sink)

    def _connect_components(self) -> None:
        """コンポーネントを相互接続"""
        self.memory.log_enabled = self.config.memory_log_enabled
        self.irq.log_enabled = self.config.interrupt_log_enabled

        # 周辺レジスタ登録
        self.disc.connect_memory(self.memory)
        self.uart.connect_memory(self.memory)

        # ローダー接続
        self.disc_loader.connect_disc(self.disc)

        # リセットコールバック
        self.reset_controller.register_callback(self._on_reset)

    def _on_reset(self, source) -> None:
        """リセット時の処理"""
        self.uart.reset()

    # バスインターフェース

    def read(self, address: int) -> int:
        """バス読み込み"""
        return self.memory.read(address)

    def write(self, address: int, value: int) -> None:
        """バス書き込み"""
        self.memory.write(address, value)

    def receive(self, cpu, data: int) -> None:
        """UART受信 (入力源から呼ばれる)"""
        self.uart.receive(cpu, data)

    def reset(self, source: Optional[ResetController.ResetSource] = None) -> None:
        """システムリセット (RAM/ROM/ディスクの内容は保持)"""
        self.reset_controller.trigger_reset(source)
        self.last_error = None

    # 実行制御

    def load_disc(self, filepath: str, unit: int, offset: int = 0) -> LoadResult:
        """ディスクイメージをロード"""
        return self.disc_loader.load_disc(filepath, unit, offset)

    def run(self, cpu, input_queue: Optional['queue.Queue[int]'] = None,
            max_instructions: int = 0, reset_cpu: bool = True) -> int:
        """
        連続実行

        1命令ごとに入力キューを非ブロッキングで確認し、
        届いていれば1バイトだけUARTへ渡してから命令を実行する。
        """
        self.irq.connect_cpu(cpu)
        if reset_cpu:
            cpu.reset(self.memory)

        self.running = True
        executed = 0

        try:
            while self.running:
                if max_instructions > 0 and executed >= max_instructions:
                    break

                if input_queue is not None:
                    try:
                        data = input_queue.get_nowait()
                    except queue.Empty:
                        pass
                    else:
                        self.receive(self.irq, data)

                cpu.execute_instruction(self.memory)
                executed += 1
                self.instruction_count += 1

                if self.on_step:
                    self.on_step(executed)

        except Exception as e:
            self.last_error = str(e)
            logger.error("execution stopped after %d instructions: %s", executed, e)
            if self.on_error:
                self.on_error(str(e))
            raise
        finally:
            self.running = False

        return executed

    def stop(self) -> None:
        """実行停止"""
        self.running = False

    # 状態取得

    def dump_memory(self, start: int, size: int) -> str:
        """メモリダンプ"""
        return self.memory.dump_hex(start, size)

    def get_state(self) -> dict:
        """システム状態取得"""
        return {
            'memory': self.memory.get_state(),
            'uart': self.uart.get_state(),
            'disc': self.disc.get_state(),
            'interrupt': self.irq.get_state(),
            'instructions': self.instruction_count,
            'last_error': self.last_error,
        }

    def get_memory_map(self) -> List[dict]:
        """メモリマップ取得"""
        return self.memory.get_memory_map()
