"""
OwOS 仮想マシン バス/周辺コントローラ
6502ベースの仮想マシン用メモリバスの仮想実装

対象範囲:
- バンク切替とブートROM
- RAM
- 6551 ACIA 相当のUART (ステータス, エコー, 割り込み)
- 着脱式ディスク x2
- CPUを接続するためのバスインターフェース
"""

__version__ = "0.1.0"
__author__ = "OwOS Emulator Team"

from .memory import MemoryController
from .uart import SerialController
from .disc import DiscController
from .interrupt import InterruptLine
from .loader import BootImageLoader, BootImageError, DiscImageLoader
from .terminal import TerminalSink, BufferSink, Terminal, KeyboardReader
from .emulator import OwOSEmulator, EmulatorConfig

__all__ = [
    "MemoryController",
    "SerialController",
    "DiscController",
    "InterruptLine",
    "BootImageLoader",
    "BootImageError",
    "DiscImageLoader",
    "TerminalSink",
    "BufferSink",
    "Terminal",
    "KeyboardReader",
    "OwOSEmulator",
    "EmulatorConfig",
]
