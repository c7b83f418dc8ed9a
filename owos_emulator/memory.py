"""
メモリ/バンク切替モジュール

OwOS仮想マシンの16ビットメモリマップを仮想再現
- ブートROM (0xF000-0xFFFF, バンク0のときのみ可視)
- バンクセレクトレジスタ (0x0000, バンク0のときのみ可視)
- 周辺レジスタ (ディスク 0x00F7-0x00FB, UART 0x00FC-0x00FF)
- RAM (上記以外の全アドレス)
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Callable, List, Tuple
from enum import IntEnum

logger = logging.getLogger(__name__)


# アドレス空間
ADDRESS_MASK = 0xFFFF
ADDRESS_SPACE_SIZE = 0x10000

# バンク0固有アドレス
BANK_SELECT_ADDRESS = 0x0000
BOOT_ROM_BASE = 0xF000
BOOT_ROM_SIZE = 0x1000  # 4KB


class MemoryRegion(IntEnum):
    """メモリ領域タイプ"""
    RAM = 0
    ROM = 1
    PERIPHERAL = 2
    BANK_SELECT = 3


@dataclass
class MemoryBlock:
    """メモリブロック定義"""
    name: str
    start: int
    size: int
    region_type: MemoryRegion
    data: bytearray = None
    readonly: bool = False

    def __post_init__(self):
        if self.data is None:
            self.data = bytearray(self.size)

    @property
    def end(self) -> int:
        return self.start + self.size - 1

    def contains(self, address: int) -> bool:
        return self.start <= address <= self.end


PeripheralHandler = Tuple[Optional[Callable], Optional[Callable], Optional[Callable], str]


class MemoryController:
    """
    メモリコントローラ (アドレスデコーダ)

    CPUからのバイトアクセスを以下の優先順位で振り分ける:

    1. バンク0 かつ 0xF000-0xFFFF -> ブートROM (書き込みは無視)
    2. バンク0 かつ 0x0000 -> バンクセレクトレジスタ
    3. それ以外 -> 周辺レジスタテーブル、該当なしならRAM

    バンクレジスタが0以外のときは 0x0000 もROM窓もRAMになるが、
    周辺レジスタはどのバンクからも見える。
    """

    def __init__(self, boot_image: bytes = b'', ram_size: int = ADDRESS_SPACE_SIZE,
                 boot_fill: int = 0xFF):
        if len(boot_image) > BOOT_ROM_SIZE:
            raise ValueError(
                f"Boot image is {len(boot_image)} bytes, "
                f"window holds at most {BOOT_ROM_SIZE}"
            )
        if ram_size < ADDRESS_SPACE_SIZE:
            raise ValueError(f"RAM size must be at least 0x{ADDRESS_SPACE_SIZE:X}, got 0x{ram_size:X}")

        # バンクセレクトレジスタ
        self.bank: int = 0

        # ブートROM (短いイメージは消去済みROM値で埋める)
        rom = bytearray(boot_image)
        rom.extend(bytes([boot_fill & 0xFF]) * (BOOT_ROM_SIZE - len(rom)))
        self.boot_rom = MemoryBlock(
            name="BootROM",
            start=BOOT_ROM_BASE,
            size=BOOT_ROM_SIZE,
            region_type=MemoryRegion.ROM,
            data=rom,
            readonly=True
        )
        self.boot_image_size: int = len(boot_image)

        # RAM (到達可能なのは下位64KBのみ)
        self.ram = MemoryBlock(
            name="RAM",
            start=0x0000,
            size=ram_size,
            region_type=MemoryRegion.RAM
        )

        # 周辺レジスタハンドラ: address -> (read, write, peek, name)
        self.peripheral_handlers: Dict[int, PeripheralHandler] = {}

        # アクセスログ (デバッグ用)
        self.access_log: List[dict] = []
        self.log_enabled: bool = False

    def register_peripheral(self, address: int,
                            read_handler: Optional[Callable] = None,
                            write_handler: Optional[Callable] = None,
                            peek_handler: Optional[Callable] = None,
                            name: str = "") -> None:
        """周辺レジスタハンドラを登録"""
        self.peripheral_handlers[address & ADDRESS_MASK] = (
            read_handler, write_handler, peek_handler, name
        )

    def decode(self, address: int) -> MemoryRegion:
        """アドレスがどの領域に振り分けられるかを判定"""
        address &= ADDRESS_MASK

        if self.bank == 0:
            if self.boot_rom.contains(address):
                return MemoryRegion.ROM
            if address == BANK_SELECT_ADDRESS:
                return MemoryRegion.BANK_SELECT

        if address in self.peripheral_handlers:
            return MemoryRegion.PERIPHERAL

        return MemoryRegion.RAM

    def _check_peripheral(self, address: int, is_write: bool, value: int = 0) -> Tuple[bool, int]:
        """周辺レジスタアクセスをチェック"""
        if address in self.peripheral_handlers:
            read_handler, write_handler, _, _ = self.peripheral_handlers[address]
            if is_write and write_handler:
                write_handler(address, value)
                return (True, value)
            elif not is_write and read_handler:
                return (True, read_handler(address) & 0xFF)
        return (False, 0)

    def read(self, address: int) -> int:
        """8ビット読み込み"""
        address &= ADDRESS_MASK
        region = self.decode(address)

        if region == MemoryRegion.ROM:
            value = self.boot_rom.data[address - self.boot_rom.start]
        elif region == MemoryRegion.BANK_SELECT:
            value = self.bank
        else:
            handled, value = self._check_peripheral(address, False)
            if not handled:
                region = MemoryRegion.RAM
                value = self.ram.data[address]

        if self.log_enabled:
            self.access_log.append({
                'type': 'read',
                'address': address,
                'value': value,
                'region': region.name,
            })

        return value

    def write(self, address: int, value: int) -> None:
        """8ビット書き込み"""
        address &= ADDRESS_MASK
        value &= 0xFF
        region = self.decode(address)

        if region == MemoryRegion.ROM:
            if self.log_enabled:
                self.access_log.append({
                    'type': 'write',
                    'address': address,
                    'value': value,
                    'region': region.name,
                    'error': 'readonly'
                })
            return  # 読み取り専用

        if region == MemoryRegion.BANK_SELECT:
            logger.debug("bank select 0x%02X -> 0x%02X", self.bank, value)
            self.bank = value
        else:
            handled, _ = self._check_peripheral(address, True, value)
            if not handled:
                region = MemoryRegion.RAM
                self.ram.data[address] = value

        if self.log_enabled:
            self.access_log.append({
                'type': 'write',
                'address': address,
                'value': value,
                'region': region.name,
            })

    def peek(self, address: int) -> int:
        """副作用なしの読み込み (モニタ表示用)"""
        address &= ADDRESS_MASK
        region = self.decode(address)

        if region == MemoryRegion.ROM:
            return self.boot_rom.data[address - self.boot_rom.start]
        if region == MemoryRegion.BANK_SELECT:
            return self.bank
        if region == MemoryRegion.PERIPHERAL:
            read_handler, _, peek_handler, _ = self.peripheral_handlers[address]
            handler = peek_handler or read_handler
            if handler:
                return handler(address) & 0xFF
        return self.ram.data[address]

    def peek16(self, address: int) -> int:
        """16ビット読み込み (リトルエンディアン, 副作用なし)"""
        low = self.peek(address)
        high = self.peek((address + 1) & ADDRESS_MASK)
        return (high << 8) | low

    def dump(self, start: int, size: int) -> bytes:
        """メモリ領域をダンプ"""
        return bytes(self.peek((start + i) & ADDRESS_MASK) for i in range(size))

    def dump_hex(self, start: int, size: int, bytes_per_line: int = 16) -> str:
        """メモリを16進ダンプ形式で取得"""
        lines = []
        data = self.dump(start, size)

        for i in range(0, size, bytes_per_line):
            addr = (start + i) & ADDRESS_MASK
            hex_part = ' '.join(f'{b:02X}' for b in data[i:i+bytes_per_line])
            ascii_part = ''.join(
                chr(b) if 32 <= b < 127 else '.'
                for b in data[i:i+bytes_per_line]
            )
            lines.append(f'{addr:04X}: {hex_part:<{bytes_per_line*3}} {ascii_part}')

        return '\n'.join(lines)

    def reset(self) -> None:
        """バンクレジスタをリセット (RAM/ROMの内容は保持)"""
        self.bank = 0

    def get_memory_map(self) -> List[dict]:
        """メモリマップ情報を取得"""
        visible = self.bank == 0
        regions = [
            {
                'name': 'BankSelect',
                'start': f'0x{BANK_SELECT_ADDRESS:04X}',
                'end': f'0x{BANK_SELECT_ADDRESS:04X}',
                'size': 1,
                'type': MemoryRegion.BANK_SELECT.name,
                'visible': visible,
            },
            {
                'name': self.boot_rom.name,
                'start': f'0x{self.boot_rom.start:04X}',
                'end': f'0x{self.boot_rom.end:04X}',
                'size': self.boot_rom.size,
                'type': self.boot_rom.region_type.name,
                'visible': visible,
            },
        ]

        for address in sorted(self.peripheral_handlers):
            regions.append({
                'name': self.peripheral_handlers[address][3] or f'IO_{address:04X}',
                'start': f'0x{address:04X}',
                'end': f'0x{address:04X}',
                'size': 1,
                'type': MemoryRegion.PERIPHERAL.name,
                'visible': True,
            })

        regions.append({
            'name': self.ram.name,
            'start': f'0x{self.ram.start:04X}',
            'end': f'0x{ADDRESS_MASK:04X}',
            'size': self.ram.size,
            'type': self.ram.region_type.name,
            'visible': True,
        })
        return regions

    def get_state(self) -> dict:
        """バンク状態を取得"""
        return {
            'bank': self.bank,
            'boot_rom_visible': self.bank == 0,
            'boot_image_size': self.boot_image_size,
            'ram_size': self.ram.size,
        }

    def clear_access_log(self) -> None:
        """アクセスログをクリア"""
        self.access_log.clear()


class ResetController:
    """
    リセットコントローラ

    リセット要因の管理と初期化シーケンス
    """

    class ResetSource(IntEnum):
        """リセット要因"""
        POWER_ON = 0
        SOFTWARE = 1

    def __init__(self, memory: MemoryController):
        self.memory = memory
        self.reset_source = self.ResetSource.POWER_ON
        self.reset_callbacks: List[Callable] = []

    def register_callback(self, callback: Callable) -> None:
        """リセットコールバックを登録"""
        self.reset_callbacks.append(callback)

    def trigger_reset(self, source: Optional['ResetController.ResetSource'] = None) -> None:
        """リセットをトリガー"""
        if source is not None:
            self.reset_source = source

        logger.debug("reset (%s)", self.reset_source.name)

        # バンクレジスタのみ初期化
        self.memory.reset()

        # コールバック実行
        for callback in self.reset_callbacks:
            callback(self.reset_source)

    def get_reset_source(self) -> 'ResetController.ResetSource':
        """最後のリセット要因を取得"""
        return self.reset_source
