"""
ディスクコントローラモジュール

着脱式ブロックストレージ2台の再現

構成:
- ディスク0 / ディスク1 (各16MB, バイト単位アクセス)
- セレクトレジスタ (0/1 以外を選ぶとデータポートは無効)
- アドレスレジスタ (下位8ビット) + ページレジスタ (16ビット)
  -> 24ビットオフセット = addr_low | (page << 8)

レジスタアドレス:
    0x00F7  データポート
    0x00F8  セレクト
    0x00F9  アドレス下位
    0x00FA  ページ下位
    0x00FB  ページ上位
"""

import logging
from typing import Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .memory import MemoryController

logger = logging.getLogger(__name__)


class DiscController:
    """
    ディスクコントローラ

    8+16ビットのアドレスがちょうど16MBの容量を覆うので範囲外アクセスは起こらない
    """

    # レジスタアドレス
    REG_DATA = 0x00F7
    REG_SELECT = 0x00F8
    REG_ADDR = 0x00F9
    REG_PAGE_LOW = 0x00FA
    REG_PAGE_HIGH = 0x00FB

    DISC_SIZE = 1 << 24   # 16MB
    NUM_DISCS = 2

    def __init__(self):
        self.discs: List[bytearray] = [bytearray(self.DISC_SIZE) for _ in range(self.NUM_DISCS)]
        self.memory: Optional['MemoryController'] = None

        # レジスタ
        self.select: int = 0x00
        self.addr_low: int = 0x00
        self.page: int = 0x0000

    def connect_memory(self, memory: 'MemoryController') -> None:
        """メモリコントローラを接続"""
        self.memory = memory
        self._register_peripheral_handlers()

    def _register_peripheral_handlers(self) -> None:
        """周辺レジスタハンドラを登録"""
        if not self.memory:
            return

        self.memory.register_peripheral(
            self.REG_DATA,
            lambda a: self._read_data(),
            lambda a, v: self._write_data(v),
            name='DISC_DATA'
        )
        self.memory.register_peripheral(
            self.REG_SELECT,
            lambda a: self.select,
            lambda a, v: self._write_select(v),
            name='DISC_SELECT'
        )
        self.memory.register_peripheral(
            self.REG_ADDR,
            lambda a: self.addr_low,
            lambda a, v: setattr(self, 'addr_low', v & 0xFF),
            name='DISC_ADDR'
        )
        self.memory.register_peripheral(
            self.REG_PAGE_LOW,
            lambda a: self.page & 0xFF,
            lambda a, v: self._write_page_low(v),
            name='DISC_PAGE_LO'
        )
        self.memory.register_peripheral(
            self.REG_PAGE_HIGH,
            lambda a: (self.page >> 8) & 0xFF,
            lambda a, v: self._write_page_high(v),
            name='DISC_PAGE_HI'
        )

    @property
    def offset(self) -> int:
        """合成オフセット (24ビット)"""
        return self.addr_low | (self.page << 8)

    def _selected_disc(self) -> Optional[bytearray]:
        if 0 <= self.select < self.NUM_DISCS:
            return self.discs[self.select]
        return None

    def _read_data(self) -> int:
        disc = self._selected_disc()
        if disc is None:
            return 0
        return disc[self.offset]

    def _write_data(self, value: int) -> None:
        disc = self._selected_disc()
        if disc is None:
            logger.debug("disc write ignored, select=0x%02X", self.select)
            return
        disc[self.offset] = value & 0xFF

    def _write_select(self, value: int) -> None:
        self.select = value & 0xFF
        if self._selected_disc() is None:
            logger.debug("disc select 0x%02X has no device", self.select)

    def _write_page_low(self, value: int) -> None:
        self.page = (self.page & 0xFF00) | (value & 0xFF)

    def _write_page_high(self, value: int) -> None:
        self.page = (self.page & 0x00FF) | ((value & 0xFF) << 8)

    def load_image(self, unit: int, data: bytes, offset: int = 0) -> int:
        """
        ディスクにイメージを書き込む

        容量を超えた分は切り捨て、書き込んだバイト数を返す
        """
        if not 0 <= unit < self.NUM_DISCS:
            raise ValueError(f"No such disc unit: {unit}")
        if not 0 <= offset < self.DISC_SIZE:
            raise ValueError(f"Offset out of range: 0x{offset:X}")

        end = min(offset + len(data), self.DISC_SIZE)
        self.discs[unit][offset:end] = data[:end - offset]
        return end - offset

    def dump(self, unit: int, offset: int, size: int) -> bytes:
        """ディスク内容を取得 (レジスタは変更しない)"""
        if not 0 <= unit < self.NUM_DISCS:
            raise ValueError(f"No such disc unit: {unit}")
        offset %= self.DISC_SIZE
        return bytes(self.discs[unit][offset:offset + size])

    def get_state(self) -> Dict[str, int]:
        """ディスクレジスタ状態を取得"""
        return {
            'select': self.select,
            'addr_low': self.addr_low,
            'page': self.page,
            'offset': self.offset,
            'valid': self._selected_disc() is not None,
        }
