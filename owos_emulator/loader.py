"""
イメージローダーモジュール

ブートROMイメージとディスクイメージを実行環境へロード

- ブートROM: 読めなければ BootImageError (起動不可)
- ディスク: 結果を LoadResult で返す
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, TYPE_CHECKING

from .memory import BOOT_ROM_SIZE

if TYPE_CHECKING:
    from .disc import DiscController

logger = logging.getLogger(__name__)


class BootImageError(OSError):
    """ブートROMイメージを読み込めない"""


@dataclass
class LoadResult:
    """ロード結果"""
    success: bool = False
    unit: int = 0
    offset: int = 0
    size: int = 0
    errors: List[str] = field(default_factory=list)


class BootImageLoader:
    """
    ブートROMローダー

    ファイルを丸ごと読み込むだけ。サイズ検証はメモリコントローラ側で行う。
    """

    def load_boot_image(self, filepath: str) -> bytes:
        """ブートROMイメージを読み込む"""
        try:
            with open(filepath, 'rb') as f:
                data = f.read()
        except OSError as e:
            raise BootImageError(e.errno, f"Cannot read boot image: {e.strerror or e}", filepath) from e

        if len(data) > BOOT_ROM_SIZE:
            logger.warning("boot image %s is %d bytes (window is %d)", filepath, len(data), BOOT_ROM_SIZE)
        else:
            logger.info("boot image %s: %d bytes", filepath, len(data))

        return data


class DiscImageLoader:
    """
    ディスクイメージローダー

    Raw イメージファイルをディスクユニットへコピー
    """

    def __init__(self):
        self.disc: Optional['DiscController'] = None

    def connect_disc(self, disc: 'DiscController') -> None:
        """ディスクコントローラを接続"""
        self.disc = disc

    def load_disc(self, filepath: str, unit: int, offset: int = 0) -> LoadResult:
        """ディスクイメージファイルをロード"""
        result = LoadResult(unit=unit, offset=offset)

        if self.disc is None:
            result.errors.append("No disc controller connected")
            return result

        try:
            with open(filepath, 'rb') as f:
                data = f.read()
        except OSError as e:
            result.errors.append(str(e))
            return result

        try:
            result.size = self.disc.load_image(unit, data, offset)
        except ValueError as e:
            result.errors.append(str(e))
            return result

        if result.size < len(data):
            result.errors.append(
                f"Image truncated: {len(data) - result.size} bytes past end of disc"
            )

        result.success = True
        logger.info("disc %d: loaded %d bytes from %s at 0x%06X", unit, result.size, filepath, offset)

        return result
