"""
シリアルエコー サンプルプログラム

6502の代わりにPythonのジェネレータでブートコードの動きを再現するデモ
- ディスク0の先頭256バイトをRAMへコピー
- バンクを切り替えてROM窓をRAMにする
- コピーしたバナーをUARTへ出力
- 受信した文字をエコー
"""

import sys
import os
import queue

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from owos_emulator import OwOSEmulator, TerminalSink


# ポート
DISC_DATA = 0x00F7
DISC_SELECT = 0x00F8
DISC_ADDR = 0x00F9
DISC_PAGE_LOW = 0x00FA
DISC_PAGE_HIGH = 0x00FB
UART_DATA = 0x00FC
UART_STATUS = 0x00FD
UART_COMMAND = 0x00FE

RDRF = 0x08
LOAD_ADDRESS = 0x0400


class ScriptCPU:
    """1ステップ = ジェネレータを1つ進める擬似CPU"""

    def __init__(self):
        self.program = None
        self.irq_count = 0

    def reset(self, bus):
        self.program = self.boot(bus)

    def execute_instruction(self, bus):
        next(self.program, None)

    def interrupt_request(self):
        self.irq_count += 1

    def boot(self, bus):
        # ディスク0, オフセット0
        bus.write(DISC_SELECT, 0)
        bus.write(DISC_PAGE_LOW, 0)
        bus.write(DISC_PAGE_HIGH, 0)
        for i in range(256):
            bus.write(DISC_ADDR, i)
            bus.write(LOAD_ADDRESS + i, bus.read(DISC_DATA))
            yield

        # ROMを隠す
        bus.write(0x0000, 1)
        yield

        # 送受信許可 + 受信割り込み
        bus.write(UART_COMMAND, 0x01)
        address = LOAD_ADDRESS
        while bus.read(address):
            bus.write(UART_DATA, bus.read(address))
            address += 1
            yield

        while True:
            if bus.read(UART_STATUS) & RDRF:
                bus.write(UART_DATA, bus.read(UART_DATA))
            yield


def main():
    print("OwOS Serial Echo Demo")
    print("=" * 40)

    emu = OwOSEmulator(sink=TerminalSink())
    emu.disc.load_image(0, b"OwOS disc boot OK\n\x00")

    # 起動 (UART許可前の入力は捨てられるのでキューなし)
    cpu = ScriptCPU()
    executed = emu.run(cpu, max_instructions=300)

    input_queue = queue.Queue()
    for byte in b"echo test\n":
        input_queue.put(byte)

    executed += emu.run(cpu, input_queue, max_instructions=100, reset_cpu=False)

    # 最終状態
    print()
    print("Final State:")
    print(f"  Instructions executed: {executed}")
    print(f"  Bank: 0x{emu.memory.bank:02X}")
    print(f"  IRQ requests: {cpu.irq_count}")
    print(f"  Memory @0x{LOAD_ADDRESS:04X}:")
    print(emu.dump_memory(LOAD_ADDRESS, 32))


if __name__ == '__main__':
    main()
