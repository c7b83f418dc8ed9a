"""
UART テスト

受信ラッチ/キュー・ステータスビット・エコー・送信経路の確認
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from owos_emulator import OwOSEmulator, BufferSink, InterruptLine
from owos_emulator.uart import SerialController, StatusFlags, CommandFlags


DATA = 0x00FC
STATUS = 0x00FD
COMMAND = 0x00FE
CONTROL = 0x00FF


class CountingCPU:
    """IRQ要求を数えるだけのCPU"""

    def __init__(self):
        self.irq_count = 0

    def interrupt_request(self):
        self.irq_count += 1


def make_emulator():
    sink = BufferSink()
    emu = OwOSEmulator(sink=sink)
    return emu, sink


def test_initial_registers():
    """初期値"""
    print("Testing UART initial state...")

    emu, _ = make_emulator()

    assert emu.read(STATUS) == 0x10, "TDRE should be set at power-on"
    assert emu.read(COMMAND) == 0x02, "receiver IRQ should be disabled at power-on"
    assert emu.read(CONTROL) == 0x00

    print("  UART initial state: OK")


def test_receive_and_read():
    """受信した順にデータレジスタから読める"""
    print("Testing receive/read ordering...")

    emu, _ = make_emulator()
    cpu = CountingCPU()
    emu.write(COMMAND, CommandFlags.DTR | CommandFlags.IRD)

    for byte in b"OwOS":
        emu.receive(cpu, byte)

    assert emu.read(STATUS) & StatusFlags.RDRF
    assert emu.uart.get_rx_queue() == list(b"wOS")

    received = bytes(emu.read(DATA) for _ in range(4))
    assert received == b"OwOS", f"got {received!r}"

    # 最後の読み込みで RDRF が落ちる
    assert not emu.read(STATUS) & StatusFlags.RDRF
    assert emu.read(DATA) == 0
    assert cpu.irq_count == 0, "IRD set, no interrupt expected"

    print("  Receive/read ordering: OK")


def test_receive_ignored_when_disabled():
    """DTRが落ちていれば受信しない"""
    emu, sink = make_emulator()
    cpu = CountingCPU()

    emu.write(COMMAND, CommandFlags.ECHO)
    emu.receive(cpu, ord('x'))

    assert emu.uart.data_rx == 0
    assert emu.uart.get_rx_queue() == []
    assert not emu.read(STATUS) & StatusFlags.RDRF
    assert sink.get_text() == ''
    assert cpu.irq_count == 0


def test_receive_interrupt():
    """受信割り込みとステータスビット7"""
    print("Testing receive interrupt...")

    emu, _ = make_emulator()
    cpu = CountingCPU()
    emu.write(COMMAND, CommandFlags.DTR)

    emu.receive(cpu, 0x41)
    assert cpu.irq_count == 1
    status = emu.read(STATUS)
    assert status & StatusFlags.IRQ
    assert status & StatusFlags.RDRF

    # データ読み込みで bit 7 がクリアされる
    assert emu.read(DATA) == 0x41
    assert not emu.read(STATUS) & StatusFlags.IRQ

    emu.receive(cpu, 0x42)
    emu.receive(cpu, 0x43)
    assert cpu.irq_count == 3

    print("  Receive interrupt: OK")


def test_receive_with_irq_disabled_clears_bit7():
    """IRD有効時は割り込みなしでbit 7を落とす"""
    emu, _ = make_emulator()
    cpu = CountingCPU()

    emu.write(COMMAND, CommandFlags.DTR)
    emu.receive(cpu, 0x41)
    assert emu.read(STATUS) & StatusFlags.IRQ

    emu.write(COMMAND, CommandFlags.DTR | CommandFlags.IRD)
    emu.receive(cpu, 0x42)
    assert cpu.irq_count == 1
    assert not emu.read(STATUS) & StatusFlags.IRQ
    assert emu.read(STATUS) & StatusFlags.RDRF


def test_interrupt_line_as_cpu():
    """InterruptLine は receive() の cpu として使える"""
    emu, _ = make_emulator()
    cpu = CountingCPU()
    line = InterruptLine(cpu)

    emu.write(COMMAND, CommandFlags.DTR)
    emu.receive(line, ord('a'))

    assert line.pending
    assert line.request_count == 1
    assert cpu.irq_count == 1
    assert line.acknowledge() is True
    assert line.acknowledge() is False
    assert [e['event'] for e in line.get_interrupt_log()] == ['request', 'acknowledge']


def test_echo_translates_newline():
    """エコーモード: 受信文字を送り返し、改行にはCRを付ける"""
    print("Testing echo...")

    emu, sink = make_emulator()
    cpu = CountingCPU()
    emu.write(COMMAND, CommandFlags.DTR | CommandFlags.IRD | CommandFlags.ECHO)

    emu.uart.receive_string(cpu, "hi\n")

    assert sink.get_text() == "hi\n\r", f"got {sink.get_text()!r}"
    assert sink.flush_count == 3, "sink should be flushed after every character"

    # エコーしても受信データは残る
    assert emu.read(DATA) == ord('h')

    print("  Echo: OK")


def test_status_read_bits_after_data_read():
    """データ読み込み後はビット3-6のみ残る"""
    emu, _ = make_emulator()
    cpu = CountingCPU()
    emu.write(COMMAND, CommandFlags.DTR | CommandFlags.IRD)

    emu.receive(cpu, 0x31)
    emu.receive(cpu, 0x32)
    emu.uart.status = 0xFF

    assert emu.read(DATA) == 0x31
    assert emu.read(STATUS) == 0x78, f"got {emu.read(STATUS):#04x}"


def test_zero_byte_latch():
    """受信ラッチ値0は空とみなされる"""
    print("Testing zero byte latch...")

    emu, _ = make_emulator()
    cpu = CountingCPU()
    emu.write(COMMAND, CommandFlags.DTR | CommandFlags.IRD)

    # ラッチ済みなら0もキューに入る
    emu.receive(cpu, 0x41)
    emu.receive(cpu, 0x00)
    emu.receive(cpu, 0x42)
    assert emu.uart.get_rx_queue() == [0x00, 0x42]
    assert [emu.read(DATA) for _ in range(3)] == [0x41, 0x00, 0x42]

    # 空のラッチへ0を入れると次のバイトに上書きされる
    emu.receive(cpu, 0x00)
    emu.receive(cpu, 0x43)
    assert emu.uart.get_rx_queue() == []
    assert emu.read(DATA) == 0x43

    print("  Zero byte latch: OK")


def test_transmit_when_enabled():
    """送受信許可時、データ書き込みで即送信"""
    print("Testing transmit...")

    emu, sink = make_emulator()
    emu.write(COMMAND, CommandFlags.DTR | CommandFlags.IRD)

    for byte in b"ok\n":
        emu.write(DATA, byte)

    assert sink.get_text() == "ok\n\r"
    assert emu.read(STATUS) & StatusFlags.TDRE

    print("  Transmit: OK")


def test_transmit_deferred_until_enabled():
    """DTRが落ちていれば保留し、コマンド書き込みで送信"""
    print("Testing deferred transmit...")

    emu, sink = make_emulator()

    emu.write(DATA, ord('Z'))
    assert sink.get_text() == ''
    assert not emu.read(STATUS) & StatusFlags.TDRE

    emu.write(COMMAND, CommandFlags.DTR)
    assert sink.get_text() == 'Z'
    assert emu.read(STATUS) & StatusFlags.TDRE

    # 以降のコマンド書き込みでは再送しない
    emu.write(COMMAND, CommandFlags.DTR | CommandFlags.IRD)
    assert sink.get_text() == 'Z'

    print("  Deferred transmit: OK")


def test_deferred_newline_gets_carriage_return():
    """保留されていた改行もCR付きで送信"""
    emu, sink = make_emulator()

    emu.write(DATA, 0x0A)
    emu.write(COMMAND, CommandFlags.DTR)

    assert sink.get_text() == "\n\r"


def test_zero_byte_transmit_is_deferred():
    """0の送信は許可中でも保留扱い"""
    emu, sink = make_emulator()
    emu.write(COMMAND, CommandFlags.DTR)

    emu.write(DATA, 0x00)
    assert sink.get_text() == ''
    assert not emu.read(STATUS) & StatusFlags.TDRE

    emu.write(COMMAND, CommandFlags.DTR)
    assert sink.get_text() == '\x00'
    assert emu.read(STATUS) & StatusFlags.TDRE


def test_programmed_reset():
    """ステータスレジスタ書き込みはプログラムリセット"""
    print("Testing programmed reset...")

    emu, _ = make_emulator()
    emu.write(COMMAND, 0xFF)
    emu.uart.status |= StatusFlags.OVERRUN | StatusFlags.DSR

    emu.write(STATUS, 0x00)

    assert emu.read(COMMAND) == 0x02
    status = emu.read(STATUS)
    assert not status & StatusFlags.OVERRUN
    assert status & StatusFlags.DSR, "other status bits are left alone"

    print("  Programmed reset: OK")


def test_control_register_is_stored():
    """コントロールレジスタは保持のみ"""
    emu, _ = make_emulator()
    emu.write(CONTROL, 0x1F)
    assert emu.read(CONTROL) == 0x1F


def test_reset_keeps_modem_bits():
    """リセットはDCD/DSRのみ保持してTDREを立てる"""
    print("Testing UART reset...")

    emu, _ = make_emulator()
    cpu = CountingCPU()
    emu.write(COMMAND, CommandFlags.DTR)
    emu.receive(cpu, 0x41)
    emu.receive(cpu, 0x42)
    emu.write(CONTROL, 0x1F)
    emu.uart.status = 0xEF

    emu.reset()

    assert emu.read(STATUS) == 0x70, f"got {emu.read(STATUS):#04x}"
    assert emu.read(COMMAND) == 0x02
    assert emu.read(CONTROL) == 0x00
    assert emu.uart.get_rx_queue() == []
    assert emu.uart.data_rx == 0

    print("  UART reset: OK")


def test_reset_drops_pending_transmit():
    """リセットで保留中の送信データは捨てられる"""
    emu, sink = make_emulator()

    emu.write(DATA, ord('Q'))
    assert emu.uart.data_tx == ord('Q')
    assert not emu.read(STATUS) & StatusFlags.TDRE

    emu.reset()

    assert emu.uart.data_tx == 0
    assert emu.read(STATUS) & StatusFlags.TDRE

    # 許可しても何も送信されない
    emu.write(COMMAND, CommandFlags.DTR)
    assert sink.get_text() == ''


def test_without_sink():
    """出力先なしでも動作する"""
    uart = SerialController(sink=None)
    uart.command = CommandFlags.DTR
    uart._write_data(ord('a'))
    assert uart.data_tx == ord('a')


def test_state_snapshot():
    """状態取得"""
    emu, _ = make_emulator()
    emu.write(COMMAND, CommandFlags.DTR | CommandFlags.ECHO)

    state = emu.uart.get_state()
    assert state['command'] == 0x11
    assert state['command_flags']['ECHO'] is True
    assert state['command_flags']['IRD'] is False
    assert state['status_flags']['TDRE'] is True
    assert state['rx_pending'] == 0


def run_all_tests():
    """全テスト実行"""
    print("=" * 50)
    print("OwOS UART Test Suite")
    print("=" * 50)

    tests = [
        test_initial_registers,
        test_receive_and_read,
        test_receive_ignored_when_disabled,
        test_receive_interrupt,
        test_receive_with_irq_disabled_clears_bit7,
        test_interrupt_line_as_cpu,
        test_echo_translates_newline,
        test_status_read_bits_after_data_read,
        test_zero_byte_latch,
        test_transmit_when_enabled,
        test_transmit_deferred_until_enabled,
        test_deferred_newline_gets_carriage_return,
        test_zero_byte_transmit_is_deferred,
        test_programmed_reset,
        test_control_register_is_stored,
        test_reset_keeps_modem_bits,
        test_reset_drops_pending_transmit,
        test_without_sink,
        test_state_snapshot,
    ]

    passed = 0
    failed = 0

    for test in tests:
        try:
            test()
            passed += 1
        except AssertionError as e:
            print(f"  FAILED: {test.__name__}: {e}")
            failed += 1

    print()
    print(f"Results: {passed} passed, {failed} failed")

    return failed == 0


if __name__ == '__main__':
    success = run_all_tests()
    sys.exit(0 if success else 1)
