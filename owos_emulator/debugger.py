"""
モニタ/デバッガモジュール

CPUを接続せずにバスを直接操作する対話型モニタ:
- レジスタ表示 (バンク, UART, ディスク)
- メモリ表示 (副作用なし)
- バス読み書き (副作用あり)
- UART受信の注入と送信ログ表示
- ディスク内容表示
"""

from typing import List, Optional

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich import box

from .emulator import OwOSEmulator
from .interrupt import InterruptLine
from .uart import StatusFlags, CommandFlags


# 6502 ベクタ
VECTORS = (
    ('NMI', 0xFFFA),
    ('RESET', 0xFFFC),
    ('IRQ', 0xFFFE),
)


def _parse_int(text: str) -> int:
    return int(text, 0)


class Monitor:
    """
    モニタ

    エミュレータのバス状態を表示・操作する
    """

    def __init__(self, emulator: OwOSEmulator, console: Optional[Console] = None):
        self.emu = emulator
        self.console = console or Console()

        # CPUの代わりにIRQを受ける信号線
        self.irq: InterruptLine = emulator.irq

        # 履歴
        self.command_history: List[str] = []

    def output(self, text: str) -> None:
        """出力"""
        self.console.print(text, markup=False, highlight=False)

    def _bits(self, value: int, flags) -> Text:
        text = Text()
        for flag in sorted(flags, key=lambda f: f.value, reverse=True):
            style = "bright_green" if value & flag else "dim"
            text.append(f"{flag.name} ", style=style)
        return text

    def show_registers(self) -> None:
        """レジスタ表示"""
        state = self.emu.get_state()
        mem = state['memory']
        uart = state['uart']
        disc = state['disc']

        table = Table(show_header=True, header_style="bold cyan", box=box.SIMPLE)
        table.add_column("Register", style="cyan")
        table.add_column("Value", style="green")
        table.add_column("Detail")

        window = "BootROM" if mem['boot_rom_visible'] else "RAM"
        table.add_row("BANK", f"0x{mem['bank']:02X}", f"0xF000-0xFFFF: {window}")
        table.add_row("UART DATA", f"RX 0x{uart['data_rx']:02X}  TX 0x{uart['data_tx']:02X}",
                      f"{uart['rx_pending']} queued")
        table.add_row("UART STATUS", f"0x{uart['status']:02X}", self._bits(uart['status'], StatusFlags))
        table.add_row("UART COMMAND", f"0x{uart['command']:02X}", self._bits(uart['command'], CommandFlags))
        table.add_row("UART CONTROL", f"0x{uart['control']:02X}", "")
        select = f"0x{disc['select']:02X}" + ("" if disc['valid'] else " (none)")
        table.add_row("DISC SELECT", select, "")
        table.add_row("DISC OFFSET", f"0x{disc['offset']:06X}",
                      f"page 0x{disc['page']:04X} addr 0x{disc['addr_low']:02X}")

        irq = state['interrupt']
        table.add_row("IRQ", "pending" if irq['pending'] else "-", f"{irq['request_count']} requests")

        self.console.print(Panel(table, title="[bold blue]OwOS Bus[/bold blue]",
                                 border_style="blue", box=box.ROUNDED))

    def show_memory(self, address: int, size: int = 64) -> None:
        """メモリ表示"""
        self.output(f"=== Memory Dump: 0x{address:04X} ===")
        self.output(self.emu.dump_memory(address, size))

    def show_memory_map(self) -> None:
        """メモリマップ表示"""
        table = Table(show_header=True, header_style="bold magenta", box=box.SIMPLE)
        table.add_column("Region", style="cyan")
        table.add_column("Start", style="green")
        table.add_column("End", style="green")
        table.add_column("Type", style="yellow")
        table.add_column("Visible")

        for region in self.emu.get_memory_map():
            visible = Text("yes", style="bright_green") if region['visible'] else Text("no", style="dim")
            table.add_row(region['name'], region['start'], region['end'], region['type'], visible)

        self.console.print(table)

    def show_vectors(self) -> None:
        """ベクタ表示"""
        for name, address in VECTORS:
            self.output(f"{name:<6} (0x{address:04X}): 0x{self.emu.memory.peek16(address):04X}")

    def show_output(self) -> None:
        """UART送信ログ表示"""
        sink = self.emu.uart.sink
        text = sink.get_text() if hasattr(sink, 'get_text') else ''
        self.output("=== UART Output ===")
        self.output(text.replace('\r', '') if text else "(empty)")

    def show_interrupts(self) -> None:
        """割り込みログ表示"""
        self.output("=== Interrupt Log ===")
        log = self.irq.get_interrupt_log(20)
        if not log:
            self.output("  (none)")
        for entry in log:
            self.output(f"  {entry['event']:<12} #{entry['count']}")

    def show_disc(self, unit: int, offset: int, size: int = 64) -> None:
        """ディスク内容表示"""
        data = self.emu.disc.dump(unit, offset, size)
        self.output(f"=== Disc {unit}: 0x{offset:06X} ===")
        for i in range(0, len(data), 16):
            chunk = data[i:i+16]
            hex_part = ' '.join(f'{b:02X}' for b in chunk)
            self.output(f"{offset + i:06X}: {hex_part}")

    def send(self, text: str) -> None:
        """UART受信を注入"""
        self.emu.uart.receive_string(self.irq, text)

    def show_help(self) -> None:
        """ヘルプ表示"""
        help_text = Text()
        commands = [
            ("r, regs", "Show bank/UART/disc registers"),
            ("m <addr> [n]", "Show memory (no side effects)"),
            ("rb <addr>", "Bus read (with side effects)"),
            ("wb <addr> <val>", "Bus write"),
            ("send <text>", "Deliver text to the UART receiver (\\n for newline)"),
            ("out", "Show UART output"),
            ("irq", "Show interrupt log"),
            ("ack", "Acknowledge pending IRQ"),
            ("disc <u> <off> [n]", "Show disc contents"),
            ("map", "Show memory map"),
            ("vectors", "Show NMI/RESET/IRQ vectors"),
            ("reset", "Reset system"),
            ("q, quit", "Quit monitor"),
            ("h, help", "Show this help"),
        ]
        for name, description in commands:
            help_text.append(f"  {name:<20}", style="cyan")
            help_text.append(f"{description}\n", style="dim")

        self.console.print(Panel(help_text, title="[bold white]Monitor Commands[/bold white]",
                                 border_style="white", box=box.ROUNDED))


class CLIMonitor(Monitor):
    """
    CLIモニタ

    コマンドライン対話型モニタ
    """

    def __init__(self, emulator: OwOSEmulator, console: Optional[Console] = None):
        super().__init__(emulator, console)
        self.running_cli = True

    def run_cli(self) -> None:
        """CLI実行"""
        self.console.print(Group(
            Text("OwOS Bus Monitor", style="bold cyan"),
            Text("Type 'help' for commands", style="dim"),
        ))

        self.show_registers()

        while self.running_cli:
            try:
                cmd = self.console.input("\n(owos) ").strip()
                if cmd:
                    self.execute_command(cmd)
            except EOFError:
                break
            except KeyboardInterrupt:
                self.output("\nInterrupted")
                break

    def execute_command(self, cmd: str) -> None:
        """コマンド実行"""
        self.command_history.append(cmd)
        parts = cmd.split(maxsplit=1) if cmd.lower().startswith('send') else cmd.split()

        if not parts:
            return

        command = parts[0].lower()
        args = parts[1:]

        try:
            if command in ('r', 'regs'):
                self.show_registers()

            elif command in ('m', 'mem'):
                addr = _parse_int(args[0]) if args else 0
                size = _parse_int(args[1]) if len(args) > 1 else 64
                self.show_memory(addr, size)

            elif command == 'rb':
                addr = _parse_int(args[0])
                value = self.emu.read(addr)
                self.output(f"[0x{addr & 0xFFFF:04X}] -> 0x{value:02X}")

            elif command == 'wb':
                addr = _parse_int(args[0])
                value = _parse_int(args[1])
                self.emu.write(addr, value)
                self.output(f"[0x{addr & 0xFFFF:04X}] <- 0x{value & 0xFF:02X}")

            elif command == 'send':
                text = args[0] if args else ''
                self.send(text.replace('\\n', '\n'))

            elif command == 'out':
                self.show_output()

            elif command == 'irq':
                self.show_interrupts()

            elif command == 'ack':
                if self.irq.acknowledge():
                    self.output("IRQ acknowledged")
                else:
                    self.output("No IRQ pending")

            elif command == 'disc':
                unit = _parse_int(args[0])
                offset = _parse_int(args[1]) if len(args) > 1 else 0
                size = _parse_int(args[2]) if len(args) > 2 else 64
                self.show_disc(unit, offset, size)

            elif command == 'map':
                self.show_memory_map()

            elif command == 'vectors':
                self.show_vectors()

            elif command == 'reset':
                self.emu.reset(self.emu.reset_controller.ResetSource.SOFTWARE)
                self.irq.reset()
                source = self.emu.reset_controller.get_reset_source()
                self.output(f"System reset ({source.name})")
                self.show_registers()

            elif command in ('q', 'quit', 'exit'):
                self.running_cli = False

            elif command in ('h', 'help', '?'):
                self.show_help()

            else:
                self.output(f"Unknown command: {command}")
                self.output("Type 'help' for available commands")

        except (ValueError, IndexError) as e:
            self.output(f"Invalid argument: {e}")
