"""
OwOS Emulator CLI Entry Point

Usage:
    python -m owos_emulator [options] bootrom

Options:
    --disc0 PATH    Disc image for unit 0
    --disc1 PATH    Disc image for unit 1
    --cpu MOD:CLS   CPU implementation to drive the bus
    -r, --run       Run the CPU (requires --cpu)
    -v, --verbose   Verbose output
    -h, --help      Show help
"""

import argparse
import importlib
import logging
import queue
import sys

from .emulator import OwOSEmulator, EmulatorConfig
from .debugger import CLIMonitor
from .loader import BootImageError
from .terminal import BufferSink, KeyboardReader, Terminal, TerminalSink

logger = logging.getLogger('owos_emulator')


def load_cpu(target: str):
    """'module:Class' 形式の指定からCPUを生成"""
    module_name, sep, class_name = target.partition(':')
    if not sep or not module_name or not class_name:
        raise ValueError(f"CPU must be given as module:Class, got {target!r}")

    module = importlib.import_module(module_name)
    return getattr(module, class_name)()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog='owos-emulator',
        description='OwOS 6502 Virtual Machine Bus',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m owos_emulator build-6502/bootrom.disc              # Bus monitor
    python -m owos_emulator bootrom.disc --disc0 root.img         # Monitor with disc
    python -m owos_emulator -r --cpu mycpu:MOS6502 bootrom.disc   # Run OwOS
"""
    )

    parser.add_argument('bootrom', help='Boot ROM image (at most 4096 bytes)')
    parser.add_argument('--disc0', help='Disc image for unit 0')
    parser.add_argument('--disc1', help='Disc image for unit 1')
    parser.add_argument('--ram-size', type=lambda x: int(x, 0), default=0x10000,
                        help='General memory size (default 0x10000)')
    parser.add_argument('--cpu', help='CPU implementation as module:Class')
    parser.add_argument('-r', '--run', action='store_true', help='Run the CPU instead of the monitor')
    parser.add_argument('-n', '--max-instructions', type=int, default=0,
                        help='Stop after N instructions (0 = unlimited)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    )

    if args.run and not args.cpu:
        parser.error('--run requires --cpu')

    config = EmulatorConfig(ram_size=args.ram_size)
    sink = TerminalSink() if args.run else BufferSink()

    try:
        emu = OwOSEmulator.from_file(args.bootrom, config=config, sink=sink)
    except (BootImageError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for unit, path in ((0, args.disc0), (1, args.disc1)):
        if not path:
            continue
        result = emu.load_disc(path, unit)
        if not result.success:
            print(f"Disc {unit} load failed: {result.errors}", file=sys.stderr)
            return 1
        for error in result.errors:
            logger.warning("disc %d: %s", unit, error)

    if not args.run:
        CLIMonitor(emu).run_cli()
        return 0

    try:
        cpu = load_cpu(args.cpu)
    except (ImportError, AttributeError, ValueError) as e:
        print(f"Error: cannot load CPU {args.cpu}: {e}", file=sys.stderr)
        return 1

    input_queue: 'queue.Queue[int]' = queue.Queue()
    reader = KeyboardReader(input_queue)

    with Terminal():
        reader.start()
        try:
            emu.run(cpu, input_queue, max_instructions=args.max_instructions)
        except KeyboardInterrupt:
            emu.stop()
        finally:
            reader.stop()

    # read_byte でブロック中なら待たずに抜ける (daemonスレッド)
    reader.join(timeout=0.1)
    return 0


if __name__ == '__main__':
    sys.exit(main())
