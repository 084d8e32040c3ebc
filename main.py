#!/usr/bin/env python3
"""Synacor VM Command Line Interface.

Run program images with the Synacor VM.

Usage:
    python main.py --image challenge.bin
    python main.py --image challenge.bin --load-state state.json --save-state state.json
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from synacor_vm import Console, CycleLimitExceeded, QueuedInput, StreamInput, StreamOutput, VirtualMachine
from synacor_vm.snapshot import load_state, save_state


def setup_logging(verbose: int, quiet: bool, debug_log: Optional[str] = None) -> None:
    """Configure logging: console on stderr, optional DEBUG trace file."""
    if quiet:
        level = logging.ERROR
    elif verbose == 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    handlers = [console]

    if debug_log:
        log_path = Path(debug_log)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="w", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
        handlers.append(file_handler)
        level = logging.DEBUG

    logging.basicConfig(level=level, handlers=handlers, force=True)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Synacor VM: run 16-bit program images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run the challenge image interactively
    python main.py --image challenge.bin

    # Feed scripted commands and save the state on exit
    python main.py --image challenge.bin --input commands.txt --save-state state.json

    # Resume from a saved state
    python main.py --image challenge.bin --load-state state.json

    # Run an inline program with a full trace
    python main.py --inline "set r0 72, out r0, out 105, out 10, halt" --trace
        """
    )

    parser.add_argument(
        "--image", "-p",
        type=str,
        help="Path to little-endian 16-bit program image"
    )
    parser.add_argument(
        "--inline", "-i",
        type=str,
        help="Inline program: numbers, r0-r7 and mnemonics separated by commas or spaces"
    )
    parser.add_argument(
        "--input",
        type=str,
        help="File whose contents are fed to the program as input (default: stdin)"
    )
    parser.add_argument(
        "--memory-size",
        type=int,
        help="Allocate at least this many memory cells (zero padded)"
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        help="Maximum execution cycles (safety limit). Default: unlimited"
    )
    parser.add_argument(
        "--load-state",
        type=str,
        help="Restore registers, stack and PC from a JSON state file before running"
    )
    parser.add_argument(
        "--save-state",
        type=str,
        help="Write registers, stack and PC to a JSON state file when execution stops"
    )
    parser.add_argument(
        "--include-memory",
        action="store_true",
        help="Also persist memory in --save-state (full resume)"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace"
    )
    parser.add_argument(
        "--debug-log",
        type=str,
        help="Write a per-instruction debug log to this file"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase log verbosity (-v, -vv)"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only program output and errors"
    )

    args = parser.parse_args(argv)

    # Validate arguments
    if not args.image and not args.inline:
        parser.error("Either --image or --inline is required")

    setup_logging(args.verbose, args.quiet, args.debug_log)

    if args.input:
        input_path = Path(args.input)
        if not input_path.exists():
            print(f"Error: Input file not found: {args.input}", file=sys.stderr)
            return 1
        source = QueuedInput(input_path.read_bytes())
    else:
        source = StreamInput(sys.stdin)

    vm = VirtualMachine(
        console=Console(input=source, output=StreamOutput(sys.stdout)),
        max_cycles=args.max_cycles,
        memory_size=args.memory_size,
        trace=args.trace,
    )

    # Load program
    try:
        if args.image:
            image_path = Path(args.image)
            if not image_path.exists():
                print(f"Error: Image file not found: {args.image}", file=sys.stderr)
                return 1
            vm.load_image(image_path)
        else:
            vm.load_source(args.inline)

        if args.load_state:
            vm.restore(load_state(args.load_state))
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result = None
    try:
        result = vm.run()
    except CycleLimitExceeded as e:
        print(f"\nExecution stopped: {e}", file=sys.stderr)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)

    if args.save_state:
        save_state(args.save_state, vm.save(include_memory=args.include_memory))

    # Output
    if args.trace:
        vm.print_trace()
    elif not args.quiet:
        summary = vm.get_summary()
        print(file=sys.stderr)
        print(f"Cycles: {summary['cycles']}", file=sys.stderr)
        print(f"Status: {summary['status']}", file=sys.stderr)
        print(f"Registers: {summary['registers']}", file=sys.stderr)
        if summary["fault"]:
            print(f"Fault: {summary['fault']}", file=sys.stderr)

    # Return exit code based on halted state
    return 0 if result is not None and result.halted else 1


if __name__ == "__main__":
    sys.exit(main())
