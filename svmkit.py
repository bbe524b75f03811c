#!/usr/bin/env python3
"""
svmkit — Stack VM Toolkit
=========================

One CLI for the stack VM:
    svmkit asm      — Assemble .svm text to a program image
    svmkit disasm   — List a program image as instructions
    svmkit run      — Run a .svm source or image file
    svmkit opcodes  — Print the opcode table

Usage:
    python svmkit.py <command> [options]
    python svmkit.py <command> --help

Examples:
    python svmkit.py asm fib.svm -o fib.json
    python svmkit.py disasm fib.json
    python svmkit.py run fib.svm --profile debug --trace
    python svmkit.py run fib.json --memory 4096 --max-steps 100000

Image files: .json holds a JSON array of integers, any other extension holds
integers separated by whitespace or commas.

Exit status: 0 on HALT, 1 on assembly / runtime / file errors, 2 on internal
errors, 3 when the --max-steps budget runs out.
"""

import argparse
import logging
import os
import sys

# Allow running from project root without installing
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from stackvm import __version__
from stackvm.assembler import assemble_source, format_listing
from stackvm.errors import AssemblerError, VMError
from stackvm.log_setup import reset_logging, setup_logging
from stackvm.opcodes import OPCODES
from stackvm.profiles import (
    PROFILES, get_profile, load_profile, read_image, write_image,
)
from stackvm.vm import StopReason, VirtualMachine

log = logging.getLogger("stackvm.cli")

SOURCE_EXTENSIONS = ('.svm', '.asm', '.s')

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERNAL = 2
EXIT_STEP_LIMIT = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="svmkit",
        description="Stack VM toolkit — assemble, disassemble, run",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Profiles: " + ", ".join(PROFILES),
    )
    parser.add_argument("--version", action="version", version=f"svmkit {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase log verbosity (-v info, -vv debug)")
    parser.add_argument("--log-file", default=None, help="Also write a DEBUG log to this file")
    sub = parser.add_subparsers(dest="command", metavar="command")

    # ── asm ──────────────────────────────────────────────────────────────
    p_asm = sub.add_parser("asm", help="Assemble .svm source to a program image")
    p_asm.add_argument("input", help="Input .svm file")
    p_asm.add_argument("-o", "--output", help="Output image (.json or text); stdout if omitted")
    p_asm.add_argument("--listing", action="store_true", help="Print a listing instead of the image")

    # ── disasm ───────────────────────────────────────────────────────────
    p_dis = sub.add_parser("disasm", help="List a program image as instructions")
    p_dis.add_argument("input", help="Input image file")
    p_dis.add_argument("-o", "--output", help="Output file (default: stdout)")

    # ── run ──────────────────────────────────────────────────────────────
    p_run = sub.add_parser("run", help="Run a .svm source or image file")
    p_run.add_argument("input", help="Input .svm source or image file")
    p_run.add_argument("--profile", default="default", choices=list(PROFILES),
                       help="Machine profile (default: default)")
    p_run.add_argument("--config", default=None,
                       help="JSON file of profile overrides applied on top of --profile")
    p_run.add_argument("--stack", type=int, default=None, help="Stack capacity hint")
    p_run.add_argument("--memory", type=int, default=None, help="Memory capacity in cells")
    p_run.add_argument("--max-steps", type=int, default=None,
                       help="Stop with exit status 3 after this many instructions")
    p_run.add_argument("--print-consumes", action="store_true", default=None,
                       help="PRINT pops its value instead of peeking")
    p_run.add_argument("--check-returns", action="store_true", default=None,
                       help="Fail if RET pops a value that CALL did not push")
    p_run.add_argument("--trace", action="store_true",
                       help="Write an instruction trace to stderr")

    # ── opcodes ──────────────────────────────────────────────────────────
    sub.add_parser("opcodes", help="Print the opcode table")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return EXIT_OK

    if args.verbose >= 2:
        level = logging.DEBUG
    elif args.verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    reset_logging()
    setup_logging(console_level=level, log_file=args.log_file)

    try:
        return COMMANDS[args.command](args)
    except AssemblerError as e:
        print(f"Assembly error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except VMError as e:
        print(f"Runtime error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except Exception as e:
        print(f"Internal error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return EXIT_INTERNAL


# ═════════════════════════════════════════════════════════════════════════════
# COMMAND IMPLEMENTATIONS
# ═════════════════════════════════════════════════════════════════════════════

def _read_text(path):
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _load_any(path):
    """Image from a source file (assembled) or an image file."""
    if os.path.splitext(path)[1].lower() in SOURCE_EXTENSIONS:
        return assemble_source(_read_text(path))
    return read_image(path)


# ── asm ──────────────────────────────────────────────────────────────────
def cmd_asm(args):
    image = assemble_source(_read_text(args.input))
    log.info("Assembled %s: %d cells", args.input, len(image))

    if args.listing:
        print(format_listing(image))
        return EXIT_OK
    if args.output:
        write_image(args.output, image)
        print(f"Assembled {len(image)} cells -> {args.output}")
    else:
        print(' '.join(str(v) for v in image))
    return EXIT_OK


# ── disasm ───────────────────────────────────────────────────────────────
def cmd_disasm(args):
    listing = format_listing(read_image(args.input))
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(listing + "\n")
        print(f"Disassembled {args.input} -> {args.output}")
    else:
        print(listing)
    return EXIT_OK


# ── run ──────────────────────────────────────────────────────────────────
def cmd_run(args):
    profile = get_profile(args.profile)
    if args.config:
        profile = load_profile(args.config, base=profile)
    profile = profile.with_overrides(
        stack_capacity=args.stack,
        memory_capacity=args.memory,
        max_steps=args.max_steps,
        print_consumes=args.print_consumes,
        check_returns=args.check_returns,
    )
    log.info("Profile: %s", profile)

    image = _load_any(args.input)
    vm = VirtualMachine.from_profile(profile)
    vm.enable_trace(args.trace)
    vm.load_program(image)
    try:
        reason = vm.run(max_steps=profile.max_steps)
    finally:
        if args.trace:
            print(vm.get_trace(), file=sys.stderr)

    log.info("Stopped: %s after %d steps", reason.value, vm.steps)
    if reason is StopReason.STEP_LIMIT:
        print(f"Step limit of {profile.max_steps} reached at ip={vm.ip}", file=sys.stderr)
        return EXIT_STEP_LIMIT
    return EXIT_OK


# ── opcodes ──────────────────────────────────────────────────────────────
def cmd_opcodes(args):
    print(f"{'ID':<6}{'MNEMONIC':<10}{'OPERANDS':<10}NAME")
    for opcode, (mnem, count) in OPCODES.items():
        print(f"${int(opcode):02X}   {mnem:<10}{count:<10}{opcode.name}")
    return EXIT_OK


COMMANDS = {
    "asm": cmd_asm,
    "disasm": cmd_disasm,
    "run": cmd_run,
    "opcodes": cmd_opcodes,
}


if __name__ == "__main__":
    sys.exit(main())
