"""
procvm command line

    procvm disasm FILE
    procvm run FILE PROC [ARGS...]
"""

import argparse
import logging
import sys

from compiler import ProcVMError
from .context import Context


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(prog="procvm")
    ap.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = ap.add_subparsers(dest="cmd", required=True)

    d = sub.add_parser("disasm", help="print the bytecode of every procedure")
    d.add_argument("src")

    r = sub.add_parser("run", help="compile and run one procedure")
    r.add_argument("src")
    r.add_argument("proc")
    r.add_argument("args", nargs="*", type=float)
    r.add_argument("--trace", action="store_true", help="log every instruction")
    r.add_argument("--max-depth", type=int, default=None)

    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose or getattr(args, "trace", False) else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    options = {}
    if args.cmd == "run":
        options["debug"] = args.trace
        if args.max_depth is not None:
            options["max_call_depth"] = args.max_depth
    ctx = Context(**options)

    try:
        ctx.compile_file(args.src)
        if args.cmd == "disasm":
            print(ctx.disassemble())
        elif args.cmd == "run":
            print(ctx.call(args.proc, *args.args))
    except (ProcVMError, NameError) as e:
        print(f"procvm: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"procvm: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
