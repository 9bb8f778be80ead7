#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ttl-knight command line.

Usage:
  ttl-knight                          interactive menu
  ttl-knight -l                       list serial ports
  ttl-knight [-b BAUD] PORT           connect, direct command mode
  ttl-knight [-b BAUD] PORT SCRIPT    connect, run script, disconnect
  ttl-knight --step PORT SCRIPT       same, confirming every line
  ttl-knight --dry-run SCRIPT         parse and validate only

Exit codes: 0 script halted normally, 1 script errored, 2 usage or
connection failure.
"""

import argparse
import sys
from typing import Any, Dict, List, Optional

from . import __version__, config
from .connection import ConnectionManager, list_serial_ports
from .console import Console, ui_kv
from .errors import ParseError, TTLKnightError, UnsupportedBaudRate
from .interpreter import Interpreter, RunMode, Status
from .script import load_script

EXIT_OK, EXIT_SCRIPT_ERROR, EXIT_USAGE = 0, 1, 2

# -------------------------------
# Help text
# -------------------------------

QUICK_REFERENCE = """\
script commands:
  10->LABEL        define label
  GOTO LABEL       jump to label
  WAIT 1000        wait 1000 ms (local, nothing sent)
  IF X=1 GOTO Y    conditional jump (X=value, TRUE, FALSE)
  LOOP 5 / ENDLOOP repeat the enclosed block 5 times
  CALL SUB/RETURN  subroutine call and return
  SET VAR = value  set variable (${VAR}+1 / ${VAR}-1 count)
  BAUD 115200      baud rate for the next connect
  ECHO text        print text, ${VAR} substituted
  STOP             end the script
  # or //          comment
  anything else    sent to the device, CRLF appended

direct mode (device> prompt):
  baud <rate>      change pending baud rate
  info             connection info
  script <file>    run a script
  help             this screen
  exit             back to menu"""

EXAMPLES = """\
example: read a sensor three times
  10->START
  SET COUNT = 0
  20->READ_LOOP
  IF COUNT=3 GOTO FINISH
  READ TEMPERATURE
  SET COUNT = ${COUNT}+1
  WAIT 1000
  GOTO READ_LOOP
  30->FINISH
  ECHO Read ${COUNT} samples"""


def baud_table() -> List[str]:
    rates = [f"{r:>8}" for r in config.SUPPORTED_BAUD_RATES]
    return ["".join(rates[i:i + 5]) for i in range(0, len(rates), 5)]


# -------------------------------
# Session
# -------------------------------

class Session:
    def __init__(self, cfg: Dict[str, Any], console: Console, cfg_path: Optional[str] = None):
        self.cfg = cfg
        self.cfg_path = cfg_path
        self.console = console
        self.manager = ConnectionManager(console, baud_rate=cfg["baud_rate"],
                                         tx_echo=cfg.get("tx_echo", True))

    def persist(self) -> None:
        if self.cfg_path:
            self.cfg["baud_rate"] = self.manager.pending_baud
            config.save_user_config(self.cfg, self.cfg_path, console=self.console)

    # ---- info -----------------------------------------------------------
    def show_ports(self) -> None:
        ports = list_serial_ports()
        lines = [f" {i}. {p.device:<14} {p.description} ({p.hwid})" for i, p in enumerate(ports, 1)]
        self.console.block("serial ports", lines or [" (no detected ports)"])

    def show_help(self, full: bool = False) -> None:
        lines = QUICK_REFERENCE.splitlines()
        if full:
            lines += [""] + EXAMPLES.splitlines() + ["", "supported baud rates:"] + baud_table()
        self.console.block("help", lines)

    def show_info(self) -> None:
        info = self.manager.info()
        self.console.block("connection", [ui_kv(k, str(v)) for k, v in info.items()])

    # ---- actions --------------------------------------------------------
    def change_baud(self, raw: str) -> bool:
        try:
            rate = self.manager.set_baud(raw.strip())
        except UnsupportedBaudRate as e:
            self.console.error(f"{e}")
            self.console.emit("baud", "supported: " + ", ".join(map(str, config.SUPPORTED_BAUD_RATES)))
            return False
        self.console.emit("baud", f"pending rate -> {rate}")
        if self.manager.is_open:
            self.console.info("disconnect and reconnect to apply the new rate")
        self.persist()
        return True

    def connect(self, port: str) -> bool:
        try:
            self.manager.open(port)
        except TTLKnightError as e:
            self.console.error(str(e))
            return False
        self.cfg["last_port"] = port
        self.persist()
        return True

    def run_script(self, path: str, mode: RunMode = RunMode.NORMAL, prompt=input) -> Optional[Status]:
        try:
            script = load_script(path)
        except ParseError as e:
            self.console.error(str(e))
            return None
        self.console.block("script", [
            ui_kv("file", path),
            ui_kv("lines", str(len(script.lines))),
            ui_kv("labels", str(len(script.labels))),
            ui_kv("mode", mode.value),
        ])
        conn = None if mode is RunMode.DRY_RUN else self.manager
        interp = Interpreter(script, conn, self.console, prompt=prompt)
        result = interp.run(mode)
        return result.status

    def close(self) -> None:
        self.manager.close()

    # ---- loops ----------------------------------------------------------
    def direct_mode(self, read=input) -> None:
        if not self.manager.is_open:
            self.console.error("not connected")
            return
        self.console.block("direct command mode", [
            ui_kv("port", str(self.manager.info()["port"])),
            ui_kv("baud", str(self.manager.info()["baud"])),
            "type 'help' for local commands, 'exit' to leave",
        ])
        while True:
            try:
                line = read("device> ")
            except (EOFError, KeyboardInterrupt):
                break
            stripped = line.strip()
            lower = stripped.lower()
            if not stripped:
                continue
            if lower == "exit":
                break
            if lower == "help":
                self.show_help(); continue
            if lower == "info":
                self.show_info(); continue
            if lower.startswith("baud "):
                self.change_baud(stripped.split(None, 1)[1]); continue
            if lower.startswith("script "):
                self.run_script(stripped.split(None, 1)[1].strip()); continue
            try:
                self.manager.send_line(stripped)
            except TTLKnightError as e:
                self.console.error(str(e))
                if not self.manager.is_open:
                    break

    def menu(self, read=input) -> None:
        while True:
            state = "connected" if self.manager.is_open else "not connected"
            self.console.block(f"ttl-knight {__version__}", [
                f"baud {self.manager.pending_baud} | {state}",
                "1. list serial ports",
                "2. change baud rate",
                "3. connect",
                "4. execute script file",
                "5. direct command mode",
                "6. help",
                "7. disconnect",
                "0. exit",
            ])
            try:
                choice = read("choice: ").strip().lower()
            except (EOFError, KeyboardInterrupt):
                return
            if choice == "1":
                self.show_ports()
            elif choice == "2":
                self.console.write("supported: " + ", ".join(map(str, config.SUPPORTED_BAUD_RATES)))
                try:
                    val = read(f"baud [{self.manager.pending_baud}]: ").strip()
                except (EOFError, KeyboardInterrupt):
                    return
                if val:
                    self.change_baud(val)
            elif choice == "3":
                default = self.cfg.get("last_port") or ""
                try:
                    port = read(f"port [{default}]: ").strip() or default
                except (EOFError, KeyboardInterrupt):
                    return
                if port:
                    self.connect(port)
                else:
                    self.console.info("cancelled")
            elif choice == "4":
                try:
                    path = read("script file: ").strip()
                    if not path:
                        continue
                    answer = read("mode 1=normal 2=step 3=dry run [1]: ").strip() or "1"
                except (EOFError, KeyboardInterrupt):
                    return
                mode = {"1": RunMode.NORMAL, "2": RunMode.STEP, "3": RunMode.DRY_RUN}.get(answer)
                if mode is None:
                    self.console.error("invalid mode")
                    continue
                if mode is not RunMode.DRY_RUN and not self.manager.is_open:
                    self.console.warn("not connected, pass-through lines will abort the script")
                self.run_script(path, mode, prompt=read)
            elif choice == "5":
                self.direct_mode(read)
            elif choice in ("6", "help"):
                self.show_help(full=True)
            elif choice == "7":
                self.manager.close()
            elif choice in ("0", "exit", "quit"):
                return
            else:
                self.console.error("invalid choice")


# -------------------------------
# Entry point
# -------------------------------

def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ttl-knight",
                                description="Run flow-control scripts against a serial device.")
    p.add_argument("port", nargs="?", help="serial port or pyserial URL")
    p.add_argument("script", nargs="?", help="script file to run")
    p.add_argument("-l", "--list", action="store_true", help="list serial ports and exit")
    p.add_argument("-b", "--baud", help="baud rate (default from config, else 9600)")
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--step", action="store_true", help="confirm every script line")
    mode.add_argument("--dry-run", action="store_true", help="parse and validate only")
    p.add_argument("--log", help="append session output to this file")
    p.add_argument("--quiet", action="store_true", help="hide device output on the console")
    p.add_argument("--config", default=config.USER_CONFIG_FILE, help="user config file")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    cfg = config.load_user_config(args.config)
    if args.baud is not None:
        rate = config.parse_baud(args.baud)
        if rate is None:
            print(f"[err] unsupported baud rate {args.baud}", file=sys.stderr)
            return EXIT_USAGE
        cfg["baud_rate"] = rate
    console = Console(log_path=args.log or cfg.get("log_path"),
                      quiet_rx=args.quiet or cfg.get("quiet_rx", False))
    session = Session(cfg, console, cfg_path=args.config)
    try:
        if args.list:
            session.show_ports()
            return EXIT_OK

        if args.dry_run:
            path = args.script or args.port
            if not path:
                console.error("--dry-run needs a script file")
                return EXIT_USAGE
            status = session.run_script(path, RunMode.DRY_RUN)
            return _exit_code(status)

        if args.port is None:
            session.menu()
            return EXIT_OK

        if not session.connect(args.port):
            return EXIT_USAGE
        if args.script is None:
            session.direct_mode()
            return EXIT_OK
        status = session.run_script(args.script, RunMode.STEP if args.step else RunMode.NORMAL)
        return _exit_code(status)
    finally:
        session.close()
        console.close_log()


def _exit_code(status: Optional[Status]) -> int:
    if status is None:
        return EXIT_USAGE
    return EXIT_OK if status is Status.HALTED else EXIT_SCRIPT_ERROR


if __name__ == "__main__":
    sys.exit(main())
