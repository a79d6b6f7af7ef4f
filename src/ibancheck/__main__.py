"""Entry point for `python -m ibancheck` and the `ibancheck` console script."""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from ibancheck import __version__
from ibancheck.service.control import ControlContext, ControlServer
from ibancheck.utils.config import deep_get, load_config
from ibancheck.utils.logging_setup import log_event, setup_logging
from ibancheck.utils.paths import default_config_path, resolve_log_dir
from ibancheck.utils.request_context import new_correlation_id, request_scope
from ibancheck.validation.iban import EmptyBatchError, Verdict, evaluate_batch, normalize_iban, split_iban
from ibancheck.validation.registry import IBAN_LENGTHS


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="ibancheck", description="Offline IBAN validation")
    ap.add_argument("--config", default=str(default_config_path()))
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = ap.add_subparsers(dest="command")

    ap_val = sub.add_parser("validate", help="validate one or more IBAN candidates")
    ap_val.add_argument("ibans", nargs="*", metavar="IBAN")
    ap_val.add_argument("--normalize", action="store_true", help="strip whitespace and upper-case first")
    ap_val.add_argument("--parts", action="store_true", help="include country code, check digits and BBAN")
    ap_val.add_argument("--workers", type=int, default=None)

    ap_srv = sub.add_parser("serve", help="run the JSON-line command bridge")
    ap_srv.add_argument("--host", default=None)
    ap_srv.add_argument("--port", type=int, default=None)

    sub.add_parser("countries", help="print the country/length registry")
    return ap


def _record(verdict: Verdict, with_parts: bool) -> Dict[str, Any]:
    rec = verdict.to_dict()
    if with_parts:
        parts = split_iban(verdict.iban)
        rec["parts"] = (
            {"countryCode": parts.country_code, "checkDigits": parts.check_digits, "bban": parts.bban}
            if parts
            else None
        )
    return rec


def _cmd_validate(args, cfg: Dict[str, Any], log, ap: argparse.ArgumentParser) -> int:
    candidates: List[str] = list(args.ibans)
    if args.normalize or deep_get(cfg, ["validation", "normalize"], False):
        candidates = [normalize_iban(c) for c in candidates]
    workers = args.workers or int(deep_get(cfg, ["validation", "workers"], 1) or 1)

    with request_scope(correlation_id=new_correlation_id(), command="validate", batch_size=len(candidates)):
        try:
            verdicts = evaluate_batch(candidates, workers=workers)
        except EmptyBatchError as e:
            log.warning("validate called without candidates")
            ap.error(str(e))
        all_valid = all(v.is_valid for v in verdicts)
        log_event(log, "cli.validate", "Validated IBAN batch", size=len(verdicts), all_valid=all_valid)

    print(json.dumps([_record(v, args.parts) for v in verdicts], ensure_ascii=False, indent=2))
    return 0 if all_valid else 1


def _cmd_serve(args, cfg: Dict[str, Any], log) -> int:
    host = args.host or deep_get(cfg, ["service", "host"], "127.0.0.1")
    port = args.port if args.port is not None else int(deep_get(cfg, ["service", "port"], 8766))
    stop = threading.Event()
    started = time.time()

    def _status() -> Dict[str, Any]:
        return {
            "ok": True,
            "version": __version__,
            "uptime_s": round(time.time() - started, 3),
            "requests": ctrl.requests_served,
        }

    ctrl = ControlServer(
        host,
        port,
        ControlContext(
            get_status=_status,
            request_stop=stop.set,
            normalize=bool(deep_get(cfg, ["validation", "normalize"], False)),
            workers=int(deep_get(cfg, ["validation", "workers"], 1) or 1),
        ),
    )

    def _sig(_signum, _frame):
        stop.set()

    signal.signal(signal.SIGINT, _sig)
    signal.signal(signal.SIGTERM, _sig)

    ctrl.start()
    try:
        log.info("Bridge started")
        while not stop.wait(0.5):
            pass
        log.info("Bridge stopped")
        return 0
    finally:
        ctrl.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    if not getattr(args, "command", None):
        ap.error("a command is required (validate, serve, countries)")

    cfg = load_config(Path(args.config))
    log = setup_logging(resolve_log_dir(deep_get(cfg, ["app", "log_dir"])), name="ibancheck")

    if args.command == "countries":
        print(json.dumps(dict(sorted(IBAN_LENGTHS.items())), indent=2))
        return 0
    if args.command == "serve":
        return _cmd_serve(args, cfg, log)
    return _cmd_validate(args, cfg, log, ap)


if __name__ == "__main__":
    sys.exit(main())
