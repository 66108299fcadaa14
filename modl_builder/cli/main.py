"""
Top-level CLI dispatcher: modl-builder <command> [args...].
Usage: modl-builder build   [-c modl.yaml]
       modl-builder sign    [-c modl.yaml]
       modl-builder package [-c modl.yaml] [--sign/--no-sign] [--post/--no-post]
       modl-builder post    [-c modl.yaml] [--module PATH] [--gateway URL] [--strict]
       modl-builder verify  MODULE
       modl-builder inspect MODULE
Exit codes: 0 ok, 1 packaging/signing/verification failure, 2 upload failure.
"""

from __future__ import annotations

import argparse
import logging
import sys
import zipfile
from pathlib import Path
from typing import List, Optional

from modl_builder import __version__
from modl_builder.config import DEFAULT_CONFIG_FILE, load_config
from modl_builder.core.errors import ModlBuilderError, UploadError
from modl_builder.descriptor import DESCRIPTOR_FILE_NAME, parse_module_xml

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UPLOAD_FAILED = 2


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def cmd_build(args: argparse.Namespace) -> int:
    from modl_builder.pipeline import package_module

    cfg = load_config(args.config)
    result = package_module(cfg)
    print(f"Unsigned module: {result.unsigned_path}")
    return EXIT_OK


def cmd_sign(args: argparse.Namespace) -> int:
    from modl_builder.artifacts import unsigned_module_path
    from modl_builder.pipeline import sign_packaged_module

    cfg = load_config(args.config)
    unsigned = Path(args.module) if args.module else unsigned_module_path(cfg.project.build_dir, str(cfg.module.name))
    signed = sign_packaged_module(cfg, unsigned)
    print(f"Signed module: {signed}")
    return EXIT_OK


def cmd_package(args: argparse.Namespace) -> int:
    from modl_builder.pipeline import run_pipeline

    cfg = load_config(args.config)
    result = run_pipeline(cfg, sign=args.sign, deploy=args.post)
    print(f"Unsigned module: {result.unsigned_path}")
    if result.signed_path:
        print(f"Signed module: {result.signed_path}")
    if result.deploy_error is not None:
        print(f"Upload failed: {result.deploy_error}", file=sys.stderr)
        return EXIT_UPLOAD_FAILED
    if result.deploy is not None:
        print(f"Posted to {result.deploy.url}: HTTP {result.deploy.status_code}")
    return EXIT_OK


def cmd_post(args: argparse.Namespace) -> int:
    from modl_builder.pipeline import deploy_module

    cfg = load_config(args.config)
    if args.gateway:
        cfg.deploy.gateway_address = args.gateway
    if args.strict:
        cfg.deploy.strict = True
    try:
        result = deploy_module(cfg, Path(args.module) if args.module else None)
    except UploadError as exc:
        print(f"Upload failed: {exc}", file=sys.stderr)
        return EXIT_UPLOAD_FAILED
    print(f"Posted {result.module_path} to {result.url}: HTTP {result.status_code}")
    return EXIT_OK


def cmd_verify(args: argparse.Namespace) -> int:
    from modl_builder.signing.verify import verify_signed_module

    report = verify_signed_module(args.module)
    print(f"OK: {report.entry_count} entries signed by {report.signer_subject} (chain of {report.chain_length})")
    return EXIT_OK


def cmd_inspect(args: argparse.Namespace) -> int:
    with zipfile.ZipFile(args.module) as zf:
        descriptor = parse_module_xml(zf.read(DESCRIPTOR_FILE_NAME))
    print(f"{descriptor.name} ({descriptor.id}) {descriptor.version}")
    print(f"  requires ignition {descriptor.required_ignition_version}")
    for d in descriptor.depends:
        print(f"  depends [{d.scope}] {d.module_id}")
    for j in descriptor.jars:
        print(f"  jar     [{j.scope}] {j.file_name}")
    for h in descriptor.hooks:
        print(f"  hook    [{h.scope}] {h.hook_class}")
    return EXIT_OK


def _add_config_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument("-c", "--config", default=DEFAULT_CONFIG_FILE, help="Build config YAML (default: modl.yaml)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modl-builder",
        description="Package, sign and deploy gateway modules (.modl)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", help="command")

    p = sub.add_parser("build", help="Resolve scopes, write module.xml and the unsigned module")
    _add_config_arg(p)
    p.set_defaults(run=cmd_build)

    p = sub.add_parser("sign", help="Sign the unsigned module")
    _add_config_arg(p)
    p.add_argument("--module", default=None, help="Unsigned module path (default: from config)")
    p.set_defaults(run=cmd_sign)

    p = sub.add_parser("package", help="Build, then sign and post as configured")
    _add_config_arg(p)
    p.add_argument("--sign", dest="sign", action="store_true", default=None)
    p.add_argument("--no-sign", dest="sign", action="store_false")
    p.add_argument("--post", dest="post", action="store_true", default=None)
    p.add_argument("--no-post", dest="post", action="store_false")
    p.set_defaults(run=cmd_package)

    p = sub.add_parser("post", help="Upload the module to a running gateway")
    _add_config_arg(p)
    p.add_argument("--module", default=None, help="Module path (default: signed, else unsigned)")
    p.add_argument("--gateway", default=None, help="Gateway address, e.g. http://localhost:8088")
    p.add_argument("--strict", action="store_true", help="Fail on non-2xx responses")
    p.set_defaults(run=cmd_post)

    p = sub.add_parser("verify", help="Verify a signed module")
    p.add_argument("module")
    p.set_defaults(run=cmd_verify)

    p = sub.add_parser("inspect", help="Print a module's descriptor")
    p.add_argument("module")
    p.set_defaults(run=cmd_inspect)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return EXIT_OK

    _configure_logging(args.verbose)
    try:
        return args.run(args)
    except ModlBuilderError as exc:
        print(f"{args.command} failed: {exc}", file=sys.stderr)
        return EXIT_FAILED
    except (OSError, zipfile.BadZipFile, KeyError) as exc:
        print(f"{args.command} failed: {exc}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
