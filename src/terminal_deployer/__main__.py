"""CLI entrypoints (terminal-deployer serve | deploy | extract | backup | restore)."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from terminal_deployer.core.config import CONFIG_FILE_ENV, Settings
from terminal_deployer.core.exceptions import DeployerError
from terminal_deployer.utils.logging import StepLogger, setup_logging


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="terminal-deployer", description="Terminal artifact server and zip deployer")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument("--log-format", choices=["json", "console"], help="Override LOG_FORMAT")
    sub = parser.add_subparsers(dest="cmd")

    cmd_serve = sub.add_parser("serve", help="Run the artifact API")
    cmd_serve.add_argument("--host")
    cmd_serve.add_argument("--port", type=int)
    cmd_serve.add_argument("--root", help="Artifacts root directory")

    cmd_deploy = sub.add_parser("deploy", help="Back up, stop, replace and start the target")
    cmd_deploy.add_argument("--target", help="Target directory (live service root)")
    cmd_deploy.add_argument("--backup-dir")
    cmd_deploy.add_argument("--site", help="Service/site name")
    cmd_deploy.add_argument("--zip", dest="local_zip", help="Local package zip")
    cmd_deploy.add_argument("--require-remote", action="store_true", default=None,
                            help="Fail instead of falling back when the remote fetch fails")
    cmd_deploy.add_argument("--no-local-fallback", action="store_true",
                            help="Ignore configured and default local zips")
    interactive = cmd_deploy.add_mutually_exclusive_group()
    interactive.add_argument("--interactive", dest="interactive", action="store_true", default=None)
    interactive.add_argument("--non-interactive", dest="interactive", action="store_false")

    cmd_extract = sub.add_parser("extract", help="Carve one terminal's folder out of a master archive")
    cmd_extract.add_argument("source", help="Master archive")
    cmd_extract.add_argument("terminal", help="Terminal identifier (folder prefix)")
    cmd_extract.add_argument("dest", help="Output archive")

    cmd_backup = sub.add_parser("backup", help="Write a backup snapshot of the target")
    cmd_backup.add_argument("--target")
    cmd_backup.add_argument("--backup-dir")

    cmd_restore = sub.add_parser("restore", help="Manually restore a backup snapshot into the target")
    cmd_restore.add_argument("backup", nargs="?", help="Snapshot to restore (default: most recent)")
    cmd_restore.add_argument("--target")
    cmd_restore.add_argument("--backup-dir")
    return parser


def _load_settings(args: argparse.Namespace) -> Settings:
    if args.config:
        os.environ[CONFIG_FILE_ENV] = args.config
    overrides = {}
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_format:
        overrides["log_format"] = args.log_format
    for attr, field in (
        ("target", "target_dir"),
        ("backup_dir", "backup_dir"),
        ("site", "site_name"),
        ("local_zip", "local_zip_path"),
        ("root", "artifacts_root"),
        ("host", "host"),
        ("port", "port"),
        ("require_remote", "require_remote"),
    ):
        value = getattr(args, attr, None)
        if value is not None:
            overrides[field] = value
    if getattr(args, "no_local_fallback", False):
        overrides["allow_local_fallback"] = False
    return Settings(**overrides)


def _deploy(settings: Settings, args: argparse.Namespace) -> int:
    from terminal_deployer.deploy.models import DeploymentPolicy
    from terminal_deployer.deploy.resolver import ArtifactResolver
    from terminal_deployer.deploy.sequencer import DeploymentSequencer
    from terminal_deployer.deploy.service_control import build_service_controller

    interactive = args.interactive if args.interactive is not None else sys.stdin.isatty()
    policy = DeploymentPolicy.from_settings(settings, interactive=interactive)
    log = StepLogger()
    log.step("Zip deployer", target=settings.target_dir, site=settings.site_name)

    sequencer = DeploymentSequencer(
        Path(settings.target_dir),
        Path(settings.backup_dir),
        ArtifactResolver(settings, policy, step_logger=log),
        build_service_controller(settings),
        site_name=settings.site_name,
        step_logger=log,
    )
    record = sequencer.run()
    return 0 if record.succeeded else 1


def _serve(settings: Settings) -> int:
    from terminal_deployer.main import run

    # The uvicorn factory rebuilds Settings from the environment
    if settings.artifacts_root:
        os.environ["ARTIFACTS_ROOT"] = settings.artifacts_root
    os.environ["HOST"] = settings.host
    os.environ["PORT"] = str(settings.port)
    os.environ["LOG_LEVEL"] = settings.log_level
    os.environ["LOG_FORMAT"] = settings.log_format
    run(settings)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.cmd:
        parser.print_help()
        return 2

    settings = _load_settings(args)
    setup_logging(settings.log_level, settings.log_format)
    log = StepLogger()

    try:
        if args.cmd == "serve":
            return _serve(settings)

        if args.cmd == "deploy":
            return _deploy(settings, args)

        if args.cmd == "extract":
            from terminal_deployer.archive.subset import extract_subset
            from terminal_deployer.utils.validation import validate_identifier

            validate_identifier(args.terminal, "terminal id")
            entries = extract_subset(Path(args.source), args.terminal, Path(args.dest))
            log.ok("Extracted terminal archive", dest=args.dest, entries=entries)
            return 0

        if args.cmd == "backup":
            from terminal_deployer.deploy.backup import create_backup

            path = create_backup(Path(settings.target_dir), Path(settings.backup_dir))
            log.ok("Backup saved", path=str(path))
            return 0

        if args.cmd == "restore":
            from terminal_deployer.deploy.backup import latest_backup, restore_backup

            backup = Path(args.backup) if args.backup else latest_backup(Path(settings.backup_dir))
            if backup is None:
                log.error("No backup snapshots found", backup_dir=settings.backup_dir)
                return 1
            warnings = restore_backup(backup, Path(settings.target_dir))
            log.ok("Backup restored", backup=str(backup), cleanup_warnings=len(warnings))
            return 0
    except DeployerError as e:
        log.error(str(e), error=e.__class__.__name__, code=e.code)
        return 1

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
