# deployer/cli.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Literal

import typer

from . import __version__
from .config import CONFIG_FILENAME, CONFIG_NOT_FOUND, BranchConfig, RepoConfig
from .errors import DeployerConfigError

app = typer.Typer(help="Deployer configuration CLI", invoke_without_command=True)

ERR_CONFIG_NOT_FOUND = "DEPLOYER002"
ERR_CONFIG_INVALID = "DEPLOYER003"
ERR_UNKNOWN_BRANCH = "DEPLOYER004"


@app.callback()
def _root(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit", is_eager=True),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log resolution steps"),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="[%(levelname)s] %(name)s: %(message)s")

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=0)


def _load_or_exit(root: Path, output_format: str) -> RepoConfig:
    try:
        return RepoConfig.load(root)
    except DeployerConfigError as e:
        missing = e.desc == CONFIG_NOT_FOUND
        code = ERR_CONFIG_NOT_FOUND if missing else ERR_CONFIG_INVALID
        if output_format == "json":
            typer.echo(
                json.dumps(
                    {
                        "ok": False,
                        "error": {"kind": "config", "message": e.desc, "subject": e.subject},
                        "code": code,
                    }
                )
            )
            raise typer.Exit(code=2)
        if missing:
            typer.echo(f"[{code}] Error: {e}", err=True)
        else:
            typer.echo(f"[{code}] Config error: {e}", err=True)
        raise typer.Exit(code=2)


def _branch_payload(branch: BranchConfig) -> dict:
    make_task = branch.make_task()
    ansible_task = branch.ansible_task()
    return {
        "method": str(branch.method),
        "make_task": None if make_task is None else str(make_task),
        "ansible_task": (
            None
            if ansible_task is None
            else {"playbook": ansible_task.playbook, "inventory": ansible_task.inventory}
        ),
        "notify_url": branch.notify_url,
    }


def _resolved_payload(cfg: RepoConfig) -> dict:
    return {
        "ok": True,
        "config_path": str(cfg.project_root / CONFIG_FILENAME),
        "defaults": {
            "method": str(cfg.default_method),
            "task": None if cfg.default_task is None else str(cfg.default_task),
            "playbook": None if cfg.default_playbook is None else str(cfg.default_playbook),
            "notify_url": cfg.default_notify_url,
        },
        "branches": {name: _branch_payload(branch) for name, branch in cfg.branches.items()},
    }


def _echo_branch(name: str, branch: BranchConfig, indent: str = "") -> None:
    typer.echo(f"{indent}{name} ({branch.method})")
    make_task = branch.make_task()
    if make_task is not None:
        typer.echo(f"{indent}  task: {make_task}")
    ansible_task = branch.ansible_task()
    if ansible_task is not None:
        typer.echo(f"{indent}  playbook: {ansible_task.playbook}")
        typer.echo(f"{indent}  inventory: {ansible_task.inventory}")
    if branch.notify_url is not None:
        typer.echo(f"{indent}  notify_url: {branch.notify_url}")


@app.command()
def show(
    root: Path = typer.Option(Path("."), "--root", help="Project root containing .deployer.conf"),
    output_format: Literal["text", "json"] = typer.Option("text", "--format"),
) -> None:
    """
    Show the resolved defaults and every branch.
    """
    cfg = _load_or_exit(root, output_format)

    if output_format == "json":
        typer.echo(json.dumps(_resolved_payload(cfg)))
        raise typer.Exit(code=0)

    typer.echo(f"Config path: {root / CONFIG_FILENAME}")
    typer.echo(f"Default method: {cfg.default_method}")
    typer.echo(f"Default task: {cfg.default_task or 'none'}")
    typer.echo(f"Default playbook: {cfg.default_playbook or 'none'}")
    typer.echo(f"Default notify_url: {cfg.default_notify_url or 'none'}")
    typer.echo("Branches:")
    for name, branch in cfg.branches.items():
        _echo_branch(name, branch, indent="  ")


@app.command()
def branch(
    name: str,
    root: Path = typer.Option(Path("."), "--root", help="Project root containing .deployer.conf"),
    output_format: Literal["text", "json"] = typer.Option("text", "--format"),
) -> None:
    """
    Show how a single branch deploys.
    """
    cfg = _load_or_exit(root, output_format)

    resolved = cfg.lookup_branch(name)
    if resolved is None:
        known = ", ".join(cfg.branch_names())
        if output_format == "json":
            typer.echo(
                json.dumps(
                    {
                        "ok": False,
                        "error": {"kind": "branch", "message": f"unknown branch {name!r}"},
                        "code": ERR_UNKNOWN_BRANCH,
                    }
                )
            )
            raise typer.Exit(code=1)
        typer.echo(f"[{ERR_UNKNOWN_BRANCH}] Unknown branch {name!r} (known: {known})", err=True)
        raise typer.Exit(code=1)

    if output_format == "json":
        typer.echo(json.dumps({"ok": True, "branch": name, **_branch_payload(resolved)}))
        raise typer.Exit(code=0)

    _echo_branch(name, resolved)


@app.command()
def check(
    root: Path = typer.Option(Path("."), "--root", help="Project root containing .deployer.conf"),
) -> None:
    """
    Validate .deployer.conf and every file it references.
    """
    cfg = _load_or_exit(root, "text")
    typer.echo(f"OK: {len(cfg.branches)} branch(es) configured")
