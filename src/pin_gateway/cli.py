"""CLI entry point for the pinning gateway."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from pin_gateway.config import load_config
from pin_gateway.errors import GatewayError
from pin_gateway.gateway import PinningGateway
from pin_gateway.ipld.car import car_stat
from pin_gateway.ipld.cid import normalize_cid
from pin_gateway.models.records import UserContext


def _fail(exc: GatewayError) -> None:
    click.echo(f"Error: {exc}", err=True)
    click.echo(json.dumps(exc.to_payload()), err=True)
    sys.exit(1)


def _echo_json(data: dict) -> None:
    click.echo(json.dumps(data, indent=2))


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """pin-gateway - Pinning gateway for content-addressed data."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    cfg = load_config(config_path)
    ctx.obj["config"] = cfg

    level = logging.DEBUG if verbose else getattr(logging, cfg.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Offline tools ──────────────────────────────────────


@cli.command("car-stat")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def car_stat_cmd(ctx: click.Context, path: Path) -> None:
    """Validate a CAR file and print its DAG size and block count."""
    cfg = ctx.obj["config"]
    try:
        with open(path, "rb") as f:
            stat = car_stat(f, max_block_size=cfg.upload.max_block_size)
    except GatewayError as exc:
        _fail(exc)
        return
    click.echo(f"Size:    {stat.size} bytes")
    click.echo(f"Blocks:  {stat.blocks}")


@cli.command()
@click.argument("cid")
def normalize(cid: str) -> None:
    """Print the CIDv1 base32 form of CID."""
    try:
        click.echo(normalize_cid(cid))
    except GatewayError as exc:
        _fail(exc)


# ── Gateway operations ─────────────────────────────────


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--name", default=None, help="Upload name")
@click.option("--user", "user_id", type=int, default=1, show_default=True, help="User ID")
@click.pass_context
def upload(ctx: click.Context, path: Path, name: str | None, user_id: int) -> None:
    """Upload a CAR file to the cluster."""
    cfg = ctx.obj["config"]
    car = path.read_bytes()

    async def _upload():
        async with PinningGateway(cfg) as gateway:
            return await gateway.uploads.handle_car_upload(
                car, UserContext(user_id=user_id), name=name,
            )

    try:
        result = asyncio.run(_upload())
    except GatewayError as exc:
        _fail(exc)
        return
    _echo_json(result.to_dict())


@cli.command()
@click.argument("cid")
@click.pass_context
def status(ctx: click.Context, cid: str) -> None:
    """Show pin status of CID as recorded by the gateway."""
    cfg = ctx.obj["config"]

    async def _status():
        async with PinningGateway(cfg) as gateway:
            return await gateway.pins.get_status(cid)

    try:
        result = asyncio.run(_status())
    except GatewayError as exc:
        _fail(exc)
        return
    _echo_json(result.to_dict())


@cli.command()
@click.option("--limit", type=int, default=None, help="Max uploads to back up this run")
@click.pass_context
def backup(ctx: click.Context, limit: int | None) -> None:
    """Back up pinned uploads that have no backup yet."""
    cfg = ctx.obj["config"]
    if not cfg.backup.bucket:
        click.echo("Error: No backup bucket configured.", err=True)
        click.echo("Set PIN_GATEWAY_BACKUP_BUCKET or [backup] bucket in config.", err=True)
        sys.exit(1)

    async def _backup():
        async with PinningGateway(cfg) as gateway:
            return await gateway.run_backup(limit)

    report = asyncio.run(_backup())
    click.echo(f"Processed:   {report.processed}")
    click.echo(f"Successful:  {report.successful}")
    click.echo(f"Failed:      {report.failed}")
    click.echo(f"Duration:    {report.duration_ms}ms")
    if report.failed:
        sys.exit(1)


# ── Info ───────────────────────────────────────────────


@cli.command("show-config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Show effective configuration."""
    cfg = ctx.obj["config"]
    click.echo(f"Cluster:       {cfg.cluster.url}")
    click.echo(f"Cluster auth:  {'***configured***' if cfg.cluster.basic_auth else '(not set)'}")
    click.echo(f"IPFS API:      {cfg.cluster.ipfs_api_url}")
    click.echo(f"DB path:       {cfg.db_path}")
    click.echo(f"Max block:     {cfg.upload.max_block_size} bytes")
    click.echo(f"Local add >:   {cfg.upload.local_add_threshold} bytes")
    click.echo(f"Poll:          every {cfg.reconcile.poll_interval}s for {cfg.reconcile.max_wait}s")
    click.echo(f"Workers:       {cfg.tasks.workers}")
    click.echo(f"Backup bucket: {cfg.backup.bucket or '(not set)'}")
    click.echo(f"Log level:     {cfg.log_level}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
