"""CLI commands for vmmap-collector."""

from pathlib import Path

import click


@click.group()
@click.version_option(package_name="vmmap-collector")
def main() -> None:
    """Sample a process's virtual memory map over time."""
    pass


@main.command()
@click.argument("pid", type=int)
@click.option(
    "--interval",
    "-i",
    "interval_ms",
    type=click.IntRange(min=1),
    default=None,
    help="Milliseconds between captures (default from config)",
)
@click.option("--count", "-n", type=click.IntRange(min=1), default=None, help="Stop after N snapshots")
@click.option(
    "--duration",
    "-d",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Stop after this many seconds",
)
@click.option("--json", "as_json", is_flag=True, help="Print each snapshot as a JSON line")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the retained snapshot history to FILE as a JSON array",
)
@click.option("--track", is_flag=True, help="Show region lifetimes when finished")
def collect(
    pid: int,
    interval_ms: int | None,
    count: int | None,
    duration: float | None,
    as_json: bool,
    output: Path | None,
    track: bool,
) -> None:
    """Sample PID with vmmap until stopped (Ctrl-C, --count or --duration)."""
    import queue
    import time

    import psutil

    from vmmap_collector import logging as rlog
    from vmmap_collector.collector import CollectorError, create_collector
    from vmmap_collector.config import Config
    from vmmap_collector.regions import Snapshot
    from vmmap_collector.tracker import RegionTracker

    try:
        config = Config.load()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    rlog.configure(config)

    try:
        name = psutil.Process(pid).name()
    except psutil.NoSuchProcess:
        rlog.process_not_found(pid)
        raise SystemExit(1)
    except psutil.AccessDenied:
        rlog.process_name_unavailable(pid)
        name = "?"

    deliveries: queue.Queue[Snapshot] = queue.Queue()
    try:
        collector = create_collector(pid, deliveries.put, interval_ms=interval_ms, config=config)
        collector.start()
    except CollectorError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    rlog.collector_started(pid, name, collector.interval_ms)

    tracker = RegionTracker()
    received: list[Snapshot] = []
    deadline = time.monotonic() + duration if duration is not None else None
    failures_seen = 0

    try:
        while True:
            if count is not None and len(received) >= count:
                break
            if deadline is not None and time.monotonic() >= deadline:
                break

            try:
                snapshot = deliveries.get(timeout=0.1)
            except queue.Empty:
                pass
            else:
                received.append(snapshot)
                tracker.update(snapshot)
                if as_json:
                    click.echo(snapshot.to_json())
                else:
                    rlog.snapshot_received(
                        snapshot.timestamp_ms,
                        len(snapshot.regions),
                        snapshot.total_virtual,
                        snapshot.total_resident,
                    )

            if collector.failure_count > failures_seen:
                failures_seen = collector.failure_count
                rlog.capture_failed(collector.last_error or "unknown error")
    except KeyboardInterrupt:
        rlog.signal_received("SIGINT")
    finally:
        rlog.collector_stopping()
        collector.stop()
        retained = collector.snapshot_count
        rlog.collector_stopped(retained)
        failure_count = collector.failure_count
        # History is released by destroy(), so export it first
        history_json = collector.snapshots_json() if output is not None else None
        collector.destroy()

    if output is not None and history_json is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(history_json)
        rlog.history_saved(str(output), retained)

    if track:
        _print_tracked(tracker)

    rlog.collection_summary(len(received), len(tracker), failure_count)


def _print_tracked(tracker) -> None:
    """Print tracked region lifetimes as a table."""
    from vmmap_collector.formatting import format_bytes

    click.echo(
        f"{'Category':24}  {'Start':>16} {'End':<16}  {'VSize':>7}  "
        f"{'First':>5}  {'Last':>5}  {'Seen':>5}"
    )
    click.echo("-" * 92)
    for t in tracker.regions():
        category = t.category if len(t.category) <= 24 else t.category[:22] + ".."
        click.echo(
            f"{category:24}  {t.start_address:>16x}-{t.end_address:<16x}  "
            f"{format_bytes(t.virtual_size):>7}  "
            f"{t.first_seen_index:>5}  {t.last_seen_index:>5}  {t.observations:>5}"
        )


@main.command()
@click.argument("file", type=click.File("r"), default="-")
@click.option("--json", "as_json", is_flag=True, help="Print regions as a JSON array")
def parse(file, as_json: bool) -> None:
    """Parse saved vmmap output from FILE (or stdin)."""
    import json

    from vmmap_collector.formatting import format_region_row
    from vmmap_collector.parser import parse_vmmap

    regions = parse_vmmap(file.read())

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in regions]))
        return

    if not regions:
        click.echo("No regions found.")
        return

    click.echo(
        f"{'Category':24}  {'Start':>16} {'End':<16}  {'VSize':>7}  {'RSize':>7}  "
        f"{'Dirty':>7}  {'Swap':>7}  {'Prot':7}  {'SM':3}  Detail"
    )
    click.echo("-" * 120)
    for region in regions:
        click.echo(format_region_row(region))
    click.echo(f"\n{len(regions)} regions")


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Display current configuration."""
    from vmmap_collector.config import Config

    try:
        cfg = Config.load()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"Config file: {cfg.config_path}")
    click.echo(f"Exists: {cfg.config_path.exists()}")
    click.echo()
    click.echo("[collector]")
    click.echo(f"  interval_ms = {cfg.collector.interval_ms}")
    click.echo(f"  vmmap_path = {cfg.collector.vmmap_path}")
    click.echo(f"  max_output_bytes = {cfg.collector.max_output_bytes}")
    click.echo(f"  history_size = {cfg.collector.history_size}")
    click.echo()
    click.echo("[system]")
    click.echo(f"  log_level = {cfg.system.log_level}")
    click.echo(f"  log_max_bytes = {cfg.system.log_max_bytes}")
    click.echo(f"  log_backup_count = {cfg.system.log_backup_count}")


@config.command("edit")
def config_edit() -> None:
    """Open config file in editor."""
    import os
    import subprocess

    from vmmap_collector import logging as rlog
    from vmmap_collector.config import Config

    cfg = Config.load()

    # Create config if it doesn't exist
    if not cfg.config_path.exists():
        cfg.save()
        rlog.config_created(str(cfg.config_path))

    editor = os.environ.get("EDITOR", "nano")
    subprocess.run([editor, str(cfg.config_path)])


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    from vmmap_collector.config import Config

    cfg = Config()
    cfg.save()
    click.echo(f"Config reset to defaults at {cfg.config_path}")


if __name__ == "__main__":
    main()
