"""CLI commands for psi-monitor."""

from pathlib import Path

import click

config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default ~/.config/psi-monitor/config.toml)",
)


def _load_config(config_path: Path | None):
    """Load config or exit with the config-invalid code."""
    from psi_monitor.config import Config
    from psi_monitor.errors import ExitCode

    try:
        return Config.load(config_path)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(ExitCode.CONFIG_INVALID)


@click.group()
@click.version_option(package_name="psi-monitor")
def main() -> None:
    """psi - Pressure Stall Information (PSI) performance tool."""
    pass


@main.command()
@config_option
def run(config_path: Path | None) -> None:
    """Register distress triggers and report pressure events until stopped."""
    from psi_monitor.logging import configure
    from psi_monitor.monitor import run_monitor

    config = _load_config(config_path)
    configure(config)
    raise SystemExit(int(run_monitor(config)))


@main.command()
@config_option
def check(config_path: Path | None) -> None:
    """Check kernel support and show current pressure."""
    from psi_monitor.errors import ExitCode, KernelUnsupportedError
    from psi_monitor.monitor import verify_kernel_support
    from psi_monitor.source import build_sources

    config = _load_config(config_path)
    try:
        verify_kernel_support(config.pressure_dir)
    except KernelUnsupportedError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(ExitCode.KERNEL_UNSUPPORTED)

    for source in build_sources(config):
        click.echo(f"{source.path} ({source.descriptor}):")
        try:
            content = source.read_content(config.system.content_buffer_size)
        except OSError as e:
            click.echo(f"  unreadable: {e.strerror}")
            continue
        for line in content.text.splitlines():
            click.echo(f"  {line}")
        if content.truncated:
            click.echo("  (truncated)")


@main.group()
def config() -> None:
    """Configuration management."""
    pass


@config.command("show")
@config_option
def config_show(config_path: Path | None) -> None:
    """Print the effective configuration as TOML."""
    cfg = _load_config(config_path)
    click.echo(f"# {config_path or cfg.config_path}")
    click.echo(cfg.to_toml())


@config.command("init")
@config_option
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def config_init(config_path: Path | None, force: bool) -> None:
    """Write the default configuration file."""
    from psi_monitor.config import Config
    from psi_monitor.errors import ExitCode
    from psi_monitor.logging import config_created

    cfg = Config()
    path = config_path or cfg.config_path
    if path.exists() and not force:
        click.echo(f"Config already exists at {path} (use --force to overwrite)", err=True)
        raise SystemExit(ExitCode.CONFIG_EXISTS)
    cfg.save(path)
    config_created(str(path))
