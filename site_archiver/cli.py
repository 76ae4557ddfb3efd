# === FILE: site_archiver/cli.py ===
#!/usr/bin/env python3
"""
Command-line entry point for SiteArchiver.

Commands:
  capture      Capture the site into a staging folder and print a report
  fingerprint  Print the SHA-256 fingerprint of the live homepage
  config       Show the effective configuration

Common options:
  --config PATH       YAML/JSON config (default: configs/default.yaml)
  --url URL           Target URL (overrides target_url)
  --max-routes INT    Route cap (overrides max_routes)
  --log-level LEVEL   Logging level (DEBUG, INFO, ...)
  --log-file PATH     Log file (stdout only if omitted)
  --log-format FORMAT Logging format string

Example:
  site-archiver --url https://demo.lovable.app capture --project-id demo --pretty
"""
import asyncio
import sys
from pathlib import Path

import click

from site_archiver import __version__
from site_archiver.config import ArchiverConfig, load_config
from site_archiver.engine import Engine
from site_archiver.errors import ArchiverError
from site_archiver.logger import init_logging

CONTEXT_SETTINGS = dict(help_option_names=["--help", "-h"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def build_config(config_path, url, max_routes) -> ArchiverConfig:
    overrides = {"target_url": url, "max_routes": max_routes}
    if config_path is None and not Path("configs/default.yaml").exists():
        # no file at all: the command line has to carry the target
        return ArchiverConfig(**{k: v for k, v in overrides.items() if v is not None})
    return load_config(config_path, **overrides)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='SiteArchiver, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Path to a YAML or JSON configuration file.'
)
@click.option('--url', '-u', 'url', default=None, help='Target URL (overrides the config file).')
@click.option(
    '--max-routes', '-l', 'max_routes',
    type=int,
    default=None,
    help='Maximum number of routes to visit besides the homepage.'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Logging level'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Log file (stdout only if omitted)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(asctime)s %(levelname)s %(message)s',
    show_default=True,
    help='Logging format string'
)
@click.pass_context
def cli(ctx, config_path, url, max_routes, log_level, log_file, log_format):
    """SiteArchiver command group."""
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        cfg = build_config(config_path, url, max_routes)
    except Exception as e:
        print_error(f'Failed to load configuration: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('capture', context_settings=CONTEXT_SETTINGS)
@click.option('--project-id', '-p', 'project_id', default=None, help='Name of the staging folder.')
@click.option(
    '--json', '-j', 'json_output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Write the JSON report to a file'
)
@click.option('--pretty', is_flag=True, help='Indent the JSON report (2 spaces)')
@click.option(
    '--timeout', 'run_timeout',
    type=float,
    default=None,
    help='Wall-clock ceiling for the whole run (seconds)'
)
@click.pass_context
def capture(ctx, project_id, json_output, pretty, run_timeout):
    """Capture the site into a staging folder."""
    cfg = ctx.obj['config']
    click.echo(f'Archiving {cfg.target_url}')
    engine = Engine(cfg)
    try:
        if run_timeout:
            report = asyncio.run(asyncio.wait_for(engine.archive(project_id), timeout=run_timeout))
        else:
            report = asyncio.run(engine.archive(project_id))
    except asyncio.TimeoutError:
        print_error(f'Capture did not finish within {run_timeout} seconds')
    except ArchiverError as e:
        print_error(f'Capture failed: {e}')
    except OSError as e:
        print_error(f'Could not write staging folder: {e}')

    output = report.json(pretty=pretty)
    if json_output:
        json_output.parent.mkdir(parents=True, exist_ok=True)
        json_output.write_text(output, encoding='utf-8')
        click.echo(f'JSON report: {json_output}')
    else:
        click.echo(output)
    click.echo(f'Staging folder: {report.staging_dir}')


@cli.command('fingerprint', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def fingerprint(ctx):
    """Print the homepage fingerprint (exit code 1 when unavailable)."""
    cfg = ctx.obj['config']
    result = asyncio.run(Engine(cfg).fingerprint())
    if result is None:
        print_error('Fingerprint unavailable')
    click.echo(result.digest)


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Show the effective configuration as JSON."""
    cfg = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
