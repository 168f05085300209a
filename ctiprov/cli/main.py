"""Main CLI entrypoint for ctiprov."""

import json
import sys
import time
from typing import Dict, Any, Optional
import click
from pathlib import Path

from ..config import Settings, load_settings
from ..errors import ProvisionError
from ..events import EventLog, configure_logging
from ..obs.status import StatusDeriver
from ..provisioner import Provisioner, SKIPPABLE_STEPS
from ..redact import redact_env
from ..steps.envfile import parse_env_file
from ..teardown import Teardown


@click.group()
@click.option('--config', 'config_file', type=click.Path(dir_okay=False, path_type=Path),
              help='YAML settings file')
@click.option('--install-dir', type=click.Path(file_okay=False, path_type=Path),
              help='Installation directory (default ~/opencti)')
@click.option('-v', '--verbose', is_flag=True, help='Mirror the log file to stderr')
@click.pass_context
def main(ctx, config_file, install_dir, verbose):
    """ctiprov - install, check and remove the OpenCTI docker stack."""
    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config_file
    ctx.obj['overrides'] = {'install_dir': install_dir}
    ctx.obj['verbose'] = verbose
    ctx.obj['json'] = False


def _settings(ctx, **overrides) -> Settings:
    merged = dict(ctx.obj.get('overrides', {}))
    merged.update(overrides)
    settings = load_settings(ctx.obj.get('config_file'), merged)
    configure_logging(settings.log_file, ctx.obj.get('verbose', False))
    return settings


def _json_output(data: Dict[str, Any]) -> None:
    """Output data as JSON."""
    click.echo(json.dumps(data, indent=None, default=str))


def _human_output(message: str) -> None:
    """Output human-readable message."""
    if not click.get_current_context().obj.get('json', False):
        click.echo(message)


def _fail(error: ProvisionError, output_json: bool, failed_step: Optional[str] = None) -> None:
    if output_json:
        data = error.to_dict()
        if failed_step:
            data['failed_step'] = failed_step
        _json_output({'ok': False, 'error': data})
    else:
        where = f" in step '{failed_step}'" if failed_step else ""
        _human_output(f"❌ Failed{where}: {error.message}")
        if error.hint:
            _human_output(f"💡 {error.hint}")
    sys.exit(error.exit_code)


@main.command()
@click.option('--secrets', type=click.Choice(['regenerate', 'preserve']),
              help='Regenerate generated secrets or preserve existing ones')
@click.option('--health-policy', type=click.Choice(['permissive', 'strict']),
              help='Health success condition')
@click.option('--retries', type=int, help='Health poll attempts')
@click.option('--interval', type=float, help='Seconds between health polls')
@click.option('--fallback/--no-fallback', default=None,
              help='Start unhealthy critical services with bare docker run')
@click.option('--with-portainer', is_flag=True, help='Also install Portainer')
@click.option('--smoke-check', is_flag=True, help='HTTP check of the base URL after launch')
@click.option('--skip', multiple=True, type=click.Choice(list(SKIPPABLE_STEPS)), help='Skip a step')
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
@click.pass_context
def install(ctx, secrets, health_policy, retries, interval, fallback, with_portainer,
            smoke_check, skip, output_json):
    """Install or update the stack and wait until it is healthy."""
    ctx.obj['json'] = output_json
    try:
        settings = _settings(
            ctx,
            secrets_mode=secrets,
            health_policy=health_policy,
            health_retries=retries,
            health_interval=interval,
            fallback=fallback,
            with_portainer=True if with_portainer else None,
            smoke_check=True if smoke_check else None,
        )
        _human_output(f"🚀 Provisioning OpenCTI in {settings.install_dir}")
        report = Provisioner(settings, skip=skip).run()
    except ProvisionError as e:
        _fail(e, output_json)
        return

    if output_json:
        _json_output(report.to_dict())
    else:
        for result in report.results:
            mark = "✅" if result.ok else "❌"
            _human_output(f"{mark} {result.name}: {result.message}")
        if report.ok:
            _human_output(f"🎉 OpenCTI is up: {settings.base_url} ({report.duration:.0f}s)")

    if not report.ok:
        if report.error and report.error.hint and not output_json:
            _human_output(f"💡 {report.error.hint}")
        sys.exit(report.exit_code)


@main.command()
@click.option('--yes', is_flag=True, help='Skip confirmation prompts')
@click.option('--prune', is_flag=True, help='Also prune unused docker images and volumes')
@click.option('--with-portainer', is_flag=True, help='Also remove Portainer')
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
@click.pass_context
def uninstall(ctx, yes, prune, with_portainer, output_json):
    """Stop the stack and delete its workspace and environment entries."""
    ctx.obj['json'] = output_json
    try:
        settings = _settings(ctx)
        if not yes:
            if not click.confirm(f"Remove the OpenCTI stack and delete {settings.install_dir}?"):
                _human_output("❌ Uninstall cancelled")
                return
        if prune and not yes:
            prune = click.confirm("Prune ALL unused docker images and volumes on this host?")

        _human_output("🗑️  Removing OpenCTI...")
        report = Teardown(settings).run(prune=prune, remove_portainer=with_portainer)
    except ProvisionError as e:
        _fail(e, output_json)
        return

    if output_json:
        _json_output({'ok': True, **report.to_dict()})
    else:
        for action in report.actions:
            _human_output(f"✅ {action}")
        for warning in report.warnings:
            _human_output(f"⚠️  {warning}")


@main.command()
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
@click.pass_context
def status(ctx, output_json):
    """Show the status of the last run."""
    ctx.obj['json'] = output_json
    try:
        settings = _settings(ctx)
    except ProvisionError as e:
        _fail(e, output_json)
        return

    info = StatusDeriver().derive_status(EventLog(settings.state_home).read())
    if output_json:
        _json_output(info.to_dict())
        return

    color = {'healthy': 'green', 'failed': 'red', 'degraded': 'red'}.get(info.status.value, 'yellow')
    click.echo(f"📊 Status: {click.style(info.status.value, fg=color)}")
    click.echo(f"   {info.message}")
    if info.failed_step:
        click.echo(f"   Failed step: {info.failed_step}")
    if info.hint:
        click.echo(f"💡 {info.hint}")


@main.command()
@click.option('--follow', is_flag=True, help='Follow the log file')
@click.option('--lines', default=50, show_default=True, help='Lines to show')
@click.pass_context
def logs(ctx, follow, lines):
    """Show the provisioning log."""
    try:
        settings = _settings(ctx)
    except ProvisionError as e:
        _fail(e, False)
        return

    log_file = settings.log_file
    if not log_file.exists():
        _human_output("No logs available yet")
        return

    with open(log_file) as f:
        for line in f.readlines()[-lines:]:
            click.echo(line.rstrip())

    if follow:
        try:
            _follow(log_file)
        except KeyboardInterrupt:
            _human_output("\n👋 Stopped following logs")


def _follow(log_file: Path) -> None:
    last_size = log_file.stat().st_size
    while True:
        time.sleep(1)
        current_size = log_file.stat().st_size
        if current_size > last_size:
            with open(log_file) as f:
                f.seek(last_size)
                for line in f:
                    click.echo(line.rstrip())
            last_size = current_size


@main.command('show-config')
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
@click.pass_context
def show_config(ctx, output_json):
    """Print the generated stack configuration with secrets redacted."""
    ctx.obj['json'] = output_json
    try:
        settings = _settings(ctx)
    except ProvisionError as e:
        _fail(e, output_json)
        return

    values = redact_env(parse_env_file(settings.env_file))
    if output_json:
        _json_output({'path': str(settings.env_file), 'values': values})
        return
    if not values:
        _human_output(f"No configuration at {settings.env_file}")
        return
    for key, value in values.items():
        click.echo(f"{key}={value}")


if __name__ == '__main__':
    main()
