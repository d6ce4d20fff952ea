import asyncio
import dataclasses
import functools
from typing import Any, Callable

import click

from kreconcile.clients import transport
from kreconcile.engines import loggers
from kreconcile.reactor import demos, driver
from kreconcile.structs import configuration, credentials


@dataclasses.dataclass()
class CLIControls:
    """ The demo's controls, which are impossible to pass via CLI. """
    stopper: asyncio.Event | None = None
    settings: configuration.ClientSettings | None = None
    info: credentials.ConnectionInfo | None = None


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: bool | None = False,
                log_refkey: str | None = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


@click.version_option(prog_name='kreconcile')
@click.group(name='kreconcile', context_settings=dict(
    auto_envvar_prefix='KRECONCILE',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.option('--config', 'config_path', type=click.Path(dir_okay=False))
@click.option('-n', '--namespace', type=str, default='default', show_default=True)
@click.option('--mode', type=click.Choice(['typed', 'schemaless']), default='typed', show_default=True)
@click.option('--name', type=str, default=demos.DEFAULT_NAME, show_default=True)
@click.option('--image', type=str, default=demos.DEFAULT_IMAGE, show_default=True)
@click.option('--new-image', type=str, default=demos.DEFAULT_NEW_IMAGE, show_default=True)
@click.option('--replicas', type=click.IntRange(min=0), default=demos.DEFAULT_REPLICAS, show_default=True)
@click.option('--pause/--no-pause', default=False)
@click.make_pass_decorator(CLIControls, ensure=True)
def demo(
        __controls: CLIControls,
        config_path: str | None,
        namespace: str,
        mode: str,
        name: str,
        image: str,
        new_image: str,
        replicas: int,
        pause: bool,
) -> None:
    """ Walk a deployment through its life cycle: create, update, list, delete. """
    confirm = _pause if pause else None
    try:
        report = asyncio.run(_run_demo(
            config_path=config_path,
            namespace=namespace,
            mode=mode,
            name=name,
            image=image,
            new_image=new_image,
            replicas=replicas,
            confirm=confirm,
            controls=__controls,
        ))
    except (credentials.ConfigurationError, driver.StepError) as e:
        click.echo(f"Error: {e}", err=True)
        raise click.exceptions.Exit(1)

    for pod_name in report.pods:
        click.echo(f"Pod: {pod_name}")
    for deployment_name, replicas_ in report.deployments:
        click.echo(f"Deployment: {deployment_name} has {replicas_} replicas")


def _pause(step: str) -> None:
    click.pause(info=f"-> {step}. Press Return key to continue.")


async def _run_demo(
        *,
        config_path: str | None,
        namespace: str,
        mode: str,
        name: str,
        image: str,
        new_image: str,
        replicas: int,
        confirm: driver.Confirm | None,
        controls: CLIControls,
) -> demos.DemoReport:
    client = await transport.TransportClient.connect(
        config_path,
        info=controls.info,
        settings=controls.settings,
    )
    async with client:
        reconciler = driver.Reconciler(client, confirm=confirm, stopper=controls.stopper)
        if mode == 'schemaless':
            return await demos.run_schemaless_demo(
                reconciler, namespace,
                name=name, image=image, new_image=new_image, replicas=replicas)
        else:
            return await demos.run_typed_demo(
                reconciler, namespace,
                name=name, image=image, new_image=new_image, replicas=replicas)
