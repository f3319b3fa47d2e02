"""Command line entry point: run a manual job in Alma using the Jobs API.

Every option can also be set through an environment variable named
``ALMA_API_JOB_RUNNER_<OPTION>``, which is read when the option is not given.
"""

import asyncio
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from loguru import logger
from pydantic import ValidationError

from alma_job_runner import __version__
from alma_job_runner.alma_job_client import AlmaJobClient
from alma_job_runner.models import EmailConfig, StatusPollingConfig, SubmissionConfig
from alma_job_runner.notifier import EmailNotifier
from alma_job_runner.runner import run_job

ENV_PREFIX = "ALMA_API_JOB_RUNNER_"
DEFAULT_SMTP_PORT = 25

app = typer.Typer(add_completion=False, help="Run a manual job in Alma using the Jobs API.")


def _env(name: str) -> str:
    return ENV_PREFIX + name.upper()


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"alma-job-runner {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
    )


@app.command()
def main(
    apidomain: Annotated[
        str,
        typer.Option(
            help="Domain of the Alma API server (ex: api-ca.hosted.exlibrisgroup.com).",
            envvar=_env("apidomain"),
        ),
    ],
    apikey: Annotated[
        str, typer.Option(help="The Alma API key.", envvar=_env("apikey"), show_default=False)
    ],
    url: Annotated[
        str,
        typer.Option(
            help="Path the job's parameters are POSTed to (ex: /almaws/v1/conf/jobs/M47?op=run).",
            envvar=_env("url"),
        ),
    ],
    params: Annotated[
        Path,
        typer.Option(
            help="File with the XML representation of the job's parameters.",
            envvar=_env("params"),
        ),
    ],
    timeout: Annotated[
        float,
        typer.Option(
            help="Seconds to wait on the Alma API for each request.", envvar=_env("timeout")
        ),
    ] = 10.0,
    retries: Annotated[
        int,
        typer.Option(
            help="How many times the job is submitted before giving up.",
            envvar=_env("retries"),
        ),
    ] = 5,
    poll_interval: Annotated[
        float,
        typer.Option(
            help="Seconds between job instance status checks.",
            envvar=_env("poll_interval"),
            min=0.001,
        ),
    ] = 30.0,
    max_duration: Annotated[
        float,
        typer.Option(
            help="Seconds to follow the job instance before giving up.",
            envvar=_env("max_duration"),
        ),
    ] = 23 * 60 * 60,
    no_monitor: Annotated[
        bool,
        typer.Option(
            "--no-monitor",
            help="Exit once the job is submitted, without following the job instance.",
            envvar=_env("no_monitor"),
        ),
    ] = False,
    email: Annotated[
        bool, typer.Option("--email", help="Send an email report.", envvar=_env("email"))
    ] = False,
    smtpserver: Annotated[
        Optional[str],
        typer.Option(help="SMTP server used to send report emails.", envvar=_env("smtpserver")),
    ] = None,
    smtpport: Annotated[
        int,
        typer.Option(help="Port used to connect to the SMTP server.", envvar=_env("smtpport")),
    ] = DEFAULT_SMTP_PORT,
    mailto: Annotated[
        Optional[str],
        typer.Option(help="Report recipients, comma delimited.", envvar=_env("mailto")),
    ] = None,
    mailfrom: Annotated[
        Optional[str],
        typer.Option(help="Address reports are sent from.", envvar=_env("mailfrom")),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option(help="Logging level (DEBUG, INFO, WARNING, ERROR).", envvar=_env("log_level")),
    ] = "INFO",
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version", callback=version_callback, is_eager=True, help="Show version and exit."
        ),
    ] = None,
) -> None:
    """Submit an Alma job, follow the job instance and report the outcome."""
    configure_logging(log_level)

    notifier = None
    if email:
        if not smtpserver:
            raise typer.BadParameter("required when --email is used", param_hint="--smtpserver")
        if not mailto:
            raise typer.BadParameter("required when --email is used", param_hint="--mailto")
        if not mailfrom:
            raise typer.BadParameter("required when --email is used", param_hint="--mailfrom")
        try:
            email_config = EmailConfig(
                smtp_server=smtpserver, smtp_port=smtpport, mail_to=mailto, mail_from=mailfrom
            )
        except ValidationError as e:
            raise typer.BadParameter(str(e), param_hint="--mailto") from e
        notifier = EmailNotifier(email_config)

    client = AlmaJobClient(
        base_url=f"https://{apidomain}",
        api_key=apikey,
        submission=SubmissionConfig(timeout=timeout, max_attempts=retries),
        polling=StatusPollingConfig(
            poll_interval=poll_interval, max_duration=max_duration, timeout=timeout
        ),
    )

    exit_code = asyncio.run(
        run_job(client, url, params, notifier=notifier, monitor=not no_monitor)
    )
    raise typer.Exit(exit_code)


if __name__ == "__main__":
    app()
