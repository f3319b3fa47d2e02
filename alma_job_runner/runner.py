from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import typer

from alma_job_runner import __version__
from alma_job_runner.alma_job_client import AlmaJobClient
from alma_job_runner.documents import load_job, serialize_job_instance
from alma_job_runner.errors import AlmaJobRunnerError, MonitorTimeout
from alma_job_runner.models import AlmaJobInstance
from alma_job_runner.notifier import EmailNotifier

SUCCESS_SUBJECT = "alma-job-runner - success"
ERROR_SUBJECT = "alma-job-runner - error"


async def _send_report(
    client: AlmaJobClient,
    notifier: Optional[EmailNotifier],
    succeeded: bool,
    final_status: Optional[AlmaJobInstance],
) -> None:
    if notifier is None:
        return
    body = client.report.text()
    if final_status is not None:
        body += "\n\nFinal job instance status:\n"
        body += serialize_job_instance(final_status).decode("utf-8")
    try:
        await notifier.send(SUCCESS_SUBJECT if succeeded else ERROR_SUBJECT, body)
    except AlmaJobRunnerError as e:
        client.report.error(str(e))


async def run_job(
    client: AlmaJobClient,
    job_url: str,
    params_path: Union[str, Path],
    notifier: Optional[EmailNotifier] = None,
    monitor: bool = True,
) -> int:
    """Submits the job in ``params_path``, follows it and reports the outcome.

    Returns the process exit code.
    """
    report = client.report
    report.info(f"Using alma-job-runner version {__version__}")
    report.info(f"Running at: {datetime.now().astimezone().isoformat(timespec='seconds')}")
    report.info(f"Alma API server: {client.base_url}")
    report.info(f"Job URL: {job_url}")
    report.info(f"Parameters file: {params_path}")

    final_status: Optional[AlmaJobInstance] = None
    try:
        job = load_job(params_path)
        handle = await client.submit_job(job_url, job)
        typer.echo(handle.instance_id)

        if not monitor:
            await _send_report(client, notifier, True, None)
            return 0

        final_status = await client.monitor(handle)
    except MonitorTimeout as e:
        final_status = e.last_status
        report.error(f"Monitoring failed: {e}")
        await _send_report(client, notifier, False, final_status)
        return 1
    except AlmaJobRunnerError as e:
        report.error(f"Job run failed: {e}")
        await _send_report(client, notifier, False, final_status)
        return 1

    typer.echo(final_status.describe())
    if final_status.is_success:
        report.info(f"Job finished: {final_status.describe()}")
    else:
        report.error(f"Job finished unsuccessfully: {final_status.describe()}")
    await _send_report(client, notifier, final_status.is_success, final_status)
    return 0 if final_status.is_success else 1
