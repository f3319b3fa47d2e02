import asyncio
from pathlib import Path

from alma_job_runner.alma_job_client import AlmaJobClient
from alma_job_runner.models import StatusPollingConfig, SubmissionConfig
from alma_job_runner.runner import run_job
from alma_server import AlmaServer

PARAMETERS = """<job>
  <parameters>
    <parameter>
      <name>set_id</name>
      <value>4000000000000</value>
    </parameter>
    <parameter>
      <name>job_name</name>
      <value>Nightly Export</value>
    </parameter>
  </parameters>
</job>"""


async def status_changed(status):
    print(f"Status changed to: {status.describe()}")


async def main():
    PORT = 8000
    server = AlmaServer(
        api_key="example-key",
        submit_errors=[(400, AlmaServer.error_body("402224", "internal error"))],
    )
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    params = Path("example_job.xml")
    params.write_text(PARAMETERS)

    client = AlmaJobClient(
        f"http://localhost:{PORT}",
        "example-key",
        submission=SubmissionConfig(max_attempts=3),
        polling=StatusPollingConfig(poll_interval=1.0, max_duration=60.0),
        on_status_change=status_changed,
    )

    try:
        exit_code = await run_job(
            client, "/almaws/v1/conf/jobs/M26714670000011?op=run", params
        )
        print(f"Exit code: {exit_code}")
        print("Report:")
        print(client.report.text())
    finally:
        params.unlink()
        await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
