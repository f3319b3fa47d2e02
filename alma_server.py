import asyncio
import itertools
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web
from loguru import logger

from alma_job_runner.documents import parse_job, serialize_job, serialize_job_instance
from alma_job_runner.errors import ParseError
from alma_job_runner.models import AlmaJob, AlmaJobInstance, DescAndValue, LinkAndValue

ERROR_TEMPLATE = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<web_service_result xmlns="http://com/exlibris/urm/general/xmlbeans">
  <errorsExist>true</errorsExist>
  <errorList>
    <error>
      <errorCode>{code}</errorCode>
      <errorMessage>{message}</errorMessage>
      <trackingId>E01-0101010101-ABCDE</trackingId>
    </error>
  </errorList>
</web_service_result>"""

ENDED_STATUSES = ("FINALIZING", "COMPLETED_SUCCESS", "COMPLETED_FAILED", "FAILED")


class AlmaServer:
    """A minimal stand-in for the Alma Jobs API."""

    def __init__(
        self,
        api_key: str = "test-key",
        statuses: Optional[list[str]] = None,
        submit_errors: Optional[list[tuple[int, str]]] = None,
        response_delay: float = 0.0,
        remaining_calls: int = 1000,
    ):
        self.api_key = api_key
        self.statuses = statuses or ["QUEUED", "RUNNING", "FINALIZING", "COMPLETED_SUCCESS"]
        # (status, body) returned, in order, before submissions start succeeding
        self.submit_errors = list(submit_errors or [])
        self.response_delay = response_delay
        self.remaining_calls = remaining_calls
        self.submissions: list[AlmaJob] = []
        self.status_requests = 0
        self._instance_ids = itertools.count(1108569450000121)
        self.app = web.Application()
        self.app.router.add_post("/almaws/v1/conf/jobs/{job_id}", self.handle_submit)
        self.app.router.add_get(
            "/almaws/v1/conf/jobs/{job_id}/instances/{instance_id}", self.handle_status
        )
        self.logger = logger

    @staticmethod
    def error_body(code: str, message: str) -> str:
        return ERROR_TEMPLATE.format(code=code, message=message)

    def _respond(self, status: int, body: str) -> web.Response:
        self.remaining_calls -= 1
        return web.Response(
            status=status,
            text=body,
            content_type="application/xml",
            headers={"X-Exl-Api-Remaining": str(self.remaining_calls)},
        )

    async def _check(self, request: web.Request) -> Optional[web.Response]:
        if self.response_delay:
            await asyncio.sleep(self.response_delay)
        if request.headers.get("Authorization") != f"apikey {self.api_key}":
            return web.Response(status=401, text="Unauthorized")
        return None

    async def handle_submit(self, request: web.Request) -> web.Response:
        rejected = await self._check(request)
        if rejected is not None:
            return rejected

        if self.submit_errors:
            status, body = self.submit_errors.pop(0)
            self.logger.info(f"Returning submit error {status}")
            return self._respond(status, body)

        try:
            job = parse_job(await request.read())
        except ParseError as e:
            return self._respond(400, self.error_body("402228", str(e)))
        self.submissions.append(job)

        job_id = request.match_info["job_id"]
        instance_link = (
            f"{request.url.origin()}/almaws/v1/conf/jobs/{job_id}/instances/"
            f"{next(self._instance_ids)}"
        )
        returned = job.model_copy(
            update={
                "id": job_id,
                "additional_info": LinkAndValue(
                    value=f"Job no. {job_id} triggered", link=instance_link
                ),
            }
        )
        self.logger.info(f"Job {job_id} submitted, instance at {instance_link}")
        return self._respond(200, serialize_job(returned).decode("utf-8"))

    async def handle_status(self, request: web.Request) -> web.Response:
        rejected = await self._check(request)
        if rejected is not None:
            return rejected

        index = min(self.status_requests, len(self.statuses) - 1)
        self.status_requests += 1
        status = self.statuses[index]
        ended = status in ENDED_STATUSES
        instance = AlmaJobInstance(
            link=str(request.url),
            id=request.match_info["instance_id"],
            name=f"Job {request.match_info['job_id']}",
            status=DescAndValue(value=status, desc=status.replace("_", " ").title()),
            end_time=datetime.now(timezone.utc).isoformat() if ended else None,
            progress=100.0 if ended else 50.0,
        )
        self.logger.info(f"Returning {status} status")
        return self._respond(200, serialize_job_instance(instance).decode("utf-8"))

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self) -> None:
        await self.runner.cleanup()
