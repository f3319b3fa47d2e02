import asyncio
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urljoin

import aiohttp

from alma_job_runner.classifier import classify_body
from alma_job_runner.documents import parse_job, parse_job_instance, serialize_job
from alma_job_runner.errors import (
    AlmaJobRunnerError,
    ClassifiedError,
    MonitorTimeout,
    ParseError,
    RetryExhausted,
    TransportError,
)
from alma_job_runner.models import (
    AlmaJob,
    AlmaJobInstance,
    JobInstanceHandle,
    StatusPollingConfig,
    SubmissionConfig,
)
from alma_job_runner.report import Report

REMAINING_CALLS_HEADER = "X-Exl-Api-Remaining"

SleepFunc = Callable[[float], Awaitable[Any]]
RetryPolicy = Callable[[AlmaJobRunnerError], bool]


def _describe_failure(error: AlmaJobRunnerError) -> str:
    if isinstance(error, ClassifiedError):
        return f"[{error.kind.value}] {error}"
    if isinstance(error, TransportError) and error.status is not None:
        return f"[HTTP {error.status}] {error}"
    return f"[{type(error).__name__}] {error}"


class AlmaJobClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        submission: Optional[SubmissionConfig] = None,
        polling: Optional[StatusPollingConfig] = None,
        report: Optional[Report] = None,
        on_status_change: Optional[Callable[[AlmaJobInstance], Awaitable[Any]]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.submission = submission or SubmissionConfig()
        self.polling = polling or StatusPollingConfig()
        self.report = report or Report()
        self.on_status_change = on_status_change
        self.retry_policy = retry_policy
        self._sleep = sleep

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"apikey {self.api_key}",
            "Accept": "application/xml",
        }

    def resolve(self, link: str) -> str:
        return urljoin(self.base_url + "/", link)

    def _log_remaining_calls(self, response: aiohttp.ClientResponse) -> None:
        remaining = response.headers.get(REMAINING_CALLS_HEADER)
        if remaining:
            self.report.info(f"{remaining} Alma API calls remaining.")

    async def _request(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        timeout: float,
        data: Optional[bytes] = None,
    ) -> bytes:
        """Performs one request and returns the body of a 2xx response.

        The body is always read in full so the connection goes back to the pool.
        """
        headers = self._headers
        if data is not None:
            headers["Content-Type"] = "application/xml"

        try:
            async with session.request(
                method,
                url,
                data=data,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                body = await response.read()
                self._log_remaining_calls(response)
        except asyncio.TimeoutError as e:
            raise TransportError(f"{method} {url} timed out after {timeout}s") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if response.status == 400:
            raise classify_body(body)
        if not 200 <= response.status < 300:
            text = body.decode("utf-8", errors="replace")
            raise TransportError(
                f"alma API request failed: {response.status} {response.reason} - {text}",
                status=response.status,
                body=text,
            )
        return body

    async def submit_once(
        self, session: aiohttp.ClientSession, path: str, job: AlmaJob
    ) -> JobInstanceHandle:
        """POSTs the job once and returns the tracking handle of the new instance."""
        body = await self._request(
            session,
            "POST",
            self.base_url + path,
            self.submission.timeout,
            data=serialize_job(job),
        )

        returned = parse_job(body, require_parameters=False)
        if returned.additional_info is None or not returned.additional_info.link:
            raise ParseError("job record returned by the API has no job instance link")
        return JobInstanceHandle(link=self.resolve(returned.additional_info.link))

    async def _wait_before_retry(self, attempt: int) -> None:
        delay = (attempt + 1) ** 2 * self.submission.backoff_unit
        self.report.debug(f"Waiting {delay:g}s before resubmitting the job")
        await self._sleep(delay)

    async def submit_job(self, path: str, job: AlmaJob) -> JobInstanceHandle:
        """Submits the job, retrying every failure with quadratic backoff."""
        max_attempts = self.submission.max_attempts
        last_error: Optional[AlmaJobRunnerError] = None

        async with aiohttp.ClientSession() as session:
            for attempt in range(max_attempts):
                try:
                    handle = await self.submit_once(session, path, job)
                except AlmaJobRunnerError as e:
                    last_error = e
                    self.report.warning(
                        f"Failed to submit job: {_describe_failure(e)} "
                        f"({attempt + 1}/{max_attempts})"
                    )
                else:
                    self.report.info(f"Job submitted, instance {handle.instance_id}")
                    return handle

                if self.retry_policy is not None and not self.retry_policy(last_error):
                    self.report.error(f"Not retrying job submission: {last_error}")
                    raise last_error

                if attempt + 1 < max_attempts:
                    await self._wait_before_retry(attempt)

        raise RetryExhausted(max(max_attempts, 0), last_error)

    async def get_status_once(
        self, session: aiohttp.ClientSession, handle: JobInstanceHandle
    ) -> AlmaJobInstance:
        """Fetches the current status of a job instance"""
        body = await self._request(session, "GET", handle.link, self.polling.timeout)
        return parse_job_instance(body)

    async def _handle_status_change(
        self, status: AlmaJobInstance, last_status: Optional[AlmaJobInstance]
    ) -> None:
        changed = last_status is None or last_status.status_value != status.status_value
        if changed and self.on_status_change is not None:
            await self.on_status_change(status)

    async def monitor(self, handle: JobInstanceHandle) -> AlmaJobInstance:
        """Polls the job instance until it reaches a terminal status.

        A failed status request aborts monitoring; the job may still be running
        on the server.
        """
        max_polls = self.polling.max_polls
        last_status: Optional[AlmaJobInstance] = None

        async with aiohttp.ClientSession() as session:
            for poll in range(max_polls):
                status = await self.get_status_once(session, handle)
                await self._handle_status_change(status, last_status)
                last_status = status

                self.report.info(f"Job instance {handle.instance_id}: {status.describe()}")
                if status.is_terminal:
                    return status

                if poll + 1 < max_polls:
                    await self._sleep(self.polling.poll_interval)

        raise MonitorTimeout(max_polls, last_status)
