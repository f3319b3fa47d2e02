"""XML (de)serialization of the documents exchanged with the Alma Jobs API.

Element order follows the Alma schemas (rest_job.xsd, rest_job_instance.xsd)
so the output is stable and can be sent as a request body as is. Namespaces
are ignored when reading: elements are matched by local name.
"""

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional, Union

import defusedxml
from defusedxml import ElementTree as SafeET

from alma_job_runner.errors import ParseError
from alma_job_runner.models import (
    AlmaJob,
    AlmaJobInfo,
    AlmaJobInstance,
    ApiErrorDetail,
    ApiErrorPayload,
    Counter,
    DescAndValue,
    LinkAndValue,
    Parameter,
)

XmlInput = Union[bytes, str]


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _parse_root(data: XmlInput, expected: str) -> ET.Element:
    try:
        root = SafeET.fromstring(data)
    except (
        SafeET.ParseError,
        defusedxml.DefusedXmlException,
        LookupError,
        ValueError,
    ) as e:
        raise ParseError(f"document is not well-formed XML: {e}") from e
    if _local(root.tag) != expected:
        raise ParseError(f"expected <{expected}> document, got <{_local(root.tag)}>")
    return root


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    children = _children(element, name)
    return children[0] if children else None


def _text(element: ET.Element, name: str) -> Optional[str]:
    child = _child(element, name)
    if child is None:
        return None
    return child.text or ""


def _desc_and_value(element: Optional[ET.Element]) -> Optional[DescAndValue]:
    if element is None:
        return None
    return DescAndValue(value=element.text or "", desc=element.get("desc"))


def _link_and_value(element: Optional[ET.Element]) -> Optional[LinkAndValue]:
    if element is None:
        return None
    return LinkAndValue(value=element.text or "", link=element.get("link"))


def _add_text(parent: ET.Element, name: str, value: Optional[str]) -> None:
    if value is not None:
        ET.SubElement(parent, name).text = value


def _add_attributed(
    parent: ET.Element, name: str, attribute: str, value: str, attribute_value: Optional[str]
) -> None:
    element = ET.SubElement(parent, name)
    if attribute_value is not None:
        element.set(attribute, attribute_value)
    element.text = value


def _add_desc(parent: ET.Element, name: str, item: Optional[DescAndValue]) -> None:
    if item is not None:
        _add_attributed(parent, name, "desc", item.value, item.desc)


def _add_link(parent: ET.Element, name: str, item: Optional[LinkAndValue]) -> None:
    if item is not None:
        _add_attributed(parent, name, "link", item.value, item.link)


def _to_bytes(root: ET.Element) -> bytes:
    ET.indent(root, space="  ")
    # a raw carriage return would be read back as a newline
    text = ET.tostring(root, encoding="unicode").replace("\r", "&#13;")
    return text.encode("utf-8")


def _parse_parameter(element: ET.Element) -> Parameter:
    name = _desc_and_value(_child(element, "name"))
    if name is None or not name.value:
        raise ParseError("job parameter is missing its <name>")
    return Parameter(name=name, value=_text(element, "value") or "")


def parse_job(data: XmlInput, require_parameters: bool = True) -> AlmaJob:
    """Reads a ``<job>`` document.

    A parameters file must carry a ``<parameters>`` list; job records returned
    by the API are read with ``require_parameters=False``.
    """
    root = _parse_root(data, "job")

    parameters_element = _child(root, "parameters")
    if parameters_element is None and require_parameters:
        raise ParseError("job document has no <parameters> list")
    parameters = ()
    if parameters_element is not None:
        parameters = tuple(
            _parse_parameter(element)
            for element in _children(parameters_element, "parameter")
        )

    return AlmaJob(
        link=root.get("link"),
        id=_text(root, "id"),
        name=_text(root, "name"),
        description=_text(root, "description"),
        type=_desc_and_value(_child(root, "type")),
        category=_desc_and_value(_child(root, "category")),
        content=_desc_and_value(_child(root, "content")),
        schedule=_desc_and_value(_child(root, "schedule")),
        creator=_text(root, "creator"),
        next_run=_text(root, "next_run"),
        parameters=parameters,
        related_profile=_link_and_value(_child(root, "related_profile")),
        additional_info=_link_and_value(_child(root, "additional_info")),
    )


def serialize_job(job: AlmaJob) -> bytes:
    root = ET.Element("job")
    if job.link is not None:
        root.set("link", job.link)
    _add_text(root, "id", job.id)
    _add_text(root, "name", job.name)
    _add_text(root, "description", job.description)
    _add_desc(root, "type", job.type)
    _add_desc(root, "category", job.category)
    _add_desc(root, "content", job.content)
    _add_desc(root, "schedule", job.schedule)
    _add_text(root, "creator", job.creator)
    _add_text(root, "next_run", job.next_run)

    # Always written, even when empty, so the document parses back.
    parameters = ET.SubElement(root, "parameters")
    for parameter in job.parameters:
        element = ET.SubElement(parameters, "parameter")
        _add_desc(element, "name", parameter.name)
        _add_text(element, "value", parameter.value)

    _add_link(root, "related_profile", job.related_profile)
    _add_link(root, "additional_info", job.additional_info)
    return _to_bytes(root)


def load_job(path: Union[str, Path]) -> AlmaJob:
    """Loads and validates a job parameters file."""
    file_path = Path(path).expanduser().resolve()
    try:
        data = file_path.read_bytes()
    except OSError as e:
        raise ParseError(f"could not read parameters file {file_path}: {e}") from e
    return parse_job(data)


def _parse_job_info(element: Optional[ET.Element]) -> Optional[AlmaJobInfo]:
    if element is None:
        return None
    return AlmaJobInfo(
        link=element.get("link"),
        id=_text(element, "id"),
        name=_text(element, "name"),
        description=_text(element, "description"),
        type=_desc_and_value(_child(element, "type")),
        category=_desc_and_value(_child(element, "category")),
    )


def _parse_counter(element: ET.Element) -> Counter:
    return Counter(
        type=_desc_and_value(_child(element, "type")) or DescAndValue(),
        value=_text(element, "value") or "",
    )


def _list_items(root: ET.Element, container: str, item: str) -> list[ET.Element]:
    element = _child(root, container)
    if element is None:
        return []
    return _children(element, item)


def parse_job_instance(data: XmlInput) -> AlmaJobInstance:
    root = _parse_root(data, "job_instance")

    progress = _text(root, "progress")
    try:
        progress_value = float(progress) if progress else None
    except ValueError as e:
        raise ParseError(f"job instance progress is not a number: {progress!r}") from e

    return AlmaJobInstance(
        link=root.get("link"),
        id=_text(root, "id"),
        external_id=_text(root, "external_id"),
        name=_text(root, "name"),
        submitted_by=_desc_and_value(_child(root, "submitted_by")),
        submit_time=_text(root, "submit_time"),
        start_time=_text(root, "start_time"),
        end_time=_text(root, "end_time"),
        progress=progress_value,
        status=_desc_and_value(_child(root, "status")),
        status_date=_text(root, "status_date"),
        alerts=tuple(
            _desc_and_value(element) for element in _list_items(root, "alerts", "alert")
        ),
        counters=tuple(
            _parse_counter(element) for element in _list_items(root, "counters", "counter")
        ),
        actions=tuple(
            element.text or "" for element in _list_items(root, "actions", "action")
        ),
        job_info=_parse_job_info(_child(root, "job_info")),
    )


def serialize_job_instance(instance: AlmaJobInstance) -> bytes:
    root = ET.Element("job_instance")
    if instance.link is not None:
        root.set("link", instance.link)
    _add_text(root, "id", instance.id)
    _add_text(root, "external_id", instance.external_id)
    _add_text(root, "name", instance.name)
    _add_desc(root, "submitted_by", instance.submitted_by)
    _add_text(root, "submit_time", instance.submit_time)
    _add_text(root, "start_time", instance.start_time)
    _add_text(root, "end_time", instance.end_time)
    if instance.progress is not None:
        _add_text(root, "progress", repr(instance.progress))
    _add_desc(root, "status", instance.status)
    _add_text(root, "status_date", instance.status_date)

    if instance.alerts:
        alerts = ET.SubElement(root, "alerts")
        for alert in instance.alerts:
            _add_desc(alerts, "alert", alert)
    if instance.counters:
        counters = ET.SubElement(root, "counters")
        for counter in instance.counters:
            element = ET.SubElement(counters, "counter")
            _add_desc(element, "type", counter.type)
            _add_text(element, "value", counter.value)
    if instance.actions:
        actions = ET.SubElement(root, "actions")
        for action in instance.actions:
            _add_text(actions, "action", action)

    info = instance.job_info
    if info is not None:
        element = ET.SubElement(root, "job_info")
        if info.link is not None:
            element.set("link", info.link)
        _add_text(element, "id", info.id)
        _add_text(element, "name", info.name)
        _add_text(element, "description", info.description)
        _add_desc(element, "type", info.type)
        _add_desc(element, "category", info.category)
    return _to_bytes(root)


def parse_api_error(data: XmlInput) -> ApiErrorPayload:
    """Reads a ``<web_service_result>`` error document."""
    root = _parse_root(data, "web_service_result")
    errors = tuple(
        ApiErrorDetail(
            code=(_text(element, "errorCode") or "").strip(),
            message=(_text(element, "errorMessage") or "").strip(),
            tracking_id=_text(element, "trackingId"),
        )
        for element in _list_items(root, "errorList", "error")
    )
    return ApiErrorPayload(errors=errors)
