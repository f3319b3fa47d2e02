import pytest

from alma_job_runner.documents import (
    load_job,
    parse_api_error,
    parse_job,
    parse_job_instance,
    serialize_job,
    serialize_job_instance,
)
from alma_job_runner.errors import ParseError
from alma_job_runner.models import AlmaJob, DescAndValue, LinkAndValue, Parameter

FULL_JOB = """<job link="joblink">
  <id>M26714670000011</id>
  <name>Export Physical Items (name)</name>
  <description>Export Physical Items (description)</description>
  <type desc="Manual">MANUAL</type>
  <category desc="Normalization">NORMALIZATION</category>
  <content desc="All Titles">BIB_MMS</content>
  <schedule desc="Not scheduled">NOT_SCHEDULED</schedule>
  <creator>A Cool Cat</creator>
  <next_run>2015-07-20</next_run>
  <parameters>
    <parameter>
      <name desc="param desc">DESC</name>
      <value>AlphaBetaGamma</value>
    </parameter>
    <parameter>
      <name desc="param desc 2">DESC2</name>
      <value>AlphaBetaGammaDelta</value>
    </parameter>
  </parameters>
  <related_profile link="related profile link">ID123</related_profile>
  <additional_info link="additional info link">additional info value</additional_info>
</job>"""

FULL_JOB_INSTANCE = """<job_instance link="job instance link">
  <id>1108569450000121</id>
  <external_id>1108569450000122</external_id>
  <name>Export Physical Items - war and love - 04/15/2015 16:07</name>
  <submitted_by desc="submitted by exl">exl_impl</submitted_by>
  <submit_time>2015-04-15T13:07:40.800Z</submit_time>
  <start_time>2015-04-15T13:07:40.868Z</start_time>
  <end_time>2015-04-15T13:07:44.359Z</end_time>
  <progress>50.776</progress>
  <status desc="status desc queued">QUEUED</status>
  <status_date>2015-07-20</status_date>
  <alerts>
    <alert desc="alert desc">alert_general_success</alert>
  </alerts>
  <counters>
    <counter>
      <type desc="counter extreme">4</type>
      <value>It's at 4!</value>
    </counter>
  </counters>
  <actions>
    <action>action 1</action>
    <action>action 2</action>
  </actions>
  <job_info link="job link">
    <id>1108569450000121</id>
    <name>Export Physical Items - war and love - 04/15/2015 16:07</name>
    <description>job description</description>
    <type desc="create set">CREATE_SET</type>
    <category desc="normalization">NORMALIZATION</category>
  </job_info>
</job_instance>"""

PARAMETERS_FILE = """<job>
\t<parameters>
\t\t<parameter>
\t\t\t<name>task_MmsTaggingParams_boolean</name>
\t\t\t<value>NONE</value>
\t\t</parameter>
\t\t<parameter>
\t\t\t<name>set_id</name>
\t\t\t<value>4000000000000</value>
\t\t</parameter>
\t\t<parameter>
\t\t\t<name>job_name</name>
\t\t\t<value>A Job Name Here</value>
\t\t</parameter>
\t</parameters>
</job>"""


def test_parse_job_keeps_attribute_metadata():
    job = parse_job(FULL_JOB)

    assert job.link == "joblink"
    assert job.id == "M26714670000011"
    assert job.type == DescAndValue(value="MANUAL", desc="Manual")
    assert job.schedule == DescAndValue(value="NOT_SCHEDULED", desc="Not scheduled")
    assert job.parameters == (
        Parameter(name=DescAndValue(value="DESC", desc="param desc"), value="AlphaBetaGamma"),
        Parameter(
            name=DescAndValue(value="DESC2", desc="param desc 2"), value="AlphaBetaGammaDelta"
        ),
    )
    assert job.related_profile == LinkAndValue(value="ID123", link="related profile link")
    assert job.additional_info == LinkAndValue(
        value="additional info value", link="additional info link"
    )


def test_serialize_job_matches_schema_order():
    assert serialize_job(parse_job(FULL_JOB)).decode("utf-8") == FULL_JOB


def test_job_round_trip_is_idempotent():
    job = parse_job(PARAMETERS_FILE)
    assert parse_job(serialize_job(job)) == job
    assert serialize_job(parse_job(serialize_job(job))) == serialize_job(job)


def test_job_without_parameters_round_trips():
    job = parse_job("<job><parameters/></job>")
    assert job.parameters == ()
    assert parse_job(serialize_job(job)) == job


def test_carriage_return_in_value_round_trips():
    job = parse_job(
        "<job><parameters><parameter><name>a</name>"
        "<value>x&#13;y</value></parameter></parameters></job>"
    )
    assert job.parameters[0].value == "x\ry"
    assert b"&#13;" in serialize_job(job)
    assert parse_job(serialize_job(job)) == job


def test_job_ignores_namespaces():
    job = parse_job(
        '<job xmlns="urn:alma"><parameters><parameter><name>a</name>'
        "<value>b</value></parameter></parameters></job>"
    )
    assert job.parameter_pairs == [("a", "b")]


def test_load_job(tmp_path):
    params = tmp_path / "job.params.xml"
    params.write_text(PARAMETERS_FILE)

    assert load_job(params) == AlmaJob(
        parameters=(
            Parameter(name=DescAndValue(value="task_MmsTaggingParams_boolean"), value="NONE"),
            Parameter(name=DescAndValue(value="set_id"), value="4000000000000"),
            Parameter(name=DescAndValue(value="job_name"), value="A Job Name Here"),
        )
    )


def test_load_job_missing_file(tmp_path):
    with pytest.raises(ParseError, match="could not read"):
        load_job(tmp_path / "missing.xml")


@pytest.mark.parametrize(
    "document, message",
    [
        ("<job><parameters>", "well-formed"),
        ("", "well-formed"),
        (b'<?xml version="1.0" encoding="bogus"?><job><parameters/></job>', "well-formed"),
        ("<job_instance/>", "expected <job>"),
        ("<job><name>no parameters</name></job>", "no <parameters>"),
        ("<job><parameters><parameter><value>x</value></parameter></parameters></job>", "name"),
    ],
)
def test_parse_job_rejects_malformed_documents(document, message):
    with pytest.raises(ParseError, match=message):
        parse_job(document)


def test_parse_job_returned_by_api_without_parameters():
    job = parse_job(
        '<job><id>M1</id><additional_info link="https://x/instances/9">triggered</additional_info></job>',
        require_parameters=False,
    )
    assert job.parameters == ()
    assert job.additional_info.link == "https://x/instances/9"


def test_parse_rejects_entity_expansion():
    document = (
        '<?xml version="1.0"?><!DOCTYPE job [<!ENTITY a "aaaa">]>'
        "<job><name>&a;</name><parameters/></job>"
    )
    with pytest.raises(ParseError):
        parse_job(document)


def test_parse_job_instance():
    instance = parse_job_instance(FULL_JOB_INSTANCE.replace("It's", "It&#39;s"))

    assert instance.progress == 50.776
    assert instance.status == DescAndValue(value="QUEUED", desc="status desc queued")
    assert instance.counters[0].type == DescAndValue(value="4", desc="counter extreme")
    assert instance.counters[0].value == "It's at 4!"
    assert instance.actions == ("action 1", "action 2")
    assert instance.job_info.link == "job link"
    assert instance.job_info.type == DescAndValue(value="CREATE_SET", desc="create set")


def test_serialize_job_instance_matches_schema_order():
    instance = parse_job_instance(FULL_JOB_INSTANCE)
    assert serialize_job_instance(instance).decode("utf-8") == FULL_JOB_INSTANCE
    assert parse_job_instance(serialize_job_instance(instance)) == instance


def test_parse_job_instance_rejects_bad_progress():
    with pytest.raises(ParseError, match="progress"):
        parse_job_instance("<job_instance><progress>half</progress></job_instance>")


@pytest.mark.parametrize(
    "end_time, status, terminal",
    [
        (None, "RUNNING", False),
        ("2024-01-01T00:00:00Z", "FINALIZING", False),
        ("2024-01-01T00:05:00Z", "COMPLETED", True),
        ("", "COMPLETED_SUCCESS", False),
    ],
)
def test_job_instance_terminal_state(end_time, status, terminal):
    document = "<job_instance>"
    if end_time is not None:
        document += f"<end_time>{end_time}</end_time>"
    document += f"<status>{status}</status></job_instance>"

    assert parse_job_instance(document).is_terminal is terminal


def test_parse_api_error():
    payload = parse_api_error(
        """<web_service_result xmlns="http://com/exlibris/urm/general/xmlbeans">
  <errorsExist>true</errorsExist>
  <errorList>
    <error>
      <errorCode>402229</errorCode>
      <errorMessage>mandatory parameter value is empty</errorMessage>
      <trackingId>E01-1</trackingId>
    </error>
    <error>
      <errorCode>402216</errorCode>
      <errorMessage>invalid job id</errorMessage>
    </error>
  </errorList>
</web_service_result>"""
    )

    assert [error.code for error in payload.errors] == ["402229", "402216"]
    assert payload.errors[0].message == "mandatory parameter value is empty"
    assert payload.errors[0].tracking_id == "E01-1"
    assert payload.errors[1].tracking_id is None
