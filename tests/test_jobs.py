import io
import json

from cabbage.jobs import fake_job
from cabbage.logger import LoggerConfig, create_logger


def test_fake_job_logs_info_line():
    stream = io.StringIO()
    logger = create_logger(LoggerConfig(service_name="cabbage", environment="TEST"), stream=stream)

    fake_job(logger)

    lines = stream.getvalue().splitlines()
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["message"] == "fake job running"
    assert record["level"] == "info"
    assert record["service"] == "cabbage"
    assert record["environment"] == "TEST"


def test_fake_job_is_filtered_above_info():
    stream = io.StringIO()
    logger = create_logger(LoggerConfig(level="warn"), stream=stream)

    fake_job(logger)

    assert stream.getvalue() == ""