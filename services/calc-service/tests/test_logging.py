import json
import logging

from calcforest_common.logging import json_formatter


def test_extra_fields_are_rendered():
    record = logging.makeLogRecord(
        {
            "name": "calc-service",
            "levelname": "WARNING",
            "levelno": logging.WARNING,
            "msg": "Rate limit exceeded on /api/calculations",
            "client": "10.0.0.1",
        }
    )

    line = json.loads(json_formatter().format(record))

    assert line["event"] == "Rate limit exceeded on /api/calculations"
    assert line["level"] == "warning"
    assert line["logger"] == "calc-service"
    assert line["client"] == "10.0.0.1"
    assert "timestamp" in line


def test_validation_log_line_carries_errors(client, alice_headers, caplog):
    with caplog.at_level(logging.WARNING, logger="calc-service"):
        response = client.post("/api/calculations", json={"value": "x"}, headers=alice_headers)
    assert response.status_code == 422

    record = next(r for r in caplog.records if r.getMessage().startswith("Validation error"))
    line = json.loads(json_formatter().format(record))

    assert line["errors"] == response.json()["errors"]
    assert line["errors"][0]["field"] == "body.value"
