import logging

import pytest

from deploy_api.utils.decorators import log_operation


def test_log_operation_logs_completion(caplog):
    @log_operation("Apply policy")
    def apply():
        return "done"

    with caplog.at_level(logging.INFO, logger="deploy_api.utils.decorators"):
        assert apply() == "done"

    assert "Starting: Apply policy" in caplog.text
    assert "Completed: Apply policy in" in caplog.text


def test_log_operation_reraises(caplog):
    @log_operation()
    def push_image():
        raise RuntimeError("denied")

    with caplog.at_level(logging.INFO, logger="deploy_api.utils.decorators"):
        with pytest.raises(RuntimeError):
            push_image()

    assert "Failed: push_image after" in caplog.text
    assert "denied" in caplog.text
