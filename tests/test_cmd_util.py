import sys
import threading
import time

import pytest

from gfxbundle.utils.cmd.cmd_util import (
    ERR_CODE_CANCELLED,
    ERR_CODE_TIMEOUT,
    decode_bytes,
    exec_command_with_timeout_second,
)

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX shell commands")


class TestExecCommand:
    def test_captures_output(self):
        err_code, output = exec_command_with_timeout_second(["echo", "hello"])

        assert err_code == 0
        assert output == "hello\n"

    def test_stderr_is_merged(self, tmp_path):
        err_code, output = exec_command_with_timeout_second("echo oops 1>&2; exit 3", cwd=str(tmp_path))

        assert err_code == 3
        assert output == "oops\n"

    def test_cancel_terminates_running_process(self):
        cancel_event = threading.Event()
        timer = threading.Timer(0.3, cancel_event.set)
        timer.start()
        before = time.monotonic()
        try:
            err_code, output = exec_command_with_timeout_second(
                ["sleep", "10"], timeout_second=30, cancel_event=cancel_event
            )
        finally:
            timer.cancel()

        assert err_code == ERR_CODE_CANCELLED
        assert output.endswith("cancelled")
        assert time.monotonic() - before < 5

    def test_timeout_kills_process(self):
        before = time.monotonic()

        err_code, output = exec_command_with_timeout_second(["sleep", "10"], timeout_second=1)

        assert err_code == ERR_CODE_TIMEOUT
        assert f"Failed for timeout({ERR_CODE_TIMEOUT})" in output
        assert time.monotonic() - before < 5

    def test_cancelled_before_start(self, tmp_path):
        cancel_event = threading.Event()
        cancel_event.set()
        marker = tmp_path / "ran"

        err_code, output = exec_command_with_timeout_second(
            ["touch", str(marker)], cancel_event=cancel_event
        )

        assert (err_code, output) == (ERR_CODE_CANCELLED, "cancelled before start")
        assert not marker.exists()


class TestDecodeBytes:
    def test_utf8(self):
        assert decode_bytes("✅ done".encode("utf-8")) == "✅ done"

    def test_gbk_fallback(self):
        assert decode_bytes("编译失败".encode("gbk")) == "编译失败"

    def test_empty(self):
        assert decode_bytes(b"") == ""
        assert decode_bytes(None) == ""
