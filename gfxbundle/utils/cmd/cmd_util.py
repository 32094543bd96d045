#
# Copyright 2024 gfxbundle Project Authors. All rights reserved.
# Use of this source code is governed by a MIT-style
# license that can be found at
#
# https://opensource.org/license/MIT
#
# The above copyright notice and this permission
# notice shall be included in all copies or
# substantial portions of the Software.

import subprocess
import sys
import time

DEFAULT_TIMEOUT_SECOND = 10
# native builds may take a long time, 3 hours
BUILD_TIMEOUT_SECOND = 3 * 3600
POLL_INTERVAL_SECOND = 0.2
TERMINATE_GRACE_SECOND = 5

ERR_CODE_TIMEOUT = -9
ERR_CODE_CANCELLED = -15


def decode_bytes(input: bytes) -> str:
    if not input:
        return ""
    try:
        return bytes.decode(input, "UTF-8")
    except UnicodeDecodeError:
        return bytes.decode(input, "GBK", errors="replace")


def _stop_process(process):
    process.terminate()
    try:
        return process.communicate(timeout=TERMINATE_GRACE_SECOND)
    except subprocess.TimeoutExpired:
        process.kill()
        return process.communicate()


def exec_command_with_timeout_second(
    command,
    timeout_second=DEFAULT_TIMEOUT_SECOND,
    cwd=None,
    env=None,
    cancel_event=None,
):
    """
    Run a command and capture its combined stdout/stderr.

    Args:
        command: argument list, or a shell command string
        timeout_second: the process is killed after this many seconds
        cwd: working directory of the process
        env: environment of the process (default: inherited)
        cancel_event: optional threading.Event; once set the process is
            terminated and ERR_CODE_CANCELLED is returned

    Returns:
        tuple: (err_code, output)
    """
    start_mills = int(time.time() * 1000)
    deadline = time.monotonic() + timeout_second
    if cancel_event is not None and cancel_event.is_set():
        return ERR_CODE_CANCELLED, "cancelled before start"

    compile_popen = subprocess.Popen(
        command,
        shell=isinstance(command, str),
        cwd=cwd,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
    )
    while True:
        try:
            stdout, _ = compile_popen.communicate(timeout=POLL_INTERVAL_SECOND)
            break
        except subprocess.TimeoutExpired:
            if cancel_event is not None and cancel_event.is_set():
                stdout, _ = _stop_process(compile_popen)
                return ERR_CODE_CANCELLED, decode_bytes(stdout) + "\ncancelled"
            if time.monotonic() >= deadline:
                compile_popen.kill()
                stdout, _ = compile_popen.communicate()
                use_time = int(time.time() * 1000) - start_mills
                err_msg = decode_bytes(stdout)
                err_msg += f"\nFailed for timeout({ERR_CODE_TIMEOUT}), use_time: {use_time}ms"
                return ERR_CODE_TIMEOUT, err_msg

    err_code = compile_popen.returncode
    err_msg = decode_bytes(stdout)
    if sys.platform.startswith("win"):
        err_msg = err_msg.replace("\r\n", "\n")
    return err_code, err_msg
