# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Execution of the external stack deploy command with live output forwarding.
"""
import logging
import os
import subprocess
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

CANCEL_CHECK_INTERVAL = 0.1


def stack_deploy_args(compose_file: str, base_name: str) -> List[str]:
    """
    Arguments passed to the docker CLI for a stack deploy.
    """
    return ["stack", "deploy", "-c", compose_file, base_name]


class ProcessRunner:
    """
    Runs one command to completion, forwarding each output line as it arrives.
    """
    def __init__(self, executable: str = "docker"):
        """
        Initializes the process runner.

        Args:
            executable (str): Program to run, resolved through PATH.
        """
        self.executable = executable
        self.process = None

    def run(self,
            args: List[str],
            working_dir: Optional[str],
            on_line: Callable[[str], None],
            env: Optional[dict] = None,
            cancel: Optional[threading.Event] = None) -> int:
        """
        Runs the command and waits for it to exit.

        Stdout and stderr are merged and read line by line, so progress is
        forwarded without waiting for the process to finish. Bytes that are
        not valid UTF-8 are replaced rather than aborting the read.

        Args:
            args (List[str]): Arguments after the executable.
            working_dir (Optional[str]): Directory to run the command in.
            on_line (Callable[[str], None]): Receives every output line, newline stripped.
            env (Optional[dict]): Environment; defaults to the current one.
            cancel (Optional[threading.Event]): Stops the command when set.

        Returns:
            int: The process exit code.
        """
        command = [self.executable] + list(args)
        logger.debug("Running %s in %s", " ".join(command), working_dir)

        self.process = subprocess.Popen(
            command,
            cwd=working_dir,
            env=env if env is not None else os.environ.copy(),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
            # Avoid shell=True for security reasons (CWE-78)
            shell=False
        )
        watcher = None
        if cancel is not None:
            watcher = threading.Thread(target=self._stop_on_cancel, args=(cancel,), daemon=True)
            watcher.start()
        try:
            for line in self.process.stdout:
                on_line(line.rstrip("\n"))
        finally:
            self.process.stdout.close()
            code = self.process.wait()
            if watcher is not None:
                watcher.join()

        logger.debug("%s exited with code %s", self.executable, code)
        return code

    def _stop_on_cancel(self, cancel: threading.Event):
        while self.process.poll() is None:
            if cancel.wait(CANCEL_CHECK_INTERVAL):
                logger.info("Cancelling %s", self.executable)
                self.stop()
                return

    def stop(self, timeout: int = 10):
        """
        Stops a running command with SIGTERM, then SIGKILL.

        Args:
            timeout (int): Seconds to wait for termination before killing.
        """
        if self.process and self.process.poll() is None:
            self.process.terminate()
            try:
                self.process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                logger.warning("%s did not terminate, killing", self.executable)
                self.process.kill()
