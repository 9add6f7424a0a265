# remote_exec.py
# Remote execution gateway: run one shell command on one named node and get back its exit
# status and output. Callers never care which provider a node lives in.
#
#   - gce nodes are reached with `gcloud compute ssh <name> --zone=<zone> --command=...`
#   - ec2 nodes are reached with paramiko on their public ip (or name), one SSHClient per
#     connect attempt, with a pty so sudo works on images with requiretty set.
#
# A non-zero exit status is NOT an exception, it is returned in the CommandResult so the
# caller can decide (eg. mount exit 32 == already mounted). RemoteExecutionError is raised
# only when the command could not be delivered at all.

import logging
import subprocess
import time

import paramiko

from cluster_repair.errors import RemoteExecutionError
from cluster_repair.models import AWS, GCE, CommandResult

logger = logging.getLogger(__name__)

SLEEP_BETWEEN_ATTEMPTS = 10


class RemoteExecutor:

    def __init__(self, settings, sleep=time.sleep):
        self.settings = settings
        self.sleep = sleep

    def run(self, node, command):
        if node.provider == GCE:
            return self._run_gce(node, command)
        if node.provider == AWS:
            return self._run_aws(node, command)
        raise RemoteExecutionError(f"unsupported provider {node.provider!r} for node {node.name}", node=node.name)

    def _run_gce(self, node, command):
        if not node.zone:
            raise RemoteExecutionError(f"gce node {node.name} has no zone", node=node.name)

        args = ["gcloud", "compute", "ssh", node.name, f"--zone={node.zone}", f"--command={command}", "--quiet"]
        if self.settings.gce_project:
            args.append(f"--project={self.settings.gce_project}")

        logger.debug(f"[{node.name}] gcloud compute ssh: {command}")
        try:
            res = subprocess.run(
                args,
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL
            )
        except OSError as e:
            raise RemoteExecutionError(f"'gcloud compute ssh {node.name}' could not be run: {e}", node=node.name)

        return CommandResult(res.returncode, res.stdout or "", res.stderr or "")

    def _connect(self, node):
        host = node.ssh_host
        attempts = self.settings.max_ssh_attempts
        last_error = None

        for attempt in range(attempts):
            ssh = paramiko.SSHClient()  # new SSH client per attempt
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            try:
                logger.debug(f"Attempting to connect to {host} (Attempt {attempt + 1})")
                ssh.connect(
                    hostname=host,
                    port=self.settings.port,
                    username=self.settings.aws_ssh_user,
                    key_filename=self.settings.key_path,
                    timeout=self.settings.ssh_timeout,
                    banner_timeout=self.settings.ssh_timeout,
                    auth_timeout=self.settings.ssh_timeout,
                )
                return ssh
            except (paramiko.ssh_exception.SSHException, EOFError, OSError) as e:
                # NoValidConnectionsError and socket timeouts are both OSErrors
                last_error = e
                ssh.close()
                logger.warning(f"[{host}] SSH connect attempt {attempt + 1}/{attempts} failed: {e}")
                if attempt < attempts - 1:
                    self.sleep(SLEEP_BETWEEN_ATTEMPTS)

        raise RemoteExecutionError(
            f"failed to connect to {node.name} ({host}) after {attempts} attempts: {last_error}",
            node=node.name,
        )

    def _run_aws(self, node, command):
        ssh = self._connect(node)
        try:
            logger.debug(f"[{node.name}] ssh {self.settings.aws_ssh_user}@{node.ssh_host}: {command}")
            stdin, stdout, stderr = ssh.exec_command(command, get_pty=True)
            stdout_output = stdout.read().decode()
            stderr_output = stderr.read().decode()
            exit_status = stdout.channel.recv_exit_status()
        except (paramiko.ssh_exception.SSHException, EOFError, OSError) as e:
            raise RemoteExecutionError(f"'{command}' on {node.name} failed: {e}", node=node.name)
        finally:
            ssh.close()

        return CommandResult(exit_status, stdout_output, stderr_output)
