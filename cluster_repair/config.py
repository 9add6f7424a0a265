# config.py
# Settings for a repair run.
#
# Values are read from the environment. load_dotenv() merges a local .env file first, the same
# way the pipeline modules pick up AWS_ACCESS_KEY_ID, region_name, key_path etc. Nothing here is
# cached between runs; load_settings() builds a fresh Settings each time it is called.

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from cluster_repair.errors import ConfigurationError


@dataclass(frozen=True)
class Settings:
    aws_access_key: str = None
    aws_secret_key: str = None
    region_name: str = None
    gce_project: str = None

    # ssh into the ec2 nodes
    aws_ssh_user: str = "centos"
    key_path: str = "EC2_generic_key.pem"
    port: int = 22
    max_ssh_attempts: int = 5
    ssh_timeout: int = 30

    # /etc/hosts alias convention for the ec2 nodes, eg. "aws-node1", "aws-node2"...
    ec2_host_alias: str = "aws-node"
    hosts_file: str = "/etc/hosts"

    # gluster
    mount_path: str = "/mnt/vol"
    already_mounted_codes: tuple = field(default=(32,))
    gluster_max_tries: int = 5
    gluster_poll_interval: float = 3

    max_workers: int = 8
    wait_for_running: bool = True
    log_level: str = "INFO"


def _get_int(env, key, default):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}")


def _get_float(env, key, default):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")


def _get_bool(env, key, default):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{key} must be true/false, got {raw!r}")


def _get_codes(env, key, default):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return tuple(int(code) for code in raw.split(",") if code.strip())
    except ValueError:
        raise ConfigurationError(f"{key} must be a comma separated list of exit codes, got {raw!r}")


def load_settings(env=None, dotenv=True):
    """
    Build Settings from the environment.

    Parameters:
        env (dict): mapping to read instead of os.environ (tests pass a plain dict)
        dotenv (bool): merge a local .env file into os.environ first

    Raises ConfigurationError for malformed numeric or boolean values, or when a positive
    value is required and something <= 0 was supplied.
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    defaults = Settings()
    settings = Settings(
        aws_access_key=env.get("AWS_ACCESS_KEY_ID") or None,
        aws_secret_key=env.get("AWS_SECRET_ACCESS_KEY") or None,
        region_name=env.get("region_name") or None,
        gce_project=env.get("GCE_PROJECT") or None,
        aws_ssh_user=env.get("AWS_SSH_USER") or defaults.aws_ssh_user,
        key_path=env.get("key_path") or defaults.key_path,
        port=_get_int(env, "port", defaults.port),
        max_ssh_attempts=_get_int(env, "max_ssh_attempts", defaults.max_ssh_attempts),
        ssh_timeout=_get_int(env, "ssh_timeout", defaults.ssh_timeout),
        ec2_host_alias=env.get("EC2_HOST_ALIAS") or defaults.ec2_host_alias,
        hosts_file=env.get("HOSTS_FILE") or defaults.hosts_file,
        mount_path=env.get("GLUSTER_MOUNT_PATH") or defaults.mount_path,
        already_mounted_codes=_get_codes(env, "GLUSTER_ALREADY_MOUNTED_CODES", defaults.already_mounted_codes),
        gluster_max_tries=_get_int(env, "GLUSTER_MAX_TRIES", defaults.gluster_max_tries),
        gluster_poll_interval=_get_float(env, "GLUSTER_POLL_INTERVAL", defaults.gluster_poll_interval),
        max_workers=_get_int(env, "MAX_WORKERS", defaults.max_workers),
        wait_for_running=_get_bool(env, "WAIT_FOR_RUNNING", defaults.wait_for_running),
        log_level=(env.get("LOG_LEVEL") or defaults.log_level).upper(),
    )

    for name in ("port", "max_ssh_attempts", "gluster_max_tries", "max_workers"):
        if getattr(settings, name) <= 0:
            raise ConfigurationError(f"{name} must be greater than 0")
    if settings.gluster_poll_interval < 0:
        raise ConfigurationError("GLUSTER_POLL_INTERVAL must not be negative")

    return settings
