"""Shared constants for pctbatch."""

STATUS_RUNNING = "running"
STATUS_STOPPED = "stopped"

# (initial delay seconds, attempts, interval seconds)
START_POLL = (2, 30, 1)
RESTART_POLL = (3, 60, 2)
SHUTDOWN_POLL = (2, 60, 2)
REBOOT_AFTER_UPDATE_POLL = (5, 30, 2)

BACKUP_SUFFIX_FORMAT = ".backup-%Y%m%d-%H%M%S"

SSHD_CONFIG = "/etc/ssh/sshd_config"
SSH_SERVICES = ("ssh", "sshd")
ZONEINFO_DIR = "/usr/share/zoneinfo"
REBOOT_REQUIRED_FLAG = "/var/run/reboot-required"
APT_CONF_DIR = "/etc/apt/apt.conf.d"
SUDOERS_DIR = "/etc/sudoers.d"
DEFAULT_SSH_KEY = "/root/.ssh/id_rsa.pub"

DEFAULT_DISK_THRESHOLD = 80
DEFAULT_MEMORY_THRESHOLD = 90

CONFIG_FILE_NAME = ".pctbatch.yml"
