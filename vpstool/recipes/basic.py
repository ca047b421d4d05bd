"""
Receta basic: aprovisionamiento base de un VPS Debian.

hostname, timezone, reenvío IP, backports, paquetes base, usuario sudo,
SSH sin root, Tailscale (exit node + SSH), UFW, Fail2Ban y healthcheck
opcional.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from hostplane.core.resources import builders as rb
from hostplane.core.resources.models import Resource
from vpstool.recipes import RecipeResult
from vpstool.recipes.system import DEBIAN_CODENAMES

BASE_PACKAGES = ["sudo", "btop", "curl", "nano", "nginx", "certbot", "python3-certbot-nginx", "gnupg2"]
BASE_PACKAGES_KEY = "package:base"

SYSCTL_FILE = "/etc/sysctl.d/99-tailscale.conf"
SOURCES_LIST = "/etc/apt/sources.list"
SSHD_CONFIG = "/etc/ssh/sshd_config"
UFW_DEFAULTS = "/etc/default/ufw"
JAIL_LOCAL = "/etc/fail2ban/jail.local"
HEALTHCHECK_UNIT = "/etc/systemd/system/healthcheck_pinger.service"

TAILSCALE_UP = ["tailscale", "up", "--advertise-exit-node", "--accept-routes", "--ssh"]

JAIL_LOCAL_CONTENT = """[DEFAULT]
# Ban IP for 10 minutes after 5 failed attempts
bantime = 600
findtime = 600
maxretry = 5
backend = auto

[sshd]
enabled = true
port = ssh
logpath = %(sshd_log)s
backend = %(sshd_backend)s
"""

HEALTHCHECK_SCRIPT = """#!/bin/bash

healthcheck_url="https://hc-ping.com/{healthcheck_id}"
ping_interval=1200  # Ping interval in seconds (20 minutes)

while true; do
    response=$(curl -s -o /dev/null -w "%{{http_code}}" "$healthcheck_url")

    if [ "$response" -eq 200 ]; then
        echo "Healthcheck succeeded for $healthcheck_url"
    else
        echo "Healthcheck failed for $healthcheck_url. Status code: $response"
    fi

    sleep "$ping_interval"
done
"""

HEALTHCHECK_SERVICE = """[Unit]
Description=Healthcheck Pinger
After=network.target

[Service]
ExecStart={script}
User={user}
Restart=always
RestartSec=5

[Install]
WantedBy=multi-user.target
"""


@dataclass
class BasicOptions:
    """Parámetros de la receta basic"""
    hostname: str
    username: str
    password: Optional[str] = None
    timezone: str = "Asia/Singapore"
    tailscale_authkey: Optional[str] = None
    tailscale: bool = True
    debian_version: Optional[str] = None
    healthcheck_id: Optional[str] = None
    home_root: str = "/home"
    restart_ssh: bool = False


def hostname_resources(hostname: str) -> List[Resource]:
    return [
        rb.command(
            "hostname",
            check=["hostnamectl", "--static"],
            expect=hostname,
            attempts=[{"label": "hostnamectl", "argv": ["hostnamectl", "set-hostname", hostname]}],
        ),
        rb.line_in_file(
            "/etc/hosts",
            f"127.0.1.1\t{hostname}",
            pattern=r"^127\.0\.1\.1\s",
            key="line:/etc/hosts:127.0.1.1",
            depends_on=["hostname"],
        ),
    ]


def timezone_resource(timezone: str) -> Resource:
    return rb.command(
        "timezone",
        check=["timedatectl", "show", "-p", "Timezone", "--value"],
        expect=timezone,
        attempts=[{"label": "timedatectl", "argv": ["timedatectl", "set-timezone", timezone]}],
    )


def ip_forwarding_resources() -> List[Resource]:
    apply_sysctl = [["sysctl", "-p", SYSCTL_FILE]]
    return [
        rb.line_in_file(
            SYSCTL_FILE,
            "net.ipv4.ip_forward = 1",
            pattern=r"^\s*net\.ipv4\.ip_forward\s*=",
            key="sysctl:net.ipv4.ip_forward",
            post_commands=apply_sysctl,
        ),
        rb.line_in_file(
            SYSCTL_FILE,
            "net.ipv6.conf.all.forwarding = 1",
            pattern=r"^\s*net\.ipv6\.conf\.all\.forwarding\s*=",
            key="sysctl:net.ipv6.conf.all.forwarding",
            post_commands=apply_sysctl,
        ),
    ]


def backports_resources(version: Optional[str]) -> List[Resource]:
    """Backports solo para Debian 11 (bullseye) y 12 (bookworm)."""
    if version not in ("11", "12"):
        return []
    codename = DEBIAN_CODENAMES[version]
    update = [["apt-get", "update", "-y"]]
    out = []
    for prefix in ("deb", "deb-src"):
        line = f"{prefix} http://deb.debian.org/debian {codename}-backports main contrib non-free"
        out.append(rb.line_in_file(
            SOURCES_LIST, line, key=f"backports:{prefix}", post_commands=update,
        ))
    return out


def tailscale_resources(authkey: Optional[str]) -> List[Resource]:
    """Instalación, servicio y `tailscale up` con escalera auth key → manual."""
    attempts = []
    if authkey:
        attempts.append({"label": "auth key", "argv": TAILSCALE_UP + ["--authkey", authkey]})
    attempts.append({"label": "autenticación manual", "argv": list(TAILSCALE_UP)})
    return [
        rb.command(
            "tailscale:install",
            check=["which", "tailscale"],
            attempts=[{
                "label": "install.sh",
                "argv": ["sh", "-c", "curl -fsSL https://tailscale.com/install.sh | sh"],
            }],
            depends_on=[BASE_PACKAGES_KEY],
        ),
        rb.service_enabled("tailscaled", depends_on=["tailscale:install"]),
        rb.service_running("tailscaled", depends_on=["enabled:tailscaled"]),
        rb.command(
            "tailscale:up",
            check=["tailscale", "status"],
            attempts=attempts,
            depends_on=["running:tailscaled"],
            sensitive=True,
        ),
    ]


def ufw_resources(tailscale: bool = True) -> List[Resource]:
    """UFW: deny incoming / allow outgoing, ssh/http/https (+ tailscale0) y enable."""
    pkg = rb.package("ufw", key="package:ufw")
    defaults = [
        rb.line_in_file(
            UFW_DEFAULTS, 'DEFAULT_INPUT_POLICY="DROP"', pattern=r"^DEFAULT_INPUT_POLICY=",
            key="ufw:default-incoming", create=False, depends_on=[pkg.key],
        ),
        rb.line_in_file(
            UFW_DEFAULTS, 'DEFAULT_OUTPUT_POLICY="ACCEPT"', pattern=r"^DEFAULT_OUTPUT_POLICY=",
            key="ufw:default-outgoing", create=False, depends_on=[pkg.key],
        ),
    ]
    rules = [
        rb.firewall_allow(22, "tcp", depends_on=[pkg.key]),
        rb.firewall_allow(80, "tcp", depends_on=[pkg.key]),
        rb.firewall_allow(443, "tcp", depends_on=[pkg.key]),
    ]
    if tailscale:
        rules.append(rb.firewall_allow(interface="tailscale0", depends_on=[pkg.key]))
    enable = rb.command(
        "ufw:enable",
        check=["sh", "-c", "ufw status | grep -q 'Status: active'"],
        attempts=[{"label": "ufw enable", "argv": ["ufw", "--force", "enable"]}],
        depends_on=[r.key for r in defaults + rules],
    )
    return [pkg] + defaults + rules + [enable]


def fail2ban_resources() -> List[Resource]:
    pkg = rb.package("fail2ban", key="package:fail2ban")
    jail = rb.file_content(
        JAIL_LOCAL,
        JAIL_LOCAL_CONTENT,
        post_commands=[["systemctl", "try-restart", "fail2ban"]],
        depends_on=[pkg.key],
    )
    return [
        pkg,
        jail,
        rb.service_enabled("fail2ban", depends_on=[pkg.key]),
        rb.service_running("fail2ban", depends_on=["enabled:fail2ban", jail.key]),
    ]


def healthcheck_resources(username: str, healthcheck_id: str, home_root: str = "/home") -> List[Resource]:
    """Script de ping a hc-ping.com + unidad healthcheck_pinger.service."""
    directory = Path(home_root) / username / "healthcheck"
    script_path = directory / "healthcheck.sh"
    script = rb.file_content(
        str(script_path),
        HEALTHCHECK_SCRIPT.format(healthcheck_id=healthcheck_id),
        mode=0o755,
        post_commands=[["chown", "-R", f"{username}:{username}", str(directory)]],
        depends_on=[f"user:{username}"],
        sensitive=True,
    )
    unit = rb.file_content(
        HEALTHCHECK_UNIT,
        HEALTHCHECK_SERVICE.format(script=script_path, user=username),
        post_commands=[["systemctl", "daemon-reload"]],
        depends_on=[script.key],
    )
    return [
        script,
        unit,
        rb.service_enabled("healthcheck_pinger.service", depends_on=[unit.key]),
        rb.service_running("healthcheck_pinger.service", depends_on=["enabled:healthcheck_pinger.service"]),
    ]


def build(options: BasicOptions) -> RecipeResult:
    """Plan completo de la receta basic."""
    result = RecipeResult(name="basic")
    resources: List[Resource] = []

    resources += hostname_resources(options.hostname)
    resources.append(timezone_resource(options.timezone))
    resources += ip_forwarding_resources()

    backports = backports_resources(options.debian_version)
    resources += backports
    resources.append(rb.package(
        *BASE_PACKAGES, key=BASE_PACKAGES_KEY, update=True, depends_on=[r.key for r in backports],
    ))

    resources.append(rb.user(
        options.username, password=options.password, groups=["sudo"], depends_on=[BASE_PACKAGES_KEY],
    ))
    resources.append(rb.line_in_file(
        SSHD_CONFIG,
        "PermitRootLogin no",
        pattern=r"^PermitRootLogin\s",
        key="sshd:PermitRootLogin",
        create=False,
        post_commands=[["systemctl", "reload", "ssh"]] if options.restart_ssh else (),
        depends_on=[f"user:{options.username}"],
    ))

    if options.tailscale:
        resources += tailscale_resources(options.tailscale_authkey)
    resources += ufw_resources(tailscale=options.tailscale)
    resources += fail2ban_resources()

    if options.healthcheck_id:
        resources += healthcheck_resources(options.username, options.healthcheck_id, options.home_root)

    result.resources = resources
    result.facts = {
        "Hostname": options.hostname,
        "Timezone": options.timezone,
        "Usuario": options.username,
        "Tailscale Auth Key": "Sí" if options.tailscale_authkey else "No",
        "UFW": "Activo (SSH, HTTP, HTTPS" + (", tailscale0)" if options.tailscale else ")"),
    }
    if options.password:
        result.secrets[f"Contraseña de {options.username}"] = options.password
    if options.tailscale_authkey:
        result.secrets["Tailscale Auth Key"] = options.tailscale_authkey
    return result
