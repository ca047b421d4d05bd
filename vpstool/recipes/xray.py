"""
Receta xray: VLESS sobre WebSocket detrás de Nginx con certificado Let's Encrypt.

Opcionalmente instala Cloudflare Warp en modo proxy (puerto 40001) y lo usa
como primer outbound de Xray (variante vps-vless).
"""

import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from hostplane.core.resources import builders as rb
from hostplane.core.resources.models import Resource
from vpstool.recipes import RecipeResult

logger = logging.getLogger(__name__)

XRAY_CONFIG = "/usr/local/etc/xray/config.json"
XRAY_BINARY = "/usr/local/bin/xray"
XRAY_INSTALL_URL = "https://github.com/XTLS/Xray-install/raw/main/install-release.sh"
XRAY_PORT = 30001
WARP_PROXY_PORT = 40001
CLIENT_COUNT = 5

WARP_KEYRING = "/usr/share/keyrings/cloudflare-warp-archive-keyring.gpg"
WARP_SOURCES = "/etc/apt/sources.list.d/cloudflare-client.list"

PACKAGES_KEY = "package:xray-web"
NGINX_SITES_AVAILABLE = "/etc/nginx/sites-available"
NGINX_SITES_ENABLED = "/etc/nginx/sites-enabled"

NGINX_SITE = """server {{
    server_name {domain};
    listen 80;
    listen [::]:80;

    root /var/www/html;
    index index.html index.htm;

    # Default location
    location / {{
        try_files $uri $uri/ =404;
    }}

    # Proxy Xray WebSocket connections
    location {path} {{
        if ($http_upgrade != "websocket") {{
            return 404;
        }}
        proxy_redirect off;
        proxy_pass http://127.0.0.1:{port};
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection "upgrade";
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
    }}
}}
"""


@dataclass
class XrayOptions:
    """Parámetros de la receta xray"""
    domain: str
    path: str
    email: str
    warp: bool = False
    codename: Optional[str] = None
    client_count: int = CLIENT_COUNT
    config_path: str = XRAY_CONFIG
    http2: bool = True


def existing_client_ids(config_path: str) -> List[str]:
    """UUIDs de clientes ya configurados en Xray (para reutilizarlos)."""
    try:
        config = json.loads(Path(config_path).read_text())
    except FileNotFoundError:
        return []
    except (ValueError, OSError) as e:
        logger.warning("⚠ No se pudo leer %s: %s", config_path, e)
        return []
    ids: List[str] = []
    for inbound in config.get("inbounds") or []:
        for client in (inbound.get("settings") or {}).get("clients") or []:
            if isinstance(client, dict) and client.get("id"):
                ids.append(str(client["id"]))
    return ids


def client_ids(config_path: str, count: int) -> List[str]:
    ids = existing_client_ids(config_path)[:count]
    while len(ids) < count:
        ids.append(str(uuid.uuid4()))
    return ids


def render_config(ids: List[str], path: str, warp: bool) -> str:
    """config.json de Xray: inbound VLESS/ws y outbounds (socks warp, freedom, blackhole)."""
    outbounds = []
    if warp:
        outbounds.append({
            "protocol": "socks",
            "settings": {"servers": [{"address": "127.0.0.1", "port": WARP_PROXY_PORT}]},
        })
    outbounds.append({"protocol": "freedom", "settings": {}})
    outbounds.append({"tag": "blocked", "protocol": "blackhole", "settings": {}})

    config = {
        "log": {"loglevel": "warning"},
        "inbounds": [{
            "port": XRAY_PORT,
            "protocol": "vless",
            "settings": {
                "clients": [{"id": i} for i in ids],
                "decryption": "none",
            },
            "streamSettings": {
                "network": "ws",
                "wsSettings": {"path": path},
            },
        }],
        "outbounds": outbounds,
    }
    return json.dumps(config, indent=2) + "\n"


def warp_resources(codename: str, depends_on: Optional[List[str]] = None) -> List[Resource]:
    """Cloudflare Warp en modo proxy; la escalera cubre warp-cli nuevo y antiguo."""
    keyring = rb.command(
        "warp:keyring",
        check=["test", "-s", WARP_KEYRING],
        attempts=[{
            "label": "pubkey.gpg",
            "argv": ["sh", "-c", "curl -fsSL https://pkg.cloudflareclient.com/pubkey.gpg"
                     f" | gpg --yes --dearmor --output {WARP_KEYRING}"],
        }],
        depends_on=depends_on or ["package:base"],
    )
    source = rb.file_content(
        WARP_SOURCES,
        f"deb [signed-by={WARP_KEYRING}] https://pkg.cloudflareclient.com/ {codename} main\n",
        depends_on=[keyring.key],
    )
    pkg = rb.package("cloudflare-warp", key="package:cloudflare-warp", update=True, depends_on=[source.key])
    configure = rb.command(
        "warp:proxy",
        check=["sh", "-c", "warp-cli status | grep -qi connected"],
        attempts=[
            {
                "label": "warp-cli",
                "argv": ["sh", "-c",
                         "(warp-cli --accept-tos registration show >/dev/null 2>&1"
                         " || warp-cli --accept-tos registration new)"
                         " && warp-cli --accept-tos mode proxy"
                         f" && warp-cli --accept-tos proxy port {WARP_PROXY_PORT}"
                         " && warp-cli --accept-tos connect"],
            },
            {
                "label": "warp-cli (sintaxis antigua)",
                "argv": ["sh", "-c",
                         "(warp-cli register || true) && warp-cli set-mode proxy"
                         f" && warp-cli set-proxy-port {WARP_PROXY_PORT}"
                         " && warp-cli connect && warp-cli enable-always-on"],
            },
        ],
        depends_on=[pkg.key],
    )
    return [keyring, source, pkg, configure]


def build(options: XrayOptions, base_deps: Optional[List[str]] = None) -> RecipeResult:
    """Plan completo de la receta xray."""
    if not options.path.startswith("/"):
        raise ValueError(f"La ruta de Xray debe empezar por '/': {options.path!r}")

    result = RecipeResult(name="xray")
    resources: List[Resource] = []
    base_deps = list(base_deps or [])

    pkg = rb.package(
        "curl", "nginx", "certbot", "python3-certbot-nginx",
        key=PACKAGES_KEY, update=True, depends_on=base_deps,
    )
    resources.append(pkg)

    xray_deps = [pkg.key]
    if options.warp:
        if not options.codename:
            raise ValueError("Warp requiere el codename de Debian (VERSION_CODENAME)")
        warp_deps = ["package:base"] if "package:base" in base_deps else [pkg.key]
        warp = warp_resources(options.codename, depends_on=warp_deps)
        resources += warp
        xray_deps.append(warp[-1].key)

    install = rb.command(
        "xray:install",
        check=["test", "-x", XRAY_BINARY],
        attempts=[{
            "label": "install-release.sh",
            "argv": ["bash", "-c", f'bash -c "$(curl -L {XRAY_INSTALL_URL})" @ install'],
        }],
        depends_on=[pkg.key],
    )
    ids = client_ids(options.config_path, options.client_count)
    config = rb.file_content(
        options.config_path,
        render_config(ids, options.path, options.warp),
        key="xray:config",
        post_commands=[["systemctl", "try-restart", "xray"]],
        depends_on=[install.key] + xray_deps,
        sensitive=True,
    )
    resources += [
        install,
        config,
        rb.service_enabled("xray", depends_on=[config.key]),
        rb.service_running("xray", depends_on=["enabled:xray"]),
    ]

    available = f"{NGINX_SITES_AVAILABLE}/{options.domain}"
    enabled = f"{NGINX_SITES_ENABLED}/{options.domain}"
    site = rb.file_content(
        available,
        NGINX_SITE.format(domain=options.domain, path=options.path, port=XRAY_PORT),
        replace=False,  # certbot lo reescribe
        depends_on=[pkg.key],
    )
    link = rb.command(
        f"nginx:enable:{options.domain}",
        check=["test", "-L", enabled],
        attempts=[{
            "label": "ln -s",
            "argv": ["sh", "-c", f"ln -sf {available} {enabled} && nginx -t && systemctl reload nginx"],
        }],
        depends_on=[site.key, "running:nginx"],
    )
    certificate = rb.command(
        f"certbot:{options.domain}",
        check=["test", "-d", f"/etc/letsencrypt/live/{options.domain}"],
        attempts=[{
            "label": "certbot --nginx",
            "argv": ["certbot", "--nginx", "-d", options.domain, "--non-interactive",
                     "--agree-tos", "-m", options.email, "--redirect"],
        }],
        depends_on=[link.key],
    )
    resources += [
        rb.service_enabled("nginx", depends_on=[pkg.key]),
        rb.service_running("nginx", depends_on=["enabled:nginx"]),
        site,
        link,
        certificate,
    ]

    if options.http2:
        resources.append(rb.line_in_file(
            available,
            "    listen 443 ssl http2; # managed by Certbot",
            pattern=r"^\s*listen 443 ssl( http2)?; # managed by Certbot",
            key=f"nginx:http2:{options.domain}",
            create=False,
            append=False,
            post_commands=[["nginx", "-t"], ["systemctl", "reload", "nginx"]],
            depends_on=[certificate.key],
        ))

    result.resources = resources
    result.facts = {
        "Dominio VLESS": options.domain,
        "Ruta VLESS": options.path,
        "Warp": f"proxy en 127.0.0.1:{WARP_PROXY_PORT}" if options.warp else "No",
    }
    for idx, client in enumerate(ids, 1):
        result.secrets[f"UUID {idx}"] = client
    return result
