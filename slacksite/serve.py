"""Serve an ingested export over HTTP and open it in a browser."""

from __future__ import annotations

import socket
import subprocess
import sys
from pathlib import Path
from wsgiref.simple_server import WSGIServer, make_server

from slacksite import db, search
from slacksite.server import Server

DEFAULT_ADDR = ":8080"


class _IPv6WSGIServer(WSGIServer):
    address_family = socket.AF_INET6


def parse_addr(addr: str) -> tuple[str, int]:
    """Split a ``host:port`` listen address; an empty host means all interfaces."""
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"address {addr}: missing port in address")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if port == "":
        return host, 0
    if not port.isdigit() or int(port) > 65535:
        raise ValueError(f"address {addr}: invalid port")
    return host, int(port)


def open_browser(url: str) -> None:
    """Ask the desktop to open ``url``; failures are ignored."""
    if sys.platform == "darwin":
        args = ["open", url]
    elif sys.platform.startswith("win"):
        args = ["rundll32", "url.dll,FileProtocolHandler", url]
    else:
        args = ["xdg-open", url]
    try:
        subprocess.Popen(args)
    except OSError:
        pass


def run_serve(
    data_dir: str,
    addr: str = DEFAULT_ADDR,
    mirror_base: str = "",
    template_dir: str = "",
) -> None:
    """Serve the database and index in ``data_dir`` until interrupted."""
    conn = db.open_read_only(Path(data_dir) / db.DB_FILE_NAME)
    index = None
    try:
        try:
            index = search.open_existing(search.index_path(data_dir))
        except OSError:
            index = None  # browsing still works; search shows nothing
        app = Server(conn, index, template_dir, mirror_base)
        host, port = parse_addr(addr)
        server_class = _IPv6WSGIServer if ":" in host else WSGIServer
        try:
            httpd = make_server(host, port, app, server_class=server_class)
        except OSError as exc:
            raise OSError(f"listen: {exc}") from exc
        with httpd:
            bound_host, bound_port = httpd.server_address[:2]
            shown = f"[{bound_host}]" if ":" in str(bound_host) else bound_host
            url = f"http://{shown}:{bound_port}"
            print("Serving at", url)
            open_browser(url)
            httpd.serve_forever()
    finally:
        if index is not None:
            index.close()
        conn.close()