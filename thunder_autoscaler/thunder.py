"""Minimal aXAPI v3 client for the A10 Thunder ADC.

Only the calls the autoscaler needs are implemented: session login/logoff,
the virtual-server inventory and per-port throughput stats.
"""

import logging

import requests
import urllib3

from .errors import ThunderError
from .models import ThroughputSample, VirtualPort, VirtualServer

logger = logging.getLogger(__name__)


class ThunderClient:
    def __init__(self, address, username, password, verify_ssl=False, timeout=10, session=None):
        self.base_url = f"https://{address}/axapi/v3"
        self.username = username
        self.password = password
        self.timeout = timeout
        self.signature = None

        self.session = session or requests.Session()
        self.session.verify = verify_ssl
        self.session.headers.update({"Content-Type": "application/json"})
        if not verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @classmethod
    def from_settings(cls, thunder, username, password):
        return cls(
            f"{thunder.ip}:{thunder.port}",
            username,
            password,
            verify_ssl=thunder.verify_ssl,
            timeout=thunder.request_timeout,
        )

    def __enter__(self):
        self.login()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.logoff()

    @property
    def logged_in(self):
        return self.signature is not None

    def login(self):
        payload = {"credentials": {"username": self.username, "password": self.password}}
        body = self._call("POST", "/auth", payload)
        try:
            self.signature = body["authresponse"]["signature"]
        except (KeyError, TypeError):
            raise ThunderError("login response carried no auth signature") from None
        self.session.headers["Authorization"] = f"A10 {self.signature}"
        logger.debug(f"Logged in to {self.base_url} as {self.username}")
        return self

    def logoff(self):
        if not self.logged_in:
            return
        try:
            self._call("POST", "/logoff")
        except ThunderError as e:
            logger.warning(f"Logoff from Thunder device failed: {e}")
        finally:
            self.signature = None
            self.session.headers.pop("Authorization", None)

    def get_virtual_servers(self):
        body = self._call("GET", "/slb/virtual-server-list")
        servers = []
        for vs in body.get("virtual-server-list", []):
            ports = [
                VirtualPort(
                    port_number=int(p.get("port-number", 0)),
                    protocol=p.get("protocol", ""),
                    service_group=p.get("service-group", ""),
                    status=p.get("action", ""),
                    conn_limit=int(p.get("conn-limit", 0)),
                )
                for p in vs.get("port-list", [])
            ]
            servers.append(VirtualServer(
                name=vs.get("name", ""),
                ip=vs.get("ip-address", ""),
                status=vs.get("enable-disable-action", ""),
                ports=ports,
            ))
        return servers

    def get_vs_throughput(self, virtual_server, port):
        # port is "<number>+<protocol>", e.g. "80+http"
        body = self._call("GET", f"/slb/virtual-server/{virtual_server}/port/{port}/stats")
        try:
            bps = body["port"]["stats"]["throughput-bits-per-sec"]
        except (KeyError, TypeError):
            raise ThunderError(f"no throughput stats for {virtual_server} port {port}") from None

        try:
            return ThroughputSample(bits_per_second=int(bps), virtual_server=virtual_server, port=port)
        except (TypeError, ValueError) as e:
            raise ThunderError(f"bad throughput value {bps!r} for {virtual_server} port {port}") from e

    get_throughput = get_vs_throughput

    def _call(self, method, path, payload=None):
        url = self.base_url + path
        try:
            resp = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise ThunderError(f"{method} {path} failed: {e}") from e

        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {}

        self._check_response(body, resp.status_code, path)
        return body

    @staticmethod
    def _check_response(body, status_code, path):
        response = body.get("response") if isinstance(body, dict) else None
        if isinstance(response, dict) and response.get("status") == "fail":
            err = response.get("err") or {}
            raise ThunderError(f"{path}: {err.get('msg', 'request failed')}", status_code=err.get("code", status_code))
        if status_code > 299:
            raise ThunderError(f"{path}: HTTP {status_code}", status_code=status_code)
