"""
Client for the cluster's REST/JSON management interface.

Every call targets the endpoint currently selected in the Session. The
client never fails over by itself: transport problems surface as
TransportError and the caller decides what to do with the session.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..config.settings import ManagerSettings
from ..errors import RestResponseError, TransportError
from ..models import VolumeInstance
from ..session import Session

logger = logging.getLogger(__name__)

STATUS_KEY = "status"
DATA_KEY = "data"
ERRORS_KEY = "errors"
OK_STATUS = "OK"
ERROR_STATUS = "ERROR"


def check_response(payload: Any, url: str) -> Dict[str, Any]:
    """
    Validates the status envelope of a REST response.

    Raises:
        RestResponseError: unless the status is OK.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get(STATUS_KEY), str):
        raise RestResponseError(f"Unexpected response from {url}: {payload!r}")

    status = payload[STATUS_KEY]
    if status == OK_STATUS:
        return payload

    if status != ERROR_STATUS:
        raise RestResponseError(f"Unexpected return code from {url}: {status}")

    descriptions = []
    for error in payload.get(ERRORS_KEY) or []:
        desc = error.get("desc") if isinstance(error, dict) else None
        if isinstance(desc, str):
            logger.error(f"REST error response message: {desc}")
            descriptions.append(desc)
        else:
            logger.warning(f"Could not decode error JSON: {error!r}")
    raise RestResponseError(f"Error response from {url}: {'; '.join(descriptions) or 'no description'}")


def parse_volume_list(payload: Dict[str, Any]) -> List[VolumeInstance]:
    data = payload.get(DATA_KEY)
    if not isinstance(data, list):
        raise RestResponseError(f"Volume list response has unexpected data component: {payload!r}")

    volumes = []
    for item in data:
        name = item.get("volumename") if isinstance(item, dict) else None
        if not isinstance(name, str):
            logger.warning(f"Volume entry has no volume name, skipping: {item!r}")
            continue
        mount_dir = item.get("mountdir")
        volumes.append(VolumeInstance.observed(name, mount_dir if isinstance(mount_dir, str) else None))
    return volumes


def parse_volume_aces(payload: Dict[str, Any]) -> Tuple[str, str]:
    data = payload.get(DATA_KEY)
    if not isinstance(data, list) or not data or not isinstance(data[-1], dict):
        raise RestResponseError(f"Volume info response has unexpected data component: {payload!r}")

    aces = data[-1].get("volumeAces")
    if not isinstance(aces, dict):
        raise RestResponseError("volumeAces not found on the volume")
    read_ace = aces.get("readAce")
    write_ace = aces.get("writeAce")
    if not isinstance(read_ace, str) or not isinstance(write_ace, str):
        raise RestResponseError(f"ACEs on the volume have wrong type: {aces!r}")
    return read_ace, write_ace


def create_params(volume: VolumeInstance) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "name": volume.name,
        "path": volume.path,
        "user": volume.owner,
        "group": volume.group,
        "ae": volume.accounting_entity,
        "aetype": volume.accounting_entity_type,
        "topology": volume.topology,
    }
    if volume.schedule > 0:
        params["schedule"] = volume.schedule
    params["minreplication"] = volume.min_replication
    params["replication"] = volume.replication
    params["replicationtype"] = volume.replication_type
    if volume.ace_enabled:
        params["readAce"] = volume.read_ace
        params["writeAce"] = volume.write_ace
    return params


class MaprRestClient:
    """ClusterAPI implementation over HTTP(S) using requests."""

    def __init__(
        self,
        settings: ManagerSettings,
        session: Session,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings
        self.session = session
        self.http = http if http is not None else requests.Session()
        self.http.verify = settings.verify_tls
        if settings.rest_username:
            self.http.auth = (settings.rest_username, settings.rest_password or "")

    @property
    def base_url(self) -> str:
        return f"{self.settings.rest_scheme}://{self.session.endpoint}:{self.settings.rest_port}"

    def _call(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}/rest/{path}"
        logger.info(f"Calling URL {url}")
        try:
            response = self.http.get(url, params=params, timeout=self.settings.rest_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise TransportError(f"REST call to {url} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise RestResponseError(f"Response from {url} is not valid JSON: {e}") from e
        return check_response(payload, url)

    def list_volumes(self) -> List[VolumeInstance]:
        logger.info("Retrieving volume data")
        volumes = parse_volume_list(self._call("volume/list"))
        logger.info(f"Retrieved {len(volumes)} volume items")
        return volumes

    def create_volume(self, volume: VolumeInstance) -> None:
        self._call("volume/create", create_params(volume))

    def remove_volume(self, name: str) -> None:
        self._call("volume/remove", {"name": name})

    def set_volume_access_policy(self, name: str, read_ace: str, write_ace: str) -> None:
        self._call("volume/modify", {"name": name, "readAce": read_ace, "writeAce": write_ace})

    def get_volume_access_policy(self, name: str) -> Tuple[str, str]:
        return parse_volume_aces(self._call("volume/info", {"name": name}))

    def raise_alarm(self, key: str, description: str) -> None:
        self._call(
            "alarm/raise",
            {"alarm": key, "entity": self.settings.alarm_entity, "description": description},
        )
