"""Azure Boards target client built on the Azure DevOps REST API."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Final
from urllib.parse import quote

import requests
from requests.auth import HTTPBasicAuth

from . import utils
from .exceptions import MigrationError, TransferError

if TYPE_CHECKING:
    from .models import Category
    from .protocols import JsonPatch

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "AZURE_DEVOPS_PAT"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "azure-devops/cli/pat"  # noqa: S105

API_VERSION: Final[str] = "7.1"
DEFAULT_TIMEOUT: Final[int] = 60
JSON_PATCH: Final[str] = "application/json-patch+json"


def get_token(pass_path: str | None = None) -> str | None:
    """Get Azure DevOps PAT from pass path, env var AZURE_DEVOPS_PAT, or default pass location."""
    if pass_path:
        return utils.get_pass_value(pass_path)

    token: str | None = os.environ.get(_TOKEN_ENV_VAR)
    if token:
        return token

    try:
        return utils.get_pass_value(_DEFAULT_TOKEN_PASS_PATH)
    except utils.PassError:
        logger.warning("No Azure DevOps token specified nor found")
        return None


def get_session(token: str | None) -> requests.Session:
    """Get an HTTP session authenticated with a personal access token."""
    session = requests.Session()
    session.auth = HTTPBasicAuth("", token or "")
    return session


def _describe(error: requests.RequestException) -> str:
    response = error.response
    if response is None:
        return str(error)
    return f"{response.status_code} - {response.text.strip()[:500]}"


def _response_field(data: Any, name: str, action: str) -> Any:  # noqa: ANN401 - decoded JSON
    try:
        return data[name]
    except (KeyError, TypeError) as e:
        msg = f"{action} returned no '{name}': {str(data)[:500]}"
        raise TransferError(msg) from e


class AzureBoardsTarget:
    """TargetSystem implementation writing to one Azure DevOps project.

    Creation and history updates pass bypassRules=true so historical states,
    authors and dates are accepted as-is.
    """

    def __init__(
        self,
        session: requests.Session,
        organization_url: str,
        project: str,
        *,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        self._session = session
        self.organization_url = organization_url.rstrip("/")
        self.project = project
        self.timeout = timeout

    @property
    def project_url(self) -> str:
        return f"{self.organization_url}/{quote(self.project)}"

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:  # noqa: ANN401
        params: dict[str, str] = {"api-version": API_VERSION, **kwargs.pop("params", {})}
        try:
            response = self._session.request(method, url, params=params, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            msg = f"{method} {url} failed: {_describe(e)}"
            raise TransferError(msg) from e

    def validate_access(self) -> None:
        """Validate API access to the Azure DevOps project."""
        try:
            project = self._request("GET", f"{self.organization_url}/_apis/projects/{quote(self.project)}")
        except TransferError as e:
            msg = f"Azure DevOps API access failed: {e}"
            raise MigrationError(msg) from e
        logger.info(f"Azure DevOps API access validated for project {project.get('name', self.project)}")

    def create_work_item(self, category: Category, payload: JsonPatch) -> int:
        url = f"{self.project_url}/_apis/wit/workitems/${quote(category.work_item_type)}"
        data = self._request(
            "POST",
            url,
            params={"bypassRules": "true"},
            json=payload,
            headers={"Content-Type": JSON_PATCH},
        )
        try:
            work_item_id = int(_response_field(data, "id", "Work item creation"))
        except (TypeError, ValueError) as e:
            msg = f"Work item creation returned an invalid id: {data.get('id')!r}"
            raise TransferError(msg) from e
        logger.debug(f"Created {category.work_item_type} #{work_item_id}")
        return work_item_id

    def upload_attachment(self, filename: str, content: bytes) -> str:
        data = self._request(
            "POST",
            f"{self.project_url}/_apis/wit/attachments",
            params={"fileName": filename},
            data=content,
            headers={"Content-Type": "application/octet-stream"},
        )
        return _response_field(data, "url", f"Upload of {filename}")

    def append_comment(self, work_item_id: int, payload: JsonPatch) -> None:
        _ = self._request(
            "PATCH",
            f"{self.project_url}/_apis/wit/workitems/{work_item_id}",
            params={"bypassRules": "true"},
            json=payload,
            headers={"Content-Type": JSON_PATCH},
        )

    def work_item_url(self, work_item_id: int) -> str:
        return f"{self.organization_url}/_apis/wit/workItems/{work_item_id}"
