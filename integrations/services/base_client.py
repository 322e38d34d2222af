import logging
from typing import Any, Dict

import requests
from django.conf import settings

from inventory.services.base_service import ExternalDependencyError

logger = logging.getLogger(__name__)


class ExternalServiceClient:
    """JSON-over-HTTP client for one external collaborator."""

    service_name = ""
    url_setting = ""
    token_setting = ""

    @classmethod
    def get_base_url(cls) -> str:
        return getattr(settings, cls.url_setting, "").rstrip("/")

    @classmethod
    def get_headers(cls) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        token = getattr(settings, cls.token_setting, "")
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @classmethod
    def request(cls, method: str, path: str, **kwargs) -> Any:
        url = f"{cls.get_base_url()}/{path.lstrip('/')}"
        timeout = getattr(settings, "EXTERNAL_REQUEST_TIMEOUT", 10)

        try:
            response = requests.request(method, url, headers=cls.get_headers(), timeout=timeout, **kwargs)
        except requests.exceptions.Timeout:
            raise ExternalDependencyError(cls.service_name, "Request timeout")
        except requests.exceptions.ConnectionError:
            raise ExternalDependencyError(cls.service_name, "Connection failed")
        except requests.exceptions.RequestException as e:
            raise ExternalDependencyError(cls.service_name, str(e))

        if response.status_code >= 400:
            logger.warning(f"{cls.service_name} {method} {url} -> HTTP {response.status_code}")
            raise ExternalDependencyError(
                cls.service_name, f"HTTP {response.status_code}: {response.text[:200]}"
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise ExternalDependencyError(cls.service_name, "Response is not valid JSON")
