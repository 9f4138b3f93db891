import threading

import requests
from homeassistant_api import Client
from homeassistant_api.errors import HomeassistantAPIError
from urllib3.exceptions import InsecureRequestWarning

from home_assistant.dispatch_sink import DispatchResult, DispatchSink
from pipeline.fan_out import DispatchRequest


class HomeAssistant(DispatchSink):
    """
    Stateless REST dispatch: every request is its own
    POST {url}/api/services/light/turn_on call, safe to issue concurrently.
    """

    def __init__(self, url: str, access_token: str, verify_ssl: bool = True):
        """
        Initialize the Home Assistant connection.

        Args:
            url: Home Assistant base URL, e.g. http://homeassistant.local:8123
            access_token: Long-lived access token for authentication
            verify_ssl: Verify the server certificate for https URLs
        """
        if not verify_ssl:
            # Suppress HTTPS "localhost is insecure" warnings
            requests.packages.urllib3.disable_warnings(category=InsecureRequestWarning)

        self.url = url.rstrip("/")
        self.access_token = access_token
        self.verify_ssl = verify_ssl
        self._client = None
        self._client_lock = threading.Lock()

    @property
    def api_url(self) -> str:
        return f"{self.url}/api"

    def _get_client(self) -> Client:
        """Get or create the Home Assistant API client."""
        with self._client_lock:
            if self._client is None:
                self._client = Client(
                    self.api_url, self.access_token, verify_ssl=self.verify_ssl
                )
            return self._client

    def send(self, request: DispatchRequest) -> DispatchResult:
        """Set the color and brightness of one light."""
        try:
            service_data = request.to_service_data()
            self._get_client().trigger_service("light", "turn_on", **service_data)
        except (TypeError, ValueError) as e:
            return DispatchResult.failed(request, f"encoding: {e}")
        # requests and niquests transport errors are both OSErrors
        except (requests.RequestException, OSError, HomeassistantAPIError) as e:
            return DispatchResult.failed(request, str(e))

        return DispatchResult.ok(request)

    def close(self):
        """Close the client's HTTP session."""
        with self._client_lock:
            client, self._client = self._client, None

        if client is not None:
            client.__exit__(None, None, None)
