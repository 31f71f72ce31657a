from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Optional

import requests

W3C_ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"

# WebDriver error codes that mean "the element is not there (any more)".
MISSING_ELEMENT_ERRORS = frozenset({"no such element", "stale element reference"})


class AppiumHTTPError(RuntimeError):
    def __init__(
        self,
        *,
        message: str,
        method: str,
        url: str,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
        response_json: Optional[dict[str, Any]] = None,
        response_text: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.error = error
        self.response_json = response_json
        self.response_text = response_text

    @property
    def is_missing_element(self) -> bool:
        return self.error in MISSING_ELEMENT_ERRORS


@dataclass(frozen=True)
class WebDriverElementRef:
    element_id: str


def _extract_webdriver_value(payload: dict[str, Any]) -> Any:
    # W3C WebDriver typically wraps in {"value": ...}
    if "value" in payload:
        return payload["value"]
    return payload


def _extract_element_id(element_obj: Any) -> str:
    if not isinstance(element_obj, dict):
        raise ValueError(f"Unexpected element payload type: {type(element_obj)}")

    if W3C_ELEMENT_KEY in element_obj and element_obj[W3C_ELEMENT_KEY]:
        return str(element_obj[W3C_ELEMENT_KEY])

    # Legacy JSONWire key
    if "ELEMENT" in element_obj and element_obj["ELEMENT"]:
        return str(element_obj["ELEMENT"])

    raise ValueError(f"Could not extract element id from payload keys: {list(element_obj.keys())}")


def _pointer_sequence(actions: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "actions": [
            {
                "type": "pointer",
                "id": "finger",
                "parameters": {"pointerType": "touch"},
                "actions": actions,
            }
        ]
    }


def _move(x: int, y: int, *, duration_ms: int = 0) -> dict[str, Any]:
    return {"type": "pointerMove", "duration": duration_ms, "origin": "viewport", "x": x, "y": y}


class AppiumHTTPClient:
    """
    Minimal Appium client using WebDriver HTTP endpoints.

    Only the calls the harness needs are implemented. Every call raises
    AppiumHTTPError on transport failures and on HTTP error responses.
    """

    def __init__(self, server_url: str, *, timeout_s: float = 30.0) -> None:
        if not server_url:
            raise ValueError("server_url is required")
        self.server_url = server_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session_id: Optional[str] = None
        self._session = requests.Session()

    def _request(self, method: str, path: str, *, json: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        url = f"{self.server_url}{path}"
        try:
            response = self._session.request(method, url, json=json, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise AppiumHTTPError(
                message=f"Failed to call Appium server: {e}",
                method=method,
                url=url,
            ) from e

        response_text = None
        response_json: Optional[dict[str, Any]] = None
        try:
            response_json = response.json()
        except ValueError:
            response_text = response.text

        if response.status_code >= 400:
            error = None
            details = None
            if isinstance(response_json, dict):
                value = _extract_webdriver_value(response_json)
                if isinstance(value, dict):
                    error = value.get("error")
                    details = value.get("message") or error
            raise AppiumHTTPError(
                message=f"Appium HTTP {response.status_code} for {method} {path}"
                + (f": {details}" if details else ""),
                method=method,
                url=url,
                status_code=response.status_code,
                error=error,
                response_json=response_json,
                response_text=response_text,
            )

        if not isinstance(response_json, dict):
            raise AppiumHTTPError(
                message=f"Appium returned non-JSON response for {method} {path}",
                method=method,
                url=url,
                status_code=response.status_code,
                response_text=response_text,
            )

        return response_json

    def _session_path(self, suffix: str) -> str:
        self._require_session()
        return f"/session/{self.session_id}{suffix}"

    def _unexpected(self, method: str, suffix: str, expected: str, response: dict[str, Any]) -> AppiumHTTPError:
        return AppiumHTTPError(
            message=f"Unexpected {suffix} response shape (expected {expected})",
            method=method,
            url=f"{self.server_url}/session/{self.session_id}{suffix}",
            response_json=response,
        )

    def close(self) -> None:
        self._session.close()

    # ---------------------------------------------------------------- session

    def create_session(self, session_payload: dict[str, Any]) -> str:
        """
        Create an Appium session.

        `session_payload` must be a valid WebDriver session creation payload:
          {"capabilities": {"alwaysMatch": {...}, "firstMatch": [{}]}}
        """
        if not isinstance(session_payload, dict) or not session_payload:
            raise ValueError("session_payload must be a non-empty dict")

        response = self._request("POST", "/session", json=session_payload)

        # Common shapes:
        # - {"value": {"sessionId": "...", "capabilities": {...}}}
        # - {"sessionId": "...", "value": {...}}
        value = _extract_webdriver_value(response)
        session_id = None
        if isinstance(value, dict):
            session_id = value.get("sessionId")
        session_id = session_id or response.get("sessionId")

        if not session_id:
            raise AppiumHTTPError(
                message="Appium did not return a sessionId in the create_session response",
                method="POST",
                url=f"{self.server_url}/session",
                response_json=response,
            )

        self.session_id = str(session_id)
        return self.session_id

    def delete_session(self) -> None:
        if not self.session_id:
            return
        session_id = self.session_id
        try:
            self._request("DELETE", f"/session/{session_id}")
        finally:
            self.session_id = None

    def set_timeouts(self, *, implicit_ms: int) -> None:
        self._request("POST", self._session_path("/timeouts"), json={"implicit": int(implicit_ms)})

    # ---------------------------------------------------------------- screen

    def get_page_source(self) -> str:
        response = self._request("GET", self._session_path("/source"))
        value = _extract_webdriver_value(response)
        if not isinstance(value, str):
            raise self._unexpected("GET", "/source", "string", response)
        return value

    def get_screenshot_base64(self) -> str:
        response = self._request("GET", self._session_path("/screenshot"))
        value = _extract_webdriver_value(response)
        if not isinstance(value, str):
            raise self._unexpected("GET", "/screenshot", "base64 string", response)
        return value

    def get_screenshot_png_bytes(self) -> bytes:
        value = self.get_screenshot_base64()
        try:
            return base64.b64decode(value)
        except ValueError as e:
            raise AppiumHTTPError(
                message=f"Failed to decode screenshot base64: {e}",
                method="GET",
                url=f"{self.server_url}/session/{self.session_id}/screenshot",
            ) from e

    def get_window_rect(self) -> dict[str, int]:
        response = self._request("GET", self._session_path("/window/rect"))
        return self._rect(response, "GET", "/window/rect")

    def _rect(self, response: dict[str, Any], method: str, suffix: str) -> dict[str, int]:
        value = _extract_webdriver_value(response)
        if not isinstance(value, dict):
            raise self._unexpected(method, suffix, "object", response)
        required = {"x", "y", "width", "height"}
        if not required.issubset(set(value.keys())):
            raise AppiumHTTPError(
                message=f"{suffix} missing keys (expected {sorted(required)})",
                method=method,
                url=f"{self.server_url}/session/{self.session_id}{suffix}",
                response_json=response,
            )
        return {k: int(value[k]) for k in required}

    # ---------------------------------------------------------------- elements

    def find_elements(self, *, using: str, value: str) -> list[WebDriverElementRef]:
        if not using or not value:
            raise ValueError("'using' and 'value' are required to find elements")
        response = self._request("POST", self._session_path("/elements"), json={"using": using, "value": value})
        payload = _extract_webdriver_value(response)
        if not isinstance(payload, list):
            raise self._unexpected("POST", "/elements", "list", response)
        return [WebDriverElementRef(element_id=_extract_element_id(item)) for item in payload]

    def get_element_text(self, element: WebDriverElementRef) -> str:
        suffix = f"/element/{element.element_id}/text"
        response = self._request("GET", self._session_path(suffix))
        value = _extract_webdriver_value(response)
        if not isinstance(value, str):
            raise self._unexpected("GET", suffix, "string", response)
        return value

    def get_element_rect(self, element: WebDriverElementRef) -> dict[str, int]:
        suffix = f"/element/{element.element_id}/rect"
        response = self._request("GET", self._session_path(suffix))
        return self._rect(response, "GET", suffix)

    def get_element_attribute(self, element: WebDriverElementRef, name: str) -> Optional[str]:
        suffix = f"/element/{element.element_id}/attribute/{name}"
        value = _extract_webdriver_value(self._request("GET", self._session_path(suffix)))
        return None if value is None else str(value)

    def is_element_displayed(self, element: WebDriverElementRef) -> bool:
        suffix = f"/element/{element.element_id}/displayed"
        return bool(_extract_webdriver_value(self._request("GET", self._session_path(suffix))))

    def is_element_enabled(self, element: WebDriverElementRef) -> bool:
        suffix = f"/element/{element.element_id}/enabled"
        return bool(_extract_webdriver_value(self._request("GET", self._session_path(suffix))))

    def click(self, element: WebDriverElementRef) -> None:
        self._request("POST", self._session_path(f"/element/{element.element_id}/click"), json={})

    def clear(self, element: WebDriverElementRef) -> None:
        self._request("POST", self._session_path(f"/element/{element.element_id}/clear"), json={})

    def send_keys(self, element: WebDriverElementRef, *, text: str) -> None:
        if text is None:
            raise ValueError("text must not be None")
        # W3C WebDriver accepts both `text` and `value`; many servers expect `value` as an array of chars.
        self._request(
            "POST",
            self._session_path(f"/element/{element.element_id}/value"),
            json={"text": text, "value": list(text)},
        )

    # ---------------------------------------------------------------- gestures

    def perform_actions(self, payload: dict[str, Any]) -> None:
        self._request("POST", self._session_path("/actions"), json=payload)

    def tap(self, *, x: int, y: int) -> None:
        self.perform_actions(
            _pointer_sequence(
                [
                    _move(x, y),
                    {"type": "pointerDown", "button": 0},
                    {"type": "pointerUp", "button": 0},
                ]
            )
        )

    def long_press(self, *, x: int, y: int, duration_ms: int) -> None:
        self.perform_actions(
            _pointer_sequence(
                [
                    _move(x, y),
                    {"type": "pointerDown", "button": 0},
                    _move(x, y, duration_ms=duration_ms),
                    {"type": "pointerUp", "button": 0},
                ]
            )
        )

    def swipe(self, *, x1: int, y1: int, x2: int, y2: int, duration_ms: int = 1000) -> None:
        self.perform_actions(
            _pointer_sequence(
                [
                    _move(x1, y1),
                    {"type": "pointerDown", "button": 0},
                    _move(x2, y2, duration_ms=duration_ms),
                    {"type": "pointerUp", "button": 0},
                ]
            )
        )

    # ---------------------------------------------------------------- mobile commands

    def execute_script(self, script: str, args: Optional[list[Any]] = None) -> Any:
        response = self._request(
            "POST",
            self._session_path("/execute/sync"),
            json={"script": script, "args": args or []},
        )
        return _extract_webdriver_value(response)

    def hide_keyboard(self) -> None:
        self.execute_script("mobile: hideKeyboard")

    def activate_app(self, app_id: str) -> None:
        self.execute_script("mobile: activateApp", [{"appId": app_id, "bundleId": app_id}])

    def terminate_app(self, app_id: str) -> None:
        self.execute_script("mobile: terminateApp", [{"appId": app_id, "bundleId": app_id}])

    def _require_session(self) -> None:
        if not self.session_id:
            raise RuntimeError("No active Appium session. Call create_session() first.")
