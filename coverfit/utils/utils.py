import base64
import binascii
import json
import os
import re

import requests
from dotenv import load_dotenv

from coverfit.utils.exceptions import ExternalServiceError, ValidationError, retry_with_logging
from coverfit.utils.logging_config import get_logger

load_dotenv()
logger = get_logger(__name__)

OLLAMA = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
LLM_MODEL = os.getenv("LLM_MODEL", "llama3.1:8b")
LLM_TIMEOUT = int(os.getenv("LLM_TIMEOUT", "120"))

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


@retry_with_logging(max_attempts=3, backoff_factor=0.5, exceptions=(requests.ConnectionError, requests.Timeout), logger=logger)
def _post_generate(url: str, payload: dict) -> requests.Response:
    return requests.post(url, json=payload, timeout=LLM_TIMEOUT)


def ollama_generate(prompt: str, model: str = None, temperature: float = 0.3, json_mode: bool = True) -> str:
    model = model or LLM_MODEL
    url = f"{OLLAMA}/api/generate"
    payload = {
        "model": model,
        "prompt": prompt,
        "options": {"temperature": temperature},
        "stream": False,
    }
    if json_mode:
        payload["format"] = "json"
    try:
        resp = _post_generate(url, payload)
        resp.raise_for_status()
    except requests.RequestException as e:
        status = getattr(getattr(e, "response", None), "status_code", None)
        raise ExternalServiceError(
            f"Language model request failed: {e}",
            service_name="ollama",
            status_code=status,
            cause=e,
        ) from e
    try:
        body = resp.json()
    except ValueError as e:
        raise ExternalServiceError(
            "Language model returned a non-JSON body",
            service_name="ollama",
            status_code=resp.status_code,
            cause=e,
        ) from e
    if not isinstance(body, dict):
        raise ExternalServiceError(
            f"Language model returned an unexpected body: {type(body).__name__}",
            service_name="ollama",
            status_code=resp.status_code,
        )
    return body.get("response") or ""


def safe_json(s: str, fallback=None):
    """Pull the first JSON object out of a model response, tolerating code fences."""
    if not s:
        return fallback
    cleaned = _FENCE_RE.sub("", s.strip())
    try:
        return json.loads(cleaned)
    except ValueError:
        pass
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start >= 0 and end > start:
        try:
            return json.loads(cleaned[start:end + 1])
        except ValueError:
            return fallback
    return fallback


def decode_base64(b64_string: str, field: str = "content") -> bytes:
    """Decode a base64 payload, rejecting anything that is not valid base64."""
    try:
        return base64.b64decode(b64_string, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Invalid base64 {field}", field=field, cause=e) from e
