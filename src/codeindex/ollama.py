"""
Ollama Generation Client

Text generation against a local Ollama server, one-shot or streamed as
newline-delimited JSON, plus model discovery through /api/tags. It shares the
error taxonomy of the embedding client.
"""

import json
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import requests

from .errors import (
    EmbeddingAPIError,
    EmbeddingProtocolError,
    EmbeddingTimeoutError,
    RequestCancelledError,
    ServiceUnavailableError,
)
from .indexing.config import DEFAULT_OLLAMA_BASE_URL

logger = logging.getLogger(__name__)

MODEL_DISPLAY_NAMES = {
    'llama2': 'Llama 2',
    'llama3': 'Llama 3',
    'codellama': 'Code Llama',
    'mistral': 'Mistral',
    'mixtral': 'Mixtral',
    'qwen': 'Qwen',
    'deepseek': 'DeepSeek',
    'phi': 'Phi',
    'gemma': 'Gemma',
    'codegemma': 'CodeGemma',
    'nomic-embed-text': 'Nomic Embed Text',
}


@dataclass
class OllamaModelInfo:
    """A model installed on the Ollama server."""
    id: str
    name: str
    display_name: str
    size: int
    family: Optional[str] = None
    parameter_size: Optional[str] = None
    last_modified: str = ""


def format_size(size: float) -> str:
    """Format a model size, e.g. 3825819519 -> "3.6 GB"."""
    units = ['B', 'KB', 'MB', 'GB', 'TB']
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.1f} {units[unit_index]}"


def _display_name(name: str, parameter_size: Optional[str]) -> str:
    base, _, version = name.partition(':')
    display = MODEL_DISPLAY_NAMES.get(base.lower(), base[:1].upper() + base[1:])
    if version:
        display += f" {version.upper()}"
    if parameter_size:
        display += f" ({parameter_size})"
    return display


class OllamaClient:
    """Client for Ollama's generate and tags endpoints."""

    def __init__(self, base_url: str = DEFAULT_OLLAMA_BASE_URL, timeout: float = 60.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    def _post(self, endpoint: str, payload: Dict, stream: bool = False) -> requests.Response:
        url = f"{self.base_url}{endpoint}"
        try:
            response = requests.post(url, json=payload, timeout=self.timeout, stream=stream)
        except requests.exceptions.ConnectionError as e:
            raise ServiceUnavailableError(self.base_url, str(e)) from e
        except requests.exceptions.Timeout as e:
            raise EmbeddingTimeoutError(self.base_url, self.timeout) from e

        if not response.ok:
            response.close()
            raise EmbeddingAPIError(response.status_code, response.reason or "", url)
        return response

    def generate(self, model: str, prompt: str) -> str:
        """Generate a complete response in one request."""
        _check_request(model, prompt)
        response = self._post('/api/generate', {"model": model, "prompt": prompt, "stream": False})

        try:
            data = response.json()
        except ValueError as e:
            raise EmbeddingProtocolError(f"Invalid JSON from Ollama: {e}") from e

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise EmbeddingProtocolError("Invalid response from Ollama API: missing response field")
        return text.strip()

    def stream_generate(self, model: str, prompt: str,
                        on_chunk: Optional[Callable[[str], None]] = None,
                        cancel_event: Optional[threading.Event] = None) -> str:
        """
        Generate a response as a stream of fragments.

        Args:
            model: Model name, e.g. "codellama:7b"
            prompt: Prompt text
            on_chunk: Called with each text fragment as it arrives
            cancel_event: When set, the stream is closed and RequestCancelledError raised

        Returns:
            The full response text, stripped
        """
        _check_request(model, prompt)
        fragments: List[str] = []

        with self._post('/api/generate', {"model": model, "prompt": prompt, "stream": True},
                        stream=True) as response:
            try:
                for line in response.iter_lines(decode_unicode=True):
                    if cancel_event is not None and cancel_event.is_set():
                        raise RequestCancelledError("Request was cancelled")
                    if not line or not line.strip():
                        continue

                    try:
                        message = json.loads(line)
                    except ValueError:
                        logger.warning(f"⚠️ Failed to parse streaming chunk: {line[:200]}")
                        continue

                    fragment = message.get("response") or ""
                    if fragment:
                        fragments.append(fragment)
                        if on_chunk is not None:
                            on_chunk(fragment)

                    if message.get("done"):
                        break
            except requests.exceptions.ConnectionError as e:
                raise ServiceUnavailableError(self.base_url, str(e)) from e
            except requests.exceptions.Timeout as e:
                raise EmbeddingTimeoutError(self.base_url, self.timeout) from e

        return "".join(fragments).strip()

    def list_models(self) -> List[OllamaModelInfo]:
        """Fetch the models installed on the server."""
        url = f"{self.base_url}/api/tags"
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.exceptions.ConnectionError as e:
            raise ServiceUnavailableError(self.base_url, str(e)) from e
        except requests.exceptions.Timeout as e:
            raise EmbeddingTimeoutError(self.base_url, self.timeout) from e

        if not response.ok:
            raise EmbeddingAPIError(response.status_code, response.reason or "", url)

        try:
            models = response.json().get("models", [])
        except (ValueError, AttributeError) as e:
            raise EmbeddingProtocolError(f"Invalid model list from Ollama: {e}") from e

        result = []
        for model in models:
            details = model.get("details") or {}
            result.append(OllamaModelInfo(
                id=f"ollama:{model['name']}",
                name=model['name'],
                display_name=_display_name(model['name'], details.get("parameter_size")),
                size=model.get("size", 0),
                family=details.get("family"),
                parameter_size=details.get("parameter_size"),
                last_modified=model.get("modified_at", ""),
            ))
        return result

    def is_available(self) -> bool:
        """Check if Ollama is running and accessible."""
        try:
            return requests.get(f"{self.base_url}/api/tags", timeout=self.timeout).ok
        except requests.exceptions.RequestException as e:
            logger.debug(f"Ollama not available: {e}")
            return False


def _check_request(model: str, prompt: str) -> None:
    if not model or not prompt:
        raise ValueError("Both model and prompt are required")
