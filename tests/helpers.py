"""Stubs shared by the test suites."""

from concurrent.futures import Executor, Future
from typing import Any, Dict, List, Optional, Tuple

from promptimport.domain.models import DependencyRecord, TierResult, create_dependency
from promptimport.domain.resolver import ResolverTier

SDXL_SHA = "AB12CD34EF56"

CATALOG_INDEX: Dict[str, List[Dict[str, Any]]] = {
    "Stable-Diffusion": [
        {
            "name": "sdxl_base.safetensors",
            "path": "/models/Stable-Diffusion/sdxl_base.safetensors",
            "sha256": SDXL_SHA,
        },
        {
            "name": "dreamshaper_8.safetensors",
            "path": "/models/Stable-Diffusion/dreamshaper_8.safetensors",
        },
    ],
    "LoRA": [
        {
            "name": "styleA.safetensors",
            "path": "/models/Lora/styleA.safetensors",
            "title": "Style A",
            "author": "painter",
            "trigger_phrase": "stylea",
            "tags": ["style", "painterly"],
            "license": "CreativeML Open RAIL-M",
        },
        {
            "name": "characters/heroB.safetensors",
            "path": "/models/Lora/characters/heroB.safetensors",
        },
    ],
    "VAE": [
        {"name": "sdxl_vae.safetensors", "path": "/models/VAE/sdxl_vae.safetensors"},
    ],
}


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn, /, *args, **kwargs):
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, json_error: bool = False):
        self.status_code = status_code
        self._body = body
        self._json_error = json_error

    def json(self) -> Any:
        if self._json_error:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeHttp:
    """
    Stand-in for the ``requests`` module. Responses are looked up by URL;
    a value that is an exception instance is raised instead.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None) -> None:
        self.routes = dict(routes or {})
        self.calls: List[Tuple[str, Dict[str, str], Any]] = []

    def get(self, url: str, headers: Optional[Dict[str, str]] = None, timeout: Any = None):
        self.calls.append((url, dict(headers or {}), timeout))
        response = self.routes.get(url, FakeResponse(404))
        if isinstance(response, BaseException):
            raise response
        return response


class StubTier(ResolverTier):
    """Tier that returns a fixed result and counts how often it was asked."""

    def __init__(self, result: TierResult, name: str = "stub") -> None:
        self.result = result
        self.name = name
        self.calls = 0

    def resolve(self, record: DependencyRecord) -> TierResult:
        self.calls += 1
        return self.result


class RecordingDownloads:
    def __init__(self, job_id: Optional[str] = "dl-1") -> None:
        self.job_id = job_id
        self.scheduled: List[Tuple[str, Optional[str], str]] = []

    def schedule(self, url: str, filename: Optional[str], kind: str) -> Optional[str]:
        self.scheduled.append((url, filename, kind))
        return self.job_id


def make_record(kind: str, reference: str) -> DependencyRecord:
    return DependencyRecord.from_reference(create_dependency(kind, reference))
