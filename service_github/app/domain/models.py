"""
Value objects shared by the access gate and the forwarder.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from shared.config import ServiceSettings

QueryValue = Union[str, List[str]]


class CredentialSet(BaseModel):
    """Secrets accepted by the access gate. Built once at startup."""

    model_config = ConfigDict(frozen=True)

    password: str
    api_key: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: ServiceSettings) -> "CredentialSet":
        # An empty API_KEY means the API key method is disabled
        return cls(password=settings.backend_password, api_key=settings.api_key or None)


class RequestEnvelope(BaseModel):
    """One inbound request as handed to the generic pass-through."""

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    query: Dict[str, QueryValue] = Field(default_factory=dict)
    body: Optional[Any] = None

    @property
    def upstream_path(self) -> str:
        return "/" + self.path.lstrip("/")


def query_from_items(items: Iterable[Tuple[str, str]]) -> Dict[str, QueryValue]:
    """Collapse query pairs into a mapping, keeping every value of a repeated key."""
    query: Dict[str, QueryValue] = {}
    for key, value in items:
        if key not in query:
            query[key] = value
        elif isinstance(query[key], list):
            query[key].append(value)
        else:
            query[key] = [query[key], value]
    return query
