"""WordPress REST API term and entity stores."""

import html
import logging
import time
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import BaseEntityStore, BaseTermStore
from ..exceptions import StoreError, TermCreationFailed, TermExists
from ..models.record import Entity, Term

logger = logging.getLogger(__name__)


class WordPressClient:
    """
    Thin client for the WordPress REST API.

    Every request carries a timeout so a hung server cannot block a batch
    forever. Only GET requests are retried by the transport.
    """

    def __init__(
        self,
        base_url: str,
        username: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        rate_limit: Optional[float] = None,
        max_read_retries: int = 2,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Site URL (the REST root is {base_url}/wp-json)
            username: User for application password authentication
            api_key: Application password
            timeout: Per-request timeout in seconds
            rate_limit: Max requests per second
            max_read_retries: Transport retries for GET requests
            session: Custom requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._rate_limit_delay = 1 / rate_limit if rate_limit else 0
        self._last_request_time = 0.0
        self._session = session or self._create_session(max_read_retries)

        if username and api_key:
            self._session.auth = (username, api_key)

    def _create_session(self, max_read_retries: int) -> requests.Session:
        """Create a requests session with retry logic for reads."""
        session = requests.Session()

        retries = Retry(
            total=max_read_retries,
            backoff_factor=0.5,
            status_forcelist=[429, 502, 503, 504],
            allowed_methods=frozenset({"GET"}),
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        session.headers["Accept"] = "application/json"

        return session

    def _rate_limit_wait(self):
        """Wait to respect rate limits."""
        if self._rate_limit_delay > 0:
            elapsed = time.time() - self._last_request_time
            wait_time = self._rate_limit_delay - elapsed
            if wait_time > 0:
                time.sleep(wait_time)
        self._last_request_time = time.time()

    def url(self, path: str) -> str:
        return f"{self.base_url}/wp-json/wp/v2/{path.lstrip('/')}"

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        """
        Send a request.

        Raises:
            StoreError: On connection errors and timeouts
        """
        self._rate_limit_wait()
        try:
            return self._session.request(method, self.url(path), timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise StoreError(f"{method} {path} failed: {e}")

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """GET a resource; None on 404."""
        response = self.request("GET", path, params=params)
        if response.status_code == 404:
            return None
        _raise_for_status(response, f"GET {path}")
        return response.json()

    def get_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """GET every page of a collection."""
        params = dict(params or {})
        params.setdefault("per_page", 100)
        items: List[Dict[str, Any]] = []
        page = 1

        while True:
            params["page"] = page
            response = self.request("GET", path, params=params)
            if response.status_code == 400 and page > 1:
                # Past the last page
                break
            _raise_for_status(response, f"GET {path}")
            batch = response.json()
            items.extend(batch)

            total_pages = int(response.headers.get("X-WP-TotalPages", page))
            if not batch or page >= total_pages:
                break
            page += 1

        return items


def _error_payload(response: requests.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _raise_for_status(response: requests.Response, action: str) -> None:
    if response.status_code < 400:
        return
    payload = _error_payload(response)
    message = payload.get("message") or response.reason or "request failed"
    raise StoreError(
        f"{action} returned {response.status_code}: {message}",
        details={"status_code": response.status_code, "code": payload.get("code")},
    )


class WordPressTermStore(BaseTermStore):
    """Term store backed by /wp/v2/{taxonomy rest_base}."""

    def __init__(self, client: WordPressClient):
        self.client = client
        self._rest_bases: Dict[str, str] = {}

    def _taxonomy_info(self, taxonomy: str) -> Optional[Dict[str, Any]]:
        return self.client.get_json(f"taxonomies/{taxonomy}", params={"context": "edit"})

    def rest_base(self, taxonomy: str) -> str:
        if taxonomy not in self._rest_bases:
            info = self._taxonomy_info(taxonomy)
            if info is None:
                raise StoreError(f"Taxonomy does not exist: {taxonomy}")
            self._rest_bases[taxonomy] = info.get("rest_base") or taxonomy
        return self._rest_bases[taxonomy]

    def taxonomy_exists(self, taxonomy: str) -> bool:
        try:
            return self.rest_base(taxonomy) is not None
        except StoreError as e:
            logger.warning(f"Taxonomy check failed for {taxonomy}: {e.message}")
            return False

    def _to_term(self, data: Dict[str, Any], taxonomy: str) -> Term:
        return Term(
            id=int(data["id"]),
            name=html.unescape(data.get("name", "")),
            taxonomy=taxonomy,
            slug=data.get("slug", ""),
            description=data.get("description", ""),
        )

    def find_term(self, name: str, taxonomy: str) -> Optional[Term]:
        rest_base = self.rest_base(taxonomy)
        # search is fuzzy; keep only exact name matches
        for data in self.client.get_all(rest_base, params={"search": name, "context": "edit"}):
            term = self._to_term(data, taxonomy)
            if term.name == name:
                return term
        return None

    def create_term(self, name: str, taxonomy: str, description: str = "") -> Term:
        try:
            rest_base = self.rest_base(taxonomy)
            response = self.client.request(
                "POST", rest_base, json={"name": name, "description": description}
            )
        except StoreError as e:
            raise TermCreationFailed(e.message, details=e.details)

        if response.status_code in (200, 201):
            return self._to_term(response.json(), taxonomy)

        payload = _error_payload(response)
        if payload.get("code") == "term_exists":
            term_id = (payload.get("data") or {}).get("term_id")
            raise TermExists(
                payload.get("message", f"Term already exists: {name}"),
                term_id=int(term_id) if term_id else None,
            )
        raise TermCreationFailed(
            payload.get("message") or f"Term creation returned {response.status_code}",
            details={"status_code": response.status_code, "code": payload.get("code")},
        )

    def list_terms(self, taxonomy: str) -> List[Term]:
        rest_base = self.rest_base(taxonomy)
        return [self._to_term(d, taxonomy) for d in self.client.get_all(rest_base)]


class WordPressEntityStore(BaseEntityStore):
    """
    Entity store backed by /wp/v2/{post type rest_base}.

    WordPress has no type-agnostic post endpoint, so entity lookups try
    each configured post type in order.
    """

    def __init__(
        self,
        client: WordPressClient,
        lookup_post_types: List[str],
        term_store: WordPressTermStore
    ):
        self.client = client
        self.lookup_post_types = list(lookup_post_types)
        self.term_store = term_store
        self._rest_bases: Dict[str, Optional[str]] = {}

    def _rest_base(self, post_type: str) -> Optional[str]:
        if post_type not in self._rest_bases:
            info = self.client.get_json(f"types/{post_type}", params={"context": "edit"})
            self._rest_bases[post_type] = (info.get("rest_base") or post_type) if info else None
        return self._rest_bases[post_type]

    def _require_rest_base(self, post_type: str) -> str:
        rest_base = self._rest_base(post_type)
        if rest_base is None:
            raise StoreError(f"Post type does not exist: {post_type}")
        return rest_base

    def post_type_exists(self, post_type: str) -> bool:
        try:
            return self._rest_base(post_type) is not None
        except StoreError as e:
            logger.warning(f"Post type check failed for {post_type}: {e.message}")
            return False

    def _to_entity(self, data: Dict[str, Any]) -> Entity:
        title = data.get("title", "")
        if isinstance(title, dict):
            title = title.get("raw") or html.unescape(title.get("rendered", ""))
        return Entity(id=int(data["id"]), post_type=data.get("type", ""), title=title)

    def _get_post(self, entity_id: int) -> Optional[Dict[str, Any]]:
        for post_type in self.lookup_post_types:
            rest_base = self._rest_base(post_type)
            if rest_base is None:
                continue
            data = self.client.get_json(f"{rest_base}/{entity_id}", params={"context": "edit"})
            if data is not None:
                return data
        return None

    def get_entity(self, entity_id: int) -> Optional[Entity]:
        data = self._get_post(entity_id)
        return self._to_entity(data) if data else None

    def list_entities(self, post_type: str) -> List[Entity]:
        rest_base = self._require_rest_base(post_type)
        posts = self.client.get_all(rest_base, params={"context": "edit", "status": "any"})
        return [self._to_entity(p) for p in posts]

    def get_entity_terms(self, entity_id: int, taxonomy: str) -> List[int]:
        data = self._get_post(entity_id)
        if data is None:
            raise StoreError(f"Invalid post ID: {entity_id}")
        field = self.term_store.rest_base(taxonomy)
        return [int(t) for t in data.get(field, [])]

    def set_entity_terms(
        self,
        entity_id: int,
        term_ids: List[int],
        taxonomy: str,
        append: bool = False
    ) -> List[int]:
        data = self._get_post(entity_id)
        if data is None:
            raise StoreError(f"Invalid post ID: {entity_id}")

        field = self.term_store.rest_base(taxonomy)
        rest_base = self._require_rest_base(data.get("type", ""))

        updated = [int(t) for t in data.get(field, [])] if append else []
        for term_id in term_ids:
            if term_id not in updated:
                updated.append(int(term_id))

        response = self.client.request("POST", f"{rest_base}/{entity_id}", json={field: updated})
        _raise_for_status(response, f"POST {rest_base}/{entity_id}")
        return [int(t) for t in response.json().get(field, updated)]
