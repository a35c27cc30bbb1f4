"""
Road-following routes between two coordinates.

Routes come from a public directions service (OSRM by default, Mapbox when
configured). Fetches run on a worker pool so simulator ticks never wait on
the network; any failure or timeout resolves to a straight line between the
two endpoints.
"""
from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Optional, Tuple

import requests

from .conf import get_routing_config
from .telemetry import Coordinate, Polyline

LOGGER = logging.getLogger(__name__)

RouteKey = Tuple[Coordinate, Coordinate]

OSRM_URL = "https://router.project-osrm.org"


class RouteFetchError(Exception):
    """The routing provider could not produce a route."""


def straight_line(origin: Coordinate, destination: Coordinate) -> Polyline:
    return (origin, destination)


def _polyline_from_geojson(coordinates) -> Polyline:
    # GeoJSON coordinates are [lon, lat]
    points = tuple(Coordinate(lng=float(lng), lat=float(lat)) for lng, lat, *_ in coordinates)
    if not points:
        raise RouteFetchError("Route geometry is empty.")
    return points


class RoutingProvider:
    """
    Base class for directions services.

    Subclasses implement `_directions_url` and may override `_params`.
    """

    def __init__(self, timeout_seconds: float = 5, session: Optional[requests.Session] = None):
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def _directions_url(self, origin: Coordinate, destination: Coordinate) -> str:
        raise NotImplementedError

    def _params(self) -> Dict[str, Any]:
        return {"overview": "full", "geometries": "geojson"}

    def fetch_route(self, origin: Coordinate, destination: Coordinate) -> Polyline:
        url = self._directions_url(origin, destination)
        try:
            response = self.session.get(url, params=self._params(), timeout=self.timeout_seconds)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, json.JSONDecodeError) as error:
            raise RouteFetchError(f"Directions request failed: {error}") from error

        if data.get("code") != "Ok" or not data.get("routes"):
            raise RouteFetchError(f"No route found. Response code: {data.get('code')}")

        try:
            geometry = data["routes"][0]["geometry"]
            return _polyline_from_geojson(geometry["coordinates"])
        except (KeyError, TypeError, ValueError) as error:
            raise RouteFetchError(f"Malformed route geometry: {error}") from error


class OSRMRoutingProvider(RoutingProvider):
    def __init__(
        self,
        base_url: str = OSRM_URL,
        profile: str = "driving",
        timeout_seconds: float = 5,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(timeout_seconds=timeout_seconds, session=session)
        self.base_url = base_url.rstrip("/")
        self.profile = profile

    def _directions_url(self, origin: Coordinate, destination: Coordinate) -> str:
        return (
            f"{self.base_url}/route/v1/{self.profile}/"
            f"{origin.lng},{origin.lat};{destination.lng},{destination.lat}"
        )


class MapboxRoutingProvider(RoutingProvider):
    BASE_URL = "https://api.mapbox.com/directions/v5/mapbox/driving"

    def __init__(
        self,
        access_token: str,
        timeout_seconds: float = 5,
        session: Optional[requests.Session] = None,
    ):
        if not access_token:
            raise ValueError("Mapbox routing requires an access token.")
        super().__init__(timeout_seconds=timeout_seconds, session=session)
        self.access_token = access_token

    def _directions_url(self, origin: Coordinate, destination: Coordinate) -> str:
        return f"{self.BASE_URL}/{origin.lng},{origin.lat};{destination.lng},{destination.lat}"

    def _params(self) -> Dict[str, Any]:
        params = super()._params()
        params["access_token"] = self.access_token
        return params


def get_routing_provider(config: Optional[Dict[str, Any]] = None) -> RoutingProvider:
    config = config or get_routing_config()
    provider = (config.get("provider") or "osrm").lower()
    timeout = config.get("timeout_seconds", 5)
    if provider == "mapbox":
        token = config.get("mapbox_access_token")
        if token:
            return MapboxRoutingProvider(token, timeout_seconds=timeout)
        LOGGER.warning("Mapbox routing selected without an access token; using OSRM.")
    return OSRMRoutingProvider(config.get("osrm_url") or OSRM_URL, timeout_seconds=timeout)


class RouteCache:
    """
    Origin/destination keyed polyline cache shared by every vehicle of a run.

    Entries are written once per key in the common case; concurrent writers
    for the same key are tolerated and the last one wins.
    """

    def __init__(self):
        self._routes: Dict[RouteKey, Polyline] = {}
        self._lock = threading.Lock()

    def get(self, origin: Coordinate, destination: Coordinate) -> Optional[Polyline]:
        with self._lock:
            return self._routes.get((origin, destination))

    def put(self, origin: Coordinate, destination: Coordinate, route: Polyline) -> None:
        with self._lock:
            self._routes[(origin, destination)] = route

    def __len__(self) -> int:
        with self._lock:
            return len(self._routes)


class RouteFetcher:
    """
    Issue route fetches without blocking the caller.

    `request` returns a Future that always resolves to a polyline: the cached
    route, the provider's route, or a straight line when the provider fails.
    """

    def __init__(
        self,
        provider: RoutingProvider,
        cache: Optional[RouteCache] = None,
        max_workers: int = 4,
    ):
        self.provider = provider
        self.cache = cache if cache is not None else RouteCache()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="route-fetch")

    def request(self, origin: Coordinate, destination: Coordinate) -> "Future[Polyline]":
        cached = self.cache.get(origin, destination)
        if cached is not None:
            future: Future = Future()
            future.set_result(cached)
            return future
        return self._executor.submit(self.fetch, origin, destination)

    def fetch(self, origin: Coordinate, destination: Coordinate) -> Polyline:
        try:
            route = self.provider.fetch_route(origin, destination)
        except RouteFetchError as error:
            LOGGER.warning(
                "Route fetch from (%s, %s) to (%s, %s) failed, using straight line: %s",
                origin.lat, origin.lng, destination.lat, destination.lng, error,
            )
            return straight_line(origin, destination)

        self.cache.put(origin, destination, route)
        LOGGER.info("Fetched route with %s points.", len(route))
        return route

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
