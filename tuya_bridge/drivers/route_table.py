import logging
from typing import Any, Dict, Iterable, List, Optional

from tuya_bridge.models import Route, normalize_key


class RouteTable:
    """Named routes of one driver, each bound to a single data point."""

    def __init__(self):
        self._routes: Dict[str, Route] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def register(self, route: Route) -> None:
        """Register a route; a second registration under the same name replaces the first."""
        if route.name in self._routes:
            self.logger.debug(f"Route '{route.name}' redefined: {self._routes[route.name]} -> {route}")
        self._routes[route.name] = route

    def register_all(self, routes: Iterable[Route]) -> None:
        for route in routes:
            self.register(route)

    def get(self, name: str) -> Optional[Route]:
        return self._routes.get(name)

    def names(self) -> List[str]:
        return list(self._routes)

    def all(self) -> Dict[str, Route]:
        return dict(self._routes)

    def routes_for_keys(self, keys: Iterable[Any]) -> List[Route]:
        wanted = {normalize_key(k) for k in keys}
        return [route for route in self._routes.values() if route.dps_key in wanted]

    def __contains__(self, name: str) -> bool:
        return name in self._routes

    def __len__(self) -> int:
        return len(self._routes)
