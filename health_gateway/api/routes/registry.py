"""Route registry: path prefixes mapped to handler groups.

Domain routes (users, glucose readings, activities, insulin doses, food
entries) live outside the gateway. Each is supplied as a *handler group*, a
callable receiving the shared store handle and returning an ``APIRouter``.
The registry mounts the groups under their prefixes in a fixed priority
order: the debug prefix first, then the domain prefixes in the order of
``DOMAIN_PREFIXES``, then any other prefix in registration order. Starlette
matches routes in the order they were added, so the first mounted prefix
that matches a path wins.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from fastapi import APIRouter, FastAPI
from loguru import logger

from health_gateway.api.constants import DEBUG_PREFIX, DOMAIN_PREFIXES
from health_gateway.infrastructure.database import StoreHandle

type HandlerGroup = Callable[[StoreHandle], APIRouter]


@dataclass(frozen=True, slots=True)
class RouteMount:
    """One prefix and the handler group answering under it."""

    prefix: str
    group: HandlerGroup

    @property
    def tag(self) -> str:
        """OpenAPI tag derived from the last prefix segment."""
        return self.prefix.rstrip("/").rsplit("/", 1)[-1] or "root"


def _validate_prefix(prefix: str) -> str:
    if not prefix.startswith("/") or prefix.endswith("/"):
        msg = f"Route prefix must start with '/' and not end with '/': {prefix!r}"
        raise ValueError(msg)
    return prefix


class RouteRegistry:
    """Collects handler groups and mounts them on an application once.

    Args:
        store: Store handle passed to every handler group.
        groups: Initial ``(prefix, handler group)`` pairs.
    """

    def __init__(
        self,
        store: StoreHandle,
        groups: Iterable[tuple[str, HandlerGroup]] = (),
    ) -> None:
        self._store = store
        self._groups: dict[str, HandlerGroup] = {}
        self._mounted = False
        for prefix, group in groups:
            self.register(prefix, group)

    @property
    def mounted(self) -> bool:
        """Whether mount() has run."""
        return self._mounted

    def register(self, prefix: str, group: HandlerGroup) -> None:
        """Add a handler group under ``prefix``.

        Raises:
            RuntimeError: If the registry is already mounted.
            ValueError: If the prefix is malformed or already taken.
        """
        if self._mounted:
            msg = "Cannot register handler groups after the registry is mounted"
            raise RuntimeError(msg)
        _validate_prefix(prefix)
        if prefix in self._groups:
            msg = f"Prefix already registered: {prefix}"
            raise ValueError(msg)
        self._groups[prefix] = group

    def mounts(self) -> list[RouteMount]:
        """Registered groups in mount priority order."""
        priority = [DEBUG_PREFIX, *DOMAIN_PREFIXES]
        ordered = [prefix for prefix in priority if prefix in self._groups]
        ordered.extend(prefix for prefix in self._groups if prefix not in priority)
        return [RouteMount(prefix, self._groups[prefix]) for prefix in ordered]

    def mount(self, app: FastAPI) -> None:
        """Build every handler group and include its router in ``app``.

        Raises:
            RuntimeError: If the registry was already mounted.
        """
        if self._mounted:
            msg = "Route registry is already mounted"
            raise RuntimeError(msg)

        for route_mount in self.mounts():
            router = route_mount.group(self._store)
            app.include_router(router, prefix=route_mount.prefix, tags=[route_mount.tag])
            logger.debug(
                "Mounted handler group at {}",
                route_mount.prefix,
                routes=len(router.routes),
            )

        self._mounted = True
        logger.info(
            "Route registry mounted",
            prefixes=[route_mount.prefix for route_mount in self.mounts()],
        )
