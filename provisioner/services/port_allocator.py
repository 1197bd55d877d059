from typing import Iterable, Optional

from ..errors import ConfigurationError, NoPortAvailable


def allocate_port(
    used_ports: Iterable[int],
    min_port: int,
    max_port: int,
    preferred: Optional[int] = None,
) -> int:
    """Return the lowest port in ``[min_port, max_port)`` missing from ``used_ports``.

    ``preferred`` is returned as-is when it is still inside the range and free,
    which lets a caller keep the port it announced earlier.
    """
    if min_port < 1 or max_port > 65536:
        raise ConfigurationError("Configured port range is out of bounds")
    if max_port <= min_port:
        raise ConfigurationError("Invalid port range configuration")

    used = set(used_ports)
    if preferred is not None and min_port <= preferred < max_port and preferred not in used:
        return preferred
    for port in range(min_port, max_port):
        if port not in used:
            return port
    raise NoPortAvailable("No available ports in the configured range")
