"""Registry of remote nodes known to a local device."""

from __future__ import annotations

import threading
from collections.abc import Iterator

from xbeectl.core.model import RemoteNode, XBee16BitAddress, XBee64BitAddress


class NodeRegistry:
    def __init__(self) -> None:
        self._nodes: list[RemoteNode] = []
        self._lock = threading.Lock()

    def upsert(self, node: RemoteNode) -> RemoteNode:
        """Merge node into its existing entry, or add it.

        Returns the stored instance, which is not node itself when an equal
        entry was already present.
        """
        with self._lock:
            for existing in self._nodes:
                if existing == node:
                    existing.update_from(node)
                    return existing
            self._nodes.append(node)
            return node

    def add_if_not_exist(
        self,
        x64bit_addr: XBee64BitAddress | None = None,
        x16bit_addr: XBee16BitAddress | None = None,
        node_id: str | None = None,
    ) -> RemoteNode:
        return self.upsert(RemoteNode(x64bit_addr=x64bit_addr, x16bit_addr=x16bit_addr, node_id=node_id))

    def find_by_long(self, address: XBee64BitAddress) -> RemoteNode | None:
        if not address.is_known:
            return None
        with self._lock:
            return next((n for n in self._nodes if n.x64bit_addr == address), None)

    def find_by_short(self, address: XBee16BitAddress) -> RemoteNode | None:
        if not address.is_known:
            return None
        with self._lock:
            return next((n for n in self._nodes if n.x16bit_addr == address), None)

    def find_by_identifier(self, node_id: str) -> RemoteNode | None:
        with self._lock:
            return next((n for n in self._nodes if n.node_id == node_id), None)

    def remove(self, node: RemoteNode) -> bool:
        with self._lock:
            for index, existing in enumerate(self._nodes):
                if existing == node:
                    del self._nodes[index]
                    return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._nodes.clear()

    def nodes(self) -> list[RemoteNode]:
        with self._lock:
            return list(self._nodes)

    def __iter__(self) -> Iterator[RemoteNode]:
        return iter(self.nodes())

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)
