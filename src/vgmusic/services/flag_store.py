"""Document flag storage contract and the in-memory implementation."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from vgmusic import MODULE_ID
from vgmusic.session import Document

logger = logging.getLogger(__name__)


class FlagStore(Protocol):
    """Namespaced read/write access to per-document flags.

    Reads are synchronous against replicated state; writes are asynchronous and
    may fail.
    """

    def get_flag(self, document: Document, key: str) -> Any: ...

    async def set_flag(self, document: Document, key: str, value: Any) -> None: ...

    async def unset_flag(self, document: Document, key: str) -> None: ...


class MemoryFlagStore:
    """Flag store writing straight into the documents' own flag mappings."""

    def __init__(self, namespace: str = MODULE_ID) -> None:
        self._namespace = namespace

    def get_flag(self, document: Document, key: str) -> Any:
        return document.get_flag(key, namespace=self._namespace)

    async def set_flag(self, document: Document, key: str, value: Any) -> None:
        *parents, leaf = key.split(".")
        node = document.flags.setdefault(self._namespace, {})
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[leaf] = value
        logger.debug("Set flag %s on %r", key, document)

    async def unset_flag(self, document: Document, key: str) -> None:
        *parents, leaf = key.split(".")
        node: Any = document.flags.get(self._namespace)
        for part in parents:
            if not isinstance(node, dict):
                return
            node = node.get(part)
        if isinstance(node, dict):
            node.pop(leaf, None)
