from typing import Optional

from feedmirror.core.config import load_settings
from feedmirror.domain.models import MirrorSettings
from feedmirror.services.indexer import NupkgIndexer, PackageIndexer
from feedmirror.services.mirror import MirrorService
from feedmirror.services.upstream import DisabledUpstreamClient, NuGetUpstreamClient, UpstreamClient
from feedmirror.storage.db_manager import MetadataStore
from feedmirror.storage.json_db_manager import JsonMetadataStore
from feedmirror.storage.store_root import StoreRoot, resolve_store_root

_settings: Optional[MirrorSettings] = None
_store_root: Optional[StoreRoot] = None
_metadata_store: Optional[MetadataStore] = None
_upstream: Optional[UpstreamClient] = None
_indexer: Optional[PackageIndexer] = None
_mirror_service: Optional[MirrorService] = None


def get_settings() -> MirrorSettings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_store_root() -> StoreRoot:
    global _store_root
    if _store_root is None:
        _store_root = resolve_store_root(get_settings().store_path)
    return _store_root


def get_metadata_store() -> MetadataStore:
    global _metadata_store
    if _metadata_store is None:
        _metadata_store = JsonMetadataStore(get_store_root())
        _metadata_store.initialize()
    return _metadata_store


def get_upstream() -> UpstreamClient:
    global _upstream
    if _upstream is None:
        settings = get_settings()
        if settings.mirror_enabled:
            _upstream = NuGetUpstreamClient(
                settings.upstream_service_index,
                timeout=settings.upstream_timeout_seconds,
                retries=settings.upstream_retries,
            )
        else:
            _upstream = DisabledUpstreamClient()
    return _upstream


def get_indexer() -> PackageIndexer:
    global _indexer
    if _indexer is None:
        _indexer = NupkgIndexer(get_store_root(), get_metadata_store())
    return _indexer


def get_mirror_service() -> MirrorService:
    global _mirror_service
    if _mirror_service is None:
        _mirror_service = MirrorService(
            get_store_root(),
            get_metadata_store(),
            get_upstream(),
            get_indexer(),
        )
    return _mirror_service


async def reset_dependencies() -> None:
    """
    Drop every cached singleton so the next request re-reads configuration.
    """
    global _settings, _store_root, _metadata_store, _upstream, _indexer, _mirror_service
    if _upstream is not None:
        await _upstream.aclose()
    _settings = None
    _store_root = None
    _metadata_store = None
    _upstream = None
    _indexer = None
    _mirror_service = None
